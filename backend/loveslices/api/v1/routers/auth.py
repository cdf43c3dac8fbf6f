# loveslices/api/v1/routers/auth.py
from fastapi import APIRouter, HTTPException, Response, status, Depends
from loveslices.core.security import verify_password, create_access_token, hash_password
from loveslices.api.v1.deps import get_current_user
from loveslices.models.user import User
from loveslices.schemas.auth import LoginRequest, RegisterIn, user_out

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/register")
async def register(body: RegisterIn):
    """
    Register a new user account.

    Returns:
        dict: {"success": True, "data": user} or
              {"success": False, "error": {"code", "message"}}

    Error codes:
        - BAD_REQUEST: Missing username or password
        - USERNAME_EXISTS: Username already taken
    """
    if not body.username or not body.password:
        return {"success": False, "error": {"code": "BAD_REQUEST", "message": "username/password required"}}
    if await User.get_or_none(username=body.username):
        return {"success": False, "error": {"code": "USERNAME_EXISTS", "message": "Username already exists"}}
    u = await User.create(
        username=body.username,
        email=(body.email or None),
        display_name=(body.displayName or None),
        password_hash=hash_password(body.password),
    )
    return {"success": True, "data": user_out(u)}

@router.post("/login")
async def login(payload: LoginRequest, response: Response):
    """
    Authenticate and issue an access token.

    The token is returned in the body (also used for the /ws auth frame) and
    set as an HttpOnly cookie for browser clients.

    Raises:
        HTTPException (401): If credentials are invalid
    """
    user = await User.get_or_none(username=payload.username)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail={"code": "AUTH_INVALID_CREDENTIALS", "message": "Incorrect username or password"})
    token = create_access_token(str(user.id))
    response.set_cookie("accessToken", token, httponly=True, secure=False, samesite="lax")
    return {"success": True, "data": {"user": user_out(user), "accessToken": token}}

@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    """Identity of the caller: id, name and current partner id."""
    return {"success": True, "data": user_out(user)}

@router.post("/logout")
async def logout(response: Response):
    # Only clears the cookie; the token stays valid until it expires
    response.delete_cookie("accessToken")
    return {"success": True}
