"""
Pydantic schemas for authentication and partner endpoints.
"""
from pydantic import BaseModel

class LoginRequest(BaseModel):
    """Credentials for the login endpoint."""
    username: str
    password: str

class RegisterIn(BaseModel):
    username: str
    email: str | None = None
    displayName: str | None = None
    password: str

class AcceptInviteIn(BaseModel):
    inviteCode: str

def user_out(u) -> dict:
    """Public user fields; never includes the password hash."""
    return {
        "id": str(u.id),
        "username": u.username,
        "name": u.name,
        "email": u.email,
        "partnerId": str(u.partner_id) if u.partner_id else None,
    }
