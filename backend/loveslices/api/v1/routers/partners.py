from fastapi import APIRouter, Depends
from tortoise.transactions import in_transaction

from loveslices.api.v1.deps import get_current_user
from loveslices.core.errors import Conflict, NotFound
from loveslices.models.user import User
from loveslices.schemas.auth import AcceptInviteIn, user_out

router = APIRouter(prefix="/partners", tags=["partners"])

@router.get("/invite-code")
async def invite_code(user: User = Depends(get_current_user)):
    return {"success": True, "data": {"inviteCode": user.invite_code}}

@router.post("/accept")
async def accept_invitation(body: AcceptInviteIn, user: User = Depends(get_current_user)):
    """
    Link the caller and the owner of `inviteCode` as partners (both directions).

    Conflict when either side already has a partner or the code is the
    caller's own.
    """
    inviter = await User.get_or_none(invite_code=body.inviteCode.strip())
    if inviter is None:
        raise NotFound("Invite code not found")
    if inviter.id == user.id:
        raise Conflict("You cannot accept your own invitation", code="SELF_INVITE")
    async with in_transaction() as conn:
        # Conditional updates so two concurrent accepts cannot both link
        linked_self = await User.filter(id=user.id, partner_id__isnull=True).using_db(conn).update(partner_id=inviter.id)
        linked_inviter = await User.filter(id=inviter.id, partner_id__isnull=True).using_db(conn).update(partner_id=user.id)
        if not (linked_self and linked_inviter):
            raise Conflict("One of you already has a partner", code="ALREADY_PARTNERED")
    await user.refresh_from_db()
    return {"success": True, "data": user_out(user)}

@router.post("/disconnect")
async def disconnect_partner(user: User = Depends(get_current_user)):
    """Dissolve the partnership on both sides. Existing loveslices are kept."""
    if not user.partner_id:
        raise Conflict("You do not have a partner", code="NO_PARTNER")
    async with in_transaction() as conn:
        await User.filter(id=user.partner_id, partner_id=user.id).using_db(conn).update(partner_id=None)
        await User.filter(id=user.id).using_db(conn).update(partner_id=None)
    await user.refresh_from_db()
    return {"success": True, "data": user_out(user)}
