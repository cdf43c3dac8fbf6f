from fastapi import APIRouter, Depends

from loveslices.api.v1.deps import get_current_user
from loveslices.models import User
from loveslices.schemas.loveslice import NoteIn, loveslice_out
from loveslices.services.pairing import pairing_service

router = APIRouter(prefix="/loveslices", tags=["loveslices"])

@router.get("")
async def list_loveslices(user: User = Depends(get_current_user)):
    """Written loveslices the caller is part of, newest first."""
    rows = await pairing_service.list_loveslices(user)
    return {"success": True, "data": [loveslice_out(ls) for ls in rows]}

@router.get("/{lid}")
async def get_loveslice(lid: int, user: User = Depends(get_current_user)):
    ls = await pairing_service.get_loveslice(user, lid)
    return {"success": True, "data": loveslice_out(ls)}

@router.patch("/{lid}/note")
async def update_note(lid: int, body: NoteIn, user: User = Depends(get_current_user)):
    ls = await pairing_service.update_private_note(user, lid, body.note)
    return {"success": True, "data": {"id": ls.id, "privateNote": ls.private_note}}
