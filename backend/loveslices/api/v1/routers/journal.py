from fastapi import APIRouter, Depends, Query

from loveslices.api.v1.deps import get_current_user
from loveslices.models import User
from loveslices.schemas.conversation import spoken_out
from loveslices.schemas.loveslice import journal_entry_out
from loveslices.services import journal
from loveslices.services.conversations import conversation_service

router = APIRouter(tags=["journal"])

@router.get("/journal")
async def list_journal(
    theme: str | None = Query(default=None),
    search: str | None = Query(default=None, description="Case-insensitive text search"),
    user: User = Depends(get_current_user),
):
    """
    Journal entries of the caller and their partner, newest first.
    `search` wins over `theme` when both are given.
    """
    entries = await journal.list_entries(user, theme=theme, search=search)
    return {"success": True, "data": [journal_entry_out(e) for e in entries]}

@router.get("/spoken-loveslices")
async def list_spoken(user: User = Depends(get_current_user)):
    rows = await conversation_service.list_spoken(user)
    return {"success": True, "data": [spoken_out(s) for s in rows]}

@router.get("/spoken-loveslices/{sid}")
async def get_spoken(sid: int, user: User = Depends(get_current_user)):
    s = await conversation_service.get_spoken(user, sid)
    return {"success": True, "data": spoken_out(s)}
