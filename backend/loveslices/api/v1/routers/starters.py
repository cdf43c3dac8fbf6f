import random

from fastapi import APIRouter, Depends, Query

from loveslices.api.v1.deps import get_current_user
from loveslices.core.errors import NotFound
from loveslices.models import ConversationStarter, Question, User
from loveslices.schemas.loveslice import starter_out

router = APIRouter(tags=["starters"])

@router.get("/conversation-starters")
async def list_starters(
    theme: str | None = Query(default=None),
    user: User = Depends(get_current_user),
):
    qs = ConversationStarter.all()
    if theme:
        qs = qs.filter(theme=theme)
    rows = await qs.order_by("id")
    return {"success": True, "data": [starter_out(s) for s in rows]}

@router.get("/conversation-starters/random")
async def random_starter(
    theme: str | None = Query(default=None),
    user: User = Depends(get_current_user),
):
    qs = ConversationStarter.filter(used=False)
    if theme:
        qs = qs.filter(theme=theme)
    rows = await qs
    if not rows:
        raise NotFound("No conversation starters available")
    return {"success": True, "data": starter_out(random.choice(rows))}

@router.get("/themes")
async def list_themes(user: User = Depends(get_current_user)):
    question_themes = await Question.all().distinct().values_list("theme", flat=True)
    starter_themes = await ConversationStarter.all().distinct().values_list("theme", flat=True)
    return {"success": True, "data": sorted(set(question_themes) | set(starter_themes))}

@router.patch("/conversation-starters/{sid}/mark-meaningful")
async def mark_meaningful(sid: int, user: User = Depends(get_current_user)):
    updated = await ConversationStarter.filter(id=sid).update(marked_as_meaningful=True)
    if not updated:
        raise NotFound("Conversation starter not found")
    starter = await ConversationStarter.get(id=sid)
    return {"success": True, "data": starter_out(starter)}
