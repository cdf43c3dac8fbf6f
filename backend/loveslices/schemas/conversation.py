"""
Pydantic schemas for conversation endpoints.
Request bodies for each lifecycle transition, plus the record builders used
by both the REST responses and the client controller.
"""
from pydantic import BaseModel, Field
from typing import Optional

from loveslices.core.clock import iso
from loveslices.models.conversation import Outcome

class CreateConversationIn(BaseModel):
    """Either source may be omitted; both omitted starts an unsourced conversation."""
    lovesliceId: Optional[int] = None
    starterId: Optional[int] = None

class MessageIn(BaseModel):
    content: str = Field(min_length=1)

class ConfirmEndIn(BaseModel):
    """Optional payload accompanying the partner's confirmation."""
    outcome: Optional[Outcome] = None
    createSpokenLoveslice: bool = False
    theme: Optional[str] = None
    finalNote: Optional[str] = None

class FinalNoteIn(BaseModel):
    note: str = Field(min_length=1)

class EndDirectlyIn(BaseModel):
    outcome: Outcome
    createSpokenLoveslice: bool = False
    theme: Optional[str] = None
    continueOffline: bool = False

def _value(member) -> str:
    return getattr(member, "value", member)

def _id(value) -> str | None:
    return str(value) if value is not None else None

def conversation_out(c) -> dict:
    return {
        "id": str(c.id),
        "lovesliceId": c.loveslice_id,
        "starterId": c.starter_id,
        "source": c.source,
        "initiatedByUserId": str(c.initiated_by_id),
        "partnerUserId": _id(c.partner_id),
        "phase": _value(c.phase),
        "startedAt": iso(c.started_at),
        "endedAt": iso(c.ended_at),
        "durationSeconds": c.duration_seconds,
        "outcome": _value(c.outcome),
        "createdSpokenLoveslice": c.created_spoken_loveslice,
        "endInitiatedByUserId": _id(c.end_initiated_by_id),
        "endInitiatedAt": iso(c.end_initiated_at),
        "endConfirmedByUserId": _id(c.end_confirmed_by_id),
        "endConfirmedAt": iso(c.end_confirmed_at),
        "finalNote": c.final_note,
    }

def message_out(m) -> dict:
    return {
        "id": m.id,
        "conversationId": str(m.conversation_id),
        "userId": str(m.user_id),
        "content": m.content,
        "createdAt": iso(m.created_at),
    }

def spoken_out(s) -> dict:
    return {
        "id": s.id,
        "conversationId": str(s.conversation_id),
        "user1Id": str(s.user1_id),
        "user2Id": str(s.user2_id),
        "outcome": _value(s.outcome),
        "theme": s.theme,
        "durationSeconds": s.duration_seconds,
        "continuedOffline": s.continued_offline,
        "createdAt": iso(s.created_at),
    }
