"""
Pydantic schemas for questions, responses, written loveslices and the journal.
"""
from pydantic import BaseModel, Field

from loveslices.core.clock import iso

class ResponseIn(BaseModel):
    questionId: int
    content: str = Field(min_length=1)

class NoteIn(BaseModel):
    note: str | None = None

def question_out(q) -> dict:
    return {"id": q.id, "content": q.content, "theme": q.theme}

def response_out(r) -> dict:
    return {
        "id": r.id,
        "userId": str(r.user_id),
        "questionId": r.question_id,
        "content": r.content,
        "createdAt": iso(r.created_at),
    }

def loveslice_out(ls) -> dict:
    """Expects question, user1/2 and response1/2 to be fetched."""
    return {
        "id": ls.id,
        "question": question_out(ls.question),
        "user1Id": str(ls.user1_id),
        "user2Id": str(ls.user2_id),
        "responses": [
            {"id": ls.response1.id, "userId": str(ls.user1_id), "userName": ls.user1.name, "content": ls.response1.content},
            {"id": ls.response2.id, "userId": str(ls.user2_id), "userName": ls.user2.name, "content": ls.response2.content},
        ],
        "privateNote": ls.private_note,
        "type": ls.type,
        "hasStartedConversation": ls.has_started_conversation,
        "createdAt": iso(ls.created_at),
    }

def journal_entry_out(e) -> dict:
    return {
        "id": e.id,
        "user1Id": str(e.user1_id),
        "user2Id": str(e.user2_id),
        "writtenLovesliceId": e.written_loveslice_id,
        "spokenLovesliceId": e.spoken_loveslice_id,
        "theme": e.theme,
        "searchableContent": e.searchable_content,
        "createdAt": iso(e.created_at),
    }

def starter_out(s) -> dict:
    return {
        "id": s.id,
        "content": s.content,
        "theme": s.theme,
        "lovesliceId": s.loveslice_id,
        "used": s.used,
        "markedAsMeaningful": s.marked_as_meaningful,
    }

class SkipQuestionIn(BaseModel):
    questionId: int
    skipNote: str | None = None

def assignment_out(a) -> dict:
    """Current question for the caller plus who has answered it."""
    return {
        "activeQuestion": {
            "id": a.active.id,
            "questionId": a.active.question_id,
            "assignedAt": iso(a.active.assigned_at),
            "isAnswered": a.active.is_answered,
            "isSkipped": a.active.is_skipped,
        },
        "question": question_out(a.question),
        "userHasAnswered": a.user_has_answered,
        "partnerHasAnswered": a.partner_has_answered,
    }
