from fastapi import APIRouter, Depends, status

from loveslices.api.v1.deps import get_current_user
from loveslices.config import settings
from loveslices.core.errors import DomainError, NotFound
from loveslices.models import Question, User
from loveslices.schemas.loveslice import (
    ResponseIn,
    SkipQuestionIn,
    assignment_out,
    question_out,
    response_out,
)
from loveslices.services.pairing import pairing_service

router = APIRouter(tags=["questions"])

@router.get("/active-question")
async def active_question(user: User = Depends(get_current_user)):
    """
    The question the caller should answer next.

    A new one is assigned when the caller has none or already answered it;
    never-seen questions are preferred.

    Raises:
        404 NOT_FOUND: no questions exist
    """
    assignment = await pairing_service.active_question(user)
    return {"success": True, "data": assignment_out(assignment)}

@router.post("/skip-question")
async def skip_question(body: SkipQuestionIn, user: User = Depends(get_current_user)):
    """
    Skip the current question, optionally saying why, and get another one.

    Raises:
        400 INVALID_QUESTION: questionId is not the caller's current question
    """
    if body.skipNote and len(body.skipNote) > settings.max_note_length:
        raise DomainError(f"Skip note is longer than {settings.max_note_length} characters", code="TOO_LONG")
    assignment = await pairing_service.skip_question(user, body.questionId, body.skipNote)
    return {"success": True, "data": assignment_out(assignment)}

@router.get("/questions/{qid}")
async def get_question(qid: int, user: User = Depends(get_current_user)):
    q = await Question.get_or_none(id=qid)
    if q is None:
        raise NotFound("Question not found")
    return {"success": True, "data": question_out(q)}

@router.post("/responses", status_code=status.HTTP_201_CREATED)
async def submit_response(body: ResponseIn, user: User = Depends(get_current_user)):
    """
    Answer a question.

    Returns:
        dict: data with:
            - response: the stored response
            - lovesliceCreated: bool, True when this answer completed the pair
            - lovesliceId: int | None

    Raises:
        404 NOT_FOUND: unknown question
        409 ALREADY_ANSWERED: the caller already answered this question
    """
    result = await pairing_service.submit_response(user, body.questionId, body.content)
    return {"success": True, "data": {
        "response": response_out(result.response),
        "lovesliceCreated": result.loveslice_created,
        "lovesliceId": result.loveslice_id,
    }}

@router.get("/pending-responses")
async def pending_responses(user: User = Depends(get_current_user)):
    items = await pairing_service.pending_responses(user)
    out = []
    for item in items:
        row = {"question": question_out(item["question"]), "response": response_out(item["response"])}
        row["waitingForPartner"] = item.get("waitingForPartner", False)
        row["waitingForYou"] = item.get("waitingForYou", False)
        out.append(row)
    return {"success": True, "data": out}
