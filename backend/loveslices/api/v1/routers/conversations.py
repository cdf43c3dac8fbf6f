from fastapi import APIRouter, BackgroundTasks, Depends, status
from loveslices.api.v1.deps import get_current_user
from loveslices.config import settings
from loveslices.core.errors import DomainError
from loveslices.core.notifier import notifier
from loveslices.models.user import User
from loveslices.schemas.conversation import (
    ConfirmEndIn,
    CreateConversationIn,
    EndDirectlyIn,
    FinalNoteIn,
    MessageIn,
    conversation_out,
    message_out,
    spoken_out,
)
from loveslices.services.conversations import Transition, conversation_service

router = APIRouter(prefix="/conversations", tags=["conversations"])

# ===== Helpers =====
def _schedule_push(background_tasks: BackgroundTasks, t: Transition) -> None:
    """
    Queue the partner push to run after the response is produced.
    The transition is already committed; a failed push changes nothing.
    """
    if t.event is not None and t.notify_user_id:
        background_tasks.add_task(notifier.publish, t.notify_user_id, t.event)

def _transition_out(t: Transition) -> dict:
    data = conversation_out(t.conversation)
    data["changed"] = t.changed
    return {"success": True, "data": data}

def _check_length(text: str, limit: int, what: str) -> None:
    if len(text) > limit:
        raise DomainError(f"{what} is longer than {limit} characters", code="TOO_LONG")

# ===== Routes =====
@router.get("", response_model=dict)
async def list_conversations(user: User = Depends(get_current_user)):
    """Conversations the caller takes part in, newest first."""
    rows = await conversation_service.list_for_user(user)
    return {"success": True, "data": [conversation_out(c) for c in rows]}

@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_conversation(body: CreateConversationIn, user: User = Depends(get_current_user)):
    """
    Start a conversation with the caller's current partner.

    Args:
        body: optional lovesliceId / starterId naming the source

    Raises:
        404: source loveslice or starter not found
        403: the caller is not part of the source loveslice
    """
    c = await conversation_service.start(user, loveslice_id=body.lovesliceId, starter_id=body.starterId)
    return {"success": True, "data": conversation_out(c)}

@router.get("/{cid}", response_model=dict)
async def get_conversation(cid: str, user: User = Depends(get_current_user)):
    """
    Authoritative conversation record plus its messages.
    Clients refetch this whenever their local state may have diverged.
    """
    c, messages = await conversation_service.get(user, cid)
    data = conversation_out(c)
    data["messages"] = [message_out(m) for m in messages]
    return {"success": True, "data": data}

@router.post("/{cid}/messages", response_model=dict, status_code=status.HTTP_201_CREATED)
async def post_message(cid: str, body: MessageIn, user: User = Depends(get_current_user)):
    _check_length(body.content, settings.max_message_length, "Message")
    m = await conversation_service.post_message(user, cid, body.content)
    return {"success": True, "data": message_out(m)}

@router.patch("/{cid}/initiate-end", response_model=dict)
async def initiate_end(cid: str, background_tasks: BackgroundTasks, user: User = Depends(get_current_user)):
    """
    Ask the partner to end the conversation.
    Repeating the call while a negotiation is open returns the current record
    with changed=False and sends no push.
    """
    t = await conversation_service.initiate_ending(user, cid)
    _schedule_push(background_tasks, t)
    return _transition_out(t)

@router.patch("/{cid}/confirm-end", response_model=dict)
async def confirm_end(
    cid: str,
    body: ConfirmEndIn,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
):
    """
    Agree to the partner's ending request and close the conversation.

    Raises:
        409 SELF_CONFIRM: the caller initiated the ending
        409 INVALID_STATE: no ending in progress, or already ended
    """
    if body.finalNote:
        _check_length(body.finalNote, settings.max_note_length, "Final note")
    t = await conversation_service.confirm_ending(
        user,
        cid,
        outcome=body.outcome,
        create_spoken=body.createSpokenLoveslice,
        theme=body.theme,
        final_note=body.finalNote,
    )
    _schedule_push(background_tasks, t)
    out = _transition_out(t)
    out["data"]["spokenLoveslice"] = spoken_out(t.spoken) if t.spoken else None
    return out

@router.patch("/{cid}/cancel-end", response_model=dict)
async def cancel_end(cid: str, background_tasks: BackgroundTasks, user: User = Depends(get_current_user)):
    """Withdraw an ending request; either participant may do this."""
    t = await conversation_service.cancel_ending(user, cid)
    _schedule_push(background_tasks, t)
    return _transition_out(t)

@router.patch("/{cid}/final-note", response_model=dict)
async def final_note(
    cid: str,
    body: FinalNoteIn,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
):
    _check_length(body.note, settings.max_note_length, "Final note")
    t = await conversation_service.add_final_note(user, cid, body.note)
    _schedule_push(background_tasks, t)
    return _transition_out(t)

@router.patch("/{cid}/end", response_model=dict)
async def end_directly(cid: str, body: EndDirectlyIn, user: User = Depends(get_current_user)):
    """
    One-step close for a conversation without a second participant.
    Partnered conversations get 409 NEGOTIATION_REQUIRED.
    """
    t = await conversation_service.end_directly(
        user,
        cid,
        outcome=body.outcome,
        create_spoken=body.createSpokenLoveslice,
        theme=body.theme,
        continue_offline=body.continueOffline,
    )
    out = _transition_out(t)
    out["data"]["spokenLoveslice"] = spoken_out(t.spoken) if t.spoken else None
    return out
