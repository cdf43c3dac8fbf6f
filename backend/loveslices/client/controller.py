"""
Client-side state for one open conversation.

The controller keeps a view phase for the local user, moves it optimistically
when the user acts, moves it again when the partner's push arrives, and in
every case finishes by reconciling against the server's record. The server
record always wins; pushes and optimistic updates only make the UI react
sooner.
"""
import logging
from enum import Enum
from typing import Optional

from .api import ApiError, ConversationApi

logger = logging.getLogger(__name__)


class ViewPhase(str, Enum):
    IDLE_OPEN = "idle_open"                    # no ending requested
    INITIATOR_WAITING = "initiator_waiting"    # I asked to end, waiting on partner
    RECIPIENT_NOTIFIED = "recipient_notified"  # partner asked to end, my turn
    ENDED = "ended"


def derive_view(record: dict, me: str) -> ViewPhase:
    """View phase of user `me` for an authoritative conversation record."""
    phase = record.get("phase")
    if phase == "ended":
        return ViewPhase.ENDED
    if phase == "ending_initiated":
        if str(record.get("endInitiatedByUserId")) == str(me):
            return ViewPhase.INITIATOR_WAITING
        return ViewPhase.RECIPIENT_NOTIFIED
    return ViewPhase.IDLE_OPEN


class ConversationController:
    def __init__(self, api: ConversationApi, conversation_id: str, me: str):
        self.api = api
        self.conversation_id = str(conversation_id)
        self.me = str(me)
        self.record: Optional[dict] = None
        self.messages: list[dict] = []
        self.view = ViewPhase.IDLE_OPEN
        self.final_note: Optional[str] = None
        self.requested_by: Optional[str] = None  # partner name shown in the "wants to end" prompt

    # ----- reconciliation -----
    def _apply_record(self, record: dict) -> None:
        self.record = record
        if "messages" in record:
            self.messages = list(record["messages"])
        self.view = derive_view(record, self.me)
        self.final_note = record.get("finalNote")
        if self.view != ViewPhase.RECIPIENT_NOTIFIED:
            self.requested_by = None

    async def refresh(self) -> dict:
        """Refetch the authoritative record and replace local state with it."""
        record = await self.api.get(self.conversation_id)
        self._apply_record(record)
        return record

    async def _transition(self, call, optimistic: Optional[ViewPhase] = None) -> dict:
        if optimistic is not None:
            self.view = optimistic
        try:
            record = await call()
        except ApiError:
            # Local guess was wrong; show what the server has before re-raising
            await self.refresh()
            raise
        self._apply_record(record)
        return record

    # ----- user actions -----
    async def send_message(self, content: str) -> dict:
        try:
            message = await self.api.post_message(self.conversation_id, content)
        except ApiError:
            await self.refresh()
            raise
        self.messages.append(message)
        return message

    async def initiate_ending(self) -> dict:
        return await self._transition(
            lambda: self.api.initiate_ending(self.conversation_id), ViewPhase.INITIATOR_WAITING
        )

    async def confirm_ending(
        self,
        outcome: str | None = None,
        create_spoken: bool = False,
        theme: str | None = None,
        final_note: str | None = None,
    ) -> dict:
        return await self._transition(
            lambda: self.api.confirm_ending(
                self.conversation_id,
                outcome=outcome,
                createSpokenLoveslice=create_spoken,
                theme=theme,
                finalNote=final_note,
            ),
            ViewPhase.ENDED,
        )

    async def cancel_ending(self) -> dict:
        return await self._transition(
            lambda: self.api.cancel_ending(self.conversation_id), ViewPhase.IDLE_OPEN
        )

    async def add_final_note(self, note: str) -> dict:
        self.final_note = note
        return await self._transition(lambda: self.api.add_final_note(self.conversation_id, note))

    # ----- realtime -----
    async def handle_push(self, event: dict) -> bool:
        """
        Apply a push frame for this conversation, then refetch.

        Returns False for frames that belong to another conversation or have
        an unknown type; those are ignored.
        """
        if str(event.get("conversationId")) != self.conversation_id:
            return False
        kind = event.get("type")
        if kind == "initiate_ending":
            self.view = ViewPhase.RECIPIENT_NOTIFIED
            self.requested_by = event.get("userName")
        elif kind == "confirm_ending":
            self.view = ViewPhase.ENDED
        elif kind == "cancel_ending":
            self.view = ViewPhase.IDLE_OPEN
            self.requested_by = None
        elif kind == "final_note_added":
            self.final_note = event.get("note")
        else:
            return False

        try:
            await self.refresh()
        except ApiError as e:
            logger.warning("refetch after %s push failed: %s", kind, e)
        return True

    async def on_reconnect(self) -> None:
        # Missed pushes are not replayed; the record is the catch-up
        await self.refresh()
