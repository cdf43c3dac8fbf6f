"""
Conversation lifecycle.

    open ──initiate_ending──> ending_initiated ──confirm_ending──> ended
      ^                              │
      └──────────cancel_ending───────┘
    open ──end_directly (solo only)──────────────────────────────> ended

Each transition is a single conditional UPDATE filtered on the expected phase
(and, for confirmation, on the confirming user not being the initiator). The
row count tells us whether we won; on zero rows the current row is re-read
only to pick the right error or the idempotent answer. Nothing here talks to
the realtime channel: transitions return the push to make and the API layer
schedules it after the response.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import datetime as dt
from tortoise.expressions import Q
from tortoise.transactions import in_transaction

from loveslices.config import settings
from loveslices.core.clock import elapsed_seconds, utc_now
from loveslices.core.errors import Conflict, DomainError, NotFound, Unauthorized
from loveslices.core.notifier import ChannelEvent
from loveslices.models import (
    Conversation,
    ConversationMessage,
    ConversationStarter,
    Loveslice,
    Outcome,
    Phase,
    SpokenLoveslice,
)
from loveslices.services import journal

logger = logging.getLogger("uvicorn.error")

OFFLINE_MARKER = "This conversation will continue in person. It has been saved as a Spoken Loveslice."

_CLEARED_NEGOTIATION = {
    "end_initiated_by_id": None,
    "end_initiated_at": None,
    "end_confirmed_by_id": None,
    "end_confirmed_at": None,
}


@dataclass
class Transition:
    conversation: Conversation
    changed: bool = True
    spoken: Optional[SpokenLoveslice] = None
    notify_user_id: Optional[str] = None
    event: Optional[ChannelEvent] = None


def _parse_id(cid) -> uuid.UUID:
    try:
        return uuid.UUID(str(cid))
    except ValueError:
        raise NotFound("Conversation not found")


class ConversationService:
    def __init__(self, clock: Callable[[], dt.datetime] = utc_now):
        self.clock = clock

    # ----- reads -----
    async def _load(self, user, cid) -> Conversation:
        c = await Conversation.get_or_none(id=_parse_id(cid))
        if c is None:
            raise NotFound("Conversation not found")
        if not c.has_participant(user.id):
            raise Unauthorized("You do not have access to this conversation")
        return c

    async def get(self, user, cid) -> tuple[Conversation, list[ConversationMessage]]:
        c = await self._load(user, cid)
        messages = await ConversationMessage.filter(conversation_id=c.id).order_by("created_at", "id")
        return c, messages

    async def list_for_user(self, user) -> list[Conversation]:
        return await (
            Conversation.filter(Q(initiated_by_id=user.id) | Q(partner_id=user.id))
            .order_by("-started_at")
        )

    # ----- creation / messages -----
    async def start(self, user, loveslice_id: int | None = None, starter_id: int | None = None) -> Conversation:
        """
        Open a conversation between the user and their current partner.
        The source may be a written loveslice, a starter, or nothing.
        """
        if loveslice_id is not None:
            loveslice = await Loveslice.get_or_none(id=loveslice_id)
            if loveslice is None:
                raise NotFound("Loveslice not found")
            if not loveslice.has_participant(user.id):
                raise Unauthorized("You do not have access to this loveslice")
            await Loveslice.filter(id=loveslice.id).update(has_started_conversation=True)
        if starter_id is not None:
            if not await ConversationStarter.exists(id=starter_id):
                raise NotFound("Conversation starter not found")
            await ConversationStarter.filter(id=starter_id).update(used=True)

        c = await Conversation.create(
            initiated_by_id=user.id,
            partner_id=user.partner_id,
            loveslice_id=loveslice_id,
            starter_id=starter_id,
            started_at=self.clock(),
        )
        logger.info("[conversations] %s started by user=%s source=%s", c.id, user.id, c.source)
        return c

    async def post_message(self, user, cid, content: str) -> ConversationMessage:
        c = await self._load(user, cid)
        # Row lock so a message cannot slip in behind a concurrent close
        async with in_transaction() as conn:
            locked = await Conversation.filter(id=c.id).select_for_update().using_db(conn).first()
            if locked.phase == Phase.ENDED:
                raise Conflict("Cannot add message to an ended conversation", code="CONVERSATION_ENDED")
            return await ConversationMessage.create(
                conversation_id=c.id, user_id=user.id, content=content, using_db=conn
            )

    # ----- ending negotiation -----
    def _push(self, c: Conversation, user, event_type: str, note: str | None = None) -> dict:
        to_user = c.other_participant_id(user.id)
        if to_user is None:
            return {}
        return {
            "notify_user_id": to_user,
            "event": ChannelEvent(type=event_type, conversationId=str(c.id), userName=user.name, note=note),
        }

    async def initiate_ending(self, user, cid) -> Transition:
        c = await self._load(user, cid)
        updated = await Conversation.filter(id=c.id, phase=Phase.OPEN).update(
            phase=Phase.ENDING_INITIATED,
            end_initiated_by_id=user.id,
            end_initiated_at=self.clock(),
        )
        c = await Conversation.get(id=c.id)
        if not updated:
            if c.phase == Phase.ENDING_INITIATED:
                # Duplicate click, duplicate delivery, or both partners at once
                return Transition(c, changed=False)
            raise Conflict("This conversation has already ended", code="INVALID_STATE")
        logger.info("[conversations] %s ending initiated by user=%s", c.id, user.id)
        return Transition(c, **self._push(c, user, "initiate_ending"))

    def _confirm_conflict(self, c: Conversation, user) -> Conflict | None:
        """Why `user` cannot confirm `c` right now, or None if they can."""
        if c.phase == Phase.ENDING_INITIATED:
            if str(c.end_initiated_by_id) == str(user.id):
                return Conflict(
                    "You already initiated the ending, waiting for partner confirmation", code="SELF_CONFIRM"
                )
            return None
        if c.phase == Phase.ENDED:
            return Conflict("This conversation has already ended", code="INVALID_STATE")
        return Conflict("Conversation ending has not been initiated", code="INVALID_STATE")

    async def confirm_ending(
        self,
        user,
        cid,
        outcome: Outcome | None = None,
        create_spoken: bool = False,
        theme: str | None = None,
        final_note: str | None = None,
    ) -> Transition:
        c = await self._load(user, cid)
        if create_spoken and outcome in (None, Outcome.NO_OUTCOME):
            # An illegal confirm is a conflict whatever the payload
            conflict = self._confirm_conflict(c, user)
            if conflict is not None:
                raise conflict
            raise DomainError("An outcome is required to create a spoken loveslice", code="OUTCOME_REQUIRED")

        now = self.clock()
        values = {
            "phase": Phase.ENDED,
            "end_confirmed_by_id": user.id,
            "end_confirmed_at": now,
            "ended_at": now,
            "duration_seconds": elapsed_seconds(c.started_at, now),
            "outcome": outcome or Outcome.NO_OUTCOME,
        }
        if final_note:
            values["final_note"] = final_note
        updated = await (
            Conversation.filter(id=c.id, phase=Phase.ENDING_INITIATED)
            .exclude(end_initiated_by_id=user.id)
            .update(**values)
        )
        c = await Conversation.get(id=c.id)
        if not updated:
            raise self._confirm_conflict(c, user) or Conflict("This conversation changed", code="INVALID_STATE")

        logger.info("[conversations] %s ended by confirmation of user=%s duration=%ss",
                    c.id, user.id, c.duration_seconds)
        spoken = await self._create_spoken(c, theme) if create_spoken else None
        return Transition(c, spoken=spoken, **self._push(c, user, "confirm_ending", c.final_note))

    async def cancel_ending(self, user, cid) -> Transition:
        c = await self._load(user, cid)
        updated = await Conversation.filter(id=c.id, phase=Phase.ENDING_INITIATED).update(
            phase=Phase.OPEN, **_CLEARED_NEGOTIATION
        )
        c = await Conversation.get(id=c.id)
        if not updated:
            if c.phase == Phase.ENDED:
                raise Conflict("This conversation has already ended", code="INVALID_STATE")
            raise Conflict("There is no ending to cancel", code="INVALID_STATE")
        logger.info("[conversations] %s ending cancelled by user=%s", c.id, user.id)
        return Transition(c, **self._push(c, user, "cancel_ending"))

    async def add_final_note(self, user, cid, note: str) -> Transition:
        c = await self._load(user, cid)
        updated = await Conversation.filter(
            id=c.id, phase__in=[Phase.ENDING_INITIATED, Phase.ENDED]
        ).update(final_note=note)
        c = await Conversation.get(id=c.id)
        if not updated:
            raise Conflict("A final note can only be added once the ending is underway", code="INVALID_STATE")
        logger.info("[conversations] %s final note by user=%s", c.id, user.id)
        return Transition(c, **self._push(c, user, "final_note_added", note))

    async def end_directly(
        self,
        user,
        cid,
        outcome: Outcome,
        create_spoken: bool = False,
        theme: str | None = None,
        continue_offline: bool = False,
    ) -> Transition:
        """Close a solo conversation in one step; partnered ones must negotiate."""
        c = await self._load(user, cid)
        if c.partner_id is not None:
            raise Conflict("Both partners must agree to end this conversation", code="NEGOTIATION_REQUIRED")

        now = self.clock()
        async with in_transaction() as conn:
            updated = await Conversation.filter(
                id=c.id, phase=Phase.OPEN, partner_id__isnull=True
            ).using_db(conn).update(
                phase=Phase.ENDED,
                end_confirmed_by_id=user.id,
                end_confirmed_at=now,
                ended_at=now,
                duration_seconds=elapsed_seconds(c.started_at, now),
                outcome=outcome,
            )
            if not updated:
                raise Conflict("This conversation is no longer open", code="INVALID_STATE")
            if continue_offline:
                await ConversationMessage.create(
                    conversation_id=c.id, user_id=user.id, content=OFFLINE_MARKER, using_db=conn
                )
        c = await Conversation.get(id=c.id)
        logger.info("[conversations] %s ended directly by user=%s", c.id, user.id)

        spoken = None
        if create_spoken or continue_offline:
            spoken = await self._create_spoken(c, theme, continued_offline=continue_offline)
        return Transition(c, spoken=spoken)

    # ----- spoken loveslices -----
    async def _source_theme(self, c: Conversation) -> str | None:
        if c.starter_id:
            starter = await ConversationStarter.get_or_none(id=c.starter_id)
            if starter:
                return starter.theme
        if c.loveslice_id:
            loveslice = await Loveslice.get_or_none(id=c.loveslice_id).prefetch_related("question")
            if loveslice:
                return loveslice.question.theme
        return None

    async def _create_spoken(self, c: Conversation, theme: str | None, continued_offline: bool = False):
        """
        Claim the created_spoken_loveslice flag and write the artifact in one
        transaction. Returns None when the flag was already taken.
        """
        theme = theme or await self._source_theme(c) or settings.default_theme
        async with in_transaction() as conn:
            claimed = await Conversation.filter(
                id=c.id, created_spoken_loveslice=False
            ).using_db(conn).update(created_spoken_loveslice=True)
            if not claimed:
                return None
            spoken = await SpokenLoveslice.create(
                conversation_id=c.id,
                user1_id=c.initiated_by_id,
                user2_id=c.partner_id or c.initiated_by_id,
                outcome=c.outcome,
                theme=theme,
                duration_seconds=c.duration_seconds or 0,
                continued_offline=continued_offline,
                using_db=conn,
            )
            contents = await ConversationMessage.filter(conversation_id=c.id).using_db(conn).order_by(
                "created_at", "id"
            ).values_list("content", flat=True)
            await journal.add_spoken_entry(spoken, list(contents), using_db=conn)
        c.created_spoken_loveslice = True
        logger.info("[conversations] %s spoken loveslice=%s created", c.id, spoken.id)
        return spoken

    async def list_spoken(self, user) -> list[SpokenLoveslice]:
        return await (
            SpokenLoveslice.filter(Q(user1_id=user.id) | Q(user2_id=user.id))
            .order_by("-created_at", "-id")
        )

    async def get_spoken(self, user, spoken_id: int) -> SpokenLoveslice:
        spoken = await SpokenLoveslice.get_or_none(id=spoken_id)
        if spoken is None:
            raise NotFound("Spoken loveslice not found")
        if str(user.id) not in (str(spoken.user1_id), str(spoken.user2_id)):
            raise Unauthorized("You do not have access to this spoken loveslice")
        return spoken


conversation_service = ConversationService()
