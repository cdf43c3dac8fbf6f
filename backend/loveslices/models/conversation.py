"""
Database models for conversations between two partners.
A conversation carries its own lifecycle phase and the fields of the two-party
ending negotiation; messages are an append-only log attached to it.
"""
import uuid
from enum import Enum
from tortoise import fields, models

class Phase(str, Enum):
    OPEN = "open"
    ENDING_INITIATED = "ending_initiated"
    ENDED = "ended"

class Outcome(str, Enum):
    CONNECTED = "connected"
    TRIED_AND_LISTENED = "tried_and_listened"
    HARD_BUT_HONEST = "hard_but_honest"
    NO_OUTCOME = "no_outcome"

class Conversation(models.Model):
    """
    Conversation database model.

    Participants are `initiated_by` and `partner`; `partner` is null for a solo
    conversation, which is the only kind that may be ended without negotiation.

    `phase` is the serialization point: every transition is a conditional
    UPDATE filtered on the expected phase, so two racing requests can never
    both win.

    Invariants:
    - phase == ended  <=>  ended_at, end_confirmed_by, end_confirmed_at are set
    - phase == ending_initiated  <=>  end_initiated_by/at set and not ended
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    loveslice = fields.ForeignKeyField(
        "models.Loveslice", related_name="conversations", null=True, on_delete=fields.SET_NULL
    )  # Source: written loveslice
    starter = fields.ForeignKeyField(
        "models.ConversationStarter", related_name="conversations", null=True, on_delete=fields.SET_NULL
    )  # Source: conversation starter
    initiated_by = fields.ForeignKeyField("models.User", related_name="conversations", on_delete=fields.CASCADE)
    partner = fields.ForeignKeyField("models.User", related_name=False, null=True, on_delete=fields.SET_NULL)
    phase = fields.CharEnumField(Phase, max_length=24, default=Phase.OPEN)
    started_at = fields.DatetimeField()
    ended_at = fields.DatetimeField(null=True)
    duration_seconds = fields.IntField(null=True)  # Set once, at close
    outcome = fields.CharEnumField(Outcome, max_length=24, default=Outcome.NO_OUTCOME)
    created_spoken_loveslice = fields.BooleanField(default=False)

    # Ending negotiation
    end_initiated_by = fields.ForeignKeyField("models.User", related_name=False, null=True, on_delete=fields.SET_NULL)
    end_initiated_at = fields.DatetimeField(null=True)
    end_confirmed_by = fields.ForeignKeyField("models.User", related_name=False, null=True, on_delete=fields.SET_NULL)
    end_confirmed_at = fields.DatetimeField(null=True)
    final_note = fields.TextField(null=True)  # Shared reflection, editable after close

    class Meta:
        table = "conversations"

    @property
    def participant_ids(self) -> list[str]:
        ids = [str(self.initiated_by_id)]
        if self.partner_id:
            ids.append(str(self.partner_id))
        return ids

    def has_participant(self, user_id) -> bool:
        return str(user_id) in self.participant_ids

    def other_participant_id(self, user_id) -> str | None:
        for pid in self.participant_ids:
            if pid != str(user_id):
                return pid
        return None

    @property
    def source(self) -> str:
        if self.loveslice_id:
            return "loveslice"
        if self.starter_id:
            return "starter"
        return "none"

class ConversationMessage(models.Model):
    id = fields.IntField(pk=True)
    conversation = fields.ForeignKeyField("models.Conversation", related_name="messages", on_delete=fields.CASCADE)
    user = fields.ForeignKeyField("models.User", related_name=False, on_delete=fields.CASCADE)
    content = fields.TextField()
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "conversation_messages"
