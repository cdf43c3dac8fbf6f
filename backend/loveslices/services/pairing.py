"""
Pairing engine.

Hands each user a question, stores their answer and, when the partner already
answered the same question, creates the single written loveslice for the pair
together with its journal entry.

Exactly-once creation does not rely on the read-then-write sequence below:
both inserts are guarded by unique constraints, (user, question) on Response
and (question, pair_key) on Loveslice, so whichever concurrent request loses
the race gets an IntegrityError and falls back to the row the winner wrote.
A pair whose loveslice is missing (both answers stored, creation failed in
between) is completed the next time either partner lists pending responses.
"""
import logging
import random
from dataclasses import dataclass
from typing import Optional

from tortoise.exceptions import IntegrityError
from tortoise.expressions import Q
from tortoise.transactions import in_transaction

from loveslices.core.clock import utc_now
from loveslices.core.errors import Conflict, DomainError, NotFound, Unauthorized
from loveslices.models import ActiveQuestion, Loveslice, Question, Response, pair_key
from loveslices.services import journal

logger = logging.getLogger("uvicorn.error")

LOVESLICE_RELATED = ("question", "user1", "user2", "response1", "response2")


@dataclass
class PairingResult:
    response: Response
    loveslice_created: bool
    loveslice_id: Optional[int] = None


@dataclass
class Assignment:
    active: ActiveQuestion
    question: Question
    user_has_answered: bool
    partner_has_answered: bool


class PairingService:

    # ----- question assignment -----
    async def _current_assignment(self, user) -> ActiveQuestion | None:
        return await (
            ActiveQuestion.filter(user_id=user.id, is_answered=False, is_skipped=False)
            .order_by("-assigned_at", "-id")
            .prefetch_related("question")
            .first()
        )

    async def _pick_question(self, user, exclude_id: int | None = None) -> Question:
        """
        Random question for `user`, in order of preference:
        never assigned and never answered, then not answered, then anything.
        `exclude_id` (the question just skipped) is avoided while others exist.
        """
        questions = await Question.all().order_by("id")
        if not questions:
            raise NotFound("No questions available")
        seen = set(await ActiveQuestion.filter(user_id=user.id).values_list("question_id", flat=True))
        answered = set(await Response.filter(user_id=user.id).values_list("question_id", flat=True))

        candidates = [q for q in questions if q.id != exclude_id]
        for pool in (
            [q for q in candidates if q.id not in seen and q.id not in answered],
            [q for q in candidates if q.id not in answered],
            candidates,
        ):
            if pool:
                return random.choice(pool)
        return random.choice(questions)

    async def _assign(self, user, exclude_id: int | None = None) -> ActiveQuestion:
        question = await self._pick_question(user, exclude_id=exclude_id)
        active = await ActiveQuestion.create(user_id=user.id, question_id=question.id)
        active.question = question
        logger.info("[pairing] user=%s assigned question=%s", user.id, question.id)
        return active

    async def _describe(self, user, active: ActiveQuestion) -> Assignment:
        qid = active.question_id
        partner_answered = False
        if user.partner_id:
            partner_answered = await Response.exists(user_id=user.partner_id, question_id=qid)
        return Assignment(
            active=active,
            question=active.question,
            user_has_answered=await Response.exists(user_id=user.id, question_id=qid),
            partner_has_answered=partner_answered,
        )

    async def active_question(self, user) -> Assignment:
        """
        The user's current question, assigning a new one when they have none
        or already answered the current one.
        """
        current = await self._current_assignment(user)
        if current is not None and await Response.exists(user_id=user.id, question_id=current.question_id):
            await ActiveQuestion.filter(id=current.id).update(is_answered=True)
            current = None
        if current is None:
            current = await self._assign(user)
        return await self._describe(user, current)

    async def skip_question(self, user, question_id: int, note: str | None = None) -> Assignment:
        """Skip the current question (with an optional note) and assign another."""
        current = await self._current_assignment(user)
        if current is None or current.question_id != question_id:
            raise DomainError("That is not your current question", code="INVALID_QUESTION")
        skipped = await ActiveQuestion.filter(id=current.id, is_answered=False, is_skipped=False).update(
            is_skipped=True, skip_note=note, skipped_at=utc_now()
        )
        if not skipped:
            raise Conflict("This question was already answered or skipped", code="INVALID_STATE")
        logger.info("[pairing] user=%s skipped question=%s", user.id, question_id)
        return await self._describe(user, await self._assign(user, exclude_id=question_id))

    # ----- responses -----
    async def submit_response(self, user, question_id: int, content: str) -> PairingResult:
        question = await Question.get_or_none(id=question_id)
        if question is None:
            raise NotFound("Question not found")

        if await Response.exists(user_id=user.id, question_id=question.id):
            raise Conflict("You have already answered this question", code="ALREADY_ANSWERED")
        try:
            response = await Response.create(user_id=user.id, question_id=question.id, content=content)
        except IntegrityError:
            # Double submit raced past the pre-check
            raise Conflict("You have already answered this question", code="ALREADY_ANSWERED")
        await ActiveQuestion.filter(user_id=user.id, question_id=question.id, is_answered=False).update(
            is_answered=True
        )

        if not user.partner_id:
            return PairingResult(response, False)

        partner_response = await Response.get_or_none(user_id=user.partner_id, question_id=question.id)
        if partner_response is None:
            return PairingResult(response, False)

        loveslice = await self._create_once(question, response, partner_response)
        return PairingResult(response, True, loveslice.id)

    async def _create_once(self, question, response, partner_response) -> Loveslice:
        key = pair_key(response.user_id, partner_response.user_id)
        existing = await Loveslice.get_or_none(question_id=question.id, pair_key=key)
        if existing is not None:
            return existing
        try:
            async with in_transaction() as conn:
                loveslice = await Loveslice.create(
                    question_id=question.id,
                    user1_id=response.user_id,
                    user2_id=partner_response.user_id,
                    response1_id=response.id,
                    response2_id=partner_response.id,
                    pair_key=key,
                    using_db=conn,
                )
                await journal.add_written_entry(loveslice, question, response, partner_response, using_db=conn)
        except IntegrityError:
            loveslice = await Loveslice.get(question_id=question.id, pair_key=key)
            logger.debug("[pairing] question=%s pair=%s already paired as loveslice=%s", question.id, key, loveslice.id)
            return loveslice
        logger.info("[pairing] loveslice=%s created for question=%s pair=%s", loveslice.id, question.id, key)
        return loveslice

    async def repair_pairs(self, user, mine: dict, theirs: dict) -> int:
        """
        Create the loveslice for every question both partners answered that has
        none yet. `mine` / `theirs` map question id to Response with the
        question fetched. Returns how many were created.
        """
        both = set(mine) & set(theirs)
        if not both:
            return 0
        key = pair_key(user.id, user.partner_id)
        done = set(await Loveslice.filter(pair_key=key, question_id__in=list(both)).values_list("question_id", flat=True))
        missing = sorted(both - done)
        for qid in missing:
            # The later answer completed the pair, so it goes first
            first, second = sorted((mine[qid], theirs[qid]), key=lambda r: (r.created_at, r.id), reverse=True)
            await self._create_once(mine[qid].question, first, second)
        if missing:
            logger.warning("[pairing] user=%s repaired %d missing loveslice(s)", user.id, len(missing))
        return len(missing)

    # ----- reads -----
    async def list_loveslices(self, user) -> list[Loveslice]:
        return await (
            Loveslice.filter(Q(user1_id=user.id) | Q(user2_id=user.id))
            .order_by("-created_at", "-id")
            .prefetch_related(*LOVESLICE_RELATED)
        )

    async def get_loveslice(self, user, loveslice_id: int) -> Loveslice:
        loveslice = await Loveslice.get_or_none(id=loveslice_id).prefetch_related(*LOVESLICE_RELATED)
        if loveslice is None:
            raise NotFound("Loveslice not found")
        if not loveslice.has_participant(user.id):
            raise Unauthorized("You do not have access to this loveslice")
        return loveslice

    async def update_private_note(self, user, loveslice_id: int, note: str | None) -> Loveslice:
        loveslice = await self.get_loveslice(user, loveslice_id)
        loveslice.private_note = note
        await loveslice.save(update_fields=["private_note"])
        return loveslice

    async def pending_responses(self, user) -> list[dict]:
        """
        Questions answered by exactly one side of the partnership.
        Each item carries the question, the existing response, and a flag saying
        who the pair is waiting on.
        """
        pending = []
        mine = {r.question_id: r for r in await Response.filter(user_id=user.id).prefetch_related("question")}
        partner_answers = {}
        if user.partner_id:
            theirs = await Response.filter(user_id=user.partner_id).prefetch_related("question")
            partner_answers = {r.question_id: r for r in theirs}
            await self.repair_pairs(user, mine, partner_answers)

        for qid, r in mine.items():
            if qid not in partner_answers:
                pending.append({"question": r.question, "response": r, "waitingForPartner": True})
        for qid, r in partner_answers.items():
            if qid not in mine:
                pending.append({"question": r.question, "response": r, "waitingForYou": True})
        pending.sort(key=lambda item: item["response"].created_at, reverse=True)
        return pending


pairing_service = PairingService()
