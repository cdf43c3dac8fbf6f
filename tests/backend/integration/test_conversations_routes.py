"""
Integration tests for the conversation lifecycle:
open -> ending_initiated -> ended, cancellation, direct close of solo
conversations, messages, spoken loveslices and access control.
"""
import asyncio
import datetime as dt

import pytest

from loveslices.models import Conversation, JournalEntry, SpokenLoveslice
from loveslices.services.conversations import OFFLINE_MARKER, conversation_service


pytestmark = pytest.mark.asyncio

API = "/api/v1/conversations"


async def _start(client, member, **body):
    resp = await client.post(API, headers=member.headers, json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def _patch(client, member, cid, action, **body):
    return await client.patch(f"{API}/{cid}/{action}", headers=member.headers, json=body)


async def _record(client, member, cid):
    return (await client.get(f"{API}/{cid}", headers=member.headers)).json()["data"]


class FrozenClock:
    def __init__(self, now: dt.datetime):
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now


@pytest.fixture
def frozen_clock(monkeypatch):
    clock = FrozenClock(dt.datetime(2024, 5, 1, 20, 0, 0, tzinfo=dt.timezone.utc))
    monkeypatch.setattr(conversation_service, "clock", clock)
    return clock


# ============================================================================
# Creation / messages
# ============================================================================

async def test_start_conversation_with_partner(client, couple):
    alice, bob = couple
    data = await _start(client, alice)
    assert data["phase"] == "open"
    assert data["initiatedByUserId"] == alice.id
    assert data["partnerUserId"] == bob.id
    assert data["source"] == "none"
    assert data["endInitiatedByUserId"] is None

    listed = (await client.get(API, headers=bob.headers)).json()["data"]
    assert [c["id"] for c in listed] == [data["id"]]


async def test_start_from_starter_marks_it_used(client, couple, starter):
    alice, _ = couple
    data = await _start(client, alice, starterId=starter.id)
    assert data["source"] == "starter"
    await starter.refresh_from_db()
    assert starter.used is True


async def test_start_from_unknown_source_not_found(client, couple):
    alice, _ = couple
    resp = await client.post(API, headers=alice.headers, json={"lovesliceId": 404})
    assert resp.status_code == 404


async def test_messages_are_ordered_and_blocked_after_end(client, couple):
    alice, bob = couple
    cid = (await _start(client, alice))["id"]
    for i, who in enumerate([alice, bob, alice]):
        resp = await client.post(f"{API}/{cid}/messages", headers=who.headers, json={"content": f"m{i}"})
        assert resp.status_code == 201

    await _patch(client, alice, cid, "initiate-end")
    # Messages are still allowed while the ending is negotiated
    resp = await client.post(f"{API}/{cid}/messages", headers=bob.headers, json={"content": "m3"})
    assert resp.status_code == 201
    await _patch(client, bob, cid, "confirm-end")

    late = await client.post(f"{API}/{cid}/messages", headers=alice.headers, json={"content": "late"})
    assert late.status_code == 409
    assert late.json()["detail"]["code"] == "CONVERSATION_ENDED"

    record = await _record(client, bob, cid)
    assert [m["content"] for m in record["messages"]] == ["m0", "m1", "m2", "m3"]


async def test_overlong_message_rejected(client, couple):
    alice, _ = couple
    cid = (await _start(client, alice))["id"]
    resp = await client.post(f"{API}/{cid}/messages", headers=alice.headers, json={"content": "x" * 5000})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "TOO_LONG"


async def test_access_isolated_per_couple(client, couple, solo):
    alice, _ = couple
    cid = (await _start(client, alice))["id"]

    forbidden = await client.get(f"{API}/{cid}", headers=solo.headers)
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"]["code"] == "FORBIDDEN"

    for action in ("initiate-end", "cancel-end"):
        assert (await _patch(client, solo, cid, action)).status_code == 403

    missing = await client.get(f"{API}/not-a-uuid", headers=alice.headers)
    assert missing.status_code == 404


# ============================================================================
# Ending negotiation
# ============================================================================

async def test_initiate_repeat_self_confirm_then_partner_confirms(client, couple, frozen_clock):
    alice, bob = couple
    cid = (await _start(client, alice))["id"]

    frozen_clock.now += dt.timedelta(seconds=30)
    first = await _patch(client, alice, cid, "initiate-end")
    assert first.status_code == 200
    first_data = first.json()["data"]
    assert first_data["phase"] == "ending_initiated"
    assert first_data["endInitiatedByUserId"] == alice.id
    assert first_data["changed"] is True

    # Repeat is a no-op: same timestamps, nothing changed
    frozen_clock.now += dt.timedelta(seconds=5)
    again = (await _patch(client, alice, cid, "initiate-end")).json()["data"]
    assert again["changed"] is False
    assert again["endInitiatedAt"] == first_data["endInitiatedAt"]

    self_confirm = await _patch(client, alice, cid, "confirm-end")
    assert self_confirm.status_code == 409
    assert self_confirm.json()["detail"]["code"] == "SELF_CONFIRM"
    assert (await _record(client, alice, cid))["phase"] == "ending_initiated"

    frozen_clock.now += dt.timedelta(seconds=60, milliseconds=600)
    done = await _patch(client, bob, cid, "confirm-end", outcome="connected")
    data = done.json()["data"]
    assert done.status_code == 200
    assert data["phase"] == "ended"
    assert data["endConfirmedByUserId"] == bob.id
    assert data["outcome"] == "connected"
    assert data["durationSeconds"] == 96  # round(95.6)
    assert data["spokenLoveslice"] is None


async def test_partner_may_also_click_initiate(client, couple):
    """The second initiate, from either side, leaves the first initiator in place."""
    alice, bob = couple
    cid = (await _start(client, alice))["id"]
    await _patch(client, alice, cid, "initiate-end")
    resp = (await _patch(client, bob, cid, "initiate-end")).json()["data"]
    assert resp["changed"] is False
    assert resp["endInitiatedByUserId"] == alice.id


async def test_cancel_clears_negotiation_and_allows_restart(client, couple):
    alice, bob = couple
    cid = (await _start(client, alice))["id"]
    await _patch(client, alice, cid, "initiate-end")

    cancelled = (await _patch(client, bob, cid, "cancel-end")).json()["data"]
    assert cancelled["phase"] == "open"
    for key in ("endInitiatedByUserId", "endInitiatedAt", "endConfirmedByUserId", "endConfirmedAt"):
        assert cancelled[key] is None

    again = (await _patch(client, alice, cid, "initiate-end")).json()["data"]
    assert again["phase"] == "ending_initiated"
    assert again["changed"] is True


@pytest.mark.parametrize("action", ["confirm-end", "cancel-end", "final-note"])
async def test_illegal_transitions_from_open(client, couple, action):
    alice, bob = couple
    cid = (await _start(client, alice))["id"]
    body = {"note": "n"} if action == "final-note" else {}
    resp = await _patch(client, bob, cid, action, **body)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "INVALID_STATE"
    assert (await _record(client, alice, cid))["phase"] == "open"


async def test_ended_only_accepts_final_note(client, couple):
    alice, bob = couple
    cid = (await _start(client, alice))["id"]
    await _patch(client, alice, cid, "initiate-end")
    await _patch(client, bob, cid, "confirm-end", outcome="hard_but_honest")
    before = await _record(client, alice, cid)

    for who, action in [(alice, "initiate-end"), (bob, "confirm-end"), (alice, "cancel-end")]:
        resp = await _patch(client, who, cid, action)
        assert resp.status_code == 409, action
    after = await _record(client, alice, cid)
    assert after == before

    note = await _patch(client, alice, cid, "final-note", note="Glad we talked")
    assert note.status_code == 200
    assert note.json()["data"]["finalNote"] == "Glad we talked"


async def test_partnered_conversation_cannot_end_directly(client, couple):
    alice, _ = couple
    cid = (await _start(client, alice))["id"]
    resp = await _patch(client, alice, cid, "end", outcome="connected")
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "NEGOTIATION_REQUIRED"


async def test_concurrent_confirm_and_cancel_single_winner(client, couple):
    alice, bob = couple
    cid = (await _start(client, alice))["id"]
    await _patch(client, alice, cid, "initiate-end")

    confirm, cancel = await asyncio.gather(
        _patch(client, bob, cid, "confirm-end"),
        _patch(client, alice, cid, "cancel-end"),
    )
    assert sorted([confirm.status_code, cancel.status_code]) == [200, 409]
    phase = (await _record(client, alice, cid))["phase"]
    assert phase == ("ended" if confirm.status_code == 200 else "open")


async def test_concurrent_initiate_single_initiator(client, couple):
    """Both partners pressing "end" together: one request wins, the other is a no-op."""
    alice, bob = couple
    cid = (await _start(client, alice))["id"]

    first, second = await asyncio.gather(
        _patch(client, alice, cid, "initiate-end"),
        _patch(client, bob, cid, "initiate-end"),
    )
    assert first.status_code == second.status_code == 200
    changed = [first.json()["data"]["changed"], second.json()["data"]["changed"]]
    assert sorted(changed) == [False, True]

    winner = alice if changed[0] else bob
    record = await _record(client, alice, cid)
    assert record["phase"] == "ending_initiated"
    assert record["endInitiatedByUserId"] == winner.id
    # Both responses report the same single initiator
    assert {first.json()["data"]["endInitiatedByUserId"], second.json()["data"]["endInitiatedByUserId"]} == {winner.id}


# ============================================================================
# Spoken loveslices
# ============================================================================

async def test_confirm_with_spoken_loveslice_created_once(client, couple, starter):
    alice, bob = couple
    cid = (await _start(client, alice, starterId=starter.id))["id"]
    await client.post(f"{API}/{cid}/messages", headers=alice.headers, json={"content": "thank you for listening"})
    await _patch(client, alice, cid, "initiate-end")

    done = (await _patch(
        client, bob, cid, "confirm-end",
        outcome="tried_and_listened", createSpokenLoveslice=True, finalNote="more of this",
    )).json()["data"]
    spoken = done["spokenLoveslice"]
    assert spoken["theme"] == "Growth"  # from the starter
    assert spoken["outcome"] == "tried_and_listened"
    assert {spoken["user1Id"], spoken["user2Id"]} == {alice.id, bob.id}
    assert done["createdSpokenLoveslice"] is True
    assert done["finalNote"] == "more of this"

    # Retried confirm against an ended conversation never adds a second row
    for _ in range(3):
        retry = await _patch(client, bob, cid, "confirm-end", outcome="connected", createSpokenLoveslice=True)
        assert retry.status_code == 409
    assert await SpokenLoveslice.filter(conversation_id=cid).count() == 1

    c = await Conversation.get(id=cid)
    assert await conversation_service._create_spoken(c, None) is None

    entry = await JournalEntry.get(spoken_loveslice_id=spoken["id"])
    assert "thank you for listening" in entry.searchable_content

    listed = (await client.get("/api/v1/spoken-loveslices", headers=alice.headers)).json()["data"]
    assert [s["id"] for s in listed] == [spoken["id"]]


async def test_spoken_loveslice_requires_outcome(client, couple):
    alice, bob = couple
    cid = (await _start(client, alice))["id"]
    await _patch(client, alice, cid, "initiate-end")
    resp = await _patch(client, bob, cid, "confirm-end", createSpokenLoveslice=True)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "OUTCOME_REQUIRED"
    assert (await _record(client, alice, cid))["phase"] == "ending_initiated"


async def test_spoken_loveslice_visible_only_to_participants(client, couple, solo):
    alice, bob = couple
    cid = (await _start(client, alice))["id"]
    await _patch(client, alice, cid, "initiate-end")
    sid = (await _patch(client, bob, cid, "confirm-end", outcome="connected", createSpokenLoveslice=True)
           ).json()["data"]["spokenLoveslice"]["id"]

    assert (await client.get(f"/api/v1/spoken-loveslices/{sid}", headers=bob.headers)).status_code == 200
    assert (await client.get(f"/api/v1/spoken-loveslices/{sid}", headers=solo.headers)).status_code == 403
    assert (await client.get("/api/v1/spoken-loveslices/9999", headers=bob.headers)).status_code == 404


# ============================================================================
# Solo conversations
# ============================================================================

async def test_solo_conversation_ends_directly_offline(client, solo):
    cid = (await _start(client, solo))["id"]
    assert (await _record(client, solo, cid))["partnerUserId"] is None

    resp = await _patch(client, solo, cid, "end", outcome="connected", continueOffline=True)
    data = resp.json()["data"]
    assert resp.status_code == 200
    assert data["phase"] == "ended"
    assert data["endConfirmedByUserId"] == solo.id
    assert data["spokenLoveslice"]["continuedOffline"] is True
    assert data["spokenLoveslice"]["user2Id"] == solo.id

    messages = (await _record(client, solo, cid))["messages"]
    assert messages[-1]["content"] == OFFLINE_MARKER

    again = await _patch(client, solo, cid, "end", outcome="connected")
    assert again.status_code == 409


@pytest.mark.parametrize("phase", ["open", "ended"])
async def test_spoken_confirm_without_outcome_in_wrong_phase_conflicts(client, couple, phase):
    """The phase check wins over payload validation."""
    alice, bob = couple
    cid = (await _start(client, alice))["id"]
    if phase == "ended":
        await _patch(client, alice, cid, "initiate-end")
        await _patch(client, bob, cid, "confirm-end", outcome="connected")

    resp = await _patch(client, bob, cid, "confirm-end", createSpokenLoveslice=True)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "INVALID_STATE"
    assert await SpokenLoveslice.filter(conversation_id=cid).count() == 0


async def test_self_confirm_without_outcome_is_self_confirm(client, couple):
    alice, _ = couple
    cid = (await _start(client, alice))["id"]
    await _patch(client, alice, cid, "initiate-end")
    resp = await _patch(client, alice, cid, "confirm-end", createSpokenLoveslice=True)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "SELF_CONFIRM"
