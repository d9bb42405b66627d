from datetime import datetime, timedelta, timezone

import pytest

from electzone.crypto import verify_payload_hash
from electzone.errors import (
    ElectionUnavailableError,
    EligibilityError,
    PartialWriteInconsistency,
    StoreError,
    TransientStoreError,
    ValidationError,
)
from electzone.voting import cast_vote, check_eligibility, submit_vote

from electzone.storage import JsonStore

from tests.conftest import OTHER_VOTER_ID, VOTER_ID, seed_store


def _spy(monkeypatch, store, name):
    """Count calls to a store method while keeping its behaviour."""
    calls = []
    original = getattr(store, name)

    async def wrapper(*args, **kwargs):
        calls.append(args)
        return await original(*args, **kwargs)

    monkeypatch.setattr(store, name, wrapper)
    return calls


def _fail(monkeypatch, store, name):
    async def broken(*args, **kwargs):
        raise StoreError(f"{name} unavailable")

    monkeypatch.setattr(store, name, broken)


def _fail_saves(monkeypatch, store):
    """Make every save of a file-backed store fail, as on a full disk."""

    def broken(data):
        raise StoreError("disk full")

    monkeypatch.setattr(store, "_write_db", broken)


async def test_successful_submission_records_vote_and_flips_status(store, seeded):
    election, _, selections = seeded

    outcome, status_code = await submit_vote(store, VOTER_ID, election["id"], selections)

    assert status_code == 200
    assert outcome.success
    assert outcome.next_step == "thank-you"
    votes = await store.list_vote_records(election["id"])
    assert len(votes) == 1
    assert votes[0]["vote_token"] == outcome.vote_token
    assert votes[0]["payload_hash"] == outcome.payload_hash
    assert len(votes[0]["payload"]["selections"]) == 10
    assert verify_payload_hash(votes[0]["payload"], votes[0]["payload_hash"])
    assert (await store.get_voter_status(VOTER_ID))["has_voted"] is True


async def test_vote_record_does_not_reference_voter(store, seeded):
    election, _, selections = seeded
    await cast_vote(store, VOTER_ID, election["id"], selections)

    record = (await store.list_vote_records(election["id"]))[0]
    assert VOTER_ID not in repr(record)
    assert "Ana Reyes" not in repr(record)


async def test_already_voted_is_rejected_without_writes(store, seeded, monkeypatch):
    election, _, selections = seeded
    await store.set_voter_voted(VOTER_ID)
    inserts = _spy(monkeypatch, store, "insert_vote_record")
    marks = _spy(monkeypatch, store, "set_voter_voted")

    outcome, status_code = await submit_vote(store, VOTER_ID, election["id"], selections)

    assert not outcome.success
    assert outcome.kind == "already_voted"
    assert status_code == 409
    assert inserts == []
    assert marks == []
    assert await store.count_votes(election["id"]) == 0


async def test_second_submission_never_reaches_insert(store, seeded, monkeypatch):
    election, _, selections = seeded
    await cast_vote(store, VOTER_ID, election["id"], selections)
    inserts = _spy(monkeypatch, store, "insert_vote_record")

    for _ in range(3):
        with pytest.raises(EligibilityError):
            await cast_vote(store, VOTER_ID, election["id"], selections)

    assert inserts == []
    assert await store.count_votes(election["id"]) == 1


async def test_gate_reads_store_not_session(store, seeded):
    # another session voted after this one loaded the ballot
    await check_eligibility(store, VOTER_ID)
    await store.set_voter_voted(VOTER_ID)
    with pytest.raises(EligibilityError):
        await check_eligibility(store, VOTER_ID)


async def test_unregistered_voter_is_rejected(store, seeded):
    election, _, selections = seeded
    outcome, status_code = await submit_vote(store, "2099999", election["id"], selections)
    assert outcome.kind == "not_registered"
    assert status_code == 409


async def test_inactive_voter_is_rejected_without_writes(store, seeded, monkeypatch):
    election, _, selections = seeded
    await store.update_voter(VOTER_ID, {"is_active": False})
    inserts = _spy(monkeypatch, store, "insert_vote_record")

    with pytest.raises(EligibilityError) as exc:
        await cast_vote(store, VOTER_ID, election["id"], selections)

    assert exc.value.kind == "inactive"
    assert inserts == []
    assert await store.count_votes(election["id"]) == 0

    outcome, status_code = await submit_vote(store, VOTER_ID, election["id"], selections)
    assert outcome.kind == "inactive"
    assert outcome.next_step == "home"
    assert status_code == 409


async def test_partial_ballot_is_rejected_without_writes(store, seeded, monkeypatch):
    election, _, selections = seeded
    partial = dict(list(selections.items())[:8])
    inserts = _spy(monkeypatch, store, "insert_vote_record")
    marks = _spy(monkeypatch, store, "set_voter_voted")

    with pytest.raises(ValidationError):
        await cast_vote(store, VOTER_ID, election["id"], partial)

    outcome, status_code = await submit_vote(store, VOTER_ID, election["id"], partial)
    assert outcome.next_step == "ballot"
    assert status_code == 422
    assert inserts == []
    assert marks == []
    assert (await store.get_voter_status(VOTER_ID))["has_voted"] is False


async def test_insert_failure_leaves_voter_eligible(store, seeded, monkeypatch):
    election, _, selections = seeded
    _fail(monkeypatch, store, "insert_vote_record")
    marks = _spy(monkeypatch, store, "set_voter_voted")

    outcome, status_code = await submit_vote(store, VOTER_ID, election["id"], selections)

    assert outcome.kind == "store_error"
    assert outcome.next_step == "review"
    assert status_code == 503
    assert marks == []
    assert (await store.get_voter_status(VOTER_ID))["has_voted"] is False


async def test_retry_after_insert_failure_succeeds(store, seeded, monkeypatch):
    election, _, selections = seeded
    _fail(monkeypatch, store, "insert_vote_record")
    with pytest.raises(TransientStoreError):
        await cast_vote(store, VOTER_ID, election["id"], selections)

    monkeypatch.undo()
    await cast_vote(store, VOTER_ID, election["id"], selections)
    assert await store.count_votes(election["id"]) == 1


async def test_status_update_failure_is_partial_write(store, seeded, monkeypatch):
    election, _, selections = seeded
    _fail(monkeypatch, store, "set_voter_voted")

    outcome, status_code = await submit_vote(store, VOTER_ID, election["id"], selections)

    assert outcome.kind == "partial_write"
    assert outcome.next_step == "contact-admin"
    assert "Do not submit again" in outcome.message
    assert status_code == 500
    assert await store.count_votes(election["id"]) == 1
    assert (await store.get_voter_status(VOTER_ID))["has_voted"] is False


async def test_partial_write_is_logged_without_vote_token(store, seeded, monkeypatch):
    election, _, selections = seeded
    _fail(monkeypatch, store, "set_voter_voted")

    with pytest.raises(PartialWriteInconsistency) as exc:
        await cast_vote(store, VOTER_ID, election["id"], selections)

    logs = await store.list_audit_logs()
    assert [entry["action"] for entry in logs] == ["vote.partial_write"]
    assert logs[0]["actor_id"] == VOTER_ID
    assert exc.value.vote_token not in repr(logs)


async def test_status_read_failure_is_transient(store, seeded, monkeypatch):
    election, _, selections = seeded
    _fail(monkeypatch, store, "get_voter_status")

    with pytest.raises(TransientStoreError):
        await cast_vote(store, VOTER_ID, election["id"], selections)


async def test_set_voter_voted_is_idempotent(store, seeded):
    assert await store.set_voter_voted(OTHER_VOTER_ID)
    once = await store.get_voter(OTHER_VOTER_ID)
    assert await store.set_voter_voted(OTHER_VOTER_ID)
    twice = await store.get_voter(OTHER_VOTER_ID)

    assert once == twice
    assert twice["has_voted"] is True


async def test_wrong_election_is_rejected(store, seeded):
    _, _, selections = seeded
    with pytest.raises(ElectionUnavailableError):
        await cast_vote(store, VOTER_ID, "some-other-election", selections)


async def test_closed_window_is_rejected(store, seeded):
    election, _, selections = seeded
    after_close = datetime.now(timezone.utc) + timedelta(days=2)
    with pytest.raises(ElectionUnavailableError):
        await cast_vote(store, VOTER_ID, election["id"], selections, now=after_close)


async def test_voters_submit_independently(store, seeded):
    election, candidates, selections = seeded
    other_choice = {c["position"]: c["id"] for c in candidates if c["party"] == "Beta"}

    await cast_vote(store, VOTER_ID, election["id"], selections)
    await cast_vote(store, OTHER_VOTER_ID, election["id"], other_choice)

    tally = await store.tally_votes(election["id"])
    assert sum(tally.values()) == 20
    assert all(count == 1 for count in tally.values())


async def test_failed_save_of_vote_leaves_no_ghost_vote(tmp_path, monkeypatch):
    store = JsonStore(str(tmp_path / "dummy_db.json"))
    election, _, selections = await seed_store(store)
    _fail_saves(monkeypatch, store)

    with pytest.raises(TransientStoreError):
        await cast_vote(store, VOTER_ID, election["id"], selections)
    assert await store.count_votes(election["id"]) == 0

    monkeypatch.undo()
    await cast_vote(store, VOTER_ID, election["id"], selections)

    assert await store.count_votes(election["id"]) == 1
    assert len(await JsonStore(store.path).list_vote_records(election["id"])) == 1


async def test_failed_save_of_status_keeps_voter_unmarked(tmp_path, monkeypatch):
    store = JsonStore(str(tmp_path / "dummy_db.json"))
    await seed_store(store)
    _fail_saves(monkeypatch, store)

    with pytest.raises(StoreError):
        await store.set_voter_voted(VOTER_ID)

    assert (await store.get_voter_status(VOTER_ID))["has_voted"] is False
    assert (await store.get_voter(VOTER_ID))["voted_at"] is None
