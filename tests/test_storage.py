import json

import pytest

from electzone.errors import StoreError
from electzone.storage import JsonStore

from tests.conftest import VOTER_ID, seed_store


async def test_file_store_survives_reload(tmp_path):
    path = tmp_path / "db" / "dummy_db.json"
    store = JsonStore(str(path))
    election, _, _ = await seed_store(store)
    await store.set_voter_voted(VOTER_ID)

    reloaded = JsonStore(str(path))
    assert (await reloaded.get_election(election["id"]))["title"] == "Student Council Election"
    assert (await reloaded.get_voter_status(VOTER_ID))["has_voted"] is True
    assert len(await reloaded.list_candidates(election["id"])) == 20


def test_corrupted_file_is_reset(tmp_path):
    path = tmp_path / "dummy_db.json"
    path.write_text("{not json")

    JsonStore(str(path))

    assert json.loads(path.read_text())["voters"] == {}


async def test_duplicate_voter_is_refused(store):
    assert await store.add_voter({"student_id": VOTER_ID, "name": "Ana"})
    assert await store.add_voter({"student_id": VOTER_ID, "name": "Someone Else"}) is None
    assert (await store.get_voter(VOTER_ID))["name"] == "Ana"


async def test_set_voted_for_unknown_voter(store):
    assert await store.set_voter_voted("2099999") is False


async def test_active_election(store):
    assert await store.get_active_election() is None
    election, _, _ = await seed_store(store)
    assert (await store.get_active_election())["id"] == election["id"]


async def test_candidates_sorted_by_party_then_position(store, seeded):
    election, _, _ = seeded
    candidates = await store.list_candidates(election["id"])
    keys = [(c["party"], c["position"]) for c in candidates]
    assert keys == sorted(keys)


async def test_turnout_counts_active_voters_only(store, seeded):
    await store.add_voter({"student_id": "2021003", "name": "Cara Lim", "is_active": False})
    await store.set_voter_voted(VOTER_ID)

    turnout = await store.get_turnout()

    assert turnout == {"total": 2, "voted": 1, "percentage": "50.00"}


async def test_tally_counts_every_selection(store, seeded):
    election, candidates, _ = seeded
    president = next(c for c in candidates if c["position"] == "President")
    payload = {"selections": [{"position": "President", "candidate_id": president["id"]}]}

    await store.insert_vote_record(election["id"], "t1", payload, "h1")
    await store.insert_vote_record(election["id"], "t2", payload, "h2")
    await store.insert_vote_record("other", "t3", payload, "h3")

    assert await store.tally_votes(election["id"]) == {president["id"]: 2}
    assert await store.count_votes(election["id"]) == 2


async def test_changes_are_published(store, feed, seeded):
    election, _, _ = seeded
    queue = feed.subscribe()

    await store.insert_vote_record(election["id"], "t1", {"selections": []}, "h1")
    await store.set_voter_voted(VOTER_ID)
    await store.set_voter_voted(VOTER_ID)

    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    assert [(e["table"], e["event"]) for e in events] == [("votes", "INSERT"), ("voters", "UPDATE")]


async def test_audit_logs_newest_first(store):
    await store.log_action("admin", "a1", "first", {})
    await store.log_action("admin", "a1", "second", {})
    logs = await store.list_audit_logs(limit=1)
    assert [entry["action"] for entry in logs] == ["second"]


async def test_failed_save_leaves_memory_unchanged(tmp_path, monkeypatch):
    store = JsonStore(str(tmp_path / "dummy_db.json"))
    election, _, _ = await seed_store(store)

    def broken(data):
        raise StoreError("disk full")

    monkeypatch.setattr(store, "_write_db", broken)

    with pytest.raises(StoreError):
        await store.insert_vote_record(election["id"], "t1", {"selections": []}, "h1")
    with pytest.raises(StoreError):
        await store.add_voter({"student_id": "2021009", "name": "Dan Uy"})
    with pytest.raises(StoreError):
        await store.log_action("admin", "a1", "voter.create", {})

    assert await store.count_votes(election["id"]) == 0
    assert await store.get_voter("2021009") is None
    assert await store.list_audit_logs() == []


async def test_voters_filtered_by_year_level(store):
    await store.add_voter({"student_id": "2021001", "name": "Ana Reyes", "year_level": "Grade 11"})
    await store.add_voter({"student_id": "2021002", "name": "Ben Cruz", "year_level": "Grade 12"})

    grade_11 = await store.list_voters(year_level="Grade 11")

    assert [v["student_id"] for v in grade_11] == ["2021001"]
    assert len(await store.list_voters()) == 2


async def test_update_and_delete_voter(store, seeded):
    updated = await store.update_voter(VOTER_ID, {"name": "Ana R. Reyes", "is_active": False})
    assert updated["name"] == "Ana R. Reyes"
    assert (await store.get_voter_status(VOTER_ID))["is_active"] is False

    assert await store.delete_voter(VOTER_ID)
    assert await store.get_voter(VOTER_ID) is None
    assert await store.delete_voter(VOTER_ID) is False
    assert await store.update_voter(VOTER_ID, {"name": "x"}) is None


async def test_candidates_filtered_by_position(store, seeded):
    election, _, _ = seeded
    presidents = await store.list_candidates(election["id"], position="President")
    assert {c["name"] for c in presidents} == {"Alpha President", "Beta President"}


async def test_update_and_delete_candidate(store, seeded):
    election, candidates, _ = seeded
    target = candidates[0]

    updated = await store.update_candidate(target["id"], {"bio": "Class valedictorian"})
    assert updated["bio"] == "Class valedictorian"
    assert (await store.get_candidate(target["id"]))["bio"] == "Class valedictorian"

    assert await store.delete_candidate(target["id"])
    assert await store.get_candidate(target["id"]) is None
    assert len(await store.list_candidates(election["id"])) == 19
    assert await store.delete_candidate(target["id"]) is False


async def test_delete_election_removes_its_candidates(store, seeded):
    election, _, _ = seeded

    assert await store.delete_election(election["id"])

    assert await store.get_election(election["id"]) is None
    assert await store.list_candidates(election["id"]) == []
    assert await store.delete_election(election["id"]) is False
