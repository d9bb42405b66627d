from datetime import datetime, timedelta, timezone

import pytest

from electzone.realtime import ChangeFeed
from electzone.storage import JsonStore

POSITIONS = [
    "President",
    "Vice President",
    "Secretary",
    "Treasurer",
    "Auditor",
    "PRO",
    "Business Manager",
    "Grade 10 Representative",
    "Grade 11 Representative",
    "Grade 12 Representative",
]

VOTER_ID = "2021001"
OTHER_VOTER_ID = "2021002"


async def seed_store(store, positions=POSITIONS, status="running"):
    """
    A running election with two candidates per position and two voters.
    Returns (election, candidates, selections) where selections picks the
    first candidate for every position.
    """
    now = datetime.now(timezone.utc)
    election = await store.create_election(
        {
            "title": "Student Council Election",
            "start_at": now - timedelta(hours=1),
            "end_at": now + timedelta(hours=8),
            "status": status,
        }
    )
    candidates = []
    for position in positions:
        for party in ("Alpha", "Beta"):
            candidates.append(
                await store.add_candidate(
                    election["id"],
                    {"name": f"{party} {position}", "party": party, "position": position},
                )
            )
    await store.add_voter({"student_id": VOTER_ID, "name": "Ana Reyes"})
    await store.add_voter({"student_id": OTHER_VOTER_ID, "name": "Ben Cruz"})

    selections = {}
    for cand in candidates:
        selections.setdefault(cand["position"], cand["id"])
    return election, candidates, selections


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def store(feed):
    return JsonStore(feed=feed)


@pytest.fixture
async def seeded(store):
    return await seed_store(store)
