from typing import Any, Dict, List, Optional, Tuple

from electzone.ballot import required_position_count
from electzone.crypto import verify_payload_hash
from electzone.helpers import group_by, is_valid_student_id
from electzone.schemas import AdminCreate
from electzone.security import hash_password, verify_password


# Create a new admin with hashed password
async def create_admin(store, data: AdminCreate) -> Optional[Dict[str, Any]]:
    admin = data.model_dump()
    admin["password_hash"] = hash_password(admin.pop("password"))
    return await store.add_admin(admin)


# Login admin
async def login_admin(store, email: str, password: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    admin = await store.get_admin(email)
    if not admin or not admin.get("password_hash"):
        return None, "Invalid email or password"
    if not verify_password(password, admin["password_hash"]):
        return None, "Invalid email or password"
    return admin, None


# Voter login: registered, active and not yet voted
async def login_voter(store, student_id: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    if not is_valid_student_id(student_id):
        return None, "Invalid student ID or you are not registered to vote"
    voter = await store.get_voter(student_id)
    if not voter or not voter.get("is_active"):
        return None, "Invalid student ID or you are not registered to vote"
    if voter.get("has_voted"):
        return None, "You have already cast your vote. Thank you for participating!"
    return voter, None


# Vote counts per candidate, highest first
async def get_candidate_vote_counts(store, election_id: str) -> List[Dict[str, Any]]:
    candidates = await store.list_candidates(election_id)
    tally = await store.tally_votes(election_id)
    results = [
        {
            "candidate_id": c["id"],
            "name": c["name"],
            "party": c.get("party") or "Independent",
            "position": c["position"],
            "vote_count": tally.get(c["id"], 0),
        }
        for c in candidates
    ]
    results.sort(key=lambda r: r["vote_count"], reverse=True)
    return results


async def get_results_by_party(store, election_id: str) -> List[Dict[str, Any]]:
    results = await get_candidate_vote_counts(store, election_id)
    grouped = group_by(results, "party", default="Independent")
    return [
        {
            "party": party,
            "candidates": candidates,
            "total_votes": sum(c["vote_count"] for c in candidates),
        }
        for party, candidates in sorted(grouped.items())
    ]


async def get_results_by_position(store, election_id: str, position: str) -> List[Dict[str, Any]]:
    results = await get_candidate_vote_counts(store, election_id)
    return [r for r in results if r["position"] == position]


# Headline numbers for the admin dashboard
async def get_statistics(store, election_id: str) -> Dict[str, Any]:
    candidates = await store.list_candidates(election_id)
    turnout = await store.get_turnout()
    return {
        "election_id": election_id,
        "total_votes": await store.count_votes(election_id),
        "total_voters": turnout["total"],
        "voted": turnout["voted"],
        "turnout_percentage": turnout["percentage"],
        "total_candidates": len(candidates),
        "total_positions": required_position_count(candidates),
        "total_parties": len(group_by(candidates, "party", default="Independent")),
    }


# Recompute every stored digest for an election
async def audit_election(store, election_id: str) -> Dict[str, Any]:
    votes = await store.list_vote_records(election_id)
    mismatched = [
        v["vote_token"] for v in votes if not verify_payload_hash(v["payload"], v["payload_hash"])
    ]
    return {
        "election_id": election_id,
        "total": len(votes),
        "verified": len(votes) - len(mismatched),
        "mismatched": mismatched,
    }
