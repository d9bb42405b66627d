# electzone/storage.py
# File-backed dev store with the same surface as MongoStore.
import asyncio
import copy
import json
import logging
import os
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from electzone.errors import StoreError
from electzone.helpers import calculate_percentage
from electzone.realtime import ChangeFeed

logger = logging.getLogger(__name__)


def _empty_db() -> Dict[str, Any]:
    return {
        "voters": {},
        "elections": {},
        "candidates": {},
        "votes": [],
        "admins": {},
        "audit_logs": [],
    }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _jsonable(data: Dict[str, Any]) -> Dict[str, Any]:
    # datetimes are stored as ISO strings, like they come back from the API
    return json.loads(json.dumps(data, default=lambda o: o.isoformat() if isinstance(o, datetime) else str(o)))


class JsonStore:
    """
    Dummy DB kept in memory and, when a path is given, mirrored to a JSON file.
    Replace with MongoStore for anything shared between processes.

    Writes work on a copy of the DB. The copy only replaces the in-memory DB
    once it has been saved, so a failed save leaves nothing half-applied.
    """

    def __init__(self, path: Optional[str] = None, feed: Optional[ChangeFeed] = None):
        self.path = path
        self.feed = feed
        self._lock = asyncio.Lock()
        self._db = self._read_db()

    # ------------------------------------------------------------------
    # file handling
    # ------------------------------------------------------------------

    def _read_db(self) -> Dict[str, Any]:
        """
        Read the dummy DB file.
        If the file is missing, empty or corrupted, start from an empty DB.
        """
        if not self.path:
            return _empty_db()
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, FileNotFoundError):
            data = _empty_db()
            self._write_db(data)
            return data
        for key, value in _empty_db().items():
            data.setdefault(key, value)
        return data

    def _write_db(self, data: Dict[str, Any]) -> None:
        if not self.path:
            return
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error(f"Error writing dummy DB {self.path}: {e}")
            raise StoreError(f"could not write {self.path}") from e

    def _draft(self) -> Dict[str, Any]:
        return copy.deepcopy(self._db)

    def _commit(self, draft: Dict[str, Any]) -> None:
        # raises StoreError before self._db is touched
        self._write_db(draft)
        self._db = draft

    def _publish(self, table: str, event: str, record: Dict[str, Any]) -> None:
        if self.feed is not None:
            self.feed.publish(table, event, record)

    # ------------------------------------------------------------------
    # voters
    # ------------------------------------------------------------------

    async def get_voter(self, student_id: str) -> Optional[Dict[str, Any]]:
        voter = self._db["voters"].get(student_id)
        return copy.deepcopy(voter) if voter else None

    async def get_voter_status(self, student_id: str) -> Optional[Dict[str, Any]]:
        voter = self._db["voters"].get(student_id)
        if voter is None:
            return None
        return {
            "student_id": voter["student_id"],
            "name": voter.get("name"),
            "has_voted": bool(voter.get("has_voted")),
            "is_active": bool(voter.get("is_active", True)),
        }

    async def list_voters(self, year_level: Optional[str] = None) -> List[Dict[str, Any]]:
        voters = [
            v for v in self._db["voters"].values() if year_level is None or v.get("year_level") == year_level
        ]
        voters.sort(key=lambda v: v.get("name", ""))
        return copy.deepcopy(voters)

    async def add_voter(self, voter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            student_id = voter["student_id"]
            if student_id in self._db["voters"]:
                logger.warning(f"Voter {student_id} already exists")
                return None
            record = _jsonable({"has_voted": False, "voted_at": None, "is_active": True, **voter})
            draft = self._draft()
            draft["voters"][student_id] = record
            self._commit(draft)
            return copy.deepcopy(record)

    async def update_voter(self, student_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            if student_id not in self._db["voters"]:
                return None
            draft = self._draft()
            voter = draft["voters"][student_id]
            voter.update(_jsonable(updates))
            self._commit(draft)
            self._publish("voters", "UPDATE", {"student_id": student_id})
            return copy.deepcopy(voter)

    async def delete_voter(self, student_id: str) -> bool:
        async with self._lock:
            if student_id not in self._db["voters"]:
                return False
            draft = self._draft()
            del draft["voters"][student_id]
            self._commit(draft)
            self._publish("voters", "DELETE", {"student_id": student_id})
            return True

    async def set_voter_voted(self, student_id: str) -> bool:
        """Set has_voted for a voter. Calling it again leaves the voter unchanged."""
        async with self._lock:
            voter = self._db["voters"].get(student_id)
            if voter is None:
                return False
            if not voter.get("has_voted"):
                draft = self._draft()
                draft["voters"][student_id].update({"has_voted": True, "voted_at": _now()})
                self._commit(draft)
                self._publish("voters", "UPDATE", {"has_voted": True})
            return True

    async def get_turnout(self) -> Dict[str, Any]:
        active = [v for v in self._db["voters"].values() if v.get("is_active")]
        voted = len([v for v in active if v.get("has_voted")])
        return {
            "total": len(active),
            "voted": voted,
            "percentage": calculate_percentage(voted, len(active)),
        }

    # ------------------------------------------------------------------
    # elections & candidates
    # ------------------------------------------------------------------

    async def list_elections(self) -> List[Dict[str, Any]]:
        elections = sorted(
            self._db["elections"].values(), key=lambda e: e.get("created_at") or "", reverse=True
        )
        return copy.deepcopy(elections)

    async def get_election(self, election_id: str) -> Optional[Dict[str, Any]]:
        election = self._db["elections"].get(election_id)
        return copy.deepcopy(election) if election else None

    async def get_active_election(self) -> Optional[Dict[str, Any]]:
        for election in self._db["elections"].values():
            if election.get("status") == "running":
                return copy.deepcopy(election)
        return None

    async def create_election(self, data: Dict[str, Any]) -> Dict[str, Any]:
        async with self._lock:
            record = _jsonable({**data, "id": str(uuid.uuid4()), "created_at": _now()})
            draft = self._draft()
            draft["elections"][record["id"]] = record
            self._commit(draft)
            return copy.deepcopy(record)

    async def update_election(self, election_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            if election_id not in self._db["elections"]:
                return None
            draft = self._draft()
            election = draft["elections"][election_id]
            election.update(_jsonable(updates))
            self._commit(draft)
            return copy.deepcopy(election)

    async def delete_election(self, election_id: str) -> bool:
        """Remove an election together with its candidates."""
        async with self._lock:
            if election_id not in self._db["elections"]:
                return False
            draft = self._draft()
            del draft["elections"][election_id]
            draft["candidates"] = {
                cid: c for cid, c in draft["candidates"].items() if c["election_id"] != election_id
            }
            self._commit(draft)
            return True

    async def list_candidates(self, election_id: str, position: Optional[str] = None) -> List[Dict[str, Any]]:
        candidates = [
            c
            for c in self._db["candidates"].values()
            if c["election_id"] == election_id and (position is None or c.get("position") == position)
        ]
        candidates.sort(key=lambda c: (c.get("party") or "", c.get("position") or ""))
        return copy.deepcopy(candidates)

    async def get_candidate(self, candidate_id: str) -> Optional[Dict[str, Any]]:
        candidate = self._db["candidates"].get(candidate_id)
        return copy.deepcopy(candidate) if candidate else None

    async def add_candidate(self, election_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        async with self._lock:
            record = _jsonable({**data, "id": str(uuid.uuid4()), "election_id": election_id})
            draft = self._draft()
            draft["candidates"][record["id"]] = record
            self._commit(draft)
            self._publish("candidates", "INSERT", {"election_id": election_id})
            return copy.deepcopy(record)

    async def update_candidate(self, candidate_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            if candidate_id not in self._db["candidates"]:
                return None
            draft = self._draft()
            candidate = draft["candidates"][candidate_id]
            candidate.update(_jsonable(updates))
            self._commit(draft)
            self._publish("candidates", "UPDATE", {"election_id": candidate["election_id"]})
            return copy.deepcopy(candidate)

    async def delete_candidate(self, candidate_id: str) -> bool:
        async with self._lock:
            candidate = self._db["candidates"].get(candidate_id)
            if candidate is None:
                return False
            draft = self._draft()
            del draft["candidates"][candidate_id]
            self._commit(draft)
            self._publish("candidates", "DELETE", {"election_id": candidate["election_id"]})
            return True

    # ------------------------------------------------------------------
    # votes
    # ------------------------------------------------------------------

    async def insert_vote_record(
        self, election_id: str, vote_token: str, payload: Dict[str, Any], payload_hash: str
    ) -> Dict[str, Any]:
        """Append a vote. Votes are never updated or deleted."""
        async with self._lock:
            record = {
                "id": str(uuid.uuid4()),
                "election_id": election_id,
                "vote_token": vote_token,
                "payload": copy.deepcopy(payload),
                "payload_hash": payload_hash,
                "created_at": _now(),
            }
            draft = self._draft()
            draft["votes"].append(record)
            self._commit(draft)
            self._publish("votes", "INSERT", {"election_id": election_id})
            return copy.deepcopy(record)

    async def count_votes(self, election_id: str) -> int:
        return len([v for v in self._db["votes"] if v["election_id"] == election_id])

    async def list_vote_records(self, election_id: str) -> List[Dict[str, Any]]:
        return copy.deepcopy([v for v in self._db["votes"] if v["election_id"] == election_id])

    async def tally_votes(self, election_id: str) -> Dict[str, int]:
        counts: Counter = Counter()
        for vote in self._db["votes"]:
            if vote["election_id"] != election_id:
                continue
            for selection in vote["payload"].get("selections", []):
                counts[selection["candidate_id"]] += 1
        return dict(counts)

    # ------------------------------------------------------------------
    # admins & audit log
    # ------------------------------------------------------------------

    async def get_admin(self, email: str) -> Optional[Dict[str, Any]]:
        admin = self._db["admins"].get(email)
        return copy.deepcopy(admin) if admin else None

    async def add_admin(self, admin: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            if admin["email"] in self._db["admins"]:
                logger.warning(f"Admin {admin['email']} already exists")
                return None
            record = _jsonable({**admin, "id": str(uuid.uuid4()), "created_at": _now()})
            draft = self._draft()
            draft["admins"][record["email"]] = record
            self._commit(draft)
            return copy.deepcopy(record)

    async def list_admins(self) -> List[Dict[str, Any]]:
        admins = sorted(self._db["admins"].values(), key=lambda a: a.get("created_at") or "")
        return copy.deepcopy(admins)

    async def update_admin(self, email: str, updates: Dict[str, Any]) -> bool:
        async with self._lock:
            if email not in self._db["admins"]:
                return False
            draft = self._draft()
            draft["admins"][email].update(updates)
            self._commit(draft)
            return True

    async def log_action(self, actor_type: str, actor_id: str, action: str, details: Dict[str, Any]) -> None:
        async with self._lock:
            draft = self._draft()
            draft["audit_logs"].append(
                _jsonable(
                    {
                        "actor_type": actor_type,
                        "actor_id": actor_id,
                        "action": action,
                        "details": details,
                        "created_at": _now(),
                    }
                )
            )
            self._commit(draft)

    async def list_audit_logs(self, limit: int = 100) -> List[Dict[str, Any]]:
        # appended in order, so newest first is simply reversed
        logs = list(reversed(self._db["audit_logs"]))
        return copy.deepcopy(logs[:limit])

    async def close(self) -> None:
        return None
