# electzone/storage_mongo.py
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from electzone.config import MONGO_DB, MONGO_URI
from electzone.database.connection import (
    ADMINS_COLLECTION,
    AUDIT_LOGS_COLLECTION,
    CANDIDATES_COLLECTION,
    ELECTIONS_COLLECTION,
    VOTERS_COLLECTION,
    VOTES_COLLECTION,
    get_client,
    get_database,
)
from electzone.errors import StoreError
from electzone.helpers import calculate_percentage
from electzone.realtime import ChangeFeed

logger = logging.getLogger(__name__)


def _out(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Expose MongoDB's _id as id."""
    if doc is None:
        return None
    doc["id"] = str(doc.pop("_id"))
    return doc


def _voter_out(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    # voters are keyed by student_id, which is already a field
    if doc is None:
        return None
    doc.pop("_id", None)
    return doc


class MongoStore:
    def __init__(self, uri: str = MONGO_URI, db_name: str = MONGO_DB, feed: Optional[ChangeFeed] = None, client=None):
        """Create the motor client. No I/O happens until connect() or the first query."""
        self.client = client or get_client(uri)
        self.db = get_database(self.client, db_name)
        self.voters = self.db[VOTERS_COLLECTION]
        self.elections = self.db[ELECTIONS_COLLECTION]
        self.candidates = self.db[CANDIDATES_COLLECTION]
        self.votes = self.db[VOTES_COLLECTION]
        self.admins = self.db[ADMINS_COLLECTION]
        self.audit_logs = self.db[AUDIT_LOGS_COLLECTION]
        self.feed = feed

    async def connect(self) -> None:
        """Check the connection and create indexes."""
        try:
            await self.client.admin.command("ping")
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise StoreError("could not connect to MongoDB") from e
        await self.ensure_indexes()
        logger.info(f"Connected to MongoDB database: {self.db.name}")

    async def ensure_indexes(self) -> None:
        try:
            await self.admins.create_index("email", unique=True)
            await self.votes.create_index("vote_token", unique=True)
            await self.votes.create_index("election_id")
            await self.candidates.create_index([("election_id", ASCENDING), ("position", ASCENDING)])
            await self.elections.create_index("status")
        except PyMongoError as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise StoreError("could not create indexes") from e

    def _publish(self, table: str, event: str, record: Dict[str, Any]) -> None:
        if self.feed is not None:
            self.feed.publish(table, event, record)

    # --- Voters ---

    async def get_voter(self, student_id: str) -> Optional[Dict[str, Any]]:
        try:
            return _voter_out(await self.voters.find_one({"_id": student_id}))
        except PyMongoError as e:
            logger.error(f"Error retrieving voter {student_id}: {e}")
            raise StoreError("could not load voter") from e

    async def get_voter_status(self, student_id: str) -> Optional[Dict[str, Any]]:
        try:
            voter = await self.voters.find_one(
                {"_id": student_id}, {"student_id": 1, "name": 1, "has_voted": 1, "is_active": 1}
            )
        except PyMongoError as e:
            logger.error(f"Error checking voting status for {student_id}: {e}")
            raise StoreError("could not load voting status") from e
        if voter is None:
            return None
        return {
            "student_id": voter.get("student_id", student_id),
            "name": voter.get("name"),
            "has_voted": bool(voter.get("has_voted")),
            "is_active": bool(voter.get("is_active", True)),
        }

    async def list_voters(self, year_level: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {} if year_level is None else {"year_level": year_level}
        try:
            cursor = self.voters.find(query).sort("name", ASCENDING)
            return [_voter_out(v) async for v in cursor]
        except PyMongoError as e:
            logger.error(f"Error listing voters: {e}")
            raise StoreError("could not list voters") from e

    async def add_voter(self, voter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = {"has_voted": False, "voted_at": None, "is_active": True, **voter}
        record["_id"] = record["student_id"]
        try:
            await self.voters.insert_one(record)
        except DuplicateKeyError:
            logger.warning(f"Voter {voter['student_id']} already exists")
            return None
        except PyMongoError as e:
            logger.error(f"Error saving voter {voter['student_id']}: {e}")
            raise StoreError("could not save voter") from e
        return _voter_out(record)

    async def update_voter(self, student_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            result = await self.voters.find_one_and_update(
                {"_id": student_id}, {"$set": updates}, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(f"Error updating voter {student_id}: {e}")
            raise StoreError("could not update voter") from e
        if result is not None:
            self._publish("voters", "UPDATE", {"student_id": student_id})
        return _voter_out(result)

    async def delete_voter(self, student_id: str) -> bool:
        try:
            result = await self.voters.delete_one({"_id": student_id})
        except PyMongoError as e:
            logger.error(f"Error deleting voter {student_id}: {e}")
            raise StoreError("could not delete voter") from e
        if result.deleted_count:
            self._publish("voters", "DELETE", {"student_id": student_id})
        return result.deleted_count > 0

    async def set_voter_voted(self, student_id: str) -> bool:
        """
        Conditional $set, so repeated or concurrent calls converge on the same
        document. Returns False only when the voter does not exist.
        """
        try:
            result = await self.voters.update_one(
                {"_id": student_id, "has_voted": {"$ne": True}},
                {"$set": {"has_voted": True, "voted_at": datetime.now(timezone.utc)}},
            )
            if result.modified_count > 0:
                self._publish("voters", "UPDATE", {"has_voted": True})
                return True
            return await self.voters.count_documents({"_id": student_id}, limit=1) > 0
        except PyMongoError as e:
            logger.error(f"Error marking voter {student_id} as voted: {e}")
            raise StoreError("could not update voter status") from e

    async def get_turnout(self) -> Dict[str, Any]:
        try:
            total = await self.voters.count_documents({"is_active": True})
            voted = await self.voters.count_documents({"is_active": True, "has_voted": True})
        except PyMongoError as e:
            logger.error(f"Error computing turnout: {e}")
            raise StoreError("could not compute turnout") from e
        return {"total": total, "voted": voted, "percentage": calculate_percentage(voted, total)}

    # --- Elections & candidates ---

    async def list_elections(self) -> List[Dict[str, Any]]:
        try:
            cursor = self.elections.find({}).sort("created_at", DESCENDING)
            return [_out(e) async for e in cursor]
        except PyMongoError as e:
            logger.error(f"Error listing elections: {e}")
            raise StoreError("could not list elections") from e

    async def get_election(self, election_id: str) -> Optional[Dict[str, Any]]:
        try:
            return _out(await self.elections.find_one({"_id": election_id}))
        except PyMongoError as e:
            logger.error(f"Error retrieving election {election_id}: {e}")
            raise StoreError("could not load election") from e

    async def get_active_election(self) -> Optional[Dict[str, Any]]:
        try:
            return _out(await self.elections.find_one({"status": "running"}))
        except PyMongoError as e:
            logger.error(f"Error retrieving active election: {e}")
            raise StoreError("could not load active election") from e

    async def create_election(self, data: Dict[str, Any]) -> Dict[str, Any]:
        record = {**data, "_id": str(uuid.uuid4()), "created_at": datetime.now(timezone.utc)}
        try:
            await self.elections.insert_one(record)
        except PyMongoError as e:
            logger.error(f"Error creating election: {e}")
            raise StoreError("could not create election") from e
        return _out(record)

    async def update_election(self, election_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            result = await self.elections.find_one_and_update(
                {"_id": election_id}, {"$set": updates}, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(f"Error updating election {election_id}: {e}")
            raise StoreError("could not update election") from e
        return _out(result)

    async def delete_election(self, election_id: str) -> bool:
        """Remove an election together with its candidates."""
        try:
            result = await self.elections.delete_one({"_id": election_id})
            if result.deleted_count:
                await self.candidates.delete_many({"election_id": election_id})
        except PyMongoError as e:
            logger.error(f"Error deleting election {election_id}: {e}")
            raise StoreError("could not delete election") from e
        return result.deleted_count > 0

    async def list_candidates(self, election_id: str, position: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"election_id": election_id}
        if position is not None:
            query["position"] = position
        try:
            cursor = self.candidates.find(query).sort(
                [("party", ASCENDING), ("position", ASCENDING)]
            )
            return [_out(c) async for c in cursor]
        except PyMongoError as e:
            logger.error(f"Error listing candidates for {election_id}: {e}")
            raise StoreError("could not list candidates") from e

    async def get_candidate(self, candidate_id: str) -> Optional[Dict[str, Any]]:
        try:
            return _out(await self.candidates.find_one({"_id": candidate_id}))
        except PyMongoError as e:
            logger.error(f"Error retrieving candidate {candidate_id}: {e}")
            raise StoreError("could not load candidate") from e

    async def add_candidate(self, election_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        record = {**data, "_id": str(uuid.uuid4()), "election_id": election_id}
        try:
            await self.candidates.insert_one(record)
        except PyMongoError as e:
            logger.error(f"Error adding candidate to {election_id}: {e}")
            raise StoreError("could not add candidate") from e
        self._publish("candidates", "INSERT", {"election_id": election_id})
        return _out(record)

    async def update_candidate(self, candidate_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            result = await self.candidates.find_one_and_update(
                {"_id": candidate_id}, {"$set": updates}, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(f"Error updating candidate {candidate_id}: {e}")
            raise StoreError("could not update candidate") from e
        if result is not None:
            self._publish("candidates", "UPDATE", {"election_id": result["election_id"]})
        return _out(result)

    async def delete_candidate(self, candidate_id: str) -> bool:
        try:
            result = await self.candidates.find_one_and_delete({"_id": candidate_id})
        except PyMongoError as e:
            logger.error(f"Error deleting candidate {candidate_id}: {e}")
            raise StoreError("could not delete candidate") from e
        if result is None:
            return False
        self._publish("candidates", "DELETE", {"election_id": result["election_id"]})
        return True

    # --- Votes ---

    async def insert_vote_record(
        self, election_id: str, vote_token: str, payload: Dict[str, Any], payload_hash: str
    ) -> Dict[str, Any]:
        """Append-only insert. Nothing in the record refers to the voter."""
        record = {
            "_id": str(uuid.uuid4()),
            "election_id": election_id,
            "vote_token": vote_token,
            "payload": payload,
            "payload_hash": payload_hash,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            await self.votes.insert_one(record)
        except PyMongoError as e:
            logger.error(f"Error inserting vote for election {election_id}: {e}")
            raise StoreError("could not record vote") from e
        self._publish("votes", "INSERT", {"election_id": election_id})
        return _out(record)

    async def count_votes(self, election_id: str) -> int:
        try:
            return await self.votes.count_documents({"election_id": election_id})
        except PyMongoError as e:
            logger.error(f"Error counting votes for {election_id}: {e}")
            raise StoreError("could not count votes") from e

    async def list_vote_records(self, election_id: str) -> List[Dict[str, Any]]:
        try:
            cursor = self.votes.find({"election_id": election_id}).sort("created_at", ASCENDING)
            return [_out(v) async for v in cursor]
        except PyMongoError as e:
            logger.error(f"Error listing votes for {election_id}: {e}")
            raise StoreError("could not list votes") from e

    async def tally_votes(self, election_id: str) -> Dict[str, int]:
        pipeline = [
            {"$match": {"election_id": election_id}},
            {"$unwind": "$payload.selections"},
            {"$group": {"_id": "$payload.selections.candidate_id", "count": {"$sum": 1}}},
        ]
        try:
            cursor = self.votes.aggregate(pipeline)
            return {row["_id"]: row["count"] async for row in cursor}
        except PyMongoError as e:
            logger.error(f"Error tallying votes for {election_id}: {e}")
            raise StoreError("could not tally votes") from e

    # --- Admins & audit log ---

    async def get_admin(self, email: str) -> Optional[Dict[str, Any]]:
        try:
            return _out(await self.admins.find_one({"email": email}))
        except PyMongoError as e:
            logger.error(f"Error retrieving admin {email}: {e}")
            raise StoreError("could not load admin") from e

    async def add_admin(self, admin: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = {**admin, "_id": str(uuid.uuid4()), "created_at": datetime.now(timezone.utc)}
        try:
            await self.admins.insert_one(record)
        except DuplicateKeyError:
            logger.warning(f"Admin {admin['email']} already exists")
            return None
        except PyMongoError as e:
            logger.error(f"Error saving admin {admin['email']}: {e}")
            raise StoreError("could not save admin") from e
        return _out(record)

    async def list_admins(self) -> List[Dict[str, Any]]:
        try:
            cursor = self.admins.find({}).sort("created_at", ASCENDING)
            return [_out(a) async for a in cursor]
        except PyMongoError as e:
            logger.error(f"Error listing admins: {e}")
            raise StoreError("could not list admins") from e

    async def update_admin(self, email: str, updates: Dict[str, Any]) -> bool:
        try:
            result = await self.admins.update_one({"email": email}, {"$set": updates})
        except PyMongoError as e:
            logger.error(f"Error updating admin {email}: {e}")
            raise StoreError("could not update admin") from e
        return result.matched_count > 0

    async def log_action(self, actor_type: str, actor_id: str, action: str, details: Dict[str, Any]) -> None:
        try:
            await self.audit_logs.insert_one(
                {
                    "actor_type": actor_type,
                    "actor_id": actor_id,
                    "action": action,
                    "details": details,
                    "created_at": datetime.now(timezone.utc),
                }
            )
        except PyMongoError as e:
            logger.error(f"Error writing audit log {action}: {e}")
            raise StoreError("could not write audit log") from e

    async def list_audit_logs(self, limit: int = 100) -> List[Dict[str, Any]]:
        try:
            cursor = self.audit_logs.find({}).sort("created_at", DESCENDING).limit(limit)
            return [_out(entry) async for entry in cursor]
        except PyMongoError as e:
            logger.error(f"Error listing audit logs: {e}")
            raise StoreError("could not list audit logs") from e

    async def close(self) -> None:
        self.client.close()
        logger.info("MongoDB connection closed")
