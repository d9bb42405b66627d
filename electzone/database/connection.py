import motor.motor_asyncio

from electzone.config import MONGO_URI, MONGO_DB

VOTERS_COLLECTION = "voters"
ELECTIONS_COLLECTION = "elections"
CANDIDATES_COLLECTION = "candidates"
VOTES_COLLECTION = "votes"
ADMINS_COLLECTION = "admins"
AUDIT_LOGS_COLLECTION = "audit_logs"


def get_client(uri: str = MONGO_URI) -> motor.motor_asyncio.AsyncIOMotorClient:
    if not uri:
        raise ValueError("MONGO_URI not found. Check your .env file.")
    return motor.motor_asyncio.AsyncIOMotorClient(uri, tz_aware=True)


def get_database(client: motor.motor_asyncio.AsyncIOMotorClient, name: str = MONGO_DB):
    if not name:
        raise ValueError("MONGO_DB not found. Check your .env file.")
    return client[name]
