# electzone/config.py
# Central place for settings and constants
import os
from dotenv import load_dotenv

load_dotenv()

# --- Database ---
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "electzone")

# "mongo" for MongoDB, "json" for the file-backed dev store
STORE_BACKEND = os.getenv("STORE_BACKEND", "mongo")

# Dummy DB path (JSON) used when STORE_BACKEND=json
DUMMY_DB_PATH = os.getenv("DUMMY_DB_PATH", "data/dummy_db.json")

# --- Security & JWT ---
# In production, set SECRET_KEY in the environment
SECRET_KEY = os.getenv("SECRET_KEY", "a_very_secret_key_for_dev_only")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# --- HTTP ---
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
    ).split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Student IDs look like 2021001, 2022001, ...
STUDENT_ID_PATTERN = r"^\d{7}$"
