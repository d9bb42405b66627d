# Seed an admin account and hash any admin passwords stored in plain text.
# Usage: ADMIN_EMAIL=... ADMIN_PASSWORD=... python -m electzone.seed
import asyncio
import os

from electzone.crud import create_admin
from electzone.main import build_store
from electzone.realtime import feed
from electzone.schemas import AdminCreate
from electzone.security import hash_password, looks_hashed
from electzone.storage_mongo import MongoStore


async def hash_existing_passwords(store) -> int:
    hashed = 0
    for admin in await store.list_admins():
        # Skip if password already looks hashed
        plain = admin.get("password")
        if plain and not looks_hashed(plain):
            await store.update_admin(admin["email"], {"password_hash": hash_password(plain), "password": None})
            print(f"Hashed password for admin {admin.get('email')}")
            hashed += 1
    return hashed


async def seed_admin(store, email: str, password: str) -> bool:
    if await store.get_admin(email):
        print(f"Admin {email} already exists")
        return False
    await create_admin(store, AdminCreate(email=email, password=password))
    print(f"Created admin {email}")
    return True


async def main():
    store = build_store(feed)
    if isinstance(store, MongoStore):
        await store.connect()
    try:
        email = os.getenv("ADMIN_EMAIL")
        password = os.getenv("ADMIN_PASSWORD")
        if email and password:
            await seed_admin(store, email, password)
        await hash_existing_passwords(store)
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(main())
