"""
ABC Cours CRM - Seed Admin User
Creates (or re-activates) the initial admin account.
Run: python scripts/seed_admin_user.py
     ADMIN_EMAIL=... ADMIN_PASSWORD=... python scripts/seed_admin_user.py
"""

import asyncio
import hashlib
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient

load_dotenv(Path(__file__).parent.parent / '.env')

MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'abc_cours_crm')

ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL', 'admin@abc-cours.fr')
ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', 'admin123')


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


async def seed(db):
    existing = await db.users.find_one({"email": ADMIN_EMAIL})
    if existing:
        await db.users.update_one({"email": ADMIN_EMAIL}, {"$set": {"is_active": True, "role": "admin"}})
        print(f"Admin already exists: {ADMIN_EMAIL} (re-activated)")
        return

    now = datetime.now(timezone.utc).isoformat()
    await db.users.insert_one({
        "id": str(uuid.uuid4()),
        "email": ADMIN_EMAIL,
        "password": hash_password(ADMIN_PASSWORD),
        "first_name": "Admin",
        "last_name": "ABC Cours",
        "phone": "",
        "role": "admin",
        "permissions": {},
        "is_active": True,
        "last_login": None,
        "created_at": now,
        "updated_at": now,
    })
    print(f"Admin created: {ADMIN_EMAIL}")


async def main():
    client = AsyncIOMotorClient(MONGO_URL)
    await seed(client[DB_NAME])
    client.close()


if __name__ == "__main__":
    asyncio.run(main())
