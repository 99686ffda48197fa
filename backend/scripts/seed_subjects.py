"""
ABC Cours CRM - Seed Subjects
Inserts the default subject catalogue. Existing names are left untouched.
Run: python scripts/seed_subjects.py
"""

import asyncio
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient

load_dotenv(Path(__file__).parent.parent / '.env')

MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'abc_cours_crm')

SUBJECTS = [
    ("Mathématiques", "Algèbre, géométrie, arithmétique et calcul", "Scientifique"),
    ("Physique", "Mécanique, électricité, optique et thermodynamique", "Scientifique"),
    ("Chimie", "Chimie générale, organique et inorganique", "Scientifique"),
    ("SVT", "Sciences de la Vie et de la Terre", "Scientifique"),
    ("Informatique", "Programmation et bureautique", "Scientifique"),
    ("Français", "Grammaire, conjugaison, littérature et expression écrite", "Littéraire"),
    ("Histoire", "Histoire de France et du monde", "Littéraire"),
    ("Géographie", "Géographie physique, humaine et économique", "Littéraire"),
    ("Philosophie", "Réflexion philosophique et méthodologie", "Littéraire"),
    ("Économie", "Sciences économiques et sociales", "Littéraire"),
    ("Anglais", "Grammaire, vocabulaire et expression orale", "Langues"),
    ("Espagnol", "Grammaire, vocabulaire et expression orale", "Langues"),
    ("Allemand", "Grammaire, vocabulaire et expression orale", "Langues"),
    ("Italien", "Grammaire, vocabulaire et expression orale", "Langues"),
    ("Arts Plastiques", "Dessin, peinture et techniques artistiques", "Arts"),
    ("Musique", "Théorie musicale et pratique instrumentale", "Arts"),
    ("Théâtre", "Expression théâtrale et mise en scène", "Arts"),
    ("Sport", "Activités physiques et sportives", "Sport"),
]


async def seed(db):
    created = 0
    now = datetime.now(timezone.utc).isoformat()
    for name, description, category in SUBJECTS:
        if await db.subjects.find_one({"name": name}):
            continue
        await db.subjects.insert_one({
            "id": str(uuid.uuid4()),
            "name": name,
            "description": description,
            "category": category,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        })
        created += 1
    print(f"{created} subject(s) created, {len(SUBJECTS) - created} already present")


async def main():
    client = AsyncIOMotorClient(MONGO_URL)
    await seed(client[DB_NAME])
    client.close()


if __name__ == "__main__":
    asyncio.run(main())
