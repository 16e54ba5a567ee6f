"""
Seed a local MongoDB with a minimal campus dataset.

Usage:
  python scripts/seed_db.py            # seed only when the users collection is empty
  python scripts/seed_db.py --force    # seed even if data exists
"""

import argparse
import asyncio
import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from uniben_assistant.engines.db_engine_async import AsyncDatabaseEngine  # noqa: E402


async def seed(force: bool = False):
    engine = AsyncDatabaseEngine()
    await engine.connect()
    try:
        if not force and await engine.list_users():
            print("Users already exist; skipping seed (use --force to override)")
            return

        csc = await engine.create_department({
            "name": "Computer Science",
            "faculty": "Physical Sciences",
            "hodName": "Prof. A. Okoro",
            "hodContact": "+234 800 000 0001",
            "location": "Faculty of Physical Sciences, Block B",
        })
        mth = await engine.create_department({
            "name": "Mathematics",
            "faculty": "Physical Sciences",
            "hodName": "Dr. B. Eze",
            "location": "Faculty of Physical Sciences, Block A",
        })

        await engine.create_building({
            "name": "John Harris Library",
            "department": "Library",
            "faculty": "General",
            "latitude": 6.3985,
            "longitude": 5.6142,
            "category": "library",
            "description": "Main university library near the Ugbowo campus gate",
        })
        await engine.create_building({
            "name": "Faculty of Physical Sciences",
            "department": "Computer Science",
            "faculty": "Physical Sciences",
            "latitude": 6.4012,
            "longitude": 5.6189,
            "category": "academic",
        })

        lecturer = await engine.create_user({
            "name": "Dr. C. Lecturer", "staffId": "STAFF-2001", "role": "lecturer_admin",
            "department": csc["id"], "email": "lecturer@uniben.edu.ng",
        })
        await engine.create_course({
            "code": "CSC 201",
            "title": "Data Structures",
            "description": "Lists, trees, graphs and their algorithms",
            "department": csc["id"],
            "faculty": "Physical Sciences",
            "level": 200,
            "credit": 3,
            "semester": "first",
            "departments_offering": [{
                "department": csc["id"], "level": 200, "lecturerId": lecturer["id"],
                "semester": "first", "isActive": True,
            }],
        })

        await engine.create_user({"name": "John Student", "matricNumber": "CSC/22/1234", "role": "student",
                                  "department": csc["id"], "email": "john.student@uniben.edu.ng"})
        await engine.create_user({"name": "Dr. Admin User", "staffId": "STAFF-1234", "role": "staff",
                                  "email": "admin@uniben.edu.ng"})
        await engine.create_user({"name": "System Admin", "staffId": "ADMIN-0001", "role": "system_admin"})
        await engine.create_user({"name": "Bursar", "staffId": "BURSARY-0001", "role": "bursary_admin"})
        await engine.create_user({"name": "Maths Admin", "staffId": "DEPT-0001", "role": "departmental_admin",
                                  "department": mth["id"]})

        await engine.create_fees_catalog({
            "level": "100",
            "session": "2025/2026",
            "currency": "NGN",
            "effectiveFrom": datetime(2025, 9, 1, tzinfo=timezone.utc),
            "items": [{"name": "Tuition", "amount": 95000}, {"name": "Acceptance", "amount": 25000}],
        })
        await engine.create_news({
            "title": "Welcome to the new session",
            "content": "Lectures begin on Monday. Check your faculty notice boards for timetables.",
            "audience": "everyone",
            "priority": "high",
        })
        print("Seed complete")
    except Exception as e:
        print(f"Seed failed: {e}")
        raise
    finally:
        await engine.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the UNIBEN Assistant database")
    parser.add_argument("--force", action="store_true")
    args = parser.parse_args()
    asyncio.run(seed(force=args.force))
