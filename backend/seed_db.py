"""
CodeTrail Database Seeder

Creates a demo challenge and two candidates:
- John Doe: submitted, with a recorded keystroke timeline (snapshots every
  second plus one focus loss) for playback
- Jane Smith: invited, not started

Prints the candidate tokens and a reviewer access token.
"""

import sys
sys.path.insert(0, ".")

from datetime import datetime

from app.db.session import SessionLocal, engine
from app.db.base import Base
from app.models import Challenge
from app.core.security import create_access_token
from app.services import submission_service
from app.services.events import EventType, new_event

BASE_TS = 1706800000000

FINAL_CODE = """def two_sum(nums, target):
    seen = {}
    for i, num in enumerate(nums):
        complement = target - num
        if complement in seen:
            return [seen[complement], i]
        seen[num] = i
    return []"""


def build_demo_timeline():
    """Snapshots of FINAL_CODE growing line by line, with a 7s focus loss."""
    lines = FINAL_CODE.split("\n")
    events = [new_event(EventType.FOCUS_IN, BASE_TS, window_focus=True)]

    for i in range(1, len(lines)):
        text = "\n".join(lines[:i])
        ts = BASE_TS + i * 2000
        events.append(
            new_event(
                EventType.CONTENT_SNAPSHOT,
                ts,
                cursor_start=len(text),
                cursor_end=len(text),
                content=text,
            )
        )
        if i == 3:
            events.append(new_event(EventType.FOCUS_OUT, ts + 500, window_focus=False))
            events.append(new_event(EventType.FOCUS_IN, ts + 7500, window_focus=True))

    # The last line was typed after the final snapshot; only the submitted
    # content has it
    return sorted(events, key=lambda e: e.timestamp)


def seed_database():
    """Seed the database with test data."""

    # Create all tables
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()

    try:
        # Check if already seeded
        existing = db.query(Challenge).filter(Challenge.title == "Two Sum").first()
        if existing:
            print("Database already seeded. Skipping...")
            return

        print("Seeding database...")

        # 1. Challenge
        challenge = submission_service.create_challenge(
            db,
            title="Two Sum",
            description="Return indices of the two numbers that add up to target.",
            language="python",
            time_limit=45,
        )

        # 2. John Doe - finished, with recorded timeline
        john = submission_service.invite_candidate(db, challenge.id, "John Doe", "john.doe@example.com")
        submission_service.update_content(
            db, john.token, "", now=datetime.utcfromtimestamp(BASE_TS / 1000)
        )
        timeline = build_demo_timeline()
        submission_service.append_events(db, john.token, timeline)
        submission_service.update_content(db, john.token, FINAL_CODE)
        submission_service.submit(
            db,
            john.token,
            now=datetime.utcfromtimestamp((timeline[-1].timestamp + 3000) / 1000),
        )

        # 3. Jane Smith - invited only
        jane = submission_service.invite_candidate(db, challenge.id, "Jane Smith", "jane.smith@example.com")

        reviewer_token = create_access_token({"sub": "reviewer@codetrail.dev"})

        print("✅ Database seeded successfully!")
        print(f"\n📋 Challenge #{challenge.id}: {challenge.title}")
        print(f"   - John Doe  [SUBMITTED]   token: {john.token}")
        print(f"     {len(timeline)} events recorded")
        print(f"   - Jane Smith [NOT STARTED] token: {jane.token}")
        print(f"\n🔑 Reviewer bearer token:\n   {reviewer_token}")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_database()
