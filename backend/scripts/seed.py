"""Database seed script — creates a demo user with AI builder credits.

Run: python -m scripts.seed

Environment:
    DEMO_EMAIL    email of the demo user (default demo@marketplace.local)
    DEMO_CREDITS  credits to top up on every run (default 50)
"""

import asyncio
import os
import sys

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


async def seed():
    """Seed the database with a demo user and print a bearer token for it."""
    from db.database import init_db
    from db.database import AsyncSessionLocal
    from db.models.user import User
    from core.security import create_access_token
    from services.credit_ledger import CreditLedger
    from sqlalchemy import select

    # Initialize DB tables
    await init_db()

    email = os.environ.get("DEMO_EMAIL", "demo@marketplace.local")
    top_up = int(os.environ.get("DEMO_CREDITS", "50"))

    async with AsyncSessionLocal() as db:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if not user:
            user = User(email=email, name="Demo User", credits=0, is_active=True)
            db.add(user)
            await db.flush()
            print(f"[seed] Created user: {email} ({user.id})")
        else:
            print(f"[seed] User exists: {email}")

        balance = await CreditLedger(db).credit(user.id, top_up) if top_up > 0 else user.credits
        await db.commit()

    print(f"[seed] Credits: {balance}")
    print(f"[seed] Token: {create_access_token(user.id, email)}")


if __name__ == "__main__":
    asyncio.run(seed())
