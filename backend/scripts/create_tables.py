import argparse
import asyncio
from consultation.models import init_db, reset_db


async def create_tables(reset: bool = False):
    """Create all database tables"""
    if reset:
        print("Dropping existing tables...")
        await reset_db()

    print("Creating database tables...")
    print("Tables to create:")
    print("  - users")
    print("  - partners")
    print("  - conversations")
    print("  - messages")
    print("  - service_credit_ledger")
    print("  - conversation_sessions")

    await init_db()

    print("All tables created successfully!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create consultation tables")
    parser.add_argument("--reset", action="store_true", help="Drop all tables first")
    args = parser.parse_args()
    asyncio.run(create_tables(reset=args.reset))
