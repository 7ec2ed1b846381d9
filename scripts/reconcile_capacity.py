"""
Reconcile partner capacity counters with the conversations table.

Recomputes active_conversations_count for every partner (or one partner)
from their accepted/active conversations and flips online/busy to match.
"""
import asyncio
import sys
from pathlib import Path

# Add backend to path
backend_path = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_path))

from consultation.models.database import AsyncSessionLocal
from consultation.services.presence_service import presence_service


async def main():
    partner_id = sys.argv[1] if len(sys.argv) > 1 else None
    async with AsyncSessionLocal() as db:
        corrected = await presence_service.reconcile_capacity(db, partner_id)

    if not corrected:
        print("All capacity counters are consistent.")
        return
    for pid, (stored, actual) in corrected.items():
        print(f"  - Partner {pid}: {stored} -> {actual}")
    print(f"Corrected {len(corrected)} partner(s)")


if __name__ == "__main__":
    print("Capacity Reconciliation")
    print("=" * 50)
    asyncio.run(main())
