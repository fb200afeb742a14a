"""
Seed Database with Sample Documents.
Indexes demo knowledge documents through the regular indexing pipeline so
they are deduplicated and embedded like connector pushes.
"""

import asyncio
import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from nova.db.database import init_db, close_db
from nova.services.embedding import EmbeddingService
from nova.services.indexing import IndexingPipeline


SAMPLE_DOCUMENTS = {
    ("file", "file"): [
        {
            "title": "Password Reset Guide",
            "content": (
                "Reset your password by opening Settings, choosing Security and "
                "selecting Reset Password. A verification code is sent to your "
                "registered email. Codes expire after 10 minutes."
            ),
            "source_id": "guides/password-reset.md",
            "metadata": {"fileType": "md"},
        },
        {
            "title": "VPN Setup",
            "content": (
                "Install the corporate VPN client from the software portal. Sign in "
                "with your network account and pick the nearest gateway. If the "
                "connection drops, restart the client before opening a ticket."
            ),
            "source_id": "guides/vpn-setup.md",
            "metadata": {"fileType": "md"},
        },
    ],
    ("servicenow", "knowledge"): [
        {
            "title": "KB0010001: Email not syncing on mobile",
            "content": (
                "Remove the account from the mail app, restart the device and add "
                "the account again using modern authentication. Sync can take up "
                "to 15 minutes for large mailboxes."
            ),
            "source_id": "KB0010001",
            "metadata": {"category": "Email"},
        },
        {
            "title": "KB0010002: Requesting new hardware",
            "content": (
                "Hardware requests are raised from the service catalog. Laptops are "
                "refreshed every three years; urgent replacements need manager "
                "approval."
            ),
            "source_id": "KB0010002",
            "metadata": {"category": "Hardware"},
        },
    ],
    ("confluence", "wiki"): [
        {
            "title": "Holiday Policy",
            "content": (
                "Employees receive 25 vacation days per year plus public holidays. "
                "Up to five unused days carry over into the first quarter of the "
                "next year."
            ),
            "source_id": "HR/holiday-policy",
            "metadata": {"space": "HR"},
        },
    ],
}


async def seed_documents():
    """Index the sample documents."""
    print("📚 Seeding documents...")

    embedding_service = EmbeddingService()
    if not embedding_service.is_available:
        print("   ⚠️  EMBEDDING_API_KEY not set, documents are stored without embeddings")

    pipeline = IndexingPipeline(embedding_service=embedding_service)
    totals = {"indexed": 0, "skipped": 0, "error": 0}

    try:
        for (connector_id, source_type), documents in SAMPLE_DOCUMENTS.items():
            results = await pipeline.index(connector_id, source_type, documents)
            for result in results:
                totals[result.status] += 1
                print(f"   {result.status:8} {connector_id}: {result.title}")
    finally:
        await embedding_service.cleanup()

    return totals


async def main():
    """Seed all data."""
    print("🌱 Starting database seeding...\n")

    await init_db()
    try:
        totals = await seed_documents()
    finally:
        await close_db()

    print("\n✅ Database seeding complete!")
    print("\n📊 Summary:")
    print(f"   - {totals['indexed']} indexed")
    print(f"   - {totals['skipped']} skipped (already present)")
    print(f"   - {totals['error']} errors")


if __name__ == "__main__":
    asyncio.run(main())
