"""
MongoDB Setup Script
Tests connection and creates the queue collections' indexes.
"""
import asyncio
from retail_queue.config import get_settings
from retail_queue.message_queue import QueueService
from retail_queue.repositories import (
    MESSAGE_QUEUE,
    NOTIFICATIONS,
    PROCESSED_MESSAGES,
    StoreConnection,
)


async def setup_mongodb():
    """Initialize the queue database with collections and indexes."""
    settings = get_settings()
    print("🔄 Connecting to MongoDB...")
    print(f"   Database: {settings.mongodb_database}")
    print()

    if settings.store_backend != "mongodb":
        raise SystemExit("STORE_BACKEND must be mongodb to set up MongoDB")

    connection = StoreConnection(settings)

    try:
        store = await connection.open()
        await store.ping()
        print("✅ Connection successful!")
        print()

        db = store.database

        existing_collections = await db.list_collection_names()
        print(f"📦 Existing collections: {existing_collections or 'None'}")
        print()

        print("🔨 Creating indexes...")
        service = QueueService(store, settings=settings)
        result = await service.initialize()
        if not result.success:
            raise RuntimeError(result.error)
        print("✅ Indexes created successfully!")
        print()

        print("📊 Verifying indexes:")
        total = 0
        for collection in (MESSAGE_QUEUE, PROCESSED_MESSAGES, NOTIFICATIONS):
            indexes = await db[collection].index_information()
            total += len(indexes)
            print(f"   {collection}: {len(indexes)} indexes")
            for idx_name in indexes:
                print(f"      - {idx_name}")

        print()
        print("🎉 MongoDB setup complete!")
        print(f"   ✅ Indexes: {total} total")
        print()

    except Exception as e:
        print(f"❌ Error: {e}")
        print()
        print("💡 Troubleshooting:")
        print("   1. Check MONGODB_URI and that the server is reachable")
        print("   2. Transactions need a replica set (e.g. ?replicaSet=rs0)")
        raise

    finally:
        await connection.close()
        print("👋 Disconnected from MongoDB")


if __name__ == "__main__":
    asyncio.run(setup_mongodb())
