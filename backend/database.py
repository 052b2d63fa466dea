from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReturnDocument
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

COUNTERS_COLLECTION = "counters"

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for ownership lookups and listings."""
        try:
            # Intake submissions - latest-by-owner lookups
            await self.db.intake_submissions.create_index("id", unique=True)
            await self.db.intake_submissions.create_index([("client_user_id", 1), ("created_at", -1)])
            await self.db.intake_submissions.create_index([("email", 1), ("created_at", -1)])
            await self.db.intake_submissions.create_index("review_status")

            # Upload records - one per stored object
            await self.db.upload_records.create_index("storage_path", unique=True)
            await self.db.upload_records.create_index([("client_user_id", 1), ("created_at", -1)])
            await self.db.upload_records.create_index("client_username")

            # Visibility soft-state keyed by (owner, path)
            await self.db.upload_visibility.create_index(
                [("user_id", 1), ("path", 1)],
                unique=True
            )

            # Client profiles - username resolves the owner key
            await self.db.client_profiles.create_index("supabase_user_id", unique=True)
            await self.db.client_profiles.create_index("username")

            # Audit events - timeline queries
            await self.db.audit_events.create_index([("target_user_id", 1), ("created_at", -1)])
            await self.db.audit_events.create_index([("action_type", 1), ("created_at", -1)])
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()


async def get_next_sequence(name: str) -> int:
    """Atomic integer sequence: counters document { _id: name, seq: N }."""
    db = database.get_db()
    result = await db[COUNTERS_COLLECTION].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return (result or {}).get("seq", 1)

