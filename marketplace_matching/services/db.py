import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING
import os
from dotenv import load_dotenv

from marketplace_matching.utils.logging_config import get_logger

logger = get_logger(__name__)

load_dotenv()

MONGO_DETAILS = os.getenv("MONGO_DETAILS", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "marketplace_matching")

logger.info(f"Initializing MongoDB connection to database: {DB_NAME}")

try:
    client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_DETAILS)
    db = client[DB_NAME]
    logger.info("MongoDB client initialized successfully")
except Exception as e:
    logger.error(f"Failed to initialize MongoDB client: {e}")
    raise

# Collections
admin_settings_coll = db["admin_settings"]
requests_coll = db["matching_requests"]
freelancers_coll = db["freelancer_profiles"]
snapshots_coll = db["matching_snapshots"]
invites_coll = db["expert_invites"]
notifications_coll = db["notifications"]


async def _ensure_index(coll, keys, name: str, **kwargs):
    try:
        await coll.create_index(keys, **kwargs)
        logger.debug(f"Created index on {name}")
    except Exception as e:
        if "already exists" in str(e).lower():
            logger.debug(f"Index on {name} already exists")
        else:
            logger.warning(f"Could not create index on {name}: {e}")


async def init_indexes():
    """Index initialization for collections."""
    logger.info("Starting database index initialization")

    await _ensure_index(
        admin_settings_coll, [("setting_key", ASCENDING)],
        "admin_settings.setting_key", unique=True
    )
    await _ensure_index(
        requests_coll, [("request_id", ASCENDING)],
        "matching_requests.request_id", unique=True
    )
    await _ensure_index(
        freelancers_coll, [("user_id", ASCENDING)],
        "freelancer_profiles.user_id", unique=True
    )
    # Latest-snapshot lookups sort by created_at within a request
    await _ensure_index(
        snapshots_coll, [("request_id", ASCENDING), ("created_at", DESCENDING)],
        "matching_snapshots.(request_id, created_at)"
    )
    await _ensure_index(
        snapshots_coll, [("snapshot_id", ASCENDING)],
        "matching_snapshots.snapshot_id", unique=True
    )
    await _ensure_index(
        invites_coll, [("request_id", ASCENDING), ("user_id", ASCENDING)],
        "expert_invites.(request_id, user_id)", unique=True
    )
    await _ensure_index(
        invites_coll, [("status", ASCENDING), ("expires_at", ASCENDING)],
        "expert_invites.(status, expires_at)"
    )
    await _ensure_index(
        notifications_coll, [("user_id", ASCENDING), ("created_at", DESCENDING)],
        "notifications.(user_id, created_at)"
    )

    logger.info("Database index initialization completed")


def to_dict(doc):
    if not doc:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    return doc
