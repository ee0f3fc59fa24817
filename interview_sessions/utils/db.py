from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure
import logging
from .config import get_db_config

logger = logging.getLogger(__name__)


def get_mongodb_client() -> AsyncIOMotorClient:
    """Get an async MongoDB client with the configured connection settings."""
    db_config = get_db_config()
    uri = db_config.get("uri")
    options = db_config.get("options", {})

    # tz_aware so stored window bounds round-trip as UTC-aware datetimes
    return AsyncIOMotorClient(
        uri,
        tz_aware=True,
        serverSelectionTimeoutMS=options.get("serverSelectionTimeoutMS", 5000),
    )


async def get_database(client: AsyncIOMotorClient) -> AsyncIOMotorDatabase:
    """Ping the server and return the configured database."""
    db_config = get_db_config()
    try:
        await client.admin.command("ping")
        logger.info("Successfully connected to MongoDB")
    except ConnectionFailure as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise
    return client[db_config["database"]]
