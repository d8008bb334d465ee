"""MongoDB database connection management using Motor async driver.

Includes connection lifecycle and index management for the games
collection. The players collection belongs to the player registry and
is only read here.
"""

import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from chipledger.config import settings

logger = logging.getLogger("chipledger.dal.database")

# Database client and database instances, created once at startup
_client: AsyncIOMotorClient | None = None
_database: AsyncIOMotorDatabase | None = None


async def connect_to_mongo() -> AsyncIOMotorDatabase:
    """Establish connection to MongoDB.

    Called during FastAPI application startup.

    Returns:
        AsyncIOMotorDatabase: The connected database instance.
    """
    global _client, _database

    _client = AsyncIOMotorClient(
        settings.MONGO_URL,
        serverSelectionTimeoutMS=5000,  # 5 second timeout
        tz_aware=True,
    )
    _database = _client[settings.DATABASE_NAME]

    # Verify connection by pinging the database
    await _client.admin.command("ping")
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)
    return _database


async def close_mongo_connection() -> None:
    """Close MongoDB connection.

    Called during FastAPI application shutdown.
    """
    global _client, _database

    if _client:
        _client.close()
        _client = None
        _database = None
        logger.info("Closed MongoDB connection")


def get_database() -> AsyncIOMotorDatabase:
    """Get the MongoDB database instance.

    Returns:
        AsyncIOMotorDatabase: The database instance.

    Raises:
        RuntimeError: If database is not initialized.
    """
    if _database is None:
        raise RuntimeError(
            "Database not initialized. Call connect_to_mongo() first."
        )
    return _database


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes used by the ledger queries.

    This is idempotent -- MongoDB silently ignores indexes that already exist.
    Should be called on application startup after the connection is established.

    Args:
        db: The Motor database instance to create indexes on.
    """
    logger.info("Ensuring indexes for the games collection...")

    games = db.games

    # 1. Games list: newest first, optionally filtered by status.
    await games.create_index(
        [("status", ASCENDING), ("start_time", DESCENDING)],
        name="idx_status_start_time",
    )
    await games.create_index(
        [("start_time", DESCENDING)],
        name="idx_start_time",
    )

    # 2. Resolve an embedded record back to its game.
    await games.create_index(
        [("participants.id", ASCENDING)],
        name="idx_participant_id",
    )
    await games.create_index(
        [("buy_ins.id", ASCENDING)],
        name="idx_buy_in_id",
    )

    # 3. A player's games (reports, history).
    await games.create_index(
        [("participants.player_id", ASCENDING)],
        name="idx_participant_player_id",
    )

    logger.info("All indexes ensured successfully.")
