from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.config import get_config
from app.receipts.storage import GridFSReceiptStorage

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None


def init_db(mongo_url: str, db_name: str) -> AsyncIOMotorDatabase:
    global client, db
    client = AsyncIOMotorClient(mongo_url)
    db = client[db_name]
    return db


def get_db_instance() -> AsyncIOMotorDatabase:
    if db is None:
        config = get_config()
        return init_db(config.MONGO_URL, config.MONGO_DB_NAME)
    return db

# ==================== DEPENDENCY FUNCTIONS ====================

async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return get_db_instance()


async def get_receipt_storage():
    """Receipt artifact storage dependency"""
    return GridFSReceiptStorage(get_db_instance(), bucket_name=get_config().RECEIPT_BUCKET)
