from typing import Optional, Protocol

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket


class ReceiptStorage(Protocol):
    """Durable home for rendered receipt images"""

    async def save(self, filename: str, data: bytes, metadata: Optional[dict] = None) -> str:
        ...

    async def load(self, file_id: str) -> bytes:
        ...

    async def delete(self, file_id: str) -> None:
        ...


class GridFSReceiptStorage:
    """Receipts stored in a MongoDB GridFS bucket next to the enrollments"""

    def __init__(self, db: AsyncIOMotorDatabase, bucket_name: str = "receipts"):
        self.bucket = AsyncIOMotorGridFSBucket(db, bucket_name=bucket_name)

    async def save(self, filename: str, data: bytes, metadata: Optional[dict] = None) -> str:
        file_id = await self.bucket.upload_from_stream(
            filename,
            data,
            metadata={"content_type": "image/png", **(metadata or {})}
        )
        return str(file_id)

    async def load(self, file_id: str) -> bytes:
        stream = await self.bucket.open_download_stream(ObjectId(file_id))
        return await stream.read()

    async def delete(self, file_id: str) -> None:
        await self.bucket.delete(ObjectId(file_id))
