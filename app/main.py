import logging
import os

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.admin.router import router as admin_router
from app.config import init_config
from app.dependencies import get_db, init_db
from app.enrollments.database import create_indexes as create_enrollment_indexes
from app.enrollments.router import router as enrollment_router
from app.errors import LMSError
from app.finance.ledger import create_indexes as create_finance_indexes
from app.receipts.router import router as receipt_router
from app.resources.database import create_indexes as create_resource_indexes
from app.resources.router import router as resource_router

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("lms-enrollment-service")

VERSION = os.getenv("VERSION")

app = FastAPI(title="LMS Enrollment Service")


async def create_indexes(db: AsyncIOMotorDatabase):
    """Create MongoDB indexes for data integrity"""
    await create_enrollment_indexes(db)
    await create_finance_indexes(db)
    await create_resource_indexes(db)
    await db.audit_logs.create_index([("timestamp", -1)])
    await db.audit_logs.create_index([("actor_id", 1), ("timestamp", -1)])
    await db.audit_logs.create_index([("action", 1), ("status", 1)])


@app.on_event("startup")
async def startup_event():
    config = init_config()
    logging.getLogger().setLevel(config.LOG_LEVEL)
    db = init_db(config.MONGO_URL, config.MONGO_DB_NAME)
    try:
        await create_indexes(db)
        logger.info("MongoDB indexes created")
    except PyMongoError as e:
        logger.warning("Index creation warning: %s", e)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LMSError)
async def lms_error_handler(request: Request, exc: LMSError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ==================== ROUTER REGISTRATION ====================
app.include_router(admin_router, prefix="/api/admin")
app.include_router(enrollment_router, prefix="/api/enrollments")
app.include_router(receipt_router, prefix="/api/receipts")
app.include_router(resource_router, prefix="/api/resources")
# ============================================================


@app.get("/")
def root():
    return {"service": "LMS Enrollment Service", "status": "running", "endpoints": ["/api/admin", "/api/enrollments", "/api/receipts", "/api/resources", "/docs"]}


@app.get("/version")
def get_version():
    return {"version": VERSION or "unknown", "status": "stable"}


@app.get("/health")
async def health(db: AsyncIOMotorDatabase = Depends(get_db)):
    try:
        await db.command("ping")
    except PyMongoError as e:
        logger.exception("Health check failed: %s", e)
        raise HTTPException(status_code=503, detail="Database unreachable")
    return {"status": "ok"}
