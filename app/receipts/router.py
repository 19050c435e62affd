from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.auth.session import SessionContext, get_session
from app.dependencies import get_db, get_receipt_storage
from app.errors import NotFoundError
from app.receipts.service import load_receipt_image
from app.receipts.storage import ReceiptStorage

router = APIRouter(tags=["Receipts"])


@router.get("/{receipt_number}")
async def download_receipt(
    receipt_number: str,
    session: SessionContext = Depends(get_session),
    db: AsyncIOMotorDatabase = Depends(get_db),
    storage: ReceiptStorage = Depends(get_receipt_storage)
):
    """Receipt image for the enrolled student or an admin"""
    enrollment, image = await load_receipt_image(db, storage, receipt_number)

    # Hide other students' receipts instead of confirming they exist
    if not session.is_admin and enrollment.student_id != session.user_id:
        raise NotFoundError("Receipt not found")

    return Response(
        content=image,
        media_type="image/png",
        headers={"Content-Disposition": f"attachment; filename={receipt_number}.png"}
    )
