import io
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

FONT_DIR = "/usr/share/fonts/truetype/dejavu"

WIDTH, HEIGHT = 600, 800
PRIMARY_COLOR = (99, 102, 241)
TEXT_COLOR = (55, 65, 81)
DARK_COLOR = (17, 24, 39)
MUTED_COLOR = (156, 163, 175)
RULE_COLOR = (229, 231, 235)
BOX_COLOR = (243, 244, 246)


@dataclass
class ReceiptContext:
    receipt_number: str
    issued_at: datetime
    student_name: str
    student_email: str
    course_title: str
    course_price: float
    amount: float
    payment_status: str
    verified_at: Optional[datetime]
    currency: str = "INR"
    payment_method: str = "Online"


def _load_font(name: str, size: int):
    try:
        return ImageFont.truetype(f"{FONT_DIR}/{name}", size)
    except OSError:
        return ImageFont.load_default()


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime("%B %d, %Y") if value else "N/A"


def render_receipt_image(ctx: ReceiptContext) -> bytes:
    """Draw the fixed receipt layout and return PNG bytes"""
    img = Image.new("RGB", (WIDTH, HEIGHT), color="white")
    draw = ImageDraw.Draw(img)

    header_font = _load_font("DejaVuSans-Bold.ttf", 36)
    section_font = _load_font("DejaVuSans-Bold.ttf", 20)
    strong_font = _load_font("DejaVuSans-Bold.ttf", 18)
    text_font = _load_font("DejaVuSans.ttf", 16)
    total_font = _load_font("DejaVuSans-Bold.ttf", 24)
    small_font = _load_font("DejaVuSans.ttf", 14)

    def centered(text, font, y, fill):
        bbox = draw.textbbox((0, 0), text, font=font)
        draw.text(((WIDTH - (bbox[2] - bbox[0])) / 2, y), text, fill=fill, font=font)

    # Frame and header band
    draw.rectangle([10, 10, WIDTH - 10, HEIGHT - 10], outline=PRIMARY_COLOR, width=8)
    draw.rectangle([20, 20, WIDTH - 20, 100], fill=PRIMARY_COLOR)
    centered("PAYMENT RECEIPT", header_font, 38, "white")

    centered(f"Receipt #: {ctx.receipt_number}", strong_font, 125, DARK_COLOR)
    centered(f"Date: {_format_date(ctx.issued_at)}", text_font, 155, DARK_COLOR)
    draw.line([(40, 200), (WIDTH - 40, 200)], fill=RULE_COLOR, width=2)

    draw.text((50, 225), "Student Details", fill=PRIMARY_COLOR, font=section_font)
    draw.text((50, 265), f"Name: {ctx.student_name}", fill=TEXT_COLOR, font=text_font)
    draw.text((50, 295), f"Email: {ctx.student_email}", fill=TEXT_COLOR, font=text_font)

    draw.text((50, 355), "Course Details", fill=PRIMARY_COLOR, font=section_font)
    draw.text((50, 395), f"Course: {ctx.course_title}", fill=TEXT_COLOR, font=text_font)
    draw.text((50, 425), f"Price: {ctx.currency} {ctx.course_price:,.2f}", fill=TEXT_COLOR, font=text_font)

    draw.text((50, 485), "Payment Details", fill=PRIMARY_COLOR, font=section_font)
    draw.text((50, 525), f"Payment Status: {ctx.payment_status}", fill=TEXT_COLOR, font=text_font)
    draw.text((50, 555), f"Verified On: {_format_date(ctx.verified_at)}", fill=TEXT_COLOR, font=text_font)
    draw.text((50, 585), f"Payment Method: {ctx.payment_method}", fill=TEXT_COLOR, font=text_font)

    draw.rectangle([50, 620, WIDTH - 50, 700], fill=BOX_COLOR)
    centered(f"Total Amount Paid: {ctx.currency} {ctx.amount:,.2f}", total_font, 645, DARK_COLOR)

    centered("Thank you for your purchase!", small_font, 720, MUTED_COLOR)
    centered("This is an auto-generated receipt.", small_font, 745, MUTED_COLOR)

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return buf.getvalue()
