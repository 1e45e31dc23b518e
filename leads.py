"""
Pure pieces of the order intake pipeline: quantity normalization, lead
priority, price estimate and the WhatsApp follow-up link for the admin.
"""
import math
import re
from typing import Dict, Tuple
from urllib.parse import quote

import settings
from errors import AppError

# Per single brick, in rupees
PRICE_PER_BRICK: Dict[str, Tuple[float, float]] = {
    "Avval": (8.5, 9.5),
    "Second": (6.5, 7.5),
    "Rora": (3.5, 4.5),
}

HOT_QUANTITY = 15000
WARM_QUANTITY = 6000
# largest single order the kiln will take, in bricks
MAX_BRICKS = 10_000_000

# same reserved set as JavaScript's encodeURIComponent
URI_SAFE = "!'()*~"


def round_half_up(value: float) -> int:
    # halves round up, never to even
    return math.floor(value + 0.5)


def normalize_quantity(unit: str, value: float, bricks_per_trolley: int = settings.BRICKS_PER_TROLLEY) -> Tuple[int, float]:
    """Return (bricks, trolleys). Bricks are authoritative; trolleys are always derived from them."""
    if unit == "bricks":
        raw = value
    elif unit == "trolleys":
        raw = value * bricks_per_trolley
    else:
        raise AppError("Valid quantity unit is required", 400)
    if not math.isfinite(raw) or raw > MAX_BRICKS:
        raise AppError("Requested quantity is invalid", 400)
    bricks = round_half_up(raw)
    if bricks <= 0:
        raise AppError("Requested quantity is invalid", 400)
    return bricks, bricks / bricks_per_trolley


def classify_lead(brick_type: str, quantity_bricks: int, urgency: str) -> str:
    if brick_type == "Avval" or urgency == "immediate" or quantity_bricks >= HOT_QUANTITY:
        return "hot"
    if quantity_bricks >= WARM_QUANTITY or urgency == "flexible":
        return "warm"
    # only reachable if an urgency other than immediate/flexible is ever introduced
    return "normal"


def estimate_price(brick_type: str, quantity_bricks: int) -> Dict[str, int]:
    band_min, band_max = PRICE_PER_BRICK[brick_type]
    return {
        "min": round_half_up(quantity_bricks * band_min),
        "max": round_half_up(quantity_bricks * band_max),
    }


def build_contact_url(customer_name: str, phone_number: str, brick_type: str, quantity_bricks: int,
                      delivery_area: str, lead_priority: str, business_number: str = settings.WHATSAPP_NUMBER) -> str:
    digits = re.sub(r"[^0-9]", "", business_number)
    message = (
        "\U0001F9F1 *New Smart Order Lead*\n\n"
        f"\U0001F464 Name: {customer_name}\n"
        f"\U0001F4DE Phone: {phone_number}\n"
        f"\U0001F9F1 Brick Type: {brick_type}\n"
        f"\U0001F4E6 Quantity: {quantity_bricks:,} bricks\n"
        f"\U0001F4CD Delivery Area: {delivery_area}\n"
        f"\U0001F525 Priority: {lead_priority.upper()}"
    )
    return f"https://wa.me/{digits}?text={quote(message, safe=URI_SAFE)}"
