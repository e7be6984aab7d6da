"""
Small, dependency free helpers shared by the services.
"""

import calendar
import hashlib
import math
import re
import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from .config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return utcnow().isoformat()


def to_iso(value: datetime) -> str:
    """Serialise a datetime as UTC ISO-8601; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)


def add_months(value: datetime, months: int) -> datetime:
    """Shift ``value`` by calendar months, clamping the day to the month end."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def get_date_range(period: str) -> Tuple[datetime, datetime]:
    """Return ``(start, now)`` for ``day``, ``week``, ``month`` or ``year``."""
    now = utcnow()
    if period == "day":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elif period == "week":
        start = now - timedelta(days=7)
    elif period == "month":
        start = add_months(now, -1)
    elif period == "year":
        start = add_months(now, -12)
    else:
        raise ValueError(f"Unknown period: {period}")
    return start, now


def generate_referral_code(length: int = 8) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_verification_token() -> str:
    """Six digit numeric code sent by email."""
    return f"{secrets.randbelow(900000) + 100000}"


def generate_reset_token() -> str:
    return secrets.token_hex(32)


def hash_string(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def generate_transaction_ref(prefix: str = "TXN") -> str:
    """Unique reference such as ``PAY-1700000000000-A1B2C3D4E``."""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(9))
    return f"{prefix.upper()}-{millis}-{suffix}"


def slugify(text: str) -> str:
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


def mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    if len(local) <= 2:
        return f"{local[0]}***@{domain}" if local else email
    return f"{local[0]}{'*' * (len(local) - 2)}{local[-1]}@{domain}"


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great circle distance in kilometres (haversine), rounded to 2 dp."""
    radius = 6371
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(radius * c, 2)


def calculate_service_charge(distance_km: float) -> float:
    """Travel charge for a home service.

    Up to the base distance the base charge applies; every started block
    of base distance beyond it adds another base charge.
    """
    base_distance = settings.base_distance_km
    base_charge = settings.base_charge
    if distance_km <= base_distance:
        return base_charge
    extra_blocks = math.ceil((distance_km - base_distance) / base_distance)
    return base_charge + extra_blocks * base_charge
