"""
Endpoint modules for API v1.

Each module defines an ``APIRouter`` for one domain (auth, users,
bookings, payments and so on).  They are aggregated in ``router.py``.
"""
