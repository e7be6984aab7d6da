import re
from datetime import timedelta

import pytest

from sharplook_api.app.core.helpers import (
    add_months,
    calculate_distance,
    calculate_service_charge,
    generate_referral_code,
    generate_transaction_ref,
    generate_verification_token,
    get_date_range,
    mask_email,
    slugify,
)


def test_codes_and_references():
    assert re.fullmatch(r"[A-Z0-9]{8}", generate_referral_code())
    assert re.fullmatch(r"\d{6}", generate_verification_token())
    assert re.fullmatch(r"PAY-\d{13}-[A-Z0-9]{9}", generate_transaction_ref("pay"))


def test_slugify():
    assert slugify("  Nail Care & Spa ") == "nail-care-spa"
    assert slugify("Hair_Styling--Braids") == "hair-styling-braids"


def test_mask_email():
    assert mask_email("johndoe@mail.com") == "j*****e@mail.com"
    assert mask_email("ab@mail.com") == "a***@mail.com"


def test_calculate_distance():
    assert calculate_distance(6.5244, 3.3792, 6.5244, 3.3792) == 0
    assert 9 < calculate_distance(6.5244, 3.3792, 6.6018, 3.3515) < 9.3


@pytest.mark.parametrize(
    "distance, charge",
    [(0, 1000), (5, 1000), (5.1, 2000), (10, 2000), (12, 3000)],
)
def test_service_charge_per_started_block(distance, charge):
    assert calculate_service_charge(distance) == charge


def test_date_ranges():
    start, end = get_date_range("week")
    assert end - start == timedelta(days=7)
    start, _ = get_date_range("day")
    assert (start.hour, start.minute, start.second) == (0, 0, 0)
    with pytest.raises(ValueError):
        get_date_range("decade")


def test_add_months_clamps_day():
    start, _ = get_date_range("day")
    january_31 = start.replace(year=2030, month=1, day=31)
    assert add_months(january_31, 1).day == 28
