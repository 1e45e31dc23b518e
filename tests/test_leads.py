import itertools
from urllib.parse import parse_qs, urlparse

import pytest

from errors import AppError
from leads import build_contact_url, classify_lead, estimate_price, normalize_quantity, round_half_up


def test_round_half_up_never_rounds_to_even():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4999) == 2


def test_trolleys_are_converted_to_bricks():
    assert normalize_quantity("trolleys", 2) == (6000, 2.0)
    assert normalize_quantity("trolleys", 0.5) == (1500, 0.5)


def test_brick_counts_are_rounded_and_trolleys_derived():
    bricks, trolleys = normalize_quantity("bricks", 4500.5)
    assert bricks == 4501
    assert trolleys == pytest.approx(4501 / 3000)


@pytest.mark.parametrize("value", [0, 0.2, -10])
def test_quantity_rounding_to_zero_is_rejected(value):
    with pytest.raises(AppError) as exc:
        normalize_quantity("bricks", value)
    assert exc.value.status_code == 400


@pytest.mark.parametrize("unit,value", [("trolleys", 1e306), ("bricks", 1e20), ("bricks", float("inf")), ("bricks", 10_000_001)])
def test_oversized_quantity_is_rejected(unit, value):
    with pytest.raises(AppError) as exc:
        normalize_quantity(unit, value)
    assert exc.value.status_code == 400
    assert exc.value.message == "Requested quantity is invalid"


def test_largest_order_is_accepted():
    assert normalize_quantity("bricks", 10_000_000) == (10_000_000, 10_000_000 / 3000)


def test_unknown_unit_is_rejected():
    with pytest.raises(AppError):
        normalize_quantity("tonnes", 3)


@pytest.mark.parametrize(
    "brick_type,bricks,urgency,expected",
    [
        ("Avval", 100, "flexible", "hot"),
        ("Rora", 100, "immediate", "hot"),
        ("Second", 15000, "flexible", "hot"),
        ("Second", 14999, "flexible", "warm"),
        ("Rora", 6000, "flexible", "warm"),
        ("Rora", 10, "flexible", "warm"),
    ],
)
def test_classify_lead(brick_type, bricks, urgency, expected):
    assert classify_lead(brick_type, bricks, urgency) == expected


def test_normal_priority_is_unreachable_with_current_urgencies():
    grid = itertools.product(["Avval", "Second", "Rora"], [1, 5999, 6000, 14999, 15000], ["immediate", "flexible"])
    assert {classify_lead(*combo) for combo in grid} == {"hot", "warm"}
    assert classify_lead("Second", 10, "someday") == "normal"


def test_estimate_price_bands():
    assert estimate_price("Avval", 1000) == {"min": 8500, "max": 9500}
    assert estimate_price("Second", 5000) == {"min": 32500, "max": 37500}
    assert estimate_price("Rora", 3) == {"min": 11, "max": 14}


def test_contact_url_targets_business_number():
    url = build_contact_url("Ravi Kumar", "98765 43210", "Avval", 12000, "Sector 5", "hot",
                            business_number="+91 98765 43210")
    parsed = urlparse(url)
    assert parsed.netloc == "wa.me"
    assert parsed.path == "/919876543210"
    text = parse_qs(parsed.query)["text"][0]
    assert "Name: Ravi Kumar" in text
    assert "Quantity: 12,000 bricks" in text
    assert "Priority: HOT" in text
    assert " " not in parsed.query
