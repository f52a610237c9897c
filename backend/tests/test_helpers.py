"""
Helper and validator tests
"""
from datetime import datetime
from types import SimpleNamespace

import pytest

from backend.models.partner import PartnerStatus
from backend.utils.helpers import (
    UPLOAD_KEY_ALPHABET,
    clean_text,
    generate_upload_key,
    parse_iso_datetime,
    sort_by_status,
    status_rank,
)
from backend.utils.validators import (
    commission_for,
    validate_comment_content,
    validate_commission,
    validate_partner_name,
    validate_totp_code,
)


# ===================== UPLOAD KEYS =====================


def test_upload_key_length_and_alphabet():
    for _ in range(200):
        key = generate_upload_key()
        assert key != ""
        assert len(key) == 32
        assert set(key) <= set(UPLOAD_KEY_ALPHABET)


def test_upload_keys_are_unique():
    keys = {generate_upload_key() for _ in range(500)}
    assert len(keys) == 500


# ===================== TEXT / DATES =====================


def test_clean_text():
    assert clean_text("  hi ") == "hi"
    assert clean_text("   ") is None
    assert clean_text(None) is None


@pytest.mark.parametrize("value,expected", [
    ("2024-01-15T10:30:00.000+0000", datetime(2024, 1, 15, 10, 30)),
    ("2024-01-15T12:30:00.000+0200", datetime(2024, 1, 15, 10, 30)),
    ("2024-01-15T10:30:00Z", datetime(2024, 1, 15, 10, 30)),
    ("2024-01-15T10:30:00", datetime(2024, 1, 15, 10, 30)),
])
def test_parse_iso_datetime(value, expected):
    assert parse_iso_datetime(value) == expected


def test_parse_iso_datetime_invalid():
    assert parse_iso_datetime("yesterday") is None
    assert parse_iso_datetime(None) is None


# ===================== STATUS ORDER =====================


def test_sort_by_status_live_first():
    partners = [
        SimpleNamespace(name="d", partner_status=PartnerStatus.INACTIVE),
        SimpleNamespace(name="c", partner_status=PartnerStatus.PRE_SALES),
        SimpleNamespace(name="a", partner_status=PartnerStatus.LIVE),
        SimpleNamespace(name="b", partner_status=PartnerStatus.IN_PROGRESS),
    ]
    assert [p.name for p in sort_by_status(partners)] == ["a", "b", "c", "d"]


def test_status_rank_accepts_plain_strings():
    assert status_rank("LIVE") == 0
    assert status_rank("UNKNOWN") == 4


# ===================== VALIDATORS =====================


def test_validate_partner_name():
    assert validate_partner_name("  Acme ") == "Acme"
    with pytest.raises(ValueError):
        validate_partner_name("  ")
    with pytest.raises(ValueError):
        validate_partner_name(None)


def test_validate_commission_bounds():
    assert validate_commission(0) == 0
    assert validate_commission(100) == 100
    assert validate_commission(None) is None
    with pytest.raises(ValueError):
        validate_commission(-1)
    with pytest.raises(ValueError):
        validate_commission(101)


def test_commission_for_affiliates_only():
    assert commission_for("AFFILIATE", 15) == 15
    assert commission_for("BROKER", 15) is None
    assert commission_for(None, 15) is None


def test_validate_comment_content():
    assert validate_comment_content("  hi  ") == "hi"
    with pytest.raises(ValueError):
        validate_comment_content("")


def test_validate_totp_code():
    assert validate_totp_code(" 123456 ") == "123456"
    with pytest.raises(ValueError):
        validate_totp_code(None)
