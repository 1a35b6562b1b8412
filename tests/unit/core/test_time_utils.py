"""
Unit tests for timestamp helpers.
"""
import re
from datetime import datetime, timezone

from asset_relocator.core.time_utils import (
    TIMESTAMP_TOKEN_PATTERN,
    new_migration_id,
    parse_timestamp_token,
    timestamp_token,
    utc_isoformat,
)

MOMENT = datetime(2025, 12, 23, 10, 5, 9, 123456, tzinfo=timezone.utc)


def test_timestamp_token_format():
    token = timestamp_token(MOMENT)
    assert token == "2025-12-23-10-05-09"
    assert re.fullmatch(TIMESTAMP_TOKEN_PATTERN, token)


def test_parse_timestamp_token_is_inverse():
    assert parse_timestamp_token("2025-12-23-10-05-09") == MOMENT.replace(microsecond=0)


def test_utc_isoformat_uses_z_suffix():
    assert utc_isoformat(MOMENT) == "2025-12-23T10:05:09.123Z"


def test_new_migration_id():
    assert new_migration_id(MOMENT) == "migration-2025-12-23T10-05-09"
