"""Tests for the WhatsApp readiness contract."""

from datetime import datetime, timedelta, timezone

import pytest

from outreach_engine.core.integration_contract import evaluate_whatsapp_contract, parse_timestamp

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def contract(**overrides):
    params = dict(
        has_access_token=True,
        has_phone_number_id=True,
        latest_live_verification_ok=True,
        latest_live_verification_at=NOW,
        max_age_days=30,
        now=NOW,
    )
    params.update(overrides)
    return evaluate_whatsapp_contract(**params)


class TestEvaluateWhatsAppContract:
    """Test cases for evaluate_whatsapp_contract."""

    def test_fresh_passed_verification_is_ready(self):
        result = contract()

        assert result.connected is True
        assert result.verified is True
        assert result.test_send_passed is True
        assert result.stale is False
        assert result.ready is True

    def test_verification_older_than_window_is_stale(self):
        result = contract(latest_live_verification_at=NOW - timedelta(days=40))

        assert result.stale is True
        assert result.test_send_passed is False
        assert result.ready is False

    def test_failed_verification_is_not_ready(self):
        result = contract(latest_live_verification_ok=False)

        assert result.stale is False
        assert result.test_send_passed is False
        assert result.ready is False

    @pytest.mark.parametrize("missing", ["has_access_token", "has_phone_number_id"])
    def test_missing_credential_is_not_ready(self, missing):
        result = contract(**{missing: False})

        assert result.test_send_passed is True
        assert result.ready is False

    @pytest.mark.parametrize("timestamp", [None, "", "not-a-date"])
    def test_absent_or_unparseable_timestamp_is_stale(self, timestamp):
        result = contract(latest_live_verification_at=timestamp)

        assert result.stale is True
        assert result.ready is False

    def test_iso_string_with_z_suffix(self):
        at = (NOW - timedelta(days=2)).strftime("%Y-%m-%dT%H:%M:%SZ")

        assert contract(latest_live_verification_at=at).ready is True

    @pytest.mark.parametrize("max_age_days", [0, None, -5])
    def test_max_age_is_normalised(self, max_age_days):
        """Zero and missing fall back to 30 days; negatives are raised to 1 day."""
        at = NOW - timedelta(hours=20)

        assert contract(latest_live_verification_at=at, max_age_days=max_age_days).stale is False

    def test_boundary_is_inclusive(self):
        assert contract(latest_live_verification_at=NOW - timedelta(days=30)).stale is False
        assert contract(latest_live_verification_at=NOW - timedelta(days=30, seconds=1)).stale is True


class TestParseTimestamp:
    """Test cases for parse_timestamp."""

    def test_naive_datetime_is_utc(self):
        parsed = parse_timestamp(datetime(2026, 1, 1, 8, 30))

        assert parsed == datetime(2026, 1, 1, 8, 30, tzinfo=timezone.utc)

    def test_offset_is_converted_to_utc(self):
        parsed = parse_timestamp("2026-01-01T10:30:00+02:00")

        assert parsed == datetime(2026, 1, 1, 8, 30, tzinfo=timezone.utc)

    def test_garbage_returns_none(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(12345) is None
