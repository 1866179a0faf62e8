"""Readiness contract for provider integrations."""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from ..models.core import IntegrationContract

DEFAULT_MAX_AGE_DAYS = 30


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime.

    Returns None for absent or unparseable input.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def evaluate_whatsapp_contract(
    has_access_token: bool,
    has_phone_number_id: bool,
    latest_live_verification_ok: bool,
    latest_live_verification_at: Union[str, datetime, None],
    max_age_days: Optional[int] = DEFAULT_MAX_AGE_DAYS,
    now: Optional[datetime] = None,
) -> IntegrationContract:
    """Compute whether a WhatsApp integration is usable.

    A missing or unparseable verification timestamp always counts as stale.
    The result depends on the current time, so callers recompute it on every
    read instead of caching it.
    """
    connected = bool(has_access_token)
    verified = bool(has_phone_number_id)

    verified_at = parse_timestamp(latest_live_verification_at)
    max_age = timedelta(days=max(1, max_age_days or DEFAULT_MAX_AGE_DAYS))
    current = parse_timestamp(now) or datetime.now(timezone.utc)
    stale = True if verified_at is None else (current - verified_at) > max_age

    test_send_passed = bool(latest_live_verification_ok) and not stale
    return IntegrationContract(
        connected=connected,
        verified=verified,
        test_send_passed=test_send_passed,
        stale=stale,
        ready=connected and verified and test_send_passed,
    )
