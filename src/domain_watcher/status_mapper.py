"""
Status mapping for RDAP responses.

Pure functions turning a parsed RDAP response into a lifecycle status and
choosing how soon the domain should be checked again.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from .enums import DomainStatus
from .rdap_client import RDAPParsedFields, extract_expiry

# Minutes until the next check; domains closer to release are polled harder
_CHECK_INTERVALS = {
    DomainStatus.UNKNOWN: 1,
    DomainStatus.PENDING_DELETE: 5,
    DomainStatus.GRACE_PERIOD: 15,
    DomainStatus.REDEMPTION: 15,
    DomainStatus.EXPIRING_SOON: 30,
}

DEFAULT_CHECK_INTERVAL_MINUTES = 60


def parse_rdap_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RDAP event date; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_until(expiry: datetime, now: datetime) -> int:
    """Whole days from ``now`` to ``expiry``, floored (negative once expired)."""
    return math.floor((expiry - now).total_seconds() / 86400)


def map_status(
    parsed: Optional[RDAPParsedFields],
    http_status_code: int,
    expiring_threshold_days: int,
    now: Optional[datetime] = None,
) -> DomainStatus:
    """
    Map an RDAP response to a lifecycle status.

    Rules, first match wins:
        404 -> available; no parsed body -> error; a "redemption" flag ->
        redemption; a "pending delete" flag -> pending_delete; expiry in the
        past -> grace_period; expiry within the threshold -> expiring_soon;
        otherwise registered.
    """
    if http_status_code == 404:
        return DomainStatus.AVAILABLE

    if parsed is None:
        return DomainStatus.ERROR

    flags = [flag.lower() for flag in parsed.status]
    if any("redemption" in flag for flag in flags):
        return DomainStatus.REDEMPTION
    if any("pending delete" in flag for flag in flags):
        return DomainStatus.PENDING_DELETE

    expiry = parse_rdap_date(extract_expiry(parsed))
    if expiry is not None:
        remaining = days_until(expiry, now or datetime.now(timezone.utc))
        if remaining < 0:
            return DomainStatus.GRACE_PERIOD
        if remaining <= expiring_threshold_days:
            return DomainStatus.EXPIRING_SOON

    return DomainStatus.REGISTERED


def next_check_interval_minutes(status: DomainStatus) -> int:
    """
    Minutes until the next check for a status.

    Domains closer to dropping are polled more often; registered, available
    and error domains fall back to the hourly default.
    """
    return _CHECK_INTERVALS.get(status, DEFAULT_CHECK_INTERVAL_MINUTES)
