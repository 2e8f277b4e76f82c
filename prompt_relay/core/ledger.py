"""
Session and IP usage ledger.

Tracks hourly request and token counts per session and per IP address.

Windows reset lazily: every read goes through ``get_usage``, which zeroes
the counters once the current time passes the record's reset time. No
background timer is needed.

Enforcement is a soft ceiling. ``check_quota`` runs before a request and
``record_usage`` after it, so the request that crosses a token ceiling
still completes and the next one is refused.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Set

from prompt_relay.config.loader import QuotaLimits

from .errors import QuotaExceeded

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 3600.0
DEFAULT_SESSION_EXPIRY_SECONDS = 7200.0


class QuotaKind(Enum):
    """Quota dimensions tracked by the ledger."""
    SESSION = "session"
    IP = "ip"


@dataclass
class UsageRecord:
    """Usage counters for one key within the current window."""
    request_count: int
    total_tokens: int
    window_reset_at: float
    last_activity_at: float

    def to_dict(self) -> Dict:
        return {
            "request_count": self.request_count,
            "total_tokens": self.total_tokens,
            "window_reset_at": self.window_reset_at,
            "last_activity_at": self.last_activity_at,
        }


@dataclass
class IPUsageRecord(UsageRecord):
    """Usage counters for an IP, with the sessions seen from it.

    ``sessions`` is a non-owning back-reference used only for cleanup.
    """
    sessions: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data["sessions"] = sorted(self.sessions)
        return data


class UsageLedger:
    """In-memory owner of all session and IP usage records."""

    def __init__(
        self,
        session_limits: QuotaLimits,
        ip_limits: QuotaLimits,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        session_expiry_seconds: float = DEFAULT_SESSION_EXPIRY_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize an empty ledger.

        Args:
            session_limits: Hourly ceilings per session
            ip_limits: Hourly ceilings per IP address
            window_seconds: Length of one quota window
            session_expiry_seconds: Idle time after which a record is dropped
            clock: Returns the current time in seconds
        """
        self.session_limits = session_limits
        self.ip_limits = ip_limits
        self.window_seconds = window_seconds
        self.session_expiry_seconds = session_expiry_seconds
        self._clock = clock
        self._sessions: Dict[str, UsageRecord] = {}
        self._ips: Dict[str, IPUsageRecord] = {}

    def _records(self, kind: QuotaKind) -> Dict:
        return self._sessions if kind == QuotaKind.SESSION else self._ips

    def _limits(self, kind: QuotaKind) -> QuotaLimits:
        return self.session_limits if kind == QuotaKind.SESSION else self.ip_limits

    def get_usage(
        self,
        key: str,
        kind: QuotaKind = QuotaKind.SESSION,
        session_id: Optional[str] = None,
    ) -> UsageRecord:
        """Return the record for ``key``, creating or resetting it as needed.

        Args:
            key: Session id or IP address
            kind: Which map the key belongs to
            session_id: For IP keys, a session to link to the IP

        Returns:
            The live record (mutations are visible to the ledger)
        """
        now = self._clock()
        records = self._records(kind)
        record = records.get(key)

        if record is None:
            record_cls = UsageRecord if kind == QuotaKind.SESSION else IPUsageRecord
            record = record_cls(
                request_count=0,
                total_tokens=0,
                window_reset_at=now + self.window_seconds,
                last_activity_at=now,
            )
            records[key] = record
        elif now > record.window_reset_at:
            record.request_count = 0
            record.total_tokens = 0
            record.window_reset_at = now + self.window_seconds

        record.last_activity_at = now
        if session_id is not None and isinstance(record, IPUsageRecord):
            record.sessions.add(session_id)
        return record

    def check_quota(self, key: str, kind: QuotaKind = QuotaKind.SESSION) -> None:
        """Raise if ``key`` is at or over its request or token ceiling.

        Raises:
            QuotaExceeded: Request count is checked first, then tokens
        """
        record = self.get_usage(key, kind)
        limits = self._limits(kind)

        if record.request_count >= limits.requests_per_hour:
            self._raise_exceeded(key, kind, "requests", record.request_count,
                                 limits.requests_per_hour, record)
        if record.total_tokens >= limits.tokens_per_hour:
            self._raise_exceeded(key, kind, "tokens", record.total_tokens,
                                 limits.tokens_per_hour, record)

    def _raise_exceeded(
        self,
        key: str,
        kind: QuotaKind,
        limit: str,
        current: int,
        maximum: int,
        record: UsageRecord,
    ) -> None:
        wait_seconds = max(0, math.ceil(record.window_reset_at - self._clock()))
        logger.warning(
            "Quota exceeded: kind=%s key=%s limit=%s current=%d max=%d",
            kind.value, key, limit, current, maximum,
        )
        raise QuotaExceeded(
            kind=kind.value,
            key=key,
            limit=limit,
            current=current,
            maximum=maximum,
            reset_at=record.window_reset_at,
            wait_seconds=wait_seconds,
        )

    def record_usage(
        self,
        key: str,
        tokens_used: int,
        kind: QuotaKind = QuotaKind.SESSION,
        session_id: Optional[str] = None,
    ) -> UsageRecord:
        """Count one request and ``tokens_used`` tokens against ``key``."""
        if tokens_used < 0:
            raise ValueError("tokens_used must be >= 0")
        record = self.get_usage(key, kind, session_id=session_id)
        record.request_count += 1
        record.total_tokens += tokens_used
        return record

    def _is_stale(self, record: UsageRecord, now: float) -> bool:
        return now - record.last_activity_at > self.session_expiry_seconds

    def expire_stale(self) -> int:
        """Drop idle records.

        IP records lose references to sessions that no longer exist first,
        and are removed only once no sessions remain and they are idle
        themselves.

        Returns:
            Number of records removed
        """
        now = self._clock()
        removed = 0

        for session_id in [k for k, r in self._sessions.items() if self._is_stale(r, now)]:
            del self._sessions[session_id]
            removed += 1

        for ip in list(self._ips):
            record = self._ips[ip]
            record.sessions.intersection_update(self._sessions)
            if not record.sessions and self._is_stale(record, now):
                del self._ips[ip]
                removed += 1

        if removed:
            logger.info("Expired %d stale usage records", removed)
        return removed

    def clear_session(self, session_id: str) -> None:
        """Forget a session and unlink it from every IP.

        IP records left with no sessions are removed.
        """
        self._sessions.pop(session_id, None)
        for ip in list(self._ips):
            record = self._ips[ip]
            if session_id in record.sessions:
                record.sessions.discard(session_id)
                if not record.sessions:
                    del self._ips[ip]

    def has_record(self, key: str, kind: QuotaKind = QuotaKind.SESSION) -> bool:
        """Whether ``key`` is tracked, without touching its activity time."""
        return key in self._records(kind)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def ip_count(self) -> int:
        return len(self._ips)

    def snapshot(self) -> Dict[str, Dict[str, Dict]]:
        """Plain-dict copy of all records, for stats and debugging."""
        return {
            "sessions": {key: record.to_dict() for key, record in self._sessions.items()},
            "ips": {key: record.to_dict() for key, record in self._ips.items()},
        }
