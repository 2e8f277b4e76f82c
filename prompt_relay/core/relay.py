"""
Relay orchestration.

Turns a customer question into sanitized completion HTML while enforcing
quotas, caching and request pacing.

Request Flow:
1. Validate - question present and within the length limit
2. Quota - session ceilings first, then IP ceilings
3. Cache - a hit costs no tokens but still counts as an IP request
4. Delay - minimum gap between upstream calls for the same session
5. Enrich and call upstream - failures are wrapped, nothing is recorded
6. Record - session and IP usage, then the cache entry

There is no lock around steps 2-6. Two concurrent identical requests may
both miss the cache and both call upstream, and concurrent requests for
one session may overshoot its ceiling slightly.

Upstream calls for one session are spaced at least
``request_delay_seconds`` apart, including calls that arrive together.
"""

import asyncio
import hashlib
import logging
import secrets
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from prompt_relay.config.loader import RelayConfig
from prompt_relay.sdk.openai_client import CompletionClient

from .cache import ResponseCache
from .enricher import enrich_prompt
from .errors import InvalidInput, MalformedUpstreamResponse, RelayFailed, UpstreamError
from .ledger import QuotaKind, UsageLedger
from .sanitizer import sanitize_html, validate_question

logger = logging.getLogger(__name__)


class RelayService:
    """Per-process relay instance owning the ledger and cache.

    Construct one per application and pass it to the routing layer;
    tests get isolation by building a fresh instance.
    """

    def __init__(
        self,
        config: RelayConfig,
        completion_client: Optional[CompletionClient] = None,
        ledger: Optional[UsageLedger] = None,
        cache: Optional[ResponseCache] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the relay.

        Args:
            config: Validated relay configuration
            completion_client: Upstream client (built from config if omitted)
            ledger: Usage ledger (built from config if omitted)
            cache: Response cache (built from config if omitted)
            clock: Returns the current time in seconds
            sleep: Coroutine used to wait out the inter-request delay
        """
        self.config = config
        self._clock = clock
        self._sleep = sleep
        self.completion_client = completion_client or CompletionClient(
            api_key=config.api_key,
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            presence_penalty=config.presence_penalty,
            frequency_penalty=config.frequency_penalty,
            timeout_seconds=config.request_timeout_seconds,
        )
        self.ledger = ledger or UsageLedger(
            session_limits=config.session_limits,
            ip_limits=config.ip_limits,
            window_seconds=config.window_seconds,
            session_expiry_seconds=config.session_expiry_seconds,
            clock=clock,
        )
        self.cache = cache or ResponseCache(
            cache_duration_seconds=config.cache_duration_seconds,
            clock=clock,
        )
        self._last_call_at: Dict[str, float] = {}
        self._last_cleanup_at = clock()

    async def relay(
        self,
        question: str,
        session_id: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Answer a customer question.

        Args:
            question: Customer question, already through input sanitization
            session_id: Caller's session identifier
            metadata: Optional request metadata; ``ip`` enables IP quotas

        Returns:
            Sanitized completion HTML

        Raises:
            InvalidInput: Question missing, blank or too long
            QuotaExceeded: Session or IP over a ceiling
            RelayFailed: Upstream call failed; ``cause`` holds the reason
        """
        ip = (metadata or {}).get("ip")

        try:
            validate_question(question, self.config.max_question_length)
        except InvalidInput as e:
            logger.warning("Invalid input: session=%s ip=%s reason=%s", session_id, ip, e)
            raise
        if not session_id:
            raise InvalidInput("Invalid input: session id is required")

        self.maybe_cleanup()

        self.ledger.check_quota(session_id, QuotaKind.SESSION)
        if ip:
            self.ledger.check_quota(ip, QuotaKind.IP)

        cached = self.cache.lookup(session_id, question)
        if cached is not None:
            if ip:
                self.ledger.record_usage(ip, 0, QuotaKind.IP, session_id=session_id)
            logger.debug("Cache hit: session=%s", session_id)
            return cached

        await self._enforce_request_delay(session_id)

        prompt_text = enrich_prompt(question)
        try:
            result = await self.completion_client.complete(
                prompt_text,
                model=self.config.model,
                max_tokens=self.config.max_tokens,
            )
        except (UpstreamError, MalformedUpstreamResponse) as e:
            logger.error(
                "Relay failed: kind=%s session=%s ip=%s status=%s",
                type(e).__name__, session_id, ip, getattr(e, "status_code", None),
            )
            raise RelayFailed(e) from e

        response_html = sanitize_html(result.text)

        self.ledger.record_usage(session_id, result.tokens_used, QuotaKind.SESSION)
        if ip:
            self.ledger.record_usage(ip, result.tokens_used, QuotaKind.IP, session_id=session_id)
        self.cache.store(session_id, question, response_html)

        logger.info(
            "Relayed completion: session=%s tokens=%d request_id=%s",
            session_id, result.tokens_used, result.request_id,
        )
        return response_html

    async def _enforce_request_delay(self, session_id: str) -> None:
        """Wait until ``request_delay_seconds`` has passed since the last call.

        The slot is reserved before sleeping, so requests arriving during the
        delay queue up one delay apart.
        """
        now = self._clock()
        last_call = self._last_call_at.get(session_id)
        target = now
        if last_call is not None:
            target = max(now, last_call + self.config.request_delay_seconds)
        self._last_call_at[session_id] = target
        if target > now:
            await self._sleep(target - now)

    def maybe_cleanup(self) -> bool:
        """Expire stale usage and cache entries if the cleanup interval has elapsed.

        Returns:
            True if a cleanup ran
        """
        now = self._clock()
        if now - self._last_cleanup_at < self.config.cleanup_interval_seconds:
            return False

        self._last_cleanup_at = now
        expired_records = self.ledger.expire_stale()
        expired_entries = self.cache.sweep()
        stale_cutoff = now - self.config.session_expiry_seconds
        for session_id in [k for k, t in self._last_call_at.items() if t < stale_cutoff]:
            del self._last_call_at[session_id]
        logger.info(
            "Periodic cleanup: %d usage records, %d cache entries removed",
            expired_records, expired_entries,
        )
        return True

    def clear_session(self, session_id: str) -> None:
        """Drop all usage, cache and pacing state for a session."""
        self.ledger.clear_session(session_id)
        removed = self.cache.clear_session(session_id)
        self._last_call_at.pop(session_id, None)
        logger.info("Cleared session %s (%d cache entries)", session_id, removed)

    @staticmethod
    def generate_session_id(user_identifier: str) -> str:
        """Create an unguessable session id for a user."""
        seed = f"{user_identifier}-{time.time()}-{secrets.token_hex(16)}"
        return hashlib.sha256(seed.encode("utf-8")).hexdigest()

    def get_service_stats(self) -> Dict[str, Any]:
        """Current ledger and cache statistics."""
        snapshot = self.ledger.snapshot()
        return {
            "active_sessions": self.ledger.session_count,
            "tracked_ips": self.ledger.ip_count,
            "cache": self.cache.stats(),
            "rate_limits": [
                {
                    "session_id": session_id,
                    "requests": record["request_count"],
                    "total_tokens": record["total_tokens"],
                    "reset_at": record["window_reset_at"],
                }
                for session_id, record in snapshot["sessions"].items()
            ],
        }
