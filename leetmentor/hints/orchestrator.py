"""
Hint Orchestrator

Runs a hint request through its stages:

    COLLECTING_CONTEXT -> CHECKING_CAP -> CAP_REACHED | FETCHING
    FETCHING -> DELIVERING, or FALLBACK -> DELIVERING
    DELIVERING -> CAP_REACHED if the commit is refused

The ledger is incremented exactly once per delivered hint, after the cap
check and after a deliverable hint exists. A per-problem lock makes the
check-then-commit sequence atomic across concurrent requests.

Backend failures never reach the caller: they degrade to the cache, the
local heuristics and finally a static template. Only a missing session
or missing page context is reported back as an error.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from leetmentor.backend.client import BackendClient
from leetmentor.config import MentorConfig
from leetmentor.exceptions import (
    BackendError,
    ContextUnavailableError,
    HintRequestError,
    LedgerError,
    NoTargetSessionError,
)
from leetmentor.hints.heuristics import STATIC_HINT_TEMPLATE, local_excerpt, local_hint
from leetmentor.hints.models import (
    CAP_REACHED_MESSAGE,
    ContextCollector,
    ExcerptResult,
    HintDisplay,
    HintResult,
    HintSource,
    PresentationSurface,
    ProblemContext,
)
from leetmentor.logging import (
    HintLogEntry,
    hint_logger,
    now_iso,
    redaction_enabled,
    set_request_id,
)
from leetmentor.persistence.cache import HintCache, RateLimiter
from leetmentor.persistence.ledger import HintLedger
from leetmentor.settings import SettingsStore
from leetmentor.state import HintRequestTrace, HintStage

logger = logging.getLogger(__name__)

# Delivered results kept for retried request ids
DELIVERED_MEMORY = 256
CONTEXT_ATTEMPTS = 2


def build_payload(
    context: ProblemContext,
    hint_level: int,
    consent: bool,
    request: str | None = None,
) -> dict[str, Any]:
    """Backend wire payload. The snippet is only included with consent."""
    payload: dict[str, Any] = {
        "problemId": context.problem_id,
        "url": context.url,
        "failure": context.failure,
        "hintLevel": hint_level,
    }
    if consent:
        payload["snippet"] = context.snippet
    if request:
        payload["request"] = request
    return payload


class HintOrchestrator:
    """Single authoritative handler for hint and excerpt requests."""

    def __init__(
        self,
        collector: ContextCollector,
        surface: PresentationSurface,
        ledger: HintLedger,
        cache: HintCache,
        limiter: RateLimiter,
        settings: SettingsStore,
        backend: BackendClient,
        config: MentorConfig | None = None,
    ):
        self.collector = collector
        self.surface = surface
        self.ledger = ledger
        self.cache = cache
        self.limiter = limiter
        self.settings = settings
        self.backend = backend
        self.config = config or MentorConfig()

        self._gates: dict[str, asyncio.Lock] = {}
        self._gate_users: dict[str, int] = {}
        self._delivered: OrderedDict[str, HintResult] = OrderedDict()

    # ------------------------------------------------------------------
    # Session and context
    # ------------------------------------------------------------------

    async def resolve_session(self, session_id: str | None) -> str:
        """
        Use the given session, or ask the collector for the active one.

        Raises:
            NoTargetSessionError: If there is nothing to address
        """
        if session_id:
            return str(session_id)

        try:
            active = await asyncio.wait_for(
                self.collector.active_session(), timeout=self.config.context_timeout
            )
        except asyncio.TimeoutError:
            active = None
        except Exception as e:
            logger.warning(f"Active session lookup failed: {e}")
            active = None

        if not active:
            raise NoTargetSessionError("No session available for this request")
        return str(active)

    async def _ask_collector(self, session_id: str) -> ProblemContext | None:
        try:
            data = await asyncio.wait_for(
                self.collector.collect(session_id), timeout=self.config.context_timeout
            )
        except asyncio.TimeoutError:
            logger.debug(f"Context collector timed out for session {session_id}")
            return None
        except Exception as e:
            logger.warning(f"Context collector failed for session {session_id}: {e}")
            return None

        if isinstance(data, ProblemContext):
            return data.truncated(self.config.snippet_max_chars)
        if not data:
            return None
        return ProblemContext.from_dict(data, snippet_max_chars=self.config.snippet_max_chars)

    async def _reinject(self, session_id: str) -> None:
        try:
            await asyncio.wait_for(
                self.collector.reinject(session_id), timeout=self.config.context_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Re-injection timed out for session {session_id}")
        except Exception as e:
            logger.warning(f"Re-injection failed for session {session_id}: {e}")

    async def collect_context(self, session_id: str) -> ProblemContext:
        """
        Ask the collector for page context, re-injecting once if it is silent.

        Raises:
            ContextUnavailableError: If no context arrived after the retry
        """
        for attempt in range(1, CONTEXT_ATTEMPTS + 1):
            if attempt > 1:
                logger.info(f"No context from session {session_id}, re-injecting collector")
                await self._reinject(session_id)
            context = await self._ask_collector(session_id)
            if context is not None:
                return context

        raise ContextUnavailableError(
            "Context collector did not respond",
            session_id=session_id,
            attempts=CONTEXT_ATTEMPTS,
        )

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    async def _present(self, session_id: str, display: HintDisplay) -> bool:
        try:
            await asyncio.wait_for(
                self.surface.show_hint(session_id, display), timeout=self.config.context_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Presentation surface timed out for session {session_id}")
            return False
        except Exception as e:
            logger.warning(f"Could not show hint in session {session_id}: {e}")
            return False
        return True

    async def hide_hint(self, session_id: str | None = None) -> bool:
        """
        Remove the in-page hint.

        Raises:
            NoTargetSessionError: If there is no session to address
        """
        target = await self.resolve_session(session_id)
        try:
            await asyncio.wait_for(
                self.surface.hide_hint(target), timeout=self.config.context_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"hide_hint timed out for session {target}")
            return False
        except Exception as e:
            logger.warning(f"hide_hint failed for session {target}: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # Fallback chain
    # ------------------------------------------------------------------

    def _local_hint(self, context: ProblemContext, level: int) -> tuple[str, HintSource]:
        hint = local_hint(context.problem_id, context.failure, level)
        if not hint.strip():
            return STATIC_HINT_TEMPLATE, HintSource.TEMPLATE
        return hint, HintSource.LOCAL

    def _fallback(self, context: ProblemContext, level: int) -> tuple[str, HintSource]:
        """Fresh cache entry, then a stale one for the same level, then local heuristics."""
        pid = context.problem_id
        entry = self.cache.get_fresh(pid)
        if entry is not None:
            if entry.level != level:
                logger.info(f"Serving cached level {entry.level} hint for {pid} at level {level}")
            return entry.hint_text, HintSource.CACHE

        entry = self.cache.get_stale(pid)
        if entry is not None and entry.level == level:
            logger.info(f"Serving expired cached hint for {pid}")
            return entry.hint_text, HintSource.CACHE

        return self._local_hint(context, level)

    async def _fetch_hint(
        self,
        context: ProblemContext,
        level: int,
        trace: HintRequestTrace,
    ) -> tuple[str, HintSource]:
        settings = self.settings.get()
        pid = context.problem_id

        if not settings.allow_send_to_server:
            trace.require_transition(HintStage.FALLBACK)
            return self._local_hint(context, level)

        if self.limiter.is_rate_limited(pid):
            logger.info(f"Backend rate limited for {pid}, using cache or local hint")
            trace.require_transition(HintStage.FALLBACK)
            return self._fallback(context, level)

        self.limiter.record_call(pid)
        payload = build_payload(context, level, consent=True)
        try:
            reply = await self.backend.generate(
                settings.server_url, payload, timeout=self.config.backend_timeout
            )
        except BackendError as e:
            logger.warning(f"Backend hint failed for {pid}, falling back: {e.message}")
            trace.require_transition(HintStage.FALLBACK)
            return self._fallback(context, level)

        if not reply.hint:
            logger.warning(f"Backend reply for {pid} had no hint, falling back")
            trace.require_transition(HintStage.FALLBACK)
            return self._fallback(context, level)

        self.cache.put(pid, reply.hint, level=level)
        return reply.hint, HintSource.BACKEND

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _problem_gate(self, problem_id: str) -> AsyncIterator[None]:
        lock = self._gates.setdefault(problem_id, asyncio.Lock())
        self._gate_users[problem_id] = self._gate_users.get(problem_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._gate_users[problem_id] -= 1
            if self._gate_users[problem_id] == 0:
                del self._gate_users[problem_id]
                del self._gates[problem_id]

    def _remember(self, request_id: str, result: HintResult) -> None:
        self._delivered[request_id] = result
        while len(self._delivered) > DELIVERED_MEMORY:
            self._delivered.popitem(last=False)

    async def _cap_reached(
        self,
        session_id: str,
        problem_id: str,
        count: int,
        cap: int,
        trace: HintRequestTrace,
    ) -> HintResult:
        trace.require_transition(HintStage.CAP_REACHED)
        await self._present(
            session_id,
            HintDisplay(hint_text=CAP_REACHED_MESSAGE, level=cap, ask_for_code=True),
        )
        trace.require_transition(HintStage.DONE)
        return HintResult(
            problem_id=problem_id,
            hint="",
            level=cap,
            count=count,
            cap=cap,
            ask_for_code=True,
            request_id=trace.request_id,
        )

    async def _run_hint(
        self,
        session_id: str,
        context: ProblemContext,
        trace: HintRequestTrace,
        retry_key: str | None,
    ) -> HintResult:
        pid = context.problem_id

        if retry_key and retry_key in self._delivered:
            logger.info(f"Request {retry_key} already delivered, returning previous result")
            return self._delivered[retry_key]

        reservation = self.ledger.try_reserve_next(pid)
        if reservation.cap_reached:
            return await self._cap_reached(session_id, pid, reservation.count, reservation.cap, trace)

        trace.require_transition(HintStage.FETCHING)
        hint_text, source = await self._fetch_hint(context, reservation.level, trace)

        trace.require_transition(HintStage.DELIVERING)
        try:
            count = self.ledger.commit_increment(pid)
        except LedgerError as e:
            # Stored count caught up with the cap while the hint was being fetched
            logger.warning(f"Discarding fetched hint for {pid}: {e.message}")
            return await self._cap_reached(session_id, pid, e.count, e.cap, trace)
        await self._present(session_id, HintDisplay(hint_text=hint_text, level=reservation.level))

        result = HintResult(
            problem_id=pid,
            hint=hint_text,
            level=reservation.level,
            count=count,
            cap=reservation.cap,
            source=source,
            request_id=trace.request_id,
        )
        if retry_key:
            self._remember(retry_key, result)
        trace.require_transition(HintStage.DONE)
        return result

    async def request_hint(
        self,
        session_id: str | None = None,
        request_id: str | None = None,
    ) -> HintResult:
        """
        Produce the next hint for the problem open in a session.

        Args:
            session_id: Target session; the active one if None
            request_id: Caller id for retries; a repeated id never consumes a second slot

        Returns:
            HintResult; ``ask_for_code`` is set and ``hint`` empty once the cap is reached

        Raises:
            NoTargetSessionError: No session to inspect
            ContextUnavailableError: Collector silent after one re-injection
        """
        trace = HintRequestTrace(request_id=request_id) if request_id else HintRequestTrace()
        set_request_id(trace.request_id)
        log_entry = HintLogEntry(timestamp=now_iso(), request_id=trace.request_id, session_id=session_id or "")
        start_time = time.monotonic()
        context: ProblemContext | None = None

        try:
            target = await self.resolve_session(session_id)
            log_entry.session_id = target
            context = await self.collect_context(target)
            trace.require_transition(HintStage.CHECKING_CAP)
            async with self._problem_gate(context.problem_id):
                result = await self._run_hint(target, context, trace, request_id)
        except HintRequestError as e:
            trace.fail(e.code)
            self._log_request(log_entry, trace, start_time, context, error=e)
            raise

        self._log_request(log_entry, trace, start_time, context, result=result)
        return result

    async def request_code_excerpt(self, session_id: str | None = None) -> ExcerptResult:
        """
        Short excerpt of the user's code. Does not consume a hint slot.

        Raises:
            NoTargetSessionError, ContextUnavailableError
        """
        log_entry = HintLogEntry(timestamp=now_iso(), request_id="", session_id=session_id or "", kind="excerpt")
        start_time = time.monotonic()
        context: ProblemContext | None = None
        try:
            target = await self.resolve_session(session_id)
            log_entry.session_id = target
            context = await self.collect_context(target)
        except HintRequestError as e:
            self._log_request(log_entry, None, start_time, context, error=e)
            raise

        result = await self._excerpt(context)
        log_entry.source = result.source.value
        self._log_request(log_entry, None, start_time, context)
        return result

    async def _excerpt(self, context: ProblemContext) -> ExcerptResult:
        pid = context.problem_id
        settings = self.settings.get()
        if settings.allow_send_to_server:
            level = self.ledger.try_reserve_next(pid).level
            payload = build_payload(context, level, consent=True, request="snippet")
            try:
                reply = await self.backend.generate(
                    settings.server_url, payload, timeout=self.config.backend_timeout
                )
            except BackendError as e:
                logger.warning(f"Backend excerpt failed for {pid}, using local excerpt: {e.message}")
            else:
                if reply.snippet.strip():
                    return ExcerptResult(problem_id=pid, snippet=reply.snippet, source=HintSource.BACKEND)
                logger.info(f"Backend returned an empty excerpt for {pid}, using local excerpt")

        return ExcerptResult(
            problem_id=pid,
            snippet=local_excerpt(context.snippet, line_max=self.config.excerpt_line_max),
            source=HintSource.LOCAL,
        )

    def reset(self) -> None:
        """Clear the ledger and the cache. Settings are untouched."""
        self.ledger.reset_all()
        self.cache.clear()
        self._delivered.clear()
        logger.info("Hint ledger and cache cleared")

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def _log_request(
        self,
        entry: HintLogEntry,
        trace: HintRequestTrace | None,
        start_time: float,
        context: ProblemContext | None,
        result: HintResult | None = None,
        error: HintRequestError | None = None,
    ) -> None:
        entry.latency_ms = int((time.monotonic() - start_time) * 1000)
        if trace is not None:
            entry.stages = trace.stage_names()
        if context is not None:
            entry.problem_id = context.problem_id
            entry.url = context.url
            entry.failure = context.failure[:500]
        if result is not None:
            entry.hint_level = result.level
            entry.source = result.source.value if result.source else None
            entry.count_after = result.count
            entry.ask_for_code = result.ask_for_code
        if redaction_enabled():
            entry.redact()

        if error is not None:
            entry.error = error.message
            entry.error_type = type(error).__name__
            hint_logger.warning(entry.to_json())
        else:
            hint_logger.info(entry.to_json())
