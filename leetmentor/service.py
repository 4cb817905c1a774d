"""
LeetMentor Service - background coordinator

Owns the process-wide state (activity tracker, ledger, cache, rate
limiter, settings) and dispatches incoming messages to it. Every message
gets exactly one response dictionary, including on the error path.

Message shape:
    {"type": "<name>", "sessionId": "...", "payload": {...}}

Timestamps in payloads are Unix seconds; missing ones default to now.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from leetmentor import __version__
from leetmentor.activity import ActivityTracker
from leetmentor.backend.client import BackendClient
from leetmentor.config import MentorConfig, load_config
from leetmentor.exceptions import ConfigError, HintRequestError, PersistenceError
from leetmentor.hints.models import ContextCollector, PresentationSurface
from leetmentor.hints.orchestrator import HintOrchestrator
from leetmentor.persistence.cache import HintCache, RateLimiter
from leetmentor.persistence.ledger import HintLedger
from leetmentor.persistence.store import MentorStore
from leetmentor.settings import SettingsStore

logger = logging.getLogger(__name__)

Response = dict[str, Any]
Handler = Callable[[dict[str, Any], str | None], Awaitable[Response]]


def _payload(message: dict[str, Any]) -> dict[str, Any]:
    payload = message.get("payload")
    return payload if isinstance(payload, dict) else {}


def _error(code: str, message: str | None = None) -> Response:
    response: Response = {"ok": False, "error": code}
    if message:
        response["message"] = message
    return response


class MentorService:
    """
    Wires the components together and runs the idle-check tick.

    Usage:
        service = MentorService(collector, surface)
        await service.start()
        response = await service.handle_message({"type": "request_hint", "sessionId": "7"})
        await service.stop()
    """

    def __init__(
        self,
        collector: ContextCollector,
        surface: PresentationSurface,
        config: MentorConfig | None = None,
        store: MentorStore | None = None,
        backend: BackendClient | None = None,
    ):
        self.config = config or load_config()
        self.store = store or MentorStore(self.config.db_path)
        self.settings = SettingsStore(self.store)
        self.tracker = ActivityTracker(
            idle_threshold=self.config.idle_threshold_seconds,
            failure_window=self.config.failure_window_seconds,
        )
        self.ledger = HintLedger(self.store, cap=self.config.hint_cap)
        self.cache = HintCache(self.store, ttl=self.config.cache_ttl_seconds)
        self.limiter = RateLimiter(min_interval=self.config.rate_limit_seconds)
        self.backend = backend or BackendClient(timeout=self.config.backend_timeout)
        self.orchestrator = HintOrchestrator(
            collector=collector,
            surface=surface,
            ledger=self.ledger,
            cache=self.cache,
            limiter=self.limiter,
            settings=self.settings,
            backend=self.backend,
            config=self.config,
        )
        self._idle_task: asyncio.Task | None = None

        self._handlers: dict[str, Handler] = {
            "editor_input": self._on_editor_input,
            "run_or_submit_clicked": self._on_submit_click,
            "submission_result": self._on_submission_result,
            "session_closed": self._on_session_closed,
            "request_hint": self._on_request_hint,
            "request_code_snippet": self._on_request_code_snippet,
            "hide_hint_in_page": self._on_hide_hint,
            "reset_hints": self._on_reset_hints,
            "restore_defaults": self._on_restore_defaults,
            "get_settings": self._on_get_settings,
            "update_settings": self._on_update_settings,
            "export_settings": self._on_export_settings,
            "debug_state": self._on_debug_state,
            "ping": self._on_ping,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open the store and start the periodic idle check."""
        try:
            self.store.initialize()
        except PersistenceError as e:
            logger.error(f"Store unavailable, running with in-memory state only: {e}")
        if self._idle_task is None:
            self._idle_task = asyncio.create_task(self._idle_loop(), name="leetmentor-idle-check")
        logger.info("LeetMentor service started")

    async def stop(self) -> None:
        """Stop the idle check and release clients."""
        if self._idle_task is not None:
            self._idle_task.cancel()
            try:
                await self._idle_task
            except asyncio.CancelledError:
                pass
            self._idle_task = None
        await self.backend.close()
        self.store.close()
        logger.info("LeetMentor service stopped")

    async def __aenter__(self) -> "MentorService":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def _idle_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.idle_check_interval)
            self.tracker.check_idle(time.time())

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle_message(
        self,
        message: dict[str, Any] | None,
        sender_session: str | None = None,
    ) -> Response:
        """
        Handle one message and return its response.

        Args:
            message: {"type": ..., "sessionId"?: ..., "payload"?: {...}}
            sender_session: Session the message came from, if any
        """
        if not isinstance(message, dict) or not message.get("type"):
            return _error("bad_message")

        msg_type = message["type"]
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            logger.warning(f"Unknown message type: {msg_type}")
            return _error("unknown_type")

        session_id = message.get("sessionId") or sender_session
        try:
            return await handler(message, str(session_id) if session_id else None)
        except HintRequestError as e:
            return _error(e.code)
        except Exception:
            logger.exception(f"Unhandled error while handling {msg_type}")
            return _error("internal")

    @staticmethod
    def _timestamp(message: dict[str, Any]) -> float:
        ts = _payload(message).get("time")
        return float(ts) if isinstance(ts, (int, float)) else time.time()

    # Activity -----------------------------------------------------------

    async def _on_editor_input(self, message: dict[str, Any], session_id: str | None) -> Response:
        if not session_id:
            return _error("no_tab")
        self.tracker.record_input(session_id, self._timestamp(message))
        return {"ok": True}

    async def _on_submit_click(self, message: dict[str, Any], session_id: str | None) -> Response:
        if not session_id:
            return _error("no_tab")
        self.tracker.record_submit_click(session_id, self._timestamp(message))
        return {"ok": True}

    async def _on_submission_result(self, message: dict[str, Any], session_id: str | None) -> Response:
        if not session_id:
            return _error("no_tab")
        status = _payload(message).get("status")
        try:
            self.tracker.record_submission_result(session_id, status, self._timestamp(message))
        except ValueError:
            return _error("bad_status")
        return {"ok": True, "stuck": self.tracker.is_stuck(session_id)}

    async def _on_session_closed(self, message: dict[str, Any], session_id: str | None) -> Response:
        if not session_id:
            return _error("no_tab")
        return {"ok": True, "removed": self.tracker.remove_session(session_id)}

    # Hints --------------------------------------------------------------

    async def _on_request_hint(self, message: dict[str, Any], session_id: str | None) -> Response:
        request_id = message.get("requestId")
        result = await self.orchestrator.request_hint(session_id, request_id=str(request_id) if request_id else None)
        return result.to_response()

    async def _on_request_code_snippet(self, message: dict[str, Any], session_id: str | None) -> Response:
        result = await self.orchestrator.request_code_excerpt(session_id)
        return result.to_response()

    async def _on_hide_hint(self, message: dict[str, Any], session_id: str | None) -> Response:
        if await self.orchestrator.hide_hint(session_id):
            return {"ok": True}
        return _error("no_content_script")

    async def _on_reset_hints(self, message: dict[str, Any], session_id: str | None) -> Response:
        self.orchestrator.reset()
        return {"ok": True}

    # Settings -----------------------------------------------------------

    async def _on_restore_defaults(self, message: dict[str, Any], session_id: str | None) -> Response:
        settings = self.settings.restore_defaults()
        self.orchestrator.reset()
        return {"ok": True, "settings": settings.to_dict()}

    async def _on_get_settings(self, message: dict[str, Any], session_id: str | None) -> Response:
        return {"ok": True, "settings": self.settings.get().to_dict()}

    async def _on_update_settings(self, message: dict[str, Any], session_id: str | None) -> Response:
        changes = message.get("settings") or {}
        if not isinstance(changes, dict):
            return _error("invalid_settings", "settings must be an object")
        try:
            settings = self.settings.update_from_dict(changes)
        except ConfigError as e:
            return _error("invalid_settings", e.message)
        return {"ok": True, "settings": settings.to_dict()}

    async def _on_export_settings(self, message: dict[str, Any], session_id: str | None) -> Response:
        return {"ok": True, **self.settings.export(self.ledger.snapshot())}

    # Diagnostics --------------------------------------------------------

    async def _on_debug_state(self, message: dict[str, Any], session_id: str | None) -> Response:
        return {
            "ok": True,
            "sessions": self.tracker.snapshot(),
            "hintCounts": self.ledger.snapshot(),
            "cachedHints": len(self.cache),
        }

    async def _on_ping(self, message: dict[str, Any], session_id: str | None) -> Response:
        return {"ok": True, "version": __version__, "ts": time.time()}
