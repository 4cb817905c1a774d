"""Tests for the hint orchestrator."""

import asyncio

import httpx
import pytest

from conftest import TWO_SUM_CONTEXT, FakeBackend, FakeCollector, FakeSurface
from leetmentor.backend.client import BackendClient, BackendReply
from leetmentor.config import MentorConfig
from leetmentor.exceptions import (
    BackendTimeoutError,
    BackendUnreachableError,
    ContextUnavailableError,
    NoTargetSessionError,
)
from leetmentor.hints.heuristics import HINT_RULES, STARTER_FRAGMENT
from leetmentor.hints.models import CAP_REACHED_MESSAGE, HintSource, ProblemContext
from leetmentor.hints.orchestrator import build_payload

HASH_MAP_TEXTS = HINT_RULES[0].texts


class TestBuildPayload:
    """Tests for the backend wire payload."""

    def test_snippet_only_with_consent(self):
        """Code is only attached when the user allowed it."""
        context = ProblemContext(problem_id="two-sum", snippet="code", url="u", failure="f")
        assert "snippet" not in build_payload(context, 1, consent=False)
        payload = build_payload(context, 2, consent=True)
        assert payload == {
            "problemId": "two-sum",
            "url": "u",
            "failure": "f",
            "hintLevel": 2,
            "snippet": "code",
        }

    def test_request_kind(self):
        """Excerpt requests are tagged."""
        context = ProblemContext(problem_id="p")
        assert build_payload(context, 1, consent=True, request="snippet")["request"] == "snippet"


class TestEscalation:
    """Tests for leveled hints and the cap."""

    @pytest.mark.asyncio
    async def test_two_sum_local_escalation(self, make_orchestrator):
        """Consent off: three escalating local hints, then ask for code."""
        orch = make_orchestrator()

        results = [await orch.request_hint("tab-1") for _ in range(4)]

        assert [r.hint for r in results[:3]] == list(HASH_MAP_TEXTS)
        assert [r.count for r in results] == [1, 2, 3, 3]
        assert [r.level for r in results[:3]] == [1, 2, 3]
        assert all(r.source is HintSource.LOCAL for r in results[:3])

        capped = results[3]
        assert capped.ask_for_code
        assert capped.hint == ""
        assert orch.ledger.get_count("two-sum") == 3
        assert orch.backend.calls == []

    @pytest.mark.asyncio
    async def test_cap_reached_response(self, make_orchestrator):
        """The capped response carries the ask_for_code action."""
        orch = make_orchestrator()
        for _ in range(3):
            await orch.request_hint("tab-1")

        response = (await orch.request_hint("tab-1")).to_response()

        assert response["ok"] is True
        assert response["action"] == "ask_for_code"
        assert response["remaining"] == 0
        assert response["hint"] == ""

    @pytest.mark.asyncio
    async def test_cap_reached_shows_message(self, make_orchestrator):
        """The surface is told the limit was reached."""
        surface = FakeSurface()
        orch = make_orchestrator(surface=surface)
        for _ in range(4):
            await orch.request_hint("tab-1")

        session_id, display = surface.shown[-1]
        assert session_id == "tab-1"
        assert display.hint_text == CAP_REACHED_MESSAGE
        assert display.ask_for_code

    @pytest.mark.asyncio
    async def test_cap_makes_no_backend_call(self, make_orchestrator):
        """Once capped, the backend is not contacted."""
        backend = FakeBackend()
        orch = make_orchestrator(backend=backend, consent=True)
        for _ in range(3):
            await orch.request_hint("tab-1")
        calls = len(backend.calls)

        result = await orch.request_hint("tab-1")

        assert result.ask_for_code
        assert len(backend.calls) == calls

    @pytest.mark.asyncio
    async def test_remaining(self, make_orchestrator):
        """Remaining counts down to zero."""
        orch = make_orchestrator()
        remaining = [(await orch.request_hint("tab-1")).remaining for _ in range(3)]
        assert remaining == [2, 1, 0]

    @pytest.mark.asyncio
    async def test_concurrent_requests_respect_cap(self, make_orchestrator):
        """Parallel requests for one problem never exceed the cap."""
        orch = make_orchestrator(backend=FakeBackend(delay=0.01), consent=True)

        results = await asyncio.gather(*(orch.request_hint("tab-1") for _ in range(6)))

        delivered = [r for r in results if not r.ask_for_code]
        assert len(delivered) == 3
        assert sorted(r.level for r in delivered) == [1, 2, 3]
        assert orch.ledger.get_count("two-sum") == 3

    @pytest.mark.asyncio
    async def test_retry_with_same_request_id(self, make_orchestrator):
        """A retried request id returns the same result without a new slot."""
        orch = make_orchestrator()

        first = await orch.request_hint("tab-1", request_id="req-1")
        second = await orch.request_hint("tab-1", request_id="req-1")

        assert second is first
        assert orch.ledger.get_count("two-sum") == 1

    @pytest.mark.asyncio
    async def test_reset_is_idempotent(self, make_orchestrator):
        """Two resets leave an empty ledger and the next hint is level 1."""
        orch = make_orchestrator()
        await orch.request_hint("tab-1")
        await orch.request_hint("tab-1")

        orch.reset()
        orch.reset()

        assert orch.ledger.snapshot() == {}
        result = await orch.request_hint("tab-1")
        assert result.level == 1
        assert result.count == 1


class TestBackendPath:
    """Tests for backend use and fallback."""

    @pytest.mark.asyncio
    async def test_backend_hint_with_consent(self, make_orchestrator):
        """With consent the backend hint is used and cached."""
        backend = FakeBackend(hint="Try a dictionary.")
        orch = make_orchestrator(backend=backend, consent=True)

        result = await orch.request_hint("tab-1")

        assert result.hint == "Try a dictionary."
        assert result.source is HintSource.BACKEND
        assert backend.calls[0]["hintLevel"] == 1
        assert backend.calls[0]["snippet"] == TWO_SUM_CONTEXT["snippet"]
        assert orch.cache.get_fresh("two-sum").hint_text == "Try a dictionary."

    @pytest.mark.asyncio
    async def test_consent_off_never_calls_backend(self, make_orchestrator):
        """Turning consent off stops all backend traffic."""
        backend = FakeBackend()
        orch = make_orchestrator(backend=backend, consent=True)
        await orch.request_hint("tab-1")
        orch.settings.update(allow_send_to_server=False)

        result = await orch.request_hint("tab-1")

        assert len(backend.calls) == 1
        assert result.source is HintSource.LOCAL
        assert result.hint == HASH_MAP_TEXTS[1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            BackendUnreachableError("HTTP 500", status_code=500),
            BackendTimeoutError("slow", timeout_seconds=9.0),
        ],
    )
    async def test_backend_failure_falls_back(self, make_orchestrator, error):
        """Backend failures give a local hint and still count."""
        orch = make_orchestrator(backend=FakeBackend(error=error), consent=True)

        result = await orch.request_hint("tab-1")

        assert result.source is HintSource.LOCAL
        assert result.hint == HASH_MAP_TEXTS[0]
        assert result.count == 1

    @pytest.mark.asyncio
    async def test_http_500_from_real_client(self, make_orchestrator):
        """A 500 from the server is absorbed end to end."""
        client = BackendClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        orch = make_orchestrator(backend=client, consent=True)
        try:
            result = await orch.request_hint("tab-1")
        finally:
            await client.close()

        assert result.source is HintSource.LOCAL
        assert result.hint.strip()

    @pytest.mark.asyncio
    async def test_timeout_from_real_client(self, make_orchestrator, tmp_path):
        """A hanging server is cut off by the backend timeout."""

        async def handler(request):
            await asyncio.sleep(2)
            return httpx.Response(200, json={"hint": "too late"})

        client = BackendClient(transport=httpx.MockTransport(handler))
        config = MentorConfig(data_dir=tmp_path, rate_limit_seconds=0.0, backend_timeout=0.05)
        orch = make_orchestrator(backend=client, consent=True, config=config)
        try:
            result = await orch.request_hint("tab-1")
        finally:
            await client.close()

        assert result.source is HintSource.LOCAL
        assert result.count == 1

    @pytest.mark.asyncio
    async def test_empty_backend_hint_falls_back(self, make_orchestrator):
        """A reply without a hint is treated as a failure."""
        orch = make_orchestrator(backend=FakeBackend(hint=""), consent=True)
        result = await orch.request_hint("tab-1")
        assert result.source is HintSource.LOCAL

    @pytest.mark.asyncio
    async def test_cached_hint_used_on_failure(self, make_orchestrator):
        """A cached hint for the same level beats the local rules."""
        orch = make_orchestrator(
            backend=FakeBackend(error=BackendUnreachableError("down")), consent=True
        )
        orch.cache.put("two-sum", "Cached level one hint", level=1)

        result = await orch.request_hint("tab-1")

        assert result.source is HintSource.CACHE
        assert result.hint == "Cached level one hint"

    @pytest.mark.asyncio
    async def test_expired_hint_for_other_level_ignored(self, make_orchestrator):
        """An expired cached hint is not replayed at a different level."""
        orch = make_orchestrator(
            backend=FakeBackend(error=BackendUnreachableError("down")), consent=True
        )
        orch.cache.put("two-sum", "Cached level two hint", now=0.0, level=2)

        result = await orch.request_hint("tab-1")

        assert result.source is HintSource.LOCAL

    @pytest.mark.asyncio
    async def test_rate_limited_skips_backend(self, make_orchestrator, tmp_path):
        """A second request inside the interval does not hit the backend."""
        backend = FakeBackend()
        config = MentorConfig(data_dir=tmp_path, rate_limit_seconds=15.0)
        orch = make_orchestrator(backend=backend, consent=True, config=config)

        first = await orch.request_hint("tab-1")
        second = await orch.request_hint("tab-1")

        assert first.source is HintSource.BACKEND
        assert second.source is HintSource.CACHE
        assert second.hint == first.hint
        assert len(backend.calls) == 1
        assert orch.ledger.get_count("two-sum") == 2

    @pytest.mark.asyncio
    async def test_backend_hint_replayed_when_backend_times_out(self, make_orchestrator):
        """The last backend hint is served from the cache when the next call times out."""
        backend = FakeBackend(hint="Try a dictionary.")
        orch = make_orchestrator(backend=backend, consent=True)

        first = await orch.request_hint("tab-1")
        backend.error = BackendTimeoutError("slow", timeout_seconds=9.0)
        second = await orch.request_hint("tab-1")

        assert first.source is HintSource.BACKEND
        assert second.source is HintSource.CACHE
        assert second.hint == "Try a dictionary."
        assert second.level == 2
        assert orch.ledger.get_count("two-sum") == 2

    @pytest.mark.asyncio
    async def test_cap_filled_during_fetch(self, make_orchestrator):
        """A hint fetched after the cap filled up is dropped for the cap message."""
        surface = FakeSurface()
        backend = FakeBackend()
        orch = make_orchestrator(backend=backend, surface=surface, consent=True)

        async def generate(server_url, payload, timeout=None):
            for _ in range(orch.config.hint_cap):
                orch.ledger.commit_increment("two-sum")
            return BackendReply(hint="late")

        backend.generate = generate
        result = await orch.request_hint("tab-1")

        assert result.ask_for_code
        assert result.hint == ""
        assert result.count == 3
        assert surface.shown[-1][1].hint_text == CAP_REACHED_MESSAGE
        assert orch.ledger.get_count("two-sum") == 3


class TestSessionAndContext:
    """Tests for session resolution and context collection."""

    @pytest.mark.asyncio
    async def test_active_session_used(self, make_orchestrator):
        """Without a session id the active session is asked."""
        surface = FakeSurface()
        orch = make_orchestrator(
            collector=FakeCollector(context=dict(TWO_SUM_CONTEXT), active="tab-7"), surface=surface
        )
        await orch.request_hint()
        assert surface.shown[0][0] == "tab-7"

    @pytest.mark.asyncio
    async def test_no_session(self, make_orchestrator):
        """No addressable session is a no_tab error."""
        orch = make_orchestrator(collector=FakeCollector(context=dict(TWO_SUM_CONTEXT), active=None))
        with pytest.raises(NoTargetSessionError) as exc_info:
            await orch.request_hint()
        assert exc_info.value.code == "no_tab"

    @pytest.mark.asyncio
    async def test_reinject_once(self, make_orchestrator):
        """A silent collector is re-injected once and then answers."""
        collector = FakeCollector(context=dict(TWO_SUM_CONTEXT), silent_attempts=1)
        orch = make_orchestrator(collector=collector)

        result = await orch.request_hint("tab-1")

        assert collector.reinject_calls == 1
        assert collector.collect_calls == 2
        assert result.count == 1

    @pytest.mark.asyncio
    async def test_no_context_after_retry(self, make_orchestrator):
        """Still silent after re-injection is a no_context error; nothing is counted."""
        collector = FakeCollector(context=dict(TWO_SUM_CONTEXT), silent_attempts=5)
        orch = make_orchestrator(collector=collector)

        with pytest.raises(ContextUnavailableError) as exc_info:
            await orch.request_hint("tab-1")

        assert exc_info.value.code == "no_context"
        assert collector.reinject_calls == 1
        assert orch.ledger.snapshot() == {}

    @pytest.mark.asyncio
    async def test_collector_timeout(self, make_orchestrator, tmp_path):
        """A collector slower than the context timeout counts as silent."""
        collector = FakeCollector(context=dict(TWO_SUM_CONTEXT), delay=1.0)
        config = MentorConfig(data_dir=tmp_path, rate_limit_seconds=0.0, context_timeout=0.02)
        orch = make_orchestrator(collector=collector, config=config)

        with pytest.raises(ContextUnavailableError):
            await orch.request_hint("tab-1")

    @pytest.mark.asyncio
    async def test_problem_id_from_url(self, make_orchestrator):
        """The URL stands in for a missing problem id."""
        url = "https://leetcode.com/problems/two-sum/"
        orch = make_orchestrator(collector=FakeCollector(context={"url": url}))
        result = await orch.request_hint("tab-1")
        assert result.problem_id == url
        assert result.hint == HASH_MAP_TEXTS[0]

    @pytest.mark.asyncio
    async def test_unknown_problem(self, make_orchestrator):
        """No id and no URL falls back to 'unknown'."""
        orch = make_orchestrator(collector=FakeCollector(context={"failure": "Wrong Answer"}))
        result = await orch.request_hint("tab-1")
        assert result.problem_id == "unknown"

    @pytest.mark.asyncio
    async def test_context_object_snippet_truncated(self, make_orchestrator, tmp_path):
        """Snippets from a collector returning ProblemContext are cut like dict ones."""
        backend = FakeBackend()
        config = MentorConfig(data_dir=tmp_path, rate_limit_seconds=0.0, snippet_max_chars=10)
        collector = FakeCollector(context=ProblemContext(problem_id="two-sum", snippet="x" * 50))
        orch = make_orchestrator(collector=collector, backend=backend, consent=True, config=config)

        await orch.request_hint("tab-1")

        assert backend.calls[0]["snippet"] == "x" * 10

    @pytest.mark.asyncio
    async def test_problem_locks_released(self, make_orchestrator):
        """Per-problem locks are dropped once no request holds them."""
        orch = make_orchestrator(backend=FakeBackend(delay=0.01), consent=True)

        await orch.request_hint("tab-1")
        assert orch._gates == {}

        await asyncio.gather(*(orch.request_hint("tab-1") for _ in range(4)))
        assert orch._gates == {}
        assert orch._gate_users == {}

    @pytest.mark.asyncio
    async def test_surface_failure_still_counts(self, make_orchestrator):
        """A broken presentation surface does not block delivery."""
        orch = make_orchestrator(surface=FakeSurface(fail=True))
        result = await orch.request_hint("tab-1")
        assert result.hint == HASH_MAP_TEXTS[0]
        assert orch.ledger.get_count("two-sum") == 1

    @pytest.mark.asyncio
    async def test_hide_hint(self, make_orchestrator):
        """hide_hint reports whether the surface accepted it."""
        surface = FakeSurface()
        orch = make_orchestrator(surface=surface)
        assert await orch.hide_hint("tab-1") is True
        assert surface.hidden == ["tab-1"]

        surface.fail = True
        assert await orch.hide_hint("tab-1") is False


class TestCodeExcerpt:
    """Tests for code excerpts."""

    @pytest.mark.asyncio
    async def test_local_excerpt(self, make_orchestrator):
        """Consent off: the local excerpt of the user's code."""
        context = dict(TWO_SUM_CONTEXT, snippet="a\nb\n\nc\nd")
        orch = make_orchestrator(collector=FakeCollector(context=context))

        result = await orch.request_code_excerpt("tab-1")

        assert result.snippet == "a\nb\nc"
        assert result.source is HintSource.LOCAL
        assert orch.ledger.snapshot() == {}

    @pytest.mark.asyncio
    async def test_empty_code(self, make_orchestrator):
        """No code gives the starter fragment."""
        orch = make_orchestrator(collector=FakeCollector(context=dict(TWO_SUM_CONTEXT, snippet="")))
        result = await orch.request_code_excerpt("tab-1")
        assert result.snippet == STARTER_FRAGMENT

    @pytest.mark.asyncio
    async def test_backend_excerpt(self, make_orchestrator):
        """With consent the backend excerpt is used and no slot is consumed."""
        backend = FakeBackend(snippet="for i, x in enumerate(nums):")
        orch = make_orchestrator(backend=backend, consent=True)

        result = await orch.request_code_excerpt("tab-1")

        assert result.source is HintSource.BACKEND
        assert result.snippet == "for i, x in enumerate(nums):"
        assert backend.calls[0]["request"] == "snippet"
        assert orch.ledger.snapshot() == {}

    @pytest.mark.asyncio
    async def test_backend_excerpt_failure(self, make_orchestrator):
        """A failing backend falls back to the local excerpt."""
        context = dict(TWO_SUM_CONTEXT, snippet="a\nb\n\nc\nd")
        orch = make_orchestrator(
            collector=FakeCollector(context=context),
            backend=FakeBackend(error=BackendUnreachableError("down")),
            consent=True,
        )
        result = await orch.request_code_excerpt("tab-1")
        assert result.snippet == "a\nb\nc"
        assert result.source is HintSource.LOCAL
