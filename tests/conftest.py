"""Shared fixtures and fakes for LeetMentor tests."""

import asyncio

import pytest

from leetmentor.backend.client import BackendReply
from leetmentor.config import MentorConfig
from leetmentor.hints.orchestrator import HintOrchestrator
from leetmentor.logging import LogConfig, set_config
from leetmentor.persistence.cache import HintCache, RateLimiter
from leetmentor.persistence.ledger import HintLedger
from leetmentor.persistence.store import MentorStore
from leetmentor.settings import SettingsStore


@pytest.fixture(autouse=True, scope="session")
def _isolated_logs(tmp_path_factory):
    """Keep JSONL logs out of the home directory."""
    set_config(LogConfig(log_dir=tmp_path_factory.mktemp("logs")))


class FakeCollector:
    """Context collector with a scripted number of silent attempts."""

    def __init__(self, context=None, active="tab-1", silent_attempts=0, delay=0.0):
        self.context = context
        self.active = active
        self.silent_attempts = silent_attempts
        self.delay = delay
        self.collect_calls = 0
        self.reinject_calls = 0

    async def collect(self, session_id):
        self.collect_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.collect_calls <= self.silent_attempts:
            return None
        return self.context

    async def reinject(self, session_id):
        self.reinject_calls += 1

    async def active_session(self):
        return self.active


class FakeSurface:
    """Presentation surface that records what it was asked to show."""

    def __init__(self, fail=False):
        self.fail = fail
        self.shown = []
        self.hidden = []

    async def show_hint(self, session_id, display):
        if self.fail:
            raise RuntimeError("content script gone")
        self.shown.append((session_id, display))

    async def hide_hint(self, session_id):
        if self.fail:
            raise RuntimeError("content script gone")
        self.hidden.append(session_id)


class FakeBackend:
    """Backend double returning a fixed reply or raising a fixed error."""

    def __init__(self, hint="Backend hint", snippet="", error=None, delay=0.0):
        self.hint = hint
        self.snippet = snippet
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate(self, server_url, payload, timeout=None):
        self.calls.append(payload)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return BackendReply(hint=self.hint, snippet=self.snippet)

    async def close(self):
        pass


TWO_SUM_CONTEXT = {
    "problemId": "two-sum",
    "snippet": "def twoSum(nums, target):\n    pass",
    "url": "https://leetcode.com/problems/two-sum/",
    "failure": "",
}


@pytest.fixture
def mentor_store(tmp_path):
    """Initialized store in a temporary directory."""
    store = MentorStore(tmp_path / "leetmentor.db")
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def make_orchestrator(mentor_store, tmp_path):
    """Factory building an orchestrator over fresh persistence."""

    def _make(
        collector=None,
        surface=None,
        backend=None,
        consent=False,
        config=None,
    ):
        config = config or MentorConfig(data_dir=tmp_path, rate_limit_seconds=0.0)
        settings = SettingsStore(mentor_store)
        if consent:
            settings.update(allow_send_to_server=True)
        return HintOrchestrator(
            collector=collector or FakeCollector(context=dict(TWO_SUM_CONTEXT)),
            surface=surface or FakeSurface(),
            ledger=HintLedger(mentor_store, cap=config.hint_cap),
            cache=HintCache(mentor_store, ttl=config.cache_ttl_seconds),
            limiter=RateLimiter(min_interval=config.rate_limit_seconds),
            settings=settings,
            backend=backend or FakeBackend(),
            config=config,
        )

    return _make
