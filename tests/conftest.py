import os
import sys
from pathlib import Path

import pytest

# Ensure the src directory is on the path for imports
root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(root / "src"))

log_dir = root / "logs"
log_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("SPHEREBOT_LOG_DIR", str(log_dir))
os.environ.setdefault("SPHEREBOT_CONFIG_DIR", str(root / "logs" / "config"))

from spherebot.db.connect import initialize_db, make_engine, make_session_factory  # noqa: E402
from spherebot.db.mappings import MappingStore  # noqa: E402
from spherebot.errors import DeliveryFailure  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLLM:
    """In-memory stand-in for :class:`AnythingLLMClient`."""

    def __init__(self, workspaces=("all", "docs"), reply="", errors=None) -> None:
        self.workspaces = list(workspaces)
        self.reply = reply
        self.errors = dict(errors or {})
        self.calls: list[tuple] = []
        self._threads = 0

    def _maybe_raise(self, name: str) -> None:
        error = self.errors.get(name)
        if error is not None:
            raise error

    def list_workspaces(self):
        self.calls.append(("list_workspaces",))
        self._maybe_raise("list_workspaces")
        return list(self.workspaces)

    def create_thread(self, workspace):
        self.calls.append(("create_thread", workspace))
        self._maybe_raise("create_thread")
        self._threads += 1
        return f"thread-{self._threads}"

    def chat(self, workspace, thread_id, text):
        self.calls.append(("chat", workspace, thread_id, text))
        self._maybe_raise("chat")
        return self.reply

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class FakeMessenger:
    """Records Slack calls; ``fail_posts`` holds post indexes that raise."""

    def __init__(self, fail_posts=(), history=None) -> None:
        self.posts: list[dict] = []
        self.updates: list[dict] = []
        self.deletes: list[tuple[str, str]] = []
        self.fail_posts = set(fail_posts)
        self.history = list(history or [])
        self._attempts = 0

    def post(self, channel, thread_ts, fallback_text, blocks=None):
        attempt = self._attempts
        self._attempts += 1
        if attempt in self.fail_posts:
            raise DeliveryFailure("post failed", error_code="invalid_blocks")
        self.posts.append(
            {"channel": channel, "thread_ts": thread_ts, "text": fallback_text, "blocks": blocks}
        )
        return f"ts-{attempt}"

    def update(self, channel, ts, text, blocks=None):
        self.updates.append({"channel": channel, "ts": ts, "text": text, "blocks": blocks})

    def delete(self, channel, ts):
        self.deletes.append((channel, ts))

    def thread_replies(self, channel, thread_ts, limit=20):
        return list(self.history)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path}/spherebot.db")
    initialize_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def mapping_store(session_factory):
    return MappingStore(session_factory)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def make_llm():
    return FakeLLM


@pytest.fixture
def make_messenger():
    return FakeMessenger
