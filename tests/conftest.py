import os
import sys
import threading
from unittest.mock import MagicMock

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import pytest

from coderunner.config import Settings
from coderunner.containers import ContainerHandle
from coderunner.demux import STDERR, STDOUT, demux_stream
from coderunner.executor import ExecutionCoordinator


def frame(stream_type: int, payload: bytes) -> bytes:
    return bytes([stream_type, 0, 0, 0]) + len(payload).to_bytes(4, "big") + payload


class FakeSession:
    """Stands in for ExecSession; replays canned frames."""

    def __init__(self, container, command, attach_stdin=False, stdout="", stderr="",
                 exit_code=0, hang=False, block_input=0):
        self.container = container
        self.command = command
        self.attach_stdin = attach_stdin
        self.stdout = stdout
        self.stderr = stderr
        self._exit_code = exit_code
        self.hang = hang
        self.block_input = block_input
        self.started = False
        self.closed = False
        self.sent = []
        self._closed_event = threading.Event()

    def start(self):
        self.started = True

    def send_input(self, text):
        if self.block_input:
            # peer never drains the socket; only close() frees the writer
            self._closed_event.wait(self.block_input)
        self.sent.append(text)

    def collect(self):
        if self.hang:
            self._closed_event.wait(5)
            return "", ""
        chunks = []
        if self.stdout:
            chunks.append(frame(STDOUT, self.stdout.encode()))
        if self.stderr:
            chunks.append(frame(STDERR, self.stderr.encode()))
        return demux_stream(chunks)

    def exit_code(self):
        return self._exit_code

    def close(self):
        self.closed = True
        self._closed_event.set()


class SessionFactory:
    def __init__(self, **behaviour):
        self.behaviour = behaviour
        self.sessions = []

    def __call__(self, container, command, attach_stdin=False):
        session = FakeSession(container, command, attach_stdin, **self.behaviour)
        self.sessions.append(session)
        return session


class FakeManager:
    persistent = False

    def __init__(self, acquire_error=None, release_error=None):
        self.acquire_error = acquire_error
        self.release_error = release_error
        self.acquired = []
        self.released = []

    async def acquire(self, profile):
        if self.acquire_error:
            raise self.acquire_error
        container = MagicMock()
        container.exec_run.return_value = (0, b"")
        handle = ContainerHandle(
            name=f"fake-{profile.name}-{len(self.acquired)}",
            container=container,
            language=profile.name,
            workdir="/tmp/run",
        )
        self.acquired.append(handle)
        return handle

    async def release(self, handle):
        self.released.append(handle)
        if self.release_error:
            raise self.release_error


@pytest.fixture
def settings():
    return Settings(
        RUN_TIME_LIMIT_S=2,
        PROJECT_TIME_LIMIT_S=2,
        TEST_CASE_TIME_LIMIT_S=3,
        STDIN_SETTLE_S=0,
        CONTAINER_SETTLE_S=0,
    )


@pytest.fixture
def manager():
    return FakeManager()


@pytest.fixture
def make_coordinator(settings, manager):
    def _make(**behaviour):
        factory = SessionFactory(**behaviour)
        coordinator = ExecutionCoordinator(manager, settings, session_factory=factory)
        return coordinator, factory

    return _make
