"""Shared fixtures: an in-memory RemoteSession and target factory."""

import io

import pytest

from artifact_relay.config import DeploymentTarget
from artifact_relay.deploy.transport import CommandResult
from artifact_relay.errors import DeploymentError

# Env vars that pydantic-settings reads -- must be cleaned for default tests
_CONFIG_ENV_VARS = [
    "TASKS", "REMOTE_PATHS", "TARGET_VERSIONS", "TIME_RANGES", "INTERVAL_MINUTES",
    "LOCAL_PATH", "FILE_EXTENSIONS", "FILENAME_INCLUDES", "CHUNK_SIZE",
    "PROGRESS_INTERVAL", "PAUSE_POLL_INTERVAL", "DEPLOY_ENABLED", "SERVERS",
    "POST_COMMANDS", "SSH_CONNECT_TIMEOUT", "VERBOSE", "LOG_LEVEL", "LOG_DIR",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in _CONFIG_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class _RemoteFile(io.BytesIO):
    def __init__(self, session, path):
        super().__init__()
        self._session = session
        self._path = path

    def close(self):
        if not self.closed:
            self._session.files[self._path] = self.getvalue()
        super().close()


class FakeSession:
    """In-memory stand-in for ParamikoSession."""

    def __init__(self, name, existing=(), exit_codes=None):
        self.name = name
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = set(existing)
        self.commands: list[str] = []
        self.exit_codes = exit_codes or {}
        self.closed = False

    def exists(self, path):
        return path in self.dirs or path in self.files

    def makedirs(self, path):
        self.dirs.add(path)

    def open_write(self, path):
        return _RemoteFile(self, path)

    def execute(self, command, timeout=None):
        self.commands.append(command)
        code = self.exit_codes.get(command, 0)
        return CommandResult(exit_status=code, stdout=f"ran {command}", stderr="")

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class FakeConnector:
    """Connector that hands out FakeSessions; ids in ``fail`` are refused."""

    def __init__(self, fail=(), existing=(), exit_codes=None):
        self.fail = set(fail)
        self.existing = existing
        self.exit_codes = exit_codes
        self.sessions: dict[str, FakeSession] = {}
        self.calls: list[str] = []

    def __call__(self, target, timeout):
        self.calls.append(target.id)
        if target.id in self.fail:
            raise DeploymentError("Authentication failed", target.name)
        session = FakeSession(target.name, self.existing, self.exit_codes)
        self.sessions[target.id] = session
        return session


def make_target(target_id="1", **kwargs) -> DeploymentTarget:
    defaults = {
        "id": target_id,
        "name": f"server-{target_id}",
        "host": f"10.0.0.{target_id}",
        "user": "deploy",
        "password": "secret",
        "remote_path": "/opt/builds",
    }
    defaults.update(kwargs)
    return DeploymentTarget(**defaults)


@pytest.fixture
def connector():
    return FakeConnector()
