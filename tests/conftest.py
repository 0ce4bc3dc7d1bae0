"""Shared fixtures: in-memory encrypted storage, event bus and a fake GitHub API."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

# Point CONFIG_PATH at an empty temp dir BEFORE anything loads configuration,
# so a developer's real ~/.config/flow-dashboard/config.yaml never leaks in.
_tmp_dir = tempfile.TemporaryDirectory(prefix="pytest_config_")
os.environ["CONFIG_PATH"] = str(Path(_tmp_dir.name) / "config.yaml")

from flow_dashboard.config import Settings  # noqa: E402
from flow_dashboard.services.background_tasks import BackgroundTaskTracker  # noqa: E402
from flow_dashboard.services.credentials import CredentialManager  # noqa: E402
from flow_dashboard.services.events import EventBus  # noqa: E402
from flow_dashboard.services.kv_store import MemoryKeyValueStore  # noqa: E402
from flow_dashboard.services.secure_storage import DeviceFingerprint, SecureStorage  # noqa: E402
from github_fakes import FAST_ITERATIONS, VALID_TOKEN, FakeGitHub, user_payload  # noqa: E402


@pytest.fixture
def fingerprint() -> DeviceFingerprint:
    return DeviceFingerprint(
        user_agent="pytest-agent",
        locale="en_US",
        host="test-host",
        timezone_offset=0,
    )


@pytest.fixture
def substrate() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def storage(substrate: MemoryKeyValueStore, fingerprint: DeviceFingerprint) -> SecureStorage:
    return SecureStorage(substrate, fingerprint, iterations=FAST_ITERATIONS)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def tracker() -> BackgroundTaskTracker:
    return BackgroundTaskTracker()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        storage_path=tmp_path / "storage.json",
        enrichment_batch_delay_seconds=0,
    )


@pytest.fixture
def github() -> FakeGitHub:
    fake = FakeGitHub()
    fake.json("/user", user_payload())
    fake.json("/user/orgs", [{"login": "acme", "id": 100}])
    return fake


@pytest.fixture
def credentials(
    storage: SecureStorage,
    bus: EventBus,
    settings: Settings,
    github: FakeGitHub,
) -> CredentialManager:
    return CredentialManager(storage, bus, settings, transport=github.transport)


@pytest.fixture
async def valid_credentials(credentials: CredentialManager) -> CredentialManager:
    await credentials.set_credential(VALID_TOKEN)
    return credentials
