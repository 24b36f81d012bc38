"""Pytest fixtures for sockonsole tests."""

from __future__ import annotations

import asyncio
import contextlib
import os
import shutil
import tempfile
from pathlib import Path
from types import SimpleNamespace
from typing import TYPE_CHECKING

import pytest
from hypothesis import Phase, Verbosity, settings

# Unix socket paths are limited to ~104 bytes, so keep the base directory short.
_TEST_BASE_DIR = Path(tempfile.mkdtemp(prefix="sk-", dir="/tmp"))
os.environ["SOCKONSOLE_CONFIG_DIR"] = str(_TEST_BASE_DIR / "config")
os.environ["SOCKONSOLE_RUNTIME_DIR"] = str(_TEST_BASE_DIR / "run")
os.environ.pop("SOCKONSOLE_LOG_LEVEL", None)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Generator

    from sockonsole.config import RelayConfig
    from sockonsole.paths import EndpointPaths


settings.register_profile(
    "ci",
    max_examples=100,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "dev",
    max_examples=20,
    deadline=500,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture
def short_tmp() -> Generator[Path, None, None]:
    """Create a short temp directory for Unix socket paths (macOS 104-byte limit)."""
    d = tempfile.mkdtemp(prefix="sk-", dir="/tmp")
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def endpoint_paths(short_tmp: Path) -> EndpointPaths:
    from sockonsole.paths import EndpointPaths

    return EndpointPaths.in_dir(short_tmp)


@pytest.fixture
def relay_config() -> RelayConfig:
    """A /bin/sh relay with a quiet period that tolerates slow CI runners."""
    from sockonsole.config import RelayConfig

    return RelayConfig(response_timeout=200)


@pytest.fixture
async def running_relay(
    relay_config: RelayConfig,
    endpoint_paths: EndpointPaths,
) -> AsyncGenerator[SimpleNamespace, None]:
    """Start a relay host serving in the background; stop it on teardown."""
    from sockonsole.relay.host import RelayHost

    host = RelayHost(relay_config, paths=endpoint_paths)
    await host.start()
    serve_task = asyncio.create_task(host.serve(), name="test-relay-serve")
    try:
        yield SimpleNamespace(host=host, serve_task=serve_task, paths=endpoint_paths)
    finally:
        host.request_stop()
        with contextlib.suppress(Exception):
            await asyncio.wait_for(serve_task, timeout=10)
        await host.close()


@pytest.fixture(autouse=True)
def _mock_platform_system(monkeypatch, request):
    """Handle @pytest.mark.mock_platform_system("Windows") marker."""
    marker = request.node.get_closest_marker("mock_platform_system")
    if marker:
        target_platform = marker.args[0]
        monkeypatch.setattr("platform.system", lambda: target_platform)
