"""Pytest fixtures for the entire basalt-builder test suite."""

from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest

from basalt.builder.backends import ContainerBackend
from basalt.builder.config import BuilderSettings
from basalt.builder.exceptions import BackendUnavailableError
from basalt.builder.models import BuildLine

BASIC_CONFIG = """
name = "regionals"
port = 8517
languages = ["python3", { name = "java", version = "21" }]
"""


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """A factory fixture that writes a configuration file and its scripts."""

    def _write(
        body: str = BASIC_CONFIG,
        scripts: dict[str, str] | None = None,
        name: str = "basalt.toml",
    ) -> Path:
        for rel_path, content in (scripts or {}).items():
            script_path = tmp_path / rel_path
            script_path.parent.mkdir(parents=True, exist_ok=True)
            script_path.write_text(content)
        config_path = tmp_path / name
        config_path.write_text(body)
        return config_path

    return _write


@pytest.fixture
def settings() -> BuilderSettings:
    """Settings with no environment overrides."""
    return BuilderSettings()


class FakeBackend(ContainerBackend):
    """Records builds and replays a canned list of output lines."""

    name = "fake"

    def __init__(self, lines: list[BuildLine] | None = None, available: bool = True) -> None:
        self.lines = lines or []
        self.available = available
        self.probed = False
        self.builds: list[tuple[bytes, str]] = []

    async def probe(self) -> None:
        self.probed = True
        if not self.available:
            raise BackendUnavailableError("fake backend is offline")

    async def build(self, archive: bytes, tag: str) -> AsyncIterator[BuildLine]:
        self.builds.append((archive, tag))
        for line in self.lines:
            yield line


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend(
        lines=[
            BuildLine("stdout", "Step 1/2 : FROM fedora"),
            BuildLine("stderr", "pulling layer"),
            BuildLine("stdout", "Step 2/2 : COPY . /basalt/"),
        ]
    )
