"""Data models shared across the build pipeline."""

import hashlib
from pathlib import PurePosixPath
from typing import Any, Literal

from attrs import define, field

from .languages import BuiltInLanguage

DEFAULT_PORT: int = 8517
DEFAULT_FILE_MODE: int = 0o644


@define(frozen=True, slots=True)
class LanguageSpec:
    """A language entry from the configuration.

    Built-in languages carry a ``builtin`` member; external languages only
    carry their raw build/run commands and contribute nothing to the base
    install or init scripts.
    """

    name: str
    version: str = "latest"
    builtin: BuiltInLanguage | None = None
    build: str | None = None
    run: str | None = None

    @property
    def is_builtin(self) -> bool:
        return self.builtin is not None

    def install_command(self) -> str | None:
        if self.builtin is None:
            return None
        return self.builtin.install_command(self.version)

    def init_command(self) -> str | None:
        if self.builtin is None:
            return None
        return self.builtin.init_command(self.version)


@define(frozen=True, slots=True)
class SetupBlock:
    install: str | None = None
    init: str | None = None


@define(frozen=True, slots=True)
class Integrations:
    event_handlers: tuple[PurePosixPath, ...] = ()
    webhooks: tuple[dict[str, Any], ...] = ()

    @property
    def needs_scripting(self) -> bool:
        return bool(self.event_handlers)

    @property
    def needs_webhooks(self) -> bool:
        return bool(self.webhooks)


@define(frozen=True, slots=True)
class BuildConfig:
    """An immutable, parsed competition configuration."""

    languages: tuple[LanguageSpec, ...]
    raw_text: str = field(repr=False)
    name: str = "basalt"
    setup: SetupBlock | None = None
    web_client: bool = True
    integrations: Integrations = field(factory=Integrations)
    port: int = DEFAULT_PORT

    def hash(self) -> str:
        """Returns an opaque, stable digest of the configuration source."""
        return hashlib.sha256(self.raw_text.encode("utf-8")).hexdigest()[:16]


@define(frozen=True, slots=True)
class ArchiveEntry:
    path: str
    content: bytes = field(repr=False)
    mode: int = DEFAULT_FILE_MODE

    @property
    def size(self) -> int:
        return len(self.content)


@define(frozen=True, slots=True)
class RenderedArtifacts:
    dockerfile: str
    install_script: str
    entrypoint_script: str


@define(frozen=True, slots=True)
class BuildLine:
    """One normalized line of backend output."""

    stream: Literal["stdout", "stderr"]
    text: str
