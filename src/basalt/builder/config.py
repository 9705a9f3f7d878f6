"""Loading of competition configuration files and builder settings."""

from collections.abc import Mapping
import os
from pathlib import Path, PurePosixPath
import tomllib
from typing import Any, Self

from attrs import define
from pyvider.telemetry import logger

from .exceptions import ConfigReadError, MalformedConfigError
from .languages import BuiltInLanguage
from .models import DEFAULT_PORT, BuildConfig, Integrations, LanguageSpec, SetupBlock

SERVER_TAG_ENV = "BASALT_SERVER_TAG"
WEB_TAG_ENV = "BASALT_WEB_TAG"


@define(frozen=True, slots=True)
class BuilderSettings:
    """Environment overrides that affect rendered artifacts."""

    server_tag: str | None = None
    web_tag: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Self:
        env = os.environ if environ is None else environ
        return cls(
            server_tag=env.get(SERVER_TAG_ENV) or None,
            web_tag=env.get(WEB_TAG_ENV) or None,
        )


def _parse_language(entry: Any, source: str) -> LanguageSpec:
    if isinstance(entry, str):
        builtin = BuiltInLanguage.lookup(entry)
        if builtin is None:
            raise MalformedConfigError(f"{source}: unknown built-in language '{entry}'")
        return LanguageSpec(name=builtin.value, builtin=builtin)

    if not isinstance(entry, dict) or "name" not in entry:
        raise MalformedConfigError(
            f"{source}: each language must be a name or a table with a 'name' key"
        )

    name = str(entry["name"])
    version = str(entry.get("version", "latest"))
    if "build" in entry or "run" in entry:
        return LanguageSpec(
            name=name,
            version=version,
            build=entry.get("build"),
            run=entry.get("run"),
        )

    builtin = BuiltInLanguage.lookup(name)
    if builtin is None:
        raise MalformedConfigError(
            f"{source}: language '{name}' is not built in and declares no 'run' command"
        )
    return LanguageSpec(name=builtin.value, version=version, builtin=builtin)


def _parse_setup(data: Any, source: str) -> SetupBlock | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise MalformedConfigError(f"{source}: [setup] must be a table")
    install, init = data.get("install"), data.get("init")
    for key, value in (("install", install), ("init", init)):
        if value is not None and not isinstance(value, str):
            raise MalformedConfigError(f"{source}: setup.{key} must be a string")
    return SetupBlock(install=install, init=init)


def _parse_integrations(data: Any, source: str) -> Integrations:
    if data is None:
        return Integrations()
    if not isinstance(data, dict):
        raise MalformedConfigError(f"{source}: [integrations] must be a table")

    handlers = data.get("event_handlers", [])
    webhooks = data.get("webhooks", [])
    if not isinstance(handlers, list) or not all(isinstance(h, str) for h in handlers):
        raise MalformedConfigError(
            f"{source}: integrations.event_handlers must be a list of paths"
        )
    if not isinstance(webhooks, list):
        raise MalformedConfigError(f"{source}: integrations.webhooks must be a list")

    return Integrations(
        event_handlers=tuple(PurePosixPath(h) for h in handlers),
        webhooks=tuple(w if isinstance(w, dict) else {"url": w} for w in webhooks),
    )


def parse_config(text: str, source: str = "<config>") -> BuildConfig:
    """Parses the TOML text of a competition configuration."""
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise MalformedConfigError(f"{source}: invalid TOML: {e}") from e

    languages = data.get("languages")
    if not isinstance(languages, list) or not languages:
        raise MalformedConfigError(f"{source}: 'languages' must be a non-empty list")

    port = data.get("port", DEFAULT_PORT)
    if not isinstance(port, int) or not 0 < port < 65536:
        raise MalformedConfigError(f"{source}: 'port' must be a valid TCP port")

    web_client = data.get("web_client", True)
    if not isinstance(web_client, bool):
        raise MalformedConfigError(f"{source}: 'web_client' must be a boolean")

    return BuildConfig(
        languages=tuple(_parse_language(entry, source) for entry in languages),
        raw_text=text,
        name=str(data.get("name", "basalt")),
        setup=_parse_setup(data.get("setup"), source),
        web_client=web_client,
        integrations=_parse_integrations(data.get("integrations"), source),
        port=port,
    )


def load_config(path: Path) -> BuildConfig:
    """Reads and parses a configuration file from disk."""
    try:
        # Decoded from raw bytes so the archived copy keeps the original line endings.
        text = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigReadError(f"Failed to read config file '{path}': {e}") from e

    config = parse_config(text, source=path.name)
    logger.debug(
        "Loaded configuration",
        path=str(path),
        languages=[lang.name for lang in config.languages],
        event_handlers=len(config.integrations.event_handlers),
    )
    return config
