"""Image tag derivation."""

from .models import BuildConfig
from .version import __version__


def server_variant(config: BuildConfig) -> str:
    """Selects the server image variant the configuration's integrations need."""
    needs_scripting = config.integrations.needs_scripting
    needs_webhooks = config.integrations.needs_webhooks
    if needs_scripting and needs_webhooks:
        return "full"
    if needs_scripting:
        return "scripting"
    if needs_webhooks:
        return "webhooks"
    return "minimal"


def derive_server_tag(config: BuildConfig, version: str = __version__) -> str:
    return f"{version}-{server_variant(config)}"


def default_image_tag(config: BuildConfig) -> str:
    return f"bslt-{config.hash()}"


def resolve_image_tag(config: BuildConfig, explicit: str | None = None) -> str:
    return explicit or default_image_tag(config)
