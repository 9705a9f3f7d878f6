"""The `basalt` command-line interface."""

import asyncio
from pathlib import Path

import click

from .backends import BACKEND_KINDS, get_backend
from .config import load_config
from .exceptions import BuildError, ConfigReadError, MalformedConfigError
from .packaging.orchestrator import BuildOrchestrator
from .scaffolding.generator import scaffold_config
from .version import __version__


def _format_chain(error: BaseException) -> str:
    """Renders an exception and its causes as `stage: cause` lines."""
    parts = []
    current: BaseException | None = error
    while current is not None:
        parts.append(str(current) or type(current).__name__)
        current = current.__cause__
    return "\n  caused by: ".join(parts)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(
    __version__,
    "-V",
    "--version",
    prog_name="basalt",
    message="%(prog)s version %(version)s",
)
def cli() -> None:
    """Build and package containers for hosting Basalt competitions."""
    pass


@cli.command("build")
@click.option(
    "-t",
    "--tag",
    default=None,
    help="Tag for the built image. Defaults to `bslt-<config hash>`.",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, writable=True, resolve_path=True),
    default=None,
    help="Write the build-context archive to this path instead of building an image.",
)
@click.option(
    "-b",
    "--backend",
    type=click.Choice(BACKEND_KINDS),
    default="docker",
    show_default=True,
    envvar="BASALT_CONTAINER_BACKEND",
    help="Container builder used when no output path is given.",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    envvar="BASALT_VERBOSE",
    help="Also forward the builder's diagnostic output to stderr.",
)
@click.argument(
    "config_file",
    type=click.Path(exists=True, dir_okay=False, resolve_path=True),
)
def build_command(
    tag: str | None,
    output: str | None,
    backend: str,
    verbose: bool,
    config_file: str,
) -> None:
    """Builds the container image (or its archive) for a configuration file."""
    try:
        orchestrator = BuildOrchestrator(
            config_path=Path(config_file),
            output_path=Path(output) if output else None,
            tag=tag,
            backend=get_backend(backend),
            verbose=verbose,
        )
        asyncio.run(orchestrator.run())
    except MalformedConfigError as e:
        click.secho(f"❌ Invalid configuration:\n{e}", fg="red", err=True)
        raise click.Abort() from e
    except BuildError as e:
        click.secho(f"❌ Build failed: {_format_chain(e)}", fg="red", err=True)
        raise click.Abort() from e

    if output:
        click.secho(f"✅ Build archive written to {output}", fg="green")
    else:
        click.secho("✅ Image built successfully.", fg="green")


@cli.command("verify")
@click.argument(
    "config_file",
    type=click.Path(exists=True, dir_okay=False, resolve_path=True),
)
def verify_command(config_file: str) -> None:
    """
    Verifies that a configuration file is valid without building anything.

    Exits with 0 if the configuration is valid and 1 otherwise.
    """
    try:
        config = load_config(Path(config_file))
    except MalformedConfigError as e:
        click.secho(str(e), fg="red", err=True)
        raise SystemExit(1) from e
    except ConfigReadError as e:
        click.secho(f"❌ {_format_chain(e)}", fg="red", err=True)
        raise click.Abort() from e
    click.secho(
        f"✅ Configuration '{config.name}' is valid "
        f"({len(config.languages)} languages, "
        f"{len(config.integrations.event_handlers)} event handlers).",
        fg="green",
    )


@cli.command("init")
@click.argument("path", type=click.Path(path_type=Path), required=False)
def init_command(path: Path | None) -> None:
    """Creates a starter configuration file."""
    try:
        target = scaffold_config(path)
    except FileExistsError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        raise click.Abort() from e
    click.secho(f"✅ Created configuration: {target}", fg="green")


main = cli

if __name__ == "__main__":
    cli()
