"""Logic for scaffolding new competition configuration files."""

from pathlib import Path

import jinja2

from ..models import DEFAULT_PORT

_TEMPLATE_DIR = Path(__file__).parent / "templates"
DEFAULT_NAME = "basalt"


def _get_template_env() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(_TEMPLATE_DIR),
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def resolve_config_target(path: Path | None) -> tuple[str, Path]:
    """Works out the competition name and the file to write for `init`."""
    if path is None:
        return DEFAULT_NAME, Path(f"{DEFAULT_NAME}.toml")
    if path.is_dir():
        return DEFAULT_NAME, path / f"{DEFAULT_NAME}.toml"
    name = path.stem.strip() or DEFAULT_NAME
    if not path.suffix:
        path = path.with_suffix(".toml")
    return name, path


def scaffold_config(path: Path | None = None, port: int = DEFAULT_PORT) -> Path:
    """Writes a starter configuration file and returns its path."""
    name, target = resolve_config_target(path)
    if target.exists():
        raise FileExistsError(f"Configuration file already exists: {target}")

    env = _get_template_env()
    content = env.get_template("basalt.toml.j2").render(name=name, port=port)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    return target
