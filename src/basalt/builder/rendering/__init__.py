"""
The `rendering` sub-package turns a competition configuration into the three
text artifacts of a build: the Dockerfile, the install script and the
container entrypoint script.
"""

from .engine import (
    TemplateRegistry,
    build_template_context,
    make_base_init,
    make_base_install,
    render_artifacts,
)

__all__ = [
    "TemplateRegistry",
    "build_template_context",
    "make_base_init",
    "make_base_install",
    "render_artifacts",
]
