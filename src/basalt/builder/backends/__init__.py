"""
The `backends` sub-package drives the external container builders: the
Docker daemon API and daemonless command-line builders such as podman.
"""

from .base import ContainerBackend, build_prefix, normalize_line, stream_build
from .daemon import DockerBackend
from .process import SubprocessBackend

BACKEND_KINDS: tuple[str, ...] = ("docker", "podman")


def get_backend(kind: str, executable: str | None = None) -> ContainerBackend:
    if kind == "docker":
        return DockerBackend()
    if kind == "podman":
        return SubprocessBackend(executable or "podman")
    raise ValueError(f"Unknown container backend '{kind}'. Expected one of: {', '.join(BACKEND_KINDS)}")


__all__ = [
    "BACKEND_KINDS",
    "ContainerBackend",
    "DockerBackend",
    "SubprocessBackend",
    "build_prefix",
    "get_backend",
    "normalize_line",
    "stream_build",
]
