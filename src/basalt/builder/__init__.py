# basalt/src/basalt/builder/__init__.py
"""
This package contains the build pipeline that turns a Basalt competition
configuration into a container build context and, optionally, a built image.
"""

from .exceptions import BuildError
from .packaging.archive import FIXED_ENTRY_ORDER
from .packaging.orchestrator import BuildOrchestrator
from .version import __version__

__all__ = [
    "FIXED_ENTRY_ORDER",
    "BuildError",
    "BuildOrchestrator",
    "__version__",
]
