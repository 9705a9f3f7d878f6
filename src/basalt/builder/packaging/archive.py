"""Deterministic, append-only tar archive used as the container build context."""

from collections.abc import Iterable
import io
from pathlib import Path, PurePosixPath
import tarfile

from pyvider.telemetry import logger

from ..exceptions import ArchiveError
from ..models import DEFAULT_FILE_MODE, ArchiveEntry, RenderedArtifacts

CONFIG_ENTRY = "config.toml"
DOCKERFILE_ENTRY = "Dockerfile"
DOCKER_IGNORE_ENTRY = ".dockerignore"
INSTALL_ENTRY = "install.sh"
ENTRYPOINT_ENTRY = "entrypoint.sh"

FIXED_ENTRY_ORDER: tuple[str, ...] = (
    CONFIG_ENTRY,
    DOCKERFILE_ENTRY,
    DOCKER_IGNORE_ENTRY,
    INSTALL_ENTRY,
    ENTRYPOINT_ENTRY,
)

DOCKER_IGNORE = "./Dockerfile\n./.dockerignore"

_TAR_FORMAT = tarfile.GNU_FORMAT
_TAR_ENCODING = "utf-8"


def normalize_entry_path(path: str | PurePosixPath) -> str:
    """Returns the archive-relative form of ``path`` or raises ArchiveError."""
    raw = str(path)
    pure = PurePosixPath(raw)
    if not raw.strip() or pure.is_absolute():
        raise ArchiveError(f"Archive paths must be relative and non-empty: '{raw}'")
    if ".." in pure.parts:
        raise ArchiveError(f"Archive paths must not contain '..': '{raw}'")
    normalized = str(pure)
    if normalized == ".":
        raise ArchiveError(f"Archive path does not name a file: '{raw}'")
    return normalized


def make_header(path: str, size: int, mode: int = DEFAULT_FILE_MODE) -> tarfile.TarInfo:
    info = tarfile.TarInfo(normalize_entry_path(path))
    info.size = size
    info.mode = mode
    info.type = tarfile.REGTYPE
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    try:
        # Serializing up front surfaces unrepresentable headers before any
        # bytes reach the archive.
        info.tobuf(_TAR_FORMAT, _TAR_ENCODING, "strict")
    except (ValueError, UnicodeError) as e:
        raise ArchiveError(f"Failed to create tar header for '{path}': {e}") from e
    return info


class ArchiveBuilder:
    """Appends entries to an in-memory tar archive strictly in call order."""

    def __init__(self) -> None:
        self._buffer = io.BytesIO()
        self._tar: tarfile.TarFile | None = tarfile.open(
            fileobj=self._buffer, mode="w", format=_TAR_FORMAT, encoding=_TAR_ENCODING
        )
        self._paths: list[str] = []

    @property
    def paths(self) -> list[str]:
        return list(self._paths)

    def append(self, entry: ArchiveEntry) -> None:
        if self._tar is None:
            raise ArchiveError("Cannot append to an archive that is already finished")
        header = make_header(entry.path, entry.size, entry.mode)
        if header.name in self._paths:
            raise ArchiveError(f"Duplicate archive entry: '{header.name}'")
        self._tar.addfile(header, io.BytesIO(entry.content))
        self._paths.append(header.name)
        logger.debug("Archived entry", path=header.name, size=entry.size)

    def append_text(self, path: str, text: str, mode: int = DEFAULT_FILE_MODE) -> None:
        self.append(ArchiveEntry(path=path, content=text.encode("utf-8"), mode=mode))

    def finish(self) -> bytes:
        if self._tar is None:
            raise ArchiveError("Archive is already finished")
        self._tar.close()
        self._tar = None
        return self._buffer.getvalue()


def build_archive(
    config_text: str,
    artifacts: RenderedArtifacts,
    scripts: Iterable[ArchiveEntry] = (),
) -> bytes:
    """Builds the build-context archive in its fixed entry order."""
    builder = ArchiveBuilder()
    builder.append_text(CONFIG_ENTRY, config_text)
    builder.append_text(DOCKERFILE_ENTRY, artifacts.dockerfile)
    builder.append_text(DOCKER_IGNORE_ENTRY, DOCKER_IGNORE)
    builder.append_text(INSTALL_ENTRY, artifacts.install_script)
    builder.append_text(ENTRYPOINT_ENTRY, artifacts.entrypoint_script)
    for script in scripts:
        builder.append(script)
    data = builder.finish()
    logger.info(f"Assembled build archive with {len(builder.paths)} entries ({len(data)} bytes)")
    return data


def list_entries(data: bytes) -> list[ArchiveEntry]:
    """Reads back every regular-file entry of an archive, in archive order."""
    entries = []
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
            for member in tar.getmembers():
                if not member.isfile():
                    continue
                extracted = tar.extractfile(member)
                content = extracted.read() if extracted is not None else b""
                entries.append(ArchiveEntry(path=member.name, content=content, mode=member.mode))
    except tarfile.TarError as e:
        raise ArchiveError(f"Failed to read archive: {e}") from e
    return entries


def unpack_archive(data: bytes, destination: Path) -> None:
    """Extracts an archive into ``destination``, refusing unsafe members."""
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
            tar.extractall(destination, filter="data")
    except tarfile.TarError as e:
        raise ArchiveError(f"Failed to unpack archive into '{destination}': {e}") from e
    except OSError as e:
        raise ArchiveError(f"I/O error while unpacking archive into '{destination}': {e}") from e
