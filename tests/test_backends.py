"""Tests for the container build backends and the build output driver."""

import asyncio
import os
from pathlib import Path
import stat
from typing import Any
from unittest.mock import MagicMock

from docker.errors import APIError, DockerException
import pytest

from basalt.builder.backends import (
    DockerBackend,
    SubprocessBackend,
    build_prefix,
    get_backend,
    normalize_line,
    stream_build,
)
from basalt.builder.exceptions import BackendUnavailableError, BuildError, BuildStepFailure
from basalt.builder.models import ArchiveEntry, RenderedArtifacts
from basalt.builder.packaging.archive import build_archive

ARCHIVE = build_archive(
    'languages = ["python3"]\n',
    RenderedArtifacts("FROM fedora:41\n", "dnf install -y python3\n", "#!/bin/sh\n"),
    [ArchiveEntry("scripts/hook.py", b"print('hook')\n")],
)


class Recorder:
    def __init__(self) -> None:
        self.out: list[str] = []
        self.err: list[str] = []

    def __call__(self, message: str, err: bool = False) -> None:
        (self.err if err else self.out).append(message)


def test_normalize_line() -> None:
    assert normalize_line("Step 1/3 : FROM x\n") == "Step 1/3 : FROM x"
    assert normalize_line(" a\tb\nc \r\n") == "a b c"
    assert normalize_line("\n") == ""


def test_get_backend() -> None:
    assert isinstance(get_backend("docker"), DockerBackend)
    podman = get_backend("podman")
    assert isinstance(podman, SubprocessBackend) and podman.executable == "podman"
    with pytest.raises(ValueError, match="Unknown container backend"):
        get_backend("kaniko")


@pytest.mark.asyncio
async def test_stream_build_hides_stderr_unless_verbose(fake_backend: Any) -> None:
    quiet = Recorder()
    await stream_build(fake_backend, ARCHIVE, "bslt-test", verbose=False, echo=quiet)
    prefix = build_prefix()
    assert quiet.out == [f"{prefix} Step 1/2 : FROM fedora", f"{prefix} Step 2/2 : COPY . /basalt/"]
    assert quiet.err == []

    loud = Recorder()
    await stream_build(fake_backend, ARCHIVE, "bslt-test", verbose=True, echo=loud)
    assert loud.err == [f"{prefix} pulling layer"]
    assert fake_backend.builds[0] == (ARCHIVE, "bslt-test")


def _docker_client(events: list[dict[str, Any]]) -> MagicMock:
    client = MagicMock()
    client.api.build.return_value = iter(events)
    return client


@pytest.mark.asyncio
async def test_docker_backend_streams_normalized_lines() -> None:
    client = _docker_client(
        [
            {"stream": "Step 1/2 : FROM fedora:41\n"},
            {"aux": {"ID": "sha256:abc"}},
            {"stream": "Successfully built\tabc\n"},
        ]
    )
    backend = DockerBackend(client_factory=lambda: client)

    lines = [line async for line in backend.build(ARCHIVE, "bslt-1234")]

    assert [line.text for line in lines] == ["Step 1/2 : FROM fedora:41", "Successfully built abc"]
    assert all(line.stream == "stdout" for line in lines)
    kwargs = client.api.build.call_args.kwargs
    assert kwargs["tag"] == "bslt-1234"
    assert kwargs["custom_context"] is True
    assert kwargs["rm"] is True
    assert kwargs["fileobj"].getvalue() == ARCHIVE
    client.close.assert_called_once()


@pytest.mark.asyncio
async def test_docker_backend_error_event_fails_build() -> None:
    client = _docker_client(
        [
            {"stream": "Step 1/2 : RUN false\n"},
            {"error": "The command '/bin/sh -c false' returned a non-zero code: 1"},
            {"stream": "never reached\n"},
        ]
    )
    backend = DockerBackend(client_factory=lambda: client)
    seen = []
    with pytest.raises(BuildStepFailure, match="non-zero code"):
        async for line in backend.build(ARCHIVE, "bslt-1234"):
            seen.append(line.text)
    assert seen == ["Step 1/2 : RUN false"]
    client.close.assert_called_once()


@pytest.mark.asyncio
async def test_docker_backend_api_error_fails_build() -> None:
    client = MagicMock()
    client.api.build.side_effect = APIError("bad request")
    backend = DockerBackend(client_factory=lambda: client)
    with pytest.raises(BuildStepFailure):
        async for _ in backend.build(ARCHIVE, "bslt-1234"):
            pass


@pytest.mark.asyncio
async def test_docker_backend_unreachable() -> None:
    def no_daemon() -> Any:
        raise DockerException("Error while fetching server API version")

    with pytest.raises(BackendUnavailableError, match="Failed to connect to docker"):
        await DockerBackend(client_factory=no_daemon).probe()


def _fake_builder(tmp_path: Path, body: str) -> str:
    """Writes an executable shell script standing in for podman."""
    script = tmp_path / "fake-podman"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return str(script)


@pytest.mark.asyncio
async def test_subprocess_backend_missing_executable(tmp_path: Path) -> None:
    backend = SubprocessBackend(str(tmp_path / "not-installed"))
    with pytest.raises(BackendUnavailableError, match="Failed to spawn"):
        await backend.probe()


@pytest.mark.asyncio
async def test_subprocess_backend_streams_both_outputs(tmp_path: Path) -> None:
    record = tmp_path / "context-dir.txt"
    executable = _fake_builder(
        tmp_path,
        'if [ "$1" = "--version" ]; then echo "podman 5.0"; exit 0; fi\n'
        f'echo "$4" > {record}\n'
        'echo "STEP 1/2: FROM $(head -c 4 "$4/Dockerfile")"\n'
        'echo "warning: emulating" >&2\n'
        'cat "$4/scripts/hook.py"\n',
    )
    backend = SubprocessBackend(executable)
    await backend.probe()

    lines = [line async for line in backend.build(ARCHIVE, "bslt-1234")]

    stdout = [line.text for line in lines if line.stream == "stdout"]
    stderr = [line.text for line in lines if line.stream == "stderr"]
    assert stdout == ["STEP 1/2: FROM FROM", "print('hook')"]
    assert stderr == ["warning: emulating"]
    assert not Path(record.read_text().strip()).exists()


@pytest.mark.asyncio
async def test_subprocess_backend_failure_cleans_up(tmp_path: Path) -> None:
    record = tmp_path / "context-dir.txt"
    executable = _fake_builder(
        tmp_path,
        f'echo "$4" > {record}\n'
        'echo "Error: building at STEP RUN: exit status 1" >&2\n'
        "exit 3\n",
    )
    backend = SubprocessBackend(executable)

    with pytest.raises(BuildStepFailure, match="exit code 3") as exc_info:
        async for _ in backend.build(ARCHIVE, "bslt-1234"):
            pass

    assert "exit status 1" in str(exc_info.value)
    assert not Path(record.read_text().strip()).exists()


@pytest.mark.asyncio
async def test_subprocess_backend_probe_nonzero_exit(tmp_path: Path) -> None:
    backend = SubprocessBackend(_fake_builder(tmp_path, "exit 2\n"))
    with pytest.raises(BackendUnavailableError, match="exited with code 2"):
        await backend.probe()


@pytest.mark.asyncio
async def test_subprocess_backend_oversized_line_fails_build(tmp_path: Path) -> None:
    """A line beyond the stream limit fails the build while output is still pending."""
    record = tmp_path / "context-dir.txt"
    executable = _fake_builder(
        tmp_path,
        f'echo "$4" > {record}\n'
        "head -c 2000000 /dev/zero | tr '\\0' a\n"
        "echo\n"
        "i=0\n"
        'while [ "$i" -lt 2000 ]; do\n'
        "  printf '%01000d\\n' 0\n"
        "  i=$((i + 1))\n"
        "done\n",
    )
    backend = SubprocessBackend(executable)

    async def consume() -> None:
        async for _ in backend.build(ARCHIVE, "bslt-1234"):
            pass

    with pytest.raises(BuildError, match="Failed to read output"):
        await asyncio.wait_for(consume(), timeout=10)
    assert not Path(record.read_text().strip()).exists()


@pytest.mark.asyncio
async def test_stopping_early_removes_context_and_reaps_builder(tmp_path: Path) -> None:
    record = tmp_path / "context-dir.txt"
    pid_file = tmp_path / "builder.pid"
    executable = _fake_builder(
        tmp_path,
        f'echo "$4" > {record}\n'
        f"echo $$ > {pid_file}\n"
        'echo "STEP 1/9: FROM fedora"\n'
        "exec sleep 30\n",
    )
    backend = SubprocessBackend(executable)

    def failing_echo(message: str, err: bool = False) -> None:
        raise RuntimeError("terminal went away")

    with pytest.raises(RuntimeError, match="terminal went away"):
        await asyncio.wait_for(
            stream_build(backend, ARCHIVE, "bslt-1234", echo=failing_echo), timeout=10
        )

    assert not Path(record.read_text().strip()).exists()
    with pytest.raises(ProcessLookupError):
        os.kill(int(pid_file.read_text().strip()), 0)
