"""Writing submitted sources into a container and building run commands.

Sources travel base64-encoded as a shell argument, so no content of the
submission can terminate or alter the write command.
"""

import base64
import logging
import posixpath
import re
import shlex
from typing import Iterable, List, Optional

from docker.errors import APIError

from .containers import ContainerHandle
from .docker_runner import run_step
from .errors import InvalidRequest
from .languages import LanguageProfile
from .schemas import ProjectFile

logger = logging.getLogger(__name__)

SAFE_PATH_RE = re.compile(r"^[A-Za-z0-9_.\-/]+$")


def check_code(code: str, max_bytes: int) -> None:
    if not code or not code.strip():
        raise InvalidRequest("Code is required")
    if len(code.encode("utf-8")) > max_bytes:
        raise InvalidRequest(
            f"Code is too long (maximum {max_bytes // 1000}KB allowed)"
        )


def check_stdin(stdin: Optional[str], max_bytes: int) -> None:
    if stdin and len(stdin.encode("utf-8")) > max_bytes:
        raise InvalidRequest(
            f"Input is too long (maximum {max_bytes // 1000}KB allowed)"
        )


def check_project_path(name: str) -> str:
    if not name or not SAFE_PATH_RE.match(name) or name.startswith("/"):
        raise InvalidRequest(f"Invalid file name: {name!r}")
    norm = posixpath.normpath(name)
    if norm == "." or norm.startswith(".."):
        raise InvalidRequest(f"Invalid file name: {name!r}")
    return norm


def write_script(path: str, content: str) -> str:
    payload = base64.b64encode(content.encode("utf-8")).decode("ascii")
    return (
        f"mkdir -p {shlex.quote(posixpath.dirname(path))} && "
        f"printf '%s' {shlex.quote(payload)} | base64 -d > {shlex.quote(path)}"
    )


def _write(handle: ContainerHandle, file_name: str, content: str) -> None:
    path = posixpath.join(handle.workdir, file_name)
    run_step(handle.container, ["sh", "-c", write_script(path, content)])


def write_source(handle: ContainerHandle, profile: LanguageProfile, code: str) -> str:
    file_name = profile.file_name(code)
    _write(handle, file_name, code)
    logger.debug("Wrote %d bytes to %s:%s", len(code), handle.name, file_name)
    return file_name


def write_files(handle: ContainerHandle, files: Iterable[ProjectFile]) -> List[str]:
    written = []
    for f in files:
        name = check_project_path(f.name)
        _write(handle, name, f.content)
        written.append(name)
    logger.debug("Wrote %d project files to %s", len(written), handle.name)
    return written


def build_command(profile: LanguageProfile, handle: ContainerHandle, file_name: str) -> str:
    return profile.build_command(handle.workdir, file_name)


def remove_run_dir(handle: ContainerHandle) -> None:
    """Kill leftovers of a run and delete its directory in a shared container."""
    if not handle.persistent:
        return
    # the bracket keeps the pattern from matching pkill's own command line
    pattern = "[" + handle.workdir[0] + "]" + handle.workdir[1:]
    try:
        handle.container.exec_run(cmd=["pkill", "-9", "-f", pattern])
    except APIError as e:
        logger.debug("pkill unavailable in %s: %s", handle.name, e)
    run_step(handle.container, ["rm", "-rf", handle.workdir])
