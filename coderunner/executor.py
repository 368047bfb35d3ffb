import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import docker

from .config import Settings
from .containers import (
    ContainerHandle,
    ContainerRegistry,
    EphemeralContainerManager,
    PersistentContainerManager,
)
from .docker_runner import ExecSession
from .errors import CleanupFailure, ExecutionTimeout, InvalidRequest, SandboxError
from .injection import (
    build_command,
    check_code,
    check_project_path,
    check_stdin,
    remove_run_dir,
    write_files,
    write_source,
)
from .languages import LanguageProfile, get_profile
from .schemas import (
    NO_OUTPUT,
    DockerStatus,
    ExecutionRequest,
    ExecutionResult,
    ExecutionStatus,
    ProjectExecutionRequest,
)

logger = logging.getLogger(__name__)

Injector = Callable[[ContainerHandle, LanguageProfile], Awaitable[str]]


class ExecutionCoordinator:
    """Runs one submission end to end inside a container.

    The container manager decides the container flavour (ephemeral or
    persistent). Whatever happens, the handle is released before a result
    is returned, and execution problems come back as a result with stderr
    set instead of an exception.
    """

    def __init__(self, manager, settings: Settings, session_factory=ExecSession):
        self.manager = manager
        self.settings = settings
        self.session_factory = session_factory

    async def execute(
        self, request: ExecutionRequest, timeout: Optional[float] = None
    ) -> ExecutionResult:
        check_code(request.code, self.settings.MAX_CODE_BYTES)
        check_stdin(request.stdin, self.settings.MAX_STDIN_BYTES)

        async def inject(handle, profile):
            file_name = await asyncio.to_thread(
                write_source, handle, profile, request.code
            )
            return build_command(profile, handle, file_name)

        return await self._run(
            request.language,
            inject,
            request.stdin,
            timeout or self.settings.RUN_TIME_LIMIT_S,
        )

    async def execute_project(
        self, request: ProjectExecutionRequest, timeout: Optional[float] = None
    ) -> ExecutionResult:
        if not request.files:
            raise InvalidRequest("At least one file is required")
        check_stdin(request.stdin, self.settings.MAX_STDIN_BYTES)
        names = [check_project_path(f.name) for f in request.files]
        main_file = check_project_path(request.main_file)
        if main_file not in names:
            raise InvalidRequest(f"Main file {request.main_file} not found in project")
        for f in request.files:
            if len(f.content.encode("utf-8")) > self.settings.MAX_CODE_BYTES:
                raise InvalidRequest(f"File {f.name} is too long")

        async def inject(handle, profile):
            await asyncio.to_thread(write_files, handle, request.files)
            return build_command(profile, handle, main_file)

        return await self._run(
            request.language,
            inject,
            request.stdin,
            timeout or self.settings.PROJECT_TIME_LIMIT_S,
        )

    async def _run(
        self, language: str, inject: Injector, stdin: Optional[str], timeout: float
    ) -> ExecutionResult:
        start = time.monotonic()
        handle = None
        try:
            profile = get_profile(language)
            handle = await self.manager.acquire(profile)
            command = await inject(handle, profile)
            logger.info(
                "Executing %s code in %s",
                profile.name,
                handle.name,
                extra={"language": profile.name, "container": handle.name},
            )
            stdout, stderr, exit_code = await self._attach(
                handle, command, stdin, timeout
            )
        except SandboxError as e:
            logger.info("Execution ended with %s: %s", type(e).__name__, e.detail)
            return self._failure(e, start)
        except Exception as e:
            # docker and transport errors alike become a result
            logger.exception("Code execution error: %s", e)
            return self._failure(SandboxError(str(e) or None), start)
        finally:
            if handle is not None:
                await self._cleanup(handle)

        result = self._result(stdout, stderr, exit_code, start)
        logger.info(
            "Execution finished: language=%s status=%s elapsed=%dms",
            language,
            result.status.value,
            result.elapsed_ms,
            extra={
                "language": language,
                "status": result.status.value,
                "elapsed_ms": result.elapsed_ms,
            },
        )
        return result

    async def _attach(
        self, handle: ContainerHandle, command: str, stdin: Optional[str], timeout: float
    ):
        session = self.session_factory(
            handle.container, command, attach_stdin=bool(stdin)
        )
        await asyncio.to_thread(session.start)
        collector = asyncio.ensure_future(asyncio.to_thread(session.collect))

        async def exchange():
            if stdin:
                await asyncio.sleep(self.settings.STDIN_SETTLE_S)
                try:
                    await asyncio.to_thread(session.send_input, stdin + "\n")
                except OSError as e:
                    # process exited before reading its input
                    logger.debug("Could not write stdin: %s", e)
            return await collector

        try:
            # the deadline covers the input write as well as the output
            try:
                stdout, stderr = await asyncio.wait_for(exchange(), timeout)
            except asyncio.TimeoutError:
                logger.warning("Execution timed out after %ss in %s", timeout, handle.name)
                raise ExecutionTimeout(timeout)
            exit_code = await asyncio.to_thread(session.exit_code)
            return stdout, stderr, exit_code
        finally:
            if not collector.done():
                collector.cancel()
            session.close()

    async def _cleanup(self, handle: ContainerHandle) -> None:
        try:
            await asyncio.to_thread(remove_run_dir, handle)
        except Exception as e:
            logger.warning(CleanupFailure(f"Cleanup warning for {handle.name}: {e}").detail)
        try:
            await self.manager.release(handle)
        except Exception as e:
            logger.warning(CleanupFailure(f"Release failed for {handle.name}: {e}").detail)

    def _elapsed(self, start: float) -> int:
        return int((time.monotonic() - start) * 1000)

    def _failure(self, error: SandboxError, start: float) -> ExecutionResult:
        return ExecutionResult(
            stdout="",
            stderr=error.detail,
            elapsed_ms=self._elapsed(start),
            status=error.status,
        )

    def _result(
        self, stdout: str, stderr: str, exit_code: Optional[int], start: float
    ) -> ExecutionResult:
        stdout = stdout.rstrip()
        stderr = stderr.rstrip()
        if stderr or exit_code not in (None, 0):
            status = ExecutionStatus.failed
        else:
            status = ExecutionStatus.succeeded
        return ExecutionResult(
            stdout=stdout or ("" if stderr else NO_OUTPUT),
            stderr=stderr,
            elapsed_ms=self._elapsed(start),
            status=status,
            exit_code=exit_code,
        )


def get_docker_client(settings: Settings):
    if settings.DOCKER_BASE_URL:
        return docker.DockerClient(
            base_url=settings.DOCKER_BASE_URL, timeout=settings.DOCKER_TIMEOUT_S
        )
    return docker.from_env(timeout=settings.DOCKER_TIMEOUT_S)


def build_coordinator(
    settings: Settings, client, mode: Optional[str] = None
) -> ExecutionCoordinator:
    mode = (mode or settings.EXECUTION_MODE).lower()
    if mode == "persistent":
        manager = PersistentContainerManager(
            client, settings, ContainerRegistry.from_settings(settings)
        )
    elif mode == "ephemeral":
        manager = EphemeralContainerManager(client, settings)
    else:
        raise ValueError(f"unknown execution mode {mode!r}")
    return ExecutionCoordinator(manager, settings)


def check_docker_status(client) -> DockerStatus:
    try:
        client.ping()
    except Exception as e:
        logger.error("Docker is not available: %s", e)
        return DockerStatus(
            available=False,
            message="Docker is not available. Please start Docker.",
        )
    return DockerStatus(available=True, message="Docker is running")
