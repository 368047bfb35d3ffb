import asyncio
import logging
import posixpath
import random
import string
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from docker.errors import APIError, NotFound

from .config import Settings
from .errors import CleanupFailure, ContainerMissing, UnsupportedLanguage
from .languages import LANG_CONFIG, LanguageProfile, image_for

logger = logging.getLogger(__name__)

IDLE_COMMAND = ["sh", "-c", "while true; do sleep 1; done"]
EPHEMERAL_WORKDIR = "/tmp/run"


@dataclass
class ContainerHandle:
    name: str
    container: Any
    language: str
    workdir: str
    persistent: bool = False


class ContainerRegistry:
    """Language -> name of the long-lived container serving it."""

    def __init__(self, names: Mapping[str, str]):
        self._names: Dict[str, str] = dict(names)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContainerRegistry":
        return cls(
            {lang: f"{settings.CONTAINER_PREFIX}-{lang}" for lang in LANG_CONFIG}
        )

    def name_for(self, language: str) -> str:
        try:
            return self._names[language]
        except KeyError:
            raise UnsupportedLanguage(language)

    def __contains__(self, language) -> bool:
        return language in self._names

    def items(self):
        return self._names.items()


class EphemeralContainerManager:
    """Creates one locked-down container per request and always removes it."""

    persistent = False

    def __init__(self, client, settings: Settings):
        self.client = client
        self.settings = settings

    def new_name(self, language: str) -> str:
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
        return (
            f"{self.settings.CONTAINER_PREFIX}-{language}-"
            f"{int(time.time() * 1000)}-{suffix}"
        )

    def container_options(self, profile: LanguageProfile) -> dict:
        s = self.settings
        exec_flag = "exec" if profile.needs_exec_tmp else "noexec"
        return {
            "working_dir": "/tmp",
            "network_mode": "none",
            "mem_limit": s.RUN_MEMORY,
            "memswap_limit": s.RUN_MEMORY,
            "nano_cpus": int(s.RUN_CPUS * 1e9),
            "pids_limit": s.PIDS_LIMIT,
            "read_only": True,
            "tmpfs": {"/tmp": f"rw,{exec_flag},nosuid,size={s.TMPFS_SIZE}"},
            "security_opt": ["no-new-privileges"],
            "cap_drop": ["ALL"],
            "labels": {"coderunner.ephemeral": "true", "coderunner.language": profile.name},
        }

    async def acquire(self, profile: LanguageProfile) -> ContainerHandle:
        name = self.new_name(profile.name)
        await asyncio.to_thread(self._remove_existing, name)
        create = asyncio.ensure_future(asyncio.to_thread(self._create, profile, name))
        try:
            container = await asyncio.shield(create)
        except asyncio.CancelledError:
            # the create thread keeps running; remove what it produces
            await asyncio.wait([create])
            if not create.cancelled() and create.exception() is None:
                logger.info("Acquire cancelled, removing %s", name)
                handle = self._handle(name, create.result(), profile)
                await asyncio.to_thread(self._teardown, handle)
            raise
        logger.info("Ephemeral container started: %s", name)
        return self._handle(name, container, profile)

    def _handle(self, name: str, container, profile: LanguageProfile) -> ContainerHandle:
        return ContainerHandle(
            name=name,
            container=container,
            language=profile.name,
            workdir=EPHEMERAL_WORKDIR,
        )

    async def release(self, handle: ContainerHandle) -> None:
        await asyncio.to_thread(self._teardown, handle)

    def _remove_existing(self, name: str) -> None:
        try:
            existing = self.client.containers.get(name)
            logger.info("Removing existing container: %s", name)
            existing.remove(force=True)
        except NotFound:
            return
        except APIError as e:
            logger.warning("Error checking existing container %s: %s", name, e)

    def _create(self, profile: LanguageProfile, name: str):
        container = self.client.containers.create(
            image_for(profile, self.settings),
            command=IDLE_COMMAND,
            name=name,
            **self.container_options(profile),
        )
        try:
            container.start()
        except Exception:
            container.remove(force=True)
            raise
        return container

    def _teardown(self, handle: ContainerHandle) -> None:
        container = handle.container
        try:
            container.stop(timeout=self.settings.STOP_TIMEOUT_S)
            container.remove(force=True)
        except NotFound:
            logger.debug("Container already gone: %s", handle.name)
            return
        except Exception as e:
            err = CleanupFailure(f"Error removing container {handle.name}: {e}")
            logger.warning(err.detail)
            self._force_remove(handle)
            return
        logger.info("Ephemeral container removed: %s", handle.name)

    def _force_remove(self, handle: ContainerHandle) -> None:
        try:
            handle.container.remove(force=True)
        except NotFound:
            pass
        except Exception as e:
            logger.warning("Error force-removing container %s: %s", handle.name, e)


class PersistentContainerManager:
    """Reuses pre-provisioned per-language containers; never removes them."""

    persistent = True

    def __init__(self, client, settings: Settings, registry: ContainerRegistry):
        self.client = client
        self.settings = settings
        self.registry = registry

    async def acquire(self, profile: LanguageProfile) -> ContainerHandle:
        name = self.registry.name_for(profile.name)
        try:
            container = await asyncio.to_thread(self.client.containers.get, name)
        except NotFound:
            raise ContainerMissing(name)
        if container.status != "running":
            logger.info("Starting container: %s", name)
            await asyncio.to_thread(container.start)
            await asyncio.sleep(self.settings.CONTAINER_SETTLE_S)
        workdir = posixpath.join(
            self.settings.PERSISTENT_WORKDIR, f"run-{uuid.uuid4().hex[:12]}"
        )
        return ContainerHandle(
            name=name,
            container=container,
            language=profile.name,
            workdir=workdir,
            persistent=True,
        )

    async def release(self, handle: ContainerHandle) -> None:
        return None
