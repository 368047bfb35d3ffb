from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CODERUNNER_", env_file=".env", extra="ignore"
    )

    APP_NAME: str = "Code Runner"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Docker engine; None means docker.from_env()
    DOCKER_BASE_URL: str | None = None
    DOCKER_TIMEOUT_S: int = 60

    # "ephemeral" creates a container per request, "persistent" reuses
    # the pre-provisioned <CONTAINER_PREFIX>-<language> containers
    EXECUTION_MODE: str = "ephemeral"

    # Wall-clock limits
    RUN_TIME_LIMIT_S: float = 10
    PROJECT_TIME_LIMIT_S: float = 15
    TEST_CASE_TIME_LIMIT_S: float = 10

    # Sandbox limits
    RUN_MEMORY: str = "256m"
    RUN_CPUS: float = 0.5
    PIDS_LIMIT: int = 64
    TMPFS_SIZE: str = "50m"
    MAX_CODE_BYTES: int = 50_000
    MAX_STDIN_BYTES: int = 100_000

    # Containers
    CONTAINER_PREFIX: str = "coderunner"
    CONTAINER_SETTLE_S: float = 1.0
    STDIN_SETTLE_S: float = 0.1
    STOP_TIMEOUT_S: int = 1
    PERSISTENT_WORKDIR: str = "/app"

    # Images
    PYTHON_IMAGE: str = "python:3.10-slim"
    JAVASCRIPT_IMAGE: str = "node:20-alpine"
    JAVA_IMAGE: str = "eclipse-temurin:17-jdk"
    CPP_IMAGE: str = "gcc:13"

    def image_for(self, language: str) -> str:
        return getattr(self, f"{language.upper()}_IMAGE")


@lru_cache
def get_settings() -> Settings:
    return Settings()
