import logging
from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends, FastAPI, HTTPException

from .config import get_settings
from .errors import InvalidRequest
from .executor import (
    ExecutionCoordinator,
    build_coordinator,
    check_docker_status,
    get_docker_client,
)
from .harness import TestHarness
from .languages import LANG_CONFIG, image_for
from .logging import setup_logging
from .schemas import (
    DockerStatus,
    ExecutionRequest,
    ExecutionResult,
    LanguageInfo,
    ProjectExecutionRequest,
    RunTestsRequest,
    TestRunSummary,
)

settings = get_settings()
setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)
router = APIRouter()


@lru_cache
def get_client():
    return get_docker_client(get_settings())


def _client_or_503():
    try:
        return get_client()
    except Exception as e:
        logger.error("Docker client unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Docker is not available")


def get_coordinator() -> ExecutionCoordinator:
    return build_coordinator(get_settings(), _client_or_503())


def get_harness() -> TestHarness:
    # graded runs always get a fresh container per case
    return TestHarness(build_coordinator(get_settings(), _client_or_503(), "ephemeral"))


@router.post("/execute", response_model=ExecutionResult)
async def run_code(
    req: ExecutionRequest, coordinator: ExecutionCoordinator = Depends(get_coordinator)
):
    try:
        return await coordinator.execute(req)
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("execute failed")
        raise HTTPException(status_code=500, detail="execution error")


@router.post("/execute/project", response_model=ExecutionResult)
async def run_project(
    req: ProjectExecutionRequest,
    coordinator: ExecutionCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.execute_project(req)
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("project execute failed")
        raise HTTPException(status_code=500, detail="execution error")


@router.post("/run-tests", response_model=TestRunSummary)
async def run_tests(req: RunTestsRequest, harness: TestHarness = Depends(get_harness)):
    try:
        return await harness.run_tests(req.code, req.language, req.test_cases)
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("run-tests failed")
        raise HTTPException(status_code=500, detail="execution error")


@router.get("/languages", response_model=List[LanguageInfo])
async def languages():
    return [
        LanguageInfo(
            name=p.name,
            aliases=p.aliases,
            extension=p.extension,
            image=image_for(p, get_settings()),
        )
        for p in LANG_CONFIG.values()
    ]


@router.get("/health", response_model=DockerStatus)
def health():
    try:
        client = get_client()
    except Exception as e:
        logger.error("Docker client unavailable: %s", e)
        return DockerStatus(
            available=False, message="Docker is not available. Please start Docker."
        )
    return check_docker_status(client)


app.include_router(router, prefix=settings.API_PREFIX)
