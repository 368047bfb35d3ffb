from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from coderunner import main
from coderunner.errors import InvalidRequest
from coderunner.schemas import (
    ExecutionResult,
    ExecutionStatus,
    TestCaseResult,
    TestRunSummary,
)


class StubCoordinator:
    def __init__(self):
        self.requests = []

    async def execute(self, request):
        self.requests.append(request)
        if not request.code.strip():
            raise InvalidRequest("Code cannot be empty")
        return ExecutionResult(
            stdout="Hello", stderr="", elapsed_ms=12, status=ExecutionStatus.succeeded, exit_code=0
        )

    async def execute_project(self, request):
        self.requests.append(request)
        return ExecutionResult(
            stdout="3", stderr="", elapsed_ms=20, status=ExecutionStatus.succeeded, exit_code=0
        )


class StubHarness:
    def __init__(self):
        self.calls = []

    async def run_tests(self, code, language, test_cases):
        self.calls.append((code, language, test_cases))
        if not test_cases:
            raise InvalidRequest("No test cases defined")
        results = [
            TestCaseResult(index=i, passed=True, input="(hidden)" if t.is_hidden else t.input,
                           actual_output="(correct)" if t.is_hidden else t.expected_output)
            for i, t in enumerate(test_cases)
        ]
        return TestRunSummary(total=len(results), passed=len(results), results=results)


@pytest.fixture
def coordinator():
    return StubCoordinator()


@pytest.fixture
def harness():
    return StubHarness()


@pytest.fixture
def client(coordinator, harness):
    main.app.dependency_overrides[main.get_coordinator] = lambda: coordinator
    main.app.dependency_overrides[main.get_harness] = lambda: harness
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def test_execute(client, coordinator):
    resp = client.post("/api/execute", json={"code": "print('Hello')", "language": "python"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["stdout"] == "Hello"
    assert body["elapsedMs"] == 12
    assert body["status"] == "succeeded"
    assert body["exitCode"] == 0
    assert coordinator.requests[0].stdin is None


def test_execute_empty_code(client):
    resp = client.post("/api/execute", json={"code": " ", "language": "python"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Code cannot be empty"


def test_execute_unexpected_error(client, coordinator, monkeypatch):
    async def boom(request):
        raise RuntimeError("socket exploded")

    monkeypatch.setattr(coordinator, "execute", boom)
    resp = client.post("/api/execute", json={"code": "print(1)"})
    assert resp.status_code == 500
    assert resp.json()["detail"] == "execution error"


def test_execute_project(client, coordinator):
    resp = client.post(
        "/api/execute/project",
        json={
            "files": [{"name": "main.py", "content": "print(3)"}],
            "mainFile": "main.py",
            "language": "python",
        },
    )
    assert resp.status_code == 200
    assert resp.json()["stdout"] == "3"
    assert coordinator.requests[0].main_file == "main.py"


def test_run_tests(client, harness):
    resp = client.post(
        "/api/run-tests",
        json={
            "code": "print(int(input()) + int(input()))",
            "language": "python",
            "testCases": [
                {"input": "5\n3", "expectedOutput": "8"},
                {"input": "1\n1", "expectedOutput": "2", "isHidden": True},
            ],
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert body["results"][1]["input"] == "(hidden)"
    assert body["results"][1]["actualOutput"] == "(correct)"
    _, _, cases = harness.calls[0]
    assert cases[1].is_hidden


def test_run_tests_without_cases(client):
    resp = client.post("/api/run-tests", json={"code": "print(1)", "language": "python", "testCases": []})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "No test cases defined"


def test_languages(client):
    resp = client.get("/api/languages")
    assert resp.status_code == 200
    names = {lang["name"] for lang in resp.json()}
    assert names == {"python", "javascript", "java", "cpp"}


def test_health_ok(client, monkeypatch):
    docker_client = MagicMock()
    monkeypatch.setattr(main, "get_client", lambda: docker_client)
    resp = client.get("/api/health")
    assert resp.json() == {"available": True, "message": "Docker is running"}


def test_health_without_docker(client, monkeypatch):
    def no_docker():
        raise ConnectionError("no socket")

    monkeypatch.setattr(main, "get_client", no_docker)
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["available"] is False
