import enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


NO_OUTPUT = "Code executed successfully (no output)"
HIDDEN_INPUT = "(hidden)"
CORRECT = "(correct)"
INCORRECT = "(incorrect)"
HIDDEN_ERROR = "Runtime error"


class ExecutionStatus(str, enum.Enum):
    succeeded = "succeeded"
    failed = "failed"
    timed_out = "timed_out"
    error = "error"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExecutionRequest(CamelModel):
    model_config = ConfigDict(frozen=True)

    code: str
    language: str = "python"
    stdin: Optional[str] = None


class ProjectFile(CamelModel):
    model_config = ConfigDict(frozen=True)

    name: str
    content: str


class ProjectExecutionRequest(CamelModel):
    model_config = ConfigDict(frozen=True)

    files: List[ProjectFile]
    main_file: str
    language: str
    stdin: Optional[str] = None


class ExecutionResult(CamelModel):
    model_config = ConfigDict(frozen=True)

    stdout: str
    stderr: str
    elapsed_ms: int
    status: ExecutionStatus
    exit_code: Optional[int] = None


class TestCase(CamelModel):
    __test__ = False

    input: str = ""
    expected_output: str
    is_hidden: bool = False


class TestCaseResult(CamelModel):
    __test__ = False

    index: int
    passed: bool
    input: str
    actual_output: str
    error: Optional[str] = None


class TestRunSummary(CamelModel):
    __test__ = False

    total: int
    passed: int
    results: List[TestCaseResult]

    @property
    def all_passed(self) -> bool:
        return self.total > 0 and self.passed == self.total


class RunTestsRequest(CamelModel):
    code: str
    language: str
    test_cases: List[TestCase]


class LanguageInfo(CamelModel):
    name: str
    aliases: List[str]
    extension: str
    image: str


class DockerStatus(CamelModel):
    available: bool
    message: str
