import asyncio
import logging
from typing import List, Optional, Sequence

from .errors import InvalidRequest
from .executor import ExecutionCoordinator
from .injection import check_code, check_stdin
from .schemas import (
    CORRECT,
    HIDDEN_ERROR,
    HIDDEN_INPUT,
    INCORRECT,
    ExecutionRequest,
    TestCase,
    TestCaseResult,
    TestRunSummary,
)

logger = logging.getLogger(__name__)


def normalize(value: str) -> str:
    return value.replace("\r\n", "\n").strip()


class TestHarness:
    """Grades a submission against an ordered list of test cases.

    Cases run one after another. Each one is guarded by its own timeout
    on top of the coordinator's, so a hung case is recorded as failed and
    the remaining cases still run. Hidden cases only report correctness.
    """

    __test__ = False

    def __init__(self, coordinator: ExecutionCoordinator, case_timeout: Optional[float] = None):
        self.coordinator = coordinator
        self.case_timeout = case_timeout or coordinator.settings.TEST_CASE_TIME_LIMIT_S

    async def run_tests(
        self, code: str, language: str, test_cases: Sequence[TestCase]
    ) -> TestRunSummary:
        check_code(code, self.coordinator.settings.MAX_CODE_BYTES)
        if not test_cases:
            raise InvalidRequest("No test cases defined")
        for test in test_cases:
            check_stdin(test.input, self.coordinator.settings.MAX_STDIN_BYTES)

        results: List[TestCaseResult] = []
        for i, test in enumerate(test_cases):
            results.append(await self._run_case(i, code, language, test))

        passed = sum(1 for r in results if r.passed)
        logger.info("Test run finished: %d/%d passed", passed, len(results))
        return TestRunSummary(total=len(results), passed=passed, results=results)

    async def _run_case(
        self, index: int, code: str, language: str, test: TestCase
    ) -> TestCaseResult:
        shown_input = HIDDEN_INPUT if test.is_hidden else test.input
        request = ExecutionRequest(code=code, language=language, stdin=test.input or None)
        try:
            result = await asyncio.wait_for(
                self.coordinator.execute(request), self.case_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Test case %d hit the %ss guard", index, self.case_timeout)
            return TestCaseResult(
                index=index,
                passed=False,
                input=shown_input,
                actual_output=INCORRECT if test.is_hidden else "",
                error=f"Test execution timeout ({self.case_timeout:g} seconds)",
            )

        actual = result.stderr if result.stderr else result.stdout
        passed = not result.stderr and normalize(actual) == normalize(test.expected_output)
        if test.is_hidden:
            shown_output = CORRECT if passed else INCORRECT
            shown_error = HIDDEN_ERROR if result.stderr else None
        else:
            shown_output = actual
            shown_error = result.stderr or None
        return TestCaseResult(
            index=index,
            passed=passed,
            input=shown_input,
            actual_output=shown_output,
            error=shown_error,
        )


async def run_tests(
    coordinator: ExecutionCoordinator,
    code: str,
    language: str,
    test_cases: Sequence[TestCase],
) -> TestRunSummary:
    return await TestHarness(coordinator).run_tests(code, language, test_cases)
