"""LLM-as-judge evaluation of the question answering path.

Each question moves PENDING -> ANSWERED -> JUDGED -> PASS/FAIL. The judge is
asked to reply with exactly ``PASS`` or ``FAIL``; any other reply, including
near misses such as ``Pass.``, counts as FAIL.
"""
from pathlib import Path
from typing import List, Optional, Sequence

import structlog
import yaml

from ragpipe import config
from ragpipe.errors import RagPipelineError
from ragpipe.llm_client import TextGenerator
from ragpipe.rag.models import (
    EvaluationCase,
    EvaluationRecord,
    EvaluationReport,
    EvaluationState,
)
from ragpipe.rag.retriever import Retriever
from ragpipe.retry import call_with_retries

logger = structlog.get_logger()

PASS_VERDICT = "PASS"

JUDGE_PROMPT = """Please evaluate the generated answer. If the generated answer provides the same information as the expected answer, then return PASS. Otherwise, return FAIL.
Expected answer: {expected_answer}
Generated answer: {generated_answer}"""

SAMPLE_CASES = [
    EvaluationCase(
        question="What is Underwhelming Spatula?",
        expected_answer=(
            "Underwhelming Spatula is a kitchen tool that redefines expectations "
            "by fusing whimsy with functionality."
        ),
    ),
    EvaluationCase(
        question="Who wrote 'Dubious Parenting Tips'?",
        expected_answer="Lisa Melton wrote Dubious Parenting Tips.",
    ),
    EvaluationCase(
        question="How long is Almost-Perfect Investment Guide?",
        expected_answer="The Almost-Perfect Investment Guide is 210 pages long.",
    ),
]


def build_judge_prompt(expected_answer: str, generated_answer: str) -> str:
    return JUDGE_PROMPT.format(
        expected_answer=expected_answer, generated_answer=generated_answer
    )


def is_pass(verdict: str) -> bool:
    """Strict verdict check: only the exact string ``PASS`` passes."""
    return verdict == PASS_VERDICT


def load_cases(path: Path) -> List[EvaluationCase]:
    """Load evaluation cases from a YAML list of question/expected_answer maps.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file isn't a list of valid cases
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Evaluation cases not found: {path}")

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or []
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of cases in {path}")

    cases = []
    for position, item in enumerate(data):
        if not isinstance(item, dict) or "question" not in item or "expected_answer" not in item:
            raise ValueError(
                f"Case {position} in {path} needs 'question' and 'expected_answer'"
            )
        cases.append(
            EvaluationCase(
                question=str(item["question"]),
                expected_answer=str(item["expected_answer"]),
            )
        )

    logger.info("evaluation_cases_loaded", path=str(path), count=len(cases))
    return cases


class EvaluationHarness:
    """Drives questions through the retriever and an external judge."""

    def __init__(
        self,
        retriever: Retriever,
        judge: TextGenerator,
        namespace: Optional[str] = None,
        k: Optional[int] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.retriever = retriever
        self.judge = judge
        self.namespace = namespace
        self.k = k
        self.max_retries = max_retries
        self.timeout = config.EXTERNAL_TIMEOUT if timeout is None else timeout
        self.records: List[EvaluationRecord] = []

    @property
    def passed(self) -> int:
        return sum(1 for record in self.records if record.passed)

    def _transition(self, question: str, state: EvaluationState, **context) -> None:
        logger.info("evaluation_state", question=question[:100], state=state.value, **context)

    async def evaluate_case(self, case: EvaluationCase) -> EvaluationRecord:
        """Answer and judge one question.

        A failure of the answer path or of the judge yields a FAIL record
        carrying the error instead of aborting the run.
        """
        self._transition(case.question, EvaluationState.PENDING)

        try:
            answer = await self.retriever.ask(
                case.question, namespace=self.namespace, k=self.k
            )
        except RagPipelineError as e:
            logger.error("evaluation_answer_failed", question=case.question[:100], error=str(e))
            self._transition(case.question, EvaluationState.FAIL)
            return EvaluationRecord(
                question=case.question,
                generated_answer="",
                expected_answer=case.expected_answer,
                passed=False,
                error=str(e),
            )

        self._transition(case.question, EvaluationState.ANSWERED, used_context=answer.used_context)

        try:
            verdict = await call_with_retries(
                self.judge.invoke,
                build_judge_prompt(case.expected_answer, answer.text),
                operation="judge_answer",
                max_retries=self.max_retries,
                timeout=self.timeout,
            )
        except RagPipelineError as e:
            logger.error("evaluation_judge_failed", question=case.question[:100], error=str(e))
            self._transition(case.question, EvaluationState.FAIL)
            return EvaluationRecord(
                question=case.question,
                generated_answer=answer.text,
                expected_answer=case.expected_answer,
                passed=False,
                error=str(e),
            )

        self._transition(case.question, EvaluationState.JUDGED, verdict=verdict[:20])

        record = EvaluationRecord(
            question=case.question,
            generated_answer=answer.text,
            expected_answer=case.expected_answer,
            passed=is_pass(verdict),
            verdict=verdict,
        )
        self._transition(case.question, record.state)
        return record

    async def evaluate(self, cases: Sequence[EvaluationCase]) -> EvaluationReport:
        """Evaluate cases in order and return the report.

        Records accumulate on the harness across calls; the report covers
        only the cases passed to this call.
        """
        records = []
        for case in cases:
            record = await self.evaluate_case(case)
            records.append(record)
            self.records.append(record)

        report = EvaluationReport(records=records)
        logger.info(
            "evaluation_completed",
            total=report.total,
            passed=report.passed,
            failed=report.failed,
        )
        return report
