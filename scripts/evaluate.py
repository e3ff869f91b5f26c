#!/usr/bin/env python
"""Evaluate question answering against expected answers with an LLM judge.

Usage:
    python scripts/evaluate.py                     # Built-in sample questions
    python scripts/evaluate.py --cases cases.yaml  # Questions from a YAML file
"""
import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from ragpipe import config
from ragpipe.llm_client import OllamaClient, OllamaEmbedder, OllamaGenerator
from ragpipe.log import configure_logging
from ragpipe.rag.evaluation import SAMPLE_CASES, EvaluationHarness, load_cases
from ragpipe.rag.retriever import Retriever
from ragpipe.rag.store import VectorIndex

logger = structlog.get_logger()


def print_report(report) -> None:
    print(f"\n{'=' * 60}")
    print("  Evaluation Results")
    print(f"{'=' * 60}\n")

    for number, record in enumerate(report.records, 1):
        print(f"  {number}. [{record.state.value}] {record.question}")
        print(f"     Expected:  {record.expected_answer}")
        print(f"     Generated: {record.generated_answer}")
        if record.error:
            print(f"     Error:     {record.error}")
        print()

    print(f"  Passed: {report.passed}/{report.total} ({report.pass_rate:.0%})")
    print(f"\n{'=' * 60}\n")


async def main():
    """Main entry point for the evaluation script."""
    parser = argparse.ArgumentParser(description="Evaluate RAG answers with an LLM judge")
    parser.add_argument("--cases", type=Path, default=None, help="YAML file of cases")
    parser.add_argument("--namespace", default=None, help=f"Index namespace (default: {config.NAMESPACE})")
    parser.add_argument("--k", type=int, default=None, help=f"Chunks to retrieve (default: {config.RETRIEVAL_TOP_K})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show log output")

    args = parser.parse_args()
    configure_logging("INFO" if args.verbose else "WARNING")

    try:
        cases = load_cases(args.cases) if args.cases else SAMPLE_CASES
        index = VectorIndex.load(config.INDEX_PATH)

        client = OllamaClient()
        retriever = Retriever(
            embedder=OllamaEmbedder(client),
            index=index,
            generator=OllamaGenerator(client),
            namespace=args.namespace,
            top_k=args.k,
        )
        harness = EvaluationHarness(
            retriever,
            judge=OllamaGenerator(client, model=config.JUDGE_MODEL, temperature=0.0),
        )

        report = await harness.evaluate(cases)
        print_report(report)

        if report.failed > 0:
            sys.exit(1)

    except FileNotFoundError as e:
        print(f"\nError: {e}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\nError: {e}\n")
        logger.error("evaluate_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
