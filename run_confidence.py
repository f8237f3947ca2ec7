"""
run_confidence.py — score one query and its candidate responses from the shell

Reads a JSON file of the form
    {"query": "...", "responses": ["...", "...", ...]}
runs the full semantic uncertainty pipeline against the configured
LLM provider (see .env / LLM_* variables) and prints the result as JSON.

Usage:
    python run_confidence.py samples.json
    python run_confidence.py samples.json --provider deepseek --model deepseek-chat
    cat samples.json | python run_confidence.py -
"""

import argparse
import asyncio
import json
import logging
import sys

from semantic_uq.analysis.engine import SemanticEntropyEngine
from semantic_uq.core.config import settings, validate_settings_for_production
from semantic_uq.core.exceptions import InputError
from semantic_uq.core.logging import setup_logging

setup_logging(stream=sys.stderr)  # stdout carries the result JSON
logger = logging.getLogger("run_confidence")


def _load(path: str) -> tuple[str, list[str]]:
    if path == "-":
        data = json.load(sys.stdin)
    else:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)

    if not isinstance(data, dict) or not isinstance(data.get("responses"), list):
        raise InputError('expected an object with a "responses" list')
    return str(data.get("query", "")), [str(r) for r in data["responses"]]


async def main(args: argparse.Namespace) -> int:
    if args.provider:
        settings.llm_provider = args.provider
    if args.model:
        settings.llm_model = args.model
    validate_settings_for_production()

    try:
        query, responses = _load(args.input)
    except (OSError, json.JSONDecodeError, InputError) as e:
        logger.error("Cannot read %s: %s", args.input, e)
        return 2

    engine = SemanticEntropyEngine.from_settings(settings)
    try:
        logger.info("Scoring %d responses with %s", len(responses), settings.llm_provider)
        result = await engine.calculate_confidence(query, responses)
    except InputError as e:
        logger.error("Invalid input: %s", e)
        return 2

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Semantic uncertainty for a set of candidate answers")
    parser.add_argument("input", help='JSON file with "query" and "responses" ("-" for stdin)')
    parser.add_argument("--provider", choices=["openai", "deepseek", "openai_compatible"])
    parser.add_argument("--model")
    sys.exit(asyncio.run(main(parser.parse_args())))
