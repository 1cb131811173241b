#!/usr/bin/env python3
"""
Command-line demo of the SQL-of-Thought pipeline.

Runs one question through the same orchestrator the HTTP endpoint uses and
prints the progress events as they arrive, then the first result rows.

Usage:
    python scripts/run_demo.py                # first demo question
    python scripts/run_demo.py 2              # third demo question
    python scripts/run_demo.py --question "How many albums are there?"
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

# Add the src directory to the Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from dotenv import load_dotenv

env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)

from sqlthought.config import get_settings
from sqlthought.config_constants import DEMO_QUESTIONS
from sqlthought.domain.base_enums import EventType
from sqlthought.domain.errors import SQLThoughtException
from sqlthought.domain.pipeline import RunConfig
from sqlthought.domain.responses import ProgressEvent
from sqlthought.infrastructure.database_client import DatabaseClient
from sqlthought.services.progress import ProgressEmitter
from sqlthought.services.sql_of_thought_service import create_sql_of_thought_service
from sqlthought.utils.logging import configure_logging
from sqlthought.utils.tracing import trace_scope

_EVENT_MARKERS = {
    EventType.AGENT_START: "▶",
    EventType.AGENT_COMPLETE: "✓",
    EventType.AGENT_ERROR: "✗",
    EventType.AGENT_UPDATE: "↻",
    EventType.COMPLETE: "■",
    EventType.ERROR: "✗",
}


def print_event(event: ProgressEvent) -> None:
    marker = _EVENT_MARKERS.get(event.type, "-")
    agent = event.data.get("agent", "")

    if event.type == EventType.AGENT_START:
        print(f"\n{marker} [{agent}] started")
    elif event.type in (EventType.AGENT_COMPLETE, EventType.AGENT_UPDATE):
        print(f"{marker} [{agent}]\n{event.data.get('output', '')}")
    elif event.type == EventType.AGENT_ERROR:
        print(f"{marker} [{agent}] {event.data.get('error', '')}")
    elif event.type == EventType.ERROR:
        print(f"\n{marker} Pipeline error: {event.data.get('error', '')}")
    elif event.type == EventType.COMPLETE:
        status = "succeeded" if event.data.get("success") else "failed"
        print(f"\n{marker} Run {status} after {event.data.get('attempts')} attempt(s)")


async def run_demo(question: str, model: Optional[str], api_key: Optional[str]) -> bool:
    settings = get_settings()

    api_key = api_key or settings.llm.openai_api_key
    if not api_key:
        print("✗ No API key: pass --api-key or set LLM__OPENAI_API_KEY")
        return False

    run_config = RunConfig(
        model=model or settings.llm.default_model,
        api_key=api_key,
        temperature=settings.llm.temperature,
    )

    print("=" * 80)
    print("🚀 SQL-of-Thought: Multi-agent Text-to-SQL")
    print("=" * 80)
    print(f"\n📝 Question: {question}")

    db_client = DatabaseClient(settings.database)
    try:
        await db_client.connect()
    except SQLThoughtException as e:
        print(f"✗ {e.message}")
        return False

    try:
        service = await create_sql_of_thought_service(settings, db_client, run_config)
        emitter = ProgressEmitter()
        task = asyncio.create_task(service.run(question, emitter))

        async for event in emitter.stream():
            print_event(event)

        state = await task
    finally:
        await db_client.close()

    if state.success and state.last_result is not None:
        rows = state.last_result.rows[: settings.pipeline.preview_rows]
        print(f"\n📋 Results (first {len(rows)} of {state.last_result.row_count} rows):")
        print(json.dumps(rows, indent=2, ensure_ascii=False, default=str))

    print("\n" + "=" * 80)
    return state.success


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one question through the SQL-of-Thought pipeline.")
    parser.add_argument(
        "index",
        nargs="?",
        type=int,
        default=0,
        help=f"Demo question index (0-{len(DEMO_QUESTIONS) - 1})",
    )
    parser.add_argument("--question", help="Ask this question instead of a demo question")
    parser.add_argument("--model", help="Model for every stage (default: from config)")
    parser.add_argument("--api-key", help="OpenAI API key (default: LLM__OPENAI_API_KEY)")
    args = parser.parse_args()

    if args.question:
        question = args.question
    elif 0 <= args.index < len(DEMO_QUESTIONS):
        question = DEMO_QUESTIONS[args.index]
    else:
        question = DEMO_QUESTIONS[0]

    configure_logging()
    with trace_scope():
        success = asyncio.run(run_demo(question, args.model, args.api_key))

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
