"""Generate dashboard documents from the command line."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Ensure project root is on sys.path when executed via `python scripts/...`
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dashgen.errors import DashgenError, ValidationError
from dashgen.logger import setup_logging
from dashgen.pipeline import build_pipeline
from dashgen.types import ANONYMOUS_CALLER, Query


async def run_queries(questions, caller_id: str, use_memory: bool, show_trace: bool) -> int:
    pipeline = build_pipeline()
    failures = 0
    for question in questions:
        print("===")
        print(question)
        try:
            document, trace = await pipeline.run(
                Query(text=question, caller_id=caller_id, use_memory=use_memory)
            )
        except ValidationError as exc:
            failures += 1
            print(f"REJECTED ({exc.code}):")
            print("\n".join(f"- {error}" for error in exc.errors))
            continue
        except DashgenError as exc:
            failures += 1
            print(f"FAILED ({exc.code}): {exc}")
            continue
        print(json.dumps(document.to_payload(), indent=2))
        if show_trace:
            print("States:", " -> ".join(state.value for state in trace.states))
            print("Timings:", trace.timings)
            print("Sources:", ", ".join(trace.sources_used) or "none")
    return failures


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate dashboard documents.")
    parser.add_argument("query", nargs="*", help="Query text; omit when using --seeds.")
    parser.add_argument("--seeds", help="Path to a JSON list of queries.")
    parser.add_argument("--caller", default=ANONYMOUS_CALLER, help="Caller id used for memory lookups.")
    parser.add_argument("--use-memory", action="store_true", help="Allow personal memory retrieval.")
    parser.add_argument("--trace", action="store_true", help="Print pipeline states and timings.")
    parser.add_argument("--log-level", default=None, help="Override the configured log level.")
    args = parser.parse_args()

    if args.seeds:
        questions = json.loads(Path(args.seeds).read_text(encoding="utf-8"))
    elif args.query:
        questions = [" ".join(args.query)]
    else:
        parser.error("Provide a query or --seeds.")

    setup_logging(args.log_level)
    sys.exit(1 if asyncio.run(run_queries(questions, args.caller, args.use_memory, args.trace)) else 0)
