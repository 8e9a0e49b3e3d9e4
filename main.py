"""
castforge - command line entry point

Usage:
  python main.py produce --transcript episode.txt [--session-id TT-123]
  python main.py produce-from-store --session-id TT-123
  python main.py validate
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

# Load environment variables
load_dotenv()

from castforge.config.settings import get_settings
from castforge.config.startup_validation import run_startup_validation
from castforge.errors import PipelineError
from castforge.pipeline import EpisodeProducer
from castforge.utils.logger import configure_logging

logger = logging.getLogger("castforge.cli")


async def produce(args, settings) -> int:
    producer = EpisodeProducer.from_settings(settings)
    try:
        if args.command == "produce":
            transcript = Path(args.transcript).read_text(encoding="utf-8")
            episode = await producer.produce(transcript, args.session_id)
        else:
            episode = await producer.produce_from_store(args.session_id)
    except PipelineError as e:
        logger.error(f"Production failed: {e}")
        return 1
    finally:
        await producer.aclose()

    print(json.dumps(episode.model_dump(), indent=2))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Produce a podcast episode from a transcript")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("produce", help="Produce an episode from a transcript file")
    p.add_argument("--transcript", required=True, help="Path to the transcript text file")
    p.add_argument("--session-id", help="Session id (default: TT-<epoch millis>)")

    p = sub.add_parser("produce-from-store", help="Produce from text chunks already in storage")
    p.add_argument("--session-id", required=True)

    p = sub.add_parser("validate", help="Check configuration and tooling")
    p.add_argument("--local", action="store_true", help="Do not require the object store")

    args = parser.parse_args()
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level, json_logs=settings.log_json, log_file=settings.log_file)

    if args.command == "validate":
        validation = run_startup_validation(settings, require_object_store=not args.local)
        return 0 if validation.is_valid else 1

    # R2 becomes required as soon as any R2 setting is present
    run_startup_validation(settings, require_object_store=False, exit_on_failure=True, print_summary=False)
    return asyncio.run(produce(args, settings))


if __name__ == "__main__":
    sys.exit(main())
