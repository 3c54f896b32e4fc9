"""
Command-line trigger: run one step and exit 0 on success, 1 otherwise
"""

import argparse
import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional

from batch.registry import build_step_registry, get_step
from batch.runner import StepRunner
from core.config import settings
from core.database import build_engine, build_session_maker
from core.exceptions import StepConfigurationError
from core.logging import setup_logging

logger = logging.getLogger(__name__)


def parse_parameters(pairs: List[str]) -> Dict[str, Any]:
    """Turn key=value pairs into run parameters; values are JSON when they parse"""
    parameters: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {pair!r}")
        try:
            parameters[key] = json.loads(value)
        except json.JSONDecodeError:
            parameters[key] = value
    return parameters


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one batch step")
    parser.add_argument("step", nargs="?", help="Step name (omit with --list)")
    parser.add_argument(
        "-p", "--param", action="append", default=[], metavar="KEY=VALUE",
        help="Run parameter; repeatable. Defaults to time=<epoch millis>",
    )
    parser.add_argument("--fresh", action="store_true", help="Ignore stored state and reprocess from zero")
    parser.add_argument("--recover", action="store_true", help="Resume a run left STARTED by a crashed attempt")
    parser.add_argument("--chunk-size", type=int, default=None, help="Override CHUNK_SIZE")
    parser.add_argument("--list", action="store_true", help="List registered steps and exit")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    return parser


async def run_step(args: argparse.Namespace) -> int:
    engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    session_factory = build_session_maker(engine)

    try:
        registry = build_step_registry(settings, engine, session_factory, chunk_size=args.chunk_size)

        if args.list or not args.step:
            for name, step in sorted(registry.items()):
                print(f"{name:16} {step.description}")
            return 0 if args.list else 2

        parameters = parse_parameters(args.param) or {"time": int(time.time() * 1000)}
        step = get_step(registry, args.step)
        outcome = await StepRunner(session_factory).run(
            step, parameters, fresh=args.fresh, recover=args.recover
        )

        print(outcome.summary())
        return 0 if outcome.succeeded else 1

    except StepConfigurationError as e:
        logger.error(str(e))
        return 1
    finally:
        await engine.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        parse_parameters(args.param)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))

    setup_logging(args.log_level)
    return asyncio.run(run_step(args))


if __name__ == "__main__":
    raise SystemExit(main())
