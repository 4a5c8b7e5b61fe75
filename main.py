"""Command-line entry point for cutbatch."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Sequence

from cutbatch.runtime import BatchRuntime


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate image and audio assets for episode cuts.")
    parser.add_argument("--config", default=None, help="Path to an override YAML configuration file.")
    parser.add_argument("--log-level", default=None, help="Console log level (DEBUG, INFO, ...).")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    runtime = BatchRuntime.from_defaults(args.config, log_level=args.log_level)
    logger = runtime.logger
    try:
        success = asyncio.run(runtime.run())
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        logger.warning("Interrupted by user.")
        return 1
    except Exception as exc:
        logger.exception("Runtime terminated due to unexpected error: %s", exc)
        return 1
    return 0 if success else 2


if __name__ == "__main__":
    sys.exit(main())
