#!/usr/bin/env python3
"""
Worker script that drains the generation job queue.

Usage:
    python scripts/run_worker.py            # run until stopped
    python scripts/run_worker.py --once     # process the queue once and exit (cron)

Add to crontab to run automatically:
    # Every minute
    * * * * * cd /path/to/dialectic-worker && python scripts/run_worker.py --once
"""

import argparse
import sys
import logging
from pathlib import Path

# Add src to path so we can import dialectic
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from dialectic.logging_config import configure_logging
from dialectic.tracing import configure_tracing
from dialectic.worker import run_once, run_worker

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Process generation jobs")
    parser.add_argument("--once", action="store_true", help="drain runnable jobs, then exit")
    args = parser.parse_args()

    load_dotenv()
    configure_logging()
    configure_tracing()

    if not args.once:
        run_worker()
        return

    processed = 0
    try:
        while run_once():
            processed += 1
    except Exception:
        logger.exception("Fatal error while draining job queue")
        sys.exit(1)

    logger.info("Queue drained: %d job(s) processed", processed)


if __name__ == "__main__":
    main()
