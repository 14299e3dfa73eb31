"""
Entry point for running an autoworker process against a project directory.

Configuration comes from `AUTOWORKER_*` environment variables. The worker
runs in queue-only mode with the manual file queue as its source: items
appended to `<state dir>/manual-queue.json` are ranked, gated by the
approval policy and marked in-progress for an external executor to pick up.
The process exits once the stop-signal file appears.
"""
from __future__ import annotations

import asyncio
import logging

from .config import WorkerConfig
from .logging_utils import configure_logging
from .sources import FileQueueSource
from .worker import AutonomousWorker

LOGGER = logging.getLogger(__name__)


async def run_worker(config: WorkerConfig) -> None:
    worker = AutonomousWorker(config)
    worker.register_source(FileQueueSource(config.state_dir))
    await worker.start()
    try:
        await worker.wait_stopped()
    finally:
        if worker.is_running:
            await worker.stop()


def main() -> None:
    configure_logging()
    config = WorkerConfig.from_environment()
    LOGGER.info("Starting autoworker in %s", config.working_directory)
    try:
        asyncio.run(run_worker(config))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted")


if __name__ == "__main__":
    main()
