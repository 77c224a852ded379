"""Run one background job; scheduled by an external cron."""

from __future__ import annotations

import argparse
import asyncio
import logging

from ..db import _engine
from ..jobs import JOBS


async def run(job: str) -> None:
    try:
        result = await JOBS[job]()
        logging.getLogger(__name__).info("Job %s finished: %s", job, result)
    finally:
        await _engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("job", choices=sorted(JOBS))
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run(args.job))


if __name__ == "__main__":
    main()
