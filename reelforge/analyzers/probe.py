"""Segment prober — measures every segment's duration concurrently."""

import asyncio
import logging
from typing import Callable

from reelforge.errors import ProbeError
from reelforge.ffutil import MediaEngine
from reelforge.timeline import Timeline

logger = logging.getLogger(__name__)


async def probe_timeline(
    timeline: Timeline,
    engine: MediaEngine,
    on_progress: Callable[[float], None] | None = None,
) -> list[ProbeError]:
    """Probe all segments in parallel and record durations in index order.

    Each probe writes only its own slot, so completion order never affects the
    resulting timeline. Failures are returned rather than raised; the caller
    decides whether to fall back. The timeline is sealed afterwards.
    """
    limit = asyncio.Semaphore(max(1, engine.max_parallel_probes))
    total = len(timeline)
    done = 0

    async def probe_one(position: int) -> None:
        nonlocal done
        segment = timeline.segments[position]
        async with limit:
            duration = await engine.probe_duration(segment.source)
        timeline.record_duration(position, duration)
        done += 1
        logger.debug("Segment %d: %.3fs (%s)", segment.index, duration, segment.source)
        if on_progress:
            on_progress(done / total)

    results = await asyncio.gather(
        *(probe_one(i) for i in range(total)),
        return_exceptions=True,
    )

    failures: list[ProbeError] = []
    for segment, outcome in zip(timeline.segments, results):
        if isinstance(outcome, ProbeError):
            logger.warning("Probe failed for segment %d: %s", segment.index, outcome)
            failures.append(outcome)
        elif isinstance(outcome, BaseException):
            raise outcome

    timeline.seal()
    return failures
