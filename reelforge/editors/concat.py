"""Fallback concatenator — joins segments in order without transitions."""

import logging
from pathlib import Path
from typing import Callable

from reelforge.editors.assemble import AssemblyExecutor
from reelforge.editors.captions import plan_subtitles
from reelforge.ffutil import MediaEngine
from reelforge.manifest import BackgroundMusicSettings
from reelforge.timeline import Timeline

logger = logging.getLogger(__name__)


class FallbackConcatenator:
    """Degraded-mode join used when transitions are off, impossible, or failed.

    Audio concatenation and subtitle overlays work as in the full assembly.
    Unknown durations are tolerated: subtitles are then drawn on each
    segment's own clock before joining.
    """

    def __init__(self, engine: MediaEngine):
        self.engine = engine

    async def concatenate(
        self,
        timeline: Timeline,
        output_path: Path,
        on_progress: Callable[[float], None] | None = None,
        timeout: float | None = None,
        music: BackgroundMusicSettings | None = None,
    ) -> Path:
        if not timeline.segments:
            raise ValueError("concatenate called with empty segment list")

        cues, segment_cues = plan_subtitles(timeline)
        logger.info(
            "Concatenating %d segments without transitions (%s subtitles)",
            len(timeline),
            "timeline" if cues else "per-segment" if segment_cues else "no",
        )
        executor = AssemblyExecutor(self.engine)
        return await executor.assemble(
            timeline,
            None,
            cues,
            output_path,
            segment_cues=segment_cues,
            on_progress=on_progress,
            timeout=timeout,
            music=music,
        )
