"""Assembly executor — runs the whole assembly as one media-engine invocation."""

import asyncio
import logging
import tempfile
from enum import Enum
from pathlib import Path
from typing import Callable

from reelforge.editors.transitions import AUDIO_OUT, VIDEO_OUT, render_filter_graph
from reelforge.errors import EmptyOutputError, MissingOutputError, ToolFailedError
from reelforge.ffutil import MediaEngine
from reelforge.manifest import AssemblySettings, BackgroundMusicSettings
from reelforge.models import SubtitleCue, TransitionGraph
from reelforge.timeline import Timeline

logger = logging.getLogger(__name__)


class AssemblyState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    INVOKING = "invoking"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def encode_args(settings: AssemblySettings) -> list[str]:
    crf, preset = settings.encoder_quality
    return [
        "-c:v", "libx264",
        "-preset", preset,
        "-crf", str(crf),
        "-pix_fmt", "yuv420p",
        "-r", str(settings.frame_rate),
        "-c:a", "aac",
        "-b:a", "192k",
        "-movflags", "+faststart",
    ]


def remove_partial(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    else:
        logger.info("Removed partial output %s", path)


class AssemblyExecutor:
    """Serializes a graph and its cues, invokes the engine once, classifies the outcome.

    No retries happen here; falling back is the caller's decision.
    """

    def __init__(self, engine: MediaEngine):
        self.engine = engine
        self.state = AssemblyState.IDLE

    async def assemble(
        self,
        timeline: Timeline,
        graph: TransitionGraph | None,
        cues: list[SubtitleCue],
        output_path: Path,
        segment_cues: dict[int, SubtitleCue] | None = None,
        on_progress: Callable[[float], None] | None = None,
        timeout: float | None = None,
        music: BackgroundMusicSettings | None = None,
    ) -> Path:
        """Produce *output_path* from the timeline's segments.

        *on_progress* receives the encoded fraction in [0, 1] when the total
        duration is known. *music* is read as one extra input after the
        segments, looped when its settings ask for it.
        """
        if self.state in (AssemblyState.BUILDING, AssemblyState.INVOKING):
            raise RuntimeError(f"Executor is busy ({self.state.value})")

        self.state = AssemblyState.BUILDING
        try:
            graph_text = render_filter_graph(timeline, graph, cues, segment_cues, music)
        except Exception:
            self.state = AssemblyState.FAILED
            raise
        total = graph.total_duration if graph is not None else timeline.total_duration()

        def on_position(seconds: float) -> None:
            if on_progress and total:
                on_progress(min(seconds / total, 1.0))

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="reelforge_") as scratch:
            script = Path(scratch) / "graph.txt"
            script.write_text(graph_text, encoding="utf-8")

            args: list[str] = ["-y"]
            for segment in timeline.segments:
                args += ["-i", str(segment.source)]
            if music is not None:
                if music.loop:
                    args += ["-stream_loop", "-1"]
                args += ["-i", str(music.path)]
            args += [
                "-filter_complex_script", str(script),
                "-map", f"[{VIDEO_OUT}]",
                "-map", f"[{AUDIO_OUT}]",
                *encode_args(timeline.settings),
                str(output_path),
            ]

            self.state = AssemblyState.INVOKING
            logger.info(
                "Assembling %d segments into %s%s",
                len(timeline), output_path, " with music" if music else "",
            )
            try:
                run = await self.engine.run(args, on_position=on_position, timeout=timeout)
            except asyncio.CancelledError:
                self.state = AssemblyState.FAILED
                remove_partial(output_path)
                raise

        if run.returncode != 0:
            self.state = AssemblyState.FAILED
            remove_partial(output_path)
            logger.error("ffmpeg exited %s:\n%s", run.returncode, run.details)
            logger.debug("Failed graph:\n%s", graph_text)
            raise ToolFailedError(
                f"ffmpeg exited with code {run.returncode}",
                details=run.details,
                returncode=run.returncode,
            )
        if not output_path.exists():
            self.state = AssemblyState.FAILED
            raise MissingOutputError(f"No output written to {output_path}", details=run.details)
        if output_path.stat().st_size == 0:
            self.state = AssemblyState.FAILED
            remove_partial(output_path)
            raise EmptyOutputError(f"Output file {output_path} is empty", details=run.details)

        self.state = AssemblyState.SUCCEEDED
        return output_path
