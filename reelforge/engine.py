"""Orchestrator — runs the assembly pipeline defined by an AssemblyManifest."""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable

from reelforge.analyzers.probe import probe_timeline
from reelforge.editors.assemble import AssemblyExecutor
from reelforge.editors.captions import plan_subtitles, write_sidecar
from reelforge.editors.concat import FallbackConcatenator
from reelforge.editors.transitions import build_transition_graph
from reelforge.errors import AssemblyError, InsufficientDataError
from reelforge.ffutil import MediaEngine
from reelforge.manifest import AssemblyManifest, BackgroundMusicSettings
from reelforge.models import ProgressEvent, SubtitleCue, TransitionGraph, TransitionKind, TransitionOp
from reelforge.timeline import Timeline

logger = logging.getLogger(__name__)


@dataclass
class EngineResult:
    output_path: Path
    caption_path: Path | None = None
    used_fallback: bool = False
    music_path: Path | None = None
    durations: list[float | None] = field(default_factory=list)
    transitions: list[TransitionOp] = field(default_factory=list)
    cues: list[SubtitleCue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def expected_duration(self) -> float | None:
        if not self.durations or any(d is None for d in self.durations):
            return None
        return sum(self.durations)


async def plan(
    manifest: AssemblyManifest,
    engine: MediaEngine,
) -> EngineResult:
    """Probe the segments and compute transitions and cues without encoding."""
    timeline = Timeline([replace(s, measured_duration=None) for s in manifest.segments], manifest.settings)
    failures = await probe_timeline(timeline, engine)
    result = EngineResult(output_path=manifest.output, durations=timeline.durations)
    if failures:
        result.used_fallback = True
        result.warnings.extend(str(f) for f in failures)
    else:
        try:
            graph = build_transition_graph(timeline)
        except InsufficientDataError:
            result.used_fallback = True
        else:
            result.transitions = graph.ops
            result.warnings.extend(graph.warnings)
    result.cues, _ = plan_subtitles(timeline)
    return result


async def assemble_video(
    manifest: AssemblyManifest,
    engine: MediaEngine | None = None,
    on_progress: Callable[[ProgressEvent], None] | None = None,
    timeout: float | None = None,
) -> EngineResult:
    """Execute the full assembly pipeline.

    Args:
        manifest: Validated assembly manifest.
        engine: Media engine handle; a default ffmpeg/ffprobe handle if omitted.
        on_progress: Optional callback receiving ProgressEvent updates.
        timeout: Optional limit in seconds for each encoding invocation.

    Raises:
        AssemblyError: when the last fallback fails too. Background music
            is dropped before transitions; a concatenation without music
            is the final attempt.
    """
    engine = engine or MediaEngine()
    warnings: list[str] = []

    def _progress(percent: float, message: str, level: str = "info") -> None:
        if level == "warning":
            warnings.append(message)
        if on_progress:
            on_progress(ProgressEvent(percent=int(percent), message=message, level=level))

    def _sub_progress(message: str, base: float, span: float):
        """Return a callback that maps a [0,1] fraction to [base, base+span]."""
        def cb(frac: float) -> None:
            _progress(base + frac * span, message)
        return cb

    engine.check()

    _progress(0, "Probing segments")
    timeline = Timeline(
        [replace(s, measured_duration=None) for s in manifest.segments],
        manifest.settings,
    )
    failures = await probe_timeline(
        timeline, engine, on_progress=_sub_progress("Probing segments", 0, 10)
    )
    if failures:
        failed = [f.path for f in failures]
        _progress(10, f"Could not measure {len(failures)} segment(s) {failed}; joining without transitions", "warning")

    # --- Graph ---
    _progress(10, "Building assembly graph")
    graph = None
    if not failures:
        try:
            graph = build_transition_graph(timeline)
        except InsufficientDataError as e:
            logger.info("Using concatenation: %s", e)
            if manifest.settings.transition != TransitionKind.NONE:
                _progress(12, f"Transitions skipped: {e}", "warning")
        else:
            for warning in graph.warnings:
                _progress(12, warning, "warning")
    cues, segment_cues = plan_subtitles(timeline)

    # --- Encode ---
    output = manifest.output
    music = manifest.settings.music
    if music is not None and not music.path.is_file():
        _progress(12, f"Background music {music.path} not found; continuing without music", "warning")
        music = None
    total = timeline.total_duration()
    if music is not None and total is not None and music.start_offset >= total:
        _progress(12, f"Music starts at {music.start_offset}s, after the {total:.2f}s video ends; skipping it", "warning")
        music = None

    # Each failed attempt downgrades once: music goes first, then transitions.
    attempts: list[tuple[TransitionGraph | None, BackgroundMusicSettings | None]] = [(graph, music)]
    if music is not None:
        attempts.append((graph, None))
    if graph is not None:
        attempts.append((None, None))

    fallback = FallbackConcatenator(engine)
    errors: list[AssemblyError] = []
    for attempt_graph, attempt_music in attempts:
        if errors:
            previous = errors[-1]
            if music is not None and attempt_music is None and attempt_graph is graph:
                _progress(15, f"Mixing background music failed ({previous.returncode}); retrying without music", "warning")
            elif attempt_graph is None and graph is not None:
                _progress(15, f"Transition assembly failed ({previous.returncode}); retrying without transitions", "warning")
        encode_message = "Encoding with transitions" if attempt_graph else "Concatenating segments"
        _progress(15, encode_message)
        try:
            if attempt_graph is not None:
                await AssemblyExecutor(engine).assemble(
                    timeline, attempt_graph, cues, output,
                    on_progress=_sub_progress(encode_message, 15, 80),
                    timeout=timeout,
                    music=attempt_music,
                )
            else:
                await fallback.concatenate(
                    timeline, output,
                    on_progress=_sub_progress(encode_message, 15, 80),
                    timeout=timeout,
                    music=attempt_music,
                )
        except AssemblyError as e:
            logger.error("%s failed: %s", encode_message, e)
            errors.append(e)
        else:
            graph, music = attempt_graph, attempt_music
            break
    else:
        if len(errors) > 1:
            raise errors[-1] from errors[0]
        raise errors[0]
    used_fallback = graph is None

    # --- Captions sidecar ---
    caption_path = None
    if manifest.sidecar and cues:
        _progress(96, "Writing subtitle file")
        caption_path = write_sidecar(cues, output, manifest.sidecar)

    _progress(100, "Done")
    return EngineResult(
        output_path=output,
        caption_path=caption_path,
        used_fallback=used_fallback,
        music_path=music.path if music is not None else None,
        durations=timeline.durations,
        transitions=graph.ops if graph is not None and not used_fallback else [],
        cues=cues or list(segment_cues.values()),
        warnings=warnings,
    )
