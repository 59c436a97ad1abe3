"""Transition graph builder — decides how segments are joined.

Narration is never overlapped: audio streams are concatenated in order, and
only the picture crossfades. Each transition starts once the preceding
segment's narration has fully played, over a cloned last frame of that
segment, so the video stays exactly as long as the concatenated audio.
"""

import logging

from reelforge.editors.captions import drawtext_filter
from reelforge.errors import InsufficientDataError
from reelforge.manifest import BackgroundMusicSettings
from reelforge.models import SubtitleCue, TransitionGraph, TransitionKind, TransitionOp
from reelforge.timeline import Timeline

logger = logging.getLogger(__name__)

# Effect name passed to the compositing primitive for each kind.
EFFECTS: dict[TransitionKind, str] = {
    TransitionKind.FADE: "fade",
    TransitionKind.SLIDE: "slideleft",
    TransitionKind.ZOOM: "zoomin",
}

MIN_TRANSITION_SECONDS = 0.1
VIDEO_OUT = "v"
AUDIO_OUT = "a"
AUDIO_FORMAT = "aformat=sample_fmts=fltp:sample_rates=48000:channel_layouts=stereo"
# trim/atrim read a zero duration as unlimited.
MIN_STREAM_SECONDS = 0.001


def clamp_transition_duration(requested: float, previous: float, following: float) -> tuple[float, str | None]:
    """Limit a transition to half of the shorter adjacent segment.

    Returns the duration to use and a warning message if it was clamped.
    """
    shorter = min(previous, following)
    if requested < previous and requested <= shorter * 0.5:
        return requested, None
    clamped = round(max(MIN_TRANSITION_SECONDS, shorter * 0.5), 3)
    warning = (
        f"Transition of {requested}s is too long for a {shorter}s segment; "
        f"using {clamped}s"
    )
    return clamped, warning


def effect_name(kind: TransitionKind) -> str:
    if kind == TransitionKind.NONE:
        raise InsufficientDataError("Transition kind 'none' joins segments by concatenation")
    return EFFECTS[kind]


def build_transition_graph(timeline: Timeline) -> TransitionGraph:
    """Chain one transition per adjacent segment pair.

    Raises InsufficientDataError when the caller should concatenate instead:
    transitions are disabled, there are fewer than two segments, or any
    duration is unknown. Durations are never guessed.
    """
    settings = timeline.settings
    if settings.transition == TransitionKind.NONE:
        raise InsufficientDataError("Transitions disabled")
    if timeline.measured_count < 2:
        raise InsufficientDataError(
            f"Need at least two measured segments, have {timeline.measured_count}"
        )
    if not timeline.fully_measured:
        unknown = [s.index for s in timeline.segments if not s.is_measured]
        raise InsufficientDataError(f"Unknown duration for segment(s) {unknown}")

    effect_name(settings.transition)
    durations: list[float] = [s.measured_duration for s in timeline.segments]
    pads = [0.0] * len(durations)
    ops: list[TransitionOp] = []
    warnings: list[str] = []

    left = "v0"
    # Start of the preceding segment within the running composite.
    cursor = 0.0
    for i in range(1, len(durations)):
        previous = durations[i - 1]
        duration, warning = clamp_transition_duration(
            settings.transition_duration, previous, durations[i]
        )
        if warning:
            logger.warning("Segment %d: %s", timeline.segments[i - 1].index, warning)
            warnings.append(warning)
        pads[i - 1] = duration

        composite_offset = round(cursor + previous, 6)
        # Each segment's video is trimmed to its duration plus its pad, so the
        # composite on the left ends that long after the last xfade began.
        left_length = sum(durations[: i - 1]) + durations[i - 1] + pads[i - 1]
        op = TransitionOp(
            left_input=left,
            right_input=f"v{i}",
            kind=settings.transition,
            offset_seconds=previous,
            duration_seconds=duration,
            output_label=f"x{i}",
            composite_offset_seconds=composite_offset,
            left_duration_seconds=round(left_length, 6),
        )
        ops.append(op)
        cursor = composite_offset
        left = op.output_label

    total = round(sum(durations), 6)
    logger.info(
        "Built %d %s transition(s) over %d segments (%.2fs)",
        len(ops), settings.transition.value, len(durations), total,
    )
    return TransitionGraph(
        ops=ops,
        output_label=left,
        pad_seconds=pads,
        warnings=warnings,
        total_duration=total,
    )


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _seconds(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def _stream_length(value: float) -> str:
    return _seconds(max(value, MIN_STREAM_SECONDS))


def _normalize_video(timeline: Timeline) -> list[str]:
    settings = timeline.settings
    w, h = settings.resolution.width, settings.resolution.height
    return [
        f"scale={w}:{h}:force_original_aspect_ratio=decrease",
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2",
        "setsar=1",
        f"fps={settings.frame_rate}",
        "format=yuv420p",
    ]


def _music_chain(music: BackgroundMusicSettings, input_index: int, total: float | None) -> str:
    """Shape the music bed: gain, fades, trim to the narration and start offset."""
    chain = [f"volume={_seconds(music.gain)}"]
    target = total - music.start_offset if total is not None else None
    if target is not None and target > 0:
        chain.append(f"atrim=duration={_seconds(target)}")
    if music.fade_in > 0:
        chain.append(f"afade=t=in:st=0:d={_seconds(music.fade_in)}")
    if target is not None and target > 0 and music.fade_out > 0:
        fade_out = min(music.fade_out, target)
        chain.append(f"afade=t=out:st={_seconds(target - fade_out)}:d={_seconds(fade_out)}")
    chain.append(AUDIO_FORMAT)
    if music.start_offset > 0:
        delay = round(music.start_offset * 1000)
        chain.append(f"adelay={delay}|{delay}")
    return f"[{input_index}:a]" + ",".join(chain) + "[music]"


def render_filter_graph(
    timeline: Timeline,
    graph: TransitionGraph | None,
    cues: list[SubtitleCue] | None = None,
    segment_cues: dict[int, SubtitleCue] | None = None,
    music: BackgroundMusicSettings | None = None,
) -> str:
    """Serialize the assembly into ffmpeg filtergraph syntax.

    With *graph* the video is joined by its xfade chain; without it, by plain
    concatenation. *cues* are drawn on the joined video's clock;
    *segment_cues* are drawn on each segment's own clock before joining.
    Segments with a measured duration are forced to exactly that length (plus
    any transition pad) on both streams. *music*, read from the input after
    the segments, is mixed under the concatenated narration. Final streams
    are labelled ``[v]`` and ``[a]``.
    """
    settings = timeline.settings
    subtitles = settings.subtitles if settings.subtitles_enabled else None
    n = len(timeline)
    parts: list[str] = []

    for i, segment in enumerate(timeline.segments):
        chain = _normalize_video(timeline)
        if segment_cues and subtitles and i in segment_cues:
            chain.append(drawtext_filter(segment_cues[i], subtitles, settings.resolution))
        audio = ["aresample=async=1", AUDIO_FORMAT]
        if segment.is_measured:
            pad = graph.pad_seconds[i] if graph is not None else 0.0
            chain.append("tpad=stop_mode=clone:stop=-1")
            chain.append(f"trim=duration={_stream_length(segment.measured_duration + pad)}")
            audio += ["apad", f"atrim=duration={_stream_length(segment.measured_duration)}"]
        parts.append(f"[{i}:v]" + ",".join(chain) + f"[v{i}]")
        parts.append(f"[{i}:a]" + ",".join(audio) + f"[a{i}]")

    if graph is not None and graph.ops:
        for op in graph.ops:
            parts.append(
                f"[{op.left_input}][{op.right_input}]xfade=transition={EFFECTS[op.kind]}"
                f":duration={_seconds(op.duration_seconds)}"
                f":offset={_seconds(op.composite_offset_seconds)}[{op.output_label}]"
            )
        joined = graph.output_label
    elif n > 1:
        inputs = "".join(f"[v{i}]" for i in range(n))
        parts.append(f"{inputs}concat=n={n}:v=1:a=0[vjoin]")
        joined = "vjoin"
    else:
        joined = "v0"

    overlays = [drawtext_filter(c, subtitles, settings.resolution) for c in cues or []] if subtitles else []
    if overlays:
        parts.append(f"[{joined}]" + ",".join(overlays) + f"[{VIDEO_OUT}]")
    else:
        parts.append(f"[{joined}]null[{VIDEO_OUT}]")

    narration = AUDIO_OUT if music is None else "narration"
    if n > 1:
        audio_inputs = "".join(f"[a{i}]" for i in range(n))
        parts.append(f"{audio_inputs}concat=n={n}:v=0:a=1[{narration}]")
    else:
        parts.append(f"[a0]anull[{narration}]")
    if music is not None:
        total = graph.total_duration if graph is not None else timeline.total_duration()
        parts.append(_music_chain(music, n, total))
        parts.append(
            f"[{narration}][music]amix=inputs=2:duration=first"
            f":dropout_transition=2:weights=1 0.8[{AUDIO_OUT}]"
        )

    graph_text = ";\n".join(parts)
    logger.debug("Filter graph:\n%s", graph_text)
    return graph_text
