"""Subtitle cue generator — timing, wrapping, sanitization and rendering.

Cue timing shares one clock with the narration: every scene's audio starts at
the sum of the durations before it, whatever transition the video uses. Each
cue appears a little before its narration (the early-read allowance) and is
hidden exactly when the narration ends.
"""

import logging
import math
from pathlib import Path

from reelforge.manifest import BASE_FONT_SIZE, SubtitleSettings
from reelforge.models import Resolution, SubtitleCue, SubtitlePosition
from reelforge.timeline import Timeline

logger = logging.getLogger(__name__)

EARLY_READ_SECONDS = 0.3
FADE_IN_SECONDS = 0.5
BASE_LINE_LENGTH = 60
MIN_LINE_LENGTH = 15
MAX_LINE_LENGTH = 80
LAST_LINE_OVERFLOW = 1.2

# Punctuation the renderer could read as syntax, mapped to look-alikes.
# Substitutions only: nothing is ever deleted.
SAFE_PUNCTUATION: list[tuple[str, str]] = [
    ("'", "’"),
    ("‘", "’"),
    ("`", "’"),
    ('"', "”"),
    ("“", "”"),
    ("–", "—"),
    ("…", "..."),
    ("©", "(c)"),
    ("®", "(R)"),
    ("™", "(TM)"),
]

# Filter-syntax characters escaped with a backslash. Backslash goes first.
FILTER_SPECIAL_CHARS = ("\\", ":", "[", "]", ",", ";", "=", "%")
# Characters the option parser treats specially, and those the graph parser
# treats specially outside quotes.
OPTION_SPECIAL_CHARS = ("\\", "'", ":")
GRAPH_SPECIAL_CHARS = ("\\", "'", "[", "]", ",", ";")
CUE_RESOLUTION_SECONDS = 0.001


# ---------------------------------------------------------------------------
# Wrapping
# ---------------------------------------------------------------------------

def max_line_length(resolution: Resolution, font_size: int, base: int = BASE_LINE_LENGTH) -> int:
    """Characters per line for a frame size and font size.

    Fonts of 48 and up shrink the line by ``ratio * 1.1``; smaller fonts by
    ``sqrt(ratio)``. Portrait frames lose a further 30%.
    """
    ratio = font_size / BASE_FONT_SIZE
    if font_size >= 48:
        length = math.floor(base / (ratio * 1.1))
    else:
        length = math.floor(base / math.sqrt(ratio))
    if resolution.is_portrait:
        length = math.floor(length * 0.7)
    return max(MIN_LINE_LENGTH, min(length, MAX_LINE_LENGTH))


def max_lines(font_size: int, portrait: bool) -> int:
    if font_size >= 64:
        return 5 if portrait else 4
    if font_size >= 48:
        return 4 if portrait else 3
    return 3 if portrait else 2


def _greedy_lines(words: list[str], limit: int) -> list[str]:
    lines: list[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= limit or not current:
            current = candidate
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def wrap_text(text: str, resolution: Resolution, font_size: int) -> str:
    """Wrap narration into at most ``max_lines`` lines without losing words.

    Surplus lines are merged into the last allowed line up to 20% past the line
    limit. Words that still do not fit stay on extra lines.
    """
    words = text.split()
    if not words:
        return ""
    limit = max_line_length(resolution, font_size)
    allowed = max_lines(font_size, resolution.is_portrait)

    lines = _greedy_lines(words, limit)
    if len(lines) <= allowed:
        return "\n".join(lines)

    kept = lines[: allowed - 1]
    last = lines[allowed - 1]
    rest = " ".join(lines[allowed:]).split()
    while rest and len(f"{last} {rest[0]}") <= limit * LAST_LINE_OVERFLOW:
        last = f"{last} {rest.pop(0)}"
    kept.append(last)
    if rest:
        logger.warning(
            "Subtitle needs more than %d lines at font size %d; keeping %d extra line(s)",
            allowed, font_size, len(_greedy_lines(rest, limit)),
        )
        kept.extend(_greedy_lines(rest, limit))
    return "\n".join(kept)


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------

def sanitize_text(text: str) -> str:
    """Make cue text safe to embed in a quoted drawtext ``text`` option.

    The graph parser keeps quoted text as is and the option parser then drops
    one level of backslashes, so drawtext receives the substituted text
    verbatim. The filter must run with ``expansion=none`` for ``%`` and ``\\``
    to stay literal.
    """
    for old, new in SAFE_PUNCTUATION:
        text = text.replace(old, new)
    for ch in FILTER_SPECIAL_CHARS:
        text = text.replace(ch, "\\" + ch)
    return text.replace("\r\n", "\n").replace("\r", "\n")


def escape_option_value(value: str) -> str:
    """Escape an unquoted filter option value for both parser levels."""
    for ch in OPTION_SPECIAL_CHARS:
        value = value.replace(ch, "\\" + ch)
    return "".join("\\" + ch if ch in GRAPH_SPECIAL_CHARS else ch for ch in value)


def _cue_window(start: float, end: float) -> tuple[float, float]:
    """Round a cue window to milliseconds, keeping it at least 1 ms long."""
    start = round(start, 3)
    return start, max(round(end, 3), round(start + CUE_RESOLUTION_SECONDS, 3))


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

def generate_cues(
    timeline: Timeline,
    settings: SubtitleSettings,
    resolution: Resolution | None = None,
) -> list[SubtitleCue]:
    """One cue per narrated scene, on the assembled video's clock.

    A cue never starts before the previous cue ends, so consecutive cues do not
    overlap even with the early-read allowance.
    """
    resolution = resolution or timeline.settings.resolution
    starts = timeline.audio_starts()
    cues: list[SubtitleCue] = []
    previous_end = 0.0
    for segment, audio_start in zip(timeline.segments, starts):
        if not segment.narration.strip():
            continue
        shown_from = audio_start + settings.delay_seconds
        start, end = _cue_window(
            max(0.0, shown_from - EARLY_READ_SECONDS, previous_end),
            shown_from + segment.measured_duration,
        )
        cues.append(
            SubtitleCue(
                scene_index=segment.index,
                start_seconds=start,
                end_seconds=end,
                wrapped_text=wrap_text(segment.narration, resolution, settings.font_size),
            )
        )
        previous_end = end
    logger.debug("Generated %d cues", len(cues))
    return cues


def generate_segment_cues(
    timeline: Timeline,
    settings: SubtitleSettings,
    resolution: Resolution | None = None,
) -> dict[int, SubtitleCue]:
    """Cues anchored to each segment's own clock, keyed by timeline position.

    Used when segments are joined without known durations; a segment with an
    unknown duration gets an open-ended cue.
    """
    resolution = resolution or timeline.settings.resolution
    start = max(0.0, settings.delay_seconds - EARLY_READ_SECONDS)
    cues: dict[int, SubtitleCue] = {}
    for position, segment in enumerate(timeline.segments):
        if not segment.narration.strip():
            continue
        if segment.is_measured:
            shown_from, end = _cue_window(start, settings.delay_seconds + segment.measured_duration)
        else:
            shown_from, end = round(start, 3), math.inf
        cues[position] = SubtitleCue(
            scene_index=segment.index,
            start_seconds=shown_from,
            end_seconds=end,
            wrapped_text=wrap_text(segment.narration, resolution, settings.font_size),
        )
    return cues


def plan_subtitles(timeline: Timeline) -> tuple[list[SubtitleCue], dict[int, SubtitleCue]]:
    """Choose cue anchoring for a timeline.

    Returns ``(cues, {})`` on the shared clock when every duration is known,
    otherwise ``([], segment_cues)``. Both are empty when subtitles are off.
    """
    settings = timeline.settings
    if not settings.subtitles_enabled:
        return [], {}
    if timeline.fully_measured:
        return generate_cues(timeline, settings.subtitles), {}
    return [], generate_segment_cues(timeline, settings.subtitles)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _margins(resolution: Resolution) -> tuple[int, int]:
    horizontal = max(20, math.floor(resolution.width * 0.05))
    if resolution.is_portrait:
        vertical = max(50, math.floor(resolution.height * 0.12))
    else:
        vertical = max(30, math.floor(resolution.height * 0.08))
    return horizontal, vertical


def drawtext_filter(cue: SubtitleCue, settings: SubtitleSettings, resolution: Resolution) -> str:
    """Render one cue as a drawtext filter with timing and fade-in."""
    font_size = settings.font_size
    if resolution.is_portrait:
        font_size = max(16, math.floor(font_size * 0.85))

    h_margin, v_margin = _margins(resolution)
    x = f"max({h_margin}\\,min((w-text_w)/2\\,w-text_w-{h_margin}))"
    if settings.position == SubtitlePosition.TOP:
        y = f"{v_margin}"
    elif settings.position == SubtitlePosition.CENTER:
        y = f"max({v_margin}\\,min((h-text_h)/2\\,h-text_h-{v_margin}))"
    else:
        y = f"max({v_margin}\\,h-text_h-{v_margin})"

    start = cue.start_seconds
    if cue.is_open_ended:
        enable = f"gte(t\\,{start})"
    else:
        enable = f"between(t\\,{start}\\,{cue.end_seconds})"

    options = [
        f"text='{sanitize_text(cue.wrapped_text)}'",
        "expansion=none",
        f"fontsize={font_size}",
        f"fontcolor=0x{settings.font_color}",
        f"x={x}",
        f"y={y}",
        f"borderw={settings.outline_width}",
        f"bordercolor=0x{settings.outline_color}",
    ]
    if settings.font_file:
        options.append(f"fontfile={escape_option_value(settings.font_file)}")
    options.append(f"enable='{enable}'")
    if settings.fade_in:
        fade_end = round(start + FADE_IN_SECONDS, 3)
        options.append(
            f"alpha='if(lt(t\\,{start})\\,0\\,if(lt(t\\,{fade_end})\\,(t-{start})/{FADE_IN_SECONDS}\\,1))'"
        )
    return "drawtext=" + ":".join(options)


# ---------------------------------------------------------------------------
# Sidecar files
# ---------------------------------------------------------------------------

def _format_srt_time(seconds: float) -> str:
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    s = int(seconds % 60)
    ms = int((seconds % 1) * 1000)
    return f"{h:02d}:{m:02d}:{s:02d},{ms:03d}"


def _format_vtt_time(seconds: float) -> str:
    return _format_srt_time(seconds).replace(",", ".")


def _write_srt(cues: list[SubtitleCue], path: Path) -> None:
    lines: list[str] = []
    for i, cue in enumerate(cues, 1):
        lines.append(str(i))
        lines.append(f"{_format_srt_time(cue.start_seconds)} --> {_format_srt_time(cue.end_seconds)}")
        lines.append(cue.wrapped_text)
        lines.append("")
    path.write_text("\n".join(lines), encoding="utf-8")


def _write_vtt(cues: list[SubtitleCue], path: Path) -> None:
    lines: list[str] = ["WEBVTT", ""]
    for cue in cues:
        lines.append(f"{_format_vtt_time(cue.start_seconds)} --> {_format_vtt_time(cue.end_seconds)}")
        lines.append(cue.wrapped_text)
        lines.append("")
    path.write_text("\n".join(lines), encoding="utf-8")


def write_sidecar(cues: list[SubtitleCue], output_path: Path, fmt: str = "srt") -> Path:
    """Write cues next to *output_path* as an SRT or VTT file."""
    subtitle_path = output_path.with_suffix(".vtt" if fmt == "vtt" else ".srt")
    timed = [c for c in cues if not c.is_open_ended]
    if fmt == "vtt":
        _write_vtt(timed, subtitle_path)
    else:
        _write_srt(timed, subtitle_path)
    return subtitle_path
