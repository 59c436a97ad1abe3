"""JSON manifest schema — the contract between CLI/caller and engine."""

import json
from dataclasses import dataclass, field
from pathlib import Path

from reelforge.models import (
    Orientation,
    Resolution,
    Segment,
    SubtitlePosition,
    TransitionKind,
)

RESOLUTION_PRESETS: dict[str, tuple[int, int]] = {
    "720p": (1280, 720),
    "1080p": (1920, 1080),
    "1440p": (2560, 1440),
    "4K": (3840, 2160),
}

QUALITY_PRESETS: dict[str, tuple[int, str]] = {
    "standard": (28, "fast"),
    "high": (23, "medium"),
    "ultra": (18, "slow"),
}

FRAME_RATES = (24, 30, 60)
BASE_FONT_SIZE = 32
MIN_FONT_SIZE = 12
MAX_FONT_SIZE = 72


def resolve_dimensions(preset: str, orientation: Orientation = Orientation.LANDSCAPE) -> Resolution:
    """Turn a preset name and orientation into pixel dimensions.

    Portrait swaps width and height; square uses the smaller side.
    """
    if preset not in RESOLUTION_PRESETS:
        raise ValueError(f"Unknown resolution preset: {preset!r}")
    width, height = RESOLUTION_PRESETS[preset]
    if orientation == Orientation.PORTRAIT:
        return Resolution(width=height, height=width)
    if orientation == Orientation.SQUARE:
        side = min(width, height)
        return Resolution(width=side, height=side)
    return Resolution(width=width, height=height)


@dataclass
class SubtitleSettings:
    """Burned-in subtitle appearance and timing."""

    enabled: bool = True
    position: SubtitlePosition = SubtitlePosition.BOTTOM
    delay_seconds: float = 0.0
    fade_in: bool = True
    font_size: int = 32
    font_color: str = "ffffff"
    outline_color: str = "000000"
    outline_width: int = 2
    font_file: str | None = None

    def __post_init__(self) -> None:
        self.position = SubtitlePosition(self.position)
        if not MIN_FONT_SIZE <= self.font_size <= MAX_FONT_SIZE:
            raise ValueError(
                f"font_size must be within [{MIN_FONT_SIZE}, {MAX_FONT_SIZE}], got {self.font_size}"
            )
        if self.delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0, got {self.delay_seconds}")
        if self.outline_width < 0:
            raise ValueError(f"outline_width must be >= 0, got {self.outline_width}")
        self.font_color = self.font_color.lstrip("#")
        self.outline_color = self.outline_color.lstrip("#")


@dataclass
class BackgroundMusicSettings:
    """Music bed mixed under the narration.

    ``volume`` is a percentage; the applied gain never drops below 0.1 so the
    track stays audible. ``start_offset`` delays the music on the output clock.
    """

    path: Path
    volume: int = 30
    fade_in: float = 2.0
    fade_out: float = 2.0
    start_offset: float = 0.0
    loop: bool = True

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        if not 0 <= self.volume <= 100:
            raise ValueError(f"music volume must be within [0, 100], got {self.volume}")
        if self.fade_in < 0 or self.fade_out < 0:
            raise ValueError("music fades must be >= 0")
        if self.start_offset < 0:
            raise ValueError(f"music start_offset must be >= 0, got {self.start_offset}")

    @property
    def gain(self) -> float:
        return max(self.volume / 100, 0.1)


@dataclass
class AssemblySettings:
    """Global settings for one assembly run."""

    transition: TransitionKind = TransitionKind.NONE
    transition_duration: float = 1.0
    resolution: Resolution = field(default_factory=lambda: Resolution(1920, 1080))
    frame_rate: int = 30
    orientation: Orientation = Orientation.LANDSCAPE
    quality: str = "high"
    subtitles: SubtitleSettings | None = field(default_factory=SubtitleSettings)
    music: BackgroundMusicSettings | None = None

    def __post_init__(self) -> None:
        self.transition = TransitionKind(self.transition)
        self.orientation = Orientation(self.orientation)
        if self.transition_duration <= 0:
            raise ValueError(f"transition_duration must be > 0, got {self.transition_duration}")
        if self.frame_rate not in FRAME_RATES:
            raise ValueError(f"frame_rate must be one of {FRAME_RATES}, got {self.frame_rate}")
        if self.quality not in QUALITY_PRESETS:
            raise ValueError(f"Unknown quality: {self.quality!r}")
        if self.resolution.width <= 0 or self.resolution.height <= 0:
            raise ValueError(f"Invalid resolution: {self.resolution.width}x{self.resolution.height}")

    @property
    def subtitles_enabled(self) -> bool:
        return self.subtitles is not None and self.subtitles.enabled

    @property
    def encoder_quality(self) -> tuple[int, str]:
        """(crf, preset) for the video encoder."""
        return QUALITY_PRESETS[self.quality]


@dataclass
class AssemblyManifest:
    """Top-level assembly request."""

    segments: list[Segment]
    output: Path
    version: str = "1"
    settings: AssemblySettings = field(default_factory=AssemblySettings)
    sidecar: str | None = None

    def __post_init__(self) -> None:
        if self.sidecar not in (None, "srt", "vtt"):
            raise ValueError(f"sidecar must be 'srt' or 'vtt', got {self.sidecar!r}")


def _parse_settings(
    data: dict,
    subtitles: SubtitleSettings | None,
    music: BackgroundMusicSettings | None = None,
) -> AssemblySettings:
    data = dict(data)
    orientation = Orientation(data.pop("orientation", Orientation.LANDSCAPE))
    preset = data.pop("resolution", "1080p")
    width = data.pop("width", None)
    height = data.pop("height", None)
    if width is not None and height is not None:
        resolution = Resolution(width=int(width), height=int(height))
    else:
        resolution = resolve_dimensions(preset, orientation)
    return AssemblySettings(
        resolution=resolution,
        orientation=orientation,
        subtitles=subtitles,
        music=music,
        **data,
    )


def _parse_segments(entries: list, base_dir: Path) -> list[Segment]:
    segments: list[Segment] = []
    for i, entry in enumerate(entries):
        if isinstance(entry, str):
            entry = {"path": entry}
        if "path" not in entry:
            raise ValueError(f"Segment {i} is missing 'path'")
        path = Path(entry["path"])
        if not path.is_absolute():
            path = base_dir / path
        segments.append(Segment(index=i, source=path, narration=entry.get("narration", "")))
    return segments


def _parse_music(entry: str | dict | None, base_dir: Path) -> BackgroundMusicSettings | None:
    if entry is None:
        return None
    if isinstance(entry, str):
        entry = {"path": entry}
    if "path" not in entry:
        raise ValueError("Music is missing 'path'")
    entry = dict(entry)
    path = Path(entry.pop("path"))
    if not path.is_absolute():
        path = base_dir / path
    return BackgroundMusicSettings(path=path, **entry)


def load_manifest(path: str | Path) -> AssemblyManifest:
    """Load and validate a manifest from a JSON file.

    Relative segment, music and output paths resolve against the manifest's
    directory.
    """
    path = Path(path)
    data = json.loads(path.read_text())

    if "segments" not in data or "output" not in data:
        raise ValueError("Manifest must contain 'segments' and 'output' fields")
    if not data["segments"]:
        raise ValueError("Manifest must list at least one segment")

    base_dir = path.parent
    if "subtitles" in data:
        subtitles = SubtitleSettings(**data["subtitles"]) if data["subtitles"] is not None else None
    else:
        subtitles = SubtitleSettings()
    settings = _parse_settings(data.get("settings", {}), subtitles, _parse_music(data.get("music"), base_dir))

    output = Path(data["output"])
    if not output.is_absolute():
        output = base_dir / output

    return AssemblyManifest(
        version=data.get("version", "1"),
        segments=_parse_segments(data["segments"], base_dir),
        output=output,
        settings=settings,
        sidecar=data.get("sidecar"),
    )
