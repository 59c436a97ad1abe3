"""Shared data types used across ReelForge."""

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class TransitionKind(str, Enum):
    """Visual effect applied where two segments meet."""

    NONE = "none"
    FADE = "fade"
    SLIDE = "slide"
    ZOOM = "zoom"


class Orientation(str, Enum):
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    SQUARE = "square"


class SubtitlePosition(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"
    CENTER = "center"


@dataclass
class Resolution:
    """Output frame size in pixels."""

    width: int
    height: int

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def is_portrait(self) -> bool:
        return self.width < self.height


@dataclass
class Segment:
    """One rendered scene: image and narration already combined in a media file.

    ``measured_duration`` stays ``None`` until the prober has measured it.
    """

    index: int
    source: Path
    narration: str = ""
    measured_duration: float | None = None

    @property
    def is_measured(self) -> bool:
        return self.measured_duration is not None


@dataclass
class SubtitleCue:
    """A single subtitle entry with its display window and wrapped text.

    ``end_seconds`` is ``math.inf`` when the cue is anchored to a segment whose
    duration is unknown; it is then shown until that segment ends.
    """

    scene_index: int
    start_seconds: float
    end_seconds: float
    wrapped_text: str

    def __post_init__(self) -> None:
        if not self.start_seconds < self.end_seconds:
            raise ValueError(
                f"Cue for scene {self.scene_index} has start {self.start_seconds} "
                f">= end {self.end_seconds}"
            )

    @property
    def is_open_ended(self) -> bool:
        return math.isinf(self.end_seconds)


@dataclass
class TransitionOp:
    """One crossfade-style node in the assembly graph.

    ``offset_seconds`` is where, within the preceding segment, the effect
    begins; it always equals that segment's measured duration.
    ``composite_offset_seconds`` is the same point measured from the start of
    the left input, which for every op after the first is the running
    composite rather than a single segment.
    """

    left_input: str
    right_input: str
    kind: TransitionKind
    offset_seconds: float
    duration_seconds: float
    output_label: str
    composite_offset_seconds: float = 0.0
    left_duration_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.offset_seconds < 0:
            raise ValueError(f"Negative transition offset: {self.offset_seconds}")
        if self.composite_offset_seconds + self.duration_seconds > self.left_duration_seconds + 1e-6:
            raise ValueError(
                f"Transition {self.output_label} runs past its left input "
                f"({self.composite_offset_seconds} + {self.duration_seconds} > "
                f"{self.left_duration_seconds})"
            )


@dataclass
class TransitionGraph:
    """Ordered transition ops plus the per-segment padding they rely on."""

    ops: list[TransitionOp]
    output_label: str
    # Seconds of cloned last frame appended to each segment's video.
    pad_seconds: list[float] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_duration: float = 0.0


@dataclass
class ProgressEvent:
    """A progress update delivered to the caller."""

    percent: int
    message: str
    level: str = "info"
