"""Timeline model — ordered segments, their measured durations and run settings."""

from dataclasses import dataclass, field
from itertools import accumulate

from reelforge.manifest import AssemblySettings
from reelforge.models import Segment


@dataclass
class Timeline:
    """Ordered segments for one assembly run.

    Index order is the sole source of truth for timeline position. Durations
    are written only while probing; ``seal()`` makes the model read-only.
    """

    segments: list[Segment]
    settings: AssemblySettings = field(default_factory=AssemblySettings)
    _sealed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.segments:
            raise ValueError("Timeline needs at least one segment")
        self.segments = sorted(self.segments, key=lambda s: s.index)
        indices = [s.index for s in self.segments]
        if len(set(indices)) != len(indices):
            raise ValueError(f"Duplicate segment indices: {indices}")

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        self._sealed = True

    def record_duration(self, position: int, duration: float) -> None:
        """Store a measured duration in the slot of the segment at *position*."""
        if self._sealed:
            raise RuntimeError("Timeline is sealed; durations can no longer change")
        if duration <= 0:
            raise ValueError(f"Duration must be positive, got {duration}")
        self.segments[position].measured_duration = duration

    @property
    def durations(self) -> list[float | None]:
        return [s.measured_duration for s in self.segments]

    @property
    def fully_measured(self) -> bool:
        return all(s.is_measured for s in self.segments)

    @property
    def measured_count(self) -> int:
        return sum(1 for s in self.segments if s.is_measured)

    def audio_starts(self) -> list[float]:
        """Start of each segment's narration on the shared clock.

        Narration is concatenated, so each start is the sum of all prior
        durations. Requires every duration to be known.
        """
        if not self.fully_measured:
            raise ValueError("audio_starts() needs every segment duration")
        durations = [s.measured_duration for s in self.segments]
        return [0.0, *accumulate(durations[:-1])]

    def total_duration(self) -> float | None:
        if not self.fully_measured:
            return None
        return sum(s.measured_duration for s in self.segments)
