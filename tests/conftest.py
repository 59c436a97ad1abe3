"""Shared test fixtures."""

import asyncio
from pathlib import Path

import pytest

from reelforge.errors import ProbeError
from reelforge.ffutil import EngineRun
from reelforge.manifest import AssemblySettings, SubtitleSettings
from reelforge.models import Segment, TransitionKind
from reelforge.timeline import Timeline

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class FakeEngine:
    """Stands in for MediaEngine without spawning subprocesses.

    ``durations`` maps a segment file name to its duration, or to a ProbeError
    raised when probed. ``delays`` holds optional per-file probe latency.
    ``outcomes`` lists return codes for successive ``run`` calls; a zero
    writes a non-empty output file.
    """

    def __init__(self, durations=None, delays=None, outcomes=None, write_output=True):
        self.durations = durations or {}
        self.delays = delays or {}
        self.outcomes = list(outcomes or [])
        self.write_output = write_output
        self.max_parallel_probes = 4
        self.probed: list[str] = []
        self.runs: list[list[str]] = []
        self.graphs: list[str] = []

    def check(self) -> None:
        pass

    async def probe_duration(self, path: Path) -> float:
        await asyncio.sleep(self.delays.get(path.name, 0))
        self.probed.append(path.name)
        value = self.durations[path.name]
        if isinstance(value, ProbeError):
            raise value
        return value

    async def run(self, args, on_position=None, timeout=None) -> EngineRun:
        self.runs.append(list(args))
        script = Path(args[args.index("-filter_complex_script") + 1])
        self.graphs.append(script.read_text(encoding="utf-8"))
        returncode = self.outcomes.pop(0) if self.outcomes else 0
        if returncode != 0:
            return EngineRun(returncode=returncode, error_lines=["[error] Invalid filtergraph"])
        if on_position:
            on_position(1.0)
        if self.write_output:
            Path(args[-1]).write_bytes(b"\x00\x00\x00\x18ftypmp42")
        return EngineRun(returncode=0)


@pytest.fixture
def sample_manifest_path() -> Path:
    return FIXTURES_DIR / "sample_manifest.json"


def make_timeline(
    durations,
    transition=TransitionKind.FADE,
    transition_duration=1.0,
    narrations=None,
    subtitles=None,
    **settings,
) -> Timeline:
    """Build a timeline of segments named scene_<i>.mp4 with given durations."""
    narrations = narrations or [f"Scene number {i} narration." for i in range(len(durations))]
    segments = [
        Segment(index=i, source=Path(f"scene_{i}.mp4"), narration=narrations[i], measured_duration=d)
        for i, d in enumerate(durations)
    ]
    return Timeline(
        segments,
        AssemblySettings(
            transition=transition,
            transition_duration=transition_duration,
            subtitles=subtitles if subtitles is not None else SubtitleSettings(),
            **settings,
        ),
    )


@pytest.fixture
def timeline_factory():
    return make_timeline
