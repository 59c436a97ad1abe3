"""Thin CLI entry point — loads a manifest and calls the engine."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from reelforge.engine import assemble_video, plan
from reelforge.errors import AssemblyError, FFmpegNotFoundError, ProbeError
from reelforge.ffutil import MediaEngine
from reelforge.manifest import load_manifest
from reelforge.models import ProgressEvent


def _probe(engine: MediaEngine, paths: list[Path]) -> int:
    async def run():
        return await asyncio.gather(
            *(engine.probe_duration(p) for p in paths), return_exceptions=True
        )

    status = 0
    for path, outcome in zip(paths, asyncio.run(run())):
        if isinstance(outcome, ProbeError):
            print(f"{path}: error: {outcome}", file=sys.stderr)
            status = 1
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            print(f"{path}: {outcome:.3f}s")
    return status


def _plan(engine: MediaEngine, manifest_path: Path) -> int:
    m = load_manifest(manifest_path)
    result = asyncio.run(plan(m, engine))

    for seg, duration in zip(m.segments, result.durations):
        shown = f"{duration:.3f}s" if duration is not None else "unknown"
        print(f"  segment {seg.index}: {shown}  {seg.source}")
    if result.used_fallback:
        print("Join: concatenation")
    for op in result.transitions:
        print(
            f"  [{op.left_input}][{op.right_input}] {op.kind.value} "
            f"offset={op.offset_seconds:.3f}s (at {op.composite_offset_seconds:.3f}s) "
            f"duration={op.duration_seconds:.3f}s -> [{op.output_label}]"
        )
    for cue in result.cues:
        text = cue.wrapped_text.replace("\n", " / ")
        print(f"  cue {cue.scene_index}: {cue.start_seconds:.3f} -> {cue.end_seconds:.3f}  {text}")
    for warning in result.warnings:
        print(f"  warning: {warning}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="reelforge",
        description="ReelForge — join narrated scene segments with transitions and subtitles.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--ffmpeg", default="ffmpeg", help="ffmpeg executable")
    parser.add_argument("--ffprobe", default="ffprobe", help="ffprobe executable")
    sub = parser.add_subparsers(dest="command")

    asm = sub.add_parser("assemble", help="Assemble segments into one video")
    asm.add_argument("manifest", type=Path, help="Path to a JSON manifest file")
    asm.add_argument("--output", "-o", type=Path, help="Override the manifest's output path")
    asm.add_argument("--timeout", type=float, default=None, help="Encoding timeout in seconds")

    pl = sub.add_parser("plan", help="Probe segments and print transitions and cues")
    pl.add_argument("manifest", type=Path, help="Path to a JSON manifest file")

    pr = sub.add_parser("probe", help="Print segment durations")
    pr.add_argument("files", nargs="+", type=Path, help="Media files")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    engine = MediaEngine(ffmpeg=args.ffmpeg, ffprobe=args.ffprobe)

    if args.command == "probe":
        sys.exit(_probe(engine, args.files))

    if args.command == "plan":
        sys.exit(_plan(engine, args.manifest))

    m = load_manifest(args.manifest)
    if args.output:
        m.output = args.output

    def on_progress(event: ProgressEvent) -> None:
        marker = "!" if event.level == "warning" else " "
        print(f" {marker}[{event.percent:3d}%] {event.message}")

    try:
        result = asyncio.run(assemble_video(m, engine, on_progress=on_progress, timeout=args.timeout))
    except FFmpegNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except AssemblyError as e:
        print(f"Error: assembly failed: {e}", file=sys.stderr)
        sys.exit(1)

    print()
    print(f"Done! Output: {result.output_path}")
    if result.expected_duration is not None:
        print(f"  Duration: {result.expected_duration:.1f}s")
    if result.used_fallback:
        print("  Joined without transitions")
    if result.music_path:
        print(f"  Music: {result.music_path}")
    if result.caption_path:
        print(f"  Captions: {result.caption_path}")
