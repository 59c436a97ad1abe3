#!/usr/bin/env python3
"""Generate synthetic scene segments and a manifest for ReelForge testing.

Writes one clip per scene, each a solid colour with a steady tone, plus a
manifest.json that joins them with a fade:
  scene_0.mp4  5s  440 Hz + blue
  scene_1.mp4  4s  660 Hz + red
  scene_2.mp4  6s  880 Hz + green

Run ``reelforge assemble <dir>/manifest.json`` on the result.
"""

import json
import subprocess
import sys
from pathlib import Path

SCENES = [
    (5, 440, "blue", "Every river starts somewhere small."),
    (4, 660, "red", "It gathers rain, snowmelt and stories on the way down."),
    (6, 880, "green", "By the time it reaches the sea, it carries the whole valley."),
]


def generate_segment(output: Path, duration: float, freq: int, color: str) -> None:
    cmd = [
        "ffmpeg", "-y",
        "-f", "lavfi", "-i", f"color=c={color}:s=640x360:d={duration}:r=30",
        "-f", "lavfi", "-i", f"sine=f={freq}:d={duration}",
        "-c:v", "libx264",
        "-pix_fmt", "yuv420p",
        "-c:a", "aac",
        "-shortest",
        str(output),
    ]
    subprocess.run(cmd, check=True)


def generate_test_segments(out_dir: Path) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    segments = []
    for i, (duration, freq, color, narration) in enumerate(SCENES):
        path = out_dir / f"scene_{i}.mp4"
        generate_segment(path, duration, freq, color)
        segments.append({"path": path.name, "narration": narration})
        print(f"Generated: {path}")

    manifest = {
        "version": "1",
        "output": "final.mp4",
        "segments": segments,
        "settings": {"transition": "fade", "transition_duration": 1.0, "resolution": "720p"},
        "sidecar": "srt",
    }
    manifest_path = out_dir / "manifest.json"
    manifest_path.write_text(json.dumps(manifest, indent=2))
    print(f"Manifest: {manifest_path}")
    return manifest_path


if __name__ == "__main__":
    out = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("tests/fixtures/synthetic")
    generate_test_segments(out)
