"""Tests for the transition graph builder and filtergraph serialization."""

import pytest

from reelforge.editors.captions import generate_cues, generate_segment_cues
from reelforge.editors.transitions import (
    AUDIO_FORMAT,
    EFFECTS,
    build_transition_graph,
    clamp_transition_duration,
    effect_name,
    render_filter_graph,
)
from reelforge.errors import InsufficientDataError
from reelforge.manifest import BackgroundMusicSettings, SubtitleSettings
from reelforge.models import Resolution, TransitionKind, TransitionOp

from conftest import make_timeline


class TestClampTransitionDuration:
    def test_within_limits(self):
        assert clamp_transition_duration(1.0, 5.0, 4.0) == (1.0, None)

    def test_exactly_half_of_shorter_kept(self):
        assert clamp_transition_duration(2.0, 4.0, 6.0) == (2.0, None)

    def test_longer_than_previous_segment(self):
        duration, warning = clamp_transition_duration(10.0, 4.0, 6.0)
        assert duration == 2.0
        assert "using 2.0s" in warning

    def test_limited_by_following_segment(self):
        duration, warning = clamp_transition_duration(1.5, 8.0, 2.0)
        assert duration == 1.0
        assert warning is not None

    def test_floor_for_tiny_segments(self):
        duration, warning = clamp_transition_duration(1.0, 0.15, 3.0)
        assert duration == 0.1
        assert warning is not None


class TestEffectName:
    @pytest.mark.parametrize("kind,name", [
        (TransitionKind.FADE, "fade"),
        (TransitionKind.SLIDE, "slideleft"),
        (TransitionKind.ZOOM, "zoomin"),
    ])
    def test_lookup(self, kind, name):
        assert effect_name(kind) == name

    def test_none_has_no_effect(self):
        with pytest.raises(InsufficientDataError):
            effect_name(TransitionKind.NONE)

    def test_every_effect_kind_covered(self):
        assert set(EFFECTS) == set(TransitionKind) - {TransitionKind.NONE}


class TestTransitionOp:
    def test_negative_offset_rejected(self):
        with pytest.raises(ValueError, match="Negative"):
            TransitionOp("v0", "v1", TransitionKind.FADE, -1.0, 1.0, "x1",
                         composite_offset_seconds=0.0, left_duration_seconds=5.0)

    def test_must_finish_within_left_input(self):
        with pytest.raises(ValueError, match="runs past"):
            TransitionOp("v0", "v1", TransitionKind.FADE, 5.0, 1.0, "x1",
                         composite_offset_seconds=5.0, left_duration_seconds=5.0)


class TestBuildTransitionGraph:
    def test_three_segment_fade(self):
        graph = build_transition_graph(make_timeline([5.0, 4.0, 6.0]))

        assert [op.offset_seconds for op in graph.ops] == [5.0, 4.0]
        assert [op.composite_offset_seconds for op in graph.ops] == [5.0, 9.0]
        assert [op.duration_seconds for op in graph.ops] == [1.0, 1.0]
        assert graph.total_duration == pytest.approx(15.0)
        assert graph.warnings == []

    def test_labels_chain(self):
        graph = build_transition_graph(make_timeline([5.0, 4.0, 6.0, 3.0]))
        assert [(op.left_input, op.right_input, op.output_label) for op in graph.ops] == [
            ("v0", "v1", "x1"),
            ("x1", "v2", "x2"),
            ("x2", "v3", "x3"),
        ]
        assert graph.output_label == "x3"

    def test_pads_match_transitions(self):
        graph = build_transition_graph(make_timeline([5.0, 4.0, 6.0]))
        # The last segment is never padded.
        assert graph.pad_seconds == [1.0, 1.0, 0.0]

    def test_ops_stay_within_left_input(self):
        graph = build_transition_graph(make_timeline([2.0, 0.5, 7.0, 1.2], transition_duration=3.0))
        for op in graph.ops:
            assert op.offset_seconds >= 0
            assert op.composite_offset_seconds + op.duration_seconds <= op.left_duration_seconds + 1e-6

    def test_left_duration_is_padded_composite_length(self):
        graph = build_transition_graph(make_timeline([5.0, 4.0, 6.0]))
        # x1 sees segment 0 plus its pad; x2 sees both segments plus pad 1.
        assert [op.left_duration_seconds for op in graph.ops] == [6.0, 10.0]

    def test_left_duration_follows_clamped_pads(self):
        graph = build_transition_graph(make_timeline([4.0, 6.0, 2.0], transition_duration=10.0))
        assert graph.pad_seconds == [2.0, 1.0, 0.0]
        assert [op.left_duration_seconds for op in graph.ops] == [6.0, 11.0]

    def test_clamp_recorded_as_warning(self):
        graph = build_transition_graph(make_timeline([4.0, 6.0], transition_duration=10.0))
        assert graph.ops[0].duration_seconds == 2.0
        assert len(graph.warnings) == 1

    def test_kind_carried_into_ops(self):
        graph = build_transition_graph(make_timeline([3.0, 3.0], transition=TransitionKind.ZOOM))
        assert graph.ops[0].kind == TransitionKind.ZOOM

    def test_transitions_disabled(self):
        with pytest.raises(InsufficientDataError, match="disabled"):
            build_transition_graph(make_timeline([5.0, 4.0], transition=TransitionKind.NONE))

    def test_single_segment(self):
        with pytest.raises(InsufficientDataError, match="two measured"):
            build_transition_graph(make_timeline([5.0]))

    def test_unknown_duration(self):
        with pytest.raises(InsufficientDataError, match=r"\[1\]"):
            build_transition_graph(make_timeline([5.0, None, 6.0]))


class TestRenderFilterGraph:
    def test_xfade_chain(self):
        timeline = make_timeline([5.0, 4.0, 6.0], subtitles=SubtitleSettings(enabled=False))
        text = render_filter_graph(timeline, build_transition_graph(timeline))

        assert "[v0][v1]xfade=transition=fade:duration=1:offset=5[x1]" in text
        assert "[x1][v2]xfade=transition=fade:duration=1:offset=9[x2]" in text
        assert "tpad=stop_mode=clone:stop=-1,trim=duration=6[v0]" in text
        assert "tpad=stop_mode=clone:stop=-1,trim=duration=5[v1]" in text
        assert "tpad=stop_mode=clone:stop=-1,trim=duration=6[v2]" in text
        assert "[a0][a1][a2]concat=n=3:v=0:a=1[a]" in text
        assert "[x2]null[v]" in text

    def test_every_segment_normalized(self):
        timeline = make_timeline([5.0, 4.0], resolution=Resolution(1080, 1920), frame_rate=24)
        text = render_filter_graph(timeline, None)
        for i in range(2):
            assert f"[{i}:v]scale=1080:1920:force_original_aspect_ratio=decrease" in text
            assert f"[{i}:a]aresample=async=1" in text
        assert "fps=24" in text

    def test_concat_without_graph(self):
        timeline = make_timeline([5.0, 4.0, 6.0], transition=TransitionKind.NONE)
        text = render_filter_graph(timeline, None)
        assert "xfade" not in text
        assert "trim=duration=5[v0]" in text
        assert "trim=duration=6[v2]" in text
        assert "[v0][v1][v2]concat=n=3:v=1:a=0[vjoin]" in text

    def test_single_segment(self):
        timeline = make_timeline([5.0], transition=TransitionKind.NONE)
        text = render_filter_graph(timeline, None)
        assert "[v0]null[v]" in text
        assert "[a0]anull[a]" in text

    def test_cues_drawn_after_join(self):
        timeline = make_timeline([5.0, 4.0])
        graph = build_transition_graph(timeline)
        cues = generate_cues(timeline, timeline.settings.subtitles)
        text = render_filter_graph(timeline, graph, cues)

        overlay = text.split("[x1]drawtext=")[1]
        assert overlay.count("drawtext=") == 1
        assert "between(t\\,0.0\\,5.0)" in text
        assert "between(t\\,5.0\\,9.0)" in text
        assert text.rstrip().endswith("[a]")

    def test_segment_cues_drawn_before_join(self):
        timeline = make_timeline([5.0, None], transition=TransitionKind.NONE)
        segment_cues = generate_segment_cues(timeline, timeline.settings.subtitles)
        text = render_filter_graph(timeline, None, segment_cues=segment_cues)

        first = text.split("[v0]")[0]
        second = text.split("[1:v]")[1].split("[v1]")[0]
        assert "between(t\\,0.0\\,5.0)" in first
        assert "gte(t\\,0.0)" in second
        assert "[vjoin]null[v]" in text

    def test_subtitles_disabled_skips_overlays(self):
        timeline = make_timeline([5.0, 4.0], subtitles=SubtitleSettings(enabled=False))
        cues = generate_cues(timeline, SubtitleSettings())
        text = render_filter_graph(timeline, build_transition_graph(timeline), cues)
        assert "drawtext" not in text

    def test_measured_streams_forced_to_length(self):
        timeline = make_timeline([5.0, 4.0], transition=TransitionKind.NONE)
        text = render_filter_graph(timeline, None)
        assert f"[0:a]aresample=async=1,{AUDIO_FORMAT},apad,atrim=duration=5[a0]" in text
        assert f"[1:a]aresample=async=1,{AUDIO_FORMAT},apad,atrim=duration=4[a1]" in text

    def test_unknown_segment_keeps_natural_length(self):
        timeline = make_timeline([5.0, None], transition=TransitionKind.NONE)
        text = render_filter_graph(timeline, None)
        second = text.split("[1:v]")[1].split("[v1]")[0]
        assert "trim" not in second
        assert f"[1:a]aresample=async=1,{AUDIO_FORMAT}[a1]" in text


class TestRenderMusic:
    def test_mixed_under_narration(self):
        timeline = make_timeline([5.0, 4.0, 6.0], subtitles=SubtitleSettings(enabled=False))
        music = BackgroundMusicSettings(path="bed.mp3")
        text = render_filter_graph(timeline, build_transition_graph(timeline), music=music)

        assert "[a0][a1][a2]concat=n=3:v=0:a=1[narration]" in text
        assert (
            "[3:a]volume=0.3,atrim=duration=15,afade=t=in:st=0:d=2,"
            f"afade=t=out:st=13:d=2,{AUDIO_FORMAT}[music]"
        ) in text
        assert text.rstrip().endswith(
            "[narration][music]amix=inputs=2:duration=first:dropout_transition=2:weights=1 0.8[a]"
        )

    def test_start_offset_delays_and_shortens(self):
        timeline = make_timeline([5.0, 5.0], transition=TransitionKind.NONE)
        music = BackgroundMusicSettings(path="bed.mp3", volume=50, start_offset=1.5, fade_in=0)
        text = render_filter_graph(timeline, None, music=music)

        chain = text.split("[2:a]")[1].split("[music]")[0]
        assert chain.startswith("volume=0.5,atrim=duration=8.5,")
        assert "t=in" not in chain
        assert "afade=t=out:st=6.5:d=2" in chain
        assert chain.endswith("adelay=1500|1500")

    def test_unknown_total_skips_trim(self):
        timeline = make_timeline([5.0, None], transition=TransitionKind.NONE)
        text = render_filter_graph(timeline, None, music=BackgroundMusicSettings(path="bed.mp3"))
        chain = text.split("[2:a]")[1].split("[music]")[0]
        assert "atrim" not in chain
        assert "t=out" not in chain
        assert "amix=inputs=2:duration=first" in text

    def test_single_segment_with_music(self):
        timeline = make_timeline([5.0], transition=TransitionKind.NONE)
        text = render_filter_graph(timeline, None, music=BackgroundMusicSettings(path="bed.mp3"))
        assert "[a0]anull[narration]" in text
        assert "[1:a]volume=0.3" in text

    def test_no_music_leaves_narration_as_output(self):
        timeline = make_timeline([5.0, 4.0], transition=TransitionKind.NONE)
        text = render_filter_graph(timeline, None)
        assert "amix" not in text
        assert "concat=n=2:v=0:a=1[a]" in text


class TestStreamLengthFloor:
    def test_tiny_segment_never_unlimited(self):
        timeline = make_timeline([5.0, 0.0004], transition=TransitionKind.NONE)
        text = render_filter_graph(timeline, None)
        assert "trim=duration=0.001[v1]" in text
        assert "atrim=duration=0.001[a1]" in text
        assert "duration=0[" not in text
