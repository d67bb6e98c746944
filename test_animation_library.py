#!/usr/bin/env python3
"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                    CLIP LIBRARY AND CLI TESTS                                ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import json
from functools import partial

import pytest

from animation_engine import DisplayNode, FrameTicker, MovieClip, PlaybackMode
from animation_library import CLIP_LIBRARY, ClipLibrary, parse_mode, validate_definition
from timeline_cli import main


@pytest.fixture()
def lib():
    return ClipLibrary()


@pytest.fixture()
def ticker():
    return FrameTicker()


def child_names(clip):
    return [child.name for child in clip.children]


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class TestLookup:
    def test_names_sorted(self, lib):
        assert lib.names() == sorted(CLIP_LIBRARY)

    def test_search(self, lib):
        assert lib.search("walk") == ["walk_cycle", "walker"]
        assert lib.search("nothing-like-this") == []

    def test_stats(self, lib):
        stats = lib.get_stats()
        assert stats["total"] == len(CLIP_LIBRARY)
        assert stats["SYNCHED"] == 1
        assert stats["SINGLE_FRAME"] == 1

    def test_builtins_not_shared(self, lib):
        lib.get("spinner")["framerate"] = 1
        assert CLIP_LIBRARY["spinner"]["framerate"] == 24

    def test_parse_mode(self):
        assert parse_mode("synched") is PlaybackMode.SYNCHED
        assert parse_mode(1) is PlaybackMode.SINGLE_FRAME
        assert parse_mode(None) is PlaybackMode.INDEPENDENT
        with pytest.raises(ValueError, match="Unknown playback mode"):
            parse_mode("sideways")


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


class TestBuild:
    @pytest.mark.parametrize("name", sorted(CLIP_LIBRARY))
    def test_every_builtin_builds(self, lib, ticker, name):
        clip = lib.build(name, ticker=ticker)
        assert isinstance(clip, MovieClip)
        assert clip.name == name
        assert clip.total_frames > 0

    def test_traffic_light(self, lib, ticker):
        clip = lib.build("traffic_light", ticker=ticker)
        assert clip.total_frames == 36
        assert [label.name for label in clip.labels] == ["red", "green", "yellow"]
        clip.goto_and_stop("green")
        assert child_names(clip) == ["lamp_green"]
        assert clip.children[0].tint == 0x00FF00

    def test_traffic_light_loops_back_to_red(self, lib, ticker):
        clip = lib.build("traffic_light", ticker=ticker)
        clip.goto_and_play(34)
        clip.advance(1 / 12)
        assert clip.current_frame == 0
        assert clip.current_label == "red"
        assert child_names(clip) == ["lamp_red"]

    def test_fade_in_stops(self, lib, ticker):
        clip = lib.build("fade_in", ticker=ticker)
        panel = clip.children[0]
        clip.advance(0)
        assert panel.alpha == 0
        clip.advance(1.0)
        assert clip.current_frame == 14
        assert clip.paused
        assert panel.alpha == pytest.approx(1.0)

    def test_walker_drives_synched_legs(self, lib, ticker):
        clip = lib.build("walker", ticker=ticker)
        stage = DisplayNode("stage")
        stage.add_child(clip)
        legs = next(child for child in clip.children if child.name == "legs")
        assert legs.mode is PlaybackMode.SYNCHED
        assert ticker.is_subscribed(clip)
        assert not ticker.is_subscribed(legs)
        clip.goto_and_stop(5)
        assert legs.current_frame == 5
        clip.goto_and_stop(11)
        assert legs.current_frame == 3

    def test_badge_single_frame(self, lib, ticker):
        clip = lib.build("badge", ticker=ticker)
        clip.goto_and_stop(0)
        assert clip.current_frame == 2
        assert clip.children[0].alpha == pytest.approx(1.0)

    def test_unknown_clip(self, lib):
        with pytest.raises(KeyError):
            lib.build("missing")

    def test_cycle_detected(self, lib):
        lib.add_definition("loop_a", {"children": [{"name": "b", "clip": "loop_b"}]})
        lib.add_definition("loop_b", {"children": [{"name": "a", "clip": "loop_a"}]})
        with pytest.raises(ValueError, match="contains itself"):
            lib.build("loop_a")

    def test_registered_action(self, lib):
        calls = []
        lib.register_action("note", lambda clip, arg: partial(calls.append, arg))
        lib.add_definition("noted", {"actions": {"0": ["note:hello"]}})
        lib.build("noted").advance(0)
        assert calls == ["hello"]

    def test_unknown_action(self, lib):
        lib.add_definition("broken", {"actions": {"0": ["explode"]}})
        with pytest.raises(KeyError, match="Unknown action"):
            lib.build("broken")


# ---------------------------------------------------------------------------
# Definitions on disk
# ---------------------------------------------------------------------------


class TestDefinitions:
    @pytest.mark.parametrize("data, message", [
        ({"bogus": 1}, "Unknown clip keys"),
        ({"children": [{}]}, "needs a name"),
        ({"tweens": [{"target": "ghost"}]}, "is not a child"),
        ({"children": [{"name": "a"}], "tweens": [{"target": "a", "ease": "wobble"}]}, "Unknown ease"),
        ({"actions": {"soon": ["stop"]}}, "Invalid action frame"),
        ([], "JSON object"),
    ])
    def test_invalid(self, data, message):
        with pytest.raises(ValueError, match=message):
            validate_definition(data)

    def test_add_custom(self, tmp_path):
        source = tmp_path / "blink.json"
        source.write_text(json.dumps({
            "framerate": 12,
            "children": [{"name": "cursor", "start": 0, "duration": 6}],
            "actions": {"11": ["goto_and_play:0"]},
        }))
        store = tmp_path / "store"
        lib = ClipLibrary(custom_dir=store)
        assert lib.add_custom(source)
        assert (store / "blink.json").exists()
        assert lib.build("blink").total_frames == 12

    def test_add_custom_rejects_bad_file(self, lib, tmp_path):
        source = tmp_path / "bad.json"
        source.write_text("{not json")
        assert not lib.add_custom(source)
        assert lib.get("bad") is None

    def test_custom_dir_skips_invalid(self, tmp_path):
        (tmp_path / "good.json").write_text(json.dumps({"duration": 4}))
        (tmp_path / "odd.json").write_text(json.dumps({"colour": "red"}))
        lib = ClipLibrary(custom_dir=tmp_path)
        assert "good" in lib.names()
        assert "odd" not in lib.names()

    def test_template_is_loadable(self, lib, tmp_path):
        path = lib.create_template("starter", tmp_path / "starter.json")
        assert lib.add_custom(path)
        clip = lib.build("starter")
        assert clip.framerate == 24
        assert clip.total_frames == 24


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


class TestCli:
    def test_decode(self, capsys):
        assert main(["decode", "0X100Y100 10X150"]) == 0
        assert json.loads(capsys.readouterr().out) == {
            "0": {"x": 100.0, "y": 100.0},
            "10": {"x": 150.0},
        }

    def test_decode_error(self, capsys):
        assert main(["decode", "0Q1"]) == 2
        assert "Unknown keyframe code" in capsys.readouterr().err

    def test_encode(self, capsys):
        assert main(["encode", '{"0": {"x": 100}}']) == 0
        assert capsys.readouterr().out.strip() == "0X100"

    def test_list(self, capsys):
        assert main(["list"]) == 0
        assert "traffic_light" in capsys.readouterr().out

    def test_play_traffic_light(self, capsys):
        assert main(["play", "traffic_light", "--seconds", "3", "--step", str(1 / 12)]) == 0
        out = capsys.readouterr().out
        assert "label=green" in out
        assert "children=[lamp_yellow]" in out

    def test_play_single_frame(self, capsys):
        assert main(["play", "badge"]) == 0
        assert "frame    2/3" in capsys.readouterr().out

    def test_play_unknown(self):
        assert main(["play", "missing"]) == 1
