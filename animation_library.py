#!/usr/bin/env python3
"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                                                                              ║
║                           CLIP LIBRARY                                       ║
║                                                                              ║
║   Clip definitions as plain data, built into MovieClip trees:               ║
║   • Pre-built demo clips you can pull directly                              ║
║   • Simple JSON format for custom clips                                      ║
║   • Named frame actions ("stop", "goto_and_play:loop", ...)                 ║
║                                                                              ║
║   Usage:                                                                     ║
║   >>> from animation_library import ClipLibrary                              ║
║   >>> lib = ClipLibrary()                                                    ║
║   >>> lib.names()                  # See all available                      ║
║   >>> clip = lib.build("traffic_light")                                      ║
║   >>> lib.add_custom("my_clip.json")                                         ║
║                                                                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from __future__ import annotations
import copy
import json
import logging
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from animation_engine import DisplayNode, FrameTicker, MovieClip, MovieClipOptions, PlaybackMode
from animation_timeline import get_easing
from keyframe_codec import normalize_keyframes

logger = logging.getLogger("TimelineLibrary")

ActionFactory = Callable[[MovieClip, Optional[str]], Callable[[], Any]]

# =============================================================================
# PRE-BUILT CLIPS
# =============================================================================

CLIP_LIBRARY: Dict[str, Dict[str, Any]] = {
    "spinner": {
        "description": "One full turn per second, looping",
        "framerate": 24,
        "children": [{"name": "blade"}],
        "tweens": [
            {"target": "blade", "properties": {"r": 0}, "start": 0},
            {"target": "blade", "properties": {"r": 360}, "start": 0, "duration": 23},
        ],
    },

    "pulse": {
        "description": "Scale up and back down, eased",
        "framerate": 24,
        "children": [{"name": "dot"}],
        "keyframes": {"dot": "0A1B1"},
        "tweens": [
            {"target": "dot", "properties": {"sx": 1.5, "sy": 1.5}, "start": 0, "duration": 11, "ease": "pow2out"},
            {"target": "dot", "properties": {"sx": 1, "sy": 1}, "start": 12, "duration": 11, "ease": "pow2in"},
        ],
    },

    "traffic_light": {
        "description": "Timed lamps with labels, loops back to red",
        "framerate": 12,
        "labels": {"red": 0, "green": 12, "yellow": 30},
        "children": [
            {"name": "lamp_red", "start": 0, "duration": 12, "keyframes": "0T16711680"},
            {"name": "lamp_green", "start": 12, "duration": 18, "keyframes": "12T65280"},
            {"name": "lamp_yellow", "start": 30, "duration": 6, "keyframes": "30T16776960"},
        ],
        "actions": {"35": ["goto_and_play:red"]},
    },

    "fade_in": {
        "description": "Fade a panel in and stop on the last frame",
        "framerate": 30,
        "loop": False,
        "children": [{"name": "panel"}],
        "keyframes": {"panel": "0L0"},
        "tweens": [
            {"target": "panel", "properties": {"a": 1}, "start": 0, "duration": 14, "ease": "pow2"},
        ],
        "actions": {"14": ["stop"]},
    },

    "walk_cycle": {
        "description": "Leg swing, meant to be synched to a parent",
        "mode": "synched",
        "children": [{"name": "leg_left"}, {"name": "leg_right"}],
        "keyframes": {
            "leg_left": "0R-20 4R20",
            "leg_right": "0R20 4R-20",
        },
        "tweens": [
            {"target": "leg_left", "properties": {"r": -20}, "start": 4, "duration": 3},
            {"target": "leg_right", "properties": {"r": 20}, "start": 4, "duration": 3},
        ],
    },

    "walker": {
        "description": "Body moving right with a synched walk cycle",
        "framerate": 24,
        "children": [
            {"name": "body"},
            {"name": "legs", "clip": "walk_cycle", "start": 0},
        ],
        "tweens": [
            {"target": "body", "properties": {"x": 0}, "start": 0},
            {"target": "body", "properties": {"x": 240}, "start": 0, "duration": 23},
        ],
    },

    "badge": {
        "description": "A static pose shown from a single frame",
        "mode": "single_frame",
        "start_position": 2,
        "children": [{"name": "icon"}],
        "keyframes": {"icon": "0L0.25 1L0.5 2L1"},
    },
}

_DEFINITION_KEYS = {
    "description", "mode", "framerate", "loop", "start_position", "duration",
    "labels", "tweens", "keyframes", "children", "actions",
}

# =============================================================================
# VALIDATION
# =============================================================================

def parse_mode(value: Union[str, int, PlaybackMode, None]) -> PlaybackMode:
    """'independent' / 'single_frame' / 'synched', an int or a PlaybackMode"""
    if value is None:
        return PlaybackMode.INDEPENDENT
    if isinstance(value, str):
        try:
            return PlaybackMode[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown playback mode '{value}'") from None
    return PlaybackMode(value)


def validate_definition(data: Any) -> None:
    """Raise ValueError if `data` is not a usable clip definition"""
    if not isinstance(data, dict):
        raise ValueError("Clip definition must be a JSON object")
    unknown = set(data) - _DEFINITION_KEYS
    if unknown:
        raise ValueError(f"Unknown clip keys: {', '.join(sorted(unknown))}")
    parse_mode(data.get("mode"))

    names = set()
    for child in data.get("children", []):
        if "name" not in child:
            raise ValueError("Every child needs a name")
        names.add(child["name"])
        normalize_keyframes(child.get("keyframes"))

    for tween in data.get("tweens", []):
        if tween.get("target") not in names:
            raise ValueError(f"Tween target '{tween.get('target')}' is not a child")
        get_easing(tween.get("ease"))

    for target, keyframes in data.get("keyframes", {}).items():
        if target not in names:
            raise ValueError(f"Keyframe target '{target}' is not a child")
        normalize_keyframes(keyframes)

    for frame in data.get("actions", {}):
        if not str(frame).isdigit():
            raise ValueError(f"Invalid action frame '{frame}'")


def _frame_or_label(argument: Optional[str]) -> Union[int, str]:
    if not argument:
        raise ValueError("Action needs a frame or label argument")
    return int(argument) if argument.isdigit() else argument


# =============================================================================
# LIBRARY
# =============================================================================

class ClipLibrary:
    """
    Clip definitions plus the action vocabulary used to build them.

    Usage:
        lib = ClipLibrary()
        lib.names()                          # All clips
        lib.search("walk")                   # By keyword
        clip = lib.build("walker")           # MovieClip tree
        lib.add_custom("my_clip.json")       # Add your own
    """

    def __init__(self, custom_dir: Optional[Union[str, Path]] = None):
        self.library: Dict[str, Dict[str, Any]] = copy.deepcopy(CLIP_LIBRARY)
        self.custom_dir = Path(custom_dir) if custom_dir else None
        self._actions: Dict[str, ActionFactory] = {
            "stop": lambda clip, arg: clip.stop,
            "play": lambda clip, arg: clip.play,
            "goto_and_play": lambda clip, arg: partial(clip.goto_and_play, _frame_or_label(arg)),
            "goto_and_stop": lambda clip, arg: partial(clip.goto_and_stop, _frame_or_label(arg)),
            "log": lambda clip, arg: partial(logger.info, "[%s] %s", clip.name, arg or ""),
        }

        if self.custom_dir and self.custom_dir.exists():
            self._load_custom_clips()

    def _load_custom_clips(self) -> None:
        for json_file in sorted(self.custom_dir.glob("*.json")):
            try:
                with open(json_file, "r") as f:
                    data = json.load(f)
                validate_definition(data)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping custom clip {json_file.name}: {e}")
                continue
            self.library[json_file.stem] = data
            logger.info(f"Loaded custom clip: {json_file.stem}")

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def names(self) -> List[str]:
        return sorted(self.library)

    def get(self, name: str) -> Optional[Dict[str, Any]]:
        return self.library.get(name)

    def search(self, keyword: str) -> List[str]:
        keyword = keyword.lower()
        return [
            name for name, data in sorted(self.library.items())
            if keyword in name.lower() or keyword in data.get("description", "").lower()
        ]

    def get_stats(self) -> Dict[str, int]:
        stats = {"total": len(self.library)}
        for data in self.library.values():
            mode = parse_mode(data.get("mode")).name
            stats[mode] = stats.get(mode, 0) + 1
        return stats

    # -------------------------------------------------------------------------
    # Adding clips and actions
    # -------------------------------------------------------------------------

    def add_definition(self, name: str, data: Dict[str, Any]) -> None:
        validate_definition(data)
        self.library[name] = data

    def add_custom(self, json_path: Union[str, Path]) -> bool:
        """
        Add a custom clip from a JSON file.

        JSON format:
        {
            "description": "Blinking cursor",
            "framerate": 12,
            "children": [{"name": "cursor", "start": 0, "duration": 6}],
            "actions": {"11": ["goto_and_play:0"]}
        }
        """
        json_path = Path(json_path)
        try:
            with open(json_path, "r") as f:
                data = json.load(f)
            self.add_definition(json_path.stem, data)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to add clip from {json_path}: {e}")
            return False

        if self.custom_dir:
            self.custom_dir.mkdir(parents=True, exist_ok=True)
            with open(self.custom_dir / f"{json_path.stem}.json", "w") as f:
                json.dump(data, f, indent=2)

        logger.info(f"Added custom clip: {json_path.stem}")
        return True

    def register_action(self, name: str, factory: ActionFactory) -> None:
        """Make `name` usable in "actions"; factory(clip, argument) returns the callback"""
        self._actions[name] = factory

    def create_template(self, name: str, output_path: Optional[Union[str, Path]] = None) -> Path:
        """Write a starter JSON file to edit and pass to add_custom()"""
        template = {
            "description": f"Custom clip: {name}",
            "framerate": 24,
            "labels": {"start": 0},
            "children": [{"name": "shape", "start": 0, "duration": 24}],
            "keyframes": {"shape": "0X0Y0"},
            "tweens": [
                {"target": "shape", "properties": {"x": 100}, "start": 0, "duration": 23, "ease": "pow2"},
            ],
            "actions": {"23": ["goto_and_play:start"]},
        }
        output_path = Path(output_path) if output_path else Path(f"{name}.json")
        with open(output_path, "w") as f:
            json.dump(template, f, indent=2)
        return output_path

    # -------------------------------------------------------------------------
    # Building
    # -------------------------------------------------------------------------

    def _make_action(self, clip: MovieClip, entry: str) -> Callable[[], Any]:
        name, _, argument = entry.partition(":")
        factory = self._actions.get(name.strip())
        if factory is None:
            raise KeyError(f"Unknown action '{name}'")
        return factory(clip, argument.strip() or None)

    def build(self, name: str, ticker: Optional[FrameTicker] = None,
              _stack: Tuple[str, ...] = ()) -> MovieClip:
        """Create a MovieClip (and nested clips) from the definition called `name`"""
        if name in _stack:
            raise ValueError(f"Clip '{name}' contains itself: {' -> '.join(_stack + (name,))}")
        data = self.library.get(name)
        if data is None:
            raise KeyError(f"Clip '{name}' not found in library")

        clip = MovieClip(MovieClipOptions(
            mode=parse_mode(data.get("mode")),
            start_position=data.get("start_position", 0),
            loop=data.get("loop", True),
            labels=dict(data.get("labels", {})),
            duration=data.get("duration", 0),
            framerate=data.get("framerate", 0),
            ticker=ticker,
        ), name=name)

        children: Dict[str, DisplayNode] = {}
        for child in data.get("children", []):
            if child.get("clip"):
                node = self.build(child["clip"], ticker, _stack + (name,))
                node.name = child["name"]
                if "auto_reset" in child:
                    node.auto_reset = bool(child["auto_reset"])
            else:
                node = DisplayNode(child["name"])
            children[child["name"]] = node

        def target_of(target_name: str) -> DisplayNode:
            if target_name not in children:
                raise KeyError(f"Clip '{name}' has no child '{target_name}'")
            return children[target_name]

        for target_name, keyframes in data.get("keyframes", {}).items():
            clip.add_keyframes(target_of(target_name), keyframes)
        for tween in data.get("tweens", []):
            clip.add_tween(target_of(tween["target"]), tween.get("properties", {}),
                           tween.get("start", 0), tween.get("duration", 0), tween.get("ease"))
        for frame, entries in data.get("actions", {}).items():
            for entry in entries:
                clip.add_action(self._make_action(clip, entry), int(frame))

        # Children last so open-ended timed children span the whole clip
        for child in data.get("children", []):
            node = children[child["name"]]
            if "start" in child or "duration" in child:
                clip.add_timed_child(node, child.get("start", 0), child.get("duration"),
                                     child.get("keyframes"))
            else:
                clip.add_keyframes(node, child.get("keyframes"))
                clip.add_child(node)

        logger.debug(f"Built {clip!r}")
        return clip
