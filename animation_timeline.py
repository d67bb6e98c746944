#!/usr/bin/env python3
"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                                                                              ║
║                        TIMELINE BUILDING BLOCKS                              ║
║                                                                              ║
║   • Easing curves                                                            ║
║   • Tween segments and per-target tween timelines                           ║
║   • Child presence timelines (is this child on stage at frame N?)           ║
║   • Frame action tables                                                      ║
║   • Frame labels                                                             ║
║                                                                              ║
║   Everything here is passive data. MovieClip (animation_engine.py) decides  ║
║   when each piece is consulted.                                              ║
║                                                                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from __future__ import annotations
import bisect
import itertools
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import numpy as np

# =============================================================================
# EASING
# =============================================================================

class EaseType(Enum):
    """Tween easing functions"""
    LINEAR = "linear"
    EASE_IN = "pow2in"
    EASE_OUT = "pow2out"
    EASE_IN_OUT = "pow2"
    ELASTIC = "elastic"
    BOUNCE = "bounce"
    BACK = "back"
    STEP = "stepped"


def ease_linear(t: float) -> float:
    return t

def ease_in_quad(t: float) -> float:
    return t * t

def ease_out_quad(t: float) -> float:
    return t * (2 - t)

def ease_in_out_quad(t: float) -> float:
    return 2 * t * t if t < 0.5 else -1 + (4 - 2 * t) * t

def ease_out_elastic(t: float) -> float:
    if t == 0 or t == 1:
        return t
    return math.pow(2, -10 * t) * math.sin((t - 0.075) * (2 * math.pi) / 0.3) + 1

def ease_out_bounce(t: float) -> float:
    if t < 1 / 2.75:
        return 7.5625 * t * t
    elif t < 2 / 2.75:
        t -= 1.5 / 2.75
        return 7.5625 * t * t + 0.75
    elif t < 2.5 / 2.75:
        t -= 2.25 / 2.75
        return 7.5625 * t * t + 0.9375
    t -= 2.625 / 2.75
    return 7.5625 * t * t + 0.984375

def ease_out_back(t: float) -> float:
    s = 1.70158
    t -= 1
    return t * t * ((s + 1) * t + s) + 1

def ease_stepped(t: float) -> float:
    return 1.0 if t >= 1 else 0.0


EASING_FUNCTIONS: Dict[EaseType, Callable[[float], float]] = {
    EaseType.LINEAR: ease_linear,
    EaseType.EASE_IN: ease_in_quad,
    EaseType.EASE_OUT: ease_out_quad,
    EaseType.EASE_IN_OUT: ease_in_out_quad,
    EaseType.ELASTIC: ease_out_elastic,
    EaseType.BOUNCE: ease_out_bounce,
    EaseType.BACK: ease_out_back,
    EaseType.STEP: ease_stepped,
}

Ease = Union[None, str, EaseType, Callable[[float], float]]


def get_easing(ease: Ease) -> Callable[[float], float]:
    """Resolve None, an EaseType, its name ("pow2in") or a callable to a function"""
    if ease is None:
        return ease_linear
    if isinstance(ease, EaseType):
        return EASING_FUNCTIONS[ease]
    if isinstance(ease, str):
        try:
            return EASING_FUNCTIONS[EaseType(ease.strip().lower())]
        except ValueError:
            raise ValueError(f"Unknown ease '{ease}'") from None
    if callable(ease):
        return ease
    raise ValueError(f"Unknown ease {ease!r}")


# =============================================================================
# PROPERTY SHORTHANDS
# =============================================================================

# Keyframe shorthand -> DisplayNode attribute
PROPERTY_ATTRIBUTES: Dict[str, str] = {
    "x": "x",
    "y": "y",
    "sx": "scale_x",
    "sy": "scale_y",
    "kx": "skew_x",
    "ky": "skew_y",
    "r": "rotation",
    "a": "alpha",
    "t": "tint",
    "c": "color_transform",
    "v": "visible",
}

# [r_mult, r_add, g_mult, g_add, b_mult, b_add]
IDENTITY_COLOR_TRANSFORM = (1.0, 0.0, 1.0, 0.0, 1.0, 0.0)


def _tint_channels(tint: int) -> np.ndarray:
    tint = int(tint)
    return np.array([(tint >> 16) & 0xFF, (tint >> 8) & 0xFF, tint & 0xFF], dtype=np.float64)


def _interpolate(prop: str, start: Any, end: Any, t: float) -> Any:
    if prop == "c":
        a = np.asarray(start if start is not None else IDENTITY_COLOR_TRANSFORM, dtype=np.float64)
        b = np.asarray(end, dtype=np.float64)
        return (a + (b - a) * t).tolist()
    if start is None:
        # Target had no value of its own to tween from
        return end
    if prop == "t":
        channels = _tint_channels(start) + (_tint_channels(end) - _tint_channels(start)) * t
        r, g, b = np.clip(np.rint(channels), 0, 255).astype(int)
        return (int(r) << 16) | (int(g) << 8) | int(b)
    if isinstance(start, bool) or isinstance(end, bool):
        return end if t >= 1 else start
    if isinstance(start, (int, float)) and isinstance(end, (int, float)):
        return start + (end - start) * t
    return end if t >= 1 else start


# =============================================================================
# TWEENS
# =============================================================================

class Tween:
    """One segment of a target's animation, from start_frame to end_frame inclusive"""

    def __init__(self, target: Any, start_props: Dict[str, Any], end_props: Dict[str, Any],
                 start_frame: int, duration: int = 0, ease: Ease = None):
        self.target = target
        self.start_props = start_props
        self.end_props = end_props
        self.start_frame = start_frame
        self.duration = duration
        self.end_frame = start_frame + duration
        self.is_tweenless_frame = duration == 0
        self.ease = get_easing(ease)

    def contains(self, frame: int) -> bool:
        return self.start_frame <= frame <= self.end_frame

    def set_position(self, frame: int) -> None:
        """Write the interpolated property values for `frame` onto the target"""
        at_end = self.is_tweenless_frame or frame >= self.end_frame
        t = 1.0 if at_end else self.ease((frame - self.start_frame) / self.duration)
        for prop, end in self.end_props.items():
            if at_end:
                value = list(end) if prop == "c" else end
            else:
                value = _interpolate(prop, self.start_props.get(prop, end), end, t)
            setattr(self.target, PROPERTY_ATTRIBUTES.get(prop, prop), value)

    def __repr__(self) -> str:
        return f"Tween({self.start_frame}-{self.end_frame}, {sorted(self.end_props)})"


class Timeline:
    """
    Ordered tween segments for one target.

    Segments are kept gap-free: adding a tween first stretches the previous
    segment (or appends a hold) up to the frame before the new one, so any
    frame between the first and last segment resolves to a value.
    """

    def __init__(self, target: Any):
        self.target = target
        self.tweens: List[Tween] = []
        self._current_props: Dict[str, Any] = {}

    def __len__(self) -> int:
        return len(self.tweens)

    def __iter__(self) -> Iterator[Tween]:
        return iter(self.tweens)

    def _read_target(self, prop: str) -> Any:
        value = getattr(self.target, PROPERTY_ATTRIBUTES.get(prop, prop), None)
        if prop == "c":
            return list(value if value is not None else IDENTITY_COLOR_TRANSFORM)
        return value

    def add_tween(self, properties: Mapping[str, Any], start_frame: int,
                  duration: int = 0, ease: Ease = None) -> Tween:
        self.extend_last_frame(start_frame - 1)

        start_props: Dict[str, Any] = {}
        for prop in properties:
            if prop in self._current_props:
                start_props[prop] = self._current_props[prop]
            else:
                # First time this property is animated: remember the target's own
                # value in every earlier segment so seeking back restores it
                value = self._read_target(prop)
                start_props[prop] = value
                if value is None:
                    continue
                for tween in self.tweens:
                    tween.start_props[prop] = value
                    tween.end_props[prop] = value

        tween = Tween(self.target, start_props, dict(properties), start_frame, duration, ease)
        self.tweens.append(tween)
        self._current_props.update(tween.end_props)
        return tween

    def extend_last_frame(self, end_frame: int) -> None:
        if not self.tweens:
            return
        previous = self.tweens[-1]
        if previous.end_frame >= end_frame:
            return
        if previous.is_tweenless_frame:
            previous.end_frame = end_frame
        else:
            self.add_tween(dict(self._current_props), previous.end_frame + 1,
                           end_frame - previous.end_frame - 1)

    def segment_at(self, frame: int) -> Optional[Tween]:
        for tween in self.tweens:
            if tween.contains(frame):
                return tween
        return None

    @property
    def end_frame(self) -> int:
        return max((tween.end_frame for tween in self.tweens), default=-1)


# =============================================================================
# CHILD PRESENCE
# =============================================================================

class ChildPresenceTimeline:
    """Per-frame flags saying whether `target` is a child of the clip"""

    def __init__(self, target: Any):
        self.target = target
        self._frames = np.zeros(0, dtype=bool)

    def __len__(self) -> int:
        return int(self._frames.size)

    def __getitem__(self, frame: int) -> bool:
        if 0 <= frame < self._frames.size:
            return bool(self._frames[frame])
        return False

    def ensure_capacity(self, length: int) -> None:
        """Grow to `length` frames, new frames absent"""
        if self._frames.size < length:
            self._frames = np.concatenate(
                [self._frames, np.zeros(length - self._frames.size, dtype=bool)]
            )

    def mark(self, start_frame: int, duration: int) -> None:
        self.ensure_capacity(start_frame + duration)
        self._frames[start_frame:start_frame + duration] = True

    def frames_present(self) -> List[int]:
        return np.flatnonzero(self._frames).tolist()


# =============================================================================
# FRAME ACTIONS
# =============================================================================

class ActionTable:
    """Zero-argument callbacks keyed by frame, kept in registration order"""

    def __init__(self):
        self._actions: List[List[Callable[[], Any]]] = []

    def __len__(self) -> int:
        return len(self._actions)

    def add(self, callback: Callable[[], Any], frame: int) -> None:
        if len(self._actions) <= frame:
            self._actions.extend([] for _ in range(frame + 1 - len(self._actions)))
        self._actions[frame].append(callback)

    def at(self, frame: int) -> List[Callable[[], Any]]:
        if 0 <= frame < len(self._actions):
            return list(self._actions[frame])
        return []

    @staticmethod
    def traversed(previous: Optional[int], current: int, length: int,
                  wrapped: bool = False) -> Iterable[int]:
        """
        Frames whose actions fire when the playhead moves from `previous` to
        `current` on a timeline of `length` frames.

        A first pass (previous is None) covers [0, current]. Moving forward
        covers (previous, current]. Moving backward, or `wrapped` set by a
        clock that looped, covers (previous, length - 1] followed by
        [0, current]. No frame is listed twice, so a full lap lists each once.
        """
        if previous is None:
            return range(0, current + 1)
        if current >= previous and not wrapped:
            return range(previous + 1, current + 1)
        return itertools.chain(range(previous + 1, length),
                               range(0, min(current, previous) + 1))


# =============================================================================
# LABELS
# =============================================================================

@dataclass(frozen=True)
class Label:
    """A named frame"""
    name: str
    frame: int


class LabelIndex:
    """Labels sorted by frame. Lookup by name returns the first match."""

    def __init__(self, labels: Optional[Mapping[str, int]] = None):
        self._labels: List[Label] = []
        for name, frame in (labels or {}).items():
            self.add(name, frame)

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[Label]:
        return iter(self._labels)

    def __contains__(self, name: object) -> bool:
        return any(label.name == name for label in self._labels)

    def add(self, name: str, frame: int) -> None:
        index = bisect.bisect_right([label.frame for label in self._labels], frame)
        self._labels.insert(index, Label(name, int(frame)))

    def frame_of(self, name: str) -> Optional[int]:
        for label in self._labels:
            if label.name == name:
                return label.frame
        return None

    def get_labels(self) -> List[Label]:
        return list(self._labels)

    def get_current_label(self, frame: int) -> Optional[str]:
        current = None
        for label in self._labels:
            if label.frame <= frame:
                current = label.name
            else:
                break
        return current

    def as_dict(self) -> Dict[str, int]:
        result: Dict[str, int] = {}
        for label in self._labels:
            result.setdefault(label.name, label.frame)
        return result
