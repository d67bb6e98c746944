#!/usr/bin/env python3
"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                                                                              ║
║                TIMELINE ENGINE - FRAME-ACCURATE CLIP PLAYBACK                ║
║                                                                              ║
║   • MovieClip: tweens, timed children, frame actions and labels             ║
║   • Three playback modes: independent clock, single frame, synched          ║
║   • Time-based advance quantized to whole frames, with looping              ║
║   • Synched children follow their parent's frame in the same pass           ║
║   • Explicit ticker subscription driven by attach / detach                  ║
║                                                                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from __future__ import annotations
import math
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from animation_timeline import (
    ActionTable, ChildPresenceTimeline, Ease, Label, LabelIndex, Timeline,
)
from keyframe_codec import normalize_keyframes, normalize_properties

logger = logging.getLogger("TimelineEngine")
logger.setLevel(logging.INFO)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '\033[35m\033[1mCLIP\033[0m: \033[35m%(message)s\033[0m'
    ))
    logger.addHandler(handler)

# =============================================================================
# ENUMS AND CONSTANTS
# =============================================================================

class PlaybackMode(Enum):
    """How a MovieClip derives its frame"""
    INDEPENDENT = 0     # Own clock, advanced by the ticker
    SINGLE_FRAME = 1    # Always shows start_position
    SYNCHED = 2         # Follows the parent's frame plus an offset


# Absorbs floating point error when elapsed_time lands exactly on a frame
FRAME_EPSILON = 1e-8

# Frames per millisecond a scaled tick delta of 1.0 stands for (60 fps)
TARGET_FPMS = 0.06

# =============================================================================
# DISPLAY TREE
# =============================================================================

class DisplayNode:
    """Minimal display object: a parent link, ordered children, animatable properties"""

    def __init__(self, name: str = ""):
        self.name = name
        self.parent: Optional[DisplayNode] = None
        self.children: List[DisplayNode] = []

        self.x = 0.0
        self.y = 0.0
        self.scale_x = 1.0
        self.scale_y = 1.0
        self.skew_x = 0.0
        self.skew_y = 0.0
        self.rotation = 0.0
        self.alpha = 1.0
        self.tint = 0xFFFFFF
        self.color_transform: Optional[List[float]] = None
        self.visible = True

    def add_child(self, child: DisplayNode) -> DisplayNode:
        if child.parent is self:
            return child
        if child.parent is not None:
            child.parent.remove_child(child)
        self.children.append(child)
        child.parent = self
        child._on_added(self)
        return child

    def remove_child(self, child: DisplayNode) -> Optional[DisplayNode]:
        if child.parent is not self:
            return None
        self.children.remove(child)
        child.parent = None
        child._on_removed(self)
        return child

    def destroy(self, destroy_children: bool = False) -> None:
        if self.parent is not None:
            self.parent.remove_child(self)
        if destroy_children:
            for child in list(self.children):
                child.destroy(True)

    def _on_added(self, parent: DisplayNode) -> None:
        pass

    def _on_removed(self, parent: DisplayNode) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


# =============================================================================
# TICKER
# =============================================================================

class FrameTicker:
    """
    Delivers elapsed time to subscribed clips.

    Clips subscribe themselves when they join a display tree and unsubscribe
    when they leave it; the embedding application only calls tick().
    """

    def __init__(self, speed: float = 1.0):
        self.speed = speed
        self._listeners: List[Any] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, node: Any) -> None:
        if node not in self._listeners:
            self._listeners.append(node)
            logger.debug(f"Ticker + {node!r}")

    def unsubscribe(self, node: Any) -> None:
        if node in self._listeners:
            self._listeners.remove(node)
            logger.debug(f"Ticker - {node!r}")

    def is_subscribed(self, node: Any) -> bool:
        return node in self._listeners

    def tick(self, seconds: float) -> None:
        """Advance every subscriber by `seconds`"""
        for node in list(self._listeners):
            # A clip removed earlier in this tick must not be advanced
            if node in self._listeners:
                node._on_tick(seconds)

    def tick_scaled(self, delta_time: float) -> None:
        """Tick with a frame-scaled delta, where 1.0 is one 60 fps frame"""
        self.tick(delta_time / self.speed / TARGET_FPMS / 1000)


SHARED_TICKER = FrameTicker()

# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class MovieClipOptions:
    """Construction settings for a MovieClip"""
    mode: Union[PlaybackMode, int] = PlaybackMode.INDEPENDENT
    start_position: int = 0
    loop: bool = True
    labels: Dict[str, int] = field(default_factory=dict)
    duration: int = 0          # Initial total frames, grows as content is added
    framerate: float = 0       # 0 = inherit from the nearest independent ancestor
    ticker: Optional[FrameTicker] = None


# =============================================================================
# MOVIECLIP
# =============================================================================

class MovieClip(DisplayNode):
    """
    Timeline playback of a display node.

    A clip owns tween timelines (one per animated target), presence timelines
    for timed children, frame actions and labels. Each resolution pass applies
    the tweens for the current frame, attaches or detaches timed children,
    re-resolves synched children from this clip's frame and finally fires the
    actions for every frame the playhead crossed.

    Usage:
        clip = MovieClip(MovieClipOptions(framerate=24, labels={"idle": 0}))
        clip.add_tween(child, {"x": 100}, 0, 12, "pow2")
        clip.add_timed_child(child, 0, 24)
        clip.add_action(clip.stop, 23)
        stage.add_child(clip)      # subscribes to the ticker
    """

    INDEPENDENT = PlaybackMode.INDEPENDENT
    SINGLE_FRAME = PlaybackMode.SINGLE_FRAME
    SYNCHED = PlaybackMode.SYNCHED

    def __init__(self, options: Union[MovieClipOptions, Mapping[str, Any], PlaybackMode, int, None] = None,
                 duration: int = 0, loop: bool = True, framerate: float = 0,
                 labels: Optional[Mapping[str, int]] = None, name: str = ""):
        super().__init__(name)
        options = self._coerce_options(options, duration, loop, framerate, labels)

        self.mode = PlaybackMode(options.mode)
        self.start_position = int(options.start_position)
        self.loop = bool(options.loop)

        # If true the clip does not advance when ticked
        self.paused = False
        # If false, ticks are ignored and the clip only moves when told to
        self.self_advance = True
        self.actions_enabled = True
        # Independent clips restart from frame 0 whenever a timeline re-adds them
        self.auto_reset = True

        # Frame of the parent at which a synched clip was placed
        self.parent_start_position = 0
        self._synch_offset = 0

        self._current_frame = 0
        self._prev_position: Optional[int] = None   # None until the first resolve
        self._t = 0.0
        self._framerate = 0.0
        self._duration = 0.0
        self._total_frames = int(options.duration or 0)

        self._labels = LabelIndex(options.labels)
        self._timelines: List[Timeline] = []
        self._timed_child_timelines: List[ChildPresenceTimeline] = []
        self._actions = ActionTable()
        self._ticker = options.ticker or SHARED_TICKER

        if options.framerate:
            self.framerate = options.framerate

    @staticmethod
    def _coerce_options(options: Any, duration: int, loop: bool, framerate: float,
                        labels: Optional[Mapping[str, int]]) -> MovieClipOptions:
        if options is None:
            return MovieClipOptions()
        if isinstance(options, MovieClipOptions):
            return options
        if isinstance(options, (PlaybackMode, int)):
            return MovieClipOptions(mode=options, duration=duration or 0, loop=loop,
                                    labels=dict(labels or {}), framerate=framerate or 0)
        if isinstance(options, Mapping):
            return MovieClipOptions(**options)
        raise ValueError(f"Invalid MovieClip options: {options!r}")

    # -------------------------------------------------------------------------
    # Ticker lifecycle
    # -------------------------------------------------------------------------

    @property
    def ticker(self) -> FrameTicker:
        return self._ticker

    def _on_added(self, parent: DisplayNode) -> None:
        if self.mode is PlaybackMode.INDEPENDENT:
            self._ticker.subscribe(self)

    def _on_removed(self, parent: DisplayNode) -> None:
        self._ticker.unsubscribe(self)

    def _on_tick(self, seconds: float) -> None:
        if self.paused or not self.self_advance:
            # Still show the first frame (and any newly timed children) once
            if self._prev_position is None:
                self._goto(self._current_frame)
            return
        self.advance(seconds)

    def destroy(self, destroy_children: bool = False) -> None:
        self._ticker.unsubscribe(self)
        super().destroy(destroy_children)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def current_frame(self) -> int:
        return self._current_frame

    @property
    def total_frames(self) -> int:
        return self._total_frames

    @property
    def duration(self) -> float:
        """Length in seconds, 0 while the clip has no framerate"""
        return self._duration

    @property
    def elapsed_time(self) -> float:
        """Seconds since frame 0, for clips with a framerate"""
        return self._t

    @elapsed_time.setter
    def elapsed_time(self, value: float) -> None:
        self._t = value

    @property
    def framerate(self) -> float:
        return self._framerate

    @framerate.setter
    def framerate(self, value: float) -> None:
        if value and value > 0:
            self._framerate = value
            self._duration = self._total_frames / value
        else:
            self._framerate = 0.0
            self._duration = 0.0

    @property
    def labels(self) -> List[Label]:
        return self.get_labels()

    @property
    def current_label(self) -> Optional[str]:
        return self.get_current_label()

    def get_labels(self) -> List[Label]:
        """Labels sorted by frame"""
        return self._labels.get_labels()

    def get_current_label(self) -> Optional[str]:
        """Name of the label on or before the current frame, or None"""
        return self._labels.get_current_label(self._current_frame)

    def add_label(self, name: str, frame: int) -> MovieClip:
        self._labels.add(name, frame)
        return self

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def _extend_total_frames(self, total: int) -> None:
        if self._total_frames < total:
            self._total_frames = total
            if self._framerate:
                self._duration = self._total_frames / self._framerate

    def add_tween(self, instance: Any, properties: Mapping[str, Any], start_frame: int,
                  duration: int = 0, ease: Ease = None) -> MovieClip:
        """
        Tween `instance` to `properties` over `duration` frames from `start_frame`.

        A duration of 0 sets the properties on that frame without interpolation.
        """
        duration = duration or 0
        if start_frame < 0 or duration < 0:
            raise ValueError(f"Invalid tween range: start={start_frame}, duration={duration}")

        timeline = next((tl for tl in self._timelines if tl.target is instance), None)
        if timeline is None:
            timeline = Timeline(instance)
            self._timelines.append(timeline)

        timeline.add_tween(normalize_properties(properties), start_frame, duration, ease)
        self._extend_total_frames(start_frame + duration + 1)
        return self

    def add_timed_child(self, instance: DisplayNode, start_frame: Optional[int] = 0,
                        duration: Optional[int] = None, keyframes: Any = None) -> MovieClip:
        """
        Show `instance` as a child from `start_frame` for `duration` frames.

        Without a duration the child stays for the clip's current length.
        """
        if start_frame is None:
            start_frame = 0
        if start_frame < 0:
            raise ValueError(f"Invalid start frame: {start_frame}")
        if duration is None or duration < 1:
            duration = self._total_frames or 1

        if isinstance(instance, MovieClip) and instance.mode is PlaybackMode.SYNCHED:
            instance.parent_start_position = start_frame

        presence = next((tl for tl in self._timed_child_timelines if tl.target is instance), None)
        if presence is None:
            presence = ChildPresenceTimeline(instance)
            self._timed_child_timelines.append(presence)
        presence.mark(start_frame, duration)
        self._extend_total_frames(start_frame + duration)

        self.add_keyframes(instance, keyframes)

        # Reflect the new presence at the current frame right away
        self._set_timeline_position(self._current_frame, self._current_frame, False)
        return self

    def add_action(self, callback: Callable[[], Any], start_frame: int) -> MovieClip:
        """Call `callback` when the playhead reaches `start_frame`"""
        if not callable(callback):
            raise TypeError(f"Frame action must be callable, got {callback!r}")
        if start_frame < 0:
            raise ValueError(f"Invalid action frame: {start_frame}")
        self._actions.add(callback, start_frame)
        self._extend_total_frames(start_frame + 1)
        return self

    def add_keyframes(self, instance: Any, keyframes: Any) -> MovieClip:
        """Add hold tweens from a compact keyframe string or a {frame: props} mapping"""
        for frame, properties in normalize_keyframes(keyframes).items():
            self.add_tween(instance, properties, frame)
        return self

    # Short names used by exported timelines
    tw = add_tween
    at = add_timed_child
    aa = add_action

    # -------------------------------------------------------------------------
    # Playback control
    # -------------------------------------------------------------------------

    def play(self) -> None:
        self.paused = False

    def stop(self) -> None:
        self.paused = True

    def goto_and_play(self, position_or_label: Union[int, str]) -> None:
        self.paused = False
        self._goto(position_or_label)

    def goto_and_stop(self, position_or_label: Union[int, str]) -> None:
        self.paused = True
        self._goto(position_or_label)

    def advance(self, seconds: Optional[float] = None) -> None:
        """Move the playhead forward by `seconds` of clip time"""
        if not self._framerate:
            fps = 0.0
            node = self.parent
            while node is not None and not fps:
                if isinstance(node, MovieClip) and node.mode is PlaybackMode.INDEPENDENT:
                    fps = node._framerate
                node = node.parent
            self.framerate = fps
            if not fps:
                # No clock to follow: show the current frame once, then wait for a seek
                if self._prev_position is None:
                    self._update_timeline()
                return

        if seconds:
            self._t += seconds
        wrapped = False
        if self._t > self._duration:
            if self.loop and self._duration > 0:
                self._t = math.fmod(self._t, self._duration) or self._duration
                wrapped = True
            else:
                self._t = self._duration

        frame = math.floor(self._t * self._framerate + FRAME_EPSILON)
        self._current_frame = max(0, min(frame, self._total_frames - 1))
        self._update_timeline(wrapped=wrapped)

    def _goto(self, position_or_label: Union[int, str]) -> None:
        if isinstance(position_or_label, str):
            position = self._labels.frame_of(position_or_label)
            if position is None:
                logger.debug(f"{self!r}: unknown label '{position_or_label}'")
                return
        elif position_or_label is None:
            return
        else:
            position = int(position_or_label)

        position = max(0, min(position, self._total_frames - 1))
        self._current_frame = position
        self._t = position / self._framerate if self._framerate > 0 else 0.0
        self._update_timeline()

    def _reset(self) -> None:
        self._prev_position = None
        self._t = 0.0
        self._current_frame = 0

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def _update_timeline(self, wrapped: bool = False) -> None:
        if self.mode is PlaybackMode.INDEPENDENT:
            pass
        elif self.mode is PlaybackMode.SINGLE_FRAME:
            self._current_frame = self._wrap(self.start_position)
        elif self.mode is PlaybackMode.SYNCHED:
            self._current_frame = self._wrap(self.start_position + self._synch_offset)
        else:
            raise AssertionError(f"Unhandled playback mode {self.mode}")

        if self._prev_position == self._current_frame:
            return

        previous = self._prev_position
        # Set before the pass so actions that seek see this frame as the origin
        self._prev_position = self._current_frame
        do_actions = self.mode is PlaybackMode.INDEPENDENT and self.actions_enabled
        self._set_timeline_position(previous, self._current_frame, do_actions, wrapped)

    def _wrap(self, frame: int) -> int:
        return frame % self._total_frames if self._total_frames > 0 else 0

    def _set_timeline_position(self, previous: Optional[int], current: int,
                               do_actions: bool, wrapped: bool = False) -> None:
        for timeline in self._timelines:
            tween = timeline.segment_at(current)
            if tween is not None:
                tween.set_position(current)

        for presence in self._timed_child_timelines:
            target = presence.target
            should_be_child = presence[current]
            if should_be_child and target.parent is not self:
                if (isinstance(target, MovieClip) and target.mode is PlaybackMode.INDEPENDENT
                        and target.auto_reset):
                    target._reset()
                self.add_child(target)
                logger.debug(f"{self!r} frame {current}: + {target!r}")
            elif not should_be_child and target.parent is self:
                self.remove_child(target)
                logger.debug(f"{self!r} frame {current}: - {target!r}")

        for child in list(self.children):
            if not isinstance(child, MovieClip):
                continue
            if child.mode is PlaybackMode.SYNCHED:
                child._synch_offset = current - child.parent_start_position
                child._update_timeline()
            elif child.mode is PlaybackMode.SINGLE_FRAME:
                child._update_timeline()

        if do_actions:
            self._fire_actions(previous, current, wrapped)

    def _fire_actions(self, previous: Optional[int], current: int,
                      wrapped: bool = False) -> None:
        for frame in ActionTable.traversed(previous, current, self._total_frames, wrapped):
            for callback in self._actions.at(frame):
                callback()
            if self._prev_position != current:
                # An action moved the playhead; the rest of this pass is stale
                break

    def __repr__(self) -> str:
        return (f"MovieClip({self.name!r}, mode={self.mode.name}, "
                f"frame={self._current_frame}/{self._total_frames})")
