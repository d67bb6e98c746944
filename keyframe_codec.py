#!/usr/bin/env python3
"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                                                                              ║
║                          KEYFRAME CODEC                                      ║
║                                                                              ║
║   Compact per-frame property strings, as written by the exporter:           ║
║                                                                              ║
║       "0X100Y100 10X150"  ->  {0: {"x": 100.0, "y": 100.0},                 ║
║                                10: {"x": 150.0}}                             ║
║                                                                              ║
║   • One record per frame, records separated by a space                      ║
║   • A record is a frame number followed by <code><value> pairs              ║
║   • Property coercion used by tween registration (tints, visibility)        ║
║                                                                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from __future__ import annotations
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from PIL import ImageColor

# =============================================================================
# CODE TABLE
# =============================================================================

KEYFRAME_CODES: Mapping[str, str] = MappingProxyType({
    "X": "x",    # x position
    "Y": "y",    # y position
    "A": "sx",   # scale x
    "B": "sy",   # scale y
    "C": "kx",   # skew x
    "D": "ky",   # skew y
    "R": "r",    # rotation
    "L": "a",    # alpha
    "T": "t",    # tint
    "F": "c",    # color transform
    "V": "v",    # visibility
})

PROPERTY_CODES: Mapping[str, str] = MappingProxyType(
    {prop: code for code, prop in KEYFRAME_CODES.items()}
)

Keyframes = Dict[int, Dict[str, Any]]


class KeyframeDecodeError(ValueError):
    """Raised when compact keyframe data is corrupt"""

    def __init__(self, message: str, position: Optional[int] = None):
        if position is not None:
            message = f"{message} (at offset {position})"
        super().__init__(message)
        self.position = position


# =============================================================================
# VALUE PARSING
# =============================================================================

def _parse_value(prop: str, buffer: str, position: int) -> Any:
    try:
        if prop == "c":
            return [float(v) for v in buffer.split(",")]
        if prop == "v":
            return bool(int(buffer))
        return float(buffer)
    except ValueError:
        raise KeyframeDecodeError(
            f"Invalid value {buffer!r} for property '{prop}'", position
        ) from None


def parse_color(value: Union[str, int, float]) -> int:
    """Convert a colour literal ("#ff8800", "rgb(...)", "red" or a number) to 0xRRGGBB"""
    if isinstance(value, (int, float)):
        return int(value)
    rgb = ImageColor.getrgb(value.strip())
    return (rgb[0] << 16) | (rgb[1] << 8) | rgb[2]


def normalize_properties(properties: Mapping[str, Any]) -> Dict[str, Any]:
    """Coerce tint and visibility values into the types tweens expect.

    Returns a new dict, the caller's mapping is left alone.
    """
    props = dict(properties)
    tint = props.get("t")
    if isinstance(tint, (str, int, float)) and not isinstance(tint, bool):
        props["t"] = parse_color(tint)
    visible = props.get("v")
    if isinstance(visible, (int, float)) and not isinstance(visible, bool):
        props["v"] = bool(visible)
    return props


# =============================================================================
# DECODER
# =============================================================================

def decode_keyframes(data: str) -> Keyframes:
    """
    Decode a compact keyframe string into {frame: {prop: value}}.

    Code letters are case-insensitive. Anything alphabetic that is not a code
    is an error, as is a record whose frame token is not an integer.
    """
    result: Keyframes = {}
    frame: Optional[Dict[str, Any]] = None
    prop: Optional[str] = None
    buffer = ""
    buffer_start = 0

    def close_pair(position: int) -> None:
        if prop is not None and frame is not None:
            frame[prop] = _parse_value(prop, buffer, position)

    for i, c in enumerate(data):
        if c.isalpha():
            code = KEYFRAME_CODES.get(c.upper())
            if code is None:
                raise KeyframeDecodeError(f"Unknown keyframe code {c!r}", i)
            if frame is None:
                if not buffer.isdigit():
                    raise KeyframeDecodeError(
                        f"Invalid frame number {buffer!r}", buffer_start
                    )
                frame = result.setdefault(int(buffer), {})
            else:
                close_pair(buffer_start)
            prop = code
            buffer = ""
            buffer_start = i + 1
        elif c == " ":
            if frame is None and buffer and not buffer.isdigit():
                raise KeyframeDecodeError(f"Invalid frame number {buffer!r}", buffer_start)
            close_pair(buffer_start)
            frame = None
            prop = None
            buffer = ""
            buffer_start = i + 1
        else:
            buffer += c

    if frame is None:
        if buffer and not buffer.isdigit():
            raise KeyframeDecodeError(f"Invalid frame number {buffer!r}", buffer_start)
    else:
        close_pair(buffer_start)
    return result


def normalize_keyframes(keyframes: Union[str, Mapping[Any, Mapping[str, Any]], None]) -> Keyframes:
    """Accept a compact string or a frame mapping; return {int: props} in frame order"""
    if not keyframes:
        return {}
    if isinstance(keyframes, str):
        decoded = decode_keyframes(keyframes)
    else:
        decoded = {}
        for key, props in keyframes.items():
            try:
                frame = int(key)
            except (TypeError, ValueError):
                raise KeyframeDecodeError(f"Invalid frame number {key!r}") from None
            decoded[frame] = dict(props)
    return {frame: decoded[frame] for frame in sorted(decoded)}


# =============================================================================
# ENCODER
# =============================================================================

def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def encode_keyframes(keyframes: Mapping[Any, Mapping[str, Any]]) -> str:
    """Inverse of decode_keyframes, used by tooling to write compact data"""
    records = []
    for frame, props in normalize_keyframes(keyframes).items():
        parts = [str(frame)]
        for prop, value in props.items():
            code = PROPERTY_CODES.get(prop)
            if code is None:
                raise KeyframeDecodeError(f"Property '{prop}' has no keyframe code")
            if prop == "c":
                parts.append(code + ",".join(_format_number(v) for v in value))
            elif prop == "v":
                parts.append(code + ("1" if value else "0"))
            elif prop == "t":
                parts.append(code + str(parse_color(value)))
            else:
                parts.append(code + _format_number(value))
        records.append("".join(parts))
    return " ".join(records)
