#!/usr/bin/env python3
"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                                                                              ║
║                          TIMELINE COMMAND LINE                               ║
║                                                                              ║
║   timeline decode "0X100Y100 10X150"     # compact keyframes -> JSON        ║
║   timeline encode '{"0": {"x": 100}}'     # JSON -> compact keyframes        ║
║   timeline list                           # library clips                    ║
║   timeline play walker --seconds 2        # headless playback trace          ║
║   timeline template my_clip               # starter JSON definition          ║
║                                                                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from __future__ import annotations
import sys
import json
import argparse
import logging
from pathlib import Path
from typing import List, Optional

from animation_engine import DisplayNode, FrameTicker, MovieClip, PlaybackMode
from animation_library import ClipLibrary
from keyframe_codec import decode_keyframes, encode_keyframes

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(message)s'
)
logger = logging.getLogger("TIMELINE")


def _describe_frame(clip: MovieClip, seconds: float) -> str:
    children = ", ".join(child.name for child in clip.children)
    label = clip.current_label or "-"
    return (f"{seconds:7.3f}s  frame {clip.current_frame:>4}/{clip.total_frames}"
            f"  label={label}  children=[{children}]")


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_decode(args: argparse.Namespace) -> int:
    try:
        keyframes = decode_keyframes(args.data)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    print(json.dumps(keyframes, indent=2))
    return 0


def cmd_encode(args: argparse.Namespace) -> int:
    try:
        print(encode_keyframes(json.loads(args.data)))
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    lib = ClipLibrary(custom_dir=args.custom_dir)
    for name in lib.names():
        print(f"  • {name}: {lib.get(name).get('description', '')}")
    print(f"\n  TOTAL: {len(lib.names())} clips")
    return 0


def cmd_template(args: argparse.Namespace) -> int:
    lib = ClipLibrary()
    path = lib.create_template(args.name, args.output)
    print(f"Created clip template: {path}")
    return 0


def cmd_play(args: argparse.Namespace) -> int:
    lib = ClipLibrary(custom_dir=args.custom_dir)
    name = args.clip
    if name.endswith(".json"):
        if not lib.add_custom(name):
            return 1
        name = Path(name).stem

    ticker = FrameTicker()
    try:
        clip = lib.build(name, ticker=ticker)
    except (KeyError, ValueError) as e:
        logger.error(f"Cannot build '{name}': {e}")
        return 1
    if args.fps:
        clip.framerate = args.fps

    stage = DisplayNode("stage")
    stage.add_child(clip)

    if clip.mode is not PlaybackMode.INDEPENDENT:
        clip.goto_and_stop(clip.start_position)
        print(_describe_frame(clip, 0.0))
        return 0

    steps = max(0, int(round(args.seconds / args.step)))
    last_frame = None
    for i in range(steps + 1):
        ticker.tick(args.step if i else 0.0)
        if clip.current_frame != last_frame:
            print(_describe_frame(clip, i * args.step))
            last_frame = clip.current_frame
    return 0


# =============================================================================
# ENTRY POINT
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timeline",
        description="Frame-accurate clip playback tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXAMPLES:
  timeline decode "0X100Y100 10X150"
  timeline play traffic_light --seconds 3 --step 0.0833
  timeline play my_clip.json --fps 30
        """
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log every resolution step")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("decode", help="Decode a compact keyframe string")
    p.add_argument("data")
    p.set_defaults(func=cmd_decode)

    p = sub.add_parser("encode", help="Encode a JSON keyframe mapping")
    p.add_argument("data")
    p.set_defaults(func=cmd_encode)

    p = sub.add_parser("list", help="List library clips")
    p.add_argument("--custom-dir", help="Directory of custom clip JSON files")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("template", help="Write a starter clip definition")
    p.add_argument("name")
    p.add_argument("--output", "-o", help="Output path (default: <name>.json)")
    p.set_defaults(func=cmd_template)

    p = sub.add_parser("play", help="Play a clip headless and print frame changes")
    p.add_argument("clip", help="Library clip name or path to a .json definition")
    p.add_argument("--seconds", type=float, default=2.0, help="How long to play")
    p.add_argument("--step", type=float, default=1 / 60, help="Seconds per tick")
    p.add_argument("--fps", type=float, default=0, help="Override the clip framerate")
    p.add_argument("--custom-dir", help="Directory of custom clip JSON files")
    p.set_defaults(func=cmd_play)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger("TimelineEngine").setLevel(logging.DEBUG)
    if getattr(args, "step", 1) <= 0:
        parser.error("--step must be positive")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
