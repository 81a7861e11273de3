"""
Command-line interface for multibox-tracker.

Usage:
    multibox-tracker process clip.mp4 -o out/
    multibox-tracker process clips/ --every 3 --min-correlation 0.3
    multibox-tracker config --show [-c tracker.yaml]
    multibox-tracker config --generate tracker.yaml
"""

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Optional

import yaml

from . import __version__
from .config import PipelineConfig, get_default_config
from .pipeline import run_pipeline

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="multibox-tracker",
        description=(
            "Follow detected objects through video: detections seed tracks, "
            "optical flow carries them between detector runs"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Track one clip, running the detector on every 3rd frame:
    multibox-tracker process clip.mp4 --every 3 -o out/

  Run the detector in the background and skip frames while it is busy:
    multibox-tracker process clip.mp4 --async-detection

  Keep only the latest detections, no motion tracking:
    multibox-tracker process clips/ --no-tracker

  Write the default thresholds to a file for editing:
    multibox-tracker config --generate tracker.yaml
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="-v logs track creation and eviction, -vv every association decision",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    process_parser = subparsers.add_parser("process", help="Track objects in a clip or a folder of clips")
    process_parser.add_argument("input", type=Path, help="Video file or directory of videos")
    process_parser.add_argument(
        "-o", "--output", type=Path, default=Path("output"),
        help="Where annotated frames and track JSON go (default: output/)",
    )
    process_parser.add_argument("-c", "--config", type=Path, help="Pipeline config YAML")
    process_parser.add_argument(
        "-n", "--num-frames", type=int,
        help="Track at most this many frames from the start of each clip",
    )
    process_parser.add_argument(
        "--exclude", nargs="+", default=[], metavar="PATTERN",
        help="Skip clips whose filename contains any of these",
    )
    process_parser.add_argument("--no-progress", action="store_true", help="Hide progress bars")

    detection_group = process_parser.add_argument_group("detection")
    detection_group.add_argument(
        "--every", type=int, metavar="N", dest="detection_interval",
        help="Run the detector on every Nth frame",
    )
    detection_group.add_argument(
        "--async-detection", action="store_true",
        help="Detect on a background worker; frames arriving while it is busy are only tracked",
    )

    tracking_group = process_parser.add_argument_group("tracking")
    tracking_group.add_argument(
        "--no-tracker", action="store_true",
        help="Disable optical flow; each detection batch replaces all tracks",
    )
    tracking_group.add_argument(
        "--min-correlation", type=float, metavar="SCORE",
        help="Drop a track once its correlation falls below this",
    )
    tracking_group.add_argument(
        "--marginal-correlation", type=float, metavar="SCORE",
        help="Correlation a new track needs to start, and an old one needs to defend its place",
    )
    tracking_group.add_argument(
        "--max-overlap", type=float, metavar="IOU",
        help="IoU above which a new detection competes with an existing track",
    )

    output_group = process_parser.add_argument_group("output")
    output_group.add_argument(
        "--no-frames", action="store_true", help="Do not write annotated frames, only track JSON",
    )
    output_group.add_argument(
        "--show-detections", action="store_true",
        help="Also outline the raw detections of the latest batch",
    )

    config_parser = subparsers.add_parser("config", help="Inspect or write pipeline configs")
    config_group = config_parser.add_mutually_exclusive_group(required=True)
    config_group.add_argument("--show", action="store_true", help="Print the effective configuration")
    config_group.add_argument("--generate", type=Path, metavar="FILE", help="Write the default configuration")
    config_parser.add_argument("-c", "--config", type=Path, help="Config YAML to show instead of the defaults")

    return parser


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def load_config(path: Optional[Path]) -> PipelineConfig:
    """Load a config file, or the defaults when no path is given."""
    if path is None:
        return get_default_config()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    return PipelineConfig.from_yaml(path)


def apply_overrides(config: PipelineConfig, args: argparse.Namespace) -> PipelineConfig:
    """Fold command-line flags into a config; thresholds are re-validated."""
    thresholds = {
        name: getattr(args, name)
        for name in ("min_correlation", "marginal_correlation", "max_overlap")
        if getattr(args, name) is not None
    }
    if thresholds:
        config.tracker = dataclasses.replace(config.tracker, **thresholds)

    if args.detection_interval:
        config.detection_interval = args.detection_interval
    if args.async_detection:
        config.async_detection = True
    if args.no_tracker:
        config.use_tracker = False
    if args.num_frames:
        config.video.max_frames = args.num_frames
    if args.no_frames:
        config.output.save_tracked_frames = False
    if args.show_detections:
        config.output.draw_screen_rects = True
    config.output.output_dir = args.output
    return config


def cmd_process(args: argparse.Namespace) -> int:
    """Handle the process command."""
    try:
        config = apply_overrides(load_config(args.config), args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not args.input.exists():
        print(f"Error: Input not found: {args.input}", file=sys.stderr)
        return 1

    try:
        results = run_pipeline(
            input_path=args.input,
            output_dir=args.output,
            config=config,
            exclude_patterns=args.exclude,
            show_progress=not args.no_progress,
        )
    except Exception as e:
        logger.exception("Tracking failed")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for name, frames in results.items():
        track_ids = {view.track_id for frame_tracks in frames for view in frame_tracks.tracks}
        print(f"{name}: {len(frames)} frames, {len(track_ids)} tracks")
    print(f"Results saved to: {args.output}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the config command."""
    if args.generate:
        get_default_config().to_yaml(args.generate)
        print(f"Generated config file: {args.generate}")
        return 0

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False))
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.verbose)

    if args.command == "process":
        return cmd_process(args)
    elif args.command == "config":
        return cmd_config(args)

    return 1


if __name__ == "__main__":
    sys.exit(main())
