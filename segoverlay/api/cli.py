"""Command-line interface for the segmentation overlay system."""

import argparse
import sys
from pathlib import Path

from segoverlay.compositing.blender import BlendConfig
from segoverlay.config import Config
from segoverlay.errors import SegmentationError
from segoverlay.ingest import load_image
from segoverlay.logging_config import configure_logging
from segoverlay.pipeline.processor import SegmentationPipeline
from segoverlay.storage.image_storage import ImageStorage


def parse_color(value: str) -> tuple[int, int, int]:
    """Parse "R,G,B" into a colour tuple."""
    parts = value.split(",")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"Expected R,G,B, got '{value}'")
    try:
        color = tuple(int(p.strip()) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Color components must be integers: '{value}'")
    if any(not 0 <= c <= 255 for c in color):
        raise argparse.ArgumentTypeError(f"Color components must be 0-255: '{value}'")
    return color


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Segmentation overlay renderer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Reveal people in a photo with DeepLabV3
  python -m segoverlay.api.cli segment photo.jpg

  # Reveal every foreground instance over a white background
  python -m segoverlay.api.cli segment photo.jpg --mode instance --background 255,255,255

  # Write to an explicit path and keep the composite mask
  python -m segoverlay.api.cli segment photo.jpg -o overlay.png --save-mask

  # List class labels and configured colours
  python -m segoverlay.api.cli classes
        """
    )
    parser.add_argument("--log-level", default=Config.LOG_LEVEL, help="Logging level")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    segment_parser = subparsers.add_parser("segment", help="Render a segmentation overlay for an image")
    segment_parser.add_argument("image", help="Path or URL of the image")
    segment_parser.add_argument("--mode", "-m", choices=Config.MODES, default=Config.DEFAULT_MODE,
                                help="Segmentation back-end")
    segment_parser.add_argument("--output", "-o", default=None, help="Overlay output path (PNG)")
    segment_parser.add_argument("--output-dir", default=Config.OUTPUT_DIR,
                                help="Output directory when --output is not given")
    segment_parser.add_argument("--background", "-b", type=parse_color, default=Config.BACKGROUND_COLOR,
                                help="Background colour as R,G,B")
    segment_parser.add_argument("--nearest", action="store_true", help="Nearest-neighbour mask upscaling")
    segment_parser.add_argument("--save-mask", action="store_true", help="Also save the composite mask")
    segment_parser.add_argument("--device", default=None, help="Inference device (cuda/mps/cpu)")

    subparsers.add_parser("classes", help="Show class labels and the colour table")
    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level, args.log_file)

    if args.command == "segment":
        segment_command(args)
    elif args.command == "classes":
        classes_command()


def segment_command(args, pipeline: SegmentationPipeline = None):
    """Handle segment command."""
    try:
        image = load_image(args.image)
    except SegmentationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if pipeline is None:
        blend_config = BlendConfig(
            background_color=args.background,
            resample_method="nearest" if args.nearest else "bilinear",
        )
        pipeline = SegmentationPipeline(mode=args.mode, blend_config=blend_config, device=args.device)

    try:
        result = pipeline.process(image)
    except SegmentationError as e:
        print(f"Error: segmentation failed: {e}")
        sys.exit(1)

    name = Path(str(args.image)).stem
    storage = ImageStorage(args.output_dir)
    try:
        if args.output:
            paths = [storage.save_image(result.overlay.to_pil("RGB"), Path(args.output))]
            if args.save_mask and result.composite is not None:
                mask_path = Path(args.output).with_name(f"{Path(args.output).stem}_mask.png")
                paths.append(storage.save_image(result.composite.to_pil(), mask_path))
        else:
            paths = storage.save_result(result, name, save_mask=args.save_mask)
    except SegmentationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"\nOverlay for {name} ({result.mode}, {result.model_name}):")
    print("-" * 60)
    print(f"Size: {result.overlay.width}x{result.overlay.height}")
    if result.composite is not None:
        print(f"Mask: {result.composite.width}x{result.composite.height}")
    if result.instance_count is not None:
        print(f"Instances: {result.instance_count}")
    for path in paths:
        print(f"Saved: {path}")
    return paths


def classes_command():
    """Handle classes command."""
    print("\nPASCAL VOC classes")
    print("=" * 50)
    for index, label in enumerate(Config.PASCAL_VOC_CLASSES):
        color = Config.CLASS_COLORS.get(index)
        if index == 0:
            shown = "transparent"
        elif color is None:
            shown = "transparent (unmapped)"
        else:
            shown = "rgb({}, {}, {})".format(*color)
        print(f"{index:2d}. {label:<14} {shown}")


if __name__ == "__main__":
    main()
