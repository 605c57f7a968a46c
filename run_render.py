from __future__ import annotations

import argparse
import logging
from pathlib import Path

import collage_render
from collage_logging import setup_logging

logger = logging.getLogger(__name__)


def main() -> int:
    ap = argparse.ArgumentParser("Render page images from a collage layout.json")
    ap.add_argument("-j", "--json", type=str, required=True, help="JSON layout file to render")
    ap.add_argument("-o", "--output", type=str, default="./rendered")
    ap.add_argument("-f", "--format", type=str, choices=["jpg", "png"], default="jpg")
    ap.add_argument("-q", "--quality", type=int, default=92)
    ap.add_argument("--bg", type=str, default="#ffffff")
    ap.add_argument("--padding", type=int, default=0, help="Extra inset inside every cell in pixels")
    ap.add_argument("--border", type=int, default=0, help="Border width around photos in pixels")
    ap.add_argument("--border-color", dest="border_color", type=str, default="#000000")
    ap.add_argument("--workers", type=int, default=0)
    ap.add_argument("--log-level", type=str, default="INFO")
    args = ap.parse_args()

    setup_logging(level=args.log_level)

    json_path = Path(args.json)
    if not json_path.exists():
        raise SystemExit(f"JSON file not found: {json_path}")

    logger.info("Reading layout from: %s", json_path)
    try:
        written = collage_render.render_from_json(
            json_path,
            Path(args.output),
            background=args.bg,
            padding=args.padding,
            border_width=args.border,
            border_color=args.border_color,
            output_format=args.format,
            quality=args.quality,
            workers=args.workers,
        )
    except ValueError as e:
        raise SystemExit(f"Rendering failed: {e}")

    logger.info("Rendered %d page(s) to %s", len(written), args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
