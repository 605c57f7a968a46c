from __future__ import annotations

import argparse
import json
import logging
import random
from datetime import datetime
from pathlib import Path
from typing import List, Sequence

import yaml

from collage_config import CollageSettings, ConfigError, load_config, parse_rgb
from collage_logging import setup_logging
from collage_pages import NoPhotosError, Page, PageAssembler, Placement
from collage_photos import scan_photos
from collage_render import PlacedImg, RenderOptions, render_page_to_file, save_booklet

logger = logging.getLogger(__name__)


def to_placed(placements: Sequence[Placement]) -> List[PlacedImg]:
    return [
        PlacedImg(path=p.photo.path, x=p.x, y=p.y, w=p.w, h=p.h, aspect_match=p.aspect_match)
        for p in placements
    ]


def page_record(page: Page, output: Path) -> dict:
    grid = page.grid
    return {
        "output": str(output),
        "files": [p.as_dict() for p in page.placements],
        "metadata": {
            "pageNumber": page.number,
            "photosPlaced": len(page.placements),
            "processingTime": int(round(page.elapsed * 1000)),
            "validation": grid.validation.as_dict() if grid and grid.validation else None,
            "edgeCase": grid.edge_case.value if grid and grid.edge_case else None,
        },
    }


def make_output_dir(root: Path) -> Path:
    stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
    out_dir = Path(root) / f"collage-{stamp}"
    out_dir.mkdir(parents=True, exist_ok=False)
    return out_dir


def run(
    input_dir: Path,
    output_root: Path,
    settings: CollageSettings,
    recursive: bool = False,
    as_json: bool = False,
    pdf: bool = False,
) -> Path:
    settings.validate()
    photos, skipped = scan_photos(
        Path(input_dir),
        recursive=recursive,
        harmony=settings.harmony,
        date_sort=settings.date_sort,
        workers=settings.workers,
    )
    if not photos:
        raise NoPhotosError(f"no readable images found in: {input_dir}")
    logger.info("%d photos loaded into queue", len(photos))

    out_dir = make_output_dir(output_root)
    width, height = settings.page_size
    options = RenderOptions(
        width=width,
        height=height,
        background=parse_rgb(settings.background),
        border_width=settings.border_width,
        border_color=parse_rgb(settings.border_color),
        output_format=settings.output_format,
        quality=settings.quality,
        workers=settings.workers,
    )

    rendered: List[Path] = []
    records: List[dict] = []

    def sink(page: Page) -> None:
        page_file = out_dir / f"page-{page.number}.{settings.output_format}"
        if as_json:
            records.append(page_record(page, page_file))
            return
        try:
            rendered.append(render_page_to_file(to_placed(page.placements), options, page_file))
        except (OSError, ValueError) as e:
            logger.error("error rendering page %d: %s", page.number, e)

    assembler = PageAssembler(photos, settings, random.Random(settings.seed))
    pages = assembler.run(sink)

    if as_json:
        layout_file = out_dir / "layout.json"
        with open(layout_file, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
        logger.info("JSON layout file created: %s", layout_file)
    else:
        logger.info("Pages created: %d", len(rendered))
        if pdf and rendered:
            booklet = save_booklet(rendered, out_dir / "booklet.pdf", settings.dpi)
            logger.info("Booklet: %s", booklet)

    placed = sum(len(p.placements) for p in pages)
    logger.info("Photos placed: %d (skipped %d unreadable)", placed, len(skipped))
    logger.info("Output: %s", out_dir)
    return out_dir


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Lay out a folder of photos on fixed-size pages as a grid of varied cells and render print-ready pages."
    )

    parser.add_argument("-i", "--input", type=str, required=True, help="Input folder containing photos.")
    parser.add_argument("--recursive", action="store_true", help="Scan input folder recursively")
    parser.add_argument("-o", "--output", type=str, default="./out", help="Output root directory")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML file with settings; command-line flags take precedence.",
    )

    parser.add_argument(
        "-s",
        "--size",
        type=str,
        default=None,
        help="Page size, e.g. 24x36in, 300x400mm, 1920x1080px (default 24x36in).",
    )
    parser.add_argument("--dpi", type=int, default=None, help="Print resolution (default 300).")
    parser.add_argument("--bleed", type=str, default=None, help="Bleed added on every side, e.g. 3mm or 0.125in.")
    parser.add_argument("-g", "--grid", type=int, default=None, help="Starting grid size N for an NxN grid (default 3).")
    parser.add_argument("--padding", type=int, default=None, help="Padding around each photo in pixels (default 4).")

    parser.add_argument("--harmony", action="store_true", default=None, help="Order and match photos by dominant hue.")
    parser.add_argument(
        "--date-sort",
        type=str,
        default=None,
        choices=["asc", "desc"],
        help="Sort by modification date: asc (oldest first) or desc (newest first).",
    )

    parser.add_argument("--bg", dest="background", type=str, default=None, help="Background colour RRGGBB or #RRGGBB.")
    parser.add_argument("--border-width", type=int, default=None, help="Border around each photo in pixels.")
    parser.add_argument("--border-color", type=str, default=None, help="Border colour RRGGBB or #RRGGBB.")
    parser.add_argument("--format", dest="output_format", type=str, default=None, choices=["jpg", "png"])
    parser.add_argument("--quality", type=int, default=None, help="JPEG quality 1..100 (default 92).")

    parser.add_argument("--min-variety", dest="min_block_variety", type=int, default=None)
    parser.add_argument("--max-single-cell", dest="max_single_cell_percent", type=float, default=None)
    parser.add_argument("--min-large", dest="min_large_blocks", type=int, default=None)
    parser.add_argument(
        "--validation",
        dest="validation_mode",
        type=str,
        default=None,
        choices=["strict", "legacy"],
        help="strict: allowed ratios with scored penalties. legacy: at most 20%% extreme blocks.",
    )
    parser.add_argument("--max-attempts", type=int, default=None, help="Layout attempts per page (default 100).")

    parser.add_argument("--pdf", action="store_true", help="Also write booklet.pdf")
    parser.add_argument("--json", action="store_true", help="Write layout.json instead of rendering images")

    parser.add_argument("--seed", type=int, default=None, help="Random seed (for reproducible results)")
    parser.add_argument("--workers", type=int, default=None, help="Thread workers for image IO/resize. 0 means auto.")
    parser.add_argument("--log-level", type=str, default="INFO", help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--log-file", type=str, default=None, help="Also write the log to this file")
    parser.add_argument("--log-format", type=str, default="simple", choices=["simple", "detailed", "json"])
    return parser


SETTING_FLAGS = (
    "size", "dpi", "bleed", "grid", "padding", "harmony", "date_sort", "background",
    "border_width", "border_color", "output_format", "quality", "min_block_variety",
    "max_single_cell_percent", "min_large_blocks", "validation_mode", "max_attempts",
    "seed", "workers",
)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        level=args.log_level,
        log_file=Path(args.log_file) if args.log_file else None,
        format_style=args.log_format,
    )

    try:
        base = CollageSettings()
        if args.config:
            base = CollageSettings.from_dict(load_config(Path(args.config)))
        settings = base.merged({k: getattr(args, k) for k in SETTING_FLAGS})
        run(
            Path(args.input),
            Path(args.output),
            settings,
            recursive=args.recursive,
            as_json=args.json,
            pdf=args.pdf,
        )
    except (ConfigError, NoPhotosError, FileNotFoundError, yaml.YAMLError) as e:
        raise SystemExit(str(e))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
