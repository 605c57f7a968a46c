from __future__ import annotations

import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

from PIL import Image, ImageOps

from collage_config import parse_rgb
from collage_photos import effective_workers, open_image

logger = logging.getLogger(__name__)


@dataclass
class PlacedImg:
    path: Path
    x: int
    y: int
    w: int
    h: int
    aspect_match: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> "PlacedImg":
        return cls(
            path=Path(d["input"]),
            x=int(d["x"]),
            y=int(d["y"]),
            w=int(d["w"]),
            h=int(d["h"]),
            aspect_match=bool(d.get("aspectMatch", False)),
        )


@dataclass(frozen=True)
class RenderOptions:
    width: int
    height: int
    background: Tuple[int, int, int] = (255, 255, 255)
    padding: int = 0
    border_width: int = 0
    border_color: Tuple[int, int, int] = (0, 0, 0)
    output_format: str = "jpg"
    quality: int = 92
    workers: int = 0


def safe_resize(
    img: Image.Image,
    size: Tuple[int, int],
    resample: Image.Resampling = Image.Resampling.LANCZOS,
) -> Image.Image:
    w, h = size
    if w <= 0 or h <= 0:
        raise ValueError("resize size must be positive")
    return img.resize((w, h), resample=resample)


def fit_cover(img: Image.Image, w: int, h: int) -> Image.Image:
    ow, oh = img.size
    scale = max(w / ow, h / oh)
    new_w = max(w, int(math.ceil(ow * scale)))
    new_h = max(h, int(math.ceil(oh * scale)))
    resized = safe_resize(img, (new_w, new_h))
    left = max(0, (new_w - w) // 2)
    top = max(0, (new_h - h) // 2)
    return resized.crop((left, top, left + w, top + h))


def fit_contain(img: Image.Image, w: int, h: int, background: Tuple[int, int, int]) -> Image.Image:
    ow, oh = img.size
    scale = min(w / ow, h / oh)
    new_w = min(w, max(1, int(math.floor(ow * scale))))
    new_h = min(h, max(1, int(math.floor(oh * scale))))
    resized = safe_resize(img, (new_w, new_h))
    out = Image.new("RGB", (w, h), color=background)
    out.paste(resized, ((w - new_w) // 2, (h - new_h) // 2))
    return out


def prepare_tile(p: PlacedImg, options: RenderOptions) -> Tuple[Image.Image, int, int] | None:
    pw = int(round(p.w - options.padding * 2))
    ph = int(round(p.h - options.padding * 2))
    if pw <= 0 or ph <= 0:
        logger.warning("photo area too small after padding: %s", p.path)
        return None

    try:
        img = open_image(p.path)
        if img.mode != "RGB":
            img = img.convert("RGB")
        if p.aspect_match:
            tile = fit_contain(img, pw, ph, options.background)
        else:
            tile = fit_cover(img, pw, ph)
    except (OSError, ValueError) as e:
        logger.error("error processing %s: %s", p.path, e)
        return None

    x = int(round(p.x + options.padding))
    y = int(round(p.y + options.padding))
    bw = options.border_width
    if bw > 0:
        tile = ImageOps.expand(tile, border=bw, fill=options.border_color)
        x -= bw
        y -= bw
    return tile, x, y


def render_page(placed: Sequence[PlacedImg], options: RenderOptions) -> Image.Image:
    out = Image.new("RGB", (options.width, options.height), color=options.background)

    n_workers = effective_workers(options.workers)
    if n_workers <= 1 or len(placed) <= 2:
        tiles = [prepare_tile(p, options) for p in placed]
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as ex:
            tiles = list(ex.map(lambda p: prepare_tile(p, options), placed))

    # paste in placement order so overlapping borders stack the same way every run
    for res in tiles:
        if res is None:
            continue
        tile, x, y = res
        out.paste(tile, (x, y))
    return out


def save_image(img: Image.Image, out_path: Path, quality: int = 92) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    ext = out_path.suffix.lower()
    if ext in {".jpg", ".jpeg"}:
        img.save(out_path, quality=quality, subsampling=1, optimize=True)
    else:
        img.save(out_path)
    return out_path


def render_page_to_file(placed: Sequence[PlacedImg], options: RenderOptions, out_path: Path) -> Path:
    return save_image(render_page(placed, options), out_path, quality=options.quality)


def page_extent(placed: Sequence[PlacedImg]) -> Tuple[int, int]:
    max_x = max((p.x + p.w for p in placed), default=0)
    max_y = max((p.y + p.h for p in placed), default=0)
    return max_x, max_y


def load_layout(json_path: Path) -> List[dict]:
    with open(json_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list) or not data:
        raise ValueError("invalid JSON layout: expected a non-empty array of page objects")
    return data


def render_from_json(
    json_path: Path,
    out_dir: Path,
    background: str = "#ffffff",
    padding: int = 0,
    border_width: int = 0,
    border_color: str = "#000000",
    output_format: str = "jpg",
    quality: int = 92,
    workers: int = 0,
) -> List[Path]:
    pages = load_layout(Path(json_path))
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    ext = "png" if output_format == "png" else "jpg"

    written: List[Path] = []
    for i, page in enumerate(pages, start=1):
        files = page.get("files") or []
        if not files:
            logger.warning("page %d: no files to render", i)
            continue
        placed = [PlacedImg.from_dict(d) for d in files]
        w, h = page_extent(placed)
        options = RenderOptions(
            width=w,
            height=h,
            background=parse_rgb(background),
            padding=padding,
            border_width=border_width,
            border_color=parse_rgb(border_color),
            output_format=ext,
            quality=quality,
            workers=workers,
        )
        logger.debug("page %d: %dx%dpx with %d photos", i, w, h, len(placed))
        written.append(render_page_to_file(placed, options, out_dir / f"page-{i}.{ext}"))
    return written


def save_booklet(page_paths: Sequence[Path], pdf_path: Path, dpi: int) -> Path:
    """Bundle rendered pages into one PDF; each page measures pixels / dpi inches."""
    if not page_paths:
        raise ValueError("no pages to put in the booklet")
    pages = []
    for p in page_paths:
        with Image.open(p) as img:
            pages.append(img.convert("RGB"))
    pdf_path = Path(pdf_path)
    pdf_path.parent.mkdir(parents=True, exist_ok=True)
    pages[0].save(pdf_path, save_all=True, append_images=pages[1:], resolution=float(dpi))
    return pdf_path
