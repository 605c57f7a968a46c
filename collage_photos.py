from __future__ import annotations

import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)


SUPPORTED_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}

# allow large images; keep a very high limit to avoid PIL warning spam
Image.MAX_IMAGE_PIXELS = max(int(getattr(Image, "MAX_IMAGE_PIXELS", 0) or 0), 250_000_000)

_IMPORTANCE_RE = re.compile(r"imp(\d)")
MAX_IMPORTANCE = 5

HUE_SAMPLE = 64
HUE_BINS = 36


def effective_workers(workers: int) -> int:
    if workers <= 0:
        cpu = os.cpu_count() or 4
        return min(32, max(1, cpu * 2))
    return max(1, int(workers))


@dataclass
class Photo:
    path: Path
    width: int
    height: int
    importance: int = 0
    hue: float | None = None

    @property
    def aspect(self) -> float:
        return self.width / self.height if self.height else 1.0

    @property
    def orientation(self) -> str:
        return "landscape" if self.width >= self.height else "portrait"

    @property
    def name(self) -> str:
        return self.path.name


def parse_importance(filename: str) -> int:
    m = _IMPORTANCE_RE.search(filename.lower())
    if not m:
        return 0
    return min(MAX_IMPORTANCE, int(m.group(1)))


def iter_image_files(folder: Path, recursive: bool) -> List[Path]:
    if not folder.exists() or not folder.is_dir():
        raise FileNotFoundError(f"input folder not found: {folder}")

    if recursive:
        walker: Iterable[Path] = folder.rglob("*")
    else:
        walker = folder.glob("*")

    return [p for p in walker if p.is_file() and p.suffix.lower() in SUPPORTED_EXTS]


def sort_by_date(files: Sequence[Path], order: str = "asc") -> List[Path]:
    if order not in {"asc", "desc"}:
        raise ValueError("date sort must be 'asc' or 'desc'")
    return sorted(files, key=lambda p: p.stat().st_mtime, reverse=(order == "desc"))


def open_image(path: Path) -> Image.Image:
    img = Image.open(path)
    img = ImageOps.exif_transpose(img)
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGB")
    return img


def dominant_hue(img: Image.Image) -> float | None:
    """Hue in degrees of the most vibrant colour family in ``img``.

    Pixels are binned by hue and weighted by saturation * value, so a small
    saturated subject outweighs a large grey background. Returns ``None``
    for fully grey images.
    """
    small = img.convert("RGB").resize((HUE_SAMPLE, HUE_SAMPLE), resample=Image.Resampling.BILINEAR)
    colors = small.convert("HSV").getcolors(maxcolors=HUE_SAMPLE * HUE_SAMPLE) or []

    weights = [0.0] * HUE_BINS
    hue_sum = [0.0] * HUE_BINS
    for count, (h, s, v) in colors:
        if s < 40 or v < 40:
            continue
        w = count * (s / 255.0) * (v / 255.0)
        b = min(HUE_BINS - 1, h * HUE_BINS // 256)
        weights[b] += w
        hue_sum[b] += w * h

    best = max(range(HUE_BINS), key=lambda i: weights[i])
    if weights[best] <= 0:
        return None
    return (hue_sum[best] / weights[best]) * 360.0 / 255.0


def probe_photo(path: Path, with_hue: bool = False) -> Photo:
    with Image.open(path) as raw:
        img = ImageOps.exif_transpose(raw)
        w, h = img.size
        hue = dominant_hue(img) if with_hue else None
    if w <= 1 or h <= 1:
        raise ValueError(f"image too small: {w}x{h}")
    return Photo(
        path=path,
        width=w,
        height=h,
        importance=parse_importance(path.name),
        hue=hue,
    )


def collect_photos(
    paths: Sequence[Path], with_hue: bool = False, workers: int = 0
) -> Tuple[List[Photo], List[Tuple[Path, str]]]:
    """Probe ``paths`` keeping their order; unreadable files are returned as skipped."""

    def probe(p: Path) -> Photo | Tuple[Path, str]:
        try:
            return probe_photo(p, with_hue=with_hue)
        except (OSError, ValueError) as e:
            return (p, str(e))

    n_workers = effective_workers(workers)
    if n_workers <= 1 or len(paths) <= 8:
        results = [probe(p) for p in paths]
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as ex:
            results = list(ex.map(probe, paths))

    photos: List[Photo] = []
    skipped: List[Tuple[Path, str]] = []
    for res in results:
        if isinstance(res, Photo):
            photos.append(res)
            logger.debug(
                "%s (W:%d, H:%d, Imp:%d, Hue:%s)",
                res.name, res.width, res.height, res.importance,
                "-" if res.hue is None else round(res.hue),
            )
        else:
            logger.warning("skipping unreadable photo %s: %s", res[0], res[1])
            skipped.append(res)
    return photos, skipped


def scan_photos(
    folder: Path,
    recursive: bool = False,
    harmony: bool = False,
    date_sort: str = "asc",
    workers: int = 0,
) -> Tuple[List[Photo], List[Tuple[Path, str]]]:
    files = iter_image_files(folder, recursive=recursive)
    # harmony ordering is a stable sort on top of oldest-first
    files = sort_by_date(files, "asc" if harmony else date_sort)
    logger.info("Found %d image files to process", len(files))

    photos, skipped = collect_photos(files, with_hue=harmony, workers=workers)
    if harmony:
        photos.sort(key=lambda p: p.hue if p.hue is not None else 0.0)
    return photos, skipped


def average_hue(photos: Sequence[Photo]) -> float | None:
    hues = [p.hue for p in photos if p.hue is not None]
    if not hues:
        return None
    return sum(hues) / len(hues)
