from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Sequence

from collage_layout import Block
from collage_photos import Photo

ASPECT_WEIGHT = 0.4
IMPORTANCE_WEIGHT = 0.3
ORIENTATION_WEIGHT = 0.2
HARMONY_WEIGHT = 0.1

LANDSCAPE_MIN = 1.1
PORTRAIT_MAX = 0.9

TIE_SHARE = 0.95


@dataclass
class PageContext:
    page_number: int = 1
    total_pages: int = 1
    photos_remaining: int = 0
    average_hue: float | None = None
    harmony: bool = False


def classify_aspect(aspect: float) -> str:
    if aspect > LANDSCAPE_MIN:
        return "landscape"
    if aspect < PORTRAIT_MAX:
        return "portrait"
    return "square"


def aspect_score(photo: Photo, block: Block) -> float:
    return max(0.0, 100.0 - abs(block.aspect - photo.aspect) * 50.0)


def importance_score(photo: Photo, block: Block) -> float:
    area = block.area
    imp = photo.importance or 0

    if imp >= 3 and area >= 4:
        return 100.0
    if imp <= 1 and area <= 2:
        return 90.0
    if imp >= 2 and 2 <= area <= 4:
        return 80.0
    if area >= 6:
        return 100.0 if imp >= 4 else max(0.0, 60.0 - (4 - imp) * 15.0)
    return max(30.0, 70.0 - abs(area - imp) * 10.0)


def orientation_score(photo: Photo, block: Block) -> float:
    p = classify_aspect(photo.aspect)
    b = classify_aspect(block.aspect)
    if p == "square" and b == "square":
        return 100.0
    if p == b:
        return 90.0
    if p == "square":
        return 70.0
    if b == "square":
        return 60.0
    return 30.0


def hue_distance(a: float, b: float) -> float:
    d = abs(a - b) % 360.0
    return min(d, 360.0 - d)


def harmony_score(photo: Photo, context: PageContext) -> float:
    if not context.harmony or photo.hue is None or context.average_hue is None:
        return 50.0
    return max(20.0, 100.0 - (hue_distance(photo.hue, context.average_hue) / 180.0) * 80.0)


def score_photo(photo: Photo, block: Block, context: PageContext) -> float:
    return (
        ASPECT_WEIGHT * aspect_score(photo, block)
        + IMPORTANCE_WEIGHT * importance_score(photo, block)
        + ORIENTATION_WEIGHT * orientation_score(photo, block)
        + HARMONY_WEIGHT * harmony_score(photo, context)
    )


def select_photo(
    queue: Sequence[Photo],
    block: Block,
    context: PageContext,
    rng: random.Random | None = None,
) -> int:
    best_idx = -1
    best_score = -1.0
    for i, photo in enumerate(queue):
        s = score_photo(photo, block, context)
        if s > best_score:
            best_score = s
            best_idx = i

    if best_score > 0:
        threshold = best_score * TIE_SHARE
        tied: List[int] = [
            i for i, photo in enumerate(queue) if score_photo(photo, block, context) >= threshold
        ]
        if len(tied) > 1:
            best_idx = (rng or random.Random()).choice(tied)

    return best_idx
