from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field, replace
from functools import reduce
from typing import Iterator, List, Sequence, Tuple

logger = logging.getLogger(__name__)


SMALL_SHAPES: Tuple[Tuple[int, int], ...] = ((1, 1), (2, 1), (1, 2))
MEDIUM_SHAPES: Tuple[Tuple[int, int], ...] = ((2, 2),)
LARGE_SHAPES: Tuple[Tuple[int, int], ...] = ((3, 2), (2, 3), (4, 3), (3, 4))
ALL_SHAPES = SMALL_SHAPES + MEDIUM_SHAPES + LARGE_SHAPES

# width / height ratios a block may have in a strictly validated layout
ALLOWED_RATIOS: Tuple[float, ...] = (1.0, 1 / 2, 2.0, 2 / 3, 3 / 2, 3 / 4, 4 / 3)
RATIO_TOLERANCE = 0.01

# legacy percentage check: "photo friendly" ratio band
LEGACY_MIN_RATIO = 0.6
LEGACY_MAX_RATIO = 2.5
LEGACY_MAX_EXTREME_SHARE = 0.2

ILLEGAL_ASPECT_PENALTY = 20
VARIETY_PENALTY = 15
SINGLE_CELL_PENALTY = 10
LARGE_BLOCK_PENALTY = 10
VALID_SCORE = 70
ACCEPTABLE_SCORE = 50

MAX_GRID = 10
MAX_DIMENSION_ATTEMPTS = 50


@dataclass(frozen=True)
class Block:
    x: int
    y: int
    w: int
    h: int
    index: int

    @property
    def area(self) -> int:
        return self.w * self.h

    @property
    def aspect(self) -> float:
        return self.w / self.h if self.h else 1.0

    def cells(self) -> Iterator[Tuple[int, int]]:
        for dy in range(self.h):
            for dx in range(self.w):
                yield self.x + dx, self.y + dy


@dataclass(frozen=True)
class LayoutConstraints:
    min_block_variety: int = 3
    max_single_cell_percent: float = 0.4
    min_large_blocks: int = 1
    mode: str = "strict"


@dataclass
class ValidationResult:
    is_valid: bool
    score: int
    issues: List[str] = field(default_factory=list)
    metrics: dict[str, float] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "score": self.score,
            "issues": list(self.issues),
            "metrics": dict(self.metrics),
        }


@dataclass
class LayoutAttempt:
    blocks: List[Block]
    validation: ValidationResult
    attempts: int = 0
    fallback: str | None = None


class _Grid:
    def __init__(self, rows: int, cols: int) -> None:
        self.rows = rows
        self.cols = cols
        self.cells = [[False] * cols for _ in range(rows)]
        self.blocks: List[Block] = []

    def can_place(self, x: int, y: int, w: int, h: int) -> bool:
        if x + w > self.cols or y + h > self.rows:
            return False
        for dy in range(h):
            row = self.cells[y + dy]
            for dx in range(w):
                if row[x + dx]:
                    return False
        return True

    def place(self, x: int, y: int, w: int, h: int) -> None:
        for dy in range(h):
            row = self.cells[y + dy]
            for dx in range(w):
                row[x + dx] = True
        self.blocks.append(Block(x, y, w, h, index=len(self.blocks)))

    def try_shapes(self, x: int, y: int, shapes: Sequence[Tuple[int, int]]) -> bool:
        for w, h in shapes:
            if self.can_place(x, y, w, h):
                self.place(x, y, w, h)
                return True
        return False

    def free_cells(self) -> Iterator[Tuple[int, int]]:
        # re-checks occupancy on every step since placements happen mid-scan
        for y in range(self.rows):
            for x in range(self.cols):
                if not self.cells[y][x]:
                    yield x, y


def _shuffled(shapes: Sequence[Tuple[int, int]], rng: random.Random) -> List[Tuple[int, int]]:
    out = list(shapes)
    rng.shuffle(out)
    return out


def place_shapes(rows: int, cols: int, rng: random.Random | None = None) -> List[Block]:
    if rows <= 0 or cols <= 0:
        raise ValueError(f"grid must be at least 1x1, got {cols}x{rows}")

    rng = rng or random.Random()
    grid = _Grid(rows, cols)

    # variety pass: seed some larger blocks before the grid fills up
    for x, y in grid.free_cells():
        roll = rng.random()
        if roll < 0.25:
            if not grid.try_shapes(x, y, _shuffled(LARGE_SHAPES, rng)):
                grid.try_shapes(x, y, MEDIUM_SHAPES)
        elif roll < 0.60:
            grid.try_shapes(x, y, _shuffled(MEDIUM_SHAPES, rng))

    # fill pass: mostly small shapes
    for x, y in grid.free_cells():
        roll = rng.random()
        if roll < 0.65:
            preferred = SMALL_SHAPES
        elif roll < 0.90:
            preferred = MEDIUM_SHAPES
        else:
            preferred = LARGE_SHAPES
        if grid.try_shapes(x, y, _shuffled(preferred, rng)):
            continue
        if grid.try_shapes(x, y, _shuffled(ALL_SHAPES, rng)):
            continue
        grid.place(x, y, 1, 1)

    for x, y in grid.free_cells():
        grid.place(x, y, 1, 1)

    return grid.blocks


def uniform_grid(rows: int, cols: int) -> List[Block]:
    return [Block(x, y, 1, 1, index=y * cols + x) for y in range(rows) for x in range(cols)]


def is_allowed_ratio(w: int, h: int, tol: float = RATIO_TOLERANCE) -> bool:
    if h <= 0 or w <= 0:
        return False
    ratio = w / h
    return any(abs(ratio - r) <= tol for r in ALLOWED_RATIOS)


def _validate_strict(blocks: Sequence[Block], constraints: LayoutConstraints) -> ValidationResult:
    issues: List[str] = []
    score = 100

    illegal = [b for b in blocks if not is_allowed_ratio(b.w, b.h)]
    for b in illegal:
        issues.append(f"block {b.index} has illegal aspect {b.w}x{b.h} ({b.aspect:.3f})")
        score -= ILLEGAL_ASPECT_PENALTY

    n = len(blocks)
    sizes = {(b.w, b.h) for b in blocks}
    singles = sum(1 for b in blocks if b.w == 1 and b.h == 1)
    large = sum(1 for b in blocks if b.w > 2 or b.h > 2)
    single_share = (singles / n) if n else 0.0

    if n >= constraints.min_block_variety and len(sizes) < constraints.min_block_variety:
        issues.append(
            f"only {len(sizes)} distinct block sizes (need {constraints.min_block_variety})"
        )
        score -= VARIETY_PENALTY

    if single_share > constraints.max_single_cell_percent:
        issues.append(
            f"{single_share:.0%} of blocks are 1x1 (max {constraints.max_single_cell_percent:.0%})"
        )
        score -= SINGLE_CELL_PENALTY

    if n >= 4 and large < constraints.min_large_blocks:
        issues.append(f"only {large} large blocks (need {constraints.min_large_blocks})")
        score -= LARGE_BLOCK_PENALTY

    score = max(0, score)
    metrics = {
        "blocks": float(n),
        "distinct_sizes": float(len(sizes)),
        "single_cells": float(singles),
        "single_cell_share": single_share,
        "large_blocks": float(large),
        "illegal_aspects": float(len(illegal)),
    }
    return ValidationResult(
        is_valid=(not illegal) and score >= VALID_SCORE,
        score=score,
        issues=issues,
        metrics=metrics,
    )


def _validate_legacy(blocks: Sequence[Block]) -> ValidationResult:
    n = len(blocks)
    extreme = [b for b in blocks if not (LEGACY_MIN_RATIO <= b.aspect <= LEGACY_MAX_RATIO)]
    share = (len(extreme) / n) if n else 0.0
    issues: List[str] = []
    if share > LEGACY_MAX_EXTREME_SHARE:
        issues.append(
            f"{share:.0%} of blocks have extreme aspect ratios (max {LEGACY_MAX_EXTREME_SHARE:.0%})"
        )
    return ValidationResult(
        is_valid=share <= LEGACY_MAX_EXTREME_SHARE,
        score=int(round(100 * (1.0 - share))),
        issues=issues,
        metrics={"blocks": float(n), "extreme_blocks": float(len(extreme)), "extreme_share": share},
    )


def validate_layout(
    blocks: Sequence[Block], constraints: LayoutConstraints | None = None
) -> ValidationResult:
    constraints = constraints or LayoutConstraints()
    if constraints.mode == "strict":
        return _validate_strict(blocks, constraints)
    if constraints.mode == "legacy":
        return _validate_legacy(blocks)
    raise ValueError(f"unknown validation mode: {constraints.mode!r}")


def _better(best: LayoutAttempt | None, cand: LayoutAttempt) -> LayoutAttempt:
    if best is None or cand.validation.is_valid or cand.validation.score > best.validation.score:
        return cand
    return best


def _attempts(
    rows: int, cols: int, constraints: LayoutConstraints, max_attempts: int, rng: random.Random
) -> Iterator[LayoutAttempt]:
    """Candidate layouts, stopping after the first valid one."""
    for attempt in range(1, max(0, int(max_attempts)) + 1):
        blocks = place_shapes(rows, cols, rng)
        cand = LayoutAttempt(blocks, validate_layout(blocks, constraints), attempts=attempt)
        yield cand
        if cand.validation.is_valid:
            return


def search_layout(
    rows: int,
    cols: int,
    constraints: LayoutConstraints | None = None,
    max_attempts: int = 100,
    rng: random.Random | None = None,
) -> LayoutAttempt:
    constraints = constraints or LayoutConstraints()
    rng = rng or random.Random()

    best: LayoutAttempt | None = reduce(_better, _attempts(rows, cols, constraints, max_attempts, rng), None)
    if best is not None and best.validation.is_valid:
        logger.debug("layout %dx%d valid after %d attempt(s), score %d", cols, rows, best.attempts, best.validation.score)
        return best

    if best is not None and best.validation.score > ACCEPTABLE_SCORE:
        logger.debug(
            "no valid %dx%d layout in %d attempts; using best (score %d)",
            cols, rows, max_attempts, best.validation.score,
        )
        return replace(best, attempts=max_attempts, fallback="best")

    logger.debug("no acceptable %dx%d layout in %d attempts; using uniform grid", cols, rows, max_attempts)
    blocks = uniform_grid(rows, cols)
    return LayoutAttempt(
        blocks, validate_layout(blocks, constraints), attempts=max(0, int(max_attempts)), fallback="uniform"
    )


def generate_validated_layout(
    rows: int,
    cols: int,
    constraints: LayoutConstraints | None = None,
    max_attempts: int = 100,
    rng: random.Random | None = None,
) -> List[Block]:
    return search_layout(rows, cols, constraints, max_attempts, rng).blocks


def grid_size_for_count(photo_count: int, grid_size: int) -> int:
    need = int(math.ceil(math.sqrt(max(1, photo_count))))
    if photo_count <= 4:
        return max(2, need)
    if photo_count <= 9:
        return max(3, need)
    if photo_count <= 16:
        return max(4, need)
    if photo_count <= 25:
        return max(5, need)
    return grid_size


@dataclass
class CountedLayout:
    rows: int
    cols: int
    layout: LayoutAttempt


def generate_layout_for_count(
    photo_count: int,
    grid_size: int,
    constraints: LayoutConstraints | None = None,
    rng: random.Random | None = None,
    max_attempts: int = 100,
    max_dimension_attempts: int = MAX_DIMENSION_ATTEMPTS,
    max_grid: int = MAX_GRID,
) -> CountedLayout:
    """Lay out a page that can hold ``photo_count`` photos where possible.

    Grid dimensions are picked from the photo-count bands; pages for more
    than 25 photos keep ``grid_size`` and take whatever block count the
    layout yields. Smaller counts grow the grid one column or row at a time
    until the layout has at least one block per photo.
    """
    rng = rng or random.Random()
    size = grid_size_for_count(photo_count, grid_size) if photo_count > 0 else grid_size
    rows = cols = max(1, int(size))
    if photo_count > 25:
        return CountedLayout(rows, cols, search_layout(rows, cols, constraints, max_attempts, rng))

    richest: CountedLayout | None = None
    for _ in range(max(1, int(max_dimension_attempts))):
        cand = CountedLayout(rows, cols, search_layout(rows, cols, constraints, max_attempts, rng))
        if len(cand.layout.blocks) >= photo_count:
            return cand
        if richest is None or len(cand.layout.blocks) > len(richest.layout.blocks):
            richest = cand
        if cols <= rows and cols < max_grid:
            cols += 1
        elif rows < max_grid:
            rows += 1

    assert richest is not None
    logger.warning(
        "could not fit %d photos on one page; using %dx%d layout with %d blocks",
        photo_count, richest.cols, richest.rows, len(richest.layout.blocks),
    )
    return richest
