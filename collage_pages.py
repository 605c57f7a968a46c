from __future__ import annotations

import enum
import logging
import math
import random
import time
from dataclasses import dataclass, field, replace
from typing import Callable, List, Sequence

from collage_config import CollageSettings
from collage_layout import (
    Block,
    LayoutConstraints,
    ValidationResult,
    generate_layout_for_count,
    search_layout,
)
from collage_photos import Photo, average_hue
from collage_positions import (
    GridConfig,
    PositionResult,
    calculate_positions,
    create_grid_config,
    format_position,
)
from collage_selection import PageContext, select_photo

logger = logging.getLogger(__name__)


ORIENTATION_SKEW = 0.8
ASPECT_MATCH_TOLERANCE = 0.5
PAGE_TIME_TARGET_S = 2.0
MEMORY_WARN_BYTES = 512 * 1024 * 1024
MEMORY_WARN_QUEUE = 100


class NoPhotosError(RuntimeError):
    """The photo queue was empty when a page was requested."""


class PageState(enum.Enum):
    PLANNING = "planning"
    LAYING_OUT = "laying_out"
    ASSIGNING = "assigning"
    RENDERING = "rendering"
    DONE = "done"


class EdgeCase(enum.Enum):
    NO_PHOTOS = "NO_PHOTOS"
    SINGLE_PHOTO = "SINGLE_PHOTO"
    INSUFFICIENT_PHOTOS = "INSUFFICIENT_PHOTOS"
    ALL_LANDSCAPE = "ALL_LANDSCAPE"
    ALL_PORTRAIT = "ALL_PORTRAIT"
    NORMAL = "NORMAL"


@dataclass(frozen=True)
class EdgeCaseHandling:
    grid_size: int
    special_handling: str
    message: str | None = None
    min_block_variety: int | None = None
    max_single_cell_percent: float | None = None
    min_large_blocks: int | None = None

    def apply(self, constraints: LayoutConstraints) -> LayoutConstraints:
        changes = {
            "min_block_variety": self.min_block_variety,
            "max_single_cell_percent": self.max_single_cell_percent,
            "min_large_blocks": self.min_large_blocks,
        }
        return replace(constraints, **{k: v for k, v in changes.items() if v is not None})


def detect_edge_case(queue: Sequence[Photo], capacity: int) -> EdgeCase:
    n = len(queue)
    if n == 0:
        return EdgeCase.NO_PHOTOS
    if n == 1:
        return EdgeCase.SINGLE_PHOTO
    if n < capacity:
        return EdgeCase.INSUFFICIENT_PHOTOS

    landscapes = sum(1 for p in queue if p.aspect > 1.1)
    portraits = sum(1 for p in queue if p.aspect < 0.9)
    if landscapes / n > ORIENTATION_SKEW:
        return EdgeCase.ALL_LANDSCAPE
    if portraits / n > ORIENTATION_SKEW:
        return EdgeCase.ALL_PORTRAIT
    return EdgeCase.NORMAL


def handle_edge_case(edge_case: EdgeCase, queue: Sequence[Photo], grid_size: int) -> EdgeCaseHandling:
    n = len(queue)
    if edge_case is EdgeCase.NO_PHOTOS:
        raise NoPhotosError("no photos available for processing")
    if edge_case is EdgeCase.SINGLE_PHOTO:
        return EdgeCaseHandling(
            grid_size=1,
            special_handling="single_photo",
            message="Creating 1x1 layout for single photo",
            min_block_variety=1,
            max_single_cell_percent=1.0,
            min_large_blocks=0,
        )
    if edge_case is EdgeCase.INSUFFICIENT_PHOTOS:
        size = max(1, int(math.ceil(math.sqrt(n))))
        return EdgeCaseHandling(
            grid_size=size,
            special_handling="reduced_grid",
            message=f"Reducing grid size to {size}x{size} for {n} photos",
            min_block_variety=min(3, n),
            min_large_blocks=1 if n > 2 else 0,
        )
    # orientation skew is reported only; the shape palette stays the same
    if edge_case is EdgeCase.ALL_LANDSCAPE:
        return EdgeCaseHandling(grid_size, "landscape_bias", "Landscape-heavy collection")
    if edge_case is EdgeCase.ALL_PORTRAIT:
        return EdgeCaseHandling(grid_size, "portrait_bias", "Portrait-heavy collection")
    if edge_case is EdgeCase.NORMAL:
        return EdgeCaseHandling(grid_size, "normal")
    raise ValueError(f"unhandled edge case: {edge_case}")


@dataclass
class PageGrid:
    config: GridConfig
    blocks: List[Block]
    positions: List[PositionResult]
    validation: ValidationResult | None = None
    edge_case: EdgeCase | None = None
    special_handling: str = "normal"

    def position_for(self, block: Block) -> PositionResult | None:
        return next((p for p in self.positions if p.index == block.index), None)


@dataclass
class Placement:
    photo: Photo
    x: int
    y: int
    w: int
    h: int
    aspect_match: bool

    def as_dict(self) -> dict:
        return {
            "input": str(self.photo.path),
            "x": self.x,
            "y": self.y,
            "w": self.w,
            "h": self.h,
            "aspectMatch": self.aspect_match,
        }


@dataclass
class Page:
    number: int
    width: int
    height: int
    grid: PageGrid | None = None
    placements: List[Placement] = field(default_factory=list)
    elapsed: float = 0.0


def is_aspect_match(photo: Photo, pos: PositionResult, single_photo_page: bool) -> bool:
    if single_photo_page:
        return True
    cell_aspect = pos.render_width / pos.render_height
    return abs(photo.aspect - cell_aspect) / cell_aspect <= ASPECT_MATCH_TOLERANCE


def estimated_queue_bytes(queue: Sequence[Photo]) -> int:
    # decoded RGB size; an estimate, photos are only opened while rendering
    return sum(p.width * p.height * 3 for p in queue)


class PageAssembler:
    """Turn a photo queue into pages, one page at a time.

    The assembler owns ``queue`` for the whole run: photos leave it only when
    they are placed on a page.
    """

    def __init__(
        self,
        queue: List[Photo],
        settings: CollageSettings,
        rng: random.Random | None = None,
    ) -> None:
        self.queue = queue
        self.settings = settings
        self.rng = rng or random.Random(settings.seed)
        self.page_width, self.page_height = settings.page_size
        self.state = PageState.PLANNING
        self.total = len(queue)

    def _transition(self, state: PageState) -> None:
        logger.debug("state %s -> %s", self.state.value, state.value)
        self.state = state

    def grid_for(self, blocks: List[Block], rows: int, cols: int) -> PageGrid:
        s = self.settings
        config = create_grid_config(
            self.page_width, self.page_height, cols, rows, padding=s.padding, bleed=s.bleed_px
        )
        positions = calculate_positions(blocks, config)
        if logger.isEnabledFor(logging.DEBUG):
            for pos in positions:
                logger.debug(format_position(pos))
        return PageGrid(config=config, blocks=blocks, positions=positions)

    def emergency_grid(self) -> PageGrid:
        config = GridConfig(cols=1, rows=1, cell_width=self.page_width, cell_height=self.page_height)
        pos = PositionResult(
            x=0, y=0,
            width=self.page_width, height=self.page_height,
            render_width=self.page_width, render_height=self.page_height,
            index=0,
        )
        return PageGrid(
            config=config,
            blocks=[Block(0, 0, 1, 1, index=0)],
            positions=[pos],
            special_handling="emergency",
        )

    def plan(self) -> tuple[EdgeCase, EdgeCaseHandling]:
        grid_size = self.settings.grid
        edge_case = detect_edge_case(self.queue, grid_size * grid_size)
        handling = handle_edge_case(edge_case, self.queue, grid_size)
        if handling.message:
            logger.debug(handling.message)
        return edge_case, handling

    def lay_out(self, edge_case: EdgeCase, handling: EdgeCaseHandling) -> PageGrid:
        constraints = handling.apply(self.settings.constraints())
        attempts = self.settings.max_attempts

        if edge_case is EdgeCase.SINGLE_PHOTO:
            rows = cols = 1
            layout = search_layout(1, 1, constraints, attempts, self.rng)
        else:
            counted = generate_layout_for_count(
                len(self.queue), handling.grid_size, constraints, self.rng, max_attempts=attempts
            )
            rows, cols, layout = counted.rows, counted.cols, counted.layout

        if layout.fallback:
            logger.warning(
                "layout %dx%d did not validate (%s fallback, score %d): %s",
                cols, rows, layout.fallback, layout.validation.score,
                "; ".join(layout.validation.issues) or "no issues",
            )
        else:
            logger.debug("layout %dx%d validated (score %d)", cols, rows, layout.validation.score)

        grid = self.grid_for(layout.blocks, rows, cols)
        grid.validation = layout.validation
        grid.edge_case = edge_case
        grid.special_handling = handling.special_handling
        return grid

    def assign(self, page: Page) -> None:
        assert page.grid is not None
        blocks = sorted(page.grid.blocks, key=lambda b: b.index)
        to_fill = min(len(blocks), len(self.queue))
        context = PageContext(
            page_number=page.number,
            total_pages=max(1, math.ceil(self.total / (self.settings.grid ** 2))),
            photos_remaining=len(self.queue),
            average_hue=average_hue(self.queue[:to_fill]) if self.settings.harmony else None,
            harmony=self.settings.harmony,
        )

        for block in blocks[:to_fill]:
            try:
                pos = page.grid.position_for(block)
                if pos is None or not pos.usable:
                    logger.warning("page %d: block %d has no usable area, leaving it empty", page.number, block.index)
                    continue
                idx = select_photo(self.queue, block, context, self.rng)
                if idx < 0:
                    logger.warning("page %d: no suitable photo found for block %d", page.number, block.index)
                    continue
                photo = self.queue[idx]
                page.placements.append(
                    Placement(
                        photo=photo,
                        x=pos.x,
                        y=pos.y,
                        w=pos.render_width,
                        h=pos.render_height,
                        aspect_match=is_aspect_match(photo, pos, to_fill == 1),
                    )
                )
                del self.queue[idx]
            except Exception as e:
                logger.error("page %d: error processing block %d: %s", page.number, block.index, e)

    def next_page(self, number: int) -> Page:
        page = Page(number=number, width=self.page_width, height=self.page_height)

        self._transition(PageState.PLANNING)
        edge_case, handling = self.plan()

        self._transition(PageState.LAYING_OUT)
        try:
            page.grid = self.lay_out(edge_case, handling)
        except Exception as e:
            logger.error("grid generation failed: %s; using a single full-page block", e)
            page.grid = self.emergency_grid()

        self._transition(PageState.ASSIGNING)
        self.assign(page)
        if not page.placements and self.queue:
            logger.warning("page %d placed no photos; retrying with a single full-page block", number)
            page.grid = self.emergency_grid()
            self.assign(page)
            if not page.placements:
                raise RuntimeError(f"page {number} could not place any photo")
        return page

    def run(self, sink: Callable[[Page], None] | None = None) -> List[Page]:
        if not self.queue:
            raise NoPhotosError("no photos available for processing")

        pages: List[Page] = []
        while self.queue:
            start = time.perf_counter()
            if len(self.queue) > MEMORY_WARN_QUEUE and estimated_queue_bytes(self.queue) > MEMORY_WARN_BYTES:
                logger.warning(
                    "high memory use expected (%.1f MB of queued photos), consider processing in smaller batches",
                    estimated_queue_bytes(self.queue) / 1024 / 1024,
                )

            page = self.next_page(len(pages) + 1)
            page.elapsed = time.perf_counter() - start

            placed = len(page.placements)
            done = self.total - len(self.queue)
            per_photo = (page.elapsed * 1000 / placed) if placed else 0.0
            logger.info(
                "Page %d: %d photos (%.0fms/photo), %d%%",
                page.number, placed, per_photo, round(done / self.total * 100),
            )
            if page.elapsed > PAGE_TIME_TARGET_S:
                logger.warning("page %d took %.1fs (target: <%.0fs)", page.number, page.elapsed, PAGE_TIME_TARGET_S)

            self._transition(PageState.RENDERING)
            if sink is not None:
                sink(page)
            pages.append(page)

        self._transition(PageState.DONE)
        logger.info("All %d photos placed on %d page(s)", self.total, len(pages))
        return pages
