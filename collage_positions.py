from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Sequence

from collage_layout import Block

logger = logging.getLogger(__name__)


class GridConfigError(ValueError):
    """Grid configuration or block placement violates the grid contract."""


@dataclass(frozen=True)
class GridConfig:
    cols: int
    rows: int
    cell_width: int
    cell_height: int
    padding: float = 0
    bleed: float = 0


@dataclass(frozen=True)
class PositionResult:
    x: int
    y: int
    width: int
    height: int
    render_width: int
    render_height: int
    index: int

    @property
    def usable(self) -> bool:
        return self.render_width > 0 and self.render_height > 0


def _round(v: float) -> int:
    # half-up, so x.5 pixel offsets land the same way on every block
    return int(math.floor(v + 0.5))


def create_grid_config(
    page_width: int,
    page_height: int,
    cols: int,
    rows: int,
    padding: float = 0,
    bleed: float = 0,
) -> GridConfig:
    if cols <= 0 or rows <= 0:
        raise GridConfigError(f"grid must have positive cols/rows, got {cols}x{rows}")
    usable_w = page_width - bleed * 2
    usable_h = page_height - bleed * 2
    return GridConfig(
        cols=cols,
        rows=rows,
        cell_width=int(math.floor(usable_w / cols)),
        cell_height=int(math.floor(usable_h / rows)),
        padding=padding,
        bleed=bleed,
    )


def calculate_positions(blocks: Sequence[Block], config: GridConfig) -> List[PositionResult]:
    if config.cell_width <= 0 or config.cell_height <= 0 or config.cols <= 0 or config.rows <= 0:
        raise GridConfigError(
            f"grid dimensions must be positive: {config.cols}x{config.rows} cells "
            f"of {config.cell_width}x{config.cell_height}px"
        )

    cw, ch = config.cell_width, config.cell_height
    pad, bleed = config.padding, config.bleed

    out: List[PositionResult] = []
    for b in blocks:
        if b.x < 0 or b.y < 0 or b.x + b.w > config.cols or b.y + b.h > config.rows:
            raise GridConfigError(
                f"layout block {b.index} is outside grid bounds: ({b.x},{b.y}) "
                f"{b.w}x{b.h} in {config.cols}x{config.rows} grid"
            )

        width = _round(cw * b.w)
        height = _round(ch * b.h)
        pos = PositionResult(
            x=_round(b.x * cw + pad + bleed),
            y=_round(b.y * ch + pad + bleed),
            width=width,
            height=height,
            render_width=_round(width - pad * 2),
            render_height=_round(height - pad * 2),
            index=b.index,
        )
        if not pos.usable:
            logger.warning(
                "block %d has invalid render dimensions %dx%d (cell %dx%d, span %dx%d, padding %s)",
                b.index, pos.render_width, pos.render_height, cw, ch, b.w, b.h, pad,
            )
        out.append(pos)

    return out


def format_position(p: PositionResult) -> str:
    return (
        f"Block[{p.index}]: pos({p.x},{p.y}) size({p.width}x{p.height}) "
        f"render({p.render_width}x{p.render_height})"
    )
