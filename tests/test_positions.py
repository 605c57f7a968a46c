import logging

import pytest

from collage_layout import Block
from collage_positions import (
    GridConfig,
    GridConfigError,
    calculate_positions,
    create_grid_config,
    format_position,
)


class TestCreateGridConfig:

    def test_cells_are_truncated(self):
        config = create_grid_config(1000, 700, 3, 3)
        assert config.cell_width == 333
        assert config.cell_height == 233

    def test_bleed_is_removed_from_usable_area(self):
        config = create_grid_config(1236, 1236, 4, 4, padding=5, bleed=18)
        assert config.cell_width == 300
        assert config.bleed == 18 and config.padding == 5

    def test_rejects_empty_grid(self):
        with pytest.raises(GridConfigError):
            create_grid_config(1000, 1000, 0, 3)


class TestCalculatePositions:

    def test_two_by_two_block_on_1200px_page(self):
        config = create_grid_config(1200, 1200, 4, 4, 10, 0)
        (pos,) = calculate_positions([Block(0, 0, 2, 2, 0)], config)
        assert (pos.width, pos.height) == (600, 600)
        assert (pos.render_width, pos.render_height) == (580, 580)
        assert (pos.x, pos.y) == (10, 10)
        assert pos.index == 0

    def test_offsets_include_bleed(self):
        config = create_grid_config(1236, 1236, 4, 4, padding=5, bleed=18)
        (pos,) = calculate_positions([Block(1, 2, 3, 1, 7)], config)
        assert (pos.x, pos.y) == (300 + 5 + 18, 600 + 5 + 18)
        assert (pos.width, pos.height) == (900, 300)
        assert (pos.render_width, pos.render_height) == (890, 290)
        assert pos.index == 7

    def test_one_position_per_block(self):
        config = create_grid_config(900, 900, 3, 3)
        blocks = [Block(0, 0, 2, 2, 0), Block(2, 0, 1, 2, 1), Block(0, 2, 3, 1, 2)]
        positions = calculate_positions(blocks, config)
        assert [p.index for p in positions] == [0, 1, 2]

    def test_out_of_bounds_block_raises(self):
        config = create_grid_config(900, 900, 3, 3)
        with pytest.raises(GridConfigError, match="outside grid bounds"):
            calculate_positions([Block(2, 0, 2, 1, 0)], config)

    def test_non_positive_cells_raise(self):
        config = GridConfig(cols=3, rows=3, cell_width=0, cell_height=100)
        with pytest.raises(GridConfigError):
            calculate_positions([Block(0, 0, 1, 1, 0)], config)

    def test_oversized_padding_only_warns(self, caplog):
        config = create_grid_config(100, 100, 4, 4, padding=20)
        with caplog.at_level(logging.WARNING, logger="collage_positions"):
            (pos,) = calculate_positions([Block(0, 0, 1, 1, 0)], config)
        assert pos.render_width < 0
        assert not pos.usable
        assert "invalid render dimensions" in caplog.text


def test_format_position():
    config = create_grid_config(1200, 1200, 4, 4, 10, 0)
    (pos,) = calculate_positions([Block(0, 0, 2, 2, 3)], config)
    assert format_position(pos) == "Block[3]: pos(10,10) size(600x600) render(580x580)"
