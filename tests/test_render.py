import json

import pytest
from PIL import Image

from collage_render import (
    PlacedImg,
    RenderOptions,
    fit_contain,
    fit_cover,
    page_extent,
    render_from_json,
    render_page,
    save_booklet,
)


def close(actual, expected, tol=3):
    return all(abs(a - e) <= tol for a, e in zip(actual, expected))


@pytest.fixture
def wide_image(tmp_path):
    path = tmp_path / "wide.png"
    Image.new("RGB", (400, 100), (250, 0, 0)).save(path)
    return path


class TestFit:

    def test_cover_fills_whole_cell(self):
        tile = fit_cover(Image.new("RGB", (400, 100), (10, 200, 10)), 100, 100)
        assert tile.size == (100, 100)
        assert close(tile.getpixel((0, 0)), (10, 200, 10))

    def test_contain_letterboxes_on_background(self):
        tile = fit_contain(Image.new("RGB", (400, 100), (10, 200, 10)), 100, 100, (1, 2, 3))
        assert tile.size == (100, 100)
        assert tile.getpixel((50, 0)) == (1, 2, 3)
        assert close(tile.getpixel((50, 50)), (10, 200, 10))


class TestRenderPage:

    def test_places_tiles_on_background(self, wide_image):
        options = RenderOptions(width=300, height=200, background=(255, 255, 255))
        placed = [PlacedImg(wide_image, 10, 10, 100, 100, aspect_match=False)]
        img = render_page(placed, options)
        assert img.size == (300, 200)
        assert img.getpixel((5, 5)) == (255, 255, 255)
        assert close(img.getpixel((50, 15)), (250, 0, 0))

    def test_contain_keeps_background_above_photo(self, wide_image):
        options = RenderOptions(width=300, height=200, background=(0, 0, 255))
        img = render_page([PlacedImg(wide_image, 0, 0, 100, 100, aspect_match=True)], options)
        assert img.getpixel((50, 5)) == (0, 0, 255)
        assert close(img.getpixel((50, 50)), (250, 0, 0))

    def test_border_surrounds_photo(self, wide_image):
        options = RenderOptions(width=300, height=200, border_width=4, border_color=(0, 0, 0))
        img = render_page([PlacedImg(wide_image, 20, 20, 100, 100)], options)
        assert img.getpixel((17, 50)) == (0, 0, 0)
        assert img.getpixel((10, 50)) == (255, 255, 255)

    def test_missing_photo_is_skipped(self, tmp_path, wide_image):
        options = RenderOptions(width=300, height=200)
        placed = [PlacedImg(tmp_path / "gone.jpg", 0, 0, 100, 100), PlacedImg(wide_image, 150, 0, 100, 100)]
        img = render_page(placed, options)
        assert img.getpixel((50, 50)) == (255, 255, 255)
        assert close(img.getpixel((200, 50)), (250, 0, 0))

    def test_padding_too_large_is_skipped(self, wide_image):
        options = RenderOptions(width=100, height=100, padding=60)
        img = render_page([PlacedImg(wide_image, 0, 0, 100, 100)], options)
        assert img.getpixel((50, 50)) == (255, 255, 255)


def test_page_extent():
    placed = [PlacedImg("a", 0, 0, 100, 50), PlacedImg("b", 90, 40, 30, 70)]
    assert page_extent(placed) == (120, 110)


def test_render_from_json(tmp_path, wide_image):
    layout = [
        {
            "output": "page-1.jpg",
            "files": [
                {"input": str(wide_image), "x": 0, "y": 0, "w": 120, "h": 80, "aspectMatch": False},
                {"input": str(wide_image), "x": 120, "y": 0, "w": 80, "h": 80, "aspectMatch": True},
            ],
        },
        {"output": "page-2.jpg", "files": []},
    ]
    json_path = tmp_path / "layout.json"
    json_path.write_text(json.dumps(layout))

    written = render_from_json(json_path, tmp_path / "out", output_format="png")
    assert [p.name for p in written] == ["page-1.png"]
    with Image.open(written[0]) as img:
        assert img.size == (200, 80)


def test_render_from_json_rejects_empty(tmp_path):
    json_path = tmp_path / "layout.json"
    json_path.write_text("[]")
    with pytest.raises(ValueError):
        render_from_json(json_path, tmp_path / "out")


def test_save_booklet(tmp_path):
    pages = []
    for i in range(2):
        p = tmp_path / f"page-{i + 1}.jpg"
        Image.new("RGB", (600, 300), (i * 100, 0, 0)).save(p)
        pages.append(p)
    pdf = save_booklet(pages, tmp_path / "booklet.pdf", dpi=300)
    data = pdf.read_bytes()
    assert data.startswith(b"%PDF")
    # 600px at 300dpi is 2in, i.e. 144pt
    assert b"144" in data
