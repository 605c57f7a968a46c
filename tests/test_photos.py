import os
from pathlib import Path

import pytest
from PIL import Image

from collage_photos import (
    average_hue,
    collect_photos,
    dominant_hue,
    iter_image_files,
    parse_importance,
    scan_photos,
    sort_by_date,
)


@pytest.mark.parametrize(
    "name,expected",
    [("beach.jpg", 0), ("beach_imp3.jpg", 3), ("IMG_IMP4.JPG", 4), ("imp9_party.png", 5), ("impx.jpg", 0)],
)
def test_parse_importance(name, expected):
    assert parse_importance(name) == expected


class TestDominantHue:

    @pytest.mark.parametrize(
        "color,hue",
        [((220, 20, 20), 0), ((20, 220, 20), 120), ((20, 20, 220), 240)],
    )
    def test_solid_colours(self, color, hue):
        assert dominant_hue(Image.new("RGB", (80, 60), color)) == pytest.approx(hue, abs=3)

    def test_grey_has_no_hue(self):
        assert dominant_hue(Image.new("RGB", (80, 60), (128, 128, 128))) is None

    def test_saturated_subject_beats_grey_background(self):
        img = Image.new("RGB", (100, 100), (120, 120, 120))
        img.paste(Image.new("RGB", (30, 30), (20, 20, 220)), (35, 35))
        assert dominant_hue(img) == pytest.approx(240, abs=3)


def test_average_hue(make_photo):
    assert average_hue([]) is None
    assert average_hue([make_photo(hue=None)]) is None
    assert average_hue([make_photo(hue=10), make_photo(hue=30), make_photo(hue=None)]) == 20


class TestScan:

    def test_iter_image_files_filters_extensions(self, photo_dir):
        (photo_dir / "notes.txt").write_text("x")
        files = iter_image_files(photo_dir, recursive=False)
        assert len(files) == 5
        assert all(p.suffix in {".jpg", ".png"} for p in files)

    def test_recursive_scan(self, photo_dir):
        sub = photo_dir / "more"
        sub.mkdir()
        Image.new("RGB", (50, 40)).save(sub / "f.jpg")
        assert len(iter_image_files(photo_dir, recursive=False)) == 5
        assert len(iter_image_files(photo_dir, recursive=True)) == 6

    def test_missing_folder(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            iter_image_files(tmp_path / "nope", recursive=False)

    def test_sort_by_date(self, photo_dir):
        files = sorted(iter_image_files(photo_dir, recursive=False))
        for i, p in enumerate(files):
            os.utime(p, (1_000_000 + i, 1_000_000 + (len(files) - i)))
        assert sort_by_date(files, "asc") == list(reversed(files))
        assert sort_by_date(files, "desc") == files
        with pytest.raises(ValueError):
            sort_by_date(files, "sideways")

    def test_probe_reads_metadata(self, photo_dir):
        photos, skipped = collect_photos([photo_dir / "a_imp3.jpg", photo_dir / "e.jpg"])
        assert skipped == []
        a, e = photos
        assert (a.width, a.height, a.importance, a.orientation) == (240, 160, 3, "landscape")
        assert (e.width, e.height, e.importance, e.orientation) == (150, 300, 0, "portrait")
        assert a.hue is None

    def test_unreadable_files_are_skipped(self, photo_dir):
        broken = photo_dir / "broken.jpg"
        broken.write_bytes(b"not an image")
        photos, skipped = scan_photos(photo_dir)
        assert len(photos) == 5
        assert [p for p, _ in skipped] == [broken]

    def test_harmony_orders_by_hue(self, photo_dir):
        photos, _ = scan_photos(photo_dir, harmony=True)
        hues = [p.hue for p in photos]
        assert all(h is not None for h in hues)
        assert hues == sorted(hues)

    def test_threaded_probe_keeps_order(self, tmp_path):
        paths = []
        for i in range(12):
            p = tmp_path / f"img_{i:02d}.png"
            Image.new("RGB", (100 + i, 80)).save(p)
            paths.append(p)
        photos, _ = collect_photos(paths, workers=4)
        assert [p.path for p in photos] == paths
        assert [p.width for p in photos] == [100 + i for i in range(12)]
