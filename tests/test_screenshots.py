from __future__ import annotations

from datetime import datetime, timezone

from shortest_driver.browser.screenshots import ScreenshotStore, screenshot_filename

NOW = datetime(2024, 5, 17, 9, 30, 15, 123456, tzinfo=timezone.utc)


def test_filename_uses_filesystem_safe_timestamp() -> None:
    assert screenshot_filename(NOW) == "screenshot-2024-05-17T09-30-15-123456Z.png"
    assert screenshot_filename(NOW, 2) == "screenshot-2024-05-17T09-30-15-123456Z-2.png"


def test_store_creates_directory(tmp_path) -> None:
    store = ScreenshotStore(tmp_path / "nested" / "shots")

    path = store.save(b"png", now=NOW)

    assert path.parent == tmp_path / "nested" / "shots"
    assert path.read_bytes() == b"png"


def test_store_never_overwrites(tmp_path) -> None:
    store = ScreenshotStore(tmp_path)

    first = store.save(b"first", now=NOW)
    second = store.save(b"second", now=NOW)

    assert first != second
    assert second.name.endswith("-1.png")
    assert first.read_bytes() == b"first"
    assert second.read_bytes() == b"second"
