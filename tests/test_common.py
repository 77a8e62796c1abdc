import pytest

from catalog_ingest.common.batch import chunk_count, iter_chunks
from catalog_ingest.common.config import get_bool, get_str, get_value, load_config
from catalog_ingest.common.ids import (
    build_storage_key,
    display_name_of_key,
    join_url,
    next_free_slug,
    normalize_category,
    slugify,
)
from catalog_ingest.common.runtime import request_with_retry


def test_load_config_expands_env(tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_ENDPOINT", "minio:9000")
    monkeypatch.delenv("ADMIN_TOKEN", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        "storage:\n  endpoint: ${STORAGE_ENDPOINT}\n  bucket: media\n"
        "auth:\n  token: ${ADMIN_TOKEN}\n"
        "upload:\n  retry_failed: 'yes'\n  concurrency: 2\n",
        encoding="utf-8",
    )
    cfg = load_config(path)

    assert get_str(cfg, "storage.endpoint") == "minio:9000"
    assert get_str(cfg, "auth.token") == ""
    assert get_str(cfg, "auth.token", "fallback") == "fallback"
    assert get_bool(cfg, "upload.retry_failed") is True
    assert get_value(cfg, "upload.concurrency") == 2
    assert get_value(cfg, "upload.missing.deep", 7) == 7
    assert get_value(cfg, "storage.bucket.name", "x") == "x"


def test_load_config_missing_and_empty(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert load_config(empty) == {}


def test_storage_key_format():
    assert build_storage_key("wallpapers", "abc", 1700000000000, "dir/sunset.jpg") == (
        "wallpapers/abc-1700000000000-sunset.jpg"
    )
    assert build_storage_key("", "abc", 1, "a.png") == "abc-1-a.png"


def test_display_name_of_key():
    assert display_name_of_key("wallpapers/ab12-1700000000000-sunset.jpg") == "sunset"
    assert display_name_of_key("wallpapers/plain.png") == "plain"


def test_join_url():
    assert join_url("https://cdn.example.com/", "/wallpapers/a.jpg") == "https://cdn.example.com/wallpapers/a.jpg"


def test_slug_helpers():
    assert slugify("Sunset Mountain!") == "sunset-mountain"
    assert next_free_slug("sunset", {"sunset-1", "sunset-2"}) == "sunset-3"
    assert normalize_category("  Nature ") == "nature"
    assert normalize_category(None) == ""


def test_iter_chunks():
    assert list(iter_chunks([1, 2, 3, 4, 5], 2)) == [(0, [1, 2]), (1, [3, 4]), (2, [5])]
    assert chunk_count(5, 2) == 3
    with pytest.raises(ValueError):
        list(iter_chunks([1], 0))


def test_request_with_retry(monkeypatch):
    from catalog_ingest.common import runtime

    monkeypatch.setattr(runtime.time, "sleep", lambda s: None)
    calls = []

    def _flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("down")
        return "ok"

    assert request_with_retry(_flaky, retries=3) == "ok"

    with pytest.raises(RuntimeError):
        request_with_retry(lambda: (_ for _ in ()).throw(ConnectionError("down")), retries=2)

    with pytest.raises(KeyError):
        request_with_retry(lambda: {}["x"], is_retriable=lambda e: False)
