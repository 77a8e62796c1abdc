import pytest

from catalog_ingest.application.usecases.reconcile import (
    find_unpublished_objects,
    key_of_url,
    orphan_document,
    reconcile,
)
from catalog_ingest.application.usecases import reconcile as reconcile_module
from conftest import FakeIdentity

KEY_A = "wallpapers/aaa-1700000000000-sunset.jpg"
KEY_B = "wallpapers/bbb-1700000000000-forest.jpg"


@pytest.mark.parametrize(
    "url",
    [
        f"https://cdn.example.com/{KEY_A}",
        f"http://localhost:9000/wallpapers/{KEY_A}",
        f"https://minio.local/media/{KEY_A}?X-Amz-Signature=abc&X-Amz-Expires=60",
    ],
)
def test_key_of_url(url):
    assert key_of_url(url, "wallpapers") == KEY_A


def test_key_of_url_unknown_prefix():
    assert key_of_url("https://cdn.example.com/other/x.jpg", "wallpapers") is None
    assert key_of_url("", "wallpapers") is None


@pytest.fixture
def seeded(object_store, document_store):
    object_store.objects[KEY_A] = b"a"
    object_store.objects[KEY_B] = b"bb"
    object_store.objects["other/ignored.jpg"] = b"c"
    document_store.set("wallpapers", "doc1", {"imageUrl": f"https://cdn.example.com/{KEY_A}"})
    document_store.set("users", "admin-1", {"isAdmin": True})
    return object_store, document_store


def test_find_unpublished_objects(seeded):
    object_store, document_store = seeded
    orphans = find_unpublished_objects(object_store, document_store)
    assert [(o.key, o.name, o.size_bytes) for o in orphans] == [(KEY_B, "forest", 2)]
    assert orphans[0].url == f"https://cdn.example.com/{KEY_B}"


def test_orphan_document_defaults(seeded):
    object_store, document_store = seeded
    orphan = find_unpublished_objects(object_store, document_store)[0]
    doc = orphan_document(orphan, "d1", now="2026-01-01T00:00:00+00:00")
    assert doc["title"] == "Wallpaper forest"
    assert doc["description"] == "Beautiful wallpaper forest"
    assert doc["category"] == "other"
    assert doc["tags"] == ["wallpaper", "download"]
    assert doc["price"] == 0
    assert doc["imageUrl"] == orphan.url


def test_reconcile_report_only(seeded):
    object_store, document_store = seeded
    report = reconcile(
        cfg={}, token="t", object_store=object_store, document_store=document_store,
        identity=FakeIdentity({"t": "admin-1"}),
    )
    assert (report.stored, report.published, len(report.orphans)) == (2, 1, 1)
    assert report.publish is None
    assert len(document_store.docs("wallpapers")) == 1


def test_reconcile_publish_selected(seeded):
    object_store, document_store = seeded
    object_store.objects["wallpapers/ccc-1700000000000-night.png"] = b"n"

    report = reconcile(
        cfg={"publish": {"delay_sec": 0}}, token="t", publish=True, select=["night"],
        object_store=object_store, document_store=document_store, identity=FakeIdentity({"t": "admin-1"}),
    )

    assert report.publish.published == 1
    titles = {d.get("title") for d in document_store.docs("wallpapers").values()}
    assert "Wallpaper night" in titles
    assert "Wallpaper forest" not in titles
    assert [o.name for o in find_unpublished_objects(object_store, document_store)] == ["forest"]


def test_reconcile_closes_store_it_built(seeded, monkeypatch):
    object_store, document_store = seeded
    monkeypatch.setattr(reconcile_module, "build_document_store", lambda cfg: document_store)

    reconcile(cfg={}, token="t", object_store=object_store, identity=FakeIdentity({"t": "admin-1"}))
    assert document_store.closed
