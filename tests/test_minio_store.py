import threading
from types import SimpleNamespace

import pytest

from catalog_ingest.domain.errors import UploadCanceledError
from catalog_ingest.infra.storage.minio import MinIOConfig, MinIOObjectStore


class FakeMinio:
    def __init__(self, part_size=10):
        self.part_size = part_size
        self.buckets = set()
        self.objects = {}
        self.removed = []

    def bucket_exists(self, bucket_name):
        return bucket_name in self.buckets

    def make_bucket(self, bucket_name):
        self.buckets.add(bucket_name)

    def put_object(self, bucket_name, object_name, data, length, content_type, progress=None):
        if progress is not None:
            progress.set_meta(object_name=object_name, total_length=length)
        buf = b""
        while True:
            part = data.read(self.part_size)
            if not part:
                break
            buf += part
            if progress is not None:
                progress.update(len(part))
        self.objects[(bucket_name, object_name)] = (buf, content_type)
        return SimpleNamespace(etag="etag-1")

    def presigned_get_object(self, bucket_name, object_name, expires):
        return f"https://minio.local/{bucket_name}/{object_name}?X-Amz-Expires={int(expires.total_seconds())}"

    def list_objects(self, bucket_name, prefix, recursive):
        out = [
            SimpleNamespace(object_name=name, size=len(body), etag=None, is_dir=False)
            for (bucket, name), (body, _) in sorted(self.objects.items())
            if bucket == bucket_name and name.startswith(prefix)
        ]
        out.append(SimpleNamespace(object_name=prefix + "sub/", size=0, is_dir=True))
        return out

    def remove_object(self, bucket_name, object_name):
        self.removed.append(object_name)
        self.objects.pop((bucket_name, object_name), None)


def _store(client, **over):
    cfg = MinIOConfig(endpoint="minio:9000", access_key="k", secret_key="s", bucket="media", **over)
    return MinIOObjectStore(cfg, client=client)


def test_put_creates_bucket_and_reports_progress():
    client = FakeMinio()
    store = _store(client)
    seen = []

    obj = store.put("wallpapers/a.jpg", b"x" * 25, content_type="image/jpeg", on_progress=lambda s, t: seen.append((s, t)))

    assert "media" in client.buckets
    assert client.objects[("media", "wallpapers/a.jpg")] == (b"x" * 25, "image/jpeg")
    assert obj.etag == "etag-1" and obj.size_bytes == 25
    assert seen == [(10, 25), (20, 25), (25, 25), (25, 25)]


def test_put_cancel_midway():
    client = FakeMinio()
    store = _store(client)
    cancel = threading.Event()

    with pytest.raises(UploadCanceledError):
        store.put("wallpapers/a.jpg", b"x" * 50, content_type="image/jpeg",
                  on_progress=lambda s, t: cancel.set(), cancel_event=cancel)
    assert client.objects == {}


def test_put_already_canceled_does_not_touch_client():
    client = FakeMinio()
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(UploadCanceledError):
        _store(client).put("k", b"x", content_type="image/png", cancel_event=cancel)
    assert client.buckets == set()


def test_public_url_prefers_public_domain():
    assert _store(FakeMinio(), public_base_url="https://cdn.example.com/").public_url("wallpapers/a.jpg") == (
        "https://cdn.example.com/wallpapers/a.jpg"
    )
    presigned = _store(FakeMinio(), presign_expiry_hours=1).public_url("wallpapers/a.jpg")
    assert presigned == "https://minio.local/media/wallpapers/a.jpg?X-Amz-Expires=3600"


def test_list_skips_dirs_and_delete():
    client = FakeMinio()
    store = _store(client)
    store.put("wallpapers/a.jpg", b"aa", content_type="image/jpeg")
    store.put("other/b.jpg", b"b", content_type="image/jpeg")

    listed = store.list("wallpapers/")
    assert [(o.key, o.size_bytes) for o in listed] == [("wallpapers/a.jpg", 2)]

    store.delete("wallpapers/a.jpg")
    assert client.removed == ["wallpapers/a.jpg"]


def test_unknown_provider():
    with pytest.raises(ValueError):
        _store(FakeMinio(), provider="gcs")
