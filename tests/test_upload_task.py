import pytest

from catalog_ingest.application.services.upload_task import UploadTaskManager, percent_of
from catalog_ingest.common.ids import new_item_id
from catalog_ingest.domain.errors import UploadCanceledError
from catalog_ingest.domain.models import ItemMetadata, QueuedItem
from conftest import make_file


def _item(name="sunset.jpg", size=400):
    return QueuedItem(id=new_item_id(), source=make_file(name, size), metadata=ItemMetadata(title="t"))


@pytest.fixture
def tasks(object_store):
    return UploadTaskManager(object_store, "wallpapers", clock_ms=lambda: 1700000000000)


def test_percent_of():
    assert percent_of(0, 200) == 0
    assert percent_of(199, 200) == 99
    assert percent_of(200, 200) == 100
    assert percent_of(0, 0) == 100


def test_key_contains_item_id_and_timestamp(tasks):
    item = _item()
    assert tasks.key_for(item) == f"wallpapers/{item.id}-1700000000000-sunset.jpg"


def test_upload_reports_progress_and_returns_public_url(tasks, object_store):
    item = _item(size=400)
    seen = []
    url = tasks.upload_item(item, on_progress=seen.append)

    key = f"wallpapers/{item.id}-1700000000000-sunset.jpg"
    assert url == f"https://cdn.example.com/{key}"
    assert object_store.objects[key] == item.source.data
    assert object_store.content_types[key] == "image/jpeg"
    assert seen == [25, 50, 75, 100]
    assert tasks.active_ids() == []


def test_cancel_raises_with_item_id_and_clears_handle(tasks, object_store):
    item = _item()

    def _cancel_midway(key, sent):
        if sent > 0:
            assert tasks.active_ids() == [item.id]
            assert tasks.cancel(item.id)

    object_store.on_chunk = _cancel_midway
    with pytest.raises(UploadCanceledError) as exc:
        tasks.upload_item(item)

    assert exc.value.item_id == item.id
    assert str(exc.value) == "Upload canceled"
    assert tasks.active_ids() == []
    assert object_store.objects == {}


def test_cancel_unknown_item_is_false(tasks):
    assert tasks.cancel("nope") is False


def test_cancel_all_returns_active_ids(tasks, object_store):
    item = _item()
    canceled = []
    object_store.on_chunk = lambda key, sent: canceled.extend(tasks.cancel_all()) if sent and not canceled else None

    with pytest.raises(UploadCanceledError):
        tasks.upload_item(item)
    assert canceled == [item.id]


def test_store_errors_propagate(tasks, object_store):
    object_store.fail_names.add("broken.jpg")
    with pytest.raises(ConnectionError):
        tasks.upload_item(_item("broken.jpg"))
    assert tasks.active_ids() == []


def test_cancel_before_transfer_starts_skips_put(tasks, object_store):
    item = _item()
    tasks.open_handle(item.id)
    assert tasks.cancel(item.id)

    with pytest.raises(UploadCanceledError):
        tasks.upload_item(item)
    assert object_store.put_calls == []
    assert tasks.active_ids() == []


def test_open_handle_is_reused_by_upload(tasks, object_store):
    item = _item()
    handle = tasks.open_handle(item.id)
    assert tasks.open_handle(item.id) is handle

    object_store.on_chunk = lambda key, sent: handle.set() if sent else None
    with pytest.raises(UploadCanceledError):
        tasks.upload_item(item)


def test_release_drops_handle(tasks):
    tasks.open_handle("a")
    tasks.release("a")
    tasks.release("a")
    assert tasks.active_ids() == []
