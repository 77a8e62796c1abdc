import pytest

from catalog_ingest.application.services.upload_queue import CANCELED_MESSAGE, optimal_concurrency
from catalog_ingest.application.services.upload_task import UploadTaskManager
from catalog_ingest.domain.models import MAX_FILE_BYTES, SourceFile
from conftest import make_file

MiB = 1024 * 1024

CSV_TEXT = """filename,title,description,category,price,tags
sunset.jpg,Sunset Mountain,Beautiful sunset,Nature,0,"sunset,mountains"
forest.jpg,Dark Forest,Mysterious forest,Cars,-5,"forest"
"""


def _files(*names):
    return [make_file(n, 400) for n in names]


def _events(queue):
    seen = []
    queue.subscribe(seen.append)
    return seen


def test_intake_adds_valid_files_with_default_titles(make_queue):
    queue = make_queue()
    result = queue.add_files(_files("sunset.jpg", "forest.river.png"))

    assert not result.rejected
    assert len(result.added) == 2
    titles = [i.metadata.title for i in queue.items()]
    assert titles == ["sunset", "forest"]
    assert all(i.status == "idle" and i.progress == 0 for i in queue.items())


def test_intake_warning_mode_keeps_valid_files(make_queue):
    queue = make_queue()
    big = SourceFile(name="big.jpg", data=b"", mime_type="image/jpeg", size=MAX_FILE_BYTES + 1)
    result = queue.add_files([big, make_file("ok.png")])
    assert len(result.added) == 1
    assert result.errors == ["File big.jpg exceeds 10MB limit"]


def test_intake_strict_mode_rejects_when_nothing_valid(make_queue):
    queue = make_queue(validation_mode="strict")
    result = queue.add_files([make_file("anim.gif", 10, "image/gif")])
    assert result.rejected
    assert result.added == []
    assert len(queue) == 0


def test_five_files_upload_then_publish(make_queue, object_store, document_store, sleeps):
    queue = make_queue()
    queue.add_files(_files("a.jpg", "b.jpg", "c.jpg", "d.jpg", "e.jpg"))
    events = _events(queue)

    result = queue.run()

    assert (result.total, result.succeeded, result.failed, result.canceled) == (5, 5, 0, False)
    assert all(i.status == "success" and i.progress == 100 for i in queue.items())
    assert len(object_store.objects) == 5
    assert [u.item_id for u in queue.unpublished()] == [i.id for i in queue.items()]
    assert sleeps == [0.5] * 5
    queue_progress = [e.progress for e in events if e.kind == "queue_progress"]
    assert queue_progress == [20, 40, 60, 80, 100]

    published = queue.publish()

    assert published.ok
    assert published.published == 5
    assert queue.unpublished() == []
    docs = document_store.docs("wallpapers")
    assert len(docs) == 5
    urls = {d["imageUrl"] for d in docs.values()}
    assert urls == {i.object_url for i in queue.items()}
    assert {d["title"] for d in docs.values()} == {"a", "b", "c", "d", "e"}
    assert [e.progress for e in events if e.kind == "publish_progress"] == [100]


def test_items_are_uploaded_one_at_a_time_in_queue_order(make_queue, object_store):
    queue = make_queue()
    queue.add_files(_files("a.jpg", "b.jpg", "c.jpg"))
    uploading = []

    def _check(key, sent):
        active = [i.source_name for i in queue.items() if i.status == "uploading"]
        uploading.append(tuple(active))

    object_store.on_chunk = _check
    queue.run()

    assert set(uploading) == {("a.jpg",), ("b.jpg",), ("c.jpg",)}
    assert [k.rsplit("-", 1)[-1] for k in object_store.put_calls] == ["a.jpg", "b.jpg", "c.jpg"]


def test_failure_does_not_stop_queue_and_retry_recovers(make_queue, object_store, sleeps):
    queue = make_queue()
    queue.add_files(_files("a.jpg", "b.jpg", "c.jpg"))
    object_store.fail_times["b.jpg"] = 1

    result = queue.run()

    assert (result.succeeded, result.failed) == (2, 1)
    assert sleeps == [0.5, 0.3, 0.5]
    failed = [i for i in queue.items() if i.status == "error"]
    assert len(failed) == 1
    assert failed[0].error == "temporary error for b.jpg"
    assert not failed[0].is_canceled

    assert queue.retry_upload(failed[0].id)
    item = queue.get(failed[0].id)
    assert item.status == "success"
    assert item.error is None
    assert not item.is_retrying
    assert len(queue.unpublished()) == 3


def test_retry_only_applies_to_errored_items(make_queue):
    queue = make_queue()
    queue.add_files(_files("a.jpg"))
    item_id = queue.items()[0].id
    assert not queue.retry_upload(item_id)
    assert not queue.retry_upload("missing")


def test_cancel_single_upload_lets_others_continue(make_queue, object_store):
    queue = make_queue()
    queue.add_files(_files("a.jpg", "b.jpg", "c.jpg"))
    target = queue.items()[1]

    def _cancel_b(key, sent):
        if key.endswith("b.jpg") and sent > 0:
            assert queue.cancel_upload(target.id)

    object_store.on_chunk = _cancel_b
    result = queue.run()

    assert (result.succeeded, result.failed, result.canceled) == (2, 1, False)
    b = queue.get(target.id)
    assert b.status == "error"
    assert b.error == CANCELED_MESSAGE
    assert b.is_canceled
    assert not any(k.endswith("b.jpg") for k in object_store.objects)
    assert [u.item_id for u in queue.unpublished()] == [queue.items()[0].id, queue.items()[2].id]


def test_cancel_all_stops_queue(make_queue, object_store):
    queue = make_queue()
    queue.add_files(_files("a.jpg", "b.jpg", "c.jpg", "d.jpg", "e.jpg"))
    first_id = queue.items()[0].id

    def _cancel_on_b(key, sent):
        if key.endswith("b.jpg") and sent > 0:
            queue.cancel_all()

    object_store.on_chunk = _cancel_on_b
    result = queue.run()

    assert result.canceled
    statuses = [i.status for i in queue.items()]
    assert statuses == ["success", "error", "idle", "idle", "idle"]
    assert queue.items()[1].is_canceled
    assert [u.item_id for u in queue.unpublished()] == [first_id]
    assert queue.summary() == {"idle": 3, "uploading": 0, "success": 1, "error": 1, "unpublished": 1}


def test_canceled_items_are_skipped_on_next_run(make_queue, object_store):
    queue = make_queue()
    queue.add_files(_files("a.jpg", "b.jpg"))
    canceled_id = queue.items()[0].id
    object_store.on_chunk = lambda key, sent: queue.cancel_upload(canceled_id) if sent and key.endswith("a.jpg") else None
    queue.run()
    object_store.on_chunk = None

    assert queue.run().total == 0
    assert queue.retry_upload(canceled_id)
    assert queue.get(canceled_id).status == "success"


def test_pooled_run_uploads_everything(make_queue, object_store):
    queue = make_queue(concurrency=3)
    queue.add_files(_files("a.jpg", "b.jpg", "c.jpg", "d.jpg"))
    result = queue.run()
    assert result.succeeded == 4
    assert len(object_store.objects) == 4


def test_optimal_concurrency():
    assert optimal_concurrency([]) == 3
    assert optimal_concurrency([6 * MiB, 8 * MiB]) == 2
    assert optimal_concurrency([3 * MiB]) == 3
    assert optimal_concurrency([100, 200]) == 4


def test_strict_csv_import_rejects_bad_price(make_queue):
    queue = make_queue(validation_mode="strict")
    queue.add_files(_files("sunset.jpg", "forest.jpg"))
    result = queue.import_csv(CSV_TEXT)

    assert not result.rejected
    assert [r["filename"] for r in result.rows] == ["sunset.jpg"]
    assert result.errors == ["Row 2: Price must be a non-negative number"]


def test_warning_csv_import_keeps_all_rows(make_queue, categories):
    queue = make_queue()
    queue.add_files(_files("sunset.jpg", "forest.jpg"))
    result = queue.import_csv(CSV_TEXT)

    assert not result.rejected
    assert result.total_rows == 2
    assert len(result.rows) == 2
    assert result.new_categories == ["Cars"]
    assert categories.contains("cars")


def test_csv_missing_columns(make_queue):
    queue = make_queue(validation_mode="strict")
    result = queue.import_csv("name,title\nsunset.jpg,Sunset\n")
    assert result.rejected
    assert result.errors[0] == "Missing required columns: filename"

    lenient = make_queue().import_csv("name,title\nsunset.jpg,Sunset\n")
    assert not lenient.rejected
    assert lenient.errors[0] == "Missing required columns: filename"


def test_apply_csv_exact_match(make_queue, document_store):
    queue = make_queue()
    queue.add_files(_files("sunset.jpg", "other.jpg"))
    queue.import_csv(CSV_TEXT)

    report = queue.apply_csv()

    sunset, other = queue.items()
    assert report.exact == 1 and report.unmatched == 1
    assert report.skipped == ["forest.jpg"]
    assert sunset.metadata.title == "Sunset Mountain"
    assert sunset.metadata.category == "nature"
    assert sunset.metadata.tags == ["sunset", "mountains"]
    assert sunset.match_type == "exact"
    assert other.metadata.title == "other"

    queue.run()
    queue.publish()
    titles = sorted(d["title"] for d in document_store.docs("wallpapers").values())
    assert titles == ["Sunset Mountain", "other"]


def test_update_metadata(make_queue):
    queue = make_queue()
    queue.add_files(_files("a.jpg"))
    item_id = queue.items()[0].id

    item = queue.update_metadata(item_id, category=" Space ", price="2", tags="x, y")
    assert (item.metadata.category, item.metadata.price, item.metadata.tags) == ("space", 2.0, ["x", "y"])

    with pytest.raises(ValueError):
        queue.update_metadata(item_id, price=-1)
    with pytest.raises(ValueError):
        queue.update_metadata(item_id, colour="red")
    with pytest.raises(KeyError):
        queue.update_metadata("missing", title="x")


def test_remove_and_unsubscribe(make_queue):
    queue = make_queue()
    events = []
    unsubscribe = queue.subscribe(events.append)
    queue.add_files(_files("a.jpg"))
    assert len(events) == 1

    unsubscribe()
    assert queue.remove(queue.items()[0].id)
    queue.add_files(_files("b.jpg"))
    assert len(events) == 1
    assert [i.source_name for i in queue.items()] == ["b.jpg"]


def test_listener_errors_do_not_break_queue(make_queue):
    queue = make_queue()

    def _boom(event):
        raise RuntimeError("listener bug")

    queue.subscribe(_boom)
    queue.add_files(_files("a.jpg"))
    assert queue.run().succeeded == 1


def test_publish_failure_keeps_items_pending(make_queue, document_store):
    queue = make_queue(publish_batch_size=2)
    queue.add_files(_files("a.jpg", "b.jpg", "c.jpg"))
    queue.run()
    document_store.fail_commits = {2}

    result = queue.publish()

    assert not result.ok
    assert result.published == 2
    assert len(queue.unpublished()) == 1
    assert len(document_store.docs("wallpapers")) == 2

    again = queue.publish()
    assert again.ok
    assert queue.unpublished() == []
    assert len(document_store.docs("wallpapers")) == 3


def test_dimensions_are_probed(make_queue):
    from conftest import png_bytes

    queue = make_queue()
    queue.add_files([SourceFile.from_bytes("tiny.png", png_bytes(12, 8))])
    queue.run()
    assert queue.items()[0].metadata.dimensions == "12x8"


def test_cancel_during_preparation_aborts_transfer(make_queue, object_store, monkeypatch):
    queue = make_queue()
    queue.add_files(_files("a.jpg", "b.jpg"))
    a_id = queue.items()[0].id
    original = UploadTaskManager.key_for
    answers = []

    def _key_for(self, item):
        if item.id == a_id and not answers:
            answers.append(queue.cancel_upload(a_id))
        return original(self, item)

    monkeypatch.setattr(UploadTaskManager, "key_for", _key_for)
    result = queue.run()

    assert answers == [True]
    a = queue.get(a_id)
    assert a.status == "error" and a.is_canceled
    assert not any(k.endswith("a.jpg") for k in object_store.objects)
    assert not any(k.endswith("a.jpg") for k in object_store.put_calls)
    assert (result.succeeded, result.failed) == (1, 1)


def test_item_progress_never_decreases_and_ends_at_100(make_queue):
    queue = make_queue(progress_interval_sec=0)
    queue.add_files(_files("a.jpg", "b.jpg"))
    events = _events(queue)

    queue.run()

    for item in queue.items():
        mine = [e for e in events if e.item_id == item.id and e.kind in ("item_progress", "item_status")]
        progress = [e.progress for e in mine if e.kind == "item_progress"]
        assert progress == [25, 50, 75, 100]
        assert progress == sorted(progress)
        assert mine[0].status == "uploading" and mine[0].progress == 0
        assert (mine[-1].status, mine[-1].progress) == ("success", 100)


def test_retry_is_flagged_while_in_flight(make_queue, object_store):
    queue = make_queue(progress_interval_sec=0)
    queue.add_files(_files("a.jpg"))
    object_store.fail_times["a.jpg"] = 1
    queue.run()
    item = queue.items()[0]
    assert item.status == "error" and not item.is_retrying

    seen = []
    object_store.on_chunk = lambda key, sent: seen.append((item.status, item.is_retrying))
    events = _events(queue)

    assert queue.retry_upload(item.id)
    assert seen and all(s == ("uploading", True) for s in seen)
    progress = [e.progress for e in events if e.kind == "item_progress"]
    assert progress == sorted(progress) and progress[-1] == 100
    assert not item.is_retrying
