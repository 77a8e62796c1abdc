# ==============================================================================
# 목적 : 벌크 업로드 큐 오케스트레이터(상태 머신)
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-05
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import csv
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from catalog_ingest.adapters.csv.metadata_csv import missing_columns, parse_metadata_csv, split_tags
from catalog_ingest.adapters.imaging.image_processor import probe_dimensions, process_image_for_upload
from catalog_ingest.application.services.categories import CategoryRegistry
from catalog_ingest.application.services.metadata_matching import apply_shared_metadata, match_csv_to_items
from catalog_ingest.application.services.progress import ProgressEvent, ProgressListener, ProgressThrottle
from catalog_ingest.application.services.publisher import publish
from catalog_ingest.application.services.upload_task import UploadTaskManager
from catalog_ingest.application.services.validation import validate_csv_row, validate_file
from catalog_ingest.common.ids import new_item_id, normalize_category
from catalog_ingest.domain.errors import UploadCanceledError
from catalog_ingest.domain.models import (
    MAX_FILE_BYTES,
    CsvImportResult,
    CsvRow,
    IntakeResult,
    ItemMetadata,
    MatchReport,
    PublishResult,
    QueuedItem,
    SourceFile,
    UnpublishedUpload,
    UploadRunResult,
    ValidationMode,
)
from catalog_ingest.ports.document_store import DocumentStore

_log = logging.getLogger(__name__)

CANCELED_MESSAGE = "Upload canceled"
METADATA_FIELDS = ("title", "description", "category", "price", "tags", "dimensions")


@dataclass(frozen=True)
class QueueSettings:
    """업로드 큐 동작 설정.

    Attributes:
        validation_mode: "strict"(유효 항목 0개면 전체 거부) | "warning"(유효 항목만 진행).
        item_delay_sec: 성공 후 다음 아이템까지 대기.
        error_delay_sec: 실패 후 다음 아이템까지 대기.
        progress_interval_sec: 진행률 flush 간격.
        concurrency: 동시 전송 수. 1이면 순차, "auto"면 평균 파일 크기로 결정.
        optimize_images: 전송 전 리사이즈/재압축 여부.
        image_max_width / image_max_height / image_quality: 리사이즈 파라미터.
        max_file_bytes: 파일 크기 상한.
        collection: 카탈로그 컬렉션명.
        publish_batch_size: 게시 chunk 크기.
        publish_delay_sec: 게시 chunk 사이 대기.
    """
    validation_mode: ValidationMode = "warning"
    item_delay_sec: float = 0.5
    error_delay_sec: float = 0.3
    progress_interval_sec: float = 0.25
    concurrency: Union[int, str] = 1
    optimize_images: bool = True
    image_max_width: int = 1920
    image_max_height: int = 1920
    image_quality: float = 0.85
    max_file_bytes: int = MAX_FILE_BYTES
    collection: str = "wallpapers"
    publish_batch_size: int = 100
    publish_delay_sec: float = 0.3


def optimal_concurrency(sizes: Sequence[int]) -> int:
    """평균 파일 크기로 동시 전송 수를 정합니다. >5MiB: 2, >2MiB: 3, 그 외 4 (대상이 없으면 3)."""
    if not sizes:
        return 3
    avg = sum(sizes) / len(sizes)
    if avg > 5 * 1024 * 1024:
        return 2
    if avg > 2 * 1024 * 1024:
        return 3
    return 4


class UploadQueue:
    """업로드 후보 아이템을 intake -> 메타데이터 -> 업로드 -> 게시 순서로 처리하는 큐.

    - 모든 아이템 변경은 self._lock 안에서 일어납니다.
    - 미게시 목록은 별도 리스트 없이 아이템 상태(success + is_pending_publication)에서 계산합니다.
    - cancel_upload()/cancel_all()은 다른 스레드(시그널 핸들러 등)에서 호출할 수 있습니다.
    """
    def __init__(
        self,
        tasks: UploadTaskManager,
        store: DocumentStore,
        categories: CategoryRegistry,
        settings: QueueSettings = QueueSettings(),
        defaults: Optional[ItemMetadata] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._tasks = tasks
        self._store = store
        self._categories = categories
        self._settings = settings
        self._defaults = defaults or ItemMetadata()
        self._sleep = sleep

        self._lock = threading.RLock()
        self._run_lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._canceled = threading.Event()
        self._items: List[QueuedItem] = []
        self._csv_rows: List[CsvRow] = []
        self._listeners: List[ProgressListener] = []
        self._throttle = ProgressThrottle(self._apply_progress, settings.progress_interval_sec)

    # ---------- 조회 ----------
    @property
    def settings(self) -> QueueSettings:
        return self._settings

    @property
    def canceled(self) -> bool:
        return self._canceled.is_set()

    def items(self) -> List[QueuedItem]:
        with self._lock:
            return list(self._items)

    def get(self, item_id: str) -> Optional[QueuedItem]:
        with self._lock:
            for item in self._items:
                if item.id == item_id:
                    return item
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def unpublished(self) -> List[UnpublishedUpload]:
        """업로드는 끝났지만 아직 카탈로그 문서가 없는 아이템 목록(큐 순서)."""
        with self._lock:
            return [
                UnpublishedUpload(i.id, i.object_url)
                for i in self._items
                if i.status == "success" and i.object_url and i.is_pending_publication
            ]

    # ---------- 이벤트 ----------
    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """이벤트 구독. 반환된 함수를 호출하면 구독이 해제됩니다."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: ProgressEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                _log.exception("Progress listener failed (kind=%s)", event.kind)

    def _emit_status(self, item: QueuedItem) -> None:
        self._emit(
            ProgressEvent(
                "item_status",
                item_id=item.id,
                progress=item.progress,
                status=item.status,
                message=item.error,
            )
        )

    def _apply_progress(self, item_id: str, progress: int) -> None:
        # throttle flush 시 호출. uploading 상태에서만, 증가하는 값만 반영합니다.
        with self._lock:
            item = self.get(item_id)
            if item is None or item.status != "uploading" or progress <= item.progress:
                return
            item.progress = progress
        self._emit(ProgressEvent("item_progress", item_id=item_id, progress=progress, status="uploading"))

    # ---------- intake ----------
    def add_files(self, files: Sequence[SourceFile], mode: Optional[ValidationMode] = None) -> IntakeResult:
        """파일을 검증해 idle 아이템으로 큐 끝에 추가합니다.

        strict 모드에서 유효한 파일이 하나도 없으면 아무것도 추가하지 않고 rejected=True를 반환합니다.
        그 외에는 유효한 파일만 추가하고 나머지는 errors에 남깁니다.
        기본 제목은 파일명의 첫 '.' 앞부분이며, 공통 기본값(defaults)이 복사됩니다.
        """
        mode = mode or self._settings.validation_mode
        errors: List[str] = []
        valid: List[SourceFile] = []
        for f in files:
            v = validate_file(f, self._settings.max_file_bytes)
            if v.valid:
                valid.append(f)
            else:
                errors.append(v.error or f"Invalid file: {f.name}")

        if errors and mode == "strict" and not valid:
            _log.warning("File validation failed: no valid files (%d rejected)", len(errors))
            return IntakeResult(added=[], errors=errors, rejected=True)
        if errors:
            _log.warning("%d file(s) rejected", len(errors))

        added: List[QueuedItem] = []
        for f in valid:
            meta = self._defaults.copy()
            meta.title = f.stem
            added.append(QueuedItem(id=new_item_id(), source=f, metadata=meta))
        with self._lock:
            self._items.extend(added)
        for item in added:
            self._emit_status(item)
        _log.info("Queued %d file(s)", len(added))
        return IntakeResult(added=[i.id for i in added], errors=errors)

    def remove(self, item_id: str) -> bool:
        """아이템을 큐에서 제거합니다. 전송 중이면 먼저 취소합니다."""
        with self._lock:
            item = self.get(item_id)
            if item is None:
                return False
            uploading = item.status == "uploading"
            self._items.remove(item)
        if uploading:
            self._tasks.cancel(item_id)
        self._throttle.discard(item_id)
        return True

    def update_metadata(self, item_id: str, **fields: Any) -> QueuedItem:
        """아이템 메타데이터의 일부 필드를 갱신합니다.

        Raises:
            KeyError: item_id가 없는 경우.
            ValueError: 알 수 없는 필드 또는 음수 price.
        """
        unknown = [k for k in fields if k not in METADATA_FIELDS]
        if unknown:
            raise ValueError(f"unknown metadata fields: {unknown}")
        with self._lock:
            item = self.get(item_id)
            if item is None:
                raise KeyError(item_id)
            meta = item.metadata
            for k, v in fields.items():
                if k == "category":
                    v = normalize_category(v)
                elif k == "price":
                    v = float(v)
                    if v < 0:
                        raise ValueError("price must be >= 0")
                elif k == "tags":
                    v = split_tags(v) if isinstance(v, str) else list(v)
                setattr(meta, k, v)
            return item

    # ---------- 메타데이터 ----------
    def import_csv(self, text: str, mode: Optional[ValidationMode] = None) -> CsvImportResult:
        """메타데이터 CSV를 파싱/검증하고 이후 apply_csv()에 쓸 행을 저장합니다.

        - 필수 컬럼(filename, title)이 없으면 "Missing required columns: ..." 오류를 맨 앞에 둡니다.
        - 새 카테고리는 CategoryRegistry에 등록을 시도합니다(실패는 로그만).
        - strict: 유효한 행만 남기고, 남는 행이 없거나 필수 컬럼이 없으면 가져오기 전체를 거부합니다.
        - warning: 모든 행을 남기고 오류는 목록으로만 돌려줍니다.
        """
        mode = mode or self._settings.validation_mode
        try:
            fields, rows = parse_metadata_csv(text)
        except csv.Error as e:
            _log.warning("CSV parse failed: %s", e)
            return CsvImportResult(rows=[], errors=[f"CSV parse error: {e}"], new_categories=[], rejected=True, total_rows=0)

        known_files = [i.source_name for i in self.items()]
        known_categories = self._categories.options()

        errors: List[str] = []
        new_categories: List[str] = []
        valid_rows: List[CsvRow] = []
        for idx, row in enumerate(rows):
            v = validate_csv_row(row, idx, known_files, known_categories)
            if v.valid:
                valid_rows.append(row)
            else:
                errors.extend(v.errors)
            if v.new_category and v.new_category not in new_categories:
                new_categories.append(v.new_category)

        missing = missing_columns(fields)
        if missing:
            errors.insert(0, f"Missing required columns: {', '.join(missing)}")

        for category in new_categories:
            self._categories.register(category)
        if new_categories:
            _log.info("Found %d new categories: %s", len(new_categories), ", ".join(new_categories))

        if mode == "strict":
            rejected = bool(missing) or not valid_rows
            kept = [] if rejected else valid_rows
        else:
            rejected = False
            kept = rows

        if rejected:
            _log.warning("CSV import rejected (%d errors)", len(errors))
        else:
            with self._lock:
                self._csv_rows = list(kept)
            _log.info("CSV imported: %d/%d rows (%d errors)", len(kept), len(rows), len(errors))

        return CsvImportResult(
            rows=list(kept),
            errors=errors,
            new_categories=new_categories,
            rejected=rejected,
            total_rows=len(rows),
        )

    def apply_csv(self, allow_partial: bool = False, rows: Optional[Sequence[CsvRow]] = None) -> MatchReport:
        """가져온 CSV 행(또는 rows)을 현재 아이템에 매칭합니다."""
        with self._lock:
            source_rows = list(rows) if rows is not None else list(self._csv_rows)
            return match_csv_to_items(self._items, source_rows, allow_partial=allow_partial)

    def apply_shared_metadata(self, shared: Mapping[str, Any]) -> int:
        with self._lock:
            return apply_shared_metadata(self._items, shared)

    # ---------- 업로드 ----------
    def _prepare(self, item: QueuedItem) -> None:
        s = self._settings
        if s.optimize_images:
            processed = process_image_for_upload(item.source, s.image_max_width, s.image_max_height, s.image_quality)
            if processed is not item.source:
                with self._lock:
                    item.source = processed
        if not item.metadata.dimensions:
            dims = probe_dimensions(item.source.data)
            if dims:
                with self._lock:
                    item.metadata.dimensions = dims

    def _mark_canceled(self, item: QueuedItem) -> None:
        item.status = "error"
        item.error = CANCELED_MESSAGE
        item.is_canceled = True
        item.is_retrying = False

    def _upload_one(self, item: QueuedItem, retry: bool = False) -> bool:
        """아이템 하나를 전송하고 성공 여부를 반환합니다. 예외를 밖으로 던지지 않습니다."""
        with self._lock:
            if item.status in ("uploading", "success") or item not in self._items:
                return False
            item.status = "uploading"
            item.progress = 0
            item.error = None
            item.is_canceled = False
            item.is_retrying = retry
            self._tasks.open_handle(item.id)
        self._emit_status(item)

        try:
            self._prepare(item)
            with self._lock:
                if item.is_canceled:
                    raise UploadCanceledError(item.id)
            key = self._tasks.key_for(item)
            url = self._tasks.upload_item(item, lambda p: self._throttle.report(item.id, p), key=key)
        except UploadCanceledError:
            self._throttle.discard(item.id)
            with self._lock:
                if not item.is_canceled:
                    self._mark_canceled(item)
            _log.info("Upload canceled: %s", item.source_name)
            self._emit_status(item)
            return False
        except Exception as e:
            self._throttle.discard(item.id)
            with self._lock:
                if item.is_canceled:
                    return False
                item.status = "error"
                item.error = str(e) or type(e).__name__
                item.is_retrying = False
            _log.warning("Upload failed: %s (%s)", item.source_name, item.error)
            self._emit_status(item)
            return False
        finally:
            self._tasks.release(item.id)

        self._throttle.discard(item.id)
        with self._lock:
            if item.is_canceled:
                # 취소 요청 이후 전송이 끝난 경우. 오브젝트는 reconcile 대상으로 남습니다.
                _log.warning("Upload finished after cancel, object left unpublished: %s", url)
                return False
            item.status = "success"
            item.progress = 100
            item.object_url = url
            item.object_key = key
            item.is_pending_publication = True
            item.is_retrying = False
        self._emit_status(item)
        return True

    def _resolve_concurrency(self, todo: Sequence[QueuedItem]) -> int:
        c = self._settings.concurrency
        if c == "auto":
            return optimal_concurrency([i.source.size for i in todo])
        return max(1, int(c))

    def run(self) -> UploadRunResult:
        """success가 아니고 취소되지 않은 아이템을 큐 순서대로 업로드합니다.

        concurrency가 1이면 한 번에 하나씩, 앞 아이템이 끝난 뒤 다음 아이템을 시작합니다.
        성공 후 item_delay_sec, 실패 후 error_delay_sec 만큼 쉽니다.
        한 아이템의 실패는 큐를 멈추지 않으며, cancel_all() 이후에는 다음 아이템을 시작하지 않습니다.

        Raises:
            RuntimeError: 이미 run()이 진행 중인 경우.
        """
        if not self._run_lock.acquire(blocking=False):
            raise RuntimeError("upload already running")
        try:
            self._canceled.clear()
            with self._lock:
                todo = [i for i in self._items if i.status != "success" and not i.is_canceled]
            total = len(todo)
            if total == 0:
                return UploadRunResult(total=0, succeeded=0, failed=0, canceled=False)

            workers = self._resolve_concurrency(todo)
            _log.info("Upload start: %d file(s), concurrency=%d", total, workers)
            counter = {"done": 0, "ok": 0, "fail": 0}
            counter_lock = threading.Lock()

            def _work(item: QueuedItem) -> None:
                if self._canceled.is_set():
                    return
                ok = self._upload_one(item)
                with counter_lock:
                    counter["done"] += 1
                    counter["ok" if ok else "fail"] += 1
                    progress = round(counter["done"] / total * 100)
                self._emit(ProgressEvent("queue_progress", progress=progress))
                self._sleep(self._settings.item_delay_sec if ok else self._settings.error_delay_sec)

            if workers == 1:
                for item in todo:
                    if self._canceled.is_set():
                        break
                    _work(item)
            else:
                with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="upload") as pool:
                    for fut in [pool.submit(_work, item) for item in todo]:
                        fut.result()

            self._throttle.flush()
            result = UploadRunResult(
                total=total,
                succeeded=counter["ok"],
                failed=counter["fail"],
                canceled=self._canceled.is_set(),
            )
            _log.info(
                "Upload done: ok=%d fail=%d total=%d canceled=%s",
                result.succeeded, result.failed, result.total, result.canceled,
            )
            return result
        finally:
            self._run_lock.release()

    def cancel_upload(self, item_id: str) -> bool:
        """전송 중인 아이템 하나만 취소합니다. 큐의 다음 아이템은 계속 진행됩니다."""
        with self._lock:
            item = self.get(item_id)
            if item is None or item.status != "uploading":
                return False
            self._mark_canceled(item)
        self._tasks.cancel(item_id)
        self._throttle.discard(item_id)
        self._emit_status(item)
        return True

    def cancel_all(self) -> List[str]:
        """큐 전체를 취소합니다. 다음 아이템은 시작되지 않고, 전송 중인 아이템은 모두 error/취소가 됩니다."""
        self._canceled.set()
        self._tasks.cancel_all()
        with self._lock:
            canceled = [i for i in self._items if i.status == "uploading"]
            for item in canceled:
                self._mark_canceled(item)
        for item in canceled:
            self._throttle.discard(item.id)
            self._emit_status(item)
        _log.info("All uploads canceled (%d in flight)", len(canceled))
        return [i.id for i in canceled]

    def retry_upload(self, item_id: str) -> bool:
        """error 상태 아이템 하나를 다시 업로드합니다(호출 스레드에서 동기 실행).

        Returns:
            성공 여부. error 상태가 아니면 False.
        """
        with self._lock:
            item = self.get(item_id)
            if item is None or item.status != "error":
                return False
        _log.info("Retrying upload: %s", item.source_name)
        return self._upload_one(item, retry=True)

    # ---------- 게시 ----------
    def _mark_published(self, item_ids: List[str]) -> None:
        with self._lock:
            ids = set(item_ids)
            for item in self._items:
                if item.id in ids:
                    item.is_pending_publication = False

    def publish(self) -> PublishResult:
        """미게시 아이템을 카탈로그 문서로 게시합니다. 동시에 한 번만 실행됩니다."""
        with self._publish_lock:
            entries = self.unpublished()
            with self._lock:
                items_by_id: Dict[str, QueuedItem] = {i.id: i for i in self._items}
            return publish(
                entries,
                items_by_id,
                self._store,
                collection=self._settings.collection,
                batch_size=self._settings.publish_batch_size,
                delay_sec=self._settings.publish_delay_sec,
                on_committed=self._mark_published,
                on_progress=lambda p: self._emit(ProgressEvent("publish_progress", progress=p)),
                sleep=self._sleep,
            )

    def summary(self) -> Dict[str, int]:
        with self._lock:
            out = {"idle": 0, "uploading": 0, "success": 0, "error": 0}
            for item in self._items:
                out[item.status] += 1
            out["unpublished"] = sum(1 for i in self._items if i.status == "success" and i.is_pending_publication)
            return out
