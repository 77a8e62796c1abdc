# ==============================================================================
# 목적 : 폴더 + 메타데이터 CSV를 업로드하고 카탈로그에 게시하는 벌크 업로드 유스케이스
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-06
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from catalog_ingest.application.services.authorization import AdminGuard
from catalog_ingest.application.services.categories import CategoryRegistry
from catalog_ingest.application.services.progress import ProgressEvent, ProgressListener
from catalog_ingest.application.services.upload_queue import UploadQueue
from catalog_ingest.application.services.upload_task import UploadTaskManager
from catalog_ingest.application.usecases.wiring import (
    DEFAULT_CONFIG_PATH,
    build_document_store,
    build_identity,
    build_object_store,
    build_queue_settings,
    defaults_of,
    shared_metadata_of,
)
from catalog_ingest.common.config import get_bool, get_str, load_config
from catalog_ingest.domain.models import (
    CsvImportResult,
    IntakeResult,
    MatchReport,
    PublishResult,
    SourceFile,
    UploadRunResult,
)
from catalog_ingest.ports.document_store import DocumentStore
from catalog_ingest.ports.identity import IdentityProvider
from catalog_ingest.ports.object_store import ObjectStore

_log = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png", ".webp")


@dataclass(frozen=True)
class BulkUploadReport:
    """벌크 업로드 1회 실행 결과.

    status: success | partial | fail | rejected
    """
    status: str
    admin_uid: str
    run_id: Optional[str]
    intake: IntakeResult
    csv: Optional[CsvImportResult] = None
    match: Optional[MatchReport] = None
    upload: Optional[UploadRunResult] = None
    publish: Optional[PublishResult] = None
    summary: Dict[str, int] = field(default_factory=dict)
    items: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def collect_source_files(input_dir: Path, exclude: Sequence[Path] = ()) -> List[SourceFile]:
    """input_dir 바로 아래 파일을 이름순으로 읽어 SourceFile 목록으로 반환합니다.

    숨김 파일과 .csv는 제외합니다. 이미지가 아닌 파일도 포함되며 검증 단계에서 거부됩니다.

    Raises:
        FileNotFoundError: input_dir가 없는 경우.
    """
    if not input_dir.is_dir():
        raise FileNotFoundError(f"input dir not found: {input_dir}")
    skip = {p.resolve() for p in exclude}
    out: List[SourceFile] = []
    for p in sorted(input_dir.iterdir(), key=lambda x: x.name):
        if not p.is_file() or p.name.startswith(".") or p.suffix.lower() == ".csv":
            continue
        if p.resolve() in skip:
            continue
        out.append(SourceFile.from_path(p))
    return out


def _status_of(upload: Optional[UploadRunResult], pub: Optional[PublishResult]) -> str:
    if upload is None or upload.total == 0:
        return "success" if pub is None or pub.ok else "partial"
    if upload.succeeded == 0:
        return "fail"
    if upload.failed or upload.canceled or (pub is not None and not pub.ok):
        return "partial"
    return "success"


def _audit_listener(recorder: Any, run_id: Any) -> ProgressListener:
    def _on_event(event: ProgressEvent) -> None:
        if event.kind != "item_status" or event.status not in ("success", "error"):
            return
        status = event.status
        if event.message == "Upload canceled":
            status = "canceled"
        recorder.record_event(run_id, item_id=event.item_id, stage="upload", status=status, error_message=event.message)

    return _on_event


def bulk_upload(
    *,
    config_path: Optional[Path] = None,
    cfg: Optional[Dict[str, Any]] = None,
    input_dir: Optional[Path] = None,
    csv_path: Optional[Path] = None,
    token: Optional[str] = None,
    allow_partial: Optional[bool] = None,
    publish_after: Optional[bool] = None,
    retry_failed: Optional[bool] = None,
    object_store: Optional[ObjectStore] = None,
    document_store: Optional[DocumentStore] = None,
    identity: Optional[IdentityProvider] = None,
    listener: Optional[ProgressListener] = None,
    on_queue: Optional[Callable[[UploadQueue], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BulkUploadReport:
    """폴더의 이미지를 업로드하고 메타데이터를 매칭해 카탈로그에 게시합니다.

    1) 관리자 권한 확인(실패 시 AuthorizationError, 아무 작업도 하지 않음)
    2) 카테고리 캐시 refresh
    3) 파일 intake(검증) -> strict 모드에서 유효 파일 0개면 rejected로 종료
    4) 공통 메타데이터 / CSV 매칭(csv.apply_order 순서, 나중 것이 이김)
    5) 큐 업로드(순차 또는 bounded pool), retry_failed면 실패 아이템 1회 재시도
    6) publish_after면 미게시 아이템 게시
    7) document store가 실행 이력을 지원하면 upload_runs/upload_events에 기록

    Args:
        config_path: config.yaml 경로(cfg가 없을 때 사용).
        cfg: 이미 로드된 설정 dict.
        input_dir: 이미지 폴더. 없으면 paths.input_dir.
        csv_path: 메타데이터 CSV. 없으면 paths.csv_path(파일이 있을 때만).
        token: 관리자 bearer 토큰. 없으면 auth.token.
        allow_partial: 부분 파일명 매칭 허용. 없으면 csv.allow_partial_match.
        publish_after: 업로드 후 게시 여부. 없으면 publish.enabled.
        retry_failed: 실패 아이템 재시도 여부. 없으면 upload.retry_failed.
        object_store / document_store / identity: 주입할 어댑터(없으면 설정으로 생성).
        listener: 진행 이벤트 구독자.
        on_queue: 생성된 큐를 받는 콜백(취소 핸들러 연결용).
        sleep: 대기 함수.

    Returns:
        BulkUploadReport.

    Raises:
        AuthorizationError: 토큰 검증 실패 또는 관리자 아님.
        FileNotFoundError: input_dir/csv_path가 없는 경우.
        ValueError: 필수 설정 누락 또는 잘못된 설정 값.
    """
    if cfg is None:
        cfg = load_config(config_path or Path(DEFAULT_CONFIG_PATH))

    doc_store = document_store or build_document_store(cfg)
    try:
        return _run_bulk_upload(
            cfg,
            doc_store,
            input_dir=input_dir,
            csv_path=csv_path,
            token=token,
            allow_partial=allow_partial,
            publish_after=publish_after,
            retry_failed=retry_failed,
            object_store=object_store,
            identity=identity,
            listener=listener,
            on_queue=on_queue,
            sleep=sleep,
        )
    finally:
        if document_store is None:
            doc_store.close()


def read_csv_file(queue: UploadQueue, csv_path: Path) -> CsvImportResult:
    """CSV 파일을 읽어 큐로 가져옵니다. 읽기/디코딩 실패는 거부된 결과로 돌려줍니다."""
    try:
        text = csv_path.read_text(encoding="utf-8")
    except (UnicodeDecodeError, OSError) as e:
        return CsvImportResult(rows=[], errors=[f"CSV parse error: {e}"], new_categories=[], rejected=True, total_rows=0)
    return queue.import_csv(text)


def _run_bulk_upload(
    cfg: Dict[str, Any],
    doc_store: DocumentStore,
    *,
    input_dir: Optional[Path],
    csv_path: Optional[Path],
    token: Optional[str],
    allow_partial: Optional[bool],
    publish_after: Optional[bool],
    retry_failed: Optional[bool],
    object_store: Optional[ObjectStore],
    identity: Optional[IdentityProvider],
    listener: Optional[ProgressListener],
    on_queue: Optional[Callable[[UploadQueue], None]],
    sleep: Callable[[float], None],
) -> BulkUploadReport:
    ident = identity or build_identity(cfg)

    guard = AdminGuard(ident, doc_store, get_str(cfg, "catalog.users_collection", "users"))
    admin_uid = guard.require_admin(token if token is not None else get_str(cfg, "auth.token"))

    obj_store = object_store or build_object_store(cfg)
    settings = build_queue_settings(cfg)

    src_dir = input_dir or Path(get_str(cfg, "paths.input_dir", "data/wallpapers"))
    if csv_path is None:
        configured = get_str(cfg, "paths.csv_path")
        if configured and Path(configured).exists():
            csv_path = Path(configured)
    if csv_path is not None and not csv_path.exists():
        raise FileNotFoundError(f"CSV not found: {csv_path}")
    if allow_partial is None:
        allow_partial = get_bool(cfg, "csv.allow_partial_match", False)
    if publish_after is None:
        publish_after = get_bool(cfg, "publish.enabled", True)
    if retry_failed is None:
        retry_failed = get_bool(cfg, "upload.retry_failed", False)
    apply_order = get_str(cfg, "csv.apply_order", "shared_then_csv")
    if apply_order not in ("shared_then_csv", "csv_then_shared"):
        raise ValueError(f"Invalid csv.apply_order: {apply_order}")

    categories = CategoryRegistry(doc_store, get_str(cfg, "catalog.categories_collection", "categories"))
    categories.refresh()

    shared = shared_metadata_of(cfg)
    tasks = UploadTaskManager(obj_store, get_str(cfg, "storage.key_prefix", "wallpapers"))
    queue = UploadQueue(tasks, doc_store, categories, settings, defaults=defaults_of(shared), sleep=sleep)
    if listener is not None:
        queue.subscribe(listener)
    if on_queue is not None:
        on_queue(queue)

    files = collect_source_files(src_dir, exclude=[csv_path] if csv_path else [])
    _log.info("Found %d file(s) in %s", len(files), src_dir)
    intake = queue.add_files(files)
    if intake.rejected:
        return BulkUploadReport(status="rejected", admin_uid=admin_uid, run_id=None, intake=intake)

    recorder = doc_store if callable(getattr(doc_store, "start_run", None)) else None
    run_id = None
    if recorder is not None:
        run_id = recorder.start_run(len(queue), meta={"input_dir": str(src_dir), "admin_uid": admin_uid})
        queue.subscribe(_audit_listener(recorder, run_id))

    csv_result: Optional[CsvImportResult] = None
    match: Optional[MatchReport] = None

    def _apply_csv() -> None:
        nonlocal csv_result, match
        if csv_path is None:
            return
        csv_result = read_csv_file(queue, csv_path)
        for msg in csv_result.errors:
            _log.warning("CSV: %s", msg)
        if not csv_result.rejected:
            match = queue.apply_csv(allow_partial=allow_partial)

    try:
        if apply_order == "shared_then_csv":
            queue.apply_shared_metadata(shared)
            _apply_csv()
        else:
            _apply_csv()
            queue.apply_shared_metadata(shared)

        upload = queue.run()
        if retry_failed and not upload.canceled:
            retried = [i.id for i in queue.items() if i.status == "error" and not i.is_canceled]
            recovered = sum(1 for item_id in retried if queue.retry_upload(item_id))
            if retried:
                _log.info("Retried %d failed upload(s), recovered=%d", len(retried), recovered)
                upload = UploadRunResult(
                    total=upload.total,
                    succeeded=upload.succeeded + recovered,
                    failed=upload.failed - recovered,
                    canceled=upload.canceled,
                )

        pub: Optional[PublishResult] = None
        if publish_after and not upload.canceled:
            pub = queue.publish()
            if recorder is not None:
                recorder.record_event(
                    run_id,
                    item_id=None,
                    stage="publish",
                    status="success" if pub.ok else "error",
                    error_message=pub.error,
                    meta={"published": pub.published, "total": pub.total},
                )
    except Exception as e:
        _log.exception("Bulk upload failed: %s", e)
        if recorder is not None:
            summary = queue.summary()
            try:
                recorder.finish_run(
                    run_id,
                    "fail",
                    success_count=summary["success"],
                    fail_count=summary["error"],
                    published_count=0,
                    meta={"summary": summary, "error": str(e)},
                )
            except Exception:
                _log.exception("Failed to close run: %s", run_id)
        raise

    status = _status_of(upload, pub)
    summary = queue.summary()
    if recorder is not None:
        recorder.finish_run(
            run_id,
            status,
            success_count=upload.succeeded,
            fail_count=upload.failed,
            published_count=pub.published if pub is not None else 0,
            meta={"summary": summary},
        )

    return BulkUploadReport(
        status=status,
        admin_uid=admin_uid,
        run_id=str(run_id) if run_id is not None else None,
        intake=intake,
        csv=csv_result,
        match=match,
        upload=upload,
        publish=pub,
        summary=summary,
        items=[i.snapshot() for i in queue.items()],
    )
