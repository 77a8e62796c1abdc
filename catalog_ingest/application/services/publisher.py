# ==============================================================================
# 목적 : 업로드 완료 아이템을 카탈로그 문서로 batch 게시
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-05
# AI 활용 여부 :
# ==============================================================================

import logging
import time
from typing import Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from catalog_ingest.common.batch import chunk_count, iter_chunks
from catalog_ingest.common.runtime import iso_utc
from catalog_ingest.domain.errors import StoreError
from catalog_ingest.domain.models import (
    CatalogDocument,
    ItemMetadata,
    PublishResult,
    QueuedItem,
    UnpublishedUpload,
)
from catalog_ingest.ports.document_store import Document, DocumentStore, WriteBatch

_log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 100
DEFAULT_DELAY_SEC = 0.3


def build_catalog_document(doc_id: str, metadata: ItemMetadata, image_url: str, now: Optional[str] = None) -> CatalogDocument:
    ts = now or iso_utc()
    return CatalogDocument(
        id=doc_id,
        title=metadata.title,
        description=metadata.description,
        category=metadata.category,
        tags=list(metadata.tags),
        price=metadata.price,
        image_url=image_url,
        dimensions=metadata.dimensions or "",
        created_at=ts,
        updated_at=ts,
    )


def commit_in_chunks(
    entries: Sequence[T],
    build: Callable[[T, str], Optional[Document]],
    store: DocumentStore,
    *,
    collection: str,
    batch_size: int = DEFAULT_BATCH_SIZE,
    delay_sec: float = DEFAULT_DELAY_SEC,
    on_committed: Optional[Callable[[List[T]], None]] = None,
    on_progress: Optional[Callable[[int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PublishResult:
    """entries를 batch_size 단위 chunk로 나눠 chunk마다 하나의 batch로 commit합니다.

    - build(entry, doc_id)가 None을 반환한 entry는 건너뜁니다.
    - chunk commit 직후 on_committed(chunk에서 staging된 entry 목록)을 호출하고,
      진행률 round(완료 / 전체 * 100)을 on_progress로 보낸 뒤 delay_sec 만큼 쉽니다.
    - commit이 실패하면 남은 chunk는 처리하지 않고 error가 담긴 결과를 반환합니다.
      이미 commit된 chunk는 그대로 유지됩니다.

    Raises:
        ValueError: batch_size가 1 미만이거나 WriteBatch.MAX_OPS를 넘는 경우.
    """
    if batch_size < 1 or batch_size > WriteBatch.MAX_OPS:
        raise ValueError(f"batch_size must be within 1..{WriteBatch.MAX_OPS}")

    total = len(entries)
    if total == 0:
        return PublishResult(total=0, published=0, batches_committed=0, document_ids=[])

    n_chunks = chunk_count(total, batch_size)
    completed = 0
    published = 0
    committed = 0
    doc_ids: List[str] = []

    for chunk_no, chunk in iter_chunks(entries, batch_size):
        batch = store.batch()
        staged: List[T] = []
        chunk_doc_ids: List[str] = []
        for entry in chunk:
            doc_id = store.new_id()
            doc = build(entry, doc_id)
            if doc is None:
                continue
            batch.set(collection, doc_id, doc)
            staged.append(entry)
            chunk_doc_ids.append(doc_id)

        try:
            batch.commit()
        except StoreError as e:
            _log.error("Publish chunk %d/%d failed: %s", chunk_no + 1, n_chunks, e)
            return PublishResult(
                total=total,
                published=published,
                batches_committed=committed,
                document_ids=doc_ids,
                error=str(e),
            )

        committed += 1
        published += len(staged)
        doc_ids.extend(chunk_doc_ids)
        if on_committed is not None:
            on_committed(staged)

        completed += len(chunk)
        progress = round(completed / total * 100)
        if on_progress is not None:
            on_progress(progress)
        _log.info("Published chunk %d/%d (%d docs, progress=%d%%)", chunk_no + 1, n_chunks, len(staged), progress)

        if delay_sec > 0:
            sleep(delay_sec)

    return PublishResult(total=total, published=published, batches_committed=committed, document_ids=doc_ids)


def publish(
    unpublished: Sequence[UnpublishedUpload],
    items_by_id: Mapping[str, QueuedItem],
    store: DocumentStore,
    *,
    collection: str = "wallpapers",
    batch_size: int = DEFAULT_BATCH_SIZE,
    delay_sec: float = DEFAULT_DELAY_SEC,
    on_committed: Optional[Callable[[List[str]], None]] = None,
    on_progress: Optional[Callable[[int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PublishResult:
    """업로드 완료 아이템의 카탈로그 문서를 생성합니다.

    아이템의 현재 메타데이터로 문서를 만들고, chunk가 commit되면 해당 아이템의
    is_pending_publication을 False로 바꿉니다(on_committed가 주어지면 그 콜백에 위임).
    items_by_id에 없는 항목은 건너뜁니다. commit 실패는 예외 대신 PublishResult.error로 돌려줍니다.

    Args:
        unpublished: 게시 대상 (item_id, object_url) 목록.
        items_by_id: item_id -> QueuedItem.
        store: Document store.
        collection: 카탈로그 컬렉션명.
        batch_size: chunk 크기(최대 100 권장).
        delay_sec: chunk 사이 대기 시간.
        on_committed: commit된 item_id 목록을 받는 콜백.
        on_progress: 0~100 진행률 콜백.
        sleep: 대기 함수(테스트 주입용).

    Returns:
        PublishResult.
    """
    now = iso_utc()

    def _build(entry: UnpublishedUpload, doc_id: str) -> Optional[Document]:
        item = items_by_id.get(entry.item_id)
        if item is None:
            _log.warning("Unpublished item not found in queue: %s", entry.item_id)
            return None
        return build_catalog_document(doc_id, item.metadata, entry.object_url, now).to_document()

    def _mark(staged: List[UnpublishedUpload]) -> None:
        ids = [e.item_id for e in staged]
        if on_committed is not None:
            on_committed(ids)
            return
        for item_id in ids:
            items_by_id[item_id].is_pending_publication = False

    result = commit_in_chunks(
        unpublished,
        _build,
        store,
        collection=collection,
        batch_size=batch_size,
        delay_sec=delay_sec,
        on_committed=_mark,
        on_progress=on_progress,
        sleep=sleep,
    )
    if result.ok:
        _log.info("Publish done: %d/%d", result.published, result.total)
    return result


def index_items(items: Sequence[QueuedItem]) -> Dict[str, QueuedItem]:
    return {i.id: i for i in items}
