# ==============================================================================
# 목적 : 저장소에는 있지만 카탈로그에 없는 오브젝트(orphan) 조회 / 수동 게시
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-06
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import unquote, urlparse

from catalog_ingest.application.services.authorization import AdminGuard
from catalog_ingest.application.services.publisher import commit_in_chunks
from catalog_ingest.application.usecases.wiring import (
    DEFAULT_CONFIG_PATH,
    build_document_store,
    build_identity,
    build_object_store,
)
from catalog_ingest.common.config import get_str, get_value, load_config
from catalog_ingest.common.ids import display_name_of_key
from catalog_ingest.common.runtime import iso_utc
from catalog_ingest.domain.models import PublishResult
from catalog_ingest.ports.document_store import Document, DocumentStore
from catalog_ingest.ports.identity import IdentityProvider
from catalog_ingest.ports.object_store import ObjectStore

_log = logging.getLogger(__name__)

ORPHAN_CATEGORY = "other"
ORPHAN_TAGS = ("wallpaper", "download")


@dataclass(frozen=True)
class OrphanObject:
    key: str
    url: str
    name: str
    size_bytes: Optional[int] = None


@dataclass(frozen=True)
class ReconcileReport:
    admin_uid: str
    stored: int
    published: int
    orphans: List[OrphanObject]
    publish: Optional[PublishResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def key_of_url(url: str, prefix: str) -> Optional[str]:
    """카탈로그 imageUrl에서 "{prefix}/..." object key 부분을 추출합니다.

    public 도메인 URL, path-style(버킷명 포함) URL, presigned URL(query 무시) 모두 같은 key를 돌려줍니다.
    """
    path = unquote(urlparse(url or "").path)
    marker = prefix.strip("/") + "/"
    idx = path.rfind("/" + marker)
    if idx >= 0:
        return path[idx + 1:]
    if path.startswith(marker):
        return path
    return None


def find_unpublished_objects(
    object_store: ObjectStore,
    document_store: DocumentStore,
    *,
    prefix: str = "wallpapers",
    collection: str = "wallpapers",
) -> List[OrphanObject]:
    """prefix 아래 오브젝트 중 어떤 카탈로그 문서의 imageUrl에도 쓰이지 않은 것을 찾습니다.

    비교는 URL 자체와 URL에서 추출한 object key 양쪽으로 합니다.
    """
    docs = document_store.query(collection)
    published_urls = set()
    published_keys = set()
    for _, doc in docs:
        url = doc.get("imageUrl")
        if not url:
            continue
        published_urls.add(url)
        key = key_of_url(url, prefix)
        if key:
            published_keys.add(key)

    orphans: List[OrphanObject] = []
    for obj in object_store.list(prefix.strip("/") + "/"):
        if obj.key in published_keys:
            continue
        url = object_store.public_url(obj.key)
        if url in published_urls:
            continue
        orphans.append(OrphanObject(obj.key, url, display_name_of_key(obj.key), obj.size_bytes))

    _log.info("Reconcile: docs=%d orphans=%d", len(docs), len(orphans))
    return orphans


def orphan_document(orphan: OrphanObject, doc_id: str, now: Optional[str] = None) -> Document:
    """orphan 오브젝트용 기본 카탈로그 문서."""
    ts = now or iso_utc()
    return {
        "id": doc_id,
        "title": f"Wallpaper {orphan.name}",
        "description": f"Beautiful wallpaper {orphan.name}",
        "category": ORPHAN_CATEGORY,
        "tags": list(ORPHAN_TAGS),
        "price": 0,
        "imageUrl": orphan.url,
        "dimensions": "",
        "createdAt": ts,
        "updatedAt": ts,
    }


def publish_orphans(
    orphans: Sequence[OrphanObject],
    document_store: DocumentStore,
    *,
    collection: str = "wallpapers",
    batch_size: int = 100,
    delay_sec: float = 0.3,
    on_progress: Optional[Callable[[int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PublishResult:
    """선택된 orphan을 기본 메타데이터로 게시합니다. commit 실패는 PublishResult.error로 반환합니다."""
    now = iso_utc()
    return commit_in_chunks(
        orphans,
        lambda o, doc_id: orphan_document(o, doc_id, now),
        document_store,
        collection=collection,
        batch_size=batch_size,
        delay_sec=delay_sec,
        on_progress=on_progress,
        sleep=sleep,
    )


def reconcile(
    *,
    config_path: Optional[Path] = None,
    cfg: Optional[Dict[str, Any]] = None,
    token: Optional[str] = None,
    publish: bool = False,
    select: Optional[Sequence[str]] = None,
    object_store: Optional[ObjectStore] = None,
    document_store: Optional[DocumentStore] = None,
    identity: Optional[IdentityProvider] = None,
    on_progress: Optional[Callable[[int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ReconcileReport:
    """orphan 오브젝트를 조회하고, publish=True면 선택된 것(select가 없으면 전부)을 게시합니다.

    Raises:
        AuthorizationError: 관리자 권한 확인 실패.
        ValueError: 필수 설정 누락.
    """
    if cfg is None:
        cfg = load_config(config_path or Path(DEFAULT_CONFIG_PATH))

    doc_store = document_store or build_document_store(cfg)
    try:
        return _reconcile(cfg, doc_store, token, publish, select, object_store, identity, on_progress, sleep)
    finally:
        if document_store is None:
            doc_store.close()


def _reconcile(
    cfg: Dict[str, Any],
    doc_store: DocumentStore,
    token: Optional[str],
    publish: bool,
    select: Optional[Sequence[str]],
    object_store: Optional[ObjectStore],
    identity: Optional[IdentityProvider],
    on_progress: Optional[Callable[[int], None]],
    sleep: Callable[[float], None],
) -> ReconcileReport:
    guard = AdminGuard(identity or build_identity(cfg), doc_store, get_str(cfg, "catalog.users_collection", "users"))
    admin_uid = guard.require_admin(token if token is not None else get_str(cfg, "auth.token"))

    obj_store = object_store or build_object_store(cfg)
    prefix = get_str(cfg, "storage.key_prefix", "wallpapers")
    collection = get_str(cfg, "catalog.collection", "wallpapers")

    stored = len(obj_store.list(prefix.strip("/") + "/"))
    orphans = find_unpublished_objects(obj_store, doc_store, prefix=prefix, collection=collection)

    result: Optional[PublishResult] = None
    if publish:
        chosen = orphans
        if select:
            wanted = set(select)
            chosen = [o for o in orphans if o.key in wanted or o.name in wanted]
        result = publish_orphans(
            chosen,
            doc_store,
            collection=collection,
            batch_size=int(get_value(cfg, "publish.batch_size", 100)),
            delay_sec=float(get_value(cfg, "publish.delay_sec", 0.3)),
            on_progress=on_progress,
            sleep=sleep,
        )
        _log.info("Published %d orphan(s)", result.published)

    return ReconcileReport(
        admin_uid=admin_uid,
        stored=stored,
        published=stored - len(orphans),
        orphans=orphans,
        publish=result,
    )
