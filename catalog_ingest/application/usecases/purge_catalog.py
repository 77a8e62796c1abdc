# ==============================================================================
# 목적 : 카탈로그 전체 삭제(오브젝트 + 문서). 확인 문구 필수
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-06
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from catalog_ingest.application.services.authorization import AdminGuard
from catalog_ingest.application.usecases.wiring import (
    DEFAULT_CONFIG_PATH,
    build_document_store,
    build_identity,
    build_object_store,
)
from catalog_ingest.common.batch import iter_chunks
from catalog_ingest.common.config import get_str, load_config
from catalog_ingest.domain.errors import ConfirmationError, StoreError
from catalog_ingest.ports.document_store import DocumentStore, WriteBatch
from catalog_ingest.ports.identity import IdentityProvider
from catalog_ingest.ports.object_store import ObjectStore

_log = logging.getLogger(__name__)

CONFIRMATION_PHRASE = "DELETE ALL WALLPAPERS"


@dataclass(frozen=True)
class PurgeResult:
    objects_deleted: int
    documents_deleted: int
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def purge_catalog(
    object_store: ObjectStore,
    document_store: DocumentStore,
    *,
    confirmation: str,
    prefix: str = "wallpapers",
    collection: str = "wallpapers",
) -> PurgeResult:
    """prefix 아래 모든 오브젝트와 collection의 모든 문서를 삭제합니다. 되돌릴 수 없습니다.

    오브젝트 삭제 실패는 errors에 모으고 계속 진행합니다.
    문서는 WriteBatch.MAX_OPS 단위로 삭제하며, batch 실패 시 중단하고 errors에 남깁니다.

    Raises:
        ConfirmationError: confirmation이 CONFIRMATION_PHRASE와 정확히 같지 않은 경우.
    """
    if confirmation != CONFIRMATION_PHRASE:
        raise ConfirmationError(f'Type "{CONFIRMATION_PHRASE}" to confirm')

    errors: List[str] = []
    objects_deleted = 0
    for obj in object_store.list(prefix.strip("/") + "/"):
        try:
            object_store.delete(obj.key)
            objects_deleted += 1
        except Exception as e:
            _log.warning("Failed to delete object %s: %s", obj.key, e)
            errors.append(f"{obj.key}: {e}")
    _log.info("Deleted %d object(s) under %s", objects_deleted, prefix)

    documents_deleted = 0
    doc_ids = [doc_id for doc_id, _ in document_store.query(collection)]
    for _, chunk in iter_chunks(doc_ids, WriteBatch.MAX_OPS):
        batch = document_store.batch()
        for doc_id in chunk:
            batch.delete(collection, doc_id)
        try:
            batch.commit()
        except StoreError as e:
            _log.error("Failed to delete documents: %s", e)
            errors.append(str(e))
            break
        documents_deleted += len(chunk)
    _log.info("Deleted %d document(s) from %s", documents_deleted, collection)

    return PurgeResult(objects_deleted=objects_deleted, documents_deleted=documents_deleted, errors=errors)


def purge(
    *,
    confirmation: str,
    config_path: Optional[Path] = None,
    cfg: Optional[Dict[str, Any]] = None,
    token: Optional[str] = None,
    object_store: Optional[ObjectStore] = None,
    document_store: Optional[DocumentStore] = None,
    identity: Optional[IdentityProvider] = None,
) -> PurgeResult:
    """관리자 확인 후 purge_catalog를 실행합니다.

    Raises:
        ConfirmationError: 확인 문구 불일치(어떤 연결도 만들기 전에 확인합니다).
        AuthorizationError: 관리자 권한 확인 실패.
    """
    if confirmation != CONFIRMATION_PHRASE:
        raise ConfirmationError(f'Type "{CONFIRMATION_PHRASE}" to confirm')
    if cfg is None:
        cfg = load_config(config_path or Path(DEFAULT_CONFIG_PATH))

    doc_store = document_store or build_document_store(cfg)
    try:
        guard = AdminGuard(identity or build_identity(cfg), doc_store, get_str(cfg, "catalog.users_collection", "users"))
        guard.require_admin(token if token is not None else get_str(cfg, "auth.token"))

        return purge_catalog(
            object_store or build_object_store(cfg),
            doc_store,
            confirmation=confirmation,
            prefix=get_str(cfg, "storage.key_prefix", "wallpapers"),
            collection=get_str(cfg, "catalog.collection", "wallpapers"),
        )
    finally:
        if document_store is None:
            doc_store.close()
