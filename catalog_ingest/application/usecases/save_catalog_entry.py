# ==============================================================================
# 목적 : 카탈로그 엔트리 생성/수정(스키마 검증 + 고유 slug)
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-06
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from catalog_ingest.common.ids import next_free_slug, slugify
from catalog_ingest.common.runtime import iso_utc
from catalog_ingest.domain.schemas import CatalogEntryInput, format_validation_errors
from catalog_ingest.ports.document_store import DocumentStore

_log = logging.getLogger(__name__)

SLUG_RANGE_END = "\uf8ff"


@dataclass(frozen=True)
class SaveResult:
    """저장 결과. 검증 실패면 success=False이고 errors에 "field: message" 목록이 담깁니다."""
    success: bool
    message: str
    wallpaper_id: Optional[str] = None
    slug: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def generate_unique_slug(title: str, store: DocumentStore, collection: str = "wallpapers") -> str:
    """제목에서 slug를 만들고, 같은 prefix의 slug가 이미 있으면 "-N"을 붙입니다."""
    base = slugify(title)
    rows = store.query(
        collection,
        where=[("slug", ">=", base), ("slug", "<=", base + SLUG_RANGE_END)],
    )
    if not rows:
        return base
    taken = {doc.get("slug") for _, doc in rows}
    return next_free_slug(base, taken)


def save_catalog_entry(
    store: DocumentStore,
    payload: Mapping[str, Any],
    *,
    uid: str,
    collection: str = "wallpapers",
) -> SaveResult:
    """카탈로그 엔트리를 검증 후 생성하거나 수정합니다.

    - id가 없으면 새 문서를 slug(제공값 또는 제목에서 생성)를 키로 만듭니다.
    - id가 있으면 기존 문서를 수정하며, 제목이 바뀌어 slug가 달라지면
      새 slug로 문서를 옮기고 이전 문서를 삭제합니다(한 batch로 commit).

    Args:
        store: Document store.
        payload: camelCase 키의 입력 dict.
        uid: 작업한 관리자 uid.
        collection: 카탈로그 컬렉션명.

    Returns:
        SaveResult.

    Raises:
        StoreError: 저장소 오류.
    """
    try:
        entry = CatalogEntryInput.model_validate(dict(payload))
    except ValidationError as e:
        errors = format_validation_errors(e)
        _log.warning("Catalog entry validation failed: %s", ", ".join(errors))
        return SaveResult(success=False, message="Validation error", errors=errors)

    now = iso_utc()
    fields = entry.to_fields()

    if entry.id:
        current = store.get(collection, entry.id)
        if current is None:
            return SaveResult(success=False, message="Wallpaper not found", wallpaper_id=entry.id)

        new_slug = entry.id
        if current.get("title") != entry.title:
            new_slug = generate_unique_slug(entry.title, store, collection)

        body = {**current, **fields, "updatedAt": now, "updatedBy": uid, "slug": new_slug}
        if new_slug != entry.id:
            batch = store.batch()
            batch.set(collection, new_slug, body)
            batch.delete(collection, entry.id)
            batch.commit()
            _log.info("Catalog entry moved: %s -> %s", entry.id, new_slug)
        else:
            store.set(collection, entry.id, body)
            _log.info("Catalog entry updated: %s", entry.id)
        return SaveResult(success=True, message="Wallpaper updated successfully", wallpaper_id=new_slug, slug=new_slug)

    slug = entry.slug or generate_unique_slug(entry.title, store, collection)
    body = {
        **fields,
        "createdAt": now,
        "updatedAt": now,
        "createdBy": uid,
        "views": 0,
        "favorites": 0,
        "slug": slug,
        "version": 1,
    }
    store.set(collection, slug, body)
    _log.info("Catalog entry created: %s", slug)
    return SaveResult(success=True, message="Wallpaper created successfully", wallpaper_id=slug, slug=slug)
