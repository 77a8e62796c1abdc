# ==============================================================================
# 목적 : 카테고리 목록 관리(기본 목록 + Document Store)
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-04
# AI 활용 여부 :
# ==============================================================================

import logging
import threading
from typing import Dict, List, Optional

from catalog_ingest.common.ids import normalize_category
from catalog_ingest.common.runtime import iso_utc
from catalog_ingest.domain.errors import StoreError
from catalog_ingest.domain.models import CategoryOption
from catalog_ingest.ports.document_store import DocumentStore

_log = logging.getLogger(__name__)

DEFAULT_CATEGORIES = (
    CategoryOption("Abstract", "abstract"),
    CategoryOption("Nature", "nature"),
    CategoryOption("Minimalist", "minimalist"),
    CategoryOption("Dark", "dark"),
    CategoryOption("Colorful", "colorful"),
    CategoryOption("Technology", "technology"),
    CategoryOption("Space", "space"),
    CategoryOption("Art", "art"),
)


def _label_of(value: str) -> str:
    return value[:1].upper() + value[1:]


class CategoryRegistry:
    """기본 카테고리와 categories 컬렉션의 합집합을 캐시합니다.

    캐시는 refresh() 호출 시에만 다시 읽습니다(벌크 업로드 세션 시작마다 1회).
    register()는 문서가 없을 때만 생성하므로 동시에 여러 업로더가 같은 값을 등록해도
    먼저 쓴 쪽이 유지됩니다.
    """
    def __init__(self, store: DocumentStore, collection: str = "categories"):
        self._store = store
        self._collection = collection
        self._lock = threading.Lock()
        self._options: Dict[str, CategoryOption] = {c.value: c for c in DEFAULT_CATEGORIES}

    def refresh(self) -> List[CategoryOption]:
        """저장소에서 카테고리를 다시 읽어 캐시를 교체합니다.

        저장소 조회에 실패하면 경고를 남기고 기본 목록만 사용합니다.
        """
        merged: Dict[str, CategoryOption] = {c.value: c for c in DEFAULT_CATEGORIES}
        try:
            docs = self._store.query(self._collection)
        except StoreError as e:
            _log.warning("Failed to load categories, using defaults: %s", e)
            docs = []

        for doc_id, doc in docs:
            value = normalize_category(doc.get("value") or doc_id)
            if value and value not in merged:
                merged[value] = CategoryOption(doc.get("label") or _label_of(value), value)

        with self._lock:
            self._options = merged
        _log.info("Categories refreshed: %d", len(merged))
        return self.options()

    def options(self) -> List[CategoryOption]:
        with self._lock:
            return list(self._options.values())

    def values(self) -> List[str]:
        with self._lock:
            return list(self._options)

    def contains(self, value: Optional[str]) -> bool:
        with self._lock:
            return normalize_category(value) in self._options

    def register(self, value: str) -> Optional[CategoryOption]:
        """새 카테고리를 등록합니다.

        Returns:
            등록(또는 이미 존재)된 CategoryOption. 값이 비었거나 저장에 실패하면 None.
        """
        canonical = normalize_category(value)
        if not canonical:
            return None
        with self._lock:
            if canonical in self._options:
                return self._options[canonical]

        option = CategoryOption(_label_of(canonical), canonical)
        try:
            created = self._store.create(
                self._collection,
                canonical,
                {"label": option.label, "value": canonical, "createdAt": iso_utc()},
            )
        except StoreError as e:
            _log.warning("Failed to register category: %s (%s)", canonical, e)
            return None

        if created:
            _log.info("Registered new category: %s", canonical)
        else:
            _log.info("Category already registered by another writer: %s", canonical)
        with self._lock:
            self._options.setdefault(canonical, option)
            return self._options[canonical]
