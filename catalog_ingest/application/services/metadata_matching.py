# ==============================================================================
# 목적 : CSV 행 <-> 큐 아이템 메타데이터 매칭 / 공통 메타데이터 적용
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-04
# AI 활용 여부 :
# ==============================================================================

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from catalog_ingest.adapters.csv.metadata_csv import split_tags
from catalog_ingest.application.services.validation import parse_price
from catalog_ingest.common.ids import normalize_category
from catalog_ingest.domain.models import CsvRow, ItemMetadata, MatchReport, QueuedItem

_log = logging.getLogger(__name__)


def _build_lookup(rows: Sequence[CsvRow]) -> Dict[str, CsvRow]:
    # 같은 filename이 여러 번 나오면 뒤의 행이 앞의 행을 대체합니다.
    lookup: Dict[str, CsvRow] = {}
    for row in rows:
        fn = (row.get("filename") or "").strip()
        if fn:
            lookup[fn] = row
    return lookup


def _partial_candidates(name: str, lookup: Dict[str, CsvRow]) -> List[str]:
    return [fn for fn in lookup if fn in name or name in fn]


def _merge_row(meta: ItemMetadata, row: CsvRow) -> None:
    """row의 비어있지 않은 필드만 meta에 덮어씁니다."""
    title = (row.get("title") or "").strip()
    if title:
        meta.title = title

    description = (row.get("description") or "").strip()
    if description:
        meta.description = description

    category = normalize_category(row.get("category"))
    if category:
        meta.category = category

    price = parse_price(row.get("price"))
    if price is not None:
        meta.price = price

    tags = split_tags(row.get("tags") or "")
    if tags:
        meta.tags = tags


def match_csv_to_items(
    items: Sequence[QueuedItem],
    rows: Sequence[CsvRow],
    allow_partial: bool = False,
) -> MatchReport:
    """CSV 행을 파일명 기준으로 아이템에 매칭하고 메타데이터를 병합합니다.

    1) filename(trim) -> row lookup을 만들고 source_name으로 정확히 일치하는 행을 찾습니다.
    2) allow_partial=True일 때만 부분 일치(행 filename이 파일명에 포함되거나 그 반대)를 시도하며,
       행 순서상 첫 후보를 사용합니다. 후보가 둘 이상이면 ambiguous에 남겨 검토할 수 있게 합니다.
    3) 매칭된 아이템은 match_type이 설정되고, 매칭되지 않은 아이템의 메타데이터는 건드리지 않습니다.

    같은 입력으로 두 번 호출해도 결과 메타데이터는 같습니다.

    Args:
        items: 큐 아이템(메타데이터가 제자리에서 수정됩니다).
        rows: CSV 행 목록.
        allow_partial: 부분 일치 허용 여부.

    Returns:
        MatchReport.
    """
    lookup = _build_lookup(rows)
    used: set = set()
    exact = partial = unmatched = 0
    ambiguous: Dict[str, List[str]] = {}
    matches: Dict[str, str] = {}

    for item in items:
        name = item.source_name
        row = lookup.get(name)
        if row is not None:
            _merge_row(item.metadata, row)
            item.match_type = "exact"
            used.add(name)
            matches[item.id] = name
            exact += 1
            continue

        candidates = _partial_candidates(name, lookup)
        if candidates and allow_partial:
            chosen = candidates[0]
            _merge_row(item.metadata, lookup[chosen])
            item.match_type = "partial"
            used.add(chosen)
            matches[item.id] = chosen
            if len(candidates) > 1:
                ambiguous[name] = candidates
            partial += 1
            continue

        if candidates:
            _log.info("Partial match candidates ignored for %s: %s", name, candidates)
        item.match_type = None
        unmatched += 1

    skipped = [fn for fn in lookup if fn not in used]
    report = MatchReport(
        exact=exact,
        partial=partial,
        unmatched=unmatched,
        skipped=skipped,
        ambiguous=ambiguous,
        matches=matches,
    )
    _log.info(
        "CSV matching: exact=%d partial=%d unmatched=%d skipped=%d ambiguous=%d",
        exact, partial, unmatched, len(skipped), len(ambiguous),
    )
    return report


def apply_shared_metadata(items: Sequence[QueuedItem], shared: Mapping[str, Any]) -> int:
    """공통 메타데이터를 모든 아이템에 덮어씁니다.

    category/price/description은 값이 truthy일 때만, tags는 비어있지 않을 때만 적용합니다.
    CSV 매칭과의 순서는 호출 순서대로이며 나중에 적용한 쪽이 이깁니다.

    Returns:
        수정된 아이템 수.
    """
    category = normalize_category(shared.get("category"))
    description: Optional[str] = shared.get("description") or None
    price = shared.get("price")
    tags = shared.get("tags") or []
    if isinstance(tags, str):
        tags = split_tags(tags)

    if not (category or description or price or tags):
        return 0

    for item in items:
        meta = item.metadata
        if category:
            meta.category = category
        if price:
            meta.price = float(price)
        if description:
            meta.description = description
        if tags:
            meta.tags = list(tags)
    return len(items)
