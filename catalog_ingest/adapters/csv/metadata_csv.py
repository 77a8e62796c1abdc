# ==============================================================================
# 목적 : 메타데이터 CSV 파싱 / 템플릿
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-04
# AI 활용 여부 :
# ==============================================================================

import csv
import io
from pathlib import Path
from typing import List, Tuple

from catalog_ingest.domain.models import CsvRow

REQUIRED_COLUMNS = ("filename", "title")
OPTIONAL_COLUMNS = ("description", "category", "price", "tags")

CSV_TEMPLATE = """filename,title,description,category,price,tags
"sunset.jpg","Sunset Mountain","Beautiful sunset over mountains","nature",0,"sunset,mountains,nature"
"abstract.png","Abstract Pattern","Colorful abstract pattern","abstract",5,"abstract,colorful,pattern"
"forest.jpg","Dark Forest","Mysterious dark forest scene","dark",0,"forest,dark,trees"
"""


def parse_metadata_csv(text: str) -> Tuple[List[str], List[CsvRow]]:
    """헤더가 있는 CSV 텍스트를 (컬럼 목록, 행 목록)으로 파싱합니다.

    - UTF-8 BOM을 제거하고 헤더명은 trim 합니다.
    - 모든 값이 비어있는 행은 건너뜁니다.
    - 누락된 셀은 ""로 채우고, 헤더보다 많은 셀(None 키)은 버립니다.

    Raises:
        csv.Error: CSV 문법 오류.
    """
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")), skipinitialspace=True)
    fields = [(f or "").strip() for f in (reader.fieldnames or [])]
    rows: List[CsvRow] = []
    for raw in reader:
        row: CsvRow = {}
        for k, v in raw.items():
            if k is None:
                continue
            row[k.strip()] = (v or "") if isinstance(v, str) else ""
        if not any(v.strip() for v in row.values()):
            continue
        rows.append(row)
    return fields, rows


def missing_columns(fields: List[str]) -> List[str]:
    return [c for c in REQUIRED_COLUMNS if c not in fields]


def split_tags(cell: str) -> List[str]:
    """"a, b,,c" -> ["a", "b", "c"]"""
    return [t.strip() for t in (cell or "").split(",") if t.strip()]


def write_csv_template(path: Path) -> Path:
    """다운로드용 CSV 템플릿(예시 3행)을 path에 저장합니다."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(CSV_TEMPLATE, encoding="utf-8")
    return path
