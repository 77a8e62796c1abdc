# ==============================================================================
# 목적 : 파일 / CSV 행 검증
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-04
# AI 활용 여부 :
# ==============================================================================

import math
from typing import Iterable, List, Optional

from catalog_ingest.common.ids import normalize_category
from catalog_ingest.domain.models import (
    MAX_FILE_BYTES,
    SUPPORTED_MIME_TYPES,
    CategoryOption,
    CsvRow,
    CsvRowValidation,
    FileValidation,
    SourceFile,
)


def validate_file(file: SourceFile, max_bytes: int = MAX_FILE_BYTES) -> FileValidation:
    """업로드 후보 파일의 크기/타입을 검증합니다(순수 함수)."""
    if file.size > max_bytes:
        return FileValidation(False, f"File {file.name} exceeds {max_bytes // (1024 * 1024)}MB limit")
    if file.mime_type not in SUPPORTED_MIME_TYPES:
        return FileValidation(False, f"File {file.name} is not a supported image format")
    return FileValidation(True)


def names_match(file_name: str, csv_filename: str) -> bool:
    """파일명이 같거나 한쪽이 다른 쪽을 포함하면 True (대소문자 구분)."""
    return file_name == csv_filename or csv_filename in file_name or file_name in csv_filename


def parse_price(raw: Optional[str]) -> Optional[float]:
    """가격 문자열을 float로 변환합니다. 비었거나 숫자가 아니거나 음수/무한대면 None."""
    s = (raw or "").strip()
    if not s:
        return None
    try:
        v = float(s)
    except ValueError:
        return None
    if math.isnan(v) or math.isinf(v) or v < 0:
        return None
    return v


def validate_csv_row(
    row: CsvRow,
    index: int,
    known_files: Optional[Iterable[str]] = None,
    known_categories: Optional[Iterable[CategoryOption]] = None,
) -> CsvRowValidation:
    """CSV 한 행을 검증합니다.

    - title/filename 누락은 오류입니다.
    - known_files가 주어지면 filename이 어떤 파일명과 같거나 포함 관계여야 합니다.
      맞지 않으면 오류를 추가하지만 행을 버리지는 않습니다(판단은 호출자).
    - 알 수 없는 category는 오류가 아니라 new_category로 보고합니다.
    - price가 있으면 0 이상의 숫자여야 합니다.

    Args:
        row: 컬럼명 -> 문자열 값.
        index: 0부터 시작하는 행 번호(메시지에는 index + 1로 표기).
        known_files: 업로드된 파일명 목록.
        known_categories: 현재 카테고리 목록.

    Returns:
        CsvRowValidation(valid, errors, new_category).
    """
    errors: List[str] = []
    new_category: Optional[str] = None
    n = index + 1

    if not (row.get("title") or "").strip():
        errors.append(f"Row {n}: Missing title")

    filename = (row.get("filename") or "").strip()
    if not filename:
        errors.append(f"Row {n}: Missing filename")
    else:
        files = list(known_files or [])
        if files and not any(names_match(f, filename) for f in files):
            errors.append(f'Row {n}: File "{filename}" not found in uploaded files (will be skipped)')

    category = (row.get("category") or "").strip()
    if category and known_categories is not None:
        values = {c.value for c in known_categories}
        if normalize_category(category) not in values:
            new_category = category

    price = (row.get("price") or "").strip()
    if price and parse_price(price) is None:
        errors.append(f"Row {n}: Price must be a non-negative number")

    return CsvRowValidation(valid=not errors, errors=errors, new_category=new_category)
