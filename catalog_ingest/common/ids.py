# ==============================================================================
# 목적 : ID / Object Key / Slug 관련 유틸
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-02
# AI 활용 여부 :
# ==============================================================================

import re
import uuid
from pathlib import PurePosixPath
from typing import Optional


def new_item_id() -> str:
    """큐 아이템 식별자를 생성합니다(uuid4 hex)."""
    return uuid.uuid4().hex


def build_storage_key(prefix: str, item_id: str, timestamp_ms: int, filename: str) -> str:
    """업로드 대상 object key를 생성합니다.

    같은 파일을 재업로드해도 덮어쓰지 않도록 item_id와 업로드 시각(ms)을 함께 넣습니다.
    키 포맷: {prefix}/{item_id}-{timestamp_ms}-{filename}

    Args:
        prefix: 버킷 내 경로 prefix(예: "wallpapers").
        item_id: 큐 아이템 식별자.
        timestamp_ms: 업로드 시각(epoch ms).
        filename: 원본 파일명. 경로 구분자는 제거합니다.

    Returns:
        object key 문자열.
    """
    name = PurePosixPath(filename.replace("\\", "/")).name or "file"
    p = prefix.strip("/")
    object_name = f"{item_id}-{timestamp_ms}-{name}"
    return f"{p}/{object_name}" if p else object_name


def display_name_of_key(object_key: str) -> str:
    """object key에서 사람이 읽을 이름(확장자 제외)을 추출합니다.

    build_storage_key 포맷이면 마지막 '-' 이후의 원본 파일명 stem을 반환합니다.
    예: "wallpapers/ab12-1700000000000-sunset.jpg" -> "sunset"
    """
    name = PurePosixPath(object_key).name
    tail = name.rsplit("-", 1)[-1]
    stem = tail.rsplit(".", 1)[0]
    return stem or name


def join_url(base_url: str, object_key: str) -> str:
    """public base URL과 object key를 '/' 하나로 이어 붙입니다."""
    return base_url.rstrip("/") + "/" + object_key.lstrip("/")


_SLUG_STRIP = re.compile(r"[^\w\s-]")
_SLUG_SPACE = re.compile(r"\s+")
_SLUG_DASH = re.compile(r"-+")


def slugify(title: str) -> str:
    """제목을 URL용 slug로 변환합니다.

    소문자화 후 특수문자를 제거하고 공백은 '-'로, 연속된 '-'는 하나로 합칩니다.
    """
    s = title.lower().strip()
    s = _SLUG_STRIP.sub("", s)
    s = _SLUG_SPACE.sub("-", s)
    s = _SLUG_DASH.sub("-", s)
    return s


def next_free_slug(base: str, taken: set, start: int = 1) -> str:
    """taken에 없는 "{base}-{n}" 형태의 slug를 찾습니다."""
    n = start
    candidate = f"{base}-{n}"
    while candidate in taken:
        n += 1
        candidate = f"{base}-{n}"
    return candidate


def normalize_category(value: Optional[str]) -> str:
    """카테고리 값을 canonical 형태(trim + 소문자)로 정규화합니다."""
    return (value or "").strip().lower()
