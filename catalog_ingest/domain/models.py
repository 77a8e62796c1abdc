# ==============================================================================
# 목적 : 벌크 업로드 파이프라인에서 사용하는 모델 정의
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-02
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

ItemStatus = Literal["idle", "uploading", "success", "error"]
MatchType = Literal["exact", "partial"]
ValidationMode = Literal["strict", "warning"]

CsvRow = Dict[str, str]

SUPPORTED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp")
MAX_FILE_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class SourceFile:
    """업로드 대상 바이너리와 선언된 속성.

    Attributes:
        name: 원본 파일명.
        data: 파일 바이트.
        mime_type: 선언된 MIME 타입.
        size: 선언된 크기(bytes). 검증은 이 값을 기준으로 합니다.
    """
    name: str
    data: bytes
    mime_type: str
    size: int

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: Optional[str] = None) -> "SourceFile":
        mt = mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        return cls(name=name, data=data, mime_type=mt, size=len(data))

    @classmethod
    def from_path(cls, path: Path) -> "SourceFile":
        return cls.from_bytes(path.name, path.read_bytes())

    @property
    def stem(self) -> str:
        return self.name.split(".")[0]


@dataclass
class ItemMetadata:
    """카탈로그에 게시될 메타데이터. 업로드 시작 전까지 수정 가능합니다(관례, lock 없음)."""
    title: str = ""
    description: str = ""
    category: str = ""
    price: float = 0.0
    tags: List[str] = field(default_factory=list)
    dimensions: Optional[str] = None

    def copy(self) -> "ItemMetadata":
        return ItemMetadata(
            title=self.title,
            description=self.description,
            category=self.category,
            price=self.price,
            tags=list(self.tags),
            dimensions=self.dimensions,
        )


@dataclass
class QueuedItem:
    """파이프라인을 통과하는 업로드 후보 하나.

    상태 전이: idle -> uploading -> success | error, error -> uploading(retry).
    success 이후에는 is_pending_publication(True -> False)이 게시 여부를 나타냅니다.
    """
    id: str
    source: SourceFile
    metadata: ItemMetadata
    status: ItemStatus = "idle"
    progress: int = 0
    object_url: Optional[str] = None
    object_key: Optional[str] = None
    error: Optional[str] = None
    is_canceled: bool = False
    is_retrying: bool = False
    is_pending_publication: bool = False
    match_type: Optional[MatchType] = None

    @property
    def source_name(self) -> str:
        return self.source.name

    def snapshot(self) -> Dict[str, Any]:
        """바이너리를 제외한 현재 상태를 dict로 반환합니다(로그/리포트용)."""
        return {
            "id": self.id,
            "source_name": self.source.name,
            "source_size": self.source.size,
            "source_mime_type": self.source.mime_type,
            "status": self.status,
            "progress": self.progress,
            "object_url": self.object_url,
            "error": self.error,
            "is_canceled": self.is_canceled,
            "is_retrying": self.is_retrying,
            "is_pending_publication": self.is_pending_publication,
            "match_type": self.match_type,
            "metadata": asdict(self.metadata),
        }


@dataclass(frozen=True)
class CategoryOption:
    label: str
    value: str


@dataclass(frozen=True)
class UnpublishedUpload:
    """저장소에는 올라갔지만 아직 카탈로그 문서가 없는 업로드."""
    item_id: str
    object_url: str


@dataclass(frozen=True)
class CatalogDocument:
    """Document store에 게시되는 월페이퍼 카탈로그 레코드."""
    id: str
    title: str
    description: str
    category: str
    tags: List[str]
    price: float
    image_url: str
    dimensions: str
    created_at: str
    updated_at: str

    def to_document(self) -> Dict[str, Any]:
        """저장 포맷(camelCase 키)으로 변환합니다."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "price": self.price,
            "imageUrl": self.image_url,
            "dimensions": self.dimensions,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class StoredObject:
    """Object store에 저장된 오브젝트의 위치 정보."""
    key: str
    size_bytes: Optional[int] = None
    etag: Optional[str] = None
    content_type: Optional[str] = None


@dataclass(frozen=True)
class FileValidation:
    valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class CsvRowValidation:
    valid: bool
    errors: List[str]
    new_category: Optional[str] = None


@dataclass(frozen=True)
class IntakeResult:
    """파일 드롭(intake) 결과. rejected=True이면 어떤 아이템도 큐에 추가되지 않았습니다."""
    added: List[str]
    errors: List[str]
    rejected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CsvImportResult:
    """CSV 가져오기 결과.

    Attributes:
        rows: 이후 매칭에 사용할 행(strict 모드에서는 유효한 행만).
        errors: 행 단위/헤더 단위 오류 메시지.
        new_categories: 새로 발견되어 등록을 시도한 카테고리.
        rejected: strict 모드에서 가져오기 전체가 거부되었는지 여부.
        total_rows: 파일에 있던 데이터 행 수.
    """
    rows: List[CsvRow]
    errors: List[str]
    new_categories: List[str]
    rejected: bool
    total_rows: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MatchReport:
    """CSV-파일 매칭 집계.

    Attributes:
        exact: 파일명이 정확히 일치한 아이템 수.
        partial: 부분 일치로 매칭된 아이템 수.
        unmatched: 매칭되지 않은 아이템 수.
        skipped: 어떤 아이템과도 맞지 않은 CSV filename 목록.
        ambiguous: 부분 일치 후보가 둘 이상이었던 경우 {item 파일명: [후보 CSV filename...]}.
        matches: {item_id: 매칭된 CSV filename}.
    """
    exact: int
    partial: int
    unmatched: int
    skipped: List[str]
    ambiguous: Dict[str, List[str]]
    matches: Dict[str, str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UploadRunResult:
    total: int
    succeeded: int
    failed: int
    canceled: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PublishResult:
    """게시(publish) 결과. error가 있으면 남은 chunk는 처리되지 않았습니다."""
    total: int
    published: int
    batches_committed: int
    document_ids: List[str]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
