# ==============================================================================
# 목적 : 카탈로그 엔트리 입력 스키마(pydantic)
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-06
# AI 활용 여부 :
# ==============================================================================

from typing import List, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


def _check_url(value: str) -> str:
    parsed = urlparse(value or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid URL")
    return value


class ImageMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str
    alt: str = ""
    title: str = ""
    caption: str = ""
    description: str = ""

    @field_validator("url")
    @classmethod
    def _url(cls, v: str) -> str:
        return _check_url(v)


class CatalogEntryInput(BaseModel):
    """관리자 화면/API에서 들어오는 월페이퍼 엔트리.

    저장 포맷과 같은 camelCase 키(imageUrl, isPublic 등)로 받으며,
    price는 숫자 문자열도 허용합니다("5" -> 5.0).
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    title: str = Field(min_length=3, max_length=100)
    description: str = Field(min_length=10, max_length=500)
    prompt_text: str = Field("", alias="promptText")
    category: str = Field(min_length=1)
    image_url: str = Field(alias="imageUrl")
    image_metadata: Optional[ImageMetadata] = Field(None, alias="imageMetadata")
    additional_images: List[ImageMetadata] = Field(default_factory=list, alias="additionalImages", max_length=5)
    is_public: bool = Field(True, alias="isPublic")
    price: float = Field(0.0, ge=0)
    status: Literal["active", "draft", "archived"] = "active"
    featured: bool = False
    slug: Optional[str] = None

    @field_validator("image_url")
    @classmethod
    def _image_url(cls, v: str) -> str:
        return _check_url(v)

    def to_fields(self) -> dict:
        """id/slug를 제외한 저장 필드(camelCase)."""
        return self.model_dump(by_alias=True, exclude={"id", "slug"})


def format_validation_errors(err: ValidationError) -> List[str]:
    """pydantic 오류를 "field.path: message" 목록으로 변환합니다."""
    out: List[str] = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e.get("loc", ()))
        out.append(f"{loc}: {e.get('msg', 'invalid')}" if loc else str(e.get("msg", "invalid")))
    return out
