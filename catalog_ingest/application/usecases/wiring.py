# ==============================================================================
# 목적 : 설정(dict) -> 어댑터/큐 설정 생성
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-06
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

from typing import Any, Dict, Union

from catalog_ingest.application.services.upload_queue import QueueSettings
from catalog_ingest.common.config import get_bool, get_str, get_value
from catalog_ingest.domain.models import ItemMetadata
from catalog_ingest.infra.identity.http_identity import HttpIdentityConfig, HttpIdentityProvider
from catalog_ingest.infra.storage.minio import MinIOConfig, MinIOObjectStore
from catalog_ingest.infra.storage.postgres import PostgresConfig, PostgresDocumentStore

DEFAULT_CONFIG_PATH = "config/config.yaml"


def build_object_store(cfg: Dict[str, Any]) -> MinIOObjectStore:
    """storage.* 설정으로 MinIOObjectStore를 생성합니다.

    Raises:
        ValueError: storage.endpoint/storage.bucket이 없는 경우.
    """
    minio_cfg = MinIOConfig(
        endpoint=get_str(cfg, "storage.endpoint"),
        access_key=get_str(cfg, "storage.access_key"),
        secret_key=get_str(cfg, "storage.secret_key"),
        bucket=get_str(cfg, "storage.bucket"),
        secure=get_bool(cfg, "storage.secure", False),
        provider=get_str(cfg, "storage.provider", "minio"),
        region=get_str(cfg, "storage.region") or None,
        public_base_url=get_str(cfg, "storage.public_base_url") or None,
        presign_expiry_hours=int(get_value(cfg, "storage.presign_expiry_hours", 168)),
    )
    if not minio_cfg.endpoint or not minio_cfg.bucket:
        raise ValueError("storage.endpoint/storage.bucket is required.")
    return MinIOObjectStore(minio_cfg)


def build_document_store(cfg: Dict[str, Any]) -> PostgresDocumentStore:
    """postgres.* 설정으로 PostgresDocumentStore를 생성하고 스키마를 준비합니다.

    Raises:
        ValueError: postgres.dsn이 없는 경우.
    """
    dsn = get_str(cfg, "postgres.dsn")
    if not dsn:
        raise ValueError("postgres.dsn is required.")
    store = PostgresDocumentStore(
        PostgresConfig(dsn=dsn, connect_timeout_sec=int(get_value(cfg, "postgres.connect_timeout_sec", 10)))
    )
    store.ensure_schema()
    return store


def build_identity(cfg: Dict[str, Any]) -> HttpIdentityProvider:
    """identity.* 설정으로 HttpIdentityProvider를 생성합니다.

    Raises:
        ValueError: identity.verify_url이 없는 경우.
    """
    url = get_str(cfg, "identity.verify_url")
    if not url:
        raise ValueError("identity.verify_url is required.")
    return HttpIdentityProvider(
        HttpIdentityConfig(
            verify_url=url,
            timeout_sec=int(get_value(cfg, "identity.timeout_sec", 10)),
            retries=int(get_value(cfg, "identity.retries", 3)),
        )
    )


def _concurrency(cfg: Dict[str, Any]) -> Union[int, str]:
    raw = get_value(cfg, "upload.concurrency", 1)
    if isinstance(raw, str) and raw.strip().lower() == "auto":
        return "auto"
    n = int(raw)
    if n < 1:
        raise ValueError("upload.concurrency must be >= 1 or 'auto'")
    return n


def build_queue_settings(cfg: Dict[str, Any]) -> QueueSettings:
    """upload/validation/image/publish 설정으로 QueueSettings를 생성합니다.

    Raises:
        ValueError: validation.mode나 upload.concurrency 값이 잘못된 경우.
    """
    mode = get_str(cfg, "validation.mode", "warning").lower()
    if mode not in ("strict", "warning"):
        raise ValueError(f"Invalid validation.mode: {mode}. use 'strict' or 'warning'")

    return QueueSettings(
        validation_mode=mode,
        item_delay_sec=float(get_value(cfg, "upload.item_delay_sec", 0.5)),
        error_delay_sec=float(get_value(cfg, "upload.error_delay_sec", 0.3)),
        progress_interval_sec=float(get_value(cfg, "upload.progress_interval_sec", 0.25)),
        concurrency=_concurrency(cfg),
        optimize_images=get_bool(cfg, "image.optimize", True),
        image_max_width=int(get_value(cfg, "image.max_width", 1920)),
        image_max_height=int(get_value(cfg, "image.max_height", 1920)),
        image_quality=float(get_value(cfg, "image.quality", 0.85)),
        max_file_bytes=int(float(get_value(cfg, "validation.max_file_mb", 10)) * 1024 * 1024),
        collection=get_str(cfg, "catalog.collection", "wallpapers"),
        publish_batch_size=int(get_value(cfg, "publish.batch_size", 100)),
        publish_delay_sec=float(get_value(cfg, "publish.delay_sec", 0.3)),
    )


def shared_metadata_of(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """shared_metadata.* 설정을 apply_shared_metadata() 입력 형태로 변환합니다."""
    price = get_value(cfg, "shared_metadata.price", None)
    return {
        "category": get_str(cfg, "shared_metadata.category"),
        "description": get_str(cfg, "shared_metadata.description"),
        "price": float(price) if price is not None else None,
        "tags": list(get_value(cfg, "shared_metadata.tags", []) or []),
    }


def defaults_of(shared: Dict[str, Any]) -> ItemMetadata:
    """intake 시 새 아이템에 복사할 기본 메타데이터."""
    return ItemMetadata(
        description=shared.get("description") or "",
        category=(shared.get("category") or "").lower(),
        price=float(shared.get("price") or 0.0),
        tags=list(shared.get("tags") or []),
    )
