# ==============================================================================
# 목적 : MinIO(S3 호환) Object Store 어댑터 (MinIO / Cloudflare R2 공용)
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-03
# AI 활용 여부 :
# ==============================================================================

import io
import logging
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from minio import Minio

from catalog_ingest.common.ids import join_url
from catalog_ingest.domain.errors import UploadCanceledError
from catalog_ingest.domain.models import StoredObject
from catalog_ingest.ports.object_store import ObjectStore, ProgressCallback

_log = logging.getLogger(__name__)

PROVIDERS = ("minio", "r2")


@dataclass(frozen=True)
class MinIOConfig:
    """S3 호환 저장소 접근 설정 클래스.
    MinIO Python SDK(Minio 클라이언트) 초기화에 필요한 접속 정보와 기본 버킷, 공개 URL 규칙을 보관합니다.

    Attributes:
        endpoint: 저장소 endpoint(host[:port]).
        access_key: 액세스 키.
        secret_key: 비밀 키.
        bucket: 기본 사용할 버킷명.
        secure: HTTPS 사용 여부.
        provider: "minio" | "r2". r2는 region="auto", HTTPS를 기본으로 사용합니다.
        region: 리전. 비어 있으면 provider 기본값을 사용합니다.
        public_base_url: 공개 도메인(예: R2 public bucket). 없으면 presigned URL을 발급합니다.
        presign_expiry_hours: presigned URL 유효 시간.
    """
    endpoint: str
    access_key: str
    secret_key: str
    bucket: str
    secure: bool = False
    provider: str = "minio"
    region: Optional[str] = None
    public_base_url: Optional[str] = None
    presign_expiry_hours: int = 168


class _TransferProgress(threading.Thread):
    """Minio put_object의 progress 인자로 넘기는 관찰자.

    Minio는 set_meta()로 전체 길이를 알려준 뒤 part를 읽을 때마다 update(n)을 호출합니다.
    update() 시점에 cancel_event가 set되어 있으면 UploadCanceledError를 던져 전송을 중단합니다.
    update()는 part를 읽은 시점에 불리며 HTTP 전송 완료 시점이 아닙니다. part 하나에 들어가는 파일은
    PUT 요청 전에 100%가 보고되고, 그 요청이 진행되는 동안의 취소는 전송을 끊지 못합니다
    (요청이 끝난 뒤 큐가 결과를 버리고 오브젝트는 reconcile 대상으로 남습니다).
    스레드로 start하지 않습니다(SDK의 타입 요구사항만 맞춤).
    """
    def __init__(
        self,
        object_key: str,
        total: int,
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ):
        super().__init__(daemon=True)
        self._object_key = object_key
        self._total = total
        self._sent = 0
        self._on_progress = on_progress
        self._cancel_event = cancel_event

    def set_meta(self, object_name: str = "", total_length: int = 0) -> None:
        if total_length:
            self._total = total_length

    def update(self, size: int) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise UploadCanceledError(self._object_key)
        self._sent = min(self._total, self._sent + size)
        if self._on_progress is not None:
            self._on_progress(self._sent, self._total)


class MinIOObjectStore(ObjectStore):
    """S3 호환 저장소에 월페이퍼 오브젝트를 올리고/나열하고/삭제하는 어댑터.

    put(): progress 관찰자와 cancel_event를 지원하는 업로드.
    public_url(): 공개 도메인이 있으면 고정 URL, 없으면 presigned GET URL.
    list(): prefix 아래 오브젝트를 재귀적으로 나열.
    delete(): 오브젝트 삭제.
    """
    def __init__(self, cfg: MinIOConfig, client: Optional[Minio] = None):
        """어댑터를 초기화합니다.

        Args:
            cfg: MinIOConfig 설정 객체.
            client: 테스트 등에서 주입할 Minio 클라이언트. 없으면 cfg로 생성합니다.

        Raises:
            ValueError: provider 값이 허용되지 않은 경우.
        """
        if cfg.provider not in PROVIDERS:
            raise ValueError(f"unknown storage provider: {cfg.provider}")
        self._cfg = cfg
        self._bucket_checked = False
        if client is not None:
            self._client = client
            return
        region = cfg.region or ("auto" if cfg.provider == "r2" else None)
        secure = True if cfg.provider == "r2" else cfg.secure
        self._client = Minio(
            endpoint=cfg.endpoint,
            access_key=cfg.access_key,
            secret_key=cfg.secret_key,
            secure=secure,
            region=region,
        )

    @property
    def bucket(self) -> str:
        return self._cfg.bucket

    def ensure_bucket(self) -> None:
        """기본 버킷이 존재하도록 보장합니다. 프로세스당 한 번만 확인합니다."""
        if self._bucket_checked:
            return
        if not self._client.bucket_exists(bucket_name=self._cfg.bucket):
            self._client.make_bucket(bucket_name=self._cfg.bucket)
            _log.info("Created bucket: %s", self._cfg.bucket)
        self._bucket_checked = True

    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> StoredObject:
        """바이트 데이터를 key로 업로드합니다.

        업로드 전 cancel_event를 한 번 확인하고, 이후에는 progress 관찰자가 part 단위로 확인합니다.

        Args:
            key: 저장할 object key.
            data: 업로드할 바이트.
            content_type: MIME 타입.
            on_progress: (bytes_transferred, total_bytes) 콜백.
            cancel_event: set되면 전송을 중단합니다.

        Returns:
            StoredObject(key, size_bytes, etag, content_type).

        Raises:
            UploadCanceledError: 전송이 취소된 경우.
            minio.error.S3Error: 저장소가 요청을 거부한 경우.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise UploadCanceledError(key)
        self.ensure_bucket()
        size = len(data)
        progress = _TransferProgress(key, size, on_progress, cancel_event)
        result = self._client.put_object(
            bucket_name=self._cfg.bucket,
            object_name=key,
            data=io.BytesIO(data),
            length=size,
            content_type=content_type or "application/octet-stream",
            progress=progress,
        )
        if on_progress is not None:
            on_progress(size, size)
        return StoredObject(
            key=key,
            size_bytes=size,
            etag=getattr(result, "etag", None),
            content_type=content_type,
        )

    def public_url(self, key: str) -> str:
        if self._cfg.public_base_url:
            return join_url(self._cfg.public_base_url, key)
        return self._client.presigned_get_object(
            bucket_name=self._cfg.bucket,
            object_name=key,
            expires=timedelta(hours=self._cfg.presign_expiry_hours),
        )

    def list(self, prefix: str) -> List[StoredObject]:
        out: List[StoredObject] = []
        for obj in self._client.list_objects(bucket_name=self._cfg.bucket, prefix=prefix, recursive=True):
            if getattr(obj, "is_dir", False):
                continue
            out.append(
                StoredObject(
                    key=obj.object_name,
                    size_bytes=getattr(obj, "size", None),
                    etag=getattr(obj, "etag", None),
                    content_type=getattr(obj, "content_type", None),
                )
            )
        return out

    def delete(self, key: str) -> None:
        self._client.remove_object(bucket_name=self._cfg.bucket, object_name=key)
