# ==============================================================================
# 목적 : Object Store 인터페이스
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-02
# AI 활용 여부 :
# ==============================================================================

import threading
from typing import Callable, List, Optional

from catalog_ingest.domain.models import StoredObject

ProgressCallback = Callable[[int, int], None]


class ObjectStore:
    """Blob 저장소 추상화. 구현체는 infra.storage 아래에 둡니다.

    put(): 전송 중 on_progress(bytes_transferred, total_bytes)를 호출하고,
    cancel_event가 set되면 전송을 중단하고 UploadCanceledError를 발생시켜야 합니다.
    """

    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> StoredObject:
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        raise NotImplementedError

    def list(self, prefix: str) -> List[StoredObject]:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError
