# ==============================================================================
# 목적 : 단일 파일 업로드 작업(진행률 / 취소 핸들) 관리
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-05
# AI 활용 여부 :
# ==============================================================================

import logging
import threading
from typing import Callable, Dict, List, Optional

from catalog_ingest.common.ids import build_storage_key
from catalog_ingest.common.runtime import now_ms
from catalog_ingest.domain.errors import UploadCanceledError
from catalog_ingest.domain.models import QueuedItem
from catalog_ingest.ports.object_store import ObjectStore

_log = logging.getLogger(__name__)


def percent_of(sent: int, total: int) -> int:
    """floor(sent / total * 100), total이 0이면 100."""
    if total <= 0:
        return 100
    return min(100, max(0, sent * 100 // total))


class UploadTaskManager:
    """아이템 하나의 전송을 감싸고 아이템별 cancel handle을 관리합니다.

    handle은 open_handle() 또는 전송 시작 시 등록되고, 전송이 끝나면(성공/실패/취소) 제거됩니다.
    큐는 전처리 전에 open_handle()을 호출해 그 사이의 취소도 전송에 반영되게 합니다.
    cancel()은 다른 스레드에서 호출해도 됩니다.
    """
    def __init__(
        self,
        store: ObjectStore,
        key_prefix: str = "wallpapers",
        clock_ms: Callable[[], int] = now_ms,
    ):
        self._store = store
        self._prefix = key_prefix
        self._clock_ms = clock_ms
        self._lock = threading.Lock()
        self._handles: Dict[str, threading.Event] = {}

    def key_for(self, item: QueuedItem) -> str:
        return build_storage_key(self._prefix, item.id, self._clock_ms(), item.source_name)

    def open_handle(self, item_id: str) -> threading.Event:
        """아이템의 cancel handle을 등록합니다. 이미 있으면 그대로 반환합니다."""
        with self._lock:
            ev = self._handles.get(item_id)
            if ev is None:
                ev = threading.Event()
                self._handles[item_id] = ev
            return ev

    def release(self, item_id: str) -> None:
        with self._lock:
            self._handles.pop(item_id, None)

    def upload_item(
        self,
        item: QueuedItem,
        on_progress: Optional[Callable[[int], None]] = None,
        key: Optional[str] = None,
    ) -> str:
        """아이템의 source를 object store에 올리고 조회 가능한 URL을 반환합니다.

        Args:
            item: 업로드할 아이템. 이 함수는 아이템 상태를 바꾸지 않습니다.
            on_progress: 0~100 정수 진행률 콜백.
            key: 사용할 object key. 없으면 key_for(item)으로 생성합니다.

        Returns:
            object URL.

        Raises:
            UploadCanceledError: cancel(item.id) 또는 cancel_all()로 중단된 경우.
            Exception: 저장소 오류는 그대로 전파합니다.
        """
        object_key = key or self.key_for(item)
        cancel_event = self.open_handle(item.id)
        if cancel_event.is_set():
            self.release(item.id)
            raise UploadCanceledError(item.id)

        def _progress(sent: int, total: int) -> None:
            if on_progress is not None:
                on_progress(percent_of(sent, total))

        try:
            self._store.put(
                object_key,
                item.source.data,
                content_type=item.source.mime_type,
                on_progress=_progress,
                cancel_event=cancel_event,
            )
        except UploadCanceledError as e:
            raise UploadCanceledError(item.id) from e
        except Exception as e:
            if cancel_event.is_set():
                raise UploadCanceledError(item.id) from e
            raise
        finally:
            with self._lock:
                if self._handles.get(item.id) is cancel_event:
                    del self._handles[item.id]

        url = self._store.public_url(object_key)
        _log.info("Uploaded %s -> %s", item.source_name, object_key)
        return url

    def cancel(self, item_id: str) -> bool:
        """진행 중인 전송 하나를 중단합니다. handle이 없으면 False."""
        with self._lock:
            ev = self._handles.get(item_id)
        if ev is None:
            return False
        ev.set()
        return True

    def cancel_all(self) -> List[str]:
        with self._lock:
            handles = list(self._handles.items())
        for _, ev in handles:
            ev.set()
        return [item_id for item_id, _ in handles]

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._handles)
