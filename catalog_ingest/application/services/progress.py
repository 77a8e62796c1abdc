# ==============================================================================
# 목적 : 업로드 진행률 이벤트 / throttle
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-05
# AI 활용 여부 :
# ==============================================================================

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Literal, Optional

EventKind = Literal["item_progress", "item_status", "queue_progress", "publish_progress"]


@dataclass(frozen=True)
class ProgressEvent:
    """큐가 구독자에게 전달하는 이벤트.

    Attributes:
        kind: 이벤트 종류.
        item_id: 아이템 이벤트일 때 대상 아이템.
        progress: 0~100.
        status: item_status일 때 새 상태.
        message: 오류 메시지 등 부가 정보.
    """
    kind: EventKind
    item_id: Optional[str] = None
    progress: Optional[int] = None
    status: Optional[str] = None
    message: Optional[str] = None


ProgressListener = Callable[[ProgressEvent], None]


class ProgressThrottle:
    """아이템별 최신 진행률을 side map에 모았다가 interval마다 한 번씩 sink로 내보냅니다.

    report()는 전송 스레드에서 자주 호출되고, sink 호출은 interval 당 최대 한 번입니다.
    같은 아이템의 값은 최대값만 유지합니다.
    """
    def __init__(
        self,
        sink: Callable[[str, int], None],
        interval_sec: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sink = sink
        self._interval = interval_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: Dict[str, int] = {}
        self._last_flush = clock()

    def report(self, item_id: str, progress: int) -> None:
        with self._lock:
            prev = self._pending.get(item_id, -1)
            self._pending[item_id] = max(prev, progress)
            due = self._clock() - self._last_flush >= self._interval
        if due:
            self.flush()

    def flush(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, {}
            self._last_flush = self._clock()
        for item_id, progress in pending.items():
            self._sink(item_id, progress)

    def discard(self, item_id: str) -> None:
        """아직 내보내지 않은 값을 버립니다(성공/실패로 확정된 아이템)."""
        with self._lock:
            self._pending.pop(item_id, None)
