# ==============================================================================
# 목적 : Runtime 관련 유틸
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-02
# AI 활용 여부 :
# ==============================================================================

import time, logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

_log = logging.getLogger(__name__)


def request_with_retry(
    fn: Callable[[], Any],
    *,
    retries: int = 3,
    base_sleep: float = 0.5,
    max_sleep: float = 4.0,
    is_retriable: Optional[Callable[[Exception], bool]] = None,
) -> Any:
    """요청 함수를 실행하고 실패 시 지수 백오프로 재시도합니다.

    fn() 실행 중 예외가 발생하면 최대 retries 횟수만큼 시도합니다.
    is_retriable이 주어지고 False를 반환하는 예외는 재시도 없이 그대로 전파합니다.
    재시도 간 대기 시간은 base_sleep * 2 ** attempt 형태로 증가하며 max_sleep을 상한으로 합니다.

    Args:
        fn: 인자 없이 호출 가능한 요청 함수.
        retries: 총 시도 횟수(최초 시도 포함).
        base_sleep: 첫 재시도 대기 시간(초).
        max_sleep: 대기 시간 상한(초).
        is_retriable: 예외별 재시도 여부 판정 함수.

    Returns:
        fn()이 성공적으로 반환한 값.

    Raises:
        RuntimeError: retries 횟수만큼 시도했음에도 모두 실패한 경우.
        Exception: is_retriable이 False로 판정한 예외.
    """
    last_err: Optional[Exception] = None
    for attempt in range(retries):
        try:
            return fn()
        except Exception as e:
            if is_retriable is not None and not is_retriable(e):
                raise
            last_err = e
            if attempt + 1 >= retries:
                break
            sleep = min(max_sleep, base_sleep * (2 ** attempt))
            _log.warning("Request failed (attempt=%d/%d): %s -> sleep %.1fs", attempt + 1, retries, e, sleep)
            time.sleep(sleep)
    raise RuntimeError(f"Request failed after {retries} retries: {last_err}") from last_err


def now_utc() -> datetime:
    """timezone.utc가 설정된 현재 시각을 반환합니다."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """현재 시각을 epoch milliseconds로 반환합니다. object key 충돌 방지에 사용합니다."""
    return int(time.time() * 1000)


def iso_utc(dt: Optional[datetime] = None) -> str:
    """UTC ISO-8601 문자열을 반환합니다. 카탈로그 문서의 createdAt/updatedAt 포맷입니다."""
    return (dt or now_utc()).isoformat()
