# ==============================================================================
# 목적 : Batch(청크) 분할 유틸
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-02
# AI 활용 여부 :
# ==============================================================================

from typing import Iterable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")


def iter_chunks(items: Sequence[T], chunk_size: int) -> Iterable[Tuple[int, List[T]]]:
    """시퀀스를 chunk_size 단위로 잘라 (chunk 번호, chunk 리스트)를 순회합니다.

    입력 순서를 유지하며 마지막 chunk는 chunk_size보다 작을 수 있습니다.
    호출 시점의 items를 리스트로 복사한 뒤 자르므로, 순회 도중 원본이 바뀌어도 영향을 받지 않습니다.

    Args:
        items: 분할할 시퀀스.
        chunk_size: chunk 하나에 담을 최대 개수.

    Returns:
        (chunk_no, chunk_items)의 iterator. chunk_no는 0부터 시작합니다.

    Raises:
        ValueError: chunk_size가 0 이하일 경우.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    snapshot = list(items)
    for no, start in enumerate(range(0, len(snapshot), chunk_size)):
        yield no, snapshot[start : start + chunk_size]


def chunk_count(total: int, chunk_size: int) -> int:
    """total개를 chunk_size로 나눴을 때의 chunk 개수(올림)를 반환합니다."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    return (total + chunk_size - 1) // chunk_size
