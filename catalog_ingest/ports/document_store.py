# ==============================================================================
# 목적 : Document Store 인터페이스
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-02
# AI 활용 여부 :
# ==============================================================================

from typing import Any, Dict, List, Optional, Sequence, Tuple

Document = Dict[str, Any]
WhereClause = Tuple[str, str, Any]

QUERY_OPS = ("==", "<", "<=", ">", ">=")


class WriteBatch:
    """여러 문서 쓰기를 모아 한 번에 원자적으로 commit하는 batch.

    commit()은 전부 반영되거나 전부 반영되지 않아야 합니다.
    한 batch에 담을 수 있는 연산 수는 MAX_OPS로 제한됩니다.
    """
    MAX_OPS = 500

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    def commit(self) -> None:
        raise NotImplementedError

    def __len__(self) -> int:
        raise NotImplementedError


class DocumentStore:
    """컬렉션 단위 key-value 문서 저장소 추상화.

    query()의 where는 (field, op, value) 튜플 목록이며 op는 QUERY_OPS 중 하나입니다.
    반환값은 (doc_id, document) 튜플 리스트입니다.
    """

    def new_id(self) -> str:
        raise NotImplementedError

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        raise NotImplementedError

    def create(self, collection: str, doc_id: str, data: Document) -> bool:
        """문서가 없을 때만 생성합니다(first-writer-wins). 생성했으면 True."""
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    def query(
        self,
        collection: str,
        *,
        where: Sequence[WhereClause] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Tuple[str, Document]]:
        raise NotImplementedError

    def batch(self) -> WriteBatch:
        raise NotImplementedError

    def close(self) -> None:
        """연결 등 자원을 해제합니다. 기본 구현은 아무것도 하지 않습니다."""
