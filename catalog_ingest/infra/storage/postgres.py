# ==============================================================================
# 목적 : Postgres 기반 Document Store 어댑터 (+ 업로드 실행 이력)
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-03
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import json, logging, uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import psycopg2
from psycopg2.extras import execute_values

from catalog_ingest.common.runtime import now_utc
from catalog_ingest.domain.errors import BatchLimitError, StoreError
from catalog_ingest.ports.document_store import (
    QUERY_OPS,
    Document,
    DocumentStore,
    WhereClause,
    WriteBatch,
)

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostgresConfig:
    """PostgreSQL 접속 설정 클래스.
    psycopg2.connect에 전달할 DSN과 연결 타임아웃을 보관합니다.

    Attributes:
        dsn: PostgreSQL DSN 문자열.
        connect_timeout_sec: 연결 타임아웃(초).
    """
    dsn: str
    connect_timeout_sec: int = 10


def _where_sql(field: str, op: str, value: Any) -> Tuple[str, List[Any]]:
    """(field, op, value)를 JSONB 조건절과 파라미터로 변환합니다.

    숫자/불리언 값은 body->>field를 해당 타입으로 캐스팅해서 비교하고, 나머지는 텍스트로 비교합니다.
    """
    if op not in QUERY_OPS:
        raise ValueError(f"unsupported query op: {op}")
    sql_op = "=" if op == "==" else op
    if isinstance(value, bool):
        return f"(body->>%s)::boolean {sql_op} %s", [field, value]
    if isinstance(value, (int, float)):
        return f"(body->>%s)::numeric {sql_op} %s", [field, value]
    return f"(body->>%s) {sql_op} %s", [field, str(value)]


class PostgresWriteBatch(WriteBatch):
    """PostgresDocumentStore용 batch. commit()은 하나의 트랜잭션으로 실행됩니다."""

    def __init__(self, store: "PostgresDocumentStore"):
        self._store = store
        self._sets: List[Tuple[str, str, Document]] = []
        self._deletes: List[Tuple[str, str]] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._sets) + len(self._deletes)

    def _check_room(self) -> None:
        if self._committed:
            raise StoreError("batch already committed")
        if len(self) >= self.MAX_OPS:
            raise BatchLimitError(f"batch exceeds {self.MAX_OPS} operations")

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        self._check_room()
        self._sets.append((collection, doc_id, data))

    def delete(self, collection: str, doc_id: str) -> None:
        self._check_room()
        self._deletes.append((collection, doc_id))

    def commit(self) -> None:
        """모아둔 set/delete를 하나의 트랜잭션으로 반영합니다.

        실패하면 rollback 후 StoreError를 발생시키며, 이 batch의 어떤 연산도 반영되지 않습니다.
        """
        if self._committed:
            raise StoreError("batch already committed")
        self._store.apply_batch(self._sets, self._deletes)
        self._committed = True


class PostgresDocumentStore(DocumentStore):
    """PostgreSQL 테이블 하나(documents)를 컬렉션/문서 저장소처럼 사용하는 어댑터.

    - documents: (collection, doc_id) PK, body JSONB.
    - upload_runs: 벌크 업로드 실행 단위 상태(running/success/partial/fail).
    - upload_events: 실행 중 아이템 단위 이벤트(업로드/게시 성공·실패).
    """
    def __init__(self, cfg: PostgresConfig, conn: Any = None):
        """Store를 초기화하고 DB 연결을 생성합니다.

        Args:
            cfg: PostgresConfig 설정 객체.
            conn: 주입할 DB-API 연결. 없으면 cfg.dsn으로 연결합니다.

        Raises:
            psycopg2.OperationalError: 연결에 실패한 경우.
        """
        self._cfg = cfg
        self._conn = conn if conn is not None else psycopg2.connect(cfg.dsn, connect_timeout=cfg.connect_timeout_sec)

    def close(self) -> None:
        """DB 연결을 종료합니다."""
        self._conn.close()

    def cursor(self):
        return self._conn.cursor()

    def ensure_schema(self) -> None:
        """필요한 테이블/인덱스를 생성합니다.

        Raises:
            psycopg2.Error: DDL 실행 실패.
        """
        stmts = [
            """
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                body JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL,
                PRIMARY KEY (collection, doc_id)
            );
            """,
            """CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);""",
            """
            CREATE TABLE IF NOT EXISTS upload_runs (
                run_id UUID PRIMARY KEY,
                started_at TIMESTAMPTZ NOT NULL,
                ended_at TIMESTAMPTZ,
                status TEXT NOT NULL, -- running/success/partial/fail
                input_count INT,
                success_count INT,
                fail_count INT,
                published_count INT,
                meta JSONB
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS upload_events (
                event_id UUID PRIMARY KEY,
                run_id UUID NOT NULL,
                item_id TEXT,
                stage TEXT NOT NULL, -- upload/publish
                status TEXT NOT NULL, -- success/error/canceled
                occurred_at TIMESTAMPTZ NOT NULL,
                error_message TEXT,
                meta JSONB
            );
            """,
            """CREATE INDEX IF NOT EXISTS idx_upload_events_run ON upload_events(run_id);""",
        ]
        with self.cursor() as cur:
            for s in stmts:
                cur.execute(s)
        self._conn.commit()

    # ---------- document API ----------
    def new_id(self) -> str:
        return uuid.uuid4().hex

    def _fetch(self, sql: str, params: Sequence[Any]) -> List[Tuple[Any, ...]]:
        try:
            with self.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            self._conn.commit()
        except psycopg2.Error as e:
            self._conn.rollback()
            raise StoreError(f"query failed: {e}") from e
        return rows

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        rows = self._fetch(
            "SELECT body FROM documents WHERE collection = %s AND doc_id = %s;",
            (collection, doc_id),
        )
        return rows[0][0] if rows else None

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        self.apply_batch([(collection, doc_id, data)], [])

    def create(self, collection: str, doc_id: str, data: Document) -> bool:
        now = now_utc()
        sql = """
        INSERT INTO documents (collection, doc_id, body, created_at, updated_at)
        VALUES (%s, %s, %s::jsonb, %s, %s)
        ON CONFLICT (collection, doc_id) DO NOTHING;
        """
        try:
            with self.cursor() as cur:
                cur.execute(sql, (collection, doc_id, json.dumps(data, ensure_ascii=False), now, now))
                created = cur.rowcount == 1
            self._conn.commit()
        except psycopg2.Error as e:
            self._conn.rollback()
            raise StoreError(f"create failed: {collection}/{doc_id}: {e}") from e
        return created

    def delete(self, collection: str, doc_id: str) -> None:
        self.apply_batch([], [(collection, doc_id)])

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
        """컬렉션 문서를 조건/정렬/페이지로 조회합니다.

        Args:
            collection: 컬렉션명.
            where: (field, op, value) 조건 목록(AND).
            order_by: 정렬 필드(body 최상위 키).
            descending: 내림차순 여부.
            limit: 최대 반환 개수.
            offset: 건너뛸 개수.

        Returns:
            (doc_id, body) 튜플 리스트.

        Raises:
            ValueError: 지원하지 않는 op인 경우.
            StoreError: 조회에 실패한 경우.
        """
        clauses = ["collection = %s"]
        params: List[Any] = [collection]
        for field, op, value in where:
            sql, p = _where_sql(field, op, value)
            clauses.append(sql)
            params.extend(p)

        sql = "SELECT doc_id, body FROM documents WHERE " + " AND ".join(clauses)
        if order_by:
            sql += " ORDER BY body->>%s " + ("DESC" if descending else "ASC")
            params.append(order_by)
        else:
            sql += " ORDER BY created_at ASC, doc_id ASC"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(int(limit))
        if offset:
            sql += " OFFSET %s"
            params.append(int(offset))

        rows = self._fetch(sql + ";", params)
        return [(str(doc_id), body) for doc_id, body in rows]

    def batch(self) -> PostgresWriteBatch:
        return PostgresWriteBatch(self)

    def apply_batch(
        self,
        sets: Sequence[Tuple[str, str, Document]],
        deletes: Sequence[Tuple[str, str]],
    ) -> None:
        """set/delete 목록을 하나의 트랜잭션으로 반영합니다.

        set은 (collection, doc_id) 충돌 시 body와 updated_at을 덮어씁니다.

        Raises:
            StoreError: SQL 실행 또는 commit에 실패한 경우(rollback 후).
        """
        now = now_utc()
        try:
            with self.cursor() as cur:
                if sets:
                    values = [
                        (c, d, json.dumps(body, ensure_ascii=False), now, now)
                        for c, d, body in sets
                    ]
                    execute_values(
                        cur,
                        """
                        INSERT INTO documents (collection, doc_id, body, created_at, updated_at)
                        VALUES %s
                        ON CONFLICT (collection, doc_id) DO UPDATE SET
                            body = EXCLUDED.body,
                            updated_at = EXCLUDED.updated_at;
                        """,
                        values,
                        template="(%s, %s, %s::jsonb, %s, %s)",
                        page_size=500,
                    )
                for collection, doc_id in deletes:
                    cur.execute(
                        "DELETE FROM documents WHERE collection = %s AND doc_id = %s;",
                        (collection, doc_id),
                    )
            self._conn.commit()
        except psycopg2.Error as e:
            self._conn.rollback()
            raise StoreError(f"batch commit failed ({len(sets)} sets, {len(deletes)} deletes): {e}") from e

    # ---------- run history ----------
    def start_run(self, input_count: int, meta: Optional[Dict[str, Any]] = None) -> uuid.UUID:
        """upload_runs에 실행 레코드를 생성하고 run_id를 반환합니다. status는 'running'으로 시작합니다."""
        run_id = uuid.uuid4()
        with self.cursor() as cur:
            cur.execute(
                """
                INSERT INTO upload_runs (run_id, started_at, status, input_count, meta)
                VALUES (%(run_id)s, %(started_at)s, 'running', %(input_count)s, %(meta)s);
                """,
                {
                    "run_id": str(run_id),
                    "started_at": now_utc(),
                    "input_count": input_count,
                    "meta": json.dumps(meta or {}, ensure_ascii=False),
                },
            )
        self._conn.commit()
        return run_id

    def finish_run(
        self,
        run_id: uuid.UUID,
        status: str,
        success_count: int,
        fail_count: int,
        published_count: int,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        """실행을 종료 처리합니다. meta는 None이면 기존 값을 유지합니다."""
        with self.cursor() as cur:
            cur.execute(
                """
                UPDATE upload_runs
                SET ended_at = %(ended_at)s,
                    status = %(status)s,
                    success_count = %(success_count)s,
                    fail_count = %(fail_count)s,
                    published_count = %(published_count)s,
                    meta = COALESCE(%(meta)s::jsonb, meta)
                WHERE run_id = %(run_id)s;
                """,
                {
                    "run_id": str(run_id),
                    "ended_at": now_utc(),
                    "status": status,
                    "success_count": success_count,
                    "fail_count": fail_count,
                    "published_count": published_count,
                    "meta": json.dumps(meta, ensure_ascii=False) if meta is not None else None,
                },
            )
        self._conn.commit()

    def record_event(
        self,
        run_id: uuid.UUID,
        *,
        item_id: Optional[str],
        stage: str,
        status: str,
        error_message: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        """upload_events에 이벤트를 기록합니다. 기록 실패는 경고 로그만 남깁니다."""
        try:
            with self.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO upload_events (
                        event_id, run_id, item_id, stage, status, occurred_at, error_message, meta
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s);
                    """,
                    (
                        str(uuid.uuid4()),
                        str(run_id),
                        item_id,
                        stage,
                        status,
                        now_utc(),
                        error_message,
                        json.dumps(meta or {}, ensure_ascii=False),
                    ),
                )
            self._conn.commit()
        except psycopg2.Error as e:
            self._conn.rollback()
            _log.warning("Failed to record upload event (run=%s item=%s): %s", run_id, item_id, e)
