import copy
import io
import operator
import os
import threading
from typing import Callable, Dict, List, Optional, Set

import pytest
from PIL import Image

from catalog_ingest.application.services.categories import CategoryRegistry
from catalog_ingest.application.services.upload_queue import QueueSettings, UploadQueue
from catalog_ingest.application.services.upload_task import UploadTaskManager
from catalog_ingest.common.ids import join_url
from catalog_ingest.domain.errors import AuthorizationError, BatchLimitError, StoreError, UploadCanceledError
from catalog_ingest.domain.models import SourceFile, StoredObject
from catalog_ingest.ports.document_store import Document, DocumentStore, WriteBatch
from catalog_ingest.ports.identity import IdentityProvider
from catalog_ingest.ports.object_store import ObjectStore

_OPS = {
    "==": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class FakeObjectStore(ObjectStore):
    """메모리 object store. put()은 chunks 단계로 나눠 진행률을 보고하고 cancel_event를 확인합니다."""

    def __init__(self, base_url: str = "https://cdn.example.com", chunks: int = 4):
        self.base_url = base_url
        self.chunks = chunks
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.put_calls: List[str] = []
        self.fail_names: Set[str] = set()
        self.fail_times: Dict[str, int] = {}
        self.delete_fail_keys: Set[str] = set()
        self.on_chunk: Optional[Callable[[str, int], None]] = None

    def put(self, key, data, *, content_type, on_progress=None, cancel_event=None):
        self.put_calls.append(key)
        total = len(data)
        step = max(1, total // self.chunks)
        sent = 0
        while sent < total:
            if self.on_chunk is not None:
                self.on_chunk(key, sent)
            if cancel_event is not None and cancel_event.is_set():
                raise UploadCanceledError(key)
            sent = min(total, sent + step)
            if on_progress is not None:
                on_progress(sent, total)

        name = key.rsplit("-", 1)[-1]
        if name in self.fail_names:
            raise ConnectionError(f"network error while uploading {name}")
        if self.fail_times.get(name, 0) > 0:
            self.fail_times[name] -= 1
            raise ConnectionError(f"temporary error for {name}")

        self.objects[key] = data
        self.content_types[key] = content_type
        return StoredObject(key=key, size_bytes=total, content_type=content_type)

    def public_url(self, key):
        return join_url(self.base_url, key)

    def list(self, prefix):
        return [StoredObject(key=k, size_bytes=len(v)) for k, v in sorted(self.objects.items()) if k.startswith(prefix)]

    def delete(self, key):
        if key in self.delete_fail_keys:
            raise ConnectionError(f"cannot delete {key}")
        self.objects.pop(key, None)


class FakeWriteBatch(WriteBatch):
    def __init__(self, store: "FakeDocumentStore"):
        self._store = store
        self._ops: List[tuple] = []

    def __len__(self):
        return len(self._ops)

    def set(self, collection, doc_id, data):
        if len(self._ops) >= self.MAX_OPS:
            raise BatchLimitError("too many ops")
        self._ops.append(("set", collection, doc_id, copy.deepcopy(data)))

    def delete(self, collection, doc_id):
        if len(self._ops) >= self.MAX_OPS:
            raise BatchLimitError("too many ops")
        self._ops.append(("delete", collection, doc_id, None))

    def commit(self):
        self._store.commit_attempts += 1
        if self._store.commit_attempts in self._store.fail_commits:
            raise StoreError(f"commit #{self._store.commit_attempts} failed")
        for op, collection, doc_id, data in self._ops:
            if op == "set":
                self._store.data.setdefault(collection, {})[doc_id] = data
            else:
                self._store.data.get(collection, {}).pop(doc_id, None)
        self._store.committed_batches.append(len(self._ops))


class FakeDocumentStore(DocumentStore):
    """메모리 document store. fail_commits에 담긴 순번(1부터)의 batch commit은 실패합니다."""

    def __init__(self):
        self.data: Dict[str, Dict[str, Document]] = {}
        self.fail_commits: Set[int] = set()
        self.commit_attempts = 0
        self.committed_batches: List[int] = []
        self.fail_create = False
        self.fail_query = False
        self.closed = False
        self._seq = 0
        self._lock = threading.Lock()

    def new_id(self):
        with self._lock:
            self._seq += 1
            return f"doc{self._seq:05d}"

    def get(self, collection, doc_id):
        doc = self.data.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection, doc_id, data):
        self.data.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def create(self, collection, doc_id, data):
        if self.fail_create:
            raise StoreError("create failed")
        docs = self.data.setdefault(collection, {})
        if doc_id in docs:
            return False
        docs[doc_id] = copy.deepcopy(data)
        return True

    def delete(self, collection, doc_id):
        self.data.get(collection, {}).pop(doc_id, None)

    def query(self, collection, *, where=(), order_by=None, descending=False, limit=None, offset=0):
        if self.fail_query:
            raise StoreError("query failed")
        rows = [(k, copy.deepcopy(v)) for k, v in self.data.get(collection, {}).items()]
        for field, op, value in where:
            rows = [(k, v) for k, v in rows if field in v and _OPS[op](v[field], value)]
        if order_by:
            rows.sort(key=lambda kv: kv[1].get(order_by), reverse=descending)
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return rows

    def batch(self):
        return FakeWriteBatch(self)

    def docs(self, collection: str) -> Dict[str, Document]:
        return self.data.get(collection, {})

    def close(self):
        self.closed = True


class FakeIdentity(IdentityProvider):
    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self.tokens = tokens or {}

    def verify_token(self, token):
        uid = self.tokens.get(token)
        if uid is None:
            raise AuthorizationError("invalid token")
        return uid


def make_file(name: str, size: int = 128, mime_type: Optional[str] = None) -> SourceFile:
    return SourceFile.from_bytes(name, os.urandom(size), mime_type)


def png_bytes(width: int, height: int, noise: bool = False) -> bytes:
    if noise:
        im = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    else:
        im = Image.new("RGB", (width, height), (30, 120, 200))
    buf = io.BytesIO()
    im.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def document_store():
    return FakeDocumentStore()


@pytest.fixture
def categories(document_store):
    return CategoryRegistry(document_store)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_queue(object_store, document_store, categories, sleeps):
    def _make(**overrides) -> UploadQueue:
        settings = QueueSettings(**overrides)
        tasks = UploadTaskManager(object_store, "wallpapers", clock_ms=lambda: 1700000000000)
        return UploadQueue(tasks, document_store, categories, settings, sleep=sleeps.append)

    return _make
