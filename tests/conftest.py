"""Shared pytest fixtures: in-memory Firestore / RTDB doubles and a fake API."""

import copy
from datetime import datetime, timezone

import pytest
from firebase_admin import firestore

from robosync.services.key_pool import KeyPool


def _resolve(value):
    if value is firestore.SERVER_TIMESTAMP:
        return datetime.now(timezone.utc)
    if isinstance(value, dict):
        return {k: _resolve(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(v) for v in value]
    return value


def _merge(base: dict, update: dict) -> dict:
    out = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


class FakeSnapshot:
    def __init__(self, path: str, data: dict | None) -> None:
        self.id = path.rsplit("/", 1)[-1]
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocRef:
    def __init__(self, store: "FakeFirestore", path: str) -> None:
        self._store = store
        self.path = path
        self.id = path.rsplit("/", 1)[-1]

    async def get(self):
        self._store.reads += 1
        return FakeSnapshot(self.path, self._store.docs.get(self.path))

    async def set(self, data: dict, merge: bool = False) -> None:
        self._store.apply(self.path, data, merge)


class FakeQuery:
    def __init__(self, store: "FakeFirestore", path: str, limit: int | None = None) -> None:
        self._store = store
        self._path = path
        self._limit = limit

    def limit(self, n: int) -> "FakeQuery":
        return FakeQuery(self._store, self._path, n)

    def document(self, doc_id: str) -> FakeDocRef:
        return FakeDocRef(self._store, f"{self._path}/{doc_id}")

    async def stream(self):
        depth = self._path.count("/") + 1
        children = sorted(
            p for p in self._store.docs
            if p.startswith(self._path + "/") and p.count("/") == depth
        )
        for path in children[:self._limit]:
            self._store.reads += 1
            yield FakeSnapshot(path, self._store.docs[path])


class FakeBatch:
    def __init__(self, store: "FakeFirestore") -> None:
        self._store = store
        self.ops: list[tuple[str, dict, bool]] = []

    def set(self, ref: FakeDocRef, data: dict, merge: bool = False) -> None:
        self.ops.append((ref.path, data, merge))

    async def commit(self) -> None:
        if self._store.fail_commit:
            raise RuntimeError("commit rejected")
        self._store.commits.append(len(self.ops))
        for path, data, merge in self.ops:
            self._store.apply(path, data, merge)


class FakeFirestore:
    """Just enough of ``google.cloud.firestore.AsyncClient`` for the writer."""

    def __init__(self) -> None:
        self.docs: dict[str, dict] = {}
        self.written: list[str] = []
        self.commits: list[int] = []
        self.reads = 0
        self.fail_commit = False
        self.fail_reads = False

    def apply(self, path: str, data: dict, merge: bool) -> None:
        data = copy.deepcopy(_resolve(data))
        if merge and path in self.docs:
            data = _merge(self.docs[path], data)
        self.docs[path] = data
        self.written.append(path)

    def seed(self, path: str, data: dict) -> None:
        self.docs[path] = copy.deepcopy(data)

    def collection(self, path: str) -> FakeQuery:
        return FakeQuery(self, path)

    def document(self, path: str) -> FakeDocRef:
        return FakeDocRef(self, path)

    def batch(self) -> FakeBatch:
        return FakeBatch(self)

    async def get_all(self, refs):
        if self.fail_reads:
            raise RuntimeError("read quota exceeded")
        for ref in refs:
            self.reads += 1
            yield FakeSnapshot(ref.path, self.docs.get(ref.path))

    def written_under(self, prefix: str) -> list[str]:
        return [p for p in self.written if p.startswith(prefix)]


def _rtdb_clean(value):
    # RTDB never stores nulls or empty containers
    if isinstance(value, dict):
        out = {k: _rtdb_clean(v) for k, v in value.items()}
        out = {k: v for k, v in out.items() if v is not None}
        return out or None
    if isinstance(value, list):
        out = [_rtdb_clean(v) for v in value]
        return out or None
    return value


class FakeRealtimeRef:
    """Root ``db.Reference`` double with ``child().get()`` and ``update()``."""

    def __init__(self, data: dict | None = None, path: str = "", root=None) -> None:
        self._root = root or self
        self.path = path
        if root is None:
            self.data = data or {}
            self.gets: list[str] = []
            self.updates: list[dict] = []
            self.fail = False

    def child(self, path: str) -> "FakeRealtimeRef":
        return FakeRealtimeRef(path=path.strip("/"), root=self._root)

    def get(self):
        root = self._root
        root.gets.append(self.path)
        if root.fail:
            raise RuntimeError("rtdb unavailable")
        node = root.data
        for segment in filter(None, self.path.split("/")):
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return copy.deepcopy(node)

    def update(self, updates: dict) -> None:
        root = self._root
        if root.fail:
            raise RuntimeError("rtdb unavailable")
        root.updates.append(copy.deepcopy(updates))
        for path, value in updates.items():
            segments = [s for s in path.split("/") if s]
            node = root.data
            for segment in segments[:-1]:
                child = node.get(segment)
                if isinstance(child, list):
                    child = {str(i): v for i, v in enumerate(child) if v is not None}
                elif not isinstance(child, dict):
                    child = {}
                node[segment] = child
                node = child
            cleaned = _rtdb_clean(copy.deepcopy(value))
            if cleaned is None:
                node.pop(segments[-1], None)
            else:
                node[segments[-1]] = cleaned


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def fake_firestore() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture()
def fake_rtdb() -> FakeRealtimeRef:
    return FakeRealtimeRef()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def pool(clock) -> KeyPool:
    return KeyPool(["key-a", "key-b", "key-c"], clock=clock)
