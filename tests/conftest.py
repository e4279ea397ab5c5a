"""Shared fixtures: an in-memory Supabase double and a wired TestClient.

Nothing here talks to Supabase, AssemblyAI or an LLM provider.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from src.analysis.llm import LLMClient
from src.api.deps import chunk_store, llm_client, speech_client, supabase_client
from src.api.main import app
from src.transcription.speech import SpeechClient
from src.uploads.chunks import LocalChunkStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
TOKENS = {"token-1": USER_ID, "token-2": OTHER_USER_ID}


# ---------------------------------------------------------------------------
# Supabase double
# ---------------------------------------------------------------------------


class FakeQuery:
    """Just enough of the postgrest builder chain for the ``transcriptions`` table."""

    def __init__(self, rows: list[dict[str, Any]], fail_on: dict[str, Any] | None = None) -> None:
        self._rows = rows
        self._fail_on = fail_on or {}
        self._op = "select"
        self._payload: dict[str, Any] = {}
        self._filters: list[tuple[str, Any]] = []

    def select(self, *columns: str, **kwargs: Any) -> FakeQuery:
        self._op = "select"
        return self

    def insert(self, row: dict[str, Any]) -> FakeQuery:
        self._op, self._payload = "insert", row
        return self

    def update(self, fields: dict[str, Any]) -> FakeQuery:
        self._op, self._payload = "update", fields
        return self

    def eq(self, column: str, value: Any) -> FakeQuery:
        self._filters.append((column, value))
        return self

    def order(self, *args: Any, **kwargs: Any) -> FakeQuery:
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        return all(row.get(col) == value for col, value in self._filters)

    def execute(self) -> SimpleNamespace:
        if self._op == "insert":
            if any(r.get("id") == self._payload.get("id") for r in self._rows):
                raise RuntimeError("duplicate key value violates unique constraint")
            row = copy.deepcopy(self._payload)
            self._rows.append(row)
            return SimpleNamespace(data=[copy.deepcopy(row)], count=None)
        matched = [row for row in self._rows if self._matches(row)]
        if self._op == "update":
            if self._fail_on and self._fail_on.items() <= self._payload.items():
                raise RuntimeError("database write failed")
            for row in matched:
                row.update(copy.deepcopy(self._payload))
        return SimpleNamespace(data=copy.deepcopy(matched), count=len(matched))


class FakeBucket:
    def __init__(self, name: str) -> None:
        self.name = name
        self.objects: dict[str, bytes] = {}
        self.fail_uploads = False

    def upload(self, path: str, data: bytes, options: dict[str, str] | None = None) -> Any:
        if self.fail_uploads:
            raise RuntimeError("storage unavailable")
        upsert = (options or {}).get("upsert") == "true"
        if path in self.objects and not upsert:
            raise RuntimeError("The resource already exists")
        self.objects[path] = bytes(data)
        return SimpleNamespace(path=path)

    def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise RuntimeError(f"Object not found: {path}")
        return self.objects[path]

    def list(self, prefix: str = "") -> list[dict[str, Any]]:
        stamp = datetime.now(timezone.utc).isoformat()
        prefix = prefix.strip("/")
        entries: dict[str, dict[str, Any]] = {}
        for path, data in self.objects.items():
            if prefix:
                if not path.startswith(prefix + "/"):
                    continue
                rest = path[len(prefix) + 1 :]
            else:
                rest = path
            head, _, tail = rest.partition("/")
            if tail:
                entries.setdefault(head, {"name": head, "id": None})
            else:
                entries[head] = {
                    "name": head,
                    "id": f"obj-{head}",
                    "updated_at": stamp,
                    "metadata": {"size": len(data)},
                }
        return list(entries.values())

    def remove(self, paths: list[str]) -> list[dict[str, Any]]:
        for path in paths:
            self.objects.pop(path, None)
        return [{"name": p} for p in paths]

    def create_signed_url(self, path: str, expires_in: int) -> dict[str, str]:
        return {"signedURL": f"https://storage.test/sign/{self.name}/{path}?token=t"}

    def get_public_url(self, path: str) -> str:
        return f"https://storage.test/public/{self.name}/{path}"


class FakeStorage:
    def __init__(self) -> None:
        self.buckets: dict[str, FakeBucket] = {}

    def from_(self, name: str) -> FakeBucket:
        return self.buckets.setdefault(name, FakeBucket(name))


class FakeAuth:
    def get_user(self, token: str) -> SimpleNamespace:
        if token not in TOKENS:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=TOKENS[token], email=f"{token}@test"))


class FakeSupabase:
    """In-memory stand-in for ``supabase.Client``."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.storage = FakeStorage()
        self.auth = FakeAuth()
        # Updates whose payload contains all of these fields raise
        self.fail_updates_with: dict[str, Any] = {}

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self.tables.setdefault(name, []), self.fail_updates_with)

    def rows(self, name: str = "transcriptions") -> list[dict[str, Any]]:
        return self.tables.setdefault(name, [])

    def row(self, record_id: str) -> dict[str, Any]:
        return next(r for r in self.rows() if r["id"] == record_id)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def add_record(supabase: FakeSupabase):
    """Insert a transcription row; returns the row dict."""

    def _add(record_id: str, **fields: Any) -> dict[str, Any]:
        row = {
            "id": record_id,
            "user_id": USER_ID,
            "file_name": "interview.mp3",
            "media_path": f"{USER_ID}/1700000000000_interview.mp3",
            "media_url": "https://media.test/interview.mp3",
            "status": "pending",
            "summary_status": "pending",
            "analysis_status": "pending",
            "transcription_text": None,
            "transcription_progress": None,
            "summary_text": None,
            "analysis_data": None,
            "error": None,
        }
        row.update(fields)
        supabase.rows().append(row)
        return row

    return _add


@pytest.fixture
def store(tmp_path) -> LocalChunkStore:
    return LocalChunkStore(tmp_path / "chunks")


@pytest.fixture
def llm() -> MagicMock:
    return MagicMock(spec=LLMClient)


@pytest.fixture
def speech() -> MagicMock:
    mock = MagicMock(spec=SpeechClient)
    mock.configured = True
    return mock


@pytest.fixture
def client(
    supabase: FakeSupabase, store: LocalChunkStore, llm: MagicMock, speech: MagicMock
) -> Iterator[TestClient]:
    """TestClient with every external handle swapped for a double."""
    app.dependency_overrides[supabase_client] = lambda: supabase
    app.dependency_overrides[chunk_store] = lambda: store
    app.dependency_overrides[llm_client] = lambda: llm
    app.dependency_overrides[speech_client] = lambda: speech
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth() -> dict[str, str]:
    return {"Authorization": "Bearer token-1"}


@pytest.fixture
def other_auth() -> dict[str, str]:
    return {"Authorization": "Bearer token-2"}


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the retry policy's attempt count but drop its sleeps."""
    from src.transcription import retry

    monkeypatch.setattr(retry.settings, "retry_initial_delay", 0.0)
