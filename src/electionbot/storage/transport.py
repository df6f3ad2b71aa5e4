"""
Document Transport — CRUD над непрозрачными JSON-документами

Протокол транспорта, который использует VersionedStateStore:
    get_document(id) -> (json, version)
    create_document(json) -> id
    update_document(id, json, expected_version) -> bool   (False = конфликт версии)
    delete_document(id)

Реализации:
- InMemoryTransport — потокобезопасный словарь (тесты, встраивание)
- JsonFileTransport — один JSON-файл на документ в каталоге,
  конверт {"version": n, "content": {...}}
"""

import json
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, Protocol, Tuple

from electionbot.core.errors import DocumentNotFound


JsonDocument = Dict[str, Any]


class DocumentTransport(Protocol):
    """Внешнее хранилище документов с условной записью по версии."""

    def get_document(self, document_id: str) -> Tuple[JsonDocument, int]:
        ...

    def create_document(self, content: JsonDocument) -> str:
        ...

    def update_document(self, document_id: str, content: JsonDocument, expected_version: int) -> bool:
        ...

    def delete_document(self, document_id: str) -> None:
        ...


# =============================================================================
# IN-MEMORY
# =============================================================================


class InMemoryTransport:
    """
    Хранилище в памяти процесса.

    Условная запись атомарна относительно других потоков (threading.Lock).
    Содержимое хранится в сериализованном виде, чтобы вызывающий код
    не мог изменить документ в обход update_document.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._documents: Dict[str, Tuple[str, int]] = {}

    def get_document(self, document_id: str) -> Tuple[JsonDocument, int]:
        with self._lock:
            if document_id not in self._documents:
                raise DocumentNotFound(f"Document {document_id} not found")
            raw, version = self._documents[document_id]
        return json.loads(raw), version

    def create_document(self, content: JsonDocument) -> str:
        document_id = uuid.uuid4().hex
        with self._lock:
            self._documents[document_id] = (json.dumps(content), 1)
        return document_id

    def update_document(self, document_id: str, content: JsonDocument, expected_version: int) -> bool:
        with self._lock:
            if document_id not in self._documents:
                raise DocumentNotFound(f"Document {document_id} not found")
            _, version = self._documents[document_id]
            if version != expected_version:
                return False
            self._documents[document_id] = (json.dumps(content), version + 1)
            return True

    def delete_document(self, document_id: str) -> None:
        with self._lock:
            if self._documents.pop(document_id, None) is None:
                raise DocumentNotFound(f"Document {document_id} not found")

    def __contains__(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._documents

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)


# =============================================================================
# JSON FILES
# =============================================================================


class JsonFileTransport:
    """
    Хранилище в каталоге: <root>/<document_id>.json.

    Запись идёт во временный файл с последующим os.replace. Проверка версии
    и замена выполняются под блокировкой процесса; между процессами
    гарантий нет.
    """

    def __init__(self, root: str | Path):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, document_id: str) -> Path:
        if not document_id or os.sep in document_id or document_id.startswith("."):
            raise DocumentNotFound(f"Invalid document id: {document_id!r}")
        return self._root / f"{document_id}.json"

    def _read(self, path: Path) -> Tuple[JsonDocument, int]:
        with open(path, "r", encoding="utf-8") as f:
            envelope = json.load(f)
        return envelope["content"], envelope["version"]

    def _write(self, path: Path, content: JsonDocument, version: int) -> None:
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"version": version, "content": content}, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)

    def get_document(self, document_id: str) -> Tuple[JsonDocument, int]:
        path = self._path(document_id)
        with self._lock:
            if not path.exists():
                raise DocumentNotFound(f"Document {document_id} not found")
            return self._read(path)

    def create_document(self, content: JsonDocument) -> str:
        document_id = uuid.uuid4().hex
        with self._lock:
            self._write(self._path(document_id), content, 1)
        return document_id

    def update_document(self, document_id: str, content: JsonDocument, expected_version: int) -> bool:
        path = self._path(document_id)
        with self._lock:
            if not path.exists():
                raise DocumentNotFound(f"Document {document_id} not found")
            _, version = self._read(path)
            if version != expected_version:
                return False
            self._write(path, content, version + 1)
            return True

    def delete_document(self, document_id: str) -> None:
        path = self._path(document_id)
        with self._lock:
            if not path.exists():
                raise DocumentNotFound(f"Document {document_id} not found")
            path.unlink()
