"""
Document Loader

Reads exported storefront collections (``orders``, ``users``) from disk.
Supports:
- JSON arrays (or a single JSON object holding the documents under a key)
- JSON Lines (NDJSON), one document per line
- File hashing for audit logging

Read failures never raise: they come back as a ``LoadResult`` with status
``failed`` so the pipeline can report a "no data" state.
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class FileFormat(str, Enum):
    """Supported export formats"""
    JSON = "json"
    JSONL = "jsonl"

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "FileFormat":
        suffix = Path(path).suffix.lower()
        if suffix in (".jsonl", ".ndjson"):
            return cls.JSONL
        return cls.JSON


class LoadStatus(str, Enum):
    """Load status"""
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class DocumentFileConfig:
    """Configuration for loading one exported collection"""
    file_path: Union[str, Path]
    collection: str
    file_format: Optional[FileFormat] = None
    encoding: str = "utf-8"

    def resolved_format(self) -> FileFormat:
        return self.file_format or FileFormat.from_path(self.file_path)


class LoadResult(BaseModel):
    """Result of a document load"""
    file_path: str
    collection: str
    status: LoadStatus
    records: List[Dict[str, Any]] = Field(default_factory=list)
    rows_loaded: int = 0
    rows_failed: int = 0
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is not LoadStatus.FAILED


class DocumentLoader:
    """
    Loader for exported document collections.

    Example:
        loader = DocumentLoader()
        result = loader.load(DocumentFileConfig("exports/orders.json", "orders"))
        if result.succeeded:
            orders = result.records
    """

    def _compute_file_hash(self, file_path: Path) -> str:
        """MD5 of the file, logged for audit"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_json(self, text: str, collection: str) -> Tuple[List[Any], int]:
        payload = json.loads(text)
        if isinstance(payload, dict):
            # {"orders": [...]} or a single document
            payload = payload.get(collection, [payload])
        if not isinstance(payload, list):
            raise ValueError(f"Expected a list of documents, got {type(payload).__name__}")
        return payload, 0

    def _read_jsonl(self, text: str, collection: str) -> Tuple[List[Any], int]:
        documents = []
        failed = 0
        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                documents.append(json.loads(line))
            except json.JSONDecodeError as e:
                failed += 1
                logger.warning("Skipping unreadable line", collection=collection, line=line_number, error=str(e))
        return documents, failed

    def _read_file(self, config: DocumentFileConfig, text: str) -> Tuple[List[Any], int]:
        readers = {
            FileFormat.JSON: self._read_json,
            FileFormat.JSONL: self._read_jsonl,
        }
        return readers[config.resolved_format()](text, config.collection)

    def load(self, config: DocumentFileConfig) -> LoadResult:
        """
        Load one exported collection.

        Args:
            config: File and collection to load

        Returns:
            LoadResult holding the raw documents
        """
        file_path = Path(config.file_path)
        started_at = datetime.now(timezone.utc)

        result = LoadResult(
            file_path=str(file_path),
            collection=config.collection,
            status=LoadStatus.FAILED,
            started_at=started_at,
        )

        logger.info("Starting document load", file=str(file_path), collection=config.collection)

        try:
            if not file_path.exists():
                raise FileNotFoundError(f"File not found: {file_path}")

            result.file_hash = self._compute_file_hash(file_path)
            text = file_path.read_text(encoding=config.encoding)
            raw_documents, failed = self._read_file(config, text)

            documents = [doc for doc in raw_documents if isinstance(doc, dict)]
            failed += len(raw_documents) - len(documents)

            result.records = documents
            result.rows_loaded = len(documents)
            result.rows_failed = failed
            result.status = LoadStatus.PARTIAL if failed else LoadStatus.COMPLETED

        except (OSError, ValueError) as e:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
            result.status = LoadStatus.FAILED
            result.error_message = str(e)
            logger.error("Document load failed", file=str(file_path), error=str(e))

        result.completed_at = datetime.now(timezone.utc)
        result.load_duration_seconds = (result.completed_at - started_at).total_seconds()

        logger.info(
            "Document load finished",
            file=str(file_path),
            status=result.status.value,
            rows_loaded=result.rows_loaded,
            rows_failed=result.rows_failed,
            file_hash=result.file_hash,
        )

        return result
