"""Artifact library.

Published distributables live under ``artifacts/<language>/`` and are indexed in
a SQLite catalog keyed by (language, version), so at most one artifact per
version is retained. Publishing copies through a temporary file and
``os.replace`` so the artifact directory never holds a partial file; a small
JSON write-ahead log lets an interrupted publish be completed on the next open.

Each language keeps its own WAL (``artifacts/<language>/catalog_wal.json``). A
library only recovers the log of the language it was opened for, so pipelines
for different languages can publish into the same catalog from separate
processes.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from protoforge.core.config import BuildConfig
from protoforge.core.errors import PackagerError

LOGGER = logging.getLogger("protoforge.library")

WAL_NAME = "catalog_wal.json"


@dataclass(slots=True)
class ArtifactRecord:
    language: str
    version: str
    package_name: str
    filename: str
    path: Path
    checksum: str
    size_bytes: int
    published_at: float

    def to_json(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["path"] = str(self.path)
        return payload

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> ArtifactRecord:
        return cls(
            language=payload["language"],
            version=payload["version"],
            package_name=payload["package_name"],
            filename=payload["filename"],
            path=Path(payload["path"]),
            checksum=payload["checksum"],
            size_bytes=int(payload["size_bytes"]),
            published_at=float(payload["published_at"]),
        )


class ArtifactLibrary:
    """SQLite-backed catalog of published artifacts.

    Opening with ``language`` recovers that language's interrupted publish,
    if any. A library opened without one never touches a WAL, so it is safe to
    open while pipelines publish from other processes.

    Raises:
        PackagerError: If the library root or the catalog cannot be opened.
    """

    def __init__(
        self,
        root: Path,
        database_url: str | None = None,
        *,
        language: str | None = None,
    ) -> None:
        self._root = Path(root)
        self._metrics: dict[str, float] = {
            "published": 0.0,
            "replaced": 0.0,
            "recovered": 0.0,
            "integrity_failures": 0.0,
            "last_publish_ms": 0.0,
        }
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PackagerError(f"Cannot create artifact library at {self._root}: {exc}") from exc
        db_url = database_url or f"sqlite:///{(self._root / 'catalog.db').resolve()}"
        self._engine: Engine = create_engine(db_url, future=True)
        self._metadata = MetaData()
        self._table = Table(
            "artifacts",
            self._metadata,
            Column("language", String, primary_key=True),
            Column("version", String, primary_key=True),
            Column("package_name", String, nullable=False),
            Column("filename", String, nullable=False),
            Column("path", String, nullable=False),
            Column("checksum", String, nullable=False),
            Column("size_bytes", Integer, nullable=False),
            Column("published_at", Float, nullable=False),
        )
        try:
            self._metadata.create_all(self._engine)
            if language is not None:
                self._recover_from_wal(self.wal_path(language))
        except (OSError, SQLAlchemyError) as exc:
            self._engine.dispose()
            raise PackagerError(f"Cannot open artifact catalog under {self._root}: {exc}") from exc

    @property
    def root(self) -> Path:
        return self._root

    def wal_path(self, language: str) -> Path:
        return self._root / language / WAL_NAME

    def publish(self, artifact: Path, config: BuildConfig) -> ArtifactRecord:
        """Copy ``artifact`` into the library and record it.

        Replaces, and deletes the file of, any artifact already recorded for
        the same (language, version).

        Raises:
            PackagerError: If the copy or the catalog update fails.
        """

        start = time.perf_counter()
        destination_dir = self._root / config.language
        destination = destination_dir / artifact.name
        staging = destination_dir / f".{artifact.name}.partial"
        wal_path = self.wal_path(config.language)
        try:
            destination_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(artifact, staging)
            record = ArtifactRecord(
                language=config.language,
                version=config.package_version,
                package_name=config.package_name,
                filename=destination.name,
                path=destination,
                checksum=self._compute_checksum(staging),
                size_bytes=staging.stat().st_size,
                published_at=time.time(),
            )
            previous = self.get(config.language, config.package_version)
            self._persist_wal(wal_path, record, previous)
            os.replace(staging, destination)
            self._retire(previous, record)
            self._upsert(record)
            wal_path.unlink(missing_ok=True)
        except (OSError, SQLAlchemyError) as exc:
            staging.unlink(missing_ok=True)
            raise PackagerError(f"Cannot publish {artifact.name}: {exc}") from exc
        self._metrics["published"] += 1.0
        if previous is not None:
            self._metrics["replaced"] += 1.0
        self._metrics["last_publish_ms"] = (time.perf_counter() - start) * 1000.0
        LOGGER.info("Published %s (%s %s, sha256 %s)", record.filename, record.language, record.version, record.checksum[:12])
        return record

    def get(self, language: str, version: str) -> ArtifactRecord | None:
        with self._engine.begin() as conn:
            row = conn.execute(
                select(self._table).where(
                    self._table.c.language == language,
                    self._table.c.version == version,
                )
            ).mappings().first()
        return self._record_from_row(row) if row else None

    def list_all(self, language: str | None = None) -> list[ArtifactRecord]:
        query = select(self._table).order_by(self._table.c.language, self._table.c.version)
        if language is not None:
            query = query.where(self._table.c.language == language)
        with self._engine.begin() as conn:
            rows = conn.execute(query).mappings().all()
        return [self._record_from_row(row) for row in rows]

    def latest(self, language: str) -> ArtifactRecord | None:
        records = self.list_all(language)
        if not records:
            return None
        return max(records, key=lambda record: record.published_at)

    def verify(self, record: ArtifactRecord) -> bool:
        """True when the artifact file exists and matches its recorded checksum."""

        if not record.path.is_file():
            self._metrics["integrity_failures"] += 1.0
            return False
        if self._compute_checksum(record.path) != record.checksum:
            self._metrics["integrity_failures"] += 1.0
            return False
        return True

    def evict(self, language: str, version: str, *, delete_artifact: bool = False) -> bool:
        record = self.get(language, version)
        if record is None:
            return False
        if delete_artifact:
            record.path.unlink(missing_ok=True)
        with self._engine.begin() as conn:
            conn.execute(
                delete(self._table).where(
                    self._table.c.language == language,
                    self._table.c.version == version,
                )
            )
        return True

    def metrics_snapshot(self) -> dict[str, float]:
        snapshot = dict(self._metrics)
        snapshot["catalog_size"] = float(len(self.list_all()))
        return snapshot

    def close(self) -> None:
        self._engine.dispose()

    @staticmethod
    def _compute_checksum(path: Path) -> str:
        digest = hashlib.sha256()
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(8192), b""):
                digest.update(chunk)
        return digest.hexdigest()

    def _retire(self, previous: ArtifactRecord | None, record: ArtifactRecord) -> None:
        if previous is None or previous.path == record.path:
            return
        previous.path.unlink(missing_ok=True)
        LOGGER.info("Removed superseded artifact %s", previous.filename)

    def _record_from_row(self, row: Any) -> ArtifactRecord:
        return ArtifactRecord(
            language=row["language"],
            version=row["version"],
            package_name=row["package_name"],
            filename=row["filename"],
            path=Path(row["path"]),
            checksum=row["checksum"],
            size_bytes=int(row["size_bytes"]),
            published_at=float(row["published_at"]),
        )

    def _upsert(self, record: ArtifactRecord) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                delete(self._table).where(
                    self._table.c.language == record.language,
                    self._table.c.version == record.version,
                )
            )
            conn.execute(
                self._table.insert().values(
                    language=record.language,
                    version=record.version,
                    package_name=record.package_name,
                    filename=record.filename,
                    path=str(record.path),
                    checksum=record.checksum,
                    size_bytes=record.size_bytes,
                    published_at=record.published_at,
                )
            )

    @staticmethod
    def _persist_wal(wal_path: Path, record: ArtifactRecord, previous: ArtifactRecord | None) -> None:
        payload = {
            "record": record.to_json(),
            "previous": previous.to_json() if previous is not None else None,
        }
        wal_path.write_text(json.dumps(payload), encoding="utf-8")

    def _recover_from_wal(self, wal_path: Path) -> None:
        if not wal_path.exists():
            return
        try:
            payload = json.loads(wal_path.read_text(encoding="utf-8"))
            record = ArtifactRecord.from_json(payload["record"])
            previous = ArtifactRecord.from_json(payload["previous"]) if payload.get("previous") else None
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Discarding unreadable catalog WAL %s: %s", wal_path, exc)
            wal_path.unlink(missing_ok=True)
            return
        staging = record.path.with_name(f".{record.filename}.partial")
        staging.unlink(missing_ok=True)
        if record.path.is_file() and self._compute_checksum(record.path) == record.checksum:
            self._retire(previous, record)
            self._upsert(record)
            self._metrics["recovered"] += 1.0
            LOGGER.info("Recovered interrupted publish of %s", record.filename)
        else:
            LOGGER.warning("Interrupted publish of %s did not complete; catalog unchanged", record.filename)
        wal_path.unlink(missing_ok=True)


__all__ = ["ArtifactLibrary", "ArtifactRecord", "WAL_NAME"]
