"""Idempotent writer for normalized unit records."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Set

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from solsync.core.logging import get_logger
from solsync.ingestion.errors import ItemSkipped
from solsync.models.records import UnitRecord
from solsync.schemas.records import NormalizedRecord

log = get_logger("services.record_writer")

ItemParser = Callable[[Dict[str, Any], int], NormalizedRecord]

# Keeps IN (...) lists well below driver parameter limits
ID_BATCH_SIZE = 500


class WriteResult(NamedTuple):
    inserted: int
    duplicates: int
    skipped: int


class RecordWriter:
    """Inserts parsed items keyed by (source, external_id); existing ids are left alone."""

    def __init__(self, db: Session):
        self.db = db

    def write(
        self,
        source: str,
        unit: int,
        raw_items: Iterable[Dict[str, Any]],
        parse: ItemParser,
    ) -> WriteResult:
        records: Dict[str, NormalizedRecord] = {}
        parsed = 0
        skipped = 0

        for raw in raw_items:
            try:
                record = parse(raw, unit)
            except ItemSkipped as exc:
                log.warning(f"Skipping {source} item in unit {unit}: {exc}")
                skipped += 1
                continue
            parsed += 1
            records.setdefault(record.external_id, record)

        existing = self.existing_ids(source, list(records))
        missing = [rec for ext_id, rec in records.items() if ext_id not in existing]
        inserted = self._insert_ignoring_conflicts(source, missing)
        self.db.commit()

        result = WriteResult(inserted=inserted, duplicates=parsed - inserted, skipped=skipped)
        if inserted:
            log.info(f"Inserted {inserted} new records for {source} unit {unit}")
        if skipped:
            log.info(f"Skipped {skipped} malformed items for {source} unit {unit}")
        return result

    def existing_ids(self, source: str, external_ids: List[str]) -> Set[str]:
        found: Set[str] = set()
        for start in range(0, len(external_ids), ID_BATCH_SIZE):
            chunk = external_ids[start:start + ID_BATCH_SIZE]
            stmt = select(UnitRecord.external_id).where(
                UnitRecord.source == source,
                UnitRecord.external_id.in_(chunk),
            )
            found.update(self.db.execute(stmt).scalars())
        return found

    def _insert_ignoring_conflicts(self, source: str, records: List[NormalizedRecord]) -> int:
        """INSERT ... ON CONFLICT DO NOTHING; a concurrent insert counts as already present."""
        if not records:
            return 0

        dialect = self.db.get_bind().dialect.name
        insert = sqlite_insert if dialect == "sqlite" else pg_insert

        inserted = 0
        for start in range(0, len(records), ID_BATCH_SIZE):
            chunk = records[start:start + ID_BATCH_SIZE]
            stmt = insert(UnitRecord).values([
                {
                    "source": source,
                    "external_id": rec.external_id,
                    "unit": rec.unit,
                    "taken_at": rec.taken_at,
                    "received_at": rec.received_at,
                    "camera": rec.camera,
                    "image_url": rec.image_url,
                    "title": rec.title,
                    "payload": rec.payload,
                }
                for rec in chunk
            ])
            stmt = stmt.on_conflict_do_nothing(index_elements=["source", "external_id"])
            stmt = stmt.returning(UnitRecord.external_id)
            inserted += len(self.db.execute(stmt).scalars().all())
        return inserted
