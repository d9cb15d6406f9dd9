"""
Progression Record Store

Purpose
-------
Owns the durable per-user counters and the tiers derived from them. Every
write recomputes all three tiers from the counters in the same transaction,
so the stored tiers never drift from the threshold table in use.

Responsibilities
----------------
- Read a user's record as a detached ``ProgressionSnapshot``
- Create the default record without clobbering an existing one
- Apply XP deltas atomically and return the before/after pair
- Re-derive tiers for one or all records
- Overwrite counters (administrative reset)
- Persist the notification preference
- Serve ordered listings for the leaderboard

Concurrency
-----------
``apply_delta`` never reads counters before writing them. It inserts the
row if absent (``ON CONFLICT DO NOTHING``), increments the counters with a
single ``UPDATE ... SET xp = xp + :delta`` (which takes the row lock), and
only then reads the row back. Concurrent deltas for one user serialise on
that lock, and each caller sees its own consistent before/after snapshot.

Error Handling
--------------
Any SQLAlchemy or database-service failure is translated into
``StoreError`` after the transaction has been rolled back. Negative deltas
are rejected with ``ValidationError`` before a connection is opened.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from logging import Logger
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)
from cadence.core.logging.logger import get_logger
from cadence.database.models import ProgressionRecord
from cadence.modules.progression.models import DeltaOutcome, ProgressionSnapshot
from cadence.modules.progression.tracks import OrderKey
from cadence.modules.shared.base_repository import BaseRepository
from cadence.modules.shared.exceptions import NotFoundError, StoreError
from cadence.modules.shared.formulas import derive_tiers

_RECORD = "ProgressionRecord"


class ProgressionStore(BaseRepository[ProgressionRecord]):
    """
    Transactional access to ``progression_records``.

    Every public coroutine opens its own transaction through
    ``DatabaseService`` and returns detached value objects.

    Args:
        thresholds: Threshold table used to derive tiers on every write
        logger: Optional logger (defaults to this module's logger)
    """

    def __init__(
        self,
        thresholds: Sequence[int],
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(ProgressionRecord, logger or get_logger(__name__))
        self.thresholds: Tuple[int, ...] = tuple(thresholds)

    # ========================================================================
    # Error translation
    # ========================================================================

    @asynccontextmanager
    async def _guard(self, operation: str, user_id: Optional[int] = None) -> AsyncIterator[None]:
        try:
            yield
        except (
            SQLAlchemyError,
            DatabaseInitializationError,
            DatabaseNotInitializedError,
        ) as exc:
            self.log.error(
                "Progression store operation failed",
                extra={
                    "store_operation": operation,
                    "target_user_id": user_id,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            raise StoreError(operation, str(exc), user_id=user_id) from exc

    # ========================================================================
    # Session-level helpers
    # ========================================================================

    def _default_values(self, user_id: int) -> Dict[str, Any]:
        message_tier, voice_tier, combined_tier = derive_tiers(0, 0, self.thresholds)
        return {
            "user_id": user_id,
            "message_xp": 0,
            "voice_xp": 0,
            "message_tier": message_tier,
            "voice_tier": voice_tier,
            "combined_tier": combined_tier,
            "notifications_enabled": False,
        }

    async def _insert_if_absent(self, session: AsyncSession, user_id: int) -> bool:
        """Insert the default row unless one exists. Returns True if inserted."""
        values = self._default_values(user_id)
        dialect = DatabaseService.dialect_name()

        if dialect == "postgresql":
            stmt = postgresql.insert(ProgressionRecord).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite.insert(ProgressionRecord).values(**values)
        else:
            existing = await self.find_one_where(
                session, ProgressionRecord.user_id == user_id, for_update=True
            )
            if existing is not None:
                return False
            self.add(session, ProgressionRecord(**values))
            await session.flush()
            return True

        stmt = stmt.on_conflict_do_nothing(index_elements=["user_id"])
        result = await session.execute(stmt)
        return bool(result.rowcount)

    async def _load(
        self,
        session: AsyncSession,
        user_id: int,
        for_update: bool = False,
    ) -> Optional[ProgressionRecord]:
        return await self.find_one_where(
            session,
            ProgressionRecord.user_id == user_id,
            for_update=for_update,
            refresh=True,
        )

    async def _require(
        self,
        session: AsyncSession,
        user_id: int,
        for_update: bool = True,
    ) -> ProgressionRecord:
        record = await self._load(session, user_id, for_update=for_update)
        if record is None:
            raise NotFoundError(_RECORD, user_id)
        return record

    def _write_tiers(self, record: ProgressionRecord, snapshot: ProgressionSnapshot) -> None:
        record.message_tier = snapshot.message_tier
        record.voice_tier = snapshot.voice_tier
        record.combined_tier = snapshot.combined_tier

    # ========================================================================
    # Reads
    # ========================================================================

    async def get(self, user_id: int) -> Optional[ProgressionSnapshot]:
        """Return the user's current snapshot, or None if absent."""
        async with self._guard("get", user_id):
            async with DatabaseService.get_session() as session:
                record = await self._load(session, user_id)
                return ProgressionSnapshot.from_record(record) if record else None

    async def count_records(self) -> int:
        async with self._guard("count_records"):
            async with DatabaseService.get_session() as session:
                return await self.count(session)

    async def iter_user_ids(self, batch_size: int = 500) -> AsyncIterator[int]:
        """
        Yield every stored user id in insertion order.

        Pages by primary key so records inserted during iteration are picked
        up and no long-lived cursor is held.
        """
        last_id = 0
        while True:
            async with self._guard("iter_user_ids"):
                async with DatabaseService.get_session() as session:
                    result = await session.execute(
                        select(ProgressionRecord.id, ProgressionRecord.user_id)
                        .where(ProgressionRecord.id > last_id)
                        .order_by(ProgressionRecord.id)
                        .limit(batch_size)
                    )
                    rows = result.all()

            if not rows:
                return

            for row_id, user_id in rows:
                last_id = row_id
                yield int(user_id)

            if len(rows) < batch_size:
                return

    async def top(self, limit: int, order_key: OrderKey) -> List[ProgressionSnapshot]:
        """
        Return up to ``limit`` snapshots, descending by ``order_key``.

        Ties keep insertion order (ascending primary key).
        """
        if order_key is OrderKey.TOTAL_XP:
            sort_column = ProgressionRecord.message_xp + ProgressionRecord.voice_xp
        else:
            sort_column = getattr(ProgressionRecord, order_key.value)

        async with self._guard("top"):
            async with DatabaseService.get_session() as session:
                records = await self.find_many_where(
                    session,
                    order_by=(sort_column.desc(), ProgressionRecord.id.asc()),
                    limit=limit,
                )
                return [ProgressionSnapshot.from_record(record) for record in records]

    # ========================================================================
    # Writes
    # ========================================================================

    async def create_default(self, user_id: int) -> ProgressionSnapshot:
        """
        Ensure a record exists and return it.

        An existing record is returned untouched; its counters are never reset.
        """
        async with self._guard("create_default", user_id):
            async with DatabaseService.get_transaction() as session:
                created = await self._insert_if_absent(session, user_id)
                record = await self._require(session, user_id, for_update=False)
                snapshot = ProgressionSnapshot.from_record(record)

        if created:
            self.log.info(
                "Progression record created",
                extra={"target_user_id": user_id},
            )
        return snapshot

    async def apply_delta(
        self,
        user_id: int,
        message_delta: int = 0,
        voice_delta: int = 0,
    ) -> DeltaOutcome:
        """
        Add non-negative deltas to the counters and re-derive all tiers.

        Creates the record first if the user has none. The returned
        ``before`` snapshot carries the tiers stored prior to this write.

        Raises:
            ValidationError: If either delta is negative
            StoreError: If the write fails (nothing is persisted)
        """
        from cadence.core.validation.input_validator import InputValidator

        message_delta = InputValidator.validate_non_negative_integer(
            message_delta, field_name="message_delta"
        )
        voice_delta = InputValidator.validate_non_negative_integer(
            voice_delta, field_name="voice_delta"
        )

        async with self._guard("apply_delta", user_id):
            async with DatabaseService.get_transaction() as session:
                created = await self._insert_if_absent(session, user_id)

                await session.execute(
                    update(ProgressionRecord)
                    .where(ProgressionRecord.user_id == user_id)
                    .values(
                        message_xp=ProgressionRecord.message_xp + message_delta,
                        voice_xp=ProgressionRecord.voice_xp + voice_delta,
                    )
                    .execution_options(synchronize_session=False)
                )

                record = await self._require(session, user_id, for_update=False)

                # Tier columns still hold the values from before this delta
                before = ProgressionSnapshot(
                    user_id=user_id,
                    message_xp=int(record.message_xp) - message_delta,
                    voice_xp=int(record.voice_xp) - voice_delta,
                    message_tier=int(record.message_tier),
                    voice_tier=int(record.voice_tier),
                    combined_tier=int(record.combined_tier),
                    notifications_enabled=bool(record.notifications_enabled),
                )
                after = before.with_counters(
                    int(record.message_xp), int(record.voice_xp), self.thresholds
                )
                self._write_tiers(record, after)

        outcome = DeltaOutcome(before=before, after=after, created=created)

        self.log.debug(
            "Progression delta applied",
            extra={
                "target_user_id": user_id,
                "message_delta": message_delta,
                "voice_delta": voice_delta,
                "record_created": created,
                "tiers_before": before.tiers(),
                "tiers_after": after.tiers(),
            },
        )

        return outcome

    async def recalculate_tiers(self, user_id: int) -> DeltaOutcome:
        """
        Re-derive and store all three tiers from the stored counters.

        Raises:
            NotFoundError: If the user has no record
        """
        async with self._guard("recalculate_tiers", user_id):
            async with DatabaseService.get_transaction() as session:
                record = await self._require(session, user_id)
                before = ProgressionSnapshot.from_record(record)
                after = before.with_counters(
                    before.message_xp, before.voice_xp, self.thresholds
                )
                if after.tiers() != before.tiers():
                    self._write_tiers(record, after)

        return DeltaOutcome(before=before, after=after)

    async def recalculate_all_tiers(self, batch_size: int = 500) -> int:
        """
        Re-derive tiers for every record, one transaction per batch.

        Returns the number of records whose stored tiers changed.
        """
        changed = 0
        last_id = 0

        while True:
            async with self._guard("recalculate_all_tiers"):
                async with DatabaseService.get_transaction() as session:
                    records = await self.find_many_where(
                        session,
                        ProgressionRecord.id > last_id,
                        order_by=(ProgressionRecord.id.asc(),),
                        limit=batch_size,
                        for_update=True,
                    )
                    for record in records:
                        last_id = record.id
                        before = ProgressionSnapshot.from_record(record)
                        after = before.with_counters(
                            before.message_xp, before.voice_xp, self.thresholds
                        )
                        if after.tiers() != before.tiers():
                            self._write_tiers(record, after)
                            changed += 1

            if len(records) < batch_size:
                break

        self.log.info(
            "Tier recalculation complete",
            extra={"changed": changed},
        )
        return changed

    async def overwrite_counters(
        self,
        user_id: int,
        message_xp: int,
        voice_xp: int,
    ) -> DeltaOutcome:
        """
        Replace both counters and re-derive tiers (administrative reset).

        Raises:
            ValidationError: If a counter is negative
            NotFoundError: If the user has no record
        """
        from cadence.core.validation.input_validator import InputValidator

        message_xp = InputValidator.validate_non_negative_integer(
            message_xp, field_name="message_xp"
        )
        voice_xp = InputValidator.validate_non_negative_integer(
            voice_xp, field_name="voice_xp"
        )

        async with self._guard("overwrite_counters", user_id):
            async with DatabaseService.get_transaction() as session:
                record = await self._require(session, user_id)
                before = ProgressionSnapshot.from_record(record)
                after = before.with_counters(message_xp, voice_xp, self.thresholds)

                record.message_xp = message_xp
                record.voice_xp = voice_xp
                self._write_tiers(record, after)

        self.log.info(
            "Progression counters overwritten",
            extra={
                "target_user_id": user_id,
                "message_xp": message_xp,
                "voice_xp": voice_xp,
                "tiers_before": before.tiers(),
                "tiers_after": after.tiers(),
            },
        )

        return DeltaOutcome(before=before, after=after)

    async def set_notifications(self, user_id: int, enabled: bool) -> ProgressionSnapshot:
        async with self._guard("set_notifications", user_id):
            async with DatabaseService.get_transaction() as session:
                record = await self._require(session, user_id)
                record.notifications_enabled = bool(enabled)
                return ProgressionSnapshot.from_record(record)

    async def toggle_notifications(self, user_id: int) -> ProgressionSnapshot:
        async with self._guard("toggle_notifications", user_id):
            async with DatabaseService.get_transaction() as session:
                record = await self._require(session, user_id)
                record.notifications_enabled = not record.notifications_enabled
                return ProgressionSnapshot.from_record(record)
