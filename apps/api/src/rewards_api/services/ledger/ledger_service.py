"""Append-only ledger access."""

from __future__ import annotations

from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import ValidationError
from rewards_api.models.transaction import (
    TRANSACTION_CLASSES,
    LedgerTransaction,
    TransactionTypeEnum,
)


MAX_PAGE_SIZE = 500


class LedgerService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def create_transaction(
        self,
        transaction_type: TransactionTypeEnum,
        *,
        user_id: UUID,
        amount: int = 0,
        **fields: Any,
    ) -> LedgerTransaction:
        """Stage a ledger entry of the given kind (flush only).

        Only the columns that belong to ``transaction_type`` are accepted, so a
        purchase can never carry a commission level and vice versa.
        """

        entry_cls = TRANSACTION_CLASSES[transaction_type]
        unknown = sorted(key for key in fields if key not in entry_cls.__mapper__.attrs)
        if unknown:
            raise ValidationError(
                f"Fields {', '.join(unknown)} are not valid for {transaction_type.value} transactions."
            )
        entry = entry_cls(user_id=user_id, amount=amount, **fields)
        self._db.add(entry)
        await self._db.flush()
        return entry

    async def get_transactions(
        self,
        *,
        user_id: UUID | None = None,
        limit: int | None = None,
        types: Sequence[TransactionTypeEnum] | None = None,
    ) -> list[LedgerTransaction]:
        """Newest-first ledger entries, optionally scoped to a user and/or kinds."""

        stmt = select(LedgerTransaction).order_by(LedgerTransaction.created_at.desc())
        if user_id is not None:
            stmt = stmt.where(LedgerTransaction.user_id == user_id)
        if types:
            stmt = stmt.where(LedgerTransaction.type.in_(list(types)))
        if limit:
            stmt = stmt.limit(min(max(1, limit), MAX_PAGE_SIZE))
        result = await self._db.execute(stmt)
        return list(result.scalars().all())
