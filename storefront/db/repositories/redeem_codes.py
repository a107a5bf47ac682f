from __future__ import annotations

import functools
import logging
from typing import List, Optional

from pydantic import TypeAdapter
from sqlalchemy import delete, desc, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.db.enums import CodeKind
from storefront.db.models import USAGE_WITHIN_LIMIT_CONSTRAINT, RedeemCode, RedeemCodeRedemption
from storefront.db.session import async_session
from storefront.redeem.codes import normalize_code
from storefront.redeem.errors import (
    DuplicateCodeError,
    RedeemError,
    StorageUnavailableError,
    UsageLimitBelowCountError,
)
from storefront.redeem.repository import RedeemCodeRepository
from storefront.redeem.types import (
    CodeChanges,
    CodeDraft,
    CodePayload,
    CodeScope,
    RedeemCodeRecord,
    RedemptionEntry,
)

logger = logging.getLogger(__name__)

_payload_adapter: TypeAdapter = TypeAdapter(CodePayload)


def _storage_errors(func):
    """Любая ошибка SQLAlchemy наружу уходит как StorageUnavailableError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except RedeemError:
            raise
        except SQLAlchemyError as e:
            logger.exception("Ошибка БД в %s: %s", func.__name__, e)
            raise StorageUnavailableError(str(e)) from e

    return wrapper


def _to_record(row: RedeemCode) -> RedeemCodeRecord:
    kind = row.kind.value if isinstance(row.kind, CodeKind) else str(row.kind)
    payload = _payload_adapter.validate_python({**(row.value or {}), "kind": kind})

    if row.is_master_code:
        scope = CodeScope.master()
    else:
        scope = CodeScope.for_product(row.product_id)

    return RedeemCodeRecord(
        id=row.id,
        code=row.code,
        payload=payload,
        scope=scope,
        is_active=bool(row.is_active),
        usage_limit=row.usage_limit,
        usage_count=int(row.usage_count or 0),
        expires_at=row.expires_at,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _violates_usage_limit(exc: IntegrityError) -> bool:
    # имя check-констрейнта есть в тексте ошибки и у SQLite, и у PostgreSQL
    return USAGE_WITHIN_LIMIT_CONSTRAINT in str(exc.orig)


def _violates_unique(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed", PostgreSQL: "violates unique constraint"
    return "unique" in str(exc.orig).lower()


def _payload_columns(payload) -> tuple[CodeKind, dict]:
    return CodeKind(payload.kind), payload.model_dump(by_alias=True, exclude={"kind"})


class SqlRedeemCodeRepository(RedeemCodeRepository):
    """
    Коды в SQL (PostgreSQL через asyncpg, в тестах: SQLite через aiosqlite).

    Уникальность кода держит unique-индекс на redeem_codes.code,
    лимит использований: условный UPDATE в increment_usage
    и check-констрейнт в самой таблице.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session) -> None:
        self._session_factory = session_factory

    # -------------------------------------------------------------------
    # Чтение
    # -------------------------------------------------------------------

    @_storage_errors
    async def get(self, code_id: str) -> Optional[RedeemCodeRecord]:
        async with self._session_factory() as session:
            row = await session.get(RedeemCode, code_id)
            return _to_record(row) if row is not None else None

    @_storage_errors
    async def find_by_code(self, code: str) -> Optional[RedeemCodeRecord]:
        normalized = normalize_code(code)
        if not normalized:
            return None

        async with self._session_factory() as session:
            stmt = select(RedeemCode).where(RedeemCode.code == normalized)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_record(row) if row is not None else None

    @_storage_errors
    async def find_by_product(self, product_id: str) -> List[RedeemCodeRecord]:
        async with self._session_factory() as session:
            stmt = (
                select(RedeemCode)
                .where(RedeemCode.product_id == product_id)
                .order_by(desc(RedeemCode.created_at))
            )
            res = await session.execute(stmt)
            return [_to_record(r) for r in res.scalars().all()]

    @_storage_errors
    async def find_master_codes(self) -> List[RedeemCodeRecord]:
        async with self._session_factory() as session:
            stmt = (
                select(RedeemCode)
                .where(RedeemCode.is_master_code == True)  # noqa: E712
                .order_by(desc(RedeemCode.created_at))
            )
            res = await session.execute(stmt)
            return [_to_record(r) for r in res.scalars().all()]

    @_storage_errors
    async def list_all(self) -> List[RedeemCodeRecord]:
        async with self._session_factory() as session:
            res = await session.execute(select(RedeemCode).order_by(desc(RedeemCode.created_at)))
            return [_to_record(r) for r in res.scalars().all()]

    @_storage_errors
    async def list_redemptions(self, code_id: str) -> List[RedemptionEntry]:
        async with self._session_factory() as session:
            stmt = (
                select(RedeemCodeRedemption)
                .where(RedeemCodeRedemption.redeem_code_id == code_id)
                .order_by(RedeemCodeRedemption.id.asc())
            )
            res = await session.execute(stmt)
            return [
                RedemptionEntry(
                    id=r.id,
                    redeem_code_id=r.redeem_code_id,
                    product_id=r.product_id,
                    redeemed_at=r.redeemed_at,
                )
                for r in res.scalars().all()
            ]

    # -------------------------------------------------------------------
    # Изменение
    # -------------------------------------------------------------------

    @_storage_errors
    async def create(self, draft: CodeDraft) -> RedeemCodeRecord:
        normalized = normalize_code(draft.code)
        kind, value = _payload_columns(draft.payload)

        async with self._session_factory() as session:
            row = RedeemCode(
                code=normalized,
                kind=kind,
                value=value,
                product_id=draft.scope.product_id,
                is_master_code=draft.scope.is_master,
                is_active=bool(draft.is_active),
                usage_limit=draft.usage_limit,
                usage_count=0,
                expires_at=draft.expires_at,
                created_by=draft.created_by,
            )
            session.add(row)

            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if _violates_unique(e):
                    raise DuplicateCodeError(normalized)
                raise

            await session.refresh(row)
            return _to_record(row)

    @_storage_errors
    async def update(self, code_id: str, changes: CodeChanges) -> Optional[RedeemCodeRecord]:
        fields = changes.model_fields_set

        async with self._session_factory() as session:
            row = await session.get(RedeemCode, code_id)
            if row is None:
                return None

            if "code" in fields:
                # занятость кода проверяет unique-индекс при коммите
                row.code = normalize_code(changes.code)

            if "payload" in fields:
                row.kind, row.value = _payload_columns(changes.payload)

            if "scope" in fields:
                row.is_master_code = changes.scope.is_master
                row.product_id = changes.scope.product_id

            if "is_active" in fields:
                row.is_active = bool(changes.is_active)
            if "usage_limit" in fields:
                row.usage_limit = changes.usage_limit
            if "expires_at" in fields:
                row.expires_at = changes.expires_at

            # после rollback row истёкший, к его атрибутам больше не обращаемся
            target_code = row.code
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if _violates_usage_limit(e):
                    usage_count = await session.scalar(
                        select(RedeemCode.usage_count).where(RedeemCode.id == code_id)
                    )
                    raise UsageLimitBelowCountError(int(usage_count or 0))
                if _violates_unique(e):
                    raise DuplicateCodeError(target_code)
                raise

            await session.refresh(row)
            return _to_record(row)

    @_storage_errors
    async def increment_usage(self, code_id: str, *, product_id: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                # проверка лимита и инкремент: один UPDATE, гонку двух запросов
                # за последний слот выигрывает ровно один
                res = await session.execute(
                    update(RedeemCode)
                    .where(
                        RedeemCode.id == code_id,
                        or_(
                            RedeemCode.usage_limit.is_(None),
                            RedeemCode.usage_count < RedeemCode.usage_limit,
                        ),
                    )
                    .values(
                        usage_count=RedeemCode.usage_count + 1,
                        # updated_at двигают только правки админа
                        updated_at=RedeemCode.updated_at,
                    )
                    .execution_options(synchronize_session=False)
                )
                if (res.rowcount or 0) == 0:
                    return False

                session.add(
                    RedeemCodeRedemption(
                        redeem_code_id=code_id,
                        product_id=product_id,
                    )
                )
            return True

    @_storage_errors
    async def delete(self, code_id: str) -> bool:
        async with self._session_factory() as session:
            # в SQLite каскад по FK по умолчанию выключен: чистим журнал явно
            await session.execute(
                delete(RedeemCodeRedemption).where(RedeemCodeRedemption.redeem_code_id == code_id)
            )
            res = await session.execute(delete(RedeemCode).where(RedeemCode.id == code_id))
            await session.commit()
            return (res.rowcount or 0) > 0
