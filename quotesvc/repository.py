"""SQL-backed quote repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    Table,
    Text,
    delete,
    func,
    insert,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from quotesvc.domain import Quote, QuoteFilter, QuoteNotFoundError, QuoteRepository
from quotesvc.logger import Logger

metadata = MetaData()

quotes_table = Table(
    "quotes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("author", Text, nullable=False),
    Column("text", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


class RepositoryError(Exception):
    """Raised when a storage operation fails."""


def create_schema(engine: Engine) -> None:
    """Create the quotes table if it does not exist."""
    metadata.create_all(engine)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _to_quote(row: Any) -> Quote:
    return Quote(
        id=row.id,
        author=row.author,
        text=row.text,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _author_condition(quote_filter: QuoteFilter):
    return quotes_table.c.author.ilike(f"%{quote_filter.author}%")


class SqlQuoteRepository(QuoteRepository):
    """Quote storage on a SQLAlchemy engine."""

    def __init__(self, engine: Engine, logger: Logger | None = None) -> None:
        self._engine = engine
        self._logger = logger if logger is not None else Logger()

    def create(self, quote: Quote) -> Quote:
        now = datetime.now(timezone.utc)
        quote.created_at = now
        quote.updated_at = now
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    insert(quotes_table).values(
                        author=quote.author, text=quote.text, created_at=now, updated_at=now
                    )
                )
                new_id = result.inserted_primary_key[0]
                row = conn.execute(
                    select(quotes_table).where(quotes_table.c.id == new_id)
                ).one()
        except SQLAlchemyError as exc:
            self._logger.error("Failed to create quote", error=exc, author=quote.author)
            raise RepositoryError(f"failed to create quote: {exc}") from exc

        created = _to_quote(row)
        self._logger.info("Quote created", id=created.id, author=created.author)
        return created

    def get_all(self, quote_filter: QuoteFilter) -> list[Quote]:
        stmt = select(quotes_table)
        if quote_filter.author:
            stmt = stmt.where(_author_condition(quote_filter))
        stmt = stmt.order_by(quotes_table.c.created_at.desc(), quotes_table.c.id.desc())
        if quote_filter.limit > 0:
            stmt = stmt.limit(quote_filter.limit)
        if quote_filter.offset > 0:
            stmt = stmt.offset(quote_filter.offset)

        try:
            with self._engine.connect() as conn:
                quotes = [_to_quote(row) for row in conn.execute(stmt)]
        except SQLAlchemyError as exc:
            self._logger.error("Failed to get quotes", error=exc, filter=quote_filter)
            raise RepositoryError(f"failed to get quotes: {exc}") from exc

        self._logger.debug("Retrieved quotes", count=len(quotes), filter=quote_filter)
        return quotes

    def get_by_id(self, quote_id: int) -> Quote:
        stmt = select(quotes_table).where(quotes_table.c.id == quote_id)
        try:
            with self._engine.connect() as conn:
                row = conn.execute(stmt).first()
        except SQLAlchemyError as exc:
            self._logger.error("Failed to get quote by ID", error=exc, id=quote_id)
            raise RepositoryError(f"failed to get quote: {exc}") from exc
        if row is None:
            raise QuoteNotFoundError()
        return _to_quote(row)

    def get_random(self) -> Quote:
        stmt = select(quotes_table).order_by(func.random()).limit(1)
        try:
            with self._engine.connect() as conn:
                row = conn.execute(stmt).first()
        except SQLAlchemyError as exc:
            self._logger.error("Failed to get random quote", error=exc)
            raise RepositoryError(f"failed to get random quote: {exc}") from exc
        if row is None:
            raise QuoteNotFoundError()
        quote = _to_quote(row)
        self._logger.debug("Retrieved random quote", id=quote.id, author=quote.author)
        return quote

    def delete(self, quote_id: int) -> None:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(quotes_table).where(quotes_table.c.id == quote_id))
        except SQLAlchemyError as exc:
            self._logger.error("Failed to delete quote", error=exc, id=quote_id)
            raise RepositoryError(f"failed to delete quote: {exc}") from exc
        if result.rowcount == 0:
            raise QuoteNotFoundError()
        self._logger.info("Quote deleted", id=quote_id)

    def count(self, quote_filter: QuoteFilter) -> int:
        stmt = select(func.count()).select_from(quotes_table)
        if quote_filter.author:
            stmt = stmt.where(_author_condition(quote_filter))
        try:
            with self._engine.connect() as conn:
                return int(conn.execute(stmt).scalar_one())
        except SQLAlchemyError as exc:
            self._logger.error("Failed to count quotes", error=exc, filter=quote_filter)
            raise RepositoryError(f"failed to count quotes: {exc}") from exc

    def health_check(self) -> None:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise RepositoryError(str(exc)) from exc