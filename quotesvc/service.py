"""Business rules for creating, listing and removing quotes."""

from __future__ import annotations

from dataclasses import replace

from quotesvc.domain import (
    CreateQuoteRequest,
    InvalidQuoteError,
    Quote,
    QuoteFilter,
    QuoteNotFoundError,
    QuoteRepository,
    ValidationError,
)
from quotesvc.logger import Logger

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000


class ServiceError(Exception):
    """Raised when the storage behind the service fails."""


def _wrap(prefix: str, exc: Exception) -> Exception:
    """Prefix a storage error, keeping not-found and invalid-data errors recognisable."""
    message = f"{prefix}: {exc}"
    if isinstance(exc, QuoteNotFoundError):
        return QuoteNotFoundError(message)
    if isinstance(exc, InvalidQuoteError):
        return InvalidQuoteError(message)
    return ServiceError(message)


class QuoteService:
    """Validates requests and applies listing limits before reaching the repository."""

    def __init__(self, repo: QuoteRepository, logger: Logger | None = None) -> None:
        self._repo = repo
        self._logger = logger if logger is not None else Logger()

    def create_quote(self, request: CreateQuoteRequest) -> Quote:
        """Validate the request and store a new quote.

        The caller's request object is left untouched.
        """
        request = replace(request)
        try:
            request.validate()
        except ValidationError as exc:
            self._logger.debug("Invalid quote request", error=exc, request=request)
            raise InvalidQuoteError(f"invalid quote data: {exc}") from exc

        quote = Quote(author=request.author, text=request.quote)
        try:
            created = self._repo.create(quote)
        except Exception as exc:
            self._logger.error("Failed to create quote", error=exc, author=request.author)
            raise _wrap("failed to create quote", exc) from exc

        self._logger.info(
            "Quote created successfully", id=created.id, author=created.author
        )
        return created

    def get_all_quotes(self, quote_filter: QuoteFilter) -> list[Quote]:
        """List quotes, applying a default limit of 100 and a maximum of 1000."""
        quote_filter = replace(quote_filter)
        if quote_filter.limit <= 0:
            quote_filter.limit = DEFAULT_LIMIT
        if quote_filter.limit > MAX_LIMIT:
            quote_filter.limit = MAX_LIMIT

        try:
            quotes = self._repo.get_all(quote_filter)
        except Exception as exc:
            self._logger.error("Failed to get quotes", error=exc, filter=quote_filter)
            raise _wrap("failed to get quotes", exc) from exc

        self._logger.debug("Retrieved quotes", count=len(quotes), filter=quote_filter)
        return quotes

    def get_random_quote(self) -> Quote:
        """Return one randomly chosen quote."""
        try:
            quote = self._repo.get_random()
        except Exception as exc:
            self._logger.error("Failed to get random quote", error=exc)
            raise _wrap("failed to get random quote", exc) from exc

        self._logger.debug("Retrieved random quote", id=quote.id, author=quote.author)
        return quote

    def delete_quote(self, quote_id: int) -> None:
        """Remove a quote; identifiers must be positive."""
        if quote_id <= 0:
            raise InvalidQuoteError("invalid quote data: invalid quote ID")

        try:
            self._repo.delete(quote_id)
        except Exception as exc:
            self._logger.error("Failed to delete quote", id=quote_id, error=exc)
            raise _wrap("failed to delete quote", exc) from exc

        self._logger.info("Quote deleted successfully", id=quote_id)

    def health_check(self) -> None:
        """Raise whatever the repository raises when storage is unreachable."""
        self._repo.health_check()