"""Quote entities, request validation and the repository contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

MAX_AUTHOR_LENGTH = 100
MAX_QUOTE_LENGTH = 1000

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class QuoteNotFoundError(LookupError):
    """Raised when a requested quote does not exist."""

    def __init__(self, message: str = "quote not found") -> None:
        super().__init__(message)


class InvalidQuoteError(ValueError):
    """Raised when quote data is rejected."""

    def __init__(self, message: str = "invalid quote data") -> None:
        super().__init__(message)


class ValidationError(ValueError):
    """Raised by request validation with a field-specific message."""


@dataclass
class Quote:
    """A stored quote."""

    id: int = 0
    author: str = ""
    text: str = ""
    created_at: datetime = field(default=_ZERO_TIME)
    updated_at: datetime = field(default=_ZERO_TIME)

    def to_dict(self) -> dict[str, Any]:
        """Return the quote as its JSON representation."""
        return {
            "id": self.id,
            "author": self.author,
            "quote": self.text,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class CreateQuoteRequest:
    """Payload for creating a quote."""

    author: str = ""
    quote: str = ""

    def validate(self) -> None:
        """Trim surrounding whitespace in place and check the fields.

        Lengths are measured in UTF-8 bytes.
        """
        self.author = self.author.strip()
        self.quote = self.quote.strip()

        if not self.author:
            raise ValidationError("author is required")
        if not self.quote:
            raise ValidationError("quote is required")
        if len(self.author.encode("utf-8")) > MAX_AUTHOR_LENGTH:
            raise ValidationError("author must be less than 100 characters")
        if len(self.quote.encode("utf-8")) > MAX_QUOTE_LENGTH:
            raise ValidationError("quote must be less than 1000 characters")


@dataclass
class QuoteFilter:
    """Criteria for listing quotes; zero limit or offset means unset."""

    author: str = ""
    limit: int = 0
    offset: int = 0


class QuoteRepository(ABC):
    """Storage for quotes."""

    @abstractmethod
    def create(self, quote: Quote) -> Quote:
        """Store a quote and return the stored record."""

    @abstractmethod
    def get_all(self, quote_filter: QuoteFilter) -> list[Quote]:
        """Return quotes matching the filter, newest first."""

    @abstractmethod
    def get_by_id(self, quote_id: int) -> Quote:
        """Return one quote or raise QuoteNotFoundError."""

    @abstractmethod
    def get_random(self) -> Quote:
        """Return a random quote or raise QuoteNotFoundError."""

    @abstractmethod
    def delete(self, quote_id: int) -> None:
        """Remove a quote or raise QuoteNotFoundError."""

    @abstractmethod
    def count(self, quote_filter: QuoteFilter) -> int:
        """Return the number of quotes matching the filter."""

    @abstractmethod
    def health_check(self) -> None:
        """Raise if the storage is unreachable."""