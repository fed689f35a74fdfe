"""HTTP routes for the quotes API."""

from __future__ import annotations

import functools
import json
import re
import time
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Callable

from flask import Flask, Response, g, request

from quotesvc.domain import (
    CreateQuoteRequest,
    InvalidQuoteError,
    Quote,
    QuoteFilter,
    QuoteNotFoundError,
)
from quotesvc.logger import Logger
from quotesvc.service import QuoteService, ServiceError

_START_TIME = time.monotonic()
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _parse_int(value: str) -> int | None:
    """Parse a signed decimal 64-bit integer, or return None."""
    if not _INT_PATTERN.fullmatch(value):
        return None
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX:
        return None
    return number


def _format_fraction(value: int, digits: int) -> str:
    whole, frac = divmod(value, 10**digits)
    frac_text = str(frac).rjust(digits, "0").rstrip("0")
    return f"{whole}.{frac_text}" if frac_text else str(whole)


def _format_duration(seconds: float) -> str:
    """Render a duration as e.g. ``1h2m3.5s`` or ``1.5ms``."""
    ns = int(seconds * 1_000_000_000)
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_format_fraction(ns, 3)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_format_fraction(ns, 6)}ms"
    hours, rest = divmod(ns, 3600 * 1_000_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000_000)
    secs = f"{_format_fraction(rest, 9)}s"
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}"
    if minutes:
        return f"{sign}{minutes}m{secs}"
    return f"{sign}{secs}"


def _decode_create_request(body: bytes) -> CreateQuoteRequest:
    """Decode the first JSON value of the body into a create request.

    Keys match field names case-insensitively; null leaves a field empty.
    """
    document = body.decode("utf-8", errors="replace").lstrip(" \t\r\n")
    value, _ = json.JSONDecoder().raw_decode(document)
    req = CreateQuoteRequest()
    if value is None:
        return req
    if not isinstance(value, dict):
        raise ValueError("request body must be a JSON object")
    for key, item in value.items():
        name = key.lower()
        if name not in ("author", "quote"):
            continue
        if item is None:
            continue
        if not isinstance(item, str):
            raise ValueError(f"field {key!r} must be a string")
        setattr(req, name, item)
    return req


def _encode(obj: Any) -> Any:
    if isinstance(obj, Quote):
        return obj.to_dict()
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"cannot encode {type(obj).__name__}")


class QuoteHandler:
    """Serves the quotes API on a Flask application."""

    def __init__(self, service: QuoteService, logger: Logger | None = None) -> None:
        self._service = service
        self._logger = logger if logger is not None else Logger()

    def register_routes(self, app: Flask) -> None:
        """Attach the API routes, request logging and error recovery to ``app``."""
        routes: list[tuple[str, str, Callable[..., Response], str]] = [
            ("/quotes", "create_quote", self.create_quote, "POST"),
            ("/quotes", "get_quotes", self.get_quotes, "GET"),
            ("/quotes/random", "get_random_quote", self.get_random_quote, "GET"),
            ("/quotes/<int:quote_id>", "delete_quote", self.delete_quote, "DELETE"),
            ("/health", "health", self.health, "GET"),
        ]
        for rule, endpoint, view, method in routes:
            app.add_url_rule(
                rule,
                endpoint=endpoint,
                view_func=self._recovering(view),
                methods=[method],
            )
        app.before_request(self._start_timer)
        app.after_request(self._log_request)

    def create_quote(self) -> Response:
        try:
            req = _decode_create_request(request.get_data())
        except ValueError as exc:
            self._logger.debug("Invalid JSON in request", error=exc)
            return self._send_error(HTTPStatus.BAD_REQUEST, "Invalid JSON format")

        try:
            quote = self._service.create_quote(req)
        except InvalidQuoteError as exc:
            return self._send_error(HTTPStatus.BAD_REQUEST, str(exc))
        except (ServiceError, QuoteNotFoundError) as exc:
            self._logger.error("Failed to create quote", error=exc)
            return self._send_error(
                HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to create quote"
            )

        return self._send_success(HTTPStatus.CREATED, quote)

    def get_quotes(self) -> Response:
        args = request.args
        quote_filter = QuoteFilter(author=args.get("author", ""))

        limit = _parse_int(args.get("limit", ""))
        if limit is not None and limit > 0:
            quote_filter.limit = limit

        offset = _parse_int(args.get("offset", ""))
        if offset is not None and offset >= 0:
            quote_filter.offset = offset

        try:
            quotes = self._service.get_all_quotes(quote_filter)
        except (ServiceError, QuoteNotFoundError, InvalidQuoteError) as exc:
            self._logger.error("Failed to get quotes", error=exc, filter=quote_filter)
            return self._send_error(
                HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to get quotes"
            )

        return self._send_success(HTTPStatus.OK, quotes)

    def get_random_quote(self) -> Response:
        try:
            quote = self._service.get_random_quote()
        except QuoteNotFoundError:
            return self._send_error(HTTPStatus.NOT_FOUND, "No quotes found")
        except (ServiceError, InvalidQuoteError) as exc:
            self._logger.error("Failed to get random quote", error=exc)
            return self._send_error(
                HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to get random quote"
            )

        return self._send_success(HTTPStatus.OK, quote)

    def delete_quote(self, quote_id: int) -> Response:
        if quote_id > _INT64_MAX:
            return self._send_error(HTTPStatus.BAD_REQUEST, "Invalid quote ID")

        try:
            self._service.delete_quote(quote_id)
        except QuoteNotFoundError:
            return self._send_error(HTTPStatus.NOT_FOUND, "Quote not found")
        except InvalidQuoteError as exc:
            return self._send_error(HTTPStatus.BAD_REQUEST, str(exc))
        except ServiceError as exc:
            self._logger.error("Failed to delete quote", id=quote_id, error=exc)
            return self._send_error(
                HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to delete quote"
            )

        return self._send_success(
            HTTPStatus.OK, {"message": "Quote deleted successfully"}
        )

    def health(self) -> Response:
        db_status = "connected"
        try:
            self._service.health_check()
        except Exception as exc:
            self._logger.error("Database health check failed", error=exc)
            db_status = "disconnected"

        healthy = db_status == "connected"
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": datetime.now(timezone.utc).astimezone().isoformat(),
            "database": db_status,
            "uptime": _format_duration(time.monotonic() - _START_TIME),
        }
        status = HTTPStatus.OK if healthy else HTTPStatus.SERVICE_UNAVAILABLE
        return self._send_success(status, body)

    def _send_success(self, status: HTTPStatus, data: Any) -> Response:
        return self._send_response(status, {"data": data})

    def _send_error(self, status: HTTPStatus, message: str) -> Response:
        return self._send_response(status, {"error": message})

    def _send_response(self, status: HTTPStatus, payload: dict[str, Any]) -> Response:
        body = json.dumps(payload, default=_encode, ensure_ascii=False)
        for char, escaped in _HTML_ESCAPES.items():
            body = body.replace(char, escaped)
        return Response(body + "\n", status=int(status), mimetype="application/json")

    def _recovering(self, view: Callable[..., Response]) -> Callable[..., Response]:
        @functools.wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return view(*args, **kwargs)
            except Exception as exc:
                self._logger.error(
                    "Panic recovered",
                    error=exc,
                    path=request.path,
                    method=request.method,
                )
                return self._send_error(
                    HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error"
                )

        return wrapper

    def _start_timer(self) -> None:
        g.request_start = time.perf_counter()

    def _log_request(self, response: Response) -> Response:
        if request.url_rule is None:
            return response
        started = g.get("request_start", time.perf_counter())
        self._logger.info(
            "HTTP request",
            method=request.method,
            path=request.path,
            status=response.status_code,
            duration=_format_duration(time.perf_counter() - started),
            remote_addr=request.remote_addr or "",
            user_agent=request.headers.get("User-Agent", ""),
        )
        return response


def create_app(service: QuoteService, logger: Logger | None = None) -> Flask:
    """Build a Flask application serving the quotes API."""
    app = Flask(__name__)
    QuoteHandler(service, logger).register_routes(app)
    return app