import io
import json
from datetime import datetime, timezone
from http import HTTPStatus

import pytest

from quotesvc.domain import Quote, QuoteNotFoundError, QuoteRepository
from quotesvc.handler import create_app
from quotesvc.logger import Logger
from quotesvc.service import QuoteService


class FakeRepository(QuoteRepository):
    def __init__(self):
        self.quotes = []
        self.next_id = 1
        self.err_on_op = {}
        self.last_filter = None
        self.random_result = None
        self.use_random_result = False

    def _fail(self, op):
        err = self.err_on_op.get(op)
        if err is not None:
            raise err

    def create(self, quote):
        self._fail("create")
        now = datetime.now(timezone.utc)
        new = Quote(
            id=self.next_id,
            author=quote.author,
            text=quote.text,
            created_at=now,
            updated_at=now,
        )
        self.next_id += 1
        self.quotes.append(new)
        return new

    def get_all(self, quote_filter):
        self._fail("getall")
        self.last_filter = quote_filter
        result = [
            q for q in self.quotes if not quote_filter.author or q.author == quote_filter.author
        ]
        return result[quote_filter.offset:][: quote_filter.limit]

    def get_by_id(self, quote_id):
        for q in self.quotes:
            if q.id == quote_id:
                return q
        raise QuoteNotFoundError()

    def get_random(self):
        self._fail("getrandom")
        if self.use_random_result:
            return self.random_result
        if not self.quotes:
            raise QuoteNotFoundError()
        return self.quotes[0]

    def delete(self, quote_id):
        self._fail("delete")
        for q in self.quotes:
            if q.id == quote_id:
                self.quotes.remove(q)
                return
        raise QuoteNotFoundError()

    def count(self, quote_filter):
        return len(self.quotes)

    def health_check(self):
        self._fail("healthcheck")


@pytest.fixture
def repo():
    return FakeRepository()


@pytest.fixture
def log_stream():
    return io.StringIO()


@pytest.fixture
def client(repo, log_stream):
    logger = Logger("debug", stream=log_stream)
    app = create_app(QuoteService(repo, logger), logger)
    return app.test_client()


def _log_entries(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def _seed_many(repo, count, author="Author"):
    stamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    repo.quotes = [
        Quote(id=i, author=author, text=f"Quote {i}", created_at=stamp, updated_at=stamp)
        for i in range(1, count + 1)
    ]
    repo.next_id = count + 1


def test_create_quote_returns_created(client, repo):
    resp = client.post("/quotes", json={"author": "  Test Author ", "quote": " Test quote "})
    assert resp.status_code == HTTPStatus.CREATED
    assert resp.mimetype == "application/json"
    data = resp.get_json()["data"]
    assert data["author"] == "Test Author"
    assert data["quote"] == "Test quote"
    assert data["id"] == repo.quotes[0].id


def test_create_quote_field_names_match_case_insensitively(client, repo):
    resp = client.post("/quotes", json={"Author": "Test Author", "QUOTE": "Test quote"})
    assert resp.status_code == HTTPStatus.CREATED
    assert repo.quotes[0].author == "Test Author"
    assert repo.quotes[0].text == "Test quote"


@pytest.mark.parametrize("body", [b"", b"{not json", b"[1, 2]", b'{"author": 5}'])
def test_create_quote_invalid_json(client, repo, body):
    resp = client.post("/quotes", data=body, content_type="application/json")
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    assert resp.get_json() == {"error": "Invalid JSON format"}
    assert repo.quotes == []


def test_create_quote_validation_error(client, repo):
    resp = client.post("/quotes", json={"author": "", "quote": "Test quote"})
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    assert resp.get_json() == {"error": "invalid quote data: author is required"}


def test_create_quote_repository_failure(client, repo):
    repo.err_on_op["create"] = RuntimeError("database error")
    resp = client.post("/quotes", json={"author": "Test Author", "quote": "Test quote"})
    assert resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert resp.get_json() == {"error": "Failed to create quote"}


def test_create_then_list_round_trip(client):
    client.post("/quotes", json={"author": "Author 1", "quote": "Quote 1"})
    client.post("/quotes", json={"author": "Author 2", "quote": "Quote 2"})
    resp = client.get("/quotes")
    assert resp.status_code == HTTPStatus.OK
    authors = [q["author"] for q in resp.get_json()["data"]]
    assert authors == ["Author 1", "Author 2"]


def test_get_quotes_passes_filter(client, repo):
    for text in ("First", "Second", "Third"):
        client.post("/quotes", json={"author": "Author 1", "quote": text})
    client.post("/quotes", json={"author": "Author 2", "quote": "Other"})
    resp = client.get("/quotes?author=Author%201&limit=2&offset=1")
    assert resp.status_code == HTTPStatus.OK
    assert [q["quote"] for q in resp.get_json()["data"]] == ["Second", "Third"]
    assert repo.last_filter.author == "Author 1"
    assert repo.last_filter.limit == 2
    assert repo.last_filter.offset == 1


@pytest.mark.parametrize("limit", ["abc", "-5", "0", "1.5"])
def test_get_quotes_bad_limit_falls_back_to_default(client, repo, limit):
    _seed_many(repo, 101)
    resp = client.get(f"/quotes?limit={limit}")
    assert resp.status_code == HTTPStatus.OK
    assert len(resp.get_json()["data"]) == 100
    assert repo.last_filter.limit == 100


def test_get_quotes_negative_offset_ignored(client, repo):
    _seed_many(repo, 3)
    resp = client.get("/quotes?offset=-3")
    assert resp.status_code == HTTPStatus.OK
    assert [q["id"] for q in resp.get_json()["data"]] == [1, 2, 3]
    assert repo.last_filter.offset == 0


def test_get_quotes_failure(client, repo):
    repo.err_on_op["getall"] = RuntimeError("database error")
    resp = client.get("/quotes")
    assert resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert resp.get_json() == {"error": "Failed to get quotes"}


def test_get_random_quote(client, repo):
    client.post("/quotes", json={"author": "Test Author", "quote": "Test Quote"})
    resp = client.get("/quotes/random")
    assert resp.status_code == HTTPStatus.OK
    assert resp.get_json()["data"]["author"] == "Test Author"


def test_get_random_quote_none(client):
    resp = client.get("/quotes/random")
    assert resp.status_code == HTTPStatus.NOT_FOUND
    assert resp.get_json() == {"error": "No quotes found"}


def test_get_random_quote_failure(client, repo):
    repo.err_on_op["getrandom"] = RuntimeError("database error")
    resp = client.get("/quotes/random")
    assert resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert resp.get_json() == {"error": "Failed to get random quote"}


def test_unexpected_error_is_recovered(client, repo, log_stream):
    repo.use_random_result = True
    resp = client.get("/quotes/random")
    assert resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert resp.get_json() == {"error": "Internal server error"}
    messages = [entry["msg"] for entry in _log_entries(log_stream)]
    assert "Panic recovered" in messages


def test_delete_quote(client, repo):
    client.post("/quotes", json={"author": "Test Author", "quote": "Test Quote"})
    quote_id = repo.quotes[0].id
    resp = client.delete(f"/quotes/{quote_id}")
    assert resp.status_code == HTTPStatus.OK
    assert resp.get_json() == {"data": {"message": "Quote deleted successfully"}}
    assert repo.quotes == []


def test_delete_quote_not_found(client):
    resp = client.delete("/quotes/999")
    assert resp.status_code == HTTPStatus.NOT_FOUND
    assert resp.get_json() == {"error": "Quote not found"}


def test_delete_quote_zero_id(client):
    resp = client.delete("/quotes/0")
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    assert resp.get_json() == {"error": "invalid quote data: invalid quote ID"}


def test_delete_quote_id_out_of_range(client):
    resp = client.delete("/quotes/99999999999999999999")
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    assert resp.get_json() == {"error": "Invalid quote ID"}


def test_delete_quote_non_numeric_id_unrouted(client):
    resp = client.delete("/quotes/abc")
    assert resp.status_code == HTTPStatus.NOT_FOUND


def test_delete_quote_failure(client, repo):
    repo.err_on_op["delete"] = RuntimeError("database error")
    resp = client.delete("/quotes/1")
    assert resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert resp.get_json() == {"error": "Failed to delete quote"}


def test_health_connected(client):
    resp = client.get("/health")
    assert resp.status_code == HTTPStatus.OK
    data = resp.get_json()["data"]
    assert data["status"] == "healthy"
    assert data["database"] == "connected"
    assert data["uptime"].endswith("s")
    assert datetime.fromisoformat(data["timestamp"]).tzinfo is not None


def test_health_disconnected(client, repo):
    repo.err_on_op["healthcheck"] = RuntimeError("database connection failed")
    resp = client.get("/health")
    assert resp.status_code == HTTPStatus.SERVICE_UNAVAILABLE
    data = resp.get_json()["data"]
    assert data["status"] == "unhealthy"
    assert data["database"] == "disconnected"


def test_requests_are_logged(client, log_stream):
    resp = client.get("/health", headers={"User-Agent": "probe"})
    assert resp.status_code == HTTPStatus.OK
    assert resp.get_json()["data"]["status"] == "healthy"
    entries = [e for e in _log_entries(log_stream) if e["msg"] == "HTTP request"]
    assert len(entries) == 1
    assert entries[0]["method"] == "GET"
    assert entries[0]["path"] == "/health"
    assert entries[0]["status"] == resp.status_code
    assert entries[0]["user_agent"] == "probe"


def test_response_escapes_html_characters(client):
    resp = client.post("/quotes", json={"author": "A <b>", "quote": "x & y"})
    raw = resp.get_data(as_text=True)
    assert "<" not in raw and "&" not in raw
    assert resp.get_json()["data"]["author"] == "A <b>"