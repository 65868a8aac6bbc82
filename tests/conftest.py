"""Shared fixtures: an in-memory Supabase client and fake providers."""

import copy
import itertools

import pytest

from hunt_alerts.config import AppConfig
from hunt_alerts.db import Database
from hunt_alerts.models import Hunt
from hunt_alerts.sources.base import ProviderError
from hunt_alerts.sources.firecrawl import ScrapeResult, SearchResult


# =============================================================================
# FAKE SUPABASE
# =============================================================================

class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Supports the subset of the postgrest query builder the Database uses."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.op = "select"
        self.payload = None
        self.on_conflict = None
        self.filters = []

    def select(self, *columns, **kwargs):
        self.op = "select"
        return self

    def insert(self, row):
        self.op = "insert"
        self.payload = row
        return self

    def update(self, values):
        self.op = "update"
        self.payload = values
        return self

    def upsert(self, row, on_conflict=None):
        self.op = "upsert"
        self.payload = row
        self.on_conflict = on_conflict
        return self

    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def lt(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) < value)
        return self

    def order(self, *args, **kwargs):
        return self

    def limit(self, *args, **kwargs):
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        rows = self.client.tables.setdefault(self.table, [])

        if self.op == "select":
            return FakeResult([copy.deepcopy(r) for r in rows if self._matches(r)])

        if self.op == "insert":
            return FakeResult([copy.deepcopy(self.client._insert(self.table, self.payload))])

        if self.op == "update":
            matched = [r for r in rows if self._matches(r)]
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResult([copy.deepcopy(r) for r in matched])

        if self.op == "upsert":
            keys = self.on_conflict.split(",")
            for row in rows:
                if all(row.get(k) == self.payload.get(k) for k in keys):
                    row.update(copy.deepcopy(self.payload))
                    return FakeResult([copy.deepcopy(row)])
            return FakeResult([copy.deepcopy(self.client._insert(self.table, self.payload))])

        raise AssertionError(f"Unsupported op {self.op}")


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self._ids = itertools.count(1)

    def table(self, name):
        return FakeQuery(self, name)

    def _insert(self, table, payload):
        row = copy.deepcopy(payload)
        row.setdefault("id", f"{table}-{next(self._ids)}")
        self.tables.setdefault(table, []).append(row)
        return row

    def rows(self, table):
        return self.tables.get(table, [])


# =============================================================================
# FAKE PROVIDERS
# =============================================================================

class FakeSearch:
    """Returns canned results for any query containing a registered key."""

    def __init__(self, responses=None, errors=None):
        self.responses = responses or {}
        self.errors = errors or {}
        self.calls = []

    def search(self, query, limit=10):
        self.calls.append(query)
        for key, exc in self.errors.items():
            if key in query:
                raise exc
        for key, results in self.responses.items():
            if key in query:
                return list(results)
        return []


class FakeScrape:
    """Returns canned pages by URL; unknown URLs fail like an empty page."""

    def __init__(self, pages=None):
        self.pages = pages or {}
        self.calls = []

    def scrape(self, url, wait_for=None):
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise ProviderError(f"no content for {url}", url=url)
        if isinstance(page, Exception):
            raise page
        return page


def result(url, title="", description="", markdown=""):
    return SearchResult(url=url, title=title, description=description, markdown=markdown)


def page(url, markdown="", html=""):
    return ScrapeResult(url=url, markdown=markdown, html=html)


# =============================================================================
# FIXTURES
# =============================================================================

HUNT_ROW = {
    "id": "hunt-1",
    "dealer_id": "dealer-1",
    "make": "Toyota",
    "model": "LandCruiser",
    "year": 2022,
    "proven_exit_value": 90000,
    "min_gap_abs_buy": 5000,
    "min_gap_pct_buy": 8,
    "min_gap_abs_watch": 2000,
    "min_gap_pct_watch": 3,
    "criteria_version": 1,
    "status": "active",
}


@pytest.fixture
def fake_client():
    return FakeSupabase()


@pytest.fixture
def db(fake_client):
    return Database(client=fake_client)


@pytest.fixture
def hunt_row():
    return dict(HUNT_ROW)


@pytest.fixture
def hunt(hunt_row):
    return Hunt.from_dict(hunt_row)


@pytest.fixture
def seeded_db(db, fake_client, hunt_row):
    fake_client.tables["sale_hunts"] = [hunt_row]
    return db


@pytest.fixture
def app_config():
    return AppConfig(request_delay=0, max_results=10, max_queries_per_tier=8, tier2_min_yield=3, max_enrichments=5)
