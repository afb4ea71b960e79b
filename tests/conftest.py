import os

# Settings are cached on first use; pin the test environment before any yumyum import
os.environ["ENV"] = "dev"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["ADMIN_OWNER_IDS"] = "1001,1002"
os.environ["TELEGRAM_BOT_TOKEN"] = "test-bot-token"
os.environ["OTP_BACKEND"] = "memory"
os.environ["HTTP_BACKOFF_BASE_SECONDS"] = "0"

from typing import Dict, List, Optional, Sequence, Tuple

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from yumyum.db.store import SnapshotStore
from yumyum.models import metric  # noqa: F401
from yumyum.services.http.fetcher import BoundedFetcher
from yumyum.services.scraping.browser import PageRenderer


class FakeRenderer(PageRenderer):
    """Serves canned HTML by URL instead of driving a browser."""

    def __init__(self, pages: Dict[str, str], errors: Optional[Dict[str, Exception]] = None):
        self.pages = pages
        self.errors = errors or {}
        self.calls: List[str] = []

    async def render(self, url: str) -> str:
        self.calls.append(url)
        if url in self.errors:
            raise self.errors[url]
        return self.pages.get(url, "<html><body><p>empty</p></body></html>")


def build_flow_page(tickers: Sequence[str], rows: Sequence[Tuple[str, Sequence[str]]]) -> str:
    """Farside-shaped page: ticker header, fee row, dated rows, summary rows."""
    header = "".join(f"<th>{t}</th>" for t in tickers)
    fees = "".join("<td>0.25%</td>" for _ in tickers)
    body = "".join(
        "<tr><td>{}</td>{}<td></td></tr>".format(day, "".join(f"<td>{v}</td>" for v in values))
        for day, values in rows
    )
    summary = "".join(
        f"<tr><td>{label}</td>{''.join('<td>0.0</td>' for _ in tickers)}<td></td></tr>"
        for label in ("Total", "Average", "Maximum", "Minimum")
    )
    return (
        "<html><body><table><tr><td>Other</td></tr></table>"
        "<table class='etf'>"
        f"<tr><th></th>{header}<th>Total</th></tr>"
        f"<tr><td>Fee</td>{fees}<td></td></tr>"
        f"{body}{summary}"
        "</table></body></html>"
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return SnapshotStore(engine)


@pytest.fixture
def fake_renderer():
    return FakeRenderer


@pytest.fixture
def flow_page():
    return build_flow_page


@pytest.fixture
def mock_fetcher():
    """Factory: BoundedFetcher backed by an httpx.MockTransport handler."""
    def factory(handler, **kwargs) -> BoundedFetcher:
        sleeps: List[float] = []

        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)

        kwargs.setdefault("timeout", 1.0)
        kwargs.setdefault("retries", 2)
        kwargs.setdefault("backoff_base", 0.5)
        fetcher = BoundedFetcher(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            sleep=fake_sleep,
            **kwargs,
        )
        fetcher.sleeps = sleeps
        return fetcher

    return factory
