"""
HTML table scraping for daily ETF flow pages.

Pages of this shape carry one wide table: a header row of fund tickers, a few
rows of issuer / fee labels, one row per trading day whose first cell reads
like ``13 Jan 2026``, and trailing summary rows (Total, Average, ...).
Negative flows are written in parentheses and missing values as dashes.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

from yumyum.core.errors import ScrapeStructureNotFound
from yumyum.services.scraping.browser import PageRenderer

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(
    r"^(\d{1,2})\s+(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\s+(\d{4})",
    re.IGNORECASE,
)

PLACEHOLDERS = {"", "-", "–", "—"}


@dataclass(frozen=True)
class TableHeuristics:
    """How to recognise the flow table on a page."""
    tickers: Tuple[str, ...]
    min_rows: int = 4
    header_scan_rows: int = 3
    date_pattern: Pattern = DATE_PATTERN


@dataclass
class DailyFlowRow:
    date: date
    flows: Dict[str, float] = field(default_factory=dict)
    total: float = 0.0


def is_placeholder(text: str) -> bool:
    return text.strip() in PLACEHOLDERS


def _as_number(text: str) -> Optional[float]:
    cleaned = text.strip().replace(",", "")
    negative = cleaned.startswith("(") and cleaned.endswith(")")
    if negative:
        cleaned = cleaned[1:-1].strip()
    try:
        value = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return -value if negative else value


def parse_flow_value(text: str) -> float:
    """``(107.7)`` -> -107.7, ``1,234.5`` -> 1234.5; dashes, blanks and junk -> 0.0."""
    if is_placeholder(text):
        return 0.0
    value = _as_number(text)
    return value if value is not None else 0.0


def _cell_texts(row: Tag) -> List[str]:
    return [cell.get_text(strip=True) for cell in row.find_all(["th", "td"])]


def find_data_table(soup: BeautifulSoup, heuristics: TableHeuristics) -> Optional[Tag]:
    """First table with enough rows whose header area names a known ticker."""
    wanted = set(heuristics.tickers)
    for table in soup.find_all("table"):
        rows = table.find_all("tr")
        if len(rows) <= heuristics.min_rows:
            continue
        for row in rows[:heuristics.header_scan_rows]:
            if wanted.intersection(_cell_texts(row)):
                return table
    return None


def _header_columns(rows: Sequence[Tag], heuristics: TableHeuristics) -> Dict[int, str]:
    """Column index -> ticker, taken from the first header row naming a ticker."""
    wanted = set(heuristics.tickers)
    for row in rows[:heuristics.header_scan_rows]:
        cells = _cell_texts(row)
        if not wanted.intersection(cells):
            continue
        return {
            i: text for i, text in enumerate(cells)
            if i > 0 and text and "total" not in text.lower()
        }
    return {}


def _parse_date(text: str, pattern: Pattern) -> Optional[date]:
    match = pattern.match(text.strip())
    if not match:
        return None
    day, month, year = match.groups()
    try:
        return datetime.strptime(f"{day} {month.title()} {year}", "%d %b %Y").date()
    except ValueError:
        logger.warning(f"Skipping row with impossible date {text.strip()!r}")
        return None


def parse_flow_table(html: str, heuristics: TableHeuristics) -> List[DailyFlowRow]:
    """
    Extract daily flow rows from a rendered page.

    Returns:
        Rows in page order. A dated row is kept only when at least one ticker
        cell holds a real number; rows of nothing but dashes are dropped.

    Raises:
        ScrapeStructureNotFound: no qualifying table, or a table with no dated rows
    """
    soup = BeautifulSoup(html, "html.parser")
    table = find_data_table(soup, heuristics)
    if table is None:
        raise ScrapeStructureNotFound(
            f"could not find ETF flow table (tickers {', '.join(heuristics.tickers)})",
            source="scraper",
        )

    rows = table.find_all("tr")
    columns = _header_columns(rows, heuristics)

    results: List[DailyFlowRow] = []
    dated = 0
    for row in rows:
        cells = _cell_texts(row)
        if not cells:
            continue
        day = _parse_date(cells[0], heuristics.date_pattern)
        if day is None:
            continue
        dated += 1

        raw = {ticker: cells[i] if i < len(cells) else "" for i, ticker in columns.items()}
        if not any(_as_number(text) is not None for text in raw.values() if not is_placeholder(text)):
            logger.debug(f"Dropping placeholder-only row for {day}")
            continue

        flows = {ticker: parse_flow_value(text) for ticker, text in raw.items()}
        results.append(DailyFlowRow(date=day, flows=flows, total=sum(flows.values())))

    if dated == 0:
        raise ScrapeStructureNotFound("no dated rows in ETF flow table", source="scraper")

    logger.info(f"Parsed {len(results)} flow rows ({dated - len(results)} placeholder rows dropped)")
    return results


async def scrape_table(url: str, heuristics: TableHeuristics, renderer: PageRenderer) -> List[DailyFlowRow]:
    html = await renderer.render(url)
    return parse_flow_table(html, heuristics)


def latest_rows(rows: Sequence[DailyFlowRow], n: int) -> List[DailyFlowRow]:
    """Most recent ``n`` rows, newest first (pages list days oldest first)."""
    if n <= 0:
        return []
    return list(rows[-n:])[::-1]
