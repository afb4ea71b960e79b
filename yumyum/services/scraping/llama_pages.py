"""
Parsers for DeFiLlama's digital-asset-treasury and ETF pages.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from bs4 import BeautifulSoup

from yumyum.core.errors import ScrapeStructureNotFound, UpstreamFormatError

logger = logging.getLogger(__name__)

SUFFIXES = {"k": 1e3, "m": 1e6, "b": 1e9}

HOLDINGS_RE = re.compile(r"^\s*([\d,]+\.?\d*[mk]?)\s*(ETH|SOL)", re.IGNORECASE)
USD_RE = re.compile(r"\$([\d.]+[bm])", re.IGNORECASE)
COMPANY_PCT_RE = re.compile(r"\$[\d.]+[bmk]?\s*([\d.]+)%", re.IGNORECASE)
SUPPLY_PCT_RE = re.compile(r"([\d.]+)%\s*$")

# How far up from a company link to look for its row container
MAX_ROW_HOPS = 5


def _scaled(text: str, pattern: str) -> Optional[float]:
    cleaned = text.lower().replace(",", "").replace("$", "").strip()
    match = re.match(pattern, cleaned)
    if not match:
        return None
    number = float(match.group(1))
    suffix = match.group(2)
    return number * SUFFIXES[suffix] if suffix else number


def parse_holdings_value(text: str) -> Optional[float]:
    """``6.01m`` -> 6010000.0, ``950k ETH`` -> 950000.0"""
    return _scaled(text, r"^(\d+(?:\.\d+)?|\.\d+)([mk])?")


def parse_usd_value(text: str) -> Optional[float]:
    """``$17.97b`` -> 17970000000.0"""
    return _scaled(text, r"^(\d+(?:\.\d+)?|\.\d+)([bm])?")


def parse_pct(text: str) -> Optional[float]:
    """``4.977%`` -> 4.977"""
    match = re.search(r"(\d+(?:\.\d+)?)%?", text)
    return float(match.group(1)) if match else None


@dataclass
class DatCompany:
    name: str
    holdings: Optional[float]
    holdings_usd: Optional[float]
    supply_pct: Optional[float]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "holdings": self.holdings,
            "holdings_usd": self.holdings_usd,
            "supply_pct": self.supply_pct,
        }


@dataclass
class DatSnapshot:
    total_holdings: float
    total_usd: Optional[float] = None
    supply_pct: Optional[float] = None
    companies: List[DatCompany] = field(default_factory=list)


def _company_from_link(link, name: str) -> Optional[DatCompany]:
    row = link.find_parent("div") or link.parent
    for _ in range(MAX_ROW_HOPS):
        if row is None:
            return None
        text = row.get_text(" ", strip=True)
        has_token = "ETH" in text or "SOL" in text
        if name in text and has_token and "%" in text:
            after = text[text.index(name) + len(name):]
            holdings = HOLDINGS_RE.search(after)
            usd = USD_RE.search(after)
            if holdings and usd:
                pct = COMPANY_PCT_RE.search(after)
                return DatCompany(
                    name=name,
                    holdings=parse_holdings_value(holdings.group(1)),
                    holdings_usd=parse_usd_value(usd.group(1)),
                    supply_pct=float(pct.group(1)) if pct else None,
                )
        row = row.parent
    return None


def parse_dat_page(html: str) -> DatSnapshot:
    """
    Parse a rendered treasury page for one chain.

    Raises:
        ScrapeStructureNotFound: the ``Total Holdings`` summary is missing
    """
    soup = BeautifulSoup(html, "html.parser")

    total_holdings = total_usd = supply_pct = None
    for p in soup.select("main p"):
        text = p.get_text(" ", strip=True)
        if text.startswith("Total Holdings"):
            total_holdings = parse_holdings_value(text[len("Total Holdings"):])
        elif text.startswith("Total USD Value"):
            total_usd = parse_usd_value(text[len("Total USD Value"):])
        elif "Circulating Supply" in text:
            match = SUPPLY_PCT_RE.search(text)
            supply_pct = float(match.group(1)) if match else None

    if total_holdings is None:
        raise ScrapeStructureNotFound("could not find treasury Total Holdings", source="scraper")

    companies = []
    seen = set()
    main = soup.find("main")
    links = main.select('a[href^="/digital-asset-treasury/"]') if main else []
    for link in links:
        name = link.get_text(strip=True)
        if not name or name in seen:
            continue
        company = _company_from_link(link, name)
        if company is not None:
            seen.add(name)
            companies.append(company)

    companies.sort(key=lambda c: c.holdings or 0, reverse=True)
    logger.info(
        f"Parsed treasury page: {total_holdings} held, ${total_usd}, "
        f"{supply_pct}% of supply, {len(companies)} companies"
    )
    return DatSnapshot(total_holdings, total_usd, supply_pct, companies)


# ----------------------------------------------------------------------
# ETF holdings (Next.js page data)
# ----------------------------------------------------------------------

@dataclass
class EtfHolding:
    ticker: str
    issuer: Optional[str]
    asset: str
    flows: Optional[float]
    aum: Optional[float]

    def to_dict(self) -> dict:
        return {
            "ticker": self.ticker,
            "issuer": self.issuer,
            "flows": self.flows,
            "aum": self.aum,
        }


def extract_next_data(html: str) -> Any:
    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        raise ScrapeStructureNotFound("page has no __NEXT_DATA__ script", source="scraper")
    try:
        return json.loads(script.string)
    except ValueError as e:
        raise UpstreamFormatError(f"__NEXT_DATA__ is not valid JSON: {e}", source="scraper")


def parse_etf_holdings(html: str, asset: str) -> List[EtfHolding]:
    """ETF rows for ``asset`` from the page snapshot, largest AUM first."""
    data = extract_next_data(html)
    if not isinstance(data, dict):
        raise UpstreamFormatError("__NEXT_DATA__ is not an object", source="scraper")
    snapshot = ((data.get("props") or {}).get("pageProps") or {}).get("snapshot")
    if not isinstance(snapshot, list):
        raise ScrapeStructureNotFound("no ETF snapshot in page data", source="scraper")

    holdings = [
        EtfHolding(
            ticker=entry.get("ticker"),
            issuer=entry.get("issuer"),
            asset=entry.get("asset"),
            flows=entry.get("flows") or None,
            aum=entry.get("aum") or None,
        )
        for entry in snapshot
        if isinstance(entry, dict) and entry.get("asset") == asset
    ]
    holdings.sort(key=lambda h: h.aum or 0, reverse=True)
    return holdings
