from datetime import date

import pytest
from bs4 import BeautifulSoup

from yumyum.core.errors import ScrapeStructureNotFound
from yumyum.services.scraping.tables import (
    DailyFlowRow,
    TableHeuristics,
    find_data_table,
    is_placeholder,
    latest_rows,
    parse_flow_table,
    parse_flow_value,
    scrape_table,
)

BTC = TableHeuristics(tickers=("IBIT", "FBTC", "GBTC"))


class TestFlowValues:

    def test_parentheses_are_negative(self):
        """Test that parentheses mark negative flows."""
        assert parse_flow_value("(107.7)") == -107.7

    def test_thousands_separators(self):
        """Test values with thousands separators."""
        assert parse_flow_value("1,234.5") == 1234.5

    def test_plain_numbers(self):
        """Test plain numeric values."""
        assert parse_flow_value("102.9") == 102.9
        assert parse_flow_value("0.0") == 0.0

    @pytest.mark.parametrize("text", ["", "-", "–", "—", "  "])
    def test_placeholders_are_zero(self, text):
        """Test that dashes and blanks count as zero."""
        assert is_placeholder(text)
        assert parse_flow_value(text) == 0.0

    def test_unparseable_text_is_zero(self):
        """Test that unparseable text counts as zero."""
        assert parse_flow_value("n/a") == 0.0

    @pytest.mark.parametrize("text", ["nan", "inf", "-inf", "(inf)"])
    def test_non_finite_values_are_zero(self, text):
        """Test that nan and inf count as zero."""
        assert parse_flow_value(text) == 0.0


class TestFlowTable:

    def test_parses_rows_in_page_order(self, flow_page):
        """Test that rows are parsed in page order."""
        html = flow_page(("IBIT", "FBTC", "GBTC"), [
            ("10 Jan 2026", ("100.0", "(20.5)", "-")),
            ("13 Jan 2026", ("1,050.0", "0.0", "(50.0)")),
        ])

        rows = parse_flow_table(html, BTC)

        assert [r.date for r in rows] == [date(2026, 1, 10), date(2026, 1, 13)]
        assert rows[0].flows == {"IBIT": 100.0, "FBTC": -20.5, "GBTC": 0.0}
        assert rows[0].total == pytest.approx(79.5)
        assert rows[1].total == pytest.approx(1000.0)

    def test_total_column_and_summary_rows_ignored(self, flow_page):
        """Test that the total column and summary rows are ignored."""
        html = flow_page(("IBIT", "FBTC"), [("2 Feb 2026", ("5", "5"))])

        rows = parse_flow_table(html, TableHeuristics(tickers=("IBIT",)))

        assert len(rows) == 1
        assert set(rows[0].flows) == {"IBIT", "FBTC"}

    def test_dash_next_to_real_number_counts_as_zero(self, flow_page):
        """Test that a dash beside a real number is zero."""
        html = flow_page(("IBIT", "FBTC"), [("14 Jan 2026", ("-", "12.0"))])

        rows = parse_flow_table(html, BTC)

        assert rows[0].flows == {"IBIT": 0.0, "FBTC": 12.0}

    def test_all_dash_row_dropped(self, flow_page):
        """Test that a row of only dashes is dropped."""
        html = flow_page(("IBIT", "FBTC"), [
            ("14 Jan 2026", ("10.0", "2.0")),
            ("15 Jan 2026", ("-", "—")),
        ])

        rows = parse_flow_table(html, BTC)

        assert [r.date for r in rows] == [date(2026, 1, 14)]

    def test_only_dash_rows_is_empty_success(self, flow_page):
        """Test that a table of dash rows parses to nothing."""
        html = flow_page(("IBIT", "FBTC"), [("15 Jan 2026", ("-", "-"))])

        assert parse_flow_table(html, BTC) == []

    def test_missing_table(self):
        """Test the error when no flow table is found."""
        html = "<html><body><table><tr><td>IBIT</td></tr></table></body></html>"

        with pytest.raises(ScrapeStructureNotFound, match="could not find"):
            parse_flow_table(html, BTC)

    def test_table_without_dated_rows(self, flow_page):
        """Test the error when the table has no dated rows."""
        html = flow_page(("IBIT", "FBTC"), [])

        with pytest.raises(ScrapeStructureNotFound, match="no dated rows"):
            parse_flow_table(html, BTC)

    def test_header_must_be_in_first_rows(self):
        """Test that the ticker header must be near the top."""
        rows = "".join("<tr><td>x</td></tr>" for _ in range(5))
        html = f"<table>{rows}<tr><td>IBIT</td></tr></table>"

        assert find_data_table(BeautifulSoup(html, "html.parser"), BTC) is None

    def test_date_match_is_case_insensitive(self, flow_page):
        """Test that month names match in any case."""
        html = flow_page(("IBIT",), [("3 MAR 2026", ("1.5",))])

        rows = parse_flow_table(html, BTC)

        assert rows[0].date == date(2026, 3, 3)

    def test_impossible_date_skipped(self, flow_page):
        """Test that a row with an impossible date is skipped."""
        html = flow_page(("IBIT",), [
            ("31 Feb 2026", ("9.0",)),
            ("2 Mar 2026", ("1.0",)),
        ])

        rows = parse_flow_table(html, BTC)

        assert [r.date for r in rows] == [date(2026, 3, 2)]

    def test_only_impossible_dates_is_structure_error(self, flow_page):
        """Test that a table of impossible dates has no dated rows."""
        html = flow_page(("IBIT",), [("31 Feb 2026", ("9.0",))])

        with pytest.raises(ScrapeStructureNotFound, match="no dated rows"):
            parse_flow_table(html, BTC)

    def test_non_finite_cells_are_not_real_numbers(self, flow_page):
        """Test that nan and inf cells do not keep a row."""
        html = flow_page(("IBIT", "FBTC"), [
            ("14 Jan 2026", ("nan", "inf")),
            ("15 Jan 2026", ("NaN", "4.0")),
        ])

        rows = parse_flow_table(html, BTC)

        assert [r.date for r in rows] == [date(2026, 1, 15)]
        assert rows[0].flows == {"IBIT": 0.0, "FBTC": 4.0}
        assert rows[0].total == 4.0

    @pytest.mark.asyncio
    async def test_scrape_table_uses_renderer(self, fake_renderer, flow_page):
        """Test scraping through a page renderer."""
        url = "https://farside.test/btc/"
        renderer = fake_renderer({url: flow_page(("IBIT",), [("1 Jan 2026", ("3.0",))])})

        rows = await scrape_table(url, BTC, renderer)

        assert renderer.calls == [url]
        assert rows[0].total == 3.0


class TestLatestRows:

    def test_newest_first(self):
        """Test that the latest rows come newest first."""
        rows = [DailyFlowRow(date=date(2026, 1, d)) for d in (1, 2, 3, 4)]

        picked = latest_rows(rows, 2)

        assert [r.date.day for r in picked] == [4, 3]

    def test_more_than_available(self):
        """Test asking for more rows than the page has."""
        rows = [DailyFlowRow(date=date(2026, 1, 1))]

        assert len(latest_rows(rows, 7)) == 1
        assert latest_rows(rows, 0) == []
