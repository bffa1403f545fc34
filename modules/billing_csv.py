"""
Billing CSV import and export.

IMPORT - the legacy pivot sheet used before online booking:

    Adresse,Total,01/09/2025,02/09/2025
    Skråningen 31,120,1,0
    Voksne,,1,0
    Børn (2-12 år),,1,2
    Tvethøjvej 43,,...

Row 1 holds dinner dates from the third column on (DD/MM/YYYY). Each
household takes three rows: address, adults, children. An empty address
cell ends the data.

EXPORT - one row per invoice for the payment service (PBS):

    "Kunde nr",Adresse,"Total DKK/måned",...
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Sequence

from core.exceptions import ValidationError
from models.billing import BillingPeriodSummary, DATE_FORMAT, Invoice
from modules.billing_period import parse_billing_period
from modules.ticket_price import format_price_dkk


FIRST_DATE_COLUMN = 2
ADULT_LABEL = "Voksne"
CHILD_LABEL_PREFIX = "Børn"

CSV_HEADER = (
    '"Kunde nr",Adresse,"Total DKK/måned","Opkrævning periode start",'
    '"Opkrævning periode slut",Opgørelsesdato,"Måltider total","Evt ekstra",Note'
)


@dataclass(frozen=True)
class ParsedHouseholdOrder:
    """Ticket counts for one household at one dinner date."""

    address: str
    dinner_date: date
    adult_count: int
    child_count: int


# =============================================================================
# IMPORT
# =============================================================================

def _parse_count(cell: str) -> int:
    try:
        return int(cell.strip())
    except ValueError:
        return 0


def _cell(row: Sequence[str], index: int) -> str:
    return row[index].strip() if index < len(row) else ""


def parse_billing_import(content: str) -> List[ParsedHouseholdOrder]:
    """
    Parse the pivot sheet.

    Args:
        content: Full CSV text

    Returns:
        One entry per household and date with at least one ticket

    Raises:
        ValidationError: Empty content, too few rows, bad header dates,
            incomplete household groups or unexpected row labels
    """
    if not content or not content.strip():
        raise ValidationError("CSV content is required")

    rows = [row for row in csv.reader(io.StringIO(content.strip()))]
    if len(rows) < 4:
        raise ValidationError(
            "CSV must have a header row and at least one household (3 rows)",
            details={"rows": len(rows)},
        )

    header = rows[0]
    dates: List[date] = []
    for column in range(FIRST_DATE_COLUMN, len(header)):
        text = header[column].strip()
        if not text:
            continue
        try:
            dates.append(datetime.strptime(text, DATE_FORMAT).date())
        except ValueError:
            raise ValidationError(
                f"Invalid date format in header column {column + 1}: '{text}' (expected DD/MM/YYYY)",
                field_errors={f"column {column + 1}": ["Expected DD/MM/YYYY"]},
            )
    if not dates:
        raise ValidationError("No dinner dates found in CSV header")

    parsed: List[ParsedHouseholdOrder] = []
    index = 1
    while index < len(rows):
        address = _cell(rows[index], 0)
        if not address:
            break
        if index + 2 >= len(rows):
            raise ValidationError(
                f"Incomplete household group for '{address}' at row {index + 1}",
                details={"row": index + 1},
            )
        adults, children = rows[index + 1], rows[index + 2]
        if _cell(adults, 0) != ADULT_LABEL:
            raise ValidationError(
                f"Expected '{ADULT_LABEL}' at row {index + 2}, found '{_cell(adults, 0)}'",
                details={"row": index + 2},
            )
        if not _cell(children, 0).startswith(CHILD_LABEL_PREFIX):
            raise ValidationError(
                f"Expected '{CHILD_LABEL_PREFIX}' at row {index + 3}, found '{_cell(children, 0)}'",
                details={"row": index + 3},
            )

        for offset, dinner_date in enumerate(dates):
            column = FIRST_DATE_COLUMN + offset
            adult_count = _parse_count(_cell(adults, column))
            child_count = _parse_count(_cell(children, column))
            if adult_count > 0 or child_count > 0:
                parsed.append(ParsedHouseholdOrder(address, dinner_date, adult_count, child_count))

        index += 3

    return parsed


# =============================================================================
# EXPORT
# =============================================================================

def _csv_line(values: Sequence[object]) -> str:
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="").writerow(values)
    return buffer.getvalue()


def invoice_csv_row(invoice: Invoice) -> str:
    """One PBS line: customer number, address, whole kroner, period, ticket count."""
    start, end = parse_billing_period(invoice.billing_period)
    return _csv_line([
        invoice.pbs_id,
        invoice.address,
        format_price_dkk(invoice.amount),
        start.strftime(DATE_FORMAT),
        end.strftime(DATE_FORMAT),
        invoice.cutoff_date.strftime(DATE_FORMAT),
        len(invoice.transactions),
        "",
        "",
    ])


def generate_billing_csv(invoices: Sequence[Invoice]) -> str:
    """Header plus one row per invoice, ordered by PBS id. Header only when empty."""
    lines = [CSV_HEADER]
    lines.extend(invoice_csv_row(invoice) for invoice in sorted(invoices, key=lambda i: i.pbs_id))
    return "\n".join(lines)


def billing_csv_filename(summary: BillingPeriodSummary, community_name: str) -> str:
    """e.g. 'PBS-Opgørelse-Skråningen-18.10.2025-17.11.2025.csv' (no slashes in file names)"""
    return f"PBS-Opgørelse-{community_name}-{summary.billing_period.replace('/', '.')}.csv"
