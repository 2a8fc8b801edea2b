"""Spreadsheet row layout and value conversion for deal sync.

Defines:
- SHEET_COLUMNS / SHEET_HEADER: the fixed A–M column layout.
- COMPARED_FIELDS: deal fields checked for conflicts on pull and compare.
- SHEET_CARRIED_FIELDS: compared fields the sheet layout actually stores.
- deal_to_row() / row_to_sheet_deal(): conversion between deals and rows.
- sheet_deal_to_create(): turn a pulled row into a local create payload.
- normalize_value() / values_differ(): conflict-comparison semantics.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from src.polytrade.deals.schemas import DealCreate, DealRead
from src.polytrade.sync.schemas import SheetDeal


# ── Layout ──────────────────────────────────────────────────────────────────

HEADER_ROW_COUNT = 1
SYNTHETIC_ID_PREFIX = "sheet_row_"

# Column A persists the deal id; B–M carry business fields.
SHEET_COLUMNS: tuple[str, ...] = (
    "id",
    "date",
    "sale_party",
    "quantity_sold",
    "sale_rate",
    "delivery_terms",
    "product_code",
    "grade",
    "company",
    "specific_grade",
    "purchase_party",
    "purchase_quantity",
    "purchase_rate",
)

SHEET_HEADER: tuple[str, ...] = (
    "ID",
    "Date",
    "Sale Party",
    "Quantity Sold",
    "Sale Rate",
    "Delivery Terms",
    "Product Code",
    "Grade",
    "Company",
    "Specific Grade",
    "Purchase Party",
    "Purchase Quantity",
    "Purchase Rate",
)

NUMERIC_COLUMNS = frozenset(
    {"quantity_sold", "sale_rate", "purchase_quantity", "purchase_rate"}
)

# Stored lowercase locally; people type them in any case.
CHOICE_COLUMNS = frozenset({"delivery_terms", "sale_source"})

COMPARED_FIELDS: tuple[str, ...] = (
    "date",
    "sale_party",
    "quantity_sold",
    "sale_rate",
    "delivery_terms",
    "product_code",
    "grade",
    "company",
    "specific_grade",
    "sale_source",
    "purchase_party",
    "purchase_quantity",
    "purchase_rate",
    "sale_comments",
    "purchase_comments",
    "final_comments",
    "warehouse",
)

SHEET_CARRIED_FIELDS = frozenset(SHEET_COLUMNS[1:])


def column_letter(index: int) -> str:
    """Return the A1 column letter for a 0-based column index."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


LAST_COLUMN = column_letter(len(SHEET_COLUMNS) - 1)


# ── Conversion Functions ────────────────────────────────────────────────────


def parse_number(value: Any) -> float:
    """Parse a numeric cell, falling back to 0.0 for anything unparseable."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return value.value
    return value


def deal_to_row(deal: DealRead | SheetDeal) -> list[Any]:
    """Build one A–M row for a deal."""
    return [_cell(getattr(deal, column)) for column in SHEET_COLUMNS]


def synthetic_id(row_number: int) -> str:
    return f"{SYNTHETIC_ID_PREFIX}{row_number}"


def is_synthetic_id(deal_id: str) -> bool:
    return deal_id.startswith(SYNTHETIC_ID_PREFIX)


def row_to_sheet_deal(row: list[Any], row_number: int) -> SheetDeal | None:
    """Map one sheet row to a SheetDeal.

    Short rows are padded; the Sheets API drops trailing empty cells.
    Returns None for rows with no content at all.

    Args:
        row: Raw cell values as returned by ``values().get()``.
        row_number: 1-based sheet row number of ``row``.
    """
    cells = list(row) + [""] * (len(SHEET_COLUMNS) - len(row))
    if all(str(cell).strip() == "" for cell in cells[: len(SHEET_COLUMNS)]):
        return None

    values: dict[str, Any] = {"row_number": row_number}
    for column, cell in zip(SHEET_COLUMNS, cells):
        if column in NUMERIC_COLUMNS:
            values[column] = parse_number(cell)
        else:
            values[column] = str(cell).strip() if cell is not None else ""

    if not values["id"]:
        values["id"] = synthetic_id(row_number)
    return SheetDeal(**values)


def sheet_deal_to_create(sheet_deal: SheetDeal) -> DealCreate:
    """Build a local create payload from a pulled row.

    Raises:
        pydantic.ValidationError: If the row cannot form a valid deal
            (e.g. unknown delivery terms).
    """
    data = sheet_deal.model_dump(exclude={"id", "row_number"})
    data["delivery_terms"] = data["delivery_terms"].strip().lower()
    data["sale_source"] = (data["sale_source"] or "new").strip().lower()
    return DealCreate.model_validate(data)


# ── Comparison ──────────────────────────────────────────────────────────────


def normalize_value(value: Any) -> Any:
    """Canonical form used when comparing a local field with a sheet cell.

    None and blank strings are equal, enums compare by value, numbers
    compare as floats and strings compare stripped.
    """
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return value.strip()
    return value


def values_differ(field: str, local_value: Any, sheet_value: Any) -> bool:
    if field in NUMERIC_COLUMNS:
        return parse_number(local_value) != parse_number(sheet_value)
    if field in CHOICE_COLUMNS:
        return str(normalize_value(local_value)).lower() != str(
            normalize_value(sheet_value)
        ).lower()
    return normalize_value(local_value) != normalize_value(sheet_value)
