from __future__ import annotations

import io
import logging
import math
import re
from datetime import date, datetime, timedelta

import pandas as pd

from textileplan.core.models import Order

logger = logging.getLogger(__name__)

_EXCEL_EPOCH = date(1899, 12, 30)


def read_excel_bytes(content: bytes) -> pd.DataFrame:
    """Read the first sheet of .xlsx bytes without a header row.

    Columns are positional (0 = A, 1 = B, ...); the order sheet is laid out by
    column letter rather than by header text.
    """
    bio = io.BytesIO(content)
    try:
        df = pd.read_excel(bio, header=None, dtype=object)
    except Exception as ex:
        raise ValueError(f"Erro ao processar ficheiro Excel: {ex}") from ex
    df.columns = list(range(len(df.columns)))
    return df


def col_index(letter: str) -> int:
    """Excel column letter to zero-based index (A -> 0, AA -> 26)."""
    n = 0
    for ch in letter.strip().upper():
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


def _is_missing(value) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def coerce_text(value) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).replace("\u00a0", " ").strip()


def coerce_float(value) -> float | None:
    """Coerce common Excel/Pandas numeric representations to float.

    Returns None when value is empty, NaN, infinite or not numeric.
    Accepts numbers and strings (handles ',' as decimal separator).
    """
    if _is_missing(value):
        return None

    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        value = float(value)
        return value if math.isfinite(value) else None

    s = str(value).strip()
    if not s or s.lower() == "nan":
        return None

    # 1.234,56 -> 1234.56
    if "," in s and "." in s:
        s = s.replace(".", "").replace(",", ".")
    elif "," in s:
        s = s.replace(",", ".")

    try:
        value = float(s)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


_PT_DATE_RE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})")


def coerce_date(value) -> date | None:
    """Coerce Excel/Pandas date representations to ``date``.

    Accepts datetimes, pandas Timestamps, Excel serial numbers, ISO strings and
    DD/MM/YYYY (also with '-' or '.'). Anything else is None.
    """
    if _is_missing(value):
        return None

    # pandas Timestamp
    if hasattr(value, "to_pydatetime"):
        return value.to_pydatetime().date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value <= 0:
            return None
        try:
            return _EXCEL_EPOCH + timedelta(days=int(value))
        except OverflowError:
            return None

    s = str(value).strip()
    if not s:
        return None

    m = _PT_DATE_RE.match(s)
    if m:
        day, month, year = (int(g) for g in m.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        return None


# Fixed layout of the order sheet exported by the ERP.
ORDER_SHEET_COLUMNS: dict[str, str] = {
    "doc_nr": "B",
    "client_name": "C",
    "issue_date": "D",
    "requested_date": "E",
    "item_nr": "F",
    "po": "G",
    "article_code": "H",
    "reference": "I",
    "color_code": "J",
    "size": "L",
    "family": "M",
    "qty_requested": "P",
    "data_tec": "Q",
    "felpo_cru_qty": "R",
    "felpo_cru_date": "S",
    "tinturaria_qty": "T",
    "tinturaria_date": "U",
    "conf_roupoes_qty": "V",
    "conf_felpos_qty": "W",
    "conf_date": "X",
    "emb_acab_qty": "Y",
    "arm_exp_date": "Z",
    "stock_cx_qty": "AA",
    "qty_billed": "AB",
    "qty_open": "AC",
}

_TEXT_FIELDS = {"doc_nr", "client_name", "po", "article_code", "reference", "color_code", "size", "family"}
_DATE_FIELDS = {"issue_date", "requested_date", "data_tec", "felpo_cru_date", "tinturaria_date", "conf_date", "arm_exp_date"}


def parse_orders_frame(df: pd.DataFrame) -> list[Order]:
    """Map a positional order sheet to Orders.

    The first row holds the headers. Rows without a document number, or that
    repeat the header, are skipped.
    """
    orders: list[Order] = []
    skipped = 0
    for pos, (_, row) in enumerate(df.iterrows()):
        if pos == 0:
            continue

        def cell(field: str):
            idx = col_index(ORDER_SHEET_COLUMNS[field])
            return row[idx] if idx in row.index else None

        doc_nr = coerce_text(cell("doc_nr"))
        if not doc_nr or "doc" in doc_nr.lower():
            skipped += 1
            continue

        values: dict = {}
        for field in ORDER_SHEET_COLUMNS:
            raw = cell(field)
            if field in _TEXT_FIELDS:
                values[field] = coerce_text(raw)
            elif field in _DATE_FIELDS:
                values[field] = coerce_date(raw)
            else:
                values[field] = coerce_float(raw) or 0.0

        item_nr = int(values.pop("item_nr"))
        orders.append(Order(id=f"{doc_nr}-{item_nr}", item_nr=item_nr, **values))

    logger.info("Order sheet parsed: %d rows, %d skipped", len(orders), skipped)
    return orders


def read_orders_excel_bytes(content: bytes) -> list[Order]:
    return parse_orders_frame(read_excel_bytes(content))
