"""Summary-table naming, date tokens and flat CSV rendering.

A summary table is named ``<token>_<subject>_<suffix>`` where ``token`` is a
zero-padded ``YYYYMMDD-HHhMMmSS`` timestamp of its creation. The CSV mirror
appends ``.csv``. The current table of a container is the one with the most
recent parsable token.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Iterable

import pandas as pd

from argoqc.core.models import SummaryRow, SummaryTable

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y%m%d-%Hh%Mm%S"
ACCEPTED_DATE_FORMATS = (DATE_FORMAT, "%Y%m%d")
CSV_SUFFIX = ".csv"
FIXED_COLUMNS = ("Image ID", "Label")


def date_token(now: datetime | None = None) -> str:
    """Timestamp token for a newly created table."""
    return (now or datetime.now()).strftime(DATE_FORMAT)


def parse_date_token(token: str) -> datetime | None:
    """Parse a table date token, or return None if it is malformed.

    Only the full ``YYYYMMDD-HHhMMmSS`` form and a bare ``YYYYMMDD`` date
    are accepted; anything else (wrong width, missing padding) is rejected.
    """
    for fmt in ACCEPTED_DATE_FORMATS:
        try:
            parsed = datetime.strptime(token, fmt)
        except ValueError:
            continue
        # strptime tolerates missing zero padding; the token must round-trip
        if parsed.strftime(fmt) == token:
            return parsed
    return None


def unused_token(
    now: datetime, taken: Iterable[str], subject: str, suffix: str = "Table",
) -> str:
    """Date token for a new table whose name is not already in ``taken``.

    Tokens have one-second resolution. When the name of ``now`` is taken
    (table or CSV mirror) the time is advanced one second at a time, so two
    tables created within the same second get distinct names.
    """
    bases = {n[: -len(CSV_SUFFIX)] if n.endswith(CSV_SUFFIX) else n for n in taken}
    token = date_token(now)
    while table_name(token, subject, suffix) in bases:
        now += timedelta(seconds=1)
        token = date_token(now)
    return token


def table_name(token: str, subject: str, suffix: str = "Table") -> str:
    return f"{token}_{subject}_{suffix}"


def csv_name(token: str, subject: str, suffix: str = "Table") -> str:
    return table_name(token, subject, suffix) + CSV_SUFFIX


def is_table_name(name: str, subject: str | None = None, suffix: str = "Table") -> bool:
    """True if ``name`` (optionally with ``.csv``) looks like a summary table.

    When ``subject`` is given the name must be exactly ``<token>_<subject>_<suffix>``.
    """
    base = name[: -len(CSV_SUFFIX)] if name.endswith(CSV_SUFFIX) else name
    if not base.endswith(f"_{suffix}"):
        return False
    token, _, rest = base.partition("_")
    if not token or not rest:
        return False
    if subject is not None and rest != f"{subject}_{suffix}":
        return False
    return True


def select_latest(
    names: Iterable[str], subject: str | None = None, suffix: str = "Table",
) -> str | None:
    """Select the current summary table among candidate names.

    The leading ``_``-separated segment of each candidate is parsed as a
    date token; candidates with an unparsable token are logged and ignored.
    Ties on the date resolve to the lexicographically greatest name.

    Args:
        names: Candidate artifact names (tables or CSV files).
        subject: Restrict candidates to one subject (container name).
        suffix: Table-name suffix.

    Returns:
        The selected name, or None if no valid candidate exists.
    """
    best: tuple[datetime, str] | None = None
    for name in names:
        if not is_table_name(name, subject, suffix):
            continue
        token = name.split("_", 1)[0]
        parsed = parse_date_token(token)
        if parsed is None:
            logger.warning("Ignoring table %r: unparsable date token %r", name, token)
            continue
        key = (parsed, name)
        if best is None or key > best:
            best = key
    return best[1] if best else None


def format_value(value: float) -> str:
    """Render a metric in default decimal form."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    return repr(value)


def render_csv(table: SummaryTable) -> str:
    """Render a summary table as comma-separated text.

    Fields are not quoted, so a label containing a comma cannot be told
    apart from a column separator by generic CSV readers.
    """
    lines = [",".join(table.columns)]
    for row in table.rows:
        fields = [row.image_id, row.label, *(format_value(v) for v in row.values)]
        lines.append(",".join(fields))
    return "\n".join(lines) + "\n"


def parse_csv(name: str, text: str) -> SummaryTable:
    """Parse text produced by ``render_csv`` back into a SummaryTable.

    Surplus fields in a row are folded back into the label.

    Raises:
        ValueError: If the header does not start with ``Image ID,Label`` or a
            row has too few fields or a non-numeric metric.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise ValueError(f"Table {name!r} is empty")
    columns = lines[0].split(",")
    if tuple(columns[:2]) != FIXED_COLUMNS:
        raise ValueError(
            f"Table {name!r} does not start with {','.join(FIXED_COLUMNS)}: {lines[0]!r}"
        )
    headers = columns[2:]
    n = len(headers)
    rows: list[SummaryRow] = []
    for lineno, line in enumerate(lines[1:], start=2):
        fields = line.split(",")
        if len(fields) < n + 2:
            raise ValueError(f"Table {name!r} line {lineno}: expected {n + 2} fields")
        metric_fields = fields[len(fields) - n:] if n else []
        label = ",".join(fields[1:len(fields) - n])
        try:
            values = tuple(float(v) for v in metric_fields)
        except ValueError as exc:
            raise ValueError(f"Table {name!r} line {lineno}: {exc}") from exc
        rows.append(SummaryRow(image_id=fields[0], label=label, values=values))
    return SummaryTable(name=name, headers=headers, rows=rows)


def to_frame(table: SummaryTable) -> pd.DataFrame:
    """Summary table as a DataFrame with the fixed identity columns first."""
    records = [
        [row.image_id, row.label, *(float(v) for v in row.values)]
        for row in table.rows
    ]
    return pd.DataFrame(records, columns=table.columns)


def from_frame(name: str, frame: pd.DataFrame) -> SummaryTable:
    """Rebuild a SummaryTable from a DataFrame produced by ``to_frame``.

    Raises:
        ValueError: If the frame does not start with the identity columns.
    """
    columns = [str(c) for c in frame.columns]
    if tuple(columns[:2]) != FIXED_COLUMNS:
        raise ValueError(f"Table {name!r} does not start with {list(FIXED_COLUMNS)}")
    rows = [
        SummaryRow(
            image_id=str(record[0]),
            label=str(record[1]),
            values=tuple(float(v) for v in record[2:]),
        )
        for record in frame.itertuples(index=False, name=None)
    ]
    return SummaryTable(name=name, headers=columns[2:], rows=rows)
