import logging
import re
from datetime import date
from typing import Optional

# Row cap for snapshot queries, which have no date filter to bound them
SNAPSHOT_ROW_LIMIT = 5000

_EVALUATE_PREFIX = re.compile(r"^\s*EVALUATE\s*", re.IGNORECASE)
_BARE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
# Table reference as written in DAX: bare name or single-quoted name
_TABLE_REFERENCE = r"(?:'(?:[^']|'')+'|\w+)"
_TABLE_NAME_PATTERNS = (
    re.compile(r"SUMMARIZECOLUMNS\s*\(\s*([^\[]+)\[", re.IGNORECASE),
    re.compile(r"FILTER\s*\(\s*'?([^'\[]+)'?\[", re.IGNORECASE),
    re.compile(r"SELECTCOLUMNS\s*\(\s*([^\[]+)\[", re.IGNORECASE),
)

logger = logging.getLogger(__name__)


def strip_evaluate(query: str) -> str:
    """Remove the leading EVALUATE keyword (repeated ones too)"""
    body = query.strip()
    while _EVALUATE_PREFIX.match(body):
        body = _EVALUATE_PREFIX.sub("", body, count=1).strip()
    return body


def quote_table_name(name: str) -> str:
    """Reference a table in DAX, quoting names that are not bare identifiers"""
    if _BARE_IDENTIFIER.match(name):
        return name
    escaped = name.replace("'", "''")
    return f"'{escaped}'"


def unquote_table_name(reference: str) -> str:
    reference = reference.strip()
    if len(reference) > 1 and reference.startswith("'") and reference.endswith("'"):
        return reference[1:-1].replace("''", "'").strip()
    return reference.strip("'").strip()


def extract_table_name(query: str, date_field: Optional[str] = None) -> Optional[str]:
    """
    Guess the table the date filter must reference.

    The first SUMMARIZECOLUMNS/FILTER/SELECTCOLUMNS argument wins; a date field
    written as Table[column] is used otherwise.
    """
    for pattern in _TABLE_NAME_PATTERNS:
        match = pattern.search(query)
        if match:
            name = unquote_table_name(match.group(1))
            if name and "(" not in name:
                return name
    if date_field and "[" in date_field:
        return unquote_table_name(date_field.split("[", 1)[0]) or None
    return None


def find_filter_condition_end(query: str) -> int:
    """
    Position of the ')' closing the first FILTER( of the query, or -1.

    Parentheses are counted so nested calls inside the FILTER are skipped.
    """
    match = re.search(r"FILTER\s*\(", query, re.IGNORECASE)
    if not match:
        return -1
    depth = 1
    for position in range(match.end(), len(query)):
        char = query[position]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return position
    return -1


def format_dax_date(value: date) -> str:
    return f"DATE({value.year}, {value.month}, {value.day})"


def build_date_filter(table_name: str, column: str, start: date, end: date) -> str:
    field = f"{quote_table_name(table_name)}[{column}]"
    return f"{field} >= {format_dax_date(start)} && {field} <= {format_dax_date(end)}"


def inject_date_filter(query: str, date_field: str, table_name: str, start: date, end: date) -> str:
    """
    Restrict a DAX query to the inclusive date range [start, end].

    A query whose body is already an outer FILTER(...) gets the range appended
    to its condition with &&; anything else is wrapped in a new FILTER.
    """
    column = date_field.split("[", 1)[-1].replace("]", "").strip() if "[" in date_field else date_field
    if table_name not in query:
        extracted = extract_table_name(query)
        if extracted and extracted != table_name:
            logger.warning(f"Table {table_name} not found in query, using {extracted}")
            table_name = extracted

    date_filter = build_date_filter(table_name, column, start, end)
    body = strip_evaluate(query)

    if re.match(r"FILTER\s*\(", body, re.IGNORECASE):
        close_position = find_filter_condition_end(body)
        if close_position > 0:
            before_close = body[:close_position].rstrip()
            after_close = body[close_position:]
            return f"EVALUATE\n{before_close} && ({date_filter}){after_close}"
        logger.warning("Could not find the end of the outer FILTER, wrapping the query instead")

    return f"EVALUATE\nFILTER(\n  {body},\n  {date_filter}\n)"


def limit_rows(query: str, limit: int = SNAPSHOT_ROW_LIMIT) -> str:
    """Wrap the query in TOPN unless it already limits its rows"""
    if "TOPN" in query.upper():
        return query
    return f"EVALUATE TOPN({limit}, {strip_evaluate(query)})"


def build_day_query(template: str, date_field: Optional[str], start: Optional[date], end: Optional[date]) -> str:
    """
    Build the query sent upstream for one batch window.

    Args:
        template: The configured DAX query
        date_field: Date column of the query; None for snapshot entities
        start: First day of the window
        end: Last day of the window (inclusive)

    Returns:
        str: Executable DAX query
    """
    if not date_field or start is None or end is None:
        return limit_rows(template)

    table_name = extract_table_name(template, date_field) or "Table"
    query = inject_date_filter(template, date_field, table_name, start, end)
    if "TOPN" in query.upper():
        return query
    return f"EVALUATE\n{strip_evaluate(query)}"


def remove_column(query: str, column: str) -> str:
    """Drop every Table[column] reference from a column list"""
    reference = rf"{_TABLE_REFERENCE}\[{re.escape(column)}\]"
    query = re.sub(rf",\s*{reference}", "", query, flags=re.IGNORECASE)
    return re.sub(rf"{reference},\s*", "", query, flags=re.IGNORECASE)
