"""
Text Formatters - Pure, deterministic text transforms.

Each transform takes text and returns text, or raises FormattingError with
a message that includes the underlying parser detail.
"""

import json
import re
from collections.abc import Callable

import yaml

from devclip.exceptions import FormattingError
from devclip.models.api import FormatOperation

# ============================================================================
# JSON / YAML
# ============================================================================


def _reject_constant(name: str) -> float:
    raise ValueError(f"{name} is not valid JSON")


def format_json(text: str) -> str:
    """Parse and re-serialize with 2-space indentation, preserving key order."""
    try:
        parsed = json.loads(text, parse_constant=_reject_constant)
    except ValueError as exc:
        raise FormattingError(FormatOperation.JSON.value, f"Invalid JSON: {exc}") from exc
    return json.dumps(parsed, indent=2, ensure_ascii=False)


def format_yaml(text: str) -> str:
    """Parse and re-serialize with normalized 2-space indentation."""
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise FormattingError(FormatOperation.YAML.value, f"Invalid YAML: {exc}") from exc
    return yaml.safe_dump(
        parsed,
        indent=2,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


# ============================================================================
# SQL
# ============================================================================

SQL_KEYWORDS: tuple[str, ...] = (
    "SELECT",
    "FROM",
    "WHERE",
    "JOIN",
    "LEFT",
    "RIGHT",
    "INNER",
    "OUTER",
    "ON",
    "AND",
    "OR",
    "ORDER BY",
    "GROUP BY",
    "HAVING",
    "LIMIT",
    "OFFSET",
    "INSERT",
    "INTO",
    "VALUES",
    "UPDATE",
    "SET",
    "DELETE",
    "CREATE",
    "TABLE",
    "ALTER",
    "DROP",
    "INDEX",
    "VIEW",
    "AS",
    "DISTINCT",
    "COUNT",
    "SUM",
    "AVG",
    "MAX",
    "MIN",
    "CASE",
    "WHEN",
    "THEN",
    "ELSE",
    "END",
    "IS",
    "NOT",
    "NULL",
)

SQL_CLAUSE_KEYWORDS: tuple[str, ...] = (
    "SELECT",
    "FROM",
    "WHERE",
    "JOIN",
    "ORDER BY",
    "GROUP BY",
    "LIMIT",
)

_SQL_KEYWORD_PATTERNS = tuple(
    (re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE), keyword) for keyword in SQL_KEYWORDS
)
_SQL_CLAUSE_PATTERNS = tuple(
    (re.compile(rf"\s+{re.escape(keyword)}\s+"), f"\n{keyword} ") for keyword in SQL_CLAUSE_KEYWORDS
)


def format_sql(text: str) -> str:
    """
    Uppercase reserved keywords and break lines before major clauses.

    Does not parse SQL: malformed input is formatted on a best-effort basis.
    """
    formatted = text.strip()
    for pattern, keyword in _SQL_KEYWORD_PATTERNS:
        formatted = pattern.sub(keyword, formatted)
    for pattern, replacement in _SQL_CLAUSE_PATTERNS:
        formatted = pattern.sub(replacement, formatted)
    return formatted.strip()


# ============================================================================
# ANSI / Logs
# ============================================================================

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    """Remove SGR escape sequences (ESC [ digits/semicolons m)."""
    return _ANSI_ESCAPE.sub("", text)


# Tested in order, first match wins
_LOG_LEVEL_MARKERS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("ERROR", re.compile(r"\[ERROR\]|ERROR:", re.IGNORECASE)),
    ("WARN", re.compile(r"\[WARN(?:ING)?\]|WARN(?:ING)?:", re.IGNORECASE)),
    ("INFO", re.compile(r"\[INFO\]|INFO:", re.IGNORECASE)),
    ("DEBUG", re.compile(r"\[DEBUG\]|DEBUG:", re.IGNORECASE)),
)

LOG_SUMMARY_HEADING = "# Log Summary"


def log_to_markdown(text: str) -> str:
    """
    Convert log lines into a Markdown summary.

    Each non-blank line becomes one entry. Lines carrying a level marker are
    rendered as "**[LEVEL]**: body" with the marker removed; other lines pass
    through verbatim.
    """
    parts = [f"{LOG_SUMMARY_HEADING}\n\n"]
    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line:
            continue

        for level, marker in _LOG_LEVEL_MARKERS:
            if marker.search(line):
                body = marker.sub("", line, count=1).strip()
                parts.append(f"**[{level}]**: {body}\n\n")
                break
        else:
            parts.append(f"{line}\n\n")

    return "".join(parts)


# ============================================================================
# Dispatch
# ============================================================================

FORMATTERS: dict[FormatOperation, Callable[[str], str]] = {
    FormatOperation.JSON: format_json,
    FormatOperation.YAML: format_yaml,
    FormatOperation.SQL: format_sql,
    FormatOperation.ANSI_STRIP: strip_ansi,
    FormatOperation.LOG_TO_MARKDOWN: log_to_markdown,
}


def apply_format(operation: FormatOperation | str, text: str) -> str:
    """Run the named local transform."""
    return FORMATTERS[FormatOperation(operation)](text)
