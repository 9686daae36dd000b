"""
Universal Code Formatter - Language detection and multi-grammar pretty-printing.

Detection is an ordered list of pattern tests: more syntactically specific
grammars are tested before more general ones and the first match wins.
"""

import json
import re
from collections.abc import Callable

import cssbeautifier
import jsbeautifier
import mdformat
from bs4 import BeautifulSoup
from bs4.formatter import HTMLFormatter
from graphql import parse as parse_graphql
from graphql import print_ast

from devclip.exceptions import FormattingError, ValidationError
from devclip.models.api import CodeLanguage
from devclip.models.domain import CodeFormatResult
from devclip.services.catalog import CODE_FORMAT_OPERATION
from devclip.services.formatters import format_json, format_sql, format_yaml

INDENT_SIZE = 2
PRINT_WIDTH = 80

DEFAULT_LANGUAGE = CodeLanguage.JAVASCRIPT

# ============================================================================
# Detection patterns
# ============================================================================

_VUE_SFC_TEMPLATE = re.compile(r"^<template[\s>]", re.MULTILINE)
_VUE_SFC_BLOCK = re.compile(r"^<(?:script|style)[\s>]", re.MULTILINE)
_VUE_DIRECTIVE = re.compile(r"\sv-(?:if|else-if|else|for|model|show|bind|on|html|slot)\b")
_ANGULAR_TEMPLATE = re.compile(
    r"\*ng(?:If|For|Switch\w*)\s*=|\[\(ngModel\)\]|\[ng(?:Class|Style)\]|\(ngSubmit\)"
)

_TYPESCRIPT = re.compile(
    r"[\w)\]]\??\s*:\s*(?:string|number|boolean|any|void|unknown|never|bigint)(?:\[\])?"
    r"\s*(?:[;,)=|&>\]{}])"
    r"|^\s*(?:export\s+)?(?:declare\s+)?type\s+\w+(?:<[^>\n]*>)?\s*="
    r"|^\s*(?:export\s+)?(?:declare\s+)?(?:abstract\s+class|namespace|module)\s+\w"
    r"|^\s*(?:export\s+)?(?:declare\s+)?interface\s+\w+\b(?!\s+implements\b)"
    r"|^\s*(?:(?:export|declare)\s+)+(?:const\s+)?enum\s+\w"
    r"|^\s*const\s+enum\s+\w|^\s*enum\s+\w+\s*\{[^}]*="
    r"|^\s*declare\s+\w"
    r"|\w<[A-Z]\w*(?:\[\])?(?:\s*,\s*[A-Z]\w*(?:\[\])?)*>\s*\("
    r"|^\s*(?:public|private|protected|readonly)\s+\w"
    r"|^\s*@[A-Z]\w*\("
    r"|\bas\s+(?:const|string|number|boolean|any|unknown)\b"
    r"|\w\?:\s*\w",
    re.MULTILINE,
)
_JSX_MARKUP = re.compile(
    r"(?:return|=>)\s*\(?\s*<[A-Za-z>]|</[A-Za-z][\w.]*>|<[A-Za-z][\w.]*(?:\s[^<>]*)?/>"
)
_JSX_COMPONENT = re.compile(r"(?<![\w$])<[A-Z][\w.]*[\s/>]|(?:return|=>)\s*\(?\s*<[A-Za-z>]")
_HTML = re.compile(
    r"^\s*<!DOCTYPE html>|<(?:html|head|body|div|span|p|a|section|main|ul|ol|table|form)[\s>]",
    re.IGNORECASE,
)
_SCSS = re.compile(r"\$[\w-]+\s*:|@mixin\b|@include\b|@extend\b|&:")
_LESS = re.compile(r"^\s*@[\w-]+\s*:|\.[\w-]+\(\)\s*;", re.MULTILINE)
_CSS = re.compile(
    r"(?:^|\})\s*[.#]?[A-Za-z*][\w\s.#:>,+~\[\]=\"'()-]*\{\s*[\w-]+\s*:[^;{}]+;"
    r"|@media\b|@keyframes\b|@font-face\b|\.[\w-]+\s*\{",
    re.MULTILINE,
)
_JSON_PREFIX = re.compile(r"^\s*[\{\[]")
_YAML = re.compile(r"^[\w-]+:\s*[\w-]|^\s*-\s+\w", re.MULTILINE)
_MARKDOWN = re.compile(r"^#{1,6}\s+|^\*\*|^```|^\[.*\]\(.*\)", re.MULTILINE)
_GRAPHQL = re.compile(
    r"^\s*(?:query|mutation|subscription|fragment|type|interface|enum|input|scalar|union|schema)\b",
    re.MULTILINE,
)
_SQL = re.compile(r"^\s*(?:SELECT|INSERT|UPDATE|DELETE|CREATE|ALTER|DROP|WITH)\s+", re.IGNORECASE)
_JAVASCRIPT = re.compile(
    r"^\s*(?:import|export|const|let|var|function|class|async)\b|=>|^\s*[\{\[]", re.MULTILINE
)


def _is_json(code: str) -> bool:
    if not _JSON_PREFIX.match(code):
        return False
    try:
        json.loads(code)
    except ValueError:
        return False
    return True


def _is_typescript(code: str) -> bool:
    return bool(_TYPESCRIPT.search(code)) and not _JSX_MARKUP.search(code)


def _is_tsx(code: str) -> bool:
    return bool(_TYPESCRIPT.search(code)) and bool(_JSX_MARKUP.search(code))


def _is_vue(code: str) -> bool:
    if _VUE_SFC_TEMPLATE.search(code) and _VUE_SFC_BLOCK.search(code):
        return True
    return bool(_VUE_DIRECTIVE.search(code))


# Order matters: first match wins.
DETECTION_ORDER: tuple[tuple[CodeLanguage, Callable[[str], bool]], ...] = (
    (CodeLanguage.VUE, _is_vue),
    (CodeLanguage.ANGULAR, lambda code: bool(_ANGULAR_TEMPLATE.search(code))),
    (CodeLanguage.TYPESCRIPT, _is_typescript),
    (CodeLanguage.TSX, _is_tsx),
    (CodeLanguage.JSX, lambda code: bool(_JSX_COMPONENT.search(code))),
    (CodeLanguage.HTML, lambda code: bool(_HTML.search(code))),
    (CodeLanguage.SCSS, lambda code: bool(_SCSS.search(code))),
    (CodeLanguage.LESS, lambda code: bool(_LESS.search(code))),
    (CodeLanguage.CSS, lambda code: bool(_CSS.search(code))),
    (CodeLanguage.JSON, _is_json),
    (CodeLanguage.YAML, lambda code: bool(_YAML.search(code))),
    (CodeLanguage.MARKDOWN, lambda code: bool(_MARKDOWN.search(code))),
    (CodeLanguage.GRAPHQL, lambda code: bool(_GRAPHQL.search(code))),
    (CodeLanguage.SQL, lambda code: bool(_SQL.match(code))),
    (CodeLanguage.JAVASCRIPT, lambda code: bool(_JAVASCRIPT.search(code))),
)


def detect_language(code: str) -> CodeLanguage:
    """Return the first grammar whose pattern matches, defaulting to JavaScript."""
    for language, matches in DETECTION_ORDER:
        if matches(code):
            return language
    return DEFAULT_LANGUAGE


# ============================================================================
# Printers
# ============================================================================


def _format_script(code: str) -> str:
    options = jsbeautifier.default_options()
    options.indent_size = INDENT_SIZE
    options.wrap_line_length = PRINT_WIDTH
    options.e4x = True
    options.end_with_newline = True
    return jsbeautifier.beautify(code, options)


def _format_stylesheet(code: str) -> str:
    options = cssbeautifier.default_options()
    options.indent_size = INDENT_SIZE
    options.end_with_newline = True
    return cssbeautifier.beautify(code, options)


def _format_markup(code: str) -> str:
    soup = BeautifulSoup(code, "html.parser")
    return soup.prettify(formatter=HTMLFormatter(indent=INDENT_SIZE))


def _format_markdown(code: str) -> str:
    return mdformat.text(code, options={"wrap": PRINT_WIDTH})


def _format_graphql(code: str) -> str:
    return print_ast(parse_graphql(code)) + "\n"


PRINTERS: dict[CodeLanguage, Callable[[str], str]] = {
    CodeLanguage.JAVASCRIPT: _format_script,
    CodeLanguage.TYPESCRIPT: _format_script,
    CodeLanguage.JSX: _format_script,
    CodeLanguage.TSX: _format_script,
    CodeLanguage.HTML: _format_markup,
    CodeLanguage.VUE: _format_markup,
    CodeLanguage.ANGULAR: _format_markup,
    CodeLanguage.CSS: _format_stylesheet,
    CodeLanguage.SCSS: _format_stylesheet,
    CodeLanguage.LESS: _format_stylesheet,
    CodeLanguage.JSON: lambda code: format_json(code) + "\n",
    CodeLanguage.YAML: format_yaml,
    CodeLanguage.MARKDOWN: _format_markdown,
    CodeLanguage.GRAPHQL: _format_graphql,
    CodeLanguage.SQL: lambda code: format_sql(code) + "\n",
}


def format_code(code: str, language: CodeLanguage | str | None = None) -> CodeFormatResult:
    """
    Pretty-print code with a fixed style (2-space indent, 80 columns).

    Uses the caller-supplied grammar when given, otherwise auto-detects it.

    Raises:
        FormattingError: the code cannot be parsed under the grammar
    """
    if language:
        try:
            resolved = CodeLanguage(language)
        except ValueError:
            raise ValidationError(f"Unsupported language: {language}") from None
    else:
        resolved = detect_language(code)

    try:
        formatted = PRINTERS[resolved](code)
    except Exception as exc:
        detail = exc.message if isinstance(exc, FormattingError) else str(exc)
        raise FormattingError(
            CODE_FORMAT_OPERATION, f"Failed to format {resolved.value}: {detail}"
        ) from exc
    return CodeFormatResult(formatted=formatted, language=resolved.value)
