"""Lightweight structural fact extraction for C-like source text.

This is pattern matching, not a parser. Results are best-effort hints for
prompt context and symbol suggestions: constructs spread over unusual
formatting, macros, comments or string literals may be missed or
misreported. Text that is mid-edit or malformed yields fewer facts, never
an error.
"""

from __future__ import annotations

import logging
import re
from bisect import bisect_right

from contextpilot.memory.schemas import FileFacts
from contextpilot.memory.schemas import FunctionFact
from contextpilot.memory.schemas import ImportFact
from contextpilot.memory.schemas import VariableFact

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_FUNCTION_RE = re.compile(
    r"\b([A-Za-z_]\w*)[\s*]+([A-Za-z_]\w*)\s*\([^()]*\)\s*\{"
)
_VARIABLE_RE = re.compile(r"\b([A-Za-z_]\w*)\s+\**([A-Za-z_]\w*)\s*[=;]")
_INCLUDE_RE = re.compile(r"#\s*include\s*[<\"]([^>\"]+)[>\"]")

# Words that look like "<type> <name>" to the patterns above but are not.
_NON_TYPES = frozenset(
    {
        "return",
        "else",
        "goto",
        "case",
        "do",
        "if",
        "for",
        "while",
        "switch",
        "sizeof",
        "typedef",
        "struct",
        "enum",
        "union",
    }
)
_NON_NAMES = frozenset({"if", "for", "while", "switch", "return", "sizeof", "else"})


def _line_starts(content: str) -> list[int]:
    starts = [0]
    starts.extend(match.end() for match in re.finditer("\n", content))
    return starts


def _line_of(starts: list[int], offset: int) -> int:
    """Return the 1-based line containing *offset*."""
    return bisect_right(starts, offset)


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------


def extract_functions(content: str) -> list[FunctionFact]:
    """Find ``<return-type> <name>(...) {`` definitions."""
    starts = _line_starts(content)
    facts: list[FunctionFact] = []
    for match in _FUNCTION_RE.finditer(content):
        return_type, name = match.group(1), match.group(2)
        if return_type in _NON_TYPES or name in _NON_NAMES:
            continue
        facts.append(
            FunctionFact(
                return_type=return_type,
                name=name,
                line=_line_of(starts, match.start()),
            )
        )
    return facts


def extract_variables(content: str) -> list[VariableFact]:
    """Find ``<type> <name> =`` and ``<type> <name>;`` declarations."""
    starts = _line_starts(content)
    facts: list[VariableFact] = []
    for match in _VARIABLE_RE.finditer(content):
        var_type, name = match.group(1), match.group(2)
        if var_type in _NON_TYPES or name in _NON_NAMES:
            continue
        facts.append(
            VariableFact(
                type=var_type,
                name=name,
                line=_line_of(starts, match.start()),
            )
        )
    return facts


def extract_imports(content: str) -> list[ImportFact]:
    """Find ``#include <...>`` and ``#include "..."`` directives."""
    starts = _line_starts(content)
    return [
        ImportFact(header=match.group(1).strip(), line=_line_of(starts, match.start()))
        for match in _INCLUDE_RE.finditer(content)
    ]


def extract_facts(content: str) -> FileFacts:
    """Run every extractor; any failure degrades to zero facts."""
    try:
        return FileFacts(
            functions=extract_functions(content),
            variables=extract_variables(content),
            imports=extract_imports(content),
        )
    except (TypeError, ValueError, re.error) as exc:
        logger.debug("fact extraction failed, using zero facts: %s", exc)
        return FileFacts()
