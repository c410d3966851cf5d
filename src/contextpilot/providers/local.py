"""Offline provider: deterministic text transforms, no network.

The last link of every fallback chain. It answers each action with
rule-based output (whitespace and brace normalization, a few C best
practice fixes, pattern-matched diagnoses, templates) and always returns
a response. Structured results are carried in ``raw["structured"]``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable

from contextpilot.providers.base import CompletionOptions
from contextpilot.providers.base import PromptAction
from contextpilot.providers.base import PromptPayload
from contextpilot.providers.base import ProviderResponse
from contextpilot.providers.base import Suggestion

C_KEYWORDS = (
    "int",
    "char",
    "float",
    "double",
    "void",
    "if",
    "else",
    "while",
    "for",
    "return",
    "switch",
    "case",
    "break",
    "continue",
    "struct",
    "typedef",
    "sizeof",
)
C_LIBRARY_FUNCTIONS = (
    "printf",
    "scanf",
    "puts",
    "strlen",
    "strcpy",
    "strcmp",
    "malloc",
    "free",
)
_MAX_SUGGESTIONS = 5

# ---------------------------------------------------------------------------
# Code transforms
# ---------------------------------------------------------------------------

# String/char literals, comments and preprocessor directives are never
# rewritten. Each alternative records whether the token was closed.
_NON_CODE_RE = re.compile(
    r"\"(?:\\.|[^\"\\\n])*(?P<dq>\")?"
    r"|'(?:\\.|[^'\\\n])*(?P<sq>')?"
    r"|//[^\n]*"
    r"|/\*.*?(?P<bc>\*/|\Z)"
    r"|^[ \t]*#(?:\\\n|[^\n])*",
    re.DOTALL | re.MULTILINE,
)


def _non_code_spans(code: str) -> tuple[list[tuple[int, int]], bool]:
    """Spans of literals, comments and directives, and whether all were closed."""
    spans: list[tuple[int, int]] = []
    closed = True
    for match in _NON_CODE_RE.finditer(code):
        token = match.group(0)
        if token.startswith('"') and match.group("dq") is None:
            closed = False
        elif token.startswith("'") and match.group("sq") is None:
            closed = False
        elif token.startswith("/*") and not match.group("bc"):
            closed = False
        spans.append(match.span())
    return spans, closed


def _code_ranges(code: str, spans: list[tuple[int, int]]) -> list[tuple[int, int]]:
    ranges: list[tuple[int, int]] = []
    cursor = 0
    for start, end in spans:
        ranges.append((cursor, start))
        cursor = end
    ranges.append((cursor, len(code)))
    return ranges


def _map_code_segments(code: str, fn: Callable[[str], str]) -> str:
    """Apply *fn* to code outside literals, comments and preprocessor lines."""
    spans, _ = _non_code_spans(code)
    pieces: list[str] = []
    for (start, end), span in zip(_code_ranges(code, spans), [*spans, None]):
        pieces.append(fn(code[start:end]))
        if span is not None:
            pieces.append(code[span[0] : span[1]])
    return "".join(pieces)


def normalize_whitespace(code: str) -> str:
    """Tabs to four spaces, LF endings, no trailing blanks, at most one empty line."""
    result = code.replace("\r\n", "\n").replace("\r", "\n")
    result = _map_code_segments(result, lambda segment: segment.replace("\t", "    "))
    result = "\n".join(line.rstrip() for line in result.split("\n"))
    result = re.sub(r"\n{3,}", "\n\n", result)
    return result.strip("\n") + "\n" if result.strip() else ""


def fix_spacing(code: str) -> str:
    """Space between control keywords and ``(``, and after commas."""

    def _fix(segment: str) -> str:
        segment = re.sub(r"\b(if|for|while|switch|return)\(", r"\1 (", segment)
        return re.sub(r",(?=\S|\Z)", ", ", segment)

    return _map_code_segments(code, _fix)


def fix_braces(code: str) -> str:
    """Opening braces on the same line, separated by one space."""

    def _fix(segment: str) -> str:
        segment = re.sub(r"\)[ \t]*\n[ \t]*\{", ") {", segment)
        segment = re.sub(r"\)\{", ") {", segment)
        return re.sub(r"\belse\{", "else {", segment)

    return _map_code_segments(code, _fix)


def _matching_brace(code: str, open_index: int) -> int | None:
    """Index of the brace closing the one at *open_index*, or None if unsure."""
    spans, closed = _non_code_spans(code)
    if not closed:
        return None
    depth = 0
    for start, end in _code_ranges(code, spans):
        if end <= open_index:
            continue
        for index in range(max(start, open_index), end):
            char = code[index]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return index
    return None


def _in_code(spans: list[tuple[int, int]], index: int) -> bool:
    return not any(start <= index < end for start, end in spans)


def apply_best_practices(code: str) -> str:
    """``int main(void)`` and an explicit ``return 0;`` at the end of main."""
    result = _map_code_segments(
        code, lambda segment: re.sub(r"\bint\s+main\s*\(\s*\)", "int main(void)", segment)
    )
    spans, _ = _non_code_spans(result)
    match = next(
        (
            m
            for m in re.finditer(r"\bint\s+main\s*\([^)]*\)\s*\{", result)
            if _in_code(spans, m.start()) and _in_code(spans, m.end() - 1)
        ),
        None,
    )
    if match is None:
        return result
    close = _matching_brace(result, match.end() - 1)
    if close is None:
        return result
    body = result[match.end() : close]
    body_code = "".join(
        body[start:end] for start, end in _code_ranges(body, _non_code_spans(body)[0])
    )
    if re.search(r"\breturn\b", body_code):
        return result
    head = result[:close].rstrip(" ")
    if not head.endswith("\n"):
        head += "\n"
    return head + "    return 0;\n" + result[close:]


_REFACTOR_STEPS: tuple[tuple[str, Callable[[str], str]], ...] = (
    ("Normalized indentation and blank lines", normalize_whitespace),
    ("Fixed spacing after keywords and commas", fix_spacing),
    ("Moved opening braces onto the declaring line", fix_braces),
    ("Applied C best practices to main()", apply_best_practices),
)


def refactor_code(code: str) -> tuple[str, list[str]]:
    """Run every transform in order; return the result and applied changes."""
    changes: list[str] = []
    current = code
    for label, step in _REFACTOR_STEPS:
        updated = step(current)
        if updated != current:
            changes.append(label)
        current = updated
    return current, changes


# ---------------------------------------------------------------------------
# Diagnosis rules
# ---------------------------------------------------------------------------

_DIAGNOSIS_RULES: tuple[tuple[re.Pattern[str], str, str], ...] = (
    (
        re.compile(r"expected\s+['\"]?;", re.IGNORECASE),
        "A statement is missing its terminating semicolon.",
        "Add ';' at the end of the statement reported by the compiler.",
    ),
    (
        re.compile(r"syntax error|expected", re.IGNORECASE),
        "Syntax error detected in the code.",
        "Check for missing semicolons, brackets, or parentheses.",
    ),
    (
        re.compile(r"implicit declaration", re.IGNORECASE),
        "A function is used before it is declared.",
        "Include the header that declares it or add a prototype above its first use.",
    ),
    (
        re.compile(r"undeclared|not declared|undefined variable", re.IGNORECASE),
        "Undeclared variable or function used.",
        "Make sure all variables are declared before use.",
    ),
    (
        re.compile(r"undefined reference", re.IGNORECASE),
        "Function or variable referenced but not defined.",
        "Implement the missing function or check the spelling.",
    ),
    (
        re.compile(r"incompatible|type mismatch|invalid operands", re.IGNORECASE),
        "Types of the operands or arguments do not match.",
        "Cast explicitly or change the declaration so the types agree.",
    ),
    (
        re.compile(r"segmentation fault|segfault", re.IGNORECASE),
        "The program accessed memory it does not own.",
        "Check pointer initialization and array bounds.",
    ),
)
_LINE_RE = re.compile(r":(\d+)(?::\d+)?:")


def diagnose(error_message: str) -> tuple[str, str]:
    """Match *error_message* against the rule table."""
    diagnosis = "Unable to analyze error automatically."
    suggested_fix = "Please check the syntax and try again."
    for pattern, rule_diagnosis, rule_fix in _DIAGNOSIS_RULES:
        if pattern.search(error_message):
            diagnosis, suggested_fix = rule_diagnosis, rule_fix
            break
    line = _LINE_RE.search(error_message)
    if line:
        diagnosis = f"{diagnosis} (reported at line {line.group(1)})"
    return diagnosis, suggested_fix


# ---------------------------------------------------------------------------
# Generation templates
# ---------------------------------------------------------------------------

_HELLO_TEMPLATE = """#include <stdio.h>

int main(void) {
    printf("Hello, World!\\n");
    return 0;
}
"""

_CALCULATOR_TEMPLATE = """#include <stdio.h>

int main(void) {
    int a, b, result;
    char operation;

    printf("Enter first number: ");
    scanf("%d", &a);
    printf("Enter operation (+, -, *, /): ");
    scanf(" %c", &operation);
    printf("Enter second number: ");
    scanf("%d", &b);

    switch (operation) {
        case '+':
            result = a + b;
            break;
        case '-':
            result = a - b;
            break;
        case '*':
            result = a * b;
            break;
        case '/':
            if (b == 0) {
                printf("Error: Division by zero!\\n");
                return 1;
            }
            result = a / b;
            break;
        default:
            printf("Error: Invalid operation!\\n");
            return 1;
    }

    printf("Result: %d\\n", result);
    return 0;
}
"""


def generate_files(prompt_text: str) -> dict:
    if "calculator" in prompt_text.lower():
        content, explanation = _CALCULATOR_TEMPLATE, "Calculator template generated offline."
    else:
        content, explanation = _HELLO_TEMPLATE, "Basic program template generated offline."
    return {
        "files": [
            {"name": "main.c", "purpose": "Main entry point", "content": content}
        ],
        "main_file": "main.c",
        "explanation": explanation,
    }


# ---------------------------------------------------------------------------
# Review checks
# ---------------------------------------------------------------------------


def review_code(code: str) -> dict:
    issues: list[str] = []
    suggestions: list[str] = []
    if "#include" not in code:
        issues.append("Missing header includes")
        suggestions.append("Add appropriate #include statements")
    if re.search(r"\bint\s+main\b", code) and not re.search(r"\breturn\s+0\s*;", code):
        issues.append("Missing return statement in main function")
        suggestions.append('Add "return 0;" at the end of main function')
    if "printf" in code and not re.search(r"#\s*include\s*<stdio\.h>", code):
        issues.append("Using printf without including stdio.h")
        suggestions.append("Add #include <stdio.h> at the top")
    review = (
        f"Basic code review completed. Found {len(issues)} issues "
        f"and {len(suggestions)} suggestions."
    )
    return {"review": review, "suggestions": suggestions, "issues": issues}


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


def _symbol_suggestions(prefix: str, symbols: list[dict]) -> list[Suggestion]:
    candidates: list[tuple[str, str, float]] = []
    for symbol in symbols:
        name = str(symbol.get("name", ""))
        if not name:
            continue
        insert = f"{name}()" if symbol.get("kind") == "function" else name
        candidates.append((name, insert, 0.6))
    candidates.extend((kw, kw, 0.4) for kw in C_KEYWORDS)
    candidates.extend((fn, f"{fn}()", 0.3) for fn in C_LIBRARY_FUNCTIONS)

    seen: set[str] = set()
    out: list[Suggestion] = []
    for label, insert, confidence in candidates:
        if prefix and (not label.startswith(prefix) or label == prefix):
            continue
        if label in seen:
            continue
        seen.add(label)
        out.append(Suggestion(label=label, insert_text=insert, confidence=confidence))
        if len(out) >= _MAX_SUGGESTIONS:
            break
    return out


class LocalAdapter:
    """Network-free provider that always succeeds."""

    def __init__(self, name: str = "local") -> None:
        self.name = name

    async def complete(
        self,
        prompt: PromptPayload,
        options: CompletionOptions,
    ) -> ProviderResponse:
        del options
        action = prompt.action
        if action is PromptAction.completion:
            suggestions = _symbol_suggestions(
                str(prompt.hints.get("prefix", "")),
                list(prompt.hints.get("symbols", [])),
            )
            text = suggestions[0].insert_text if suggestions else ""
            return self._response(text, {}, suggestions)

        if action is PromptAction.refactor:
            if not prompt.subject.strip():
                structured = {
                    "code": prompt.subject,
                    "explanation": "No code to refactor.",
                    "changes": [],
                }
                return self._response("", structured)
            code, changes = refactor_code(prompt.subject)
            explanation = (
                "Applied local formatting and best practices: " + "; ".join(changes)
                if changes
                else "Code already matches the local formatting rules."
            )
            structured = {"code": code, "explanation": explanation, "changes": changes}
            return self._response(f"```c\n{code}```\n\n{explanation}", structured)

        if action is PromptAction.diagnosis:
            error_message = str(prompt.hints.get("error_message", prompt.subject))
            diagnosis, fix = diagnose(error_message)
            structured = {
                "diagnosis": diagnosis,
                "suggested_fix": fix,
                "explanation": "Basic error analysis performed.",
            }
            return self._response(f"{diagnosis}\n\nSuggested fix: {fix}", structured)

        if action is PromptAction.generation:
            structured = generate_files(prompt.subject)
            return self._response(json.dumps(structured, indent=2), structured)

        structured = review_code(prompt.subject)
        lines = [structured["review"]]
        lines.extend(f"- issue: {issue}" for issue in structured["issues"])
        lines.extend(f"- suggestion: {s}" for s in structured["suggestions"])
        return self._response("\n".join(lines), structured)

    def _response(
        self,
        text: str,
        structured: dict,
        suggestions: list[Suggestion] | None = None,
    ) -> ProviderResponse:
        return ProviderResponse(
            text=text,
            suggestions=suggestions or [],
            provider=self.name,
            model=None,
            raw={"structured": structured} if structured else {},
        )
