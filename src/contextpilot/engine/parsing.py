"""Shape provider responses into action results.

The local adapter hands over ready-made fields in ``raw["structured"]``;
remote providers answer in free text, from which code fences, JSON
objects and keyword lines are extracted.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from contextpilot.models.schemas import DiagnosisResult
from contextpilot.models.schemas import GeneratedFile
from contextpilot.models.schemas import GenerationResult
from contextpilot.models.schemas import RefactorResult
from contextpilot.models.schemas import ReviewResult
from contextpilot.providers.base import ProviderResponse

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\n(.*?)```", re.DOTALL)
_INCLUDE_LINE_RE = re.compile(r"^[ \t]*#[ \t]*include\b.*$", re.MULTILINE)
_BULLET_RE = re.compile(r"^(?:[-*•]|\d+[.)])\s*")

_CHANGE_WORDS = ("change", "improve", "fix")
_SUGGESTION_WORDS = ("suggestion", "recommend", "consider")
_ISSUE_WORDS = ("issue", "problem", "error", "bug")

RESTORED_INCLUDES = "Restored #include lines dropped from the original code"


def _structured(response: ProviderResponse) -> dict[str, Any] | None:
    structured = response.raw.get("structured")
    return structured if isinstance(structured, dict) else None


def extract_code_block(text: str) -> str | None:
    """Content of the first fenced code block, if any."""
    match = _FENCE_RE.search(text)
    return match.group(1) if match else None


def _without_code_blocks(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def _keyword_lines(text: str, words: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for line in text.splitlines():
        stripped = _BULLET_RE.sub("", line.strip())
        lowered = stripped.lower()
        if stripped and any(word in lowered for word in words):
            found.append(stripped)
    return found


def restore_includes(original: str, refactored: str) -> tuple[str, bool]:
    """Prepend ``#include`` lines of *original* missing from *refactored*."""
    present = {line.strip() for line in _INCLUDE_LINE_RE.findall(refactored)}
    missing: list[str] = []
    for line in _INCLUDE_LINE_RE.findall(original):
        stripped = line.strip()
        if stripped not in present and stripped not in missing:
            missing.append(stripped)
    if not missing:
        return refactored, False
    return "\n".join(missing) + "\n" + refactored.lstrip("\n"), True


def determine_main_file(files: list[GeneratedFile]) -> str | None:
    """``main.c`` if present, else the first ``.c`` file, else the first file."""
    if not files:
        return None
    names = [f.name for f in files]
    if "main.c" in names:
        return "main.c"
    for name in names:
        if name.endswith(".c"):
            return name
    return names[0]


# ---------------------------------------------------------------------------
# Per-action parsers
# ---------------------------------------------------------------------------


def parse_refactor(response: ProviderResponse, original_code: str) -> RefactorResult:
    structured = _structured(response)
    if structured is not None:
        code = str(structured.get("code", original_code))
        explanation = str(structured.get("explanation", ""))
        changes = [str(c) for c in structured.get("changes", [])]
    else:
        fenced = extract_code_block(response.text)
        code = fenced if fenced is not None else response.text.strip()
        explanation = _without_code_blocks(response.text) if fenced is not None else ""
        changes = _keyword_lines(explanation, _CHANGE_WORDS)
        if not code.strip():
            code = original_code
            explanation = explanation or "Provider returned no code; original kept."

    code, restored = restore_includes(original_code, code)
    if restored:
        changes.append(RESTORED_INCLUDES)
    return RefactorResult(
        refactored_code=code,
        explanation=explanation or "Code refactored.",
        changes=changes,
    )


def parse_diagnosis(response: ProviderResponse) -> DiagnosisResult:
    structured = _structured(response)
    if structured is not None:
        return DiagnosisResult(
            diagnosis=str(structured.get("diagnosis", "")),
            suggested_fix=str(structured.get("suggested_fix", "")),
            explanation=str(structured.get("explanation", "")),
        )
    fix = extract_code_block(response.text)
    prose = _without_code_blocks(response.text)
    if fix is None:
        fix_lines = _keyword_lines(prose, ("fix",))
        fix = "\n".join(fix_lines)
    return DiagnosisResult(
        diagnosis=prose or response.text.strip(),
        suggested_fix=fix,
        explanation=response.text.strip(),
    )


def _json_object(text: str) -> dict[str, Any] | None:
    candidate = extract_code_block(text) or text
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        data = json.loads(candidate[start : end + 1])
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def parse_generation(response: ProviderResponse) -> GenerationResult:
    data = _structured(response) or _json_object(response.text)
    files: list[GeneratedFile] = []
    main_file: str | None = None
    explanation = ""
    if data is not None:
        try:
            files = [GeneratedFile.model_validate(f) for f in data.get("files", [])]
        except (ValidationError, TypeError) as exc:
            logger.debug("generation payload has invalid files: %s", exc)
            files = []
        main_file = data.get("main_file") if isinstance(data.get("main_file"), str) else None
        explanation = str(data.get("explanation", ""))

    if not files:
        # Free-text answer: treat the code as a single main.c
        code = extract_code_block(response.text) or response.text.strip()
        files = [GeneratedFile(name="main.c", content=code, purpose="Main entry point")]
        explanation = explanation or _without_code_blocks(response.text)

    if main_file not in {f.name for f in files}:
        main_file = determine_main_file(files)
    return GenerationResult(
        files=files,
        main_file=main_file,
        explanation=explanation or "Project generated.",
    )


def parse_review(response: ProviderResponse) -> ReviewResult:
    structured = _structured(response)
    if structured is not None:
        return ReviewResult(
            review=str(structured.get("review", "")),
            suggestions=[str(s) for s in structured.get("suggestions", [])],
            issues=[str(i) for i in structured.get("issues", [])],
        )
    return ReviewResult(
        review=response.text.strip(),
        suggestions=_keyword_lines(response.text, _SUGGESTION_WORDS),
        issues=_keyword_lines(response.text, _ISSUE_WORDS),
    )
