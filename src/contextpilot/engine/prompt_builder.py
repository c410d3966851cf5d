"""Prompt construction from an ``AIContextSnapshot``.

Each action gets a static system instruction and a user payload assembled
from a required task section plus optional context: source lines around
the cursor, known function signatures and recent interactions. When the
payload exceeds ``PromptConfig.max_chars`` the optional context is dropped
in a fixed order (oldest interactions, then the least relevant signatures,
then the source lines farthest from the cursor) and, as a last resort, the
task section is cut. Identical inputs always produce identical output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from dataclasses import field

from contextpilot.config import PromptConfig
from contextpilot.memory.schemas import AIContextSnapshot
from contextpilot.memory.schemas import AIInteraction
from contextpilot.memory.schemas import CursorPosition
from contextpilot.memory.schemas import FunctionFact
from contextpilot.providers.base import PromptAction
from contextpilot.providers.base import PromptPayload

_TRUNCATION_MARK = "\n...[truncated]"
_IDENTIFIER_TAIL_RE = re.compile(r"[A-Za-z_]\w*$")
_WORD_RE = re.compile(r"[A-Za-z_]\w*")
_ERROR_LINE_RE = re.compile(r":(\d+)(?::\d+)?:")

# ---------------------------------------------------------------------------
# System instructions
# ---------------------------------------------------------------------------

_LANGUAGE_NOTE = (
    "The project is written in C. Supported features include integer "
    "arithmetic, local variables, if/while/for control flow, function "
    "definitions and calls, the basic types (int, char, float, double, "
    "void) and preprocessor directives."
)

SYSTEM_PROMPTS: dict[PromptAction, str] = {
    PromptAction.completion: (
        "You are an expert C programming assistant embedded in a code editor. "
        "Suggest completions for the cursor position using the surrounding "
        "code and the project's known functions. Return one candidate per "
        "line, most likely first, with no explanations and no markdown.\n\n"
        + _LANGUAGE_NOTE
    ),
    PromptAction.refactor: (
        "You are an expert C programmer specializing in refactoring. Improve "
        "readability, structure and robustness while keeping behavior "
        "identical. Return the complete refactored code in a single ```c "
        "block followed by a short explanation of the changes.\n\n"
        + _LANGUAGE_NOTE
    ),
    PromptAction.diagnosis: (
        "You are an expert C programming assistant specializing in compiler "
        "error diagnosis. Explain the cause of the error, then give the "
        "corrected code in a single ```c block.\n\n" + _LANGUAGE_NOTE
    ),
    PromptAction.generation: (
        "You are an expert C project architect. Generate a small, compilable "
        "project for the request. Respond with a single JSON object: "
        '{"files": [{"name": "main.c", "purpose": "...", "content": "..."}], '
        '"main_file": "main.c", "explanation": "..."} and nothing else.\n\n'
        + _LANGUAGE_NOTE
    ),
    PromptAction.review: (
        "You are an expert C code reviewer. Report issues (bugs, undefined "
        "behavior, missing includes or returns) and concrete suggestions. "
        "Prefix issue lines with 'issue:' and suggestion lines with "
        "'suggestion:'.\n\n" + _LANGUAGE_NOTE
    ),
}


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


@dataclass
class _Sections:
    task: str
    source_title: str = ""
    # (line number, rendered text, distance from focus line)
    source_lines: list[tuple[int, str, int]] = field(default_factory=list)
    signatures: list[str] = field(default_factory=list)
    interactions: list[str] = field(default_factory=list)

    def render(self) -> str:
        parts = [f"## Task\n{self.task}"]
        if self.source_lines:
            body = "\n".join(text for _, text, _ in sorted(self.source_lines))
            parts.append(f"## {self.source_title}\n{body}")
        if self.signatures:
            parts.append("## Known functions\n" + "\n".join(self.signatures))
        if self.interactions:
            parts.append("## Recent interactions\n" + "\n".join(self.interactions))
        return "\n\n".join(parts)

    def drop_one(self) -> bool:
        """Remove the next optional item; False when nothing is left."""
        if self.interactions:
            del self.interactions[0]
            return True
        if self.signatures:
            del self.signatures[-1]
            return True
        if self.source_lines:
            farthest = max(self.source_lines, key=lambda item: (item[2], item[0]))
            self.source_lines.remove(farthest)
            return True
        return False


def _fit(sections: _Sections, max_chars: int) -> tuple[str, bool]:
    text = sections.render()
    truncated = False
    while len(text) > max_chars and sections.drop_one():
        truncated = True
        text = sections.render()
    if len(text) > max_chars:
        truncated = True
        keep = max(max_chars - len(_TRUNCATION_MARK), 0)
        text = text[:keep] + _TRUNCATION_MARK
    return text, truncated


def _clip(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: max(limit - 3, 0)] + "..."


def _code_block(code: str) -> str:
    return f"```c\n{code.rstrip()}\n```"


class PromptContextBuilder:
    """Derive bounded provider prompts from memory snapshots."""

    def __init__(self, config: PromptConfig | None = None) -> None:
        self.config = config or PromptConfig()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def build_completion(
        self,
        snapshot: AIContextSnapshot,
        cursor: CursorPosition | None = None,
        selection: str | None = None,
    ) -> PromptPayload:
        cursor = cursor or snapshot.context.cursor
        selection = snapshot.context.selected_text if selection is None else selection
        current = snapshot.current_file
        path = current.path if current else "(unsaved buffer)"

        task = [
            f"Complete the code in {path} at line {cursor.line}, column {cursor.column}."
        ]
        if selection:
            task.append(f"Selected text:\n{_code_block(selection)}")
        sections = _Sections(task="\n".join(task))
        if current:
            sections.source_title = f"Code around cursor ({current.path})"
            sections.source_lines = self._window(current.content, cursor.line)
        sections.signatures = self._signatures(snapshot, names=None)
        sections.interactions = self._interactions(snapshot.recent_interactions)

        user, truncated = _fit(sections, self.config.max_chars)
        return PromptPayload(
            action=PromptAction.completion,
            system=SYSTEM_PROMPTS[PromptAction.completion],
            user=user,
            subject=selection,
            hints={
                "prefix": self._prefix_at(current.content if current else "", cursor),
                "symbols": self._symbols(snapshot),
                "file": current.path if current else None,
            },
            truncated=truncated,
        )

    def build_refactor(
        self,
        snapshot: AIContextSnapshot,
        code: str,
        intent: str = "",
    ) -> PromptPayload:
        task = [f"Refactor the following code:\n{_code_block(code)}"]
        task.append(f"Refactoring goal: {intent.strip() or 'general cleanup'}")
        sections = _Sections(task="\n\n".join(task))
        sections.signatures = self._signatures(snapshot, names=self._words(code))
        sections.interactions = self._interactions(snapshot.recent_interactions)
        user, truncated = _fit(sections, self.config.max_chars)
        return PromptPayload(
            action=PromptAction.refactor,
            system=SYSTEM_PROMPTS[PromptAction.refactor],
            user=user,
            subject=code,
            hints={"intent": intent},
            truncated=truncated,
        )

    def build_diagnosis(
        self,
        snapshot: AIContextSnapshot,
        error_message: str,
        code: str,
    ) -> PromptPayload:
        task = [f"Compilation error:\n{error_message.strip()}"]
        if code.strip():
            task.append(f"Code:\n{_code_block(code)}")
        sections = _Sections(task="\n\n".join(task))
        current = snapshot.current_file
        line_match = _ERROR_LINE_RE.search(error_message)
        if current and line_match:
            sections.source_title = f"Code near the error ({current.path})"
            sections.source_lines = self._window(current.content, int(line_match.group(1)))
        sections.signatures = self._signatures(
            snapshot, names=self._words(code) | self._words(error_message)
        )
        sections.interactions = self._interactions(snapshot.recent_interactions)
        user, truncated = _fit(sections, self.config.max_chars)
        return PromptPayload(
            action=PromptAction.diagnosis,
            system=SYSTEM_PROMPTS[PromptAction.diagnosis],
            user=user,
            subject=code,
            hints={"error_message": error_message},
            truncated=truncated,
        )

    def build_generation(
        self,
        snapshot: AIContextSnapshot,
        prompt_text: str,
    ) -> PromptPayload:
        task = f"Requirements: {prompt_text.strip()}"
        if snapshot.project_files:
            task += "\n\nExisting project files: " + ", ".join(snapshot.project_files)
        sections = _Sections(task=task)
        sections.signatures = self._signatures(snapshot, names=None)
        sections.interactions = self._interactions(snapshot.recent_interactions)
        user, truncated = _fit(sections, self.config.max_chars)
        return PromptPayload(
            action=PromptAction.generation,
            system=SYSTEM_PROMPTS[PromptAction.generation],
            user=user,
            subject=prompt_text,
            truncated=truncated,
        )

    def build_review(
        self,
        snapshot: AIContextSnapshot,
        code: str,
        focus_areas: list[str] | None = None,
    ) -> PromptPayload:
        focus = ", ".join(focus_areas or []) or "general quality"
        sections = _Sections(
            task=f"Review the following code:\n{_code_block(code)}\n\nFocus areas: {focus}"
        )
        sections.signatures = self._signatures(snapshot, names=self._words(code))
        sections.interactions = self._interactions(snapshot.recent_interactions)
        user, truncated = _fit(sections, self.config.max_chars)
        return PromptPayload(
            action=PromptAction.review,
            system=SYSTEM_PROMPTS[PromptAction.review],
            user=user,
            subject=code,
            hints={"focus_areas": list(focus_areas or [])},
            truncated=truncated,
        )

    # ------------------------------------------------------------------
    # Context pieces
    # ------------------------------------------------------------------

    def _window(self, content: str, focus_line: int) -> list[tuple[int, str, int]]:
        lines = content.splitlines()
        if not lines:
            return []
        focus = min(max(focus_line, 1), len(lines))
        radius = self.config.window_lines
        first = max(focus - radius, 1)
        last = min(focus + radius, len(lines))
        width = len(str(last))
        window = []
        for number in range(first, last + 1):
            marker = ">>" if number == focus else "  "
            text = f"{marker} {number:>{width}} | {lines[number - 1]}"
            window.append((number, text, abs(number - focus)))
        return window

    def _signatures(
        self,
        snapshot: AIContextSnapshot,
        names: set[str] | None,
    ) -> list[str]:
        current = snapshot.current_file.path if snapshot.current_file else None
        ranked: list[tuple[bool, str, int, FunctionFact]] = []
        for path, facts in snapshot.index.items():
            for fn in facts.functions:
                if names is not None and fn.name not in names:
                    continue
                ranked.append((path != current, path, fn.line, fn))
        ranked.sort(key=lambda item: item[:3])
        return [
            f"- {fn.return_type} {fn.name}() [{path}:{line}]"
            for _, path, line, fn in ranked[: self.config.max_signatures]
        ]

    def _interactions(self, interactions: list[AIInteraction]) -> list[str]:
        limit = self.config.max_history_chars
        return [
            f"- [{item.type.value}] {_clip(item.prompt, limit)} => "
            f"{_clip(item.response, limit)}"
            for item in interactions
        ]

    def _symbols(self, snapshot: AIContextSnapshot) -> list[dict[str, str]]:
        current = snapshot.current_file.path if snapshot.current_file else None
        paths = sorted(snapshot.index, key=lambda p: (p != current, p))
        symbols: list[dict[str, str]] = []
        for path in paths:
            facts = snapshot.index[path]
            symbols.extend({"name": f.name, "kind": "function"} for f in facts.functions)
            symbols.extend({"name": v.name, "kind": "variable"} for v in facts.variables)
        return symbols[: self.config.max_signatures * 2]

    @staticmethod
    def _prefix_at(content: str, cursor: CursorPosition) -> str:
        lines = content.splitlines()
        if cursor.line < 1 or cursor.line > len(lines):
            return ""
        before = lines[cursor.line - 1][: max(cursor.column - 1, 0)]
        match = _IDENTIFIER_TAIL_RE.search(before)
        return match.group(0) if match else ""

    @staticmethod
    def _words(text: str) -> set[str]:
        return set(_WORD_RE.findall(text))
