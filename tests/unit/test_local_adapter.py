"""Unit tests for the offline provider and its deterministic transforms."""

from __future__ import annotations

import json

import pytest

from contextpilot.providers.base import CompletionOptions
from contextpilot.providers.base import PromptAction
from contextpilot.providers.base import PromptPayload
from contextpilot.providers.local import apply_best_practices
from contextpilot.providers.local import diagnose
from contextpilot.providers.local import fix_braces
from contextpilot.providers.local import fix_spacing
from contextpilot.providers.local import generate_files
from contextpilot.providers.local import LocalAdapter
from contextpilot.providers.local import normalize_whitespace
from contextpilot.providers.local import refactor_code
from contextpilot.providers.local import review_code

MESSY = "int main()\n{\n\tif(x){\n\t\tfoo(a,b);\n\t}\n}\n"


def _make_prompt(action: PromptAction, subject: str = "", **hints) -> PromptPayload:
    return PromptPayload(
        action=action, system="s", user="u", subject=subject, hints=hints
    )


class TestTransforms:
    def test_refactor_pipeline(self):
        code, changes = refactor_code(MESSY)

        assert code == (
            "int main(void) {\n"
            "    if (x) {\n"
            "        foo(a, b);\n"
            "    }\n"
            "    return 0;\n"
            "}\n"
        )
        assert len(changes) == 4

    def test_clean_code_reports_no_changes(self):
        clean = "int main(void) {\n    return 0;\n}\n"
        assert refactor_code(clean) == (clean, [])

    def test_spacing_leaves_literals_alone(self):
        assert fix_spacing('printf("a,b",x);') == 'printf("a,b", x);'

    def test_spacing_leaves_preprocessor_lines_alone(self):
        assert fix_spacing("#define MAX(a,b) a") == "#define MAX(a,b) a"

    def test_whitespace_collapses_blank_runs(self):
        assert normalize_whitespace("a;  \n\n\n\nb;\r\n") == "a;\n\nb;\n"

    def test_existing_return_is_kept(self):
        code = "int main(void) {\n    return 1;\n}\n"
        assert apply_best_practices(code) == code

    @pytest.mark.parametrize(
        "statement",
        [
            r'printf("}\n");',
            "putchar('}');",
            "/* } */ puts(\"x\");",
            "puts(\"{\"); // }",
        ],
    )
    def test_return_lands_after_braces_in_literals(self, statement):
        code = "int main() {\n    " + statement + "\n}\n"

        assert apply_best_practices(code) == (
            "int main(void) {\n    " + statement + "\n    return 0;\n}\n"
        )

    def test_return_in_comment_does_not_count(self):
        code = "int main(void) {\n    /* return later */\n}\n"
        assert apply_best_practices(code).endswith("    return 0;\n}\n")

    def test_unterminated_literal_leaves_main_body_alone(self):
        code = "int main() {\n    printf(\"}\n}\n"
        assert apply_best_practices(code) == code.replace("main()", "main(void)")

    def test_tabs_inside_literals_are_kept(self):
        code = "\tputs(\"a\tb\");\n"
        assert normalize_whitespace(code) == "    puts(\"a\tb\");\n"

    def test_braces_inside_literals_and_comments_are_kept(self):
        code = "puts(\"f(){\");\n// see f()\n{\n}\nif (x){\n}\n"
        assert fix_braces(code) == (
            "puts(\"f(){\");\n// see f()\n{\n}\nif (x) {\n}\n"
        )


class TestRules:
    def test_missing_semicolon_with_line(self):
        diagnosis, fix = diagnose("main.c:3:5: error: expected ';' before '}' token")
        assert diagnosis.startswith("A statement is missing its terminating semicolon")
        assert diagnosis.endswith("(reported at line 3)")
        assert "';'" in fix

    def test_unknown_error(self):
        diagnosis, _ = diagnose("something odd happened")
        assert diagnosis == "Unable to analyze error automatically."

    def test_calculator_template(self):
        result = generate_files("Build a Calculator please")
        assert result["main_file"] == "main.c"
        assert "switch (operation)" in result["files"][0]["content"]

    def test_hello_template(self):
        result = generate_files("something")
        assert 'printf("Hello, World!\\n");' in result["files"][0]["content"]

    def test_review_checks(self):
        result = review_code('int main() {\n    printf("x");\n}\n')
        assert result["issues"] == [
            "Missing header includes",
            "Missing return statement in main function",
            "Using printf without including stdio.h",
        ]
        assert len(result["suggestions"]) == 3


class TestLocalAdapter:
    async def test_completion_prefers_project_symbols(self):
        prompt = _make_prompt(
            PromptAction.completion,
            prefix="ad",
            symbols=[{"name": "add", "kind": "function"}],
        )

        response = await LocalAdapter().complete(prompt, CompletionOptions())

        assert response.text == "add()"
        assert [(s.label, s.insert_text, s.confidence) for s in response.suggestions] == [
            ("add", "add()", 0.6)
        ]

    async def test_completion_falls_back_to_library_functions(self):
        prompt = _make_prompt(PromptAction.completion, prefix="pr", symbols=[])
        response = await LocalAdapter().complete(prompt, CompletionOptions())
        assert [s.label for s in response.suggestions] == ["printf"]

    async def test_completion_without_prefix_is_capped(self):
        prompt = _make_prompt(PromptAction.completion)
        response = await LocalAdapter().complete(prompt, CompletionOptions())
        assert len(response.suggestions) == 5

    async def test_refactor_structured_payload(self):
        response = await LocalAdapter().complete(
            _make_prompt(PromptAction.refactor, MESSY), CompletionOptions()
        )
        structured = response.raw["structured"]
        assert structured["code"].startswith("int main(void) {")
        assert len(structured["changes"]) == 4
        assert response.provider == "local"

    async def test_empty_refactor(self):
        response = await LocalAdapter().complete(
            _make_prompt(PromptAction.refactor, "   "), CompletionOptions()
        )
        assert response.raw["structured"]["changes"] == []

    async def test_diagnosis_reads_error_hint(self):
        prompt = _make_prompt(
            PromptAction.diagnosis, "int x", error_message="error: 'y' undeclared"
        )
        response = await LocalAdapter().complete(prompt, CompletionOptions())
        assert response.raw["structured"]["diagnosis"] == "Undeclared variable or function used."

    async def test_generation_text_is_json(self):
        response = await LocalAdapter().complete(
            _make_prompt(PromptAction.generation, "hello"), CompletionOptions()
        )
        assert json.loads(response.text)["main_file"] == "main.c"

    async def test_review(self):
        response = await LocalAdapter().complete(
            _make_prompt(PromptAction.review, "#include <stdio.h>\nint main(void) {\n    return 0;\n}\n"),
            CompletionOptions(),
        )
        assert response.raw["structured"]["issues"] == []
