"""Unit tests for pattern-based structural fact extraction."""

from __future__ import annotations

from contextpilot.memory.extraction import extract_facts
from contextpilot.memory.extraction import extract_functions
from contextpilot.memory.extraction import extract_imports
from contextpilot.memory.extraction import extract_variables
from contextpilot.memory.schemas import FunctionFact


class TestExtractFunctions:
    def test_single_line_definition(self):
        facts = extract_functions("int add(int a, int b) { return a + b; }")
        assert facts == [FunctionFact(return_type="int", name="add", line=1)]

    def test_line_numbers_are_one_based(self, main_c):
        names = {f.name: f.line for f in extract_functions(main_c)}
        assert names == {"add": 5, "main": 9}

    def test_control_flow_is_not_a_function(self):
        code = "void f(void) {\n    if (x) {\n    }\n    while (y) {\n    }\n}\n"
        assert [f.name for f in extract_functions(code)] == ["f"]

    def test_else_if_is_not_a_function(self):
        code = "int f(int x) {\n    if (x) {\n    } else if (x > 1) {\n    }\n}\n"
        assert [f.name for f in extract_functions(code)] == ["f"]

    def test_pointer_return_type(self):
        facts = extract_functions("char *name(void) {\n}\n")
        assert facts == [FunctionFact(return_type="char", name="name", line=1)]

    def test_prototype_without_body_is_skipped(self):
        assert extract_functions("int add(int a, int b);\n") == []


class TestExtractVariables:
    def test_declarations_with_and_without_initializer(self):
        facts = extract_variables("int x = 5;\nchar c;\n")
        assert [(v.type, v.name, v.line) for v in facts] == [
            ("int", "x", 1),
            ("char", "c", 2),
        ]

    def test_return_statement_is_not_a_declaration(self):
        assert extract_variables("return value;\n") == []


class TestExtractImports:
    def test_angle_and_quoted_headers(self):
        facts = extract_imports('#include <stdio.h>\n#include "util.h"\n')
        assert [(i.header, i.line) for i in facts] == [("stdio.h", 1), ("util.h", 2)]

    def test_spacing_variants(self):
        assert [i.header for i in extract_imports("#  include<stdlib.h>")] == ["stdlib.h"]


class TestExtractFacts:
    def test_scenario_main_c(self, main_c):
        facts = extract_facts(main_c)
        assert facts.import_names == ["stdio.h"]
        assert "main" in [f.name for f in facts.functions]
        assert ("int", "counter") in [(v.type, v.name) for v in facts.variables]

    def test_partial_source_yields_fewer_facts_not_errors(self):
        facts = extract_facts("int main( {\n  pri")
        assert facts.functions == []

    def test_empty_text(self):
        facts = extract_facts("")
        assert facts.functions == []
        assert facts.variables == []
        assert facts.imports == []

    def test_deterministic(self, main_c):
        assert extract_facts(main_c) == extract_facts(main_c)
