"""Tests for the binding header -> public header transformation."""
import re

import pytest

from boundaryci.errors import TransformationError
from boundaryci.step_workflows.header import (
    DEFAULT_RULES,
    HeaderRewriteRule,
    check_public_header,
    transform_header,
)

RAW_HEADER = """\
#include <stdarg.h>
#include <stdbool.h>
#include <stdint.h>
#include <stdlib.h>

typedef struct SearchOptions {
  uint8_t flags[4];
  uint32_t max_depth;
} SearchOptions;

typedef void (*progress_cb)(const uint8_t *data, size_t len);

#ifdef __cplusplus
extern "C" {
#endif // __cplusplus

/**
 * Solve a pattern; the result must be released with solver_free.
 */
const char *solver_solve(const uint8_t (*kpuzzle_json)[1], const uint8_t (*moves)[2], uint8_t depth);

void solver_free(char *s);

uint8_t solver_version(void);

#ifdef __cplusplus
}  // extern "C"
#endif  // __cplusplus
"""

EXPECTED_SOLVE = (
    "const char *solver_solve(const char (*kpuzzle_json), const char (*moves), uint8_t depth);"
)


def _symbols(text: str) -> list[str]:
    return re.findall(r"(\w+)\s*\((?!\s*\*)", text)


class TestTransformHeader:
    """Rewrites applied to prototype parameter lists."""

    def test_byte_array_parameter_becomes_char_pointer(self):
        """A sized uint8_t array parameter decays to char*."""
        assert transform_header("foo(const uint8_t buf[8]);") == "foo(const char* buf);"

    def test_declaration_with_return_type(self):
        out = transform_header("void foo(const uint8_t buf[8], size_t len);\n")
        assert out == "void foo(const char* buf, size_t len);\n"

    def test_pointer_to_array_annotations_stripped(self):
        out = transform_header(RAW_HEADER)
        assert EXPECTED_SOLVE in out
        assert "[1]" not in out
        assert "[2]" not in out

    def test_scalar_byte_parameter_and_return_type_untouched(self):
        out = transform_header(RAW_HEADER)
        assert "uint8_t depth" in out
        assert "uint8_t solver_version(void);" in out

    def test_struct_fields_and_typedefs_untouched(self):
        out = transform_header(RAW_HEADER)
        assert "  uint8_t flags[4];\n" in out
        assert "typedef void (*progress_cb)(const uint8_t *data, size_t len);" in out

    def test_only_prototype_lines_change(self):
        out = transform_header(RAW_HEADER)
        raw_lines = RAW_HEADER.splitlines()
        out_lines = out.splitlines()
        assert len(raw_lines) == len(out_lines)
        changed = [o for r, o in zip(raw_lines, out_lines) if r != o]
        assert changed == [EXPECTED_SOLVE]

    def test_symbol_names_and_order_preserved(self):
        assert _symbols(transform_header(RAW_HEADER)) == _symbols(RAW_HEADER)

    def test_plain_char_pointer_untouched(self):
        text = "void solver_free(char *s);\n"
        assert transform_header(text) == text

    def test_function_pointer_parameter_left_as_generated(self):
        text = "void solver_on_progress(void (*cb)(const uint8_t *data, size_t len));\n"
        assert transform_header(text) == text

    def test_prototypes_outside_extern_block(self):
        text = "int solver_count(const uint8_t *moves, size_t n);\n"
        assert transform_header(text) == "int solver_count(const char *moves, size_t n);\n"

    def test_inline_definition_not_rewritten(self):
        text = "static inline int peek(const uint8_t buf[2]) { return buf[0]; }\n"
        assert transform_header(text) == text

    def test_custom_byte_type(self):
        out = transform_header("void f(const unsigned char *p);", byte_type="unsigned char")
        assert out == "void f(const char *p);"


class TestIdempotence:
    """Applying the transformation twice equals applying it once."""

    @pytest.mark.parametrize(
        "header",
        [
            RAW_HEADER,
            "foo(const uint8_t buf[8]);",
            "void a(uint8_t x);\nvoid b(const uint8_t (*p)[2], uint8_t *q);\n",
            "",
            "#define SOLVER_VERSION 3\n",
        ],
    )
    def test_second_application_is_noop(self, header):
        once = transform_header(header)
        assert transform_header(once) == once

    def test_rules_are_idempotent(self):
        text = "const uint8_t (*moves)[2], const uint8_t (*json)[1]"
        for rule in DEFAULT_RULES:
            once = rule.apply(text)
            assert rule.apply(once) == once


class TestTransformErrors:
    """Unexpected shapes are rejected instead of silently passed through."""

    def test_unsupported_pointer_to_array_size(self):
        with pytest.raises(TransformationError, match="unsupported array parameter shape"):
            transform_header("void f(const uint8_t (*p)[4]);")

    def test_multidimensional_array_parameter(self):
        with pytest.raises(TransformationError):
            transform_header("void f(int grid[2][3]);")

    def test_unbalanced_parentheses(self):
        with pytest.raises(TransformationError, match="unbalanced"):
            transform_header("void f(int x;\n")

    def test_error_reports_line(self):
        with pytest.raises(TransformationError) as exc:
            transform_header("\n\nvoid f(const uint8_t (*p)[4]);")
        assert exc.value.line == 3

    def test_check_public_header_flags_leftover_brackets(self):
        with pytest.raises(TransformationError, match="bracketed array annotation"):
            check_public_header("void f(int x[3]);")

    def test_custom_rule_that_leaves_brackets_fails_postcondition(self):
        rules = (HeaderRewriteRule("noop", r"$^", ""),)
        with pytest.raises(TransformationError):
            transform_header("void f(const uint8_t (*p)[2]);", rules)
