# step_workflows/header.py
"""
Normalize a cbindgen-generated C header into the public header.

Only the parameter lists of top-level function prototypes are rewritten.
Typedefs, struct bodies, comments and preprocessor lines pass through
byte for byte.

Rewrites, in order, per parameter list:
  1. strip `[2]` from pointer-to-array parameters: `T (*p)[2]` -> `T (*p)`
  2. strip `[1]` likewise
  3. sized array parameters decay to pointers: `T p[N]` -> `T* p`
  4. byte-buffer parameters (pointer to uint8_t) become pointer to char
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from ..errors import TransformationError


@dataclass(frozen=True)
class HeaderRewriteRule:
    """An ordered (pattern, replacement) pair; must be idempotent."""
    name: str
    pattern: str
    replacement: str

    def apply(self, text: str) -> str:
        return re.sub(self.pattern, self.replacement, text)


DEFAULT_RULES: Tuple[HeaderRewriteRule, ...] = (
    HeaderRewriteRule("strip-array-2", r"(\(\s*\*\s*\w+\s*\))\s*\[\s*2\s*\]", r"\1"),
    HeaderRewriteRule("strip-array-1", r"(\(\s*\*\s*\w+\s*\))\s*\[\s*1\s*\]", r"\1"),
)

BYTE_TYPE = "uint8_t"
CHAR_TYPE = "char"

_IDENT_TAIL = re.compile(r"\w$")
_TYPEDEF = re.compile(r"^\s*typedef\b")
_EXTERN_C_BLOCK = re.compile(r'extern\s+"C"\s*$')
_ARRAY_PARAM = re.compile(r"^(?P<head>.*?)(?P<name>\b\w+)\s*\[\s*(?P<size>\w*)\s*\]$", re.S)
_SURROUNDING_WS = re.compile(r"^(\s*)(.*?)(\s*)$", re.S)


def _line_of(text: str, pos: int) -> int:
    return text.count("\n", 0, pos) + 1


def _skip_noise(text: str, i: int) -> int:
    """If a comment, string or preprocessor line starts at i, return the index after it."""
    if text.startswith("/*", i):
        end = text.find("*/", i + 2)
        if end < 0:
            raise TransformationError("unterminated block comment", line=_line_of(text, i))
        return end + 2
    if text.startswith("//", i):
        end = text.find("\n", i)
        return len(text) if end < 0 else end
    if text[i] == '"':
        j = i + 1
        while j < len(text) and text[j] != '"':
            j += 2 if text[j] == "\\" else 1
        return j + 1
    if text[i] == "#":
        line_start = text.rfind("\n", 0, i) + 1
        if text[line_start:i].strip() == "":
            j = i
            while True:
                end = text.find("\n", j)
                if end < 0:
                    return len(text)
                if text[end - 1] != "\\":
                    return end
                j = end + 1
    return i


def _matching_paren(text: str, open_idx: int) -> int:
    depth = 0
    i = open_idx
    while i < len(text):
        nxt = _skip_noise(text, i)
        if nxt != i:
            i = nxt
            continue
        ch = text[i]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        elif ch in "{};":
            break
        i += 1
    raise TransformationError(
        "unbalanced parentheses in declaration",
        line=_line_of(text, open_idx),
        snippet=text[open_idx:open_idx + 60],
    )


def _prototype_param_spans(text: str) -> Iterator[Tuple[int, int]]:
    """Yield (start, end) of the parameter list of every top-level function prototype."""
    braces: List[bool] = []  # True for an `extern "C" {` block, which stays top level
    stmt_start = 0
    i = 0
    while i < len(text):
        nxt = _skip_noise(text, i)
        if nxt != i:
            if text[i] == "#" or not text[stmt_start:i].strip():
                stmt_start = nxt
            i = nxt
            continue

        ch = text[i]
        top_level = all(braces)
        if ch == "{":
            braces.append(top_level and bool(_EXTERN_C_BLOCK.search(text[stmt_start:i])))
            stmt_start = i + 1
        elif ch == "}":
            if braces:
                braces.pop()
            stmt_start = i + 1
        elif ch == ";":
            stmt_start = i + 1
        elif ch == "(" and top_level:
            close = _matching_paren(text, i)
            after = text[close + 1:].lstrip()
            before = text[stmt_start:i].rstrip()
            if (
                after.startswith(";")
                and _IDENT_TAIL.search(before)
                and not _TYPEDEF.match(text[stmt_start:i])
            ):
                yield i + 1, close
            i = close + 1
            continue
        i += 1


def _split_params(params: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current = 0
    for idx, ch in enumerate(params):
        if ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append(params[current:idx])
            current = idx + 1
    parts.append(params[current:])
    return parts


def _rewrite_param(param: str, line: int, byte_type: str, char_type: str) -> str:
    lead, core, trail = _SURROUNDING_WS.match(param).groups()
    if core in ("", "void", "..."):
        return param
    if ")(" in core.replace(" ", ""):
        # function pointer parameter: left as generated
        return param

    m = _ARRAY_PARAM.match(core)
    if m:
        head = m.group("head").rstrip()
        if not head:
            raise TransformationError("array parameter without a type", line=line, snippet=core)
        core = f"{head}* {m.group('name')}"

    if "[" in core or "]" in core:
        raise TransformationError("unsupported array parameter shape", line=line, snippet=core)

    if "*" in core:
        core = re.sub(rf"\b{re.escape(byte_type)}\b", char_type, core)

    return f"{lead}{core}{trail}"


def _rewrite_param_list(
    params: str,
    line: int,
    rules: Tuple[HeaderRewriteRule, ...],
    byte_type: str,
    char_type: str,
) -> str:
    for rule in rules:
        params = rule.apply(params)
    return ",".join(_rewrite_param(p, line, byte_type, char_type) for p in _split_params(params))


def check_public_header(text: str) -> None:
    """Raise TransformationError if any prototype still carries a bracket annotation."""
    for start, end in _prototype_param_spans(text):
        if "[" in text[start:end]:
            raise TransformationError(
                "bracketed array annotation left in public header",
                line=_line_of(text, start),
                snippet=text[start:end].strip(),
            )


def transform_header(
    text: str,
    rules: Tuple[HeaderRewriteRule, ...] = DEFAULT_RULES,
    *,
    byte_type: str = BYTE_TYPE,
    char_type: str = CHAR_TYPE,
) -> str:
    """Raw binding header -> public header. Pure and idempotent."""
    out: List[str] = []
    last = 0
    for start, end in _prototype_param_spans(text):
        out.append(text[last:start])
        out.append(
            _rewrite_param_list(text[start:end], _line_of(text, start), rules, byte_type, char_type)
        )
        last = end
    out.append(text[last:])

    result = "".join(out)
    check_public_header(result)
    return result
