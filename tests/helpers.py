import shlex
import sys


def py(code: str) -> str:
    """Shell command running `code` with the current interpreter."""
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"


def touch(path: str) -> str:
    """Shell command creating `path` (and its parents)."""
    return py(
        "import pathlib; "
        f"p = pathlib.Path({path!r}); "
        "p.parent.mkdir(parents=True, exist_ok=True); "
        "p.write_text('x')"
    )
