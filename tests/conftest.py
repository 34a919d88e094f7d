from pathlib import Path

import pytest

from boundaryci.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def fresh_console():
    """Each test gets its own non-debug console."""
    console = Console()
    set_console(console)
    yield console


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root
