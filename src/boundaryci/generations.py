# generations.py
from __future__ import annotations

import json
import time
import uuid
from pathlib import Path
from typing import Dict, Optional

from .errors import FileSystemError

# ---------------------------------------------------------------------
# Build generations
# ---------------------------------------------------------------------
# Every runner invocation gets a fresh generation id. After a step
# completes, the ledger records:
#
#   step name -> generation id that last produced its outputs
#
# Conformance targets compare the generation of each artifact producer
# against the current run so that one verification never mixes outputs
# of two different build invocations.
#
# The ledger lives outside every step-owned directory so packaged output
# stays byte-identical between builds.
# ---------------------------------------------------------------------

DEFAULT_LEDGER = ".boundaryci/generations.json"


def new_generation() -> str:
    return f"{time.strftime('%Y%m%dT%H%M%S', time.gmtime())}-{uuid.uuid4().hex[:8]}"


class GenerationLedger:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise FileSystemError(None, str(self.path), f"unreadable generation ledger: {e}")
        if not isinstance(data, dict):
            raise FileSystemError(None, str(self.path), "generation ledger must be a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def get(self, step: str) -> Optional[str]:
        return self._load().get(step)

    def stamp(self, step: str, generation: str) -> None:
        data = self._load()
        data[step] = generation
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            raise FileSystemError(step, str(self.path), f"could not write generation ledger: {e}")

    def forget(self, step: str) -> None:
        """Drop a step's stamp (its outputs were just wiped)."""
        data = self._load()
        if step in data:
            del data[step]
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
            except OSError as e:
                raise FileSystemError(step, str(self.path), f"could not write generation ledger: {e}")
