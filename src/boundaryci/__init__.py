from .dsl import action, artifact, sh, step, test_target, wf
from .model import Artifact, ArtifactKind, Boundary, BuildStep, Command, TestTarget
from .runner import run_target

__all__ = [
    "action",
    "artifact",
    "sh",
    "step",
    "test_target",
    "wf",
    "run_target",
    "Artifact",
    "ArtifactKind",
    "Boundary",
    "BuildStep",
    "Command",
    "TestTarget",
]
