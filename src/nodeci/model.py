# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .conditions import Condition, OnSuccess


class StageStatus(str, Enum):
    """Terminal outcome of a stage (or a step) for one run."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Step:
    """
    A single unit inside a stage.

    Exactly one of `run` (shell command) or `uses` (python action) is set.
    Actions receive a StepContext and may return a dict of string outputs.
    """
    name: str
    run: str | None = None
    uses: Optional[Callable[..., Any]] = None
    id: str | None = None
    with_: Dict[str, Any] = field(default_factory=dict)
    if_: Condition = field(default_factory=OnSuccess)
    cwd: str | None = None
    env: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if (self.run is None) == (self.uses is None):
            raise ValueError(f"step {self.name!r} needs exactly one of run= or uses=")

    @property
    def kind(self) -> str:
        return "run" if self.run is not None else "uses"


@dataclass
class Stage:
    """
    An independently scheduled unit: ordered steps + dependencies + run condition.

    `outputs` exports step outputs at stage level, e.g.
    {"cache-hit": "cache.cache-hit"}.
    """
    name: str
    steps: List[Step]
    needs: List[str] = field(default_factory=list)
    if_: Condition = field(default_factory=OnSuccess)
    env: Dict[str, str] = field(default_factory=dict)
    outputs: Dict[str, str] = field(default_factory=dict)


@dataclass
class StepResult:
    name: str
    status: StageStatus
    id: str | None = None
    outputs: Dict[str, str] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "id": self.id,
            "status": self.status.value,
            "outputs": dict(self.outputs),
            "error": self.error,
        }


@dataclass
class StageResult:
    name: str
    status: StageStatus
    steps: List[StepResult] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)
    error: str | None = None
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "outputs": dict(self.outputs),
            "error": self.error,
            "steps": [s.to_dict() for s in self.steps],
            "duration": self.duration,
        }


MASK = "***"


@dataclass
class RunContext:
    """Everything a run knows about itself: identity, trigger, environment inputs."""
    run_id: str
    repository: str
    ref_name: str
    sha: str | None = None
    event: str = "push"
    token: str | None = None
    node_version: str = "18"
    os_name: str = "Linux"
    default_branch: str = "main"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "event": self.event,
            "repository": self.repository,
            "ref": f"refs/heads/{self.ref_name}",
            "ref_name": self.ref_name,
            "sha": self.sha,
            "token": MASK if self.token else None,
            "node_version": self.node_version,
            "os": self.os_name,
            "default_branch": self.default_branch,
        }
