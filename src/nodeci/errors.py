# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - the failure report
      - debugging without full tracebacks
    """
    kind: str
    stage: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"stage={self.stage}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(Exception):
    stage: str
    step: str
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.stage}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


class ArtifactNotFound(Exception):
    """Raised when a stage downloads an artifact no stage uploaded in this run."""


class ArtifactConflict(Exception):
    """Raised on a second upload of the same artifact name within a run."""


class CacheCommandError(Exception):
    """Raised when the cache-management CLI exits non-zero."""


TOOL_HINTS = {
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "gh": "Install the GitHub CLI (https://cli.github.com) and make sure GH_TOKEN is set.",
    "git": "Install Git or fix PATH.",
}
