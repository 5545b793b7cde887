"""Console output formatting utilities for nodeci."""

from __future__ import annotations

import json
import sys
import threading
from typing import Any, Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # stages run on worker threads; keep multi-line blocks together
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_run_started(
        self,
        repository: str,
        workflow: str,
        ref: str,
        stage_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Repository: {repository}",
            f"Workflow: {workflow}",
            f"Ref: {ref}",
            f"Stages: {stage_count}",
            "",
        )

    def print_stage_start(self, name: str) -> None:
        self._emit(f"\nSTAGE STARTED: {name}")

    def print_stage_skipped(self, name: str, condition: str) -> None:
        self._emit(f"\nSTAGE SKIPPED: {name} (condition {condition} is false)")

    def print_stage_done(self, name: str, status: str) -> None:
        self._emit(f"[{name}] STATUS: {status}")

    def print_step(self, stage: str, name: str) -> None:
        """Print step start message."""
        self._emit(f"[{stage}] STEP: {name}")

    def print_step_skipped(self, stage: str, name: str, condition: str) -> None:
        self._emit(f"[{stage}] STEP SKIPPED: {name} ({condition})")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Step name (prefixed with its stage)
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
        """
        lines = [f"STEP FAILED: {name}"]
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        if hint:
            lines.append(f"Hint: {hint}")
        if self.debug:
            lines.append(f"Error details: {reason}")
        else:
            # first line only outside debug mode
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            lines.append(f"Error: {error_line}")
        self._emit(*lines)

    def print_output(self, stage: str, text: str) -> None:
        """Print captured command output (debug mode only)."""
        if self.debug and text.strip():
            self._emit(*(f"[{stage}] | {line}" for line in text.rstrip().splitlines()))

    def print_cache_hit(self, stage: str, key: str) -> None:
        self._emit(f"[{stage}] CACHE: hit ({key})", f"[{stage}] cache-hit=true")

    def print_cache_partial(self, stage: str, key: str) -> None:
        self._emit(f"[{stage}] CACHE: restored from restore-key ({key})", f"[{stage}] cache-hit=false")

    def print_cache_miss(self, stage: str, key: str) -> None:
        self._emit(f"[{stage}] CACHE: miss ({key})", f"[{stage}] cache-hit=false")

    def print_cache_saved(self, stage: str, key: str) -> None:
        self._emit(f"[{stage}] CACHE: saved ({key})")

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_warning(self, message: str) -> None:
        self._emit(f"WARNING: {message}", err=True)

    def print_plan(self, levels: list[list[str]], describe: dict[str, str]) -> None:
        """Print stage ordering (one line per stage, grouped by level)."""
        lines = []
        for idx, level in enumerate(levels, start=1):
            lines.append(f"Level {idx}:")
            for name in level:
                lines.append(f"  {name} {describe.get(name, '')}".rstrip())
        self._emit(*lines)

    def print_context_dump(self, context: dict[str, Any]) -> None:
        """Print the full run context as indented JSON."""
        self._emit(
            "\nRUN CONTEXT",
            json.dumps(context, indent=2, sort_keys=True, default=str),
        )

    def print_results(self, results: dict[str, str]) -> None:
        """Print final results summary."""
        lines = ["\n" + "=" * 40, "RESULTS", "=" * 40]
        for stage, status in results.items():
            lines.append(f"  {stage}: {status.upper()}")
        self._emit(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            self._emit(f"Error: {exc}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
