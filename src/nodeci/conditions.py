# conditions.py
"""
Run conditions for stages and steps.

The set is closed: Always, OnSuccess, OnFailure, OutputEquals.
Anything else is rejected so both evaluators stay total.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Mapping, Union

if TYPE_CHECKING:
    from .model import StageResult


@dataclass(frozen=True)
class Always:
    def __str__(self) -> str:
        return "always()"


@dataclass(frozen=True)
class OnSuccess:
    def __str__(self) -> str:
        return "success()"


@dataclass(frozen=True)
class OnFailure:
    def __str__(self) -> str:
        return "failure()"


@dataclass(frozen=True)
class OutputEquals:
    """
    `source` is a step id (step guards) or a dependency stage name (stage guards).
    Like a bare expression in a hosted workflow, it also implies success().
    """
    source: str
    key: str
    value: str

    def __str__(self) -> str:
        return f"{self.source}.outputs.{self.key} == {self.value!r}"


Condition = Union[Always, OnSuccess, OnFailure, OutputEquals]


def evaluate_stage(cond: Condition, deps: Mapping[str, "StageResult"]) -> bool:
    """
    Decide whether a stage is eligible to run, given the terminal results of
    its declared dependencies.

    Skipped dependencies are non-blocking for Always, but count as non-success
    for everything else.
    """
    from .model import StageStatus

    all_ok = all(r.status is StageStatus.SUCCEEDED for r in deps.values())

    if isinstance(cond, Always):
        return True
    if isinstance(cond, OnSuccess):
        return all_ok
    if isinstance(cond, OnFailure):
        return any(r.status is StageStatus.FAILED for r in deps.values())
    if isinstance(cond, OutputEquals):
        src = deps.get(cond.source)
        if src is None:
            raise ValueError(
                f"condition {cond} refers to {cond.source!r}, which is not a dependency"
            )
        return all_ok and src.outputs.get(cond.key) == cond.value
    raise TypeError(f"Unsupported condition: {cond!r}")


def evaluate_step(
    cond: Condition,
    *,
    failed: bool,
    outputs: Mapping[str, Dict[str, str]],
) -> bool:
    """
    Decide whether a step runs.

    failed:  True once any earlier step in the stage has failed
    outputs: step id -> outputs of the steps that ran before this one
    """
    if isinstance(cond, Always):
        return True
    if isinstance(cond, OnSuccess):
        return not failed
    if isinstance(cond, OnFailure):
        return failed
    if isinstance(cond, OutputEquals):
        # an unknown or skipped step simply has no outputs
        return (not failed) and outputs.get(cond.source, {}).get(cond.key) == cond.value
    raise TypeError(f"Unsupported condition: {cond!r}")
