# dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from .conditions import Always, Condition, OnFailure, OnSuccess, OutputEquals
from .model import Stage, Step


# ---------------------------------------------------------------------
# Condition helpers
# ---------------------------------------------------------------------

def always() -> Condition:
    return Always()


def success() -> Condition:
    return OnSuccess()


def failure() -> Condition:
    return OnFailure()


def output_equals(source: str, key: str, value: str) -> Condition:
    """e.g. output_equals("cache", "cache-hit", "true")"""
    return OutputEquals(source=source, key=key, value=value)


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    id: str | None = None,
    if_: Condition | None = None,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
) -> Step:
    """Create a shell step."""
    return Step(
        name=name,
        run=cmd,
        id=id,
        if_=if_ or OnSuccess(),
        cwd=cwd,
        env=env or {},
    )


def uses(
    name: str,
    action: Callable[..., Any],
    *,
    id: str | None = None,
    with_: Optional[Dict[str, Any]] = None,
    if_: Condition | None = None,
) -> Step:
    """Create a step backed by a built-in (python) action."""
    return Step(
        name=name,
        uses=action,
        id=id,
        with_=dict(with_ or {}),
        if_=if_ or OnSuccess(),
    )


# ---------------------------------------------------------------------
# Stage helper
# ---------------------------------------------------------------------

def stage(
    name: str,
    *steps: Step,  # allow: stage("x", sh(...), uses(...))
    needs: Optional[List[str]] = None,
    if_: Condition | None = None,
    env: Optional[Dict[str, str]] = None,
    outputs: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Stage:
    steps_final = list(steps)
    if not steps_final:
        raise ValueError(f"stage({name!r}) must have at least one step")

    ids = [s.id for s in steps_final if s.id]
    if len(set(ids)) != len(ids):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise ValueError(f"stage({name!r}) has duplicate step ids: {dupes}")

    if cwd is not None:
        steps_final = [s if s.cwd is not None or s.run is None else replace(s, cwd=cwd) for s in steps_final]

    for out_name, ref in (outputs or {}).items():
        step_id, _, key = ref.partition(".")
        if not key or step_id not in ids:
            raise ValueError(
                f"stage({name!r}) output {out_name!r} must reference '<step-id>.<key>', got {ref!r}"
            )

    return Stage(
        name=name,
        steps=steps_final,
        needs=list(needs or []),
        if_=if_ or OnSuccess(),
        env=dict(env or {}),
        outputs=dict(outputs or {}),
    )


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*stages: Stage) -> List[Stage]:
    """
    Workflow definition helper.

        from nodeci import wf, stage, sh

        def workflow():
            return wf(
                stage("build", sh(...)),
                stage("test", sh(...), needs=["build"]),
            )
    """
    return list(stages)
