# runner.py
from __future__ import annotations

import os
import runpy
import shutil
import subprocess
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .artifacts import ArtifactStore
from .cache import CacheStore
from .conditions import evaluate_stage, evaluate_step
from .dag import build_dag, topo_levels
from .errors import CIError, StepFailure
from .model import RunContext, Stage, StageResult, StageStatus, Step, StepResult
from .ui.console import get_console


# ----------------------------------------------------------------------
# Run state
# ----------------------------------------------------------------------

class RunState:
    """Terminal stage results for one run. Each stage is recorded exactly once."""

    def __init__(self) -> None:
        self._results: Dict[str, StageResult] = {}
        self._lock = threading.Lock()

    def record(self, result: StageResult) -> None:
        with self._lock:
            if result.name in self._results:
                raise RuntimeError(f"stage {result.name!r} already has a terminal state")
            self._results[result.name] = result

    def get(self, name: str) -> StageResult:
        with self._lock:
            return self._results[name]

    def snapshot(self) -> Dict[str, StageResult]:
        with self._lock:
            return dict(self._results)

    def statuses(self) -> Dict[str, str]:
        return {name: r.status.value for name, r in self.snapshot().items()}

    @property
    def failed(self) -> bool:
        return any(r.status is StageStatus.FAILED for r in self.snapshot().values())


# ----------------------------------------------------------------------
# Step context (what actions see)
# ----------------------------------------------------------------------

@dataclass
class StepContext:
    stage: str
    step: Step
    workspace: Path
    repo_root: Path
    work_root: Path
    context: RunContext
    cache: CacheStore
    artifacts: ArtifactStore
    cache_backend: Any
    state: RunState
    outputs: Dict[str, Dict[str, str]]
    _posts: List = field(default_factory=list)

    @property
    def params(self) -> Dict[str, Any]:
        return self.step.with_

    def add_post(self, fn: Callable[["StepContext"], None]) -> None:
        """Register a hook that runs after the stage's main steps, if none failed."""
        self._posts.append((self.step, fn))


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> List[Stage]:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> List[Stage]
      - STAGES = [Stage, ...]
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    globals_dict = runpy.run_path(str(wf_path), run_name=f"nodeci_workflow_{wf_path.stem}")

    stages = None
    if callable(globals_dict.get("workflow")):
        stages = globals_dict["workflow"]()
    elif "STAGES" in globals_dict:
        stages = globals_dict["STAGES"]

    if not isinstance(stages, list) or not all(isinstance(s, Stage) for s in stages):
        raise TypeError(
            "Workflow must return/define a List[Stage]. "
            "Define workflow() -> List[Stage] or STAGES = [Stage, ...]."
        )
    return stages


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _context_env(context: RunContext) -> Dict[str, str]:
    env = {
        "NODECI_RUN_ID": context.run_id,
        "NODECI_REPOSITORY": context.repository,
        "NODECI_REF_NAME": context.ref_name,
        "NODECI_EVENT": context.event,
        "NODECI_NODE_VERSION": context.node_version,
    }
    if context.sha:
        env["NODECI_SHA"] = context.sha
    return env


def _parse_outputs(path: Path) -> Dict[str, str]:
    """Read `key=value` lines a shell step wrote to $NODECI_OUTPUT."""
    out: Dict[str, str] = {}
    if not path.exists():
        return out
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.partition("=")
        if sep and key.strip():
            out[key.strip()] = value
    return out


def _run_shell(stage: Stage, step: Step, ctx: StepContext) -> Dict[str, str]:
    cwd = (ctx.workspace / (step.cwd or ".")).resolve()
    if not cwd.exists():
        raise FileNotFoundError(f"[{stage.name}] step '{step.name}' cwd not found: {cwd}")

    out_file = ctx.workspace.parent / f".{stage.name}.{id(step)}.out"
    out_file.unlink(missing_ok=True)

    env = os.environ.copy()
    env.update(_context_env(ctx.context))
    env.update(stage.env)
    env.update(step.env)
    env["NODECI_OUTPUT"] = str(out_file)

    proc = subprocess.run(
        step.run,
        shell=True,
        cwd=str(cwd),
        env=env,
        text=True,
        capture_output=True,
    )
    console = get_console()
    console.print_output(stage.name, proc.stdout)
    console.print_output(stage.name, proc.stderr)

    if proc.returncode != 0:
        raise StepFailure(
            stage=stage.name,
            step=step.name,
            cmd=step.run,
            exit_code=proc.returncode,
            stdout=proc.stdout[-4000:],
            stderr=proc.stderr[-4000:],
        )
    try:
        return _parse_outputs(out_file)
    finally:
        out_file.unlink(missing_ok=True)


def _run_action(step: Step, ctx: StepContext) -> Dict[str, str]:
    out = step.uses(ctx)
    if out is None:
        return {}
    return {str(k): str(v) for k, v in dict(out).items()}


def _report_step_error(stage: Stage, step: Step, e: Exception) -> None:
    console = get_console()
    if isinstance(e, StepFailure):
        reason = e.stderr or e.stdout or str(e)
        console.print_failure(f"{stage.name}/{step.name}", reason, exit_code=e.exit_code)
    elif isinstance(e, CIError):
        console.print_failure(f"{stage.name}/{step.name}", e.message, hint=e.details.get("hint"))
    else:
        console.print_failure(f"{stage.name}/{step.name}", f"{type(e).__name__}: {e}")


def run_stage(
    stage: Stage,
    *,
    context: RunContext,
    repo_root: Path,
    work_root: Path,
    cache: CacheStore,
    artifacts: ArtifactStore,
    cache_backend: Any,
    state: RunState,
) -> StageResult:
    """
    Run one stage's steps in order inside its own workspace.

    A failing step marks the stage failed; later steps run only when their
    condition allows it (always()/failure()). Post hooks run last, in reverse
    registration order, and only if nothing failed.
    """
    console = get_console()
    console.print_stage_start(stage.name)

    workspace = work_root / context.run_id / stage.name
    workspace.mkdir(parents=True, exist_ok=True)

    result = StageResult(name=stage.name, status=StageStatus.SUCCEEDED, started_at=time.time())
    outputs: Dict[str, Dict[str, str]] = {}
    posts: List = []
    failed = False

    def _ctx(step: Step) -> StepContext:
        return StepContext(
            stage=stage.name,
            step=step,
            workspace=workspace,
            repo_root=repo_root,
            work_root=work_root,
            context=context,
            cache=cache,
            artifacts=artifacts,
            cache_backend=cache_backend,
            state=state,
            outputs=outputs,
            _posts=posts,
        )

    for step in stage.steps:
        if not evaluate_step(step.if_, failed=failed, outputs=outputs):
            console.print_step_skipped(stage.name, step.name, str(step.if_))
            result.steps.append(StepResult(name=step.name, id=step.id, status=StageStatus.SKIPPED))
            continue

        console.print_step(stage.name, step.name)
        try:
            ctx = _ctx(step)
            step_out = _run_shell(stage, step, ctx) if step.kind == "run" else _run_action(step, ctx)
        except Exception as e:
            failed = True
            _report_step_error(stage, step, e)
            result.steps.append(
                StepResult(name=step.name, id=step.id, status=StageStatus.FAILED, error=str(e))
            )
            if result.error is None:
                result.error = f"step '{step.name}': {e}"
            continue

        if step.id:
            outputs[step.id] = step_out
        result.steps.append(
            StepResult(name=step.name, id=step.id, status=StageStatus.SUCCEEDED, outputs=step_out)
        )

    if not failed:
        for owner, post in reversed(posts):
            name = f"Post {owner.name}"
            console.print_step(stage.name, name)
            try:
                post(_ctx(owner))
            except Exception as e:
                failed = True
                _report_step_error(stage, owner, e)
                result.steps.append(StepResult(name=name, status=StageStatus.FAILED, error=str(e)))
                result.error = result.error or f"step '{name}': {e}"
                break
            result.steps.append(StepResult(name=name, status=StageStatus.SUCCEEDED))

    for out_name, ref in stage.outputs.items():
        step_id, _, key = ref.partition(".")
        if key in outputs.get(step_id, {}):
            result.outputs[out_name] = outputs[step_id][key]

    result.status = StageStatus.FAILED if failed else StageStatus.SUCCEEDED
    result.finished_at = time.time()
    console.print_stage_done(stage.name, result.status.value)
    return result


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_dag(
    stages: List[Stage],
    context: RunContext,
    *,
    repo_root: str | Path = ".",
    cache: Optional[CacheStore] = None,
    artifacts: Optional[ArtifactStore] = None,
    cache_backend: Any = None,
    work_root: str | Path = ".nodeci/work",
    max_workers: int | None = None,
    keep_run_files: bool = False,
) -> Dict[str, StageResult]:
    """
    Dependency-ordered stage runner.

    A stage is considered only once every stage it needs is terminal. Its
    condition is then evaluated against those results: false means the stage
    is recorded as skipped right away (which in turn unlocks its dependents),
    true means it is submitted to the pool next to whatever else is running.
    Returns the terminal results in completion order.
    """
    repo_root_p = Path(repo_root).resolve()
    work_root_p = Path(work_root).resolve()
    cache = cache or CacheStore()
    artifacts = artifacts or ArtifactStore(".nodeci/artifacts", context.run_id)
    if cache_backend is None:
        cache_backend = cache

    by_name = {s.name: s for s in stages}
    adj, indeg = build_dag(stages)
    topo_levels(adj, indeg)  # raises on cycles before anything runs
    indeg = dict(indeg)

    if max_workers is None:
        c = os.cpu_count() or 2
        max_workers = max(1, c - 1)

    console = get_console()
    state = RunState()
    ready: List[str] = sorted(n for n, d in indeg.items() if d == 0)
    in_flight: Dict = {}

    def _unlock(name: str) -> None:
        for nxt in sorted(adj[name]):
            indeg[nxt] -= 1
            if indeg[nxt] == 0:
                ready.append(nxt)

    try:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            while ready or in_flight:
                while ready:
                    name = ready.pop(0)
                    st = by_name[name]
                    deps = {d: state.get(d) for d in st.needs}
                    if not evaluate_stage(st.if_, deps):
                        console.print_stage_skipped(name, str(st.if_))
                        state.record(StageResult(name=name, status=StageStatus.SKIPPED))
                        _unlock(name)
                        continue
                    fut = pool.submit(
                        run_stage,
                        st,
                        context=context,
                        repo_root=repo_root_p,
                        work_root=work_root_p,
                        cache=cache,
                        artifacts=artifacts,
                        cache_backend=cache_backend,
                        state=state,
                    )
                    in_flight[fut] = name

                if not in_flight:
                    break

                done, _ = wait(list(in_flight.keys()), return_when=FIRST_COMPLETED)
                for fut in done:
                    name = in_flight.pop(fut)
                    try:
                        result = fut.result()
                    except Exception as e:
                        # run_stage itself blew up (e.g. workspace not creatable)
                        console.print_exception(e)
                        result = StageResult(name=name, status=StageStatus.FAILED, error=str(e))
                    state.record(result)
                    _unlock(name)
    finally:
        if not keep_run_files:
            artifacts.cleanup()
            shutil.rmtree(work_root_p / context.run_id, ignore_errors=True)

    return state.snapshot()
