# step_workflows/report.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping

from ..model import RunContext, StageResult
from ..ui.console import get_console

if TYPE_CHECKING:
    from ..runner import StepContext


def build_report(context: RunContext, results: Mapping[str, StageResult]) -> Dict[str, Any]:
    """Serializable view of the run: identity/trigger (token masked) + every stage outcome."""
    return {
        "run": context.to_dict(),
        "stages": {name: r.to_dict() for name, r in results.items()},
        "failed": sorted(n for n, r in results.items() if r.status.value == "failed"),
    }


def report_failure(ctx: "StepContext") -> Dict[str, str]:
    """Action: dump the full run context. Observational only."""
    report = build_report(ctx.context, ctx.state.snapshot())
    get_console().print_context_dump(report)
    return {"failed": ",".join(report["failed"])}
