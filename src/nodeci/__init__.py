from .dsl import always, failure, output_equals, sh, stage, success, uses, wf
from .model import RunContext, Stage, StageResult, StageStatus, Step
from .pipeline import node_pipeline
from .runner import load_workflow, run_dag

__all__ = [
    "always",
    "failure",
    "output_equals",
    "sh",
    "stage",
    "success",
    "uses",
    "wf",
    "RunContext",
    "Stage",
    "StageResult",
    "StageStatus",
    "Step",
    "node_pipeline",
    "load_workflow",
    "run_dag",
]
