# step_workflows/artifact.py
from __future__ import annotations

from typing import TYPE_CHECKING, Dict

from ..ui.console import get_console

if TYPE_CHECKING:
    from ..runner import StepContext


NO_FILES_MODES = ("warn", "error", "ignore")


def upload_artifact(ctx: "StepContext") -> Dict[str, str]:
    """
    Action: publish `with_["path"]` from the workspace as `with_["name"]`.

    with_["if-no-files-found"] decides what a missing path does:
    warn (default) and ignore upload nothing and let the stage go on,
    error fails the step.
    """
    name = ctx.params["name"]
    path = ctx.params.get("path", name)
    mode = ctx.params.get("if-no-files-found", "warn")
    if mode not in NO_FILES_MODES:
        raise ValueError(f"if-no-files-found must be one of {NO_FILES_MODES}, got {mode!r}")

    if mode != "error" and not (ctx.workspace / path).exists():
        if mode == "warn":
            get_console().print_warning(
                f"[{ctx.stage}] no files found at {path!r}; artifact {name!r} not uploaded"
            )
        return {"artifact": ""}

    ctx.artifacts.upload(name, [path], ctx.workspace)
    get_console().print_info(f"[{ctx.stage}] uploaded artifact {name!r}")
    return {"artifact": name}


def download_artifact(ctx: "StepContext") -> Dict[str, str]:
    """Action: extract artifact `with_["name"]` into the workspace. Fails if absent."""
    name = ctx.params["name"]
    ctx.artifacts.download(name, ctx.workspace)
    get_console().print_info(f"[{ctx.stage}] downloaded artifact {name!r}")
    return {"artifact": name}
