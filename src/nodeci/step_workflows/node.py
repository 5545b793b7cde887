# step_workflows/node.py
from __future__ import annotations

import subprocess
from typing import TYPE_CHECKING, Dict

from ..errors import TOOL_HINTS, CIError
from ..ui.console import get_console

if TYPE_CHECKING:
    from ..runner import StepContext


def _node_version(node: str = "node") -> str:
    """Return `node --version` without the leading 'v'."""
    proc = subprocess.run([node, "--version"], capture_output=True, text=True, check=True)
    return proc.stdout.strip().lstrip("v")


def version_matches(wanted: str, actual: str) -> bool:
    """'18' matches 18.x.y, '18.17' matches 18.17.y, '18.17.1' only itself."""
    wanted_parts = wanted.strip().lstrip("v").split(".")
    actual_parts = actual.strip().lstrip("v").split(".")
    if wanted_parts[-1] in ("x", "*"):
        wanted_parts = wanted_parts[:-1]
    return actual_parts[: len(wanted_parts)] == wanted_parts


def setup_node(ctx: "StepContext") -> Dict[str, str]:
    """
    Action: make sure the pinned Node.js runtime is available.

    Provisioning itself is left to the host; this step only verifies.
    """
    wanted = str(ctx.params.get("node-version") or ctx.context.node_version)
    node = ctx.params.get("node", "node")

    try:
        actual = _node_version(node)
    except (subprocess.CalledProcessError, FileNotFoundError):
        raise CIError(
            kind="tool_unavailable",
            stage=ctx.stage,
            step=ctx.step.name,
            message=f"{node} is not available",
            details={"hint": TOOL_HINTS["node"], "tool": node},
        )

    if not version_matches(wanted, actual):
        raise CIError(
            kind="version_mismatch",
            stage=ctx.stage,
            step=ctx.step.name,
            message=f"node {actual} does not satisfy pinned version {wanted}",
            details={"hint": f"Install Node.js {wanted} (e.g. via nvm) or change --node-version."},
        )

    get_console().print_info(f"[{ctx.stage}] node v{actual}")
    return {"node-version": f"v{actual}"}
