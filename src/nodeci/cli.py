# cli.py
from __future__ import annotations

import platform
import subprocess
import sys
import uuid
from pathlib import Path

import click

from nodeci import settings
from nodeci.artifacts import ArtifactStore
from nodeci.cache import CacheStore
from nodeci.dag import build_dag, topo_levels
from nodeci.gh import GhCacheCli
from nodeci.git_facts.git import get_current_ref, get_remote_url, head_sha, repository_slug
from nodeci.model import RunContext
from nodeci.runner import load_workflow, run_dag
from nodeci.step_workflows.purge import purge_backends, purge_branch_caches
from nodeci.ui.console import Console, get_console, set_console


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    current_dir = Path(".")
    default_workflow = current_dir / "nodeci_workflow.py"

    workflow_files = []
    if default_workflow.exists():
        workflow_files.append(default_workflow)
    for path in current_dir.glob("*_workflow.py"):
        if path != default_workflow:
            workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  nodeci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if not workflow_files:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", "  nodeci_workflow.py", "  *_workflow.py"],
            suggestion="Create nodeci_workflow.py or specify one:\n  nodeci run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[f"  {f}" for f in workflow_files],
            suggestion="Specify a workflow explicitly:\n  nodeci run --workflow nodeci_workflow.py",
        )
        sys.exit(1)

    return workflow_files[0]


def _resolve_repository(repository: str | None) -> str:
    if repository:
        return repository
    try:
        return repository_slug(get_remote_url("origin"))
    except (subprocess.CalledProcessError, FileNotFoundError):
        return Path(".").resolve().name


def _resolve_ref(ref: str | None) -> str:
    if ref:
        return ref
    try:
        return get_current_ref()
    except (subprocess.CalledProcessError, FileNotFoundError):
        get_console().print_error(
            "Could not determine git ref",
            "No --ref given and the current branch could not be read from git.",
            suggestion="Specify the branch explicitly:\n  nodeci run --ref feature-x",
        )
        sys.exit(1)


def _resolve_sha() -> str | None:
    try:
        return head_sha()
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None


def _cache_backend(kind: str, store: CacheStore, repository: str, token: str | None):
    if kind == "gh":
        return GhCacheCli(repository, token=token)
    return store


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and command output)",
)
@click.pass_context
def cli(ctx, debug):
    """nodeci: push pipeline runner for Node.js projects."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path (defaults to nodeci_workflow.py if present)")
@click.option("--ref", default=settings.REF_NAME or None, help="Branch the push happened on (defaults to current branch)")
@click.option("--repository", default=settings.REPOSITORY or None, help="owner/name (defaults to git remote origin)")
@click.option("--token", default=settings.TOKEN or None, help="Token for the cache CLI (GH_TOKEN)")
@click.option("--node-version", default=settings.NODE_VERSION, show_default=True, help="Pinned Node.js version")
@click.option("--workers", default=None, type=click.IntRange(min=1), help="Number of parallel stages")
@click.option("--cache-backend", type=click.Choice(["local", "gh"]), default="local", show_default=True)
@click.option("--cache-dir", default=settings.CACHE_DIR, show_default=True, help="Cache directory")
@click.option("--artifact-dir", default=settings.ARTIFACT_DIR, show_default=True, help="Artifact directory")
@click.option("--work-dir", default=settings.WORK_DIR, show_default=True, help="Stage workspace root")
@click.option("--default-branch", default=settings.DEFAULT_BRANCH, show_default=True)
@click.option("--keep-run-files", is_flag=True, default=False, help="Keep workspaces and artifacts after the run")
@click.pass_context
def run(ctx, workflow, ref, repository, token, node_version, workers, cache_backend, cache_dir,
        artifact_dir, work_dir, default_branch, keep_run_files):
    """Run the pipeline for a push."""
    console = get_console()
    workflow_path = discover_workflow(workflow)

    try:
        stages = load_workflow(workflow_path)
        context = RunContext(
            run_id=uuid.uuid4().hex[:12],
            repository=_resolve_repository(repository),
            ref_name=_resolve_ref(ref),
            sha=_resolve_sha(),
            token=token,
            node_version=node_version,
            os_name=platform.system(),
            default_branch=default_branch,
        )
        console.print_run_started(
            repository=context.repository,
            workflow=workflow_path.name,
            ref=context.ref_name,
            stage_count=len(stages),
        )

        store = CacheStore(cache_dir)
        results = run_dag(
            stages,
            context,
            repo_root=".",
            cache=store,
            artifacts=ArtifactStore(artifact_dir, context.run_id),
            cache_backend=_cache_backend(cache_backend, store, context.repository, token),
            work_root=work_dir,
            max_workers=workers,
            keep_run_files=keep_run_files,
        )

        console.print_results({name: r.status.value for name, r in results.items()})
        if any(r.status.value == "failed" for r in results.values()):
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except (ValueError, TypeError, FileNotFoundError) as e:
        console.print_error("Invalid workflow", str(e))
        if ctx.obj.get("debug", False):
            import traceback
            traceback.print_exc()
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path (defaults to nodeci_workflow.py if present)")
def plan(workflow):
    """Print stage order, dependencies and run conditions."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        stages = load_workflow(workflow_path)
        levels = topo_levels(*build_dag(stages))
    except (ValueError, TypeError, FileNotFoundError) as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(1)

    describe = {
        s.name: f"[if: {s.if_}]" + (f" needs: {', '.join(s.needs)}" if s.needs else "")
        for s in stages
    }
    console.print_plan(levels, describe)


@cli.command()
@click.option("--ref", required=True, help="Branch whose caches are deleted")
@click.option("--repository", default=settings.REPOSITORY or None, help="owner/name (gh backend)")
@click.option("--token", default=settings.TOKEN or None, help="Token for the cache CLI (GH_TOKEN)")
@click.option("--cache-backend", type=click.Choice(["local", "gh"]), default="local", show_default=True)
@click.option("--cache-dir", default=settings.CACHE_DIR, show_default=True, help="Cache directory")
@click.option("--limit", default=settings.CACHE_LIST_LIMIT, type=int, show_default=True, help="Max caches listed")
def purge(ref, repository, token, cache_backend, cache_dir, limit):
    """Delete every cache entry scoped to a branch."""
    store = CacheStore(cache_dir)
    backend = _cache_backend(cache_backend, store, _resolve_repository(repository), token)
    for b in purge_backends(store, backend):
        purge_branch_caches(b, ref, limit=limit)


if __name__ == "__main__":
    cli()
