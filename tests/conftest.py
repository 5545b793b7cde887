import json
from pathlib import Path

import pytest

from nodeci.artifacts import ArtifactStore
from nodeci.cache import CacheStore
from nodeci.model import RunContext
from nodeci.pipeline import node_pipeline
from nodeci.runner import run_dag

ESBUILD = "node_modules/@esbuild/linux-x64/bin/esbuild"

# stand-ins for npm so the pipeline runs without a Node toolchain
FAKE_INSTALL = f"mkdir -p $(dirname {ESBUILD}) && echo bin > {ESBUILD}"
FAKE_TEST = "test -f node_modules/@esbuild/linux-x64/bin/esbuild"
FAKE_BUILD = "mkdir -p dist && echo built > dist/index.js"


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "package.json").write_text(json.dumps({"name": "demo", "version": "1.0.0"}))
    (root / "package-lock.json").write_text(json.dumps({"name": "demo", "lockfileVersion": 3}))
    (root / "src" / "index.js").write_text("console.log('hi')\n")
    return root


@pytest.fixture
def cache(tmp_path):
    return CacheStore(tmp_path / "cache")


def make_context(ref="feature-x", run_id="run1", token="secret-token"):
    return RunContext(
        run_id=run_id,
        repository="acme/demo",
        ref_name=ref,
        sha="0" * 40,
        token=token,
        node_version="18",
        os_name="Linux",
    )


def fake_pipeline(**overrides):
    kwargs = dict(
        install_cmd=FAKE_INSTALL,
        test_cmd=FAKE_TEST,
        build_cmd=FAKE_BUILD,
        extra_test_install_cmd="true",
        verify_node=False,
    )
    kwargs.update(overrides)
    return node_pipeline(**kwargs)


@pytest.fixture
def run_pipeline(tmp_path, project, cache):
    """Run the fake pipeline; returns (results, artifacts)."""

    def _run(ref="feature-x", stages=None, run_id="run1", cache_backend=None, **overrides):
        context = make_context(ref=ref, run_id=run_id)
        artifacts = ArtifactStore(tmp_path / "artifacts", context.run_id)
        results = run_dag(
            stages if stages is not None else fake_pipeline(**overrides),
            context,
            repo_root=project,
            cache=cache,
            artifacts=artifacts,
            cache_backend=cache_backend,
            work_root=tmp_path / "work",
            max_workers=2,
            keep_run_files=True,
        )
        return results, artifacts

    return _run


def seed_node_modules(tmp_path: Path) -> Path:
    """A directory holding a node_modules tree, as a previous run would have cached it."""
    src = tmp_path / "seed"
    (src / ESBUILD).parent.mkdir(parents=True)
    (src / ESBUILD).write_text("bin")
    (src / ESBUILD).chmod(0o644)
    return src
