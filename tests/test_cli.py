import json

import pytest
from click.testing import CliRunner

from nodeci.cache import CacheStore
from nodeci.cli import cli

WORKFLOW = """
from nodeci import node_pipeline

def workflow():
    return node_pipeline(
        install_cmd="mkdir -p node_modules && echo x > node_modules/x",
        test_cmd={test_cmd!r},
        build_cmd="true",
        extra_test_install_cmd="true",
        verify_node=False,
    )
"""


@pytest.fixture
def repo(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "package.json").write_text(json.dumps({"name": "demo"}))
    (tmp_path / "package-lock.json").write_text(json.dumps({"lockfileVersion": 3}))
    return tmp_path


def _write_workflow(repo, test_cmd="test -d node_modules", name="nodeci_workflow.py"):
    (repo / name).write_text(WORKFLOW.format(test_cmd=test_cmd))


def _run_args(*extra):
    return ["run", "--ref", "feature-x", "--repository", "acme/demo", "--token", "tkn", *extra]


def test_help():
    res = CliRunner().invoke(cli, ["--help"])
    assert res.exit_code == 0
    assert "push pipeline" in res.output


def test_run_success(repo):
    _write_workflow(repo)
    res = CliRunner().invoke(cli, _run_args())
    assert res.exit_code == 0, res.output
    assert "RUN STARTED" in res.output
    assert "build: SUCCEEDED" in res.output
    assert "cleanup: SUCCEEDED" in res.output
    assert "report: SKIPPED" in res.output
    assert CacheStore(repo / ".nodeci" / "cache").list_ids("feature-x") == []
    # run files do not outlive the run
    assert list((repo / ".nodeci" / "work").iterdir()) == []


def test_run_failure_exits_non_zero_and_dumps_context(repo):
    _write_workflow(repo, test_cmd="exit 1")
    res = CliRunner().invoke(cli, _run_args())
    assert res.exit_code == 1
    assert "build: FAILED" in res.output
    assert "test: SKIPPED" in res.output
    assert "RUN CONTEXT" in res.output
    assert "tkn" not in res.output


def test_run_without_workflow(repo):
    res = CliRunner().invoke(cli, _run_args())
    assert res.exit_code == 1
    assert "No workflow file found" in res.output


def test_run_with_multiple_workflows(repo):
    _write_workflow(repo)
    _write_workflow(repo, name="other_workflow.py")
    res = CliRunner().invoke(cli, _run_args())
    assert res.exit_code == 1
    assert "Multiple workflow files found" in res.output

    res = CliRunner().invoke(cli, _run_args("--workflow", "other_workflow.py"))
    assert res.exit_code == 0, res.output


def test_plan(repo):
    _write_workflow(repo)
    res = CliRunner().invoke(cli, ["plan"])
    assert res.exit_code == 0
    assert "Level 1:" in res.output
    assert "cleanup [if: always()] needs: build, test" in res.output
    assert "report [if: failure()] needs: build, test, cleanup" in res.output


def test_plan_rejects_cycles(repo):
    (repo / "nodeci_workflow.py").write_text(
        "from nodeci import wf, stage, sh\n"
        "STAGES = wf(stage('a', sh('x', 'true'), needs=['b']), stage('b', sh('x', 'true'), needs=['a']))\n"
    )
    res = CliRunner().invoke(cli, ["plan"])
    assert res.exit_code == 1
    assert "cycle" in res.output


def test_purge_local(repo):
    (repo / "node_modules").mkdir()
    store = CacheStore(repo / ".nodeci" / "cache")
    store.save("feature-x", "k", ["node_modules"], repo)
    store.save("main", "k", ["node_modules"], repo)

    res = CliRunner().invoke(cli, ["purge", "--ref", "feature-x", "--repository", "acme/demo"])
    assert res.exit_code == 0, res.output
    assert "Deleted cache ids" in res.output
    assert store.list_ids("feature-x") == []
    assert len(store.list_ids("main")) == 1


def test_run_rejects_zero_workers(repo):
    _write_workflow(repo)
    res = CliRunner().invoke(cli, _run_args("--workers", "0"))
    assert res.exit_code == 2
    assert "Invalid workflow" not in res.output


def test_purge_gh_backend_also_purges_local_store(repo, monkeypatch):
    (repo / "node_modules").mkdir()
    store = CacheStore(repo / ".nodeci" / "cache")
    store.save("feature-x", "k", ["node_modules"], repo)
    listed = []

    class EmptyGh:
        def __init__(self, repository, token=None):
            pass

        def list_ids(self, ref, limit=100):
            listed.append(ref)
            return []

        def delete(self, entry_id):
            raise AssertionError(entry_id)

    monkeypatch.setattr("nodeci.cli.GhCacheCli", EmptyGh)
    res = CliRunner().invoke(
        cli, ["purge", "--ref", "feature-x", "--repository", "acme/demo", "--cache-backend", "gh"]
    )
    assert res.exit_code == 0, res.output
    assert store.list_ids("feature-x") == []
    assert listed == ["feature-x"]
