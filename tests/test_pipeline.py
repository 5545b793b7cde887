import os

from conftest import ESBUILD, seed_node_modules

from nodeci.cache import lockfile_cache_key
from nodeci.model import StageStatus
from nodeci.pipeline import node_pipeline


def _statuses(results):
    return {name: r.status for name, r in results.items()}


def _step(result, name):
    return next(s for s in result.steps if s.name == name)


def test_pipeline_shape():
    stages = {s.name: s for s in node_pipeline()}
    assert list(stages) == ["build", "test", "cleanup", "report"]
    assert stages["build"].needs == []
    assert stages["test"].needs == ["build"]
    assert stages["cleanup"].needs == ["build", "test"]
    assert stages["report"].needs == ["build", "test", "cleanup"]
    assert str(stages["cleanup"].if_) == "always()"
    assert str(stages["report"].if_) == "failure()"


def test_cold_cache_on_feature_branch(run_pipeline, cache):
    results, artifacts = run_pipeline(ref="feature-x")

    assert _statuses(results) == {
        "build": StageStatus.SUCCEEDED,
        "test": StageStatus.SUCCEEDED,
        "cleanup": StageStatus.SUCCEEDED,
        "report": StageStatus.SKIPPED,
    }

    build = results["build"]
    assert build.outputs["cache-hit"] == "false"
    assert _step(build, "Fix esbuild permissions").status is StageStatus.SKIPPED
    assert _step(build, "Upload node_modules").status is StageStatus.SUCCEEDED
    assert _step(build, "Post Cache node modules").status is StageStatus.SUCCEEDED
    assert artifacts.names() == ["node_modules"]

    # the entry saved by build is gone once cleanup has run
    assert _step(results["cleanup"], "Delete branch caches").outputs["deleted-count"] == "1"
    assert cache.entries("feature-x") == []


def test_stage_two_gets_dependencies_only_from_the_artifact(run_pipeline, tmp_path):
    results, _ = run_pipeline()

    test_ws = tmp_path / "work" / "run1" / "test"
    assert (test_ws / ESBUILD).is_file()
    assert os.access(test_ws / ESBUILD, os.X_OK)
    # checkout never copies installed dependencies
    assert _step(results["test"], "Download node_modules").status is StageStatus.SUCCEEDED


def test_warm_cache_on_main_skips_upload_and_stage_two_cannot_download(
    run_pipeline, project, cache, tmp_path
):
    key = lockfile_cache_key("Linux", project / "package-lock.json")
    assert cache.save("main", key, ["node_modules"], seed_node_modules(tmp_path)) is not None

    results, artifacts = run_pipeline(ref="main")

    build = results["build"]
    assert build.status is StageStatus.SUCCEEDED
    assert build.outputs["cache-hit"] == "true"
    assert _step(build, "Fix esbuild permissions").status is StageStatus.SUCCEEDED
    assert _step(build, "Upload node_modules").status is StageStatus.SKIPPED
    assert artifacts.names() == []
    assert os.access(tmp_path / "work" / "run1" / "build" / ESBUILD, os.X_OK)

    download = _step(results["test"], "Download node_modules")
    assert download.status is StageStatus.FAILED
    assert "node_modules" in download.error
    assert results["test"].status is StageStatus.FAILED

    assert results["cleanup"].status is StageStatus.SUCCEEDED
    assert cache.entries("main") == []
    assert results["report"].status is StageStatus.SUCCEEDED


def test_failing_tests_in_build(run_pipeline, cache, capsys):
    results, artifacts = run_pipeline(test_cmd="exit 3")

    assert _statuses(results) == {
        "build": StageStatus.FAILED,
        "test": StageStatus.SKIPPED,
        "cleanup": StageStatus.SUCCEEDED,
        "report": StageStatus.SUCCEEDED,
    }
    build = results["build"]
    assert _step(build, "Build").status is StageStatus.SKIPPED
    assert _step(build, "Upload node_modules").status is StageStatus.SKIPPED
    # no post-save after a failure, so nothing to purge
    assert not any(s.name.startswith("Post ") for s in build.steps)
    assert cache.entries("feature-x") == []
    assert artifacts.names() == []

    out = capsys.readouterr().out
    assert "RUN CONTEXT" in out
    assert '"build"' in out
    assert "secret-token" not in out


def test_cleanup_runs_exactly_once_per_run(run_pipeline):
    for i, overrides in enumerate(({}, {"test_cmd": "exit 1"}, {"build_cmd": "exit 1"})):
        results, _ = run_pipeline(run_id=f"run{i}", **overrides)
        assert list(results).count("cleanup") == 1
        assert results["cleanup"].status is StageStatus.SUCCEEDED


class HostedCacheStandIn:
    """A remote cache backend this run never wrote to: lists nothing."""

    def __init__(self):
        self.listed = []

    def list_ids(self, ref, limit=100):
        self.listed.append(ref)
        return []

    def delete(self, entry_id):
        raise AssertionError(f"nothing to delete, got {entry_id}")


def test_cleanup_purges_the_local_store_next_to_a_remote_backend(run_pipeline, cache):
    remote = HostedCacheStandIn()

    for run_id in ("run0", "run1"):
        results, _ = run_pipeline(ref="feature-x", run_id=run_id, cache_backend=remote)

        # every push starts cold, because the previous run's entry was purged
        assert results["build"].outputs["cache-hit"] == "false"
        assert _statuses(results) == {
            "build": StageStatus.SUCCEEDED,
            "test": StageStatus.SUCCEEDED,
            "cleanup": StageStatus.SUCCEEDED,
            "report": StageStatus.SKIPPED,
        }
        assert cache.entries("feature-x") == []

    assert remote.listed == ["feature-x", "feature-x"]
