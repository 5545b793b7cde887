import json
import subprocess

import pytest

from nodeci.cache import CacheStore
from nodeci.errors import CacheCommandError
from nodeci.gh import GhCacheCli
from nodeci.step_workflows.purge import purge_backends, purge_branch_caches


class FakeBackend:
    def __init__(self, ids, fail_list=False, fail_delete=()):
        self.ids = list(ids)
        self.fail_list = fail_list
        self.fail_delete = set(fail_delete)
        self.list_calls = []
        self.deleted = []

    def list_ids(self, ref, limit=100):
        self.list_calls.append((ref, limit))
        if self.fail_list:
            raise CacheCommandError("list failed")
        return self.ids[:limit]

    def delete(self, entry_id):
        if entry_id in self.fail_delete:
            raise CacheCommandError(f"cannot delete {entry_id}")
        self.deleted.append(entry_id)


def test_deletes_every_listed_entry(capsys):
    backend = FakeBackend(["1", "2", "3"])
    assert purge_branch_caches(backend, "feature-x") == ["1", "2", "3"]
    assert backend.list_calls == [("feature-x", 100)]
    assert "Deleted cache ids: 1, 2, 3" in capsys.readouterr().out


def test_page_size_bounds_listing():
    backend = FakeBackend([str(i) for i in range(10)])
    assert purge_branch_caches(backend, "main", limit=4) == ["0", "1", "2", "3"]


def test_list_failure_is_best_effort(capsys):
    backend = FakeBackend(["1"], fail_list=True)
    assert purge_branch_caches(backend, "main") == []
    assert backend.deleted == []
    assert "could not list caches" in capsys.readouterr().err


def test_delete_failure_does_not_stop_the_loop(capsys):
    backend = FakeBackend(["1", "2", "3"], fail_delete={"2"})
    assert purge_branch_caches(backend, "main") == ["1", "3"]
    assert "could not delete cache 2" in capsys.readouterr().err


def test_nothing_to_purge(capsys):
    assert purge_branch_caches(FakeBackend([]), "main") == []
    assert "No caches found" in capsys.readouterr().out


def test_local_store_only_loses_the_branch_entries(tmp_path):
    (tmp_path / "src" / "node_modules").mkdir(parents=True)
    store = CacheStore(tmp_path / "cache")
    mine = store.save("feature-x", "k", ["node_modules"], tmp_path / "src")
    theirs = store.save("main", "k", ["node_modules"], tmp_path / "src")

    assert purge_branch_caches(store, "feature-x") == [mine.id]
    assert store.list_ids("feature-x") == []
    assert store.list_ids("main") == [theirs.id]


def test_gh_backend_commands(monkeypatch):
    calls = []

    def fake_run(cmd, env=None, text=None, capture_output=None):
        calls.append((cmd, env.get("GH_TOKEN")))
        stdout = json.dumps([{"id": 11}, {"id": 12}]) if cmd[1:3] == ["cache", "list"] else ""
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    gh = GhCacheCli("acme/demo", token="tkn")

    assert purge_branch_caches(gh, "feature-x", limit=100) == ["11", "12"]
    assert calls[0] == (
        ["gh", "cache", "list", "--repo", "acme/demo", "--ref", "refs/heads/feature-x",
         "--limit", "100", "--json", "id"],
        "tkn",
    )
    assert [c[0] for c in calls[1:]] == [
        ["gh", "cache", "delete", "11", "--repo", "acme/demo"],
        ["gh", "cache", "delete", "12", "--repo", "acme/demo"],
    ]


def test_gh_backend_raises_on_non_zero_exit(monkeypatch):
    def fake_run(cmd, env=None, text=None, capture_output=None):
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="HTTP 401")

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(CacheCommandError, match="HTTP 401"):
        GhCacheCli("acme/demo").list_ids("main")


def test_gh_backend_missing_binary(monkeypatch):
    def fake_run(*args, **kwargs):
        raise FileNotFoundError("gh")

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(CacheCommandError, match="not found"):
        GhCacheCli("acme/demo").delete("1")


def test_full_ref():
    assert GhCacheCli.full_ref("main") == "refs/heads/main"
    assert GhCacheCli.full_ref("refs/pull/1/merge") == "refs/pull/1/merge"


def test_purge_backends_always_include_the_local_store(tmp_path):
    store = CacheStore(tmp_path / "cache")
    remote = FakeBackend([])
    assert purge_backends(store, remote) == [store, remote]
    assert purge_backends(store, store) == [store]
    assert purge_backends(store, None) == [store]


def test_similar_branch_names_do_not_share_caches(tmp_path):
    (tmp_path / "src" / "node_modules").mkdir(parents=True)
    store = CacheStore(tmp_path / "cache")
    slash = store.save("feature/x", "k", ["node_modules"], tmp_path / "src")

    assert purge_branch_caches(store, "feature__x") == []
    assert store.list_ids("feature/x") == [slash.id]
