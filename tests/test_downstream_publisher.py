"""Tests for publishing manifests to downstream git repositories.

These run real git against bare repositories in a temporary directory.
"""

import pytest
from conftest import (
    REPO_CONFIG_DIR,
    commit_count,
    downstream_for,
    fake_github,
    git,
    make_artifacts,
    make_remote,
    reject_pushes,
    requires_git,
)

from pkgrelay.downstream_publisher import DownstreamPublisher
from pkgrelay.manifest_renderer import ManifestRenderer
from pkgrelay.models import PublishStatus, RepoState, Version
from pkgrelay.process import CommandRunner
from pkgrelay.release_host import ReleaseHost

pytestmark = requires_git

VERSION = Version("1.2.3")
BRANCHES = {"batdoc": "master", "batdoc-bin": "master", "homebrew-tap": "main"}


@pytest.fixture
def remotes(tmp_path):
    return {name: make_remote(tmp_path, name, branch) for name, branch in BRANCHES.items()}


@pytest.fixture
def repos(remotes):
    return downstream_for(remotes)


@pytest.fixture
def manifests(project, repos, tmp_path):
    renderer = ManifestRenderer(
        project,
        ReleaseHost("daemonp/batdoc", client=fake_github()),
        REPO_CONFIG_DIR,
        tmp_path / "rendered",
    )
    artifacts = make_artifacts(tmp_path, VERSION)
    return {repo.name: renderer.render(artifacts, repo) for repo in repos}


def publisher(tmp_path, run="run1", parallel=False):
    return DownstreamPublisher(
        CommandRunner(timeout=60),
        tmp_path / "clones" / run,
        parallel=parallel,
        author_name="Release Bot",
        author_email="release@example.com",
    )


@pytest.mark.parametrize("parallel", [False, True])
def test_pushes_one_commit_per_repository(parallel, tmp_path, remotes, repos, manifests):
    results = publisher(tmp_path, parallel=parallel).publish_all(repos, manifests, VERSION, "batdoc")

    assert [r.repo for r in results] == [repo.name for repo in repos]
    assert all(r.status == PublishStatus.PUSHED for r in results)
    assert all(r.state == RepoState.PUSHED for r in results)
    for name, branch in BRANCHES.items():
        assert commit_count(remotes[name], branch) == 2


def test_commit_message_and_files(tmp_path, remotes, repos, manifests):
    publisher(tmp_path).publish_all(repos, manifests, VERSION, "batdoc")

    aur = remotes["batdoc-bin"]
    message = git("--git-dir", str(aur), "log", "-1", "--format=%s", "master")
    assert message == "batdoc-bin 1.2.3-1: update to v1.2.3"
    files = git("--git-dir", str(aur), "ls-tree", "--name-only", "master").splitlines()
    assert sorted(files) == [".SRCINFO", "PKGBUILD", "README"]
    author = git("--git-dir", str(aur), "log", "-1", "--format=%an <%ae>", "master")
    assert author == "Release Bot <release@example.com>"

    tap = remotes["homebrew-tap"]
    assert git("--git-dir", str(tap), "log", "-1", "--format=%s", "main") == "batdoc 1.2.3"
    assert "Formula/batdoc.rb" in git("--git-dir", str(tap), "ls-tree", "-r", "--name-only", "main")


def test_rerun_with_same_version_changes_nothing(tmp_path, remotes, repos, manifests):
    publisher(tmp_path, "run1").publish_all(repos, manifests, VERSION, "batdoc")
    before = {name: commit_count(remotes[name], branch) for name, branch in BRANCHES.items()}

    results = publisher(tmp_path, "run2").publish_all(repos, manifests, VERSION, "batdoc")

    assert all(r.status == PublishStatus.SKIPPED_NO_CHANGE for r in results)
    assert all(r.commit is None for r in results)
    after = {name: commit_count(remotes[name], branch) for name, branch in BRANCHES.items()}
    assert after == before


def test_unreachable_repository_is_skipped(tmp_path, remotes, repos, manifests):
    for repo in repos:
        if repo.name == "batdoc":
            repo.remote = str(tmp_path / "remotes" / "does-not-exist.git")

    results = {r.repo: r for r in publisher(tmp_path).publish_all(repos, manifests, VERSION, "batdoc")}

    assert results["batdoc"].status == PublishStatus.SKIPPED_NO_CREDS
    assert results["batdoc"].state == RepoState.CLONE_FAILED
    assert results["batdoc-bin"].status == PublishStatus.PUSHED
    assert results["homebrew-tap"].status == PublishStatus.PUSHED
    assert commit_count(remotes["batdoc"]) == 1


def test_rejected_push_keeps_local_commit(tmp_path, remotes, repos, manifests):
    reject_pushes(remotes["homebrew-tap"])

    results = {r.repo: r for r in publisher(tmp_path).publish_all(repos, manifests, VERSION, "batdoc")}

    failed = results["homebrew-tap"]
    assert failed.status == PublishStatus.PUSH_FAILED
    assert failed.state == RepoState.PUSH_FAILED
    assert failed.commit
    clone = tmp_path / "clones" / "run1" / "homebrew-tap"
    assert git("rev-parse", "HEAD", cwd=clone) == failed.commit
    assert commit_count(remotes["homebrew-tap"], "main") == 1

    assert results["batdoc"].status == PublishStatus.PUSHED
    assert results["batdoc-bin"].status == PublishStatus.PUSHED


def test_access_check(tmp_path, remotes, repos):
    pub = publisher(tmp_path)
    assert pub.check_access(repos[0]).ok

    repos[0].remote = str(tmp_path / "missing.git")
    check = pub.check_access(repos[0])
    assert not check.ok
    assert check.reason
