"""Pytest fixtures for apm tests."""
import subprocess
from pathlib import Path
from typing import Dict

import pytest

from apm.models import CacheKey


def run_git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@pytest.fixture
def roles_repo(tmp_path: Path) -> Dict[str, any]:
    """Create a git repository laid out like an Ansible roles collection.

    History:
        main: commit 1 (README.md, motd/, nginx/) tagged v1.0 (annotated)
              commit 2 (README.md changed, users/ added) tagged v2.0
        feature-x: branched from commit 1, adds extra.yml

    Returns dict with:
        - path: Path to repo
        - url: file:// URL of the repo
        - v1_sha, v2_sha, feature_sha: commit SHAs
    """
    repo_path = tmp_path / "roles_repo"
    repo_path.mkdir()

    run_git(repo_path, "init", "--quiet")
    run_git(repo_path, "symbolic-ref", "HEAD", "refs/heads/main")
    run_git(repo_path, "config", "user.email", "test@example.com")
    run_git(repo_path, "config", "user.name", "Test User")
    run_git(repo_path, "config", "commit.gpgsign", "false")
    run_git(repo_path, "config", "tag.gpgsign", "false")

    (repo_path / "README.md").write_text("roles v1\n")
    (repo_path / "motd").mkdir()
    (repo_path / "motd" / "tasks.yml").write_text("- name: motd\n")
    (repo_path / "nginx").mkdir()
    (repo_path / "nginx" / "tasks.yml").write_text("- name: nginx\n")
    run_git(repo_path, "add", ".")
    run_git(repo_path, "commit", "--quiet", "-m", "Initial roles")
    run_git(repo_path, "tag", "-a", "v1.0", "-m", "Release 1.0")
    v1_sha = run_git(repo_path, "rev-parse", "HEAD")

    run_git(repo_path, "checkout", "--quiet", "-b", "feature-x")
    (repo_path / "extra.yml").write_text("extra: true\n")
    run_git(repo_path, "add", "extra.yml")
    run_git(repo_path, "commit", "--quiet", "-m", "Add extra on feature-x")
    feature_sha = run_git(repo_path, "rev-parse", "HEAD")

    run_git(repo_path, "checkout", "--quiet", "main")
    (repo_path / "README.md").write_text("roles v2\n")
    (repo_path / "users").mkdir()
    (repo_path / "users" / "tasks.yml").write_text("- name: users\n")
    run_git(repo_path, "add", ".")
    run_git(repo_path, "commit", "--quiet", "-m", "Add users role")
    run_git(repo_path, "tag", "v2.0")
    v2_sha = run_git(repo_path, "rev-parse", "HEAD")

    return {
        "path": repo_path,
        "url": repo_path.as_uri(),
        "v1_sha": v1_sha,
        "v2_sha": v2_sha,
        "feature_sha": feature_sha,
    }


@pytest.fixture
def fake_entry(tmp_path: Path):
    """Build a cache entry by hand, without git.

    Returns a function (key) -> Path that creates storage/<fingerprint> with:
        README.md, motd/tasks.yml, nginx/tasks.yml
    """
    storage = tmp_path / "storage"

    def build(key: CacheKey) -> Path:
        entry = storage / key.fingerprint
        (entry / "motd").mkdir(parents=True)
        (entry / "nginx").mkdir()
        (entry / "README.md").write_text("readme\n")
        (entry / "motd" / "tasks.yml").write_text("- name: motd\n")
        (entry / "nginx" / "tasks.yml").write_text("- name: nginx\n")
        return entry

    return build
