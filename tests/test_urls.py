"""Tests for repository URL normalization."""
import pytest

from apm.core.errors import PackageValidationError
from apm.git import urls
from apm.git.urls import normalize_url, rewrite_url_from_git_config


@pytest.mark.parametrize(
    "location, expected",
    [
        ("example.org/role", "https://example.org/role"),
        ("  github.com/k1nky/roles.git ", "https://github.com/k1nky/roles.git"),
        ("http://example.org/role", "http://example.org/role"),
        ("ssh://git@example.org/role.git", "ssh://git@example.org/role.git"),
        ("git@github.com:k1nky/roles.git", "git@github.com:k1nky/roles.git"),
        ("file:///srv/git/roles", "file:///srv/git/roles"),
    ],
)
def test_normalize_url(location, expected):
    assert normalize_url(location) == expected


@pytest.mark.parametrize("location", ["", "   ", "https://", "file://"])
def test_normalize_url_rejects_invalid(location):
    with pytest.raises(PackageValidationError):
        normalize_url(location)


def test_rewrite_uses_longest_insteadof_prefix(monkeypatch):
    monkeypatch.setattr(
        urls,
        "_insteadof_rules",
        lambda: [
            ("https://github.com/", "git@github.com:"),
            ("https://github.com/k1nky/", "git@mirror.local:k1nky/"),
        ],
    )

    assert rewrite_url_from_git_config("https://github.com/k1nky/roles.git") == "git@mirror.local:k1nky/roles.git"
    assert rewrite_url_from_git_config("https://github.com/other/x.git") == "git@github.com:other/x.git"
    assert rewrite_url_from_git_config("https://gitlab.com/x.git") == "https://gitlab.com/x.git"


def test_normalize_applies_git_config_only_when_asked(monkeypatch):
    monkeypatch.setattr(urls, "_insteadof_rules", lambda: [("https://example.org/", "https://mirror.local/")])

    assert normalize_url("example.org/role") == "https://example.org/role"
    assert normalize_url("example.org/role", use_git_config=True) == "https://mirror.local/role"
