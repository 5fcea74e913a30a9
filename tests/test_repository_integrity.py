"""Repository-level integrity checks."""

from __future__ import annotations

import re
import sys
from importlib import import_module
from pathlib import Path

from harvest.services.profiles import GenericProfile, default_profiles

CONFLICT_PATTERN = re.compile(r"^(<<<<<<<|=======|>>>>>>>)", re.MULTILINE)
CHECKED_DIRECTORIES = ("harvest", "mangaharvest", "tests")
REPO_ROOT = Path(__file__).resolve().parents[1]


class _UnusedTextService:
    async def complete(self, prompt: str, *, system: str | None = None) -> str:  # pragma: no cover
        raise AssertionError("Not called")


def test_sources_have_no_merge_conflict_markers() -> None:
    """Ensure no source or config file still contains git conflict markers."""

    candidates = [REPO_ROOT / "pyproject.toml", REPO_ROOT / ".env.example"]
    for directory in CHECKED_DIRECTORIES:
        candidates.extend((REPO_ROOT / directory).rglob("*.py"))

    offending = [
        path.relative_to(REPO_ROOT)
        for path in candidates
        if path.is_file() and CONFLICT_PATTERN.search(path.read_text(encoding="utf-8"))
    ]

    assert not offending, "Conflict markers found in: " + ", ".join(map(str, offending))


def test_profile_registry_ends_with_generic_fallback() -> None:
    profiles = default_profiles(_UnusedTextService())

    assert isinstance(profiles[-1], GenericProfile)
    assert not any(isinstance(profile, GenericProfile) for profile in profiles[:-1])
    hosts = [host for profile in profiles[:-1] for host in profile.hosts]
    assert len(hosts) == len(set(hosts))
    assert [profile.name for profile in profiles] == ["myanimelist", "anilist", "madara", "generic"]


def test_entry_point_shim_does_not_build_web_app(monkeypatch) -> None:
    """Importing the CLI shim must leave logging setup to the CLI."""

    monkeypatch.delitem(sys.modules, "mangaharvest", raising=False)
    monkeypatch.delitem(sys.modules, "harvest.main", raising=False)

    shim = import_module("mangaharvest")

    assert "harvest.main" not in sys.modules
    assert shim.cli is import_module("harvest.cli").app
    assert callable(shim.create_app)
