from __future__ import annotations

from pathlib import Path

# backend/talentpipe/core/paths.py -> talentpipe
PACKAGE_ROOT = Path(__file__).resolve().parents[1]
REPO_ROOT = PACKAGE_ROOT.parents[1]


def package_root() -> Path:
    return PACKAGE_ROOT


def resolve_repo_path(path_value: str) -> Path:
    """Absolute paths pass through; relative ones are looked up from the CWD, then the repo root."""
    path = Path(path_value).expanduser()
    if path.is_absolute():
        return path
    for base in (Path.cwd(), REPO_ROOT):
        candidate = base / path
        if candidate.exists():
            return candidate.resolve()
    return path.resolve()
