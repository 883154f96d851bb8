"""Tracker configuration loading utilities."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import RepoConfig, TrackerConfig

_MAIN_BRANCH_CANDIDATES = ("main", "master", "develop", "development", "dev")


class ConfigLoadError(RuntimeError):
    """Raised when the tracker configuration cannot be read or validated."""


def _common_git_dir(repo_path: Path) -> Path | None:
    """Directory holding the repository's refs; follows worktree ``.git`` files."""

    git_entry = repo_path / ".git"
    if git_entry.is_dir():
        return git_entry
    if not git_entry.is_file():
        return None
    try:
        pointer = git_entry.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError):
        return None
    if not pointer.startswith("gitdir:"):
        return None
    git_dir = (repo_path / pointer[len("gitdir:"):].strip()).resolve()
    commondir = git_dir / "commondir"
    if commondir.is_file():
        try:
            return (git_dir / commondir.read_text(encoding="utf-8").strip()).resolve()
        except (OSError, UnicodeDecodeError):
            return None
    return git_dir


def _branch_names(git_dir: Path) -> set[str]:
    names: set[str] = set()
    heads = git_dir / "refs" / "heads"
    if heads.is_dir():
        names.update(child.name for child in heads.iterdir() if child.is_file())
    try:
        packed = (git_dir / "packed-refs").read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return names
    for line in packed.splitlines():
        # "<sha> refs/heads/<name>"; comments and peeled "^<sha>" lines are skipped
        _, _, ref = line.partition(" ")
        if ref.startswith("refs/heads/"):
            names.add(ref[len("refs/heads/"):])
    return names


def _guess_main_branch(repo_path: Path) -> str | None:
    git_dir = _common_git_dir(repo_path)
    if git_dir is None:
        return None
    names = _branch_names(git_dir)
    for candidate in _MAIN_BRANCH_CANDIDATES:
        if candidate in names:
            return candidate
    return None


def discover_repositories(folder: Path) -> list[RepoConfig]:
    """Return a RepoConfig for every direct child of ``folder`` that holds a ``.git`` entry."""

    if not folder.is_dir():
        raise ConfigLoadError(f"Repositories folder does not exist: {folder}")

    repositories: list[RepoConfig] = []
    for child in sorted(folder.iterdir()):
        if child.is_dir() and (child / ".git").exists():
            repositories.append(RepoConfig(path=child, main_branch=_guess_main_branch(child)))
    return repositories


class ConfigLoader:
    """Loads the tracker configuration from a YAML file on disk."""

    def __init__(self, path: Path, *, logger: logging.Logger | None = None) -> None:
        self._path = Path(path).expanduser()
        self._logger = logger or logging.getLogger(__name__)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> TrackerConfig:
        """Parse and validate the configuration, expanding ``repositories_folder``.

        Explicitly listed repositories take precedence over discovered ones sharing an id.
        """

        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ConfigLoadError(f"Config file not found: {self._path}") from exc
        except OSError as exc:
            raise ConfigLoadError(f"Failed to read config file {self._path}: {exc}") from exc

        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigLoadError(f"Failed to parse YAML in {self._path}: {exc}") from exc

        if document is None:
            document = {}
        if not isinstance(document, dict):
            raise ConfigLoadError(f"Config file {self._path} must contain a mapping")

        try:
            config = TrackerConfig.model_validate(document)
        except ValidationError as exc:
            raise ConfigLoadError(f"Config validation error in {self._path}: {exc}") from exc

        if config.repositories_folder is not None:
            discovered = discover_repositories(config.repositories_folder)
            known = {repo.id for repo in config.repositories}
            added = [repo for repo in discovered if repo.id not in known]
            if added:
                self._logger.info(
                    "Discovered repositories",
                    extra={"folder": str(config.repositories_folder), "count": len(added)},
                )
            config.repositories = [*config.repositories, *added]

        return config


__all__ = ["ConfigLoadError", "ConfigLoader", "discover_repositories"]
