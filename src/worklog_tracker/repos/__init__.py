"""Repository configuration models and loader exports."""

from .loader import ConfigLoadError, ConfigLoader, discover_repositories
from .models import DEFAULT_TASK_ID_REGEX, RepoConfig, TrackerConfig

__all__ = [
    "DEFAULT_TASK_ID_REGEX",
    "ConfigLoadError",
    "ConfigLoader",
    "RepoConfig",
    "TrackerConfig",
    "discover_repositories",
]
