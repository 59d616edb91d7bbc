"""Coaching catalogue loader and checklist registry.

Loads the per-category checklists and the fixed-step question list from
config/coaching.yaml. The catalogue is cached after first load since it
does not change at runtime.
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import structlog
import yaml

from brandcoach.core.config import settings
from brandcoach.core.exceptions import ConfigurationError
from brandcoach.domain.models.category import (
    Category,
    CategoryConfig,
    CoachingCatalogue,
    FixedStep,
)

log = structlog.get_logger(__name__)

CATALOGUE_FILE = "coaching.yaml"

# Module-level cache keyed by resolved path
_cache: Dict[Path, CoachingCatalogue] = {}


def load_catalogue(config_dir: Optional[Path] = None) -> CoachingCatalogue:
    """Load the coaching catalogue from YAML.

    Args:
        config_dir: Override settings.config_dir (for testing)

    Returns:
        Validated CoachingCatalogue

    Raises:
        ConfigurationError: File missing or content invalid
    """
    path = ((config_dir or settings.config_dir) / CATALOGUE_FILE).resolve()
    if path in _cache:
        return _cache[path]

    if not path.exists():
        raise ConfigurationError(f"Coaching catalogue not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    try:
        catalogue = CoachingCatalogue(**data)
    except Exception as e:
        raise ConfigurationError(f"Invalid coaching catalogue {path}: {e}") from e

    unknown = [name for name in catalogue.categories if name not in Category._value2member_map_]
    if unknown:
        raise ConfigurationError(f"Unknown categories in {path}: {unknown}")

    _cache[path] = catalogue
    log.info(
        "coaching_catalogue_loaded",
        path=str(path),
        categories=len(catalogue.categories),
    )
    return catalogue


class ChecklistRegistry:
    """Read-only view of the catalogue: topics, labels and fixed steps.

    Categories absent from the catalogue return an empty checklist, which
    signals that completion percentage must come from the backend.
    """

    def __init__(self, catalogue: CoachingCatalogue):
        self._catalogue = catalogue

    @classmethod
    def from_config(cls, config_dir: Optional[Path] = None) -> "ChecklistRegistry":
        return cls(load_catalogue(config_dir))

    def _entry(self, category: Union[Category, str]) -> Optional[CategoryConfig]:
        key = category.value if isinstance(category, Category) else category
        return self._catalogue.categories.get(key)

    def topics(self, category: Union[Category, str]) -> List[str]:
        entry = self._entry(category)
        return [t.id for t in entry.checklist] if entry else []

    def label(self, category: Union[Category, str], topic_id: str) -> str:
        entry = self._entry(category)
        if entry:
            for topic in entry.checklist:
                if topic.id == topic_id:
                    return topic.label
        return topic_id

    def title(self, category: Union[Category, str]) -> str:
        entry = self._entry(category)
        if entry and entry.title:
            return entry.title
        return category.value if isinstance(category, Category) else category

    def fixed_steps(self, category: Union[Category, str]) -> List[FixedStep]:
        entry = self._entry(category)
        return list(entry.steps) if entry else []
