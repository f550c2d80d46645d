"""
Template registry: one immutable configuration per (bank, layout).
"""
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping
import logging

import yaml

from ..models.template import TemplateConfig

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"
UNKNOWN_TEMPLATE = "unknown"


class TemplateNotFoundError(ValueError):
    """Raised when a template id is not registered."""


class UnknownStrategyError(ValueError):
    """Raised when a template names a strategy with no handler."""


def load_templates(templates_dir: Path = TEMPLATES_DIR) -> List[TemplateConfig]:
    """
    Load and validate every template YAML file in a directory.

    Args:
        templates_dir: Directory containing ``*.yaml`` template files

    Returns:
        Templates sorted by (priority, id)

    Raises:
        ValueError: On a duplicate template id or an invalid template file
    """
    templates: Dict[str, TemplateConfig] = {}

    if not templates_dir.exists():
        logger.warning(f"Templates directory not found: {templates_dir}")
        return []

    for yaml_file in sorted(templates_dir.glob("*.yaml")):
        with open(yaml_file, 'r', encoding='utf-8') as f:
            template_data = yaml.safe_load(f) or {}

        template = TemplateConfig.model_validate(template_data)
        if template.id in templates:
            raise ValueError(f"Duplicate template id {template.id!r} in {yaml_file.name}")

        templates[template.id] = template
        logger.debug(f"Loaded template: {template.id}")

    return sorted(templates.values(), key=lambda t: (t.priority, t.id))


class TemplateRegistry:
    """Read-only lookup of templates by id, in detection order."""

    def __init__(self, templates: List[TemplateConfig]):
        self._ordered = tuple(templates)
        by_id = {}
        for template in templates:
            if template.id in by_id:
                raise ValueError(f"Duplicate template id: {template.id}")
            by_id[template.id] = template
        self._by_id: Mapping[str, TemplateConfig] = MappingProxyType(by_id)

    def get(self, template_id: str) -> TemplateConfig:
        """Get a template by id, raising ``TemplateNotFoundError`` if missing."""
        template = self._by_id.get(template_id)
        if template is None:
            raise TemplateNotFoundError(f"Template not found: {template_id}")
        return template

    def find(self, template_id: str):
        return self._by_id.get(template_id)

    def list_templates(self) -> List[str]:
        """List all template ids in detection order."""
        return [t.id for t in self._ordered]

    def __iter__(self):
        return iter(self._ordered)

    def __len__(self):
        return len(self._ordered)

    def __contains__(self, template_id):
        return template_id in self._by_id


# Built once at import, read-only afterwards.
REGISTRY = TemplateRegistry(load_templates())


def get_template(template_id: str) -> TemplateConfig:
    """Convenience lookup on the default registry."""
    return REGISTRY.get(template_id)
