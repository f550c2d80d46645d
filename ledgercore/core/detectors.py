"""
Template detection from raw statement text.
"""
from typing import List, Optional
import logging

from .anchors import find_terms_window, split_lines, text_contains_anchor
from .registry import REGISTRY, UNKNOWN_TEMPLATE, TemplateNotFoundError, TemplateRegistry
from ..models.template import TemplateConfig

logger = logging.getLogger(__name__)


class TemplateDetector:
    """Detects which template matches a statement's extracted text."""

    def __init__(self, registry: TemplateRegistry = None):
        self.registry = registry or REGISTRY

    def detect_template(self, text: str) -> str:
        """
        Detect which template matches the text.

        Templates are tried in registry order; the first one matching either
        by compacted header anchor or by keyword proximity wins.

        Args:
            text: Raw extracted statement text

        Returns:
            Template id if found, ``"unknown"`` otherwise
        """
        if not text or not text.strip():
            logger.warning("Empty text, cannot detect template")
            return UNKNOWN_TEMPLATE

        lines = split_lines(text)
        for template in self.registry:
            if self._matches_template(text, lines, template):
                logger.info(f"Text matches template: {template.id}")
                return template.id

        logger.warning("No matching template found")
        return UNKNOWN_TEMPLATE

    def _matches_template(self, text: str, lines: List[str], template: TemplateConfig) -> bool:
        """
        Check if text matches a template configuration.

        Args:
            text: Raw text
            lines: Raw text split into lines
            template: Template configuration

        Returns:
            True if template matches, False otherwise
        """
        anchor = text_contains_anchor(text, template.header_anchors)
        if anchor:
            logger.debug(f"{template.id}: header anchor '{anchor}' found")
            return True

        detect = template.detect
        if not detect.keywords:
            return False

        window = find_terms_window(lines, detect.keywords, detect.window_size, detect.fuzzy_threshold)
        if window:
            logger.debug(f"{template.id}: keywords found near line {window.line_index + 1}")
            return True

        return False

    def get_template(self, template_id: str) -> Optional[TemplateConfig]:
        """Get template configuration by ID."""
        return self.registry.find(template_id)

    def list_templates(self) -> List[str]:
        """List all available template IDs."""
        return self.registry.list_templates()


def detect_template(text: str) -> str:
    """
    Convenience function to detect the template for statement text.

    Args:
        text: Raw extracted statement text

    Returns:
        Template ID if found, ``"unknown"`` otherwise
    """
    detector = TemplateDetector()
    return detector.detect_template(text)


def detect_template_or_raise(text: str) -> TemplateConfig:
    """Detect a template and treat ``"unknown"`` as a hard stop."""
    detector = TemplateDetector()
    template_id = detector.detect_template(text)
    if template_id == UNKNOWN_TEMPLATE:
        raise TemplateNotFoundError("No safe parse strategy: template is unknown")
    return detector.registry.get(template_id)


def validate_template_match(text: str, template_id: str) -> bool:
    """
    Validate that text matches a specific template.

    Args:
        text: Raw extracted statement text
        template_id: Template ID to validate against

    Returns:
        True if the text matches the template, False otherwise
    """
    detector = TemplateDetector()
    template = detector.get_template(template_id)

    if not template:
        logger.error(f"Template not found: {template_id}")
        return False

    return detector._matches_template(text, split_lines(text), template)
