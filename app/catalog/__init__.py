"""Template and theme catalog."""

from app.catalog.registry import (
    Template,
    Theme,
    get_template,
    get_theme,
    resolve_template,
    resolve_theme,
)

__all__ = [
    "Template",
    "Theme",
    "get_template",
    "get_theme",
    "resolve_template",
    "resolve_theme",
]
