"""Static template and theme catalog.

Lookups come in two flavours:
  get_template(id) / get_theme(id)          → None for unknown ids (catalog routes 404)
  resolve_template(id) / resolve_theme(id)  → default for unknown or empty ids
                                             (rendering never fails on a stale id)

The AI agents speak in layouts ("timeline") and styles ("creative");
template_for_layout() and theme_for_style() map those onto catalog ids.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional

from app.constants import DEFAULT_TEMPLATE_ID, DEFAULT_THEME_ID

LAYOUTS = ("single-column", "two-column", "timeline", "grid")


@dataclass(frozen=True)
class Template:
    id: str
    name: str
    description: str
    supported_sections: tuple[str, ...]
    layout: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["supported_sections"] = list(self.supported_sections)
        return data


@dataclass(frozen=True)
class ThemeColors:
    primary: str
    secondary: str
    background: str
    text: str


@dataclass(frozen=True)
class ThemeTypography:
    heading_font: str
    body_font: str


@dataclass(frozen=True)
class ThemeSpacing:
    base: int


@dataclass(frozen=True)
class Theme:
    id: str
    name: str
    colors: ThemeColors
    typography: ThemeTypography
    spacing: ThemeSpacing

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_ALL_SECTIONS = ("summary", "skills", "work_experience", "projects", "certifications", "custom")

TEMPLATES: tuple[Template, ...] = (
    Template(
        id="modern-minimal",
        name="Modern Minimal",
        description="A clean, single-column layout that keeps the focus on your work.",
        supported_sections=_ALL_SECTIONS,
        layout="single-column",
    ),
    Template(
        id="professional",
        name="Professional",
        description="Two columns with a sidebar for skills and contact details.",
        supported_sections=_ALL_SECTIONS,
        layout="two-column",
    ),
    Template(
        id="timeline",
        name="Timeline",
        description="A chronological layout that emphasizes career progression.",
        supported_sections=("summary", "work_experience", "projects", "certifications", "custom"),
        layout="timeline",
    ),
    Template(
        id="grid-showcase",
        name="Grid Showcase",
        description="A card grid suited to projects and visual work.",
        supported_sections=("summary", "projects", "skills", "certifications", "custom"),
        layout="grid",
    ),
)

THEMES: tuple[Theme, ...] = (
    Theme(
        id="light-blue",
        name="Light Blue",
        colors=ThemeColors(primary="#3b82f6", secondary="#8b5cf6", background="#ffffff", text="#1f2937"),
        typography=ThemeTypography(heading_font="Inter", body_font="Inter"),
        spacing=ThemeSpacing(base=16),
    ),
    Theme(
        id="dark-slate",
        name="Dark Slate",
        colors=ThemeColors(primary="#10b981", secondary="#06b6d4", background="#0f172a", text="#f1f5f9"),
        typography=ThemeTypography(heading_font="Inter", body_font="Inter"),
        spacing=ThemeSpacing(base=16),
    ),
    Theme(
        id="warm-sunset",
        name="Warm Sunset",
        colors=ThemeColors(primary="#f59e0b", secondary="#ef4444", background="#fffbeb", text="#78350f"),
        typography=ThemeTypography(heading_font="Merriweather", body_font="Open Sans"),
        spacing=ThemeSpacing(base=18),
    ),
    Theme(
        id="elegant-purple",
        name="Elegant Purple",
        colors=ThemeColors(primary="#8b5cf6", secondary="#ec4899", background="#faf5ff", text="#4c1d95"),
        typography=ThemeTypography(heading_font="Playfair Display", body_font="Lato"),
        spacing=ThemeSpacing(base=16),
    ),
    Theme(
        id="ocean-teal",
        name="Ocean Teal",
        colors=ThemeColors(primary="#14b8a6", secondary="#0ea5e9", background="#f0fdfa", text="#134e4a"),
        typography=ThemeTypography(heading_font="Montserrat", body_font="Roboto"),
        spacing=ThemeSpacing(base=16),
    ),
)

_TEMPLATES_BY_ID = {t.id: t for t in TEMPLATES}
_THEMES_BY_ID = {t.id: t for t in THEMES}

_TEMPLATE_BY_LAYOUT = {t.layout: t.id for t in TEMPLATES}

# Style vocabulary used in AI prompts → catalog theme id
_THEME_BY_STYLE = {
    "professional": "light-blue",
    "modern": "dark-slate",
    "creative": "warm-sunset",
    "elegant": "elegant-purple",
    "minimal": "ocean-teal",
}
THEME_STYLES = tuple(_THEME_BY_STYLE)

assert DEFAULT_TEMPLATE_ID in _TEMPLATES_BY_ID, "default template missing from catalog"
assert DEFAULT_THEME_ID in _THEMES_BY_ID, "default theme missing from catalog"


def list_templates() -> list[Template]:
    return list(TEMPLATES)


def list_themes() -> list[Theme]:
    return list(THEMES)


def get_template(template_id: str) -> Optional[Template]:
    return _TEMPLATES_BY_ID.get(template_id)


def get_theme(theme_id: str) -> Optional[Theme]:
    return _THEMES_BY_ID.get(theme_id)


def resolve_template(template_id: Optional[str]) -> Template:
    return _TEMPLATES_BY_ID.get(template_id or "", _TEMPLATES_BY_ID[DEFAULT_TEMPLATE_ID])


def resolve_theme(theme_id: Optional[str]) -> Theme:
    return _THEMES_BY_ID.get(theme_id or "", _THEMES_BY_ID[DEFAULT_THEME_ID])


def template_for_layout(value: Optional[str]) -> str:
    """Catalog id for a layout name; catalog ids pass through unchanged."""
    if value in _TEMPLATES_BY_ID:
        return value  # type: ignore[return-value]
    return _TEMPLATE_BY_LAYOUT.get(value or "", DEFAULT_TEMPLATE_ID)


def theme_for_style(value: Optional[str]) -> str:
    """Catalog id for a style name; catalog ids pass through unchanged."""
    if value in _THEMES_BY_ID:
        return value  # type: ignore[return-value]
    return _THEME_BY_STYLE.get((value or "").lower(), DEFAULT_THEME_ID)
