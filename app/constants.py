"""Folio constants.

Limits and defaults shared between the validation schemas, the catalog and
the AI layer. Values that operators are expected to tune live in
``app.config`` instead.
"""

from __future__ import annotations

# ─── Catalog defaults ─────────────────────────────────────────────────────────

DEFAULT_TEMPLATE_ID: str = "modern-minimal"
DEFAULT_THEME_ID: str = "light-blue"

# ─── Field limits ─────────────────────────────────────────────────────────────

PORTFOLIO_TITLE_MAX: int = 200
PORTFOLIO_DESCRIPTION_MAX: int = 1000
SLUG_MAX: int = 100
SECTION_TITLE_MAX: int = 200
CERT_TITLE_MAX: int = 200
CERT_ORG_MAX: int = 200
CERT_CREDENTIAL_ID_MAX: int = 200
CERT_DESCRIPTION_MAX: int = 2000
TAG_NAME_MAX: int = 50

# Pagination bounds for list endpoints
LIST_LIMIT_MAX: int = 100
LIST_LIMIT_DEFAULT: int = 50

# ─── AI limits ────────────────────────────────────────────────────────────────

AI_TEXT_MAX: int = 10_000
AI_SUMMARY_MIN_WORDS: int = 50
AI_SUMMARY_MAX_WORDS: int = 500
AI_SUMMARY_DEFAULT_WORDS: int = 150
AI_MAX_TAGS: int = 20
AI_DEFAULT_TAGS: int = 5
AI_JOB_DESCRIPTION_MIN: int = 50
AI_JOB_DESCRIPTION_MAX: int = 20_000
AI_RESUME_MIN: int = 100
AI_RESUME_MAX: int = 50_000
AI_MAX_BULLETS: int = 6

DEFAULT_AI_MODEL: str = "llama-3.1-8b-instant"
DEFAULT_AI_BASE_URL: str = "https://api.groq.com/openai/v1"
DEFAULT_AI_TEMPERATURE: float = 0.3
DEFAULT_AI_MAX_TOKENS: int = 512

# ─── Ordering ─────────────────────────────────────────────────────────────────

# Attempts for append when a concurrent insert takes the same display_order
SECTION_APPEND_ATTEMPTS: int = 3

# ─── Auth ─────────────────────────────────────────────────────────────────────

SESSION_COOKIE_NAME: str = "sb-access-token"
ANONYMOUS_USER_ID: str = "anonymous"
