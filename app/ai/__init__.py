"""Folio AI layer: completion provider, abilities and agents.

    from app.ai import create_completion_provider, CompletionProvider
"""

from app.ai.provider import (
    CompletionError,
    CompletionProvider,
    CompletionRequest,
    CompletionResult,
    GroqProvider,
    NullCompletionProvider,
    create_completion_provider,
)

__all__ = [
    "CompletionError",
    "CompletionProvider",
    "CompletionRequest",
    "CompletionResult",
    "GroqProvider",
    "NullCompletionProvider",
    "create_completion_provider",
]
