"""AI abilities — single prompt → parsed result transforms.

    improve_text(provider, text, tone)                → str   (original text on failure)
    generate_summary(provider, ...)                   → str   ("" on failure)
    suggest_tags(provider, text, max_tags)            → [SuggestedTag] ([] on failure)
    generate_experience_bullets(provider, description) → [str] ([] on failure)

None of these raise. Provider errors and unparseable output are logged (the
raw response included, truncated) and the neutral result is returned.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from typing import Any, Optional

from app.ai.provider import CompletionError, CompletionProvider, CompletionRequest
from app.constants import AI_MAX_BULLETS
from app.utils.logger import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_RAW_LOG_CHARS = 500

TONE_STYLES: dict[str, str] = {
    "concise": "brief, direct and impactful; focus on the key points",
    "formal": "professional and polished; suitable for corporate environments",
    "casual": "approachable and conversational while remaining professional",
    "senior": "authoritative and strategic; emphasize leadership and impact",
    "technical": "precise and detailed; highlight technical depth and expertise",
}


@dataclass(frozen=True)
class SuggestedTag:
    label: str
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ─── Provider helpers ─────────────────────────────────────────────────────────


def extract_json(text: str) -> Any:
    """Parse JSON from model output that may be fenced or padded with prose.

    Raises ValueError when no JSON document can be recovered.
    """
    candidate = text.strip()
    fenced = _FENCE_RE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    starts = [i for i in (candidate.find("{"), candidate.find("[")) if i != -1]
    if not starts:
        raise ValueError("no JSON object in response")
    start = min(starts)
    end = max(candidate.rfind("}"), candidate.rfind("]"))
    if end <= start:
        raise ValueError("no JSON object in response")
    return json.loads(candidate[start : end + 1])


async def complete_text(
    provider: CompletionProvider, request: CompletionRequest, ability: str
) -> Optional[str]:
    """Run a completion; None (logged) when the provider fails."""
    try:
        result = await provider.complete(request)
    except CompletionError as exc:
        logger.warning("ai_provider_failed", ability=ability, error=str(exc))
        return None
    return result.text


async def complete_json(
    provider: CompletionProvider, request: CompletionRequest, ability: str
) -> Optional[Any]:
    """Run a completion and parse JSON; None (logged with the raw text) on failure."""
    text = await complete_text(provider, request, ability)
    if text is None:
        return None
    try:
        return extract_json(text)
    except ValueError:
        logger.warning("ai_response_unparseable", ability=ability, raw=text[:_RAW_LOG_CHARS])
        return None


# ─── Abilities ────────────────────────────────────────────────────────────────


async def improve_text(
    provider: CompletionProvider, text: str, tone: str = "concise", context: Optional[str] = None
) -> str:
    """Rewrite ``text`` in ``tone``. ``context`` steers the rewrite (e.g. a target job)."""
    style = TONE_STYLES.get(tone, TONE_STYLES["concise"])
    system_prompt = (
        "You are an expert editor for professional portfolios and resumes.\n"
        "Rewrite the text to improve clarity, impact and professionalism.\n\n"
        f"Style: {style}\n\n"
        "Rules:\n"
        "- Keep every fact; never invent claims or achievements\n"
        "- Fix grammar and spelling\n"
        "- Improve word choice and sentence structure, remove redundancy\n"
        "- Return ONLY the rewritten text, with no commentary"
    )
    improved = await complete_text(
        provider,
        CompletionRequest(
            system_prompt=system_prompt,
            user_prompt=(
                f"Rewrite this text in a {tone} style:\n\n{text}"
                + (f"\n\nAdditional guidance: {context}" if context else "")
            ),
            temperature=0.4,
            max_tokens=512,
        ),
        "improve_text",
    )
    if improved is None or not improved.strip():
        return text
    return improved.strip()


async def generate_summary(
    provider: CompletionProvider,
    certifications_text: Optional[str] = None,
    experience_text: Optional[str] = None,
    skills_text: Optional[str] = None,
    max_words: int = 120,
) -> str:
    blocks = []
    if certifications_text:
        blocks.append(f"CERTIFICATIONS:\n{certifications_text}")
    if experience_text:
        blocks.append(f"EXPERIENCE:\n{experience_text}")
    if skills_text:
        blocks.append(f"SKILLS:\n{skills_text}")
    context = "\n\n".join(blocks) if blocks else "No content provided"

    system_prompt = (
        "You are an expert at writing professional portfolio summaries.\n"
        "Write one concise, first-person summary paragraph that highlights key "
        "qualifications and the candidate's unique value, in a professional tone, "
        f"in at most {max_words} words.\n\n"
        "Return ONLY the summary text."
    )
    summary = await complete_text(
        provider,
        CompletionRequest(
            system_prompt=system_prompt,
            user_prompt=(
                "Write a professional summary paragraph "
                f"(maximum {max_words} words) from this portfolio information:\n\n{context}"
            ),
            temperature=0.5,
            max_tokens=384,
        ),
        "generate_summary",
    )
    return summary.strip() if summary else ""


def _confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return min(1.0, max(0.0, float(value)))


async def suggest_tags(provider: CompletionProvider, text: str, max_tags: int = 5) -> list[SuggestedTag]:
    system_prompt = (
        "You suggest tags for a professional portfolio builder.\n"
        "Tags are short (1-3 words), relevant and industry-standard: technologies, "
        "skills, methodologies or domains.\n\n"
        "Respond with ONLY valid JSON in exactly this format:\n"
        '{"tags": [{"label": "tag-name", "confidence": 0.95}]}\n\n'
        f"Confidence is between 0 and 1. Give at most {max_tags} tags, highest confidence first."
    )
    parsed = await complete_json(
        provider,
        CompletionRequest(
            system_prompt=system_prompt,
            user_prompt=f"Suggest tags for this text:\n\n{text}\n\nReturn JSON only.",
            temperature=0.3,
            max_tokens=256,
        ),
        "suggest_tags",
    )
    items = parsed.get("tags") if isinstance(parsed, dict) else None
    if not isinstance(items, list):
        if parsed is not None:
            logger.warning("ai_response_unexpected_shape", ability="suggest_tags")
        return []

    tags: list[SuggestedTag] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        label = item.get("label")
        confidence = _confidence(item.get("confidence"))
        if isinstance(label, str) and label.strip() and confidence is not None:
            tags.append(SuggestedTag(label=label.strip(), confidence=confidence))
    return tags[:max_tags]


async def generate_experience_bullets(provider: CompletionProvider, description: str) -> list[str]:
    system_prompt = (
        "You are an expert resume writer focused on achievement-oriented bullet points.\n"
        "Turn the experience description into 3-6 bullets that start with strong action "
        "verbs, quantify results where the text allows, and stay concise and specific.\n\n"
        "Respond with ONLY valid JSON in exactly this format:\n"
        '{"bullets": ["First bullet", "Second bullet"]}'
    )
    parsed = await complete_json(
        provider,
        CompletionRequest(
            system_prompt=system_prompt,
            user_prompt=f"Convert this experience into 3-6 bullet points:\n\n{description}",
            temperature=0.4,
            max_tokens=512,
        ),
        "generate_experience_bullets",
    )
    bullets = parsed.get("bullets") if isinstance(parsed, dict) else None
    if not isinstance(bullets, list):
        if parsed is not None:
            logger.warning("ai_response_unexpected_shape", ability="generate_experience_bullets")
        return []
    return [b.strip() for b in bullets if isinstance(b, str) and b.strip()][:AI_MAX_BULLETS]
