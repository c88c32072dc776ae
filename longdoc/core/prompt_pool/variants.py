"""
AI generation of prompt variants.

An LLM is asked to rewrite a reference prompt pair into N same-style
variants. Models rarely return clean JSON, so parsing goes through several
recovery passes before giving up.
"""
import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

from longdoc.core.adapters.exceptions import PromptPoolError
from longdoc.core.llm.base import BackendConfig
from longdoc.core.prompt_pool.models import HealthStatus, PromptVariant, utc_now

logger = logging.getLogger(__name__)

DEFAULT_GENERATION_COUNT = 10
DEFAULT_SIMILARITY = 0.7

TARGET_LANG_TOKEN = '${targetLangName}'
CONTENT_TOKEN = '${content}'

_THINK_RE = re.compile(r'<think>.*?</think>', re.IGNORECASE | re.DOTALL)
_FENCE_BLOCK_RE = re.compile(r'```(?:json)?\s*(.*?)```', re.IGNORECASE | re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r',\s*([}\]])')


def describe_similarity(similarity: float) -> str:
    """How far a rewrite may drift from the reference wording."""
    if similarity <= 0.3:
        return "heavy rewording (word order and phrasing differ markedly)"
    if similarity <= 0.5:
        return "moderate rewording (same constraints, visibly different phrasing)"
    if similarity <= 0.7:
        return "balanced rewording (overall expression changes somewhat)"
    return "light rewording (small phrasing and ordering tweaks)"


def build_generation_prompts(reference_system: str, reference_user: str,
                             count: int = DEFAULT_GENERATION_COUNT,
                             similarity: float = DEFAULT_SIMILARITY):
    """
    Build the (system, user) prompts asking a model for prompt variants.

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    level = f"{similarity} ({describe_similarity(similarity)})"
    system_prompt = f"""You are a senior prompt engineer. Rewrite translation prompts into same-style variants without changing their style or constraints.

Task: based on the reference prompts, produce {count} translation prompt variants with the same style, constraints and output requirements. Only wording, word order, sentence structure and paragraph organisation may change.

Requirements:
1. Return JSON with a "variations" array.
2. Each variant has: name, systemPrompt, userPromptTemplate, description.
3. Similarity: {level}. Style and constraints must stay identical.
4. userPromptTemplate must contain {TARGET_LANG_TOKEN} and {CONTENT_TOKEN} exactly once each.
5. Never change the tone, rules, terminology preferences or output format of the reference.
6. Output strict single-line JSON only: no Markdown fences, comments or extra text."""

    user_prompt = f"""Reference prompts (keep style, rules and output requirements):

**System prompt:**
{reference_system}

**User prompt template:**
{reference_user}

Generate {count} same-style rewrites. Similarity: {level}.
Each variant must carry systemPrompt and userPromptTemplate, and every userPromptTemplate must contain {TARGET_LANG_TOKEN} and {CONTENT_TOKEN} exactly once. Output single-line JSON only."""
    return system_prompt, user_prompt


def _repair_json(raw: str) -> str:
    """Drop trailing commas and escape raw newlines inside string literals."""
    text = _TRAILING_COMMA_RE.sub(r'\1', raw)
    out = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            elif ch in '\r\n':
                out.append('\\n')
                continue
        elif ch == '"':
            in_string = True
        out.append(ch)
    return ''.join(out)


def _try_load(candidate: str) -> Optional[Any]:
    for text in (candidate, _repair_json(candidate)):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            continue
    return None


def _as_variations(obj: Any) -> Optional[List[Dict[str, Any]]]:
    if isinstance(obj, list):
        return obj
    if isinstance(obj, dict):
        if isinstance(obj.get('variations'), list):
            return obj['variations']
        if obj.get('name') and obj.get('systemPrompt') and obj.get('userPromptTemplate'):
            return [obj]
    return None


def _balanced_object(text: str, start: int) -> Optional[str]:
    depth = 0
    for i in range(start, len(text)):
        if text[i] == '{':
            depth += 1
        elif text[i] == '}':
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def parse_variations_response(text: str) -> List[Dict[str, Any]]:
    """
    Recover the list of raw variation dicts from a model reply.

    Tries, in order: the whole reply, each fenced block, the object around
    a ``"variations"`` key, and the widest ``{...}`` span.

    Raises:
        PromptPoolError: When nothing parseable is found
    """
    if not text or not isinstance(text, str):
        raise PromptPoolError("Variant generation returned an empty response")

    cleaned = _THINK_RE.sub('', text).strip()

    candidates = [cleaned]
    candidates.extend(block.strip() for block in _FENCE_BLOCK_RE.findall(cleaned))

    key_idx = cleaned.find('"variations"')
    if key_idx != -1:
        start = cleaned.rfind('{', 0, key_idx)
        if start != -1:
            balanced = _balanced_object(cleaned, start)
            if balanced:
                candidates.append(balanced)

    first, last = cleaned.find('{'), cleaned.rfind('}')
    if first != -1 and last > first:
        candidates.append(cleaned[first:last + 1])

    for candidate in candidates:
        variations = _as_variations(_try_load(candidate))
        if variations is not None:
            return variations

    logger.error(f"Could not parse variant generation response: {text[:200]}")
    raise PromptPoolError("Variant generation did not return valid JSON")


def _repair_template(template: str) -> str:
    if TARGET_LANG_TOKEN not in template:
        template = f"Target language: {TARGET_LANG_TOKEN}\n" + template
    if CONTENT_TOKEN not in template:
        template = template.rstrip() + f"\n\nContent to translate:\n{CONTENT_TOKEN}"
    return template


def normalize_variations(raw: List[Dict[str, Any]], base_id: Optional[str] = None) -> List[PromptVariant]:
    """
    Validate raw variation dicts and turn them into fresh, unselected variants.

    Entries missing a name, system prompt or user template are skipped.

    Raises:
        PromptPoolError: When no entry is usable
    """
    if not isinstance(raw, list):
        raise PromptPoolError("Generated variations are not a list")

    base_id = base_id or str(int(time.time() * 1000))
    now = utc_now()
    variants = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict) or not (
                item.get('name') and item.get('systemPrompt') and item.get('userPromptTemplate')):
            logger.warning(f"Skipping invalid generated variant #{index}")
            continue
        variants.append(PromptVariant(
            id=f"{base_id}_{index}",
            name=str(item['name']),
            system_prompt=str(item['systemPrompt']),
            user_prompt_template=_repair_template(str(item['userPromptTemplate'])),
            description=str(item.get('description') or ''),
            category='general',
            created_at=now,
            is_active=False,
            user_selected=None,
            ai_generated=True,
            health_status=HealthStatus(),
        ))

    if not variants:
        raise PromptPoolError("No valid prompt variants were generated")
    return variants


async def generate_variations(translator, backend: BackendConfig,
                              reference_system: str, reference_user: str,
                              count: int = DEFAULT_GENERATION_COUNT,
                              similarity: float = DEFAULT_SIMILARITY) -> List[PromptVariant]:
    """
    Ask a model for same-style rewrites of a reference prompt pair.

    The returned variants are not registered anywhere; pass them to
    ``PromptPool.add_variations`` and select them to put them in service.
    """
    system_prompt, user_prompt = build_generation_prompts(reference_system, reference_user, count, similarity)
    reply = await translator.translate(system_prompt, user_prompt, backend)
    variants = normalize_variations(parse_variations_response(reply))
    logger.info(f"Generated {len(variants)} prompt variant(s)")
    return variants
