"""
Unit tests for AI prompt variant generation.

Model replies are messy, so most of these check the JSON recovery passes.
"""
import json

import pytest

from longdoc.core.adapters import PromptPoolError
from longdoc.core.llm import BackendConfig
from longdoc.core.prompt_pool.variants import (
    build_generation_prompts,
    describe_similarity,
    generate_variations,
    normalize_variations,
    parse_variations_response,
)

VARIANT = {
    "name": "Precise",
    "systemPrompt": "You are a careful translator.",
    "userPromptTemplate": "Translate into ${targetLangName}:\n${content}",
    "description": "Literal wording",
}


class TestParseVariationsResponse:
    """Tests for parse_variations_response."""

    def test_clean_json(self):
        reply = json.dumps({"variations": [VARIANT]})
        assert parse_variations_response(reply) == [VARIANT]

    def test_think_block_and_code_fence(self):
        reply = "<think>Let me plan this.</think>\n```json\n" + json.dumps({"variations": [VARIANT]}) + "\n```"
        assert parse_variations_response(reply) == [VARIANT]

    def test_trailing_commas_and_raw_newlines(self):
        reply = (
            '{"variations": [{"name": "Loose", "systemPrompt": "line one\nline two", '
            '"userPromptTemplate": "${content}",},]}'
        )
        [variant] = parse_variations_response(reply)
        assert variant["systemPrompt"] == "line one\nline two"

    def test_object_embedded_in_prose(self):
        reply = "Sure! Here they are: " + json.dumps({"variations": [VARIANT, VARIANT]}) + " Enjoy."
        assert len(parse_variations_response(reply)) == 2

    def test_bare_list(self):
        assert parse_variations_response(json.dumps([VARIANT])) == [VARIANT]

    def test_single_variant_object(self):
        assert parse_variations_response(json.dumps(VARIANT)) == [VARIANT]

    @pytest.mark.parametrize("reply", ["", None, "I cannot help with that.", '{"something": "else"}'])
    def test_unparseable(self, reply):
        with pytest.raises(PromptPoolError):
            parse_variations_response(reply)


class TestNormalizeVariations:
    """Tests for normalize_variations."""

    def test_fresh_unselected_variants(self):
        [variant] = normalize_variations([VARIANT], base_id="gen")
        assert variant.id == "gen_0"
        assert variant.name == "Precise"
        assert variant.ai_generated is True
        assert variant.user_selected is None
        assert variant.is_active is False
        assert variant.is_eligible is False
        assert variant.description == "Literal wording"
        assert variant.created_at is not None

    def test_invalid_entries_are_skipped(self):
        raw = [VARIANT, {"name": "no prompts"}, "junk", dict(VARIANT, name="Second")]
        variants = normalize_variations(raw, base_id="gen")
        assert [v.id for v in variants] == ["gen_0", "gen_3"]

    def test_template_is_repaired(self):
        [variant] = normalize_variations([dict(VARIANT, userPromptTemplate="Translate this please.")], base_id="g")
        assert variant.user_prompt_template == (
            "Target language: ${targetLangName}\nTranslate this please.\n\nContent to translate:\n${content}"
        )

    def test_nothing_usable(self):
        with pytest.raises(PromptPoolError):
            normalize_variations([{"name": "x"}])
        with pytest.raises(PromptPoolError):
            normalize_variations({"variations": []})


class TestGenerationPrompts:
    """Tests for the generation prompt builders."""

    @pytest.mark.parametrize("similarity,word", [(0.2, "heavy"), (0.5, "moderate"), (0.7, "balanced"), (0.9, "light")])
    def test_describe_similarity(self, similarity, word):
        assert describe_similarity(similarity).startswith(word)

    def test_prompts_embed_reference_and_count(self):
        system_prompt, user_prompt = build_generation_prompts("REF SYSTEM", "REF USER ${content}", count=3)
        assert "produce 3 translation prompt variants" in system_prompt
        assert "REF SYSTEM" in user_prompt
        assert "REF USER ${content}" in user_prompt

    @pytest.mark.asyncio
    async def test_generate_variations(self, scripted_translator, pool):
        translator = scripted_translator([json.dumps({"variations": [VARIANT, dict(VARIANT, name="Other")]})])

        variants = await generate_variations(translator, BackendConfig(), "sys", "user ${content}", count=2)

        assert [v.name for v in variants] == ["Precise", "Other"]
        assert len(translator.calls) == 1

        pool.add_variations(variants)
        assert {p.id for p in pool.get_active_prompts()} == {'A', 'B'}
        pool.update_prompt(variants[0].id, user_selected=True, is_active=True)
        assert variants[0] in pool.get_active_prompts()
