"""Tests for the outline, query and writer agents and the citation audit."""

import json
from unittest.mock import AsyncMock

import pytest

from deep_research.agents import (
    FALLBACK_CHAPTERS,
    audit_citations,
    fallback_queries,
    generate_chapter_queries,
    generate_outline,
    load_json,
    repair_citations,
    write_chapter,
)
from deep_research.errors import ParseError, ProviderHttpError
from deep_research.models import ChapterFinding, Generation


def provider_returning(text, usage=7):
    provider = AsyncMock()
    provider.generate.return_value = Generation(text=text, usage=usage)
    return provider


class TestLoadJson:
    def test_plain_object(self):
        assert load_json('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert load_json('```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}

    def test_surrounding_prose(self):
        assert load_json('Sure! Here it is: ["x", "y"] Hope this helps.') == ["x", "y"]

    def test_earliest_bracket_wins(self):
        assert load_json('Result: {"queries": ["a"]}') == {"queries": ["a"]}

    @pytest.mark.parametrize("text", ["", "   ", "no json here", "{broken"])
    def test_undecodable(self, text):
        with pytest.raises(ParseError):
            load_json(text)


class TestOutline:
    @pytest.mark.asyncio
    async def test_well_formed(self):
        provider = provider_returning(json.dumps({"title": "Batteries", "chapters": ["A", "B", "C", "D"]}))

        outline, usage = await generate_outline(provider, "batteries", 1, "m", "2026-01-01")

        assert outline.title == "Batteries"
        assert outline.chapters == ["A", "B", "C", "D"]
        assert usage == 7
        prompt = provider.generate.call_args.args[0]
        assert "roughly 4 main chapters" in prompt
        assert provider.generate.call_args.kwargs["json_mode"] is True

    @pytest.mark.asyncio
    async def test_invalid_json_falls_back(self):
        provider = provider_returning("I cannot do that")

        outline, usage = await generate_outline(provider, "batteries", 2, "m", "2026-01-01")

        assert outline.title == "batteries"
        assert outline.chapters == FALLBACK_CHAPTERS
        assert usage == 0

    @pytest.mark.asyncio
    async def test_missing_chapters_keeps_title(self):
        provider = provider_returning(json.dumps({"title": "Only a title"}))

        outline, usage = await generate_outline(provider, "batteries", 2, "m", "2026-01-01")

        assert outline.title == "Only a title"
        assert outline.chapters == FALLBACK_CHAPTERS
        assert usage == 0

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self):
        provider = AsyncMock()
        provider.generate.side_effect = ProviderHttpError(503, "unavailable")

        with pytest.raises(ProviderHttpError):
            await generate_outline(provider, "batteries", 2, "m", "2026-01-01")


class TestChapterQueries:
    @pytest.mark.asyncio
    async def test_array_truncated_to_three(self):
        provider = provider_returning(json.dumps(["q1", "q2", "q3", "q4"]))

        queries, usage = await generate_chapter_queries(provider, "T", "Ch", [], "m", 2026)

        assert queries == ["q1", "q2", "q3"]
        assert usage == 7

    @pytest.mark.asyncio
    async def test_object_wrapping_accepted(self):
        provider = provider_returning(json.dumps({"queries": ["a", " ", "b"]}))

        queries, _ = await generate_chapter_queries(provider, "T", "Ch", [], "m", 2026)

        assert queries == ["a", "b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["not json", "[]", '{"queries": [1, 2]}'])
    async def test_fallback(self, text):
        provider = provider_returning(text)

        queries, _ = await generate_chapter_queries(provider, "T", "Ch", [], "m", 2026)

        assert queries == fallback_queries("T", "Ch") == ["T Ch data", "T statistics"]

    @pytest.mark.asyncio
    async def test_only_last_three_findings_used(self):
        provider = provider_returning('["q"]')
        findings = ["first", "second", "third", "fourth"]

        await generate_chapter_queries(provider, "T", "Ch", findings, "m", 2026)

        prompt = provider.generate.call_args.args[0]
        assert "first" not in prompt
        assert "second; third; fourth" in prompt
        assert '"2026" or "2025"' in prompt


class TestWriter:
    @pytest.mark.asyncio
    async def test_returns_text_verbatim(self):
        provider = provider_returning("## Chapter\n\nBody [1].", usage=40)
        findings = [ChapterFinding(query="q", summary="Solid facts", citations=[1, 2])]

        generation = await write_chapter(
            provider, "T", "Ch", findings, ["[1] One", "[2] Two"], "m", "2026-01-01", language="German"
        )

        assert generation.text == "## Chapter\n\nBody [1]."
        assert generation.usage == 40
        prompt = provider.generate.call_args.args[0]
        assert "Allowed citations: [1] [2]\nSolid facts" in prompt
        assert "[1] One\n[2] Two" in prompt
        assert "Write entirely in German" in prompt


class TestCitationAudit:
    def test_allowed_markers_pass(self):
        assert audit_citations("Claim [1] and [2, 3].", [1, 2, 3]) == []

    def test_unknown_numbers_reported(self):
        assert audit_citations("Claim [1], [4] and [1-3].", [1, 3]) == [2, 4]

    def test_huge_range_is_not_expanded(self):
        assert audit_citations("Revenue grew in [1-2000000].", [1]) == []

    def test_year_brackets_are_prose(self):
        assert audit_citations("Prices rose [2019-2021] and in [2024].", [1]) == []

    def test_repair_keeps_year_ranges(self):
        content = "Prices rose sharply [2019-2021] as shown [1]."
        assert repair_citations(content, [1]) == content

    def test_repair_keeps_unbounded_range(self):
        assert repair_citations("See [1-2000000].", [1]) == "See [1-2000000]."

    def test_malformed_marker_left_alone(self):
        assert audit_citations("Chain [1-2-3].", [1]) == []

    def test_links_and_code_ignored(self):
        content = "See [7](https://x.org).\n```python\nitems[9]\n```\nDone [1]."
        assert audit_citations(content, [1]) == []

    def test_repair_drops_unknown(self):
        repaired = repair_citations("A [1]. B [2, 9]. C [8].", [1, 2])
        assert repaired == "A [1]. B [2]. C ."

    def test_repair_leaves_code_alone(self):
        content = "```\nx[5]\n```\nText [5]."
        assert repair_citations(content, []) == "```\nx[5]\n```\nText ."
