"""Tests for tldr.py — map-reduce summarization."""

import pytest

from conftest import ScriptedGenerator, word_count

from transcript_digest.tldr import (
    COLLAPSE_TOKEN_BUDGET,
    TLDR_CHUNK_PROMPT,
    TLDR_COMBINE_PROMPT,
    pack_under_budget,
    tldr_summarize,
)


def _paragraphs(*prefixes, n=40):
    return [" ".join(f"{p}{i}" for i in range(n)) for p in prefixes]


class TestTldrPrompts:
    def test_chunk_prompt_placeholder(self):
        assert "{text}" in TLDR_CHUNK_PROMPT
        assert "{summaries}" not in TLDR_CHUNK_PROMPT

    def test_combine_prompt_placeholder(self):
        assert "{summaries}" in TLDR_COMBINE_PROMPT
        assert "Final Summary:" in TLDR_COMBINE_PROMPT

    def test_collapse_budget(self):
        assert COLLAPSE_TOKEN_BUDGET == 2000


class TestTldrSummarize:
    def test_empty_text_makes_no_calls(self):
        gen = ScriptedGenerator()
        assert tldr_summarize("", gen, length_function=word_count) == ""
        assert gen.calls == []

    def test_single_chunk(self):
        gen = ScriptedGenerator("Chunk (1 of 1): they met.", "  Final Summary: they met.  ")
        result = tldr_summarize("They met at noon.", gen, length_function=word_count)

        assert result == "Final Summary: they met."
        assert gen.calls == [
            (TLDR_CHUNK_PROMPT, {"text": "They met at noon."}),
            (TLDR_COMBINE_PROMPT, {"summaries": "Chunk (1 of 1): they met."}),
        ]

    def test_no_collapse_under_budget(self):
        text = "\n\n".join(_paragraphs("a", "b", "c"))
        gen = ScriptedGenerator("one", "two", "three", "final")
        result = tldr_summarize(text, gen, length_function=word_count,
                                chunk_size=50, chunk_overlap=0)

        assert result == "final"
        assert len(gen.calls) == 4
        assert gen.calls[-1] == (TLDR_COMBINE_PROMPT, {"summaries": "one\n\ntwo\n\nthree"})

    def test_collapse_once_over_budget(self):
        text = "\n\n".join(_paragraphs("a", "b", "c"))
        gen = ScriptedGenerator(
            "alpha beta gamma", "delta epsilon zeta", "eta theta iota",
            "first half", "second half", "final",
        )
        result = tldr_summarize(text, gen, length_function=word_count,
                                chunk_size=50, chunk_overlap=0, collapse_budget=6)

        assert result == "final"
        assert [call[0] for call in gen.calls] == [TLDR_CHUNK_PROMPT] * 3 + [TLDR_COMBINE_PROMPT] * 3
        assert gen.calls[3][1] == {"summaries": "alpha beta gamma\n\ndelta epsilon zeta"}
        assert gen.calls[4][1] == {"summaries": "eta theta iota"}
        assert gen.calls[5][1] == {"summaries": "first half\n\nsecond half"}

    def test_chunks_in_order(self):
        paragraphs = _paragraphs("x", "y")
        gen = ScriptedGenerator()
        tldr_summarize("\n\n".join(paragraphs), gen, length_function=word_count,
                       chunk_size=50, chunk_overlap=0)
        assert [call[1]["text"] for call in gen.calls[:2]] == paragraphs

    def test_generation_failure_propagates(self):
        gen = ScriptedGenerator("ok", RuntimeError("model unloaded"))
        with pytest.raises(RuntimeError, match="model unloaded"):
            tldr_summarize("short text", gen, length_function=word_count)


class TestPackUnderBudget:
    def test_batches_never_exceed_budget(self):
        summaries = ["a b c", "d e f", "g h", "i j k l"]
        batches = pack_under_budget(summaries, word_count, budget=6)
        assert batches == [["a b c", "d e f"], ["g h", "i j k l"]]
        assert all(word_count("\n\n".join(b)) <= 6 for b in batches)

    def test_item_that_would_cross_starts_new_batch(self):
        batches = pack_under_budget(["one two", "three four five", "six"], word_count, budget=4)
        assert batches == [["one two"], ["three four five", "six"]]

    def test_oversized_summary_alone(self):
        big = " ".join(f"w{i}" for i in range(10))
        assert pack_under_budget(["x", big, "y"], word_count, budget=5) == [["x"], [big], ["y"]]

    def test_empty(self):
        assert pack_under_budget([], word_count) == []
