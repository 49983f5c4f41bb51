"""Tests for the summarize pipeline step."""

import time
from unittest.mock import MagicMock, patch

import pytest

from conftest import ScriptedGenerator, word_count

from transcript_digest.shared import DigestConfig, DigestData, SUMMARY_MD
from transcript_digest.summarize import (
    DEFAULT_PROMPT_PATH,
    _get_best_transcript,
    _resolve_prompt_path,
    summarize_text,
    summarize_transcript,
)
from transcript_digest.tldr import TLDR_CHUNK_PROMPT, TLDR_COMBINE_PROMPT


@pytest.fixture(autouse=True)
def word_tokens():
    """Count words instead of tiktoken tokens so no encoding is loaded."""
    with patch("transcript_digest.summarize.token_length", word_count):
        yield


def _config(tmp_path, **kwargs):
    kwargs.setdefault("skip_existing", False)
    return DigestConfig(input_path=tmp_path / "meeting.txt", output_dir=tmp_path, **kwargs)


def _clean_file(tmp_path, text="We will ship the release on Friday."):
    path = tmp_path / "transcript_clean.txt"
    path.write_text(text + "\n")
    return path


# --- _get_best_transcript ---

class TestGetBestTranscript:
    def test_prefers_clean(self, tmp_path):
        raw = tmp_path / "raw.txt"
        raw.write_text("[00:00:00.000 --> 00:00:01.000] raw text\n")
        data = DigestData(raw_path=raw, clean_path=_clean_file(tmp_path, "clean text"))
        assert _get_best_transcript(data) == "clean text"

    def test_reconciles_raw_when_no_clean(self, tmp_path):
        raw = tmp_path / "raw.txt"
        raw.write_text(
            "[00:00:00.000 --> 00:00:01.000] hello\n"
            "[00:00:00.500 --> 00:00:02.000] hello world\n"
        )
        assert _get_best_transcript(DigestData(raw_path=raw)) == "hello world"

    def test_skips_empty_clean(self, tmp_path):
        raw = tmp_path / "raw.txt"
        raw.write_text("[00:00:00.000 --> 00:00:01.000] from raw\n")
        data = DigestData(raw_path=raw, clean_path=_clean_file(tmp_path, ""))
        assert _get_best_transcript(data) == "from raw"

    def test_returns_none_when_empty(self):
        assert _get_best_transcript(DigestData()) is None


# --- summarize_text ---

class TestSummarizeText:
    def test_density_uses_packaged_prompt(self, tmp_path):
        gen = ScriptedGenerator('[{"denser_summary": "dense"}]', "Combined.")
        result = summarize_text(_config(tmp_path), "Alice met Bob.", gen)

        assert result == "Combined."
        template, variables = gen.calls[0]
        assert template == DEFAULT_PROMPT_PATH.read_text()
        assert variables["content"] == "Alice met Bob."
        assert variables["content_category"] == "Audio Transcript"

    def test_density_custom_prompt_and_params(self, tmp_path):
        prompt = tmp_path / "mine.md"
        prompt.write_text("In {max_words} words, {content_category}: {content}")
        config = _config(tmp_path, prompt_path=prompt, max_words="40", content_category="Podcast")
        gen = ScriptedGenerator("Denser summary: d", "out")
        summarize_text(config, "text", gen)

        template, variables = gen.calls[0]
        assert template == prompt.read_text()
        assert variables["max_words"] == "40"
        assert variables["content_category"] == "Podcast"

    def test_density_chunking_follows_config(self, tmp_path):
        text = "\n\n".join(" ".join(f"{p}{i}" for i in range(30)) for p in "ab")
        config = _config(tmp_path, chunk_size=40, chunk_overlap=0)
        gen = ScriptedGenerator()
        summarize_text(config, text, gen)
        # two chunk calls, one combine
        assert len(gen.calls) == 3

    def test_tldr(self, tmp_path):
        gen = ScriptedGenerator("chunk summary", "Final Summary: short")
        result = summarize_text(_config(tmp_path, strategy="tldr"), "Alice met Bob.", gen)

        assert result == "Final Summary: short"
        assert [call[0] for call in gen.calls] == [TLDR_CHUNK_PROMPT, TLDR_COMBINE_PROMPT]


class TestResolvePromptPath:
    def test_default(self, tmp_path):
        assert _resolve_prompt_path(_config(tmp_path)) == DEFAULT_PROMPT_PATH
        assert DEFAULT_PROMPT_PATH.exists()

    def test_override(self, tmp_path):
        prompt = tmp_path / "p.md"
        assert _resolve_prompt_path(_config(tmp_path, prompt_path=prompt)) == prompt


# --- summarize_transcript ---

class TestSummarizeTranscript:
    def test_skips_when_disabled(self, tmp_path, capsys):
        data = DigestData(clean_path=_clean_file(tmp_path))
        summarize_transcript(_config(tmp_path, summarize=False), data, ScriptedGenerator())
        assert "Skipped (summarization disabled)" in capsys.readouterr().out
        assert data.summary_path is None

    def test_skips_when_no_transcript(self, tmp_path, capsys):
        gen = ScriptedGenerator()
        summarize_transcript(_config(tmp_path), DigestData(), gen)
        assert "No transcript available" in capsys.readouterr().out
        assert gen.calls == []
        assert not (tmp_path / SUMMARY_MD).exists()

    def test_dry_run(self, tmp_path, capsys):
        gen = ScriptedGenerator()
        data = DigestData(clean_path=_clean_file(tmp_path))
        summarize_transcript(_config(tmp_path, dry_run=True), data, gen)
        out = capsys.readouterr().out
        assert "[dry-run]" in out
        assert "summary.md" in out
        assert gen.calls == []
        assert not (tmp_path / SUMMARY_MD).exists()

    def test_reuses_existing(self, tmp_path, capsys):
        clean = _clean_file(tmp_path)
        time.sleep(0.05)
        summary = tmp_path / SUMMARY_MD
        summary.write_text("Existing summary\n")
        data = DigestData(clean_path=clean)
        gen = ScriptedGenerator()

        summarize_transcript(_config(tmp_path, skip_existing=True), data, gen)
        assert data.summary_path == summary
        assert gen.calls == []
        assert "Reusing" in capsys.readouterr().out

    def test_edited_transcript_regenerates(self, tmp_path):
        summary = tmp_path / SUMMARY_MD
        summary.write_text("Old summary\n")
        time.sleep(0.05)
        data = DigestData(clean_path=_clean_file(tmp_path))
        gen = ScriptedGenerator("Denser summary: new", "New summary")

        summarize_transcript(_config(tmp_path, skip_existing=True), data, gen)
        assert summary.read_text() == "New summary\n"

    def test_writes_summary(self, tmp_path, capsys):
        data = DigestData(clean_path=_clean_file(tmp_path))
        gen = ScriptedGenerator('[{"denser_summary": "Release ships Friday."}]',
                                "The release ships on Friday.")
        summarize_transcript(_config(tmp_path), data, gen)

        assert data.summary_path == tmp_path / SUMMARY_MD
        assert data.summary_path.read_text() == "The release ships on Friday.\n"
        assert "Summary saved" in capsys.readouterr().out

    @patch("transcript_digest.summarize.LLMGenerator")
    def test_default_generator_is_llm(self, mock_cls, tmp_path, capsys):
        mock_cls.return_value = MagicMock(return_value="Denser summary: x")
        config = _config(tmp_path, local_model="llama3.1")
        summarize_transcript(config, DigestData(clean_path=_clean_file(tmp_path)))

        mock_cls.assert_called_once_with(config)
        assert "Using model: llama3.1" in capsys.readouterr().out
        assert (tmp_path / SUMMARY_MD).exists()

    def test_generation_failure_propagates(self, tmp_path):
        data = DigestData(clean_path=_clean_file(tmp_path))
        gen = ScriptedGenerator(ConnectionError("connection refused"))
        with pytest.raises(ConnectionError):
            summarize_transcript(_config(tmp_path), data, gen)
        assert not (tmp_path / SUMMARY_MD).exists()
        assert data.summary_path is None
