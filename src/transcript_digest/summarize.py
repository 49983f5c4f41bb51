"""Transcript summarization stage using a configurable LLM backend."""

from pathlib import Path
from typing import Optional

from transcript_digest.shared import (
    tprint as print,
    SUMMARY_MD,
    DigestConfig,
    DigestData,
    _should_skip,
)
from transcript_digest.density import DensityParams, densify_summarize
from transcript_digest.generation import LLMGenerator, TextGenerator
from transcript_digest.reconcile import reconcile_transcript
from transcript_digest.tldr import tldr_summarize
from transcript_digest.tokens import token_length

DEFAULT_PROMPT_PATH = Path(__file__).parent / "prompts" / "chain_of_density.md"


def _resolve_prompt_path(config: DigestConfig) -> Path:
    return config.prompt_path or DEFAULT_PROMPT_PATH


def _density_params(config: DigestConfig) -> DensityParams:
    return DensityParams(
        content_category=config.content_category,
        entity_range=config.entity_range,
        max_words=config.max_words,
        iterations=config.iterations,
        max_relationship=config.max_relationship,
    )


def _get_best_transcript(data: DigestData) -> Optional[str]:
    """Return the best available transcript text.

    Prefers the reconciled transcript; otherwise reconciles the raw
    timestamped transcript on the fly.
    """
    if data.clean_path and data.clean_path.exists():
        text = data.clean_path.read_text().strip()
        if text:
            return text

    if data.raw_path and data.raw_path.exists():
        text = reconcile_transcript(data.raw_path.read_text()).strip()
        if text:
            return text

    return None


def summarize_text(config: DigestConfig, text: str, generate: TextGenerator) -> str:
    """Run the configured summarization strategy over text."""
    if config.strategy == "tldr":
        return tldr_summarize(text, generate, length_function=token_length)

    template = _resolve_prompt_path(config).read_text()
    return densify_summarize(
        text, template, generate,
        length_function=token_length,
        params=_density_params(config),
        chunk_size=config.chunk_size,
        chunk_overlap=config.chunk_overlap,
        group_budget=config.group_token_budget,
        verbose=config.verbose,
    )


def summarize_transcript(config: DigestConfig, data: DigestData,
                         generate: Optional[TextGenerator] = None) -> None:
    """Generate a summary of the transcript using the configured LLM."""
    print()
    print("[summarize] Generating summary...")

    if not config.summarize:
        print("  Skipped (summarization disabled)")
        return

    summary_path = config.output_dir / SUMMARY_MD

    # Collect inputs for DAG staleness check
    summary_inputs = [
        p for p in [data.clean_path, data.raw_path]
        if p and p.exists()
    ]
    if config.strategy == "density":
        summary_inputs.append(_resolve_prompt_path(config))

    if _should_skip(config, summary_path, "summarize transcript", *summary_inputs):
        if summary_path.exists():
            data.summary_path = summary_path
        return

    transcript_text = _get_best_transcript(data)
    if not transcript_text:
        print("  No transcript available to summarize, skipping")
        return

    if generate is None:
        generate = LLMGenerator(config)
        model = config.local_model if config.local else config.claude_model
        print(f"  Using model: {model}")

    word_count = len(transcript_text.split())
    print(f"  Transcript: {word_count:,} words, strategy: {config.strategy}")

    summary = summarize_text(config, transcript_text, generate)

    with open(summary_path, "w") as f:
        f.write(summary)
        f.write("\n")

    data.summary_path = summary_path
    print(f"  Summary saved: {summary_path.name} ({len(summary)} chars)")
