"""
Shared types and utilities for the transcript digest pipeline.

Contains DigestConfig, DigestData, and utility functions used by
cli.py, reconcile.py, summarize.py and the summarizer modules.
"""

import json
import os
import time
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

import builtins


def tprint(*args, **kwargs):
    """Print with [HH:MM:SS] timestamp prefix.

    Skips the timestamp for carriage-return progress lines (end != newline)
    so that in-place progress updates remain clean.
    """
    if kwargs.get("end", "\n") != "\n":
        builtins.print(*args, flush=True, **kwargs)
        return
    stamp = time.strftime("[%H:%M:%S]")
    builtins.print(stamp, *args, flush=True, **kwargs)


print = tprint

# Summarization strategies selectable with --strategy
STRATEGIES = ["density", "tldr"]


@dataclass
class DigestConfig:
    """Configuration for the transcript digest pipeline."""
    input_path: Path
    output_dir: Path
    steps: Optional[list] = None  # Run only these pipeline steps (None = all)
    skip_existing: bool = True
    dry_run: bool = False  # Show what would be done without doing it
    verbose: bool = False
    stream_log: bool = False  # Input is a raw streaming-recognizer log with "t0 = N ms" headers
    # Reconciliation
    containment_tolerance_ms: int = 100
    # Summarization
    summarize: bool = True
    strategy: str = "density"
    prompt_path: Optional[Path] = None  # Chain-of-density template (None = packaged default)
    content_category: str = "Audio Transcript"
    entity_range: str = "1-3"
    max_words: str = "80"
    iterations: str = "2"
    max_relationship: str = "4"
    chunk_size: int = 2048  # tokens per density chunk
    chunk_overlap: int = 200  # tokens shared by neighbouring chunks
    group_token_budget: int = 1024  # tokens per summary group before reduction
    # LLM backend: local OpenAI-compatible server (default) vs Anthropic API
    local: bool = True
    local_model: str = "qwen2.5"
    ollama_base_url: str = "http://localhost:11434/v1/"
    api_key: Optional[str] = None
    claude_model: str = "claude-sonnet-4-20250514"  # ignored when local=True
    max_tokens: int = 4096
    api_max_retries: int = 5
    api_initial_backoff: int = 5  # seconds
    api_timeout: float = 120.0  # seconds per API attempt


# Standard output filenames
TRANSCRIPT_REBASED_TXT = "transcript_rebased.txt"
TRANSCRIPT_CLEAN_TXT = "transcript_clean.txt"
TRANSCRIPT_CLEAN_TIMED_TXT = "transcript_clean_timed.txt"
SUMMARY_MD = "summary.md"
RUN_JSON = "run.json"


@dataclass
class DigestData:
    """Artefacts produced during pipeline execution."""
    raw_path: Optional[Path] = None  # Timestamped transcript fed to the reconciler
    clean_path: Optional[Path] = None  # Plain reconciled transcript
    clean_timed_path: Optional[Path] = None  # Reconciled transcript with timestamps
    summary_path: Optional[Path] = None
    segment_counts: dict = field(default_factory=dict)  # {"parsed": n, "kept": m}


def is_up_to_date(output: Path, *inputs: Path) -> bool:
    """Check if output file is newer than all input files (make-style)."""
    if not output.exists():
        return False
    output_mtime = output.stat().st_mtime
    for inp in inputs:
        if inp and inp.exists() and inp.stat().st_mtime > output_mtime:
            return False
    return True


class _NormalizedResponse:
    """Wraps an OpenAI-compatible response to match the Anthropic response shape.

    Downstream code accesses message.content[0].text and message.usage.input_tokens,
    so this adapter translates the OpenAI format to match.
    """

    def __init__(self, openai_response):
        text = openai_response.choices[0].message.content or ""
        self.content = [type('Block', (), {'text': text})()]
        usage = openai_response.usage
        self.usage = type('Usage', (), {
            'input_tokens': usage.prompt_tokens or 0 if usage else 0,
            'output_tokens': usage.completion_tokens or 0 if usage else 0,
        })()


def create_llm_client(config: DigestConfig):
    """Create either an Anthropic or OpenAI-compatible (Ollama) client."""
    if config.local:
        from openai import OpenAI
        return OpenAI(base_url=config.ollama_base_url, api_key="ollama")
    else:
        import anthropic
        api_key = config.api_key or os.environ.get("ANTHROPIC_API_KEY")
        return anthropic.Anthropic(api_key=api_key)


def llm_call_with_retry(client, config: DigestConfig, **kwargs) -> object:
    """Call the LLM with exponential backoff on transient transport errors.

    Supports both Anthropic and OpenAI-compatible (Ollama) clients.
    Returns a response with .content[0].text and .usage attributes.
    Once retries are exhausted the client's own exception is re-raised.
    """
    def _retry_with_backoff(call_fn, timeout_exc, status_exc, retryable_codes, label):
        delay = config.api_initial_backoff
        for attempt in range(1, config.api_max_retries + 1):
            try:
                return call_fn()
            except timeout_exc:
                if attempt < config.api_max_retries:
                    print(f"    {label} timeout, retrying in {delay}s (attempt {attempt}/{config.api_max_retries})...")
                    time.sleep(delay)
                    delay *= 2
                else:
                    raise
            except status_exc as e:
                if e.status_code in retryable_codes and attempt < config.api_max_retries:
                    print(f"    {label} {e.status_code} error, retrying in {delay}s (attempt {attempt}/{config.api_max_retries})...")
                    time.sleep(delay)
                    delay *= 2
                else:
                    raise

    if config.local:
        # OpenAI-compatible path (Ollama, llama.cpp server, ...)
        from openai import APITimeoutError, APIStatusError
        openai_kwargs = {
            "model": config.local_model,
            "max_tokens": kwargs.get("max_tokens", config.max_tokens),
            "messages": kwargs["messages"],
        }
        if "temperature" in kwargs:
            openai_kwargs["temperature"] = kwargs["temperature"]

        def _call_openai():
            return _NormalizedResponse(client.chat.completions.create(**openai_kwargs))

        return _retry_with_backoff(
            _call_openai, APITimeoutError, APIStatusError,
            (429, 500, 502, 503), "LLM")
    else:
        # Anthropic path
        import anthropic
        if "timeout" not in kwargs:
            kwargs["timeout"] = config.api_timeout

        def _call_anthropic():
            return client.messages.create(**kwargs)

        return _retry_with_backoff(
            _call_anthropic, anthropic.APITimeoutError, anthropic.APIStatusError,
            (429, 529, 500), "API")


# ---------------------------------------------------------------------------
# Pipeline utilities (used across the clean and summarize stages)
# ---------------------------------------------------------------------------

def _save_json(path: Path, data) -> None:
    """Write data to a JSON file with standard formatting."""
    with open(path, 'w') as f:
        json.dump(data, f, indent=2)


def _print_reusing(label: str) -> None:
    """Print a 'Reusing' message for a cached artifact."""
    print(f"  Reusing: {label}")


def _dry_run_skip(config: DigestConfig, action: str, output: str) -> bool:
    """In dry-run mode, print what would happen and return True to skip execution."""
    if not config.dry_run:
        return False
    print(f"  [dry-run] Would {action} → {output}")
    return True


def _should_skip(config: DigestConfig, output: Path, action: str,
                  *inputs: Path) -> bool:
    """Check if a pipeline stage should skip: output is fresh or dry-run mode.

    Returns True if the stage should skip (and prints the reason).
    """
    if config.skip_existing and is_up_to_date(output, *inputs):
        _print_reusing(output.name)
        return True
    if _dry_run_skip(config, action, output.name):
        return True
    return False
