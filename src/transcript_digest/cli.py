#!/usr/bin/env python3
"""
Transcript Digest
=================
Turns a raw streaming speech-recognizer transcript into a clean transcript
and a dense summary.

Pipeline:
1. clean      Reconcile overlapping / repeated / out-of-order segments
2. summarize  Chain-of-density (default) or map-reduce TL;DR summary via LLM

Usage:
    transcript-digest <transcript> [options]

Examples:
    # Clean + summarize with a local OpenAI-compatible server (Ollama)
    transcript-digest meeting.txt

    # Raw recognizer log with "t0 = N ms" block headers
    transcript-digest stream.log --stream-log

    # Use the Anthropic API and a custom chain-of-density prompt
    transcript-digest meeting.txt --api --prompt prompts/my_density.md

    # Only reconcile, no LLM
    transcript-digest meeting.txt --steps clean
"""

import argparse
import sys
from pathlib import Path

from transcript_digest import __version__
from transcript_digest.shared import (
    tprint as print,
    DigestConfig, DigestData, STRATEGIES,
    TRANSCRIPT_CLEAN_TXT, TRANSCRIPT_CLEAN_TIMED_TXT, TRANSCRIPT_REBASED_TXT,
    SUMMARY_MD, RUN_JSON,
    _save_json,
)
from transcript_digest.reconcile import clean_transcript
from transcript_digest.summarize import summarize_transcript

SECTION_SEPARATOR = "=" * 50

# Valid pipeline step names
VALID_STEPS = {"clean", "summarize"}


def _should_run_step(step_name: str, config: DigestConfig) -> bool:
    """Check if a pipeline step should run based on --steps filter."""
    if config.steps is None:
        return True
    return step_name in config.steps


def _hydrate_data(config: DigestConfig, data: DigestData) -> None:
    """Populate DigestData from existing files on disk.

    Called when --steps is used so that later steps can find outputs
    from earlier steps that were skipped in this run.
    """
    d = config.output_dir

    rebased = d / TRANSCRIPT_REBASED_TXT
    if config.stream_log and rebased.exists():
        data.raw_path = rebased
    elif not config.stream_log:
        data.raw_path = config.input_path

    clean = d / TRANSCRIPT_CLEAN_TXT
    if clean.exists():
        data.clean_path = clean

    timed = d / TRANSCRIPT_CLEAN_TIMED_TXT
    if timed.exists():
        data.clean_timed_path = timed

    summary = d / SUMMARY_MD
    if summary.exists():
        data.summary_path = summary


def _write_run_record(config: DigestConfig, data: DigestData) -> None:
    """Record what this run used and produced."""
    _save_json(config.output_dir / RUN_JSON, {
        "version": __version__,
        "input": str(config.input_path),
        "strategy": config.strategy,
        "model": config.local_model if config.local else config.claude_model,
        "segments": data.segment_counts,
        "outputs": [p.name for p in (data.clean_path, data.clean_timed_path, data.summary_path)
                    if p and p.exists()],
    })


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="transcript-digest",
        description="Clean up and summarize streaming speech-recognizer transcripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s meeting.txt
  %(prog)s stream.log --stream-log
  %(prog)s meeting.txt --api --prompt prompts/my_density.md
  %(prog)s meeting.txt --strategy tldr --local-model llama3.1
  %(prog)s meeting.txt --steps clean
        """
    )
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")

    # Input
    input_group = parser.add_argument_group("input")
    input_group.add_argument("transcript",
                        help="Transcript with '[hh:mm:ss.mmm --> hh:mm:ss.mmm] text' lines")
    input_group.add_argument("--stream-log", action="store_true",
                        help="Input is a raw recognizer log whose blocks start with 't0 = N ms' "
                             "headers; timestamps are rebased to absolute time first")

    # Output
    output_group = parser.add_argument_group("output")
    output_group.add_argument("-o", "--output-dir",
                        help="Output directory (default: ./digests/<transcript name>)")

    # Reconciliation
    clean_group = parser.add_argument_group("reconciliation")
    clean_group.add_argument("--tolerance-ms", type=int, default=100,
                        help="Slack when testing whether one segment's time window covers another's (default: 100)")

    # Summarization
    summary_group = parser.add_argument_group("summarization")
    summary_group.add_argument("--no-summarize", action="store_true",
                        help="Skip the summarize step (no LLM calls)")
    summary_group.add_argument("--strategy", choices=STRATEGIES, default="density",
                        help="density: chain-of-density per chunk, then combine (default); "
                             "tldr: map-reduce summary")
    summary_group.add_argument("--prompt",
                        help="Chain-of-density prompt template (default: packaged prompts/chain_of_density.md)")
    summary_group.add_argument("--content-category", default="Audio Transcript",
                        help="What the text is, as named in the prompt (default: Audio Transcript)")
    summary_group.add_argument("--entity-range", default="1-3",
                        help="Entities to add per densification step (default: 1-3)")
    summary_group.add_argument("--max-words", default="80",
                        help="Target summary length in words (default: 80)")
    summary_group.add_argument("--iterations", default="2",
                        help="Densification rounds per chunk (default: 2)")
    summary_group.add_argument("--max-relationship", default="4",
                        help="Maximum entity relationships to describe (default: 4)")
    summary_group.add_argument("--chunk-size", type=int, default=2048,
                        help="Tokens per chunk sent to the LLM (default: 2048)")
    summary_group.add_argument("--chunk-overlap", type=int, default=200,
                        help="Tokens shared by neighbouring chunks (default: 200)")
    summary_group.add_argument("--group-budget", type=int, default=1024,
                        help="Tokens of chunk summaries combined per reduction call (default: 1024)")

    # LLM backend
    llm_group = parser.add_argument_group("LLM backend")
    llm_group.add_argument("--api", action="store_true",
                        help="Use Anthropic Claude API instead of a local OpenAI-compatible server")
    llm_group.add_argument("--api-key",
                        help="Anthropic API key (or set ANTHROPIC_API_KEY env var; implies --api)")
    llm_group.add_argument("--claude-model", default="claude-sonnet-4-20250514",
                        help="Claude model for API calls (default: claude-sonnet-4-20250514)")
    llm_group.add_argument("--local-model", default="qwen2.5",
                        help="Local model name (default: qwen2.5)")
    llm_group.add_argument("--ollama-url", default="http://localhost:11434/v1/",
                        help="OpenAI-compatible server URL (default: http://localhost:11434/v1/)")
    llm_group.add_argument("--max-retries", type=int, default=5,
                        help="Attempts per LLM request on timeouts and 429/5xx (default: 5)")

    # Pipeline control
    pipeline_group = parser.add_argument_group("pipeline")
    pipeline_group.add_argument("--steps",
                        help="Run only these pipeline steps (comma-separated): clean, summarize. "
                             "Implies --force for listed steps. Existing outputs are used for skipped steps.")
    pipeline_group.add_argument("--force", action="store_true",
                        help="Re-process even if outputs are up to date")
    pipeline_group.add_argument("--dry-run", action="store_true",
                        help="Show what would be done without actually doing it")
    pipeline_group.add_argument("-v", "--verbose", action="store_true",
                        help="Show dropped segments and per-chunk summaries")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    input_path = Path(args.transcript)
    if not input_path.exists():
        print(f"Error: Transcript not found: {input_path}")
        sys.exit(1)

    prompt_path = Path(args.prompt) if args.prompt else None
    if prompt_path and not prompt_path.exists():
        print(f"Error: Prompt template not found: {prompt_path}")
        sys.exit(1)

    if args.chunk_overlap >= args.chunk_size:
        print(f"Error: --chunk-overlap ({args.chunk_overlap}) must be smaller than "
              f"--chunk-size ({args.chunk_size})")
        sys.exit(1)

    # Parse --steps
    steps = None
    if args.steps:
        steps = [s.strip() for s in args.steps.split(",")]
        invalid = set(steps) - VALID_STEPS
        if invalid:
            print(f"Invalid step(s): {', '.join(sorted(invalid))}")
            print(f"Valid steps: {', '.join(sorted(VALID_STEPS))}")
            sys.exit(1)

    output_dir = Path(args.output_dir) if args.output_dir else Path("./digests") / input_path.stem
    if not args.dry_run:
        output_dir.mkdir(parents=True, exist_ok=True)

    # --api or --api-key switches to cloud API
    use_api = args.api or bool(args.api_key)

    config = DigestConfig(
        input_path=input_path,
        output_dir=output_dir,
        steps=steps,
        skip_existing=not args.force if not steps else False,
        dry_run=args.dry_run,
        verbose=args.verbose,
        stream_log=args.stream_log,
        containment_tolerance_ms=args.tolerance_ms,
        summarize=not args.no_summarize,
        strategy=args.strategy,
        prompt_path=prompt_path,
        content_category=args.content_category,
        entity_range=args.entity_range,
        max_words=args.max_words,
        iterations=args.iterations,
        max_relationship=args.max_relationship,
        chunk_size=args.chunk_size,
        chunk_overlap=args.chunk_overlap,
        group_token_budget=args.group_budget,
        local=not use_api,
        local_model=args.local_model,
        ollama_base_url=args.ollama_url,
        api_key=args.api_key,
        claude_model=args.claude_model,
        api_max_retries=args.max_retries,
    )

    data = DigestData()

    if config.local:
        print(f"  LLM: local server {config.ollama_base_url} ({config.local_model})")
    else:
        print(f"  LLM: Anthropic API ({config.claude_model})")

    print()
    print(f"Processing: {input_path}")
    print(f"Output directory: {output_dir}")

    if config.dry_run:
        print()
        print(SECTION_SEPARATOR)
        print("DRY RUN - No actions will be taken")
        print(SECTION_SEPARATOR)

    try:
        if config.steps:
            _hydrate_data(config, data)
            print(f"  Running steps: {', '.join(config.steps)}")
        elif not config.stream_log:
            data.raw_path = config.input_path

        if _should_run_step("clean", config):
            clean_transcript(config, data)

        if _should_run_step("summarize", config):
            summarize_transcript(config, data)

        if not config.dry_run:
            _write_run_record(config, data)

        print()
        print(SECTION_SEPARATOR)
        print("COMPLETE!")
        print(SECTION_SEPARATOR)
        print()
        print(f"Output directory: {config.output_dir}")
        print()
        print("Generated files:")
        if data.clean_path and data.clean_path.exists():
            print(f"  - {data.clean_path.name} (clean transcript)")
        if data.clean_timed_path and data.clean_timed_path.exists():
            print(f"  - {data.clean_timed_path.name} (clean transcript with timestamps)")
        if data.summary_path and data.summary_path.exists():
            print(f"  - {data.summary_path.name} (summary)")

    except Exception as e:
        print()
        print(f"Error: {e}")
        if config.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
