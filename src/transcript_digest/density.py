"""
Chain-of-density summarization of long transcripts.

Each token-bounded chunk is sent through a chain-of-density prompt: the model
rewrites a fixed-length summary several times, adding entities without adding
words, and the last (densest) rewrite is kept. The per-chunk summaries are
grouped under a token budget, each group is combined into one summary, and
the group summaries are combined once more when there is more than one.
"""

import json
import re
from dataclasses import dataclass, asdict
from typing import Optional

from transcript_digest.shared import tprint as print
from transcript_digest.generation import TextGenerator, single_slot
from transcript_digest.tokens import TokenLength, split_text, token_length

DENSITY_CHUNK_SIZE = 2048
DENSITY_CHUNK_OVERLAP = 200
GROUP_TOKEN_BUDGET = 1024

COMBINE_PROMPT = "Combine the following summaries:\n{summaries}"


@dataclass
class DensityParams:
    """Values for the chain-of-density template placeholders (besides content)."""
    content_category: str = "Audio Transcript"
    entity_range: str = "1-3"
    max_words: str = "80"
    iterations: str = "2"
    max_relationship: str = "4"

    def as_variables(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

# "denser_summary": "..." inside a JSON-ish list of iterations
_DENSER_FIELD_PATTERN = re.compile(
    r'denser_summary"\s*:\s*"((?:[^"\\\n]|\\.)*)"', re.IGNORECASE)
# "Denser summary:" / "**Denser Summary (iteration 2):**"
_DENSER_MARKER_PATTERN = re.compile(r'denser summary[^\n:"]*:', re.IGNORECASE)
# "Final summary:" style header line closing a response
_SUMMARY_HEADER_PATTERN = re.compile(r'summary.*:\s*$', re.IGNORECASE)
# Opening markdown fence, e.g. "```json"
_CODE_FENCE_PATTERN = re.compile(r'^```[\w-]*\s*')


def parse_structured_list(response: str) -> Optional[str]:
    """Last ``denser_summary`` value of a response shaped like a JSON list.

    The list may be wrapped in a markdown code fence.
    """
    if not _CODE_FENCE_PATTERN.sub('', response.lstrip()).startswith("["):
        return None
    matches = _DENSER_FIELD_PATTERN.findall(response)
    if not matches:
        return None
    raw = matches[-1]
    try:
        return json.loads(f'"{raw}"').strip()
    except ValueError:
        return raw.strip()


def parse_marker_prose(response: str) -> Optional[str]:
    """Text after the last "Denser summary:" marker."""
    parts = _DENSER_MARKER_PATTERN.split(response)
    if len(parts) < 2:
        return None
    return re.sub(r'^[\s*]+', '', parts[-1]).strip()


def parse_bullet_list(response: str) -> Optional[str]:
    """Trailing run of ``-`` bullet lines.

    A single "...summary...:" header at the very end is skipped; any other
    non-bullet line, including a header between two lists, ends the run.
    """
    lines = [line.strip() for line in response.strip().split('\n')]
    if lines and _SUMMARY_HEADER_PATTERN.search(lines[-1]):
        lines.pop()
    while lines and not lines[-1]:
        lines.pop()
    bullets = []
    for line in reversed(lines):
        if not line.startswith('-'):
            break
        bullets.append(line)
    if not bullets:
        return None
    return '\n'.join(reversed(bullets))


# Tried in order; the first parser that recognises its shape wins.
RESPONSE_PARSERS = (
    parse_structured_list,
    parse_marker_prose,
    parse_bullet_list,
)


def extract_dense_summary(response: str) -> str:
    """Pull the final dense summary out of a chain-of-density response.

    Returns "" when no parser recognises the response.
    """
    for parser in RESPONSE_PARSERS:
        summary = parser(response)
        if summary is not None:
            return summary
    return ""


# ---------------------------------------------------------------------------
# Grouping and reduction
# ---------------------------------------------------------------------------

def group_by_token_budget(summaries: list[str], length_function: TokenLength = token_length,
                          budget: int = GROUP_TOKEN_BUDGET) -> list[list[str]]:
    """Group summaries in order, closing a group once it exceeds budget tokens.

    The summary that pushes a group over the budget stays in that group;
    the next one opens a new group.
    """
    groups = [[]]
    for summary in summaries:
        groups[-1].append(summary)
        if sum(length_function(s) for s in groups[-1]) > budget:
            groups.append([])
    return [group for group in groups if group]


def reduce_groups(groups: list[list[str]], generate: TextGenerator,
                  combine_prompt: str = COMBINE_PROMPT) -> str:
    """Combine each group, then combine the group results once if needed."""
    reduced = []
    for i, group in enumerate(groups, 1):
        if not group:
            continue
        print(f"  Combining group {i}/{len(groups)} ({len(group)} summaries)...")
        reduced.append(generate(combine_prompt, {"summaries": "\n\n".join(group)}))

    if not reduced:
        return ""
    if len(reduced) == 1:
        return reduced[0].strip()

    print(f"  Combining {len(reduced)} group summaries...")
    return generate(combine_prompt, {"summaries": "\n\n".join(reduced)}).strip()


def densify_summarize(text: str, template: str, generate: TextGenerator,
                      length_function: TokenLength = token_length,
                      params: Optional[DensityParams] = None,
                      chunk_size: int = DENSITY_CHUNK_SIZE,
                      chunk_overlap: int = DENSITY_CHUNK_OVERLAP,
                      group_budget: int = GROUP_TOKEN_BUDGET,
                      verbose: bool = False) -> str:
    """Summarize arbitrary-length text with chain-of-density prompting.

    template is the chain-of-density prompt with ``{content}``,
    ``{content_category}``, ``{entity_range}``, ``{max_words}``,
    ``{iterations}`` and ``{max_relationship}`` placeholders.
    Chunks and groups are processed strictly in order, one generation call
    at a time. A response nobody can parse contributes an empty summary;
    an exception from generate aborts the whole call.
    """
    generate = single_slot(generate)
    params = params or DensityParams()

    chunks = split_text(text, length_function, chunk_size, chunk_overlap)
    if not chunks:
        return ""
    print(f"  Densifying {len(chunks)} chunk(s) (~{chunk_size} tokens each)...")

    variables = params.as_variables()
    summaries = []
    for i, chunk in enumerate(chunks, 1):
        print(f"  Chunk {i}/{len(chunks)}: {length_function(chunk)} tokens")
        response = generate(template, {**variables, "content": chunk})
        summary = extract_dense_summary(response)
        if not summary:
            print("    No dense summary found in response")
        elif verbose:
            print(f"    Dense summary: {summary}")
        summaries.append(summary)

    groups = group_by_token_budget(summaries, length_function, group_budget)
    return reduce_groups(groups, generate)
