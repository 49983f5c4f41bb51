"""Map-reduce "TL;DR" summarization: summarize each chunk, then consolidate."""

from transcript_digest.shared import tprint as print
from transcript_digest.generation import TextGenerator, single_slot
from transcript_digest.tokens import TokenLength, split_text, token_length

TLDR_CHUNK_SIZE = 3000
TLDR_CHUNK_OVERLAP = 200
COLLAPSE_TOKEN_BUDGET = 2000

TLDR_CHUNK_PROMPT = (
    "Please read the provided Original section to understand the context and content. "
    "Use this understanding to generate a summary of the Original section. "
    "Separate the transcript into chunks, and sequentially create a summary for each chunk. "
    "Focus on summarizing the Original section.\n"
    "Summarized Sections:\n"
    "1. For each chunk, provide a concise summary. Start each summary with \"Chunk (X of Y):\" "
    "where X is the current chunk number and Y is the total number of chunks.\n"
    "\n\nOriginal Section:\n"
    "{text}"
)

TLDR_COMBINE_PROMPT = (
    "1. Read the Summarized Sections: Carefully review all the summarized sections you have generated. "
    "Ensure that you understand the main points, key details, and essential information from each section.\n"
    "2. Identify Main Themes: Identify the main themes and topics that are prevalent throughout "
    "the summarized sections. These themes will form the backbone of your final summary.\n"
    "3. Consolidate Information: Merge the information from the different summarized sections, "
    "focusing on the main themes you have identified. Avoid redundancy and ensure the consolidated "
    "information flows logically.\n"
    "4. Preserve Essential Details: Preserve the essential details and nuances that are crucial "
    "for understanding the document.\n"
    "5. Draft the Final Summary: After considering all the above points, draft a final summary "
    "that represents the main ideas, themes, and essential details of the note. "
    "Start this section with \"Final Summary:\".\n"
    "\n\nSummarized sections\n{summaries}"
)


def pack_under_budget(summaries: list[str], length_function: TokenLength = token_length,
                      budget: int = COLLAPSE_TOKEN_BUDGET) -> list[list[str]]:
    """Batch summaries in order so no batch exceeds budget tokens.

    A summary that would push the current batch over the budget starts a
    new one; a summary over the budget on its own gets a batch to itself.
    """
    batches = []
    current = []
    for summary in summaries:
        if current and length_function("\n\n".join(current + [summary])) > budget:
            batches.append(current)
            current = []
        current.append(summary)
    if current:
        batches.append(current)
    return batches


def tldr_summarize(text: str, generate: TextGenerator,
                   length_function: TokenLength = token_length,
                   chunk_size: int = TLDR_CHUNK_SIZE,
                   chunk_overlap: int = TLDR_CHUNK_OVERLAP,
                   collapse_budget: int = COLLAPSE_TOKEN_BUDGET) -> str:
    """Summarize every chunk, collapse once if needed, then consolidate.

    When the chunk summaries together exceed collapse_budget tokens they are
    packed into batches of at most that many tokens and each batch is
    consolidated first; this happens at most once.
    """
    generate = single_slot(generate)

    chunks = split_text(text, length_function, chunk_size, chunk_overlap)
    if not chunks:
        return ""
    print(f"  Summarizing {len(chunks)} chunk(s) (~{chunk_size} tokens each)...")

    summaries = []
    for i, chunk in enumerate(chunks, 1):
        print(f"  Chunk {i}/{len(chunks)}: {length_function(chunk)} tokens")
        summaries.append(generate(TLDR_CHUNK_PROMPT, {"text": chunk}))

    if length_function("\n\n".join(summaries)) > collapse_budget:
        groups = pack_under_budget(summaries, length_function, collapse_budget)
        print(f"  Collapsing {len(summaries)} summaries into {len(groups)} group(s)...")
        summaries = [generate(TLDR_COMBINE_PROMPT, {"summaries": "\n\n".join(group)})
                     for group in groups]

    print("  Consolidating final summary...")
    return generate(TLDR_COMBINE_PROMPT, {"summaries": "\n\n".join(summaries)}).strip()
