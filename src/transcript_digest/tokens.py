"""Token counting and token-bounded text splitting."""

from typing import Callable

from langchain_text_splitters import RecursiveCharacterTextSplitter

TokenLength = Callable[[str], int]

# Paragraph, line, word, then raw characters
SPLIT_SEPARATORS = ["\n\n", "\n", " ", ""]

_ENCODING_NAME = "cl100k_base"
_encoding = None


def _get_encoding():
    global _encoding
    if _encoding is None:
        import tiktoken
        _encoding = tiktoken.get_encoding(_ENCODING_NAME)
    return _encoding


def token_length(text: str) -> int:
    """Number of tokens in text under the cl100k_base encoding."""
    if not text:
        return 0
    return len(_get_encoding().encode(text, disallowed_special=()))


def split_text(text: str, length_function: TokenLength = token_length,
               chunk_size: int = 2048, chunk_overlap: int = 200) -> list[str]:
    """Split text into overlapping chunks of at most chunk_size tokens.

    Splits at paragraph, then line, then word boundaries before cutting
    raw characters. Neighbouring chunks share up to chunk_overlap tokens,
    so content at a seam can appear twice.
    """
    if not text.strip():
        return []
    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        length_function=length_function,
        separators=SPLIT_SEPARATORS,
    )
    return splitter.split_text(text)
