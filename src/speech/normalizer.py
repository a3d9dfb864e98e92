"""Cleanup of LLM prose into plain text a TTS engine can read aloud.

The rules are regex based and intentionally shallow: markup is matched
non-greedily and without nesting, so ``**bold _and_ italic**`` may keep a
stray marker. Normalizing a partial chunk (for example one that ends inside
an unterminated ``**``) can also differ from normalizing the whole reply.
"""

from __future__ import annotations

import re

DEFAULT_MAX_LENGTH = 500
ELLIPSIS = "..."

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`([^`]+)`")
_BOLD_STAR_RE = re.compile(r"\*\*([^*]+)\*\*")
_BOLD_UNDERSCORE_RE = re.compile(r"__([^_]+)__")
_ITALIC_STAR_RE = re.compile(r"\*([^*]+)\*")
_ITALIC_UNDERSCORE_RE = re.compile(r"_([^_]+)_")
_STRIKE_RE = re.compile(r"~~([^~]+)~~")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_URL_RE = re.compile(r"https?://\S+")
_HEADER_RE = re.compile(r"^#+\s*", re.MULTILINE)
_BULLET_RE = re.compile(r"^\s*[-*+]\s+", re.MULTILINE)
_NUMBERED_RE = re.compile(r"^\s*\d+\.\s+", re.MULTILINE)
_PARAGRAPH_RE = re.compile(r"\n{2,}")
_WHITESPACE_RE = re.compile(r"\s{2,}")
_DOTS_RE = re.compile(r"\.{2,}")

_SENTENCE_TERMINATORS = (". ", "? ", "! ")

_QUESTION_RE = re.compile(
    r"^(who|what|when|where|why|how|is|are|can|could|would|should|do|does|did)",
    re.IGNORECASE,
)


def normalize_for_tts(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Return ``text`` without markdown, links or line structure.

    The steps run in a fixed order; the whitespace rules assume code,
    emphasis and list markers are already gone. Results longer than
    ``max_length`` are shortened with :func:`truncate_at_sentence`.
    """

    cleaned = _CODE_BLOCK_RE.sub("", text)

    cleaned = _INLINE_CODE_RE.sub(r"\1", cleaned)
    cleaned = _BOLD_STAR_RE.sub(r"\1", cleaned)
    cleaned = _BOLD_UNDERSCORE_RE.sub(r"\1", cleaned)
    cleaned = _ITALIC_STAR_RE.sub(r"\1", cleaned)
    cleaned = _ITALIC_UNDERSCORE_RE.sub(r"\1", cleaned)
    cleaned = _STRIKE_RE.sub(r"\1", cleaned)

    cleaned = _LINK_RE.sub(r"\1", cleaned)
    cleaned = _URL_RE.sub("", cleaned)

    cleaned = _HEADER_RE.sub("", cleaned)
    cleaned = _BULLET_RE.sub("", cleaned)
    cleaned = _NUMBERED_RE.sub("", cleaned)

    # A paragraph break is a pause, not a new sentence.
    cleaned = _PARAGRAPH_RE.sub(" ", cleaned)
    cleaned = cleaned.replace("\n", " ")
    cleaned = _WHITESPACE_RE.sub(" ", cleaned)
    cleaned = _DOTS_RE.sub(".", cleaned)
    cleaned = cleaned.strip()

    if len(cleaned) > max_length:
        cleaned = truncate_at_sentence(cleaned, max_length)
    return cleaned


def truncate_at_sentence(text: str, max_length: int) -> str:
    """Cut ``text`` to ``max_length``, preferring a sentence boundary."""

    if len(text) <= max_length:
        return text

    window = text[:max_length]
    boundary = max(window.rfind(terminator) for terminator in _SENTENCE_TERMINATORS)
    if boundary > max_length * 0.5:
        return text[: boundary + 1].strip()

    return window.strip() + ELLIPSIS


def is_question(text: str) -> bool:
    stripped = text.strip()
    return stripped.endswith("?") or bool(_QUESTION_RE.match(stripped))
