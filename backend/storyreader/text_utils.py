from __future__ import annotations
import hashlib
import re
from typing import List


# Sentence-final punctuation (including the ellipsis character) followed by whitespace, or newlines
_SENTENCE_BREAK = re.compile(r"(?<=[.!?…])\s+|\n+")
# Elisions such as l'arbre stay one token
_WORD_TOKEN = re.compile(r"[^\W\d_]+(?:['’][^\W\d_]+)*")


def normalize_word(word: str) -> str:
    return (word or "").strip().lower()


def split_sentences(paragraph: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_BREAK.split(paragraph or "") if s.strip()]


def _word_pattern(word: str) -> re.Pattern:
    # \w is Unicode-aware, so accented letters count as part of a word
    return re.compile(rf"(?<!\w){re.escape(word)}(?!\w)", re.IGNORECASE)


def locate_sentence(paragraph: str, word: str) -> str:
    """Return the sentence of ``paragraph`` in which ``word`` appears as a whole token.

    Falls back to the first sentence when the word is not found, and to the
    paragraph itself when it has no sentences at all.
    """
    sentences = split_sentences(paragraph)
    if not sentences:
        return paragraph
    target = (word or "").strip()
    if target:
        pattern = _word_pattern(target)
        for sentence in sentences:
            if pattern.search(sentence):
                return sentence
    return sentences[0]


def tokenize_words(text: str) -> List[str]:
    """Normalized words of ``text`` in first-seen order, without duplicates."""
    return list(dict.fromkeys(token.lower() for token in _WORD_TOKEN.findall(text or "")))


def content_hash(text: str) -> str:
    """Cache key for generated audio: SHA-256 of the stripped text."""
    return hashlib.sha256((text or "").strip().encode("utf-8")).hexdigest()
