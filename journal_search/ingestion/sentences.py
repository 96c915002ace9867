"""Sentence boundary detection tuned for spoken-language transcripts."""

from __future__ import annotations

import re

# Tokens (as written, case-sensitive) whose trailing period never ends a sentence.
ABBREVIATIONS: frozenset[str] = frozenset(
    {
        "Mr.", "Mrs.", "Ms.", "Dr.", "Prof.", "Sr.", "Jr.", "St.", "Mt.",
        "Capt.", "Col.", "Gen.", "Lt.", "Sgt.", "Rev.", "Hon.",
        "etc.", "e.g.", "i.e.", "vs.", "cf.", "approx.", "al.",
        "Inc.", "Ltd.", "Co.", "Corp.", "No.", "Fig.",
        "Jan.", "Feb.", "Mar.", "Apr.", "Jun.", "Jul.", "Aug.",
        "Sep.", "Sept.", "Oct.", "Nov.", "Dec.",
        "a.m.", "p.m.", "U.S.", "U.K.",
    }
)

_TERMINATORS = ".!?"
_TERMINATOR_RUN_RE = re.compile(r"[.!?]+")
# Quotes and brackets that may open a sentence ahead of its first letter.
_OPENERS = "\"'(["


class SentenceSplitter:
    """Split transcript text into trimmed, non-empty sentences.

    Stateless: every call re-splits from scratch and never raises.
    """

    def __init__(self, abbreviations: frozenset[str] = ABBREVIATIONS) -> None:
        self.abbreviations = abbreviations

    def split(self, text: str) -> list[str]:
        if not text or not text.strip():
            return []

        sentences: list[str] = []
        start = 0
        for match in _TERMINATOR_RUN_RE.finditer(text):
            end = match.end()
            if self._is_boundary(text, match.start(), end):
                self._append(sentences, text[start:end])
                start = end
        self._append(sentences, text[start:])
        return sentences

    def _is_boundary(self, text: str, run_start: int, run_end: int) -> bool:
        run = text[run_start:run_end]

        # A lone period between two digits is a decimal point ("3.14").
        if (
            run == "."
            and run_start > 0
            and text[run_start - 1].isdigit()
            and run_end < len(text)
            and text[run_end].isdigit()
        ):
            return False

        if run == "." and self._ends_with_abbreviation(text, run_end):
            return False

        # Terminator at end of input (possibly followed by whitespace only).
        rest = text[run_end:]
        stripped = rest.lstrip()
        if not stripped:
            return True

        # Boundaries need whitespace after the terminator run ("3.x", "e.g.x").
        if len(stripped) == len(rest):
            return False

        # A genuine new sentence starts with an uppercase letter (any script) or a digit.
        first = stripped.lstrip(_OPENERS)[:1]
        return first.isupper() or first.isdigit()

    def _ends_with_abbreviation(self, text: str, run_end: int) -> bool:
        token_start = run_end
        while token_start > 0 and not text[token_start - 1].isspace():
            token_start -= 1
        token = text[token_start:run_end].lstrip(_OPENERS)
        return token in self.abbreviations

    @staticmethod
    def _append(sentences: list[str], candidate: str) -> None:
        sentence = candidate.strip()
        # Stray punctuation left between boundaries ("..") is not a sentence.
        if sentence and sentence.strip(_TERMINATORS).strip():
            sentences.append(sentence)
