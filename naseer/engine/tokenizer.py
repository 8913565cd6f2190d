"""Whitespace tokenizer used when no backend tokenizer is available.

This is not a subword tokenizer: text is split on whitespace, lower-cased and
stripped of ASCII punctuation before a whole-word vocabulary lookup.
"""

from __future__ import annotations

import logging
import string
from typing import Iterable, Sequence

logger = logging.getLogger(__name__)

PAD_ID = 0
UNK_ID = 1
BOS_ID = 2
EOS_ID = 3
MASK_ID = 4

SPECIAL_TOKENS = ("<PAD>", "<UNK>", "<BOS>", "<EOS>", "<MASK>")

COMMON_WORDS = (
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us", "them",
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "may", "might", "can", "must",
    "what", "where", "when", "why", "how", "who", "which", "that", "this", "these", "those",
    "yes", "no", "not", "never", "always", "sometimes", "often", "usually", "here", "there",
    "good", "bad", "big", "small", "new", "old", "first", "last", "long", "short", "high", "low",
    "water", "food", "help", "emergency", "safety", "medical", "shelter", "communication",
    "hello", "hi", "thank", "please", "sorry", "welcome", "goodbye",
)

MAX_VOCAB_FILE_ENTRIES = 50_000

_PUNCT_TABLE = str.maketrans("", "", string.punctuation)


class Vocabulary:
    """Ordered token strings with a reverse lookup.

    Ids are dense, start at 0 and follow insertion order. Adding a string that
    is already present appends it again and points the lookup at the newer id.
    """

    def __init__(self, tokens: Iterable[str] = ()) -> None:
        self._tokens: list[str] = []
        self._ids: dict[str, int] = {}
        for tok in tokens:
            self.add(tok)

    def add(self, token: str) -> int:
        idx = len(self._tokens)
        self._tokens.append(token)
        self._ids[token] = idx
        return idx

    def id_of(self, token: str, default: int | None = None) -> int | None:
        return self._ids.get(token, default)

    def token_of(self, idx: int) -> str | None:
        if 0 <= idx < len(self._tokens):
            return self._tokens[idx]
        return None

    @property
    def tokens(self) -> list[str]:
        return list(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, token: object) -> bool:
        return token in self._ids

    @classmethod
    def builtin(cls) -> "Vocabulary":
        """Control tokens, common words, a-z, then 0-9."""
        vocab = cls(SPECIAL_TOKENS)
        for word in COMMON_WORDS:
            vocab.add(word)
        for c in string.ascii_lowercase:
            vocab.add(c)
        for c in string.digits:
            vocab.add(c)
        return vocab


def normalize_word(word: str) -> str:
    return word.lower().translate(_PUNCT_TABLE)


class Tokenizer:
    """Whole-word tokenizer over a `Vocabulary`."""

    def __init__(self, vocabulary: Vocabulary | None = None) -> None:
        self._vocab = vocabulary

    @property
    def vocabulary(self) -> Vocabulary:
        if self._vocab is None:
            self._vocab = Vocabulary.builtin()
        return self._vocab

    @property
    def is_loaded(self) -> bool:
        return self._vocab is not None

    def load_vocabulary(self, path: str | None) -> bool:
        """Load one token per non-empty line from `path`.

        A missing or unreadable file installs the built-in vocabulary and
        still returns True. A readable file returns whether any token was read.
        """
        if not path:
            self._vocab = Vocabulary.builtin()
            return True
        try:
            with open(path, encoding="utf-8") as f:
                vocab = Vocabulary()
                for line in f:
                    token = line.rstrip("\r\n")
                    if not token:
                        continue
                    vocab.add(token)
                    if len(vocab) >= MAX_VOCAB_FILE_ENTRIES:
                        break
        except (OSError, UnicodeDecodeError) as exc:
            logger.info("vocabulary %s unavailable (%s); using built-in vocabulary", path, exc)
            self._vocab = Vocabulary.builtin()
            return True

        self._vocab = vocab
        return len(vocab) > 0

    def encode(self, text: str) -> list[int]:
        vocab = self.vocabulary
        ids: list[int] = []
        for word in text.split():
            idx = vocab.id_of(normalize_word(word))
            ids.append(UNK_ID if idx is None else idx)
        return ids

    def decode(self, ids: Sequence[int]) -> str:
        vocab = self.vocabulary
        words = [vocab.token_of(int(i)) for i in ids]
        return " ".join(w for w in words if w is not None)
