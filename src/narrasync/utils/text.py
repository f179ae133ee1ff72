from __future__ import annotations

import hashlib

# Punctuation removed before comparing script tokens with recognized words.
TOKEN_STRIP_CHARS = ".,!?;:"
_TOKEN_STRIP_TABLE = str.maketrans("", "", TOKEN_STRIP_CHARS)


def normalize_token(text: str) -> str:
    return text.lower().translate(_TOKEN_STRIP_TABLE).strip()


def tokenize(text: str) -> list[str]:
    tokens = (normalize_token(part) for part in text.split())
    return [token for token in tokens if token]


def tokens_match(token: str, word: str) -> bool:
    """Exact match, or either side contains the other (split/merged recognition)."""
    if not token or not word:
        return False
    return token == word or token in word or word in token


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
