import re
from typing import List


# -------------------- STOP WORDS --------------------

STOPWORDS = frozenset("""
the and for from with that this these those into onto about your their there here have has had will would could should
a an to of in on is are was were be as by or it at we you they he she them his her our its but not
""".split())

MIN_SENTENCE_CHARS = 30
MIN_CANDIDATE_CHARS = 5
MIN_POOL_CHARS = 4

WHITESPACE_RE = re.compile(r"\s+")
SENT_SPLIT = re.compile(r"(?<=[.!?])\s+")
HYPHENATED_RE = re.compile(r"\b[A-Za-z][A-Za-z0-9]*-[A-Za-z0-9-]+\b", re.ASCII)
WORD_SPLIT_RE = re.compile(r"[^A-Za-z0-9-]+")
POOL_SPLIT_RE = re.compile(r"[^a-z0-9-]+")


# -------------------- SEGMENTATION --------------------

def normalize_whitespace(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text or "").strip()


def split_sentences(text: str) -> List[str]:
    """Split raw content on ., ! or ? followed by whitespace; short sentences are dropped"""
    text = normalize_whitespace(text)
    if not text:
        return []
    sentences = (s.strip() for s in SENT_SPLIT.split(text))
    return [s for s in sentences if len(s) >= MIN_SENTENCE_CHARS]


def is_stopword(token: str) -> bool:
    return token.lower() in STOPWORDS


def candidate_tokens(sentence: str) -> List[str]:
    """
    Candidate answers for one sentence, best first.

    Hyphenated compounds rank ahead of plain words, then longer tokens ahead of
    shorter ones. The sort is stable so equal-length tokens keep the order they
    were found in.
    """
    hyphenated = HYPHENATED_RE.findall(sentence)
    words = [
        w for w in WORD_SPLIT_RE.split(sentence)
        if w and len(w) >= MIN_CANDIDATE_CHARS and not is_stopword(w)
    ]
    seen = set()
    found: List[str] = []
    for token in hyphenated + words:
        if token in seen:
            continue
        seen.add(token)
        found.append(token)
    return sorted(found, key=lambda t: (0 if "-" in t else 1, -len(t)))


# -------------------- DISTRACTOR POOL --------------------

def build_vocabulary_pool(text: str) -> List[str]:
    """Unique lowercase tokens across the whole content, in first-seen order"""
    text = normalize_whitespace(text).lower()
    pool: List[str] = []
    seen = set()
    for token in POOL_SPLIT_RE.split(text):
        if len(token) < MIN_POOL_CHARS or token in STOPWORDS or token in seen:
            continue
        seen.add(token)
        pool.append(token)
    return pool


def word_count(text: str) -> int:
    return len((text or "").split())
