"""
Option clean-up applied to every question before it reaches a user
"""
import random
import re
from typing import Iterable, List, Optional, Sequence

import structlog

from adaptiquiz.errors import SanitizationImpossible
from adaptiquiz.models import DraftQuestion, FinalQuestion

logger = structlog.get_logger()

OPTIONS_PER_QUESTION = 4

SPACE_RE = re.compile(r"\s+")
EDGE_PUNCT_RE = re.compile(r"^[\s,.;:!?-]+|[\s,.;:!?-]+$")
TRAILING_SEP_RE = re.compile(r"\s*[,;:]+\s*$")
PUNCT_BEFORE_QMARK_RE = re.compile(r"\s*[,;:]+\s*\?")
TRAILING_QMARK_RE = re.compile(r"\s*\?\s*$")


def normalize_option(text: str) -> str:
    text = SPACE_RE.sub(" ", text or "")
    text = EDGE_PUNCT_RE.sub("", text)
    text = TRAILING_SEP_RE.sub("", text)
    return text.strip()


def normalize_question(text: str) -> str:
    text = SPACE_RE.sub(" ", text or "")
    text = PUNCT_BEFORE_QMARK_RE.sub("?", text)
    text = TRAILING_QMARK_RE.sub("?", text)
    return text.strip()


def unique_by_normalized(options: Iterable[str]) -> List[str]:
    """Normalize options and drop case-insensitive repeats, keeping the first spelling"""
    seen = set()
    out: List[str] = []
    for option in options:
        clean = normalize_option(option)
        key = clean.lower()
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(clean)
    return out


def shuffle(items: List[str], rng: random.Random) -> List[str]:
    """Fisher-Yates shuffle in place"""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def _contains(options: Sequence[str], answer: str) -> bool:
    key = answer.lower()
    return any(o.lower() == key for o in options)


def sanitize_question(question: DraftQuestion, rng: random.Random) -> FinalQuestion:
    answer = normalize_option(question.answer)
    if not answer:
        raise SanitizationImpossible(f"empty answer for question {question.question!r}")

    options = unique_by_normalized(list(question.options or []) + [answer])

    filler_idx = 1
    while len(options) < OPTIONS_PER_QUESTION:
        filler = f"Option {filler_idx}"
        filler_idx += 1
        if not _contains(options, filler):
            options.append(filler)

    options = unique_by_normalized(options)[:OPTIONS_PER_QUESTION]
    if len(options) != OPTIONS_PER_QUESTION:
        raise SanitizationImpossible(f"only {len(options)} unique options for {question.question!r}")
    shuffle(options, rng)

    if not _contains(options, answer):
        options[0] = answer
        shuffle(options, rng)

    return FinalQuestion(
        question=normalize_question(question.question),
        answer=answer,
        options=options,
    )


def sanitize(questions: Sequence[DraftQuestion], want: int,
             rng: Optional[random.Random] = None) -> List[FinalQuestion]:
    """
    Normalize a question set so every question carries exactly four unique,
    shuffled options, one of which is the answer.

    At most `want` questions are returned. A question that cannot be repaired
    is dropped rather than returned malformed.
    """
    rng = rng or random.Random()
    out: List[FinalQuestion] = []
    for question in list(questions)[:max(0, want)]:
        try:
            out.append(sanitize_question(question, rng))
        except SanitizationImpossible as e:
            logger.warning("question_dropped", reason=str(e))
    return out
