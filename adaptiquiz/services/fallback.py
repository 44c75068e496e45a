"""
Deterministic quiz synthesis used when the generative question service fails
"""
import re
from typing import List, Optional

import structlog

from adaptiquiz.models import DraftQuestion
from adaptiquiz.services.text_processing import (
    build_vocabulary_pool, candidate_tokens, normalize_whitespace, split_sentences
)

logger = structlog.get_logger()

BLANK = "_____"
OPTIONS_PER_QUESTION = 4

GENERIC_LEVELS = {
    "easy": ("basic", "fundamental concepts"),
    "medium": ("intermediate", "key ideas and relationships"),
    "hard": ("advanced", "deeper implications and applications"),
}
GENERIC_DISTRACTORS = ["surface details", "unrelated facts", "stylistic choices"]


def mask_answer(sentence: str, answer: str) -> Optional[str]:
    """Replace the first whole-word occurrence of answer with a blank, or None if absent"""
    pattern = re.compile(r"\b" + re.escape(answer) + r"\b", re.ASCII)
    masked = pattern.sub(BLANK, sentence, count=1)
    if masked == sentence:
        return None
    return masked


def pick_options(answer: str, distractors: List[str]) -> List[str]:
    options = [answer]
    taken = {answer.lower()}
    for word in distractors:
        if len(options) >= OPTIONS_PER_QUESTION:
            break
        if word.lower() in taken:
            continue
        taken.add(word.lower())
        options.append(word)
    while len(options) < OPTIONS_PER_QUESTION:
        options.append(f"Option {len(options) + 1}")
    return options


def make_cloze_question(sentence: str, pool: List[str]) -> Optional[DraftQuestion]:
    candidates = candidate_tokens(sentence)
    if not candidates:
        return None

    answer = candidates[0]
    masked = mask_answer(sentence, answer)
    if masked is None:
        return None

    answer_lower = answer.lower()
    local = [w for w in candidates[1:] if w.lower() != answer_lower]
    distractors = local + [w for w in pool if w != answer_lower]

    return DraftQuestion(
        question=f"Fill in the blank: {masked}",
        answer=answer,
        options=pick_options(answer, distractors),
    )


def make_generic_question(difficulty: str) -> DraftQuestion:
    level, answer = GENERIC_LEVELS.get(difficulty, GENERIC_LEVELS["hard"])
    return DraftQuestion(
        question=f"At a {level} level, what should a learner focus on?",
        answer=answer,
        options=[answer] + GENERIC_DISTRACTORS,
    )


def synthesize(content: str, num_questions: int, difficulty: str) -> List[DraftQuestion]:
    """Build exactly num_questions fill-in-the-blank questions, padding with generic ones"""
    text = normalize_whitespace(content)
    pool = build_vocabulary_pool(text)
    out: List[DraftQuestion] = []

    for sentence in split_sentences(text):
        if len(out) >= num_questions:
            break
        question = make_cloze_question(sentence, pool)
        if question is not None:
            out.append(question)

    cloze_count = len(out)
    while len(out) < num_questions:
        out.append(make_generic_question(difficulty))

    logger.info(
        "fallback_questions_synthesized",
        requested=num_questions,
        cloze=cloze_count,
        generic=len(out) - cloze_count,
        difficulty=difficulty,
    )
    return out[:num_questions]
