from typing import List, Optional, Sequence

import structlog

from adaptiquiz.errors import GenerationServiceFailure
from adaptiquiz.middleware.rate_limit import check_action_limit, rate_limiters
from adaptiquiz.models import DIFFICULTIES, DifficultyAdjustment, FinalQuestion, QuizAnswer
from adaptiquiz.services import llm

logger = structlog.get_logger()

PROMOTION_THRESHOLD = 80


def next_difficulty(user_performance: float, current_difficulty: str) -> DifficultyAdjustment:
    """Step one level up after a score above 80%, otherwise stay put"""
    if current_difficulty not in DIFFICULTIES:
        current_difficulty = "medium"
    idx = DIFFICULTIES.index(current_difficulty)
    if user_performance > PROMOTION_THRESHOLD and current_difficulty != "hard":
        new = DIFFICULTIES[idx + 1]
        return DifficultyAdjustment(
            new_difficulty=new,
            reasoning=f"You scored {user_performance:.0f}%, above {PROMOTION_THRESHOLD}%, so the next quiz moves up to {new}.",
        )
    if current_difficulty == "hard" and user_performance > PROMOTION_THRESHOLD:
        reasoning = f"You scored {user_performance:.0f}% on the hardest level; keep it up at hard."
    else:
        reasoning = (f"You scored {user_performance:.0f}%. Reach more than {PROMOTION_THRESHOLD}% "
                     f"to move past {current_difficulty}.")
    return DifficultyAdjustment(new_difficulty=current_difficulty, reasoning=reasoning)


def adapt_difficulty(user_performance: float, current_difficulty: str,
                     user_id: Optional[str] = None) -> dict:
    rate = check_action_limit(user_id, "adaptDifficulty", rate_limiters["general"])
    if not rate["allowed"]:
        return {
            "type": "error",
            "message": rate.get("message") or "Rate limit exceeded",
            "retry_after": rate.get("retry_after"),
            "rate_limit": rate.get("result"),
        }

    expected = next_difficulty(user_performance, current_difficulty)
    try:
        adjustment = llm.adapt_quiz_difficulty(user_performance, current_difficulty)
        # The model only words the reasoning; the level always follows the rule
        if adjustment.new_difficulty != expected.new_difficulty:
            logger.warning("ai_difficulty_overruled", suggested=adjustment.new_difficulty,
                           applied=expected.new_difficulty)
            adjustment = expected
    except GenerationServiceFailure as e:
        logger.info("ai_difficulty_unavailable", error=str(e))
        adjustment = expected

    return {"type": "success", "data": adjustment}


def results_badge(percentage: float) -> dict:
    if percentage == 100:
        return {"badge": "Perfect Score!", "message": "Absolutely flawless. You're a true master!"}
    if percentage >= 80:
        return {"badge": "Top Performer", "message": "Outstanding performance. You really know your stuff!"}
    if percentage >= 60:
        return {"badge": "Good Effort", "message": "Solid work. A little more practice and you'll ace it."}
    return {"badge": "Keep Practicing", "message": "Review the material and try again. You've got this!"}


def grade_quiz(questions: Sequence[FinalQuestion], selected_answers: Sequence[Optional[str]]) -> dict:
    """Score selected answers against the questions' answers, case-insensitively"""
    answers: List[QuizAnswer] = []
    for idx, question in enumerate(questions):
        selected = selected_answers[idx] if idx < len(selected_answers) else None
        is_correct = selected is not None and selected.strip().lower() == question.answer.strip().lower()
        answers.append(QuizAnswer(
            question_index=idx,
            selected_answer=selected,
            correct_answer=question.answer,
            is_correct=is_correct,
        ))

    total = len(answers)
    score = sum(1 for a in answers if a.is_correct)
    percentage = round(score / total * 100) if total else 0
    return {
        "score": score,
        "total": total,
        "percentage": percentage,
        "answers": answers,
        **results_badge(percentage),
    }
