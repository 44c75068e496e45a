from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


Difficulty = Literal["easy", "medium", "hard"]
DIFFICULTIES = ("easy", "medium", "hard")


class DraftQuestion(BaseModel):
    """Unvalidated question/answer/options triple from the AI service or the fallback"""

    model_config = ConfigDict(frozen=True)

    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)
    options: Optional[List[str]] = None


class FinalQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str
    answer: str
    options: List[str] = Field(min_length=4, max_length=4)


class GeneratedQuiz(BaseModel):
    """Shape returned by the generative question service"""

    questions: List[DraftQuestion]


class DifficultyAdjustment(BaseModel):
    new_difficulty: Difficulty
    reasoning: str


class QuizAnswer(BaseModel):
    question_index: int
    selected_answer: Optional[str] = None
    correct_answer: str
    is_correct: bool


class AdaptDifficultyRequest(BaseModel):
    user_performance: float = Field(ge=0, le=100)
    current_difficulty: Difficulty = "medium"


class GradeQuizRequest(BaseModel):
    questions: List[FinalQuestion]
    selected_answers: List[Optional[str]]
