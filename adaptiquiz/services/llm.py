from __future__ import annotations

import json
from typing import List

import structlog
from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from adaptiquiz import config
from adaptiquiz.errors import GenerationServiceFailure
from adaptiquiz.models import DifficultyAdjustment, DraftQuestion, GeneratedQuiz
from adaptiquiz.services.logging import log_performance

logger = structlog.get_logger()

MAX_PROMPT_CHARS = 12000

QUIZ_PROMPT = """You are an expert quiz creator. Your task is to generate exactly {num_questions} multiple-choice questions based on the provided content. The difficulty of these questions must be '{difficulty}'. Each question must have a clear and concise answer found directly within the provided text.

Content to analyze:
```
{content}
```

Instructions:
1. Carefully read the content provided.
2. Create exactly {num_questions} questions.
3. For each question, provide one correct answer based only on the information in the content.
4. Do not use any external knowledge.
5. Ensure the questions match the requested difficulty level: '{difficulty}'.
6. For each question, you MUST generate an "options" array containing exactly 4 string options.
7. One of the options must be the correct answer. The other three options should be plausible but incorrect distractors.
8. The value in the "answer" field MUST exactly match one of the values in the "options" array.
9. Respond with a JSON object of the form {{"questions": [{{"question": "...", "answer": "...", "options": ["...", "...", "...", "..."]}}]}} and nothing else.
"""

ADAPT_PROMPT = """You are an AI quiz master responsible for adjusting quiz difficulty based on the user's performance. Only increase the difficulty if the user's performance on the previous quiz shows they are ready for a greater challenge.

- User performance: {user_performance}%
- Current difficulty: {current_difficulty}

Rules:
- If the user performance is greater than 80% AND the current difficulty is not 'hard', increase the difficulty to the next level (easy -> medium, medium -> hard).
- Otherwise, keep the current difficulty level.
- Only increase the difficulty by one level at a time.
- The difficulty must be one of 'easy', 'medium' or 'hard'.

Respond with a JSON object {{"new_difficulty": "...", "reasoning": "..."}} and nothing else.
"""


def _get_client() -> OpenAI:
    if not config.OPENAI_API_KEY:
        raise GenerationServiceFailure("OPENAI_API_KEY not set")
    return OpenAI(api_key=config.OPENAI_API_KEY).with_options(
        timeout=config.GENERATION_TIMEOUT_SECONDS, max_retries=0
    )


def _clean_json_like(content: str) -> str:
    # Strip common code fences ```json ... ``` or ``` ... ```
    text = content.strip()
    if text.startswith("```"):
        first_nl = text.find("\n")
        if first_nl != -1:
            text = text[first_nl + 1:]
        if text.endswith("```"):
            text = text[:-3]
    return text.strip()


def _complete_json(prompt: str):
    client = _get_client()
    try:
        rsp = client.chat.completions.create(
            model=config.OPENAI_MODEL,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.2,
            response_format={"type": "json_object"},
        )
    except OpenAIError as e:
        raise GenerationServiceFailure(f"generation request failed: {e}") from e

    content = rsp.choices[0].message.content or ""
    try:
        return json.loads(_clean_json_like(content))
    except json.JSONDecodeError as e:
        raise GenerationServiceFailure(f"response is not JSON: {e}") from e


def parse_generated_questions(data) -> List[DraftQuestion]:
    """Validate raw service output into DraftQuestions; any bad shape fails the whole batch"""
    if isinstance(data, list):
        data = {"questions": data}
    try:
        quiz = GeneratedQuiz.model_validate(data)
    except ValidationError as e:
        raise GenerationServiceFailure(f"malformed questions: {e.error_count()} validation errors") from e
    if not quiz.questions:
        raise GenerationServiceFailure("service returned no questions")
    return quiz.questions


@log_performance("generate_quiz_questions")
def generate_quiz_questions(content: str, difficulty: str, num_questions: int,
                            quiz_type: str = "mcq") -> List[DraftQuestion]:
    """Ask the generative question service for a quiz. Raises GenerationServiceFailure."""
    prompt = QUIZ_PROMPT.format(
        num_questions=num_questions,
        difficulty=difficulty,
        content=content[:MAX_PROMPT_CHARS],
    )
    questions = parse_generated_questions(_complete_json(prompt))
    logger.info("ai_questions_received", requested=num_questions, received=len(questions), quiz_type=quiz_type)
    return questions


def adapt_quiz_difficulty(user_performance: float, current_difficulty: str) -> DifficultyAdjustment:
    prompt = ADAPT_PROMPT.format(
        user_performance=round(user_performance),
        current_difficulty=current_difficulty,
    )
    data = _complete_json(prompt)
    try:
        return DifficultyAdjustment.model_validate(data)
    except ValidationError as e:
        raise GenerationServiceFailure(f"malformed difficulty adjustment: {e.error_count()} validation errors") from e
