"""
Quiz generation pipeline: rate limit, collect content, ask the AI service,
fall back to local synthesis, then sanitize every question
"""
import random
from dataclasses import dataclass
from typing import Callable, List, Optional

import structlog

from adaptiquiz import config
from adaptiquiz.errors import GenerationServiceFailure, InputError
from adaptiquiz.middleware.rate_limit import FixedWindowRateLimiter, check_action_limit, rate_limiters
from adaptiquiz.models import DIFFICULTIES, DraftQuestion
from adaptiquiz.services.fallback import synthesize
from adaptiquiz.services.file_extract import extract_text_from_upload
from adaptiquiz.services.llm import generate_quiz_questions
from adaptiquiz.services.monitoring import QUIZ_GENERATION_REQUESTS
from adaptiquiz.services.sanitizer import sanitize
from adaptiquiz.services.text_processing import word_count

logger = structlog.get_logger()

NO_CONTENT_MESSAGE = "Please provide at least 5 words of content or a non-empty file."
NO_FILE_TEXT_MESSAGE = (
    "We couldn't extract text from the uploaded file. Please try a different file, "
    "re-upload, or convert it to TXT/PDF/DOCX/PPTX."
)
EMPTY_QUIZ_MESSAGE = "Could not generate a quiz. Please try different content."
UNEXPECTED_MESSAGE = "An unexpected error occurred while generating the quiz."

QuestionService = Callable[[str, str, int], List[DraftQuestion]]


@dataclass
class UploadedFile:
    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data or b"")


def coerce_difficulty(value) -> str:
    difficulty = str(value or "medium").strip().lower()
    return difficulty if difficulty in DIFFICULTIES else "medium"


def coerce_num_questions(value) -> int:
    try:
        num = int(str(value).strip())
    except (TypeError, ValueError):
        num = config.DEFAULT_QUESTIONS
    return max(config.MIN_QUESTIONS, min(config.MAX_QUESTIONS, num))


def collect_content(content: str, file: Optional[UploadedFile]) -> str:
    """Join pasted text with any extracted file text; raises InputError below the word minimum"""
    has_file = file is not None and file.size > 0
    file_text = ""
    if has_file:
        if file.size > config.MAX_UPLOAD_BYTES:
            logger.warning("upload_too_large", filename=file.filename, size=file.size)
        else:
            file_text = extract_text_from_upload(file.data, file.filename, file.content_type)

    combined = "\n".join(part for part in (content or "", file_text) if part).strip()
    if word_count(combined) < config.MIN_CONTENT_WORDS:
        raise InputError(NO_FILE_TEXT_MESSAGE if has_file else NO_CONTENT_MESSAGE)
    return combined


def draft_questions(content: str, difficulty: str, num_questions: int,
                    question_service: Optional[QuestionService] = None):
    """AI questions when the service answers, otherwise the local synthesis. Returns (questions, source)."""
    question_service = question_service or generate_quiz_questions
    try:
        return question_service(content, difficulty, num_questions), "ai"
    except GenerationServiceFailure as e:
        logger.warning("ai_generation_failed", error=str(e))
    except Exception as e:
        logger.error("ai_generation_crashed", error=str(e), error_type=type(e).__name__)
    return synthesize(content, num_questions, difficulty), "fallback"


def _rate_limited(rate: dict) -> dict:
    return {
        "type": "error",
        "message": rate.get("message") or "Rate limit exceeded. Please try later.",
        "retry_after": rate.get("retry_after"),
        "rate_limit": rate.get("result"),
    }


def generate_quiz(content: str = "",
                  file: Optional[UploadedFile] = None,
                  difficulty: str = "medium",
                  num_questions=config.DEFAULT_QUESTIONS,
                  caller_identity: Optional[str] = None,
                  question_service: Optional[QuestionService] = None,
                  limiter: Optional[FixedWindowRateLimiter] = None,
                  rng: Optional[random.Random] = None) -> dict:
    """
    Generate a sanitized multiple-choice quiz.

    Returns {"type": "success", "questions", "quiz_type", "source"} or
    {"type": "error", "message"} with "retry_after" when throttled. Failures of
    the AI service never surface here; they switch the quiz to the local
    fallback instead.
    """
    try:
        rate = check_action_limit(caller_identity, "generateQuiz", limiter or rate_limiters["ai_generation"])
        if not rate["allowed"]:
            QUIZ_GENERATION_REQUESTS.labels(source="none", status="rate_limited").inc()
            return _rate_limited(rate)

        if file is not None and file.size > 0:
            upload = check_action_limit(caller_identity, "uploadFile", rate_limiters["file_upload"])
            if not upload["allowed"]:
                QUIZ_GENERATION_REQUESTS.labels(source="none", status="rate_limited").inc()
                return _rate_limited(upload)

        difficulty = coerce_difficulty(difficulty)
        num_questions = coerce_num_questions(num_questions)
        text = collect_content(content, file)

        drafts, source = draft_questions(text, difficulty, num_questions, question_service)
        questions = sanitize(drafts, num_questions, rng)
        if not questions and source == "ai":
            # Every AI question was unusable; the fallback always yields something
            drafts, source = synthesize(text, num_questions, difficulty), "fallback"
            questions = sanitize(drafts, num_questions, rng)
        if not questions:
            QUIZ_GENERATION_REQUESTS.labels(source=source, status="empty").inc()
            return {"type": "error", "message": EMPTY_QUIZ_MESSAGE}

        QUIZ_GENERATION_REQUESTS.labels(source=source, status="success").inc()
        logger.info("quiz_generated", source=source, questions=len(questions),
                    difficulty=difficulty, user_id=caller_identity)
        return {
            "type": "success",
            "questions": questions,
            "quiz_type": "mcq",
            "source": source,
            "rate_limit": rate["result"],
        }
    except InputError as e:
        QUIZ_GENERATION_REQUESTS.labels(source="none", status="invalid").inc()
        return {"type": "error", "message": str(e)}
    except Exception:
        logger.exception("quiz_generation_crashed")
        QUIZ_GENERATION_REQUESTS.labels(source="none", status="error").inc()
        return {"type": "error", "message": UNEXPECTED_MESSAGE}
