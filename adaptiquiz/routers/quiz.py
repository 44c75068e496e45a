from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from starlette.concurrency import run_in_threadpool

from adaptiquiz.auth import caller_identity
from adaptiquiz.errors import RateLimitExceeded
from adaptiquiz.middleware.rate_limit import enforce_rate_limit, rate_limit_headers
from adaptiquiz.models import AdaptDifficultyRequest, GradeQuizRequest
from adaptiquiz.services.adaptive import adapt_difficulty, grade_quiz
from adaptiquiz.services.quiz import UNEXPECTED_MESSAGE, UploadedFile, generate_quiz


router = APIRouter(prefix="/api/quiz", tags=["quiz"])


def _raise_for_error(result: dict) -> None:
    if result.get("retry_after"):
        raise RateLimitExceeded(result["message"], result["retry_after"], result.get("rate_limit"))
    if result["message"] == UNEXPECTED_MESSAGE:
        raise HTTPException(status_code=500, detail=result["message"])
    raise HTTPException(status_code=400, detail=result["message"])


@router.post("/generate")
async def generate(
    response: Response,
    content: str = Form(""),
    difficulty: str = Form("medium"),
    num_questions: str = Form("5"),
    file: Optional[UploadFile] = File(None),
    user_id: Optional[str] = Depends(caller_identity),
):
    """Generate a multiple-choice quiz from pasted text and/or an uploaded document"""
    upload = None
    if file is not None and file.filename:
        upload = UploadedFile(data=await file.read(), filename=file.filename, content_type=file.content_type)

    result = await run_in_threadpool(
        generate_quiz,
        content=content,
        file=upload,
        difficulty=difficulty,
        num_questions=num_questions,
        caller_identity=user_id,
    )
    if result["type"] == "error":
        _raise_for_error(result)

    response.headers.update(rate_limit_headers(result.pop("rate_limit")))
    return result


@router.post("/adapt-difficulty")
async def adapt(
    body: AdaptDifficultyRequest,
    response: Response,
    user_id: Optional[str] = Depends(caller_identity),
):
    """Recommend the next quiz difficulty from the last score"""
    result = await run_in_threadpool(adapt_difficulty, body.user_performance, body.current_difficulty, user_id)
    if result["type"] == "error":
        _raise_for_error(result)
    return result


@router.post("/grade", dependencies=[Depends(enforce_rate_limit("general"))])
def grade(body: GradeQuizRequest):
    if len(body.selected_answers) > len(body.questions):
        raise HTTPException(status_code=400, detail="More answers than questions")
    return grade_quiz(body.questions, body.selected_answers)
