from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from uniben_assistant.api.dependencies import enforce, get_db, not_found, require_user
from uniben_assistant.core.identity import Actor
from uniben_assistant.core.policy import check_quiz_access
from uniben_assistant.core.quiz import score_submission
from uniben_assistant.schemas import QuizCreate, QuizSubmission
from uniben_assistant.utils.logging_utils import log_audit

router = APIRouter()


def _summary(quiz: dict) -> dict:
    return {
        "id": quiz["id"],
        "title": quiz.get("title"),
        "numberOfQuestions": len(quiz.get("questions") or []),
        "timeLimit": quiz.get("timeLimit"),
        "totalAttempts": quiz.get("totalAttempts", 0),
        "averageScore": quiz.get("averageScore", 0),
    }


async def _load(quiz_id: str, actor: Actor, db) -> dict:
    quiz = await db.get_quiz(quiz_id)
    if not quiz or not quiz.get("isActive", True):
        raise not_found("Quiz not found")
    enforce(check_quiz_access(actor, quiz))
    return quiz


@router.get("")
async def list_quizzes(actor: Actor = Depends(require_user), db=Depends(get_db)):
    quizzes = await db.list_user_quizzes(actor.id)
    return {"success": True, "quizzes": [_summary(q) for q in quizzes]}


@router.get("/public")
async def list_public_quizzes(actor: Actor = Depends(require_user), db=Depends(get_db)):
    quizzes = await db.list_public_quizzes()
    return {"success": True, "quizzes": [_summary(q) for q in quizzes]}


@router.post("", status_code=201)
async def create_quiz(payload: QuizCreate, actor: Actor = Depends(require_user), db=Depends(get_db)):
    doc = payload.model_dump()
    doc.update({"userId": actor.id, "source": "manual"})
    quiz = await db.create_quiz(doc)
    log_audit("QUIZ_CREATED", actor.id, f"{quiz['id']} questions={len(payload.questions)}")
    return {"success": True, "quiz": _summary(quiz)}


@router.get("/{quiz_id}")
async def get_quiz(quiz_id: str, actor: Actor = Depends(require_user), db=Depends(get_db)):
    quiz = await _load(quiz_id, actor, db)
    return {
        "success": True,
        "quiz": {
            "id": quiz["id"],
            "title": quiz.get("title"),
            "timeLimit": quiz.get("timeLimit"),
            "questions": [{
                "question": q.get("question"),
                "options": q.get("options"),
                "hint": q.get("hint"),
                "correctAnswer": q.get("correctAnswer"),
                "explanation": q.get("explanation"),
            } for q in quiz.get("questions") or []],
        },
    }


@router.get("/{quiz_id}/question/{question_index}")
async def get_question_details(quiz_id: str, question_index: int, actor: Actor = Depends(require_user),
                               db=Depends(get_db)):
    quiz = await _load(quiz_id, actor, db)
    questions = quiz.get("questions") or []
    if not 0 <= question_index < len(questions):
        raise not_found("Question not found")
    question = questions[question_index]
    return {
        "success": True,
        "hint": question.get("hint"),
        "explanation": question.get("explanation"),
        "correctAnswer": question.get("correctAnswer"),
    }


@router.post("/{quiz_id}/submit")
async def submit_quiz(quiz_id: str, payload: QuizSubmission, actor: Actor = Depends(require_user),
                      db=Depends(get_db)):
    quiz = await _load(quiz_id, actor, db)
    answers = {key: answer.model_dump() for key, answer in payload.answers.items()}
    result = score_submission(quiz.get("questions") or [], answers, actor.id, payload.timeSpent,
                              datetime.now(timezone.utc))
    await db.record_quiz_result(quiz_id, result)
    log_audit("QUIZ_SUBMITTED", actor.id, f"{quiz_id} score={result['percentage']}")
    return {"success": True, "results": result}


@router.get("/{quiz_id}/results")
async def get_results(quiz_id: str, actor: Actor = Depends(require_user), db=Depends(get_db)):
    quiz = await _load(quiz_id, actor, db)
    mine = [r for r in quiz.get("results") or [] if str(r.get("userId")) == actor.id]
    if not mine:
        raise not_found("Results not found")
    return {
        "success": True,
        "quiz": {
            "title": quiz.get("title"),
            "results": mine[-1],
            "questions": quiz.get("questions") or [],
        },
    }
