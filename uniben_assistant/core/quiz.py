"""
Quiz scoring.

Answers arrive keyed by question index ("0", "1", ...). Unanswered questions
count as incorrect; indexes outside the quiz are ignored.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping


def grade_for(percentage: int) -> str:
    if percentage >= 70:
        return "A"
    if percentage >= 60:
        return "B"
    if percentage >= 50:
        return "C"
    if percentage >= 45:
        return "D"
    return "F"


def score_submission(questions: List[Mapping[str, Any]], answers: Mapping[str, Mapping[str, Any]],
                     user_id: str, time_spent: int, now: datetime) -> Dict[str, Any]:
    details = []
    correct = 0
    for key, answer in sorted(answers.items(), key=lambda kv: int(kv[0])):
        index = int(key)
        if not 0 <= index < len(questions):
            continue
        selected = answer.get("selected")
        is_correct = selected == questions[index].get("correctAnswer")
        correct += int(is_correct)
        details.append({
            "questionIndex": index,
            "selectedAnswer": selected,
            "isCorrect": is_correct,
            "attempts": answer.get("attempts") or 1,
            "timeSpent": answer.get("timeSpent") or 0,
        })

    total = len(questions)
    # halves round up
    percentage = int(correct * 100 / total + 0.5) if total else 0
    return {
        "userId": str(user_id),
        "score": percentage,
        "percentage": percentage,
        "totalQuestions": total,
        "correctAnswers": correct,
        "incorrectAnswers": total - correct,
        "timeSpent": time_spent or 0,
        "answers": details,
        "grade": grade_for(percentage),
        "completedAt": now,
    }
