from datetime import datetime, timezone

from uniben_assistant.core.identity import Actor, Role
from uniben_assistant.core.quiz import grade_for, score_submission

from conftest import auth_header

NOW = datetime(2025, 9, 1, tzinfo=timezone.utc)


def _question(correct="A", **extra):
    return {
        "question": "Which structure is LIFO?",
        "options": ["Stack", "Queue", "Tree", "Graph"],
        "correctAnswer": correct,
        "explanation": "A stack pops the last pushed item first.",
        **extra,
    }


QUIZ = {"title": "Data Structures warm-up", "questions": [_question("A"), _question("B"), _question("C")]}


def test_score_counts_unanswered_as_incorrect():
    questions = QUIZ["questions"]
    result = score_submission(questions, {"0": {"selected": "A"}, "2": {"selected": "D"}, "9": {"selected": "A"}},
                              "s1", 120, NOW)

    assert result["correctAnswers"] == 1
    assert result["incorrectAnswers"] == 2
    assert result["percentage"] == 33
    assert [a["questionIndex"] for a in result["answers"]] == [0, 2]
    assert result["grade"] == "F"


def test_grade_boundaries():
    assert [grade_for(p) for p in (100, 70, 69, 60, 50, 45, 44)] == ["A", "A", "B", "B", "C", "D", "F"]


async def test_create_take_and_submit_quiz(client, student):
    headers = auth_header(student)
    created = await client.post("/api/quiz", json=QUIZ, headers=headers)
    assert created.status_code == 201
    quiz_id = created.json()["quiz"]["id"]
    assert created.json()["quiz"]["numberOfQuestions"] == 3

    fetched = await client.get(f"/api/quiz/{quiz_id}", headers=headers)
    assert fetched.status_code == 200
    assert len(fetched.json()["quiz"]["questions"]) == 3

    submitted = await client.post(f"/api/quiz/{quiz_id}/submit", headers=headers, json={
        "answers": {"0": {"selected": "A"}, "1": {"selected": "B"}, "2": {"selected": "A"}},
        "timeSpent": 90,
    })
    assert submitted.status_code == 200
    assert submitted.json()["results"]["percentage"] == 67

    results = await client.get(f"/api/quiz/{quiz_id}/results", headers=headers)
    assert results.json()["quiz"]["results"]["correctAnswers"] == 2

    listing = await client.get("/api/quiz", headers=headers)
    assert listing.json()["quizzes"][0]["totalAttempts"] == 1


async def test_private_quiz_hidden_from_other_users(client, student):
    created = await client.post("/api/quiz", json=QUIZ, headers=auth_header(student))
    quiz_id = created.json()["quiz"]["id"]

    other = Actor(id="s2", role=Role.STUDENT)
    response = await client.get(f"/api/quiz/{quiz_id}", headers=auth_header(other))
    assert response.status_code == 403


async def test_quiz_validation(client, student):
    bad = {"title": "Broken", "questions": [_question(options=["a", "b", "c"])]}
    response = await client.post("/api/quiz", json=bad, headers=auth_header(student))
    assert response.status_code == 400

    empty = await client.post("/api/quiz", json={"title": "Empty", "questions": []}, headers=auth_header(student))
    assert empty.status_code == 400


async def test_question_details_out_of_range(client, student):
    headers = auth_header(student)
    quiz_id = (await client.post("/api/quiz", json=QUIZ, headers=headers)).json()["quiz"]["id"]

    assert (await client.get(f"/api/quiz/{quiz_id}/question/1", headers=headers)).json()["correctAnswer"] == "B"
    assert (await client.get(f"/api/quiz/{quiz_id}/question/7", headers=headers)).status_code == 404


def test_percentage_rounds_halves_up():
    questions = [_question("A") for _ in range(8)]
    answers = {str(i): {"selected": "A" if i < 5 else "B"} for i in range(8)}

    result = score_submission(questions, answers, "s1", 60, NOW)

    assert result["correctAnswers"] == 5
    assert result["percentage"] == 63
    assert result["grade"] == "B"
