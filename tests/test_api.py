import asyncio
import datetime

import pytest

from uniben_assistant.core.identity import Actor, Role
from uniben_assistant.engines.chat_engine import ChatEngine
from uniben_assistant.utils.auth_utils import create_access_token

from conftest import ScriptedAI, auth_header, text_turn


async def test_home_and_health(client):
    home = await client.get("/")
    assert home.status_code == 200
    assert "running" in home.json()["status"]

    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["database"] in ("connected", "unavailable")


async def test_guest_location_question_works_without_model(app, db, client):
    await db.create_building({"name": "John Harris Library", "department": "Library",
                              "latitude": 6.39, "longitude": 5.61})
    app.state.chat_engine = ChatEngine(ScriptedAI(unavailable=True), db)

    response = await client.post("/api/chat/message", json={"message": "Where is the library"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["hasLocation"] is True
    assert body["conversationId"] is None
    assert "John Harris Library" in body["message"]
    assert await db.db["conversations"].count_documents({}) == 0


async def test_concurrent_new_turns_create_separate_conversations(app, db, client, student):
    app.state.chat_engine = ChatEngine(ScriptedAI([text_turn("one"), text_turn("two")]), db)
    headers = auth_header(student)

    first, second = await asyncio.gather(
        client.post("/api/chat/message", json={"message": "hello"}, headers=headers),
        client.post("/api/chat/message", json={"message": "hi again"}, headers=headers),
    )

    ids = {first.json()["conversationId"], second.json()["conversationId"]}
    assert None not in ids
    assert len(ids) == 2
    for conversation_id in ids:
        conversation = await db.get_conversation(conversation_id, student.id)
        assert conversation["messageCount"] == 2


async def test_conversation_round_trip(app, db, client, student):
    app.state.chat_engine = ChatEngine(ScriptedAI([text_turn("Hi John!"), text_turn("CSC 201 is on Monday.")]), db)
    headers = auth_header(student)

    first = await client.post("/api/chat/message", json={"message": "hello"}, headers=headers)
    conversation_id = first.json()["conversationId"]
    await client.post("/api/chat/message", json={"message": "when is my course?", "conversationId": conversation_id},
                      headers=headers)

    response = await client.get(f"/api/chat/conversation/{conversation_id}", headers=headers)
    assert response.status_code == 200
    messages = response.json()["conversation"]["messages"]
    assert [(m["role"], m["content"]) for m in messages] == [
        ("user", "hello"),
        ("assistant", "Hi John!"),
        ("user", "when is my course?"),
        ("assistant", "CSC 201 is on Monday."),
    ]

    listing = await client.get("/api/chat/conversations", headers=headers)
    assert [c["id"] for c in listing.json()["conversations"]] == [conversation_id]


async def test_other_users_conversation_is_not_found(app, db, client, student):
    app.state.chat_engine = ChatEngine(ScriptedAI([text_turn("hey")]), db)
    created = await client.post("/api/chat/message", json={"message": "hi"}, headers=auth_header(student))
    conversation_id = created.json()["conversationId"]

    stranger = Actor(id="someone-else", role=Role.STUDENT)
    response = await client.get(f"/api/chat/conversation/{conversation_id}", headers=auth_header(stranger))
    assert response.status_code == 404
    assert response.json()["success"] is False


async def test_empty_message_is_rejected(client):
    response = await client.post("/api/chat/message", json={"message": "   "})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "Message is required" in body["message"]


async def test_guest_sees_no_conversations(client):
    response = await client.get("/api/chat/conversations")
    assert response.json() == {"success": True, "conversations": []}


async def test_student_login_issues_token(client, student):
    response = await client.post("/api/auth/login/student", json={"matricNumber": "csc/22/1234"})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["displayId"] == "CSC/22/1234"

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["user"]["id"] == student.id


async def test_unknown_student_login(client):
    response = await client.post("/api/auth/login/student", json={"matricNumber": "XYZ/00/0000"})
    assert response.status_code == 404
    assert response.json()["code"] == "STUDENT_NOT_FOUND"


async def test_missing_token(client):
    response = await client.get("/api/auth/verify")
    assert response.status_code == 401
    assert response.json()["code"] == "NO_TOKEN"


async def test_expired_token(client, student):
    token = create_access_token(student, expires_delta=datetime.timedelta(minutes=-5))
    response = await client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_EXPIRED"


async def test_tampered_token(client, student):
    token = create_access_token(student) + "x"
    response = await client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_TOKEN"


async def test_guest_cannot_post_news(client):
    guest_token = (await client.post("/api/auth/login/guest")).json()["token"]
    response = await client.post("/api/news", json={"title": "Hi", "content": "There"},
                                 headers={"Authorization": f"Bearer {guest_token}"})
    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_REQUIRED"


async def test_departmental_admin_cannot_target_other_department(client):
    admin = Actor(id="d1", role=Role.DEPARTMENTAL_ADMIN, department="dept-cs")
    response = await client.post("/api/news", headers=auth_header(admin), json={
        "title": "Maths seminar", "content": "Room 4",
        "audience": "department_specific", "department": "dept-math",
    })
    assert response.status_code == 403
    assert response.json()["message"] == "You can only post to your assigned department"


async def test_student_news_feed_is_filtered(client, db, student, system_admin):
    headers = auth_header(system_admin)
    for payload in (
        {"title": "Open day", "content": "All welcome"},
        {"title": "Maths seminar", "content": "Room 4", "audience": "department_specific",
         "department": "dept-math"},
        {"title": "CS hackathon", "content": "Lab 2", "audience": "department_specific",
         "department": "dept-cs"},
    ):
        created = await client.post("/api/news", json=payload, headers=headers)
        assert created.status_code == 201

    response = await client.get("/api/news", headers=auth_header(student))
    titles = {n["title"] for n in response.json()["news"]}
    assert titles == {"Open day", "CS hackathon"}


async def test_fees_find_without_catalogs(client):
    response = await client.get("/api/bursary/fees/find", params={"level": "100"})
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "No active fees catalog found"}


async def test_bursary_admin_creates_and_acknowledges_catalog(client, bursary_admin, student):
    created = await client.post("/api/bursary/fees", headers=auth_header(bursary_admin), json={
        "level": "100", "session": "2025/2026", "items": [{"name": "Tuition", "amount": 90000}],
    })
    assert created.status_code == 201
    catalog_id = created.json()["catalog"]["id"]

    assert len((await client.get("/api/bursary/fees/new")).json()["catalogs"]) == 1

    denied = await client.patch(f"/api/bursary/fees/{catalog_id}/acknowledge", headers=auth_header(student))
    assert denied.status_code == 403

    acked = await client.patch(f"/api/bursary/fees/{catalog_id}/acknowledge",
                               headers=auth_header(bursary_admin))
    assert acked.status_code == 200
    assert (await client.get("/api/bursary/fees/new")).json()["catalogs"] == []


async def test_admin_stats_requires_system_admin(client, student, system_admin):
    assert (await client.get("/api/admin/stats", headers=auth_header(student))).status_code == 403
    response = await client.get("/api/admin/stats", headers=auth_header(system_admin))
    assert response.status_code == 200
    assert response.json()["success"] is True


async def test_departmental_admin_offerings_are_merged(client, db):
    course = await db.create_course({
        "code": "CSC 201", "title": "Data Structures", "level": 200, "credit": 3, "department": "dept-cs",
        "departments_offering": [{"department": "dept-math", "level": 200, "lecturerId": "m1"}],
    })
    admin = Actor(id="d1", role=Role.DEPARTMENTAL_ADMIN, department="dept-cs")

    response = await client.put(f"/api/department-admin/courses/{course['id']}", headers=auth_header(admin),
                                json={"departments_offering": [{"level": 200, "lecturerId": "l1"}]})

    assert response.status_code == 200
    offerings = response.json()["course"]["departments_offering"]
    assert [(o["department"], o["lecturerId"]) for o in offerings] == [("dept-math", "m1"), ("dept-cs", "l1")]
    assert offerings[1]["assignedBy"] == "d1"

    foreign = await client.put(f"/api/department-admin/courses/{course['id']}", headers=auth_header(admin),
                               json={"departments_offering": [{"department": "dept-math", "level": 300}]})
    assert foreign.status_code == 403


async def test_lecturer_can_only_edit_assigned_courses(client, db):
    course = await db.create_course({
        "code": "CSC 205", "title": "Operating Systems", "level": 200, "credit": 3, "department": "dept-cs",
        "departments_offering": [{"department": "dept-cs", "level": 200, "lecturerId": "l1"}],
    })
    assigned = Actor(id="l1", role=Role.LECTURER_ADMIN, department="dept-cs")
    other = Actor(id="l2", role=Role.LECTURER_ADMIN, department="dept-cs")

    ok = await client.put(f"/api/lecturer-admin/courses/{course['id']}", headers=auth_header(assigned),
                          json={"syllabus": "Processes, memory, file systems"})
    assert ok.status_code == 200
    assert ok.json()["course"]["syllabus"] == "Processes, memory, file systems"

    denied = await client.put(f"/api/lecturer-admin/courses/{course['id']}", headers=auth_header(other),
                              json={"syllabus": "x"})
    assert denied.status_code == 403

    create = await client.post("/api/admin/courses", headers=auth_header(assigned),
                               json={"code": "CSC 999", "title": "New"})
    assert create.status_code == 403


@pytest.mark.parametrize("audience", ["everyone", "students_only", "staff_only"])
async def test_general_admins_post_general_news(client, system_admin, bursary_admin, audience):
    for admin in (system_admin, bursary_admin):
        response = await client.post("/api/news", headers=auth_header(admin), json={
            "title": "Registration", "content": "Portal opens Monday", "audience": audience,
        })
        assert response.status_code == 201
        assert response.json()["news"]["audience"] == audience


async def test_deleted_news_is_kept_but_hidden(client, db, student, system_admin):
    headers = auth_header(system_admin)
    news_id = (await client.post("/api/news", json={"title": "Open day", "content": "All welcome"},
                                 headers=headers)).json()["news"]["id"]

    response = await client.delete(f"/api/news/{news_id}", headers=headers)
    assert response.status_code == 200

    assert await db.db["news"].count_documents({}) == 1
    assert (await db.get_news(news_id))["active"] is False
    assert (await client.get("/api/news", headers=auth_header(student))).json()["news"] == []


async def test_deleted_building_drops_out_of_navigation(client, db, system_admin):
    headers = auth_header(system_admin)
    building_id = (await client.post("/api/admin/buildings", headers=headers, json={
        "name": "Old Annex", "latitude": 6.4, "longitude": 5.6,
    })).json()["building"]["id"]

    assert (await client.delete(f"/api/admin/buildings/{building_id}", headers=headers)).status_code == 200

    assert await db.db["buildings"].count_documents({}) == 1
    assert (await client.get("/api/navigation/buildings")).json()["buildings"] == []
    assert (await client.get(f"/api/navigation/buildings/{building_id}")).status_code == 404
