import asyncio
from datetime import datetime, timezone

from uniben_assistant.core.identity import Actor, Role
from uniben_assistant.engines import tools


def _when(year, month=1, day=1):
    return datetime(year, month, day, tzinfo=timezone.utc)


async def test_fees_catalog_falls_back_to_level_match(db):
    """No 100/2025-2026 catalog exists, so the level-only match wins over the session-only one."""
    await db.create_fees_catalog({"level": "100", "session": "2024/2025", "effectiveFrom": _when(2024, 9),
                                  "items": [{"name": "Tuition", "amount": 90000}]})
    await db.create_fees_catalog({"level": "200", "session": "2025/2026", "effectiveFrom": _when(2025, 9)})

    result = await tools.get_fees_catalog(db, level="100", session="2025/2026")

    assert result["type"] == "fees_catalog"
    assert result["catalog"]["level"] == "100"
    assert result["catalog"]["session"] == "2024/2025"


async def test_fees_catalog_prefers_exact_then_session_then_latest(db):
    await db.create_fees_catalog({"level": "300", "session": "2025/2026", "effectiveFrom": _when(2025, 9)})
    await db.create_fees_catalog({"level": "300", "session": "2024/2025", "effectiveFrom": _when(2024, 9)})
    await db.create_fees_catalog({"level": "400", "session": "2023/2024", "effectiveFrom": _when(2023, 9)})

    exact = await db.find_fees_catalog("300", "2025/2026")
    assert exact["session"] == "2025/2026"

    by_session = await db.find_fees_catalog("500", "2023/2024")
    assert by_session["level"] == "400"

    latest = await db.find_fees_catalog("900", "1999/2000")
    assert latest["level"] == "300" and latest["session"] == "2025/2026"


async def test_fees_catalog_ignores_inactive_and_is_idempotent(db):
    await db.create_fees_catalog({"level": "100", "session": "2025/2026", "effectiveFrom": _when(2025, 9),
                                  "isActive": False})
    await db.create_fees_catalog({"level": "100", "session": "2024/2025", "effectiveFrom": _when(2024, 9)})

    first = await tools.get_fees_catalog(db, "100", "2025/2026")
    second = await tools.get_fees_catalog(db, "100", "2025/2026")

    assert first == second
    assert first["catalog"]["session"] == "2024/2025"


async def test_fees_catalog_error_when_empty(db):
    result = await tools.get_fees_catalog(db, "100", "2025/2026")
    assert result == {"type": "error", "message": "No fee catalog found"}


async def test_query_database_building_search_is_case_insensitive(db):
    await db.create_building({"name": "John Harris Library", "department": "Library",
                              "latitude": 6.39, "longitude": 5.61, "description": "Main library"})
    await db.create_building({"name": "Sports Complex", "latitude": 6.4, "longitude": 5.62})

    result = await tools.query_database(db, "building", "LIBRARY")

    assert result["type"] == "building"
    assert [b["name"] for b in result["results"]] == ["John Harris Library"]
    assert result["results"][0]["location"] == {"lat": 6.39, "lng": 5.61}


async def test_query_database_escapes_regex_input(db):
    await db.create_building({"name": "Hall (A)", "latitude": 6.4, "longitude": 5.6})
    result = await tools.query_database(db, "building", "(A)")
    assert [b["name"] for b in result["results"]] == ["Hall (A)"]


async def test_query_database_course_level_phrase(db):
    dept = await db.create_department({"name": "Computer Science", "faculty": "Physical Sciences"})
    await db.create_course({"code": "CSC 201", "title": "Data Structures", "level": 200, "credit": 3,
                            "department": dept["id"]})
    await db.create_course({"code": "CSC 101", "title": "Intro to Computing", "level": 100, "credit": 2,
                            "department": dept["id"]})

    result = await tools.query_database(db, "course", "200 level computer science")

    assert result["type"] == "course"
    assert [c["code"] for c in result["results"]] == ["CSC 201"]
    assert result["results"][0]["department"] == "Computer Science"


async def test_query_database_hod_lookup(db):
    await db.create_department({"name": "Mathematics", "faculty": "Physical Sciences",
                                "hodName": "Dr. B. Eze", "location": "Block A"})
    result = await tools.query_database(db, "hod", "eze")
    assert result == {"type": "hod", "results": [
        {"department": "Mathematics", "hodName": "Dr. B. Eze", "hodContact": None, "office": "Block A"},
    ]}


async def test_query_database_rejects_unknown_type(db):
    assert await tools.query_database(db, "hostel", "x") == {"type": "error", "message": "Invalid query type"}


async def test_recommend_resources_shapes():
    both = await tools.recommend_resources("Data Structures")
    assert len(both["videos"]) == 2 and len(both["articles"]) == 2

    videos = await tools.recommend_resources("Data Structures", "video")
    assert "articles" not in videos
    assert videos["videos"][0]["title"] == "Data Structures - Complete Tutorial"


async def test_get_news_uses_actor_not_model_arguments(db):
    await db.create_news({"title": "Open day", "content": "All welcome", "audience": "everyone",
                          "createdAt": _when(2025, 1, 1)})
    await db.create_news({"title": "Staff meeting", "content": "Room 3", "audience": "staff_only",
                          "createdAt": _when(2025, 2, 1)})

    guest = Actor.guest()
    result = await tools.dispatch("getNews", {"userId": "x", "userRole": "system_admin"}, guest, db)

    assert result["type"] == "news"
    assert [n["title"] for n in result["results"]] == ["Open day"]


async def test_get_news_newest_first(db):
    for month in (1, 3, 2):
        await db.create_news({"title": f"Item {month}", "content": "c", "audience": "everyone",
                              "createdAt": _when(2025, month, 1)})
    result = await tools.get_news(db, Actor(id="a1", role=Role.SYSTEM_ADMIN))
    assert [n["title"] for n in result["results"]] == ["Item 3", "Item 2", "Item 1"]
    assert isinstance(result["results"][0]["createdAt"], str)


async def test_dispatch_unknown_tool_and_timeout(db, monkeypatch):
    actor = Actor.guest()
    assert (await tools.dispatch("launchRocket", {}, actor, db))["type"] == "error"

    async def slow_resources(course_name, resource_type="both"):
        await asyncio.sleep(1)
        return {"type": "resources"}

    monkeypatch.setattr(tools, "recommend_resources", slow_resources)
    result = await tools.dispatch("recommendResources", {"courseName": "x"}, actor, db, timeout=0.01)
    assert result == {"type": "error", "message": "Tool recommendResources timed out"}


async def test_query_database_skips_deactivated_rows(db):
    building = await db.create_building({"name": "Old Annex", "latitude": 6.4, "longitude": 5.6})
    await db.update_building(building["id"], {"isActive": False})
    dept = await db.create_department({"name": "Annex Studies", "faculty": "Arts"})
    await db.delete_department(dept["id"])

    assert (await tools.query_database(db, "building", "annex"))["results"] == []
    assert (await tools.query_database(db, "department", "annex"))["results"] == []


async def test_get_news_matches_legacy_single_course_key(db):
    await db.create_news({"title": "CSC 201 test", "content": "Friday", "audience": "course_specific",
                          "course": "csc201"})
    student = Actor(id="s1", role=Role.STUDENT, courses=frozenset({"csc201"}))

    result = await tools.get_news(db, student)

    assert [n["title"] for n in result["results"]] == ["CSC 201 test"]
