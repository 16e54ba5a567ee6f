"""
Tool functions the model may call during a chat turn.

Every tool is an async function returning a JSON-safe dict with a `type` key.
Faults are reported as {"type": "error", "message": ...}; tools never raise.
"""

import asyncio
from datetime import date, datetime
from typing import Any, Dict, List

from bson import ObjectId
from google.genai import types

from uniben_assistant.config import Config
from uniben_assistant.core.identity import Actor
from uniben_assistant.utils.logging_utils import get_logger

logger = get_logger("tools")

QUERY_TYPES = ("department", "course", "building", "hod")
RESOURCE_TYPES = ("video", "article", "both")


def error_result(message: str) -> Dict[str, Any]:
    return {"type": "error", "message": message}


def json_safe(value: Any) -> Any:
    """Convert Mongo/datetime values into plain JSON types."""
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [json_safe(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, ObjectId):
        return str(value)
    return value


# =============================================================================
# queryDatabase
# =============================================================================

async def query_database(db, query_type: str, search_term: str) -> Dict[str, Any]:
    query_type = str(query_type or "").strip().lower()
    term = str(search_term or "").strip()
    if query_type not in QUERY_TYPES:
        return error_result("Invalid query type")

    try:
        if query_type == "building":
            rows = await db.search_buildings(term, limit=5)
            return {
                "type": "building",
                "results": [{
                    "id": b["id"],
                    "name": b.get("name"),
                    "department": b.get("department"),
                    "location": {"lat": b.get("latitude"), "lng": b.get("longitude")},
                    "photoURL": b.get("photoURL"),
                    "description": b.get("description"),
                } for b in rows],
            }

        if query_type == "department":
            rows = await db.search_departments(term, fields=("name", "faculty"), limit=5)
            return {
                "type": "department",
                "results": [{
                    "name": d.get("name"),
                    "faculty": d.get("faculty"),
                    "hodName": d.get("hodName"),
                    "hodContact": d.get("hodContact"),
                    "location": d.get("location"),
                } for d in rows],
            }

        if query_type == "hod":
            rows = await db.search_departments(term, fields=("name", "hodName"), limit=5)
            return {
                "type": "hod",
                "results": [{
                    "department": d.get("name"),
                    "hodName": d.get("hodName"),
                    "hodContact": d.get("hodContact"),
                    "office": d.get("location"),
                } for d in rows],
            }

        rows = await db.search_courses(term, limit=10)
        return {
            "type": "course",
            "results": [{
                "code": c.get("code"),
                "title": c.get("title"),
                "department": c.get("departmentName") or c.get("department"),
                "credit": c.get("credit"),
                "level": c.get("level"),
            } for c in rows],
        }
    except Exception as e:
        logger.error(f"Database query error: {e}")
        return error_result("Failed to query database")


# =============================================================================
# recommendResources
# =============================================================================

async def recommend_resources(course_name: str, resource_type: str = "both") -> Dict[str, Any]:
    name = str(course_name or "").strip()
    if not name:
        return error_result("A course name is required")
    resource_type = str(resource_type or "both").strip().lower()
    if resource_type not in RESOURCE_TYPES:
        resource_type = "both"

    videos = [
        {"title": f"{name} - Complete Tutorial", "source": "YouTube", "rating": "4.5",
         "description": "Comprehensive video course covering all fundamentals"},
        {"title": f"{name} for Beginners", "source": "YouTube", "rating": "4.8",
         "description": "Perfect starting point for newcomers"},
    ]
    articles = [
        {"title": f"Understanding {name}", "source": "GeeksforGeeks",
         "description": "In-depth article with examples and practice problems"},
        {"title": f"{name} Guide", "source": "FreeCodeCamp",
         "description": "Interactive tutorial with code examples"},
    ]

    result: Dict[str, Any] = {"type": "resources"}
    if resource_type in ("video", "both"):
        result["videos"] = videos
    if resource_type in ("article", "both"):
        result["articles"] = articles
    return result


# =============================================================================
# getNews
# =============================================================================

async def get_news(db, actor: Actor) -> Dict[str, Any]:
    try:
        items = await db.news_for_actor(actor, limit=Config.NEWS_LIMIT)
    except Exception as e:
        logger.error(f"News lookup error: {e}")
        return error_result("Failed to fetch news")
    return {
        "type": "news",
        "results": [json_safe({
            "id": n["id"],
            "title": n.get("title"),
            "content": n.get("content"),
            "audience": n.get("audience"),
            "priority": n.get("priority", "medium"),
            "tags": n.get("tags") or [],
            "createdAt": n.get("createdAt"),
        }) for n in items],
    }


# =============================================================================
# getFeesCatalog
# =============================================================================

async def get_fees_catalog(db, level: Any = None, session: Any = None) -> Dict[str, Any]:
    if level in (None, "") and session in (None, ""):
        return error_result("Provide a level or a session")
    try:
        catalog = await db.find_fees_catalog(level=level, session=session)
    except Exception as e:
        logger.error(f"Fees catalog lookup error: {e}")
        return error_result("Failed to fetch fees catalog")
    if not catalog:
        return error_result("No fee catalog found")
    return {"type": "fees_catalog", "catalog": json_safe(catalog)}


# =============================================================================
# DECLARATIONS / DISPATCH
# =============================================================================

def _string(description: str, enum: List[str] = None) -> types.Schema:
    return types.Schema(type=types.Type.STRING, description=description, enum=enum)


TOOL_DECLARATIONS = [
    types.FunctionDeclaration(
        name="queryDatabase",
        description="Search the UNIBEN database for information about departments, courses, buildings, HODs, or staff contacts",
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={
                "queryType": _string("Type of information to search for", list(QUERY_TYPES)),
                "searchTerm": _string('What to search for (e.g., "Computer Science", "200 level courses", "Library")'),
            },
            required=["queryType", "searchTerm"],
        ),
    ),
    types.FunctionDeclaration(
        name="recommendResources",
        description="Find learning resources like YouTube videos, articles, and tutorials for a specific course or topic",
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={
                "courseName": _string("Course name or topic to find resources for"),
                "resourceType": _string("Type of resources to recommend", list(RESOURCE_TYPES)),
            },
            required=["courseName"],
        ),
    ),
    types.FunctionDeclaration(
        name="getNews",
        description="Get the latest university news and announcements visible to the current user",
        parameters=types.Schema(type=types.Type.OBJECT, properties={
            "userId": _string("Identifier of the current user"),
            "userRole": _string("Role of the current user"),
            "departmentId": _string("Department of the current user, if any"),
            "courseIds": types.Schema(type=types.Type.ARRAY, items=types.Schema(type=types.Type.STRING),
                                      description="Courses of the current user, if any"),
        }),
    ),
    types.FunctionDeclaration(
        name="getFeesCatalog",
        description="Look up the school fees catalog for a level and academic session",
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={
                "level": _string('Student level, e.g. "100"'),
                "session": _string('Academic session, e.g. "2025/2026"'),
            },
        ),
    ),
]


async def _run(name: str, args: Dict[str, Any], actor: Actor, db) -> Dict[str, Any]:
    if name == "queryDatabase":
        return await query_database(db, args.get("queryType"), args.get("searchTerm"))
    if name == "recommendResources":
        return await recommend_resources(args.get("courseName"), args.get("resourceType", "both"))
    if name == "getNews":
        # Identity comes from the verified token, never from model arguments.
        return await get_news(db, actor)
    if name == "getFeesCatalog":
        return await get_fees_catalog(db, args.get("level"), args.get("session"))
    return error_result(f"Unknown tool: {name}")


async def dispatch(name: str, args: Dict[str, Any], actor: Actor, db,
                   timeout: float = Config.TOOL_TIMEOUT_SECONDS) -> Dict[str, Any]:
    """Run a tool by name under a timeout; always returns a result dict."""
    try:
        result = await asyncio.wait_for(_run(name, dict(args or {}), actor, db), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Tool {name} timed out after {timeout}s")
        return error_result(f"Tool {name} timed out")
    except Exception as e:
        logger.error(f"Tool {name} failed: {e}")
        return error_result(f"Tool {name} failed")
    return json_safe(result)
