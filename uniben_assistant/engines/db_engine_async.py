import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import motor.motor_asyncio
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from uniben_assistant.config import Config
from uniben_assistant.core.identity import Actor, Role
from uniben_assistant.core.policy import build_news_query
from uniben_assistant.utils.logging_utils import get_logger

logger = get_logger("db")

USERS_COLLECTION = "users"
BUILDINGS_COLLECTION = "buildings"
DEPARTMENTS_COLLECTION = "departments"
COURSES_COLLECTION = "courses"
NEWS_COLLECTION = "news"
FEES_CATALOG_COLLECTION = "fees_catalogs"
CONVERSATIONS_COLLECTION = "conversations"
QUIZZES_COLLECTION = "quizzes"

_LEVEL_RE = re.compile(r"(\d{3})\s*level", re.IGNORECASE)

# (collection, keys, options)
_RUNTIME_INDEXES = [
    (USERS_COLLECTION, [("matricNumber", ASCENDING)], {"sparse": True}),
    (USERS_COLLECTION, [("staffId", ASCENDING)], {"sparse": True}),
    (USERS_COLLECTION, [("role", ASCENDING)], {}),
    (BUILDINGS_COLLECTION, [("category", ASCENDING)], {}),
    (DEPARTMENTS_COLLECTION, [("faculty", ASCENDING)], {}),
    (COURSES_COLLECTION, [("code", ASCENDING)], {}),
    (COURSES_COLLECTION, [("department", ASCENDING)], {}),
    (COURSES_COLLECTION, [("departments_offering.lecturerId", ASCENDING)], {}),
    (NEWS_COLLECTION, [("audience", ASCENDING), ("active", ASCENDING), ("createdAt", DESCENDING)], {}),
    (NEWS_COLLECTION, [("department", ASCENDING)], {}),
    (NEWS_COLLECTION, [("courses", ASCENDING)], {}),
    (NEWS_COLLECTION, [("authorId", ASCENDING)], {}),
    (FEES_CATALOG_COLLECTION, [("level", ASCENDING), ("session", ASCENDING), ("effectiveFrom", DESCENDING)], {}),
    (FEES_CATALOG_COLLECTION, [("isNew", ASCENDING)], {}),
    (CONVERSATIONS_COLLECTION, [("userId", ASCENDING), ("lastActivity", DESCENDING)], {}),
    (QUIZZES_COLLECTION, [("userId", ASCENDING), ("createdAt", DESCENDING)], {}),
    (QUIZZES_COLLECTION, [("isPublic", ASCENDING), ("isActive", ASCENDING)], {}),
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Expose `_id` as a string `id` so documents can leave the data layer."""
    if doc is None:
        return None
    out = {k: v for k, v in doc.items() if k != "_id"}
    if "_id" in doc:
        out["id"] = str(doc["_id"])
    return out


def contains(term: str) -> Dict[str, str]:
    return {"$regex": re.escape(str(term or "").strip()), "$options": "i"}


def extract_topics(texts: Iterable[str]) -> List[str]:
    joined = " ".join(texts).lower()
    return [topic for topic, words in Config.TOPIC_KEYWORDS.items() if any(w in joined for w in words)]


def preview(text: str, limit: int) -> str:
    text = str(text or "")
    return text[:limit] + ("..." if len(text) > limit else "")


def _category_for(topics: List[str]) -> str:
    if "navigation" in topics:
        return "navigation"
    if "course" in topics:
        return "course_info"
    if "department" in topics:
        return "department_info"
    return "general"


def _message_counters(messages: List[Dict[str, Any]]) -> Dict[str, int]:
    return {
        "messageCount": len(messages),
        "userMessageCount": sum(1 for m in messages if m.get("role") == "user"),
        "assistantMessageCount": sum(1 for m in messages if m.get("role") == "assistant"),
        "functionCallCount": sum(len(m.get("functionCalls") or []) for m in messages),
    }


class AsyncDatabaseEngine:
    def __init__(self, uri: Optional[str] = None, db_name: Optional[str] = None):
        self.uri = uri or Config.MONGO_URI
        self.db_name = db_name or Config.MONGO_DB_NAME
        self.client = None
        self.db = None

    async def connect(self):
        """Establish connection to MongoDB and make sure runtime indexes exist."""
        self.client = motor.motor_asyncio.AsyncIOMotorClient(
            self.uri, serverSelectionTimeoutMS=Config.MONGO_SERVER_SELECTION_TIMEOUT_MS
        )
        await self.client.admin.command('ping')

        db_name = self.db_name or self.uri.rsplit('/', 1)[-1].split('?')[0] or "uniben_assistant"
        self.use_database(self.client[db_name])
        logger.info(f"Connected to MongoDB: {db_name}")
        await self._ensure_runtime_indexes()

    def use_database(self, db) -> None:
        self.db = db

    async def close(self):
        if self.client is not None:
            self.client.close()
            self.client = None

    async def _ensure_runtime_indexes(self) -> None:
        """Create frequently used indexes for stable runtime latency."""
        if self.db is None:
            return
        for coll_name, keys, options in _RUNTIME_INDEXES:
            try:
                await self.db[coll_name].create_index(keys, **options)
            except Exception as e:
                logger.warning(f"{coll_name} index ensure error: {e}")

    async def ping(self) -> bool:
        if self.db is None:
            return False
        try:
            await self.db.command('ping')
            return True
        except Exception:
            return False

    # =========================================================================
    # GENERIC
    # =========================================================================

    async def _get(self, collection: str, item_id: Any) -> Optional[Dict[str, Any]]:
        oid = to_object_id(item_id)
        if oid is None:
            return None
        return serialize(await self.db[collection].find_one({"_id": oid}))

    async def _list(self, collection: str, query: Dict[str, Any], sort=None,
                    limit: int = 0) -> List[Dict[str, Any]]:
        cursor = self.db[collection].find(query, sort=sort or None, limit=limit)
        return [serialize(doc) for doc in await cursor.to_list(length=limit or None)]

    async def _insert(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        now = utcnow()
        doc = {**doc, "createdAt": doc.get("createdAt") or now, "updatedAt": now}
        result = await self.db[collection].insert_one(doc)
        doc["_id"] = result.inserted_id
        return serialize(doc)

    async def _update(self, collection: str, item_id: Any,
                      fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        oid = to_object_id(item_id)
        if oid is None:
            return None
        fields = {k: v for k, v in fields.items() if k not in {"_id", "id", "createdAt"}}
        fields["updatedAt"] = utcnow()
        doc = await self.db[collection].find_one_and_update(
            {"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER
        )
        return serialize(doc)

    async def _deactivate(self, collection: str, item_id: Any, flag: str = "isActive") -> bool:
        # rows are flagged off, never removed
        return await self._update(collection, item_id, {flag: False}) is not None

    # =========================================================================
    # USERS (Identity Directory)
    # =========================================================================

    async def get_user(self, user_id: Any) -> Optional[Dict[str, Any]]:
        return await self._get(USERS_COLLECTION, user_id)

    async def find_active_student(self, matric_number: str) -> Optional[Dict[str, Any]]:
        doc = await self.db[USERS_COLLECTION].find_one({
            "matricNumber": str(matric_number).strip().upper(),
            "role": Role.STUDENT.value,
            "isActive": True,
        })
        return serialize(doc)

    async def find_active_staff(self, staff_id: str) -> Optional[Dict[str, Any]]:
        doc = await self.db[USERS_COLLECTION].find_one({
            "staffId": str(staff_id).strip().upper(),
            "role": {"$ne": Role.STUDENT.value},
            "isActive": True,
        })
        return serialize(doc)

    async def record_login(self, user_id: Any) -> None:
        await self._update(USERS_COLLECTION, user_id, {"lastLogin": utcnow()})

    async def user_exists(self, field_name: str, value: str) -> bool:
        return await self.db[USERS_COLLECTION].find_one({field_name: value}) is not None

    async def list_users(self, role: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"role": role} if role else {}
        return await self._list(USERS_COLLECTION, query, sort=[("createdAt", DESCENDING)])

    async def create_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._insert(USERS_COLLECTION, {"isActive": True, **data})

    async def update_user(self, user_id: Any, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._update(USERS_COLLECTION, user_id, fields)

    # =========================================================================
    # BUILDINGS / DEPARTMENTS
    # =========================================================================

    async def search_buildings(self, term: str, limit: int = 5) -> List[Dict[str, Any]]:
        regex = contains(term)
        query = {"isActive": {"$ne": False},
                 "$or": [{"name": regex}, {"department": regex}, {"description": regex}]}
        return await self._list(BUILDINGS_COLLECTION, query, limit=limit)

    async def list_buildings(self) -> List[Dict[str, Any]]:
        return await self._list(BUILDINGS_COLLECTION, {"isActive": {"$ne": False}},
                                sort=[("name", ASCENDING)])

    async def get_building(self, building_id: Any) -> Optional[Dict[str, Any]]:
        return await self._get(BUILDINGS_COLLECTION, building_id)

    async def create_building(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._insert(BUILDINGS_COLLECTION, {"isActive": True, **data})

    async def update_building(self, building_id: Any, fields: Dict[str, Any]):
        return await self._update(BUILDINGS_COLLECTION, building_id, fields)

    async def delete_building(self, building_id: Any) -> bool:
        return await self._deactivate(BUILDINGS_COLLECTION, building_id)

    async def search_departments(self, term: str, fields=("name", "faculty"),
                                 limit: int = 5) -> List[Dict[str, Any]]:
        regex = contains(term)
        query = {"isActive": {"$ne": False}, "$or": [{field: regex} for field in fields]}
        return await self._list(DEPARTMENTS_COLLECTION, query, limit=limit)

    async def list_departments(self) -> List[Dict[str, Any]]:
        return await self._list(DEPARTMENTS_COLLECTION, {"isActive": {"$ne": False}},
                                sort=[("name", ASCENDING)])

    async def department_names(self, ids: Iterable[Any]) -> Dict[str, str]:
        oids = [oid for oid in (to_object_id(i) for i in set(ids) if i) if oid is not None]
        if not oids:
            return {}
        docs = await self.db[DEPARTMENTS_COLLECTION].find({"_id": {"$in": oids}}).to_list(length=None)
        return {str(d["_id"]): d.get("name", "") for d in docs}

    async def create_department(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._insert(DEPARTMENTS_COLLECTION, {"isActive": True, **data})

    async def update_department(self, department_id: Any, fields: Dict[str, Any]):
        return await self._update(DEPARTMENTS_COLLECTION, department_id, fields)

    async def delete_department(self, department_id: Any) -> bool:
        return await self._deactivate(DEPARTMENTS_COLLECTION, department_id)

    # =========================================================================
    # COURSES
    # =========================================================================

    async def search_courses(self, term: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Match code/title/description or owning department name; "200 level" filters by level."""
        term = str(term or "").strip()
        query: Dict[str, Any] = {"isActive": {"$ne": False}}
        level_match = _LEVEL_RE.search(term)
        if level_match:
            query["level"] = int(level_match.group(1))
            term = _LEVEL_RE.sub(" ", term).strip()
            term = re.sub(r"\bcourses?\b", " ", term, flags=re.IGNORECASE).strip()

        if term:
            regex = contains(term)
            departments = await self.search_departments(term, fields=("name",), limit=20)
            clauses = [{"code": regex}, {"title": regex}, {"description": regex}]
            if departments:
                clauses.append({"department": {"$in": [d["id"] for d in departments]}})
            query["$or"] = clauses

        courses = await self._list(COURSES_COLLECTION, query, sort=[("code", ASCENDING)], limit=limit)
        names = await self.department_names(c.get("department") for c in courses)
        for course in courses:
            course["departmentName"] = names.get(str(course.get("department")), "")
        return courses

    async def get_course(self, course_id: Any) -> Optional[Dict[str, Any]]:
        return await self._get(COURSES_COLLECTION, course_id)

    async def list_courses(self) -> List[Dict[str, Any]]:
        return await self._list(COURSES_COLLECTION, {}, sort=[("code", ASCENDING)])

    async def list_department_courses(self, department_id: str) -> List[Dict[str, Any]]:
        query = {"$or": [{"department": department_id},
                         {"departments_offering.department": department_id}]}
        return await self._list(COURSES_COLLECTION, query, sort=[("code", ASCENDING)])

    async def list_lecturer_courses(self, lecturer_id: str) -> List[Dict[str, Any]]:
        query = {"departments_offering.lecturerId": lecturer_id}
        return await self._list(COURSES_COLLECTION, query, sort=[("code", ASCENDING)])

    async def create_course(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._insert(COURSES_COLLECTION, {"isActive": True, **data})

    async def update_course(self, course_id: Any, fields: Dict[str, Any]):
        return await self._update(COURSES_COLLECTION, course_id, fields)

    # =========================================================================
    # NEWS
    # =========================================================================

    async def news_for_actor(self, actor: Actor, limit: int = Config.NEWS_LIMIT) -> List[Dict[str, Any]]:
        return await self._list(NEWS_COLLECTION, build_news_query(actor),
                                sort=[("createdAt", DESCENDING)], limit=limit)

    async def list_news(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._list(NEWS_COLLECTION, query, sort=[("createdAt", DESCENDING)])

    async def get_news(self, news_id: Any) -> Optional[Dict[str, Any]]:
        return await self._get(NEWS_COLLECTION, news_id)

    async def create_news(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._insert(NEWS_COLLECTION, {"active": True, **data})

    async def update_news(self, news_id: Any, fields: Dict[str, Any]):
        return await self._update(NEWS_COLLECTION, news_id, fields)

    async def delete_news(self, news_id: Any) -> bool:
        return await self._deactivate(NEWS_COLLECTION, news_id, flag="active")

    # =========================================================================
    # FEES CATALOGS
    # =========================================================================

    async def _latest_catalog(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        docs = await self._list(FEES_CATALOG_COLLECTION, {**query, "isActive": True},
                                sort=[("effectiveFrom", DESCENDING)], limit=1)
        return docs[0] if docs else None

    async def find_fees_catalog(self, level: Optional[str] = None,
                                session: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Best match for level+session: exact, level-only, session-only, then most recent."""
        level = str(level).strip() if level not in (None, "") else None
        session = str(session).strip() if session not in (None, "") else None
        if not level and not session:
            return None

        candidates = []
        if level and session:
            candidates.append({"level": level, "session": session})
        if level:
            candidates.append({"level": level})
        if session:
            candidates.append({"session": session})
        candidates.append({})

        for query in candidates:
            catalog = await self._latest_catalog(query)
            if catalog:
                return catalog
        return None

    async def list_fees_catalogs(self, level=None, session=None, active=None) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if level:
            query["level"] = str(level)
        if session:
            query["session"] = str(session)
        if active is not None:
            query["isActive"] = bool(active)
        return await self._list(FEES_CATALOG_COLLECTION, query, sort=[("effectiveFrom", DESCENDING)])

    async def list_new_fees_catalogs(self) -> List[Dict[str, Any]]:
        return await self._list(FEES_CATALOG_COLLECTION, {"isNew": True, "isActive": True},
                                sort=[("createdAt", DESCENDING)])

    async def get_fees_catalog(self, catalog_id: Any) -> Optional[Dict[str, Any]]:
        return await self._get(FEES_CATALOG_COLLECTION, catalog_id)

    async def create_fees_catalog(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._insert(FEES_CATALOG_COLLECTION, {"isActive": True, "isNew": True, **data})

    async def update_fees_catalog(self, catalog_id: Any, fields: Dict[str, Any]):
        return await self._update(FEES_CATALOG_COLLECTION, catalog_id, fields)

    async def delete_fees_catalog(self, catalog_id: Any) -> bool:
        return await self._deactivate(FEES_CATALOG_COLLECTION, catalog_id)

    async def acknowledge_fees_catalogs(self, ids: Iterable[Any]) -> int:
        oids = [oid for oid in (to_object_id(i) for i in ids) if oid is not None]
        if not oids:
            return 0
        result = await self.db[FEES_CATALOG_COLLECTION].update_many(
            {"_id": {"$in": oids}}, {"$set": {"isNew": False, "updatedAt": utcnow()}}
        )
        return result.modified_count

    # =========================================================================
    # CONVERSATIONS
    # =========================================================================

    async def create_conversation(self, user_id: str, messages: List[Dict[str, Any]]) -> str:
        if not messages:
            raise ValueError("Conversation must have at least one message")
        now = utcnow()
        first_user = next((m["content"] for m in messages if m.get("role") == "user"), "")
        topics = extract_topics(m["content"] for m in messages if m.get("role") == "user")
        doc = {
            "userId": str(user_id),
            "title": preview(first_user, Config.TITLE_PREVIEW_LENGTH) if first_user else "New conversation",
            "messages": messages,
            "isActive": True,
            "topics": topics,
            "category": _category_for(topics),
            "lastActivity": now,
            "createdAt": now,
            "updatedAt": now,
            **_message_counters(messages),
        }
        result = await self.db[CONVERSATIONS_COLLECTION].insert_one(doc)
        return str(result.inserted_id)

    async def append_messages(self, conversation_id: Any, user_id: str,
                              messages: List[Dict[str, Any]]) -> bool:
        """Atomically append messages to a conversation owned by user_id."""
        oid = to_object_id(conversation_id)
        if oid is None or not messages:
            return False
        now = utcnow()
        topics = extract_topics(m["content"] for m in messages if m.get("role") == "user")
        update: Dict[str, Any] = {
            "$push": {"messages": {"$each": messages}},
            "$inc": _message_counters(messages),
            "$set": {"lastActivity": now, "updatedAt": now},
        }
        if topics:
            update["$addToSet"] = {"topics": {"$each": topics}}
        result = await self.db[CONVERSATIONS_COLLECTION].update_one(
            {"_id": oid, "userId": str(user_id)}, update
        )
        return result.matched_count > 0

    async def get_conversation(self, conversation_id: Any, user_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(conversation_id)
        if oid is None:
            return None
        doc = await self.db[CONVERSATIONS_COLLECTION].find_one({"_id": oid, "userId": str(user_id)})
        return serialize(doc)

    async def recent_conversations(self, user_id: str,
                                   limit: int = Config.CONVERSATION_LIST_LIMIT) -> List[Dict[str, Any]]:
        return await self._list(
            CONVERSATIONS_COLLECTION,
            {"userId": str(user_id), "isActive": True},
            sort=[("lastActivity", DESCENDING)],
            limit=limit,
        )

    # =========================================================================
    # QUIZZES
    # =========================================================================

    async def create_quiz(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._insert(QUIZZES_COLLECTION, {
            "isActive": True,
            "isPublic": False,
            "results": [],
            "totalAttempts": 0,
            "averageScore": 0,
            "averageTime": 0,
            **data,
        })

    async def get_quiz(self, quiz_id: Any) -> Optional[Dict[str, Any]]:
        return await self._get(QUIZZES_COLLECTION, quiz_id)

    async def list_user_quizzes(self, user_id: str) -> List[Dict[str, Any]]:
        return await self._list(QUIZZES_COLLECTION, {"userId": str(user_id), "isActive": True},
                                sort=[("createdAt", DESCENDING)])

    async def list_public_quizzes(self) -> List[Dict[str, Any]]:
        return await self._list(QUIZZES_COLLECTION, {"isPublic": True, "isActive": True},
                                sort=[("createdAt", DESCENDING)])

    async def record_quiz_result(self, quiz_id: Any, result: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Append an attempt, then refresh the attempt statistics from the stored results."""
        oid = to_object_id(quiz_id)
        if oid is None:
            return None
        doc = await self.db[QUIZZES_COLLECTION].find_one_and_update(
            {"_id": oid},
            {"$push": {"results": result}, "$set": {"updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        results = doc.get("results") or []
        stats = {
            "totalAttempts": len(results),
            "averageScore": sum(r.get("score", 0) for r in results) / len(results),
            "averageTime": sum(r.get("timeSpent", 0) for r in results) / len(results),
        }
        await self.db[QUIZZES_COLLECTION].update_one({"_id": oid}, {"$set": stats})
        return serialize({**doc, **stats})

    # =========================================================================
    # STATS
    # =========================================================================

    async def get_stats(self) -> Dict[str, Any]:
        counts = {}
        for name in (USERS_COLLECTION, BUILDINGS_COLLECTION, DEPARTMENTS_COLLECTION,
                     COURSES_COLLECTION, NEWS_COLLECTION, FEES_CATALOG_COLLECTION,
                     CONVERSATIONS_COLLECTION, QUIZZES_COLLECTION):
            counts[name] = await self.db[name].count_documents({})
        roles = {}
        for role in Role:
            if role is Role.GUEST:
                continue
            roles[role.value] = await self.db[USERS_COLLECTION].count_documents({"role": role.value})
        return {"collections": counts, "users_by_role": roles}
