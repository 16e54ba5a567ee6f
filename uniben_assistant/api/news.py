from fastapi import APIRouter, Depends

from uniben_assistant.api.dependencies import (
    enforce,
    forbidden,
    get_current_actor,
    get_db,
    not_found,
    require_user,
)
from uniben_assistant.core.identity import Actor, Audience
from uniben_assistant.core.policy import check_news_write, item_courses, news_admin_query
from uniben_assistant.schemas import NewsCreate, NewsUpdate
from uniben_assistant.utils.logging_utils import log_audit

router = APIRouter()


def _scope_fields(audience: Audience, department, courses) -> dict:
    """Keep department/courses only for the audiences that use them."""
    return {
        "department": department if audience is Audience.DEPARTMENT_SPECIFIC else None,
        "courses": list(courses or []) if audience is Audience.COURSE_SPECIFIC else [],
    }


def _check_existing(actor: Actor, item: dict):
    return check_news_write(
        actor,
        item.get("audience"),
        department=item.get("department"),
        courses=item_courses(item),
        author_id=item.get("authorId"),
    )


@router.get("")
async def list_news(actor: Actor = Depends(get_current_actor), db=Depends(get_db)):
    items = await db.news_for_actor(actor)
    return {"success": True, "count": len(items), "news": items}


@router.get("/admin/all")
async def list_news_admin(actor: Actor = Depends(require_user), db=Depends(get_db)):
    query = news_admin_query(actor)
    if query is None:
        raise forbidden("Access denied")
    items = await db.list_news(query)
    return {"success": True, "count": len(items), "news": items}


@router.post("", status_code=201)
async def create_news(payload: NewsCreate, actor: Actor = Depends(require_user), db=Depends(get_db)):
    enforce(check_news_write(actor, payload.audience, payload.department, payload.courses))

    doc = payload.model_dump()
    doc.update(_scope_fields(payload.audience, payload.department, payload.courses))
    doc["audience"] = payload.audience.value
    doc["authorId"] = actor.id
    doc["authorName"] = actor.name
    news = await db.create_news(doc)
    log_audit("NEWS_CREATED", actor.id, f"{news['id']} audience={doc['audience']}")
    return {"success": True, "news": news}


@router.put("/{news_id}")
async def update_news(news_id: str, payload: NewsUpdate, actor: Actor = Depends(require_user),
                      db=Depends(get_db)):
    existing = await db.get_news(news_id)
    if not existing:
        raise not_found("News not found")
    enforce(_check_existing(actor, existing))

    fields = payload.model_dump(exclude_unset=True)
    retargeted = any(k in fields for k in ("audience", "department", "courses"))
    if retargeted:
        audience = payload.audience or Audience(existing["audience"])
        department = fields.get("department", existing.get("department"))
        courses = fields.get("courses", list(item_courses(existing)))
        enforce(check_news_write(actor, audience, department, courses))
        fields.update(_scope_fields(audience, department, courses))
        fields["audience"] = audience.value

    news = await db.update_news(news_id, fields)
    log_audit("NEWS_UPDATED", actor.id, news_id)
    return {"success": True, "news": news}


@router.delete("/{news_id}")
async def delete_news(news_id: str, actor: Actor = Depends(require_user), db=Depends(get_db)):
    existing = await db.get_news(news_id)
    if not existing:
        raise not_found("News not found")
    enforce(_check_existing(actor, existing))

    await db.delete_news(news_id)
    log_audit("NEWS_DELETED", actor.id, news_id)
    return {"success": True, "message": "News deleted successfully"}
