from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from uniben_assistant.api.dependencies import get_current_actor, get_db
from uniben_assistant.core.identity import STAFF_LOGIN_ROLES, Actor, Role
from uniben_assistant.schemas import StaffLoginRequest, StudentLoginRequest
from uniben_assistant.utils.auth_utils import create_access_token
from uniben_assistant.utils.logging_utils import log_audit

router = APIRouter()


def actor_from_user(user: Dict[str, Any]) -> Actor:
    return Actor.from_claims({
        "id": user["id"],
        "role": user.get("role"),
        "name": user.get("name"),
        "department": user.get("department"),
        "courses": user.get("courses") or [],
        "tags": user.get("tags") or [],
    })


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": user["id"],
        "name": user.get("name"),
        "role": user.get("role"),
        "displayId": user.get("matricNumber") or user.get("staffId"),
        "email": user.get("email"),
        "department": user.get("department"),
        "courses": user.get("courses") or [],
        "lastLogin": user.get("lastLogin"),
    }


async def _issue(db, user: Dict[str, Any], welcome: str) -> Dict[str, Any]:
    await db.record_login(user["id"])
    refreshed = await db.get_user(user["id"]) or user
    token = create_access_token(actor_from_user(refreshed))
    log_audit("LOGIN", refreshed.get("matricNumber") or refreshed.get("staffId") or refreshed["id"],
              f"role={refreshed.get('role')}")
    return {
        "success": True,
        "message": welcome,
        "token": token,
        "user": public_user(refreshed),
    }


@router.post("/login/student")
async def login_student(request: StudentLoginRequest, db=Depends(get_db)):
    user = await db.find_active_student(request.matricNumber)
    if not user:
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "message": "Student not found. Please contact your department administrator to register.",
                "code": "STUDENT_NOT_FOUND",
            },
        )
    return await _issue(db, user, f"Welcome back, {user.get('name')}!")


@router.post("/login/staff")
async def login_staff(request: StaffLoginRequest, db=Depends(get_db)):
    user = await db.find_active_staff(request.staffId)
    if not user or Role.parse(user.get("role")) not in STAFF_LOGIN_ROLES:
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "message": "Staff member not found. Please contact IT support to register.",
                "code": "STAFF_NOT_FOUND",
            },
        )
    return await _issue(db, user, f"Welcome back, {user.get('name')}!")


@router.post("/login/guest")
async def login_guest():
    guest = Actor.guest()
    return {
        "success": True,
        "message": "Welcome, Guest! You have limited access.",
        "token": create_access_token(guest),
        "user": {"id": guest.id, "name": guest.name, "role": guest.role.value, "isGuest": True},
    }


@router.get("/verify")
async def verify(actor: Actor = Depends(get_current_actor)):
    return {"success": True, "user": actor.to_claims()}


@router.get("/me")
async def me(actor: Actor = Depends(get_current_actor), db=Depends(get_db)):
    if actor.is_guest:
        return {"success": True, "user": actor.to_claims()}
    user = await db.get_user(actor.id)
    if not user or not user.get("isActive", True):
        return JSONResponse(
            status_code=404,
            content={"success": False, "message": "User not found"},
        )
    return {"success": True, "user": public_user(user)}
