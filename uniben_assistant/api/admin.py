from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from uniben_assistant.api.dependencies import forbidden, get_db, not_found, require_system_admin
from uniben_assistant.core.identity import Actor, Role
from uniben_assistant.schemas import BuildingPayload, DepartmentPayload, UserCreate, UserUpdate
from uniben_assistant.utils.logging_utils import log_audit

router = APIRouter()


@router.get("/stats")
async def stats(actor: Actor = Depends(require_system_admin), db=Depends(get_db)):
    return {"success": True, "stats": await db.get_stats()}


# =============================================================================
# USERS
# =============================================================================

@router.get("/users")
async def list_users(role: Optional[Role] = None, actor: Actor = Depends(require_system_admin),
                     db=Depends(get_db)):
    users = await db.list_users(role.value if role else None)
    return {"success": True, "users": users}


@router.post("/users", status_code=201)
async def create_user(payload: UserCreate, actor: Actor = Depends(require_system_admin), db=Depends(get_db)):
    if payload.role is Role.GUEST:
        raise HTTPException(status_code=400, detail="Guest accounts cannot be created")
    if payload.role is Role.STUDENT:
        if not payload.matricNumber:
            raise HTTPException(status_code=400, detail="Matriculation number is required for students")
        if await db.user_exists("matricNumber", payload.matricNumber):
            raise HTTPException(status_code=409, detail="Matric number already exists")
    else:
        if not payload.staffId:
            raise HTTPException(status_code=400, detail="Staff ID is required for staff members and admins")
        if await db.user_exists("staffId", payload.staffId):
            raise HTTPException(status_code=409, detail="Staff ID already exists")

    doc = payload.model_dump(exclude_none=True)
    doc["role"] = payload.role.value
    user = await db.create_user(doc)
    log_audit("USER_CREATED", actor.id, f"{user['id']} role={doc['role']}")
    return {"success": True, "user": user}


@router.put("/users/{user_id}")
async def update_user(user_id: str, payload: UserUpdate, actor: Actor = Depends(require_system_admin),
                      db=Depends(get_db)):
    fields = payload.model_dump(exclude_unset=True)
    if payload.role is not None:
        fields["role"] = payload.role.value
    user = await db.update_user(user_id, fields)
    if not user:
        raise not_found("User not found")
    log_audit("USER_UPDATED", actor.id, user_id)
    return {"success": True, "user": user}


@router.delete("/users/{user_id}")
async def deactivate_user(user_id: str, actor: Actor = Depends(require_system_admin), db=Depends(get_db)):
    user = await db.get_user(user_id)
    if not user:
        raise not_found("User not found")
    if user.get("role") == Role.SYSTEM_ADMIN.value:
        raise forbidden("Cannot deactivate system admin accounts")
    await db.update_user(user_id, {"isActive": False})
    log_audit("USER_DEACTIVATED", actor.id, user_id)
    return {"success": True, "message": "User deactivated successfully"}


# =============================================================================
# DEPARTMENTS
# =============================================================================

@router.get("/departments")
async def list_departments(actor: Actor = Depends(require_system_admin), db=Depends(get_db)):
    return {"success": True, "departments": await db.list_departments()}


@router.post("/departments", status_code=201)
async def create_department(payload: DepartmentPayload, actor: Actor = Depends(require_system_admin),
                            db=Depends(get_db)):
    if not payload.name or not payload.faculty:
        raise HTTPException(status_code=400, detail="Department name and faculty are required")
    department = await db.create_department(payload.model_dump(exclude_none=True))
    log_audit("DEPARTMENT_CREATED", actor.id, department["id"])
    return {"success": True, "department": department}


@router.put("/departments/{department_id}")
async def update_department(department_id: str, payload: DepartmentPayload,
                            actor: Actor = Depends(require_system_admin), db=Depends(get_db)):
    department = await db.update_department(department_id, payload.model_dump(exclude_unset=True))
    if not department:
        raise not_found("Department not found")
    return {"success": True, "department": department}


@router.delete("/departments/{department_id}")
async def delete_department(department_id: str, actor: Actor = Depends(require_system_admin),
                            db=Depends(get_db)):
    if not await db.delete_department(department_id):
        raise not_found("Department not found")
    log_audit("DEPARTMENT_DELETED", actor.id, department_id)
    return {"success": True, "message": "Department deleted successfully"}


# =============================================================================
# BUILDINGS
# =============================================================================

@router.get("/buildings")
async def list_buildings(actor: Actor = Depends(require_system_admin), db=Depends(get_db)):
    return {"success": True, "buildings": await db.list_buildings()}


@router.post("/buildings", status_code=201)
async def create_building(payload: BuildingPayload, actor: Actor = Depends(require_system_admin),
                          db=Depends(get_db)):
    if not payload.name or payload.latitude is None or payload.longitude is None:
        raise HTTPException(status_code=400, detail="Building name, latitude and longitude are required")
    building = await db.create_building(payload.model_dump(exclude_none=True))
    log_audit("BUILDING_CREATED", actor.id, building["id"])
    return {"success": True, "building": building}


@router.put("/buildings/{building_id}")
async def update_building(building_id: str, payload: BuildingPayload,
                          actor: Actor = Depends(require_system_admin), db=Depends(get_db)):
    building = await db.update_building(building_id, payload.model_dump(exclude_unset=True))
    if not building:
        raise not_found("Building not found")
    return {"success": True, "building": building}


@router.delete("/buildings/{building_id}")
async def delete_building(building_id: str, actor: Actor = Depends(require_system_admin),
                          db=Depends(get_db)):
    if not await db.delete_building(building_id):
        raise not_found("Building not found")
    log_audit("BUILDING_DELETED", actor.id, building_id)
    return {"success": True, "message": "Building deleted successfully"}
