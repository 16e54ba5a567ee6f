from fastapi import APIRouter, Depends

from uniben_assistant.api.dependencies import get_db, not_found

router = APIRouter()


@router.get("/buildings")
async def list_buildings(db=Depends(get_db)):
    buildings = await db.list_buildings()
    return {"success": True, "count": len(buildings), "buildings": buildings}


@router.get("/buildings/{building_id}")
async def get_building(building_id: str, db=Depends(get_db)):
    building = await db.get_building(building_id)
    if not building or building.get("isActive") is False:
        raise not_found("Building not found")
    return {"success": True, "building": building}
