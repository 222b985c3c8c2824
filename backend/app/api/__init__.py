from fastapi import APIRouter

from app.api import sessions

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


# Include session routers
router.include_router(sessions.router)
