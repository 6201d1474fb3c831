from fastapi import APIRouter

from helpdesk.dependencies.auth import CurrentIdentity

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/whoami", summary="Echo the authenticated identity")
async def whoami(identity: CurrentIdentity) -> dict[str, str | None]:
    return {"actor_id": identity.actor_id, "role": identity.role.value if identity.role else None}
