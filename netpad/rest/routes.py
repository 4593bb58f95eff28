from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel

# The router prefix will be /api/rest, so the endpoint will be /api/rest/relay
router = APIRouter(prefix="/relay", tags=["Relay"])


class RelayStatus(BaseModel):
    phase: str
    host: tuple[str, int] | None
    waiting_clients: list[tuple[str, int]]
    started_at: float
    host_registered_at: float | None


@router.get("", response_model=RelayStatus)
async def get_relay_status(request: Request):
    """
    Report the relay's current host and waiting clients.
    """
    coordinator = getattr(request.app.state, "relay_coordinator", None)
    if coordinator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Relay is not running.",
        )
    return coordinator.snapshot()
