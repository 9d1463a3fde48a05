from typing import Optional

from fastapi import Header, HTTPException, Request

from src.common.constants import USER_ID_HEADER, USER_ROLE_HEADER
from src.infra.database import get_db
from src.services.ride_service.access import Caller, parse_role
from src.services.ride_service.publisher import NoopRideEventPublisher, RideEventPublisher
from src.services.ride_service.repository import BidRepository, RideRepository
from src.services.ride_service.service import RideService


def get_publisher(request: Request) -> RideEventPublisher:
    # Публикатор создаётся в lifespan; без него события отбрасываются
    return getattr(request.app.state, "publisher", None) or NoopRideEventPublisher()


def get_ride_service(request: Request) -> RideService:
    db = get_db()
    return RideService(
        db=db,
        rides=RideRepository(db),
        bids=BidRepository(db),
        publisher=get_publisher(request),
    )


def get_caller(
    user_id: Optional[str] = Header(None, alias=USER_ID_HEADER),
    user_role: Optional[str] = Header(None, alias=USER_ROLE_HEADER),
) -> Caller:
    """Личность, проставленная шлюзом после аутентификации."""
    if not user_id or not user_role:
        raise HTTPException(status_code=401, detail="Missing caller identity headers")
    return Caller(user_id=user_id, role=parse_role(user_role))
