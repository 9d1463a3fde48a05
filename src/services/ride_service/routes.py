from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from src.services.ride_service.access import Caller, require_role
from src.services.ride_service.dependencies import get_caller, get_ride_service
from src.services.ride_service.service import RideService
from src.shared.models.enums import UserRole
from src.shared.models.ride import (
    AcceptBidRequest,
    BidDTO,
    BidListResponse,
    CreateRideRequest,
    PlaceBidRequest,
    RideDTO,
    RideListResponse,
    UpdateStatusRequest,
)

router = APIRouter(tags=["Rides"])


@router.post("/rides", response_model=RideDTO, status_code=201)
async def create_ride(
    request: CreateRideRequest,
    caller: Caller = Depends(get_caller),
    service: RideService = Depends(get_ride_service),
):
    require_role(caller, UserRole.PASSENGER)
    return await service.create_ride(caller.user_id, request.from_, request.to)


@router.get("/rides", response_model=RideListResponse)
async def list_my_rides(
    limit: Optional[int] = Query(None),
    caller: Caller = Depends(get_caller),
    service: RideService = Depends(get_ride_service),
):
    match caller.role:
        case UserRole.PASSENGER:
            rides = await service.list_rides_by_passenger(caller.user_id, limit)
        case UserRole.DRIVER:
            rides = await service.list_rides_by_driver(caller.user_id, limit)
        case UserRole.ADMIN:
            rides = await service.list_all_rides(limit)
    return RideListResponse(rides=rides)


# Объявлен до /rides/{ride_id}, иначе "available" разбирается как UUID
@router.get("/rides/available", response_model=RideListResponse)
async def list_available_rides(
    limit: Optional[int] = Query(None),
    caller: Caller = Depends(get_caller),
    service: RideService = Depends(get_ride_service),
):
    require_role(caller, UserRole.DRIVER)
    return RideListResponse(rides=await service.list_open_rides(limit))


@router.get("/admin/rides", response_model=RideListResponse)
async def list_all_rides(
    limit: Optional[int] = Query(None),
    caller: Caller = Depends(get_caller),
    service: RideService = Depends(get_ride_service),
):
    require_role(caller, UserRole.ADMIN)
    return RideListResponse(rides=await service.list_all_rides(limit))


@router.get("/rides/{ride_id}", response_model=RideDTO)
async def get_ride(
    ride_id: UUID,
    caller: Caller = Depends(get_caller),
    service: RideService = Depends(get_ride_service),
):
    return await service.get_ride(ride_id)


@router.post("/rides/{ride_id}/bids", response_model=BidDTO, status_code=201)
async def place_bid(
    ride_id: UUID,
    request: PlaceBidRequest,
    caller: Caller = Depends(get_caller),
    service: RideService = Depends(get_ride_service),
):
    require_role(caller, UserRole.DRIVER)
    return await service.place_bid(ride_id, caller.user_id, request.price)


@router.get("/rides/{ride_id}/bids", response_model=BidListResponse)
async def list_bids(
    ride_id: UUID,
    caller: Caller = Depends(get_caller),
    service: RideService = Depends(get_ride_service),
):
    return BidListResponse(bids=await service.list_bids(ride_id))


@router.post("/rides/{ride_id}/accept", response_model=RideDTO)
async def accept_bid(
    ride_id: UUID,
    request: AcceptBidRequest,
    caller: Caller = Depends(get_caller),
    service: RideService = Depends(get_ride_service),
):
    require_role(caller, UserRole.PASSENGER)
    return await service.accept_bid(ride_id, request.bid_id, caller.user_id)


@router.patch("/rides/{ride_id}/status", response_model=RideDTO)
async def update_ride_status(
    ride_id: UUID,
    request: UpdateStatusRequest,
    caller: Caller = Depends(get_caller),
    service: RideService = Depends(get_ride_service),
):
    return await service.update_status(ride_id, request.status, caller.user_id, caller.role)
