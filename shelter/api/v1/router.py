# shelter/api/v1/router.py
from fastapi import APIRouter

from shelter.api.v1.endpoints import (
    beds,
    clients,
    realtime,
    rooms,
    wards,
)

api_router = APIRouter()

api_router.include_router(beds.router, prefix="/beds", tags=["beds"])
api_router.include_router(wards.router, prefix="/wards", tags=["wards"])
api_router.include_router(rooms.router, prefix="/rooms", tags=["rooms"])
api_router.include_router(clients.router, prefix="/clients", tags=["clients"])
api_router.include_router(realtime.router, prefix="/realtime", tags=["realtime"])
