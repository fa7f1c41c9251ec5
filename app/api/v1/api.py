from fastapi import APIRouter
from app.api.v1.agent import routes as agent
from app.api.v1.appointments import routes as appointments

api_router = APIRouter()
api_router.include_router(agent.router)
api_router.include_router(appointments.router)
