# pscore/routes/api.py

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo
import logging

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from pscore.database import SessionLocal, init_db
from pscore.models.score import Leaderboards, SessionState
from pscore.services.exceptions import GenerationInProgress, StorageUnavailable, ValidationError
from pscore.services.score import ScoreService, get_score_service
from pscore.services.session import SessionController, get_session_controller

logger = logging.getLogger("pscore.api")

UTC = ZoneInfo("UTC")

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Initializing database tables...")
    init_db()
    yield

app = FastAPI(title="P-Score", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Local development
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

class UsernameRequest(BaseModel):
    username: str

class GenerateRequest(BaseModel):
    username: Optional[str] = None

class ShareResponse(BaseModel):
    text: str

def get_session_factory():
    return SessionLocal

async def get_controller(
    profile_id: str,
    session_factory=Depends(get_session_factory),
    score_service: ScoreService = Depends(get_score_service),
) -> SessionController:
    """Per-profile controller, loaded from storage on first use"""
    controller = get_session_controller(profile_id, session_factory, score_service)
    try:
        await controller.activate()
    except StorageUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return controller

@app.get("/profiles/{profile_id}/state", response_model=SessionState)
async def get_state(controller: SessionController = Depends(get_controller)):
    return controller.snapshot()

@app.put("/profiles/{profile_id}/username", response_model=SessionState)
async def set_username(request: UsernameRequest, controller: SessionController = Depends(get_controller)):
    controller.set_username(request.username)
    return controller.snapshot()

@app.post("/profiles/{profile_id}/generate", response_model=SessionState)
async def generate_score(
    request: Optional[GenerateRequest] = None,
    controller: SessionController = Depends(get_controller),
):
    """Start generating a score. Poll /state for the result."""
    try:
        await controller.start(request.username if request else None)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GenerationInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))
    return controller.snapshot()

@app.post("/profiles/{profile_id}/cancel", response_model=SessionState)
async def cancel_generation(controller: SessionController = Depends(get_controller)):
    controller.cancel()
    return controller.snapshot()

@app.post("/profiles/{profile_id}/history/{index}/select", response_model=SessionState)
async def select_history(index: int, controller: SessionController = Depends(get_controller)):
    try:
        controller.select_history(index)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return controller.snapshot()

@app.post("/profiles/{profile_id}/post-unverified", response_model=SessionState)
async def post_unverified(controller: SessionController = Depends(get_controller)):
    await controller.post_unverified()
    return controller.snapshot()

@app.post("/profiles/{profile_id}/get-verified", response_model=SessionState)
async def get_verified(controller: SessionController = Depends(get_controller)):
    await controller.get_verified()
    return controller.snapshot()

@app.post("/profiles/{profile_id}/leaderboards/refresh", response_model=SessionState)
async def refresh_leaderboards(controller: SessionController = Depends(get_controller)):
    await controller.refresh_leaderboards()
    return controller.snapshot()

@app.get("/profiles/{profile_id}/leaderboards", response_model=Leaderboards)
async def get_leaderboards(controller: SessionController = Depends(get_controller)):
    """Leaderboards stay hidden until the profile has posted"""
    if not controller.has_posted:
        raise HTTPException(status_code=403, detail="Post your score to view the full leaderboards.")
    return Leaderboards(
        verified=controller.verified_leaderboard,
        unverified=controller.unverified_leaderboard,
    )

@app.delete("/profiles/{profile_id}/error", response_model=SessionState)
async def dismiss_error(controller: SessionController = Depends(get_controller)):
    controller.dismiss_error()
    return controller.snapshot()

@app.get("/profiles/{profile_id}/share", response_model=ShareResponse)
async def share_score(controller: SessionController = Depends(get_controller)):
    text = controller.share_text()
    if text is None:
        raise HTTPException(status_code=404, detail="No score to share")
    return ShareResponse(text=text)

# Status/Health Routes

@app.get("/health")
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC)
    }
