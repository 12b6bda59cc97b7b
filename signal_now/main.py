"""FastAPI application entry point"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from signal_now.config.settings import settings
from signal_now.errors import (
    ActivitySourceError,
    DuplicateWatchTargetError,
    MalformedModelOutputError,
    MissingConfigurationError,
    NotFoundError,
    RateLimitedError,
    SignalNowError,
    StoreUnavailableError,
)
from signal_now.orchestrator import WatchlistOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Outreach-readiness assessments for GitHub people, repositories and organizations",
    version=settings.APP_VERSION,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Most specific first
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (RateLimitedError, 429),
    (ActivitySourceError, 502),
    (MalformedModelOutputError, 502),
    (StoreUnavailableError, 503),
    (MissingConfigurationError, 400),
    (DuplicateWatchTargetError, 409),
)

_orchestrator: Optional[WatchlistOrchestrator] = None


def get_orchestrator() -> WatchlistOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = WatchlistOrchestrator()
    return _orchestrator


class AnalyzeRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)


class WatchlistAddRequest(BaseModel):
    target_type: str
    target_value: str = Field(..., min_length=1)


class WatchlistToggleRequest(BaseModel):
    is_active: bool


class OnboardRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    github_username: str = Field(..., min_length=1)
    goal: str = ""
    repositories: List[str] = Field(default_factory=list)
    organizations: List[str] = Field(default_factory=list)
    people: List[str] = Field(default_factory=list)


class EngagementRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    message: Optional[str] = None


def status_for_error(exc: SignalNowError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(SignalNowError)
async def signal_now_error_handler(request: Request, exc: SignalNowError) -> JSONResponse:
    status_code = status_for_error(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(f"{request.method} {request.url.path} failed with {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"error": str(exc), "error_type": type(exc).__name__},
    )


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/api/health",
            "analyze": "POST /api/analyze",
            "analyze_watchlist": "GET /api/analyze-watchlist/{user_id}",
            "watchlist": "GET|POST /api/watchlist/{user_id}",
            "watchlist_item": "DELETE|PATCH /api/watchlist/{user_id}/{target_value}",
            "onboard": "POST /api/onboard",
            "engagement": "POST /api/engagement",
        }
    }


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.post("/api/analyze")
async def analyze(payload: AnalyzeRequest, orchestrator: WatchlistOrchestrator = Depends(get_orchestrator)):
    """Assess one person or repository right now"""
    logger.info(f"Analyze requested for {payload.target}")
    result = await orchestrator.analyze_target(payload.user_id, payload.target)
    return result.to_dict()


@app.get("/api/analyze-watchlist/{user_id}")
async def analyze_watchlist(user_id: str, orchestrator: WatchlistOrchestrator = Depends(get_orchestrator)):
    """Assess the user's active watchlist"""
    return await orchestrator.analyze_watchlist(user_id)


@app.get("/api/watchlist/{user_id}")
def list_watchlist(
    user_id: str,
    include_inactive: bool = False,
    orchestrator: WatchlistOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    items = orchestrator.watchlist.list_watchlist(user_id, active_only=not include_inactive)
    return {"user_id": user_id, "items": items, "count": len(items)}


@app.post("/api/watchlist/{user_id}", status_code=201)
def add_watchlist_item(
    user_id: str,
    payload: WatchlistAddRequest,
    orchestrator: WatchlistOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    try:
        return orchestrator.watchlist.add_to_watchlist(user_id, payload.target_type, payload.target_value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/watchlist/{user_id}/{target_value:path}")
def remove_watchlist_item(
    user_id: str,
    target_value: str,
    orchestrator: WatchlistOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    if not orchestrator.watchlist.remove_from_watchlist(user_id, target_value):
        raise HTTPException(status_code=404, detail=f"{target_value} is not on the watchlist")
    return {"removed": target_value}


@app.patch("/api/watchlist/{user_id}/{target_value:path}")
def toggle_watchlist_item(
    user_id: str,
    target_value: str,
    payload: WatchlistToggleRequest,
    orchestrator: WatchlistOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    if not orchestrator.watchlist.set_watchlist_active(user_id, target_value, payload.is_active):
        raise HTTPException(status_code=404, detail=f"{target_value} is not on the watchlist")
    return {"target_value": target_value.lower(), "is_active": payload.is_active}


@app.post("/api/onboard")
def onboard(payload: OnboardRequest, orchestrator: WatchlistOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    """Save the onboarding profile and seed the watchlist"""
    return orchestrator.onboard_user(
        payload.user_id,
        github_username=payload.github_username,
        goal=payload.goal,
        repositories=payload.repositories,
        organizations=payload.organizations,
        people=payload.people,
    )


@app.post("/api/engagement")
def record_engagement(
    payload: EngagementRequest,
    orchestrator: WatchlistOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Record an outreach action taken on a target"""
    try:
        return orchestrator.record_engagement(payload.user_id, payload.target, payload.action, payload.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# Serverless handler
def lambda_handler(event: Dict[str, Any], context: Any):
    """
    Serverless entrypoint

    Scheduled events carry an "action" key and go to the event handler;
    everything else is treated as an HTTP request.
    """
    if "action" in event:
        from signal_now.handler import handler as event_handler
        return event_handler(event, context)

    from mangum import Mangum
    handler = Mangum(app)
    return handler(event, context)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "signal_now.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
