"""
Supra AutoFi API Server - FastAPI Backend

Endpoints:
- POST   /chat               Conversational entry (same path as the CLI)
- GET    /strategies         Active strategies
- GET    /strategies/{id}    One strategy with live balance health
- DELETE /strategies/{id}    Cancel a strategy
- GET    /analytics          Dashboard payload (?timeframe=1h|24h|7d|30d)
- GET    /metrics            Process counters
- GET    /health             Heartbeat + monitor state

No auth: bind to localhost or put it behind a proxy.
"""

import os
import uuid
import logging
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

logger = logging.getLogger("autofi.api")


# ============================================================
# MODELS
# ============================================================

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    session_id: Optional[str] = None


class ChatResponse(BaseModel):
    reply: str
    session_id: str


class MetricsResponse(BaseModel):
    total_conversations: int
    total_strategies_created: int
    total_executions: int
    active_strategies: int
    average_success_rate: float
    uptime_minutes: float


def create_app(agent, monitor=None, chain=None) -> FastAPI:
    """
    Create FastAPI app wired to one AutoFiAgent.

    monitor: MonitorLoop whose state is reported by /health (optional)
    chain: SupraClient whose status is reported by /health (optional)
    """
    app = FastAPI(
        title="Supra AutoFi Agent",
        description="Conversational auto top-up strategies on Supra L1.",
        version="0.1.0",
    )

    # CORS: allow all in dev, restrict in production via CORS_ORIGINS env var
    cors_origins = os.getenv("CORS_ORIGINS", "*").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ============================================================
    # ROUTES
    # ============================================================

    @app.post("/chat", response_model=ChatResponse)
    async def chat(req: ChatRequest):
        """One conversational turn. The transcript is shared by every caller."""
        session_id = req.session_id or str(uuid.uuid4())
        reply = await agent.chat(req.message)
        return ChatResponse(reply=reply, session_id=session_id)

    @app.get("/strategies")
    async def strategies():
        return agent.list_active_strategies()

    @app.get("/strategies/{strategy_id}")
    async def strategy_status(strategy_id: str):
        result = await agent.check_strategy_status(strategy_id)
        if not result["success"]:
            raise HTTPException(404, result["message"])
        return result

    @app.delete("/strategies/{strategy_id}")
    async def cancel_strategy(strategy_id: str):
        result = await agent.gateway.cancel(strategy_id)
        if not result["success"]:
            status = 409 if result.get("strategy_id") else 404
            raise HTTPException(status, result["message"])
        return result

    @app.get("/analytics")
    async def analytics(timeframe: Literal["1h", "24h", "7d", "30d"] = "24h"):
        return agent.generate_analytics(timeframe)

    @app.get("/metrics", response_model=MetricsResponse)
    async def metrics():
        return MetricsResponse(**agent.get_performance_metrics())

    @app.get("/health")
    async def health():
        """Heartbeat endpoint."""
        body = {
            "alive": True,
            "active_strategies": len(agent.store.list_active()),
            "monitor_running": bool(monitor and monitor.is_running),
            "monitor_passes": monitor.pass_count if monitor else 0,
        }
        if monitor and monitor.last_pass:
            body["last_pass_at"] = monitor.last_pass.started_at
        if chain is not None:
            body["chain"] = chain.get_status()
        return body

    return app
