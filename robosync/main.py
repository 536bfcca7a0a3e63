"""RoboSync status: FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import sync

app = FastAPI(title="RoboSync Status", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)

# ── API routers ─────────────────────────────────────────────
app.include_router(sync.router, prefix="/api/sync", tags=["Sync"])


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}


@app.get("/api/status")
async def api_status():
    """Key pool state and RobotEvents reachability."""
    from .services.robotevents_client import get_robotevents_client

    client = get_robotevents_client()

    async def check_robotevents():
        try:
            # Unauthenticated, only proves the host answers
            resp = await client._client().get("/seasons", params={"per_page": 1})
            return resp.status_code < 500
        except Exception:
            return False

    return {
        "robotevents": await check_robotevents(),
        "keys": client.pool.snapshot(),
    }
