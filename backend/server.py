import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import LOG_LEVEL
from lights import InvalidPhaseError
from simulator import Session

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Adaptive Signal Controller API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

session = Session(pattern="balanced", seed=42)

class ControlRequest(BaseModel):
    running: Optional[bool] = None
    adaptive: Optional[bool] = None
    time_scale: Optional[float] = Field(None, gt=0, le=10)
    pattern: Optional[str] = None
    seed: Optional[int] = None

class LightRequest(BaseModel):
    state: str  # "NS" | "EW" | "GrGr" | "rGrG"

class InjectRequest(BaseModel):
    direction: str = "N"  # N/S/E/W or ALL
    count: int = Field(1, ge=1, le=50)

class BaselineRequest(BaseModel):
    duration: Optional[float] = Field(None, gt=0)

@app.get("/health")
def health():
    return {"ok": True}

@app.post("/control")
def control(req: ControlRequest):
    ctrl = session.controller
    if req.seed is not None:
        session.reset(seed=req.seed)
    if req.pattern is not None:
        try:
            session.set_pattern(req.pattern)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
    if req.time_scale is not None:
        ctrl.set_time_scale(req.time_scale)
    if req.running is not None:
        ctrl.set_running(req.running)
    adaptive_accepted = None
    if req.adaptive is not None:
        adaptive_accepted = ctrl.set_adaptive(req.adaptive)

    return {
        "running": ctrl.running,
        "adaptive": ctrl.adaptive,
        "adaptive_accepted": adaptive_accepted,
        "time_scale": ctrl.time_scale,
        "pattern": session.pattern,
        "seed": session.seed,
    }

@app.get("/state")
def state():
    return session.snapshot()

@app.post("/tick")
def tick(seconds: float = 0.5):
    if seconds <= 0 or seconds > 600:
        raise HTTPException(status_code=400, detail="seconds must be in (0, 600]")
    session.advance(seconds)
    return session.snapshot()

@app.post("/set_light")
def set_light(req: LightRequest):
    try:
        accepted = session.controller.force_phase(req.state)
    except InvalidPhaseError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"accepted": accepted, "signals": session.controller.current_phase()}

@app.post("/inject")
def inject(req: InjectRequest):
    try:
        session.simulator.inject(req.direction, req.count)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"ok": True, "vehicles": session.simulator.active_count()}

@app.post("/baseline")
def baseline(req: BaselineRequest):
    started = session.controller.request_baseline_run(req.duration)
    return {"started": started, "comparison": session.controller.comparison.result()}

@app.get("/metrics")
def metrics():
    return session.controller.metrics_snapshot()

@app.get("/compare")
def compare(duration: float = 60):
    if duration <= 0 or duration > 3600:
        raise HTTPException(status_code=400, detail="duration must be in (0, 3600]")
    return session.run_compare(duration=duration)

@app.post("/reset")
def reset():
    session.reset()
    return {"ok": True, "q_states": len(session.controller.agent.table)}
