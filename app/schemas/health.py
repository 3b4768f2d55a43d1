from datetime import datetime

from pydantic import BaseModel


class HealthOut(BaseModel):
    status: str
    service: str
    env: str


class CircuitOut(BaseModel):
    name: str
    state: str
    window_failures: int
    window_total: int
    last_transition_at: datetime
    fires: int
    successes: int
    failures: int
    rejects: int
    timeouts: int
    latency_mean_ms: float | None = None
