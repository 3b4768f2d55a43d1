from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_publisher_bundle
from app.core.config import settings
from app.schemas.health import CircuitOut, HealthOut
from app.services.circuit_breaker import CircuitBreaker
from app.services.internal_admin import require_internal_admin
from app.services.wiring import PublisherBundle

router = APIRouter()


def _circuit_out(breaker: CircuitBreaker) -> CircuitOut:
    s = breaker.stats()
    return CircuitOut(
        name=s.name,
        state=s.state.value,
        window_failures=s.window_failures,
        window_total=s.window_total,
        last_transition_at=s.last_transition_at,
        fires=s.fires,
        successes=s.successes,
        failures=s.failures,
        rejects=s.rejects,
        timeouts=s.timeouts,
        latency_mean_ms=s.latency_mean_ms,
    )


@router.get("/health", response_model=HealthOut)
async def health() -> HealthOut:
    return HealthOut(status="ok", service=settings.service_name, env=settings.env)


@router.get("/health/circuits", response_model=list[CircuitOut])
async def circuits(bundle: PublisherBundle = Depends(get_publisher_bundle)) -> list[CircuitOut]:
    return [_circuit_out(b) for b in bundle.breakers.all()]


@router.post(
    "/health/circuits/{name}/reset",
    response_model=CircuitOut,
    dependencies=[Depends(require_internal_admin)],
)
async def reset_circuit(name: str, bundle: PublisherBundle = Depends(get_publisher_bundle)) -> CircuitOut:
    for breaker in bundle.breakers.all():
        if breaker.name == name:
            breaker.reset()
            return _circuit_out(breaker)
    raise HTTPException(status_code=404, detail="Circuit not found")
