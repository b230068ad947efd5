"""FastAPI backend for moderator and admin tooling.

Endpoints:
- POST /classify                          classify and enforce one piece of text
- GET  /queue                             moderator review queue
- POST /queue/{item_id}/decision          moderator decision
- POST /queue/{item_id}/admin-penalty     admin penalty on an escalated item
- GET  /users/{user_id}/banned            scope ban check
- POST /strikes                           manual strike
- POST /appeals, /appeals/{id}/resolve    appeal workflow
- GET  /streams/{stream_id}/lockdown      mass-report lockdown state
- POST /lockdown/{event_id}/acknowledge   creator acknowledgement

Refusals come back as JSON `{"error": kind, "detail": message}` with a
status code per error kind.

Run with:
    uvicorn trust_safety.api.main:app --port 8080
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from trust_safety.lib.errors import ErrorKind, SafetyEngineError
from trust_safety.models.appeal import Appeal
from trust_safety.models.content import EnforcementResult, ScopeContext
from trust_safety.models.enforcement import AdminPenalty, Strike
from trust_safety.models.enums import (
    AppealDecision, AppealTarget, ContentScope, ModeratorDecision, PenaltySeverity, ReviewStatus
)
from trust_safety.models.realtime import MassReportEvent
from trust_safety.models.results import ServiceResult
from trust_safety.models.review import ModeratorReviewItem
from trust_safety.services.engine import SafetyEngine


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.POLICY_BLOCKED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.CONCURRENCY_CONFLICT: 409,
    ErrorKind.TRANSIENT_IO: 503,
    ErrorKind.ENFORCEMENT_WRITE: 503,
}


class ServiceError(Exception):
    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


def unwrap(result: ServiceResult) -> Any:
    if not result.ok:
        raise ServiceError(result.error_kind, result.message or result.error_kind.value)
    return result.value


# Request bodies

class ClassifyRequest(BaseModel):
    user_id: str
    text: str
    scope_id: str
    scope: ContentScope = ContentScope.STREAM
    stream_id: Optional[str] = None
    content_id: Optional[str] = None


class DecisionRequest(BaseModel):
    decision: ModeratorDecision
    moderator_id: str
    notes: Optional[str] = None
    timeout_minutes: Optional[int] = None


class AdminPenaltyRequest(BaseModel):
    admin_id: str
    severity: PenaltySeverity
    reason: str
    duration_hours: Optional[int] = None
    evidence_link: Optional[str] = None
    policy_reference: Optional[str] = None


class StrikeRequest(BaseModel):
    user_id: str
    scope_id: str
    strike_type: str
    reason: str


class AppealRequest(BaseModel):
    user_id: str
    target_id: UUID
    reason: str
    evidence: Optional[str] = None
    target_type: Optional[AppealTarget] = None


class AppealResolution(BaseModel):
    decision: AppealDecision
    admin_id: str
    message: str = Field(min_length=1)


class AcknowledgeRequest(BaseModel):
    creator_id: Optional[str] = None


def create_app(engine: Optional[SafetyEngine] = None) -> FastAPI:
    app = FastAPI(title="Trust & Safety API", version="0.1.0")
    app.state.engine = engine

    def get_engine() -> SafetyEngine:
        if app.state.engine is None:
            app.state.engine = SafetyEngine.from_env()
        return app.state.engine

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 500),
                            content={"error": exc.kind.value, "detail": exc.message})

    @app.exception_handler(SafetyEngineError)
    async def engine_error_handler(request: Request, exc: SafetyEngineError) -> JSONResponse:
        return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 500),
                            content={"error": exc.kind.value, "detail": str(exc)})

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/classify", response_model=EnforcementResult)
    async def classify(body: ClassifyRequest) -> EnforcementResult:
        context = ScopeContext(scope=body.scope, scope_id=body.scope_id,
                               stream_id=body.stream_id, content_id=body.content_id)
        return await get_engine().classify_and_enforce(body.user_id, body.text, context)

    @app.get("/queue", response_model=List[ModeratorReviewItem])
    async def queue(status: Optional[ReviewStatus] = ReviewStatus.PENDING,
                    limit: int = Query(default=50, ge=1, le=200)) -> List[ModeratorReviewItem]:
        items = await get_engine().get_escalation_queue(status)
        return items[:limit]

    @app.post("/queue/{item_id}/decision", response_model=ModeratorReviewItem)
    async def decide(item_id: UUID, body: DecisionRequest) -> ModeratorReviewItem:
        return unwrap(await get_engine().moderator_decide(
            item_id, body.decision, body.moderator_id, body.notes, body.timeout_minutes
        ))

    @app.post("/queue/{item_id}/admin-penalty", response_model=AdminPenalty)
    async def admin_penalty(item_id: UUID, body: AdminPenaltyRequest) -> AdminPenalty:
        return unwrap(await get_engine().admin_apply_penalty(
            body.admin_id, body.severity, body.reason, item_id=item_id,
            duration_hours=body.duration_hours, evidence_link=body.evidence_link,
            policy_reference=body.policy_reference,
        ))

    @app.get("/users/{user_id}/banned")
    async def banned(user_id: str, scope_id: str) -> Dict[str, Any]:
        return {"user_id": user_id, "scope_id": scope_id,
                "banned": await get_engine().is_banned(user_id, scope_id)}

    @app.post("/strikes", response_model=Strike, status_code=201)
    async def strike(body: StrikeRequest) -> Strike:
        return await get_engine().apply_strike(body.user_id, body.scope_id, body.strike_type, body.reason)

    @app.post("/appeals", response_model=Appeal, status_code=201)
    async def submit_appeal(body: AppealRequest) -> Appeal:
        return unwrap(await get_engine().submit_appeal(
            body.user_id, body.target_id, body.reason, body.evidence, body.target_type
        ))

    @app.post("/appeals/{appeal_id}/resolve", response_model=Appeal)
    async def resolve_appeal(appeal_id: UUID, body: AppealResolution) -> Appeal:
        return unwrap(await get_engine().resolve_appeal(appeal_id, body.decision, body.admin_id, body.message))

    @app.get("/streams/{stream_id}/lockdown")
    async def lockdown(stream_id: str) -> Dict[str, Any]:
        status = await get_engine().check_mass_report_lockdown(stream_id)
        return {
            "triggered": status.triggered,
            "unique_reporters": status.unique_reporters,
            "event": status.event.model_dump(mode="json") if status.event else None,
        }

    @app.post("/lockdown/{event_id}/acknowledge", response_model=MassReportEvent)
    async def acknowledge(event_id: UUID, body: AcknowledgeRequest) -> MassReportEvent:
        return unwrap(await get_engine().acknowledge_lockdown(event_id, body.creator_id))

    return app


app = create_app()
