"""FastAPI app for the review UI."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from beacongate.api.schemas import (
    CaseDetailView,
    EnqueueView,
    LLMRunView,
    RetrievalRequest,
    RetrievalRunView,
)
from beacongate.capture.artifacts import ArtifactPathError
from beacongate.config import load_settings
from beacongate.db.store import CaseNotFoundError
from beacongate.logging import configure_logging, get_logger
from beacongate.models.case import SubmitCaseRequest
from beacongate.services.actions import ArtifactNotFoundError, CaseStateError
from beacongate.wiring import AppContext, build_app_context


def create_app(context: AppContext | None = None) -> FastAPI:
    """Create FastAPI app."""

    if context is None:
        settings = load_settings()
        configure_logging(settings.log_level)
        context = build_app_context(settings)
    logger = get_logger(__name__)
    actions = context.actions

    app = FastAPI(title="BeaconGate", version="0.1.0")
    app.state.context = context

    @app.exception_handler(CaseNotFoundError)
    async def _case_not_found(request: Request, exc: CaseNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": "case not found"})

    @app.exception_handler(CaseStateError)
    async def _case_state(request: Request, exc: CaseStateError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/cases", status_code=201, response_model=EnqueueView, response_model_by_alias=True)
    async def submit_case(req: SubmitCaseRequest) -> EnqueueView:
        result = await actions.submit_case(req)
        return EnqueueView.model_validate(result)

    @app.get("/cases/{case_id}", response_model=CaseDetailView, response_model_by_alias=True)
    def get_case(case_id: str) -> CaseDetailView:
        return CaseDetailView.model_validate(actions.get_case_detail(case_id))

    @app.post("/cases/{case_id}/retry-capture", status_code=202, response_model=EnqueueView, response_model_by_alias=True)
    async def retry_capture(case_id: str) -> EnqueueView:
        result = await actions.retry_capture(case_id)
        return EnqueueView.model_validate(result)

    @app.post("/cases/{case_id}/retrieval", response_model=RetrievalRunView, response_model_by_alias=True)
    async def run_retrieval(case_id: str, req: RetrievalRequest | None = None) -> RetrievalRunView:
        req = req or RetrievalRequest()
        outcome = await actions.run_retrieval(case_id, top_k=req.top_k, scope=req.scope)
        return RetrievalRunView.model_validate(outcome.run)

    @app.post("/cases/{case_id}/advisory", response_model=list[LLMRunView], response_model_by_alias=True)
    async def generate_advisory(case_id: str) -> list[LLMRunView]:
        runs = await actions.generate_advisory(case_id)
        return [LLMRunView.model_validate(r) for r in runs]

    @app.get("/artifacts/{artifact_id}")
    def get_artifact(artifact_id: str) -> Response:
        try:
            content = actions.read_artifact(artifact_id)
        except ArtifactNotFoundError:
            raise HTTPException(status_code=404, detail="artifact not found")
        except ArtifactPathError:
            logger.warning("Refused artifact %s: path outside storage root", artifact_id)
            raise HTTPException(status_code=400, detail="invalid artifact path")
        return Response(
            content=content.data,
            media_type=content.mime_type,
            headers={"Content-Disposition": f'inline; filename="{content.filename}"'},
        )

    return app
