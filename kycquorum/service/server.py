"""FastAPI service exposing the consensus engine over HTTP and WebSocket.

REST endpoints cover submissions, votes, tallies, progress and
verifier registration. The ``/ws`` WebSocket streams ``vote_added``
and ``status_changed`` events; late clients are replayed the history,
so consumers must treat repeated event keys as no-ops.

Requires the 'server' optional dependency group:
    pip install kyc-quorum[server]
"""

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from kycquorum.errors import (
    AlreadyVoted,
    ConsensusError,
    StoreUnavailable,
    SubmissionNotPending,
    UnknownSubmission,
    VerifierNotEligible,
)
from kycquorum.persistence.factory import build_engine, open_stores
from kycquorum.schemas.config import Settings
from kycquorum.schemas.consensus import (
    SubmissionStatus,
    Verifier,
    VerifierStatus,
    VoteDecision,
)
from kycquorum.service.events import ConsensusEvent, ConsensusEventEmitter

logger = logging.getLogger(__name__)


class SubmissionCreate(BaseModel):
    """Request body for opening a submission."""

    user_id: str = Field(description="Owner of the document")
    document_type: str = Field(description="Document kind")
    document_hash: str = Field(default="", description="Opaque content hash")
    submission_id: str | None = Field(default=None, description="Optional explicit id")


class VoteRequest(BaseModel):
    """Request body for casting a vote."""

    verifier_id: str = Field(description="Voting verifier")
    decision: VoteDecision = Field(description="approve or reject")
    note: str | None = Field(default=None, description="Optional reason")
    verifier_name: str = Field(default="", description="Display name")


class VerifierCreate(BaseModel):
    """Request body for registering a verifier."""

    verifier_id: str
    name: str = ""
    status: VerifierStatus = VerifierStatus.PENDING


def _error_status(exc: ConsensusError) -> int:
    if isinstance(exc, UnknownSubmission):
        return 404
    if isinstance(exc, (AlreadyVoted, SubmissionNotPending)):
        return 409
    if isinstance(exc, VerifierNotEligible):
        return 403
    if isinstance(exc, StoreUnavailable):
        return 503
    return 400


def _error_body(exc: ConsensusError) -> dict[str, Any]:
    body: dict[str, Any] = {"error": type(exc).__name__, "detail": str(exc)}
    if isinstance(exc, AlreadyVoted):
        body["tally"] = exc.tally.model_dump()
    if isinstance(exc, (AlreadyVoted, SubmissionNotPending)):
        body["status"] = exc.status.value
    return body


def create_app(
    settings: Settings | None = None,
    emitter: ConsensusEventEmitter | None = None,
) -> Any:
    """Create and configure the FastAPI application.

    FastAPI is imported inside this function so the package can be
    imported without server deps installed.
    """
    try:
        from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse
    except ImportError as exc:
        raise ImportError(
            "The HTTP service requires extra dependencies. "
            "Install with: pip install kyc-quorum[server]"
        ) from exc

    settings = settings or Settings()
    emitter = emitter or ConsensusEventEmitter(settings.service.event_history)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with open_stores(settings.store) as stores:
            app.state.stores = stores
            app.state.engine = build_engine(stores, settings, emitter)
            logger.info("Consensus service started (%s store)", settings.store.backend)
            yield

    app = FastAPI(
        title="kyc-quorum",
        description="Multi-bank KYC consensus service",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConsensusError)
    async def consensus_error_handler(request: Request, exc: ConsensusError) -> JSONResponse:
        return JSONResponse(status_code=_error_status(exc), content=_error_body(exc))

    # Track connected WebSocket clients
    connected_clients: list[tuple[WebSocket, str | None]] = []

    async def _broadcast(event: ConsensusEvent) -> None:
        """Broadcast an event to every client subscribed to its submission."""
        payload = event.model_dump_json()
        disconnected: list[tuple[WebSocket, str | None]] = []
        for client in connected_clients:
            ws, scope = client
            if scope is not None and scope != event.submission_id:
                continue
            try:
                await ws.send_text(payload)
            except Exception:
                disconnected.append(client)
        for client in disconnected:
            connected_clients.remove(client)

    emitter.add_listener(_broadcast)

    # ── Submissions ──────────────────────────────────────────────

    @app.post("/api/submissions", status_code=201)
    async def create_submission(body: SubmissionCreate, request: Request) -> dict:
        """Open a new pending submission."""
        try:
            submission = await request.app.state.engine.submit_document(
                user_id=body.user_id,
                document_type=body.document_type,
                document_hash=body.document_hash,
                submission_id=body.submission_id,
            )
        except ValueError as exc:
            return JSONResponse(status_code=409, content={"error": "Conflict", "detail": str(exc)})
        return submission.model_dump(mode="json")

    @app.get("/api/submissions")
    async def list_submissions(
        request: Request,
        status: SubmissionStatus | None = None,
        limit: int = 50,
    ) -> list[dict]:
        """List submissions, oldest first."""
        rows = await request.app.state.stores.submissions.list_submissions(status, limit)
        return [s.model_dump(mode="json") for s in rows]

    @app.post("/api/submissions/{submission_id}/votes", status_code=201)
    async def cast_vote(submission_id: str, body: VoteRequest, request: Request) -> dict:
        """Cast a verifier's vote and return the resulting consensus state."""
        result = await request.app.state.engine.cast_vote(
            submission_id,
            body.verifier_id,
            body.decision,
            note=body.note,
            verifier_name=body.verifier_name,
        )
        return result.model_dump(mode="json")

    @app.get("/api/submissions/{submission_id}/tally")
    async def get_tally(submission_id: str, request: Request) -> dict:
        """Current tally and status."""
        report = await request.app.state.engine.get_tally(submission_id)
        return report.model_dump(mode="json")

    @app.get("/api/submissions/{submission_id}/progress")
    async def get_progress(submission_id: str, request: Request) -> dict:
        """Detailed consensus view including every vote."""
        progress = await request.app.state.engine.get_progress(submission_id)
        return progress.model_dump(mode="json")

    @app.post("/api/submissions/{submission_id}/evaluate")
    async def evaluate(submission_id: str, request: Request) -> dict:
        """Re-run consensus evaluation; a no-op once finalized."""
        outcome = await request.app.state.engine.evaluate_consensus(submission_id)
        return outcome.model_dump(mode="json")

    @app.get("/api/submissions/{submission_id}/eligibility/{verifier_id}")
    async def eligibility(submission_id: str, verifier_id: str, request: Request) -> dict:
        """Whether a verifier may vote on a submission."""
        result = await request.app.state.engine.check_eligibility(submission_id, verifier_id)
        return result.model_dump(mode="json")

    # ── Verifiers ────────────────────────────────────────────────

    @app.post("/api/verifiers", status_code=201)
    async def register_verifier(body: VerifierCreate, request: Request) -> dict:
        """Register or replace a verifying bank."""
        verifier = await request.app.state.stores.verifiers.register(
            Verifier(
                verifier_id=body.verifier_id,
                name=body.name,
                status=body.status,
                registered_at=datetime.now(UTC),
            )
        )
        return verifier.model_dump(mode="json")

    @app.get("/api/verifiers")
    async def list_verifiers(request: Request) -> list[dict]:
        """All registered verifiers."""
        rows = await request.app.state.stores.verifiers.list_verifiers()
        return [v.model_dump(mode="json") for v in rows]

    @app.get("/api/config")
    async def get_config() -> dict:
        """Active quorum parameters."""
        return settings.consensus.model_dump()

    # ── WebSocket ────────────────────────────────────────────────

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket, submission_id: str | None = None) -> None:
        """Stream consensus events, optionally for one submission.

        On connect, sends the matching event history so the client can
        reconstruct current state, then streams new events.
        """
        await ws.accept()
        client = (ws, submission_id)
        connected_clients.append(client)
        logger.info("Event client connected (%d total)", len(connected_clients))

        try:
            for event in emitter.history:
                if submission_id is None or event.submission_id == submission_id:
                    await ws.send_text(event.model_dump_json())

            # Keep connection alive, listen for client messages
            while True:
                await ws.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            if client in connected_clients:
                connected_clients.remove(client)
            logger.info(
                "Event client disconnected (%d remaining)",
                len(connected_clients),
            )

    return app

