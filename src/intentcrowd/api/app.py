"""FastAPI application serving training items to raters."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from ..classifier.model import IntentClassifier
from ..config import Config
from ..storage.audit import AuditAction
from ..storage.database import TrainingStore
from ..storage.models import ItemStatus
from ..training.consensus import ConsensusEvaluator
from ..training.intake import UtteranceIntake
from ..training.sampler import TrainingSampler
from ..training.submission import RejectReason, SubmissionHandler
from .schemas import (
    ClassifyRequest,
    ClassifyResponse,
    ErrorResponse,
    MAX_ITEM_ID,
    TrainSentenceRequest,
    TrainingItemResponse,
)

logger = logging.getLogger(__name__)

# HTTP status for each rejection
REJECT_STATUS = {
    RejectReason.NOT_FOUND: 404,
    RejectReason.ALREADY_RESOLVED: 409,
    RejectReason.MODEL_UPDATE_FAILED: 422,
}


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"Msg": message})


def create_app(
    config: Optional[Config] = None,
    classifier: Optional[IntentClassifier] = None,
    store: Optional[TrainingStore] = None,
) -> FastAPI:
    """
    Build the application and wire its services.

    One classifier and one store are shared by every request. Handlers
    are plain ``def`` functions, so FastAPI runs each request on its own
    worker thread.

    Args:
        config: Settings. Loaded from file + environment if None.
        classifier: Shared classifier. Loaded from the model path if None.
        store: Training store. Opened at the configured path if None.
    """
    config = config or Config.load()
    model_path = config.resolve_model_path()

    if store is None:
        store = TrainingStore(config.resolve_db_path(), default_max_assignments=config.max_assignments)
    if classifier is None:
        classifier = IntentClassifier.load(model_path)
        store.audit.log(AuditAction.MODEL_LOAD, {"path": model_path})

    evaluator = ConsensusEvaluator(store, classifier, promotion_weight=config.promotion_weight)
    sampler = TrainingSampler(store)
    handler = SubmissionHandler(store, classifier, evaluator)
    intake = UtteranceIntake(classifier, store, threshold=config.confidence_threshold)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        classifier.save(model_path)
        store.audit.log(AuditAction.MODEL_SAVE, {"path": model_path})

    app = FastAPI(title="intentcrowd", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.classifier = classifier
    app.state.store = store

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = "; ".join(
            f"{'.'.join(str(p) for p in e['loc'] if p != 'body')}: {e['msg']}" for e in exc.errors()
        )
        return error_response(400, errors or "Invalid request")

    @app.get("/api/sentence.json")
    def get_sentence(id: Optional[str] = Query(default=None)):
        """Serve one eligible training item, or ``{}`` when none is left.

        An empty ``id`` means no filter.
        """
        filter_id = None
        if id:
            try:
                filter_id = int(id)
            except ValueError:
                return error_response(400, f"id: not an integer: {id!r}")
            if not 1 <= filter_id <= MAX_ITEM_ID:
                return error_response(400, f"id: must be between 1 and {MAX_ITEM_ID}")

        item = sampler.sample(filter_id=filter_id)
        if item is None:
            return {}
        return item.to_api_dict()

    @app.put(
        "/api/sentence.json",
        responses={code: {"model": ErrorResponse} for code in REJECT_STATUS.values()},
    )
    def train_sentence(body: TrainSentenceRequest):
        """Record a rater's label for an item."""
        result = handler.submit(body.ID, body.Sentence)
        if not result.accepted:
            return error_response(REJECT_STATUS[result.reason], result.message)
        return Response(status_code=200)

    @app.post("/api/classify.json", response_model=ClassifyResponse)
    def classify_sentence(body: ClassifyRequest):
        """Classify an utterance, queueing it for raters when unsure."""
        result = intake.handle(body.Sentence, foreign_id=body.ForeignID)
        return ClassifyResponse(
            Label=result.label,
            Confidence=result.confidence,
            Queued=result.queued,
            ID=result.queued_item.id if result.queued_item else None,
        )

    @app.get("/api/trainings.json", response_model=list[TrainingItemResponse])
    def list_trainings(
        status: Optional[ItemStatus] = Query(default=None),
        limit: int = Query(default=100, ge=1, le=1000),
    ):
        """List training items, e.g. ``?status=conflicted`` for manual review."""
        return [
            TrainingItemResponse(
                ID=item.id,
                ForeignID=item.foreign_id,
                Sentence=item.sentence,
                MaxAssignments=item.max_assignments,
                TrainedCount=item.trained_count,
                Status=item.status.value,
                ResolvedLabel=item.resolved_label,
            )
            for item in store.list_items(status=status, limit=limit)
        ]

    return app
