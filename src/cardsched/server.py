import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from cardsched.application.config import resolve_config
from cardsched.application.factory import create_scheduler
from cardsched.application.scheduler import Scheduler
from cardsched.consts import VERSION
from cardsched.domain.errors import (
    CardNotFoundError,
    ConfigError,
    InvalidStateError,
    SchedulerError,
)
from cardsched.domain.models import Card

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cardsched.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"cardsched server v{VERSION} starting up...")
    app.state.scheduler = None
    app.state.current_card = None
    yield
    # Shutdown
    if app.state.scheduler is not None:
        app.state.scheduler.col.close()
    logger.info("cardsched server shutting down...")


app = FastAPI(
    title="cardsched server",
    description="Study-session daemon for the cardsched scheduler.",
    version=VERSION,
    lifespan=lifespan,
)


def get_scheduler() -> Scheduler:
    """The process-wide session, opened on first use."""
    if app.state.scheduler is None:
        app.state.scheduler = create_scheduler(resolve_config())
    return app.state.scheduler


def _http_error(e: SchedulerError) -> HTTPException:
    if isinstance(e, InvalidStateError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, CardNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConfigError):
        return HTTPException(status_code=422, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class CountsResponse(BaseModel):
    new: int
    learning: int
    review: int


class CardResponse(BaseModel):
    id: int
    nid: int
    did: int
    queue: int
    type: int
    due: int
    ivl: int
    factor: int
    reps: int
    lapses: int
    left: int

    @classmethod
    def from_card(cls, card: Card) -> "CardResponse":
        return cls(
            id=card.id,
            nid=card.nid,
            did=card.did,
            queue=int(card.queue),
            type=int(card.type),
            due=card.due,
            ivl=card.ivl,
            factor=card.factor,
            reps=card.reps,
            lapses=card.lapses,
            left=card.left,
        )


class NextResponse(BaseModel):
    card: CardResponse | None
    counts: CountsResponse


class AnswerRequest(BaseModel):
    card_id: int
    ease: int


class AnswerResponse(BaseModel):
    card: CardResponse
    leech: bool
    counts: CountsResponse


class CloseResponse(BaseModel):
    unburied: int


start_time = time.time()


def _counts(sched: Scheduler) -> CountsResponse:
    new, lrn, rev = sched.counts()
    return CountsResponse(new=new, learning=lrn, review=rev)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/counts", response_model=CountsResponse)
async def get_counts():
    try:
        return _counts(get_scheduler())
    except SchedulerError as e:
        raise _http_error(e) from e


@app.post("/next", response_model=NextResponse)
async def next_card():
    """
    Hand out the next card. Its answer timer starts now.
    """
    try:
        sched = get_scheduler()
        card = sched.get_card()
        app.state.current_card = card
        return NextResponse(
            card=CardResponse.from_card(card) if card else None,
            counts=_counts(sched),
        )
    except SchedulerError as e:
        raise _http_error(e) from e


@app.post("/answer", response_model=AnswerResponse)
async def answer_card(req: AnswerRequest):
    try:
        sched = get_scheduler()
        card = app.state.current_card
        if card is None or card.id != req.card_id:
            # Not the card last handed out: answer it from the store, untimed
            card = sched.col.cards.get(req.card_id)
            sched.remove_card_from_queues(card)
        leech = sched.answer_card(card, req.ease)
        app.state.current_card = None
        logger.info(f"Answered card {card.id} with ease {req.ease}")
        return AnswerResponse(
            card=CardResponse.from_card(card), leech=leech, counts=_counts(sched)
        )
    except SchedulerError as e:
        raise _http_error(e) from e


@app.post("/close", response_model=CloseResponse)
async def close_session():
    """
    Unbury everything and start the session over.
    """
    try:
        sched = get_scheduler()
        unburied = sched.on_close()
        sched.reset()
        app.state.current_card = None
        return CloseResponse(unburied=unburied)
    except SchedulerError as e:
        raise _http_error(e) from e
