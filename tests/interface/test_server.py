from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from cardsched.consts import VERSION
from cardsched.domain.models import Queue
from cardsched.server import app


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def start(client, make_scheduler):
    """Install a session over the test collection, once it has been seeded."""

    def _start(**overrides):
        sched = make_scheduler(**overrides)
        app.state.scheduler = sched
        return sched

    return _start


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version(client):
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}


def test_counts(client, start, build):
    build.new_card()
    build.review_card()
    start()
    response = client.get("/counts")
    assert response.status_code == 200
    assert response.json() == {"new": 1, "learning": 0, "review": 1}


def test_session_opened_lazily(client, make_scheduler):
    sched = make_scheduler()
    with patch("cardsched.server.create_scheduler", return_value=sched) as mock_create:
        assert client.get("/counts").status_code == 200
        assert client.get("/counts").status_code == 200
    mock_create.assert_called_once()
    assert app.state.scheduler is sched


def test_next_and_answer(client, start, build, clock):
    card = build.new_card()
    start()

    response = client.post("/next")
    assert response.status_code == 200
    data = response.json()
    assert data["card"]["id"] == card.id
    assert data["card"]["queue"] == int(Queue.NEW)
    assert data["counts"] == {"new": 0, "learning": 0, "review": 0}

    clock.advance(3)
    response = client.post("/answer", json={"card_id": card.id, "ease": 2})
    assert response.status_code == 200
    data = response.json()
    assert data["leech"] is False
    assert data["card"]["queue"] == int(Queue.LEARNING)
    assert data["card"]["left"] == 1
    assert data["counts"]["learning"] == 1
    assert app.state.current_card is None


def test_answer_uses_timer_of_card_handed_out(client, start, build, clock, col):
    card = build.review_card()
    start()
    client.post("/next")
    clock.advance(7)
    client.post("/answer", json={"card_id": card.id, "ease": 3})
    assert col.revlog.for_card(card.id)[0].time == 7000


def test_answer_other_card_leaves_queues(client, start, build):
    first = build.review_card()
    second = build.review_card()
    start()
    shown = client.post("/next").json()["card"]["id"]
    other = second.id if shown == first.id else first.id

    response = client.post("/answer", json={"card_id": other, "ease": 3})
    assert response.status_code == 200
    assert client.get("/counts").json()["review"] == 0
    assert client.post("/next").json()["card"] is None


def test_next_with_nothing_due(client, start):
    start()
    response = client.post("/next")
    assert response.status_code == 200
    assert response.json()["card"] is None


def test_answer_unknown_card(client, start):
    start()
    response = client.post("/answer", json={"card_id": 999, "ease": 2})
    assert response.status_code == 404


def test_answer_invalid_ease(client, start, build):
    card = build.review_card()
    start()
    response = client.post("/answer", json={"card_id": card.id, "ease": 7})
    assert response.status_code == 409
    assert "out of range" in response.json()["detail"]


def test_answer_with_broken_config(client, start, build):
    card = build.review_card()
    start()
    build.config(1, lapse={"mult": 5})
    response = client.post("/answer", json={"card_id": card.id, "ease": 3})
    assert response.status_code == 422
    assert "lapse.mult" in response.json()["detail"]


def test_answer_request_validation(client, start):
    start()
    response = client.post("/answer", json={"ease": 2})
    assert response.status_code == 422


def test_close_unburies_and_resets(client, start, build, col):
    card = build.review_card(queue=Queue.SCHED_BURIED)
    start()
    assert client.get("/counts").json()["review"] == 0

    response = client.post("/close")
    assert response.status_code == 200
    assert response.json() == {"unburied": 1}
    assert col.cards.get(card.id).queue == Queue.REVIEW
    assert client.get("/counts").json()["review"] == 1
