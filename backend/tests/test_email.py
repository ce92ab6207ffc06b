"""Tests for the SendGrid email helpers."""

import asyncio
from datetime import datetime

import httpx
import pytest

from selliox.draws.engine import run_draw
from selliox.draws.ledger import TicketLedger
from selliox.draws.models import EntrySource
from selliox.email import service as email_module
from selliox.email.service import EmailService, send_winner_email
from selliox.errors import DependencyFailure
from selliox.storage.db import db


def _respond_with(monkeypatch, status_code=None, error=None):
    sent = []

    async def fake_post(self, url, json=None, headers=None, timeout=None):
        sent.append({"url": url, "json": json, "headers": headers})
        if error:
            raise error
        return httpx.Response(status_code, text="provider says no", request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post)
    return sent


@pytest.fixture
def enabled_service():
    service = EmailService()
    service.api_key = "SG.test-key"
    service.enabled = True
    return service


@pytest.fixture
def completed_draw(make_user):
    winner = make_user(name="Winner", email="winner@example.com")
    with db.session() as session:
        TicketLedger(session).grant(winner.id, 2, EntrySource.REFERRAL, now=datetime(2026, 5, 2))
    return run_draw(5, 2026, now=datetime(2026, 6, 1))


def test_disabled_service_skips_sending():
    service = EmailService()
    service.enabled = False

    assert asyncio.run(service.send_draw_winner_email("a@example.com", "A", 250.0, 5, 2026, 3)) is False


def test_accepted_message(monkeypatch, enabled_service):
    sent = _respond_with(monkeypatch, status_code=202)

    ok = asyncio.run(enabled_service.send_draw_winner_email("a@example.com", "A", 250.0, 5, 2026, 3))

    assert ok is True
    [request] = sent
    assert request["json"]["personalizations"][0]["to"] == [{"email": "a@example.com"}]
    assert "May 2026" in request["json"]["content"][1]["value"]
    assert request["headers"]["Authorization"] == "Bearer SG.test-key"


def test_rejected_message_raises_dependency_failure(monkeypatch, enabled_service):
    _respond_with(monkeypatch, status_code=500)

    with pytest.raises(DependencyFailure) as excinfo:
        asyncio.run(enabled_service.send_draw_winner_email("a@example.com", "A", 250.0, 5, 2026, 3))

    assert excinfo.value.status_code == 502
    assert excinfo.value.context["status"] == 500


def test_unreachable_provider_raises_dependency_failure(monkeypatch, enabled_service):
    _respond_with(monkeypatch, error=httpx.ConnectError("connection refused"))

    with pytest.raises(DependencyFailure):
        asyncio.run(enabled_service.send_draw_winner_email("a@example.com", "A", 250.0, 5, 2026, 3))


def test_winner_email_failure_is_not_fatal(monkeypatch, enabled_service, completed_draw):
    monkeypatch.setattr(email_module, "email_service", enabled_service)
    sent = _respond_with(monkeypatch, status_code=503)

    assert asyncio.run(send_winner_email(completed_draw.id)) is False
    assert sent[0]["json"]["personalizations"][0]["to"] == [{"email": "winner@example.com"}]


def test_winner_email_sent(monkeypatch, enabled_service, completed_draw):
    monkeypatch.setattr(email_module, "email_service", enabled_service)
    _respond_with(monkeypatch, status_code=202)

    assert asyncio.run(send_winner_email(completed_draw.id)) is True
