"""Tests for app.core.classification: heuristic precedence and ML fallback."""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.core.circuit_breaker import CircuitBreaker, CircuitState
from app.core.classification import (
    AdaptiveClassifier,
    ClassificationPort,
    HeuristicClassifier,
    HttpMLClassifier,
    build_classifier,
    infer_model_from_hints,
)
from app.core.config import Settings
from app.core.schemas_adaptive import (
    BusinessModelCategory as C,
    ClassificationHints,
    ClassificationInput,
    ClassificationResult,
)


def _input(**hints) -> ClassificationInput:
    return ClassificationInput(text="an idea", hints=ClassificationHints(**hints))


# ---------------------------------------------------------------------------
# Heuristic precedence
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "hints,expected",
    [
        ({"business_model": "Physical subscription box"}, C.PHYSICAL_SUBSCRIPTION),
        ({"category": "Online Learning"}, C.LEARNING_MARKETPLACE),
        ({"business_model": "education"}, C.LEARNING_MARKETPLACE),
        ({"category": "Services Marketplace"}, C.SERVICES_MARKETPLACE),
        ({"flags": ["MARKETPLACE_CATEGORY"]}, C.SERVICES_MARKETPLACE),
        ({"flags": ["CUSTOMER_SUPPORT_CATEGORY"]}, C.SAAS_B2B),
        ({"flags": ["PM_CATEGORY"]}, C.PM_SOFTWARE),
        ({}, C.GENERAL),
        ({"category": "fintech", "flags": ["OTHER"]}, C.GENERAL),
    ],
)
def test_infer_model_from_hints(hints, expected):
    assert infer_model_from_hints(ClassificationHints(**hints)) == expected


def test_precedence_is_first_match():
    """Earlier rules win when several hints are present."""
    hints = ClassificationHints(
        business_model="physical education",
        category="learning marketplace",
        flags=["MARKETPLACE_CATEGORY", "CUSTOMER_SUPPORT_CATEGORY", "PM_CATEGORY"],
    )
    assert infer_model_from_hints(hints) == C.PHYSICAL_SUBSCRIPTION

    hints.business_model = None
    assert infer_model_from_hints(hints) == C.LEARNING_MARKETPLACE

    hints.category = "marketplace"
    assert infer_model_from_hints(hints) == C.SERVICES_MARKETPLACE

    hints.category = None
    hints.flags = ["PM_CATEGORY", "CUSTOMER_SUPPORT_CATEGORY"]
    assert infer_model_from_hints(hints) == C.SAAS_B2B


def test_heuristic_classifier_result():
    result = HeuristicClassifier().classify_fast(_input(flags=["PM_CATEGORY"]))
    assert result.model == C.PM_SOFTWARE
    assert result.confidence == 0.6
    assert result.notes == ["heuristic-inference"]
    assert result.source == "heuristic"
    assert isinstance(HeuristicClassifier(), ClassificationPort)


# ---------------------------------------------------------------------------
# Adaptive classifier
# ---------------------------------------------------------------------------


class FakeML:
    def __init__(self, result=None, error=None, delay=0.0):
        self.classify_ml = AsyncMock(side_effect=self._run)
        self.result = result
        self.error = error
        self.delay = delay

    async def _run(self, _input):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


ML_RESULT = ClassificationResult(model=C.VERTICAL_COMMS, confidence=0.91, source="ml")


@pytest.mark.asyncio
async def test_without_ml_uses_heuristic():
    classifier = AdaptiveClassifier(fast=HeuristicClassifier())
    assert not classifier.has_ml
    result = await classifier.classify(_input(category="marketplace"))
    assert result.model == C.SERVICES_MARKETPLACE
    assert result.source == "heuristic"


@pytest.mark.asyncio
async def test_ml_result_preferred_when_healthy():
    ml = FakeML(result=ML_RESULT)
    classifier = AdaptiveClassifier(fast=HeuristicClassifier(), ml=ml)
    assert classifier.has_ml
    assert await classifier.classify(_input()) == ML_RESULT


@pytest.mark.asyncio
async def test_ml_error_falls_back_to_heuristic():
    ml = FakeML(error=RuntimeError("ml-service-unavailable"))
    classifier = AdaptiveClassifier(fast=HeuristicClassifier(), ml=ml)

    result = await classifier.classify(_input(flags=["PM_CATEGORY"]))
    assert result.model == C.PM_SOFTWARE
    assert result.notes == ["heuristic-inference", "ml-error"]


@pytest.mark.asyncio
async def test_ml_timeout_falls_back():
    ml = FakeML(result=ML_RESULT, delay=1.0)
    classifier = AdaptiveClassifier(fast=HeuristicClassifier(), ml=ml, ml_timeout_seconds=0.01)

    result = await classifier.classify(_input())
    assert result.source == "heuristic"
    assert "ml-timeout" in result.notes
    assert classifier.breaker.failures == 1


@pytest.mark.asyncio
async def test_open_breaker_skips_ml(clock):
    ml = FakeML(error=RuntimeError("down"))
    breaker = CircuitBreaker("ml", failure_threshold=2, half_open_after_ms=5000, clock=clock)
    classifier = AdaptiveClassifier(fast=HeuristicClassifier(), ml=ml, breaker=breaker)

    await classifier.classify(_input())
    await classifier.classify(_input())
    assert breaker.state() == CircuitState.OPEN
    assert ml.classify_ml.await_count == 2

    result = await classifier.classify(_input())
    assert result.notes[-1] == "ml-circuit-open"
    assert ml.classify_ml.await_count == 2

    # After cooldown a healthy probe closes the circuit again
    ml.error = None
    ml.result = ML_RESULT
    clock.advance(5000)
    assert await classifier.classify(_input()) == ML_RESULT
    assert breaker.state() == CircuitState.CLOSED


# ---------------------------------------------------------------------------
# HTTP ML client and wiring
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_http_ml_classifier_parses_response():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers.get("authorization")
        captured["body"] = request.content
        return httpx.Response(200, json={"model": "dtc-ecom", "confidence": 0.8})

    transport = httpx.MockTransport(handler)
    real_client = httpx.AsyncClient

    with patch(
        "app.core.classification.httpx.AsyncClient",
        lambda **kwargs: real_client(transport=transport, **kwargs),
    ):
        client = HttpMLClassifier("https://ml.example/classify", api_key="secret")
        result = await client.classify_ml(_input(category="shop"))

    assert result.model == C.DTC_ECOM
    assert result.confidence == 0.8
    assert result.source == "ml"
    assert result.notes == ["ml-inference"]
    assert captured["auth"] == "Bearer secret"
    assert b'"category":"shop"' in captured["body"].replace(b" ", b"")


@pytest.mark.asyncio
async def test_http_ml_classifier_raises_on_http_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    real_client = httpx.AsyncClient

    with patch(
        "app.core.classification.httpx.AsyncClient",
        lambda **kwargs: real_client(transport=transport, **kwargs),
    ):
        with pytest.raises(httpx.HTTPStatusError):
            await HttpMLClassifier("https://ml.example/classify").classify_ml(_input())


def test_build_classifier_from_settings():
    settings = Settings(
        CLASSIFIER_ML_URL="https://ml.example/classify",
        CLASSIFIER_BREAKER_FAILURE_THRESHOLD=4,
        CLASSIFIER_BREAKER_HALF_OPEN_AFTER_MS=100,
    )
    classifier = build_classifier(settings)
    assert classifier.has_ml
    assert classifier.breaker.failure_threshold == 4
    assert classifier.breaker.half_open_after_ms == 100

    assert not build_classifier(Settings(CLASSIFIER_ML_URL=None)).has_ml
