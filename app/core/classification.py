"""Business-model classification port and adapters.

Two capabilities:
- fast: local heuristic over pre-extracted hints, always available
- ml: optional heavier/remote model, absent unless configured

``AdaptiveClassifier`` prefers the ML path when present, guarding it with a
circuit breaker and a timeout, and falls back to the fast path on any
failure so classification never blocks evaluation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

import httpx

from app.core.circuit_breaker import CircuitBreaker, CircuitOpenError
from app.core.config import Settings, get_settings
from app.core.logging import get_logger, log_with_context
from app.core.schemas_adaptive import (
    BusinessModelCategory,
    ClassificationHints,
    ClassificationInput,
    ClassificationResult,
)

logger = get_logger(__name__)

# Flags emitted by upstream keyword detectors
MARKETPLACE_FLAG = "MARKETPLACE_CATEGORY"
CUSTOMER_SUPPORT_FLAG = "CUSTOMER_SUPPORT_CATEGORY"
PM_FLAG = "PM_CATEGORY"


@runtime_checkable
class ClassificationPort(Protocol):
    """Fast, local classification. No network."""

    def classify_fast(self, input: ClassificationInput) -> ClassificationResult: ...


@runtime_checkable
class MLClassificationPort(Protocol):
    """Optional heavier classification, typically remote."""

    async def classify_ml(self, input: ClassificationInput) -> ClassificationResult: ...


def infer_model_from_hints(hints: ClassificationHints) -> BusinessModelCategory:
    """
    Map pre-extracted hints to a category.

    Checked in order, first match wins:
      1. business model mentions "physical" → physical-subscription
      2. category mentions "learning" or business model "education" → learning-marketplace
      3. category mentions "marketplace" or MARKETPLACE flag → services-marketplace
      4. CUSTOMER_SUPPORT flag → saas-b2b
      5. PM flag → pm-software
      6. otherwise → general
    """
    business_model = (hints.business_model or "").lower()
    category = (hints.category or "").lower()
    flags = hints.flags or []

    if "physical" in business_model:
        return BusinessModelCategory.PHYSICAL_SUBSCRIPTION
    if "learning" in category or "education" in business_model:
        return BusinessModelCategory.LEARNING_MARKETPLACE
    if "marketplace" in category or MARKETPLACE_FLAG in flags:
        return BusinessModelCategory.SERVICES_MARKETPLACE
    if CUSTOMER_SUPPORT_FLAG in flags:
        return BusinessModelCategory.SAAS_B2B
    if PM_FLAG in flags:
        return BusinessModelCategory.PM_SOFTWARE
    return BusinessModelCategory.GENERAL


class HeuristicClassifier:
    """Default fast adapter over ``infer_model_from_hints``."""

    def __init__(self, confidence: float = 0.6):
        self.confidence = confidence

    def classify_fast(self, input: ClassificationInput) -> ClassificationResult:
        return ClassificationResult(
            model=infer_model_from_hints(input.hints),
            confidence=self.confidence,
            notes=["heuristic-inference"],
            source="heuristic",
        )


class HttpMLClassifier:
    """Remote ML classifier client.

    POSTs ``{"text", "hints"}`` and expects ``{"model", "confidence", "features"?}``.
    """

    def __init__(self, url: str, api_key: str | None = None, timeout: float = 3.0):
        self.url = url
        self.timeout = timeout
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

    async def classify_ml(self, input: ClassificationInput) -> ClassificationResult:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.url, headers=self._headers, json=input.model_dump())
            resp.raise_for_status()
            data = resp.json()

        return ClassificationResult(
            model=data["model"],
            confidence=float(data.get("confidence", 0.0)),
            features=data.get("features"),
            notes=list(data.get("notes") or []) + ["ml-inference"],
            source="ml",
        )


class AdaptiveClassifier:
    """Fast classification with an optional breaker-guarded ML capability."""

    def __init__(
        self,
        fast: ClassificationPort,
        ml: Optional[MLClassificationPort] = None,
        breaker: Optional[CircuitBreaker] = None,
        ml_timeout_seconds: float = 3.0,
    ):
        self.fast = fast
        self.ml = ml
        self.breaker = breaker or CircuitBreaker("ml-classifier")
        self.ml_timeout_seconds = ml_timeout_seconds

    @property
    def has_ml(self) -> bool:
        return self.ml is not None

    def classify_fast(self, input: ClassificationInput) -> ClassificationResult:
        return self.fast.classify_fast(input)

    async def classify(self, input: ClassificationInput) -> ClassificationResult:
        """
        Classify an idea, preferring ML when available and healthy.

        Args:
            input: Text plus pre-extracted hints

        Returns:
            ML result, or the heuristic result annotated with the fallback reason
        """
        if self.ml is None:
            return self.fast.classify_fast(input)

        ml = self.ml

        async def _call() -> ClassificationResult:
            return await asyncio.wait_for(ml.classify_ml(input), timeout=self.ml_timeout_seconds)

        try:
            return await self.breaker.execute(_call)
        except CircuitOpenError:
            reason = "ml-circuit-open"
        except Exception as e:
            reason = "ml-timeout" if isinstance(e, asyncio.TimeoutError) else "ml-error"
            log_with_context(
                logger,
                logging.WARNING,
                f"ML classification failed, using heuristic: {e!r}",
                breaker=self.breaker.name,
            )

        fallback = self.fast.classify_fast(input)
        return fallback.model_copy(update={"notes": fallback.notes + [reason]})


def build_classifier(settings: Settings | None = None) -> AdaptiveClassifier:
    """Construct the classifier from settings (ML only if a URL is configured)."""
    settings = settings or get_settings()
    ml = None
    if settings.CLASSIFIER_ML_URL:
        ml = HttpMLClassifier(
            settings.CLASSIFIER_ML_URL,
            api_key=settings.CLASSIFIER_ML_API_KEY,
            timeout=settings.CLASSIFIER_ML_TIMEOUT_SECONDS,
        )
    breaker = CircuitBreaker(
        "ml-classifier",
        failure_threshold=settings.CLASSIFIER_BREAKER_FAILURE_THRESHOLD,
        half_open_after_ms=settings.CLASSIFIER_BREAKER_HALF_OPEN_AFTER_MS,
    )
    return AdaptiveClassifier(
        fast=HeuristicClassifier(confidence=settings.CLASSIFIER_HEURISTIC_CONFIDENCE),
        ml=ml,
        breaker=breaker,
        ml_timeout_seconds=settings.CLASSIFIER_ML_TIMEOUT_SECONDS,
    )
