"""End-to-end adaptive evaluation.

idea context → classification → policy lookup + adaptive evaluation →
rule evaluation → merged decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from app.core.adaptive_evaluator import evaluate_adaptive
from app.core.classification import AdaptiveClassifier, build_classifier
from app.core.config import Settings, get_settings
from app.core.decision import decide
from app.core.logging import get_logger
from app.core.rule_engine import RuleEngine
from app.core.schemas_adaptive import (
    AdaptiveDecision,
    BusinessModelCategory,
    ClassificationInput,
    ClassificationResult,
    RuleEvaluationContext,
)
from app.db.adaptive_rules import build_rule_store

logger = get_logger(__name__)


@dataclass
class AdaptiveServices:
    """Per-process wiring of the stateful collaborators."""

    classifier: AdaptiveClassifier
    rules: RuleEngine
    settings: Settings


def build_services(settings: Settings | None = None) -> AdaptiveServices:
    settings = settings or get_settings()
    return AdaptiveServices(
        classifier=build_classifier(settings),
        rules=RuleEngine(build_rule_store(settings)),
        settings=settings,
    )


@dataclass
class PipelineResult:
    classification: ClassificationResult
    decision: AdaptiveDecision


async def run_adaptive_evaluation(
    services: AdaptiveServices,
    dimensions10: Mapping[str, float],
    saturation_pct: float,
    classification_input: Optional[ClassificationInput] = None,
    category: Optional[BusinessModelCategory] = None,
    weight_override: Optional[Mapping[str, float]] = None,
    extra_context: Optional[Mapping[str, Any]] = None,
    flags: tuple[str, ...] = (),
) -> PipelineResult:
    """
    Run the full adaptive flow for one idea.

    Args:
        services: Wired classifier and rule engine
        dimensions10: Raw 0-10 scores for the six dimensions
        saturation_pct: Market saturation (0-100)
        classification_input: Text/hints to classify when no category is given
        category: Explicit category; skips classification
        weight_override: Optional partial custom weights
        extra_context: Extra fields rules may reference
        flags: Upstream flags carried into the decision

    Returns:
        PipelineResult with classification and merged decision
    """
    if category is not None:
        classification = ClassificationResult(
            model=category, confidence=1.0, notes=["explicit-category"], source="heuristic"
        )
    else:
        classification = await services.classifier.classify(
            classification_input or ClassificationInput()
        )

    outcome = evaluate_adaptive(
        classification.model, dimensions10, saturation_pct, weight_override=weight_override
    )

    # Computed fields win over caller-supplied extras with the same name
    ctx = RuleEvaluationContext.model_validate(
        {
            **dict(extra_context or {}),
            "model": classification.model,
            "saturationPct": saturation_pct,
            "dimensions10": dict(dimensions10),
            "overall100": outcome.overall100_post_caps,
            "overall100PreCaps": outcome.overall100_pre_caps,
            "gateViolations": sorted(outcome.gate_violations),
            "flags": list(flags),
        }
    )
    rules, actions = services.rules.evaluate_active(ctx)

    decision = decide(
        outcome,
        actions,
        rules_total=len(rules),
        flags=flags,
        go_min=services.settings.DECISION_GO_MIN,
        review_min=services.settings.DECISION_REVIEW_MIN,
    )
    logger.info(
        f"Adaptive evaluation: model={classification.model.value} "
        f"score={decision.score100} status={decision.status.value} "
        f"rules={decision.rules_evaluated.triggered}/{decision.rules_evaluated.total}"
    )
    return PipelineResult(classification=classification, decision=decision)
