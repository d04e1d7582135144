"""Adaptive scoring API endpoints.

Rule-set management (live rules + audit history), one-shot evaluation
through the full adaptive flow, read-only policy introspection and
Monte Carlo unit-economics bands.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from app.core.adaptive_evaluator import evaluate_adaptive
from app.core.adaptive_pipeline import AdaptiveServices, run_adaptive_evaluation
from app.core.adaptive_policy import policy_table
from app.core.framework_policy import (
    Criteria,
    PolicyDecision,
    PrimaryContext,
    decide_policy,
    get_validation_criteria,
)
from app.core.logging import get_logger
from app.core.schemas_adaptive import (
    AdaptiveDecision,
    AdaptiveOutcome,
    BusinessModelCategory,
    ClassificationInput,
    ClassificationResult,
    RuleDefinition,
    RuleHistoryEntry,
)
from app.core.simulation import (
    LtvCacBands,
    LtvCacParams,
    PaybackParams,
    PaybackResult,
    simulate_ltv_cac,
    simulate_payback,
)
from app.db.adaptive_rules import InvalidRuleError, RuleStoreError, validate_rules

logger = get_logger(__name__)

router = APIRouter(prefix="/adaptive", tags=["adaptive"])


def get_services(request: Request) -> AdaptiveServices:
    return request.app.state.adaptive


def _actor(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return request.client.host if request.client else "unknown"


# =========================
# Request/Response Models
# =========================


class RulesResponse(BaseModel):
    rules: list[RuleDefinition]
    history: Optional[list[RuleHistoryEntry]] = None


class RulesUpdateRequest(BaseModel):
    """Whole-set replacement; individual rules are validated separately."""

    rules: list[dict[str, Any]]


class OkResponse(BaseModel):
    ok: bool = True
    count: int = 0


class EvaluateRequest(BaseModel):
    dimensions10: dict[str, float]
    saturation_pct: float = 0.0
    category: Optional[BusinessModelCategory] = None
    classification: Optional[ClassificationInput] = None
    weight_override: Optional[dict[str, float]] = None
    context: dict[str, Any] = Field(default_factory=dict)
    flags: list[str] = Field(default_factory=list)


class EvaluateResponse(BaseModel):
    classification: ClassificationResult
    decision: AdaptiveDecision


class ScoreRequest(BaseModel):
    category: str
    dimensions10: dict[str, float]
    saturation_pct: float = 0.0
    weight_override: Optional[dict[str, float]] = None


class PolicyResponse(BaseModel):
    decision: PolicyDecision
    criteria: list[Criteria]


# =========================
# Endpoints
# =========================


@router.get("/rules", response_model=RulesResponse, response_model_exclude_none=True)
def get_rules(
    history: bool = Query(False, description="Include rule-set change history"),
    services: AdaptiveServices = Depends(get_services),
):
    """List all stored rules (disabled included), optionally with history."""
    try:
        rules = services.rules.list_all()
        return RulesResponse(
            rules=rules,
            history=services.rules.history() if history else None,
        )
    except RuleStoreError as e:
        logger.error(f"Failed to load rules: {e}")
        raise HTTPException(status_code=503, detail="Rule store unavailable") from e


@router.post("/rules", response_model=OkResponse)
def put_rules(
    body: RulesUpdateRequest,
    request: Request,
    services: AdaptiveServices = Depends(get_services),
):
    """Replace the whole rule set and append a history entry."""
    try:
        rules = validate_rules(body.rules)
        services.rules.replace_all(rules, actor=_actor(request))
    except (InvalidRuleError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except RuleStoreError as e:
        logger.error(f"Failed to save rules: {e}")
        raise HTTPException(status_code=503, detail="Rule store unavailable") from e

    return OkResponse(count=len(rules))


@router.put("/rules/{rule_id}", response_model=OkResponse)
def upsert_rule(
    rule_id: str,
    body: dict[str, Any],
    request: Request,
    services: AdaptiveServices = Depends(get_services),
):
    """Insert or replace a single rule by id."""
    try:
        (rule,) = validate_rules([{**body, "id": rule_id}])
        services.rules.upsert(rule, actor=_actor(request))
    except (InvalidRuleError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except RuleStoreError as e:
        logger.error(f"Failed to upsert rule {rule_id}: {e}")
        raise HTTPException(status_code=503, detail="Rule store unavailable") from e

    return OkResponse(count=1)


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate(
    body: EvaluateRequest,
    services: AdaptiveServices = Depends(get_services),
):
    """Classify, score, apply rules and return the merged decision."""
    try:
        result = await run_adaptive_evaluation(
            services,
            body.dimensions10,
            body.saturation_pct,
            classification_input=body.classification,
            category=body.category,
            weight_override=body.weight_override,
            extra_context=body.context,
            flags=tuple(body.flags),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except RuleStoreError as e:
        logger.error(f"Rule store unavailable during evaluation: {e}")
        raise HTTPException(status_code=503, detail="Rule store unavailable") from e

    return EvaluateResponse(classification=result.classification, decision=result.decision)


@router.post("/score", response_model=AdaptiveOutcome)
def score(body: ScoreRequest):
    """Numeric evaluation only: weights, gates, caps."""
    try:
        return evaluate_adaptive(
            body.category, body.dimensions10, body.saturation_pct, body.weight_override
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/policy")
def get_policy_table():
    """Static weight and gate table per category."""
    return policy_table()


@router.post("/policy/decide", response_model=PolicyResponse)
def decide_frameworks(ctx: PrimaryContext):
    """Activated validation frameworks and their criteria."""
    decision = decide_policy(ctx)
    return PolicyResponse(decision=decision, criteria=get_validation_criteria(decision))


@router.post("/simulate/payback", response_model=PaybackResult)
def simulate_payback_months(
    params: PaybackParams,
    runs: int = Query(5000, ge=1, le=50_000),
    seed: Optional[int] = Query(None, description="Fix for reproducible bands"),
):
    """Monte Carlo CAC payback months (p50/p90) and 12-month payback probability."""
    return simulate_payback(params, runs=runs, seed=seed)


@router.post("/simulate/ltv-cac", response_model=LtvCacBands)
def simulate_ltv_cac_bands(
    params: LtvCacParams,
    runs: int = Query(5000, ge=1, le=50_000),
    seed: Optional[int] = Query(None, description="Fix for reproducible bands"),
):
    """Monte Carlo p10/p50/p90 bands of the capped LTV:CAC ratio."""
    return simulate_ltv_cac(params, runs=runs, seed=seed)
