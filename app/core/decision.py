"""Merge the numeric adaptive outcome with rule actions into a verdict.

Status from the post-cap score: GO >= go_min, REVIEW >= review_min, else NO-GO.
Then, in order:
  - evaluator gate violations downgrade GO to REVIEW
  - rule gates with action "review" downgrade GO to REVIEW
  - rule gates with action "fail" force NO-GO
"""

import math
from typing import Iterable

from app.core.schemas_adaptive import (
    AdaptiveDecision,
    AdaptiveOutcome,
    DecisionStatus,
    FlagAction,
    GateAction,
    RulesEvaluated,
)


def rule_gate_flag(action: GateAction) -> str:
    dimension = getattr(action.dimension, "value", action.dimension)
    return f"RULE_GATE_{str(dimension).upper()}_{action.action.upper()}"


def merge_rule_actions(
    actions: Iterable[FlagAction | GateAction],
    flags: Iterable[str] = (),
) -> tuple[list[str], list[str]]:
    """
    Fold rule actions into flag codes and penalty lines.

    Args:
        actions: Actions emitted by the rule engine
        flags: Pre-existing flags (kept first, de-duplicated)

    Returns:
        (flags, penalties)
    """
    merged: list[str] = []
    for flag in flags:
        if flag not in merged:
            merged.append(flag)
    penalties: list[str] = []

    for action in actions:
        if isinstance(action, FlagAction):
            code = action.code
        else:
            code = rule_gate_flag(action)
            dimension = str(getattr(action.dimension, "value", action.dimension)).upper()
            if action.reason:
                penalties.append(f"{dimension}: {action.reason}")
            else:
                penalties.append(f"{dimension}: {action.action.upper()} required")
        if code not in merged:
            merged.append(code)

    return merged, penalties


def numeric_status(score100: float, go_min: float = 70, review_min: float = 40) -> DecisionStatus:
    if math.isnan(score100):
        return DecisionStatus.REVIEW
    if score100 >= go_min:
        return DecisionStatus.GO
    if score100 >= review_min:
        return DecisionStatus.REVIEW
    return DecisionStatus.NO_GO


def decide(
    outcome: AdaptiveOutcome,
    actions: list[FlagAction | GateAction],
    rules_total: int = 0,
    flags: Iterable[str] = (),
    go_min: float = 70,
    review_min: float = 40,
) -> AdaptiveDecision:
    """Combine evaluator output and rule actions into the final decision."""
    status = numeric_status(outcome.overall100_post_caps, go_min, review_min)
    reasons: list[str] = []

    if outcome.gate_violations and status == DecisionStatus.GO:
        status = DecisionStatus.REVIEW
    reasons.extend(outcome.gate_violations.values())
    reasons.extend(outcome.applied_caps)

    gates = [a for a in actions if isinstance(a, GateAction)]
    if any(g.action == "fail" for g in gates):
        status = DecisionStatus.NO_GO
    elif gates and status == DecisionStatus.GO:
        status = DecisionStatus.REVIEW

    merged_flags, penalties = merge_rule_actions(actions, flags)

    return AdaptiveDecision(
        status=status,
        score100=outcome.overall100_post_caps,
        outcome=outcome,
        flags=merged_flags,
        rule_penalties=penalties,
        reasons=reasons,
        rules_evaluated=RulesEvaluated(total=rules_total, triggered=len(actions)),
    )
