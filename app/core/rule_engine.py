"""Rule engine: evaluates persisted policy rules against an evaluation context.

Each rule is handled independently. An unsafe or unparseable ``when`` is
logged and the rule skipped, so one broken rule can neither stop the rest of
the set from evaluating nor force a pass. Firing rules contribute their
``then`` actions in rule order; rules never see each other's actions.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from app.core.logging import get_logger, log_with_context
from app.core.rule_expressions import RuleExpressionError, evaluate_expression
from app.core.schemas_adaptive import (
    FlagAction,
    GateAction,
    RuleDefinition,
    RuleEvaluationContext,
    RuleHistoryEntry,
)
from app.db.adaptive_rules import RuleStore, now_ms

logger = get_logger(__name__)


def _context_mapping(ctx: RuleEvaluationContext | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(ctx, RuleEvaluationContext):
        return ctx.as_mapping()
    return ctx


def evaluate_rules(
    rules: Iterable[RuleDefinition],
    ctx: RuleEvaluationContext | Mapping[str, Any],
) -> list[FlagAction | GateAction]:
    """
    Evaluate rules and collect the actions of those that fire.

    Args:
        rules: Rule definitions, in the order they should be applied
        ctx: Context exposed to rule expressions (model, saturationPct, ...)

    Returns:
        Concatenated actions of all firing rules, in rule-set order
    """
    mapping = _context_mapping(ctx)
    actions: list[FlagAction | GateAction] = []

    for rule in rules:
        if not rule.is_enabled:
            continue
        try:
            fired = evaluate_expression(rule.when, mapping)
        except RuleExpressionError as e:
            log_with_context(
                logger,
                logging.WARNING,
                f"Skipping rule with invalid expression: {e}",
                rule_id=rule.id,
            )
            continue
        if fired:
            actions.extend(rule.then)

    return actions


class RuleEngine:
    """Rule set management over a store plus stateless evaluation."""

    def __init__(self, store: RuleStore):
        self.store = store

    def list(self) -> list[RuleDefinition]:
        """Active (enabled) rules in stored order."""
        return [rule for rule in self.store.load_rules() if rule.is_enabled]

    def list_all(self) -> list[RuleDefinition]:
        return self.store.load_rules()

    def upsert(self, rule: RuleDefinition, actor: str = "system") -> None:
        """Replace the rule with the same id in place, or append it."""
        rules = self.store.load_rules()
        for index, existing in enumerate(rules):
            if existing.id == rule.id:
                rules[index] = rule
                break
        else:
            rules.append(rule)
        self._write(rules, actor)

    def replace_all(self, rules: list[RuleDefinition], actor: str = "system") -> None:
        """Swap in a whole new rule set."""
        self._write(list(rules), actor)

    def history(self) -> list[RuleHistoryEntry]:
        return self.store.load_history()

    def evaluate(
        self,
        rules: Iterable[RuleDefinition],
        ctx: RuleEvaluationContext | Mapping[str, Any],
    ) -> list[FlagAction | GateAction]:
        return evaluate_rules(rules, ctx)

    def evaluate_active(
        self, ctx: RuleEvaluationContext | Mapping[str, Any]
    ) -> tuple[list[RuleDefinition], list[FlagAction | GateAction]]:
        """Evaluate the stored active set; returns (rules, actions)."""
        rules = self.list()
        return rules, evaluate_rules(rules, ctx)

    def _write(self, rules: list[RuleDefinition], actor: str) -> None:
        seen: set[str] = set()
        for rule in rules:
            if rule.id in seen:
                raise ValueError(f"Duplicate rule id: {rule.id}")
            seen.add(rule.id)

        self.store.save_rules(rules)
        self.store.append_history(RuleHistoryEntry(when=now_ms(), actor=actor, rules=rules))
        log_with_context(logger, logging.INFO, "rules-upsert", count=len(rules), actor=actor)
