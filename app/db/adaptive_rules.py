"""Persistence for adaptive rule sets and their change history.

The store owns the canonical rule list (including disabled rules) and an
append-only history capped to the most recent entries. Writes are
last-writer-wins. Rule shape is validated here so malformed definitions
never reach the interpreter.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Any, Iterable, Protocol

from pydantic import TypeAdapter, ValidationError

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.core.schemas_adaptive import RuleDefinition, RuleHistoryEntry

logger = get_logger(__name__)

RULES_KEY = "adaptive:rules"
RULES_HISTORY_KEY = "adaptive:rules:history"

_rules_adapter = TypeAdapter(list[RuleDefinition])
_history_adapter = TypeAdapter(list[RuleHistoryEntry])


class RuleStoreError(RuntimeError):
    """Backend failure reading or writing rules."""


class InvalidRuleError(ValueError):
    """Rule payload does not match the RuleDefinition shape."""

    def __init__(self, rule_id: str, detail: str):
        self.rule_id = rule_id
        super().__init__(f"Invalid rule shape for id {rule_id}: {detail}")


def validate_rules(raw_rules: Iterable[Any]) -> list[RuleDefinition]:
    """
    Validate raw rule payloads.

    Args:
        raw_rules: Dicts (or RuleDefinition instances) from an untrusted source

    Returns:
        Validated RuleDefinition list, order preserved

    Raises:
        InvalidRuleError: On the first malformed rule
    """
    rules: list[RuleDefinition] = []
    for raw in raw_rules:
        if isinstance(raw, RuleDefinition):
            rules.append(raw)
            continue
        rule_id = raw.get("id") if isinstance(raw, dict) else None
        try:
            rules.append(RuleDefinition.model_validate(raw))
        except ValidationError as e:
            raise InvalidRuleError(str(rule_id or "unknown"), str(e.errors()[0]["msg"])) from e
    return rules


def now_ms() -> int:
    return int(time.time() * 1000)


def _cap_history(history: list[RuleHistoryEntry], limit: int) -> list[RuleHistoryEntry]:
    # Most recent `limit` entries; a non-positive limit keeps none
    return history[-limit:] if limit > 0 else []


class RuleStore(Protocol):
    def load_rules(self) -> list[RuleDefinition]: ...

    def save_rules(self, rules: list[RuleDefinition]) -> None: ...

    def append_history(self, entry: RuleHistoryEntry) -> None: ...

    def load_history(self) -> list[RuleHistoryEntry]: ...


class InMemoryRuleStore:
    """Process-local store; one instance per service."""

    def __init__(self, rules: Iterable[RuleDefinition] | None = None, history_limit: int = 50):
        self.history_limit = history_limit
        self._rules: list[RuleDefinition] = list(rules or [])
        self._history: list[RuleHistoryEntry] = []

    def load_rules(self) -> list[RuleDefinition]:
        return list(self._rules)

    def save_rules(self, rules: list[RuleDefinition]) -> None:
        self._rules = list(rules)

    def append_history(self, entry: RuleHistoryEntry) -> None:
        self._history = _cap_history(self._history + [entry], self.history_limit)

    def load_history(self) -> list[RuleHistoryEntry]:
        return list(self._history)


class SupabaseRuleStore:
    """Key/value store over a Supabase table with per-key expiry.

    Table columns: key (text, primary key), value (jsonb), expires_at (timestamptz).
    """

    def __init__(
        self,
        client: Any,
        table: str = "adaptive_kv",
        rules_ttl_seconds: int = 60 * 60,
        history_ttl_seconds: int = 7 * 24 * 60 * 60,
        history_limit: int = 50,
    ):
        self.client = client
        self.table = table
        self.rules_ttl_seconds = rules_ttl_seconds
        self.history_ttl_seconds = history_ttl_seconds
        self.history_limit = history_limit

    def _get(self, key: str) -> Any | None:
        try:
            response = (
                self.client.table(self.table)
                .select("value, expires_at")
                .eq("key", key)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to read {key}: {e}")
            raise RuleStoreError(f"Supabase error reading {self.table}: {str(e)}") from e

        if not response.data:
            return None
        row = response.data[0]
        expires_at = row.get("expires_at")
        if expires_at and datetime.fromisoformat(expires_at) <= datetime.now(UTC):
            return None
        return row.get("value")

    def _set(self, key: str, value: Any, ttl_seconds: int) -> None:
        expires_at = datetime.now(UTC) + timedelta(seconds=ttl_seconds)
        try:
            (
                self.client.table(self.table)
                .upsert(
                    {"key": key, "value": value, "expires_at": expires_at.isoformat()},
                    on_conflict="key",
                )
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to write {key}: {e}")
            raise RuleStoreError(f"Supabase error writing {self.table}: {str(e)}") from e

    def load_rules(self) -> list[RuleDefinition]:
        value = self._get(RULES_KEY)
        if not isinstance(value, list):
            return []
        return _rules_adapter.validate_python(value)

    def save_rules(self, rules: list[RuleDefinition]) -> None:
        payload = _rules_adapter.dump_python(rules, mode="json", exclude_none=True)
        self._set(RULES_KEY, payload, self.rules_ttl_seconds)

    def append_history(self, entry: RuleHistoryEntry) -> None:
        # Read-modify-write; concurrent writers may drop an entry (last writer wins)
        history = self.load_history()
        history.append(entry)
        trimmed = _cap_history(history, self.history_limit)
        payload = _history_adapter.dump_python(trimmed, mode="json", exclude_none=True)
        self._set(RULES_HISTORY_KEY, payload, self.history_ttl_seconds)

    def load_history(self) -> list[RuleHistoryEntry]:
        value = self._get(RULES_HISTORY_KEY)
        if not isinstance(value, list):
            return []
        return _history_adapter.validate_python(value)


def build_rule_store(settings: Settings | None = None) -> RuleStore:
    """Create the configured rule store backend."""
    settings = settings or get_settings()
    backend = settings.RULE_STORE_BACKEND.lower()

    if backend == "memory":
        return InMemoryRuleStore(history_limit=settings.RULES_HISTORY_LIMIT)
    if backend == "supabase":
        from app.db.supabase_client import get_supabase

        return SupabaseRuleStore(
            get_supabase(),
            table=settings.RULES_TABLE,
            rules_ttl_seconds=settings.RULES_TTL_SECONDS,
            history_ttl_seconds=settings.RULES_HISTORY_TTL_SECONDS,
            history_limit=settings.RULES_HISTORY_LIMIT,
        )
    raise ValueError(f"Unknown RULE_STORE_BACKEND: {settings.RULE_STORE_BACKEND}")
