"""
Compliance rule sets — loaded from JSON files and passed to the
compliance-check stage as explicit configuration on every run.

Each file in the rules directory holds one rule set, either a bare list
of rules or an object with a single list value:

    {"brand_compliance_rules": [{"id": "BR-001", "severity": "high", ...}]}

The file stem is the rule-set name ("brand-rules.json" → "brand-rules").
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from smartproof.core.constants import Severity
from smartproof.core.logging import get_logger

logger = get_logger(__name__)


class RuleSetError(ValueError):
    """A rule file is missing, unreadable or malformed."""


class ComplianceRule(BaseModel):
    """One rule; unknown keys are kept and forwarded to the checker."""

    model_config = ConfigDict(extra="allow")

    id: str
    severity: Severity
    description: str
    category: str | None = None


def _rules_from_payload(path: Path, payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        lists = [value for value in payload.values() if isinstance(value, list)]
        if len(lists) != 1:
            raise RuleSetError(f"{path.name}: expected exactly one list of rules")
        payload = lists[0]
    if not isinstance(payload, list):
        raise RuleSetError(f"{path.name}: expected a list of rules")

    rules = []
    for index, item in enumerate(payload):
        try:
            rule = ComplianceRule.model_validate(item)
        except ValidationError as exc:
            raise RuleSetError(f"{path.name}: rule #{index} is invalid: {exc}") from exc
        rules.append(rule.model_dump(mode="json", exclude_none=True))
    return rules


def load_rule_sets(rules_dir: str | Path) -> dict[str, list[dict[str, Any]]]:
    """
    Load every *.json rule file in `rules_dir`.

    Returns:
        rule-set name → list of rule dicts, in file-name order.

    Raises:
        RuleSetError: If the directory is missing, a file is not valid
            JSON, a rule fails validation, or rule IDs collide.
    """
    root = Path(rules_dir)
    if not root.is_dir():
        raise RuleSetError(f"Rules directory not found: {root}")

    rule_sets: dict[str, list[dict[str, Any]]] = {}
    seen_ids: set[str] = set()

    for path in sorted(root.glob("*.json")):
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise RuleSetError(f"{path.name}: cannot read rules: {exc}") from exc

        rules = _rules_from_payload(path, payload)
        for rule in rules:
            if rule["id"] in seen_ids:
                raise RuleSetError(f"{path.name}: duplicate rule id '{rule['id']}'")
            seen_ids.add(rule["id"])
        rule_sets[path.stem] = rules

    logger.info(
        "Rule sets loaded",
        rules_dir=str(root),
        rule_sets=list(rule_sets),
        total_rules=len(seen_ids),
    )
    return rule_sets
