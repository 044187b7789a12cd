"""
Rule catalog: one YAML rule per action type (ucas_<action>.yml).

A rule names the resources an action targets (match), the parameters the
dashboard evaluates it with (params) and how its estimate is derived
(estimate.formula). It also decides whether applying the action needs an
explicit human approval.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from ucas_engine.models.scenario import ActionType

logger = structlog.get_logger()

BUNDLED_RULES_DIR = Path(__file__).parent / "rules"
RULE_FILE_PATTERN = "ucas_*.yml"


class Rule(BaseModel):
    rule_id: str
    action: ActionType
    scope: str = "compute"                  # "compute" | "storage" | ...
    match: Dict[str, Any] = {}              # e.g. {"usage_metrics.avg": "< 0.4"}
    params: Dict[str, Any] = {}
    estimate_formula: Optional[str] = None
    approval_required: bool = True


def _rule_from_document(data: dict) -> Rule:
    estimate = data.get("estimate") or {}
    return Rule(
        rule_id=data["rule_id"],
        action=data["action"],
        scope=data.get("scope", "compute"),
        match=data.get("match") or {},
        params=data.get("params") or {},
        estimate_formula=estimate.get("formula"),
        approval_required=bool(estimate.get("approval", True)),
    )


class RuleCatalog:
    """Rules indexed by action type."""

    def __init__(self, rules: Optional[Dict[ActionType, Rule]] = None):
        self._rules: Dict[ActionType, Rule] = dict(rules or {})

    @classmethod
    def load(cls, directory: Union[str, Path, None] = None) -> "RuleCatalog":
        """Load every ucas_*.yml in directory. Broken files are logged and skipped."""
        root = Path(directory) if directory else BUNDLED_RULES_DIR
        rules: Dict[ActionType, Rule] = {}

        for path in sorted(root.glob(RULE_FILE_PATTERN)):
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
                rule = _rule_from_document(data)
            except (OSError, yaml.YAMLError, KeyError, TypeError, AttributeError, ValidationError) as e:
                logger.error("rule_file_invalid", path=str(path), error=str(e))
                continue
            rules[rule.action] = rule
            logger.debug("rule_loaded", rule_id=rule.rule_id, action=rule.action.value)

        logger.info("rules_loaded", count=len(rules), directory=str(root))
        return cls(rules)

    def get(self, action: ActionType) -> Optional[Rule]:
        return self._rules.get(ActionType(action))

    def __len__(self) -> int:
        return len(self._rules)

    def default_params(self, action: ActionType) -> Dict[str, Any]:
        rule = self.get(action)
        return dict(rule.params) if rule else {}

    def approval_required(self, action: ActionType) -> bool:
        rule = self.get(action)
        return rule.approval_required if rule else True

    def basis(self, action: ActionType, savings: float, params: Optional[Dict[str, Any]] = None) -> str:
        """Human-readable justification for a recommendation of this action."""
        action = ActionType(action)
        rule = self.get(action)
        if rule is None:
            return "Cost optimization rules indicate savings are available."

        params = {**rule.params, **(params or {})}
        lines = [f"{action.label} rule {rule.rule_id} applies:"]

        if rule.match:
            conditions = ", ".join(f"{k} {_describe(v)}" for k, v in rule.match.items())
            lines.append(f"- Applies to: {conditions}")

        if action == ActionType.OFFHOURS:
            weekdays = ", ".join(params.get("weekdays", ["Mon-Fri"]))
            lines.append(
                f"- Schedule: {weekdays}, {params.get('stop_at', '20:00')}"
                f" ~ {params.get('start_at', '08:30')}"
            )
        elif action == ActionType.COMMITMENT:
            level = float(params.get("commit_level", 0.7))
            lines.append(
                f"- Commitment: {level:.0%} coverage, {params.get('commit_years', 1)}-year term"
            )
        elif action == ActionType.STORAGE:
            lines.append(
                f"- Archiving: move to {params.get('target_tier', 'Cold')} tier, "
                f"{params.get('retention_days', 90)} day retention"
            )
        elif action == ActionType.RIGHTSIZING:
            lines.append(f"- Target: {params.get('target_size') or 'one size smaller'}")

        if rule.estimate_formula:
            lines.append(f"- Estimate: {rule.estimate_formula}")
        lines.append(f"- Estimated savings: {savings:,.2f} per month")
        return "\n".join(lines)


def _describe(value: Any) -> str:
    if isinstance(value, list):
        return "in " + "/".join(str(v) for v in value)
    return str(value)
