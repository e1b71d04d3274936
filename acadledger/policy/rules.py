"""
Authorization rule definitions and evaluation logic.

A rule is a list of conditions over an evaluation context (a flat dict
built from the caller identity and the resource) plus the action taken
when every condition holds. Rules are evaluated in priority order; the
first match decides.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from acadledger.core.exceptions import AcadLedgerError, AccessDeniedError


class DecisionType(Enum):
    ALLOW = "ALLOW"
    DENY  = "DENY"


class ConditionOperator(Enum):
    """Operators for rule conditions"""
    EQUALS       = "equals"
    NOT_EQUALS   = "not_equals"
    IN           = "in"
    IS_SET       = "is_set"
    EQUALS_FIELD = "equals_field"


_MISSING = object()


@dataclass
class RuleCondition:
    """A single condition that must be satisfied"""
    field:    str
    operator: ConditionOperator
    value:    Any = None

    def evaluate(self, context: Dict[str, Any]) -> bool:
        field_value = self._get_field_value(context, self.field)

        if self.operator == ConditionOperator.IS_SET:
            return field_value is not _MISSING and field_value is not None

        if field_value is _MISSING or field_value is None:
            return False

        if self.operator == ConditionOperator.EQUALS:
            return field_value == self.value
        elif self.operator == ConditionOperator.NOT_EQUALS:
            return field_value != self.value
        elif self.operator == ConditionOperator.IN:
            return field_value in self.value
        elif self.operator == ConditionOperator.EQUALS_FIELD:
            # value names another context field
            other = self._get_field_value(context, self.value)
            return other is not _MISSING and other is not None and field_value == other
        else:
            return False

    def _get_field_value(self, context: Dict[str, Any], field_path: str) -> Any:
        """Get field value from context, supporting nested paths"""
        value: Any = context
        for part in field_path.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return _MISSING
        return value


@dataclass
class RuleAction:
    """Action to take when rule matches"""
    decision: DecisionType
    reason:   str
    error:    Type[AcadLedgerError] = AccessDeniedError


@dataclass
class Rule:
    """A policy rule with conditions and action"""
    rule_id:     str
    description: str
    conditions:  List[RuleCondition]
    action:      RuleAction
    priority:    int  = 0
    enabled:     bool = True

    def matches(self, context: Dict[str, Any]) -> bool:
        """ALL conditions must be satisfied (AND logic)."""
        if not self.conditions:
            return True
        return all(condition.evaluate(context) for condition in self.conditions)


@dataclass
class Decision:
    """
    Outcome of one authorization check.

    Truthy when allowed. enforce() raises the denial's error kind with
    its reason, so callers can choose between branching and failing.
    """

    decision: DecisionType
    reason:   str
    rule_id:  Optional[str]                = None
    error:    Type[AcadLedgerError]        = AccessDeniedError
    details:  Dict[str, Any]               = field(default_factory=dict)

    @property
    def allowed(self) -> bool:
        return self.decision is DecisionType.ALLOW

    def __bool__(self) -> bool:
        return self.allowed

    def enforce(self) -> None:
        if not self.allowed:
            details = dict(self.details)
            if self.rule_id:
                details["rule"] = self.rule_id
            raise self.error(self.reason, details)
