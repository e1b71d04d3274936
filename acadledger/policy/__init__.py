"""
acadledger access policy.

One authorization module shared by every ledger program.

Components:
- Rule / RuleCondition / RuleAction: declarative rule definitions
- Policy: an ordered rule list answering one question
- AccessPolicy: the questions the programs ask, returning Decisions
"""

from acadledger.policy.policy import AccessPolicy, Policy
from acadledger.policy.rules import (
    ConditionOperator,
    Decision,
    DecisionType,
    Rule,
    RuleAction,
    RuleCondition,
)

__all__ = [
    "AccessPolicy",
    "Policy",
    "ConditionOperator",
    "Decision",
    "DecisionType",
    "Rule",
    "RuleAction",
    "RuleCondition",
]
