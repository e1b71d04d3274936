"""
Access policy for the ledger programs.

Every authorization question the programs ask goes through AccessPolicy.
Each question is a small Policy: an ordered rule list evaluated against

    {
        "action":   "create classes",
        "caller":   {"organization": "Learner", "id": "alice"},
        "resource": {...question specific...},
    }

The first matching rule decides; no match falls through to the policy's
default DENY. Reasons are format strings over the same context.
"""

import logging
from typing import Any, Dict, List, Optional

from acadledger.core.exceptions import NotPublishedError
from acadledger.core.identity import Identity
from acadledger.core.models import ClassRecord, GradeRecord, Organization
from acadledger.policy.rules import (
    ConditionOperator,
    Decision,
    DecisionType,
    Rule,
    RuleAction,
    RuleCondition,
)

logger = logging.getLogger(__name__)


INSTITUTION = Organization.INSTITUTION.value
LEARNER     = Organization.LEARNER.value


def _org_is(tag: str) -> RuleCondition:
    return RuleCondition("caller.organization", ConditionOperator.EQUALS, tag)


def _caller_is(resource_field: str) -> RuleCondition:
    return RuleCondition("caller.id", ConditionOperator.EQUALS_FIELD, f"resource.{resource_field}")


def _allow(reason: str) -> RuleAction:
    return RuleAction(DecisionType.ALLOW, reason)


class Policy:
    """A collection of rules answering one authorization question."""

    def __init__(
        self,
        policy_id:      str,
        rules:          List[Rule],
        default_reason: str,
    ) -> None:
        self.policy_id      = policy_id
        self.rules          = sorted(rules, key=lambda r: r.priority, reverse=True)
        self.default_reason = default_reason

    def evaluate(self, context: Dict[str, Any]) -> Decision:
        for rule in self.rules:
            if not rule.enabled:
                continue
            if rule.matches(context):
                return Decision(
                    decision= rule.action.decision,
                    reason=   rule.action.reason.format(**context),
                    rule_id=  rule.rule_id,
                    error=    rule.action.error,
                )
        return Decision(
            decision= DecisionType.DENY,
            reason=   self.default_reason.format(**context),
            rule_id=  None,
        )


# ── Policies ──────────────────────────────────────────────────

INSTITUTION_ONLY = Policy(
    "institution-only",
    rules=[
        Rule(
            rule_id=     "institution-allow",
            description= "Institution members hold every privileged operation",
            conditions=  [_org_is(INSTITUTION)],
            action=      _allow("Institution member"),
        ),
    ],
    default_reason="Only Institution members can {action}",
)

AFFILIATED = Policy(
    "affiliated",
    rules=[
        Rule(
            rule_id=     "known-organization",
            description= "Any caller with a known affiliation",
            conditions=  [
                RuleCondition("caller.organization", ConditionOperator.IN, [INSTITUTION, LEARNER]),
                RuleCondition("caller.id", ConditionOperator.IS_SET),
            ],
            action=      _allow("Affiliated caller"),
        ),
    ],
    default_reason="Caller must belong to a known organization to {action}",
)

ENROLL_STUDENT = Policy(
    "enroll-student",
    rules=[
        Rule(
            rule_id=     "institution-enrolls-anyone",
            description= "Institution members may enroll any student",
            conditions=  [_org_is(INSTITUTION)],
            action=      _allow("Institution member"),
            priority=    20,
        ),
        Rule(
            rule_id=     "learner-enrolls-self",
            description= "Learners may enroll themselves",
            conditions=  [_org_is(LEARNER), _caller_is("student_id")],
            action=      _allow("Self-enrollment"),
            priority=    10,
        ),
        Rule(
            rule_id=     "learner-enrolls-other",
            description= "Learners may not enroll anyone else",
            conditions=  [_org_is(LEARNER)],
            action=      RuleAction(DecisionType.DENY, "Students can only enroll themselves"),
        ),
    ],
    default_reason="Only Institution members or the student themselves can enroll",
)

CLASS_ENROLLMENT = Policy(
    "class-enrollment",
    rules=[
        Rule(
            rule_id=     "institution-access",
            description= "Institution members see every class",
            conditions=  [_org_is(INSTITUTION)],
            action=      _allow("Institution member"),
            priority=    20,
        ),
        Rule(
            rule_id=     "enrolled-learner",
            description= "Learners see classes they are enrolled in",
            conditions=  [
                _org_is(LEARNER),
                RuleCondition("resource.enrolled", ConditionOperator.EQUALS, True),
            ],
            action=      _allow("Enrolled student"),
            priority=    10,
        ),
        Rule(
            rule_id=     "unenrolled-learner",
            description= "Learners outside the class are refused",
            conditions=  [_org_is(LEARNER)],
            action=      RuleAction(
                DecisionType.DENY,
                "Student {caller[id]} is not enrolled in class {resource[class_id]}",
            ),
        ),
    ],
    default_reason="Access denied to class {resource[class_id]}",
)

GRADE_VISIBILITY = Policy(
    "grade-visibility",
    rules=[
        Rule(
            rule_id=     "institution-reads-all",
            description= "Institution members read any grade, published or not",
            conditions=  [_org_is(INSTITUTION)],
            action=      _allow("Institution member"),
            priority=    30,
        ),
        Rule(
            rule_id=     "owner-reads-published",
            description= "A student reads their own published grade",
            conditions=  [
                _org_is(LEARNER),
                _caller_is("student_id"),
                RuleCondition("resource.published", ConditionOperator.EQUALS, True),
            ],
            action=      _allow("Owner of a published grade"),
            priority=    20,
        ),
        Rule(
            rule_id=     "owner-unpublished",
            description= "A student waits for publication of their own grade",
            conditions=  [_org_is(LEARNER), _caller_is("student_id")],
            action=      RuleAction(
                DecisionType.DENY,
                "Grade {resource[grade_id]} is not published yet",
                error=NotPublishedError,
            ),
            priority=    10,
        ),
    ],
    default_reason="Access denied to grade {resource[grade_id]}",
)

OWN_GRADES = Policy(
    "own-grades",
    rules=[
        Rule(
            rule_id=     "institution-lists-any",
            description= "Institution members list any student's grades",
            conditions=  [_org_is(INSTITUTION)],
            action=      _allow("Institution member"),
            priority=    10,
        ),
        Rule(
            rule_id=     "learner-lists-own",
            description= "Learners list only their own grades",
            conditions=  [_org_is(LEARNER), _caller_is("student_id")],
            action=      _allow("Own grades"),
        ),
    ],
    default_reason="Students can only view their own grades",
)


class AccessPolicy:
    """
    The single authorization point shared by every ledger program.

    Methods return a Decision; call .enforce() to turn a denial into the
    matching ledger failure.
    """

    def require_institution(self, identity: Identity, action: str) -> Decision:
        return self._decide(INSTITUTION_ONLY, identity, action)

    def require_affiliated(self, identity: Identity, action: str) -> Decision:
        return self._decide(AFFILIATED, identity, action)

    def may_enroll(self, identity: Identity, student_id: str) -> Decision:
        return self._decide(
            ENROLL_STUDENT, identity, "enroll students", student_id=student_id,
        )

    def class_access(
        self,
        identity:     Identity,
        class_id:     str,
        class_record: Optional[ClassRecord] = None,
    ) -> Decision:
        """
        Enrollment check. class_record is only consulted for Learners;
        the caller loads it first so a missing class surfaces as NotFound.
        """
        enrolled = class_record is not None and class_record.is_enrolled(identity.caller_id)
        return self._decide(
            CLASS_ENROLLMENT, identity, "access this class",
            class_id=class_id, enrolled=enrolled,
        )

    def may_view_grade(self, identity: Identity, grade: GradeRecord) -> Decision:
        return self._decide(
            GRADE_VISIBILITY, identity, "view this grade",
            grade_id=grade.id, student_id=grade.student_id, published=grade.published,
        )

    def may_list_grades_of(self, identity: Identity, student_id: str) -> Decision:
        return self._decide(
            OWN_GRADES, identity, "list grades", student_id=student_id,
        )

    # ── Internal ──────────────────────────────────────────────

    @staticmethod
    def _context(identity: Identity, action: str, resource: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "action": action,
            "caller": {
                "organization": identity.organization.value if identity.organization else None,
                "id":           identity.caller_id,
            },
            "resource": resource,
        }

    def _decide(self, policy: Policy, identity: Identity, action: str, **resource: Any) -> Decision:
        decision = policy.evaluate(self._context(identity, action, resource))
        decision.details = {"caller": identity.describe()}
        if not decision:
            logger.info(
                "Denied %s: %s [%s/%s]",
                identity.describe(), decision.reason,
                policy.policy_id, decision.rule_id or "default",
            )
        return decision
