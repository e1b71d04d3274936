"""
Ledger program base.

A ledger program is a plain class whose public operations are marked
with @operation("Name"). The executor discovers them through
LedgerProgram.operations() and calls them as

    method(ctx, *args)

with the fixed, ordered primitive arguments of the operation. Methods
return JSON-primitive values and raise AcadLedgerError subclasses.
"""

import inspect
from typing import TYPE_CHECKING, Callable, Dict, Optional

from acadledger.core.exceptions import InvalidArgumentError
from acadledger.core.identity import Identity
from acadledger.core.models import ClassRecord
from acadledger.policy.policy import AccessPolicy

if TYPE_CHECKING:
    from acadledger.runtime.context import OperationContext


def operation(name: str) -> Callable:
    """Expose a program method under an operation name."""
    def decorator(func: Callable) -> Callable:
        func.operation_name = name
        return func
    return decorator


class LedgerProgram:

    name = "abstract"

    def __init__(self, policy: Optional[AccessPolicy] = None) -> None:
        self.policy = policy or AccessPolicy()

    @classmethod
    def operations(cls) -> Dict[str, str]:
        """Operation name → method attribute name."""
        found = {}
        for attr, member in inspect.getmembers(cls, inspect.isfunction):
            op_name = getattr(member, "operation_name", None)
            if op_name:
                found[op_name] = attr
        return found

    # ── Shared checks ─────────────────────────────────────────

    def require_institution(self, ctx: "OperationContext", action: str) -> None:
        self.policy.require_institution(ctx.identity, action).enforce()

    def check_enrollment(
        self,
        ctx:      "OperationContext",
        class_id: str,
        identity: Optional[Identity] = None,
    ) -> Optional[ClassRecord]:
        """
        Enrollment check against class_id for identity (default: the caller).

        Institution is granted without loading the class. A Learner needs
        the class to exist (NotFoundError) and to list them as enrolled
        (AccessDeniedError). Anyone else is denied.

        Returns the class record when it was loaded.
        """
        identity = identity or ctx.identity
        class_record = None
        if identity.is_learner:
            class_record = ctx.records.load(class_id, ClassRecord, "Class")
        self.policy.class_access(identity, class_id, class_record).enforce()
        return class_record


def require_text(value, field: str) -> str:
    """A non-empty string argument."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{field} must be a non-empty string", {field: value})
    return value
