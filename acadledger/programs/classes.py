"""
Class ledger program.

Classes are permanent once created. The public listing exposes only
{id, name, description}; modules and enrollment are visible through the
authenticated detail view.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List

from acadledger.core.exceptions import AlreadyEnrolledError, AlreadyExistsError
from acadledger.core.models import ClassRecord, DocType
from acadledger.programs.base import LedgerProgram, operation, require_text
from acadledger.store.query import Selector

if TYPE_CHECKING:
    from acadledger.runtime.context import OperationContext

logger = logging.getLogger(__name__)


class ClassProgram(LedgerProgram):

    name = "class"

    @operation("CreateClass")
    def create_class(
        self,
        ctx:         "OperationContext",
        class_id:    str,
        name:        str,
        description: str,
    ) -> Dict[str, Any]:
        self.require_institution(ctx, "create classes")
        require_text(class_id, "classId")
        require_text(name, "name")

        if ctx.records.exists(class_id):
            raise AlreadyExistsError(f"Class {class_id} already exists", {"classId": class_id})

        now = ctx.clock.stamp()
        record = ClassRecord(
            id=          class_id,
            name=        name,
            description= description or "",
            created_by=  ctx.identity.caller_id,
            created_at=  now,
            updated_at=  now,
        )
        ctx.records.put(record)
        ctx.emit("ClassCreated", {
            "classId":   class_id,
            "name":      name,
            "createdBy": record.created_by,
        })

        logger.info("Class %s created by %s", class_id, ctx.identity.describe())
        return record.to_dict()

    @operation("ListClasses")
    def list_classes(self, ctx: "OperationContext") -> List[Dict[str, Any]]:
        """Public: no access check, summary fields only."""
        classes = ctx.records.find(Selector({"docType": DocType.CLASS}))
        return [record.summary() for record in classes]

    @operation("GetClassDetails")
    def get_class_details(self, ctx: "OperationContext", class_id: str) -> Dict[str, Any]:
        self.policy.require_affiliated(ctx.identity, "view class details").enforce()
        record = ctx.records.load(class_id, ClassRecord, "Class")
        return record.to_dict()

    @operation("EnrollStudent")
    def enroll_student(
        self,
        ctx:        "OperationContext",
        class_id:   str,
        student_id: str,
    ) -> Dict[str, Any]:
        self.policy.may_enroll(ctx.identity, student_id).enforce()
        require_text(student_id, "studentId")

        record = ctx.records.load(class_id, ClassRecord, "Class")
        if not record.enroll(student_id):
            raise AlreadyEnrolledError(
                f"Student {student_id} is already enrolled in class {class_id}",
                {"classId": class_id, "studentId": student_id},
            )
        record.updated_at = ctx.clock.stamp()
        ctx.records.put(record)

        enrolled_by = ctx.identity.caller_id
        ctx.emit("StudentEnrolled", {
            "classId":    class_id,
            "studentId":  student_id,
            "enrolledBy": enrolled_by,
        })

        message = f"Student {student_id} successfully enrolled in class {class_id}"
        logger.info("%s by %s", message, ctx.identity.describe())
        return {
            "message":    message,
            "classId":    class_id,
            "studentId":  student_id,
            "enrolledBy": enrolled_by,
        }

    @operation("AddModule")
    def add_module(
        self,
        ctx:         "OperationContext",
        class_id:    str,
        module_name: str,
    ) -> Dict[str, Any]:
        self.require_institution(ctx, "add modules")
        require_text(module_name, "moduleName")

        record = ctx.records.load(class_id, ClassRecord, "Class")
        if module_name in record.modules:
            raise AlreadyExistsError(
                f"Module {module_name} already exists in class {class_id}",
                {"classId": class_id, "module": module_name},
            )
        record.modules.append(module_name)
        record.updated_at = ctx.clock.stamp()
        ctx.records.put(record)
        ctx.emit("ModuleAdded", {
            "classId": class_id,
            "module":  module_name,
            "addedBy": ctx.identity.caller_id,
        })

        logger.info("Module %s added to class %s", module_name, class_id)
        return {"classId": class_id, "module": module_name, "modules": list(record.modules)}

    @operation("GetEnrolledStudents")
    def get_enrolled_students(self, ctx: "OperationContext", class_id: str) -> Dict[str, Any]:
        self.require_institution(ctx, "view enrolled students")
        record = ctx.records.load(class_id, ClassRecord, "Class")
        return {
            "classId":          class_id,
            "className":        record.name,
            "enrolledStudents": list(record.enrolled_students),
            "count":            len(record.enrolled_students),
        }
