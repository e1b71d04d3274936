"""
Grade ledger program.

Grades are stored unpublished. PublishGrade is the only path that sets
the published flag, and nothing ever clears it.

Visibility:
    Institution   every grade, published or not
    Learner       own grades, published only
                  (another student's grade → AccessDenied,
                   own unpublished grade   → NotPublished)
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from acadledger.core.exceptions import AlreadyExistsError
from acadledger.core.identity import Identity
from acadledger.core.models import (
    ClassRecord,
    DocType,
    ExamRecord,
    GradeRecord,
    parse_score,
)
from acadledger.programs.base import LedgerProgram, operation, require_text
from acadledger.store.query import Selector

if TYPE_CHECKING:
    from acadledger.runtime.context import OperationContext

logger = logging.getLogger(__name__)


class GradeProgram(LedgerProgram):

    name = "grade"

    @operation("SubmitGrade")
    def submit_grade(
        self,
        ctx:        "OperationContext",
        grade_id:   str,
        exam_id:    str,
        student_id: str,
        score:      Any,
        comment:    str,
    ) -> Dict[str, Any]:
        self.require_institution(ctx, "submit grades")
        require_text(grade_id, "gradeId")
        require_text(student_id, "studentId")

        exam = ctx.records.load(exam_id, ExamRecord, "Exam")
        # the student, not the caller, must be enrolled
        self.check_enrollment(ctx, exam.class_id, Identity.learner(student_id))
        if ctx.records.exists(grade_id):
            raise AlreadyExistsError(f"Grade {grade_id} already exists", {"gradeId": grade_id})

        record = GradeRecord(
            id=           grade_id,
            exam_id=      exam_id,
            class_id=     exam.class_id,
            student_id=   student_id,
            score=        parse_score(score),
            comment=      comment or "",
            submitted_by= ctx.identity.caller_id,
            submitted_at= ctx.clock.stamp(),
        )
        ctx.records.put(record)
        ctx.emit("GradeSubmitted", {
            "gradeId":     grade_id,
            "examId":      exam_id,
            "classId":     exam.class_id,
            "studentId":   student_id,
            "submittedBy": record.submitted_by,
        })

        logger.info("Grade %s submitted for student %s on exam %s", grade_id, student_id, exam_id)
        return record.to_dict()

    @operation("PublishGrade")
    def publish_grade(self, ctx: "OperationContext", grade_id: str) -> Dict[str, Any]:
        """Publishing an already published grade changes nothing and emits nothing."""
        self.require_institution(ctx, "publish grades")
        record = ctx.records.load(grade_id, GradeRecord, "Grade")

        if record.published:
            logger.info("Grade %s already published at %s", grade_id, record.published_at)
            return record.to_dict()

        record.published    = True
        record.published_by = ctx.identity.caller_id
        record.published_at = ctx.clock.stamp()
        ctx.records.put(record)
        ctx.emit("GradePublished", {
            "gradeId":     grade_id,
            "examId":      record.exam_id,
            "classId":     record.class_id,
            "studentId":   record.student_id,
            "publishedBy": record.published_by,
            "publishedAt": record.published_at,
        })

        logger.info("Grade %s published by %s", grade_id, ctx.identity.describe())
        return record.to_dict()

    @operation("GetGrade")
    def get_grade(self, ctx: "OperationContext", grade_id: str) -> Dict[str, Any]:
        self.policy.require_affiliated(ctx.identity, "view grades").enforce()
        record = ctx.records.load(grade_id, GradeRecord, "Grade")
        self.policy.may_view_grade(ctx.identity, record).enforce()
        return record.to_dict()

    @operation("ListGradesForClass")
    def list_grades_for_class(self, ctx: "OperationContext", class_id: str) -> List[Dict[str, Any]]:
        self.policy.require_affiliated(ctx.identity, "list grades").enforce()
        ctx.records.load(class_id, ClassRecord, "Class")

        fields = {"docType": DocType.GRADE, "classId": class_id}
        if not ctx.identity.is_institution:
            fields["studentId"] = ctx.identity.caller_id
            fields["published"] = True
        return self._listing(ctx, Selector(fields))

    @operation("ListMyGrades")
    def list_my_grades(
        self,
        ctx:        "OperationContext",
        student_id: str,
        class_id:   str,
    ) -> List[Dict[str, Any]]:
        self.policy.may_list_grades_of(ctx.identity, student_id).enforce()
        ctx.records.load(class_id, ClassRecord, "Class")

        fields = {"docType": DocType.GRADE, "classId": class_id, "studentId": student_id}
        if not ctx.identity.is_institution:
            fields["published"] = True
        return self._listing(ctx, Selector(fields))

    @operation("ListGradesForExam")
    def list_grades_for_exam(self, ctx: "OperationContext", exam_id: str) -> List[Dict[str, Any]]:
        self.require_institution(ctx, "list exam grades")
        ctx.records.load(exam_id, ExamRecord, "Exam")
        return self._listing(ctx, Selector({"docType": DocType.GRADE, "examId": exam_id}))

    @operation("UpdateGrade")
    def update_grade(
        self,
        ctx:         "OperationContext",
        grade_id:    str,
        new_score:   Any,
        new_comment: str,
    ) -> Dict[str, Any]:
        """An empty comment keeps the existing one. The published flag is untouched."""
        self.require_institution(ctx, "update grades")
        record = ctx.records.load(grade_id, GradeRecord, "Grade")
        score = parse_score(new_score)

        old_score = record.score
        record.score = score
        if new_comment:
            record.comment = new_comment
        record.updated_by = ctx.identity.caller_id
        record.updated_at = ctx.clock.stamp()
        ctx.records.put(record)
        ctx.emit("GradeUpdated", {
            "gradeId":   grade_id,
            "oldScore":  old_score,
            "newScore":  score,
            "updatedBy": record.updated_by,
        })

        logger.info("Grade %s updated: %s -> %s", grade_id, old_score, score)
        return record.to_dict()

    @operation("DeleteGrade")
    def delete_grade(self, ctx: "OperationContext", grade_id: str) -> Dict[str, Any]:
        self.require_institution(ctx, "delete grades")
        record = ctx.records.load(grade_id, GradeRecord, "Grade")

        ctx.records.delete(grade_id)
        ctx.emit("GradeDeleted", {
            "gradeId":   grade_id,
            "examId":    record.exam_id,
            "studentId": record.student_id,
            "deletedBy": ctx.identity.caller_id,
        })

        logger.info("Grade %s deleted by %s", grade_id, ctx.identity.describe())
        return {"gradeId": grade_id, "message": f"Grade {grade_id} successfully deleted"}

    # ── Listings ──────────────────────────────────────────────

    def _listing(self, ctx: "OperationContext", selector: Selector) -> List[Dict[str, Any]]:
        exams: Dict[str, Optional[ExamRecord]] = {}
        views = []
        for grade in ctx.records.find(selector):
            if grade.exam_id not in exams:
                exam = ctx.records.get(grade.exam_id)
                exams[grade.exam_id] = exam if isinstance(exam, ExamRecord) else None
            views.append(self._listing_view(grade, exams[grade.exam_id]))
        views.sort(key=lambda v: (v["studentId"], v["id"]))
        return views

    @staticmethod
    def _listing_view(grade: GradeRecord, exam: Optional[ExamRecord]) -> Dict[str, Any]:
        return {
            "id":          grade.id,
            "examId":      grade.exam_id,
            "classId":     grade.class_id,
            "studentId":   grade.student_id,
            "score":       grade.score,
            "comment":     grade.comment,
            "published":   grade.published,
            "publishedBy": grade.published_by,
            "publishedAt": grade.published_at,
            "examTitle":   exam.title if exam else None,
            "examDate":    exam.exam_date if exam else None,
            "moduleId":    exam.module_id if exam else None,
        }
