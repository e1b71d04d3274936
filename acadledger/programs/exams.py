"""
Exam ledger program.

Two time gates, both measured against the operation's single instant:

    UploadCorrection        now >= examDate
    correction visibility   now >= examDate + correction delay
                            (Institution callers are not gated)

The correction delay comes from LedgerConfig and is applied uniformly
to every exam. Listings never carry the correction pointer.
"""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List

from acadledger.core.exceptions import (
    AlreadyExistsError,
    CorrectionAlreadyUploadedError,
    ExamDateLockedError,
    InvalidArgumentError,
    NotFoundError,
    NotYetAvailableError,
    TooEarlyError,
)
from acadledger.core.models import ClassRecord, DocType, ExamRecord
from acadledger.core.time import format_instant, parse_instant
from acadledger.programs.base import LedgerProgram, operation, require_text
from acadledger.store.query import Selector

if TYPE_CHECKING:
    from acadledger.runtime.context import OperationContext

logger = logging.getLogger(__name__)

NEVER = datetime.max.replace(tzinfo=timezone.utc)


def correction_available_at(ctx: "OperationContext", exam: ExamRecord) -> datetime:
    """When learners may read the correction; never, if that lies past datetime.max."""
    try:
        return parse_instant(exam.exam_date, "examDate") + ctx.config.correction_delay
    except OverflowError:
        return NEVER


def schedule(ctx: "OperationContext", value: str, field: str) -> str:
    """
    Validate a new exam date and return it in wire format.

    The date plus the correction delay must still be a representable
    instant, otherwise the correction could never be scheduled.
    """
    exam_date = parse_instant(value, field)
    try:
        exam_date + ctx.config.correction_delay
    except OverflowError:
        raise InvalidArgumentError(
            f"{field} is too far in the future to schedule a correction",
            {field: value},
        )
    return format_instant(exam_date)


class ExamProgram(LedgerProgram):

    name = "exam"

    @operation("CreateExam")
    def create_exam(
        self,
        ctx:                  "OperationContext",
        exam_id:              str,
        class_id:             str,
        module_id:            str,
        title:                str,
        exam_date:            str,
        exam_content_pointer: str,
    ) -> Dict[str, Any]:
        self.require_institution(ctx, "create exams")
        require_text(exam_id, "examId")
        require_text(exam_content_pointer, "examContentPointer")

        ctx.records.load(class_id, ClassRecord, "Class")
        if ctx.records.exists(exam_id):
            raise AlreadyExistsError(f"Exam {exam_id} already exists", {"examId": exam_id})
        scheduled = schedule(ctx, exam_date, "examDate")

        record = ExamRecord(
            id=                   exam_id,
            class_id=             class_id,
            module_id=            module_id,
            title=                title,
            exam_date=            scheduled,
            exam_content_pointer= exam_content_pointer,
            created_by=           ctx.identity.caller_id,
            created_at=           ctx.clock.stamp(),
        )
        ctx.records.put(record)
        ctx.emit("ExamCreated", {
            "examId":    exam_id,
            "classId":   class_id,
            "moduleId":  module_id,
            "title":     title,
            "examDate":  scheduled,
            "createdBy": record.created_by,
        })

        logger.info("Exam %s created for class %s on %s", exam_id, class_id, scheduled)
        return record.to_dict()

    @operation("UploadCorrection")
    def upload_correction(
        self,
        ctx:                        "OperationContext",
        exam_id:                    str,
        correction_content_pointer: str,
    ) -> Dict[str, Any]:
        self.require_institution(ctx, "upload corrections")
        require_text(correction_content_pointer, "correctionContentPointer")

        record = ctx.records.load(exam_id, ExamRecord, "Exam")
        exam_date = parse_instant(record.exam_date, "examDate")
        if ctx.clock.now < exam_date:
            raise TooEarlyError(
                f"Cannot upload correction before exam date ({record.exam_date})",
                {"examId": exam_id, "examDate": record.exam_date},
            )
        if record.has_correction:
            raise CorrectionAlreadyUploadedError(
                f"Correction already uploaded for exam {exam_id}",
                {"examId": exam_id, "correctionUploadedAt": record.correction_uploaded_at},
            )

        record.correction_content_pointer = correction_content_pointer
        record.correction_uploaded_at     = ctx.clock.stamp()
        record.correction_uploaded_by     = ctx.identity.caller_id
        ctx.records.put(record)

        available_at = format_instant(correction_available_at(ctx, record))
        ctx.emit("CorrectionUploaded", {
            "examId":                exam_id,
            "classId":               record.class_id,
            "uploadedBy":            record.correction_uploaded_by,
            "uploadedAt":            record.correction_uploaded_at,
            "correctionAvailableAt": available_at,
        })

        logger.info("Correction uploaded for exam %s", exam_id)
        return {
            "examId":                exam_id,
            "correctionUploadedAt":  record.correction_uploaded_at,
            "correctionAvailableAt": available_at,
        }

    @operation("ListExams")
    def list_exams(self, ctx: "OperationContext", class_id: str) -> List[Dict[str, Any]]:
        self.check_enrollment(ctx, class_id)
        exams = ctx.records.find(Selector({"docType": DocType.EXAM, "classId": class_id}))
        return [self._listing_view(ctx, record) for record in exams]

    def _listing_view(self, ctx: "OperationContext", record: ExamRecord) -> Dict[str, Any]:
        available_at = correction_available_at(ctx, record)
        available = record.has_correction and ctx.clock.now >= available_at

        view = {
            "id":                    record.id,
            "classId":               record.class_id,
            "moduleId":              record.module_id,
            "title":                 record.title,
            "examDate":              record.exam_date,
            "createdBy":             record.created_by,
            "createdAt":             record.created_at,
            "correctionAvailable":   available,
            "correctionAvailableAt": format_instant(available_at),
        }

        if ctx.identity.is_institution:
            view["examContentPointer"]   = record.exam_content_pointer
            view["correctionUploaded"]   = record.has_correction
            view["correctionUploadedAt"] = record.correction_uploaded_at
            view["correctionUploadedBy"] = record.correction_uploaded_by
        elif available:
            view["correctionUploadedAt"] = record.correction_uploaded_at
        elif ctx.clock.now < available_at:
            view["correctionAvailableInHours"] = ctx.clock.hours_until(available_at)

        return view

    @operation("FetchExamContent")
    def fetch_exam_content(self, ctx: "OperationContext", exam_id: str) -> Dict[str, Any]:
        record = ctx.records.load(exam_id, ExamRecord, "Exam")
        self.check_enrollment(ctx, record.class_id)

        logger.info("Exam %s content fetched by %s", exam_id, ctx.identity.describe())
        return {
            "id":                 record.id,
            "classId":            record.class_id,
            "moduleId":           record.module_id,
            "title":              record.title,
            "examDate":           record.exam_date,
            "examContentPointer": record.exam_content_pointer,
        }

    @operation("FetchCorrectionContent")
    def fetch_correction_content(self, ctx: "OperationContext", exam_id: str) -> Dict[str, Any]:
        """
        Check order: exam exists, enrollment, availability window
        (non-Institution callers), correction uploaded.
        """
        record = ctx.records.load(exam_id, ExamRecord, "Exam")
        self.check_enrollment(ctx, record.class_id)

        available_at = correction_available_at(ctx, record)
        if not ctx.identity.is_institution and ctx.clock.now < available_at:
            hours = ctx.clock.hours_until(available_at)
            raise NotYetAvailableError(
                f"Correction available in {hours} hours",
                {
                    "examId":                exam_id,
                    "correctionAvailableAt": format_instant(available_at),
                    "hoursRemaining":        hours,
                },
            )
        if not record.has_correction:
            raise NotFoundError(
                f"Correction not yet uploaded for exam {exam_id}", {"examId": exam_id}
            )

        logger.info("Correction for exam %s fetched by %s", exam_id, ctx.identity.describe())
        return {
            "id":                       record.id,
            "classId":                  record.class_id,
            "moduleId":                 record.module_id,
            "title":                    record.title,
            "examDate":                 record.exam_date,
            "correctionContentPointer": record.correction_content_pointer,
            "correctionUploadedAt":     record.correction_uploaded_at,
        }

    @operation("UpdateExamDate")
    def update_exam_date(
        self,
        ctx:      "OperationContext",
        exam_id:  str,
        new_date: str,
    ) -> Dict[str, Any]:
        self.require_institution(ctx, "update exam dates")
        record = ctx.records.load(exam_id, ExamRecord, "Exam")
        if record.has_correction:
            raise ExamDateLockedError(
                f"Cannot change the date of exam {exam_id}: a correction is already uploaded",
                {"examId": exam_id},
            )

        old_date = record.exam_date
        record.exam_date = schedule(ctx, new_date, "newDate")
        ctx.records.put(record)
        ctx.emit("ExamDateUpdated", {
            "examId":    exam_id,
            "oldDate":   old_date,
            "newDate":   record.exam_date,
            "updatedBy": ctx.identity.caller_id,
        })

        logger.info("Exam %s moved from %s to %s", exam_id, old_date, record.exam_date)
        return {"examId": exam_id, "oldDate": old_date, "newDate": record.exam_date}

    @operation("DeleteExam")
    def delete_exam(self, ctx: "OperationContext", exam_id: str) -> Dict[str, Any]:
        self.require_institution(ctx, "delete exams")
        record = ctx.records.load(exam_id, ExamRecord, "Exam")

        ctx.records.delete(exam_id)
        ctx.emit("ExamDeleted", {
            "examId":    exam_id,
            "classId":   record.class_id,
            "deletedBy": ctx.identity.caller_id,
        })

        logger.info("Exam %s deleted by %s", exam_id, ctx.identity.describe())
        return {"examId": exam_id, "message": f"Exam {exam_id} successfully deleted"}

    @operation("GetExam")
    def get_exam(self, ctx: "OperationContext", exam_id: str) -> Dict[str, Any]:
        self.require_institution(ctx, "view exam details")
        return ctx.records.load(exam_id, ExamRecord, "Exam").to_dict()
