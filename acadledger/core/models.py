"""
acadledger/core/models.py

Academic record model.

═══════════════════════════════════════════════════════════════════
STORAGE CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1: Discriminator
    every stored record carries "docType", one of DocType.*
    decode_record() dispatches on it and returns the matching dataclass
    records travel through the programs typed, never as raw dicts

CONTRACT 2: Bytes
    stored bytes = canonicalize(record.to_dict())   (RFC 8785)
    identical records on two nodes → identical bytes

CONTRACT 3: Keys
    every record lives under its natural identifier in one shared keyspace
    relationships are identifier lookups, never embedded objects

CONTRACT 4: Timestamps
    all instants are wire-format strings from core.time.format_instant()
═══════════════════════════════════════════════════════════════════
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from acadledger.core.canonical import canonicalize, decode
from acadledger.core.exceptions import InvalidArgumentError, RecordDecodeError


# ─────────────────────────────────────────────────────────────
# Vocabulary
# ─────────────────────────────────────────────────────────────

class DocType:
    """
    docType discriminator constants.

    These are the ONLY valid values for a stored record's "docType".
    """
    CLASS    = "class"
    MATERIAL = "material"
    EXAM     = "exam"
    GRADE    = "grade"


_VALID_DOC_TYPES: Set[str] = {
    DocType.CLASS,
    DocType.MATERIAL,
    DocType.EXAM,
    DocType.GRADE,
}


class Organization(Enum):
    """Closed set of organizational affiliations."""
    INSTITUTION = "Institution"
    LEARNER     = "Learner"


class MaterialKind(Enum):
    """Course material kinds."""
    LECTURE  = "COURS"
    EXERCISE = "TP"

    @classmethod
    def parse(cls, value: str) -> "MaterialKind":
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgumentError(
                f"Invalid type: must be one of {[k.value for k in cls]}",
                {"kind": value},
            )


def parse_score(value: Union[int, float, str]) -> float:
    """
    A finite, non-negative score.
    Numeric strings are accepted since operation arguments arrive as primitives.
    """
    if isinstance(value, bool):
        raise InvalidArgumentError("Invalid score: must be a number", {"score": value})
    try:
        score = float(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidArgumentError("Invalid score: must be a number", {"score": value})
    if not math.isfinite(score) or score < 0:
        raise InvalidArgumentError(
            "Invalid score: must be a non-negative number", {"score": value}
        )
    return score


# ─────────────────────────────────────────────────────────────
# Records
# ─────────────────────────────────────────────────────────────

@dataclass
class ClassRecord:
    """A class: public summary plus modules and the enrollment set."""

    id:                str
    name:              str
    description:       str
    created_by:        str
    created_at:        str
    updated_at:        str
    modules:           List[str] = field(default_factory=list)
    enrolled_students: List[str] = field(default_factory=list)

    doc_type = DocType.CLASS

    def is_enrolled(self, student_id: Optional[str]) -> bool:
        return student_id is not None and student_id in self.enrolled_students

    def enroll(self, student_id: str) -> bool:
        """Add a member. Returns False (and changes nothing) if already present."""
        if student_id in self.enrolled_students:
            return False
        self.enrolled_students.append(student_id)
        return True

    def summary(self) -> Dict[str, Any]:
        """The public view: never modules, never enrollment."""
        return {
            "id":          self.id,
            "name":        self.name,
            "description": self.description,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "docType":          self.doc_type,
            "id":               self.id,
            "name":             self.name,
            "description":      self.description,
            "modules":          list(self.modules),
            "enrolledStudents": list(self.enrolled_students),
            "createdBy":        self.created_by,
            "createdAt":        self.created_at,
            "updatedAt":        self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassRecord":
        students: List[str] = []
        for student_id in data.get("enrolledStudents", []):
            if student_id not in students:
                students.append(student_id)
        return cls(
            id=                data["id"],
            name=              data["name"],
            description=       data.get("description", ""),
            modules=           list(data.get("modules", [])),
            enrolled_students= students,
            created_by=        data["createdBy"],
            created_at=        data["createdAt"],
            updated_at=        data.get("updatedAt", data["createdAt"]),
        )


@dataclass
class MaterialRecord:
    id:              str
    class_id:        str
    module_id:       str
    title:           str
    kind:            MaterialKind
    content_pointer: str
    uploaded_by:     str
    uploaded_at:     str

    doc_type = DocType.MATERIAL

    def metadata(self) -> Dict[str, Any]:
        """Listing view: everything except the content pointer."""
        return {
            "id":         self.id,
            "classId":    self.class_id,
            "moduleId":   self.module_id,
            "title":      self.title,
            "type":       self.kind.value,
            "uploadedBy": self.uploaded_by,
            "uploadedAt": self.uploaded_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.metadata()
        d["docType"] = self.doc_type
        d["contentPointer"] = self.content_pointer
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MaterialRecord":
        return cls(
            id=              data["id"],
            class_id=        data["classId"],
            module_id=       data["moduleId"],
            title=           data["title"],
            kind=            MaterialKind(data["type"]),
            content_pointer= data["contentPointer"],
            uploaded_by=     data["uploadedBy"],
            uploaded_at=     data["uploadedAt"],
        )


@dataclass
class ExamRecord:
    """
    Two-phase lifecycle: created without a correction, then updated in
    place once a correction is accepted. After that the date is frozen
    and the correction pointer is never cleared.
    """

    id:                         str
    class_id:                   str
    module_id:                  str
    title:                      str
    exam_date:                  str
    exam_content_pointer:       str
    created_by:                 str
    created_at:                 str
    correction_content_pointer: Optional[str] = None
    correction_uploaded_at:     Optional[str] = None
    correction_uploaded_by:     Optional[str] = None

    doc_type = DocType.EXAM

    @property
    def has_correction(self) -> bool:
        return bool(self.correction_content_pointer)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "docType":                  self.doc_type,
            "id":                       self.id,
            "classId":                  self.class_id,
            "moduleId":                 self.module_id,
            "title":                    self.title,
            "examDate":                 self.exam_date,
            "examContentPointer":       self.exam_content_pointer,
            "correctionContentPointer": self.correction_content_pointer,
            "correctionUploadedAt":     self.correction_uploaded_at,
            "correctionUploadedBy":     self.correction_uploaded_by,
            "createdBy":                self.created_by,
            "createdAt":                self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExamRecord":
        return cls(
            id=                         data["id"],
            class_id=                   data["classId"],
            module_id=                  data["moduleId"],
            title=                      data["title"],
            exam_date=                  data["examDate"],
            exam_content_pointer=       data["examContentPointer"],
            correction_content_pointer= data.get("correctionContentPointer"),
            correction_uploaded_at=     data.get("correctionUploadedAt"),
            correction_uploaded_by=     data.get("correctionUploadedBy"),
            created_by=                 data["createdBy"],
            created_at=                 data["createdAt"],
        )


@dataclass
class GradeRecord:
    id:           str
    exam_id:      str
    class_id:     str
    student_id:   str
    score:        float
    comment:      str
    submitted_by: str
    submitted_at: str
    published:    bool          = False
    published_by: Optional[str] = None
    published_at: Optional[str] = None
    updated_by:   Optional[str] = None
    updated_at:   Optional[str] = None

    doc_type = DocType.GRADE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "docType":     self.doc_type,
            "id":          self.id,
            "examId":      self.exam_id,
            "classId":     self.class_id,
            "studentId":   self.student_id,
            "score":       self.score,
            "comment":     self.comment,
            "published":   self.published,
            "publishedBy": self.published_by,
            "publishedAt": self.published_at,
            "submittedBy": self.submitted_by,
            "submittedAt": self.submitted_at,
            "updatedBy":   self.updated_by,
            "updatedAt":   self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GradeRecord":
        return cls(
            id=           data["id"],
            exam_id=      data["examId"],
            class_id=     data["classId"],
            student_id=   data["studentId"],
            score=        float(data["score"]),
            comment=      data.get("comment", ""),
            published=    bool(data.get("published", False)),
            published_by= data.get("publishedBy"),
            published_at= data.get("publishedAt"),
            submitted_by= data["submittedBy"],
            submitted_at= data["submittedAt"],
            updated_by=   data.get("updatedBy"),
            updated_at=   data.get("updatedAt"),
        )


Record = Union[ClassRecord, MaterialRecord, ExamRecord, GradeRecord]

_RECORD_CLASSES = {
    DocType.CLASS:    ClassRecord,
    DocType.MATERIAL: MaterialRecord,
    DocType.EXAM:     ExamRecord,
    DocType.GRADE:    GradeRecord,
}


# ─────────────────────────────────────────────────────────────
# Store boundary codec
# ─────────────────────────────────────────────────────────────

def encode_record(record: Record) -> bytes:
    """THE ONLY path from a record to stored bytes."""
    return canonicalize(record.to_dict())


def record_from_dict(data: Dict[str, Any]) -> Record:
    """
    Build the typed record named by data["docType"].

    Raises RecordDecodeError for an unknown discriminator or missing fields.
    """
    doc_type = data.get("docType") if isinstance(data, dict) else None
    if doc_type not in _VALID_DOC_TYPES:
        raise RecordDecodeError(
            f"Unknown docType {doc_type!r}. Valid: {sorted(_VALID_DOC_TYPES)}"
        )
    try:
        return _RECORD_CLASSES[doc_type].from_dict(data)
    except (KeyError, TypeError, ValueError) as exc:
        raise RecordDecodeError(
            f"Malformed {doc_type} record: {exc}",
            {"id": data.get("id")},
        ) from exc


def decode_record(data: bytes) -> Record:
    """THE ONLY path from stored bytes to a record."""
    try:
        raw = decode(data)
    except (UnicodeDecodeError, ValueError) as exc:
        raise RecordDecodeError(f"Stored value is not JSON: {exc}") from exc
    return record_from_dict(raw)
