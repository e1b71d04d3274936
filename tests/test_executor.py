"""
tests/test_executor.py

Operation dispatch: routing table, argument checks.
"""

import pytest

from acadledger.runtime.executor import OperationExecutor

ALL_OPERATIONS = [
    "AddModule", "CreateClass", "CreateExam", "DeleteExam", "DeleteGrade",
    "DeleteMaterial", "EnrollStudent", "FetchCorrectionContent", "FetchExamContent",
    "FetchMaterialContent", "GetClassDetails", "GetEnrolledStudents", "GetExam",
    "GetGrade", "GetMaterial", "ListClasses", "ListExams", "ListGradesForClass",
    "ListGradesForExam", "ListMaterials", "ListMyGrades", "PublishGrade",
    "SubmitGrade", "UpdateExamDate", "UpdateGrade", "UploadCorrection", "UploadMaterial",
]


class TestDispatch:

    def test_routing_table(self):
        assert OperationExecutor().operations() == ALL_OPERATIONS

    def test_unknown_operation(self, ledger):
        err = ledger.reject("DropEverything")
        assert err.kind == "UnknownOperation"
        assert err.details == {"operation": "DropEverything"}

    def test_argument_count(self, ledger):
        err = ledger.reject("CreateClass", "C1")
        assert err.kind == "InvalidArgument"
        assert err.details["expected"] == 3
        assert err.details["got"] == 1

    @pytest.mark.parametrize("value", [["x"], {"k": "v"}, b"raw"])
    def test_arguments_must_be_primitive(self, ledger, value):
        assert ledger.reject("CreateClass", "C1", value, "").kind == "InvalidArgument"
        assert ledger.run("ListClasses") == []
