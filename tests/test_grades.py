"""
tests/test_grades.py

Grade program: submission, publication, visibility, enriched listings.
Every test here runs once per query backend (see conftest.backend).
"""

import pytest

from conftest import EXAM_DATE_WIRE, T0


@pytest.fixture
def graded(school):
    """alice: G1 (published) and G2 (unpublished). bob: G3 (published)."""
    school.run("EnrollStudent", "C1", "bob")
    school.run("CreateExam", "E2", "C1", "M1", "Final", "2024-06-01T09:00:00Z", "ipfs://e2")
    school.run("SubmitGrade", "G1", "E1", "alice", 15, "Good work")
    school.run("SubmitGrade", "G2", "E2", "alice", "12.5", "")
    school.run("SubmitGrade", "G3", "E1", "bob", 9, "Review chapter 3")
    school.run("PublishGrade", "G1")
    school.run("PublishGrade", "G3")
    return school


class TestSubmitGrade:

    def test_stored_unpublished(self, school):
        record = school.run("SubmitGrade", "G1", "E1", "alice", 15.5, "Good")
        assert record["published"] is False
        assert record["publishedBy"] is None
        assert record["classId"] == "C1"
        assert record["score"] == 15.5
        assert record["submittedBy"] == "prof.martin"

    def test_numeric_string_score(self, school):
        assert school.run("SubmitGrade", "G1", "E1", "alice", "17", "")["score"] == 17

    @pytest.mark.parametrize("score", [-1, "-0.5", "abc", "nan", "inf", True, 10 ** 400])
    def test_invalid_score(self, school, score):
        assert school.reject("SubmitGrade", "G1", "E1", "alice", score, "").kind == "InvalidArgument"

    def test_student_must_be_enrolled(self, school):
        assert school.reject("SubmitGrade", "G1", "E1", "bob", 10, "").kind == "AccessDenied"

    def test_exam_must_exist(self, school):
        assert school.reject("SubmitGrade", "G1", "E9", "alice", 10, "").kind == "NotFound"

    def test_grade_id_unused(self, school):
        school.run("SubmitGrade", "G1", "E1", "alice", 10, "")
        assert school.reject("SubmitGrade", "G1", "E1", "alice", 11, "").kind == "AlreadyExists"

    def test_learner_cannot_submit(self, school):
        err = school.reject("SubmitGrade", "G1", "E1", "alice", 20, "", caller="alice")
        assert err.kind == "AccessDenied"

    def test_emits_event(self, school):
        result = school.submit("SubmitGrade", "G1", "E1", "alice", 10, "")
        assert [e.name for e in result.events] == ["GradeSubmitted"]


class TestPublishGrade:

    def test_scenario_publication_gates_the_owner(self, school):
        school.run("SubmitGrade", "G1", "E1", "alice", 14, "")

        assert school.reject("GetGrade", "G1", caller="alice").kind == "NotPublished"
        school.run("PublishGrade", "G1")
        assert school.run("GetGrade", "G1", caller="alice")["score"] == 14
        assert school.reject("GetGrade", "G1", caller="bob").kind == "AccessDenied"

    def test_stamps_publisher(self, school):
        school.run("SubmitGrade", "G1", "E1", "alice", 14, "")
        later = T0.replace(day=20)
        record = school.run("PublishGrade", "G1", at=later)
        assert record["published"] is True
        assert record["publishedBy"] == "prof.martin"
        assert record["publishedAt"] == "2024-01-20T09:00:00.000Z"

    def test_republish_is_a_no_op(self, graded):
        before = graded.world.raw("G1")
        height = graded.world.height

        result = graded.submit("PublishGrade", "G1", at=T0.replace(day=25))

        assert result.events == []
        assert result.payload["publishedAt"] == "2024-01-10T09:00:00.000Z"
        assert graded.world.raw("G1") == before
        assert graded.world.height == height

    def test_missing_grade(self, school):
        assert school.reject("PublishGrade", "G9").kind == "NotFound"

    def test_learner_cannot_publish(self, graded):
        assert graded.reject("PublishGrade", "G2", caller="alice").kind == "AccessDenied"


class TestGradeVisibility:
    """A Learner reads a grade iff it is theirs AND it is published."""

    @pytest.mark.parametrize("caller, grade_id, outcome", [
        ("alice", "G1", None),             # own, published
        ("alice", "G2", "NotPublished"),   # own, unpublished
        ("bob",   "G1", "AccessDenied"),   # other's, published
        ("bob",   "G2", "AccessDenied"),   # other's, unpublished
    ])
    def test_learner_combinations(self, graded, caller, grade_id, outcome):
        if outcome is None:
            assert graded.run("GetGrade", grade_id, caller=caller)["id"] == grade_id
        else:
            assert graded.reject("GetGrade", grade_id, caller=caller).kind == outcome

    @pytest.mark.parametrize("grade_id", ["G1", "G2", "G3"])
    def test_institution_reads_any(self, graded, grade_id):
        assert graded.run("GetGrade", grade_id)["id"] == grade_id

    @pytest.mark.parametrize("caller", ["mallory", "anonymous"])
    def test_unaffiliated_denied(self, graded, caller):
        assert graded.reject("GetGrade", "G1", caller=caller).kind == "AccessDenied"

    def test_missing_grade(self, graded):
        assert graded.reject("GetGrade", "G9", caller="alice").kind == "NotFound"


class TestListGradesForClass:

    def test_institution_sees_all_sorted(self, graded):
        grades = graded.run("ListGradesForClass", "C1")
        assert [(g["studentId"], g["id"]) for g in grades] == [
            ("alice", "G1"), ("alice", "G2"), ("bob", "G3"),
        ]

    def test_enriched_with_exam(self, graded):
        grades = {g["id"]: g for g in graded.run("ListGradesForClass", "C1")}
        assert grades["G1"]["examTitle"] == "Midterm"
        assert grades["G1"]["examDate"] == EXAM_DATE_WIRE
        assert grades["G1"]["moduleId"] == "M1"
        assert grades["G2"]["examTitle"] == "Final"

    def test_learner_sees_own_published(self, graded):
        grades = graded.run("ListGradesForClass", "C1", caller="alice")
        assert [g["id"] for g in grades] == ["G1"]
        assert [g["id"] for g in graded.run("ListGradesForClass", "C1", caller="bob")] == ["G3"]

    def test_deleted_exam_leaves_nulls(self, graded):
        graded.run("DeleteExam", "E2")
        grades = {g["id"]: g for g in graded.run("ListGradesForClass", "C1")}
        assert grades["G2"]["examTitle"] is None
        assert grades["G2"]["examDate"] is None
        assert grades["G2"]["moduleId"] is None

    def test_missing_class(self, graded):
        assert graded.reject("ListGradesForClass", "C9").kind == "NotFound"

    @pytest.mark.parametrize("caller", ["mallory", "anonymous"])
    def test_unaffiliated_denied(self, graded, caller):
        assert graded.reject("ListGradesForClass", "C1", caller=caller).kind == "AccessDenied"


class TestListMyGrades:

    def test_learner_own_published_only(self, graded):
        grades = graded.run("ListMyGrades", "alice", "C1", caller="alice")
        assert [g["id"] for g in grades] == ["G1"]

    def test_learner_cannot_list_others(self, graded):
        assert graded.reject("ListMyGrades", "bob", "C1", caller="alice").kind == "AccessDenied"

    def test_institution_lists_any_student(self, graded):
        grades = graded.run("ListMyGrades", "alice", "C1")
        assert [g["id"] for g in grades] == ["G1", "G2"]

    def test_missing_class(self, graded):
        assert graded.reject("ListMyGrades", "alice", "C9", caller="alice").kind == "NotFound"


class TestListGradesForExam:

    def test_institution(self, graded):
        grades = graded.run("ListGradesForExam", "E1")
        assert [g["id"] for g in grades] == ["G1", "G3"]

    def test_learner_denied(self, graded):
        assert graded.reject("ListGradesForExam", "E1", caller="alice").kind == "AccessDenied"

    def test_missing_exam(self, graded):
        assert graded.reject("ListGradesForExam", "E9").kind == "NotFound"


class TestUpdateGrade:

    def test_update_keeps_published_and_comment(self, graded):
        record = graded.run("UpdateGrade", "G1", 16, "")
        assert record["score"] == 16
        assert record["comment"] == "Good work"
        assert record["published"] is True
        assert record["updatedBy"] == "prof.martin"

    def test_update_replaces_comment(self, graded):
        assert graded.run("UpdateGrade", "G2", 13, "Regraded")["comment"] == "Regraded"

    def test_does_not_publish(self, graded):
        graded.run("UpdateGrade", "G2", 13, "")
        assert graded.reject("GetGrade", "G2", caller="alice").kind == "NotPublished"

    def test_event_carries_scores(self, graded):
        result = graded.submit("UpdateGrade", "G1", 16, "")
        payload = result.events[0].to_dict()["payload"]
        assert result.events[0].name == "GradeUpdated"
        assert payload["oldScore"] == 15
        assert payload["newScore"] == 16

    @pytest.mark.parametrize("score", [-3, 10 ** 400])
    def test_invalid_score(self, graded, score):
        assert graded.reject("UpdateGrade", "G1", score, "").kind == "InvalidArgument"

    def test_learner_denied(self, graded):
        assert graded.reject("UpdateGrade", "G1", 20, "", caller="alice").kind == "AccessDenied"


class TestDeleteGrade:

    def test_delete(self, graded):
        result = graded.submit("DeleteGrade", "G3")
        assert [e.name for e in result.events] == ["GradeDeleted"]
        assert [g["id"] for g in graded.run("ListGradesForClass", "C1")] == ["G1", "G2"]

    def test_missing(self, graded):
        assert graded.reject("DeleteGrade", "G9").kind == "NotFound"

    def test_learner_denied(self, graded):
        assert graded.reject("DeleteGrade", "G1", caller="alice").kind == "AccessDenied"
