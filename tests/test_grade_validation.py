"""Tests for grade sheet validation and grade arithmetic."""

from __future__ import annotations

import pytest

from grade_validation import (
    competition_rank,
    detect_columns,
    find_header_row,
    overall_average,
    parse_grade_value,
    subject_average,
    validate_grade_rows,
    validate_student_id,
)

HEADER = ("STT", "Mã học sinh", "Họ và tên", "Điểm TX 1", "Điểm TX 2", "Điểm giữa kì", "Điểm cuối kì", "Ghi chú")


def _sheet(*rows):
    return [("BẢNG ĐIỂM TOÁN",), (None,), HEADER, *rows]


class TestParseGradeValue:
    @pytest.mark.parametrize("raw,expected", [
        (None, None), ("", None), ("-", None), (0, 0.0), ("0", 0.0), (10, 10.0), ("7,5", 7.5), (8.5, 8.5),
    ])
    def test_accepts(self, raw, expected):
        assert parse_grade_value(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", -1, 10.1, "7.25", True])
    def test_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_grade_value(raw)


class TestStudentId:
    def test_float_cell_from_excel(self):
        assert validate_student_id(12345.0) == "12345"

    def test_rejects_symbols(self):
        with pytest.raises(ValueError):
            validate_student_id("HS-01")


class TestHeaderDetection:
    def test_finds_header_below_title(self):
        assert find_header_row(_sheet()) == 2

    def test_no_header(self):
        assert find_header_row([("a", "b"), (1, 2)]) == -1

    def test_columns(self):
        layout, errors = detect_columns(HEADER)
        assert errors == []
        assert layout.student_id == 1
        assert layout.student_name == 2
        assert layout.regular == [3, 4]
        assert layout.midterm == 5
        assert layout.final == 6
        assert layout.notes == 7

    def test_missing_grade_columns(self):
        _, errors = detect_columns(("STT", "Mã học sinh", "Họ và tên"))
        assert errors == ["No grade columns found"]


class TestValidateRows:
    def test_valid_rows(self):
        result = validate_grade_rows(_sheet(
            (1, "HS001", "Phạm Minh An", 8, 7.5, 0, 9, "chăm chỉ"),
            (2, "HS002", "Đỗ Quang Huy", None, None, 6, None, None),
        ))
        assert result.success
        assert result.rows[0] == {
            "row_number": 4, "student_id": "HS001", "full_name": "Phạm Minh An",
            "regular_1": 8.0, "regular_2": 7.5, "midterm": 0.0, "final": 9.0, "notes": "chăm chỉ",
        }
        assert result.statistics["valid_rows"] == 2
        assert result.statistics["valid_grades"] == 5

    def test_row_errors_are_addressed(self):
        result = validate_grade_rows(_sheet(
            (1, "HS001", "Phạm Minh An", 11, None, None, None, None),
            (2, "HS001", "Đỗ Quang Huy", None, None, 6, None, None),
        ))
        assert not result.success
        fields = [(e.row_number, e.field) for e in result.errors]
        assert (4, "regular_1") in fields
        assert (5, "student_id") in fields
        assert result.statistics["duplicate_students"] == 1
        assert result.statistics["invalid_rows"] == 2

    def test_blank_rows_skipped(self):
        result = validate_grade_rows(_sheet((None, None, None, None, None, None, None, None)))
        assert result.statistics["empty_rows"] == 1
        assert result.warnings == ["The sheet contains no student rows"]

    def test_missing_header(self):
        result = validate_grade_rows([("foo",), ("bar",)])
        assert result.errors[0].field == "header"

    def test_error_to_dict_stringifies_value(self):
        result = validate_grade_rows(_sheet((1, "HS001", "Phạm Minh An", "abc", None, None, None, None)))
        err = result.to_dict()["errors"][0]
        assert err["value"] == "abc"
        assert err["severity"] == "error"


class TestAverages:
    def test_weighted_average(self):
        assert subject_average({"regular_1": 8, "regular_2": 6, "midterm": 7, "final": 9}) == 7.9

    def test_zero_counts(self):
        assert subject_average({"midterm": 0, "final": 0}) == 0.0

    def test_summary_takes_precedence(self):
        assert subject_average({"midterm": 5, "final": 5, "summary": 9.5}) == 9.5

    def test_no_grades(self):
        assert subject_average({}) is None

    def test_overall_ignores_missing(self):
        assert overall_average([8.0, None, 6.0]) == 7.0
        assert overall_average([None]) is None


class TestCompetitionRank:
    def test_ties_share_rank(self):
        assert competition_rank([9.0, 8.0, 9.0, 7.0]) == [1, 3, 1, 4]

    def test_missing_unranked(self):
        assert competition_rank([None, 5.0]) == [None, 1]
