from __future__ import annotations

import json

import pytest

from query_relay.codec import (
    CONTENT_TYPE,
    FORMAT_NAME,
    FORMAT_VERSION,
    decode_payload,
    encode_result_set,
)
from query_relay.domain.models import ResultSet
from query_relay.errors import EncodingError, PayloadDecodeError

STUDENTS = ResultSet(
    columns=("id", "name", "score"),
    rows=(("1", "Alice", "90"), ("2", "Bob", "85")),
)


def _document(**overrides):
    document = {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "columns": ["a"],
        "row_count": 1,
        "rows": [["x"]],
    }
    document.update(overrides)
    return json.dumps(document).encode("utf-8")


class TestRoundTrip:
    def test_two_rows_three_columns(self) -> None:
        payload = encode_result_set(STUDENTS)

        assert decode_payload(payload.body) == STUDENTS
        assert payload.row_count == 2
        assert payload.content_type == CONTENT_TYPE
        assert payload.format_version == FORMAT_VERSION

    def test_zero_rows(self) -> None:
        empty = ResultSet(columns=("id", "name"), rows=())

        decoded = decode_payload(encode_result_set(empty).body)

        assert decoded == empty
        assert decoded.row_count == 0

    def test_null_marker_and_empty_string_stay_distinct(self) -> None:
        original = ResultSet(columns=("nickname", "score"), rows=(("", None), (None, "")))

        decoded = decode_payload(encode_result_set(original).body)

        assert decoded.rows[0] == ("", None)
        assert decoded.rows[1] == (None, "")

    def test_text_content_survives_exactly(self) -> None:
        tricky = 'quote " backslash \\ newline \n tab \t nul \x00 emoji 🎓 ünïcödé [bold]'
        original = ResultSet(columns=("note",), rows=((tricky,), ("  padded  ",)))

        assert decode_payload(encode_result_set(original).body) == original

    def test_duplicate_column_names_are_preserved(self) -> None:
        original = ResultSet(columns=("id", "id"), rows=(("1", "2"),))

        assert decode_payload(encode_result_set(original).body) == original


class TestEncoding:
    def test_body_is_a_single_json_document(self) -> None:
        body = encode_result_set(STUDENTS).body

        document = json.loads(body.decode("utf-8"))

        assert document == {
            "format": FORMAT_NAME,
            "version": FORMAT_VERSION,
            "columns": ["id", "name", "score"],
            "row_count": 2,
            "rows": [["1", "Alice", "90"], ["2", "Bob", "85"]],
        }

    def test_encoding_is_deterministic(self) -> None:
        assert encode_result_set(STUDENTS).body == encode_result_set(STUDENTS).body

    def test_lone_surrogate_is_encoding_error(self) -> None:
        broken = ResultSet.model_construct(columns=("name",), rows=(("bad \ud800 value",),))

        with pytest.raises(EncodingError):
            encode_result_set(broken)

    def test_inconsistent_width_is_encoding_error(self) -> None:
        # model_construct skips validation, as a buggy producer might
        ragged = ResultSet.model_construct(columns=("a", "b"), rows=(("1", "2"), ("3",)))

        with pytest.raises(EncodingError, match="Inconsistent row width"):
            encode_result_set(ragged)

    def test_result_set_rejects_ragged_rows(self) -> None:
        with pytest.raises(ValueError, match="expected 2"):
            ResultSet(columns=("a", "b"), rows=(("1",),))


class TestDecoding:
    def test_not_json(self) -> None:
        with pytest.raises(PayloadDecodeError, match="not valid UTF-8 JSON"):
            decode_payload(b"\xac\xed\x00\x05sr\x00\x13java.util.ArrayList")

    def test_truncated_body(self) -> None:
        body = encode_result_set(STUDENTS).body

        with pytest.raises(PayloadDecodeError):
            decode_payload(body[:-5])

    def test_unknown_version(self) -> None:
        with pytest.raises(PayloadDecodeError):
            decode_payload(_document(version=FORMAT_VERSION + 1))

    def test_unknown_format(self) -> None:
        with pytest.raises(PayloadDecodeError):
            decode_payload(_document(format="something-else"))

    def test_row_count_mismatch(self) -> None:
        with pytest.raises(PayloadDecodeError):
            decode_payload(_document(row_count=3))

    def test_ragged_rows(self) -> None:
        with pytest.raises(PayloadDecodeError):
            decode_payload(_document(columns=["a", "b"], rows=[["x"]]))

    def test_non_text_values_are_rejected(self) -> None:
        with pytest.raises(PayloadDecodeError):
            decode_payload(_document(rows=[[42]]))

    def test_decode_error_is_an_encoding_error(self) -> None:
        assert issubclass(PayloadDecodeError, EncodingError)
