from __future__ import annotations

import pytest

from projledger.codes import extract_project_code, is_project_code, parse_project_folder


def test_extracts_code_from_memo():
    assert extract_project_code("Materials for 2601007 resupply") == "2601007"


def test_rejects_longer_digit_run():
    assert extract_project_code("Invoice #26010071") is None
    assert extract_project_code("ref 12601007") is None


@pytest.mark.parametrize("text", [None, "", "   ", "no code here", "1601007", "260100"])
def test_no_match_returns_none(text):
    assert extract_project_code(text) is None


def test_first_code_wins():
    assert extract_project_code("2601007 moved to 2601010") == "2601007"
    assert extract_project_code("Invoice #26010071 for 2601010") == "2601010"


def test_code_next_to_punctuation():
    assert extract_project_code("PO:2601007/phase-2") == "2601007"
    assert extract_project_code("(2601007)") == "2601007"


def test_code_glued_to_letters_is_ignored():
    assert extract_project_code("job2601007") is None


def test_extracted_value_shape():
    for memo in ["x 2999999 y", "2000000", "a 2601007, b"]:
        code = extract_project_code(memo)
        assert code is not None
        assert len(code) == 7
        assert code[0] == "2"
        assert code[1:].isdigit()


def test_is_project_code():
    assert is_project_code("2601007")
    assert is_project_code(" 2601007 ")
    assert not is_project_code("3601007")
    assert not is_project_code("26010071")
    assert not is_project_code(None)


def test_parse_project_folder():
    assert parse_project_folder("2601007 - CD - PetroCan Kamloops") == ("2601007", "CD", "PetroCan Kamloops")
    assert parse_project_folder("2601007-cd-Gut reno") == ("2601007", "CD", "Gut reno")
    assert parse_project_folder("Archive") is None
    assert parse_project_folder("1601007 - CD - Wrong prefix") is None
    assert parse_project_folder(None) is None
