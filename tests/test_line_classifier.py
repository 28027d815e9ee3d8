import pytest

from line_classifier import LineKind, classify


@pytest.mark.parametrize("line", ["0", "12|34|56", "  7 | 8", "9abc", "3.14\r"])
def test_digit_first_lines_are_accepted(line):
    result = classify(line)
    assert result.kind is LineKind.ACCEPTED
    assert result.text == line.strip()


@pytest.mark.parametrize("line", ["", "   ", "Sensor ready", "-5|6", ".5", "#debug 1", "٣|4"])
def test_other_lines_are_rejected_with_original_text(line):
    result = classify(line)
    assert result.kind is LineKind.REJECTED
    assert result.text == line
    assert not result.accepted
