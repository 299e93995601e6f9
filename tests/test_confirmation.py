"""Tests for the interactive confirmation prompt."""

import io

import pytest

from confirmation import confirm_installation

FLAGGED = {"zeta@1.0.0": "beacon", "alpha@2.0.0": "stealer"}


@pytest.mark.parametrize("answer,expected", [
    ("y\n", True),
    ("YES\n", True),
    ("  yes  \n", True),
    ("n\n", False),
    ("\n", False),
    ("sure\n", False),
    ("", False),
])
def test_answers(answer, expected):
    out = io.StringIO()
    assert confirm_installation(FLAGGED, stdin=io.StringIO(answer), stdout=out) is expected


def test_lists_flagged_packages_sorted():
    out = io.StringIO()
    confirm_installation(FLAGGED, stdin=io.StringIO("n\n"), stdout=out)
    text = out.getvalue()
    assert "WARNING: 2 potentially malicious packages detected!" in text
    assert text.index("- alpha@2.0.0: stealer") < text.index("- zeta@1.0.0: beacon")
    assert text.rstrip().endswith("(y/N):")


def test_closed_stdin_is_refusal():
    stdin = io.StringIO("y\n")
    stdin.close()
    assert confirm_installation(FLAGGED, stdin=stdin, stdout=io.StringIO()) is False
