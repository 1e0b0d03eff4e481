"""Tests for markdown report rendering."""

from evm_conformance.report.render import (
    SUMMARY_FILE_NAME,
    render_detailed,
    render_summary,
    write_summary,
)

CONTRACT = {
    "stExample": {
        "passed": 3,
        "total": 4,
        "percent": 75.0,
        "sub_groups": {
            "add": {"passed": 2, "total": 2, "percent": 100.0},
            "mul": {"passed": 1, "total": 2, "percent": 50.0},
        },
    },
}

DETAILED = {
    "passed": 1,
    "total": 2,
    "ignored": 1,
    "percent": 50.0,
    "tests": [
        {
            "path": "stExample/add/add_d0_g0_v0",
            "outcome": "witness_passed",
            "policy_altered": False,
            "carried_forward": True,
            "diagnostic": None,
        },
        {
            "path": "stExample/add/add_d0_g1_v0",
            "outcome": "ignored",
            "policy_altered": True,
            "carried_forward": False,
            "diagnostic": "exit status 1: out of gas",
        },
    ],
}


class TestRenderSummary:
    def test_group_heading_and_rows(self):
        text = render_summary(CONTRACT)

        assert "## stExample (3/4, 75.00%)" in text
        assert "| add | 2 | 2 | 100.00% |" in text
        assert "| mul | 1 | 2 | 50.00% |" in text
        assert text.index("| add |") < text.index("| mul |")

    def test_empty_run(self):
        assert "No tests were run." in render_summary({})


class TestRenderDetailed:
    def test_filter_in_title(self):
        text = render_detailed(DETAILED, "stExample/add")
        assert text.startswith("# Test results (stExample/add)")

    def test_rows(self):
        text = render_detailed(DETAILED)

        assert "Passed 1/2 (50.00%), 1 ignored" in text
        assert "| stExample/add/add_d0_g0_v0 | witness_passed | carried forward |" in text
        assert "gas limit clamped; exit status 1: out of gas" in text


class TestWriteSummary:
    def test_writes_summary_file(self, tmp_path):
        path = write_summary(CONTRACT, tmp_path / "reports")

        assert path == tmp_path / "reports" / SUMMARY_FILE_NAME
        assert path.read_text() == render_summary(CONTRACT)
