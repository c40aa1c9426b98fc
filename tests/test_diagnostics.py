"""
Tests for diagnostics and their text rendering.
"""

from queryrunner.diagnostics import (
    Diagnostic,
    Diagnostics,
    DiagnosticTextWriter,
    Severity,
    SourceRange,
)
from queryrunner.errors import ConfigurationError, UnknownRunnerTypeError


class TestSourceRange:
    def test_single_line(self):
        assert str(SourceRange("config.yaml", 2, 3, 2, 33)) == "config.yaml:2,3-33"

    def test_multi_line(self):
        assert str(SourceRange("config.yaml", 2, 3, 4, 1)) == "config.yaml:2,3-4,1"

    def test_point(self):
        point = SourceRange.point("a.yaml", 5, 7)
        assert point.start_line == point.end_line == 5
        assert point.start_column == point.end_column == 7


class TestDiagnostics:
    def test_has_errors(self):
        diags = Diagnostics([Diagnostic.warning("Empty configuration")])
        assert not diags.has_errors()

        diags.append(Diagnostic.error("Invalid description", "description is not string"))
        assert diags.has_errors()
        assert len(diags.errors()) == 1
        assert len(diags.warnings()) == 1

    def test_severity(self):
        assert Diagnostic.error("x").severity is Severity.ERROR
        assert Diagnostic.warning("x").severity is Severity.WARNING
        assert Diagnostic.error("x").is_error

    def test_str_summarizes_errors(self):
        subject = SourceRange("config.yaml", 1, 1, 1, 5)
        diags = Diagnostics(
            [
                Diagnostic.error("First", "detail one", subject),
                Diagnostic.error("Second"),
            ]
        )
        assert str(diags) == "config.yaml:1,1-5: First; detail one, and 1 other diagnostic(s)"
        assert str(Diagnostics()) == "no errors"

    def test_diagnostics_are_values(self):
        a = Diagnostic.error("Same", "detail", SourceRange.point("x"))
        b = Diagnostic.error("Same", "detail", SourceRange.point("x"))
        assert a == b


class TestDiagnosticTextWriter:
    def test_quotes_source_line(self):
        files = {"config.yaml": "query:\n  hoge:\n    description: 1\n"}
        diag = Diagnostic.error(
            "Invalid description",
            "description is not string",
            SourceRange("config.yaml", 3, 18, 3, 19),
        )

        text = DiagnosticTextWriter(files).format([diag])

        assert text.startswith("Error: Invalid description\n")
        assert "  on config.yaml line 3:" in text
        assert "   3:     description: 1" in text
        assert text.rstrip().endswith("description is not string")

    def test_without_subject(self):
        text = DiagnosticTextWriter().format([Diagnostic.warning("Empty configuration", "no files")])
        assert text == "Warning: Empty configuration\n\nno files\n"

    def test_unknown_file_still_renders(self):
        diag = Diagnostic.error("Oops", "", SourceRange.point("missing.yaml", 10))
        text = DiagnosticTextWriter({}).format([diag])
        assert "on missing.yaml line 10:" in text


class TestErrors:
    def test_configuration_error_carries_diagnostics(self):
        diags = Diagnostics([Diagnostic.error("Broken")])
        error = ConfigurationError(diags)
        assert error.diagnostics == diags
        assert "Broken" in str(error)

    def test_unknown_runner_type_messages(self):
        assert 'Did you mean "dummy"?' in str(UnknownRunnerTypeError("dumy", "dummy"))
        assert "maybe not implemented or typo" in str(UnknownRunnerTypeError("nothing"))
