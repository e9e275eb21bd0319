import unittest

from tests import _bootstrap  # noqa: F401
from shaderpp.diag import (
    CompileError,
    ConfigurationError,
    Diagnostic,
    IncludeResolutionError,
    ShaderError,
    StructuralError,
    format_include_frame,
)


class DiagnosticTests(unittest.TestCase):
    def test_three_line_format(self) -> None:
        diagnostic = Diagnostic("main.vert", "#endif", 7, "#endif without matching #ifndef")
        self.assertEqual(
            diagnostic.format(),
            "In file 'main.vert' on line 7: error: #endif without matching #ifndef\n"
            "7 |    #endif\n"
            "       ^",
        )

    def test_caret_aligns_with_column(self) -> None:
        diagnostic = Diagnostic("a.glsl", "#include bad", 12, "Malformed", 9)
        caret_line = diagnostic.format().splitlines()[2]
        source_line = diagnostic.format().splitlines()[1]
        self.assertEqual(caret_line.strip(), "^")
        self.assertEqual(source_line[caret_line.index("^")], "b")

    def test_trailing_terminators_are_trimmed(self) -> None:
        diagnostic = Diagnostic("a.glsl\n", "x;\r\n", 1, "message\n")
        lines = diagnostic.format().splitlines()
        self.assertEqual(lines[0], "In file 'a.glsl' on line 1: error: message")
        self.assertEqual(lines[1], "1 |    x;")

    def test_str_is_format(self) -> None:
        diagnostic = Diagnostic("a.glsl", "x", 1, "m")
        self.assertEqual(str(diagnostic), diagnostic.format())

    def test_to_dict(self) -> None:
        diagnostic = Diagnostic("a.glsl", "x\n", 2, "m", 1)
        self.assertEqual(
            diagnostic.to_dict(),
            {"filename": "a.glsl", "line": 2, "column": 1, "message": "m", "line_text": "x"},
        )


class ShaderErrorTests(unittest.TestCase):
    def test_error_without_diagnostic_renders_message(self) -> None:
        error = ConfigurationError("Unknown or unsupported shader of type: 'txt'")
        self.assertEqual(str(error), "Unknown or unsupported shader of type: 'txt'")
        self.assertIsNone(error.diagnostic)

    def test_include_frames_follow_diagnostic(self) -> None:
        diagnostic = Diagnostic("inner.glsl", "#endif", 4, "#endif without matching #ifndef")
        error = StructuralError(diagnostic.message, diagnostic)
        error.add_include_frame("middle.glsl", 2)
        error.add_include_frame("main.frag", 5)
        lines = str(error).splitlines()
        self.assertEqual(len(lines), 5)
        self.assertEqual(lines[3], "Included from: 'middle.glsl', line 2")
        self.assertEqual(lines[4], "Included from: 'main.frag', line 5")

    def test_format_include_frame(self) -> None:
        self.assertEqual(format_include_frame("a.vert", 3), "Included from: 'a.vert', line 3")

    def test_codes_are_distinct(self) -> None:
        codes = {StructuralError.code, IncludeResolutionError.code, CompileError.code}
        self.assertEqual(len(codes), 3)
        self.assertTrue(issubclass(StructuralError, ShaderError))

    def test_to_dict_includes_frames(self) -> None:
        diagnostic = Diagnostic("inc.glsl", "#include <x>", 1, "missing", 9)
        error = IncludeResolutionError("missing", diagnostic)
        error.add_include_frame("main.vert", 2)
        payload = error.to_dict()
        self.assertEqual(payload["code"], IncludeResolutionError.code)
        self.assertEqual(payload["filename"], "inc.glsl")
        self.assertEqual(payload["included_from"], [{"filename": "main.vert", "line": 2}])


if __name__ == "__main__":
    unittest.main()
