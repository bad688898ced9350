
import unittest
import os
import sys

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from sketch_sentinel.comment_stripper import (
    COMMENT, STRING, CHAR, iter_spans, is_in_comment, is_in_literal, strip,
)


class TestStrip(unittest.TestCase):

    def test_length_and_newlines_preserved(self):
        """Stripping never moves an offset or a line break."""
        code = "int a = 1; // note\n/* block\n   comment */ int b = 2;\n"
        stripped = strip(code)
        self.assertEqual(len(stripped), len(code))
        self.assertEqual(stripped.count("\n"), code.count("\n"))
        self.assertNotIn("note", stripped)
        self.assertNotIn("block", stripped)
        self.assertIn("int b = 2;", stripped)
        self.assertEqual(stripped.index("int b"), code.index("int b"))

    def test_comment_marker_inside_string_kept(self):
        """A // inside a string literal does not start a comment."""
        code = 'const char* url = "http://example.com"; // real comment'
        stripped = strip(code)
        self.assertIn('"http://example.com"', stripped)
        self.assertNotIn("real comment", stripped)

    def test_escaped_quote_does_not_close_string(self):
        code = 'Serial.println("He said \\"hi\\" // not a comment");'
        stripped = strip(code)
        self.assertEqual(stripped, code)

    def test_quote_char_literal(self):
        """'"' is a char literal, so the following // is a real comment."""
        code = "char q = '\"'; // pinMode(7, OUTPUT);"
        stripped = strip(code)
        self.assertNotIn("pinMode", stripped)
        self.assertIn("char q = '\"';", stripped)

    def test_unterminated_block_comment_runs_to_end(self):
        code = "int a;\n/* never closed\npinMode(3, OUTPUT);\n"
        stripped = strip(code)
        self.assertNotIn("pinMode", stripped)
        self.assertTrue(stripped.startswith("int a;\n"))
        self.assertEqual(len(stripped), len(code))

    def test_empty_text(self):
        self.assertEqual(strip(""), "")

    def test_carriage_returns_kept(self):
        code = "// one\r\nint x;\r\n"
        stripped = strip(code)
        self.assertEqual(stripped[6:8], "\r\n")
        self.assertIn("int x;", stripped)


class TestSpans(unittest.TestCase):

    def test_span_kinds_in_order(self):
        code = "x = 'a'; s = \"b\"; // c\n/* d */"
        kinds = [s.kind for s in iter_spans(code)]
        self.assertEqual(kinds, [CHAR, STRING, COMMENT, COMMENT])

    def test_line_comment_excludes_newline(self):
        code = "// abc\nx"
        span = next(iter_spans(code))
        self.assertEqual((span.start, span.end), (0, 6))

    def test_is_in_comment(self):
        code = "int a; /* hidden */ int b; // tail"
        self.assertTrue(is_in_comment(code, code.index("hidden")))
        self.assertTrue(is_in_comment(code, code.index("/*")))
        self.assertTrue(is_in_comment(code, code.index("tail")))
        self.assertFalse(is_in_comment(code, code.index("int b")))

    def test_is_in_literal(self):
        code = 'Serial.print("pinMode(1, OUTPUT)"); pinMode(2, OUTPUT);'
        self.assertTrue(is_in_literal(code, code.index("pinMode(1")))
        self.assertFalse(is_in_literal(code, code.index("pinMode(2")))
        self.assertFalse(is_in_comment(code, code.index("pinMode(1")))

    def test_division_is_not_a_comment(self):
        code = "int half = total / 2;"
        self.assertEqual(list(iter_spans(code)), [])
        self.assertEqual(strip(code), code)


if __name__ == "__main__":
    unittest.main()
