
import unittest
import os
import sys

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from sketch_sentinel.sketch_scanner import (
    count_functions, find_function, is_global_scope, iter_calls, iter_functions,
    iter_isr_bodies, mask_literals, split_args,
)

SKETCH = """\
volatile int pulses = 0;

void onPulse() {
  pulses++;
}

ISR(TIMER1_COMPA_vect) {
  digitalWrite(13, !digitalRead(13));
}

void setup() {
  if (true) {
    attachInterrupt(digitalPinToInterrupt(2), onPulse, RISING);
  }
}

void loop() {
  for (int i = 0; i < 3; i++) {
  }
}
"""


class TestFunctions(unittest.TestCase):

    def test_top_level_functions_only(self):
        names = [f.name for f in iter_functions(SKETCH)]
        self.assertEqual(names, ["onPulse", "setup", "loop"])

    def test_function_body_bounds(self):
        fn = next(f for f in iter_functions(SKETCH) if f.name == "onPulse")
        body = SKETCH[fn.body_start:fn.body_end]
        self.assertEqual(body.strip(), "pulses++;")
        self.assertEqual(SKETCH[fn.name_start:fn.name_start + len("onPulse")], "onPulse")
        self.assertEqual(fn.return_type, "void")

    def test_find_function(self):
        header, body_start, body_end = find_function(SKETCH, "loop")
        self.assertTrue(SKETCH[header:].startswith("loop()"))
        self.assertIn("for (int i", SKETCH[body_start:body_end])
        self.assertIsNone(find_function(SKETCH, "missing"))

    def test_count_functions(self):
        self.assertEqual(count_functions(SKETCH), 3)

    def test_isr_bodies(self):
        """Vector handlers and attachInterrupt targets are both found."""
        isrs = {i.name: SKETCH[i.body_start:i.body_end] for i in iter_isr_bodies(SKETCH)}
        self.assertEqual(set(isrs), {"ISR(TIMER1_COMPA_vect)", "onPulse"})
        self.assertIn("pulses++", isrs["onPulse"])
        self.assertIn("digitalWrite", isrs["ISR(TIMER1_COMPA_vect)"])


class TestScope(unittest.TestCase):

    def test_global_scope(self):
        self.assertTrue(is_global_scope(SKETCH, SKETCH.index("volatile int")))
        self.assertFalse(is_global_scope(SKETCH, SKETCH.index("pulses++")))
        self.assertTrue(is_global_scope(SKETCH, SKETCH.index("void loop")))


class TestCalls(unittest.TestCase):

    def test_split_args_nested(self):
        text = 'foo(a, bar(b, c), "x,y", buf[1, 2])'
        args, offsets, end = split_args(text, text.index("("))
        self.assertEqual(args, ["a", "bar(b, c)", '"x,y"', "buf[1, 2]"])
        self.assertEqual(text[offsets[1]:offsets[1] + 3], "bar")
        self.assertEqual(end, len(text))

    def test_split_args_empty(self):
        args, offsets, _ = split_args("f( )", 1)
        self.assertEqual(args, [])
        self.assertEqual(offsets, [])

    def test_iter_calls_skips_members(self):
        """obj.pinMode( is not a call to the global pinMode."""
        text = "pinMode(3, OUTPUT); expander.pinMode(4, INPUT);"
        calls = list(iter_calls(text, "pinMode"))
        self.assertEqual(len(calls), 1)
        self.assertEqual(calls[0].args, ["3", "OUTPUT"])
        self.assertEqual(calls[0].arg_offsets[0], text.index("3"))

    def test_iter_calls_pattern(self):
        text = "Serial.begin(9600); Serial1.begin(115200, SERIAL_8N1);"
        calls = list(iter_calls(text, r"Serial\d*\.begin"))
        self.assertEqual([c.name for c in calls], ["Serial.begin", "Serial1.begin"])
        self.assertEqual(calls[1].args, ["115200", "SERIAL_8N1"])


class TestMaskLiterals(unittest.TestCase):

    def test_contents_blanked_quotes_kept(self):
        text = 'Serial.println("Wire.begin()"); char c = \'x\';'
        masked = mask_literals(text)
        self.assertEqual(len(masked), len(text))
        self.assertNotIn("Wire.begin", masked)
        self.assertIn('Serial.println("', masked)
        self.assertIn("' '", masked)


if __name__ == "__main__":
    unittest.main()
