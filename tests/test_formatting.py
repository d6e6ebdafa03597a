"""
test_formatting.py - Output format tests for compiled signatures
"""

import pathlib
import sys
import unittest

TEST_DIR = pathlib.Path(__file__).parent
sys.path.insert(0, TEST_DIR.as_posix())
from coveredtestcase import CoverageTestCase

import sigscan


class CoveredFormattingTest(CoverageTestCase):
    coverage_data_file = ".coverage.formatting"


class TestOutputFormats(CoveredFormattingTest):
    """Test signature output formatting"""

    def setUp(self):
        self.signature = sigscan.compile("48 8B ?? C0")

    def test_default_is_canonical(self):
        self.assertEqual(f"{self.signature}", "48 8B ?? C0")
        self.assertEqual(str(self.signature), self.signature.sig)

    def test_all_signature_types(self):
        self.assertEqual(f"{self.signature:ida}", "48 8B ? C0")
        self.assertEqual(f"{self.signature:x64dbg}", "48 8B ?? C0")
        self.assertEqual(f"{self.signature:mask}", "\\x48\\x8B\\x00\\xC0 xx?x")
        self.assertEqual(
            f"{self.signature:bitmask}", "0x48, 0x8B, 0x00, 0xC0 0b1011"
        )

    def test_format_spec_is_case_insensitive(self):
        self.assertEqual(format(self.signature, "IDA"), "48 8B ? C0")
        self.assertEqual(format(self.signature, "X64Dbg"), "48 8B ?? C0")

    def test_unknown_format_spec(self):
        with self.assertRaises(ValueError):
            format(self.signature, "yara")


class TestFormattingEdgeCases(CoveredFormattingTest):

    def test_half_wildcard_keeps_written_text(self):
        sig = sigscan.compile("4? c0")
        self.assertEqual(f"{sig}", "4? C0")
        self.assertEqual(f"{sig:ida}", "? C0")
        self.assertEqual(f"{sig:x64dbg}", "?? C0")

    def test_empty_signature(self):
        sig = sigscan.compile("")
        self.assertEqual(f"{sig:ida}", "")
        self.assertEqual(f"{sig:mask}", " ")

    def test_all_wildcards(self):
        sig = sigscan.compile("????")
        self.assertEqual(f"{sig:ida}", "? ?")
        self.assertEqual(f"{sig:bitmask}", "0x00, 0x00 0b00")

    def test_bitmask_bit_order(self):
        # byte 0 is the least significant bit
        sig = sigscan.compile("E8 ?? ?? 45")
        self.assertEqual(f"{sig:bitmask}", "0xE8, 0x00, 0x00, 0x45 0b1001")
        sig = sigscan.compile("E8 ?? 45 45")
        self.assertEqual(f"{sig:bitmask}", "0xE8, 0x00, 0x45, 0x45 0b1101")


if __name__ == "__main__":
    unittest.main()
