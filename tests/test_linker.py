import re
import unittest

from correlate.linker import extract_issue_keys, extract_issue_keys_from


class TestLinker(unittest.TestCase):
    def test_find_keys(self):
        text = "Fixed PROJ-123 and addressed AB2-7 in this change"
        self.assertEqual(extract_issue_keys(text), frozenset({'PROJ-123', 'AB2-7'}))

    def test_word_boundaries(self):
        self.assertEqual(extract_issue_keys("xPROJ-1 PROJ-12a proj-3 P-4"), frozenset())

    def test_empty_text(self):
        self.assertEqual(extract_issue_keys(None), frozenset())
        self.assertEqual(extract_issue_keys(""), frozenset())

    def test_union_over_texts(self):
        keys = extract_issue_keys_from("PROJ-1: title", None, "Depends on OPS-9, PROJ-1")
        self.assertEqual(keys, frozenset({'PROJ-1', 'OPS-9'}))

    def test_custom_pattern(self):
        self.assertEqual(extract_issue_keys("see #42 and PROJ-1", pattern=r"#\d+"), frozenset({'#42'}))
        self.assertEqual(extract_issue_keys("OPS-1 PROJ-2", pattern=re.compile(r"OPS-\d+")), frozenset({'OPS-1'}))


if __name__ == '__main__':
    unittest.main()
