import unittest

from jira_pulse.adf import adf_to_markdown


def _doc(*content):
    return {"type": "doc", "version": 1, "content": list(content)}


def _text(text, *marks):
    node = {"type": "text", "text": text}
    if marks:
        node["marks"] = list(marks)
    return node


def _paragraph(*content):
    return {"type": "paragraph", "content": list(content)}


def _item(*content):
    return {"type": "listItem", "content": list(content)}


class AdfToMarkdownTests(unittest.TestCase):
    def test_missing_or_empty_documents(self):
        self.assertIsNone(adf_to_markdown(None))
        self.assertIsNone(adf_to_markdown(_doc()))
        self.assertIsNone(adf_to_markdown(_doc(_paragraph())))
        self.assertIsNone(adf_to_markdown("   "))
        self.assertIsNone(adf_to_markdown(42))

    def test_plain_string_passes_through_trimmed(self):
        self.assertEqual(adf_to_markdown("  legacy text \n"), "legacy text")

    def test_heading_and_marked_paragraph(self):
        document = _doc(
            {"type": "heading", "attrs": {"level": 2}, "content": [_text("Context")]},
            _paragraph(
                _text("Hello "),
                _text("world", {"type": "strong"}),
                _text(" and "),
                _text("docs", {"type": "link", "attrs": {"href": "https://example.com"}}),
            ),
        )

        self.assertEqual(
            adf_to_markdown(document),
            "## Context\n\nHello **world** and [docs](https://example.com)",
        )

    def test_nested_bullet_list(self):
        document = _doc(
            {
                "type": "bulletList",
                "content": [
                    _item(
                        _paragraph(_text("one")),
                        {"type": "bulletList", "content": [_item(_paragraph(_text("nested")))]},
                    ),
                    _item(_paragraph(_text("two"))),
                ],
            }
        )

        self.assertEqual(adf_to_markdown(document), "- one\n  - nested\n- two")

    def test_ordered_list_honors_start(self):
        document = _doc(
            {
                "type": "orderedList",
                "attrs": {"order": 3},
                "content": [_item(_paragraph(_text("a"))), _item(_paragraph(_text("b")))],
            }
        )

        self.assertEqual(adf_to_markdown(document), "3. a\n4. b")

    def test_code_block(self):
        document = _doc({"type": "codeBlock", "attrs": {"language": "python"}, "content": [_text("print(1)")]})

        self.assertEqual(adf_to_markdown(document), "```python\nprint(1)\n```")

    def test_inline_nodes(self):
        document = _doc(
            _paragraph(
                {"type": "mention", "attrs": {"id": "abc", "text": "@Ann"}},
                _text(" "),
                {"type": "mention", "attrs": {"id": "def", "text": "Bob"}},
                {"type": "hardBreak"},
                {"type": "status", "attrs": {"text": "BLOCKED"}},
            )
        )

        self.assertEqual(adf_to_markdown(document), "@Ann @Bob\n[BLOCKED]")

    def test_table_escapes_pipes(self):
        def cell(kind, text):
            return {"type": kind, "content": [_paragraph(_text(text))]}

        document = _doc(
            {
                "type": "table",
                "content": [
                    {"type": "tableRow", "content": [cell("tableHeader", "a"), cell("tableHeader", "b")]},
                    {"type": "tableRow", "content": [cell("tableCell", "1"), cell("tableCell", "x|y")]},
                ],
            }
        )

        self.assertEqual(adf_to_markdown(document), "| a | b |\n| --- | --- |\n| 1 | x\\|y |")

    def test_media_is_skipped(self):
        document = _doc(
            {"type": "mediaSingle", "content": [{"type": "media", "attrs": {"id": "1"}}]},
            _paragraph(_text("caption")),
        )

        self.assertEqual(adf_to_markdown(document), "caption")


if __name__ == "__main__":
    unittest.main()
