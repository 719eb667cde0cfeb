"""
Unit tests for the todos module.
"""
from todos import TodoItem, extract_todos, todo_summary, toggle_todo_in_markdown


class TestExtractTodos:
    """Tests for extract_todos."""

    def test_items_under_heading(self):
        """Checklist items pick up the heading above them."""
        result = extract_todos("# Tasks\n- [ ] Task 1\n- [x] Task 2")

        assert result == [
            TodoItem(text="Task 1", checked=False, line_index=1, heading="Tasks"),
            TodoItem(text="Task 2", checked=True, line_index=2, heading="Tasks"),
        ]

    def test_no_todos(self):
        assert extract_todos("# Just a heading\nSome text") == []

    def test_empty_input(self):
        assert extract_todos("") == []

    def test_before_first_heading(self):
        result = extract_todos("- [ ] early\n# Later\n- [ ] late")

        assert result[0].heading is None
        assert result[1].heading == "Later"

    def test_latest_heading_wins(self):
        """Headings do not nest; a deeper heading replaces the previous one."""
        md = "# Section 1\n- [ ] a\n\n## Section 2\n- [x] b\n# Section 3\n- [ ] c"

        headings = [t.heading for t in extract_todos(md)]

        assert headings == ["Section 1", "Section 2", "Section 3"]

    def test_heading_text_is_trimmed(self):
        result = extract_todos("###   Spaced out   \n- [ ] x")

        assert result[0].heading == "Spaced out"

    def test_hash_without_space_is_not_heading(self):
        result = extract_todos("#tag\n####### seven\n- [ ] x")

        assert result[0].heading is None

    def test_list_markers(self):
        md = "- [ ] dash\n* [ ] star\n1. [ ] one\n12. [X] twelve\n+ [ ] plus"

        result = extract_todos(md)

        assert [t.text for t in result] == ["dash", "star", "one", "twelve"]
        assert result[3].checked is True

    def test_indented_items(self):
        result = extract_todos("- [ ] parent\n    - [x] child")

        assert result[1] == TodoItem("child", True, 1, None)

    def test_marker_needs_space(self):
        assert extract_todos("-[ ] nope\n- [] nope\n- [y] nope") == []

    def test_space_after_box_optional(self):
        result = extract_todos("- [ ]tight")

        assert result[0].text == "tight"

    def test_empty_text_allowed(self):
        result = extract_todos("- [ ]\n- [x]   ")

        assert [t.text for t in result] == ["", ""]
        assert [t.checked for t in result] == [False, True]

    def test_fenced_block_skipped(self):
        md = "\n".join([
            "- [ ] before",
            "```python",
            "- [ ] hidden",
            "# not a heading",
            "```",
            "- [ ] after",
        ])

        result = extract_todos(md)

        assert [t.text for t in result] == ["before", "after"]
        assert [t.line_index for t in result] == [0, 5]
        assert result[1].heading is None

    def test_indented_fence_flips(self):
        md = "  ```\n- [ ] hidden\n  ```js\n- [ ] shown"

        result = extract_todos(md)

        assert [t.text for t in result] == ["shown"]

    def test_unclosed_fence_hides_rest(self):
        assert extract_todos("```\n- [ ] a\n- [ ] b") == []

    def test_line_indices_increase(self):
        md = "# A\n- [ ] 1\ntext\n```\n- [ ] x\n```\n* [x] 2\n\n3. [ ] 3"
        lines = md.split("\n")

        indices = [t.line_index for t in extract_todos(md)]

        assert indices == sorted(set(indices))
        assert all(0 <= i < len(lines) for i in indices)

    def test_crlf_text_trimmed(self):
        result = extract_todos("- [ ] windows\r\n- [x] line\r")

        assert [t.text for t in result] == ["windows", "line"]

    def test_to_dict(self):
        assert TodoItem("a", False, 3).to_dict() == {"text": "a", "checked": False, "lineIndex": 3}
        assert TodoItem("a", True, 0, "H").to_dict()["heading"] == "H"


class TestToggleTodoInMarkdown:
    """Tests for toggle_todo_in_markdown."""

    def test_check(self):
        assert toggle_todo_in_markdown("- [ ] Task 1", 0) == "- [x] Task 1"

    def test_uncheck_upper(self):
        assert toggle_todo_in_markdown("- [X] Task 1", 0) == "- [ ] Task 1"

    def test_uncheck_lower(self):
        assert toggle_todo_in_markdown("- [x] Task 1", 0) == "- [ ] Task 1"

    def test_out_of_range(self):
        md = "- [ ] a\n- [ ] b"

        assert toggle_todo_in_markdown(md, -1) == md
        assert toggle_todo_in_markdown(md, 2) == md
        assert toggle_todo_in_markdown(md, 100) == md

    def test_non_checklist_line(self):
        md = "# Heading\nplain text"

        assert toggle_todo_in_markdown(md, 1) == md

    def test_only_first_box(self):
        assert toggle_todo_in_markdown("- [ ] a [ ] b", 0) == "- [x] a [ ] b"
        assert toggle_todo_in_markdown("- [x] a [X] b", 0) == "- [ ] a [X] b"

    def test_other_lines_untouched(self):
        md = "# Tasks\n  - [ ] indented\n- [ ] other\n"

        result = toggle_todo_in_markdown(md, 1)

        assert result == "# Tasks\n  - [x] indented\n- [ ] other\n"

    def test_keeps_carriage_returns(self):
        assert toggle_todo_in_markdown("- [ ] a\r\n- [ ] b", 0) == "- [x] a\r\n- [ ] b"

    def test_no_fence_awareness(self):
        md = "```\n- [ ] in code\n```"

        assert toggle_todo_in_markdown(md, 1) == "```\n- [x] in code\n```"

    def test_double_toggle_restores(self):
        md = "# T\n- [ ] a\n- [x] b"

        for i in (1, 2):
            assert toggle_todo_in_markdown(toggle_todo_in_markdown(md, i), i) == md

    def test_toggle_then_extract(self):
        md = "# Work\n- [ ] write report\n1. [x] send mail"
        before = extract_todos(md)[0]

        after = extract_todos(toggle_todo_in_markdown(md, before.line_index))[0]

        assert after.checked is True
        assert (after.text, after.heading, after.line_index) == (before.text, before.heading, before.line_index)


def test_todo_summary():
    items = extract_todos("- [ ] a\n- [x] b\n- [X] c")

    assert todo_summary(items) == {"total": 3, "done": 2, "open": 1}
    assert todo_summary([]) == {"total": 0, "done": 0, "open": 0}
