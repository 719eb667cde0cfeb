import re
from dataclasses import dataclass
from typing import Optional


FENCE = "```"

_HEADING_RE = re.compile(r'^(#{1,6})\s+(.*)$')
_UNCHECKED_RE = re.compile(r'^(\s*)([-*]|\d+\.)\s\[ \]\s?(.*)$')
_CHECKED_RE = re.compile(r'^(\s*)([-*]|\d+\.)\s\[x\]\s?(.*)$', re.IGNORECASE)
_CHECKED_BOX_RE = re.compile(r'\[x\]', re.IGNORECASE)


@dataclass(frozen=True)
class TodoItem:
    text: str
    checked: bool
    line_index: int
    heading: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"text": self.text, "checked": self.checked, "lineIndex": self.line_index}
        if self.heading is not None:
            data["heading"] = self.heading
        return data


def extract_todos(markdown: str) -> list:
    """Collect checklist items from markdown, skipping fenced code blocks.

    Each item carries the text of the most recent heading above it. Headings
    do not nest; a ``##`` line replaces a preceding ``#`` line.
    """
    todos = []
    in_code_block = False
    current_heading = None

    for i, line in enumerate(markdown.split("\n")):
        if line.lstrip().startswith(FENCE):
            in_code_block = not in_code_block
            continue
        if in_code_block:
            continue

        heading = _HEADING_RE.match(line)
        if heading:
            current_heading = heading.group(2).strip()
            continue

        m = _UNCHECKED_RE.match(line)
        if m:
            todos.append(TodoItem(m.group(3).strip(), False, i, current_heading))
            continue

        m = _CHECKED_RE.match(line)
        if m:
            todos.append(TodoItem(m.group(3).strip(), True, i, current_heading))

    return todos


def toggle_todo_in_markdown(markdown: str, line_index: int) -> str:

    lines = markdown.split("\n")
    if line_index < 0 or line_index >= len(lines):
        return markdown
    line = lines[line_index]
    if "[ ]" in line:
        lines[line_index] = line.replace("[ ]", "[x]", 1)
    elif _CHECKED_BOX_RE.search(line):
        lines[line_index] = _CHECKED_BOX_RE.sub("[ ]", line, count=1)
    else:
        return markdown
    return "\n".join(lines)


def todo_summary(items) -> dict:
    done = sum(1 for item in items if item.checked)
    return {"total": len(items), "done": done, "open": len(items) - done}
