"""In-place edits over the note tree.

A tree is a list of node dicts shaped like ``{"name", "path", "type",
"children"}``, the same shape ``/api/tree`` returns. Only folders carry
``children``. Nothing here raises for a missing path: callers get ``False``,
``None`` or an empty list back instead.
"""

FILE = "file"
FOLDER = "folder"


def make_node(name: str, parent_path: str = "", node_type: str = FILE) -> dict:
    path = f"{parent_path}/{name}" if parent_path else name
    node = {"name": name, "path": path, "type": node_type}
    if node_type == FOLDER:
        node["children"] = []
    return node


def split_path(path: str) -> tuple[str, str]:
    parent, _, name = path.strip("/").rpartition("/")
    return parent, name


def add_node_to_tree(nodes: list, parent_path: str, new_node: dict) -> bool:
    """Append ``new_node`` under the folder whose path is ``parent_path``.

    An empty ``parent_path`` means the root list. Returns False when a sibling
    with the same name already exists or when no such folder is found.
    ``new_node["path"]`` is stored as given.
    """
    if not parent_path:
        if any(n["name"] == new_node["name"] for n in nodes):
            return False
        nodes.append(new_node)
        return True

    for node in nodes:
        if node["type"] != FOLDER:
            continue
        if node["path"] == parent_path:
            children = node.setdefault("children", [])
            if any(n["name"] == new_node["name"] for n in children):
                return False
            children.append(new_node)
            return True
        if node.get("children") and add_node_to_tree(node["children"], parent_path, new_node):
            return True
    return False


def find_and_remove_node(nodes: list, target_path: str) -> dict | None:
    """Detach the node at ``target_path`` and return it with its subtree."""
    for i, node in enumerate(nodes):
        if node["path"] == target_path:
            return nodes.pop(i)
    for node in nodes:
        if node["type"] == FOLDER and node.get("children"):
            removed = find_and_remove_node(node["children"], target_path)
            if removed is not None:
                return removed
    return None


def remove_node_from_tree(nodes: list, target_path: str) -> bool:
    return find_and_remove_node(nodes, target_path) is not None


def find_node(nodes: list, target_path: str) -> dict | None:
    for node in nodes:
        if node["path"] == target_path:
            return node
    for node in nodes:
        if node["type"] == FOLDER and node.get("children"):
            found = find_node(node["children"], target_path)
            if found is not None:
                return found
    return None


def collect_file_paths(nodes: list) -> list:
    paths = []
    for node in nodes:
        if node["type"] == FILE:
            paths.append(node["path"])
        elif node.get("children"):
            paths.extend(collect_file_paths(node["children"]))
    return paths


def tree_to_nested(nodes: list, read_content) -> dict:
    """Convert a tree to the backup shape: folders become dicts keyed by
    child name, files become their content string."""
    result = {}
    for node in nodes:
        if node["type"] == FILE:
            result[node["name"]] = read_content(node["path"]) or ""
        elif node["type"] == FOLDER:
            result[node["name"]] = tree_to_nested(node.get("children") or [], read_content)
    return result


def nested_to_tree(data: dict, write_content, parent_path: str = "") -> list:
    nodes = []
    for name, value in data.items():
        if isinstance(value, str):
            node = make_node(name, parent_path, FILE)
            write_content(node["path"], value)
        elif isinstance(value, dict):
            node = make_node(name, parent_path, FOLDER)
            node["children"] = nested_to_tree(value, write_content, node["path"])
        else:
            continue
        nodes.append(node)
    return nodes
