import json as _json
import logging
import os
from datetime import datetime
from pathlib import Path

from flask import Flask, current_app, jsonify, render_template_string, request
import markdown

from storage import FileSystemStorage, InvalidPathError, StorageError, make_storage
from todos import extract_todos, todo_summary, toggle_todo_in_markdown
from versions import UnsupportedVersionError, make_envelope, unpack_envelope

logger = logging.getLogger(__name__)

HERE = Path(__file__).resolve().parent

_CONFIG_PATH = Path(os.environ.get("NOTEPAD_CONFIG", HERE / "notepad.config.json"))
_DEFAULTS = {
    "port": 3001,
    "host": "127.0.0.1",
    "storage": "filesystem",
    "root": "notes",
    "db_path": "notepad.db.json",
    "base_url": "http://127.0.0.1:3001",
    "remote_root": None,
    "excluded_dirs": ["node_modules", ".git", "__pycache__"],
    "autosave_delay": 1500,
}


def _load_config(path: Path = _CONFIG_PATH) -> dict:
    cfg = dict(_DEFAULTS)
    if path.is_file():
        try:
            with open(path) as f:
                user = _json.load(f)
            cfg.update(user)
        except (OSError, ValueError) as e:
            logger.warning("Could not load %s: %s", path.name, e)
    for key in ("root", "db_path"):
        if cfg[key] and not Path(cfg[key]).is_absolute():
            cfg[key] = str(HERE / cfg[key])
    return cfg


CONFIG = _load_config()


def _root_storage(root: str) -> FileSystemStorage:
    cache = current_app.extensions.setdefault("root_storages", {})
    key = str(Path(root).resolve())
    if key not in cache:
        cache[key] = FileSystemStorage(key, CONFIG["excluded_dirs"])
    return cache[key]


def get_storage():
    storage = current_app.config["STORAGE"]
    header_root = request.headers.get("X-Root-Path")
    if header_root and isinstance(storage, FileSystemStorage):
        if os.path.isdir(header_root):
            return _root_storage(header_root)
        logger.warning("Invalid root path header: %s", header_root)
    return storage


def _require(value, name: str):
    if value is None or value == "":
        raise InvalidPathError(f"Missing {name}")
    return value


def render_markdown(text: str) -> str:
    extensions = ["fenced_code", "tables", "toc", "sane_lists", "nl2br"]
    try:
        import pygments  # noqa: F401
        extensions.append("codehilite")
    except ImportError:
        pass
    return markdown.markdown(text, extensions=extensions)


def create_app(storage=None) -> Flask:
    app = Flask(__name__)
    app.config["STORAGE"] = storage if storage is not None else make_storage(CONFIG)

    @app.errorhandler(StorageError)
    def handle_storage_error(e):
        return jsonify({"error": str(e) or type(e).__name__}), e.status

    @app.route("/")
    def index():
        return render_template_string(MAIN_TEMPLATE, autosave_delay=CONFIG["autosave_delay"])

    @app.route("/api/config")
    def api_config():
        return jsonify({
            "storage": CONFIG["storage"],
            "autosave_delay": CONFIG["autosave_delay"],
        })

    @app.route("/api/tree")
    def api_tree():
        return jsonify(get_storage().fetch_tree())

    @app.route("/api/directories")
    def api_directories():
        return jsonify(get_storage().fetch_directories(request.args.get("path")))

    @app.route("/api/file", methods=["GET", "PUT", "POST", "DELETE"])
    def api_file():
        storage = get_storage()
        if request.method == "GET":
            path = _require(request.args.get("path"), "path parameter")
            return jsonify({"content": storage.read_file(path)})
        if request.method == "DELETE":
            storage.delete_file(_require(request.args.get("path"), "path parameter"))
            return jsonify({"success": True})

        body = request.get_json(silent=True) or {}
        path = _require(body.get("path"), "path")
        if request.method == "PUT":
            content = body.get("content")
            if not isinstance(content, str):
                return jsonify({"error": "Missing path or content"}), 400
            storage.save_file(path, content)
            return jsonify({"success": True})
        created = storage.create_file(path)
        return jsonify({"success": True, "path": created})

    @app.route("/api/folder", methods=["POST", "DELETE"])
    def api_folder():
        storage = get_storage()
        if request.method == "DELETE":
            storage.delete_folder(_require(request.args.get("path"), "path parameter"))
        else:
            body = request.get_json(silent=True) or {}
            storage.create_folder(_require(body.get("path"), "path"))
        return jsonify({"success": True})

    @app.route("/api/note")
    def api_note():
        path = _require(request.args.get("path"), "path parameter")
        text = get_storage().read_file(path)
        return jsonify({"html": render_markdown(text), "path": path, "name": Path(path).stem})

    def _todos_response(path: str, text: str):
        items = extract_todos(text)
        return jsonify({
            "path": path,
            "todos": [item.to_dict() for item in items],
            "summary": todo_summary(items),
        })

    @app.route("/api/todos")
    def api_todos():
        path = _require(request.args.get("path"), "path parameter")
        return _todos_response(path, get_storage().read_file(path))

    @app.route("/api/todos/toggle", methods=["POST"])
    def api_todos_toggle():
        body = request.get_json(silent=True) or {}
        path = _require(body.get("path"), "path")
        line_index = body.get("lineIndex")
        if not isinstance(line_index, int) or isinstance(line_index, bool):
            return jsonify({"error": "lineIndex must be an integer"}), 400
        storage = get_storage()
        text = storage.read_file(path)
        toggled = toggle_todo_in_markdown(text, line_index)
        if toggled != text:
            storage.save_file(path, toggled)
        return _todos_response(path, toggled)

    @app.route("/api/export")
    def api_export():
        storage = get_storage()
        resp = jsonify(make_envelope(storage.export_data(), storage.get_version()))
        stamp = datetime.now().strftime("%Y-%m-%d")
        resp.headers["Content-Disposition"] = f'attachment; filename="notepad-md-backup-{stamp}.json"'
        return resp

    @app.route("/api/import", methods=["POST"])
    def api_import():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "Invalid JSON file"}), 400
        try:
            content, version = unpack_envelope(payload)
        except (UnsupportedVersionError, ValueError) as e:
            return jsonify({"error": str(e)}), 400
        storage = get_storage()
        replaced = storage.note_count()
        storage.import_data(content, version)
        logger.info("Imported backup (version %s), replaced %d notes", version or "untagged", replaced)
        return jsonify({"success": True, "replaced": replaced, "notes": storage.note_count()})

    @app.route("/api/clear", methods=["POST"])
    def api_clear():
        storage = get_storage()
        removed = storage.note_count()
        storage.clear()
        logger.info("Cleared %d notes", removed)
        return jsonify({"success": True, "removed": removed})

    return app


MAIN_TEMPLATE = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>notepad.md</title>
<style>
  body { margin: 0; display: flex; height: 100vh; font-family: system-ui, sans-serif; background: #1e1e1e; color: #ddd; }
  #sidebar { width: 240px; overflow: auto; border-right: 1px solid #333; padding: 8px; }
  #main { flex: 1; display: flex; flex-direction: column; }
  #editor { flex: 1; background: #111; color: #eee; border: 0; padding: 12px; font: 14px/1.5 monospace; resize: none; }
  #todos { width: 260px; overflow: auto; border-left: 1px solid #333; padding: 8px; }
  .tree-item { cursor: pointer; padding: 2px 4px; white-space: nowrap; }
  .tree-item.active { background: #333; }
  .tree-children { margin-left: 12px; }
  .todo-heading { margin-top: 8px; font-size: 12px; color: #888; }
  .todo.done span { text-decoration: line-through; color: #777; }
</style>
</head>
<body>
<div id="sidebar"><div id="file-tree"></div></div>
<div id="main"><textarea id="editor" disabled placeholder="Select a note"></textarea></div>
<div id="todos"><div id="todo-summary"></div><div id="todo-list"></div></div>
<script>
const AUTOSAVE_DELAY = {{ autosave_delay }};
const editor = document.getElementById('editor');
let currentPath = null;
let saveTimer = null;

async function api(url, opts) {
  const res = await fetch(url, opts);
  if (!res.ok) throw new Error((await res.json()).error || res.statusText);
  return res.json();
}

function renderTree(nodes, parent) {
  for (const node of nodes) {
    const row = document.createElement('div');
    row.className = 'tree-item';
    row.textContent = node.type === 'folder' ? node.name + '/' : node.name;
    parent.appendChild(row);
    if (node.type === 'folder') {
      const box = document.createElement('div');
      box.className = 'tree-children';
      parent.appendChild(box);
      renderTree(node.children || [], box);
    } else {
      row.dataset.path = node.path;
      row.onclick = () => openNote(node.path);
    }
  }
}

async function loadTree() {
  const tree = document.getElementById('file-tree');
  tree.innerHTML = '';
  renderTree(await api('/api/tree'), tree);
}

function renderTodos(data) {
  document.getElementById('todo-summary').textContent = data.summary.done + ' / ' + data.summary.total + ' done';
  const list = document.getElementById('todo-list');
  list.innerHTML = '';
  let heading;
  for (const todo of data.todos) {
    if (todo.heading !== heading) {
      heading = todo.heading;
      if (heading) {
        const h = document.createElement('div');
        h.className = 'todo-heading';
        h.textContent = heading;
        list.appendChild(h);
      }
    }
    const row = document.createElement('label');
    row.className = 'todo' + (todo.checked ? ' done' : '');
    const box = document.createElement('input');
    box.type = 'checkbox';
    box.checked = todo.checked;
    box.onchange = () => toggleTodo(todo.lineIndex);
    const text = document.createElement('span');
    text.textContent = todo.text;
    row.append(box, text);
    list.append(row, document.createElement('br'));
  }
}

async function openNote(path) {
  const data = await api('/api/file?path=' + encodeURIComponent(path));
  currentPath = path;
  editor.disabled = false;
  editor.value = data.content;
  document.querySelectorAll('.tree-item').forEach(el => el.classList.toggle('active', el.dataset.path === path));
  renderTodos(await api('/api/todos?path=' + encodeURIComponent(path)));
}

async function save() {
  if (!currentPath) return;
  await api('/api/file', {method: 'PUT', headers: {'Content-Type': 'application/json'},
                          body: JSON.stringify({path: currentPath, content: editor.value})});
  renderTodos(await api('/api/todos?path=' + encodeURIComponent(currentPath)));
}

async function toggleTodo(lineIndex) {
  clearTimeout(saveTimer);
  await save();
  const data = await api('/api/todos/toggle', {method: 'POST', headers: {'Content-Type': 'application/json'},
                                               body: JSON.stringify({path: currentPath, lineIndex})});
  editor.value = (await api('/api/file?path=' + encodeURIComponent(currentPath))).content;
  renderTodos(data);
}

editor.addEventListener('input', () => {
  clearTimeout(saveTimer);
  saveTimer = setTimeout(save, AUTOSAVE_DELAY);
});

loadTree();
</script>
</body>
</html>
"""


app = create_app()


if __name__ == "__main__":
    import socket
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    hostname = socket.gethostname()
    local_ip = socket.gethostbyname(hostname)
    if CONFIG["storage"] == "filesystem":
        Path(CONFIG["root"]).mkdir(parents=True, exist_ok=True)
        print(f"Serving notes: {CONFIG['root']}")
    else:
        print(f"Storage backend: {CONFIG['storage']}")
    print(f"Open http://localhost:{CONFIG['port']}    (this machine)")
    print(f"     http://{local_ip}:{CONFIG['port']}  (other devices on network)")
    app.run(host=CONFIG["host"], port=CONFIG["port"])
