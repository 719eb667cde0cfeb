"""Storage backends for the note vault.

Every backend exposes the same operations (see ``Storage``). The server picks
one at startup with ``make_storage`` and hands it to the request handlers, so
nothing else needs to know where notes actually live.
"""

import copy
import json
import logging
import os
import shutil
import threading
from abc import ABC, abstractmethod
from pathlib import Path

import requests
from werkzeug.security import safe_join

from tree_store import (
    FILE,
    FOLDER,
    add_node_to_tree,
    collect_file_paths,
    find_and_remove_node,
    find_node,
    make_node,
    nested_to_tree,
    remove_node_from_tree,
    split_path,
    tree_to_nested,
)
from versions import APP_VERSION, VERSION_KEY, make_envelope

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_DIRS = {"node_modules", ".git", "__pycache__"}


class StorageError(Exception):
    status = 500


class InvalidPathError(StorageError):
    status = 400


class PermissionDeniedError(StorageError):
    status = 403


class NotFoundError(StorageError):
    status = 404


class AlreadyExistsError(StorageError):
    status = 409


class UnsupportedOperationError(StorageError):
    status = 400


def ensure_md(path: str) -> str:
    return path if path.endswith(".md") else path + ".md"


def initial_content(path: str) -> str:
    return f"# {Path(path).stem}\n"


class Storage(ABC):

    @abstractmethod
    def fetch_tree(self) -> list: ...

    @abstractmethod
    def fetch_directories(self, path: str | None = None) -> dict: ...

    @abstractmethod
    def read_file(self, path: str) -> str: ...

    @abstractmethod
    def save_file(self, path: str, content: str) -> None: ...

    @abstractmethod
    def create_file(self, path: str) -> str: ...

    @abstractmethod
    def create_folder(self, path: str) -> None: ...

    @abstractmethod
    def delete_file(self, path: str) -> None: ...

    @abstractmethod
    def delete_folder(self, path: str) -> None: ...

    @abstractmethod
    def import_data(self, data: dict, version: str | None = None) -> None: ...

    def get_version(self) -> str | None:
        return None

    def clear(self) -> None:
        raise UnsupportedOperationError(f"{type(self).__name__} cannot be cleared")

    def export_data(self) -> dict:
        return tree_to_nested(self.fetch_tree(), self._read_or_empty)

    def note_count(self) -> int:
        return len(collect_file_paths(self.fetch_tree()))

    def _read_or_empty(self, path: str) -> str:
        try:
            return self.read_file(path)
        except NotFoundError:
            return ""


class FileSystemStorage(Storage):
    """Notes as ``.md`` files under a directory on disk.

    The tree is built once and then patched in place on create/delete so
    repeated ``fetch_tree`` calls do not rescan the directory.
    """

    def __init__(self, root, excluded_dirs=None):
        self.root = Path(root).resolve()
        self.excluded_dirs = set(excluded_dirs if excluded_dirs is not None else DEFAULT_EXCLUDED_DIRS)
        self._tree = None
        self._lock = threading.RLock()

    def _resolve(self, rel: str) -> Path:
        if not rel:
            raise InvalidPathError("Missing path")
        joined = safe_join(str(self.root), rel)
        if joined is None:
            raise PermissionDeniedError(f"Invalid path: {rel}")
        if Path(joined) == self.root:
            raise InvalidPathError(f"Path points at the notes root: {rel}")
        return Path(joined)

    def _build_tree(self, rel: str = "") -> list:
        current = self.root / rel if rel else self.root
        items = []
        try:
            entries = sorted(current.iterdir(), key=lambda e: (not e.is_dir(), e.name.lower()))
        except PermissionError:
            logger.warning("Cannot list %s", current)
            return items
        for entry in entries:
            if entry.name.startswith(".") or entry.name in self.excluded_dirs:
                continue
            if entry.is_dir():
                node = make_node(entry.name, rel, FOLDER)
                node["children"] = self._build_tree(node["path"])
                items.append(node)
            elif entry.suffix == ".md":
                items.append(make_node(entry.name, rel, FILE))
        return items

    def fetch_tree(self) -> list:
        with self._lock:
            if self._tree is None:
                self._tree = self._build_tree()
            return copy.deepcopy(self._tree)

    def _sync_add(self, path: str, node_type: str):
        if self._tree is None:
            return
        parent, name = split_path(path)
        if not add_node_to_tree(self._tree, parent, make_node(name, parent, node_type)):
            # parent folders were created on disk but are not cached yet
            self._tree = None

    def _sync_remove(self, path: str):
        if self._tree is not None and not remove_node_from_tree(self._tree, path):
            self._tree = None

    def fetch_directories(self, path=None) -> dict:
        current = Path(path).resolve() if path else Path.home()
        if not current.is_dir():
            raise InvalidPathError(f"Invalid path: {path}")
        directories = sorted(
            e.name for e in current.iterdir() if e.is_dir() and not e.name.startswith(".")
        )
        parent = current.parent
        return {
            "current": str(current),
            "parent": None if parent == current else str(parent),
            "directories": directories,
        }

    def read_file(self, path: str) -> str:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError(f"File not found: {path}")
        return target.read_text(encoding="utf-8", errors="replace")

    def save_file(self, path: str, content: str) -> None:
        target = self._resolve(path)
        if not target.parent.is_dir():
            raise NotFoundError(f"Folder not found: {Path(path).parent}")
        with self._lock:
            is_new = not target.exists()
            target.write_text(content, encoding="utf-8")
            if is_new and target.suffix == ".md":
                self._sync_add(path, FILE)

    def create_file(self, path: str) -> str:
        path = ensure_md(path)
        target = self._resolve(path)
        with self._lock:
            if target.exists():
                raise AlreadyExistsError(f"File already exists: {path}")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(initial_content(path), encoding="utf-8")
            self._sync_add(path, FILE)
        logger.info("Created file %s", path)
        return path

    def create_folder(self, path: str) -> None:
        target = self._resolve(path)
        with self._lock:
            if target.exists():
                raise AlreadyExistsError(f"Folder already exists: {path}")
            target.mkdir(parents=True)
            self._sync_add(path, FOLDER)
        logger.info("Created folder %s", path)

    def delete_file(self, path: str) -> None:
        target = self._resolve(path)
        with self._lock:
            if not target.is_file():
                raise NotFoundError(f"File not found: {path}")
            target.unlink()
            self._sync_remove(path)
        logger.info("Deleted file %s", path)

    def delete_folder(self, path: str) -> None:
        target = self._resolve(path)
        with self._lock:
            if not target.is_dir():
                raise NotFoundError(f"Folder not found: {path}")
            shutil.rmtree(target)
            removed = find_and_remove_node(self._tree, path) if self._tree is not None else None
            if removed is None:
                self._tree = None
        if removed is not None:
            logger.info("Deleted folder %s (%d notes)", path, len(collect_file_paths(removed.get("children") or [])))
        else:
            logger.info("Deleted folder %s", path)

    def _remove_notes(self, nodes: list) -> None:
        for node in nodes:
            target = self._resolve(node["path"])
            if node["type"] == FILE:
                target.unlink(missing_ok=True)
                continue
            self._remove_notes(node.get("children") or [])
            # folders that still hold other files (images, hidden files) stay
            if target.is_dir() and not any(target.iterdir()):
                target.rmdir()

    def import_data(self, data: dict, version=None) -> None:
        """Replace every note and folder in the tree with those in ``data``.

        Files the tree does not list (non-markdown, hidden, excluded) are
        kept, along with the folders that contain them.
        """

        def write(path, content):
            target = self._resolve(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        def make_folders(nodes):
            for node in nodes:
                if node["type"] == FOLDER:
                    self._resolve(node["path"]).mkdir(parents=True, exist_ok=True)
                    make_folders(node["children"])

        with self._lock:
            self._remove_notes(self._build_tree())
            make_folders(nested_to_tree(data, write))
            self._tree = None


ROOT_KEY = "vfs:root"
CONTENT_PREFIX = "vfs:content:"
VERSION_STORE_KEY = "vfs:version"

INITIAL_TREE = [
    make_node("Welcome.md"),
    {**make_node("Notes", node_type=FOLDER), "children": [make_node("Ideas.md", "Notes")]},
]

INITIAL_FILES = {
    "Welcome.md": (
        "# Welcome to local storage mode\n\n"
        "Your notes are stored in a local key-value store instead of a folder on disk.\n\n"
        "### Features\n"
        "- Create files and folders\n"
        "- Edit markdown\n"
        "- Todo lists\n"
    ),
    "Notes/Ideas.md": "# My Ideas\n\n- [ ] Build a cool app\n- [x] Learn Flask\n",
}


class KeyValueStorage(Storage):
    """Notes in a flat key-value store.

    The tree lives under ``vfs:root`` and each note body under
    ``vfs:content:<path>``. With ``db_path`` the store is a JSON document on
    disk; without it everything stays in memory.
    """

    def __init__(self, db_path=None):
        self.db_path = Path(db_path) if db_path else None
        self._lock = threading.RLock()
        self._data = self._load()

    def _load(self) -> dict:
        if self.db_path is None or not self.db_path.is_file():
            return {}
        try:
            with open(self.db_path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Could not load {self.db_path}: {e}") from e

    def _persist(self):
        if self.db_path is None:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.db_path.with_suffix(self.db_path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._data, f)
        os.replace(tmp, self.db_path)

    def _tree(self) -> list:
        return self._data.setdefault(ROOT_KEY, [])

    def fetch_tree(self) -> list:
        with self._lock:
            if ROOT_KEY not in self._data:
                self._data[ROOT_KEY] = copy.deepcopy(INITIAL_TREE)
                for path, content in INITIAL_FILES.items():
                    self._data[CONTENT_PREFIX + path] = content
                self._persist()
            return copy.deepcopy(self._data[ROOT_KEY])

    def fetch_directories(self, path=None) -> dict:
        return {"current": path or "", "parent": None, "directories": []}

    def read_file(self, path: str) -> str:
        content = self._data.get(CONTENT_PREFIX + path)
        if content is None:
            raise NotFoundError("File not found")
        return content

    def save_file(self, path: str, content: str) -> None:
        with self._lock:
            self._data[CONTENT_PREFIX + path] = content
            self._persist()

    def _ensure_folders(self, folder_path: str):
        parent = ""
        for name in folder_path.split("/") if folder_path else []:
            add_node_to_tree(self._tree(), parent, make_node(name, parent, FOLDER))
            parent = f"{parent}/{name}" if parent else name

    def _add(self, path: str, node_type: str):
        parent, name = split_path(path)
        if not name:
            raise InvalidPathError("Missing path")
        self._ensure_folders(parent)
        if not add_node_to_tree(self._tree(), parent, make_node(name, parent, node_type)):
            if find_node(self._tree(), path) is not None:
                raise AlreadyExistsError(f"{path} already exists")
            raise InvalidPathError(f"{parent} is not a folder")
        return parent, name

    def create_file(self, path: str) -> str:
        path = ensure_md(path.strip("/"))
        with self._lock:
            self._add(path, FILE)
            self._data[CONTENT_PREFIX + path] = initial_content(path)
            self._persist()
        return path

    def create_folder(self, path: str) -> None:
        with self._lock:
            self._add(path.strip("/"), FOLDER)
            self._persist()

    def delete_file(self, path: str) -> None:
        with self._lock:
            if not remove_node_from_tree(self._tree(), path):
                logger.debug("delete_file: %s not in tree", path)
                return
            self._data.pop(CONTENT_PREFIX + path, None)
            self._persist()

    def delete_folder(self, path: str) -> None:
        with self._lock:
            removed = find_and_remove_node(self._tree(), path)
            if removed is None:
                logger.debug("delete_folder: %s not in tree", path)
                return
            for file_path in collect_file_paths(removed.get("children") or []):
                self._data.pop(CONTENT_PREFIX + file_path, None)
            self._persist()

    def export_data(self) -> dict:
        with self._lock:
            return tree_to_nested(self._tree(), lambda p: self._data.get(CONTENT_PREFIX + p))

    def import_data(self, data: dict, version: str | None = None) -> None:
        with self._lock:
            self._clear()

            def write(path, content):
                self._data[CONTENT_PREFIX + path] = content

            self._data[ROOT_KEY] = nested_to_tree(data, write)
            self._data[VERSION_STORE_KEY] = version or APP_VERSION
            self._persist()

    def note_count(self) -> int:
        return sum(1 for k in self._data if k.startswith(CONTENT_PREFIX))

    def get_version(self) -> str | None:
        return self._data.get(VERSION_STORE_KEY)

    def _clear(self):
        for key in list(self._data):
            if key == ROOT_KEY or key.startswith(CONTENT_PREFIX):
                del self._data[key]

    def clear(self) -> None:
        with self._lock:
            self._clear()
            self._persist()


_STATUS_ERRORS = {
    400: InvalidPathError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: AlreadyExistsError,
}


class HttpStorage(Storage):
    """Client for a running notepad server's ``/api`` routes."""

    def __init__(self, base_url: str = "http://127.0.0.1:3001", *, root_path: str | None = None,
                 timeout_s: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.root_path = root_path
        self.timeout_s = timeout_s
        self._remote_version = None

    def _headers(self) -> dict:
        headers = {}
        if self.root_path:
            headers["X-Root-Path"] = self.root_path
        return headers

    def _request(self, method: str, path: str, *, params=None, body=None):
        try:
            resp = requests.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=body,
                headers=self._headers(),
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise StorageError(f"{method} {path} failed: {e}") from e
        if not resp.ok:
            try:
                message = resp.json().get("error", resp.text)
            except ValueError:
                message = resp.text
            raise _STATUS_ERRORS.get(resp.status_code, StorageError)(message)
        if not resp.content:
            return None
        return resp.json()

    def fetch_tree(self) -> list:
        return self._request("GET", "/api/tree")

    def fetch_directories(self, path=None) -> dict:
        return self._request("GET", "/api/directories", params={"path": path} if path else None)

    def read_file(self, path: str) -> str:
        return self._request("GET", "/api/file", params={"path": path})["content"]

    def save_file(self, path: str, content: str) -> None:
        self._request("PUT", "/api/file", body={"path": path, "content": content})

    def create_file(self, path: str) -> str:
        data = self._request("POST", "/api/file", body={"path": path})
        return data.get("path", ensure_md(path)) if data else ensure_md(path)

    def create_folder(self, path: str) -> None:
        self._request("POST", "/api/folder", body={"path": path})

    def delete_file(self, path: str) -> None:
        self._request("DELETE", "/api/file", params={"path": path})

    def delete_folder(self, path: str) -> None:
        self._request("DELETE", "/api/folder", params={"path": path})

    def get_version(self) -> str | None:
        return self._remote_version

    def export_data(self) -> dict:
        envelope = self._request("GET", "/api/export")
        self._remote_version = envelope.get(VERSION_KEY)
        return envelope["content"]

    def import_data(self, data: dict, version=None) -> None:
        self._request("POST", "/api/import", body=make_envelope(data, version))

    def clear(self) -> None:
        self._request("POST", "/api/clear")


def make_storage(config: dict) -> Storage:
    kind = config.get("storage", "filesystem")
    if kind == "filesystem":
        return FileSystemStorage(config["root"], config.get("excluded_dirs"))
    if kind == "keyvalue":
        return KeyValueStorage(config.get("db_path"))
    if kind == "http":
        return HttpStorage(config["base_url"], root_path=config.get("remote_root"))
    raise ValueError(f"Unknown storage backend: {kind}")
