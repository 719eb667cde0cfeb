"""Version patterns accepted when importing a backup.

"0.1.0"    exact string match
"^0.2.0"   same major and minor (0.2.x)
"^^1.5.0"  same major (1.x.x)
"""

APP_VERSION = "0.1.0"
VERSION_KEY = "notepad.md-version"

SUPPORTED_VERSIONS = [
    "^0.1.0",
]


def _parse(version: str) -> tuple:
    parts = []
    for raw in version.split("."):
        if not raw.strip():
            parts.append(0)
            continue
        try:
            parts.append(int(raw))
        except ValueError:
            parts.append(None)
    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def _same(a, b) -> bool:
    return a is not None and a == b


def is_version_supported(version, patterns) -> bool:
    if not isinstance(version, str) or not version:
        return False
    major, minor, _ = _parse(version)
    for pattern in patterns:
        if pattern.startswith("^^"):
            expected = _parse(pattern[2:])
            if _same(major, expected[0]):
                return True
        elif pattern.startswith("^"):
            expected = _parse(pattern[1:])
            if _same(major, expected[0]) and _same(minor, expected[1]):
                return True
        elif version == pattern:
            return True
    return False


class UnsupportedVersionError(ValueError):
    pass


def make_envelope(content: dict, version: str | None = None) -> dict:
    return {VERSION_KEY: version or APP_VERSION, "content": content}


def unpack_envelope(payload: dict, supported=None) -> tuple:
    """Split a backup into ``(content, version)``.

    Backups written before the version tag existed are a bare nested dict;
    those come back with ``version=None``.
    """
    if VERSION_KEY not in payload:
        return payload, None
    version = payload[VERSION_KEY]
    if not is_version_supported(version, SUPPORTED_VERSIONS if supported is None else supported):
        raise UnsupportedVersionError(f"Unsupported backup version: {version}")
    content = payload.get("content")
    if not isinstance(content, dict):
        raise ValueError("Backup has no content")
    return content, version
