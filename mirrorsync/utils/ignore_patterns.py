"""
Ignore rules: hidden entries, build/dependency directories and .syncignore patterns
"""
import re
from pathlib import Path
from ..config import IGNORE_FILE

# Directory names that are never mirrored, at any depth
DEFAULT_EXCLUDES = frozenset({"node_modules", "out", "__pycache__"})


def _compile_pattern(raw: str):
    """Compile a .syncignore pattern into a regex"""
    p = raw.strip()
    if not p or p.startswith("#"):
        return None
    escaped = re.escape(p)
    escaped = escaped.replace(r"\*\*", "§DS§")
    escaped = escaped.replace(r"\*", "[^/]*")
    escaped = escaped.replace(r"\?", "[^/]")
    escaped = escaped.replace("§DS§", ".*")
    if escaped.startswith("/"):
        escaped = "^" + escaped[1:]
    else:
        escaped = r"(^|.*\/)" + escaped
    try:
        return re.compile(escaped + r"(/.*)?$")
    except re.error:
        return None


def load_ignore_patterns(root: Path) -> list:
    """Load ignore patterns from the .syncignore file in *root*"""
    f = Path(root) / IGNORE_FILE
    if not f.exists():
        return []
    patterns = []
    for line in f.read_text(encoding="utf-8", errors="replace").splitlines():
        c = _compile_pattern(line)
        if c:
            patterns.append(c)
    return patterns


def is_excluded_name(name: str) -> bool:
    """True for dotfiles and the well-known build/dependency directories."""
    return name.startswith(".") or name in DEFAULT_EXCLUDES


def is_ignored(rel_path: str, patterns: list) -> bool:
    """Check if a relative key is hidden, excluded, or matches an ignore pattern"""
    norm = rel_path.replace("\\", "/").strip("/")
    if not norm:
        return False
    if any(is_excluded_name(part) for part in norm.split("/")):
        return True
    return any(p.search(norm) for p in patterns)
