# src/s3_spa_upload/cache_control.py
"""
HTTP metadata rules for uploaded objects.

Cache-Control headers are chosen by an ordered list of glob patterns (first
match wins), and Content-Type headers by the file extension.
"""

import mimetypes
from fnmatch import fnmatchcase
from pathlib import PurePath, PurePosixPath
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

CacheControlMapping = Tuple[Tuple[str, str], ...]

CACHE_FOREVER: str = "public,max-age=31536000,immutable"
CACHE_ONE_DAY_SWR_30_DAYS: str = "public,max-age=86400,stale-while-revalidate=2592000"
CACHE_ONE_MIN_SWR_30_DAYS: str = "public,max-age=60,stale-while-revalidate=2592000"
NO_CACHE: str = "no-cache"

DEFAULT_CACHE_CONTROL_MAPPING: CacheControlMapping = (
    ("index.html", CACHE_ONE_MIN_SWR_30_DAYS),
    ("*.css", CACHE_FOREVER),
    ("*.js", CACHE_FOREVER),
    ("*.png", CACHE_ONE_DAY_SWR_30_DAYS),
    ("*.ico", CACHE_ONE_DAY_SWR_30_DAYS),
    ("*.txt", CACHE_ONE_DAY_SWR_30_DAYS),
)

# Extensions where the stdlib table is missing or disagrees with what
# browsers expect for a web bundle.
CONTENT_TYPES: Dict[str, str] = {
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".svg": "image/svg+xml",
    ".webmanifest": "application/manifest+json",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
}


def as_cache_control_mapping(
    rules: Union[Mapping[str, str], CacheControlMapping],
) -> CacheControlMapping:
    """
    Freezes pattern rules into an ordered tuple of (pattern, value) pairs.

    Args:
        rules: A mapping (insertion order is kept) or a sequence of pairs.

    Returns:
        CacheControlMapping: The immutable, ordered rules.
    """
    if isinstance(rules, Mapping):
        return tuple((str(k), str(v)) for k, v in rules.items())
    return tuple((str(k), str(v)) for k, v in rules)


def _glob_match(name: str, pattern: str) -> bool:
    # Wildcards never match the leading dot of a hidden file.
    if name.startswith(".") and not pattern.startswith("."):
        return False
    return fnmatchcase(name, pattern)


def _match_segments(parts: Sequence[str], pattern_parts: Sequence[str]) -> bool:
    """
    Matches path segments against pattern segments.

    Each pattern segment matches exactly one path segment, so `*` never
    crosses a "/". A `**` segment matches zero or more path segments, but
    not hidden ones.
    """
    if not pattern_parts:
        return not parts
    head: str = pattern_parts[0]
    if head == "**":
        for i in range(len(parts) + 1):
            if _match_segments(parts[i:], pattern_parts[1:]):
                return True
            if i < len(parts) and parts[i].startswith("."):
                return False
        return False
    if not parts:
        return False
    return _glob_match(parts[0], head) and _match_segments(
        parts[1:], pattern_parts[1:]
    )


def get_cache_control(
    path: Union[str, PurePath],
    mapping: CacheControlMapping = DEFAULT_CACHE_CONTROL_MAPPING,
) -> Optional[str]:
    """
    Resolves the Cache-Control header for a file.

    Patterns without a "/" are matched against the file name only, patterns
    containing one against the whole relative path, one segment at a time:
    `static/*` matches `static/app.js` but not `static/js/app.js`, and
    `assets/**/*.js` matches `.js` files at any depth below `assets/`.

    Args:
        path: The file path, relative to the upload root.
        mapping (CacheControlMapping): Ordered (pattern, header) rules.

    Returns:
        Optional[str]: The header of the first matching rule, or None when no
            rule matches and the header should be omitted.
    """
    posix_path: PurePosixPath = PurePosixPath(PurePath(path).as_posix())
    parts: Tuple[str, ...] = tuple(p for p in posix_path.parts if p != "/")
    for pattern, cache_control in mapping:
        if "/" in pattern:
            pattern_parts: List[str] = pattern.strip("/").split("/")
            if _match_segments(parts, pattern_parts):
                return cache_control
        elif _glob_match(posix_path.name, pattern):
            return cache_control
    return None


def get_content_type(path: Union[str, PurePath]) -> Optional[str]:
    """Returns the MIME type for the file extension, or None when unknown."""
    suffix: str = PurePath(path).suffix.lower()
    if not suffix:
        return None
    return CONTENT_TYPES.get(suffix) or mimetypes.types_map.get(suffix)
