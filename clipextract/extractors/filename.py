"""Cross-platform safe filenames for articles and their images."""

from __future__ import annotations

import hashlib
import re

from clipextract import settings

_ILLEGAL_RE = re.compile(r'[/?<>\\*|"]')
_DOT_RUN_RE = re.compile(r"\.{2,}")
_LEADING_DOTS_RE = re.compile(r"^\.+")
_TRAILING_DOTS_RE = re.compile(r"\.+$")
_SEPARATOR_RUN_RE = re.compile(r"[_\s]+")
_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]+$")
_DATA_URL_RE = re.compile(r"^data:([^;,]+)[;,]")

_RESERVED_NAMES: frozenset[str] = frozenset(
    {"CON", "PRN", "AUX", "NUL", "COM1", "COM2", "COM3", "COM4", "LPT1", "LPT2", "LPT3"},
)

MAX_FILENAME_LENGTH = 255
_MAX_EXTENSION_LENGTH = 10

_IMAGE_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
}


def generate_valid_filename(
    title: str | None,
    disallowed_chars: str | None = settings.DISALLOWED_FILENAME_CHARS,
) -> str:
    """Turn *title* into a filename, replacing unsafe characters with ``_``.

    Characters are replaced rather than dropped so the result stays readable.
    Windows reserved device names get a trailing ``_`` and an empty result
    becomes :data:`~clipextract.settings.DEFAULT_FILENAME`.
    """
    if title is None:
        return settings.DEFAULT_FILENAME
    name = str(title).replace("\u00a0", " ").strip()
    if not name:
        return settings.DEFAULT_FILENAME

    name = _ILLEGAL_RE.sub("_", name)
    name = _DOT_RUN_RE.sub("_", name)
    for char in disallowed_chars or "":
        name = name.replace(char, "_")

    name = _LEADING_DOTS_RE.sub(lambda m: "_" * len(m.group()), name)
    name = _TRAILING_DOTS_RE.sub(lambda m: "_" * len(m.group()), name)
    name = _SEPARATOR_RUN_RE.sub("_", name).strip("_")

    if name.split(".")[0].upper() in _RESERVED_NAMES:
        name += "_"

    if not re.sub(r"[_\s.]+", "", name):
        return settings.DEFAULT_FILENAME

    if len(name) > MAX_FILENAME_LENGTH:
        dot = name.rfind(".")
        if 0 < dot < len(name) - 1 and len(name) - dot - 1 <= _MAX_EXTENSION_LENGTH:
            ext = name[dot:]
            name = name[: MAX_FILENAME_LENGTH - len(ext)] + ext
        else:
            name = name[:MAX_FILENAME_LENGTH]
    return name


def image_filename(
    src: str,
    prefix: str = "",
    disallowed_chars: str | None = settings.DISALLOWED_FILENAME_CHARS,
) -> str:
    """Filename for an image reference.

    ``data:`` URLs are named ``image_<digest>.<ext>`` from their MIME type;
    other URLs use their last path segment (query dropped) with ``.jpg``
    appended when it has no extension.
    """
    src = src or ""
    match = _DATA_URL_RE.match(src)
    if src.startswith("data:"):
        mime = match.group(1).lower() if match else "image/png"
        digest = hashlib.sha1(src.encode("utf-8")).hexdigest()[:10]
        base = f"image_{digest}.{_IMAGE_EXTENSIONS.get(mime, 'png')}"
    else:
        base = src.split("?")[0].rstrip("/").split("/")[-1] or "image"
        if not _EXTENSION_RE.search(base):
            base += ".jpg"
    return (prefix or "") + generate_valid_filename(base, disallowed_chars)
