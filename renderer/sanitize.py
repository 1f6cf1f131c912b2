"""Text escaping and path validation for values embedded in ffmpeg commands.

Provides escaping for drawtext parameters, color normalisation, and
validation for file names and paths that end up in filter strings or on
disk.
"""

import re
from pathlib import Path

ALLOWED_FONT_EXTENSIONS = {'.ttf', '.otf', '.woff', '.woff2', '.ttc'}

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")
_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def escape_drawtext(text: str) -> str:
    """Escape text for use inside ``drawtext=text='...'``.

    Backslashes are doubled, single quotes and colons are backslash-escaped,
    and ``%`` is doubled so it is not read as a time-code expansion.

    Args:
        text: The raw overlay text.

    Returns:
        Escaped text.
    """
    if not text:
        return text

    # Backslashes first, before adding more
    if "\\" in text:
        text = text.replace("\\", "\\\\")
    if "'" in text:
        text = text.replace("'", "\\'")
    if ":" in text:
        text = text.replace(":", "\\:")
    if "%" in text:
        text = text.replace("%", "%%")

    return text


def to_ffmpeg_color(color: str) -> str:
    """Convert ``#RRGGBB`` / ``#RRGGBBAA`` to ffmpeg's ``0xRRGGBB`` form.

    Color names (``white``, ``red@0.5``) pass through unchanged.
    """
    if _HEX_COLOR.match(color):
        return f"0x{color[1:]}"
    return color


def validate_path(path: str, allowed_extensions: set[str]) -> str:
    """Check a path referenced from a filter string.

    The file is not required to exist; ffmpeg reports missing files itself.

    Args:
        path: The path string to validate.
        allowed_extensions: Set of allowed file extensions (e.g. {'.ttf'}).

    Returns:
        The path unchanged.

    Raises:
        ValueError: If the path is empty, contains traversal, has an invalid
                    extension, or contains a quote that would break the
                    surrounding filter string.
    """
    if not path or not path.strip():
        raise ValueError("Path cannot be empty")

    if ".." in Path(path).parts:
        raise ValueError(
            f"Path contains directory traversal (..): {path}"
        )

    suffix = Path(path).suffix.lower()
    if suffix not in allowed_extensions:
        raise ValueError(
            f"Invalid file extension: {suffix}. "
            f"Allowed: {sorted(list(allowed_extensions))}"
        )

    if "'" in path:
        raise ValueError(f"Path cannot contain a single quote: {path}")

    return path


def validate_project_id(project_id: str) -> str:
    """Ensure a project id is usable as a single file/directory name.

    Raises:
        ValueError: If the id is empty or contains separators or traversal.
    """
    if not project_id or not _SAFE_ID.match(project_id) or ".." in project_id:
        raise ValueError(f"Invalid project id: {project_id!r}")
    return project_id
