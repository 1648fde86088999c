"""Resolution of user-entered folder phrases into comparable paths."""

import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from .exceptions import UnsupportedProtocolError

logger = logging.getLogger(__name__)

MACRO_SEP = "%"

# Protocols handled by the sync tool that have no change notification.
UNSUPPORTED_PROTOCOLS = ("ftp", "sftp", "mtp", "gdrive")

# Internal macros are checked before environment variables: there exist
# environment variables named %TIME% and %DATE%.
_TIME_MACROS = {
    "date": "%Y-%m-%d",
    "time": "%H%M%S",
    "timestamp": "%Y-%m-%d %H%M%S",  # e.g. "2012-05-15 131513"
    "year": "%Y",
    "month": "%m",
    "monthname": "%b",  # e.g. "Jan"
    "day": "%d",
    "hour": "%H",
    "min": "%M",
    "sec": "%S",
    "weekdayname": "%a",  # e.g. "Mon"
    "week": "%V",  # ISO 8601 week of the year
}

# [volume name]:\folder  [volume name]\folder  [volume name]folder
_VOLUME_PHRASE = re.compile(r"^\[(?P<name>[^\]]+)\]:?[\\/]?(?P<rest>.*)$", re.DOTALL)


def _resolve_macro(name: str, extra: Optional[Mapping[str, str]], now: datetime) -> Optional[str]:
    """Return the value for a macro name (without %), or None."""
    lowered = name.lower()

    if extra:
        for key, value in extra.items():
            if key.lower() == lowered:
                return value

    if lowered in _TIME_MACROS:
        return now.strftime(_TIME_MACROS[lowered])
    if lowered == "weekday":
        return str(now.isoweekday())  # 1 (Monday) .. 7 (Sunday)

    if not name:
        return None
    return os.environ.get(name)


def expand_macros(
    text: str,
    extra: Optional[Mapping[str, str]] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Substitute %Name% macros in text.

    Resolution order: ``extra`` values, built-in date/time macros, then
    environment variables. Sequences that cannot be resolved are kept
    verbatim, and their closing separator may start the next macro.

    Args:
        text: Text containing macros
        extra: Additional macro values, e.g. change_path
        now: Reference time for date/time macros

    Returns:
        The expanded text
    """
    if MACRO_SEP not in text:
        return text

    now = now or datetime.now()
    parts: List[str] = []
    rest = text

    while True:
        start = rest.find(MACRO_SEP)
        if start < 0:
            break
        end = rest.find(MACRO_SEP, start + 1)
        if end < 0:
            break

        value = _resolve_macro(rest[start + 1:end], extra, now)
        if value is None:
            parts.append(rest[:end])
            rest = rest[end:]
        else:
            parts.append(rest[:start])
            parts.append(value)
            rest = rest[end + 1:]

    parts.append(rest)
    return "".join(parts)


def _volume_mount_roots() -> List[Path]:
    """Folders below which removable volumes are mounted by name."""
    roots = []
    user = os.environ.get("USER") or os.environ.get("USERNAME")
    if user:
        roots.append(Path("/media") / user)
        roots.append(Path("/run/media") / user)
    roots.extend([Path("/media"), Path("/mnt"), Path("/Volumes")])
    return roots


def expand_volume_name(phrase: str) -> str:
    """
    Expand a leading ``[volume name]`` into the folder the volume is mounted at.

    Only a bracket at the very beginning is considered, so folder names like
    ``/data/[stuff]`` are left alone. The input is returned unchanged if no
    mounted volume has that name. May block on slow media.
    """
    match = _VOLUME_PHRASE.match(phrase.lstrip())
    if not match:
        return phrase

    name = match.group("name")
    rest = match.group("rest")
    for root in _volume_mount_roots():
        candidate = root / name
        try:
            if candidate.is_dir():
                return str(candidate / rest) if rest else str(candidate)
        except OSError:
            continue

    logger.debug(f"Volume not found: [{name}]")
    return phrase


def _make_absolute(path: str) -> str:
    if os.path.isabs(path):
        return path
    # Tilde is a shell feature; support only the "~" and "~/..." forms.
    if path == "~" or path.startswith("~/"):
        return os.path.expanduser(path)
    return os.path.join(os.getcwd(), path)


def resolve_path(phrase: str) -> Path:
    """
    Resolve a folder path phrase into an absolute path.

    Steps: expand macros (before trimming), trim whitespace, expand a
    volume name, make relative paths absolute. ``.`` components and trailing
    separators are removed; ``..`` is kept since it may be relative to a
    symlink. Never raises.

    Args:
        phrase: Folder phrase as entered by the user

    Returns:
        The resolved path
    """
    path = expand_macros(phrase).strip()
    if not path:
        return Path()

    path = expand_volume_name(path)
    path = _make_absolute(path)
    return Path(path)


def path_key(path: Path) -> str:
    """Comparison key following the platform's path case rules."""
    return os.path.normcase(str(path))


def check_supported(phrases: Iterable[str]) -> None:
    """
    Fail early for folder phrases that cannot be monitored.

    Raises:
        UnsupportedProtocolError: If a phrase starts with e.g. ``sftp:``
    """
    phrases = list(phrases)
    for protocol in UNSUPPORTED_PROTOCOLS:
        for phrase in phrases:
            if phrase.strip().lower().startswith(protocol + ":"):
                raise UnsupportedProtocolError(protocol, phrase)
