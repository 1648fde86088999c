"""Thread-safe management of the configured watch targets."""

import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .exceptions import ConfigurationError
from .models import WatchTarget
from .path_resolver import check_supported, path_key, resolve_path


class TargetSet:
    """
    The folders configured for monitoring.

    Holds the unresolved phrases and re-resolves them on demand, because
    what a phrase points to (e.g. a volume name) can change while the
    monitor runs.
    """

    def __init__(self, phrases: Iterable[str]):
        """
        Initialize the target set.

        Args:
            phrases: Folder path phrases; blank entries are dropped

        Raises:
            ConfigurationError: If no non-blank phrase remains
        """
        self._targets: List[WatchTarget] = [
            WatchTarget(phrase) for phrase in phrases if phrase.strip()
        ]
        self._lock = threading.RLock()

        if not self._targets:
            raise ConfigurationError("A folder input field is empty.")

    @property
    def phrases(self) -> List[str]:
        """The configured phrases, in configured order."""
        return [target.phrase for target in self._targets]

    def check_supported(self) -> None:
        """
        Raises:
            UnsupportedProtocolError: If a phrase cannot be monitored
        """
        check_supported(self.phrases)

    def resolve(self) -> Dict[Path, str]:
        """
        Resolve every phrase again.

        Phrases resolving to the same folder collapse into one entry; the
        first configured phrase is kept. The result is ordered by the
        native path comparison key, independent of configured order.

        Returns:
            Mapping of resolved folder path to its phrase
        """
        resolved: Dict[str, tuple] = {}

        with self._lock:
            for target in self._targets:
                target.resolved = resolve_path(target.phrase)
                key = path_key(target.resolved)
                if key not in resolved:
                    resolved[key] = (target.resolved, target.phrase)

        return {path: phrase for _, (path, phrase) in sorted(resolved.items())}

    def find_target_for_path(self, path: Path) -> Optional[WatchTarget]:
        """
        Find which target folder contains the given path.

        Args:
            path: Path to check

        Returns:
            The target whose resolved folder contains this path, or None
        """
        path = Path(path_key(path))

        with self._lock:
            for target in self._targets:
                if target.resolved is None:
                    continue
                try:
                    path.relative_to(path_key(target.resolved))
                    return target
                except ValueError:
                    continue
            return None
