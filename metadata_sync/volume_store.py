"""Persisted per-channel volume preference.

Volumes live in one small JSON document keyed by ``<channel>PlayerVolume``.
Writers replace the whole file atomically; concurrent writers from other
processes simply overwrite each other (last write wins).
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Union

logger = logging.getLogger(__name__)

DEFAULT_VOLUME = 0.7


class VolumeStore:
    """Durable key/value storage for channel volume."""

    def __init__(self, path: Union[str, Path]):
        """Initialize the store.

        Args:
            path: JSON file path. Parent directories are created on first write.
        """
        self.path = Path(path).expanduser()

    @staticmethod
    def key_for(channel: str) -> str:
        return f"{channel}PlayerVolume"

    def load(self, channel: str) -> float:
        """Read a channel's volume.

        Returns:
            float: Stored volume in [0, 1], or ``DEFAULT_VOLUME`` when the
            value is absent, unparseable or out of range.
        """
        raw = self._read().get(self.key_for(channel))
        if raw is None:
            return DEFAULT_VOLUME

        try:
            volume = float(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring unparseable stored volume for {channel}: {raw!r}")
            return DEFAULT_VOLUME

        if not 0.0 <= volume <= 1.0:
            logger.warning(f"Ignoring out-of-range stored volume for {channel}: {volume}")
            return DEFAULT_VOLUME

        return volume

    def save(self, channel: str, volume: float) -> None:
        """Persist a channel's volume.

        Write failures are logged, not raised: the preference is not worth
        interrupting playback for.
        """
        data = self._read()
        data[self.key_for(channel)] = str(volume)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=".volume-", suffix=".json"
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                os.replace(tmp_path, self.path)
            except BaseException:
                os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.warning(f"Could not persist volume for {channel} to {self.path}: {e}")

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read volume store {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Volume store {self.path} is not a JSON object; ignoring it")
            return {}
        return data
