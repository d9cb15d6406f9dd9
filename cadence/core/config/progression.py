"""
Progression settings loaded from YAML.

Purpose
-------
Holds the threshold table and the tier -> marker map that drive tier
derivation and role reconciliation. Settings are read once when the engine is
built; changing the file requires rebuilding the engine.

File Format
-----------
    progression:
      thresholds: [100, 300, 600]
      markers:
        1: "111111111111111111"
        3: "333333333333333333"
      persistent_markers: [3]
      notifications:
        template: "You reached tier {tier} in {track}!"

Keys under ``markers`` may be written as strings; they are coerced to ints.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union

import yaml

from cadence.core.config.errors import (
    ConfigInitializationError,
    ConfigValidationError,
)
from cadence.core.logging.logger import get_logger

logger = get_logger(__name__)

DEFAULT_NOTIFICATION_TEMPLATE = "Congratulations! You've reached **Tier {tier}** in {track}!"


def _coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ConfigValidationError(f"{field_name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError(
            f"{field_name} must be an integer, got {value!r}"
        ) from exc


@dataclass(frozen=True)
class ProgressionSettings:
    """
    Immutable progression configuration.

    Attributes
    ----------
    thresholds:
        Non-decreasing XP cutoffs; index ``i`` is the XP needed for tier ``i + 2``.
    markers:
        Sparse tier -> marker id mapping.
    persistent_markers:
        Tiers whose marker is never stripped by a strict sync.
    notification_template:
        ``str.format`` template with ``{tier}`` and ``{track}`` placeholders.
    """

    thresholds: Tuple[int, ...] = ()
    markers: Mapping[int, str] = field(default_factory=dict)
    persistent_markers: FrozenSet[int] = frozenset()
    notification_template: str = DEFAULT_NOTIFICATION_TEMPLATE

    def __post_init__(self) -> None:
        thresholds = tuple(
            _coerce_int(value, f"thresholds[{index}]")
            for index, value in enumerate(self.thresholds)
        )
        for index, value in enumerate(thresholds):
            if value < 0:
                raise ConfigValidationError(
                    f"thresholds[{index}] must be non-negative, got {value}"
                )
            if index and value < thresholds[index - 1]:
                raise ConfigValidationError(
                    "thresholds must be non-decreasing: "
                    f"thresholds[{index}]={value} < thresholds[{index - 1}]="
                    f"{thresholds[index - 1]}"
                )

        markers: Dict[int, str] = {}
        for raw_tier, marker_id in dict(self.markers).items():
            tier = _coerce_int(raw_tier, "markers key")
            if tier < 1:
                raise ConfigValidationError(f"marker tier must be >= 1, got {tier}")
            if marker_id is None or str(marker_id).strip() == "":
                raise ConfigValidationError(f"marker id for tier {tier} is empty")
            markers[tier] = str(marker_id).strip()

        persistent = frozenset(
            _coerce_int(tier, "persistent_markers") for tier in self.persistent_markers
        )

        object.__setattr__(self, "thresholds", thresholds)
        object.__setattr__(self, "markers", MappingProxyType(dict(sorted(markers.items()))))
        object.__setattr__(self, "persistent_markers", persistent)

    @property
    def max_tier(self) -> int:
        return len(self.thresholds) + 1

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ProgressionSettings":
        """
        Build settings from a parsed mapping.

        Accepts either the full document (with a top-level ``progression``
        key) or the ``progression`` section itself.
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigValidationError(
                f"progression settings must be a mapping, got {type(data).__name__}"
            )

        section = data.get("progression", data)
        if not isinstance(section, Mapping):
            raise ConfigValidationError("'progression' section must be a mapping")

        thresholds = section.get("thresholds") or []
        if not isinstance(thresholds, (list, tuple)):
            raise ConfigValidationError("'thresholds' must be a list of integers")

        markers = section.get("markers") or {}
        if not isinstance(markers, Mapping):
            raise ConfigValidationError("'markers' must be a mapping of tier -> marker id")

        persistent = section.get("persistent_markers") or []
        if not isinstance(persistent, (list, tuple, set, frozenset)):
            raise ConfigValidationError("'persistent_markers' must be a list of tiers")

        notifications = section.get("notifications") or {}
        template = notifications.get("template", DEFAULT_NOTIFICATION_TEMPLATE)

        return cls(
            thresholds=tuple(thresholds),
            markers=markers,
            persistent_markers=frozenset(persistent),
            notification_template=str(template),
        )


def load_progression_settings(path: Union[str, Path]) -> ProgressionSettings:
    """
    Load and validate progression settings from a YAML file.

    Raises
    ------
    ConfigInitializationError
        If the file is missing or is not valid YAML.
    ConfigValidationError
        If the content does not match the expected schema.
    """
    settings_path = Path(path)
    if not settings_path.exists():
        raise ConfigInitializationError(
            f"Progression settings file not found: {settings_path}"
        )

    try:
        with settings_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigInitializationError(
            f"Could not parse progression settings {settings_path}: {exc}"
        ) from exc

    settings = ProgressionSettings.from_mapping(data)

    logger.info(
        "Progression settings loaded",
        extra={
            "file": str(settings_path),
            "tier_count": settings.max_tier,
            "marker_count": len(settings.markers),
        },
    )

    return settings


__all__ = [
    "DEFAULT_NOTIFICATION_TEMPLATE",
    "ProgressionSettings",
    "load_progression_settings",
]
