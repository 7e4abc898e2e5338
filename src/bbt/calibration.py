"""Per-device calibration registry.

Profiles are created lazily the first time a device id is seen, from the
known-profile table in bbt_config.yaml.  Ordinary readings never modify a
profile; only ``update()`` (an explicit calibration routine) or ``restore()``
(state import) do.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping

from src.bbt.base import DeviceCalibrationProfile
from src.bbt.config_loader import EngineConfig, get_engine_config

logger = logging.getLogger("bbt.calibration")


class DeviceCalibrationRegistry:
    """Map of device id → DeviceCalibrationProfile.

    Usage::

        registry = DeviceCalibrationRegistry()
        profile = registry.get_or_create("fertility_tracker")   # offset +0.05°F
        registry.get_or_create("my-thermometer").profile        # 'manual'
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or get_engine_config()
        self._profiles: dict[str, DeviceCalibrationProfile] = {}

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._profiles

    def get_or_create(self, device_id: str) -> DeviceCalibrationProfile:
        """Return the profile for a device, initializing it on first sighting.

        Unknown device ids fall back to the default ('manual') profile.

        Args:
            device_id: Device identifier as submitted with the reading.

        Returns:
            The device's calibration profile.
        """
        profile = self._profiles.get(device_id)
        if profile is None:
            profile = self._config.device_profile(device_id)
            self._profiles[device_id] = profile
            logger.debug(
                "Initialized calibration for device %r from profile %r (offset=%+.2f°F)",
                device_id, profile.profile, profile.offset_f,
            )
        return profile

    def update(
        self,
        device_id: str,
        *,
        offset_f: float | None = None,
        reliability: float | None = None,
        precision_f: float | None = None,
    ) -> DeviceCalibrationProfile:
        """Explicitly recalibrate a device.

        Only the supplied fields change; readings already in the history keep
        the profile snapshot they were processed with.

        Args:
            device_id:   Device identifier.
            offset_f:    New additive offset.
            reliability: New reliability multiplier (0.0–1.0).
            precision_f: New precision (must be positive).

        Returns:
            The updated profile.

        Raises:
            ValueError: If reliability or precision is out of range.
        """
        if reliability is not None and not (0.0 <= reliability <= 1.0):
            raise ValueError(f"reliability must be in [0.0, 1.0], got {reliability}")
        if precision_f is not None and precision_f <= 0.0:
            raise ValueError(f"precision_f must be positive, got {precision_f}")

        current = self.get_or_create(device_id)
        changes: dict[str, float] = {}
        if offset_f is not None:
            changes["offset_f"] = float(offset_f)
        if reliability is not None:
            changes["reliability"] = float(reliability)
        if precision_f is not None:
            changes["precision_f"] = float(precision_f)

        updated = replace(current, **changes)
        self._profiles[device_id] = updated
        logger.info("Recalibrated device %r: %s", device_id, changes)
        return updated

    def profiles(self) -> dict[str, DeviceCalibrationProfile]:
        """Return a snapshot of all known device profiles."""
        return dict(self._profiles)

    def restore(self, profiles: Mapping[str, DeviceCalibrationProfile]) -> None:
        """Replace all profiles with a previously exported snapshot."""
        self._profiles = dict(profiles)
