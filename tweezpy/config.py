"""Runtime settings.

The defaults used throughout the package (truncation tolerance, the power-loss
policy of :meth:`tweezpy.bsc.Bsc.set_nmax`, the radius substituted for exact
zeros in near-field evaluation, ...) live in one :class:`Settings` model. They
can be loaded from a json or yaml file and overridden through environment
variables (see :mod:`tweezpy.env`).
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

from tweezpy.env import env_overrides

log = logging.getLogger(__name__)


class Settings(BaseModel):
    """Package wide numerical defaults.

    Attributes
    ----------
    truncation_tolerance:
        Relative power loss accepted when reducing ``nmax``.
    powerloss:
        Policy applied when the tolerance is exceeded: ``ignore``, ``warn`` or
        ``error``.
    zero_radius:
        Dimensionless radius substituted for ``kr == 0`` in near fields.
    identity_tolerance:
        Rotation matrices with ``sum((I - R)**2)`` below this value are treated
        as the identity.
    sparse_fill_threshold:
        Coefficients are stored sparse when the fraction of non-zero entries is
        below this value.
    default_wavelength:
        Wavelength assigned to beams created without one.
    """

    truncation_tolerance: float = Field(default=1e-6, ge=0.0)
    powerloss: str = Field(default="warn", pattern=r"^(ignore|warn|error)$")
    zero_radius: float = Field(default=1e-15, gt=0.0)
    identity_tolerance: float = Field(default=1e-6, ge=0.0)
    sparse_fill_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    default_wavelength: float = Field(default=1.0, gt=0.0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_file(cls, path: str | Path) -> "Settings":
        """Read settings from a json or yaml file.

        Parameters
        ----------
        path:
            Path to a ``.json``, ``.yaml`` or ``.yml`` file holding a mapping
            of setting names to values.

        Returns
        -------
        Settings
            The validated settings.
        """
        path = Path(path)
        match path.suffix:
            case ".json":
                with open(path) as data:
                    config = json.load(data)
            case ".yaml" | ".yml":
                with open(path) as data:
                    config = yaml.safe_load(data)
            case _:
                raise ValueError(
                    "The provided settings file needs to be a json or yaml file!"
                )
        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ValueError(f"Settings file {path} does not contain a mapping")
        log.debug("read settings from %s", path)
        return cls(**config)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``TWEEZPY_CONFIG`` and the override variables."""
        base = {}
        config_path = os.environ.get("TWEEZPY_CONFIG", "").strip()
        if config_path:
            base = cls.from_file(config_path).model_dump()
        base.update(env_overrides())
        return cls(**base)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process wide settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def set_settings(settings: Settings | None) -> None:
    """Replace the process wide settings.

    Passing ``None`` discards the current settings so the next
    :func:`get_settings` call reads the environment again.
    """
    global _settings
    _settings = settings
