"""Field values paired with the locations they were evaluated at."""

from __future__ import annotations

import numpy as np

from tweezpy.functions.coordinates import rtp2xyz, rtpv2xyzv, xyz2rtp, xyzv2rtpv


class FieldVector:
    """Complex vector field sampled at a set of points.

    Parameters
    ----------
    locations:
        ``(3, N)`` coordinates of the samples, Cartesian ``(x, y, z)`` when
        ``basis == "cartesian"`` and ``(r, theta, phi)`` when
        ``basis == "spherical"``.
    values:
        ``(3, N)`` vector components in the same basis as the locations. An
        extra trailing axis holds one field per beam of a beam array.
    basis:
        ``cartesian`` or ``spherical``.

    Notes
    -----
    Conversions are lossless; :attr:`vxyz` and :attr:`vrtp` recompute the
    components in the requested basis on every access.
    """

    def __init__(self, locations: np.ndarray, values: np.ndarray, basis: str = "cartesian"):
        if basis not in ("cartesian", "spherical"):
            raise ValueError(f"Unknown field vector basis: {basis}")
        locations = np.asarray(locations, dtype=float).reshape(3, -1)
        values = np.asarray(values)
        if values.shape[0] != 3 or values.shape[1] != locations.shape[1]:
            raise ValueError(
                f"Field values of shape {values.shape} do not match "
                f"{locations.shape[1]} locations"
            )
        self.locations = locations
        self.values = values
        self.basis = basis

    @property
    def xyz(self) -> np.ndarray:
        """Cartesian sample locations."""
        if self.basis == "cartesian":
            return self.locations
        return rtp2xyz(self.locations)

    @property
    def rtp(self) -> np.ndarray:
        """Spherical sample locations."""
        if self.basis == "spherical":
            return self.locations
        return xyz2rtp(self.locations)

    @property
    def vxyz(self) -> np.ndarray:
        """Cartesian components ``(Ex, Ey, Ez)``."""
        if self.basis == "cartesian":
            return self.values
        return rtpv2xyzv(self.values, self.locations)

    @property
    def vrtp(self) -> np.ndarray:
        """Spherical components ``(Er, Etheta, Ephi)``."""
        if self.basis == "spherical":
            return self.values
        return xyzv2rtpv(self.values, self.locations)

    @property
    def nbeams(self) -> int:
        return 1 if self.values.ndim == 2 else self.values.shape[2]

    def to_cartesian(self) -> "FieldVector":
        return FieldVector(self.xyz, self.vxyz, "cartesian")

    def to_spherical(self) -> "FieldVector":
        return FieldVector(self.rtp, self.vrtp, "spherical")

    def __add__(self, other: "FieldVector") -> "FieldVector":
        if not isinstance(other, FieldVector):
            return NotImplemented
        if self.basis == other.basis:
            return FieldVector(self.locations, self.values + other.values, self.basis)
        return FieldVector(self.xyz, self.vxyz + other.vxyz, "cartesian")

    def __repr__(self) -> str:
        return (
            f"FieldVector(points={self.locations.shape[1]}, "
            f"beams={self.nbeams}, basis={self.basis!r})"
        )
