"""Coordinate and vector conversions between Cartesian and spherical systems.

Coordinates are stored column-wise as ``(3, N)`` arrays, spherical
coordinates ordered ``(r, theta, phi)``. Vector values may carry extra trailing
axes (one per beam) which are converted independently.
"""

from __future__ import annotations

import numpy as np


def xyz2rtp(xyz: np.ndarray) -> np.ndarray:
    """Cartesian to spherical coordinates.

    Parameters
    ----------
    xyz:
        Array of shape ``(3, N)`` (or ``(3,)``).

    Returns
    -------
    np.ndarray
        ``(r, theta, phi)`` with the same shape. The polar angle of the
        origin is reported as 0.
    """
    xyz = np.asarray(xyz, dtype=float)
    x, y, z = xyz[0], xyz[1], xyz[2]
    r = np.sqrt(x**2 + y**2 + z**2)
    with np.errstate(invalid="ignore", divide="ignore"):
        theta = np.where(r > 0, np.arccos(np.clip(z / np.where(r > 0, r, 1.0), -1, 1)), 0.0)
    phi = np.arctan2(y, x)
    return np.stack([r, theta, phi])


def rtp2xyz(rtp: np.ndarray) -> np.ndarray:
    """Spherical to Cartesian coordinates (inverse of :func:`xyz2rtp`)."""
    rtp = np.asarray(rtp, dtype=float)
    r, theta, phi = rtp[0], rtp[1], rtp[2]
    return np.stack(
        [
            r * np.sin(theta) * np.cos(phi),
            r * np.sin(theta) * np.sin(phi),
            r * np.cos(theta),
        ]
    )


def _unit_vectors(theta: np.ndarray, phi: np.ndarray) -> np.ndarray:
    """Rows ``r_hat, theta_hat, phi_hat`` in Cartesian components, shape (3, 3, N)."""
    st, ct = np.sin(theta), np.cos(theta)
    sp, cp = np.sin(phi), np.cos(phi)
    zero = np.zeros_like(theta)
    return np.array(
        [
            [st * cp, st * sp, ct],
            [ct * cp, ct * sp, -st],
            [-sp, cp, zero],
        ]
    )


def rtpv2xyzv(values: np.ndarray, rtp: np.ndarray) -> np.ndarray:
    """Convert spherical vector components to Cartesian components.

    Parameters
    ----------
    values:
        Vector components ``(v_r, v_theta, v_phi)``, shape ``(3, N, ...)``.
    rtp:
        Locations of the vectors, shape ``(3, N)``.

    Returns
    -------
    np.ndarray
        ``(v_x, v_y, v_z)`` with the shape of ``values``.
    """
    rtp = np.asarray(rtp, dtype=float).reshape(3, -1)
    basis = _unit_vectors(rtp[1], rtp[2])
    return np.einsum("ijn,in...->jn...", basis, np.asarray(values))


def xyzv2rtpv(values: np.ndarray, xyz: np.ndarray) -> np.ndarray:
    """Convert Cartesian vector components at ``xyz`` to spherical components."""
    rtp = xyz2rtp(np.asarray(xyz, dtype=float).reshape(3, -1))
    basis = _unit_vectors(rtp[1], rtp[2])
    return np.einsum("ijn,jn...->in...", basis, np.asarray(values))


def rotx(angle: float) -> np.ndarray:
    """Rotation matrix about the x axis (angle in radians)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def roty(angle: float) -> np.ndarray:
    """Rotation matrix about the y axis (angle in radians)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def rotz(angle: float) -> np.ndarray:
    """Rotation matrix about the z axis (angle in radians)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def rotation_to_direction(theta: float, phi: float) -> np.ndarray:
    """Rotation taking the z axis to the direction ``(theta, phi)``."""
    return rotz(phi) @ roty(theta)
