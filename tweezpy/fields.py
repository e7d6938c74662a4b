"""Near and far field evaluation of VSWF expansions.

Near fields sum the vector spherical wave functions directly,

.. math::

    E_r &= \\sum N_n \\frac{n(n+1)}{kr} z_n Y_n^m \\, q_{nm}, \\\\
    E_\\theta &= \\sum N_n \\left(z_n Y_\\phi \\, p_{nm} + dz_n Y_\\theta \\, q_{nm}\\right), \\\\
    E_\\phi &= \\sum N_n \\left(-z_n Y_\\theta \\, p_{nm} + dz_n Y_\\phi \\, q_{nm}\\right),

with ``p = a``, ``q = b`` and :math:`N_n = 1/\\sqrt{n(n+1)}`. The magnetic
field uses the same sums with ``p`` and ``q`` exchanged, multiplied by
``-i``. Far fields replace the radial functions by their asymptotic phases,
:math:`i^{n+1}, i^n` for incoming and :math:`(-i)^{n+1}, (-i)^n` for outgoing
waves; regular expansions have no far field.

The angular (and radial) tables can be returned as immutable
:class:`NearfieldData` / :class:`FarfieldData` values and handed back to
later calls on the same grid to skip their evaluation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from tweezpy.errors import BasisError
from tweezpy.field_vector import FieldVector
from tweezpy.functions.coordinates import rtpv2xyzv, xyz2rtp
from tweezpy.functions.misc import combined_index_inverse
from tweezpy.functions.radial import guard_radius, radial_functions
from tweezpy.functions.spherical import spherical_harmonics

if TYPE_CHECKING:
    from tweezpy.bsc import Bsc

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class NearfieldData:
    """Tables for near-field evaluation on a fixed grid.

    Attributes
    ----------
    kr, theta, phi:
        Dimensionless radii (zeros guarded) and angles of the grid.
    basis:
        Radial family the tables were built for.
    ci:
        Sorted 1-based linear indices of the tabulated modes.
    zn, dzn:
        Radial function and derivative term per point and mode.
    Y, Ytheta, Yphi:
        Spherical harmonics per point and mode.
    """

    kr: np.ndarray
    theta: np.ndarray
    phi: np.ndarray
    basis: str
    ci: np.ndarray
    zn: np.ndarray
    dzn: np.ndarray
    Y: np.ndarray
    Ytheta: np.ndarray
    Yphi: np.ndarray


@dataclass(frozen=True)
class FarfieldData:
    """Angular tables for far-field evaluation on a fixed set of directions."""

    theta: np.ndarray
    phi: np.ndarray
    ci: np.ndarray
    Ytheta: np.ndarray
    Yphi: np.ndarray


def _field_coefficients(beam: Bsc) -> tuple[np.ndarray, np.ndarray]:
    a, b = beam.get_coefficients()
    if beam.array_type == "coherent":
        a = a.sum(axis=1, keepdims=True)
        b = b.sum(axis=1, keepdims=True)
    return a, b


def _active_modes(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.nonzero(np.any(a != 0, axis=1) | np.any(b != 0, axis=1))[0] + 1


def _select(data, ci: np.ndarray) -> np.ndarray:
    """Columns of ``data`` holding the modes ``ci``."""
    columns = np.searchsorted(data.ci, ci)
    if np.any(columns >= data.ci.size) or np.any(data.ci[np.minimum(columns, data.ci.size - 1)] != ci):
        raise ValueError("Cached field data does not contain all modes of the beam")
    return columns


def _same_grid(*pairs) -> bool:
    return all(x.shape == y.shape and np.allclose(x, y) for x, y in pairs)


def _nearfield_tables(basis, kr, theta, phi, ci) -> NearfieldData:
    if ci.size == 0:
        empty = np.zeros((kr.size, 0), dtype=complex)
        return NearfieldData(kr, theta, phi, basis, ci, empty, empty, empty, empty, empty)
    n, _ = combined_index_inverse(ci)
    degrees, inverse = np.unique(n, return_inverse=True)
    zn, dzn = radial_functions(basis, degrees[None, :], kr[:, None])
    Y, Ytheta, Yphi = spherical_harmonics(int(degrees[-1]), theta, phi, modes=ci)
    log.debug("near-field tables for %d points and %d modes", kr.size, ci.size)
    return NearfieldData(
        kr, theta, phi, basis, ci, zn[:, inverse], dzn[:, inverse], Y, Ytheta, Yphi
    )


def _pack_values(components, single: bool) -> np.ndarray:
    values = np.stack(components)
    if single:
        values = values[..., 0]
    return values


def ehfield_rtp(
    beam: Bsc,
    rtp,
    calc_e: bool = True,
    calc_h: bool = True,
    save_data: bool = False,
    data: NearfieldData | None = None,
):
    """Near fields at spherical coordinates.

    Parameters
    ----------
    beam:
        Beam to evaluate.
    rtp:
        ``(3, N)`` points ``(r, theta, phi)``, ``r`` in the beam's length units.
    calc_e, calc_h:
        Which fields to compute; a skipped field is returned as zeros.
    save_data:
        Also return the :class:`NearfieldData` built for this grid.
    data:
        Tables from a previous call on the same grid and basis.

    Returns
    -------
    E, H or E, H, data:
        :class:`FieldVector` in the spherical basis. Beam arrays that are not
        coherent add a trailing axis with one field per column.
    """
    rtp = np.asarray(rtp, dtype=float).reshape(3, -1)
    kr = guard_radius(rtp[0] * abs(beam.wavenumber))
    theta, phi = rtp[1], rtp[2]

    a, b = _field_coefficients(beam)
    ci = _active_modes(a, b)

    if data is None:
        data = _nearfield_tables(beam.basis, kr, theta, phi, ci)
        columns = np.arange(ci.size)
    else:
        if data.basis != beam.basis or not _same_grid(
            (data.kr, kr), (data.theta, theta), (data.phi, phi)
        ):
            raise ValueError("Cached near-field data belongs to a different grid or basis")
        columns = _select(data, ci)

    n, _ = combined_index_inverse(ci) if ci.size else (ci, ci)
    norm = 1 / np.sqrt(n * (n + 1))
    zn = data.zn[:, columns] * norm
    dzn = data.dzn[:, columns] * norm
    Y, Ytheta, Yphi = data.Y[:, columns], data.Ytheta[:, columns], data.Yphi[:, columns]
    radial = zn * Y * (n * (n + 1)) / kr[:, None]

    p = a[ci - 1]
    q = b[ci - 1]
    single = a.shape[1] == 1
    shape = (kr.size, a.shape[1])
    zeros = np.zeros(shape, dtype=complex)

    def components(p, q):
        return [
            radial @ q,
            (zn * Yphi) @ p + (dzn * Ytheta) @ q,
            -(zn * Ytheta) @ p + (dzn * Yphi) @ q,
        ]

    E = components(p, q) if calc_e else [zeros] * 3
    H = [-1j * value for value in components(q, p)] if calc_h else [zeros] * 3

    E = FieldVector(rtp, _pack_values(E, single), "spherical")
    H = FieldVector(rtp, _pack_values(H, single), "spherical")
    if save_data:
        return E, H, data
    return E, H


def ehfield(beam: Bsc, xyz, **kwargs):
    """Near fields at Cartesian points, see :func:`ehfield_rtp`.

    Returns :class:`FieldVector` objects in the Cartesian basis.
    """
    xyz = np.asarray(xyz, dtype=float).reshape(3, -1)
    rtp = xyz2rtp(xyz)
    result = ehfield_rtp(beam, rtp, **kwargs)
    E = FieldVector(xyz, rtpv2xyzv(result[0].values, rtp), "cartesian")
    H = FieldVector(xyz, rtpv2xyzv(result[1].values, rtp), "cartesian")
    return (E, H) + tuple(result[2:])


def ehfarfield(
    beam: Bsc,
    rtp,
    calc_e: bool = True,
    calc_h: bool = True,
    save_data: bool = False,
    data: FarfieldData | None = None,
):
    """Far fields in the given directions.

    Parameters
    ----------
    beam:
        Beam in the incoming or outgoing basis.
    rtp:
        ``(2, N)`` directions ``(theta, phi)`` or ``(3, N)`` points whose
        radius is only carried to the result.
    calc_e, calc_h, save_data, data:
        As for :func:`ehfield_rtp`, with :class:`FarfieldData` tables.

    Returns
    -------
    E, H or E, H, data:
        :class:`FieldVector` in the spherical basis, radial components zero.
    """
    rtp = np.asarray(rtp, dtype=float)
    if rtp.shape[0] == 2:
        rtp = rtp.reshape(2, -1)
        rtp = np.vstack([np.ones(rtp.shape[1]), rtp])
    rtp = rtp.reshape(3, -1)
    theta, phi = rtp[1], rtp[2]

    coeffs = _field_coefficients(beam)
    zero = [np.zeros_like(coeffs[0])] * 2
    if beam.basis == "incoming":
        a, b = coeffs
        p, q = zero
    elif beam.basis == "outgoing":
        a, b = zero
        p, q = coeffs
    else:
        raise BasisError("Regular wavefunctions go to zero in the far field")

    ci = _active_modes(*coeffs)
    if data is None:
        if ci.size:
            _, Ytheta, Yphi = spherical_harmonics(
                int(combined_index_inverse(ci)[0].max()), theta, phi, modes=ci
            )
        else:
            Ytheta = Yphi = np.zeros((theta.size, 0), dtype=complex)
        data = FarfieldData(theta, phi, ci, Ytheta, Yphi)
        columns = np.arange(ci.size)
    else:
        if not _same_grid((data.theta, theta), (data.phi, phi)):
            raise ValueError("Cached far-field data belongs to a different grid")
        columns = _select(data, ci)

    n = combined_index_inverse(ci)[0][:, None] if ci.size else ci[:, None]
    norm = 1 / np.sqrt(n * (n + 1))
    Ytheta, Yphi = data.Ytheta[:, columns], data.Yphi[:, columns]
    rows = ci - 1

    def components(a, b, p, q):
        first = norm * (1j ** (n + 1) * a[rows] + (-1j) ** (n + 1) * p[rows])
        second = norm * (1j**n * b[rows] + (-1j) ** n * q[rows])
        return [
            np.zeros((theta.size, a.shape[1]), dtype=complex),
            Yphi @ first + Ytheta @ second,
            -Ytheta @ first + Yphi @ second,
        ]

    single = coeffs[0].shape[1] == 1
    zeros = [np.zeros((theta.size, coeffs[0].shape[1]), dtype=complex)] * 3
    E = components(a, b, p, q) if calc_e else zeros
    H = [-1j * value for value in components(b, a, q, p)] if calc_h else zeros

    E = FieldVector(rtp, _pack_values(E, single), "spherical")
    H = FieldVector(rtp, _pack_values(H, single), "spherical")
    if save_data:
        return E, H, data
    return E, H


def poynting(beam: Bsc, xyz) -> FieldVector:
    """Time averaged Poynting vector ``0.5 Re(E x conj(H))`` at Cartesian points."""
    E, H = ehfield(beam, xyz)
    values = 0.5 * np.real(np.cross(E.vxyz, np.conj(H.vxyz), axis=0))
    return FieldVector(E.locations, values, "cartesian")


def poynting_farfield(beam: Bsc, rtp) -> FieldVector:
    """Far-field Poynting vector in the spherical basis."""
    E, H = ehfarfield(beam, rtp)
    values = 0.5 * np.real(np.cross(E.vrtp, np.conj(H.vrtp), axis=0))
    return FieldVector(E.locations, values, "spherical")
