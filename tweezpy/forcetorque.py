"""Optical force, torque and spin transfer from beam shape coefficients.

The momentum and angular momentum carried away by the total outgoing field
``p, q`` is compared with that brought in by the incident field ``a, b``
(Farsund and Felderhof, Physica A 227, 213 (1996), in the form of Crichton
and Marsden, Optics Express 2000). All sums are closed form in the
coefficients and their neighbours ``(n+1, m)``, ``(n, m+1)``,
``(n+1, m+1)`` and ``(n+1, m-1)``.

Forces are in units of ``P n / c`` and torques and spin in units of
``P / omega`` where ``P`` is the beam power, so a beam normalised to unit
power gives efficiencies directly.
"""

from __future__ import annotations

import logging

import numpy as np

from tweezpy.bsc import Bsc
from tweezpy.errors import ShapeMismatchError
from tweezpy.functions.misc import combined_index_inverse, max_linear_index
from tweezpy.scattered import Particle, ScatteredBeam

log = logging.getLogger(__name__)


def _total_beam(sbeam) -> Bsc:
    if isinstance(sbeam, ScatteredBeam):
        return sbeam.total_beam
    return sbeam


def _prepare(ibeam: Bsc, sbeam):
    """Equalise the two beams and return the coefficient columns."""
    sbeam = _total_beam(sbeam)
    incoherent = ibeam.array_type == "incoherent" or sbeam.array_type == "incoherent"
    if ibeam.array_type == "coherent":
        ibeam = ibeam.sum()
    if sbeam.array_type == "coherent":
        sbeam = sbeam.sum()

    nmax = max(ibeam.nmax, sbeam.nmax)
    a, b = ibeam.set_nmax(nmax).get_coefficients()
    p, q = sbeam.set_nmax(nmax).get_coefficients()

    ncols = max(a.shape[1], p.shape[1])
    if a.shape[1] not in (1, ncols) or p.shape[1] not in (1, ncols):
        raise ShapeMismatchError(
            "Number of incident and scattered beams must be 1 or matching, "
            f"got {a.shape[1]} and {p.shape[1]}"
        )
    a, b = (np.repeat(x, ncols, axis=1) if x.shape[1] == 1 else x for x in (a, b))
    p, q = (np.repeat(x, ncols, axis=1) if x.shape[1] == 1 else x for x in (p, q))
    return nmax, a, b, p, q, incoherent


class _Terms:
    """Coefficients with the neighbouring modes each sum needs."""

    def __init__(self, nmax: int, a, b, p, q):
        total = max_linear_index(nmax)
        if total:
            n, m = combined_index_inverse(np.arange(1, total + 1))
        else:
            n = m = np.zeros(0, dtype=int)
        self.n = n[:, None].astype(float)
        self.m = m[:, None].astype(float)

        # incident and scattered N coefficients carry an extra factor of i
        coeffs = {"a": a, "b": 1j * b, "p": p, "q": 1j * q}
        pad = 2 * nmax + 3
        index = np.arange(total)
        neighbours = {
            "np1": index + 2 * n + 2,
            "mp1": index + 1,
            "np1mp1": index + 2 * n + 3,
            "np1mm1": index + 2 * n + 1,
        }
        at_edge = (m == n)[:, None]
        for name, values in coeffs.items():
            setattr(self, name, values)
            padded = np.vstack([values, np.zeros((pad, values.shape[1]), dtype=complex)])
            for suffix, rows in neighbours.items():
                shifted = padded[rows]
                if suffix == "mp1":
                    shifted = np.where(at_edge, 0, shifted)
                setattr(self, f"{name}{suffix}", shifted)


def _force(t: _Terms) -> np.ndarray:
    n, m = t.n, t.m
    Az = m / n / (n + 1) * np.imag(-t.a * np.conj(t.b) + np.conj(t.q) * t.p)
    Bz = (
        1 / (n + 1)
        * np.sqrt(n * (n - m + 1) * (n + m + 1) * (n + 2) / (2 * n + 3) / (2 * n + 1))
        * np.imag(
            t.anp1 * np.conj(t.a)
            + t.bnp1 * np.conj(t.b)
            - t.pnp1 * np.conj(t.p)
            - t.qnp1 * np.conj(t.q)
        )
    )
    fz = 2 * np.sum(Az + Bz, axis=0)

    Axy = (
        1j / n / (n + 1) * np.sqrt((n - m) * (n + m + 1))
        * (
            np.conj(t.pmp1) * t.q
            - np.conj(t.amp1) * t.b
            - np.conj(t.qmp1) * t.p
            + np.conj(t.bmp1) * t.a
        )
    )
    Bxy = (
        1j / (n + 1) * np.sqrt(n * (n + 2)) / np.sqrt((2 * n + 1) * (2 * n + 3))
        * (
            np.sqrt((n + m + 1) * (n + m + 2))
            * (
                t.p * np.conj(t.pnp1mp1)
                + t.q * np.conj(t.qnp1mp1)
                - t.a * np.conj(t.anp1mp1)
                - t.b * np.conj(t.bnp1mp1)
            )
            + np.sqrt((n - m + 1) * (n - m + 2))
            * (
                t.pnp1mm1 * np.conj(t.p)
                + t.qnp1mm1 * np.conj(t.q)
                - t.anp1mm1 * np.conj(t.a)
                - t.bnp1mm1 * np.conj(t.b)
            )
        )
    )
    fxy = np.sum(Axy + Bxy, axis=0)
    return np.stack([np.real(fxy), np.imag(fxy), fz])


def _torque(t: _Terms) -> np.ndarray:
    n, m = t.n, t.m
    tz = np.sum(
        m * (np.abs(t.a) ** 2 + np.abs(t.b) ** 2 - np.abs(t.p) ** 2 - np.abs(t.q) ** 2),
        axis=0,
    )
    txy = np.sum(
        np.sqrt((n - m) * (n + m + 1))
        * (
            t.a * np.conj(t.amp1)
            + t.b * np.conj(t.bmp1)
            - t.p * np.conj(t.pmp1)
            - t.q * np.conj(t.qmp1)
        ),
        axis=0,
    )
    return np.stack([np.real(txy), np.imag(txy), tz])


def _spin(t: _Terms) -> np.ndarray:
    n, m = t.n, t.m
    Cz = m / n / (n + 1) * (
        -np.abs(t.a) ** 2 + np.abs(t.q) ** 2 - np.abs(t.b) ** 2 + np.abs(t.p) ** 2
    )
    Dz = (
        -2 / (n + 1)
        * np.sqrt(n * (n - m + 1) * (n + m + 1) * (n + 2) / (2 * n + 3) / (2 * n + 1))
        * np.real(
            t.anp1 * np.conj(t.b)
            - t.bnp1 * np.conj(t.a)
            - t.pnp1 * np.conj(t.q)
            + t.qnp1 * np.conj(t.p)
        )
    )
    sz = np.sum(Cz + Dz, axis=0)

    Cxy = (
        1j / n / (n + 1) * np.sqrt((n - m) * (n + m + 1))
        * (
            np.conj(t.pmp1) * t.p
            - np.conj(t.amp1) * t.a
            + np.conj(t.qmp1) * t.q
            - np.conj(t.bmp1) * t.b
        )
    )
    Dxy = (
        1j / (n + 1) * np.sqrt(n * (n + 2)) / np.sqrt((2 * n + 1) * (2 * n + 3))
        * (
            np.sqrt((n + m + 1) * (n + m + 2))
            * (
                t.p * np.conj(t.qnp1mp1)
                - t.q * np.conj(t.pnp1mp1)
                - t.a * np.conj(t.bnp1mp1)
                + t.b * np.conj(t.anp1mp1)
            )
            + np.sqrt((n - m + 1) * (n - m + 2))
            * (
                t.pnp1mm1 * np.conj(t.q)
                - t.qnp1mm1 * np.conj(t.p)
                - t.anp1mm1 * np.conj(t.b)
                + t.bnp1mm1 * np.conj(t.a)
            )
        )
    )
    sxy = np.sum(Cxy + Dxy, axis=0)
    return np.stack([np.imag(sxy), np.real(sxy), sz])


_QUANTITIES = {"force": _force, "torque": _torque, "spin": _spin}


def _finish(values: np.ndarray, incoherent: bool) -> np.ndarray:
    if incoherent:
        values = values.sum(axis=1, keepdims=True)
    if values.shape[1] == 1:
        return values[:, 0]
    return values


def _compute(ibeam: Bsc, sbeam, quantities: tuple[str, ...]) -> list[np.ndarray]:
    nmax, a, b, p, q, incoherent = _prepare(ibeam, sbeam)
    terms = _Terms(nmax, a, b, p, q)
    return [_finish(_QUANTITIES[name](terms), incoherent) for name in quantities]


def _particle_results(ibeam: Bsc, particle: Particle, position, rotation, quantities):
    positions = np.zeros((3, 1)) if position is None else np.asarray(position, dtype=float).reshape(3, -1)
    if rotation is None:
        rotations = [None]
    else:
        rotation = np.asarray(rotation, dtype=float)
        rotations = [rotation[:, i : i + 3] for i in range(0, rotation.shape[1], 3)]

    results = {name: [] for name in quantities}
    for offset in positions.T:
        moved = ibeam.translate_xyz(-offset) if np.any(offset) else ibeam
        for R in rotations:
            local = moved if R is None else moved.rotate(R=R.T)
            values = _compute(local, particle.scatter(local), quantities)
            for name, value in zip(quantities, values):
                if R is not None:
                    value = R @ value
                results[name].append(value)

    log.debug(
        "computed %s for %d positions and %d rotations",
        ", ".join(quantities), positions.shape[1], len(rotations),
    )
    out = []
    for name in quantities:
        stacked = [value.reshape(3, -1) for value in results[name]]
        combined = np.hstack(stacked)
        out.append(combined[:, 0] if combined.shape[1] == 1 else combined)
    return out


def _dispatch(ibeam: Bsc, other, position, rotation, quantities):
    if isinstance(other, (Bsc, ScatteredBeam)):
        if position is not None or rotation is not None:
            raise ValueError("position and rotation require a particle, not a scattered beam")
        return _compute(ibeam, other, quantities)
    if isinstance(other, Particle):
        return _particle_results(ibeam, other, position, rotation, quantities)
    raise TypeError(f"Cannot compute mechanics against {type(other).__name__}")


def forcetorque(ibeam: Bsc, other, position=None, rotation=None):
    """Force, torque and spin transferred from ``ibeam`` to a particle.

    Parameters
    ----------
    ibeam:
        Incident beam (regular basis).
    other:
        Scattered beam (:class:`~tweezpy.bsc.Bsc` holding the total outgoing
        field, or a :class:`~tweezpy.scattered.ScatteredBeam`), or a particle
        with a ``scatter(beam)`` method.
    position:
        ``(3, N)`` particle positions, particle only. The beam is translated by
        ``-position`` before scattering.
    rotation:
        ``(3, 3N)`` particle orientations, particle only. The beam is rotated
        by ``R^T`` before scattering and the results rotated back by ``R``.

    Returns
    -------
    force, torque, spin:
        Real arrays of shape ``(3,)``, or ``(3, N)`` for ``N`` beams or
        positions. Incoherent beam arrays are summed.
    """
    return tuple(_dispatch(ibeam, other, position, rotation, ("force", "torque", "spin")))


def force(ibeam: Bsc, other, position=None, rotation=None) -> np.ndarray:
    """Force only, see :func:`forcetorque`."""
    return _dispatch(ibeam, other, position, rotation, ("force",))[0]


def torque(ibeam: Bsc, other, position=None, rotation=None) -> np.ndarray:
    """Torque only, see :func:`forcetorque`."""
    return _dispatch(ibeam, other, position, rotation, ("torque",))[0]


def spin(ibeam: Bsc, other, position=None, rotation=None) -> np.ndarray:
    """Spin transfer only, see :func:`forcetorque`."""
    return _dispatch(ibeam, other, position, rotation, ("spin",))[0]
