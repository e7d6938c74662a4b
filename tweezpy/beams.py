"""Analytic beams and their conversion to beam shape coefficients.

Beams are small immutable descriptions (:class:`PlaneWave`, :class:`Gaussian`,
:class:`Mathieu`) that are converted explicitly to :class:`~tweezpy.bsc.Bsc` with
:func:`as_bsc`. Field and mechanics methods on the descriptions delegate to
the converted coefficients, which are computed once per instance.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from functools import cached_property

import numpy as np
from scipy.special import mathieu_cem, mathieu_sem

from tweezpy.bsc import Bsc
from tweezpy.errors import AccuracyWarning
from tweezpy.functions.misc import combined_index, combined_index_inverse, ka2nmax, max_linear_index
from tweezpy.functions.spherical import spherical_harmonics
from tweezpy.scattered import ScatteredBeam

log = logging.getLogger(__name__)

MAPPINGS = ("sin", "tan", "theta")
PARITIES = ("even", "odd")


class AnalyticBeam:
    """Field and mechanics methods shared by the analytic beam descriptions."""

    def to_bsc(self, nmax: int | None = None) -> Bsc:
        raise NotImplementedError

    @cached_property
    def bsc(self) -> Bsc:
        """Coefficients at the default truncation."""
        return self.to_bsc()

    def ehfield(self, xyz, **kwargs):
        return self.bsc.ehfield(xyz, **kwargs)

    def efield(self, xyz, **kwargs):
        return self.bsc.efield(xyz, **kwargs)

    def hfield(self, xyz, **kwargs):
        return self.bsc.hfield(xyz, **kwargs)

    def force(self, other, **kwargs):
        return self.bsc.force(other, **kwargs)

    def torque(self, other, **kwargs):
        return self.bsc.torque(other, **kwargs)

    def forcetorque(self, other, **kwargs):
        return self.bsc.forcetorque(other, **kwargs)


def _default_nmax(nmax, radius, wavenumber) -> int:
    if nmax is not None:
        return int(nmax)
    if radius is not None:
        return ka2nmax(wavenumber * radius)
    message = "No nmax or radius given for the beam, using ka2nmax(1)"
    warnings.warn(message, AccuracyWarning, stacklevel=4)
    log.warning(message)
    return ka2nmax(1.0)


@dataclass(frozen=True, eq=False)
class PlaneWave(AnalyticBeam):
    """Plane wave, or several plane waves as columns of one beam.

    Parameters
    ----------
    theta, phi:
        Propagation direction(s) in radians.
    polarisation:
        Field at the origin in the ``(theta_hat, phi_hat)`` basis of the
        propagation direction; ``(1, 1j)`` is circular for a beam along +z.
        Shape ``(2,)`` or ``(2, ndirections)``.
    wavelength:
        Wavelength in the medium.
    nmax:
        Truncation order. Defaults to ``ka2nmax(k * radius)``.
    radius:
        Radius of the region the expansion must describe.
    array_type:
        Array type of the converted coefficients.
    """

    theta: float | np.ndarray = 0.0
    phi: float | np.ndarray = 0.0
    polarisation: tuple | np.ndarray = (1.0, 1j)
    wavelength: float = 1.0
    nmax: int | None = None
    radius: float | None = None
    array_type: str = "coherent"

    @property
    def wavenumber(self) -> float:
        return 2 * np.pi / self.wavelength

    def to_bsc(self, nmax: int | None = None) -> Bsc:
        """Regular-basis coefficients of the plane wave(s).

        .. math::

            a_{nm} &= 4\\pi N_n i^n (\\overline{Y_\\phi} E_\\theta - \\overline{Y_\\theta} E_\\phi), \\\\
            b_{nm} &= -4\\pi N_n i^{n+1} (\\overline{Y_\\theta} E_\\theta + \\overline{Y_\\phi} E_\\phi),

        with the harmonics evaluated in the propagation direction.
        """
        nmax = _default_nmax(self.nmax if nmax is None else nmax, self.radius, self.wavenumber)
        theta, phi = np.broadcast_arrays(
            np.atleast_1d(np.asarray(self.theta, dtype=float)),
            np.atleast_1d(np.asarray(self.phi, dtype=float)),
        )
        theta, phi = theta.ravel(), phi.ravel()
        polarisation = np.asarray(self.polarisation, dtype=complex).reshape(2, -1)
        polarisation = np.broadcast_to(polarisation, (2, theta.size))

        _, Ytheta, Yphi = spherical_harmonics(nmax, theta, phi)
        n, _ = combined_index_inverse(np.arange(1, max_linear_index(nmax) + 1))
        norm = 4 * np.pi / np.sqrt(n * (n + 1))
        Etheta, Ephi = polarisation[0][:, None], polarisation[1][:, None]

        a = norm * 1j**n * (np.conj(Yphi) * Etheta - np.conj(Ytheta) * Ephi)
        b = -norm * 1j ** (n + 1) * (np.conj(Ytheta) * Etheta + np.conj(Yphi) * Ephi)
        a, b = a.T, b.T

        magnitude = np.abs(a) ** 2 + np.abs(b) ** 2
        small = magnitude < 1e-15 * magnitude.max()
        a[small] = 0
        b[small] = 0

        log.debug("plane wave coefficients for %d directions, nmax %d", theta.size, nmax)
        return Bsc(
            a,
            b,
            basis="regular",
            array_type=self.array_type,
            wavelength=self.wavelength,
        )


def paraxial_radius(theta: np.ndarray, mapping: str) -> np.ndarray:
    """Paraxial radial coordinate of far-field angles for a mapping."""
    match mapping:
        case "sin":
            return np.sin(theta)
        case "tan":
            return np.tan(theta)
        case "theta":
            return np.asarray(theta, dtype=float)
        case _:
            raise ValueError(f"Unknown mapping: {mapping}, must be one of {MAPPINGS}")


@dataclass(frozen=True, eq=False)
class Gaussian(AnalyticBeam):
    """Paraxial Gaussian beam focused at ``position``.

    The coefficients are found by point matching the far field of the
    incoming part of the beam, a Gaussian angular envelope
    ``exp(-(k w0 rho / 2)**2)`` with ``rho`` the paraxial radius of the
    incoming direction, and zero in the outgoing hemisphere. Only the
    ``m = +-1`` modes of a linearly or circularly polarised beam contribute.

    Parameters
    ----------
    waist:
        Beam waist ``w0`` in the units of ``wavelength``.
    polarisation:
        Jones vector ``(Ex, Ey)``.
    wavelength:
        Wavelength in the medium.
    power:
        Power of the converted coefficients.
    mapping:
        Paraxial mapping of the far field: ``sin``, ``tan`` or ``theta``.
    position:
        Focal position, translated to after point matching.
    nmax:
        Truncation order, default ``ka2nmax(2 k w0)``.
    """

    waist: float = 1.0
    polarisation: tuple | np.ndarray = (1.0, 1j)
    wavelength: float = 1.0
    power: float = 1.0
    mapping: str = "sin"
    position: tuple | np.ndarray | None = None
    nmax: int | None = None
    array_type: str = field(default="coherent")

    @property
    def wavenumber(self) -> float:
        return 2 * np.pi / self.wavelength

    def to_bsc(self, nmax: int | None = None) -> Bsc:
        nmax = self.nmax if nmax is None else nmax
        if nmax is None:
            nmax = ka2nmax(2 * self.wavenumber * self.waist)
        nmax = int(nmax)

        ntheta = 2 * (nmax + 1)
        nphi = 4
        theta = (np.arange(ntheta) + 0.5) * np.pi / ntheta
        phi = np.arange(nphi) * 2 * np.pi / nphi
        theta, phi = (grid.ravel() for grid in np.meshgrid(theta, phi, indexing="ij"))

        degrees = np.arange(1, nmax + 1)
        modes = np.concatenate(
            [combined_index(degrees, -np.ones_like(degrees)), combined_index(degrees, np.ones_like(degrees))]
        )
        n = combined_index_inverse(modes)[0]
        norm = 1 / np.sqrt(n * (n + 1))
        _, Ytheta, Yphi = spherical_harmonics(nmax, theta, phi, modes=modes)

        Ma = norm * 1j ** (n + 1)
        Mb = norm * 1j**n
        matrix = np.block(
            [
                [Yphi * Ma, Ytheta * Mb],
                [-Ytheta * Ma, Yphi * Mb],
            ]
        )

        incoming = theta > np.pi / 2
        rho = paraxial_radius(np.pi - theta, self.mapping)
        envelope = np.where(incoming, np.exp(-((rho * self.wavenumber * self.waist / 2) ** 2)), 0.0)
        Ex, Ey = np.asarray(self.polarisation, dtype=complex)
        Etheta = -(Ex * np.cos(phi) + Ey * np.sin(phi)) * envelope
        Ephi = (-Ex * np.sin(phi) + Ey * np.cos(phi)) * envelope

        solution, *_ = np.linalg.lstsq(matrix, np.concatenate([Etheta, Ephi]), rcond=None)
        count = modes.size
        beam = Bsc.from_dense_beam_vectors(
            solution[:count],
            solution[count:],
            n,
            combined_index_inverse(modes)[1],
            basis="regular",
            array_type=self.array_type,
            wavelength=self.wavelength,
        )
        beam = beam.set_nmax(nmax).scale_power(self.power)
        log.debug("gaussian beam with waist %g matched at nmax %d", self.waist, nmax)

        if self.position is not None and np.any(np.asarray(self.position) != 0):
            beam = beam.translate_xyz(np.asarray(self.position, dtype=float))
        return beam


@dataclass(frozen=True, eq=False)
class Mathieu(AnalyticBeam):
    """Mathieu beam: a cone of plane waves weighted by an angular Mathieu function.

    The plane waves propagate at the polar angle ``theta`` and the azimuthal
    angular spectrum is ``ce_m(phi, q)`` (even parity) or ``se_m(phi, q)``
    (odd parity) with ``q`` the ellipticity. The azimuthal integral is
    evaluated with a uniform rule over the cone.

    Parameters
    ----------
    theta:
        Cone angle in radians.
    morder:
        Order ``m`` of the Mathieu function; odd beams need ``m >= 1``.
    ellipticity:
        Mathieu parameter ``q``; ``q = 0`` gives a Bessel beam.
    parity:
        ``even`` or ``odd``.
    polarisation:
        Jones vector ``(Ex, Ey)`` of every plane wave on the cone.
    wavelength:
        Wavelength in the medium.
    power:
        Power of the converted coefficients.
    nmax:
        Truncation order. Defaults to ``ka2nmax(k * radius)``.
    radius:
        Radius of the region the expansion must describe.
    """

    theta: float = np.pi / 4
    morder: int = 0
    ellipticity: float = 1.0
    parity: str = "even"
    polarisation: tuple | np.ndarray = (1.0, 0.0)
    wavelength: float = 1.0
    power: float = 1.0
    nmax: int | None = None
    radius: float | None = None
    array_type: str = "coherent"

    def __post_init__(self):
        if self.parity not in PARITIES:
            raise ValueError(f"Unknown parity: {self.parity}, must be one of {PARITIES}")
        if self.morder < 0 or (self.parity == "odd" and self.morder < 1):
            raise ValueError(f"Invalid order {self.morder} for an {self.parity} Mathieu beam")

    @property
    def wavenumber(self) -> float:
        return 2 * np.pi / self.wavelength

    def angular_spectrum(self, phi: np.ndarray) -> np.ndarray:
        """Mathieu function weighting the plane waves at azimuths ``phi``."""
        function = mathieu_cem if self.parity == "even" else mathieu_sem
        values, _ = function(self.morder, self.ellipticity, np.degrees(phi))
        return values

    def to_bsc(self, nmax: int | None = None) -> Bsc:
        nmax = _default_nmax(self.nmax if nmax is None else nmax, self.radius, self.wavenumber)
        nphi = max(4 * (nmax + 1), 64)
        phi = 2 * np.pi * np.arange(nphi) / nphi

        Ex, Ey = np.asarray(self.polarisation, dtype=complex)
        Etheta = np.cos(self.theta) * (Ex * np.cos(phi) + Ey * np.sin(phi))
        Ephi = -Ex * np.sin(phi) + Ey * np.cos(phi)
        waves = PlaneWave(
            theta=np.full(nphi, float(self.theta)),
            phi=phi,
            polarisation=np.stack([Etheta, Ephi]),
            wavelength=self.wavelength,
            nmax=nmax,
            array_type="array",
        ).to_bsc()

        weights = self.angular_spectrum(phi) / nphi
        a, b = waves.get_coefficients()
        beam = Bsc(
            a @ weights,
            b @ weights,
            basis="regular",
            array_type=self.array_type,
            wavelength=self.wavelength,
        )
        log.debug(
            "%s mathieu beam of order %d, q %g at nmax %d",
            self.parity, self.morder, self.ellipticity, nmax,
        )
        return beam.scale_power(self.power)


def as_bsc(beam, nmax: int | None = None) -> Bsc:
    """Convert any beam description to coefficients.

    Parameters
    ----------
    beam:
        :class:`~tweezpy.bsc.Bsc`, :class:`~tweezpy.scattered.ScatteredBeam`
        (its stored coefficients) or an analytic beam.
    nmax:
        Optional truncation order of the result.
    """
    if isinstance(beam, Bsc):
        return beam if nmax is None else beam.set_nmax(nmax)
    if isinstance(beam, ScatteredBeam):
        return beam.bsc if nmax is None else beam.bsc.set_nmax(nmax)
    if isinstance(beam, AnalyticBeam):
        return beam.bsc if nmax is None else beam.to_bsc(nmax)
    raise TypeError(f"Cannot convert {type(beam).__name__} to beam shape coefficients")


def beam_array(beams, array_type: str = "array") -> Bsc:
    """Combine several beams into one multi-column :class:`~tweezpy.bsc.Bsc`."""
    return Bsc.concatenate([as_bsc(beam) for beam in beams], array_type=array_type)
