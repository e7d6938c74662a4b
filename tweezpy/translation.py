"""Translation of beam shape coefficients.

Axial translations are assembled in two steps. First the scalar axial
translation coefficients

.. math::

    \\alpha^m_{\\nu n}(d) = \\sum_p i^{p + \\nu - n} f_p(k|d|) s^p
        \\sqrt{4\\pi(2p+1)} \\, G^m_{\\nu n p},
    \\qquad
    G^m_{\\nu n p} = 2\\pi \\int_{-1}^{1}
        \\bar P_\\nu^m \\bar P_n^m \\bar P_p^0 \\, dx,

are computed, where ``f_p`` is the radial family of the beam, ``s`` the sign
of the displacement and the Gaunt-type integrals ``G`` are evaluated exactly
with Gauss-Legendre quadrature. Second the vector coefficients follow from

.. math::

    A_{\\mu n} &= \\sqrt{\\tfrac{\\mu(\\mu+1)}{n(n+1)}} \\left[\\alpha_{\\mu n}
        + kd \\left(\\frac{c_{\\mu+1,m}}{\\mu+1}\\alpha_{\\mu+1,n}
        + \\frac{c_{\\mu,m}}{\\mu}\\alpha_{\\mu-1,n}\\right)\\right],

    B_{\\mu n} &= \\sqrt{\\tfrac{\\mu(\\mu+1)}{n(n+1)}}
        \\frac{i m kd}{\\mu(\\mu+1)} \\alpha_{\\mu n},

with :math:`c_{\\nu,m} = \\sqrt{(\\nu^2-m^2)/((2\\nu-1)(2\\nu+1))}`. Off-axis
translations rotate the beam so the offset lies along z, translate and rotate
back.

References
----------
Videen, "Light scattering from a sphere near a plane interface", in
*Light Scattering from Microstructures* (2000); Nieminen et al., "Optical
tweezers computational toolbox", J. Opt. A 9, S196 (2007).
"""

from __future__ import annotations

import logging
import warnings
from typing import TYPE_CHECKING

import numpy as np
from scipy import sparse
from scipy.special import spherical_jn, spherical_yn

from tweezpy.errors import AccuracyWarning, BasisError, UnsupportedMultiOutputError
from tweezpy.functions.coordinates import rotation_to_direction, xyz2rtp
from tweezpy.functions.misc import combined_index, max_linear_index, nmax2ka
from tweezpy.functions.spherical import legendre_table
from tweezpy.rotation import wigner_rotation_matrix

if TYPE_CHECKING:
    from tweezpy.bsc import Bsc

log = logging.getLogger(__name__)


def _axial_radial(basis: str, p: np.ndarray, x: float) -> np.ndarray:
    if basis == "regular":
        return spherical_jn(p, x).astype(complex)
    if basis == "outgoing":
        return 0.5 * (spherical_jn(p, x) + 1j * spherical_yn(p, x))
    if basis == "incoming":
        return 0.5 * (spherical_jn(p, x) - 1j * spherical_yn(p, x))
    raise BasisError(f"Unknown beam basis: {basis}")


def _split_nmax(nmax) -> tuple[int, int]:
    nmax = np.atleast_1d(np.asarray(nmax, dtype=int)).ravel()
    if nmax.size == 1:
        return int(nmax[0]), int(nmax[0])
    if nmax.size == 2:
        return int(nmax[0]), int(nmax[1])
    raise ValueError("nmax must be a scalar or a (nmax_out, nmax_in) pair")


def scalar_axial_coefficients(
    nmax_out: int, nmax_in: int, kd: float, basis: str = "regular"
) -> list[np.ndarray]:
    """Scalar axial translation coefficients for every order ``m``.

    Parameters
    ----------
    nmax_out, nmax_in:
        Truncation orders of the translated and original expansions.
    kd:
        Signed displacement of the expansion origin times the wavenumber.
    basis:
        Radial family used for the translation kernel.

    Returns
    -------
    list[np.ndarray]
        ``alpha[m]`` of shape ``(nmax_out + 2, nmax_in + 1)`` indexed by
        ``[nu, n]`` for ``m = 0..min(nmax_out, nmax_in)``. The extra row
        ``nu = nmax_out + 1`` feeds the vector recurrence.
    """
    nu_max = nmax_out + 1
    pmax = nu_max + nmax_in
    x, w = np.polynomial.legendre.leggauss(pmax + 1)
    plm = legendre_table(pmax, np.arccos(x))

    p = np.arange(pmax + 1)
    sign = 1.0 if kd >= 0 else -1.0
    kernel = _axial_radial(basis, p, abs(kd)) * sign**p * np.sqrt(4 * np.pi * (2 * p + 1))

    nu = np.arange(nu_max + 1)[:, None, None]
    n = np.arange(nmax_in + 1)[None, :, None]
    pp = p[None, None, :]
    selection = ((nu + n + pp) % 2 == 0) & (pp >= np.abs(nu - n)) & (pp <= nu + n)
    phase = np.where(selection, 1j ** ((pp + nu - n) % 4), 0.0)

    pp0 = plm[: pmax + 1, 0, :] * w
    alphas = []
    for m in range(min(nmax_out, nmax_in) + 1):
        gaunt = 2 * np.pi * np.einsum(
            "vg,ng,pg->vnp",
            plm[: nu_max + 1, m, :],
            plm[: nmax_in + 1, m, :],
            pp0,
            optimize=True,
        )
        alphas.append(np.einsum("vnp,p->vn", gaunt * phase, kernel))
    return alphas


def translate_z(nmax, z: float, basis: str = "regular"):
    """Translation matrices for a displacement of the beam along z.

    Parameters
    ----------
    nmax:
        Truncation order, or ``(nmax_out, nmax_in)``.
    z:
        Distance the beam is moved, in wavelengths.
    basis:
        Wave basis of the beam being translated (``regular``, ``incoming``
        or ``outgoing``).

    Returns
    -------
    A, B:
        Sparse CSR matrices of shape ``(nmax_out(nmax_out+2), nmax_in(nmax_in+2))``
        with ``a' = A a + B b`` and ``b' = B a + A b``.
    """
    nmax_out, nmax_in = _split_nmax(nmax)
    shape = (max_linear_index(nmax_out), max_linear_index(nmax_in))

    if z == 0:
        A = sparse.eye(shape[0], shape[1], dtype=complex, format="csr")
        B = sparse.csr_matrix(shape, dtype=complex)
        return A, B

    # moving the beam by z moves the expansion origin by -z
    kd = -2 * np.pi * float(z)
    alphas = scalar_axial_coefficients(nmax_out, nmax_in, kd, basis)

    rows, cols, avals, bvals = [], [], [], []
    for m in range(-len(alphas) + 1, len(alphas)):
        alpha = alphas[abs(m)]
        mu = np.arange(max(1, abs(m)), nmax_out + 1)[:, None]
        n = np.arange(max(1, abs(m)), nmax_in + 1)[None, :]
        if mu.size == 0 or n.size == 0:
            continue

        c_up = np.sqrt((((mu + 1) ** 2 - m**2) / ((2 * mu + 1) * (2 * mu + 3))))
        c_down = np.sqrt(((mu**2 - m**2) / ((2 * mu - 1) * (2 * mu + 1))))
        mu_idx = mu.ravel()
        n_idx = n.ravel()
        base = alpha[np.ix_(mu_idx, n_idx)]
        above = alpha[np.ix_(mu_idx + 1, n_idx)]
        below = alpha[np.ix_(mu_idx - 1, n_idx)]

        norm = np.sqrt(mu * (mu + 1) / (n * (n + 1)))
        A = norm * (base + kd * (c_up / (mu + 1) * above + c_down / mu * below))
        B = norm * (1j * m * kd / (mu * (mu + 1))) * base

        mu_grid, n_grid = np.broadcast_arrays(mu, n)
        rows.append(combined_index(mu_grid.ravel(), m) - 1)
        cols.append(combined_index(n_grid.ravel(), m) - 1)
        avals.append(A.ravel())
        bvals.append(B.ravel())

    if rows:
        rows = np.concatenate(rows)
        cols = np.concatenate(cols)
        A = sparse.csr_matrix((np.concatenate(avals), (rows, cols)), shape=shape)
        B = sparse.csr_matrix((np.concatenate(bvals), (rows, cols)), shape=shape)
    else:
        A = sparse.csr_matrix(shape, dtype=complex)
        B = sparse.csr_matrix(shape, dtype=complex)

    log.debug("axial translation by %g wavelengths, nmax %s", z, (nmax_out, nmax_in))
    return A, B


def translate_beam_z(beam: Bsc, z, nmax: int | None = None, return_matrices: bool = False):
    """Translate a beam along the z axis.

    Parameters
    ----------
    beam:
        Beam to translate.
    z:
        Distance(s) in the units of ``beam.wavelength``. Several values give
        a beam array with one block of columns per distance.
    nmax:
        Truncation order of the result (defaults to ``beam.nmax``).
    return_matrices:
        Also return the ``A, B`` matrices (single distance only).

    Returns
    -------
    Bsc or tuple[Bsc, sparse.csr_matrix, sparse.csr_matrix]
        The translated beam, always in the regular basis.
    """
    z = np.atleast_1d(np.asarray(z, dtype=float)).ravel()
    if return_matrices and z.size > 1:
        raise UnsupportedMultiOutputError(
            "Translation matrices can only be returned for a single distance"
        )
    _check_validity(beam)
    return _translate_axial(beam, z, nmax, return_matrices)


def _check_validity(beam: Bsc) -> None:
    if beam.absdz > nmax2ka(beam.nmax) / beam.wavenumber:
        message = "Repeated translation of beam outside the region of validity of nmax"
        warnings.warn(message, AccuracyWarning, stacklevel=4)
        log.warning(message)


def _translate_axial(beam: Bsc, z: np.ndarray, nmax: int | None, return_matrices: bool):
    nmax_out = beam.nmax if nmax is None else int(nmax)
    kd_scale = beam.wavenumber / (2 * np.pi)
    beams = []
    A = B = None
    for distance in z:
        A, B = translate_z((nmax_out, beam.nmax), distance * kd_scale, basis=beam.basis)
        beams.append(beam.translate(A, B))

    if len(beams) == 1:
        result = beams[0]
    else:
        result = beams[0].concatenate(beams, array_type="array")
    result = result.with_basis("regular").with_absdz(beam.absdz + float(np.max(np.abs(z))))
    if return_matrices:
        return result, A, B
    return result


def translate_beam_rtp(
    beam: Bsc,
    rtp,
    nmax: int | None = None,
    return_matrices: bool = False,
    separate_rotation: bool = False,
):
    """Translate a beam by offsets given in spherical coordinates.

    The beam is rotated so the offset lies along z, translated axially and
    rotated back. Offsets on the z axis skip the rotations, ``theta == pi``
    becoming a negative axial translation.

    Parameters
    ----------
    beam:
        Beam to translate.
    rtp:
        ``(3,)`` or ``(3, N)`` offsets ``(r, theta, phi)``; ``r`` in the units
        of ``beam.wavelength``.
    nmax:
        Truncation order of the result (defaults to ``beam.nmax``).
    return_matrices:
        Also return the matrices of the full translation, ``D A D^H`` and
        ``D B D^H`` (single offset only).
    separate_rotation:
        With ``return_matrices``, return the axial matrices and the Wigner
        matrix ``(beam, Az, Bz, D)`` instead, suitable for
        :meth:`tweezpy.bsc.Bsc.translate_with`.
    """
    rtp = np.asarray(rtp, dtype=float).reshape(3, -1)
    if return_matrices and rtp.shape[1] > 1:
        raise UnsupportedMultiOutputError(
            "Translation matrices can only be returned for a single offset"
        )
    r, theta, phi = rtp
    nmax_out = beam.nmax if nmax is None else int(nmax)
    dnmax = max(nmax_out, beam.nmax)

    _check_validity(beam)
    on_axis = ((theta == 0) | (np.abs(theta) == np.pi)) & (phi == 0)
    if np.all(on_axis):
        r = np.where(np.abs(theta) == np.pi, -r, r)
        D = sparse.identity(max_linear_index(dnmax), dtype=complex, format="csr")
        if return_matrices:
            result, A, B = _translate_axial(beam, r[:1], nmax_out, True)
        else:
            result = _translate_axial(beam, r, nmax_out, False)
    else:
        beams = []
        for radius, polar, azimuth in zip(r, theta, phi):
            D = wigner_rotation_matrix(dnmax, rotation_to_direction(polar, azimuth))
            aligned = beam.rotate(wigner=D.conj().T)
            moved, A, B = _translate_axial(aligned, np.array([radius]), nmax_out, True)
            beams.append(moved.rotate(wigner=D))
        if len(beams) == 1:
            result = beams[0]
        else:
            result = beams[0].concatenate(beams, array_type="array")

    if not return_matrices:
        return result
    if separate_rotation:
        return result, A, B, D

    size_out, size_in = A.shape
    D_out = D[:size_out, :size_out]
    D_in = D[:size_in, :size_in].conj().T
    return result, D_out @ A @ D_in, D_out @ B @ D_in


def translate_beam_xyz(beam: Bsc, xyz, **kwargs):
    """Translate a beam by Cartesian offsets, see :func:`translate_beam_rtp`."""
    xyz = np.asarray(xyz, dtype=float).reshape(3, -1)
    return translate_beam_rtp(beam, xyz2rtp(xyz), **kwargs)
