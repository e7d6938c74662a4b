"""Spherical Bessel and Hankel functions for VSWF radial parts.

Every function returns the pair ``(z_n, dz_n)`` where ``dz_n`` is the
derivative term that appears in the tangential part of the ``N`` wave
functions,

.. math::

    dz_n(x) = \\frac{1}{x}\\frac{d}{dx}\\left[x z_n(x)\\right]
            = z_{n-1}(x) - \\frac{n}{x} z_n(x).

The arguments broadcast like numpy ufuncs.
"""

from __future__ import annotations

import numpy as np
from scipy.special import spherical_jn, spherical_yn

from tweezpy.config import get_settings
from tweezpy.errors import BasisError


def sbesselj(n, kr):
    """Spherical Bessel function of the first kind and its derivative term.

    Parameters
    ----------
    n:
        Degrees (``n >= 1`` for the derivative term to be defined).
    kr:
        Dimensionless radial argument.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        ``(j_n, dj_n)``.
    """
    n = np.asarray(n)
    kr = np.asarray(kr, dtype=float)
    jn = spherical_jn(n, kr)
    djn = spherical_jn(n - 1, kr) - n / kr * jn
    return jn, djn


def sbesselh1(n, kr):
    """Outgoing spherical Hankel function :math:`h_n^{(1)} = j_n + i y_n`."""
    n = np.asarray(n)
    kr = np.asarray(kr, dtype=float)
    hn = spherical_jn(n, kr) + 1j * spherical_yn(n, kr)
    hn1 = spherical_jn(n - 1, kr) + 1j * spherical_yn(n - 1, kr)
    return hn, hn1 - n / kr * hn


def sbesselh2(n, kr):
    """Incoming spherical Hankel function :math:`h_n^{(2)} = j_n - i y_n`."""
    n = np.asarray(n)
    kr = np.asarray(kr, dtype=float)
    hn = spherical_jn(n, kr) - 1j * spherical_yn(n, kr)
    hn1 = spherical_jn(n - 1, kr) - 1j * spherical_yn(n - 1, kr)
    return hn, hn1 - n / kr * hn


RADIAL_FAMILIES = {
    "regular": sbesselj,
    "outgoing": sbesselh1,
    "incoming": sbesselh2,
}


def guard_radius(kr) -> np.ndarray:
    """Replace exact zeros by the configured tiny radius."""
    kr = np.array(kr, dtype=float, copy=True)
    kr[kr == 0] = get_settings().zero_radius
    return kr


def radial_functions(basis: str, n, kr):
    """Radial functions for a wave basis.

    Incoming and outgoing functions are halved so that a regular wave equals
    the sum of its incoming and outgoing parts with the same coefficients.

    Parameters
    ----------
    basis:
        ``regular``, ``incoming`` or ``outgoing``.
    n:
        Degrees.
    kr:
        Dimensionless radii; exact zeros are guarded.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        ``(z_n, dz_n)`` broadcast over ``n`` and ``kr``.
    """
    try:
        family = RADIAL_FAMILIES[basis]
    except KeyError:
        raise BasisError(f"Unknown beam basis: {basis}") from None
    zn, dzn = family(n, guard_radius(kr))
    if basis != "regular":
        zn = zn / 2
        dzn = dzn / 2
    return zn, dzn
