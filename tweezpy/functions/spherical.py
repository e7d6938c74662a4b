"""Scalar spherical harmonics and their angular derivatives.

The harmonics are orthonormal on the unit sphere and include the
Condon-Shortley phase, :math:`Y_n^{-m} = (-1)^m \\overline{Y_n^m}`. Together with
the values, the angular derivatives

.. math::

    Y_\\theta = \\frac{\\partial Y}{\\partial \\theta}, \\qquad
    Y_\\phi = \\frac{1}{\\sin\\theta} \\frac{\\partial Y}{\\partial \\phi}
            = \\frac{i m Y}{\\sin\\theta}

are returned. Both are evaluated through recurrences in the normalised
Legendre table so they stay finite on the polar axis.

All functions order modes by the linear index ``ci = n(n+1) + m`` (column
``ci - 1``), matching :class:`tweezpy.bsc.Bsc` rows.
"""

from __future__ import annotations

import numpy as np

from tweezpy.functions.cpu_numba import legendre_normalized
from tweezpy.functions.misc import (
    combined_index,
    combined_index_inverse,
    max_linear_index,
)


def legendre_table(nmax: int, theta: np.ndarray) -> np.ndarray:
    """Normalised associated Legendre table :math:`\\bar P_n^m(\\cos\\theta)`.

    Parameters
    ----------
    nmax:
        Largest degree.
    theta:
        Polar angles (any shape, flattened).

    Returns
    -------
    np.ndarray
        Array of shape ``(nmax + 1, nmax + 2, theta.size)``, see
        :func:`tweezpy.functions.cpu_numba.legendre_normalized`.
    """
    theta = np.asarray(theta, dtype=float).ravel()
    return legendre_normalized(
        int(nmax),
        np.ascontiguousarray(np.cos(theta)),
        np.ascontiguousarray(np.sin(theta)),
    )


def spherical_harmonics(
    nmax: int, theta: np.ndarray, phi: np.ndarray, modes: np.ndarray | None = None
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Evaluate harmonics with ``1 <= n <= nmax`` at the given directions.

    Parameters
    ----------
    nmax:
        Truncation order.
    theta, phi:
        Polar and azimuthal angles, broadcast against each other and flattened.
    modes:
        Optional linear indices (1-based) selecting the returned columns. Only
        the degrees they touch are evaluated.

    Returns
    -------
    Y, Ytheta, Yphi:
        Complex arrays of shape ``(points, nmax * (nmax + 2))``, or
        ``(points, len(modes))`` when ``modes`` is given.
    """
    theta, phi = np.broadcast_arrays(
        np.asarray(theta, dtype=float), np.asarray(phi, dtype=float)
    )
    theta = theta.ravel()
    phi = phi.ravel()
    points = theta.size

    if modes is None:
        modes = np.arange(1, max_linear_index(nmax) + 1)
    modes = np.asarray(modes, dtype=int).ravel()
    mode_n, mode_m = combined_index_inverse(modes) if modes.size else (modes, modes)

    Y = np.zeros((points, modes.size), dtype=complex)
    Ytheta = np.zeros_like(Y)
    Yphi = np.zeros_like(Y)
    if modes.size == 0:
        return Y, Ytheta, Yphi

    degrees = np.unique(mode_n)
    plm = legendre_table(int(degrees[-1]), theta)

    for n in degrees:
        n = int(n)
        m = np.arange(0, n + 1)
        expimphi = np.exp(1j * np.outer(m, phi))

        pnm = plm[n, : n + 1, :]
        p_plus = plm[n, 1 : n + 2, :]
        # P_n^{-1} = -P_n^1 closes the m = 0 derivative
        p_minus = np.vstack([-plm[n, 1:2, :], plm[n, :n, :]])
        dtheta = 0.5 * (
            np.sqrt((n - m) * (n + m + 1))[:, None] * p_plus
            - np.sqrt((n + m) * (n - m + 1))[:, None] * p_minus
        )

        mm = m[1:]
        m_sin = np.zeros_like(pnm)
        m_sin[1:] = (
            -0.5
            * np.sqrt((2 * n + 1) / (2 * n - 1))
            * (
                np.sqrt((n + mm) * (n + mm - 1))[:, None] * plm[n - 1, 0:n, :]
                + np.sqrt((n - mm) * (n - mm - 1))[:, None] * plm[n - 1, 2 : n + 2, :]
            )
        )

        y_pos = pnm * expimphi
        yt_pos = dtheta * expimphi
        yp_pos = 1j * m_sin * expimphi

        cols = np.nonzero(mode_n == n)[0]
        order = mode_m[cols]
        mabs = np.abs(order)
        negative = (order < 0)[:, None]
        sign = ((-1.0) ** mabs)[:, None]

        for out, table in ((Y, y_pos), (Ytheta, yt_pos), (Yphi, yp_pos)):
            values = table[mabs]
            out[:, cols] = np.where(negative, sign * np.conj(values), values).T

    return Y, Ytheta, Yphi


def spharm(n: int, m, theta: np.ndarray, phi: np.ndarray):
    """Spherical harmonics of a single degree.

    Parameters
    ----------
    n:
        Degree.
    m:
        Order or array of orders (default all ``-n..n`` when ``None``).
    theta, phi:
        Evaluation directions.

    Returns
    -------
    Y, Ytheta, Yphi:
        Arrays of shape ``(points, len(m))``.
    """
    if m is None:
        m = np.arange(-n, n + 1)
    m = np.atleast_1d(m)
    return spherical_harmonics(n, theta, phi, modes=combined_index(np.full(m.shape, n), m))
