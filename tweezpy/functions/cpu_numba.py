from numba import jit, prange

import numpy as np


@jit(nopython=True, parallel=True, nogil=True, cache=True)
def legendre_normalized(nmax: int, cos_theta: np.ndarray, sin_theta: np.ndarray):
    """Fully normalised associated Legendre functions for all degrees up to `nmax`.

    Parameters
    ----------
    nmax : int
        Largest degree of the table.
    cos_theta : np.ndarray
        One-dimensional array of :math:`\\cos\\theta` values.
    sin_theta : np.ndarray
        One-dimensional array of :math:`\\sin\\theta` values (non-negative).

    Returns
    -------
    np.ndarray
        Array `plm` of shape `(nmax + 1, nmax + 2, points)`. `plm[n, m]` holds
        :math:`\\bar P_n^m(\\cos\\theta)` for `0 <= m <= n`, zero otherwise. The
        normalisation is such that :math:`\\bar P_n^m e^{im\\phi}` are orthonormal
        on the sphere and the Condon-Shortley phase is included. The extra
        column keeps `plm[n, m + 1]` addressable for `m = n`.

    Notes
    -----
    Sectoral terms are seeded with
    :math:`\\bar P_m^m = -\\sqrt{(2m+1)/(2m)}\\sin\\theta\\,\\bar P_{m-1}^{m-1}`
    and the columns filled with the standard three-term recursion in `n`.
    """
    points = cos_theta.size
    plm = np.zeros((nmax + 1, nmax + 2, points))

    for k in prange(points):
        ct = cos_theta[k]
        st = sin_theta[k]
        plm[0, 0, k] = 1.0 / np.sqrt(4.0 * np.pi)
        for m in range(1, nmax + 1):
            plm[m, m, k] = -np.sqrt((2.0 * m + 1.0) / (2.0 * m)) * st * plm[m - 1, m - 1, k]
        for m in range(0, nmax):
            plm[m + 1, m, k] = np.sqrt(2.0 * m + 3.0) * ct * plm[m, m, k]
        for m in range(0, nmax + 1):
            for n in range(m + 2, nmax + 1):
                denom = (n - m) * (n + m)
                anm = np.sqrt((2.0 * n - 1.0) * (2.0 * n + 1.0) / denom)
                bnm = np.sqrt(
                    (2.0 * n + 1.0) * (n + m - 1.0) * (n - m - 1.0) / (denom * (2.0 * n - 3.0))
                )
                plm[n, m, k] = anm * ct * plm[n - 1, m, k] - bnm * plm[n - 2, m, k]

    return plm
