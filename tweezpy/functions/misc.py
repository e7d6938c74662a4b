import numpy as np

from tweezpy.errors import InvalidOrderError


def combined_index(n, m):
    """
    Convert a multipole pair (n, m) to the linear mode index.

    Args:
        n (int | np.ndarray): Degree, ``n >= 1``.
        m (int | np.ndarray): Order, ``|m| <= n``.

    Returns:
        (int | np.ndarray): Linear index ``ci = n(n+1) + m`` (1-based).

    Raises:
        InvalidOrderError: If any pair is outside ``n >= 1, |m| <= n``.
    """
    n_arr = np.asarray(n)
    m_arr = np.asarray(m)
    if np.any(n_arr < 1) or np.any(np.abs(m_arr) > n_arr):
        raise InvalidOrderError("mode indices must satisfy n >= 1 and |m| <= n")
    ci = n_arr * (n_arr + 1) + m_arr
    if np.ndim(ci) == 0:
        return int(ci)
    return ci.astype(int)


def combined_index_inverse(ci):
    """
    Convert linear mode indices back to (n, m).

    Args:
        ci (int | np.ndarray): Linear indices, ``ci >= 1``.

    Returns:
        n (int | np.ndarray): Degrees.
        m (int | np.ndarray): Orders, parallel to ``n``.
    """
    ci_arr = np.asarray(ci)
    if np.any(ci_arr < 1):
        raise InvalidOrderError("linear mode indices start at 1")
    n = np.floor(np.sqrt(ci_arr)).astype(int)
    m = ci_arr - n * (n + 1)
    if np.ndim(n) == 0:
        return int(n), int(m)
    return n, m.astype(int)


def max_linear_index(nmax: int) -> int:
    """
    Number of modes stored for truncation order ``nmax``.

    Args:
        nmax (int): Truncation order.

    Returns:
        (int): ``nmax * (nmax + 2)``.
    """
    return int(nmax) * (int(nmax) + 2)


def nmax_from_length(length: int) -> int:
    """
    Truncation order of a coefficient vector with ``length`` rows.

    Args:
        length (int): Number of rows.

    Returns:
        (int): ``nmax`` such that ``length == nmax * (nmax + 2)``.

    Raises:
        InvalidOrderError: If ``length`` is neither 0 nor of that form.
    """
    length = int(length)
    if length == 0:
        return 0
    nmax = int(round(np.sqrt(length + 1))) - 1
    if nmax < 1 or max_linear_index(nmax) != length:
        raise InvalidOrderError(
            f"coefficient length {length} is not of the form nmax*(nmax+2)"
        )
    return nmax


def ka2nmax(ka):
    """
    Estimate the truncation order needed for a region of size ``ka``.

    Uses the Wiscombe-like rule ``nmax = ka + 3 ka^(1/3)``, rounded up.

    Args:
        ka (float | np.ndarray): Radius times wavenumber.

    Returns:
        (int | np.ndarray): Truncation order.
    """
    ka = np.abs(np.asarray(ka, dtype=float))
    nmax = np.ceil(ka + 3.0 * np.cbrt(ka)).astype(int)
    if np.ndim(nmax) == 0:
        return int(nmax)
    return nmax


def nmax2ka(nmax):
    """
    Inverse of :func:`ka2nmax`: the ``ka`` a truncation order covers.

    Solves ``x**3 + 3 x - nmax = 0`` for the real root ``x = ka^(1/3)``.

    Args:
        nmax (int | np.ndarray): Truncation order.

    Returns:
        (float | np.ndarray): Radius times wavenumber.
    """
    nmax_arr = np.atleast_1d(np.asarray(nmax, dtype=float))
    ka = np.zeros(nmax_arr.shape)
    for idx, value in enumerate(nmax_arr):
        roots = np.roots([1.0, 0.0, 3.0, -value])
        real_root = roots[np.argmin(np.abs(roots.imag))].real
        ka[idx] = real_root**3
    if np.ndim(nmax) == 0:
        return float(ka[0])
    return ka
