"""Rotation of beam shape coefficients.

A rotation ``R`` of the field, :math:`E'(\\mathbf r) = R E(R^T \\mathbf r)`,
acts on the coefficients of every degree independently through the Wigner
matrix

.. math::

    D^n_{m'm}(R) = \\int \\overline{Y_n^{m'}(\\hat r)}
        \\, Y_n^m(R^T \\hat r) \\, d\\Omega ,
    \\qquad a' = D a, \\quad b' = D b.

The degree one block follows from ``R`` directly, since the ``n = 1``
harmonics are linear in the Cartesian coordinates. Higher degrees are built
recursively by coupling the block of degree ``n - 1`` with the degree one
block,

.. math::

    D^n_{m'm} = \\sum_{\\mu', \\mu} C^{n m'}_{n-1, m'-\\mu'; 1 \\mu'}
        C^{n m}_{n-1, m-\\mu; 1 \\mu}
        D^{n-1}_{m'-\\mu', m-\\mu} D^1_{\\mu'\\mu},

where the ``C`` are the Clebsch-Gordan coefficients of the stretched
coupling ``(n - 1) + 1 = n``. Each degree costs nine shifted products of
``(2n+1)``-square blocks, so the full matrix costs ``O(nmax^3)``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
from scipy import sparse

from tweezpy.config import get_settings
from tweezpy.functions.misc import max_linear_index

if TYPE_CHECKING:
    from tweezpy.bsc import Bsc

log = logging.getLogger(__name__)

# columns: m = -1, 0, 1, with Y_1^m = sqrt(3 / 4pi) u_m . r
_SPHERICAL_BASIS = np.array(
    [
        [1, 0, -1],
        [-1j, 0, -1j],
        [0, np.sqrt(2), 0],
    ],
    dtype=complex,
) / np.sqrt(2)


def is_identity(R: np.ndarray) -> bool:
    """Whether ``R`` is within the configured tolerance of the identity."""
    return float(np.sum((np.eye(3) - R) ** 2)) < get_settings().identity_tolerance


def _stretched_clebsch_gordan(n: int) -> dict[int, np.ndarray]:
    """``C^{n m}_{n-1, m-mu; 1 mu}`` for ``m = -n..n``, keyed by ``mu``."""
    j = n - 1
    m = np.arange(-n, n + 1)
    scale = (2 * j + 1) * (2 * j + 2)
    return {
        1: np.sqrt(np.maximum((j + m) * (j + m + 1), 0) / scale),
        0: np.sqrt(np.maximum((j - m + 1) * (j + m + 1), 0) / ((2 * j + 1) * (j + 1))),
        -1: np.sqrt(np.maximum((j - m) * (j - m + 1), 0) / scale),
    }


def wigner_blocks(nmax: int, R: np.ndarray) -> list[np.ndarray]:
    """Wigner blocks ``D^1 .. D^nmax`` of a rotation, built recursively.

    Parameters
    ----------
    nmax:
        Highest degree.
    R:
        ``(3, 3)`` rotation matrix.

    Returns
    -------
    list[np.ndarray]
        ``(2n+1, 2n+1)`` blocks indexed ``[m' + n, m + n]``.
    """
    if nmax < 1:
        return []
    D1 = _SPHERICAL_BASIS.conj().T @ np.asarray(R, dtype=complex) @ _SPHERICAL_BASIS
    blocks = [D1]
    for n in range(2, nmax + 1):
        size = 2 * n + 1
        padded = np.zeros((size + 2, size + 2), dtype=complex)
        padded[2:-2, 2:-2] = blocks[-1]
        cg = _stretched_clebsch_gordan(n)

        block = np.zeros((size, size), dtype=complex)
        for mu_out in (-1, 0, 1):
            rows = slice(1 - mu_out, 1 - mu_out + size)
            for mu_in in (-1, 0, 1):
                cols = slice(1 - mu_in, 1 - mu_in + size)
                weight = D1[mu_out + 1, mu_in + 1]
                if weight == 0:
                    continue
                block += weight * np.outer(cg[mu_out], cg[mu_in]) * padded[rows, cols]
        blocks.append(block)
    return blocks


def wigner_rotation_matrix(nmax: int, R: np.ndarray) -> sparse.csr_matrix:
    """Block-diagonal Wigner rotation matrix.

    Parameters
    ----------
    nmax:
        Truncation order; the result is ``nmax(nmax+2)`` square.
    R:
        ``(3, 3)`` rotation matrix.

    Returns
    -------
    sparse.csr_matrix
        One ``(2n+1) x (2n+1)`` block per degree ``n = 1..nmax``.
    """
    R = np.asarray(R, dtype=float)
    if R.shape != (3, 3):
        raise ValueError(f"Rotation matrix must be 3x3, got {R.shape}")
    total = max_linear_index(nmax)
    if is_identity(R):
        return sparse.identity(total, dtype=complex, format="csr")
    if nmax == 0:
        return sparse.csr_matrix((0, 0), dtype=complex)

    blocks = wigner_blocks(nmax, R)
    log.debug("wigner rotation matrix for nmax %d", nmax)
    return sparse.block_diag(blocks, format="csr")


def _apply_wigner(beam: Bsc, D) -> Bsc:
    size = beam.shape[0]
    return beam.apply_per_component_operator(D[:size, :size])


def rotate_beam(
    beam: Bsc,
    R: np.ndarray | None = None,
    wigner=None,
    nmax: int | None = None,
    return_matrix: bool = False,
):
    """Rotate a beam by a rotation matrix or precomputed Wigner matrices.

    Parameters
    ----------
    beam:
        Beam to rotate.
    R:
        ``(3, 3)`` rotation matrix.
    wigner:
        Wigner matrix, or a list of them to build a beam array.
    nmax:
        Order at which ``D`` is evaluated when ``R`` is given; the matrix is
        computed at ``max(beam.nmax, nmax)`` so it can be reused.
    return_matrix:
        Also return the Wigner matrix (or list) that was applied.
    """
    if (R is None) == (wigner is None):
        raise ValueError("Exactly one of R or wigner must be given")

    if R is not None:
        R = np.asarray(R, dtype=float)
        order = beam.nmax if nmax is None else max(beam.nmax, int(nmax))
        D = wigner_rotation_matrix(order, R)
        result = beam if is_identity(R) else _apply_wigner(beam, D)
    elif isinstance(wigner, (list, tuple)):
        D = list(wigner)
        result = beam.concatenate([_apply_wigner(beam, item) for item in D], array_type="array")
    else:
        D = wigner
        result = _apply_wigner(beam, D)

    if return_matrix:
        return result, D
    return result
