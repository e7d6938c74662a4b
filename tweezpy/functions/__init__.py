"""Low-level numerical kernels and special functions.

This subpackage contains the mode-index bookkeeping, coordinate conversions,
spherical harmonics (with a Numba-accelerated Legendre kernel) and the
spherical Bessel/Hankel radial functions used by the beam algebra.
"""
