import numpy as np
import pytest
from scipy.special import spherical_jn, spherical_yn

from tweezpy.bsc import Bsc
from tweezpy.config import set_settings
from tweezpy.functions.misc import combined_index_inverse, max_linear_index
from tweezpy.scattered import ScatteredBeam


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    for name in (
        "TWEEZPY_CONFIG",
        "TWEEZPY_POWERLOSS",
        "TWEEZPY_TRUNCATION_TOLERANCE",
        "TWEEZPY_SPARSE_THRESHOLD",
    ):
        monkeypatch.delenv(name, raising=False)
    set_settings(None)
    yield
    set_settings(None)


def mie_coefficients(nmax: int, x: float, m: complex):
    """Diagonal T-matrix entries of a homogeneous sphere (M and N families)."""
    n = np.arange(1, nmax + 1)
    mx = m * x

    jx = spherical_jn(n, x)
    jx_prime = spherical_jn(n, x, derivative=True)
    hx = jx + 1j * spherical_yn(n, x)
    hx_prime = jx_prime + 1j * spherical_yn(n, x, derivative=True)
    jmx = spherical_jn(n, mx)
    jmx_prime = spherical_jn(n, mx, derivative=True)

    djx = jx + x * jx_prime
    djmx = jmx + mx * jmx_prime
    dhx = hx + x * hx_prime

    tau1 = -(jmx * djx - jx * djmx) / (jmx * dhx - hx * djmx)
    tau2 = -(m**2 * jmx * djx - jx * djmx) / (m**2 * jmx * dhx - hx * djmx)
    return tau1, tau2


class MieSphere:
    """Homogeneous sphere scattering beams through its Mie T-matrix."""

    def __init__(self, radius: float, relative_index: complex, wavelength: float = 1.0):
        self.radius = radius
        self.relative_index = relative_index
        self.wavelength = wavelength

    def scatter(self, beam: Bsc) -> ScatteredBeam:
        nmax = beam.nmax
        x = 2 * np.pi / self.wavelength * self.radius
        tau1, tau2 = mie_coefficients(nmax, x, self.relative_index)
        n, _ = combined_index_inverse(np.arange(1, max_linear_index(nmax) + 1))
        a, b = beam.get_coefficients()
        sbeam = Bsc(
            tau1[n - 1][:, None] * a,
            tau2[n - 1][:, None] * b,
            basis="outgoing",
            wavelength=beam.wavelength,
            array_type=beam.array_type,
        )
        return ScatteredBeam(sbeam, incident_beam=beam, type="scattered")


@pytest.fixture
def lossless_sphere():
    return MieSphere(radius=0.5, relative_index=1.2)


@pytest.fixture
def absorbing_sphere():
    return MieSphere(radius=0.5, relative_index=1.2 + 0.5j)


def random_beam(nmax: int, seed: int = 0, **kwargs) -> Bsc:
    rng = np.random.default_rng(seed)
    size = max_linear_index(nmax)
    a = rng.normal(size=size) + 1j * rng.normal(size=size)
    b = rng.normal(size=size) + 1j * rng.normal(size=size)
    return Bsc(a, b, **kwargs)


def sphere_quadrature(ntheta: int, nphi: int):
    """Gauss-Legendre x uniform-phi directions and weights on the unit sphere."""
    x, w = np.polynomial.legendre.leggauss(ntheta)
    phi = 2 * np.pi * np.arange(nphi) / nphi
    theta, phi = np.meshgrid(np.arccos(x), phi, indexing="ij")
    weights = np.repeat(w, nphi) * 2 * np.pi / nphi
    return theta.ravel(), phi.ravel(), weights
