import numpy as np
import numpy.testing as npt
import pytest

from conftest import sphere_quadrature
from tweezpy.functions.misc import combined_index, combined_index_inverse, max_linear_index
from tweezpy.functions.spherical import spharm, spherical_harmonics


def test_low_order_values():
    theta, phi = 0.7, 0.3
    Y, _, _ = spherical_harmonics(1, theta, phi)
    npt.assert_allclose(Y[0, 1], np.sqrt(3 / (4 * np.pi)) * np.cos(theta))
    npt.assert_allclose(
        Y[0, 2], -np.sqrt(3 / (8 * np.pi)) * np.sin(theta) * np.exp(1j * phi)
    )


def test_orthonormal_on_sphere():
    theta, phi, weights = sphere_quadrature(8, 12)
    Y, _, _ = spherical_harmonics(4, theta, phi)
    gram = (np.conj(Y) * weights[:, None]).T @ Y
    npt.assert_allclose(gram, np.eye(max_linear_index(4)), atol=1e-12)


def test_theta_derivative_matches_finite_difference():
    theta, phi, h = 0.7, 0.3, 1e-6
    _, Ytheta, _ = spherical_harmonics(5, theta, phi)
    Yp, _, _ = spherical_harmonics(5, theta + h, phi)
    Ym, _, _ = spherical_harmonics(5, theta - h, phi)
    npt.assert_allclose(Ytheta, (Yp - Ym) / (2 * h), rtol=1e-6, atol=1e-8)


def test_phi_derivative_is_imY_over_sin():
    theta, phi = np.array([0.4, 1.9]), np.array([0.3, -2.0])
    Y, _, Yphi = spherical_harmonics(5, theta, phi)
    _, m = combined_index_inverse(np.arange(1, max_linear_index(5) + 1))
    npt.assert_allclose(Yphi, 1j * m * Y / np.sin(theta)[:, None], atol=1e-12)


def test_finite_on_axis():
    Y, Ytheta, Yphi = spherical_harmonics(6, np.array([0.0, np.pi]), np.zeros(2))
    for values in (Y, Ytheta, Yphi):
        assert np.all(np.isfinite(values))
    _, m = combined_index_inverse(np.arange(1, max_linear_index(6) + 1))
    assert np.all(Yphi[:, np.abs(m) != 1] == 0)
    assert np.all(np.abs(Yphi[:, np.abs(m) == 1]) > 0)


def test_negative_orders_are_conjugates():
    theta, phi = np.array([0.2, 1.1, 2.5]), np.array([0.1, 2.0, -1.0])
    n, m = 4, np.arange(1, 5)
    Ypos, Ytpos, Yppos = spharm(n, m, theta, phi)
    Yneg, Ytneg, Ypneg = spharm(n, -m, theta, phi)
    sign = (-1.0) ** m
    npt.assert_allclose(Yneg, sign * np.conj(Ypos))
    npt.assert_allclose(Ytneg, sign * np.conj(Ytpos))
    npt.assert_allclose(Ypneg, sign * np.conj(Yppos))


@pytest.mark.parametrize("modes", [[1, 2, 3], [5, 24, 8], [15]])
def test_mode_selection_matches_full_table(modes):
    theta, phi = np.array([0.3, 1.4]), np.array([0.5, 3.0])
    full = spherical_harmonics(4, theta, phi)
    selected = spherical_harmonics(4, theta, phi, modes=modes)
    for whole, part in zip(full, selected):
        npt.assert_allclose(part, whole[:, np.asarray(modes) - 1])


def test_spharm_defaults_to_all_orders():
    Y, _, _ = spharm(3, None, 0.5, 0.2)
    full, _, _ = spherical_harmonics(3, 0.5, 0.2)
    cols = combined_index(np.full(7, 3), np.arange(-3, 4)) - 1
    npt.assert_allclose(Y, full[:, cols])
