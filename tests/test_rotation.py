import numpy as np
import numpy.testing as npt
import pytest

from conftest import random_beam, sphere_quadrature
from tweezpy.beams import PlaneWave
from tweezpy.functions.coordinates import rotation_to_direction, rotx, roty, rotz, xyz2rtp
from tweezpy.functions.spherical import spherical_harmonics
from tweezpy.rotation import is_identity, wigner_rotation_matrix


def _projected_wigner(nmax: int, R: np.ndarray) -> np.ndarray:
    """Wigner matrix from exact quadrature of conj(Y(r)) Y(R^T r)."""
    theta, phi, weights = sphere_quadrature(nmax + 2, 2 * nmax + 2)
    xyz = np.stack([np.sin(theta) * np.cos(phi), np.sin(theta) * np.sin(phi), np.cos(theta)])
    rtp = xyz2rtp(R.T @ xyz)
    Y, _, _ = spherical_harmonics(nmax, theta, phi)
    rotated, _, _ = spherical_harmonics(nmax, rtp[1], rtp[2])
    return (Y.conj().T * weights) @ rotated


def test_identity_rotation() -> None:
    beam = random_beam(3)
    assert is_identity(np.eye(3))
    assert not is_identity(rotz(0.1))
    assert beam.rotate(R=np.eye(3)) is beam
    npt.assert_array_equal(wigner_rotation_matrix(3, np.eye(3)).toarray(), np.eye(15))


def test_wigner_matrix_is_unitary_and_block_diagonal() -> None:
    D = wigner_rotation_matrix(4, rotation_to_direction(0.7, -1.2)).toarray()
    npt.assert_allclose(D @ D.conj().T, np.eye(24), atol=1e-12)
    assert np.all(D[:3, 3:] == 0)
    assert np.all(D[3:8, 8:] == 0)


def test_wigner_matrices_compose() -> None:
    R1, R2 = rotx(0.4) @ rotz(1.1), roty(-0.9) @ rotz(0.3)
    D1 = wigner_rotation_matrix(3, R1)
    D2 = wigner_rotation_matrix(3, R2)
    D21 = wigner_rotation_matrix(3, R2 @ R1)
    npt.assert_allclose((D2 @ D1).toarray(), D21.toarray(), atol=1e-12)


@pytest.mark.parametrize(
    "R",
    [rotation_to_direction(0.7, -1.2), rotx(0.4) @ roty(2.2) @ rotz(-0.8), roty(np.pi)],
)
def test_recursive_wigner_matches_projection(R: np.ndarray) -> None:
    npt.assert_allclose(
        wigner_rotation_matrix(6, R).toarray(), _projected_wigner(6, R), atol=1e-12
    )


def test_wigner_matrix_stays_unitary_at_high_order() -> None:
    D = wigner_rotation_matrix(40, rotx(0.3) @ rotz(1.7) @ roty(-2.4))
    npt.assert_allclose((D @ D.conj().T).toarray(), np.eye(D.shape[0]), atol=1e-10)


def test_rotation_about_z_is_a_phase() -> None:
    beam = random_beam(3)
    rotated = beam.rotate_z(0.7)
    _, m = beam.get_mode_indices()
    phase = np.exp(-1j * m * 0.7)[:, None]
    npt.assert_allclose(rotated.a, phase * beam.a, atol=1e-12)
    npt.assert_allclose(rotated.b, phase * beam.b, atol=1e-12)


def test_rotated_field() -> None:
    beam = random_beam(3)
    R = rotation_to_direction(0.4, 1.1)
    rotated = beam.rotate(R=R)
    rng = np.random.default_rng(1)
    xyz = rng.uniform(-0.5, 0.5, size=(3, 10))
    expected = R @ beam.efield(R.T @ xyz).vxyz
    npt.assert_allclose(rotated.efield(xyz).vxyz, expected, atol=1e-10)


def test_rotated_plane_wave_matches_direction() -> None:
    along_z = PlaneWave(nmax=6).to_bsc()
    along_x = PlaneWave(theta=np.pi / 2, nmax=6).to_bsc()
    npt.assert_allclose(
        along_z.rotate_y(np.pi / 2).get_coefficients(packed=True),
        along_x.get_coefficients(packed=True),
        atol=1e-10,
    )


def test_rotate_yz_matches_direction() -> None:
    along_z = PlaneWave(nmax=5).to_bsc()
    tilted = PlaneWave(theta=0.6, phi=0.9, nmax=5).to_bsc()
    npt.assert_allclose(
        along_z.rotate_yz(0.6, 0.9).get_coefficients(packed=True),
        tilted.get_coefficients(packed=True),
        atol=1e-10,
    )


def test_rotation_matrix_reuse() -> None:
    beam = random_beam(2)
    rotated, D = beam.rotate(R=rotx(0.5), nmax=4, return_matrix=True)
    assert D.shape == (24, 24)
    larger = random_beam(4, seed=8)
    npt.assert_allclose(
        larger.rotate(wigner=D).get_coefficients(packed=True),
        larger.rotate_x(0.5).get_coefficients(packed=True),
        atol=1e-12,
    )
    npt.assert_allclose(
        rotated.get_coefficients(packed=True),
        beam.rotate(wigner=D).get_coefficients(packed=True),
    )


def test_list_of_wigner_matrices_gives_beam_array() -> None:
    beam = random_beam(2)
    Ds = [wigner_rotation_matrix(2, rotx(angle)) for angle in (0.1, 0.2)]
    rotated = beam.rotate(wigner=Ds)
    assert rotated.nbeams == 2
    assert rotated.array_type == "array"
    npt.assert_allclose(
        rotated[1].get_coefficients(packed=True),
        beam.rotate_x(0.2).get_coefficients(packed=True),
        atol=1e-12,
    )

    xyz = np.array([[0.1, -0.2], [0.0, 0.3], [0.2, 0.1]])
    values = rotated.efield(xyz).vxyz
    assert values.shape == (3, 2, 2)
    npt.assert_allclose(values[..., 0], beam.rotate_x(0.1).efield(xyz).vxyz, atol=1e-12)
    npt.assert_allclose(values[..., 1], beam.rotate_x(0.2).efield(xyz).vxyz, atol=1e-12)

    coherent = beam.with_array_type("coherent").tile(2)
    assert coherent.rotate(wigner=Ds).array_type == "array"


def test_rotation_argument_checks() -> None:
    beam = random_beam(2)
    with pytest.raises(ValueError):
        beam.rotate()
    with pytest.raises(ValueError):
        beam.rotate(R=np.eye(3), wigner=np.eye(8))
    with pytest.raises(ValueError):
        wigner_rotation_matrix(2, np.eye(2))
