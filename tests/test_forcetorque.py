import numpy as np
import numpy.testing as npt
import pytest

from conftest import MieSphere, mie_coefficients, random_beam
from tweezpy.beams import PlaneWave, beam_array
from tweezpy.bsc import Bsc
from tweezpy.errors import ShapeMismatchError
from tweezpy.forcetorque import force, forcetorque, spin, torque
from tweezpy.functions.coordinates import roty
from tweezpy.functions.misc import combined_index_inverse
from tweezpy.scattered import Particle, ScatteredBeam


def _momentum_flux(beam: Bsc, direction: int) -> np.ndarray:
    """Integral of ``|E_far|^2 * direction * r_hat`` over the sphere."""
    x, w = np.polynomial.legendre.leggauss(30)
    theta = np.pi / 2 * (x + 1)
    wtheta = np.pi / 2 * w * np.sin(theta)
    nphi = 16
    phi = 2 * np.pi * np.arange(nphi) / nphi
    theta, phi = (grid.ravel() for grid in np.meshgrid(theta, phi, indexing="ij"))
    weights = np.repeat(wtheta, nphi) * 2 * np.pi / nphi

    E = beam.efarfield(np.stack([theta, phi]))
    intensity = np.sum(np.abs(E.vrtp) ** 2, axis=0)
    rhat = np.stack([np.sin(theta) * np.cos(phi), np.sin(theta) * np.sin(phi), np.cos(theta)])
    return direction * rhat @ (weights * intensity)


def _zero_outgoing(nmax: int) -> Bsc:
    size = nmax * (nmax + 2)
    return Bsc(np.zeros(size), np.zeros(size), basis="outgoing")


def test_force_is_incoming_momentum_flux() -> None:
    ibeam = random_beam(3)
    expected = _momentum_flux(ibeam.with_basis("incoming"), -1)
    npt.assert_allclose(force(ibeam, _zero_outgoing(3)), expected, atol=1e-10)


def test_force_balances_incoming_and_outgoing_flux() -> None:
    ibeam = random_beam(3, seed=1)
    sbeam = random_beam(3, seed=2, basis="outgoing")
    expected = _momentum_flux(ibeam.with_basis("incoming"), -1) - _momentum_flux(sbeam, 1)
    npt.assert_allclose(force(ibeam, sbeam), expected, atol=1e-10)


def test_torque_of_absorbed_beam() -> None:
    ibeam = random_beam(3)
    _, m = ibeam.get_mode_indices()
    a, b = ibeam.get_coefficients()
    expected = np.sum(m * (np.abs(a[:, 0]) ** 2 + np.abs(b[:, 0]) ** 2))
    assert torque(ibeam, _zero_outgoing(3))[2] == pytest.approx(expected)


def test_circular_plane_wave_carries_unit_angular_momentum() -> None:
    beam = PlaneWave(nmax=6).to_bsc()
    f, t, s = forcetorque(beam, _zero_outgoing(6))
    assert t[2] == pytest.approx(beam.power)
    npt.assert_allclose(t[:2], 0, atol=1e-12)
    npt.assert_allclose(f[:2], 0, atol=1e-12)
    assert f[2] > 0


def test_unscattered_beam_feels_nothing() -> None:
    ibeam = random_beam(4)
    for value in forcetorque(ibeam, ibeam.with_basis("outgoing")):
        npt.assert_allclose(value, 0, atol=1e-12)


def test_lossless_sphere_feels_no_torque(lossless_sphere: MieSphere) -> None:
    for ibeam in (PlaneWave(radius=0.6).to_bsc(), random_beam(4)):
        npt.assert_allclose(torque(ibeam, lossless_sphere), 0, atol=1e-10)
    f = force(PlaneWave(radius=0.6).to_bsc(), lossless_sphere)
    assert f[2] > 0
    npt.assert_allclose(f[:2], 0, atol=1e-12)


def test_absorbing_sphere_torque(absorbing_sphere: MieSphere) -> None:
    beam = PlaneWave(radius=0.6).to_bsc()
    nmax = beam.nmax
    tau1, tau2 = mie_coefficients(nmax, 2 * np.pi * absorbing_sphere.radius, absorbing_sphere.relative_index)
    n, m = combined_index_inverse(np.arange(1, nmax * (nmax + 2) + 1))
    a, b = beam.get_coefficients()
    absorbed = np.abs(a[:, 0]) ** 2 * (1 - np.abs(1 + 2 * tau1[n - 1]) ** 2) + np.abs(
        b[:, 0]
    ) ** 2 * (1 - np.abs(1 + 2 * tau2[n - 1]) ** 2)

    t = torque(beam, absorbing_sphere)
    assert t[2] == pytest.approx(np.sum(m * absorbed))
    assert t[2] > 0


def test_scattered_and_total_beams_agree(absorbing_sphere: MieSphere) -> None:
    ibeam = random_beam(3)
    scattered = absorbing_sphere.scatter(ibeam)
    total = scattered.as_total()
    for x, y, z in zip(
        forcetorque(ibeam, scattered), forcetorque(ibeam, total), forcetorque(ibeam, total.bsc)
    ):
        npt.assert_allclose(x, y, atol=1e-12)
        npt.assert_allclose(x, z, atol=1e-12)
    npt.assert_allclose(scattered.forcetorque()[0], forcetorque(ibeam, scattered)[0])


def test_particle_is_scattered_directly(absorbing_sphere: MieSphere) -> None:
    assert isinstance(absorbing_sphere, Particle)
    ibeam = random_beam(3)
    npt.assert_allclose(
        force(ibeam, absorbing_sphere), force(ibeam, absorbing_sphere.scatter(ibeam))
    )
    npt.assert_allclose(
        spin(ibeam, absorbing_sphere), spin(ibeam, absorbing_sphere.scatter(ibeam))
    )


def test_positions_give_one_column_each(absorbing_sphere: MieSphere) -> None:
    beam = PlaneWave(radius=0.6).to_bsc()
    position = np.array([[0.0, 0.0], [0.0, 0.0], [0.0, 0.02]])
    f, t, s = forcetorque(beam, absorbing_sphere, position=position)
    assert f.shape == t.shape == s.shape == (3, 2)
    npt.assert_allclose(f[:, 0], force(beam, absorbing_sphere))
    # a plane wave exerts the same force everywhere
    npt.assert_allclose(f[:, 1], f[:, 0], rtol=1e-4, atol=1e-8)


def test_rotated_isotropic_particle(absorbing_sphere: MieSphere) -> None:
    beam = PlaneWave(radius=0.6).to_bsc()
    reference = force(beam, absorbing_sphere)
    rotated = force(beam, absorbing_sphere, rotation=roty(0.3))
    npt.assert_allclose(rotated, reference, atol=1e-10 * np.abs(reference).max())

    both = force(beam, absorbing_sphere, rotation=np.hstack([np.eye(3), roty(0.3)]))
    assert both.shape == (3, 2)


def test_rotated_beam_rotates_force(absorbing_sphere: MieSphere) -> None:
    beam = random_beam(3)
    R = roty(0.8)
    npt.assert_allclose(
        force(beam.rotate(R=R), absorbing_sphere),
        R @ force(beam, absorbing_sphere),
        atol=1e-10,
    )
    npt.assert_allclose(
        torque(beam.rotate(R=R), absorbing_sphere),
        R @ torque(beam, absorbing_sphere),
        atol=1e-10,
    )


def test_beam_arrays(absorbing_sphere: MieSphere) -> None:
    waves = [PlaneWave(nmax=6), PlaneWave(theta=0.5, nmax=6)]
    single = [force(wave.to_bsc(), absorbing_sphere) for wave in waves]

    per_beam = force(beam_array(waves), absorbing_sphere)
    assert per_beam.shape == (3, 2)
    npt.assert_allclose(per_beam, np.stack(single, axis=1), atol=1e-12)

    incoherent = force(beam_array(waves, array_type="incoherent"), absorbing_sphere)
    npt.assert_allclose(incoherent, single[0] + single[1], atol=1e-12)

    coherent = force(beam_array(waves, array_type="coherent"), absorbing_sphere)
    summed = waves[0].to_bsc() + waves[1].to_bsc()
    npt.assert_allclose(coherent, force(summed, absorbing_sphere), atol=1e-12)


def test_incoherent_scattered_beam_sums_results() -> None:
    ibeam = Bsc.concatenate([random_beam(2, seed=1), random_beam(2, seed=2)])
    sbeam = Bsc.concatenate(
        [random_beam(2, seed=3, basis="outgoing"), random_beam(2, seed=4, basis="outgoing")],
        array_type="incoherent",
    )
    assert ibeam.array_type == "array"
    summed = force(ibeam, sbeam)
    assert summed.shape == (3,)
    expected = force(ibeam[0], sbeam[0]) + force(ibeam[1], sbeam[1])
    npt.assert_allclose(summed, expected, atol=1e-12)

    per_beam = force(ibeam, sbeam.with_array_type("array"))
    assert per_beam.shape == (3, 2)
    npt.assert_allclose(per_beam.sum(axis=1), expected, atol=1e-12)


def test_zero_scattered_beam() -> None:
    ibeam = random_beam(3)
    zero = ScatteredBeam.zero(ibeam)
    assert zero.type == "total"
    assert zero.incident_beam is ibeam
    assert zero.bsc.basis == "outgoing"
    assert zero.total_beam.power == pytest.approx(ibeam.power)
    assert zero.scattered_beam.power == 0

    values = zero.forcetorque()
    for value in values:
        npt.assert_allclose(value, 0, atol=1e-12 * ibeam.power)


def test_column_counts_must_match() -> None:
    ibeam = random_beam(2).tile(2).with_array_type("array")
    sbeam = random_beam(2, basis="outgoing").tile(3).with_array_type("array")
    with pytest.raises(ShapeMismatchError):
        force(ibeam, sbeam)


def test_invalid_targets() -> None:
    ibeam = random_beam(2)
    with pytest.raises(ValueError):
        force(ibeam, ibeam.with_basis("outgoing"), position=np.zeros(3))
    with pytest.raises(TypeError):
        force(ibeam, 3)


def test_scattered_beam_conversions() -> None:
    ibeam = random_beam(2)
    sbeam = random_beam(2, seed=4, basis="outgoing")
    scattered = ScatteredBeam(sbeam, incident_beam=ibeam)
    total = scattered.as_total()
    assert total.type == "total"
    npt.assert_allclose(total.bsc.a, 2 * sbeam.a + ibeam.a)
    npt.assert_allclose(total.as_scattered().bsc.a, sbeam.a)

    with pytest.raises(ValueError):
        ScatteredBeam(sbeam, type="reflected")
    with pytest.raises(ValueError):
        ScatteredBeam(sbeam).total_beam
    with pytest.raises(ValueError):
        ScatteredBeam(sbeam).forcetorque()
