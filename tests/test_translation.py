import warnings

import numpy as np
import numpy.testing as npt
import pytest

from conftest import random_beam
from tweezpy.beams import PlaneWave
from tweezpy.errors import AccuracyWarning, UnsupportedMultiOutputError
from tweezpy.functions.misc import max_linear_index
from tweezpy.translation import translate_z


def _points(radius: float, count: int = 12, seed: int = 3) -> np.ndarray:
    rng = np.random.default_rng(seed)
    xyz = rng.uniform(-1, 1, size=(3, count))
    return radius * xyz / np.linalg.norm(xyz, axis=0).max()


def _low_orders(beam, nmax: int) -> np.ndarray:
    return beam.get_coefficients(ci=np.arange(1, max_linear_index(nmax) + 1), packed=True)


def test_zero_translation_is_identity() -> None:
    A, B = translate_z(3, 0.0)
    npt.assert_array_equal(A.toarray(), np.eye(15))
    assert B.nnz == 0

    A, B = translate_z((2, 3), 0.0)
    assert A.shape == (8, 15)


def test_matrix_shapes_follow_orders() -> None:
    A, B = translate_z((5, 3), 0.2)
    assert A.shape == B.shape == (35, 15)


def test_z_translation_of_plane_wave_is_a_phase() -> None:
    beam = PlaneWave(nmax=20).to_bsc()
    d = 0.1
    moved = beam.translate_z(d)
    phase = np.exp(-2j * np.pi * d)
    npt.assert_allclose(_low_orders(moved, 10), phase * _low_orders(beam, 10), atol=1e-9)
    assert moved.basis == "regular"
    assert moved.absdz == pytest.approx(d)


def test_lateral_translation_of_plane_wave_changes_nothing() -> None:
    beam = PlaneWave(nmax=20).to_bsc()
    moved = beam.translate_xyz([0.15, 0.0, 0.0])
    npt.assert_allclose(_low_orders(moved, 10), _low_orders(beam, 10), atol=1e-9)


def test_opposite_translations_cancel() -> None:
    beam = random_beam(3)
    there = beam.translate_z(0.2, nmax=25)
    back = there.translate_z(-0.2, nmax=3)
    npt.assert_allclose(back.get_coefficients(packed=True), beam.get_coefficients(packed=True), atol=1e-9)


def test_translated_field_is_shifted() -> None:
    beam = random_beam(4)
    d = np.array([0.1, 0.2, -0.15])
    moved = beam.translate_xyz(d, nmax=25)
    xyz = _points(0.2)
    expected = beam.efield(xyz - d[:, None]).vxyz
    npt.assert_allclose(moved.efield(xyz).vxyz, expected, atol=1e-8 * np.abs(expected).max())
    assert moved.absdz == pytest.approx(np.linalg.norm(d))


def test_outgoing_beam_becomes_regular_about_new_origin() -> None:
    beam = random_beam(3, basis="outgoing")
    moved = beam.translate_z(2.0, nmax=30)
    assert moved.basis == "regular"
    xyz = _points(0.3)
    expected = beam.efield(xyz - np.array([[0.0], [0.0], [2.0]])).vxyz
    npt.assert_allclose(moved.efield(xyz).vxyz, expected, atol=1e-6 * np.abs(expected).max())


def test_negative_axis_matches_negative_z() -> None:
    beam = random_beam(3)
    below = beam.translate_rtp([0.3, np.pi, 0.0])
    npt.assert_allclose(
        below.get_coefficients(packed=True),
        beam.translate_z(-0.3).get_coefficients(packed=True),
        atol=1e-12,
    )


def test_several_distances_give_beam_array() -> None:
    beam = random_beam(2)
    moved = beam.translate_z([0.0, 0.1, 0.2])
    assert moved.nbeams == 3
    npt.assert_allclose(moved[0].get_coefficients(packed=True), beam.get_coefficients(packed=True))
    npt.assert_allclose(
        moved[2].get_coefficients(packed=True),
        beam.translate_z(0.2).get_coefficients(packed=True),
    )


def test_several_offsets_keep_beams_separate() -> None:
    beam = random_beam(3).with_array_type("coherent")
    xyz = np.array([[0.0, 0.1, -0.05], [0.0, 0.0, 0.1], [0.2, 0.05, 0.0]])
    moved = beam.translate_xyz(xyz)
    assert moved.nbeams == 3
    assert moved.array_type == "array"
    assert beam.translate_z([0.0, 0.2]).array_type == "array"

    points = _points(0.3, count=5)
    values = moved.efield(points).vxyz
    assert values.shape == (3, 5, 3)
    for column, offset in enumerate(xyz.T):
        npt.assert_allclose(
            values[..., column], beam.translate_xyz(offset).efield(points).vxyz, atol=1e-12
        )


def test_single_warning_for_several_offsets() -> None:
    beam = random_beam(2).with_absdz(10.0)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        beam.translate_xyz(np.array([[0.1, 0.0, 0.1], [0.1, 0.2, 0.0], [0.0, 0.1, 0.1]]))
    assert sum(issubclass(item.category, AccuracyWarning) for item in caught) == 1


def test_several_offsets_refuse_matrices() -> None:
    beam = random_beam(2)
    with pytest.raises(UnsupportedMultiOutputError):
        beam.translate_z([0.1, 0.2], return_matrices=True)
    with pytest.raises(UnsupportedMultiOutputError):
        beam.translate_xyz(np.ones((3, 2)), return_matrices=True)


def test_returned_matrices_reproduce_translation() -> None:
    beam = random_beam(3)
    xyz = [0.1, -0.05, 0.2]
    moved, A, B = beam.translate_xyz(xyz, return_matrices=True)
    again = beam.translate(A, B)
    npt.assert_allclose(again.get_coefficients(packed=True), moved.get_coefficients(packed=True), atol=1e-12)

    moved, Az, Bz, D = beam.translate_xyz(xyz, return_matrices=True, separate_rotation=True)
    other = random_beam(3, seed=5)
    npt.assert_allclose(
        other.translate_with(Az, Bz, D).get_coefficients(packed=True),
        other.translate_xyz(xyz).get_coefficients(packed=True),
        atol=1e-12,
    )


def test_repeated_translation_warns() -> None:
    beam = random_beam(2).with_absdz(10.0)
    with pytest.warns(AccuracyWarning):
        beam.translate_z(0.1)
