import numpy as np
import pytest
from numpy.testing import assert_allclose

from amcheck.geometry import (
    DEFAULT_TOLERANCE,
    as_operation_arrays,
    is_inversion,
    is_pure_translation,
    mapping_distances,
    apply_operations,
    wrap_to_cell,
)


def test_wrap_to_cell_reduces_modulo_one():
    assert_allclose(wrap_to_cell([-0.25, 1.25, 2.5]), [0.75, 0.25, 0.5], atol=1e-14)


def test_wrap_to_cell_snaps_values_close_to_one():
    wrapped = wrap_to_cell([0.9996, -1e-5, 1.0 - 1e-12])
    assert_allclose(wrapped, [0.0004, 1e-5, 1e-12], atol=1e-10)


def test_wrap_to_cell_keeps_values_away_from_boundary():
    wrapped = wrap_to_cell([0.998, 0.0, 0.5], tolerance=1e-3)
    assert_allclose(wrapped, [0.998, 0.0, 0.5])


@pytest.mark.parametrize(
    "position",
    [
        [0.0, 0.0, 0.0],
        [-3.7, 12.01, 0.99999],
        [1.0, -1.0, 2.0],
        [-1e-17, 0.5 - 1e-9, 7.25],
    ],
)
def test_wrap_to_cell_range_and_idempotence(position):
    once = wrap_to_cell(position)
    assert np.all(once >= 0.0)
    assert np.all(once < 1.0)
    assert_allclose(wrap_to_cell(once), once, atol=0.0)


def test_wrap_to_cell_broadcasts_over_leading_axes():
    positions = np.array([[[1.5, -0.5, 0.25]], [[2.0, 0.9999, -0.75]]])
    wrapped = wrap_to_cell(positions)
    assert wrapped.shape == positions.shape
    assert_allclose(wrapped[1, 0], [0.0, 0.0001, 0.25], atol=1e-12)


def test_as_operation_arrays_stacks_pairs():
    ops = [(np.eye(3), np.zeros(3)), (-np.eye(3, dtype=int), [0.5, 0.5, 0.5])]
    rotations, translations = as_operation_arrays(ops)
    assert rotations.shape == (2, 3, 3)
    assert translations.shape == (2, 3)
    assert rotations.dtype == float


def test_as_operation_arrays_rejects_bad_shapes():
    with pytest.raises(ValueError):
        as_operation_arrays([(np.eye(2), np.zeros(3))])


def test_as_operation_arrays_empty():
    rotations, translations = as_operation_arrays([])
    assert rotations.shape == (0, 3, 3)
    assert translations.shape == (0, 3)


def test_mapping_distances_across_cell_boundary():
    rotations, translations = as_operation_arrays([(np.eye(3), np.array([0.5, 0.5, 0.5]))])
    positions = np.array([[0.0, 0.0, 0.0], [0.5, 0.5, 0.5]])
    images = apply_operations(rotations, translations, positions)
    dist = mapping_distances(images, positions, DEFAULT_TOLERANCE)
    assert dist.shape == (1, 2, 2)
    assert dist[0, 0, 1] < DEFAULT_TOLERANCE
    assert dist[0, 1, 0] < DEFAULT_TOLERANCE
    assert dist[0, 0, 0] > 0.5


def test_trace_predicates():
    assert is_inversion(-np.eye(3))
    assert not is_inversion(np.eye(3))
    assert is_pure_translation(np.eye(3), np.array([0.0, 0.0, 0.5]))
    assert not is_pure_translation(np.eye(3), np.zeros(3))
    assert not is_pure_translation(-np.eye(3), np.array([0.5, 0.0, 0.0]))


def test_trace_predicates_on_operation_stacks():
    rotations, translations = as_operation_arrays(
        [
            (np.eye(3), np.zeros(3)),
            (-np.eye(3), np.array([0.5, 0.5, 0.5])),
            (np.eye(3), np.array([0.0, 0.5, 0.5])),
            (np.diag([-1.0, -1.0, 1.0]), np.zeros(3)),
        ]
    )
    assert is_inversion(rotations).tolist() == [False, True, False, False]
    assert is_pure_translation(rotations, translations).tolist() == [False, False, True, False]
