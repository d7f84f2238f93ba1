#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Geometry helpers for fractional coordinates and symmetry operations.

All positions handled by amcheck are fractional coordinates of the unit
cell. Symmetry operations act on them as ``p -> R @ p + t``; comparing two
positions therefore always goes through `wrap_to_cell` so that positions
differing by a lattice translation compare equal.
"""
import numpy as np
import numpy.typing as npt
from typing import Iterable, List, Sequence, Tuple, Union

# --- Numerical Constants ---
DEFAULT_TOLERANCE: float = 1e-3
INVERSION_TRACE: float = -3.0
IDENTITY_TRACE: float = 3.0
# --- End Numerical Constants ---

# An operation as handed over by a symmetry provider: (rotation, translation)
SymmetryOperation = Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]


def wrap_to_cell(
    position: Union[Sequence[float], npt.NDArray[np.float64]],
    tolerance: float = DEFAULT_TOLERANCE,
) -> npt.NDArray[np.float64]:
    """
    Bring fractional coordinates back into the unit cell.

    Every component is reduced modulo 1 into [0, 1). A reduced value lying
    within `tolerance` of 1.0 is replaced by ``1.0 - value`` so that a
    difference vector of almost exactly one lattice translation ends up
    close to zero instead of close to one.

    Works on a single 3-vector or on any array whose last axis holds the
    three coordinates.

    Args:
        position: Fractional coordinates, shape (..., 3).
        tolerance: Snapping distance from the upper cell boundary.

    Returns:
        npt.NDArray[np.float64]: Wrapped coordinates with the input shape.
    """
    wrapped = np.mod(np.asarray(position, dtype=float), 1.0)
    near_one = np.abs(1.0 - wrapped) < tolerance
    return np.where(near_one, 1.0 - wrapped, wrapped)


def as_operation_arrays(
    symmetry_operations: Iterable[SymmetryOperation],
) -> Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Stack symmetry operations into rotation and translation arrays.

    Args:
        symmetry_operations: Iterable of (rotation, translation) pairs.

    Returns:
        Tuple of rotations with shape (k, 3, 3) and translations with
        shape (k, 3), both as float arrays.

    Raises:
        ValueError: If an operation does not have the expected shapes.
    """
    rotations: List[npt.NDArray[np.float64]] = []
    translations: List[npt.NDArray[np.float64]] = []
    for op in symmetry_operations:
        rotation, translation = op
        rotation = np.asarray(rotation, dtype=float)
        translation = np.asarray(translation, dtype=float)
        if rotation.shape != (3, 3) or translation.shape != (3,):
            raise ValueError(
                f"Symmetry operation must be a (3x3 rotation, 3-vector translation) pair, "
                f"got shapes {rotation.shape} and {translation.shape}."
            )
        rotations.append(rotation)
        translations.append(translation)

    if not rotations:
        return np.zeros((0, 3, 3)), np.zeros((0, 3))
    return np.stack(rotations), np.stack(translations)


def apply_operations(
    rotations: npt.NDArray[np.float64],
    translations: npt.NDArray[np.float64],
    positions: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Images ``R @ p + t`` of every position under every operation, shape (k, n, 3)."""
    return np.einsum("kab,nb->kna", rotations, positions) + translations[:, None, :]


def mapping_distances(
    images: npt.NDArray[np.float64],
    targets: npt.NDArray[np.float64],
    tolerance: float = DEFAULT_TOLERANCE,
) -> npt.NDArray[np.float64]:
    """
    Distances between every image and every target after wrapping.

    Args:
        images: Transformed positions, shape (k, n, 3).
        targets: Reference positions, shape (n, 3).
        tolerance: Snapping tolerance passed to `wrap_to_cell`.

    Returns:
        npt.NDArray[np.float64]: Array ``d[k, i, j] = |wrap(images[k, i] - targets[j])|``.
    """
    diff = images[:, :, None, :] - targets[None, None, :, :]
    return np.linalg.norm(wrap_to_cell(diff, tolerance), axis=-1)


def is_inversion(
    rotations: npt.NDArray[np.float64],
    tolerance: float = DEFAULT_TOLERANCE,
) -> npt.NDArray[np.bool_]:
    """Trace test for inversion on one rotation or a stack of shape (k, 3, 3)."""
    traces = np.trace(np.asarray(rotations, dtype=float), axis1=-2, axis2=-1)
    return np.abs(traces - INVERSION_TRACE) < tolerance


def is_pure_translation(
    rotations: npt.NDArray[np.float64],
    translations: npt.NDArray[np.float64],
    tolerance: float = DEFAULT_TOLERANCE,
) -> npt.NDArray[np.bool_]:
    """Identity rotation with a nonzero shift; accepts single operations or stacks."""
    traces = np.trace(np.asarray(rotations, dtype=float), axis1=-2, axis2=-1)
    shifts = np.linalg.norm(np.asarray(translations, dtype=float), axis=-1)
    return (np.abs(traces - IDENTITY_TRACE) < tolerance) & (shifts > tolerance)
