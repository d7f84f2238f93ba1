#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Altermagnetism classifiers.

This module decides whether a collinear up/down spin pattern is
altermagnetic, first per symmetry orbit and then for a whole structure:

1.  An orbit is altermagnetic when its up and down sublattices are mapped
    onto each other by the structural symmetry, but not only through
    inversion or pure translations.
2.  A structure is altermagnetic when at least one of its orbits is.

The geometric part of the orbit test (which operation maps which atom onto
which) does not depend on the spins. `OrbitGeometry` computes it once so
that many spin patterns can be checked against the same orbit cheaply,
which is what the configuration search relies on.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .exceptions import (
    InvalidInputError,
    SpinImbalanceError,
    StructuralInconsistencyError,
)
from .geometry import (
    DEFAULT_TOLERANCE,
    SymmetryOperation,
    apply_operations,
    as_operation_arrays,
    is_inversion,
    is_pure_translation,
    wrap_to_cell,
    mapping_distances,
)
from .spins import SpinLabel, SpinLike, to_spin_array

logger = logging.getLogger(__name__)


# --- Orbit level ---


@dataclass
class OrbitGeometry:
    """
    Spin independent mapping tables of one orbit.

    Attributes:
        related: ``related[k, i, j]`` is True when operation ``k`` maps
            atom ``i`` onto atom ``j`` within tolerance.
        inversion_translation: ``[k, i, j]`` is True when operation ``k``
            is an inversion whose centre is the midpoint of ``i`` and ``j``,
            or a pure translation carrying ``i`` onto ``j``.
    """

    related: npt.NDArray[np.bool_]
    inversion_translation: npt.NDArray[np.bool_]

    @property
    def size(self) -> int:
        return self.related.shape[1]

    @classmethod
    def build(
        cls,
        rotations: npt.NDArray[np.float64],
        translations: npt.NDArray[np.float64],
        positions: npt.NDArray[np.float64],
        tolerance: float = DEFAULT_TOLERANCE,
    ) -> "OrbitGeometry":
        positions = np.asarray(positions, dtype=float).reshape(-1, 3)
        images = apply_operations(rotations, translations, positions)
        related = mapping_distances(images, positions, tolerance) < tolerance

        inversions = is_inversion(rotations, tolerance)
        pure_translations = is_pure_translation(rotations, translations, tolerance)

        # Inversion: the pair midpoint has to be a fixed point of the operation
        midpoints = (positions[:, None, :] + positions[None, :, :]) / 2.0
        moved = (
            np.einsum("kab,ijb->kija", rotations, midpoints)
            + translations[:, None, None, :]
            - midpoints[None]
        )
        midpoint_fixed = np.linalg.norm(wrap_to_cell(moved, tolerance), axis=-1) < tolerance

        shifted = (
            positions[None, :, None, :]
            + translations[:, None, None, :]
            - positions[None, None, :, :]
        )
        shift_matches = np.linalg.norm(wrap_to_cell(shifted, tolerance), axis=-1) < tolerance

        inversion_translation = (inversions[:, None, None] & midpoint_fixed) | (
            pure_translations[:, None, None] & shift_matches
        )
        return cls(related=related, inversion_translation=inversion_translation)


@dataclass
class OrbitResult:
    """Outcome of the orbit test together with its intermediate quantities."""

    is_altermagnetic: bool
    is_luttinger_ferrimagnet: bool
    n_magnetic_operations: int
    n_magnetic_atoms: int
    symmetry_related: npt.NDArray[np.int_]
    inversion_translation_related: npt.NDArray[np.int_]


def classify_orbit(
    geometry: OrbitGeometry,
    spins: npt.NDArray[np.int8],
    tolerance: float = DEFAULT_TOLERANCE,
) -> OrbitResult:
    """
    Run the orbit test on precomputed mapping tables.

    Args:
        geometry (OrbitGeometry): Mapping tables of the orbit.
        spins (npt.NDArray[np.int8]): Spin codes of the orbit members.
        tolerance (float): Tolerance for the marker-count comparisons.

    Returns:
        OrbitResult: The classification and its diagnostics.
    """
    n = geometry.size
    up = spins == SpinLabel.UP
    down = spins == SpinLabel.DOWN
    magnetic = up | down
    n_magnetic_atoms = 2 * int(np.count_nonzero(up))
    no_markers = np.zeros(n, dtype=int)

    if n == 1:
        return OrbitResult(False, False, 0, n_magnetic_atoms, no_markers, no_markers)

    opposite = (up[:, None] & down[None, :]) | (down[:, None] & up[None, :])

    # An operation is magnetic when it sends every magnetic atom onto some
    # atom of opposite spin.
    reaches_opposite = (geometry.related & opposite[None]).any(axis=2)
    magnetic_ops = np.all(reaches_opposite | ~magnetic[None, :], axis=1)
    n_magnetic_operations = int(np.count_nonzero(magnetic_ops))

    if n_magnetic_operations == 0:
        logger.debug(
            "Up and down sublattices are not symmetry-related: the material is Luttinger ferrimagnet!"
        )
        return OrbitResult(False, True, 0, n_magnetic_atoms, no_markers, no_markers)

    pairs = np.triu(opposite, k=1)
    sym_pairs = (geometry.related[magnetic_ops] & pairs[None]).any(axis=0)
    it_pairs = (geometry.inversion_translation[magnetic_ops] & pairs[None]).any(axis=0)

    symmetry_related = (sym_pairs.any(axis=1) | sym_pairs.any(axis=0)).astype(int)
    it_related = (it_pairs.any(axis=1) | it_pairs.any(axis=0)).astype(int)

    is_luttinger = abs(int(symmetry_related.sum()) - n_magnetic_atoms) > tolerance
    if is_luttinger:
        logger.debug(
            "Up and down sublattices are not related by symmetry: the material is Luttinger ferrimagnet!"
        )
    is_altermagnet = (abs(int(it_related.sum()) - n_magnetic_atoms) > tolerance) and not is_luttinger

    return OrbitResult(
        is_altermagnetic=bool(is_altermagnet),
        is_luttinger_ferrimagnet=bool(is_luttinger),
        n_magnetic_operations=n_magnetic_operations,
        n_magnetic_atoms=n_magnetic_atoms,
        symmetry_related=symmetry_related,
        inversion_translation_related=it_related,
    )


def analyze_orbit(
    symmetry_operations: Sequence[SymmetryOperation],
    positions: Sequence[Sequence[float]],
    spins: Sequence[SpinLike],
    tolerance: float = DEFAULT_TOLERANCE,
) -> OrbitResult:
    """
    Check one orbit for altermagnetism and return the diagnostics.

    Args:
        symmetry_operations: All (rotation, translation) operations of the
            structure, in fractional coordinates.
        positions: Fractional positions of the orbit members.
        spins: Spin of each orbit member (labels, codes or ``u/d/n``).
        tolerance (float): Distance tolerance in fractional units.

    Returns:
        OrbitResult: Classification and diagnostic markers.

    Raises:
        InvalidInputError: If positions and spins differ in length.
    """
    positions = np.asarray(positions, dtype=float).reshape(-1, 3)
    spin_codes = to_spin_array(spins)
    if len(positions) != len(spin_codes):
        raise InvalidInputError("Number of positions must equal number of spins")

    rotations, translations = as_operation_arrays(symmetry_operations)
    geometry = OrbitGeometry.build(rotations, translations, positions, tolerance)
    return classify_orbit(geometry, spin_codes, tolerance)


def is_orbit_altermagnetic(
    symmetry_operations: Sequence[SymmetryOperation],
    positions: Sequence[Sequence[float]],
    spins: Sequence[SpinLike],
    tolerance: float = DEFAULT_TOLERANCE,
) -> bool:
    """True if the spin pattern of a single orbit is altermagnetic."""
    # A lone atom has no partner to be related to
    if len(positions) == 1:
        return False
    return analyze_orbit(symmetry_operations, positions, spins, tolerance).is_altermagnetic


# --- Structure level ---


class Classification(Enum):
    ALTERMAGNET = "altermagnet"
    NOT_ALTERMAGNET = "not_altermagnet"
    SPIN_IMBALANCE = "spin_imbalance"
    INCONSISTENT = "inconsistent"


@dataclass
class OrbitReport:
    """How one orbit was treated during a structure check."""

    orbit_id: int
    atom_indices: List[int]
    label: str
    status: str  # "singleton", "non-magnetic" or "checked"
    result: Optional[OrbitResult] = None


@dataclass
class StructureOutcome:
    """
    Result of a structure check that never raises.

    The search engine inspects `status` directly; `raise_for_status`
    converts error outcomes into the matching exceptions.
    """

    status: Classification
    orbits: List[OrbitReport] = field(default_factory=list)
    imbalance: Optional[Tuple[int, int, int]] = None  # (orbit_id, n_up, n_down)
    all_singleton: bool = False
    # Ids of the multi-member orbits, set for INCONSISTENT outcomes
    unchecked_orbits: Tuple[int, ...] = ()

    @property
    def is_altermagnetic(self) -> bool:
        return self.status is Classification.ALTERMAGNET

    def raise_for_status(self) -> "StructureOutcome":
        if self.status is Classification.SPIN_IMBALANCE:
            orbit_id, n_up, n_down = self.imbalance
            raise SpinImbalanceError(n_up, n_down, orbit_id)
        if self.status is Classification.INCONSISTENT:
            raise StructuralInconsistencyError(
                orbit_ids=self.unchecked_orbits
            )
        return self


class StructureClassifier:
    """
    Altermagnetism check of a whole structure.

    Atoms are grouped into orbits by their orbit id. The mapping tables of
    every orbit with more than one member are built on construction, after
    which `classify` can be called for any number of spin patterns, also
    from several threads at once.

    Args:
        symmetry_operations: (rotation, translation) pairs of the structure.
        positions: Fractional positions of all atoms, shape (N, 3).
        orbit_ids: Orbit id of every atom (need not be contiguous).
        labels: Chemical symbol of every atom, used in diagnostics.
        tolerance (float): Distance tolerance in fractional units.
    """

    def __init__(
        self,
        symmetry_operations: Sequence[SymmetryOperation],
        positions: Sequence[Sequence[float]],
        orbit_ids: Sequence[int],
        labels: Optional[Sequence[str]] = None,
        tolerance: float = DEFAULT_TOLERANCE,
    ):
        self.tolerance = tolerance
        self.positions = np.asarray(positions, dtype=float).reshape(-1, 3)
        self.num_atoms = len(self.positions)
        if len(orbit_ids) != self.num_atoms:
            raise InvalidInputError(
                f"Got {len(orbit_ids)} orbit ids for {self.num_atoms} atoms."
            )
        if labels is not None and len(labels) != self.num_atoms:
            raise InvalidInputError(f"Got {len(labels)} labels for {self.num_atoms} atoms.")
        self.labels = list(labels) if labels is not None else ["X"] * self.num_atoms

        self.rotations, self.translations = as_operation_arrays(symmetry_operations)

        orbit_ids = np.asarray(orbit_ids)
        self.orbits: Dict[int, npt.NDArray[np.int_]] = {
            int(u): np.flatnonzero(orbit_ids == u) for u in np.unique(orbit_ids)
        }
        self.all_singleton = all(len(idx) == 1 for idx in self.orbits.values())
        self._geometry: Dict[int, OrbitGeometry] = {
            u: OrbitGeometry.build(
                self.rotations, self.translations, self.positions[idx], tolerance
            )
            for u, idx in self.orbits.items()
            if len(idx) > 1
        }
        logger.debug(
            f"Prepared {len(self._geometry)} multi-member orbits out of {len(self.orbits)} "
            f"with {len(self.rotations)} symmetry operations."
        )

    def orbit_label(self, orbit_id: int) -> str:
        return self.labels[int(self.orbits[orbit_id][0])]

    def classify(self, spins: Sequence[SpinLike], detailed: bool = True) -> StructureOutcome:
        """
        Classify one spin pattern without raising on bad patterns.

        Args:
            spins: Spin of every atom of the structure.
            detailed (bool): Evaluate every orbit and collect per-orbit
                reports. When False, stop at the first altermagnetic orbit
                and skip the reports.

        Returns:
            StructureOutcome: Status tag and, if detailed, orbit reports.
        """
        spins = spins if isinstance(spins, np.ndarray) and spins.dtype == np.int8 else to_spin_array(spins)
        if len(spins) != self.num_atoms:
            raise InvalidInputError(f"Got {len(spins)} spins for {self.num_atoms} atoms.")

        reports: List[OrbitReport] = []
        to_check: List[int] = []
        for orbit_id, idx in self.orbits.items():
            orbit_spins = spins[idx]
            if len(idx) == 1:
                status = "singleton"
            elif not orbit_spins.any():
                status = "non-magnetic"
            else:
                n_up = int(np.count_nonzero(orbit_spins == SpinLabel.UP))
                n_down = int(np.count_nonzero(orbit_spins == SpinLabel.DOWN))
                if n_up != n_down:
                    return StructureOutcome(
                        Classification.SPIN_IMBALANCE,
                        reports,
                        imbalance=(orbit_id, n_up, n_down),
                        all_singleton=self.all_singleton,
                    )
                status = "checked"
                to_check.append(orbit_id)
            if detailed:
                reports.append(
                    OrbitReport(orbit_id, idx.tolist(), self.orbit_label(orbit_id), status)
                )

        if not to_check:
            if self.all_singleton:
                return StructureOutcome(
                    Classification.NOT_ALTERMAGNET, reports, all_singleton=True
                )
            return StructureOutcome(
                Classification.INCONSISTENT,
                reports,
                unchecked_orbits=tuple(self._geometry),
            )

        altermagnet = False
        by_id = {r.orbit_id: r for r in reports}
        for orbit_id in to_check:
            result = classify_orbit(
                self._geometry[orbit_id], spins[self.orbits[orbit_id]], self.tolerance
            )
            altermagnet = altermagnet or result.is_altermagnetic
            if detailed:
                by_id[orbit_id].result = result
            elif altermagnet:
                break

        status = Classification.ALTERMAGNET if altermagnet else Classification.NOT_ALTERMAGNET
        return StructureOutcome(status, reports, all_singleton=self.all_singleton)

    def analyze(self, spins: Sequence[SpinLike]) -> StructureOutcome:
        """Detailed classification; raises on imbalanced or inconsistent patterns."""
        outcome = self.classify(spins, detailed=True).raise_for_status()
        for report in outcome.orbits:
            if report.status == "singleton":
                logger.debug(f"Orbit {report.orbit_id} ({report.label}): only one atom, skipping.")
            elif report.status == "non-magnetic":
                logger.debug(f"Orbit {report.orbit_id} ({report.label}): non-magnetic atoms, skipping.")
            else:
                res = report.result
                logger.debug(
                    f"Orbit {report.orbit_id} ({report.label}): "
                    f"{res.n_magnetic_operations} magnetic operations, "
                    f"symmetry-related {res.symmetry_related.tolist()}, "
                    f"inversion/translation-related {res.inversion_translation_related.tolist()}, "
                    f"altermagnetic={res.is_altermagnetic}"
                )
        if outcome.all_singleton:
            logger.info(
                "All orbits have multiplicity one: this material can only be a Luttinger ferrimagnet."
            )
        return outcome

    def is_altermagnetic(self, spins: Sequence[SpinLike]) -> bool:
        return self.classify(spins, detailed=False).raise_for_status().is_altermagnetic


def analyze_structure(
    symmetry_operations: Sequence[SymmetryOperation],
    positions: Sequence[Sequence[float]],
    orbit_ids: Sequence[int],
    labels: Optional[Sequence[str]],
    spins: Sequence[SpinLike],
    tolerance: float = DEFAULT_TOLERANCE,
) -> StructureOutcome:
    """Detailed per-orbit classification of one spin pattern."""
    classifier = StructureClassifier(symmetry_operations, positions, orbit_ids, labels, tolerance)
    return classifier.analyze(spins)


def is_structure_altermagnetic(
    symmetry_operations: Sequence[SymmetryOperation],
    positions: Sequence[Sequence[float]],
    orbit_ids: Sequence[int],
    labels: Optional[Sequence[str]],
    spins: Sequence[SpinLike],
    tolerance: float = DEFAULT_TOLERANCE,
) -> bool:
    """
    True if any orbit of the structure carries an altermagnetic spin pattern.

    Raises:
        InvalidInputError: On inconsistent array lengths.
        SpinImbalanceError: If a magnetic orbit has unequal up/down counts.
        StructuralInconsistencyError: If no orbit could be checked although
            not every orbit is a singleton.
    """
    classifier = StructureClassifier(symmetry_operations, positions, orbit_ids, labels, tolerance)
    return classifier.is_altermagnetic(spins)
