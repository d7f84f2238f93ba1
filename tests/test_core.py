import numpy as np
import pytest

from amcheck import is_altermagnet
from amcheck.core import (
    Classification,
    StructureClassifier,
    analyze_orbit,
    analyze_structure,
    is_orbit_altermagnetic,
    is_structure_altermagnetic,
)
from amcheck.exceptions import (
    InvalidInputError,
    SpinImbalanceError,
    StructuralInconsistencyError,
)

IDENTITY = (np.eye(3), np.zeros(3))
# Fourfold screw along z with a body-diagonal shift
C4Z_SCREW = (
    np.array([[0, -1, 0], [1, 0, 0], [0, 0, 1]], dtype=float),
    np.array([0.5, 0.5, 0.5]),
)
# Inversion centred at (1/4, 1/4, 1/4)
SHIFTED_INVERSION = (-np.eye(3), np.array([0.5, 0.5, 0.5]))
BODY_CENTRING = (np.eye(3), np.array([0.5, 0.5, 0.5]))

PAIR = [[0.0, 0.0, 0.0], [0.5, 0.5, 0.5]]


# --- Orbit level ---


def test_single_atom_orbit_is_never_altermagnetic():
    assert not is_orbit_altermagnetic([IDENTITY, C4Z_SCREW], [[0.1, 0.2, 0.3]], ["u"])


def test_single_atom_orbit_skips_length_validation():
    assert not is_orbit_altermagnetic([IDENTITY], [[0.0, 0.0, 0.0]], ["u", "d"])


def test_screw_related_pair_is_altermagnetic():
    result = analyze_orbit([IDENTITY, C4Z_SCREW], PAIR, ["u", "d"])
    assert result.is_altermagnetic
    assert not result.is_luttinger_ferrimagnet
    assert result.n_magnetic_operations == 1
    assert result.symmetry_related.tolist() == [1, 1]
    assert result.inversion_translation_related.tolist() == [0, 0]


def test_inversion_related_pair_is_not_altermagnetic():
    result = analyze_orbit([IDENTITY, SHIFTED_INVERSION], PAIR, ["u", "d"])
    assert not result.is_altermagnetic
    assert result.inversion_translation_related.tolist() == [1, 1]


def test_translation_related_pair_is_not_altermagnetic():
    assert not is_orbit_altermagnetic([IDENTITY, BODY_CENTRING], PAIR, ["u", "d"])


def test_inversion_through_an_atom_does_not_count():
    # Inversion about the origin maps each atom onto itself, not onto its partner
    ops = [IDENTITY, (-np.eye(3), np.zeros(3)), C4Z_SCREW]
    assert is_orbit_altermagnetic(ops, PAIR, ["u", "d"])


def test_unrelated_sublattices_are_luttinger_ferrimagnet():
    result = analyze_orbit([IDENTITY], PAIR, ["u", "d"])
    assert result.is_luttinger_ferrimagnet
    assert not result.is_altermagnetic
    assert result.n_magnetic_operations == 0


def test_wrapped_positions_are_matched():
    positions = [[1.0, 0.0, -1.0], [0.5, -0.5, 1.5]]
    assert is_orbit_altermagnetic([IDENTITY, C4Z_SCREW], positions, ["d", "u"])


def test_orbit_length_mismatch_raises():
    with pytest.raises(InvalidInputError):
        is_orbit_altermagnetic([IDENTITY], PAIR, ["u", "d", "n"])


# --- Structure level ---


def _two_orbit_structure():
    """Screw-related Mn pair (orbit 7) and an inversion-related Fe pair (orbit 3)."""
    positions = PAIR + [[0.25, 0.0, 0.0], [0.25, 0.5, 0.5]]
    orbit_ids = [7, 7, 3, 3]
    labels = ["Mn", "Mn", "Fe", "Fe"]
    return positions, orbit_ids, labels


def test_structure_is_altermagnetic_if_any_orbit_is():
    ops = [IDENTITY, C4Z_SCREW]
    assert is_structure_altermagnetic(ops, PAIR, [0, 0], None, ["u", "d"])
    assert is_altermagnet(ops, PAIR, [0, 0], ["Mn", "Mn"], ["u", "d"])


def test_structure_with_only_translation_related_orbit():
    assert not is_structure_altermagnetic([IDENTITY, BODY_CENTRING], PAIR, [0, 0], None, ["u", "d"])


def test_non_contiguous_orbit_ids_and_non_magnetic_orbit():
    positions, orbit_ids, labels = _two_orbit_structure()
    ops = [IDENTITY, C4Z_SCREW]
    outcome = analyze_structure(ops, positions, orbit_ids, labels, ["u", "d", "n", "n"])
    assert outcome.status is Classification.ALTERMAGNET
    statuses = {r.orbit_id: r.status for r in outcome.orbits}
    assert statuses == {3: "non-magnetic", 7: "checked"}
    # Orbits are visited in ascending id order
    assert [r.orbit_id for r in outcome.orbits] == [3, 7]


def test_imbalanced_orbit_raises_with_counts():
    positions, orbit_ids, labels = _two_orbit_structure()
    with pytest.raises(SpinImbalanceError) as excinfo:
        is_structure_altermagnetic([IDENTITY], positions, orbit_ids, labels, ["u", "d", "u", "n"])
    assert excinfo.value.orbit_id == 3
    assert (excinfo.value.n_up, excinfo.value.n_down) == (1, 0)


def test_imbalance_is_reported_before_any_orbit_is_evaluated():
    # Orbit 3 alone would already make the structure altermagnetic
    positions = [[0.0, 0.0, 0.0], [0.5, 0.5, 0.5], [0.1, 0.1, 0.1], [0.6, 0.6, 0.6]]
    classifier = StructureClassifier([IDENTITY, C4Z_SCREW], positions, [3, 3, 9, 9])
    outcome = classifier.classify(["u", "d", "u", "u"], detailed=False)
    assert outcome.status is Classification.SPIN_IMBALANCE
    assert outcome.imbalance == (9, 2, 0)


def test_all_singleton_structure_is_not_altermagnetic():
    positions = [[0.0, 0.0, 0.0], [0.3, 0.3, 0.3]]
    classifier = StructureClassifier([IDENTITY], positions, [0, 1], ["Mn", "Mn"])
    outcome = classifier.analyze(["u", "d"])
    assert outcome.all_singleton
    assert outcome.status is Classification.NOT_ALTERMAGNET
    assert not classifier.is_altermagnetic(["u", "d"])


def test_magnetic_atoms_only_in_singleton_orbits_is_inconsistent():
    positions = [[0.0, 0.0, 0.0], [0.5, 0.5, 0.5], [0.3, 0.1, 0.2]]
    classifier = StructureClassifier([IDENTITY, C4Z_SCREW], positions, [0, 0, 1])
    outcome = classifier.classify(["n", "n", "u"])
    assert outcome.status is Classification.INCONSISTENT
    with pytest.raises(StructuralInconsistencyError) as excinfo:
        classifier.is_altermagnetic(["n", "n", "u"])
    assert excinfo.value.orbit_ids == (0,)


def test_inconsistency_error_names_orbits_from_public_entry_point():
    positions = [[0.0, 0.0, 0.0], [0.5, 0.5, 0.5], [0.3, 0.1, 0.2], [0.1, 0.1, 0.1], [0.6, 0.6, 0.6]]
    with pytest.raises(StructuralInconsistencyError) as excinfo:
        is_structure_altermagnetic(
            [IDENTITY], positions, [4, 4, 1, 2, 2], None, ["n", "n", "u", "n", "n"]
        )
    assert excinfo.value.orbit_ids == (2, 4)


def test_classify_rejects_wrong_spin_count():
    classifier = StructureClassifier([IDENTITY], PAIR, [0, 0])
    with pytest.raises(InvalidInputError):
        classifier.classify(["u"])


def test_classifier_rejects_wrong_orbit_id_count():
    with pytest.raises(InvalidInputError):
        StructureClassifier([IDENTITY], PAIR, [0])
