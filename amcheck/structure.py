#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Crystal structure and symmetry providers.

`CrystalStructure` holds what the classifiers need: fractional positions,
chemical symbols, the symmetry operations of the structure and the orbit
id of every atom. Structures are read with ASE (POSCAR/VASP, CIF and every
other format ASE understands); symmetry comes from spglib, with a crude
fallback that groups atoms by element when spglib finds no space group.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import ase.io
import numpy as np
import numpy.typing as npt
import spglib
from spglib.error import SpglibError
from ase import Atoms
from ase.data import atomic_numbers

from .geometry import DEFAULT_TOLERANCE, SymmetryOperation
from .spins import magnetic_atom_indices

logger = logging.getLogger(__name__)


def _rotation_z(quarter_turns: int) -> npt.NDArray[np.float64]:
    c4 = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    return np.linalg.matrix_power(c4, quarter_turns)


def fallback_symmetry_operations() -> List[SymmetryOperation]:
    """Identity, the three rotations about z and inversion."""
    ops = [(_rotation_z(n), np.zeros(3)) for n in range(4)]
    ops.append((-np.eye(3), np.zeros(3)))
    return ops


def orbits_by_element(symbols: Sequence[str]) -> List[int]:
    """Orbit ids assigned by chemical species, in order of first appearance."""
    ids: Dict[str, int] = {}
    return [ids.setdefault(sym, len(ids)) for sym in symbols]


@dataclass
class CrystalStructure:
    """
    Lattice, atoms and symmetry data of one structure.

    Attributes:
        lattice: Lattice vectors as rows, shape (3, 3), in Angstrom.
        positions: Fractional positions, shape (N, 3).
        symbols: Chemical symbol of each atom.
        numbers: Atomic number of each atom.
        symmetry_operations: (rotation, translation) pairs; empty until
            `analyze_symmetry` is called or supplied directly.
        orbit_ids: Orbit id of each atom; empty until analyzed.
        source: File the structure was read from, if any.
    """

    lattice: npt.NDArray[np.float64]
    positions: npt.NDArray[np.float64]
    symbols: List[str]
    numbers: List[int] = field(default_factory=list)
    symmetry_operations: List[SymmetryOperation] = field(default_factory=list)
    orbit_ids: List[int] = field(default_factory=list)
    source: Optional[str] = None
    symmetry_source: str = "none"

    def __post_init__(self):
        self.lattice = np.asarray(self.lattice, dtype=float).reshape(3, 3)
        self.positions = np.asarray(self.positions, dtype=float).reshape(-1, 3)
        if len(self.symbols) != len(self.positions):
            raise ValueError(
                f"Got {len(self.symbols)} chemical symbols for {len(self.positions)} positions."
            )
        if not self.numbers:
            # Unknown species are typed as hydrogen
            self.numbers = [atomic_numbers.get(sym, 1) for sym in self.symbols]

    # --- Creation ---

    @classmethod
    def from_atoms(cls, atoms: Atoms, source: Optional[str] = None) -> "CrystalStructure":
        return cls(
            lattice=np.array(atoms.get_cell()),
            positions=atoms.get_scaled_positions(wrap=True),
            symbols=atoms.get_chemical_symbols(),
            numbers=[int(z) for z in atoms.get_atomic_numbers()],
            source=source,
        )

    @classmethod
    def from_file(cls, filepath: str, file_format: Optional[str] = None) -> "CrystalStructure":
        """
        Read a structure file with ASE.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Structure file not found: {filepath}")
        try:
            atoms = ase.io.read(filepath, format=file_format)
        except Exception as e:
            logger.error(f"Failed to read structure file {filepath}: {e}")
            raise
        logger.info(f"Loaded {len(atoms)} atoms from {filepath}")
        return cls.from_atoms(atoms, source=filepath)

    @classmethod
    def from_config(
        cls,
        lattice_vectors: Sequence[Sequence[float]],
        atoms: Sequence[Dict[str, Any]],
    ) -> "CrystalStructure":
        """Build from inline ``{'element': 'Mn', 'pos': [x, y, z]}`` entries."""
        return cls(
            lattice=np.asarray(lattice_vectors, dtype=float),
            positions=[a["pos"] for a in atoms],
            symbols=[a["element"] for a in atoms],
        )

    # --- Symmetry ---

    @property
    def num_atoms(self) -> int:
        return len(self.positions)

    @property
    def spglib_cell(self) -> Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64], List[int]]:
        return (self.lattice, self.positions, self.numbers)

    def analyze_symmetry(self, symprec: float = DEFAULT_TOLERANCE) -> "CrystalStructure":
        """
        Fill `symmetry_operations` and `orbit_ids` from spglib.

        When spglib cannot determine the space group, atoms are grouped by
        element and a small generic set of operations is used instead.
        """
        try:
            dataset = spglib.get_symmetry_dataset(self.spglib_cell, symprec=symprec)
        except SpglibError as e:
            logger.debug(f"spglib failed: {e}")
            dataset = None
        if dataset is not None:
            self.symmetry_operations = [
                (np.asarray(r, dtype=float), np.asarray(t, dtype=float))
                for r, t in zip(dataset.rotations, dataset.translations)
            ]
            self.orbit_ids = [int(u) for u in dataset.equivalent_atoms]
            self.symmetry_source = "spglib"
            logger.info(
                f"Space group {dataset.international} ({dataset.number}): "
                f"{len(self.symmetry_operations)} symmetry operations, "
                f"{len(set(self.orbit_ids))} orbits."
            )
        else:
            logger.warning(
                f"spglib could not determine the symmetry (symprec={symprec}); "
                "grouping atoms by element with a generic operation set."
            )
            self.symmetry_operations = fallback_symmetry_operations()
            self.orbit_ids = orbits_by_element(self.symbols)
            self.symmetry_source = "fallback"
        return self

    def space_group(self, symprec: float = DEFAULT_TOLERANCE) -> str:
        try:
            name = spglib.get_spacegroup(self.spglib_cell, symprec=symprec)
        except SpglibError:
            name = None
        return name if name else "Unknown"

    # --- Atoms ---

    def magnetic_indices(self) -> List[int]:
        return magnetic_atom_indices(self.symbols)

    def orbits(self) -> Dict[int, List[int]]:
        """Atom indices of each orbit, keyed by orbit id."""
        groups: Dict[int, List[int]] = {}
        for i, u in enumerate(self.orbit_ids):
            groups.setdefault(u, []).append(i)
        return groups
