#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Spin labels, magnetic species and spin-pattern encoding.

Spins are stored as small integers (+1 up, -1 down, 0 none) so that a spin
pattern is a plain numpy array and orbit checks can be vectorized.
"""
from enum import IntEnum
from typing import Dict, Iterable, List, Sequence, Union

import numpy as np
import numpy.typing as npt

from .exceptions import InvalidInputError


class SpinLabel(IntEnum):
    UP = 1
    DOWN = -1
    NONE = 0

    @property
    def symbol(self) -> str:
        return _SPIN_TO_CHAR[self]

    @property
    def arrow(self) -> str:
        return _SPIN_TO_ARROW[self]

    @classmethod
    def from_string(cls, text: str) -> "SpinLabel":
        """Parse ``u``/``d``/``n`` (any case) into a label."""
        try:
            return _CHAR_TO_SPIN[text.strip().lower()]
        except KeyError:
            raise InvalidInputError(f"Invalid spin designation: {text!r}") from None


_SPIN_TO_CHAR: Dict[SpinLabel, str] = {
    SpinLabel.UP: "u",
    SpinLabel.DOWN: "d",
    SpinLabel.NONE: "n",
}
_CHAR_TO_SPIN: Dict[str, SpinLabel] = {v: k for k, v in _SPIN_TO_CHAR.items()}
_SPIN_TO_ARROW: Dict[SpinLabel, str] = {
    SpinLabel.UP: "↑",
    SpinLabel.DOWN: "↓",
    SpinLabel.NONE: "—",
}

SpinLike = Union[SpinLabel, int, str]

# Species that can carry a local moment. Only decides which atoms are varied
# by the configuration search; the classifiers accept any spin pattern.
MAGNETIC_ELEMENTS: frozenset = frozenset(
    {
        # 3d
        "Ti", "V", "Cr", "Mn", "Fe", "Co", "Ni", "Cu",
        # 4d / 5d
        "Mo", "Tc", "Ru", "Rh", "Pd", "W", "Re", "Os", "Ir", "Pt",
        # 4f
        "Ce", "Pr", "Nd", "Pm", "Sm", "Eu", "Gd", "Tb", "Dy", "Ho", "Er", "Tm", "Yb",
        # 5f
        "U", "Np", "Pu", "Am", "Cm",
    }
)


def is_magnetic_element(chemical_symbol: str) -> bool:
    return chemical_symbol in MAGNETIC_ELEMENTS


def magnetic_atom_indices(chemical_symbols: Sequence[str]) -> List[int]:
    """Indices of atoms whose species can carry a moment, in structure order."""
    return [i for i, sym in enumerate(chemical_symbols) if is_magnetic_element(sym)]


def to_spin_array(spins: Iterable[SpinLike]) -> npt.NDArray[np.int8]:
    """
    Convert a sequence of labels, integers or ``u``/``d``/``n`` strings into
    an int8 array of spin codes.

    Raises:
        InvalidInputError: If an entry is not a recognised spin.
    """
    codes = []
    for s in spins:
        if isinstance(s, str):
            codes.append(int(SpinLabel.from_string(s)))
        else:
            try:
                codes.append(int(SpinLabel(int(s))))
            except ValueError:
                raise InvalidInputError(f"Invalid spin value: {s!r}") from None
    return np.array(codes, dtype=np.int8)


def parse_spins(text: str, num_atoms: int) -> npt.NDArray[np.int8]:
    """
    Parse a whitespace separated spin string such as ``"u d n n"``.

    An empty string or a single ``nn`` marks every atom as non-magnetic.

    Args:
        text (str): The spin designations.
        num_atoms (int): Expected number of entries.

    Returns:
        npt.NDArray[np.int8]: Spin codes, one per atom.

    Raises:
        InvalidInputError: On a wrong count or an unknown designation.
    """
    tokens = text.split()
    if not tokens or (len(tokens) == 1 and tokens[0].lower() == "nn"):
        return np.zeros(num_atoms, dtype=np.int8)
    if len(tokens) != num_atoms:
        raise InvalidInputError(
            f"Wrong number of spins: got {len(tokens)} instead of {num_atoms}"
        )
    return to_spin_array(tokens)


def spins_to_string(spins: Iterable[SpinLike]) -> str:
    return " ".join(SpinLabel(int(s)).symbol for s in to_spin_array(spins))


def encode_configuration(
    configuration_id: int,
    num_atoms: int,
    magnetic_indices: Sequence[int],
) -> npt.NDArray[np.int8]:
    """
    Spin pattern of candidate `configuration_id`.

    Bit ``i`` of the id sets the ``i``-th magnetic atom: 0 -> UP, 1 -> DOWN.
    All other atoms are NONE. Ids may exceed 64 bits.
    """
    spins = np.zeros(num_atoms, dtype=np.int8)
    for bit, atom_idx in enumerate(magnetic_indices):
        spins[atom_idx] = SpinLabel.DOWN if (configuration_id >> bit) & 1 else SpinLabel.UP
    return spins


def decode_configuration(
    spins: Sequence[SpinLike],
    magnetic_indices: Sequence[int],
) -> int:
    """Inverse of `encode_configuration`: the candidate id of a spin pattern."""
    codes = to_spin_array(spins)
    configuration_id = 0
    for bit, atom_idx in enumerate(magnetic_indices):
        if codes[atom_idx] == SpinLabel.DOWN:
            configuration_id |= 1 << bit
    return configuration_id
