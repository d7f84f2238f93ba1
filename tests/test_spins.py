import numpy as np
import pytest
from numpy.testing import assert_array_equal

from amcheck.exceptions import InvalidInputError
from amcheck.spins import (
    SpinLabel,
    decode_configuration,
    encode_configuration,
    magnetic_atom_indices,
    parse_spins,
    spins_to_string,
    to_spin_array,
)


def test_spin_label_symbols():
    assert SpinLabel.UP.symbol == "u"
    assert SpinLabel.DOWN.arrow == "↓"
    assert SpinLabel.from_string(" D ") is SpinLabel.DOWN
    with pytest.raises(InvalidInputError):
        SpinLabel.from_string("x")


def test_to_spin_array_accepts_mixed_input():
    codes = to_spin_array(["u", SpinLabel.DOWN, 0, -1, 1])
    assert codes.dtype == np.int8
    assert_array_equal(codes, [1, -1, 0, -1, 1])
    with pytest.raises(InvalidInputError):
        to_spin_array([2])


def test_parse_spins():
    assert_array_equal(parse_spins("u d n n", 4), [1, -1, 0, 0])
    assert_array_equal(parse_spins("", 3), [0, 0, 0])
    assert_array_equal(parse_spins("nn", 2), [0, 0])
    with pytest.raises(InvalidInputError, match="Wrong number of spins"):
        parse_spins("u d", 3)


def test_spins_to_string():
    assert spins_to_string([1, -1, 0]) == "u d n"


def test_magnetic_atom_indices():
    assert magnetic_atom_indices(["Mn", "Te", "Fe", "O", "Gd"]) == [0, 2, 4]


def test_encode_configuration_bit_order():
    magnetic = [0, 2, 3]
    # id 0: every magnetic atom up
    assert_array_equal(encode_configuration(0, 5, magnetic), [1, 0, 1, 1, 0])
    # bit 1 -> second magnetic atom (index 2) down
    assert_array_equal(encode_configuration(2, 5, magnetic), [1, 0, -1, 1, 0])
    assert_array_equal(encode_configuration(7, 5, magnetic), [-1, 0, -1, -1, 0])


def test_decode_inverts_encode_for_wide_ids():
    magnetic = list(range(70))
    configuration_id = (1 << 69) | (1 << 40) | 5
    spins = encode_configuration(configuration_id, 70, magnetic)
    assert decode_configuration(spins, magnetic) == configuration_id
