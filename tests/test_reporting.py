from datetime import datetime

import numpy as np
import pytest

from amcheck.reporting import default_output_name, format_configuration, save_results
from amcheck.search import SearchMode, SearchResult, SearchStatus, SpinConfiguration

STAMP = datetime(2024, 3, 9, 14, 5, 7)


@pytest.mark.parametrize(
    "structure_file, expected",
    [
        ("data/MnTe.vasp", "MnTe_amcheck_results_20240309_140507.txt"),
        ("RuO2.cif", "RuO2_amcheck_results_20240309_140507.txt"),
        ("/tmp/run/POSCAR", "structure_amcheck_results_20240309_140507.txt"),
        (None, "structure_amcheck_results_20240309_140507.txt"),
    ],
)
def test_default_output_name(structure_file, expected):
    assert default_output_name(structure_file, now=STAMP) == expected


def test_default_output_name_for_sampling():
    name = default_output_name("CrSb.cif", sampled=True, now=STAMP)
    assert name == "CrSb_amcheck_sampled_results_20240309_140507.txt"


def test_format_configuration():
    config = SpinConfiguration(5, np.array([-1, 0, 1], dtype=np.int8))
    line = format_configuration(config, ["Fe", "O", "Fe"])
    assert line == "Config #       5: d n u | Fe(↓) O(—) Fe(↑)"


def test_save_results(tmp_path):
    result = SearchResult(
        status=SearchStatus.EARLY_STOPPED,
        mode=SearchMode.SAMPLING,
        num_atoms=2,
        magnetic_indices=[0, 1],
        total_configurations=4,
        evaluated=2,
        skipped=2,
        matches=[SpinConfiguration(2, np.array([1, -1], dtype=np.int8))],
    )
    path = save_results(str(tmp_path / "out.txt"), result, ["Mn", "Mn"], [[0, 0, 0], [0, 0, 0.5]], 1e-3)
    text = (tmp_path / "out.txt").read_text(encoding="utf-8")
    assert path.endswith("out.txt")
    assert "# Search mode: sampling (early_stopped)" in text
    assert "# Atom  2: Mn at ( 0.000000,  0.000000,  0.500000)" in text
    assert text.rstrip().endswith("Config #       2: u d | Mn(↑) Mn(↓)")


def test_save_results_unwritable(tmp_path):
    result = SearchResult(SearchStatus.COMPLETED, SearchMode.EXHAUSTIVE, 0, [], 1)
    with pytest.raises(IOError):
        save_results(str(tmp_path / "missing_dir" / "out.txt"), result, [], [], 1e-3)
