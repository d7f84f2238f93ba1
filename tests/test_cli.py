import numpy as np
import pytest
import yaml
from ase import Atoms
from typer.testing import CliRunner

from amcheck.cli import app

runner = CliRunner()


@pytest.fixture
def poscar(tmp_path):
    a, c = 4.14, 6.71
    atoms = Atoms(
        "Mn2Te2",
        scaled_positions=[[0, 0, 0], [0, 0, 0.5], [1 / 3, 2 / 3, 0.25], [2 / 3, 1 / 3, 0.75]],
        cell=[[a, 0, 0], [-a / 2, a * np.sqrt(3) / 2, 0], [0, 0, c]],
        pbc=True,
    )
    path = tmp_path / "POSCAR"
    atoms.write(str(path), format="vasp")
    return str(path)


def test_check_altermagnet(poscar):
    result = runner.invoke(app, ["check", poscar, "--spins", "u d n n"])
    assert result.exit_code == 0, result.output
    assert "P6_3/mmc" in result.output
    assert "RESULT: ALTERMAGNET!" in result.output


def test_check_imbalanced_spins(poscar):
    result = runner.invoke(app, ["check", poscar, "-s", "u u n n"])
    assert result.exit_code == 1
    assert "Number of up spins should equal number of down spins" in result.output


def test_check_missing_file(tmp_path):
    result = runner.invoke(app, ["check", str(tmp_path / "missing.vasp")])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_search_writes_output(poscar, tmp_path):
    out = tmp_path / "found.txt"
    result = runner.invoke(app, ["search", poscar, "--workers", "2", "--output", str(out)])
    assert result.exit_code == 0, result.output
    assert "found 2 altermagnetic" in result.output
    assert out.exists()


def test_init_and_validate(tmp_path):
    config = tmp_path / "amcheck.yaml"
    result = runner.invoke(app, ["init", str(config)])
    assert result.exit_code == 0
    assert config.exists()

    result = runner.invoke(app, ["validate", str(config)])
    assert result.exit_code == 0
    assert "is valid" in result.output


def test_validate_rejects_bad_config(tmp_path):
    config = tmp_path / "bad.yaml"
    config.write_text("search:\n  enabled: true\n")
    result = runner.invoke(app, ["validate", str(config)])
    assert result.exit_code == 1
    assert "Validation Failed" in result.output


def test_run_honours_confirm_large(poscar, tmp_path):
    config = tmp_path / "large.yaml"
    config.write_text(
        yaml.safe_dump(
            {
                "structure": {"file": poscar},
                "search": {
                    "enabled": True,
                    "workers": 1,
                    "exhaustive_threshold": 1,
                    "confirm_large": True,
                    "output_file": "found.txt",
                },
            }
        )
    )
    result = runner.invoke(app, ["run", str(config)], input="")
    assert result.exit_code == 0, result.output
    assert "Continue with the full exhaustive search?" not in result.output
    assert (tmp_path / "found.txt").exists()


def test_check_unreadable_structure(tmp_path):
    broken = tmp_path / "POSCAR"
    broken.write_text("this is not a structure file\n")
    result = runner.invoke(app, ["check", str(broken)])
    assert result.exit_code == 1
    assert "could not read" in result.output
