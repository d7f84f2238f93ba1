"""Text export of search results."""
import logging
import os
from datetime import datetime
from typing import List, Optional, Sequence

from .search import SearchMode, SearchResult, SpinConfiguration
from .spins import SpinLabel

logger = logging.getLogger(__name__)

STRUCTURE_EXTENSIONS = (".vasp", ".poscar", ".POSCAR", ".cif", ".xyz")


def format_configuration(config: SpinConfiguration, symbols: Sequence[str]) -> str:
    """``Config #       5: u d n n | Mn(↑) Mn(↓) Te(—) Te(—)``"""
    assignment = " ".join(
        f"{sym}({SpinLabel(int(s)).arrow})" for sym, s in zip(symbols, config.spins)
    )
    return f"Config #{config.configuration_id:>8}: {config.spin_string} | {assignment}"


def default_output_name(
    structure_file: Optional[str],
    sampled: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """
    ``<base>_amcheck_results_<YYYYmmdd_HHMMSS>.txt`` for a structure file.

    Known structure extensions are stripped; an empty base or ``POSCAR``
    becomes ``structure``.
    """
    base = os.path.basename(structure_file or "")
    for ext in STRUCTURE_EXTENSIONS:
        if base.endswith(ext):
            base = base[: -len(ext)]
            break
    if not base or base == "POSCAR":
        base = "structure"
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    kind = "sampled_results" if sampled else "results"
    return f"{base}_amcheck_{kind}_{stamp}.txt"


def result_lines(
    result: SearchResult,
    symbols: Sequence[str],
    positions: Sequence[Sequence[float]],
    tolerance: float,
) -> List[str]:
    lines = [
        "# AMCheck - Altermagnetic Spin Configurations",
        f"# Generated on: {datetime.now().isoformat(timespec='seconds')}",
        f"# Structure: {result.num_atoms} atoms ({len(result.magnetic_indices)} magnetic)",
        f"# Search mode: {result.mode.value if result.mode else 'none'} ({result.status.value})",
        f"# Executor: {result.executor}",
        f"# Total configurations: {result.total_configurations}",
        f"# Configurations tested: {result.tested} ({result.skipped} skipped for spin imbalance)",
        f"# Altermagnetic configurations found: {result.found}",
        f"# Success rate: {100.0 * result.fraction:.4f}%",
        f"# Tolerance: {tolerance}",
        "#",
        "# Atomic structure:",
    ]
    for i, (sym, pos) in enumerate(zip(symbols, positions)):
        lines.append(
            f"# Atom {i + 1:>2}: {sym:>2} at ({pos[0]:9.6f}, {pos[1]:9.6f}, {pos[2]:9.6f})"
        )
    lines += [
        "#",
        "# Format: ConfigID | Spin_Pattern | Detailed_Assignment",
        "#         u = up, d = down, n = none",
        "",
    ]
    lines += [format_configuration(c, symbols) for c in result.matches]
    return lines


def save_results(
    filename: str,
    result: SearchResult,
    symbols: Sequence[str],
    positions: Sequence[Sequence[float]],
    tolerance: float,
) -> str:
    """
    Write all matches of `result` to a text file.

    Raises:
        IOError: If the file cannot be written.
    """
    logger.info(f"Saving {result.found} configurations to '{filename}'...")
    try:
        with open(filename, "w", encoding="utf-8") as f:
            f.write("\n".join(result_lines(result, symbols, positions, tolerance)) + "\n")
    except (IOError, OSError) as e:
        logger.error(f"Failed to save results to '{filename}': {e}")
        raise IOError(f"File saving failed: {e}") from e
    return filename


def sampled(result: SearchResult) -> bool:
    return result.mode is SearchMode.SAMPLING
