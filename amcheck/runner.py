import logging
import os
from typing import Any, Callable, Dict, Optional

import numpy as np

from .config_loader import load_config
from .core import StructureClassifier, StructureOutcome
from .reporting import default_output_name, sampled, save_results
from .schema import SearchConfig, StructureConfig
from .search import (
    ConfigurationSearch,
    MatchCallback,
    ProgressCallback,
    SamplingSettings,
    SearchResult,
    SearchStatus,
    log_progress,
)
from .spins import decode_configuration, to_spin_array
from .structure import CrystalStructure

logger = logging.getLogger(__name__)


def _always_confirm(n_magnetic: int, total: int) -> bool:
    return True


def load_structure(structure_config: StructureConfig, symprec: float) -> CrystalStructure:
    """Read or build the structure described in the config and analyze its symmetry."""
    if structure_config.file:
        structure = CrystalStructure.from_file(structure_config.file, structure_config.format)
    else:
        structure = CrystalStructure.from_config(
            structure_config.lattice_vectors,
            [a.model_dump() for a in structure_config.atoms],
        )
    return structure.analyze_symmetry(symprec)


def check_configuration(
    structure: CrystalStructure,
    spins,
    tolerance: float,
) -> StructureOutcome:
    """
    Classify one user-supplied spin pattern.

    Imbalanced or inconsistent patterns raise, unlike inside the search.
    """
    classifier = StructureClassifier(
        structure.symmetry_operations,
        structure.positions,
        structure.orbit_ids,
        structure.symbols,
        tolerance,
    )
    spins = to_spin_array(spins)
    outcome = classifier.analyze(spins)
    verdict = "ALTERMAGNET" if outcome.is_altermagnetic else "NOT ALTERMAGNET"
    logger.info(f"Result: {verdict}")

    magnetic = structure.magnetic_indices()
    if magnetic and spins[magnetic].all() and not np.delete(spins, magnetic).any():
        logger.info(
            f"Pattern is search configuration #{decode_configuration(spins, magnetic)} "
            f"of {2 ** len(magnetic)}."
        )
    return outcome


def run_search(
    structure: CrystalStructure,
    search_config: SearchConfig,
    tolerance: float,
    confirm: Optional[Callable[[int, int], bool]] = None,
    on_match: Optional[MatchCallback] = None,
    progress_callback: Optional[ProgressCallback] = log_progress,
) -> SearchResult:
    """Run the configuration search and save the matches if any were found."""
    search = ConfigurationSearch.from_structure(
        structure,
        tolerance,
        workers=search_config.workers,
        executor=search_config.executor,
        exhaustive_threshold=search_config.exhaustive_threshold,
        sampling_threshold=search_config.sampling_threshold,
        sampling=SamplingSettings(**search_config.sampling.model_dump()),
        progress_callback=progress_callback,
        on_match=on_match,
    )
    if search_config.confirm_large:
        confirm = _always_confirm
    result = search.run(
        mode=search_config.mode,
        confirm=confirm,
        allow_sampling=search_config.allow_sampling,
    )

    if result.matches:
        output_file = search_config.output_file or default_output_name(
            structure.source, sampled=sampled(result)
        )
        save_results(output_file, result, structure.symbols, structure.positions, tolerance)
    elif result.status in (SearchStatus.COMPLETED, SearchStatus.EARLY_STOPPED):
        logger.info("No altermagnetic configurations found for this structure.")
    return result


def run_calculation(
    config_file: str,
    confirm: Optional[Callable[[int, int], bool]] = None,
) -> Dict[str, Any]:
    """
    Main execution logic for a config-driven amcheck run.

    Returns:
        Dict[str, Any]: ``structure`` plus ``check`` (StructureOutcome) and/or
        ``search`` (SearchResult) for the tasks that ran.
    """
    if not os.path.exists(config_file):
        logger.error(f"Config file '{config_file}' not found.")
        raise FileNotFoundError(f"Config file '{config_file}' not found.")

    config = load_config(config_file)
    structure = load_structure(config.structure, config.symmetry.symprec)
    tolerance = config.analysis.tolerance
    results: Dict[str, Any] = {"structure": structure}

    spin_tokens = config.structure.spin_tokens()
    if config.analysis.enabled and spin_tokens is not None:
        logger.info("Performing altermagnet detection...")
        results["check"] = check_configuration(structure, spin_tokens, tolerance)

    if config.search.enabled:
        logger.info("Running spin configuration search...")
        results["search"] = run_search(structure, config.search, tolerance, confirm=confirm)

    if len(results) == 1:
        logger.warning("Nothing to do: provide 'spins' for a check or enable 'search'.")
    return results
