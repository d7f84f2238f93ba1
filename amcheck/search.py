#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Search for altermagnetic spin configurations.

Every magnetic-capable atom of a structure is given an up or down spin,
which spans ``2**m`` candidate configurations for ``m`` magnetic atoms.
`ConfigurationSearch` checks all of them (exhaustive mode) or a random
subset (sampling mode) with a `StructureClassifier` and collects the
altermagnetic ones.

Candidate ``k`` is decoded bit by bit: bit ``i`` of ``k`` gives the spin of
the ``i``-th magnetic atom (0 -> up, 1 -> down). The id range is cut into
contiguous near-equal slices, one per worker. Two executors are available:

*   ``"thread"`` (default): a thread pool sharing lock-protected progress
    and match counters, matches streamed as they are found.
*   ``"process"``: a multiprocessing pool; every worker slice is processed
    in chunks and the parent merges counts and matches per chunk.

Both return the same sorted collection of matches.
"""
import logging
import os
import threading
import timeit
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from multiprocessing import Pool
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .core import Classification, StructureClassifier
from .exceptions import StructuralInconsistencyError
from .geometry import DEFAULT_TOLERANCE
from .spins import encode_configuration, magnetic_atom_indices, spins_to_string

logger = logging.getLogger(__name__)

# --- Search Constants ---
EXHAUSTIVE_WARNING_THRESHOLD: int = 20  # magnetic atoms before asking for confirmation
SAMPLING_RECOMMENDED_THRESHOLD: int = 25  # beyond this a declined search falls back to sampling
PROGRESS_MAX_INTERVAL: int = 100_000
DEFAULT_MAX_SAMPLES: int = 1_000_000
DEFAULT_BATCH_SIZE: int = 10_000
DEFAULT_EARLY_STOP: int = 100
# --- End Search Constants ---


class SearchMode(str, Enum):
    AUTO = "auto"
    EXHAUSTIVE = "exhaustive"
    SAMPLING = "sampling"


class SearchStatus(str, Enum):
    COMPLETED = "completed"
    EARLY_STOPPED = "early_stopped"
    NO_MAGNETIC_ATOMS = "no_magnetic_atoms"
    CANCELLED = "cancelled"


@dataclass
class SpinConfiguration:
    """One candidate spin assignment and its classification."""

    configuration_id: int
    spins: npt.NDArray[np.int8]
    is_altermagnetic: bool = True

    @property
    def spin_string(self) -> str:
        return spins_to_string(self.spins)


@dataclass
class SamplingSettings:
    max_samples: int = DEFAULT_MAX_SAMPLES
    batch_size: int = DEFAULT_BATCH_SIZE
    early_stop: int = DEFAULT_EARLY_STOP
    seed: Optional[int] = None


@dataclass
class SearchResult:
    """Matches of one search run plus summary statistics."""

    status: SearchStatus
    mode: Optional[SearchMode]
    num_atoms: int
    magnetic_indices: List[int]
    total_configurations: int
    evaluated: int = 0
    skipped: int = 0
    matches: List[SpinConfiguration] = field(default_factory=list)
    worker_counts: List[int] = field(default_factory=list)
    executor: str = "thread"
    elapsed: float = 0.0

    @property
    def tested(self) -> int:
        """Candidates looked at, whether classified or skipped for imbalance."""
        return self.evaluated + self.skipped

    @property
    def found(self) -> int:
        return len(self.matches)

    @property
    def fraction(self) -> float:
        return self.found / self.tested if self.tested else 0.0


ProgressCallback = Callable[[int, int, int], None]
MatchCallback = Callable[[SpinConfiguration], None]


def progress_interval(total: int) -> int:
    """Report cadence: every 1% of the work, but at least every 100000 candidates."""
    return min(PROGRESS_MAX_INTERVAL, max(1, total // 100))


def partition_range(total: int, n_workers: int) -> List[Tuple[int, int]]:
    """
    Split ``[0, total)`` into `n_workers` contiguous half-open ranges.

    The first ``total % n_workers`` ranges get one extra element. Ranges
    are empty when there are more workers than elements.
    """
    n_workers = max(1, n_workers)
    base, remainder = divmod(total, n_workers)
    ranges = []
    start = 0
    for w in range(n_workers):
        end = start + base + (1 if w < remainder else 0)
        ranges.append((start, end))
        start = end
    return ranges


class ProgressTracker:
    """
    Counters shared by all workers of one run.

    `advance` is called once per candidate (or once per chunk by the
    process executor). The progress callback fires whenever the completed
    count crosses a multiple of `interval`.
    """

    def __init__(
        self,
        total: int,
        callback: Optional[ProgressCallback] = None,
        output_lock: Optional[threading.Lock] = None,
    ):
        self.total = total
        self.interval = progress_interval(total)
        self.callback = callback
        self.completed = 0
        self.found = 0
        self._lock = threading.Lock()
        self._output_lock = output_lock or threading.Lock()

    def advance(self, completed: int = 1, found: int = 0) -> None:
        with self._lock:
            before = self.completed
            self.completed += completed
            self.found += found
            snapshot = (self.completed, self.total, self.found)
        if self.callback is not None and snapshot[0] // self.interval > before // self.interval:
            with self._output_lock:
                self.callback(*snapshot)


def log_progress(completed: int, total: int, found: int) -> None:
    """Default progress callback."""
    pct = 100.0 * completed / total if total else 100.0
    logger.info(
        f"Progress: {pct:.1f}% ({completed}/{total}) - Found: {found} altermagnetic configs"
    )


def _evaluate_ids(
    classifier: StructureClassifier,
    magnetic_indices: Sequence[int],
    configuration_ids: Iterable[int],
    tracker: Optional[ProgressTracker] = None,
    announce: Optional[Callable[[SpinConfiguration], None]] = None,
) -> Tuple[List[SpinConfiguration], int, int]:
    """
    Classify a run of candidate ids.

    Returns:
        Tuple of (matches, evaluated, skipped). Candidates with unbalanced
        orbits are counted as skipped and dropped.
    """
    matches: List[SpinConfiguration] = []
    evaluated = 0
    skipped = 0
    num_atoms = classifier.num_atoms
    for configuration_id in configuration_ids:
        spins = encode_configuration(configuration_id, num_atoms, magnetic_indices)
        outcome = classifier.classify(spins, detailed=False)
        if outcome.status is Classification.SPIN_IMBALANCE:
            skipped += 1
            if tracker is not None:
                tracker.advance()
            continue

        evaluated += 1
        hit = outcome.status is Classification.ALTERMAGNET
        if hit:
            config = SpinConfiguration(configuration_id, spins, True)
            matches.append(config)
            if announce is not None:
                announce(config)
        if tracker is not None:
            tracker.advance(found=int(hit))
    return matches, evaluated, skipped


# --- Process executor (module level for pickling) ---
_worker_classifier: Optional[StructureClassifier] = None
_worker_magnetic_indices: Optional[List[int]] = None


def _init_worker(classifier: StructureClassifier, magnetic_indices: List[int]):
    """Initializer of the multiprocessing pool: keep the classifier per process."""
    global _worker_classifier, _worker_magnetic_indices
    _worker_classifier = classifier
    _worker_magnetic_indices = magnetic_indices


def _process_chunk(args: Tuple[int, List[int]]) -> Tuple[int, List[SpinConfiguration], int, int]:
    worker_index, ids = args
    matches, evaluated, skipped = _evaluate_ids(
        _worker_classifier, _worker_magnetic_indices, ids
    )
    return worker_index, matches, evaluated, skipped


class ConfigurationSearch:
    """
    Search engine over the up/down assignments of the magnetic atoms.

    Args:
        classifier (StructureClassifier): Classifier of the structure.
        magnetic_indices (Sequence[int]): Atoms that are varied, in the order
            defining the bits of a candidate id.
        workers (Optional[int]): Number of workers, `os.cpu_count()` if None.
        executor (str): ``"thread"`` or ``"process"``.
        exhaustive_threshold (int): Number of magnetic atoms above which an
            exhaustive run needs confirmation.
        sampling_threshold (int): Number of magnetic atoms above which a
            declined exhaustive run falls back to sampling.
        sampling (Optional[SamplingSettings]): Sampling mode parameters.
        progress_callback: Called as ``(completed, total, found)``.
        on_match: Called with every match as soon as it is found.
    """

    EXECUTORS = ("thread", "process")

    def __init__(
        self,
        classifier: StructureClassifier,
        magnetic_indices: Sequence[int],
        workers: Optional[int] = None,
        executor: str = "thread",
        exhaustive_threshold: int = EXHAUSTIVE_WARNING_THRESHOLD,
        sampling_threshold: int = SAMPLING_RECOMMENDED_THRESHOLD,
        sampling: Optional[SamplingSettings] = None,
        progress_callback: Optional[ProgressCallback] = log_progress,
        on_match: Optional[MatchCallback] = None,
    ):
        if executor not in self.EXECUTORS:
            raise ValueError(f"Unknown executor '{executor}', expected one of {self.EXECUTORS}.")
        self.classifier = classifier
        self.magnetic_indices = [int(i) for i in magnetic_indices]
        self.num_magnetic = len(self.magnetic_indices)
        self.total_configurations = 2 ** self.num_magnetic
        self.workers = workers or os.cpu_count() or 1
        self.executor = executor
        self.exhaustive_threshold = exhaustive_threshold
        self.sampling_threshold = sampling_threshold
        self.sampling = sampling or SamplingSettings()
        self.progress_callback = progress_callback
        self.on_match = on_match
        self._output_lock = threading.Lock()

    @classmethod
    def from_structure(
        cls,
        structure,
        tolerance: float = DEFAULT_TOLERANCE,
        magnetic_indices: Optional[Sequence[int]] = None,
        **kwargs,
    ) -> "ConfigurationSearch":
        """
        Build a search for a structure exposing `symmetry_operations`,
        `positions`, `orbit_ids` and `symbols` (e.g. `CrystalStructure`).
        """
        classifier = StructureClassifier(
            structure.symmetry_operations,
            structure.positions,
            structure.orbit_ids,
            structure.symbols,
            tolerance,
        )
        if magnetic_indices is None:
            magnetic_indices = magnetic_atom_indices(structure.symbols)
        return cls(classifier, magnetic_indices, **kwargs)

    # --- Setup ---

    def _empty_result(self, status: SearchStatus, mode: Optional[SearchMode] = None) -> SearchResult:
        return SearchResult(
            status=status,
            mode=mode,
            num_atoms=self.classifier.num_atoms,
            magnetic_indices=list(self.magnetic_indices),
            total_configurations=self.total_configurations,
            executor=self.executor,
        )

    def _check_magnetic_orbits(self) -> None:
        """
        Every candidate gives each magnetic atom a spin, so a structure whose
        multi-member orbits hold no magnetic atom fails the same way for all
        of them. Detect that once instead of per candidate.
        """
        if self.classifier.all_singleton:
            return
        magnetic = set(self.magnetic_indices)
        for idx in self.classifier.orbits.values():
            if len(idx) > 1 and magnetic.intersection(idx.tolist()):
                return
        raise StructuralInconsistencyError(
            "No orbit with more than one atom contains a magnetic atom; "
            "the structure cannot be searched for altermagnetic configurations.",
            orbit_ids=[u for u, idx in self.classifier.orbits.items() if len(idx) > 1],
        )

    def _announce(self, config: SpinConfiguration) -> None:
        with self._output_lock:
            logger.info(f"FOUND Config #{config.configuration_id:>8}: {config.spin_string}")
            if self.on_match is not None:
                self.on_match(config)

    # --- Entry point ---

    def run(
        self,
        mode: SearchMode = SearchMode.AUTO,
        confirm: Optional[Callable[[int, int], bool]] = None,
        allow_sampling: bool = True,
    ) -> SearchResult:
        """
        Triage the configuration space and run the search.

        Args:
            mode (SearchMode): ``auto`` decides from the number of magnetic
                atoms, ``exhaustive`` and ``sampling`` force a mode.
            confirm: Called as ``confirm(n_magnetic, total)`` when the space
                exceeds the exhaustive threshold; True proceeds with the full
                enumeration. Without a callback, an explicit ``exhaustive``
                mode proceeds and ``auto`` does not.
            allow_sampling (bool): Whether a declined exhaustive run may fall
                back to sampling for very large spaces.

        Returns:
            SearchResult: Sorted matches and statistics.

        Raises:
            StructuralInconsistencyError: If no multi-member orbit contains a
                magnetic atom.
        """
        mode = SearchMode(mode)
        if self.num_magnetic == 0:
            logger.warning(
                "Structure contains no potentially magnetic atoms. "
                "Altermagnet analysis requires magnetic atoms."
            )
            return self._empty_result(SearchStatus.NO_MAGNETIC_ATOMS)

        self._check_magnetic_orbits()

        if mode is SearchMode.SAMPLING:
            return self.run_sampling()

        if self.num_magnetic > self.exhaustive_threshold:
            logger.warning(
                f"Structure has {self.num_magnetic} magnetic atoms: "
                f"{self.total_configurations} configurations to test."
            )
            if confirm is not None:
                proceed = bool(confirm(self.num_magnetic, self.total_configurations))
            else:
                proceed = mode is SearchMode.EXHAUSTIVE
            if not proceed:
                if allow_sampling and self.num_magnetic > self.sampling_threshold:
                    logger.info("Exhaustive search declined, switching to sampling.")
                    return self.run_sampling()
                logger.info("Search cancelled.")
                return self._empty_result(SearchStatus.CANCELLED)

        return self.run_exhaustive()

    # --- Modes ---

    def run_exhaustive(self) -> SearchResult:
        """Check every candidate id in ``[0, 2**m)`` exactly once."""
        total = self.total_configurations
        n_workers = min(self.workers, total)
        logger.info(
            f"Exhaustive search: {self.classifier.num_atoms} atoms ({self.num_magnetic} magnetic), "
            f"{total} configurations, {n_workers} {self.executor} workers."
        )
        start_time = timeit.default_timer()
        tracker = ProgressTracker(total, self.progress_callback, self._output_lock)
        chunks = [range(start, end) for start, end in partition_range(total, n_workers)]

        result = self._empty_result(SearchStatus.COMPLETED, SearchMode.EXHAUSTIVE)
        self._run_chunks(chunks, tracker, result)
        result.matches.sort(key=lambda c: c.configuration_id)
        result.elapsed = timeit.default_timer() - start_time
        self._log_summary(result)
        return result

    def run_sampling(self) -> SearchResult:
        """
        Check random candidates in batches until `early_stop` matches were
        found or `max_samples` candidates were drawn.

        Ids are distinct within a batch; a later batch may draw an id again,
        in which case its match is recorded only once.
        """
        settings = self.sampling
        budget = min(settings.max_samples, self.total_configurations)
        n_workers = max(1, self.workers)
        rng = np.random.default_rng(settings.seed)
        logger.info(
            f"Sampling search: {self.num_magnetic} magnetic atoms, up to {budget} samples "
            f"in batches of {settings.batch_size}, early stop after {settings.early_stop} matches."
        )
        start_time = timeit.default_timer()
        tracker = ProgressTracker(budget, self.progress_callback, self._output_lock)
        result = self._empty_result(SearchStatus.COMPLETED, SearchMode.SAMPLING)
        result.worker_counts = [0] * n_workers

        sampled = 0
        while sampled < budget:
            n_unique = len({c.configuration_id for c in result.matches})
            if n_unique >= settings.early_stop:
                logger.info(f"Early stopping: found {n_unique} altermagnetic configurations.")
                result.status = SearchStatus.EARLY_STOPPED
                break
            batch_size = min(settings.batch_size, budget - sampled)
            ids = self._draw_batch(rng, batch_size)
            chunks = [ids[start:end] for start, end in partition_range(len(ids), n_workers)]
            self._run_chunks(chunks, tracker, result)
            sampled += len(ids)

        unique = {}
        for config in result.matches:
            unique.setdefault(config.configuration_id, config)
        result.matches = sorted(unique.values(), key=lambda c: c.configuration_id)
        result.elapsed = timeit.default_timer() - start_time
        self._log_summary(result)
        if not result.matches:
            logger.info(
                "No altermagnetic configurations found in sample. "
                "This doesn't rule out altermagnetism."
            )
        return result

    def _draw_batch(self, rng: np.random.Generator, size: int) -> List[int]:
        """`size` distinct random candidate ids."""
        seen = set()
        ids: List[int] = []
        m = self.num_magnetic
        while len(ids) < size:
            need = size - len(ids)
            if m <= 62:
                draws = rng.integers(0, self.total_configurations, size=need).tolist()
            else:
                bits = rng.integers(0, 2, size=(need, m))
                draws = [int("".join(map(str, row[::-1])), 2) for row in bits]
            for configuration_id in draws:
                if configuration_id not in seen:
                    seen.add(configuration_id)
                    ids.append(configuration_id)
        return ids

    # --- Executors ---

    def _run_chunks(
        self,
        chunks: List[Sequence[int]],
        tracker: ProgressTracker,
        result: SearchResult,
    ) -> None:
        """Evaluate one id slice per worker and fold the counts into `result`."""
        if len(result.worker_counts) < len(chunks):
            result.worker_counts.extend([0] * (len(chunks) - len(result.worker_counts)))
        if self.executor == "process":
            self._run_process_pool(chunks, tracker, result)
        else:
            self._run_thread_pool(chunks, tracker, result)

    def _run_thread_pool(
        self,
        chunks: List[Sequence[int]],
        tracker: ProgressTracker,
        result: SearchResult,
    ) -> None:
        results_lock = threading.Lock()

        def worker(worker_index: int, ids: Sequence[int]) -> None:
            matches, evaluated, skipped = _evaluate_ids(
                self.classifier, self.magnetic_indices, ids, tracker, self._announce
            )
            # Batch merge once per worker
            with results_lock:
                result.matches.extend(matches)
                result.evaluated += evaluated
                result.skipped += skipped
                result.worker_counts[worker_index] += evaluated + skipped

        with ThreadPoolExecutor(max_workers=len(chunks)) as pool:
            futures = [pool.submit(worker, i, ids) for i, ids in enumerate(chunks)]
            for future in futures:
                future.result()

    def _run_process_pool(
        self,
        chunks: List[Sequence[int]],
        tracker: ProgressTracker,
        result: SearchResult,
    ) -> None:
        # Sub-chunks keep progress and streaming alive while a slice is processed
        step = max(1, tracker.interval)
        pool_args = []
        for worker_index, ids in enumerate(chunks):
            ids = list(ids)
            for start in range(0, len(ids), step):
                pool_args.append((worker_index, ids[start:start + step]))
        if not pool_args:
            return

        with Pool(
            processes=len(chunks),
            initializer=_init_worker,
            initargs=(self.classifier, self.magnetic_indices),
        ) as pool:
            for worker_index, matches, evaluated, skipped in pool.imap_unordered(
                _process_chunk, pool_args
            ):
                for config in matches:
                    self._announce(config)
                result.matches.extend(matches)
                result.evaluated += evaluated
                result.skipped += skipped
                result.worker_counts[worker_index] += evaluated + skipped
                tracker.advance(evaluated + skipped, len(matches))

    def _log_summary(self, result: SearchResult) -> None:
        logger.info(
            f"Search {result.status.value}: tested {result.tested} configurations "
            f"({result.skipped} skipped for spin imbalance), found {result.found} altermagnetic "
            f"({100.0 * result.fraction:.2f}%) in {result.elapsed:.2f} s."
        )


def search_spin_configurations(
    structure,
    tolerance: float = DEFAULT_TOLERANCE,
    mode: SearchMode = SearchMode.AUTO,
    confirm: Optional[Callable[[int, int], bool]] = None,
    **kwargs,
) -> SearchResult:
    """
    Search all up/down assignments of the magnetic atoms of `structure`.

    Keyword arguments are passed on to `ConfigurationSearch`.
    """
    search = ConfigurationSearch.from_structure(structure, tolerance, **kwargs)
    return search.run(mode=mode, confirm=confirm)
