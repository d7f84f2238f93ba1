"""AMCheck: detection of altermagnetic spin configurations from crystal symmetry."""
from .core import (
    Classification,
    OrbitResult,
    StructureClassifier,
    StructureOutcome,
    analyze_orbit,
    analyze_structure,
    is_orbit_altermagnetic,
    is_structure_altermagnetic,
)
from .exceptions import (
    InvalidInputError,
    SpinImbalanceError,
    StructuralInconsistencyError,
)
from .geometry import DEFAULT_TOLERANCE, wrap_to_cell
from .search import (
    ConfigurationSearch,
    SamplingSettings,
    SearchMode,
    SearchResult,
    SearchStatus,
    SpinConfiguration,
    search_spin_configurations,
)
from .spins import SpinLabel

is_altermagnet = is_structure_altermagnetic

__version__ = "0.1.0"
