from typing import List, Optional, Union, Literal, Tuple
from pydantic import BaseModel, Field, model_validator


# --- Primitive Types ---
Vector3 = Union[List[float], Tuple[float, float, float]]

# --- Structure ---
class AtomEntry(BaseModel):
    element: str
    pos: Vector3
    spin: Optional[str] = None  # u / d / n

class StructureConfig(BaseModel):
    file: Optional[str] = None
    format: Optional[str] = None  # passed to ase.io.read
    lattice_vectors: Optional[List[Vector3]] = None
    atoms: List[AtomEntry] = Field(default_factory=list)
    # Spin pattern for a single check, e.g. "u d n n" or ["u", "d", "n", "n"]
    spins: Optional[Union[str, List[str]]] = None

    @model_validator(mode='after')
    def check_structure_source(self):
        if not self.file and not (self.lattice_vectors and self.atoms):
            raise ValueError("Must provide either 'file' or 'lattice_vectors' together with 'atoms'.")
        if self.lattice_vectors is not None and len(self.lattice_vectors) != 3:
            raise ValueError("'lattice_vectors' must contain three vectors.")
        return self

    def spin_tokens(self) -> Optional[List[str]]:
        if self.spins is not None:
            return self.spins.split() if isinstance(self.spins, str) else list(self.spins)
        if self.atoms and any(a.spin for a in self.atoms):
            return [a.spin or "n" for a in self.atoms]
        return None

# --- Symmetry / Analysis ---
class SymmetryConfig(BaseModel):
    symprec: float = Field(default=1e-3, gt=0)

class AnalysisConfig(BaseModel):
    enabled: bool = True
    tolerance: float = Field(default=1e-3, gt=0)

# --- Search ---
class SamplingConfig(BaseModel):
    max_samples: int = Field(default=1_000_000, gt=0)
    batch_size: int = Field(default=10_000, gt=0)
    early_stop: int = Field(default=100, gt=0)
    seed: Optional[int] = None

class SearchConfig(BaseModel):
    enabled: bool = False
    mode: Literal['auto', 'exhaustive', 'sampling'] = 'auto'
    workers: Optional[int] = Field(default=None, gt=0)
    executor: Literal['thread', 'process'] = 'thread'
    exhaustive_threshold: int = 20
    sampling_threshold: int = 25
    allow_sampling: bool = True
    # Proceed with a large exhaustive search without asking
    confirm_large: bool = False
    output_file: Optional[str] = None
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)

# --- Main Configuration ---
class AMCheckConfig(BaseModel):
    structure: StructureConfig
    symmetry: SymmetryConfig = Field(default_factory=SymmetryConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
