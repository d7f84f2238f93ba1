"""Errors raised by the altermagnetism classifiers."""
from typing import Optional


class AMCheckError(Exception):
    """Base class for amcheck errors."""


class InvalidInputError(AMCheckError, ValueError):
    """Inconsistent arguments, e.g. positions and spins of different length."""


class SpinImbalanceError(AMCheckError, ValueError):
    """An orbit with magnetic atoms has different numbers of up and down spins."""

    def __init__(self, n_up: int, n_down: int, orbit_id: Optional[int] = None):
        self.n_up = n_up
        self.n_down = n_down
        self.orbit_id = orbit_id
        where = f" in orbit {orbit_id}" if orbit_id is not None else ""
        super().__init__(
            f"Number of up spins should equal number of down spins{where}: "
            f"got {n_up} up and {n_down} down spins!"
        )


class StructuralInconsistencyError(AMCheckError, RuntimeError):
    """No orbit could be checked although not every orbit is a singleton."""

    def __init__(self, message: Optional[str] = None, orbit_ids=()):
        self.orbit_ids = tuple(orbit_ids)
        super().__init__(
            message
            or (
                "Something is wrong with the description of magnetic atoms! "
                "Have you provided a non-magnetic/ferromagnetic material?"
            )
        )
