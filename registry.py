# registry.py
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple, Union

import numpy as np

from bodies import Body
from config import config


class GravitySources(NamedTuple):
    """Frozen arrays describing the bodies that attract a given receiver.

    All arrays share the first dimension. Positions are (n, 3).
    """
    ids: Tuple[int, ...]
    positions: np.ndarray
    masses: np.ndarray
    radii: np.ndarray

    @classmethod
    def empty(cls) -> "GravitySources":
        return cls((), np.zeros((0, 3), dtype=np.float64), np.zeros(0, dtype=np.float64),
                   np.zeros(0, dtype=np.float64))

    def __len__(self):
        return len(self.ids)


@dataclass(frozen=True)
class RegistrySnapshot:
    """Immutable copy of the registry taken at one instant, in registration order.

    The arrays are copies, so bodies may move, register or deregister while a
    force pass or a background prediction still reads the snapshot.
    """
    ids: Tuple[int, ...]
    positions: np.ndarray
    velocities: np.ndarray
    masses: np.ndarray
    radii: np.ndarray
    central: np.ndarray

    def __len__(self):
        return len(self.ids)

    def index_of(self, body_id: int) -> int:
        return self.ids.index(body_id)

    def sources(self, exclude_id: Optional[int] = None, mass_epsilon: Optional[float] = None) -> GravitySources:
        """Gravity sources seen by `exclude_id`: everyone else that has mass."""
        if mass_epsilon is None:
            mass_epsilon = config.Physics.MASS_EPSILON
        keep = self.masses > mass_epsilon
        if exclude_id is not None:
            keep &= np.array([body_id != exclude_id for body_id in self.ids], dtype=bool)
        ids = tuple(body_id for body_id, kept in zip(self.ids, keep) if kept)
        return GravitySources(ids, self.positions[keep], self.masses[keep], self.radii[keep])

    def state_of(self, body_id: int) -> Tuple[np.ndarray, np.ndarray]:
        index = self.index_of(body_id)
        return self.positions[index].copy(), self.velocities[index].copy()


class BodyRegistry:
    """The authoritative, ordered set of bodies in one simulation.

    Registration and removal are idempotent and never raise for duplicates or
    missing bodies. Owned by a `SimulationSession`; there is no global instance.
    """

    def __init__(self):
        self._bodies: Dict[int, Body] = {}

    def register(self, body: Body) -> bool:
        """Adds a body if absent.

        Returns:
            bool: True if the body was added, False if it was already present
                  (or its id is taken by another object).
        """
        existing = self._bodies.get(body.body_id)
        if existing is body:
            return False
        if existing is not None:
            logging.warning(f"Ignoring registration of '{body.name}': id {body.body_id} already belongs to '{existing.name}'.")
            return False
        self._bodies[body.body_id] = body
        logging.info(f"Registered body '{body.name}' (id {body.body_id}, mass {body.mass:.3e} kg).")
        return True

    def deregister(self, body: Union[Body, int]) -> Optional[Body]:
        """Removes a body (or id) if present. Returns the removed body or None."""
        body_id = body.body_id if isinstance(body, Body) else int(body)
        removed = self._bodies.pop(body_id, None)
        if removed is not None:
            logging.info(f"Deregistered body '{removed.name}' (id {body_id}).")
        return removed

    def get(self, body_id: int) -> Optional[Body]:
        return self._bodies.get(body_id)

    def bodies(self) -> List[Body]:
        """Registered bodies in registration order (a new list)."""
        return list(self._bodies.values())

    @property
    def central_body(self) -> Optional[Body]:
        """The first registered central body, if any."""
        for body in self._bodies.values():
            if body.is_central:
                return body
        return None

    def snapshot(self) -> RegistrySnapshot:
        bodies = list(self._bodies.values())
        count = len(bodies)
        positions = np.zeros((count, 3), dtype=np.float64)
        velocities = np.zeros((count, 3), dtype=np.float64)
        for i, body in enumerate(bodies):
            positions[i] = body.position
            velocities[i] = body.velocity
        return RegistrySnapshot(
            ids=tuple(body.body_id for body in bodies),
            positions=positions,
            velocities=velocities,
            masses=np.array([body.mass for body in bodies], dtype=np.float64),
            radii=np.array([body.radius for body in bodies], dtype=np.float64),
            central=np.array([body.is_central for body in bodies], dtype=bool),
        )

    def __contains__(self, body: Union[Body, int]) -> bool:
        if isinstance(body, Body):
            return self._bodies.get(body.body_id) is body
        return int(body) in self._bodies

    def __len__(self):
        return len(self._bodies)

    def __iter__(self) -> Iterator[Body]:
        return iter(self.bodies())
