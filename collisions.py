# collisions.py
import logging
from dataclasses import dataclass
from typing import Callable, List, Tuple

import numpy as np

from bodies import Body
from registry import BodyRegistry, RegistrySnapshot


@dataclass(frozen=True)
class CollisionEvent:
    """One resolved contact: `removed` left the registry, `survivor` stayed."""
    removed: Body
    survivor: Body


CollisionListener = Callable[[CollisionEvent], None]


def is_colliding(position_a, radius_a: float, position_b, radius_b: float) -> bool:
    """Contact test: distance between centers <= sum of radii. Symmetric in its arguments."""
    separation = np.asarray(position_b, dtype=np.float64) - np.asarray(position_a, dtype=np.float64)
    reach = radius_a + radius_b
    return float(np.dot(separation, separation)) <= reach * reach


def detect_collisions(snapshot: RegistrySnapshot) -> List[Tuple[int, int]]:
    """
    Finds every colliding pair in a snapshot.

    Each unordered pair is reported once, as (lower index id, higher index id)
    in registration order. Pairs of two central bodies are ignored since
    neither can move.

    Returns:
        List[Tuple[int, int]]: Body id pairs.
    """
    pairs = []
    count = len(snapshot)
    for i in range(count):
        for j in range(i + 1, count):
            if snapshot.central[i] and snapshot.central[j]:
                continue
            if is_colliding(snapshot.positions[i], snapshot.radii[i], snapshot.positions[j], snapshot.radii[j]):
                pairs.append((snapshot.ids[i], snapshot.ids[j]))
    return pairs


def choose_removed(a: Body, b: Body) -> Tuple[Body, Body]:
    """
    Decides which body of a colliding pair is removed.

    The lower-mass body is removed. On equal mass the body with the higher id
    is removed, so the outcome does not depend on argument order.

    Returns:
        Tuple[Body, Body]: (removed, survivor)
    """
    if a.mass < b.mass:
        return a, b
    if b.mass < a.mass:
        return b, a
    return (b, a) if b.body_id > a.body_id else (a, b)


class CollisionResolver:
    """Removes the losing body of each contact from a registry and notifies listeners."""

    def __init__(self):
        self._listeners: List[CollisionListener] = []

    def add_listener(self, listener: CollisionListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: CollisionListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def resolve(self, registry: BodyRegistry, pairs: List[Tuple[int, int]]) -> List[CollisionEvent]:
        """
        Applies a batch of detected contacts at a tick boundary.

        Pairs whose members were already removed earlier in the batch are
        skipped. Listener failures are logged and do not stop resolution.

        Returns:
            List[CollisionEvent]: The contacts that removed a body, in order.
        """
        events = []
        for id_a, id_b in pairs:
            body_a = registry.get(id_a)
            body_b = registry.get(id_b)
            if body_a is None or body_b is None:
                continue
            removed, survivor = choose_removed(body_a, body_b)
            registry.deregister(removed)
            event = CollisionEvent(removed=removed, survivor=survivor)
            events.append(event)
            logging.info(f"Collision: '{removed.name}' (id {removed.body_id}, {removed.mass:.3e} kg) "
                         f"removed by '{survivor.name}' (id {survivor.body_id}, {survivor.mass:.3e} kg).")
            self._notify(event)
        return events

    def _notify(self, event: CollisionEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logging.error(f"Collision listener {listener!r} failed: {e}", exc_info=True)
