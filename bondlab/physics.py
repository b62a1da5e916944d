from __future__ import annotations
from typing import Iterable, List, Optional
import logging

import numpy as np

from .constants import DEFAULT_DT, EPSILON

logger = logging.getLogger(__name__)


def as_vector(value: Optional[Iterable[float]]) -> np.ndarray:
    """Coerce a 3-sequence (or None) into a float64 numpy vector."""
    if value is None:
        return np.zeros(3, dtype=float)
    vec = np.asarray(value, dtype=float).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {vec.shape}")
    return vec.copy()


# -----------------------
# Rigid body
# -----------------------

class Body:
    """
    Point-mass body owned by the physics world.

    Forces accumulate between steps and are cleared after integration.
    A kinematic body is ignored by force integration; its position only
    changes when set explicitly.
    """

    def __init__(self,
                 mass: float = 1.0,
                 position: Optional[Iterable[float]] = None,
                 velocity: Optional[Iterable[float]] = None,
                 radius: float = 0.5,
                 linear_damping: float = 0.4):
        if mass <= 0:
            raise ValueError("Body mass must be positive")
        self.mass: float = float(mass)
        self.position: np.ndarray = as_vector(position)
        self.velocity: np.ndarray = as_vector(velocity)
        self.force: np.ndarray = np.zeros(3, dtype=float)
        self.radius: float = float(radius)
        self.linear_damping: float = float(linear_damping)
        self.kinematic: bool = False

    def apply_force(self, force: Iterable[float]) -> None:
        self.force += np.asarray(force, dtype=float)

    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))

    def kinetic_energy(self) -> float:
        return 0.5 * self.mass * float(np.dot(self.velocity, self.velocity))

    def __repr__(self) -> str:
        return f"Body(mass={self.mass:.2f}, pos={self.position.round(3).tolist()})"


# -----------------------
# Physics world
# -----------------------

class PhysicsWorld:
    """
    Minimal force/velocity integrator standing in for an external engine.

    Typical usage:
        world = PhysicsWorld(dt=1/60)
        world.add_body(body)
        body.apply_force([1, 0, 0])
        world.step()
    """

    def __init__(self, dt: float = DEFAULT_DT):
        self.dt: float = float(dt)
        self.bodies: List[Body] = []

    def add_body(self, body: Body) -> Body:
        if body not in self.bodies:
            self.bodies.append(body)
        return body

    def remove_body(self, body: Body) -> bool:
        """Remove a body if present. Returns False when it was not registered."""
        try:
            self.bodies.remove(body)
            return True
        except ValueError:
            return False

    def __contains__(self, body: Body) -> bool:
        return body in self.bodies

    def step(self, dt: Optional[float] = None) -> None:
        """Semi-implicit Euler with exponential linear damping: v *= (1 - damping) ** dt."""
        dt = self.dt if dt is None else float(dt)
        if dt <= 0:
            return
        for body in self.bodies:
            if body.kinematic:
                body.force[:] = 0.0
                continue
            body.velocity += (body.force / max(body.mass, EPSILON)) * dt
            damping = min(max(body.linear_damping, 0.0), 1.0)
            body.velocity *= (1.0 - damping) ** dt
            body.position += body.velocity * dt
            body.force[:] = 0.0
