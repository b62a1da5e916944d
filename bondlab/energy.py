from __future__ import annotations
from typing import Iterable, Optional
import logging

import numpy as np

from .constants import (
    BASE_TEMPERATURE,
    ENERGY_EPSILON,
    HEAT_JITTER_FACTOR,
    KINETIC_ENERGY_SCALE,
    MAX_TRANSIENT_ENERGY,
    TEMPERATURE_PER_ENERGY,
)
from .physics import Body

logger = logging.getLogger(__name__)


class EnergyModel:
    """
    Transient heat plus body kinetic energy.

    ``transient_heat`` is raised by heat pulses, decays multiplicatively every
    tick and is spent by reactions. It never goes negative and snaps to zero
    once it falls below ``ENERGY_EPSILON``.
    """

    def __init__(self,
                 decay_rate: float = 0.99,
                 max_energy: float = MAX_TRANSIENT_ENERGY,
                 base_temperature: float = BASE_TEMPERATURE,
                 seed: Optional[int] = None,
                 rng: Optional[np.random.Generator] = None):
        self.decay_rate = float(decay_rate)
        self.max_energy = float(max_energy)
        self.base_temperature = float(base_temperature)
        self.transient_heat: float = 0.0
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    # -----------------------
    # Heat pulses / consumption
    # -----------------------
    def add_energy(self, amount: float, bodies: Iterable[Body] = ()) -> float:
        """
        Raise transient heat by ``amount`` (capped) and jitter body velocities.

        Each velocity component receives a uniform kick in
        [-amount/2, amount/2). Returns the new transient heat.
        """
        amount = float(amount)
        if amount < 0:
            raise ValueError("Energy amount must be non-negative")
        self.transient_heat = min(self.max_energy, self.transient_heat + amount)
        for body in bodies:
            if body.kinematic:
                continue
            body.velocity += (self.rng.random(3) - 0.5) * amount
        logger.info(f"Heat pulse +{amount:.2f} -> transient heat {self.transient_heat:.2f}")
        return self.transient_heat

    def consume(self, amount: float) -> float:
        """Spend energy; returns what was actually taken (never more than available)."""
        taken = min(max(float(amount), 0.0), self.transient_heat)
        self.transient_heat -= taken
        if self.transient_heat < ENERGY_EPSILON:
            self.transient_heat = 0.0
        return taken

    def reset(self) -> None:
        self.transient_heat = 0.0

    def decay(self) -> float:
        self.transient_heat *= self.decay_rate
        if self.transient_heat < ENERGY_EPSILON:
            self.transient_heat = 0.0
        return self.transient_heat

    def jitter(self, bodies: Iterable[Body], intensity: float) -> None:
        """Small random kicks for continuous heating."""
        scale = float(intensity) * HEAT_JITTER_FACTOR
        for body in bodies:
            if not body.kinematic:
                body.velocity += (self.rng.random(3) - 0.5) * scale

    # -----------------------
    # Queries
    # -----------------------
    def system_energy(self, bodies: Iterable[Body]) -> float:
        kinetic = sum(b.kinetic_energy() for b in bodies) * KINETIC_ENERGY_SCALE
        return self.transient_heat + kinetic

    def temperature(self) -> float:
        return self.base_temperature + self.transient_heat * TEMPERATURE_PER_ENERGY

    @staticmethod
    def limit_velocities(bodies: Iterable[Body], max_velocity: float) -> int:
        """Clamp body speeds to ``max_velocity``. Returns how many were clamped."""
        clamped = 0
        for body in bodies:
            speed = body.speed()
            if speed > max_velocity > 0:
                body.velocity *= max_velocity / speed
                clamped += 1
        return clamped
