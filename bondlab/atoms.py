from __future__ import annotations
from typing import Any, Dict, Iterable, Optional
import logging

import numpy as np

from .elements_data import Element, get_element
from .physics import Body

logger = logging.getLogger(__name__)


def atom_mass(protons: int, neutrons: int) -> float:
    """Mass number, with 1 as the floor for an empty nucleus."""
    total = int(protons) + int(neutrons)
    return float(total) if total > 0 else 1.0


def atom_radius(mass: float) -> float:
    """Collision radius grows with the cube root of mass."""
    radius = float(np.cbrt(mass)) * 0.7
    return radius if radius > 0 else 0.5


class Atom:
    """
    Represents a single atom in the simulation.

    The atom owns its physics body while it is free. When it becomes a member
    of a molecule the body leaves the physics world and the molecule's
    compound body carries it instead.
    """

    def __init__(self,
                 uid: int,
                 protons: int,
                 neutrons: int = 0,
                 electrons: Optional[int] = None,
                 position: Optional[Iterable[float]] = None,
                 velocity: Optional[Iterable[float]] = None,
                 linear_damping: float = 0.4):
        """
        Initialize an Atom.

        Args:
            uid (int): Unique, monotonically assigned identifier.
            protons (int): Atomic number. Must be at least 1.
            neutrons (int): Neutron count.
            electrons (int, optional): Electron count. Defaults to neutral.
            position (Iterable[float], optional): 3D position. Defaults to origin.
            velocity (Iterable[float], optional): 3D velocity. Defaults to zero.
            linear_damping (float): Damping of the owned body.
        """
        if int(protons) < 1:
            raise ValueError("An atom needs at least one proton")
        self.uid: int = int(uid)
        self.protons: int = int(protons)
        self.neutrons: int = max(0, int(neutrons))
        self.electrons: int = self.protons if electrons is None else max(0, int(electrons))
        self.molecule_id: Optional[str] = None

        mass = atom_mass(self.protons, self.neutrons)
        self.body: Body = Body(mass=mass,
                               position=position,
                               velocity=velocity,
                               radius=atom_radius(mass),
                               linear_damping=linear_damping)

        logger.debug(f"Created Atom {self.uid}: {self.symbol} at {self.body.position}")

    # -----------------------
    # Identity
    # -----------------------
    @property
    def element(self) -> Optional[Element]:
        return get_element(self.protons)

    @property
    def symbol(self) -> str:
        element = self.element
        return element.symbol if element else f"E{self.protons}"

    @property
    def name(self) -> str:
        element = self.element
        return element.name if element else "Custom"

    @property
    def mass_number(self) -> int:
        return self.protons + self.neutrons

    @property
    def charge(self) -> int:
        return self.protons - self.electrons

    @property
    def label(self) -> str:
        """Isotope-style label, e.g. ``Carbon-12``."""
        return f"{self.name}-{self.mass_number}"

    @property
    def is_molecule_member(self) -> bool:
        return self.molecule_id is not None

    # -----------------------
    # Physics helpers
    # -----------------------
    @property
    def position(self) -> np.ndarray:
        return self.body.position

    @property
    def velocity(self) -> np.ndarray:
        return self.body.velocity

    def refresh_body(self) -> None:
        """Resync body mass and radius after a nucleus edit."""
        mass = atom_mass(self.protons, self.neutrons)
        self.body.mass = mass
        self.body.radius = atom_radius(mass)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "symbol": self.symbol,
            "label": self.label,
            "protons": self.protons,
            "neutrons": self.neutrons,
            "electrons": self.electrons,
            "charge": self.charge,
            "molecule_id": self.molecule_id,
            "position": self.body.position.tolist(),
            "velocity": self.body.velocity.tolist(),
        }

    def __repr__(self) -> str:
        return f"Atom({self.uid}, {self.symbol})"
