from __future__ import annotations
from typing import Any, Dict, Optional, Tuple
import logging

from .constants import (
    BOND_BREAK_FACTOR,
    BOND_LENGTH_FACTOR,
    DEFAULT_BOND_LENGTH,
    FALLBACK_ATOMIC_RADIUS,
)
from .elements_data import Element

logger = logging.getLogger(__name__)

IONIC_EN_DIFFERENCE = 1.7
HYDROGEN_BOND_PARTNERS = frozenset({7, 8, 9})  # N, O, F
BOND_TYPE_ENERGY_FACTOR: Dict[str, float] = {"ionic": 1.5, "hydrogen": 0.3, "covalent": 1.0}


# -----------------------
# Bond property calculations
# -----------------------

def bond_key(uid_a: int, uid_b: int) -> str:
    """Canonical, order-independent identifier for the pair."""
    lo, hi = sorted((int(uid_a), int(uid_b)))
    return f"{lo}-{hi}"


def _radius(element: Optional[Element]) -> float:
    if element is None or element.atomic_radius <= 0:
        return FALLBACK_ATOMIC_RADIUS
    return element.atomic_radius


def ideal_bond_length(elem_a: Optional[Element], elem_b: Optional[Element]) -> float:
    if elem_a is None or elem_b is None:
        return DEFAULT_BOND_LENGTH
    return (_radius(elem_a) + _radius(elem_b)) * BOND_LENGTH_FACTOR


def break_length(elem_a: Optional[Element], elem_b: Optional[Element]) -> float:
    """Distance past which the bond snaps: (rA + rB) * BOND_BREAK_FACTOR."""
    if elem_a is None or elem_b is None:
        return DEFAULT_BOND_LENGTH / BOND_LENGTH_FACTOR * BOND_BREAK_FACTOR
    return (_radius(elem_a) + _radius(elem_b)) * BOND_BREAK_FACTOR


def classify_bond_type(elem_a: Optional[Element], elem_b: Optional[Element]) -> str:
    """
    Determine the bond type.

    Returns:
        str: "hydrogen" when H pairs with N/O/F, "ionic" when the
        electronegativity gap exceeds 1.7, otherwise "covalent".
    """
    if elem_a is None or elem_b is None:
        return "covalent"
    numbers = {elem_a.atomic_number, elem_b.atomic_number}
    if 1 in numbers and numbers & HYDROGEN_BOND_PARTNERS:
        return "hydrogen"
    if abs(elem_a.electronegativity - elem_b.electronegativity) > IONIC_EN_DIFFERENCE:
        return "ionic"
    return "covalent"


def bond_order(elem_a: Optional[Element], elem_b: Optional[Element]) -> int:
    if elem_a is None or elem_b is None:
        return 1
    cap_a = min(elem_a.valence_electrons, elem_a.max_bonds)
    cap_b = min(elem_b.valence_electrons, elem_b.max_bonds)
    return max(1, min(cap_a, cap_b, 3))


def bond_energy(elem_a: Optional[Element], elem_b: Optional[Element],
                order: int, bond_type: str) -> float:
    if elem_a is None or elem_b is None:
        return 0.0
    base = (elem_a.electronegativity + elem_b.electronegativity) * 50.0
    return base * order * 1.5 * BOND_TYPE_ENERGY_FACTOR.get(bond_type, 1.0)


def polarity(elem_a: Optional[Element], elem_b: Optional[Element]) -> float:
    if elem_a is None or elem_b is None:
        return 0.0
    return abs(elem_a.electronegativity - elem_b.electronegativity)


# -----------------------
# Bond record
# -----------------------

class Bond:
    """
    Represents a bond between two atoms, stored by atom id.

    Endpoints are kept in ascending id order so the same pair always yields
    the same record regardless of argument order.
    """

    def __init__(self, atom1, atom2, created_at: float = 0.0):
        """
        Initialize a bond.

        Args:
            atom1 (Atom): First atom in the bond.
            atom2 (Atom): Second atom in the bond.
            created_at (float): Simulated time of creation.
        """
        if atom1.uid == atom2.uid:
            raise ValueError("Cannot bond an atom to itself")
        if atom2.uid < atom1.uid:
            atom1, atom2 = atom2, atom1

        elem_a, elem_b = atom1.element, atom2.element
        self.uid: str = bond_key(atom1.uid, atom2.uid)
        self.atom1_uid: int = atom1.uid
        self.atom2_uid: int = atom2.uid
        self.bond_type: str = classify_bond_type(elem_a, elem_b)
        self.order: int = bond_order(elem_a, elem_b)
        self.energy: float = bond_energy(elem_a, elem_b, self.order, self.bond_type)
        self.polarity: float = polarity(elem_a, elem_b)
        self.ideal_length: float = ideal_bond_length(elem_a, elem_b)
        self.break_length: float = break_length(elem_a, elem_b)
        self.created_at: float = float(created_at)

        logger.debug(f"Created Bond {self.uid} type={self.bond_type} order={self.order} "
                     f"ideal={self.ideal_length:.3f}")

    @property
    def atom_uids(self) -> Tuple[int, int]:
        return (self.atom1_uid, self.atom2_uid)

    def involves(self, uid: int) -> bool:
        return uid == self.atom1_uid or uid == self.atom2_uid

    def other(self, uid: int) -> int:
        if uid == self.atom1_uid:
            return self.atom2_uid
        if uid == self.atom2_uid:
            return self.atom1_uid
        raise ValueError(f"Atom {uid} is not part of bond {self.uid}")

    def stress_ratio(self, distance: float) -> float:
        """Live distance relative to the break length (>= 1 means broken)."""
        return float(distance) / self.break_length if self.break_length > 0 else 0.0

    def should_break(self, distance: float) -> bool:
        return float(distance) > self.break_length

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "atoms": [self.atom1_uid, self.atom2_uid],
            "type": self.bond_type,
            "order": self.order,
            "energy": round(self.energy, 3),
            "polarity": round(self.polarity, 3),
            "ideal_length": round(self.ideal_length, 4),
            "break_length": round(self.break_length, 4),
        }

    def __repr__(self) -> str:
        return f"Bond({self.uid}, {self.bond_type}, order={self.order})"
