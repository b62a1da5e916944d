from __future__ import annotations
from typing import Callable, Iterable, List, NamedTuple, Optional, Sequence, Tuple
import logging

import numpy as np

from .constants import (
    ACTIVATION_SCALE,
    DEFAULT_ELECTRONEGATIVITY,
    DEFAULT_VALENCE,
    MIN_ACTIVATION_ENERGY,
    PREFERENCE_RADIUS,
)
from .elements_data import Element

logger = logging.getLogger(__name__)

BondCounter = Callable[[object], int]


# -----------------------
# Activation energy
# -----------------------

def activation_energy(elem_a: Element, elem_b: Element) -> float:
    """
    Energy barrier for bonding two elements.

    The mean ionization energy is lowered by the electronegativity gap,
    scaled, and floored at MIN_ACTIVATION_ENERGY.
    """
    avg_ie = (elem_a.ionization_energy + elem_b.ionization_energy) / 2.0
    en_diff = abs(elem_a.electronegativity - elem_b.electronegativity)
    return max(avg_ie * (1.0 - en_diff / 4.0) * ACTIVATION_SCALE, MIN_ACTIVATION_ENERGY)


def minimum_activation_energy(elem_a: Optional[Element], elem_b: Optional[Element]) -> float:
    """Cheaper barrier used by cluster reactions; favours polar pairs and open shells."""
    en_a = elem_a.electronegativity if elem_a else DEFAULT_ELECTRONEGATIVITY
    en_b = elem_b.electronegativity if elem_b else DEFAULT_ELECTRONEGATIVITY
    val_a = elem_a.valence_electrons if elem_a else DEFAULT_VALENCE
    val_b = elem_b.valence_electrons if elem_b else DEFAULT_VALENCE
    base = max(2.0, 10.0 - abs(en_a - en_b) * 2.0)
    reduction = ((8 - val_a) + (8 - val_b)) * 0.5
    return max(MIN_ACTIVATION_ENERGY, base - reduction)


# -----------------------
# Eligibility
# -----------------------

def can_form_bond(atom_a, atom_b, system_energy: float,
                  bond_count: Optional[BondCounter] = None) -> bool:
    """
    Pure eligibility check for bonding two atoms.

    Args:
        atom_a (Atom): First atom.
        atom_b (Atom): Second atom.
        system_energy (float): Current system energy.
        bond_count (Callable, optional): Returns the bonds an atom already
            holds (including reserved ones). Defaults to zero for all atoms.

    Returns:
        bool: False for unknown elements, saturated valence, or when the
        system energy is below the activation energy.
    """
    elem_a, elem_b = atom_a.element, atom_b.element
    if elem_a is None or elem_b is None:
        return False
    count = bond_count or (lambda atom: 0)
    if count(atom_a) >= elem_a.max_bonds or count(atom_b) >= elem_b.max_bonds:
        return False
    return system_energy >= activation_energy(elem_a, elem_b)


# -----------------------
# Preference rules
# -----------------------

class PreferenceRule(NamedTuple):
    """
    Rejects bonding ``pair`` while a free competitor sits nearby.

    ``competitor`` receives a candidate atom's proton count and returns True
    when that atom would be a better partner for either end of the pair.
    """
    pair: Tuple[int, int]
    competitor: Callable[[int], bool]
    radius: float = PREFERENCE_RADIUS
    reason: str = ""


def _is_oxygen(protons: int) -> bool:
    return protons == 8


def _is_not_oxygen(protons: int) -> bool:
    return protons != 8


DEFAULT_PREFERENCE_RULES: List[PreferenceRule] = [
    PreferenceRule(pair=(1, 1), competitor=_is_oxygen,
                   reason="hydrogen prefers a nearby free oxygen"),
    PreferenceRule(pair=(8, 8), competitor=_is_not_oxygen,
                   reason="oxygen prefers a nearby free heteroatom"),
]


class PreferenceFilter:
    """Applies a table of ``PreferenceRule`` entries to candidate pairs."""

    def __init__(self, rules: Optional[Sequence[PreferenceRule]] = None):
        self.rules: List[PreferenceRule] = list(DEFAULT_PREFERENCE_RULES if rules is None else rules)

    def rule_for(self, atom_a, atom_b) -> Optional[PreferenceRule]:
        pair = tuple(sorted((atom_a.protons, atom_b.protons)))
        for rule in self.rules:
            if tuple(sorted(rule.pair)) == pair:
                return rule
        return None

    def allows(self, atom_a, atom_b, free_atoms: Iterable) -> bool:
        """False when a free competitor lies within the rule radius of either atom."""
        rule = self.rule_for(atom_a, atom_b)
        if rule is None:
            return True
        for other in free_atoms:
            if other.uid in (atom_a.uid, atom_b.uid):
                continue
            if not rule.competitor(other.protons):
                continue
            d_a = float(np.linalg.norm(other.position - atom_a.position))
            d_b = float(np.linalg.norm(other.position - atom_b.position))
            if d_a < rule.radius or d_b < rule.radius:
                logger.debug(f"Preference veto {atom_a.uid}-{atom_b.uid}: {rule.reason} (atom {other.uid})")
                return False
        return True


def should_form_bond(atom_a, atom_b, system_energy: float, free_atoms: Iterable,
                     bond_count: Optional[BondCounter] = None,
                     preferences: Optional[PreferenceFilter] = None) -> bool:
    """Eligibility plus the preference filter."""
    if not can_form_bond(atom_a, atom_b, system_energy, bond_count):
        return False
    prefs = preferences if preferences is not None else PreferenceFilter()
    return prefs.allows(atom_a, atom_b, free_atoms)
