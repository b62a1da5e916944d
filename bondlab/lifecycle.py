from __future__ import annotations
from enum import Enum
from itertools import combinations
from typing import Dict, Iterable, List, NamedTuple, Optional
import logging

import numpy as np

from .bonds import Bond, bond_key
from .constants import (
    ATTRACTION_STRENGTH,
    ATTRACTION_THRESHOLD,
    BOND_COOLDOWN,
    BOND_FORMATION_DURATION,
    BOND_FORMATION_FORCE,
    BOND_THRESHOLD,
    EPSILON,
)
from .eligibility import PreferenceFilter, activation_energy, should_form_bond
from .events import BOND_BROKEN, BOND_CREATED

logger = logging.getLogger(__name__)


class BondRequestResult(Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    VALENCE_EXCEEDED = "valence_exceeded"
    INVALID_ELEMENT = "invalid_element"
    INSUFFICIENT_ENERGY = "insufficient_energy"
    STALE_REFERENCE = "stale_reference"
    REACTION_IN_PROGRESS = "reaction_in_progress"
    MANUAL_BONDING_DISABLED = "manual_bonding_disabled"


class BondState(Enum):
    UNBONDED = "unbonded"
    FORMING = "forming"
    BONDED = "bonded"


def ease_in_out(p: float) -> float:
    """Quadratic ease-in-out on [0, 1]."""
    p = min(max(float(p), 0.0), 1.0)
    return 2.0 * p * p if p < 0.5 else -1.0 + (4.0 - 2.0 * p) * p


class BondingTransition:
    """A pair that passed eligibility and is being pulled together."""

    def __init__(self, atom1_uid: int, atom2_uid: int, started_at: float,
                 duration: float = BOND_FORMATION_DURATION):
        self.atom1_uid, self.atom2_uid = sorted((int(atom1_uid), int(atom2_uid)))
        self.started_at = float(started_at)
        self.duration = float(duration)
        self.progress: float = 0.0

    @property
    def key(self) -> str:
        return bond_key(self.atom1_uid, self.atom2_uid)

    def involves(self, uid: int) -> bool:
        return uid in (self.atom1_uid, self.atom2_uid)

    def __repr__(self) -> str:
        return f"BondingTransition({self.key}, progress={self.progress:.2f})"


class PairCooldown(NamedTuple):
    checked_at: float
    eligible: bool


# -----------------------
# Bond lifecycle manager
# -----------------------
class BondLifecycleManager:
    """
    Drives pairs through Unbonded -> Forming -> Bonded and back.

    Per tick the owner calls ``scan`` (start forming / attract),
    ``advance_transitions`` (progress and complete forming bonds) and
    ``check_stress`` (break over-stretched bonds). Eligibility results are
    cached per pair for ``BOND_COOLDOWN`` seconds.
    """

    def __init__(self, state, preferences: Optional[PreferenceFilter] = None):
        self.state = state
        self.preferences = preferences if preferences is not None else PreferenceFilter()
        self.transitions: Dict[str, BondingTransition] = {}
        self.cooldowns: Dict[str, PairCooldown] = {}

    # -----------------------
    # Queries
    # -----------------------
    def reserved_count(self, uid: int) -> int:
        return sum(1 for t in self.transitions.values() if t.involves(uid))

    def effective_bond_count(self, atom) -> int:
        """Bonds held plus bonds currently forming."""
        return self.state.bond_count(atom.uid) + self.reserved_count(atom.uid)

    def has_capacity(self, atom) -> bool:
        element = atom.element
        return element is not None and self.effective_bond_count(atom) < element.max_bonds

    def bond_state(self, uid_a: int, uid_b: int) -> BondState:
        key = bond_key(uid_a, uid_b)
        if self.state.find_bond(key) is not None:
            return BondState.BONDED
        if key in self.transitions:
            return BondState.FORMING
        return BondState.UNBONDED

    def stress_ratio(self, bond: Bond) -> float:
        molecule = self.state.molecule_of(bond.atom1_uid)
        if molecule is not None and bond.uid in molecule.bonds:
            limit = molecule.break_distance(bond)
            return molecule.bond_distance(bond) / limit if limit > 0 else 0.0
        return bond.stress_ratio(self.state.distance(bond.atom1_uid, bond.atom2_uid))

    # -----------------------
    # Scanning
    # -----------------------
    def _evaluate(self, atom_a, atom_b, system_energy: float, free_atoms: List, now: float) -> bool:
        key = bond_key(atom_a.uid, atom_b.uid)
        cached = self.cooldowns.get(key)
        if cached is not None and now - cached.checked_at < BOND_COOLDOWN:
            return cached.eligible
        eligible = should_form_bond(atom_a, atom_b, system_energy, free_atoms,
                                    self.effective_bond_count, self.preferences)
        self.cooldowns[key] = PairCooldown(now, eligible)
        return eligible

    def scan(self, system_energy: float, now: float) -> List[BondingTransition]:
        """
        Check every free-atom pair once.

        Pairs inside BOND_THRESHOLD that are eligible start forming; pairs
        inside ATTRACTION_THRESHOLD that are eligible are pulled together.
        """
        started: List[BondingTransition] = []
        free_atoms = self.state.free_atoms()
        for atom_a, atom_b in combinations(free_atoms, 2):
            key = bond_key(atom_a.uid, atom_b.uid)
            if key in self.transitions or key in self.state.bonds:
                continue
            delta = atom_b.position - atom_a.position
            distance = float(np.linalg.norm(delta))
            if distance >= ATTRACTION_THRESHOLD:
                continue
            if not self._evaluate(atom_a, atom_b, system_energy, free_atoms, now):
                continue
            if distance < BOND_THRESHOLD:
                if not (self.has_capacity(atom_a) and self.has_capacity(atom_b)):
                    continue
                transition = BondingTransition(atom_a.uid, atom_b.uid, started_at=now)
                self.transitions[key] = transition
                started.append(transition)
                logger.info(f"Bond forming {atom_a.symbol}{atom_a.uid}-{atom_b.symbol}{atom_b.uid} "
                            f"(d={distance:.2f}, E={system_energy:.2f})")
            elif distance > EPSILON:
                pull = delta / distance * (ATTRACTION_THRESHOLD - distance) * ATTRACTION_STRENGTH
                atom_a.body.apply_force(pull)
                atom_b.body.apply_force(-pull)
        return started

    # -----------------------
    # Forming
    # -----------------------
    def _body_of(self, uid: int):
        molecule = self.state.molecule_of(uid)
        return molecule.body if molecule is not None else self.state.atoms[uid].body

    def advance_transitions(self, dt: float) -> List[Bond]:
        created: List[Bond] = []
        for key in sorted(self.transitions):
            transition = self.transitions[key]
            uid_a, uid_b = transition.atom1_uid, transition.atom2_uid
            if not self.state.has_atoms((uid_a, uid_b)):
                del self.transitions[key]
                logger.debug(f"Dropped stale forming bond {key}")
                continue

            transition.progress = min(1.0, transition.progress + dt / transition.duration)
            delta = self.state.position_of(uid_b) - self.state.position_of(uid_a)
            distance = float(np.linalg.norm(delta))
            if distance > EPSILON:
                pull = delta / distance * ease_in_out(transition.progress) * BOND_FORMATION_FORCE
                body_a, body_b = self._body_of(uid_a), self._body_of(uid_b)
                if body_a is not body_b:
                    body_a.apply_force(pull)
                    body_b.apply_force(-pull)

            if transition.progress >= 1.0:
                del self.transitions[key]
                result = self.create_bond(uid_a, uid_b, settle=True)
                if result is BondRequestResult.CREATED:
                    created.append(self.state.bonds[key])
                else:
                    logger.debug(f"Forming bond {key} not completed: {result.value}")
        return created

    def cancel_transitions_for(self, uid: int) -> int:
        doomed = [k for k, t in self.transitions.items() if t.involves(uid)]
        for key in doomed:
            del self.transitions[key]
        return len(doomed)

    def arm_cooldowns(self, uids: Iterable[int], now: float) -> None:
        """Block re-bonding among ``uids`` for one cooldown window."""
        for uid_a, uid_b in combinations(sorted(uids), 2):
            self.cooldowns[bond_key(uid_a, uid_b)] = PairCooldown(now, False)

    # -----------------------
    # Creation
    # -----------------------
    def check_manual_bond(self, uid_a: int, uid_b: int, system_energy: float) -> Optional[BondRequestResult]:
        """Reason a user-requested bond would be refused, or None if it may be created."""
        atom_a, atom_b = self.state.atom(uid_a), self.state.atom(uid_b)
        if atom_a is None or atom_b is None:
            return BondRequestResult.STALE_REFERENCE
        if uid_a == uid_b:
            raise ValueError("Cannot bond an atom to itself")
        if self.state.find_bond(bond_key(uid_a, uid_b)) is not None:
            return BondRequestResult.DUPLICATE
        if atom_a.element is None or atom_b.element is None:
            return BondRequestResult.INVALID_ELEMENT
        if not (self.has_capacity(atom_a) and self.has_capacity(atom_b)):
            return BondRequestResult.VALENCE_EXCEEDED
        if system_energy < activation_energy(atom_a.element, atom_b.element):
            return BondRequestResult.INSUFFICIENT_ENERGY
        return None

    def create_bond(self, uid_a: int, uid_b: int, settle: bool = False) -> BondRequestResult:
        """
        Materialize a bond, enforcing duplicate and valence rules.

        Endpoints that belong to a molecule release it first (its internal
        bonds return to the free pool) so the new bond joins the same graph.
        With ``settle`` the pair is snapped to the ideal length about its
        midpoint.
        """
        atom_a, atom_b = self.state.atom(uid_a), self.state.atom(uid_b)
        if atom_a is None or atom_b is None:
            return BondRequestResult.STALE_REFERENCE
        if uid_a == uid_b:
            raise ValueError("Cannot bond an atom to itself")
        key = bond_key(uid_a, uid_b)
        if self.state.find_bond(key) is not None:
            return BondRequestResult.DUPLICATE
        if atom_a.element is None or atom_b.element is None:
            return BondRequestResult.INVALID_ELEMENT
        for atom in (atom_a, atom_b):
            if self.state.bond_count(atom.uid) >= atom.element.max_bonds:
                return BondRequestResult.VALENCE_EXCEEDED

        for atom in (atom_a, atom_b):
            if atom.molecule_id is not None:
                self.state.dissolve_molecule(atom.molecule_id, restore_bonds=True, reason="bond_added")

        bond = self.state.add_bond(Bond(atom_a, atom_b, created_at=self.state.time))
        if settle:
            self._settle(bond)
        self.state.events.emit(BOND_CREATED, bond=bond.uid, atoms=list(bond.atom_uids),
                               bond_type=bond.bond_type, order=bond.order)
        logger.info(f"Bond created {atom_a.symbol}{atom_a.uid}-{atom_b.symbol}{atom_b.uid} "
                    f"({bond.bond_type}, order {bond.order})")
        return BondRequestResult.CREATED

    def _settle(self, bond: Bond) -> None:
        """
        Place the pair at its ideal length along the current axis and share velocity.

        An endpoint that already holds other bonds stays put; when both do,
        positions are left alone.
        """
        atom_a = self.state.atoms[bond.atom1_uid]
        atom_b = self.state.atoms[bond.atom2_uid]
        anchored_a = self.state.bond_count(atom_a.uid) > 1
        anchored_b = self.state.bond_count(atom_b.uid) > 1
        delta = atom_b.body.position - atom_a.body.position
        distance = float(np.linalg.norm(delta))
        axis = delta / distance if distance > EPSILON else np.array([1.0, 0.0, 0.0])
        if not anchored_a and not anchored_b:
            midpoint = (atom_a.body.position + atom_b.body.position) / 2.0
            half = axis * bond.ideal_length / 2.0
            atom_a.body.position = midpoint - half
            atom_b.body.position = midpoint + half
        elif anchored_a and not anchored_b:
            atom_b.body.position = atom_a.body.position + axis * bond.ideal_length
        elif anchored_b and not anchored_a:
            atom_a.body.position = atom_b.body.position - axis * bond.ideal_length
        total = atom_a.body.mass + atom_b.body.mass
        shared = (atom_a.body.mass * atom_a.body.velocity + atom_b.body.mass * atom_b.body.velocity) / total
        atom_a.body.velocity = shared.copy()
        atom_b.body.velocity = shared.copy()

    # -----------------------
    # Stress
    # -----------------------
    def check_stress(self) -> List[Bond]:
        """
        Break every bond stretched past its break length.

        Free bonds are simply removed. A broken bond inside a molecule
        releases that molecule; its remaining internal bonds go back to the
        free pool for re-identification.
        """
        broken: List[Bond] = []
        for key in sorted(self.state.bonds):
            bond = self.state.bonds[key]
            if bond.should_break(self.state.distance(bond.atom1_uid, bond.atom2_uid)):
                self.state.remove_bond(key, reason="stress")
                broken.append(bond)

        for mol_id in sorted(self.state.molecules):
            molecule = self.state.molecules[mol_id]
            snapped = [b for b in molecule.bonds.values()
                       if molecule.bond_distance(b) > molecule.break_distance(b)]
            if not snapped:
                continue
            for bond in snapped:
                del molecule.bonds[bond.uid]
                self.state.events.emit(BOND_BROKEN, bond=bond.uid, atoms=list(bond.atom_uids), reason="stress")
                logger.info(f"Bond {bond.uid} in {molecule.name} snapped under stress")
            self.state.dissolve_molecule(mol_id, restore_bonds=True, reason="bond_stress")
            broken.extend(snapped)
        return broken

    def reset(self) -> None:
        self.transitions.clear()
        self.cooldowns.clear()
