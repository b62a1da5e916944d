"""
Reaction orchestrator.

A reaction runs as a small state machine advanced once per simulation tick:

    STAGING      validate reactants, dissolve reactant molecules, pay the cost
    POSITIONING  lay each product group out on its geometry template
    BONDING      create the planned bonds of every product group
    IDENTIFYING  hand the bonded groups to the molecule identifier
    DONE

Only one reaction runs at a time; while it runs the owner skips ordinary
bond scanning and further reaction checks.
"""
from __future__ import annotations
from enum import Enum
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple
import logging

import numpy as np

from .bonds import Bond
from .constants import (
    ATOM_MOLECULE_PROXIMITY,
    CLUSTER_PROXIMITY,
    DEFAULT_VALENCE,
    ENERGY_PER_CLUSTER_BOND,
    MAX_STABLE_CLUSTER,
    MOLECULE_REACTION_PROXIMITY,
    REACTION_ENERGY_THRESHOLD,
    REACTION_SPACING,
    THREE_ATOM_ENERGY,
)
from .eligibility import minimum_activation_energy
from .events import REACTION_CANCELLED, REACTION_COMPLETED, REACTION_STARTED
from .geometry import calculate_molecular_positions
from .lifecycle import BondRequestResult
from .products import classify_component, composition

logger = logging.getLogger(__name__)


# -----------------------
# Stability predicates
# -----------------------

STABLE_COMPOSITIONS: List[Dict[int, int]] = [
    {6: 1, 8: 2},   # CO2
    {6: 1, 1: 4},   # CH4
    {8: 1, 1: 2},   # H2O
    {7: 1, 1: 3},   # NH3
    {1: 2},         # H2
    {8: 2},         # O2
    {7: 2},         # N2
    {6: 1, 8: 1},   # CO
    {7: 1, 8: 1},   # NO
    {1: 1, 9: 1},   # HF
]


def follows_valence_rules(atoms: Sequence) -> bool:
    """Rough octet heuristic: enough possible pairings for the electrons on offer."""
    n = len(atoms)
    if n > MAX_STABLE_CLUSTER:
        return False
    total_valence = sum(a.element.valence_electrons if a.element else DEFAULT_VALENCE for a in atoms)
    return total_valence // 2 <= n * (n - 1) // 2


def is_chemically_stable(atoms: Sequence) -> bool:
    if composition(atoms) in STABLE_COMPOSITIONS:
        return True
    return 2 <= len(atoms) <= MAX_STABLE_CLUSTER and follows_valence_rules(atoms)


def plan_bonds(atoms: Sequence) -> Optional[List[Tuple[int, int]]]:
    """
    Spanning tree over ``atoms`` that respects every atom's max_bonds.

    Atoms are attached in order of decreasing capacity to the placed atom
    with the most free valence. Returns None when the group cannot be joined
    into one molecule.
    """
    if len(atoms) < 2 or any(a.element is None or a.element.max_bonds < 1 for a in atoms):
        return None
    ordered = sorted(atoms, key=lambda a: (-a.element.max_bonds, a.element.electronegativity, a.uid))
    free = {a.uid: a.element.max_bonds for a in ordered}
    placed = [ordered[0]]
    plan: List[Tuple[int, int]] = []
    for atom in ordered[1:]:
        hosts = [p for p in placed if free[p.uid] > 0]
        if not hosts:
            return None
        host = max(hosts, key=lambda p: (free[p.uid], -p.uid))
        plan.append((host.uid, atom.uid))
        free[host.uid] -= 1
        free[atom.uid] -= 1
        placed.append(atom)
    return plan


def regroup_atoms(atoms: Sequence) -> List[List]:
    """
    Split released atoms into product groups: water first, then methane,
    then ammonia, then homonuclear pairs. Leftover atoms stay single.
    """
    pool: Dict[int, List] = {}
    for atom in sorted(atoms, key=lambda a: a.uid):
        pool.setdefault(atom.protons, []).append(atom)

    def take(z: int, n: int) -> List:
        bucket = pool.get(z, [])
        picked, pool[z] = bucket[:n], bucket[n:]
        return picked

    groups: List[List] = []
    for central, hydrogens in ((8, 2), (6, 4), (7, 3)):
        while len(pool.get(central, [])) >= 1 and len(pool.get(1, [])) >= hydrogens:
            groups.append(take(central, 1) + take(1, hydrogens))
    for z in sorted(pool):
        element = pool[z][0].element if pool[z] else None
        if element is None or element.max_bonds < 1:
            continue
        while len(pool[z]) >= 2:
            groups.append(take(z, 2))
    return groups


def atom_molecule_activation_energy(atom, molecule) -> float:
    if atom.protons == 6 and molecule.name == "Oxygen Gas (O₂)":
        return 15.0
    if atom.protons == 1 and "O" in molecule.formula:
        return 8.0
    return 10.0 + 3.0 * len(molecule.atom_uids)


# -----------------------
# Molecule-level recipes
# -----------------------

class MoleculeReaction(NamedTuple):
    name: str
    partner: str                    # molecule name consumed as partner
    partner_count: int
    min_energy: float
    base_cost: float
    cost_fraction: float
    anchor_molecule: Optional[str] = None  # anchor is a molecule with this name ...
    anchor_atom: Optional[int] = None      # ... or a free atom with this atomic number
    proximity: float = MOLECULE_REACTION_PROXIMITY

    def cost(self, system_energy: float) -> float:
        return max(self.base_cost, self.cost_fraction * system_energy)


MOLECULE_REACTIONS: List[MoleculeReaction] = [
    MoleculeReaction("2H₂ + O₂ → 2H₂O", partner="Hydrogen Gas (H₂)", partner_count=2,
                     min_energy=12.0, base_cost=10.0, cost_fraction=0.7,
                     anchor_molecule="Oxygen Gas (O₂)"),
    MoleculeReaction("C + 2H₂ → CH₄", partner="Hydrogen Gas (H₂)", partner_count=2,
                     min_energy=15.0, base_cost=15.0, cost_fraction=0.6, anchor_atom=6),
    MoleculeReaction("N + 3H₂ → NH₃", partner="Hydrogen Gas (H₂)", partner_count=3,
                     min_energy=18.0, base_cost=18.0, cost_fraction=0.7, anchor_atom=7),
]


# -----------------------
# Reaction record
# -----------------------

class ReactionStage(Enum):
    STAGING = "staging"
    POSITIONING = "positioning"
    BONDING = "bonding"
    IDENTIFYING = "identifying"
    DONE = "done"


class Reaction:
    def __init__(self, kind: str, name: str, atom_uids: List[int], groups: List[List[int]],
                 cost: float, molecule_ids: Optional[List[str]] = None):
        self.kind = kind
        self.name = name
        self.atom_uids = sorted(atom_uids)
        self.groups = [sorted(g) for g in groups]
        self.cost = float(cost)
        self.molecule_ids = list(molecule_ids or [])
        self.stage = ReactionStage.STAGING
        self.plans: List[List[Tuple[int, int]]] = []
        self.products: List[str] = []

    def to_dict(self) -> Dict:
        return {"kind": self.kind, "name": self.name, "atoms": list(self.atom_uids),
                "groups": [list(g) for g in self.groups], "cost": round(self.cost, 3),
                "stage": self.stage.value, "products": list(self.products)}

    def __repr__(self) -> str:
        return f"Reaction({self.name!r}, stage={self.stage.value})"


# -----------------------
# Orchestrator
# -----------------------

class ReactionOrchestrator:
    """
    Finds energetically allowed reactions among nearby reactants and runs
    them one stage per tick.
    """

    def __init__(self, state, lifecycle, identifier, energy,
                 recipes: Optional[List[MoleculeReaction]] = None):
        self.state = state
        self.lifecycle = lifecycle
        self.identifier = identifier
        self.energy = energy
        self.recipes = list(MOLECULE_REACTIONS if recipes is None else recipes)
        self.active: Optional[Reaction] = None
        self.completed: List[Reaction] = []

    @property
    def locked(self) -> bool:
        return self.active is not None

    # -----------------------
    # Detection
    # -----------------------
    def check(self, system_energy: float) -> Optional[Reaction]:
        """
        Look for one reaction to start. Does nothing while a reaction runs or
        while transient heat is at or below REACTION_ENERGY_THRESHOLD.
        """
        if self.locked:
            logger.debug("Reaction check skipped: another reaction is in progress")
            return None
        if self.energy.transient_heat <= REACTION_ENERGY_THRESHOLD:
            return None
        finders: List[Callable[[float], Optional[Reaction]]] = [
            self._find_molecule_reaction,
            self._find_atom_molecule_reaction,
            self._find_cluster_reaction,
        ]
        for finder in finders:
            reaction = finder(system_energy)
            if reaction is not None:
                self.active = reaction
                self.state.events.emit(REACTION_STARTED, **reaction.to_dict())
                logger.info(f"Reaction started: {reaction.name} (cost {reaction.cost:.2f})")
                return reaction
        return None

    def _find_molecule_reaction(self, system_energy: float) -> Optional[Reaction]:
        molecules = [self.state.molecules[k] for k in sorted(self.state.molecules)]
        for recipe in self.recipes:
            if system_energy < recipe.min_energy:
                continue
            if recipe.anchor_molecule is not None:
                anchors = [(m.position, m.atom_uids, m.uid) for m in molecules if m.name == recipe.anchor_molecule]
            else:
                anchors = [(a.position, [a.uid], None) for a in self.state.free_atoms()
                           if a.protons == recipe.anchor_atom]
            for anchor_pos, anchor_uids, anchor_mol in anchors:
                partners = [m for m in molecules
                            if m.name == recipe.partner and m.uid != anchor_mol
                            and float(np.linalg.norm(m.position - anchor_pos)) < recipe.proximity]
                if len(partners) < recipe.partner_count:
                    continue
                partners.sort(key=lambda m: (float(np.linalg.norm(m.position - anchor_pos)), m.uid))
                partners = partners[:recipe.partner_count]
                uids = list(anchor_uids) + [u for m in partners for u in m.atom_uids]
                groups = regroup_atoms([self.state.atoms[u] for u in uids])
                mol_ids = [m.uid for m in partners] + ([anchor_mol] if anchor_mol else [])
                return Reaction("molecule_molecule", recipe.name, uids,
                                [[a.uid for a in g] for g in groups],
                                recipe.cost(system_energy), molecule_ids=mol_ids)
        return None

    def _find_atom_molecule_reaction(self, system_energy: float) -> Optional[Reaction]:
        molecules = [self.state.molecules[k] for k in sorted(self.state.molecules)]
        for atom in self.state.free_atoms():
            for molecule in molecules:
                if float(np.linalg.norm(molecule.position - atom.position)) >= ATOM_MOLECULE_PROXIMITY:
                    continue
                merged = [atom] + [self.state.atoms[u] for u in molecule.atom_uids]
                if not is_chemically_stable(merged) or plan_bonds(merged) is None:
                    continue
                cost = atom_molecule_activation_energy(atom, molecule)
                if system_energy < cost:
                    continue
                return Reaction("atom_molecule", f"{atom.symbol} + {molecule.name}",
                                [a.uid for a in merged], [[a.uid for a in merged]], cost,
                                molecule_ids=[molecule.uid])
        return None

    def _find_cluster_reaction(self, system_energy: float) -> Optional[Reaction]:
        free = self.state.free_atoms()

        def near(x, y) -> bool:
            return float(np.linalg.norm(x.position - y.position)) < CLUSTER_PROXIMITY

        for i, a in enumerate(free):
            for j in range(i + 1, len(free)):
                b = free[j]
                if not near(a, b):
                    continue
                if system_energy >= THREE_ATOM_ENERGY:
                    for c in free[j + 1:]:
                        if not (near(a, c) or near(b, c)):
                            continue
                        trio = [a, b, c]
                        plan = plan_bonds(trio)
                        if plan is not None and is_chemically_stable(trio):
                            return Reaction("multi_atom", f"{a.symbol} + {b.symbol} + {c.symbol}",
                                            [x.uid for x in trio], [[x.uid for x in trio]],
                                            ENERGY_PER_CLUSTER_BOND * len(plan))
                pair = [a, b]
                if plan_bonds(pair) is None or not is_chemically_stable(pair):
                    continue
                cost = minimum_activation_energy(a.element, b.element)
                if system_energy >= cost:
                    return Reaction("multi_atom", f"{a.symbol} + {b.symbol}",
                                    [a.uid, b.uid], [[a.uid, b.uid]], cost)
        return None

    # -----------------------
    # Execution
    # -----------------------
    def advance(self) -> Optional[Reaction]:
        """Run the active reaction's current stage. Returns the reaction once it is done."""
        reaction = self.active
        if reaction is None:
            return None
        if not self.state.has_atoms(reaction.atom_uids):
            self.cancel("reactant atom deleted")
            return None

        if reaction.stage is ReactionStage.STAGING:
            self._stage(reaction)
        elif reaction.stage is ReactionStage.POSITIONING:
            self._position(reaction)
        elif reaction.stage is ReactionStage.BONDING:
            self._bond(reaction)
        elif reaction.stage is ReactionStage.IDENTIFYING:
            return self._identify(reaction)
        return None

    def _stage(self, reaction: Reaction) -> None:
        missing = [m for m in reaction.molecule_ids if m not in self.state.molecules]
        if missing:
            self.cancel(f"reactant molecule gone: {missing}")
            return
        expected_members = {u for m in reaction.molecule_ids for u in self.state.molecules[m].atom_uids}
        for uid in reaction.atom_uids:
            if uid not in expected_members and self.state.atoms[uid].is_molecule_member:
                self.cancel(f"atom {uid} joined another molecule")
                return
        for mol_id in reaction.molecule_ids:
            self.state.dissolve_molecule(mol_id, restore_bonds=False, reason="reaction")
        for uid in reaction.atom_uids:
            self.lifecycle.cancel_transitions_for(uid)
            body = self.state.atoms[uid].body
            body.kinematic = True
            body.velocity[:] = 0.0
        self.energy.consume(reaction.cost)
        reaction.stage = ReactionStage.POSITIONING

    def _position(self, reaction: Reaction) -> None:
        atoms = {u: self.state.atoms[u] for u in reaction.atom_uids}
        center = np.mean([a.body.position for a in atoms.values()], axis=0)
        layouts = []
        for group in reaction.groups:
            members = [atoms[u] for u in group]
            plan = plan_bonds(members) or []
            reaction.plans.append(plan)
            cls = classify_component(members, [Bond(atoms[x], atoms[y]) for x, y in plan])
            positions = calculate_molecular_positions(members, cls.geometry, cls.bond_length,
                                                      cls.central_atom, plan)
            layout_centre = np.mean([positions[a.uid] for a in members], axis=0)
            extent = max(float(np.linalg.norm(positions[a.uid] - layout_centre)) for a in members)
            layouts.append((members, positions, layout_centre, extent))

        width = REACTION_SPACING + 2.0 * max((ext for _, _, _, ext in layouts), default=0.0)
        for idx, (members, positions, layout_centre, _) in enumerate(layouts):
            origin = center + np.array([(idx - (len(layouts) - 1) / 2.0) * width, 0.0, 0.0])
            for atom in members:
                atom.body.position = origin + positions[atom.uid] - layout_centre
        reaction.stage = ReactionStage.BONDING

    def _bond(self, reaction: Reaction) -> None:
        for plan in reaction.plans:
            for uid_a, uid_b in plan:
                result = self.lifecycle.create_bond(uid_a, uid_b)
                if result is not BondRequestResult.CREATED:
                    logger.warning(f"{reaction.name}: planned bond {uid_a}-{uid_b} refused ({result.value})")
        reaction.stage = ReactionStage.IDENTIFYING

    def _identify(self, reaction: Reaction) -> Reaction:
        self._release(reaction)
        products = self.identifier.identify()
        reaction.products = [m.name for m in products]
        reaction.stage = ReactionStage.DONE
        self.active = None
        self.completed.append(reaction)
        self.state.events.emit(REACTION_COMPLETED, **reaction.to_dict())
        logger.info(f"Reaction completed: {reaction.name} -> {', '.join(reaction.products) or 'no products'}")
        return reaction

    def _release(self, reaction: Reaction) -> None:
        for uid in reaction.atom_uids:
            atom = self.state.atoms.get(uid)
            if atom is not None:
                atom.body.kinematic = False

    def cancel(self, reason: str) -> None:
        reaction = self.active
        if reaction is None:
            return
        self._release(reaction)
        self.active = None
        self.state.events.emit(REACTION_CANCELLED, reason=reason, **reaction.to_dict())
        logger.debug(f"Reaction {reaction.name} cancelled: {reason}")

    def reset(self) -> None:
        if self.active is not None:
            self.cancel("reset")
        self.completed.clear()
