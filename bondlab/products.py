from __future__ import annotations
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple
from collections import defaultdict
import json
import logging
import os

import numpy as np

from .bonds import Bond
from .constants import DEFAULT_BOND_LENGTH, MAX_PREFIX_COUNT, MOLECULE_DAMPING, MOLECULE_MASS_SCALE
from .elements_data import element_symbol, get_element
from .events import MOLECULE_FORMED, ensure_parent_dir
from .geometry import (
    calculate_molecular_positions,
    calculate_optimal_bonding_structure,
    determine_geometry,
    select_central_atom,
)
from .molecules import Molecule
from .physics import Body

logger = logging.getLogger(__name__)

SUBSCRIPTS = str.maketrans("0123456789", "₀₁₂₃₄₅₆₇₈₉")
PREFIXES = ["", "mono", "di", "tri", "tetra", "penta", "hexa", "hepta", "octa", "nona", "deca"]


# -----------------------
# Composition / formula utilities
# -----------------------

def to_subscript(n: int) -> str:
    return str(n).translate(SUBSCRIPTS)


def composition(atoms: Iterable) -> Dict[int, int]:
    """Count atoms per atomic number."""
    counts: Dict[int, int] = defaultdict(int)
    for atom in atoms:
        counts[atom.protons] += 1
    return dict(counts)


def generate_formula(atoms: Iterable) -> str:
    """Formula with elements in atomic-number order and Unicode subscripts, e.g. ``H₂O``."""
    counts = composition(atoms)
    parts = []
    for z in sorted(counts):
        n = counts[z]
        parts.append(element_symbol(z) + (to_subscript(n) if n > 1 else ""))
    return "".join(parts)


def generate_systematic_name(atoms: Iterable) -> str:
    """
    Name built from element names in ascending electronegativity with
    multiplicative prefixes, followed by the formula in the same order.

    Example: two H and two O give ``dihydrogen dioxygen (H₂O₂)``.
    Uncatalogued elements are left out of the name.
    """
    counts = composition(atoms)
    known = [(get_element(z), n) for z, n in counts.items() if get_element(z) is not None]
    known.sort(key=lambda en: (en[0].electronegativity, en[0].atomic_number))
    name_parts, formula_parts = [], []
    for element, count in known:
        if count > 1:
            prefix = PREFIXES[count] if count <= MAX_PREFIX_COUNT else f"{count}-"
        else:
            prefix = ""
        name_parts.append(f"{prefix}{element.name.lower()}")
        formula_parts.append(element.symbol + (to_subscript(count) if count > 1 else ""))
    return f"{' '.join(name_parts)} ({''.join(formula_parts)})"


# -----------------------
# Known compositions
# -----------------------

class KnownComposition(NamedTuple):
    name: str
    formula: str
    composition: Dict[int, int]
    geometry: str
    bond_length: float


KNOWN_COMPOSITIONS: List[KnownComposition] = [
    KnownComposition("Water (H₂O)", "H₂O", {8: 1, 1: 2}, "bent", 2.0),
    KnownComposition("Carbon Dioxide (CO₂)", "CO₂", {6: 1, 8: 2}, "linear", 2.2),
    KnownComposition("Methane (CH₄)", "CH₄", {6: 1, 1: 4}, "tetrahedral", 1.8),
    KnownComposition("Ammonia (NH₃)", "NH₃", {7: 1, 1: 3}, "trigonal_pyramidal", 1.6),
    KnownComposition("Nitrous Oxide (N₂O)", "N₂O", {7: 2, 8: 1}, "linear", 1.8),
    KnownComposition("Nitrogen Gas (N₂)", "N₂", {7: 2}, "linear", 1.6),
    KnownComposition("Oxygen Gas (O₂)", "O₂", {8: 2}, "linear", 1.5),
    KnownComposition("Hydrogen Gas (H₂)", "H₂", {1: 2}, "linear", 1.2),
]


def match_known_composition(atoms: Sequence) -> Optional[KnownComposition]:
    counts = composition(atoms)
    for known in KNOWN_COMPOSITIONS:
        if known.composition == counts:
            return known
    return None


class Classification(NamedTuple):
    name: str
    formula: str
    geometry: str
    bond_length: float
    central_atom: Any
    stability: float
    known: bool


def classify_component(atoms: Sequence, bonds: Sequence[Bond]) -> Classification:
    """
    Name and shape a bonded group: the known-composition table first, then a
    systematic name with VSEPR geometry around the bond-graph hub.
    """
    central = select_central_atom(atoms, bonds)
    stability = calculate_optimal_bonding_structure(atoms).stability
    known = match_known_composition(atoms)
    if known is not None:
        return Classification(known.name, known.formula, known.geometry, known.bond_length,
                              central, stability, True)
    if bonds:
        bond_length = float(np.mean([b.ideal_length for b in bonds]))
    else:
        bond_length = DEFAULT_BOND_LENGTH
    return Classification(
        name=generate_systematic_name(atoms),
        formula=generate_formula(atoms),
        geometry=determine_geometry(atoms, bonds, central),
        bond_length=bond_length,
        central_atom=central,
        stability=stability,
        known=False,
    )


# -----------------------
# Connected components
# -----------------------

def extract_connected_components(atoms: Sequence, bonds: Iterable[Bond]) -> List[Tuple[List[Any], List[Bond]]]:
    """
    Identify connected components from atoms and bonds.

    Returns a list of (atoms_in_component, bonds_in_component) with atoms in
    ascending id order and components ordered by their smallest atom id, so
    the result does not depend on the order bonds are supplied in.
    """
    uid_to_atom = {a.uid: a for a in atoms}
    bonds = [b for b in bonds if b.atom1_uid in uid_to_atom and b.atom2_uid in uid_to_atom]
    adj: Dict[int, List[int]] = defaultdict(list)
    for bond in bonds:
        adj[bond.atom1_uid].append(bond.atom2_uid)
        adj[bond.atom2_uid].append(bond.atom1_uid)

    visited = set()
    components: List[Tuple[List[Any], List[Bond]]] = []
    for uid in sorted(uid_to_atom):
        if uid in visited:
            continue
        stack = [uid]
        comp_uids = set()
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            comp_uids.add(current)
            for neighbor in adj.get(current, []):
                if neighbor not in visited:
                    stack.append(neighbor)
        comp_atoms = [uid_to_atom[u] for u in sorted(comp_uids)]
        comp_bonds = sorted((b for b in bonds if b.atom1_uid in comp_uids), key=lambda b: b.atom_uids)
        components.append((comp_atoms, comp_bonds))
    return components


# -----------------------
# Discovered molecules registry
# -----------------------

class DiscoveryRegistry:
    """Ordered, duplicate-free list of molecule names seen so far."""

    def __init__(self, names: Optional[Iterable[str]] = None):
        self.names: List[str] = []
        for name in names or ():
            self.discover(name)

    def discover(self, name: str) -> bool:
        """Record a name. Returns True only the first time it is seen."""
        if name in self.names:
            return False
        self.names.append(name)
        return True

    def __contains__(self, name: str) -> bool:
        return name in self.names

    def __len__(self) -> int:
        return len(self.names)

    def save(self, path: str) -> str:
        ensure_parent_dir(path)
        try:
            with open(path, "w", encoding="utf-8") as fh:
                json.dump({"discovered": self.names}, fh, indent=2, ensure_ascii=False)
            logger.info(f"Saved {len(self.names)} discovered molecules to {path}")
        except OSError:
            logger.exception(f"Failed to save discovered molecules to {path}")
        return path

    @classmethod
    def load(cls, path: str) -> "DiscoveryRegistry":
        """Load from JSON; a missing or corrupt file yields an empty registry."""
        if not os.path.exists(path):
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
            names = data.get("discovered", []) if isinstance(data, dict) else data
            return cls(str(n) for n in names)
        except (OSError, ValueError, AttributeError, TypeError):
            logger.exception(f"Failed to load discovered molecules from {path}; starting empty.")
            return cls()


# -----------------------
# Molecule identifier
# -----------------------

class MoleculeIdentifier:
    """
    Turns bonded groups of free atoms into rigid molecules.

    Each run takes the connected components of the free-atom/free-bond graph,
    classifies every component with two or more atoms, replaces the member
    bodies with one compound body and moves the internal bonds off the free
    pool. Atoms already in a molecule are not part of the graph, so
    re-running it without new bonds creates nothing.
    """

    def __init__(self, state, registry: Optional[DiscoveryRegistry] = None):
        self.state = state
        self.registry = registry if registry is not None else DiscoveryRegistry()

    def identify(self) -> List[Molecule]:
        free_atoms = self.state.free_atoms()
        components = extract_connected_components(free_atoms, list(self.state.bonds.values()))
        created: List[Molecule] = []
        for comp_atoms, comp_bonds in components:
            if len(comp_atoms) < 2:
                continue
            created.append(self._materialize(comp_atoms, comp_bonds))
        return created

    def _materialize(self, atoms: List[Any], bonds: List[Bond]) -> Molecule:
        cls = classify_component(atoms, bonds)
        positions = calculate_molecular_positions(atoms, cls.geometry, cls.bond_length,
                                                  cls.central_atom, bonds)
        layout_centre = np.mean([positions[a.uid] for a in atoms], axis=0)
        offsets = {a.uid: positions[a.uid] - layout_centre for a in atoms}

        total_mass = sum(a.body.mass for a in atoms)
        centroid = np.mean([a.body.position for a in atoms], axis=0)
        momentum = np.sum([a.body.mass * a.body.velocity for a in atoms], axis=0)
        radius = max(float(np.linalg.norm(offsets[a.uid])) + a.body.radius for a in atoms)
        body = Body(mass=total_mass * MOLECULE_MASS_SCALE,
                    position=centroid,
                    velocity=momentum / total_mass,
                    radius=radius,
                    linear_damping=MOLECULE_DAMPING)

        molecule = Molecule(atom_uids=[a.uid for a in atoms],
                            name=cls.name,
                            formula=cls.formula,
                            geometry=cls.geometry,
                            body=body,
                            offsets=offsets,
                            bonds=bonds,
                            central_uid=cls.central_atom.uid if cls.central_atom is not None else None,
                            stability=cls.stability,
                            bond_length=cls.bond_length,
                            known=cls.known)
        self.state.add_molecule(molecule)
        newly_discovered = self.registry.discover(molecule.name)
        self.state.events.emit(MOLECULE_FORMED,
                               molecule=molecule.uid,
                               name=molecule.name,
                               formula=molecule.formula,
                               geometry=molecule.geometry,
                               atoms=list(molecule.atom_uids),
                               newly_discovered=newly_discovered)
        logger.info(f"Molecule formed: {molecule.name} [{molecule.uid}] geometry={molecule.geometry}"
                    + (" (new discovery)" if newly_discovered else ""))
        return molecule
