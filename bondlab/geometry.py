"""
Geometry engine: central-atom selection, VSEPR classification and
template-based 3D placement of molecule members.

Positions are returned relative to the central atom (at the origin); callers
that need centroid-relative offsets subtract the mean themselves.
"""
from __future__ import annotations
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple
import logging
import math

import numpy as np

from .bonds import Bond
from .constants import EPSILON

logger = logging.getLogger(__name__)

# (electron pairs, lone pairs) -> geometry name
VSEPR_TABLE: Dict[Tuple[float, float], str] = {
    (2, 0): "linear",
    (3, 0): "trigonal_planar",
    (3, 1): "bent",
    (4, 0): "tetrahedral",
    (4, 1): "trigonal_pyramidal",
    (4, 2): "bent",
    (5, 0): "trigonal_bipyramidal",
    (5, 1): "seesaw",
    (5, 2): "T_shaped",
    (5, 3): "linear",
    (6, 0): "octahedral",
    (6, 1): "square_pyramidal",
    (6, 2): "square_planar",
}

BENT_ANGLE_DEG = 104.5
TETRAHEDRAL_COS = -1.0 / 3.0


def _unit(v: Sequence[float]) -> np.ndarray:
    arr = np.asarray(v, dtype=float)
    return arr / max(float(np.linalg.norm(arr)), EPSILON)


def _ring(count: int, start_deg: float = 0.0) -> List[np.ndarray]:
    """Unit vectors evenly spaced in the xz plane."""
    out = []
    for i in range(count):
        theta = math.radians(start_deg) + 2.0 * math.pi * i / count
        out.append(np.array([math.cos(theta), 0.0, math.sin(theta)]))
    return out


def _bent_directions() -> List[np.ndarray]:
    half = math.radians(BENT_ANGLE_DEG / 2.0)
    return [np.array([math.sin(half), math.cos(half), 0.0]),
            np.array([-math.sin(half), math.cos(half), 0.0])]


def _pyramid_directions() -> List[np.ndarray]:
    polar = math.acos(TETRAHEDRAL_COS)
    return [np.array([math.sin(polar) * d[0], math.cos(polar), math.sin(polar) * d[2]])
            for d in _ring(3)]


_UP = np.array([0.0, 1.0, 0.0])
_DOWN = np.array([0.0, -1.0, 0.0])

# geometry -> unit directions of the substituents around the central atom
GEOMETRY_DIRECTIONS: Dict[str, List[np.ndarray]] = {
    "bent": _bent_directions(),
    "trigonal_planar": [np.array([math.cos(a), math.sin(a), 0.0])
                        for a in (0.0, 2.0 * math.pi / 3.0, 4.0 * math.pi / 3.0)],
    "tetrahedral": [_unit(v) for v in ((1, 1, 1), (-1, -1, 1), (-1, 1, -1), (1, -1, -1))],
    "trigonal_pyramidal": _pyramid_directions(),
    "trigonal_bipyramidal": [_UP, _DOWN] + _ring(3),
    "seesaw": [_UP, _DOWN] + _ring(3)[:2],
    "T_shaped": [_UP, _DOWN, np.array([1.0, 0.0, 0.0])],
    "octahedral": [np.array(v, dtype=float) for v in
                   ((1, 0, 0), (-1, 0, 0), (0, 1, 0), (0, -1, 0), (0, 0, 1), (0, 0, -1))],
    "square_planar": _ring(4),
    "square_pyramidal": [_UP] + _ring(4),
}


def _bond_pairs(bonds: Iterable) -> List[Tuple[int, int]]:
    pairs = []
    for b in bonds:
        if isinstance(b, Bond):
            pairs.append(b.atom_uids)
        else:
            pairs.append((int(b[0]), int(b[1])))
    return pairs


# -----------------------
# Central atom
# -----------------------

def find_optimal_central_atom(atoms: Sequence):
    """
    Pick the atom maximizing (max_bonds - electronegativity).

    Ties keep the first atom encountered. Atoms with unknown elements are
    never preferred over known ones.
    """
    if not atoms:
        raise ValueError("Cannot choose a central atom from an empty list")
    best = None
    best_score = -math.inf
    for atom in atoms:
        element = atom.element
        if element is None:
            continue
        score = element.max_bonds - element.electronegativity
        if score > best_score:
            best, best_score = atom, score
    return best if best is not None else atoms[0]


def select_central_atom(atoms: Sequence, bonds: Iterable):
    """Hub of the actual bond graph; ties fall back to ``find_optimal_central_atom``."""
    pairs = _bond_pairs(bonds)
    if not pairs:
        return find_optimal_central_atom(atoms)
    degree = {atom.uid: 0 for atom in atoms}
    for a, b in pairs:
        if a in degree:
            degree[a] += 1
        if b in degree:
            degree[b] += 1
    top = max(degree.values())
    return find_optimal_central_atom([a for a in atoms if degree[a.uid] == top])


# -----------------------
# VSEPR classification
# -----------------------

def lone_pairs(valence_electrons: int, bonds_at_center: int) -> float:
    return max(0.0, (valence_electrons - 2 * bonds_at_center) / 2.0)


def determine_geometry(atoms: Sequence, bonds: Iterable, central_atom=None) -> str:
    """
    Classify molecular shape with VSEPR.

    Args:
        atoms: Member atoms.
        bonds: Bond records or (uid_a, uid_b) pairs among the members.
        central_atom: Optional explicit centre; defaults to
            ``find_optimal_central_atom``.

    Returns:
        str: a geometry name, 'atomic' for one atom, 'unknown' when the
        centre's element is not catalogued and 'complex' when no VSEPR
        entry matches.
    """
    if len(atoms) <= 1:
        return "atomic"
    if len(atoms) == 2:
        return "linear"
    center = central_atom if central_atom is not None else find_optimal_central_atom(atoms)
    element = center.element
    if element is None:
        return "unknown"
    bonds_at_center = sum(1 for a, b in _bond_pairs(bonds) if center.uid in (a, b))
    lone = lone_pairs(element.valence_electrons, bonds_at_center)
    total = bonds_at_center + lone
    return VSEPR_TABLE.get((total, lone), "complex")


# -----------------------
# Placement
# -----------------------

def _circular(others: Sequence, bond_length: float) -> List[np.ndarray]:
    n = len(others)
    return [np.array([bond_length * math.cos(2.0 * math.pi * i / n),
                      bond_length * math.sin(2.0 * math.pi * i / n), 0.0]) for i in range(n)]


def _perpendicular(v: np.ndarray) -> np.ndarray:
    axis = np.array([0.0, 0.0, 1.0]) if abs(float(v[2])) < 0.9 else np.array([1.0, 0.0, 0.0])
    return _unit(np.cross(v, axis))


# branch angles (degrees) off the incoming bond for atoms beyond the first shell
BRANCH_ANGLES = (0.0, 60.0, -60.0, 120.0, -120.0)


def calculate_molecular_positions(atoms: Sequence, geometry: str, bond_length: float,
                                  central_atom=None, bonds: Optional[Iterable] = None) -> Dict[int, np.ndarray]:
    """
    Place members on a geometry template around the central atom.

    Returns a mapping atom uid -> position with the central atom at the
    origin. Two-atom molecules sit at +/- bond_length/2 on x. Geometries with
    no template, or with more substituents than the template holds, fall
    back to a circle of radius bond_length.

    When ``bonds`` is given only the centre's bonded neighbours go on the
    template; every other atom is placed one bond_length outward from the
    atom it is bonded to, so each bond spans exactly bond_length along the
    spanning tree. Without bonds every non-central atom is treated as a
    neighbour of the centre.
    """
    if not atoms:
        return {}
    if len(atoms) == 1:
        return {atoms[0].uid: np.zeros(3)}
    if len(atoms) == 2:
        half = bond_length / 2.0
        return {atoms[0].uid: np.array([-half, 0.0, 0.0]),
                atoms[1].uid: np.array([half, 0.0, 0.0])}

    center = central_atom if central_atom is not None else find_optimal_central_atom(atoms)
    others = [a for a in atoms if a.uid != center.uid]

    neighbours: Dict[int, List[int]] = {a.uid: [] for a in atoms}
    if bonds is not None:
        for a, b in _bond_pairs(bonds):
            if a in neighbours and b in neighbours:
                neighbours[a].append(b)
                neighbours[b].append(a)
        shell = [a for a in others if a.uid in neighbours[center.uid]]
    else:
        shell = others

    # breadth-first spanning tree from the centre: child uid -> parent uid
    parent: Dict[int, int] = {a.uid: center.uid for a in shell}
    order: List[int] = []
    frontier = [a.uid for a in shell]
    seen = {center.uid, *frontier}
    while frontier:
        nxt: List[int] = []
        for uid in frontier:
            for other in sorted(neighbours[uid]):
                if other not in seen:
                    seen.add(other)
                    parent[other] = uid
                    order.append(other)
                    nxt.append(other)
        frontier = nxt
    # members the bond graph does not reach hang off the centre
    shell = shell + [a for a in others if a.uid not in seen]

    positions: Dict[int, np.ndarray] = {center.uid: np.zeros(3)}
    if geometry == "linear":
        coords = [np.array([(-1.0 if i % 2 == 0 else 1.0) * bond_length * (i // 2 + 1), 0.0, 0.0])
                  for i in range(len(shell))]
    else:
        template = GEOMETRY_DIRECTIONS.get(geometry)
        if template is None or len(shell) > len(template):
            coords = _circular(shell, bond_length)
        else:
            coords = [d * bond_length for d in template[:len(shell)]]
    for atom, pos in zip(shell, coords):
        positions[atom.uid] = np.asarray(pos, dtype=float)

    branches: Dict[int, int] = {}
    for uid in order:
        p = parent[uid]
        outward = _unit(positions[p] - positions[parent[p]])
        k = branches.get(p, 0)
        branches[p] = k + 1
        theta = math.radians(BRANCH_ANGLES[k % len(BRANCH_ANGLES)])
        direction = math.cos(theta) * outward + math.sin(theta) * _perpendicular(outward)
        positions[uid] = positions[p] + direction * bond_length
    return positions


# -----------------------
# Optimal bonding structure
# -----------------------

class BondingStructure(NamedTuple):
    bonds: List[Bond]
    central_atom: object
    stability: float


def calculate_optimal_bonding_structure(atoms: Sequence) -> BondingStructure:
    """
    Greedy maximum-energy bond set under valence limits.

    Every pair of known elements is a candidate; candidates are accepted in
    descending bond energy while both ends have room for the bond order.
    Stability is total accepted energy divided by the atom count.
    """
    if not atoms:
        raise ValueError("Cannot build a bonding structure without atoms")
    candidates: List[Bond] = []
    for i in range(len(atoms)):
        for j in range(i + 1, len(atoms)):
            if atoms[i].element is None or atoms[j].element is None:
                continue
            candidates.append(Bond(atoms[i], atoms[j]))
    candidates.sort(key=lambda b: b.energy, reverse=True)

    capacity = {a.uid: (a.element.max_bonds if a.element else 0) for a in atoms}
    used = {a.uid: 0 for a in atoms}
    accepted: List[Bond] = []
    for bond in candidates:
        a, b = bond.atom_uids
        if used[a] + bond.order <= capacity[a] and used[b] + bond.order <= capacity[b]:
            accepted.append(bond)
            used[a] += bond.order
            used[b] += bond.order

    stability = sum(b.energy for b in accepted) / len(atoms)
    return BondingStructure(bonds=accepted,
                            central_atom=find_optimal_central_atom(atoms),
                            stability=stability)
