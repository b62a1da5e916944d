from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging

import numpy as np

from .bonds import Bond
from .physics import Body

logger = logging.getLogger(__name__)


def molecule_key(atom_uids) -> str:
    """Canonical molecule id: ascending atom ids joined by '-'."""
    return "-".join(str(uid) for uid in sorted(int(u) for u in atom_uids))


class Molecule:
    """
    A rigid group of bonded atoms moving as one compound body.

    Member atoms keep their own records but their world position is derived
    from the compound body position plus a fixed per-member offset. The
    internal bonds live here rather than in the free-bond pool.
    """

    def __init__(self,
                 atom_uids: List[int],
                 name: str,
                 formula: str,
                 geometry: str,
                 body: Body,
                 offsets: Dict[int, np.ndarray],
                 bonds: List[Bond],
                 central_uid: Optional[int] = None,
                 stability: float = 0.0,
                 bond_length: float = 0.0,
                 known: bool = False):
        self.atom_uids: List[int] = sorted(int(u) for u in atom_uids)
        self.uid: str = molecule_key(self.atom_uids)
        self.name: str = name
        self.formula: str = formula
        self.geometry: str = geometry
        self.body: Body = body
        self.offsets: Dict[int, np.ndarray] = {int(k): np.asarray(v, dtype=float) for k, v in offsets.items()}
        self.bonds: Dict[str, Bond] = {b.uid: b for b in bonds}
        # internal bond spans as laid out at formation
        self.rest_lengths: Dict[str, float] = {
            b.uid: float(np.linalg.norm(self.offsets.get(b.atom1_uid, np.zeros(3))
                                        - self.offsets.get(b.atom2_uid, np.zeros(3))))
            for b in bonds}
        self.central_uid: Optional[int] = central_uid
        self.stability: float = float(stability)
        self.bond_length: float = float(bond_length)
        self.known: bool = bool(known)

    @property
    def position(self) -> np.ndarray:
        return self.body.position

    def member_position(self, uid: int) -> np.ndarray:
        return self.body.position + self.offsets.get(int(uid), np.zeros(3))

    def bond_count(self, uid: int) -> int:
        return sum(1 for b in self.bonds.values() if b.involves(uid))

    def bond_distance(self, bond: Bond) -> float:
        return float(np.linalg.norm(self.member_position(bond.atom1_uid) - self.member_position(bond.atom2_uid)))

    def break_distance(self, bond: Bond) -> float:
        """Snap distance for an internal bond; never shorter than its rest span."""
        return max(bond.break_length, self.rest_lengths.get(bond.uid, 0.0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "name": self.name,
            "formula": self.formula,
            "geometry": self.geometry,
            "atoms": list(self.atom_uids),
            "bonds": sorted(self.bonds),
            "central_atom": self.central_uid,
            "stability": round(self.stability, 3),
            "position": self.body.position.tolist(),
            "velocity": self.body.velocity.tolist(),
        }

    def __repr__(self) -> str:
        return f"Molecule({self.uid}, {self.name!r})"
