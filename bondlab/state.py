from __future__ import annotations
from typing import Dict, Iterable, List, Optional
import logging

import numpy as np

from .atoms import Atom
from .bonds import Bond
from .constants import EPSILON
from .events import BOND_BROKEN, MOLECULE_BROKEN, EventLog
from .molecules import Molecule
from .physics import Body, PhysicsWorld

logger = logging.getLogger(__name__)


class SimulationState:
    """
    Id-indexed arena for atoms, free bonds and molecules.

    Components never hold direct references to each other's records; they
    look atoms up by id here, so a deleted atom shows up as a missing key
    rather than a dangling object.
    """

    def __init__(self, physics: PhysicsWorld, events: EventLog):
        self.physics = physics
        self.events = events
        self.atoms: Dict[int, Atom] = {}
        self.bonds: Dict[str, Bond] = {}  # free-bond pool
        self.molecules: Dict[str, Molecule] = {}
        self.time: float = 0.0
        self.linear_damping: float = 0.4
        self._next_uid: int = 1

    # -----------------------
    # Atoms
    # -----------------------
    def add_atom(self, protons: int, neutrons: int = 0, electrons: Optional[int] = None,
                 position=None, velocity=None) -> Atom:
        atom = Atom(self._next_uid, protons, neutrons, electrons,
                    position=position, velocity=velocity,
                    linear_damping=self.linear_damping)
        self._next_uid += 1
        self.atoms[atom.uid] = atom
        self.physics.add_body(atom.body)
        return atom

    def remove_atom(self, uid: int) -> Optional[Atom]:
        """Remove a free atom and any free bonds touching it. Members must be released first."""
        atom = self.atoms.get(uid)
        if atom is None:
            return None
        if atom.is_molecule_member:
            raise ValueError(f"Atom {uid} still belongs to molecule {atom.molecule_id}")
        for bond in self.bonds_of(uid):
            self.remove_bond(bond.uid, reason="atom_deleted")
        self.physics.remove_body(atom.body)
        del self.atoms[uid]
        return atom

    def atom(self, uid: int) -> Optional[Atom]:
        return self.atoms.get(uid)

    def free_atoms(self) -> List[Atom]:
        return [self.atoms[uid] for uid in sorted(self.atoms) if not self.atoms[uid].is_molecule_member]

    def has_atoms(self, uids: Iterable[int]) -> bool:
        return all(uid in self.atoms for uid in uids)

    def molecule_of(self, uid: int) -> Optional[Molecule]:
        atom = self.atoms.get(uid)
        if atom is None or atom.molecule_id is None:
            return None
        return self.molecules.get(atom.molecule_id)

    def position_of(self, uid: int) -> np.ndarray:
        """World position of an atom, derived from its molecule when it is a member."""
        molecule = self.molecule_of(uid)
        if molecule is not None:
            return molecule.member_position(uid)
        return self.atoms[uid].body.position

    def distance(self, uid_a: int, uid_b: int) -> float:
        return float(np.linalg.norm(self.position_of(uid_a) - self.position_of(uid_b)))

    # -----------------------
    # Bonds
    # -----------------------
    def find_bond(self, key: str) -> Optional[Bond]:
        """Look a bond up in the free pool, then inside molecules."""
        if key in self.bonds:
            return self.bonds[key]
        for molecule in self.molecules.values():
            if key in molecule.bonds:
                return molecule.bonds[key]
        return None

    def bonds_of(self, uid: int) -> List[Bond]:
        return [b for b in self.bonds.values() if b.involves(uid)]

    def bond_count(self, uid: int) -> int:
        count = len(self.bonds_of(uid))
        molecule = self.molecule_of(uid)
        if molecule is not None:
            count += molecule.bond_count(uid)
        return count

    def add_bond(self, bond: Bond) -> Bond:
        self.bonds[bond.uid] = bond
        return bond

    def remove_bond(self, key: str, reason: str = "") -> Optional[Bond]:
        bond = self.bonds.pop(key, None)
        if bond is not None:
            self.events.emit(BOND_BROKEN, bond=bond.uid, atoms=list(bond.atom_uids), reason=reason)
            logger.info(f"Bond {bond.uid} removed ({reason or 'unspecified'})")
        return bond

    # -----------------------
    # Molecules
    # -----------------------
    def add_molecule(self, molecule: Molecule) -> Molecule:
        for uid in molecule.atom_uids:
            atom = self.atoms[uid]
            atom.molecule_id = molecule.uid
            self.physics.remove_body(atom.body)
        for key in molecule.bonds:
            self.bonds.pop(key, None)
        self.molecules[molecule.uid] = molecule
        self.physics.add_body(molecule.body)
        return molecule

    def dissolve_molecule(self, molecule_id: str, restore_bonds: bool = False,
                          separation_speed: float = 0.0, reason: str = "") -> List[int]:
        """
        Return a molecule's members to the free pool.

        Members are placed at their current world positions and inherit the
        compound velocity, plus an outward push when ``separation_speed`` is
        set. With ``restore_bonds`` the internal bonds go back to the free
        pool so re-identification can rebuild the same molecule.
        """
        molecule = self.molecules.pop(molecule_id, None)
        if molecule is None:
            return []
        self.physics.remove_body(molecule.body)
        released: List[int] = []
        for uid in molecule.atom_uids:
            atom = self.atoms.get(uid)
            if atom is None:
                continue
            offset = molecule.offsets.get(uid, np.zeros(3))
            atom.body.position = molecule.body.position + offset
            atom.body.velocity = molecule.body.velocity.copy()
            norm = float(np.linalg.norm(offset))
            if separation_speed > 0 and norm > EPSILON:
                atom.body.velocity += offset / norm * separation_speed
            atom.body.force[:] = 0.0
            atom.body.linear_damping = self.linear_damping
            atom.molecule_id = None
            self.physics.add_body(atom.body)
            released.append(uid)
        if restore_bonds:
            for key, bond in molecule.bonds.items():
                if self.has_atoms(bond.atom_uids):
                    self.bonds[key] = bond
        self.events.emit(MOLECULE_BROKEN, molecule=molecule.uid, name=molecule.name,
                         atoms=list(molecule.atom_uids), reason=reason)
        logger.info(f"Molecule {molecule.name} [{molecule.uid}] dissolved ({reason or 'unspecified'})")
        return released

    # -----------------------
    # Bodies
    # -----------------------
    def free_bodies(self) -> List[Body]:
        """Bodies the physics world integrates: free atoms and molecules."""
        bodies = [atom.body for atom in self.free_atoms()]
        bodies.extend(self.molecules[key].body for key in sorted(self.molecules))
        return bodies

    def set_damping(self, linear_damping: float) -> None:
        self.linear_damping = float(linear_damping)
        for atom in self.atoms.values():
            atom.body.linear_damping = self.linear_damping
