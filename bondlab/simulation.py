from __future__ import annotations
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import logging

import numpy as np

from .atoms import Atom
from .config import DEFAULT_MODE, SimulationMode, get_mode
from .constants import DEFAULT_DT, DEFAULT_HEAT_INTENSITY, SEPARATION_SPEED, STRESS_WARNING_RATIO
from .energy import EnergyModel
from .eligibility import PreferenceFilter, PreferenceRule
from .events import ENERGY_ADDED, EventLog
from .lifecycle import BondLifecycleManager, BondRequestResult
from .physics import PhysicsWorld
from .products import DiscoveryRegistry, MoleculeIdentifier
from .reactions import ReactionOrchestrator
from .state import SimulationState

logger = logging.getLogger(__name__)


class Simulation:
    """
    Owns the simulation state and drives one deterministic tick at a time.

    Per tick, in order: integrate physics, decay transient heat, optional
    continuous heating, clamp speeds, then either advance the running
    reaction or scan for new bonds and progress forming ones, break
    over-stressed bonds, identify molecules and finally look for a reaction
    to start.

    Typical usage:
        sim = Simulation(mode="sandbox", seed=1)
        h1 = sim.add_atom(1, position=[0, 0, 0])
        h2 = sim.add_atom(1, position=[2, 0, 0])
        sim.add_energy(5)
        sim.run(200)
    """

    def __init__(self,
                 mode: Union[str, SimulationMode] = DEFAULT_MODE,
                 seed: Optional[int] = None,
                 dt: float = DEFAULT_DT,
                 preference_rules: Optional[List[PreferenceRule]] = None,
                 registry: Optional[DiscoveryRegistry] = None):
        self.rng = np.random.default_rng(seed)
        self.dt = float(dt)
        self.events = EventLog()
        self.physics = PhysicsWorld(dt=self.dt)
        self.state = SimulationState(self.physics, self.events)
        self.energy = EnergyModel(rng=self.rng)
        self.lifecycle = BondLifecycleManager(self.state, PreferenceFilter(preference_rules))
        self.registry = registry if registry is not None else DiscoveryRegistry()
        self.identifier = MoleculeIdentifier(self.state, self.registry)
        self.reactions = ReactionOrchestrator(self.state, self.lifecycle, self.identifier, self.energy)

        self.frame: int = 0
        self.global_heating: bool = False
        self.heat_intensity: float = DEFAULT_HEAT_INTENSITY
        self.mode: SimulationMode = get_mode(DEFAULT_MODE)
        self.auto_reactions: bool = self.mode.auto_reactions
        self.set_mode(mode)

        logger.info(f"Simulation initialized: mode={self.mode.name} dt={self.dt:.4f}")

    # -----------------------
    # Configuration
    # -----------------------
    def set_mode(self, mode: Union[str, SimulationMode]) -> SimulationMode:
        """Apply a mode preset (by name or record). Raises KeyError for unknown names."""
        self.mode = mode if isinstance(mode, SimulationMode) else get_mode(mode)
        self.state.set_damping(self.mode.linear_damping)
        self.energy.decay_rate = self.mode.energy_decay_rate
        self.auto_reactions = self.mode.auto_reactions
        logger.info(f"Mode set to {self.mode.name}")
        return self.mode

    def toggle_auto_reactions(self) -> bool:
        self.auto_reactions = not self.auto_reactions
        return self.auto_reactions

    def toggle_global_heating(self, intensity: Optional[float] = None) -> bool:
        self.global_heating = not self.global_heating
        if intensity is not None:
            self.heat_intensity = float(intensity)
        return self.global_heating

    # -----------------------
    # Atom commands
    # -----------------------
    def add_atom(self, protons: int, neutrons: int = 0, electrons: Optional[int] = None,
                 position: Optional[Iterable[float]] = None,
                 velocity: Optional[Iterable[float]] = None) -> Atom:
        atom = self.state.add_atom(protons, neutrons, electrons, position=position, velocity=velocity)
        logger.info(f"Added atom {atom.uid} ({atom.label})")
        return atom

    def delete_atom(self, uid: int) -> bool:
        """Remove an atom, releasing its molecule and dropping its bonds."""
        atom = self.state.atom(uid)
        if atom is None:
            return False
        self.lifecycle.cancel_transitions_for(uid)
        if atom.molecule_id is not None:
            self.state.dissolve_molecule(atom.molecule_id, restore_bonds=False, reason="atom_deleted")
        self.state.remove_atom(uid)
        logger.info(f"Deleted atom {uid}")
        return True

    def _edit_nucleus(self, uid: int, d_protons: int = 0, d_neutrons: int = 0) -> bool:
        atom = self.state.atom(uid)
        if atom is None:
            return False
        if d_protons:
            if self.reactions.locked:
                return False
            new_protons = max(1, atom.protons + d_protons)
            if new_protons == atom.protons:
                return False
            self._detach(atom)
            atom.protons = new_protons
            atom.electrons = new_protons
        if d_neutrons:
            new_neutrons = max(0, atom.neutrons + d_neutrons)
            if new_neutrons == atom.neutrons:
                return False
            atom.neutrons = new_neutrons
        atom.refresh_body()
        if d_protons:
            self.identifier.identify()
        logger.info(f"Atom {uid} is now {atom.label}")
        return True

    def _detach(self, atom: Atom) -> None:
        """Drop every bond of an atom whose element is about to change."""
        self.lifecycle.cancel_transitions_for(atom.uid)
        if atom.molecule_id is not None:
            self.state.dissolve_molecule(atom.molecule_id, restore_bonds=True, reason="element_changed")
        for bond in self.state.bonds_of(atom.uid):
            self.state.remove_bond(bond.uid, reason="element_changed")

    def add_proton(self, uid: int) -> bool:
        return self._edit_nucleus(uid, d_protons=1)

    def remove_proton(self, uid: int) -> bool:
        return self._edit_nucleus(uid, d_protons=-1)

    def add_neutron(self, uid: int) -> bool:
        return self._edit_nucleus(uid, d_neutrons=1)

    def remove_neutron(self, uid: int) -> bool:
        return self._edit_nucleus(uid, d_neutrons=-1)

    def add_electron(self, uid: int) -> bool:
        atom = self.state.atom(uid)
        if atom is None:
            return False
        atom.electrons += 1
        return True

    def remove_electron(self, uid: int) -> bool:
        atom = self.state.atom(uid)
        if atom is None or atom.electrons == 0:
            return False
        atom.electrons -= 1
        return True

    # -----------------------
    # Bond / molecule commands
    # -----------------------
    def create_manual_bond(self, uid_a: int, uid_b: int) -> BondRequestResult:
        """
        User-requested bond. Skips the distance and attraction path but keeps
        duplicate, element, valence and activation-energy checks.
        """
        if not self.mode.allow_manual_bonding:
            return BondRequestResult.MANUAL_BONDING_DISABLED
        if self.reactions.locked:
            return BondRequestResult.REACTION_IN_PROGRESS
        refusal = self.lifecycle.check_manual_bond(uid_a, uid_b, self.system_energy())
        if refusal is not None:
            if refusal in (BondRequestResult.VALENCE_EXCEEDED, BondRequestResult.INSUFFICIENT_ENERGY):
                logger.warning(f"Manual bond {uid_a}-{uid_b} refused: {refusal.value}")
            else:
                logger.debug(f"Manual bond {uid_a}-{uid_b} refused: {refusal.value}")
            return refusal
        result = self.lifecycle.create_bond(uid_a, uid_b, settle=True)
        if result is BondRequestResult.CREATED:
            self.identifier.identify()
        return result

    def delete_bond(self, bond_uid: str) -> bool:
        """Remove a bond; deleting a molecule's internal bond releases that molecule."""
        if self.reactions.locked:
            return False
        if bond_uid in self.state.bonds:
            self.state.remove_bond(bond_uid, reason="deleted")
            return True
        for mol_id in sorted(self.state.molecules):
            molecule = self.state.molecules[mol_id]
            if bond_uid in molecule.bonds:
                del molecule.bonds[bond_uid]
                self.state.dissolve_molecule(mol_id, restore_bonds=True, reason="bond_deleted")
                self.identifier.identify()
                return True
        return False

    def break_molecule(self, molecule_id: str) -> bool:
        """Split a molecule into free atoms pushed apart, blocking re-bonding for a cooldown."""
        if self.reactions.locked:
            return False
        molecule = self.state.molecules.get(molecule_id)
        if molecule is None:
            return False
        released = self.state.dissolve_molecule(molecule_id, restore_bonds=False,
                                                separation_speed=SEPARATION_SPEED, reason="broken_apart")
        self.lifecycle.arm_cooldowns(released, self.state.time)
        return True

    # -----------------------
    # Energy commands
    # -----------------------
    def add_energy(self, amount: float) -> float:
        heat = self.energy.add_energy(amount, self.state.free_bodies())
        self.events.emit(ENERGY_ADDED, amount=float(amount), transient_heat=heat)
        return heat

    def reset_energy(self) -> None:
        self.energy.reset()

    # -----------------------
    # Queries
    # -----------------------
    @property
    def atoms(self) -> Dict[int, Atom]:
        return self.state.atoms

    @property
    def molecules(self):
        return self.state.molecules

    @property
    def time(self) -> float:
        return self.state.time

    def free_atoms(self) -> List[Atom]:
        return self.state.free_atoms()

    def system_energy(self) -> float:
        return self.energy.system_energy(self.state.free_bodies())

    def temperature(self) -> float:
        return self.energy.temperature()

    def bond_count(self, uid: int) -> int:
        return self.state.bond_count(uid)

    def bonds(self) -> List[Dict[str, Any]]:
        """Every bond, free or inside a molecule, with live stress data."""
        records = list(self.state.bonds.values())
        for mol_id in sorted(self.state.molecules):
            records.extend(self.state.molecules[mol_id].bonds.values())
        out = []
        for bond in sorted(records, key=lambda b: b.atom_uids):
            entry = bond.to_dict()
            ratio = self.lifecycle.stress_ratio(bond)
            entry["stress_ratio"] = round(ratio, 4)
            entry["stressed"] = ratio > STRESS_WARNING_RATIO
            out.append(entry)
        return out

    def molecule_list(self) -> List[Dict[str, Any]]:
        return [self.state.molecules[k].to_dict() for k in sorted(self.state.molecules)]

    def discovered_molecules(self) -> List[str]:
        return list(self.registry.names)

    def stats(self) -> Dict[str, Any]:
        return {
            "frame": self.frame,
            "time": round(self.state.time, 4),
            "mode": self.mode.name,
            "atoms": len(self.state.atoms),
            "free_atoms": len(self.state.free_atoms()),
            "molecules": len(self.state.molecules),
            "free_bonds": len(self.state.bonds),
            "forming_bonds": len(self.lifecycle.transitions),
            "transient_heat": round(self.energy.transient_heat, 4),
            "system_energy": round(self.system_energy(), 4),
            "temperature": round(self.temperature(), 2),
            "reaction": self.reactions.active.name if self.reactions.active else None,
            "discovered": len(self.registry),
        }

    # -----------------------
    # Stepping
    # -----------------------
    def _phase(self, name: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except Exception:
            logger.exception(f"Simulation phase '{name}' failed at frame {self.frame}")
            return None

    def step(self) -> None:
        dt = self.dt * self.mode.time_scale
        self.events.frame = self.frame
        self.events.sim_time = self.state.time

        self._phase("physics", lambda: self.physics.step(dt))
        self._phase("decay", self.energy.decay)
        if self.global_heating:
            self._phase("heating", lambda: self.energy.jitter(self.state.free_bodies(), self.heat_intensity))
        self._phase("velocity_limit",
                    lambda: self.energy.limit_velocities(self.state.free_bodies(), self.mode.max_velocity))

        if self.reactions.locked:
            self._phase("reaction", self.reactions.advance)
            self._phase("stress", self.lifecycle.check_stress)
        else:
            system_energy = self.system_energy()
            self._phase("scan", lambda: self.lifecycle.scan(system_energy, self.state.time))
            self._phase("forming", lambda: self.lifecycle.advance_transitions(dt))
            self._phase("stress", self.lifecycle.check_stress)
            self._phase("identify", self.identifier.identify)
            if self.auto_reactions:
                self._phase("reaction_check", lambda: self.reactions.check(self.system_energy()))

        self.frame += 1
        self.state.time += dt

    def run(self, n_steps: int, callback: Optional[Callable[["Simulation"], None]] = None) -> None:
        for _ in range(int(n_steps)):
            self.step()
            if callback is not None:
                try:
                    callback(self)
                except Exception:
                    logger.exception("step callback failed during run.")

    def reset(self) -> None:
        """Remove every atom, bond and molecule; keeps mode and discovery registry."""
        self.reactions.reset()
        self.lifecycle.reset()
        for mol_id in list(self.state.molecules):
            self.state.dissolve_molecule(mol_id, reason="reset")
        for uid in list(self.state.atoms):
            self.state.remove_atom(uid)
        self.energy.reset()
        self.frame = 0
        self.state.time = 0.0
        logger.info("Simulation reset")
