from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional
import json
import logging
import math
import os
import time

from .config import DEFAULT_MODE, ExperimentPreset, get_preset
from .constants import DEFAULT_DATA_DIR, DEFAULT_EVENTS_FILENAME, DEFAULT_REGISTRY_FILENAME
from .elements_data import get_element_by_symbol
from .events import ensure_parent_dir
from .products import DiscoveryRegistry
from .simulation import Simulation

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

REACTANT_RING_RADIUS = 3.0
REACTANT_SPACING = 3.0


# -----------------------
# SimulationManager
# -----------------------
class SimulationManager:
    """
    High-level driver for batch or CLI runs.
    Usage:
        mgr = SimulationManager(preset="water", mode="educational", seed=7)
        mgr.run_steps(n_steps=600)
        mgr.export_results("outputs/water")
    """

    def __init__(self,
                 preset: Optional[str] = None,
                 mode: str = DEFAULT_MODE,
                 seed: Optional[int] = None,
                 registry_path: Optional[str] = None):
        """
        preset: experiment preset name (see ``config.EXPERIMENT_PRESETS``);
                if None the simulation starts empty.
        registry_path: JSON file holding previously discovered molecules; it
                is loaded now and written back by ``save_registry``.
        """
        self.registry_path = registry_path or os.path.join(DEFAULT_DATA_DIR, DEFAULT_REGISTRY_FILENAME)
        self.registry = DiscoveryRegistry.load(self.registry_path)
        self.sim = Simulation(mode=mode, seed=seed, registry=self.registry)
        self.preset: Optional[ExperimentPreset] = None
        self.energy_history: List[float] = []
        if preset:
            self.load_preset(preset)
        logger.info(f"SimulationManager initialized: atoms={len(self.sim.atoms)} mode={self.sim.mode.name}")

    # -----------------------
    # Properties delegating to simulation
    # -----------------------
    @property
    def frame(self) -> int:
        return self.sim.frame

    @property
    def atoms(self):
        return self.sim.atoms

    @property
    def molecules(self):
        return self.sim.molecules

    # -----------------------
    # Scene setup
    # -----------------------
    def load_preset(self, name: str) -> List[int]:
        """
        Spawn a preset's reactant atoms and apply its heat pulse.

        Each reactant element gets an anchor on a ring of radius 3; its atoms
        are lined up along +x from that anchor. Returns the new atom ids.
        """
        preset = get_preset(name)
        self.preset = preset
        uids: List[int] = []
        n_kinds = len(preset.reactants)
        for index, (symbol, count) in enumerate(preset.reactants):
            element = get_element_by_symbol(symbol)
            if element is None:
                raise KeyError(f"Preset {preset.name!r} uses unknown element {symbol!r}")
            angle = 2.0 * math.pi * index / n_kinds
            anchor = (REACTANT_RING_RADIUS * math.cos(angle), REACTANT_RING_RADIUS * math.sin(angle), 0.0)
            for i in range(count):
                position = [anchor[0] + i * REACTANT_SPACING, anchor[1], anchor[2]]
                atom = self.sim.add_atom(element.atomic_number, neutrons=element.atomic_number,
                                         position=position)
                uids.append(atom.uid)
        self.sim.add_energy(preset.energy)
        logger.info(f"Loaded preset {preset.name}: {len(uids)} atoms, energy {preset.energy}")
        return uids

    # -----------------------
    # Running
    # -----------------------
    def step(self) -> None:
        self.sim.step()
        self.energy_history.append(self.sim.system_energy())

    def run_steps(self, n_steps: int = 1000, report_interval: int = 100,
                  update_callback: Optional[Callable[["SimulationManager"], None]] = None) -> None:
        """
        Run a synchronous loop of steps.
        update_callback is called every report_interval frames with self as arg.
        """
        for _ in range(int(n_steps)):
            self.step()
            if update_callback is not None and report_interval > 0 and self.frame % report_interval == 0:
                try:
                    update_callback(self)
                except Exception:
                    logger.exception("update_callback failed during run_steps.")
        logger.info(f"Run completed at frame {self.frame}: {len(self.sim.molecules)} molecules, "
                    f"discovered={self.registry.names}")

    def summary(self) -> Dict[str, Any]:
        out = self.sim.stats()
        out["preset"] = self.preset.name if self.preset else None
        out["molecule_names"] = sorted(m["name"] for m in self.sim.molecule_list())
        out["discovered_molecules"] = self.sim.discovered_molecules()
        return out

    # -----------------------
    # Persistence
    # -----------------------
    def save_registry(self, path: Optional[str] = None) -> str:
        return self.registry.save(path or self.registry_path)

    def export_results(self, out_dir: Optional[str] = None) -> str:
        """
        Export atoms, bonds, molecules, a summary and the event log into a
        directory. Returns the path to the exported directory.
        """
        out_dir = out_dir or os.path.join("outputs", f"run_{time.strftime('%Y%m%dT%H%M%S')}")
        os.makedirs(out_dir, exist_ok=True)
        payloads = {
            "atoms.json": {"atoms": [self.sim.atoms[u].to_dict() for u in sorted(self.sim.atoms)],
                           "frame_count": self.frame},
            "bonds.json": {"bonds": self.sim.bonds()},
            "molecules.json": {"molecules": self.sim.molecule_list()},
            "summary.json": self.summary(),
        }
        for filename, payload in payloads.items():
            path = os.path.join(out_dir, filename)
            ensure_parent_dir(path)
            try:
                with open(path, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh, indent=2, ensure_ascii=False)
            except OSError:
                logger.exception(f"Failed to write {path}")
        self.sim.events.export_jsonl(os.path.join(out_dir, DEFAULT_EVENTS_FILENAME))
        self.registry.save(os.path.join(out_dir, DEFAULT_REGISTRY_FILENAME))
        logger.info(f"Exported simulation results to {out_dir}")
        return out_dir

    def reset_simulation(self) -> None:
        """Clear the scene and reload the current preset, if any."""
        self.sim.reset()
        self.energy_history.clear()
        if self.preset is not None:
            self.load_preset(self.preset.name)
