from __future__ import annotations
from typing import Dict, List, NamedTuple, Tuple
import logging

logger = logging.getLogger(__name__)


# -----------------------
# Simulation modes
# -----------------------

class SimulationMode(NamedTuple):
    """Per-mode tuning knobs consumed by ``Simulation.set_mode``."""
    name: str
    description: str
    linear_damping: float
    max_velocity: float
    time_scale: float
    energy_decay_rate: float
    auto_reactions: bool
    allow_manual_bonding: bool = True


SIMULATION_MODES: Dict[str, SimulationMode] = {
    "sandbox": SimulationMode(
        name="sandbox",
        description="Free-form building with manual bonding and no automatic reactions",
        linear_damping=0.8,
        max_velocity=5.0,
        time_scale=1.0,
        energy_decay_rate=0.99,
        auto_reactions=False,
    ),
    "educational": SimulationMode(
        name="educational",
        description="Slowed-down, guided chemistry with automatic reactions",
        linear_damping=0.9,
        max_velocity=3.0,
        time_scale=0.7,
        energy_decay_rate=0.998,
        auto_reactions=True,
    ),
    "realistic": SimulationMode(
        name="realistic",
        description="Faster dynamics where only energetic collisions bond",
        linear_damping=0.4,
        max_velocity=15.0,
        time_scale=1.0,
        energy_decay_rate=0.96,
        auto_reactions=True,
        allow_manual_bonding=False,
    ),
}

DEFAULT_MODE = "educational"


def get_mode(name: str) -> SimulationMode:
    """Look up a mode preset by name (case-insensitive). Raises KeyError if unknown."""
    key = str(name).strip().lower()
    if key not in SIMULATION_MODES:
        raise KeyError(f"Unknown simulation mode: {name!r} (known: {sorted(SIMULATION_MODES)})")
    return SIMULATION_MODES[key]


# -----------------------
# Experiment presets
# -----------------------

class ExperimentPreset(NamedTuple):
    name: str
    description: str
    reactants: Tuple[Tuple[str, int], ...]  # (element symbol, atom count)
    energy: float                           # heat pulse applied after spawning
    expected_products: Tuple[str, ...] = ()


EXPERIMENT_PRESETS: Dict[str, ExperimentPreset] = {
    "water": ExperimentPreset(
        name="water",
        description="Hydrogen and oxygen combine into water",
        reactants=(("H", 4), ("O", 2)),
        energy=8.0,
        expected_products=("Water (H₂O)",),
    ),
    "co2": ExperimentPreset(
        name="co2",
        description="Carbon burns with oxygen into carbon dioxide",
        reactants=(("C", 1), ("O", 2)),
        energy=15.0,
        expected_products=("Carbon Dioxide (CO₂)",),
    ),
    "methane": ExperimentPreset(
        name="methane",
        description="Carbon saturated with four hydrogens",
        reactants=(("C", 1), ("H", 4)),
        energy=12.0,
        expected_products=("Methane (CH₄)",),
    ),
    "ammonia": ExperimentPreset(
        name="ammonia",
        description="Nitrogen fixed with hydrogen",
        reactants=(("N", 1), ("H", 3)),
        energy=20.0,
        expected_products=("Ammonia (NH₃)",),
    ),
    "h2": ExperimentPreset(
        name="h2",
        description="Two hydrogen atoms pair up",
        reactants=(("H", 2),),
        energy=3.0,
        expected_products=("Hydrogen Gas (H₂)",),
    ),
}


def get_preset(name: str) -> ExperimentPreset:
    key = str(name).strip().lower()
    if key not in EXPERIMENT_PRESETS:
        raise KeyError(f"Unknown experiment preset: {name!r} (known: {sorted(EXPERIMENT_PRESETS)})")
    return EXPERIMENT_PRESETS[key]


def list_presets() -> List[str]:
    return sorted(EXPERIMENT_PRESETS)
