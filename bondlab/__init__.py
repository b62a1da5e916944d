# bondlab/__init__.py
from .atoms import Atom
from .bonds import Bond
from .config import SimulationMode, get_mode
from .elements_data import Element, get_element
from .lifecycle import BondRequestResult
from .molecules import Molecule
from .products import DiscoveryRegistry, extract_connected_components
from .simulation import Simulation
from .simulation_manager import SimulationManager

__all__ = [
    "Atom", "Bond", "Molecule", "Element", "get_element",
    "SimulationMode", "get_mode", "BondRequestResult",
    "DiscoveryRegistry", "extract_connected_components",
    "Simulation", "SimulationManager",
]
