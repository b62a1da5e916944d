from __future__ import annotations
from pathlib import Path
from typing import Dict, NamedTuple, Optional, Tuple, Union
import json
import logging

logger = logging.getLogger(__name__)


class Element(NamedTuple):
    """Immutable chemical facts for one element, keyed by atomic number."""
    atomic_number: int
    symbol: str
    name: str
    valence_electrons: int
    max_bonds: int
    electronegativity: float
    atomic_radius: float
    ionization_energy: float
    electron_affinity: float
    oxidation_states: Tuple[int, ...]


# First three periods (H..Ar). Radii in simulation length units, ionization
# and affinity energies in eV.
_DEFAULT_ELEMENTS: Tuple[Element, ...] = (
    Element(1, "H", "Hydrogen", 1, 1, 2.20, 0.37, 13.6, 0.75, (-1, 1)),
    Element(2, "He", "Helium", 2, 0, 0.0, 0.32, 24.6, 0.0, (0,)),
    Element(3, "Li", "Lithium", 1, 1, 0.98, 1.52, 5.4, 0.62, (1,)),
    Element(4, "Be", "Beryllium", 2, 2, 1.57, 1.12, 9.3, 0.0, (2,)),
    Element(5, "B", "Boron", 3, 3, 2.04, 0.88, 8.3, 0.28, (3,)),
    Element(6, "C", "Carbon", 4, 4, 2.55, 0.77, 11.3, 1.26, (-4, -3, -2, -1, 0, 1, 2, 3, 4)),
    Element(7, "N", "Nitrogen", 5, 3, 3.04, 0.75, 14.5, 0.07, (-3, -2, -1, 0, 1, 2, 3, 4, 5)),
    Element(8, "O", "Oxygen", 6, 2, 3.44, 0.73, 13.6, 1.46, (-2, -1, 0, 1, 2)),
    Element(9, "F", "Fluorine", 7, 1, 3.98, 0.71, 17.4, 3.40, (-1,)),
    Element(10, "Ne", "Neon", 8, 0, 0.0, 0.69, 21.6, 0.0, (0,)),
    Element(11, "Na", "Sodium", 1, 1, 0.93, 1.86, 5.1, 0.55, (1,)),
    Element(12, "Mg", "Magnesium", 2, 2, 1.31, 1.60, 7.6, 0.0, (2,)),
    Element(13, "Al", "Aluminum", 3, 3, 1.61, 1.43, 6.0, 0.43, (3,)),
    Element(14, "Si", "Silicon", 4, 4, 1.90, 1.18, 8.2, 1.39, (-4, 2, 4)),
    Element(15, "P", "Phosphorus", 5, 5, 2.19, 1.10, 10.5, 0.75, (-3, 3, 5)),
    Element(16, "S", "Sulfur", 6, 6, 2.58, 1.04, 10.4, 2.08, (-2, 2, 4, 6)),
    Element(17, "Cl", "Chlorine", 7, 7, 3.16, 0.99, 13.0, 3.61, (-1, 1, 3, 5, 7)),
    Element(18, "Ar", "Argon", 8, 0, 0.0, 0.97, 15.8, 0.0, (0,)),
)

# In-memory catalog, atomic number -> Element
ELEMENTS: Dict[int, Element] = {e.atomic_number: e for e in _DEFAULT_ELEMENTS}


def get_element(atomic_number: int) -> Optional[Element]:
    """
    Return the Element for an atomic number, or None if it is not catalogued.

    Callers must treat None as "unknown element": bonding against it is
    ineligible.
    """
    try:
        return ELEMENTS.get(int(atomic_number))
    except (TypeError, ValueError):
        return None


def get_element_by_symbol(symbol: str) -> Optional[Element]:
    if not isinstance(symbol, str):
        return None
    sym = symbol.strip().capitalize()
    for element in ELEMENTS.values():
        if element.symbol == sym:
            return element
    return None


def element_symbol(atomic_number: int) -> str:
    """Symbol for display; uncatalogued elements render as ``E<n>``."""
    element = get_element(atomic_number)
    return element.symbol if element else f"E{atomic_number}"


def load_elements(path: Union[Path, str]) -> Dict[int, Element]:
    """
    Replace the in-memory catalog with entries read from a JSON file.

    The file holds a list of objects whose keys match the ``Element`` fields.
    Malformed entries are skipped with a warning; a missing or unreadable file
    leaves the current catalog untouched.

    Returns
    -------
    Dict[int, Element]
        The catalog now in effect.
    """
    try:
        with open(Path(path), "r", encoding="utf-8") as fh:
            raw = json.load(fh)
    except (OSError, json.JSONDecodeError):
        logger.exception(f"Failed to load element catalog from {path}; keeping current catalog.")
        return ELEMENTS

    loaded: Dict[int, Element] = {}
    for entry in raw if isinstance(raw, list) else []:
        try:
            element = Element(
                atomic_number=int(entry["atomic_number"]),
                symbol=str(entry["symbol"]),
                name=str(entry["name"]),
                valence_electrons=int(entry["valence_electrons"]),
                max_bonds=int(entry["max_bonds"]),
                electronegativity=float(entry["electronegativity"]),
                atomic_radius=float(entry["atomic_radius"]),
                ionization_energy=float(entry["ionization_energy"]),
                electron_affinity=float(entry.get("electron_affinity", 0.0)),
                oxidation_states=tuple(int(s) for s in entry.get("oxidation_states", ())),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Skipping malformed element entry: {entry!r}")
            continue
        loaded[element.atomic_number] = element

    if loaded:
        ELEMENTS.clear()
        ELEMENTS.update(loaded)
        logger.info(f"Loaded {len(loaded)} elements from {path}")
    return ELEMENTS


def reset_elements() -> Dict[int, Element]:
    """Restore the built-in catalog."""
    ELEMENTS.clear()
    ELEMENTS.update({e.atomic_number: e for e in _DEFAULT_ELEMENTS})
    return ELEMENTS
