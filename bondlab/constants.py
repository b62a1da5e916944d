# -----------------------
# Simulation clock
# -----------------------
DEFAULT_DT = 1.0 / 60.0      # seconds of simulated time per tick

# -----------------------
# Bond eligibility
# -----------------------
BOND_THRESHOLD = 3.5         # pairs closer than this may start forming a bond
ATTRACTION_THRESHOLD = 10.0  # pairs closer than this (and eligible) attract
ATTRACTION_STRENGTH = 0.05   # force = (ATTRACTION_THRESHOLD - d) * strength
ACTIVATION_SCALE = 0.1       # scale applied to mean ionization energy
MIN_ACTIVATION_ENERGY = 1.0  # activation energy floor
PREFERENCE_RADIUS = 5.0      # competitor search radius for preference rules

# -----------------------
# Bond lifecycle
# -----------------------
BOND_LENGTH_FACTOR = 1.2     # ideal length = (rA + rB) * factor
BOND_BREAK_FACTOR = 3.0      # break length = (rA + rB) * factor
DEFAULT_BOND_LENGTH = 2.0    # used when an element is unknown
FALLBACK_ATOMIC_RADIUS = 1.0
BOND_COOLDOWN = 1.0          # seconds between eligibility evaluations of a pair
BOND_FORMATION_DURATION = 2.0  # seconds for a forming bond to complete
BOND_FORMATION_FORCE = 10.0  # peak pull applied while forming
STRESS_WARNING_RATIO = 0.7   # stress ratio above which a bond is "stressed"

# -----------------------
# Molecules
# -----------------------
MOLECULE_MASS_SCALE = 0.8    # compound body mass = sum(member masses) * scale
MOLECULE_DAMPING = 0.1
SEPARATION_SPEED = 1.5       # outward speed of members after breakMolecule
MAX_PREFIX_COUNT = 10        # largest count with a multiplicative prefix

# -----------------------
# Energy / thermal model
# -----------------------
MAX_TRANSIENT_ENERGY = 100.0
KINETIC_ENERGY_SCALE = 10.0  # kinetic term = 0.5 * m * v^2 * scale
ENERGY_EPSILON = 0.01        # transient heat below this snaps to zero
BASE_TEMPERATURE = 300.0     # Kelvin
TEMPERATURE_PER_ENERGY = 10.0  # Kelvin per unit of transient heat
HEAT_JITTER_FACTOR = 0.05    # continuous heating jitter = intensity * factor
DEFAULT_HEAT_INTENSITY = 5.0

# -----------------------
# Reactions
# -----------------------
REACTION_ENERGY_THRESHOLD = 20.0   # transient heat needed before checks run
MOLECULE_REACTION_PROXIMITY = 10.0
ATOM_MOLECULE_PROXIMITY = 8.0
CLUSTER_PROXIMITY = 6.0
THREE_ATOM_ENERGY = 20.0
ENERGY_PER_CLUSTER_BOND = 8.0
MAX_STABLE_CLUSTER = 6
REACTION_SPACING = 4.0       # distance between repositioned product groups
DEFAULT_VALENCE = 4          # assumed valence for unknown elements
DEFAULT_ELECTRONEGATIVITY = 2.0

# -----------------------
# Persistence
# -----------------------
DEFAULT_DATA_DIR = "data"
DEFAULT_REGISTRY_FILENAME = "discovered_molecules.json"
DEFAULT_EVENTS_FILENAME = "events.jsonl"
MAX_EVENT_HISTORY = 10000

# -----------------------
# Logging
# -----------------------
LOGGING_LEVEL = "INFO"  # options: DEBUG, INFO, WARNING, ERROR

# -----------------------
# Misc
# -----------------------
EPSILON = 1e-12  # small value to prevent div by zero or numerical issues
