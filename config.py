"""
GridLife Configuration
All tunable parameters for the artificial-life simulation.
"""

# ─── World ────────────────────────────────────────────────────────────────────
GRID_SIZE  = 100     # toroidal grid is GRID_SIZE x GRID_SIZE cells
NUM_CORES  = 50      # stateful cores seeded at reset (constant afterwards)

# Temperature field: three superposed waves + noise, mapped into 0..1
TEMP_WAVES = (
    # (axis, wavelength, amplitude)
    ("x",  30, 0.40),
    ("y",  45, 0.20),
    ("xy", 25, 0.15),
)
TEMP_INIT_NOISE    = 0.1     # width of uniform noise added at reset
TEMP_DIFFUSION     = 0.1     # blend factor with the 8-neighbour average
TEMP_STEP_NOISE    = 0.02    # width of uniform noise added every step

# Catalyser exchange between the lower and upper layers
CATALYSER_UPPER_MAX   = 2.0
CATALYSER_UPPER_DECAY = 0.8  # upper *= this during the emit phase

# ─── Cores & energy ───────────────────────────────────────────────────────────
CORE_INCUBATION_CATALYSER = 0.2   # lower catalyser needed to incubate
CORE_BLOOM_TEMPERATURE    = 0.2   # temperature that counts towards blooming
CORE_BLOOM_STEPS          = 5     # consecutive qualifying updates to bloom
CORE_BLOOM_DURATION       = 5     # ticks a core stays bloomed
CORE_CATALYSER_RELEASE    = 0.1   # released into lower catalyser on wilting
CORE_MOVE_DELAY           = 3     # ticks between consumption and relocation

CORE_STATE_VALUES = {
    "none":      0.0,
    "dormant":   0.3,
    "incubated": 0.6,
    "bloomed":   0.9,
}

ENERGY_LIFETIME = 5      # ticks before an uncollected manifestation expires
ENERGY_REWARD   = 10     # energy credited when a manifestation is consumed

# Perception confidence by Manhattan distance (anything further → fallback)
CONFIDENCE_BY_DISTANCE = {0: 1.0, 1: 0.9, 2: 0.7, 3: 0.5, 4: 0.3}
CONFIDENCE_FALLBACK    = 0.1

# ─── Agents ───────────────────────────────────────────────────────────────────
INITIAL_ENERGY    = 100.0
ENERGY_DECAY      = 0.5       # passive loss per update
LOW_ENERGY        = 20.0      # below this the agent is penalised
VISION_RADIUS     = 4         # 9x9 window → 81 points
MEMORY_CAPACITY   = 50
MEMORY_RECALL     = 5         # experiences encoded into the input vector
REWARD_WINDOW     = 10        # ticks a reward stays in the trailing window
REWARD_GAIN       = 1.0
REWARD_LOW_ENERGY = -0.1
LEARNING_RATE     = 0.001
TIME_CYCLE        = 100       # period of the harmonic time encoding

ACTION_LABELS = {
    0: "up",
    1: "down",
    2: "left",
    3: "right",
    4: "stay",
}
NUM_ACTIONS = len(ACTION_LABELS)
STAY_ACTION = 4

# ─── Neural Policy ────────────────────────────────────────────────────────────
NUM_FIELDS   = 5
VISION_POINTS = (2 * VISION_RADIUS + 1) ** 2
INPUT_SIZE   = (VISION_POINTS * NUM_FIELDS     # vision fields   (405)
                + VISION_POINTS                # confidences     (81)
                + 6                            # internal state  (6)
                + MEMORY_RECALL * 10)          # memory summary  (50)
HIDDEN_SIZES = (256, 128, 64)
POLICY_SIZES = (INPUT_SIZE, *HIDDEN_SIZES, NUM_ACTIONS)
INIT_STD     = 0.1
NUDGE_THRESHOLD = 0.01   # rewards smaller than this are ignored

# ─── Population ───────────────────────────────────────────────────────────────
POPULATION        = 5
MUTATION_RATE     = 0.1   # probability each parameter is perturbed
MUTATION_STRENGTH = 0.1   # std-dev of the perturbation
STATS_HISTORY     = 100   # aggregate records kept for trend analysis
TREND_WINDOW      = 10

# ─── Host loop ────────────────────────────────────────────────────────────────
MAX_STEPS                = 2000
TICK_RATE                = None   # steps per second; None = as fast as possible
POLICY_SNAPSHOT_INTERVAL = 100    # steps between policy snapshot events
PROGRESS_INTERVAL        = 100    # steps between CLI progress lines

# ─── Output / Logging ─────────────────────────────────────────────────────────
SAVE_DIR          = "output"      # directory for saved images, logs, policies
SNAPSHOT_INTERVAL = 250           # save a world snapshot every N steps
RECORDER_MEMORY   = 1000          # per-step rows a Recorder keeps in memory
LOG_LEVEL         = "WARNING"
