import os
from dotenv import load_dotenv
load_dotenv()
# ---- Analysis backend ----
API_URL = os.environ.get("HOLDERMAP_API_URL", "http://localhost:3001/api")
API_TIMEOUT_SEC = int(os.environ.get("HOLDERMAP_API_TIMEOUT_SEC", "15"))
API_MAX_RETRIES = int(os.environ.get("HOLDERMAP_API_MAX_RETRIES", "3"))
API_REQUESTS_PER_SEC = 2.0

STATUS_POLL_INTERVAL_SEC = 2.0
ONGOING_POLL_INTERVAL_SEC = 5.0
ANALYSIS_TIMEOUT_SEC = float(os.environ.get("HOLDERMAP_ANALYSIS_TIMEOUT_SEC", "1800"))

# ---- Logging ----
LOG_LEVEL = os.environ.get("HOLDERMAP_LOG_LEVEL", "INFO")

# ----- Node styling ------
NODE_RADIUS_MIN = 15.0
NODE_RADIUS_MAX = 60.0

# percent-of-supply thresholds
HIGH_SHARE_PCT = 10.0
MEDIUM_SHARE_PCT = 1.0

COLOR_TREASURY = "#FFD700"
COLOR_HIGH = "#FF3B9A"
COLOR_MEDIUM = "#7A73FF"
COLOR_LOW = "#42C7FF"
COLOR_AGGREGATE = "#808080"
COLOR_LINK = "#42C7FF"

# ----- Reduction ------
MAX_NODES = int(os.environ.get("HOLDERMAP_MAX_NODES", "1000"))
MIN_BALANCE_FRACTION = float(os.environ.get("HOLDERMAP_MIN_BALANCE_FRACTION", "0.001"))
BUCKET_WIDTH_PCT = 0.01
AGGREGATE_ID_PREFIX = "Others"

# ----- Time filter ------
MONTHS_BACK_OPTIONS = (1, 2, 3, 4, 6)
DEFAULT_MONTHS_BACK = 6

# ----- Force layout ------
ALPHA_START = 1.0
ALPHA_MIN = 0.001
ALPHA_DECAY_FACTOR = 0.977      # ~300 ticks from 1.0 to ALPHA_MIN
ALPHA_RESTART = 0.3
VELOCITY_DECAY = 0.4

CHARGE_STRENGTH = -30.0
CHARGE_DISTANCE_MAX = 250.0
CHARGE_DISTANCE_MIN = 1.0
LINK_DISTANCE = 100.0
LINK_STRENGTH = 0.5
CENTER_STRENGTH = 1.0
COLLIDE_STRENGTH = 0.7
COLLIDE_PADDING = 2.0

SEED_RADIUS = 500.0
SEED_SPACING = 30.0            # seed disc grows as SEED_SPACING * sqrt(n) past SEED_RADIUS

# ----- Viewport ------
ZOOM_MIN = 0.1
ZOOM_MAX = 4.0
WHEEL_ZOOM_RATE = 0.002
