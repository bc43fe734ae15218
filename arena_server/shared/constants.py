"""
Arena Game Server - Constants
Server-wide defaults and tuning values
"""

# ============================================================================
# NETWORK CONFIGURATION
# ============================================================================
GAME_SERVER_HOST = "0.0.0.0"
DEFAULT_SERVER_PORT = 8888
MAX_PAYLOAD_SIZE = 65535
COMPRESSION_THRESHOLD = 512  # Payloads larger than this are zlib-compressed
SESSION_TIMEOUT = 120.0  # Seconds without traffic before a session is dropped
HEARTBEAT_INTERVAL = 30.0
SERVER_START_TIMEOUT = 5.0  # Seconds to wait for the listener to bind
SERVER_STOP_TIMEOUT = 5.0

# ============================================================================
# SIMULATION
# ============================================================================
TICK_RATE = 20  # Simulation ticks per second
ARENA_WIDTH = 100.0
ARENA_HEIGHT = 100.0
MAX_MOVE_STEP = 5.0  # Largest distance a single move action may cover
MAX_PLAYER_NAME_LENGTH = 32

# ============================================================================
# STARTUP
# ============================================================================
DEFAULT_LOG_LEVEL = "INFORMATION"
DEFAULT_WAITING_TIME = 0.0
DEFAULT_EXPECTED_PLAYER_NUM = 1
PLAYER_POLL_INTERVAL = 1.0  # Seconds between player-count reports
DEFAULT_CONFIG_PATH = "config.json"

# ============================================================================
# EXIT CODES
# ============================================================================
EXIT_SUCCESS = 0
EXIT_FATAL = 1

# ============================================================================
# LOGGING
# ============================================================================
LOG_FORMAT = "[%(asctime)s %(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
VERBOSE_LEVEL_NUM = 5
