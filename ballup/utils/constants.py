"""
Constants shared across the BallUp services.
"""

# Game bounds
MIN_PLAYERS = 2
MAX_PLAYERS = 50
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480
DEFAULT_DURATION_MINUTES = 90
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

# A joined game still counts as "current" this long after its start time
ACTIVE_GAME_LOOKBACK_HOURS = 3

# Nearby search
DEFAULT_NEARBY_RADIUS_KM = 10
MAX_NEARBY_RADIUS_KM = 100

# Pagination
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
DEFAULT_LOG_PAGE_SIZE = 50

# Password hashing
BCRYPT_ROUNDS = 12

# Resource ids are canonical UUID strings
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
