"""
NetAuth - Global Constants and Configuration Values

This module defines all constants used throughout NetAuth.
All magic numbers and configuration defaults are centralized here.

Version: 1.0.0
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "NetAuth"

# Network Constants
DEFAULT_SERVER_PORT = 7777
DEFAULT_HOST = "127.0.0.1"
HANDSHAKE_TIMEOUT = 15  # seconds, enforced by the reference host only
READ_CHUNK_SIZE = 64 * 1024

# Message Limits
MAX_MESSAGE_SIZE = 1024 * 1024  # 1 MB
MAX_TEXT_MESSAGE_SIZE = 64 * 1024  # 64 KB
MAX_CREDENTIAL_LENGTH = 256  # bytes, per field

# Key Agreement Constants
DEFAULT_P_SELECTOR = 12
DEFAULT_GENERATOR = 6
PRIVATE_EXPONENT_BITS = 256
RANDOM_PRIME_BITS = 512  # smallest size OpenSSL will generate
MAX_PRIME_FACTORS = 3
TRIAL_DIVISION_BOUND = 1 << 16
PRIMITIVE_ROOT_SEARCH_WINDOW = 4096
MAX_PRIMITIVE_ROOTS = 3

# Key Derivation Constants
KDF_ITERATIONS = 1024
SALT_SIZE = 64
KEY_SIZE_128 = 16
KEY_SIZE_256 = 32

# Cipher Constants
BLOCK_SIZE = 16  # AES block size in bytes
IV_SIZE = 16
SALT_AND_IV_SIZE = SALT_SIZE + IV_SIZE

# Authentication Constants
MAX_AUTH_ATTEMPTS = 2

# Handshake State Machine
MAX_TRANSITION_HISTORY = 50

# File Paths
DEFAULT_DATA_DIR = "~/.netauth"
CONFIG_FILENAME = "config.toml"
LOG_FILENAME = "netauth.log"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5

# Protocol Version
PROTOCOL_VERSION = 1
