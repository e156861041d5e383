"""
Constants and configuration values for toolfetch.

This module contains all hardcoded values, URLs, timeouts, and other constants
used throughout the application.
"""

# Supported targets (OS/architecture pairs)
SUPPORTED_TARGETS = (
    "win32-x64",
    "win32-arm64",
    "linux-x64",
    "linux-arm64",
    "darwin-x64",
    "darwin-arm64",
)

# Maps platform.machine() values onto target architecture names
MACHINE_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv8l": "arm64",
}

# Maps sys.platform prefixes onto target OS names
PLATFORM_OS_ALIASES = {
    "win32": "win32",
    "cygwin": "win32",
    "linux": "linux",
    "darwin": "darwin",
}

# GitHub API
GITHUB_API_BASE = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
GITHUB_MAX_PER_PAGE = 100
GITHUB_HOST = "github.com"

# Network timeouts and transfer settings
DEFAULT_REQUEST_TIMEOUT = 300
DEFAULT_CHUNK_SIZE = 8192
DEFAULT_MAX_CONCURRENT_DOWNLOADS = 5
DEFAULT_MAX_DOWNLOAD_RETRIES = 0
DEFAULT_DOWNLOAD_RETRY_DELAY = 1.0
DEFAULT_BACKOFF_FACTOR = 2.0
HTTP_STATUS_ERROR_THRESHOLD = 400
HTTP_STATUS_RETRY_THRESHOLD = 500
BYTES_PER_MEGABYTE = 1024 * 1024
FILE_SIZE_MB_LOGGING_THRESHOLD = 1.0

# Installed-state markers written into each tool destination
VERSION_FILE_NAME = "version.txt"
TARGET_FILE_NAME = "target.txt"

# Asset storage
CACHE_ID_SUFFIX = "_cache"
REPO_ARCHIVE_NAME = "repo.tar.gz"
TEMP_DIR_PREFIX = "toolfetch-"
DEFAULT_TOOLS_DIR_NAME = "tools"

# Archive handling
ZIP_EXTENSION = ".zip"
TAR_EXTENSIONS = (".tar", ".tgz", ".gz", ".bz2", ".xz")

# Configuration
APP_NAME = "toolfetch"
CONFIG_FILE_NAME = "toolfetch.yaml"
CONFIG_KEY_TOOLS = "TOOLS"

# Environment variable names
LOG_LEVEL_ENV_VAR = "TOOLFETCH_LOG_LEVEL"
GITHUB_TOKEN_ENV_VAR = "GITHUB_TOKEN"

# Logging configuration
LOGGER_NAME = "toolfetch"
LOG_FILE_NAME = "toolfetch.log"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# CLI exit codes
EXIT_SUCCESS = 0
EXIT_DOWNLOAD_FAILED = 1
EXIT_CONFIG_ERROR = 2
