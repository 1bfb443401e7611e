"""Constants for QIC."""

from qic import __version__

# Application constants
APP_NAME = "qic"
APP_VERSION = __version__

# Default paths
DEFAULT_OUT_DIR = "./out"
DEFAULT_CONFIG_FILE = "qic.yaml"
ORIGINALS_SUBDIR = "originals"
OPTIMIZED_SUBDIR = "optimized"
BACKUPS_SUBDIR = "backups"
ARTIFACTS_SUBDIR = "artifacts"
LOGS_SUBDIR = "logs"

# Run policy
SCOPES = ["all", "single"]
DEFAULT_SCOPE = "all"
DEFAULT_TARGET_KB = 500
DEFAULT_TOLERANCE_RATIO = 0.2
DEFAULT_CONCURRENCY = 4

# Optimizer search space
JPEG_QUALITY_MIN = 55
JPEG_QUALITY_MAX = 95
PNG_QUALITY_MIN = 40
PNG_QUALITY_MAX = 100
SEARCH_ITERATIONS = 9
SCALE_STEP = 0.95
MIN_SCALE = 0.55
FALLBACK_JPEG_QUALITY = 60
FALLBACK_PNG_QUALITY = 70

# Output encodings accepted by the blogging platform
OUTPUT_FORMATS = {".jpg": "jpeg", ".jpeg": "jpeg", ".png": "png"}
UPLOAD_SUPPORTED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".tiff", ".avif"}

# Diff verifier
DIFF_CONTEXT_CHARS = 120

# Download
DEFAULT_DOWNLOAD_TIMEOUT = 60.0
DEFAULT_MAX_REDIRECTS = 5
DEFAULT_USER_AGENT = f"Mozilla/5.0 (compatible; qic/{__version__})"

# Browser / editing surface timeouts (seconds)
DEFAULT_BROWSER_TIMEOUT = 120.0
DEFAULT_LOGIN_TIMEOUT = 15 * 60.0
DEFAULT_SETTLE_TIMEOUT = 15.0
DEFAULT_SETTLE_INTERVAL = 0.25
DEFAULT_PUBLISH_VERIFY_TIMEOUT = 90.0
DEFAULT_PUBLISH_VERIFY_INTERVAL = 5.0
DEFAULT_SUBMIT_TIMEOUT = 180.0
DEFAULT_UPLOAD_TIMEOUT = 60.0

# Deletion retry budget
DEFAULT_DELETE_EXTRA_PASSES = 1
DEFAULT_DELETE_RETRY_CREDITS = 1
DEFAULT_DELETE_MAX_PAGES = 50

# Blogging platform endpoints
PLATFORM_HOST = "qiita.com"
PLATFORM_BASE_URL = "https://qiita.com"
UPLOADED_IMAGES_URL = "https://qiita.com/settings/uploaded_images"
UPLOAD_PAGE_URL = "https://qiita.com/settings/uploading_images"
ASSET_HOST_MARKER = "qiita-image-store"
