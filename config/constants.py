"""
Centralized constants for Image Optimizer.
Defaults for the batch processor; overridable through Settings.
"""

# ===========================================
# BATCH PROCESSING
# ===========================================
BATCH_SIZE = 10                       # max items per tick, 0 = unlimited
BATCH_MAX_EXECUTION_TIME = 25         # seconds of work per tick
BATCH_MEMORY_THRESHOLD = 0.8          # fraction of memory ceiling
BATCH_MEMORY_LIMIT = "-1"             # PHP-style, -1 = unlimited
BATCH_TICK_INTERVAL = 60              # seconds between ticks
BATCH_MAX_ERRORS = 100                # Progress.errors cap

# ===========================================
# RETRY
# ===========================================
MAX_RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 60                 # seconds, doubled per retry
RETRY_MAX_DELAY = 3600                # seconds

# ===========================================
# PRIORITY
# ===========================================
PRIORITY_HIGH_MAX_BYTES = 500 * 1024          # < 500KB -> HIGH
PRIORITY_NORMAL_MAX_BYTES = 2 * 1024 * 1024   # < 2MB -> NORMAL

# ===========================================
# FORMATS
# ===========================================
SUPPORTED_FORMATS = ["webp", "avif"]
SOURCE_EXTENSIONS = [".jpg", ".jpeg", ".png", ".gif"]
WEBP_QUALITY = 80
AVIF_QUALITY = 75
MAX_FILE_SIZE = 10 * 1024 * 1024      # 10MB

# ===========================================
# CLEANUP
# ===========================================
TEMP_FILE_PREFIX = "image-optimizer-temp-"
TEMP_FILE_MAX_AGE = 3600              # 1 hour
FAILED_CONVERSION_MAX_AGE = 30 * 86400  # 30 days

# ===========================================
# STORAGE
# ===========================================
STORE_BACKEND = "sqlite"              # memory | json | sqlite
STORE_PATH = "data/batch_state.db"
QUEUE_KEY = "image_optimizer.batch_queue"
PROGRESS_KEY = "image_optimizer.batch_progress"
FAILED_CONVERSIONS_KEY = "image_optimizer.failed_conversions"

# ===========================================
# LOGGING
# ===========================================
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = 'logs/image_optimizer.log'
LOG_MAX_SIZE_MB = 10
LOG_BACKUP_COUNT = 5
