"""
Shared default values for the capture core.

Keep this module free of imports; config, controllers and tests read it.
"""

# Picture-size selection. Both ceilings apply; the smaller one wins.
DEFAULT_MAX_IMAGE_PIXEL_SIZE = 5 * 1024 * 1024
DEFAULT_MAX_SNAPSHOT_PIXEL_SIZE = 5 * 1024 * 1024
DEFAULT_ESTIMATED_JPEG_FILE_SIZE = 300 * 1024
DEFAULT_PREFERRED_PROFILES = ("720p", "480p", "cif")
THUMBNAIL_ASPECT_TOLERANCE = 0.05

# Recording admission
DEFAULT_RECORD_SPACE_MIN = 2 * 1024 * 1024
DEFAULT_RECORD_SPACE_PADDING = 1024 * 1024
DEFAULT_MIN_RECORDING_TIME_MS = 500
DEFAULT_TIMER_TICK_MS = 1000
DEFAULT_WRITE_TIMEOUT_S = 30.0

# Low-capacity threshold for stills: width * height * bytes + slack
DEFAULT_BYTES_PER_PIXEL = 4
DEFAULT_HEADER_SLACK_BYTES = 4096

# Storage layout
DEFAULT_STORAGE_ROOT = "./media"
DEFAULT_PICTURES_DIR = "pictures"
DEFAULT_VIDEOS_DIR = "videos"
DEFAULT_DCF_TAG = "CAMRA"

# Session timing
DEFAULT_FOCUS_FAIL_RESET_MS = 1000
DEFAULT_PREVIEW_START_TIMEOUT_S = 10.0
DEFAULT_CAMERA_INDEX = 0
FRONT_CAMERA_INDEX = 1

# Viewport used for thumbnail and preview selection
DEFAULT_VIEWPORT = (320, 480)

DEFAULT_POSTER_JPEG_QUALITY = 85
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = "./logs/camera.log"
