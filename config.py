import os
from pathlib import Path

import platformdirs
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent / '.env'
load_dotenv(dotenv_path=env_path)


# Settings file and log file location. Override with WALLART_CONFIG_DIR in the .env file
AppDataDir = Path(
    os.getenv("WALLART_CONFIG_DIR", "")
    or platformdirs.user_config_dir("WallArt", appauthor=False, ensure_exists=True)
)
ConfigFileName = "config.json"
LogFileName = "wallart.log"

# Processed wallpapers end up here. Override with WALLART_CACHE_DIR in the .env file
CacheDirectory = Path(
    os.getenv("WALLART_CACHE_DIR", "")
    or os.path.join(platformdirs.user_pictures_dir(), "Wallpaper Art")
)

# "DEBUG", "INFO", "WARNING"...
LogLevel = os.getenv("WALLART_LOG_LEVEL", "INFO").upper()

# Network limits enforced by the HTTP transport
RequestTimeoutSeconds = 30
MaxResponseBytes = 50 * 1024 * 1024
UserAgent = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) WallArt/1.0"

# Allowed rotation intervals in minutes; anything else falls back to the first entry
AllowedIntervals = (60, 360, 1440)

# Scheduler wake-up period. The wall clock is compared on every wake-up,
# so sleeping through a run is noticed at most this many seconds late.
SchedulerPollSeconds = 10

# Sleep/clock-change detection used to recover missed rotations
SystemEventSettings = {
    "check_seconds": 5,
    "threshold_seconds": 30,
}

# Order in which the catalogs are registered. Names double as toggle keys in the settings file.
ProviderNames = [
    "Art Institute of Chicago",
    "Cleveland Museum of Art",
    "Metropolitan Museum of Art",
    "Victoria and Albert Museum",
]

# Catalogs tried first most of the time; the weight is the probability of using the bias
PreferredProviders = ["Art Institute of Chicago", "Metropolitan Museum of Art"]
PreferredProviderWeight = 0.8

# Attempts per catalog before moving on to the next one
ProviderAttempts = 3

# Anything whose title or medium mentions one of these is a decorative object, not a painting
ExcludedObjectWords = [
    "vase", "pottery", "ceramic", "vessel", "bowl", "plate",
    "cup", "dish", "urn", "jar", "pitcher",
]

# Art Institute of Chicago asks API clients to identify themselves
AicUserAgent = "WallArtClient/1.1"

# Wallpaper rendering
ImageSettings = {
    "target_size": (3840, 2160),
    "crop_tolerance": 0.50,  # max |source ratio - target ratio| still cropped instead of padded
    "pad_color": (0, 0, 0),
    "jpeg_quality": 95,
    "text_color": (255, 255, 255),
    "padding_ratio": 0.03,
    "wrap_ratio": 0.55,
    "font_ratio": 0.02,  # starting font size relative to image width, before scale
    "font_step": 2,
    "font_floor": 10,
    "line_spacing": 1.2,
}

# Optional custom TrueType font, e.g. WALLART_FONT=C:/Windows/Fonts/georgia.ttf
FontPath = os.getenv("WALLART_FONT", "")

FontCandidates = [
    "C:/Windows/Fonts/segoeui.ttf",
    "C:/Windows/Fonts/arial.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
    "/Library/Fonts/Arial.ttf",
]

# Most recent artworks kept after each successful rotation
RotationHistoryLimit = 20
