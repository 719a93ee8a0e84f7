import os
import pathlib

from dotenv import load_dotenv

load_dotenv()

# Layer configuration in draw order: (name, directory)
# "background" is shared, every other layer lives under a category directory
LAYERS = [
    ("background", "background"),
    ("face", "face"),
    ("clothes", "clothes"),
    ("mouth", "mouth"),
    ("hair", "hair"),
    ("eye", "eye"),
]
SHARED_LAYERS = {"background"}

CATEGORY_DIRECTORIES = {
    "male": "male",
    "female": "female",
    "monster": "monster",
}

CANVAS_SIZE = (400, 400)
JPEG_QUALITY = 80

# OS metadata files that never hold assets (dot-files are skipped too)
HIDDEN_FILES = {".DS_Store", "Thumbs.db", "desktop.ini"}

# Path constants
ASSETS_PATH = pathlib.Path(os.getenv("AVATAR_ASSETS_PATH", "data"))
OUTPUT_PATH = pathlib.Path(os.getenv("AVATAR_OUTPUT_PATH", "output"))

LOG_LEVEL: str = os.getenv("AVATAR_LOG_LEVEL", "INFO")
