import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Clock times are logged in the source zone and shown in the display zone
PLAYTIME_SOURCE_TZ = os.getenv("PLAYTIME_SOURCE_TZ", "Asia/Bangkok")
PLAYTIME_DISPLAY_TZ = os.getenv("PLAYTIME_DISPLAY_TZ", "America/New_York")

LEADERBOARD_SIZE = int(os.getenv("LEADERBOARD_SIZE", "10"))

# Database: DATABASE_URL wins; otherwise a local SQLite file (refused in prod)
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_PATH = os.getenv("DATABASE_PATH", "./pokercrm.db")
ENV = os.getenv("ENV", "dev").lower()
