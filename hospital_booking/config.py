from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# SQLite file in the project root unless DATABASE_URL overrides it
DB_PATH = Path(__file__).resolve().parents[1] / "hospital_booking.sqlite"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DB_PATH}")

# In production: set it from the environment
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

# Booking grid used when listing free slots
SLOT_MINUTES = int(os.getenv("SLOT_MINUTES", "30"))
AVAILABILITY_MAX_DAYS = int(os.getenv("AVAILABILITY_MAX_DAYS", "62"))

# Seconds a single WebSocket send may take before the session is dropped
WS_SEND_TIMEOUT = float(os.getenv("WS_SEND_TIMEOUT", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Load the demo hospital on startup (idempotent)
SEED_ON_STARTUP = os.getenv("SEED_ON_STARTUP", "0").lower() in ("1", "true", "yes")
