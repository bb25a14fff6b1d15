# pscore/config/settings.py

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Get database URL from environment
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pscore.db")

# Handle Heroku's postgres:// vs postgresql:// difference
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

LLM_MODEL = os.getenv("LLM_MODEL", "gemini/gemini-2.5-pro")
LLM_API_KEY = os.getenv("LLM_API_KEY") or os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.5"))
PROMPTS_PATH = os.getenv("PROMPTS_PATH", str(Path(__file__).resolve().parents[1] / "prompts.yaml"))

# Simulated leaderboard round trip (seconds)
LEADERBOARD_DELAY_SEC = float(os.getenv("LEADERBOARD_DELAY_SEC", "0.5"))

# Display-only countdown while a score is generated
ESTIMATED_TIME_SEC = int(os.getenv("ESTIMATED_TIME_SEC", "20"))
COUNTDOWN_TICK_SEC = float(os.getenv("COUNTDOWN_TICK_SEC", "1.0"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
