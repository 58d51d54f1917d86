"""Runtime settings for the scheduling service, read from the environment (and `.env`)."""
import os
from dotenv import load_dotenv

load_dotenv()

# Doctor profile service
DOCTOR_SERVICE_URL = os.getenv("DOCTOR_SERVICE_URL", "https://clinic.example.com/api")
DOCTOR_TOKEN_URL = os.getenv("DOCTOR_TOKEN_URL", f"{DOCTOR_SERVICE_URL}/oauth2/token")
DOCTOR_CLIENT_ID = os.getenv("DOCTOR_CLIENT_ID")
DOCTOR_CLIENT_SECRET = os.getenv("DOCTOR_CLIENT_SECRET")

# HTTP surface
SCHEDULER_API_KEY = os.getenv("SCHEDULER_API_KEY", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Scheduling defaults
DEFAULT_SLOT_DURATION = int(os.getenv("DEFAULT_SLOT_DURATION", 30))
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", 10))
NO_REASON_PROVIDED = "No reason provided"
