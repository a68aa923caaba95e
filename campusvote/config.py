# campusvote/config.py
# Central place for thresholds and constants
import os
from dotenv import load_dotenv

load_dotenv()

# --- Biometric policy ---
# Max Euclidean distance between two face descriptors still treated as the same face
FACE_THRESHOLD = 0.6

# Enrolled descriptors that must match during the password + face login flow
LOGIN_MIN_MATCHES = 2

# Enrolled descriptors that must match on the standalone verify-face step
VERIFY_MIN_MATCHES = 1

# --- Election lifecycle ---
RECONCILE_INTERVAL_SECONDS = 60
BOUNDARY_WAKE_HORIZON_SECONDS = 5
ELECTION_CODE_PREFIX = "E-"
ADMIN_CODE_PREFIX = "ADMIN"

# Programs offered under each faculty
FACULTY_PROGRAMS = {
    "FaCET": ("BSIT", "BSCE", "BSMRS", "BSM", "BSITM"),
    "FALS": ("BSES", "BSA", "BSBIO"),
    "FNAHS": ("BSN",),
    "FTED": ("BSED", "BEED"),
    "FGCE": ("BSC",),
    "FBM": ("BSBA", "BSHM"),
    "FHuSoCom": ("BSPolSci", "BSDC"),
}
FACULTIES = tuple(FACULTY_PROGRAMS)
STUDENT_EMAIL_DOMAIN = "dorsu.edu.ph"

# --- Security & JWT ---
SECRET_KEY = os.getenv("SECRET_KEY", "a_very_secret_key_for_dev_only")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
REGISTRATION_TOKEN_EXPIRE_MINUTES = int(os.getenv("REGISTRATION_TOKEN_EXPIRE_MINUTES", "30"))

# --- Database ---
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "campusvote")
ELECTIONS_COLLECTION_NAME = "elections"
STUDENTS_COLLECTION_NAME = "students"
ADMINS_COLLECTION_NAME = "admins"

# --- App ---
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENABLE_STATUS_SCHEDULER = os.getenv("ENABLE_STATUS_SCHEDULER", "true").lower() in ("1", "true", "yes")
