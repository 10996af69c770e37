import os
from dotenv import load_dotenv

load_dotenv()

def _as_bool(v: str | None, default: bool = False) -> bool:
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}

class Settings:
    # App
    APP_NAME: str = os.getenv("APP_NAME", "library-circulation")
    ENV: str = os.getenv("ENV", "dev")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # REST collaborator
    LIBRARY_API_BASE_URL: str = os.getenv("LIBRARY_API_BASE_URL", "http://localhost:8081/api")
    LIBRARY_API_TIMEOUT: int = int(os.getenv("LIBRARY_API_TIMEOUT", "20"))

    # Circulation policy
    WEEKLY_LATE_FEE: int = int(os.getenv("WEEKLY_LATE_FEE", "100"))
    DEFAULT_LOAN_DAYS: int = int(os.getenv("DEFAULT_LOAN_DAYS", "14"))

    # Compare the fee returned by the server with the local calculation
    VERIFY_SERVER_FEES: bool = _as_bool(os.getenv("VERIFY_SERVER_FEES"), True)

settings = Settings()
