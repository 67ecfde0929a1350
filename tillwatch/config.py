import os


def _env_bool(name: str, default: str = "False") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int):
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


# Service Configuration
class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "tillwatch-dev-secret")
    MANAGER_PASSWORD = os.environ.get("MANAGER_PASSWORD", "manager")
    # Trust an upstream OIDC proxy's identity headers instead of the password gate
    TRUST_PROXY_AUTH = _env_bool("TRUST_PROXY_AUTH")

    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", os.path.join(os.getcwd(), "uploads"))
    MAX_CONTENT_LENGTH = 100 * 1024 * 1024  # 100MB
    ALLOWED_POS_EXTENSIONS = {'csv', 'txt', 'xls', 'xlsx'}
    CORS_ORIGINS = [o for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",") if o]

    LOG_FILE = os.environ.get("LOG_FILE", "server.log")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

    # 0 keeps upload hashes forever
    DUPLICATE_RETENTION_DAYS = _env_int("DUPLICATE_RETENTION_DAYS", 0)
    DEFAULT_STORE_ID = os.environ.get("DEFAULT_STORE_ID", "001")

    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
    OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip('/')
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o")
    RISK_TIMEOUT = _env_int("RISK_TIMEOUT", 30)

    KNOWN_DVR_HOST = os.environ.get("KNOWN_DVR_HOST", "192.168.0.5")
