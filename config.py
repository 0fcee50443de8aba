import os
import yaml

ROOT_PATH = os.path.dirname(__file__)
CONFIG_FILE_PATH = os.environ.get(
    "INVITATION_ENGINE_CONFIG", os.path.join(ROOT_PATH, "env.yaml")
)

if os.path.exists(CONFIG_FILE_PATH):
    with open(CONFIG_FILE_PATH, "r") as r_file:
        data = yaml.safe_load(r_file) or dict()
else:
    data = dict()


class ApplicationConfig:
    DB_URI = data.get("DB_URI", "sqlite+aiosqlite:///./invitations.db")
    API_PREFIX = data.get("API_PREFIX", "/api")
    API_PORT = data.get("API_PORT", 8000)
    API_HOST = data.get("API_HOST", "0.0.0.0")
    CORS_ORIGINS = data.get("CORS_ORIGINS", [])
    CORS_ALLOW_CREDENTIALS = data.get("CORS_ALLOW_CREDENTIALS", True)
    LOG_LEVEL = data.get("LOG_LEVEL", "INFO")
    ADMIN_API_KEY = data.get("ADMIN_API_KEY", "test-admin-key-12345")

    # Token claims
    TOKEN_ISSUER = data.get("TOKEN_ISSUER", "supplier-onboarding-service")
    TOKEN_SUBJECT = data.get("TOKEN_SUBJECT", "invitation-service")
    TOKEN_AUDIENCE = data.get("TOKEN_AUDIENCE", "supplier-portal")
    TOKEN_SCOPE = data.get("TOKEN_SCOPE", ["supplier.onboard"])
    TOKEN_ALGORITHM = data.get("TOKEN_ALGORITHM", "RS256")
    TOKEN_KEY_ID = data.get("TOKEN_KEY_ID", "supplier-onboarding-key-1")

    # Key material: inline PEM or a file path
    SIGNING_PRIVATE_KEY = data.get("SIGNING_PRIVATE_KEY", "")
    SIGNING_PRIVATE_KEY_PATH = data.get("SIGNING_PRIVATE_KEY_PATH", "")
    VERIFICATION_PUBLIC_KEYS = data.get("VERIFICATION_PUBLIC_KEYS", {})
    DEV_EPHEMERAL_KEYS = bool(data.get("DEV_EPHEMERAL_KEYS", False))

    # Lifecycle limits
    DEFAULT_EXPIRY_DAYS = data.get("DEFAULT_EXPIRY_DAYS", 7)
    MIN_EXPIRY_DAYS = data.get("MIN_EXPIRY_DAYS", 1)
    MAX_EXPIRY_DAYS = data.get("MAX_EXPIRY_DAYS", 30)
    MAX_VALIDATION_ATTEMPTS = data.get("MAX_VALIDATION_ATTEMPTS", 5)
    CLOCK_TOLERANCE_SECONDS = data.get("CLOCK_TOLERANCE_SECONDS", 0)
    CREATION_RATE_LIMIT = data.get("CREATION_RATE_LIMIT", 20)
    CREATION_RATE_WINDOW_SECONDS = data.get("CREATION_RATE_WINDOW_SECONDS", 3600)
    OPERATION_TIMEOUT_SECONDS = data.get("OPERATION_TIMEOUT_SECONDS", 10.0)
    INVITATION_BASE_URL = data.get(
        "INVITATION_BASE_URL", "http://localhost:5000/supplier/onboarding"
    )
