import os

from dotenv import load_dotenv

# Load .env for local development (no-op if the file doesn't exist or in prod
# where vars are injected directly into the environment by the platform).
load_dotenv()

# Runtime environment: "development" | "production"
APP_ENV: str = os.getenv("APP_ENV", "development")

# Signs the double-submit cookie so a client cannot plant its own value.
# Must be set to a strong random value in production
# (e.g. `python -c "import secrets; print(secrets.token_hex(32))"`)
DEFAULT_SECRET_KEY = "change-me-in-production"
SECRET_KEY: str = os.getenv("SECRET_KEY", DEFAULT_SECRET_KEY)

IS_PROD: bool = APP_ENV == "production"
