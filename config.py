import os


def _flag(name, default):
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "bookborrow-secret")

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///library.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "sqlalchemy" or "memory"
    STORE_BACKEND = os.environ.get("STORE_BACKEND", "sqlalchemy")

    LOAN_PERIOD_DAYS = int(os.environ.get("LOAN_PERIOD_DAYS", "14"))

    SEED_ON_STARTUP = _flag("SEED_ON_STARTUP", "true")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    FRAPPE_API_URL = os.environ.get(
        "FRAPPE_API_URL", "https://frappe.io/api/method/frappe-library"
    )
    FRAPPE_TIMEOUT = float(os.environ.get("FRAPPE_TIMEOUT", "10"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    STORE_BACKEND = "memory"
    SEED_ON_STARTUP = False
    LOG_LEVEL = "DEBUG"
