import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    access_control_route: str
    access_control_modules_tab: str
    access_control_tabs_tab: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///portal.db"),
        access_control_route=_getenv("ACCESS_CONTROL_ROUTE", "/control-accesos"),
        access_control_modules_tab=_getenv("ACCESS_CONTROL_MODULES_TAB", "/modulos"),
        access_control_tabs_tab=_getenv("ACCESS_CONTROL_TABS_TAB", "/pestanas"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        # module/tab routes guarding the access-control admin API
        "ACCESS_CONTROL_ROUTE": s.access_control_route,
        "ACCESS_CONTROL_MODULES_TAB": s.access_control_modules_tab,
        "ACCESS_CONTROL_TABS_TAB": s.access_control_tabs_tab,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
    }
