"""Configuration loading from YAML and environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .models import DEFAULT_ALERT_DAYS


@dataclass
class TrademarkApiConfig:
    search_url: str = "https://tmsearch.uspto.gov/search/v1.0"
    status_url: str = "https://tsdrapi.uspto.gov/ts/cd"
    rate_limit_per_minute: int = 60
    timeout_seconds: int = 30
    max_retries: int = 3
    api_key: str = ""


@dataclass
class SmtpConfig:
    enabled: bool = True
    host: str = "smtp.gmail.com"
    port: int = 587
    use_tls: bool = True
    user: str = ""
    password: str = ""
    recipients: list[str] = field(default_factory=list)


@dataclass
class AlertConfig:
    default_alert_days: list[int] = field(default_factory=lambda: list(DEFAULT_ALERT_DAYS))
    email_notifications: bool = True
    auto_renewal: bool = False
    # Raise an overdue alert for assets expiring today instead of nothing
    close_expiry_gap: bool = False


@dataclass
class MonitoringConfig:
    check_timeout_seconds: int = 60
    max_workers: int = 4
    check_on_create: bool = True
    similarity_threshold: float = 0.7
    lookback_days: int = 30
    scheduler_enabled: bool = False
    scheduler_poll_seconds: int = 60


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: str = "logs/ip-tracker.log"
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class WebConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class Config:
    organization_id: str = "default"
    trademark_api: TrademarkApiConfig = field(default_factory=TrademarkApiConfig)
    email: SmtpConfig = field(default_factory=SmtpConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    database_path: str = "data/ip-tracker.db"
    seed_demo_data: bool = True
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    web: WebConfig = field(default_factory=WebConfig)


def load_config(config_path: str = "config.yaml", env_path: str = ".env") -> Config:
    """Load configuration from YAML file and environment variables."""
    # Load .env file for secrets
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file) as f:
        raw = yaml.safe_load(f) or {}

    config = Config()
    config.organization_id = str(raw.get("organization_id", config.organization_id))

    # Trademark search API
    api_raw = raw.get("trademark_api", {})
    defaults = TrademarkApiConfig()
    config.trademark_api = TrademarkApiConfig(
        search_url=api_raw.get("search_url", defaults.search_url),
        status_url=api_raw.get("status_url", defaults.status_url),
        rate_limit_per_minute=api_raw.get("rate_limit_per_minute", defaults.rate_limit_per_minute),
        timeout_seconds=api_raw.get("timeout_seconds", defaults.timeout_seconds),
        max_retries=api_raw.get("max_retries", defaults.max_retries),
        api_key=os.environ.get("USPTO_API_KEY", ""),
    )

    # E-mail notifications
    email_raw = raw.get("email", {})
    config.email = SmtpConfig(
        enabled=email_raw.get("enabled", True),
        host=email_raw.get("smtp_host", "smtp.gmail.com"),
        port=email_raw.get("smtp_port", 587),
        use_tls=email_raw.get("use_tls", True),
        user=os.environ.get("SMTP_USER", ""),
        password=os.environ.get("SMTP_PASSWORD", ""),
        recipients=email_raw.get("recipients", []),
    )

    # Alert defaults
    alerts_raw = raw.get("alerts", {})
    config.alerts = AlertConfig(
        default_alert_days=alerts_raw.get("alert_days", list(DEFAULT_ALERT_DAYS)),
        email_notifications=alerts_raw.get("email_notifications", True),
        auto_renewal=alerts_raw.get("auto_renewal", False),
        close_expiry_gap=alerts_raw.get("close_expiry_gap", False),
    )

    # Brand monitoring
    mon_raw = raw.get("monitoring", {})
    mon_defaults = MonitoringConfig()
    config.monitoring = MonitoringConfig(
        check_timeout_seconds=mon_raw.get("check_timeout_seconds", mon_defaults.check_timeout_seconds),
        max_workers=mon_raw.get("max_workers", mon_defaults.max_workers),
        check_on_create=mon_raw.get("check_on_create", mon_defaults.check_on_create),
        similarity_threshold=mon_raw.get("similarity_threshold", mon_defaults.similarity_threshold),
        lookback_days=mon_raw.get("lookback_days", mon_defaults.lookback_days),
        scheduler_enabled=mon_raw.get("scheduler_enabled", mon_defaults.scheduler_enabled),
        scheduler_poll_seconds=mon_raw.get("scheduler_poll_seconds", mon_defaults.scheduler_poll_seconds),
    )

    # Database
    db_raw = raw.get("database", {})
    config.database_path = db_raw.get("path", config.database_path)
    config.seed_demo_data = raw.get("seed_demo_data", config.seed_demo_data)

    # Logging
    log_raw = raw.get("logging", {})
    config.logging = LoggingConfig(
        level=log_raw.get("level", "INFO"),
        file=log_raw.get("file", "logs/ip-tracker.log"),
        max_size_mb=log_raw.get("max_size_mb", 10),
        backup_count=log_raw.get("backup_count", 5),
    )

    # Web API settings
    web_raw = raw.get("web", {})
    config.web = WebConfig(
        host=web_raw.get("host", "127.0.0.1"),
        port=web_raw.get("port", 8080),
    )

    return config


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return a list of errors (empty if valid)."""
    errors = []

    if config.email.enabled:
        if not config.email.user:
            errors.append("SMTP_USER environment variable is not set")
        if not config.email.password:
            errors.append("SMTP_PASSWORD environment variable is not set")
        if not config.email.recipients:
            errors.append("No email recipients defined in config.yaml")

    days = config.alerts.default_alert_days
    if not days:
        errors.append("alerts.alert_days must contain at least one day offset")
    elif any(isinstance(d, bool) or not isinstance(d, int) or d <= 0 for d in days):
        errors.append(f"alerts.alert_days must be positive integers, got {days}")

    if config.monitoring.check_timeout_seconds <= 0:
        errors.append("monitoring.check_timeout_seconds must be positive")
    if config.monitoring.max_workers <= 0:
        errors.append("monitoring.max_workers must be positive")
    if not 0 < config.monitoring.similarity_threshold <= 1:
        errors.append("monitoring.similarity_threshold must be between 0 and 1")
    if config.monitoring.scheduler_poll_seconds <= 0:
        errors.append("monitoring.scheduler_poll_seconds must be positive")

    return errors
