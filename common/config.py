from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _default_env_file() -> str:
    # .env junto al repo; las variables reales del entorno siempre ganan.
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str]

    redis_url: Optional[str]
    redis_stream: str
    redis_stream_maxlen: int

    mqtt_enabled: bool
    mqtt_broker_host: str
    mqtt_broker_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_topic: str

    calibration_file: Optional[str]
    calibration_reload_seconds: float

    pipeline_workers: int
    missing_calibration_policy: str

    log_level: str


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("DERIVATION_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        database_url=os.getenv("DATABASE_URL") or None,
        redis_url=os.getenv("REDIS_URL") or None,
        redis_stream=os.getenv("REDIS_STREAM", "readings:derived"),
        redis_stream_maxlen=int(os.getenv("REDIS_STREAM_MAXLEN", "10000")),
        mqtt_enabled=_env_bool("MQTT_ENABLED", "false"),
        mqtt_broker_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
        mqtt_broker_port=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_topic=os.getenv("MQTT_TOPIC", "sensors/+/raw"),
        calibration_file=os.getenv("CALIBRATION_FILE") or None,
        calibration_reload_seconds=float(os.getenv("CALIBRATION_RELOAD_SECONDS", "5")),
        pipeline_workers=int(os.getenv("PIPELINE_WORKERS", "4")),
        # drop | default
        missing_calibration_policy=os.getenv("MISSING_CALIBRATION_POLICY", "drop").strip().lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
