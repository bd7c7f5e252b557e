import os

from roomba_bridge import __version__

__all__ = [
    "AFTER_ACTIVE_SECONDS",
    "ACTIVE_POLL_SECONDS",
    "CONNECT_TIMEOUT_SECONDS",
    "DEFAULT_IDLE_WATCH_MINUTES",
    "DOCK_MAX_ATTEMPTS",
    "DOCK_SETTLE_SECONDS",
    "REFRESH_COALESCE_SECONDS",
    "ROBOT_CIPHERS",
    "ROBOT_CMD_TOPIC",
    "ROBOT_MQTT_PORT",
    "ROOMBA_API_PORT",
    "ROOMBA_CONFIG_FILE_PATH",
    "ROOMBA_DEBUG",
    "ROOMBA_ENABLE_API",
    "ROOMBA_ENABLE_METRICS",
    "ROOMBA_LOG_CORRELATION_ENABLED",
    "ROOMBA_LOG_FORMAT",
    "ROOMBA_LOG_HUMAN_OUTPUT",
    "ROOMBA_LOG_JSON_FILE",
    "ROOMBA_METRICS_PORT",
    "ROOMBA_PERF_THRESHOLD_MS",
    "ROOMBA_PERF_TRACKING",
    "ROOMBA_SRV_HOST",
    "ROOMBA_VERSION",
    "STATUS_TIMEOUT_SECONDS",
    "USER_INTERESTED_SECONDS",
    "USER_POLL_SECONDS",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
ROOMBA_VERSION: str = __version__


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


ROOMBA_DEBUG: bool = os.environ.get("ROOMBA_DEBUG", "0").casefold() in YES_ANSWER
ROOMBA_CONFIG_FILE_PATH: str = os.environ.get("ROOMBA_CONFIG_FILE_PATH", "/config/roomba_bridge.yaml")

# HTTP accessory facade
ROOMBA_SRV_HOST: str = os.environ.get("ROOMBA_SRV_HOST", "0.0.0.0")
ROOMBA_API_PORT: int = _env_int("ROOMBA_API_PORT", 8087)
ROOMBA_ENABLE_API: bool = os.environ.get("ROOMBA_ENABLE_API", "true").casefold() in YES_ANSWER

# Prometheus exporter
ROOMBA_ENABLE_METRICS: bool = os.environ.get("ROOMBA_ENABLE_METRICS", "0").casefold() in YES_ANSWER
ROOMBA_METRICS_PORT: int = _env_int("ROOMBA_METRICS_PORT", 9410)

# Robot local protocol: MQTT over TLS, one client at a time
ROBOT_MQTT_PORT: int = 8883
ROBOT_CMD_TOPIC: str = "cmd"
# Older firmware only negotiates AES128-SHA256, newer firmware wants TLS 1.3
ROBOT_CIPHERS: tuple[str, ...] = ("AES128-SHA256", "TLS_AES_256_GCM_SHA384")

CONNECT_TIMEOUT_SECONDS: float = 60.0
STATUS_TIMEOUT_SECONDS: float = 60.0

# Docking-wait loop: time for telemetry to settle after a pause, and how often to look
DOCK_SETTLE_SECONDS: float = 2.0
DOCK_MAX_ATTEMPTS: int = 10

# Poll cadence
DEFAULT_IDLE_WATCH_MINUTES: float = 15.0
USER_INTERESTED_SECONDS: float = 60.0
USER_POLL_SECONDS: float = 5.0
AFTER_ACTIVE_SECONDS: float = 120.0
ACTIVE_POLL_SECONDS: float = 10.0
REFRESH_COALESCE_SECONDS: float = 10.0

# Logging Configuration
ROOMBA_LOG_FORMAT: str = os.environ.get("ROOMBA_LOG_FORMAT", "human")  # "json", "human", or "both"
ROOMBA_LOG_JSON_FILE: str = os.environ.get("ROOMBA_LOG_JSON_FILE", "/var/log/roomba_bridge.json")
ROOMBA_LOG_HUMAN_OUTPUT: str = os.environ.get("ROOMBA_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path
ROOMBA_LOG_CORRELATION_ENABLED: bool = (
    os.environ.get("ROOMBA_LOG_CORRELATION_ENABLED", "true").casefold() in YES_ANSWER
)

# Performance Instrumentation
ROOMBA_PERF_TRACKING: bool = os.environ.get("ROOMBA_PERF_TRACKING", "true").casefold() in YES_ANSWER
_perf_threshold = os.environ.get("ROOMBA_PERF_THRESHOLD_MS", "2000")
ROOMBA_PERF_THRESHOLD_MS: int = int(_perf_threshold) if _perf_threshold and _perf_threshold.isdigit() else 2000
