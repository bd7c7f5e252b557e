"""Robot transport layer."""

from .mqtt_transport import MqttRobotTransport, mqtt_transport_factory
from .retry_policy import CipherPolicy, TimeoutConfig, should_try_different_cipher
from .types import RobotTransport, TransportEvent, TransportFactory

__all__ = [
    "CipherPolicy",
    "MqttRobotTransport",
    "RobotTransport",
    "TimeoutConfig",
    "TransportEvent",
    "TransportFactory",
    "mqtt_transport_factory",
    "should_try_different_cipher",
]
