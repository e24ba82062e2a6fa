"""Configuration loading and validation."""

from dataclasses import dataclass
from pathlib import Path

import yaml

from .errors import FramingError
from .protocol import DEFAULT_CAPACITY, FrameHeader


@dataclass
class MqttConfig:
    broker: str
    port: int = 1883
    username: str | None = None
    password: str | None = None
    root_topic: str = "framelink"


@dataclass
class NodeConfig:
    id: str


@dataclass
class SerialConfig:
    port: str
    baud: int = 115200
    rx_buffer: int = 4096
    tx_buffer: int = 4096


@dataclass
class FrameConfig:
    capacity: int = DEFAULT_CAPACITY


@dataclass
class Config:
    mqtt: MqttConfig
    node: NodeConfig
    serial: SerialConfig
    frame: FrameConfig


def max_frame_size(capacity: int) -> int:
    """Wire size of the largest frame that fits a buffer of capacity bytes."""
    return FrameHeader.new(0, capacity).total_packet_len


def load_config(path: Path) -> Config:
    """Load and validate configuration from YAML file."""
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    errors = []

    # Validate required sections
    if "mqtt" not in raw:
        errors.append("missing 'mqtt' section")
    elif "broker" not in raw["mqtt"]:
        errors.append("mqtt.broker is required")

    if "node" not in raw:
        errors.append("missing 'node' section")
    elif "id" not in raw["node"]:
        errors.append("node.id is required")

    if "serial" not in raw:
        errors.append("missing 'serial' section")
    elif "port" not in raw["serial"]:
        errors.append("serial.port is required")

    if errors:
        raise ValueError(f"configuration validation failed: {'; '.join(errors)}")

    mqtt_raw = raw["mqtt"]
    mqtt = MqttConfig(
        broker=mqtt_raw["broker"],
        port=mqtt_raw.get("port", 1883),
        username=mqtt_raw.get("username"),
        password=mqtt_raw.get("password"),
        root_topic=mqtt_raw.get("root_topic", "framelink"),
    )

    node = NodeConfig(id=str(raw["node"]["id"]))

    serial_raw = raw["serial"]
    serial = SerialConfig(
        port=serial_raw["port"],
        baud=serial_raw.get("baud", 115200),
        rx_buffer=serial_raw.get("rx_buffer", 4096),
        tx_buffer=serial_raw.get("tx_buffer", 4096),
    )

    frame = FrameConfig(
        capacity=(raw.get("frame") or {}).get("capacity", DEFAULT_CAPACITY),
    )

    # Buffer sizes must hold at least one maximal frame
    if not isinstance(frame.capacity, int) or frame.capacity <= 0:
        errors.append("frame.capacity must be a positive integer")
    else:
        try:
            frame_size = max_frame_size(frame.capacity)
        except FramingError:
            errors.append(f"frame.capacity {frame.capacity} exceeds the maximum frame length")
        else:
            if serial.rx_buffer < frame_size:
                errors.append(f"serial.rx_buffer must be at least {frame_size} bytes")
            if serial.tx_buffer < frame_size:
                errors.append(f"serial.tx_buffer must be at least {frame_size} bytes")

    if "/" in node.id or "+" in node.id or "#" in node.id:
        errors.append("node.id must not contain MQTT topic characters")

    if errors:
        raise ValueError(f"configuration validation failed: {'; '.join(errors)}")

    return Config(mqtt=mqtt, node=node, serial=serial, frame=frame)
