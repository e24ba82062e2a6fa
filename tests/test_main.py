import sys
from unittest.mock import patch

import pytest
import serial

from framelink import main as main_module
from framelink.config import Config, FrameConfig, MqttConfig, NodeConfig, SerialConfig
from framelink.protocol import Frame
from framelink.serial_handler import SerialDisconnected


def test_main_missing_config(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, "argv", ["framelink-bridge", "-c", str(tmp_path / "none.yaml")])

    with pytest.raises(SystemExit) as excinfo:
        main_module.main()
    assert excinfo.value.code == 1


def test_main_invalid_config(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("mqtt:\n  broker: localhost\n")
    monkeypatch.setattr(sys, "argv", ["framelink-bridge", "-c", str(path)])

    with patch.object(main_module, "run") as run, pytest.raises(SystemExit) as excinfo:
        main_module.main()
    assert excinfo.value.code == 1
    run.assert_not_called()


def test_main_runs_bridge(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(
        "mqtt:\n  broker: localhost\nnode:\n  id: n1\nserial:\n  port: /dev/ttyUSB0\n"
    )
    monkeypatch.setattr(sys, "argv", ["framelink-bridge", "-c", str(path), "-v"])

    with patch.object(main_module, "run") as run:
        main_module.main()

    config = run.call_args.args[0]
    assert config.node.id == "n1"
    assert config.serial.port == "/dev/ttyUSB0"


@pytest.fixture
def config():
    return Config(
        mqtt=MqttConfig(broker="localhost"),
        node=NodeConfig(id="n1"),
        serial=SerialConfig(port="/dev/ttyTEST"),
        frame=FrameConfig(),
    )


@pytest.fixture
def bridge(config):
    with (
        patch.object(main_module, "SerialHandler") as serial_cls,
        patch.object(main_module, "MqttHandler") as mqtt_cls,
    ):
        bridge = main_module.Bridge(config)
    serial_cls.assert_called_once_with(config.serial, config.frame.capacity)
    assert mqtt_cls.call_args.kwargs["on_frame"] is bridge.serial.write_frame
    return bridge


def test_poll_publishes_frames(bridge):
    frames = [Frame.new(1, b"a"), Frame.new(2, b"bc")]
    bridge.serial.connected = True
    bridge.serial.read_frames.return_value = frames

    assert bridge.poll() == 2
    assert [c.args[0] for c in bridge.mqtt.publish_frame.call_args_list] == frames


def test_poll_frame_incomplete(bridge):
    bridge.serial.connected = True
    bridge.serial.read_frames.return_value = []

    assert bridge.poll() == 0
    bridge.mqtt.publish_frame.assert_not_called()


def test_poll_serial_lost(bridge):
    bridge.serial.connected = True
    bridge.serial.read_frames.side_effect = SerialDisconnected()

    assert bridge.poll() == 0
    bridge.mqtt.publish_frame.assert_not_called()


def test_poll_reconnects_when_disconnected(bridge):
    bridge.serial.connected = False

    assert bridge.poll() == 0
    bridge.serial.try_reconnect.assert_called_once()
    bridge.serial.read_frames.assert_not_called()


def test_open_serial_retries(bridge):
    bridge.serial.open.side_effect = [serial.SerialException("busy"), None]

    with patch.object(main_module.time, "sleep") as sleep:
        assert bridge.open_serial()

    assert bridge.serial.open.call_count == 2
    sleep.assert_called_once_with(main_module.OPEN_RETRY_DELAY)


def test_open_serial_stopped(bridge):
    bridge.stop()

    assert not bridge.open_serial()
    bridge.serial.open.assert_not_called()


def test_run_polls_until_stopped(bridge):
    calls = []

    def poll():
        calls.append(None)
        if len(calls) == 3:
            bridge.stop()
        return 0

    bridge.poll = poll
    bridge.serial.bytes_skipped = 0

    bridge.run()
    bridge.shutdown()

    assert len(calls) == 3
    bridge.mqtt.connect.assert_called_once()
    bridge.mqtt.disconnect.assert_called_once()
    bridge.serial.close.assert_called_once()
