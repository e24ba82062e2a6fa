"""Main entry point for the framelink serial-to-MQTT bridge."""

import argparse
import logging
import signal
import sys
import time
from pathlib import Path

import serial

from .config import Config, load_config
from .mqtt_handler import MqttHandler
from .serial_handler import SerialDisconnected, SerialHandler

logger = logging.getLogger(__name__)

# Delay between attempts to open the serial port at startup
OPEN_RETRY_DELAY = 5  # seconds


class Bridge:
    """
    Polls the serial link and forwards frames in both directions.

    Frames from the MQTT side are written by the MQTT network thread via
    SerialHandler.write_frame; this class drives the receive side.
    """

    def __init__(self, config: Config) -> None:
        self._config = config
        self.serial = SerialHandler(config.serial, config.frame.capacity)
        self.mqtt = MqttHandler(
            config=config.mqtt,
            node_id=config.node.id,
            on_frame=self.serial.write_frame,
        )
        self._stopping = False

    @property
    def stopping(self) -> bool:
        return self._stopping

    def stop(self) -> None:
        self._stopping = True

    def open_serial(self) -> bool:
        """Open the serial port, retrying until it opens or stop() is called."""
        while not self._stopping:
            try:
                self.serial.open()
                return True
            except serial.SerialException as e:
                logger.error(
                    "Failed to open serial port: %s (retrying in %ds)",
                    e,
                    OPEN_RETRY_DELAY,
                )
                time.sleep(OPEN_RETRY_DELAY)
        return False

    def poll(self) -> int:
        """
        Make one non-blocking pass over the serial link.

        Returns the number of frames published. Zero is the normal outcome
        while a frame is still arriving.
        """
        if not self.serial.connected:
            # Hot-plug: the receiver resynchronizes on its own once bytes flow again
            if self.serial.try_reconnect():
                logger.info("Serial reconnected")
            return 0

        try:
            frames = self.serial.read_frames()
        except SerialDisconnected:
            logger.warning("Serial connection lost, will attempt reconnection")
            return 0

        for frame in frames:
            self.mqtt.publish_frame(frame)
        return len(frames)

    def run(self) -> None:
        if not self.open_serial():
            return

        self.mqtt.connect()
        logger.info(
            "Bridge running: node='%s', frame capacity %d bytes, publishing to '%s/%s/rx/+'",
            self._config.node.id,
            self._config.frame.capacity,
            self._config.mqtt.root_topic,
            self._config.node.id,
        )
        try:
            while not self._stopping:
                self.poll()
        finally:
            self.mqtt.disconnect()

    def shutdown(self) -> None:
        logger.info(
            "Bridge stopped (%d bytes skipped while resynchronizing)",
            self.serial.bytes_skipped,
        )
        self.serial.close()


def run(config: Config) -> None:
    """Run the bridge until SIGINT or SIGTERM."""
    bridge = Bridge(config)

    def handle_signal(signum, frame):
        logger.info("Shutdown requested")
        bridge.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        bridge.run()
    except Exception as e:
        logger.error("Unexpected error: %s", e)
        sys.exit(1)
    finally:
        bridge.shutdown()


def main() -> None:
    """Entry point for framelink-bridge command."""
    parser = argparse.ArgumentParser(
        description="MQTT bridge for base64-framed serial packets"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error("Configuration file not found: %s", args.config)
        sys.exit(1)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    run(config)


if __name__ == "__main__":
    main()
