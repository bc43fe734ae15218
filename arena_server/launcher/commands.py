"""
Operator command console
"""

import logging
import threading
from typing import Callable, Dict, Optional, TextIO

logger = logging.getLogger(__name__)

STOP_COMMAND = "stop"


class CommandListener:
    """Reads operator commands line by line on a background thread.

    ``stop`` calls ``on_stop`` and ends the loop. Other names are looked up in
    ``commands``; anything unrecognized is logged as an error and ignored.
    """

    def __init__(self, channel: TextIO, on_stop: Callable[[], object],
                 log: Optional[logging.Logger] = None,
                 commands: Optional[Dict[str, Callable[[], None]]] = None):
        self.channel = channel
        self.on_stop = on_stop
        self.logger = log or logger
        self.commands = dict(commands or {})
        self._thread: Optional[threading.Thread] = None

    def start(self) -> threading.Thread:
        if self._thread is None:
            self._thread = threading.Thread(target=self.run, name="command-listener", daemon=True)
            self._thread.start()
        return self._thread

    def run(self):
        while True:
            line = self.channel.readline()
            if not line:
                self.logger.info("Command channel closed, no longer accepting commands")
                return

            command = line.rstrip("\r\n")
            if command == STOP_COMMAND:
                self.on_stop()
                return

            handler = self.commands.get(command)
            if handler is None:
                self.logger.error(f"Unknown command: {command}.")
                continue

            try:
                handler()
            except Exception as e:
                self.logger.error(f"Command '{command}' failed: {e}", exc_info=True)
