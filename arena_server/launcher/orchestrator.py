"""
Game server launch orchestration

Boots the server, waits until enough players joined, starts the game and
serves operator commands until ``stop``:

    BOOTING -> WAITING_FOR_PLAYERS -> RUNNING -> SHUTTING_DOWN -> STOPPED

Every wait in the main flow is on an event or condition, so ``shutdown()``
interrupts the grace period and the player gate as well as the final wait.
An exception escaping any phase is logged as fatal, the collaborators that
were started are stopped and ``run()`` returns ``EXIT_FATAL``.
"""

import argparse
import enum
import logging
import sys
import threading
from pathlib import Path
from typing import Callable, List, Optional, TextIO, Union

from arena_server import __version__
from arena_server.admin.metrics import ServerMetrics, get_system_info
from arena_server.game_server.agent_server import AgentServer
from arena_server.game_server.game import GameRunner
from arena_server.shared.constants import (
    DEFAULT_CONFIG_PATH, DEFAULT_LOG_LEVEL, EXIT_FATAL, EXIT_SUCCESS, PLAYER_POLL_INTERVAL
)
from arena_server.shared.events import EventHub, EventKind
from .commands import CommandListener
from .config import ConfigLoader, StartupConfig
from .log_setup import LogInitializer


class OrchestratorPhase(enum.Enum):
    BOOTING = "booting"
    WAITING_FOR_PLAYERS = "waiting_for_players"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


_TRANSITIONS = {
    OrchestratorPhase.BOOTING: {OrchestratorPhase.WAITING_FOR_PLAYERS,
                                OrchestratorPhase.SHUTTING_DOWN, OrchestratorPhase.STOPPED},
    OrchestratorPhase.WAITING_FOR_PLAYERS: {OrchestratorPhase.RUNNING,
                                            OrchestratorPhase.SHUTTING_DOWN, OrchestratorPhase.STOPPED},
    OrchestratorPhase.RUNNING: {OrchestratorPhase.SHUTTING_DOWN, OrchestratorPhase.STOPPED},
    OrchestratorPhase.SHUTTING_DOWN: {OrchestratorPhase.STOPPED},
    OrchestratorPhase.STOPPED: set(),
}


class OrchestratorError(RuntimeError):
    pass


class Orchestrator:
    """Owns the startup configuration, both collaborators and the phase state machine"""

    def __init__(self, raw_config: Union[bytes, str, None], control_channel: Optional[TextIO] = None, *,
                 log_initializer: Optional[LogInitializer] = None,
                 runner_factory: Callable[..., GameRunner] = GameRunner,
                 server_factory: Callable[..., AgentServer] = AgentServer,
                 poll_interval: float = PLAYER_POLL_INTERVAL,
                 strict_config: bool = False):
        self.raw_config = raw_config
        self.control_channel = control_channel if control_channel is not None else sys.stdin
        self.log_initializer = log_initializer or LogInitializer()
        self.runner_factory = runner_factory
        self.server_factory = server_factory
        self.poll_interval = poll_interval
        self.strict_config = strict_config

        self.logger = self.log_initializer.get_logger("GameServer")
        self.config: Optional[StartupConfig] = None
        self.events = EventHub(self.log_initializer.get_logger("Events"))
        self.metrics = ServerMetrics()
        self.runner: Optional[GameRunner] = None
        self.server: Optional[AgentServer] = None
        self.command_listener: Optional[CommandListener] = None

        self.phase_history: List[OrchestratorPhase] = [OrchestratorPhase.BOOTING]
        self._phase = OrchestratorPhase.BOOTING
        self._phase_lock = threading.Lock()
        self._stop_requested = threading.Event()
        self._stopped = threading.Event()
        self._shutdown_started = False
        self._has_run = False

    @property
    def phase(self) -> OrchestratorPhase:
        with self._phase_lock:
            return self._phase

    def run(self) -> int:
        """Run the server to completion and return the process exit status"""
        if self._has_run:
            raise OrchestratorError("Orchestrator.run() may only be called once")
        self._has_run = True

        try:
            self._boot()
            if self._wait_for_players():
                self._start_running()
            self._stopped.wait()
            return EXIT_SUCCESS

        except Exception:
            if self.log_initializer.severity is None:
                self.log_initializer.set_level(DEFAULT_LOG_LEVEL)
            self.logger.critical("GameServer crashed with exception", exc_info=True)
            self._stop_collaborators()
            self._mark_stopped()
            return EXIT_FATAL

    def shutdown(self) -> bool:
        """Stop the game and the transport. Only the first call has any effect."""
        with self._phase_lock:
            if self._shutdown_started or self._phase == OrchestratorPhase.STOPPED:
                return False
            self._shutdown_started = True
            self._stop_requested.set()
            self._set_phase(OrchestratorPhase.SHUTTING_DOWN)

        self.logger.info("Shutting down GameServer...")
        self._stop_collaborators()
        self._mark_stopped()
        self.logger.info("GameServer stopped")
        return True

    def report_status(self):
        """Log the current phase, player count and server metrics"""
        summary = self.metrics.get_summary()
        expected = self.config.expected_player_num if self.config else 0
        players = self.runner.game.player_count if self.runner else 0
        performance = summary['performance']

        self.logger.info(f"Phase: {self.phase.name}, players: {players}/{expected}, "
                         f"uptime: {summary['uptime_formatted']}")
        self.logger.info(f"Ticks: {performance['total_ticks']} "
                         f"(avg {performance['avg_tick_time_ms']:.2f} ms, "
                         f"max {performance['max_tick_time_ms']:.2f} ms), "
                         f"connections: {summary['network']['total_connections']}, "
                         f"messages: {summary['network']['messages_received']}")

        system = get_system_info()
        if system:
            self.logger.info(f"Host CPU {system['cpu_percent']:.1f}% of {system['cpu_count']} cores, "
                             f"memory {system['memory_percent']:.1f}% of {system['memory_total_gb']:.1f} GB, "
                             f"process RSS {system['process_rss_mb']:.1f} MB, "
                             f"threads {system['process_threads']}")

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _boot(self):
        self.config = ConfigLoader(strict=self.strict_config).load(self.raw_config)
        severity = self.log_initializer.set_level(self.config.log_level)

        self.logger.info("-" * 72)
        self.logger.info(f"Arena GameServer v{__version__}")
        self.logger.info(f"Log level {severity.name}, port {self.config.server_port}, "
                         f"expecting {self.config.expected_player_num} players")
        self.logger.info("-" * 72)

        # Under the phase lock so a concurrent shutdown() sees either no transport or a bound one
        with self._phase_lock:
            if self._stop_requested.is_set():
                return
            self.runner = self.runner_factory(
                self.events, metrics=self.metrics, log=self.log_initializer.get_logger("GameRunner")
            )
            self.server = self.server_factory(self.events, port=self.config.server_port, metrics=self.metrics)

            self._subscribe_events()
            self.server.start()

        # Grace period before the gate is checked
        if self.config.waiting_time > 0:
            self.logger.info(f"Waiting {self.config.waiting_time:g}s for players to connect...")
        self._stop_requested.wait(self.config.waiting_time)

    def _subscribe_events(self):
        self.events.subscribe(EventKind.AFTER_GAME_TICK, self.server.handle_after_game_tick)
        self.events.subscribe(EventKind.AFTER_NEW_PLAYER_JOIN, self.server.handle_after_new_player_join)
        self.events.subscribe(EventKind.AFTER_MESSAGE_RECEIVE, self.runner.handle_after_message_receive)

    def _wait_for_players(self) -> bool:
        """Block until the expected number of players joined; False if shut down first"""
        if not self._advance(OrchestratorPhase.WAITING_FOR_PLAYERS):
            return False

        game = self.runner.game
        expected = self.config.expected_player_num

        while True:
            count = game.player_count
            if count >= expected:
                break
            if self._stop_requested.is_set():
                return False
            self.logger.info(f"Waiting for {expected - count} more players to join...")
            game.wait_for_player_count(expected, timeout=self.poll_interval)

        return self._advance(OrchestratorPhase.RUNNING)

    def _start_running(self):
        # Under the phase lock so a concurrent shutdown() sees either no game or a started one
        with self._phase_lock:
            if self._stop_requested.is_set():
                return
            self.runner.start()

        self.command_listener = CommandListener(
            self.control_channel,
            self.shutdown,
            log=self.log_initializer.get_logger("Console"),
            commands={'status': self.report_status},
        )
        self.command_listener.start()
        self.logger.info("GameServer is running. Type 'stop' to shut down.")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _advance(self, target: OrchestratorPhase) -> bool:
        with self._phase_lock:
            if self._stop_requested.is_set():
                return False
            self._set_phase(target)
        self.logger.debug(f"Entered phase {target.name}")
        return True

    def _set_phase(self, target: OrchestratorPhase):
        # Caller holds _phase_lock
        if target not in _TRANSITIONS[self._phase]:
            raise OrchestratorError(f"Illegal phase transition {self._phase.name} -> {target.name}")
        self._phase = target
        self.phase_history.append(target)

    def _mark_stopped(self):
        with self._phase_lock:
            if self._phase != OrchestratorPhase.STOPPED:
                self._set_phase(OrchestratorPhase.STOPPED)
        self._stop_requested.set()
        self._stopped.set()

    def _stop_collaborators(self):
        if self.runner is not None:
            try:
                self.runner.stop()
            except Exception as e:
                self.logger.error(f"Error stopping game: {e}", exc_info=True)

        if self.server is not None:
            try:
                self.server.stop()
            except Exception as e:
                self.logger.error(f"Error stopping agent server: {e}", exc_info=True)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the game server"""
    parser = argparse.ArgumentParser(description="Arena game server")
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH,
                        help=f"path to the JSON startup configuration (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument('--strict-config', action='store_true',
                        help="refuse to start on a missing or malformed configuration")
    args = parser.parse_args(argv)

    try:
        raw_config = Path(args.config).read_bytes()
    except OSError as e:
        logging.getLogger(__name__).warning(f"Cannot read configuration {args.config}: {e}")
        raw_config = None

    orchestrator = Orchestrator(raw_config, sys.stdin, strict_config=args.strict_config)
    try:
        return orchestrator.run()
    except KeyboardInterrupt:
        orchestrator.logger.info("Received shutdown signal")
        orchestrator.shutdown()
        return EXIT_SUCCESS
