"""
Arena Game Server - Server Metrics
Tick timings, traffic counters and host statistics for operator status reports
"""

import logging
import threading
import time
from collections import deque
from datetime import timedelta
from typing import Any, Deque, Dict

import psutil

logger = logging.getLogger(__name__)

TICK_SAMPLE_SIZE = 100


class ServerMetrics:
    """Tracks server performance metrics; safe to update from any thread"""

    def __init__(self):
        self.start_time = time.time()
        self._lock = threading.Lock()

        # Network
        self.total_connections = 0
        self.total_messages_received = 0

        # Players
        self.total_joins = 0

        # Tick performance
        self.tick_times: Deque[float] = deque(maxlen=TICK_SAMPLE_SIZE)
        self.total_ticks = 0
        self.max_tick_time = 0.0

    def record_tick_time(self, tick_time: float):
        with self._lock:
            self.tick_times.append(tick_time)
            self.total_ticks += 1
            self.max_tick_time = max(self.max_tick_time, tick_time)

    def record_connection(self):
        with self._lock:
            self.total_connections += 1

    def record_message(self):
        with self._lock:
            self.total_messages_received += 1

    def record_join(self):
        with self._lock:
            self.total_joins += 1

    @property
    def avg_tick_time(self) -> float:
        with self._lock:
            if not self.tick_times:
                return 0.0
            return sum(self.tick_times) / len(self.tick_times)

    def get_uptime(self) -> float:
        """Get server uptime in seconds"""
        return time.time() - self.start_time

    def get_summary(self) -> Dict[str, Any]:
        uptime = self.get_uptime()
        avg_tick_time = self.avg_tick_time

        with self._lock:
            return {
                'uptime_seconds': uptime,
                'uptime_formatted': str(timedelta(seconds=int(uptime))),
                'network': {
                    'total_connections': self.total_connections,
                    'messages_received': self.total_messages_received
                },
                'players': {
                    'total_joins': self.total_joins
                },
                'performance': {
                    'total_ticks': self.total_ticks,
                    'avg_tick_time_ms': avg_tick_time * 1000,
                    'max_tick_time_ms': self.max_tick_time * 1000
                }
            }


def get_system_info() -> Dict[str, Any]:
    """Host CPU and memory usage; empty if psutil cannot read them"""
    try:
        memory = psutil.virtual_memory()
        process = psutil.Process()

        return {
            'cpu_percent': psutil.cpu_percent(interval=None),
            'cpu_count': psutil.cpu_count(),
            'memory_total_gb': memory.total / (1024 ** 3),
            'memory_percent': memory.percent,
            'process_rss_mb': process.memory_info().rss / (1024 ** 2),
            'process_threads': process.num_threads()
        }
    except psutil.Error as e:
        logger.error(f"Failed to get system info: {e}")
        return {}
