"""
Simulation runtime - a fixed-step worker thread around the World plus the
process-wide SimulationManager that the API talks to.

Commands go in through the World's inbound queue and are applied at the
start of the next tick. Deltas come out through a bounded queue that drops
its oldest message when full, so the worker never blocks on a slow reader.
"""

import dataclasses
import queue
import threading
import time
from typing import List, Optional

import actions
from config import Settings, get_settings
from logger import setup_logger
from world import World

logger = setup_logger("simulation")

WORKER_COMMANDS = {"init", "start", "stop"}
WORLD_COMMANDS = {
    "execute_action", "move_unit", "debug_create_threat", "add_building",
    "recruit_agent", "build_unit", "start_research",
}


class SimulationWorker(threading.Thread):
    """Daemon thread stepping a World at a fixed dt."""

    def __init__(self, world: World, tick_rate: float = 30.0, outbound_size: int = 256):
        super().__init__(name="simulation-worker", daemon=True)
        self.world = world
        self.dt = 1.0 / tick_rate
        self.outbound: "queue.Queue[dict]" = queue.Queue(maxsize=outbound_size)
        self.dropped_messages = 0
        self._running = threading.Event()
        self._stop_requested = threading.Event()
        self._snapshot_lock = threading.Lock()
        self._latest_snapshot: Optional[dict] = None

    @property
    def running(self) -> bool:
        return self._running.is_set()

    # ===== CHANNELS =====

    def submit(self, command: dict):
        self.world.submit(command)

    def publish(self, message: dict):
        """Put without blocking; the oldest queued message makes room if needed."""
        while True:
            try:
                self.outbound.put_nowait(message)
                return
            except queue.Full:
                try:
                    self.outbound.get_nowait()
                    self.dropped_messages += 1
                except queue.Empty:
                    pass

    def drain(self, limit: int = None) -> List[dict]:
        messages = []
        while limit is None or len(messages) < limit:
            try:
                messages.append(self.outbound.get_nowait())
            except queue.Empty:
                break
        return messages

    def get_snapshot(self) -> Optional[dict]:
        with self._snapshot_lock:
            return self._latest_snapshot

    def _swap_snapshot(self, snapshot: dict):
        with self._snapshot_lock:
            self._latest_snapshot = snapshot

    # ===== STEPPING =====

    def publish_initial_snapshot(self):
        snapshot = self.world.snapshot()
        self._swap_snapshot(snapshot)
        self.publish({"type": "snapshot", "payload": snapshot})

    def step(self, dt: float = None):
        """Advance one tick, publish its delta and refresh the latest snapshot."""
        self.world.tick(dt if dt is not None else self.dt)
        delta = self.world.get_delta()
        self.publish({"type": "delta", "payload": delta.to_dict()})
        self._swap_snapshot(self.world.to_dict())

    def start(self):
        self._running.set()
        super().start()

    def run(self):
        logger.info(f"Simulation worker running at {1.0 / self.dt:.0f} Hz")
        next_tick = time.monotonic()
        while not self._stop_requested.is_set():
            try:
                self.step()
            except Exception:
                logger.exception(f"Tick {self.world.tick_count} failed")
            next_tick += self.dt
            delay = next_tick - time.monotonic()
            if delay > 0:
                self._stop_requested.wait(delay)
            else:
                next_tick = time.monotonic()
        self._running.clear()
        logger.info(f"Simulation worker stopped at tick {self.world.tick_count}")

    def stop(self, timeout: float = 5.0):
        self._stop_requested.set()
        if self.is_alive():
            self.join(timeout=timeout)


class SimulationManager:
    """Process-wide simulation orchestrator - singleton pattern."""

    _instance = None
    _lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "SimulationManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls):
        """Stop any running worker and forget the instance (used by tests)."""
        with cls._lock:
            if cls._instance is not None and cls._instance.worker is not None:
                cls._instance.worker.stop()
            cls._instance = None

    def __init__(self):
        if SimulationManager._instance is not None:
            raise RuntimeError("Use get_instance() instead")
        self.settings: Settings = get_settings()
        self.world: Optional[World] = None
        self.worker: Optional[SimulationWorker] = None

    @property
    def initialized(self) -> bool:
        return self.world is not None

    @property
    def is_running(self) -> bool:
        return self.worker is not None and self.worker.running

    def init_simulation(self, casual_mode: bool = None, seed: int = None) -> dict:
        """Build a fresh world; any running worker is stopped first."""
        if self.worker is not None:
            self.worker.stop()
        overrides = {}
        if casual_mode is not None:
            overrides["casual_mode"] = casual_mode
        if seed is not None:
            overrides["random_seed"] = seed
        settings = dataclasses.replace(get_settings(), **overrides)

        self.settings = settings
        self.world = World(settings)
        self.worker = SimulationWorker(self.world, settings.tick_rate, settings.outbound_queue_size)
        self.worker.publish_initial_snapshot()
        logger.info(f"Simulation initialized (casual_mode={settings.casual_mode}, seed={settings.random_seed})")
        return {"status": "success", "message": "Simulation initialized", "settings": settings.to_dict()}

    def start(self) -> dict:
        if not self.initialized:
            return {"status": "error", "message": "Simulation not initialized"}
        if self.is_running:
            return {"status": "error", "message": "Simulation already running"}
        if self.worker.is_alive() or self.worker.ident is not None:
            # threads cannot be restarted; hand the world to a fresh worker
            old = self.worker
            self.worker = SimulationWorker(self.world, self.settings.tick_rate, self.settings.outbound_queue_size)
            for message in old.drain():
                self.worker.publish(message)
            self.worker._swap_snapshot(old.get_snapshot())
        self.worker.start()
        logger.info("Simulation started")
        return {"status": "success", "message": "Simulation started", "tick": self.world.tick_count}

    def stop(self) -> dict:
        if not self.is_running:
            return {"status": "error", "message": "Simulation not running"}
        self.worker.stop()
        logger.info("Simulation stopped")
        return {"status": "success", "message": "Simulation stopped", "tick": self.world.tick_count}

    def manual_tick(self, dt: float = None, count: int = 1) -> dict:
        if not self.initialized:
            return {"status": "error", "message": "Simulation not initialized"}
        if self.is_running:
            return {"status": "error", "message": "Stop the simulation before stepping manually"}
        for _ in range(count):
            self.worker.step(dt)
        return {"status": "success", "tick": self.world.tick_count, "time": self.world.time}

    def submit_command(self, command_type: str, payload: dict = None) -> dict:
        """Queue a command; only the enqueue is acknowledged."""
        if command_type in WORKER_COMMANDS:
            if command_type == "init":
                return self.init_simulation(**(payload or {}))
            return self.start() if command_type == "start" else self.stop()
        if command_type not in WORLD_COMMANDS:
            return {"status": "error", "message": f"Unknown command: {command_type}"}
        if not self.initialized:
            return {"status": "error", "message": "Simulation not initialized"}
        self.worker.submit({"type": command_type, "payload": payload or {}})
        logger.debug(f"Queued {command_type} {payload}")
        return {"status": "success", "message": f"{command_type} queued"}

    def get_status(self) -> dict:
        if not self.initialized:
            return {"initialized": False, "is_running": False}
        return {
            "initialized": True,
            "is_running": self.is_running,
            "tick": self.world.tick_count,
            "time": self.world.time,
            "casual_mode": self.settings.casual_mode,
            "pending_messages": self.worker.outbound.qsize(),
            "dropped_messages": self.worker.dropped_messages,
        }

    def get_snapshot(self) -> Optional[dict]:
        return self.worker.get_snapshot() if self.worker else None

    def drain_messages(self, limit: int = None) -> List[dict]:
        return self.worker.drain(limit) if self.worker else []

    def get_events(self, since_id: str = None, limit: int = 100, event_type: str = None) -> List[dict]:
        if not self.initialized:
            return []
        return self.world.narrative.get_events(since_id, limit, event_type)

    def get_chronicles(self) -> List[dict]:
        return self.world.narrative.get_chronicles() if self.initialized else []


# Module-level functions for API access

def init_simulation(casual_mode: bool = None, seed: int = None) -> dict:
    """Create a fresh world and worker."""
    return SimulationManager.get_instance().init_simulation(casual_mode, seed)


def start_simulation() -> dict:
    return SimulationManager.get_instance().start()


def stop_simulation() -> dict:
    return SimulationManager.get_instance().stop()


def get_status() -> dict:
    return SimulationManager.get_instance().get_status()


def get_snapshot() -> Optional[dict]:
    return SimulationManager.get_instance().get_snapshot()


def drain_messages(limit: int = None) -> List[dict]:
    """Pop queued snapshot/delta messages, oldest first."""
    return SimulationManager.get_instance().drain_messages(limit)


def manual_tick(dt: float = None, count: int = 1) -> dict:
    return SimulationManager.get_instance().manual_tick(dt, count)


def submit_command(command_type: str, payload: dict = None) -> dict:
    return SimulationManager.get_instance().submit_command(command_type, payload)


def get_events(since_id: str = None, limit: int = 100, event_type: str = None) -> List[dict]:
    return SimulationManager.get_instance().get_events(since_id, limit, event_type)


def get_chronicles() -> List[dict]:
    return SimulationManager.get_instance().get_chronicles()


def list_actions() -> dict:
    return actions.list_actions()
