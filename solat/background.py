"""
The background context: owns the alarm set and runs its timers.

Everything that touches state (heartbeat ticks, the midnight rollover,
messages from views) is queued and executed one at a time by a single
worker thread. Timers only enqueue work. The persisted store is the
durability boundary: once persist() returns the process may die without
losing the alarm set.
"""

import logging
import queue
import threading

from solat import channel as messages
from solat.asset_cache import AssetInstallError
from solat.clock import SystemClock
from solat.config import Settings
from solat.dispatcher import HeartbeatDispatcher
from solat.rollover import MidnightRollover
from solat.store import StoreError

logger = logging.getLogger(__name__)

_STOP = object()


class BackgroundContext:
    def __init__(self, store, channel, clock=None, settings: Settings = None, asset_cache=None, deliver=None, timer_factory=threading.Timer):
        self.store = store
        self.channel = channel
        self.clock = clock or SystemClock()
        self.settings = settings or Settings()
        self.asset_cache = asset_cache
        self.timer_factory = timer_factory

        self.alarms: dict = {}
        self.fired: dict = {}
        self.save_pending = False
        self.active = False

        self._inbox = queue.Queue()
        self._worker = None
        self._heartbeat_timer = None
        self._timer_lock = threading.Lock()

        self.dispatcher = HeartbeatDispatcher(
            self.alarms,
            self.persist,
            self.clock,
            tolerance_ms=self.settings.tolerance_ms,
            deliver=deliver,
            fired=self.fired,
        )
        self.rollover = MidnightRollover(
            self.clock,
            lambda: self.enqueue(self.broadcast_refresh),
            grace_seconds=self.settings.midnight_grace_seconds,
            timer_factory=timer_factory,
        )

    # ── lifecycle ─────────────────────────────────────────────────────────

    def install(self) -> None:
        """Populate the asset cache. Raises AssetInstallError; nothing activates after a failure."""
        if self.asset_cache is None:
            return
        self.asset_cache.install()

    def activate(self) -> None:
        if self.asset_cache is not None:
            if not self.asset_cache.is_installed():
                raise AssetInstallError("Asset cache is not installed")
            self.asset_cache.activate()
        self.hydrate()
        self.channel.attach_background(self.post_message)
        self.rollover.start()
        self.active = True
        logger.info("Background context active with %d pending alarms", len(self.alarms))

    def start(self) -> None:
        """install, activate, then run the worker thread and the heartbeat."""
        self.install()
        self.activate()
        self._worker = threading.Thread(target=self._run, name="solat-background", daemon=True)
        self._worker.start()
        self._schedule_heartbeat()

    def stop(self, timeout: float = 5.0) -> None:
        self.active = False
        self.rollover.cancel()
        with self._timer_lock:
            if self._heartbeat_timer is not None:
                self._heartbeat_timer.cancel()
                self._heartbeat_timer = None
        if self._worker is not None:
            self._inbox.put((_STOP, ()))
            self._worker.join(timeout)
            self._worker = None

    def hydrate(self) -> None:
        """Replace the in-memory set with the persisted one."""
        self.alarms.clear()
        self.alarms.update(self.store.load())
        self.fired.clear()
        self.fired.update(self.store.load_fired())

    # ── work queue ────────────────────────────────────────────────────────

    def enqueue(self, fn, *args) -> None:
        self._inbox.put((fn, args))

    def _call(self, fn, args) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("Background task %s failed", getattr(fn, "__name__", fn))

    def _run(self) -> None:
        while True:
            fn, args = self._inbox.get()
            if fn is _STOP:
                break
            self._call(fn, args)

    def process_pending(self) -> int:
        """Run everything queued so far on the calling thread. Returns how many tasks ran."""
        ran = 0
        while True:
            try:
                fn, args = self._inbox.get_nowait()
            except queue.Empty:
                return ran
            if fn is _STOP:
                continue
            self._call(fn, args)
            ran += 1

    def _schedule_heartbeat(self) -> None:
        timer = self.timer_factory(self.settings.heartbeat_seconds, self._on_heartbeat_timer)
        timer.daemon = True
        with self._timer_lock:
            if self._heartbeat_timer is not None:
                self._heartbeat_timer.cancel()
            self._heartbeat_timer = timer
        timer.start()

    def _on_heartbeat_timer(self) -> None:
        self.enqueue(self.heartbeat)
        if self.active:
            self._schedule_heartbeat()

    # ── state ─────────────────────────────────────────────────────────────

    def post_message(self, message: dict) -> None:
        """Channel entry point; handling happens on the worker."""
        self.enqueue(self.handle_message, message)

    def handle_message(self, message: dict) -> None:
        kind = message.get("kind") if isinstance(message, dict) else None
        if kind == messages.SET_ALARMS:
            try:
                alarms = messages.parse_alarms(message)
            except messages.MessageError as exc:
                logger.warning("Dropping malformed SET_ALARMS: %s", exc)
                return
            self.merge(alarms)
        else:
            logger.warning("Ignoring message of unknown kind %r", kind)

    def merge(self, alarms: dict) -> None:
        """Overwrite by name, then persist. An alarm that already fired is not taken back."""
        self._forget_old_fired()
        for name, when in alarms.items():
            if self.fired.get(name) == when:
                logger.debug("Skipping %s, already fired at %d", name, when)
                continue
            self.alarms[name] = when
        logger.info("Scheduled alarms: %s", ", ".join(sorted(alarms)) or "none")
        self.persist()

    def persist(self) -> bool:
        """Write the alarm set. On failure the save is retried on the next heartbeat."""
        try:
            self.store.save(dict(self.alarms), fired=dict(self.fired))
        except StoreError as exc:
            logger.warning("%s; will retry on next heartbeat", exc)
            self.save_pending = True
            return False
        self.save_pending = False
        return True

    def heartbeat(self) -> list:
        fired = self.dispatcher.tick()
        if not fired and self.save_pending:
            self.persist()
        return fired

    def broadcast_refresh(self) -> int:
        count = self.channel.broadcast(messages.refresh_message())
        logger.info("Asked %d view(s) to refresh the schedule", count)
        return count

    def fetch(self, request: str) -> bytes:
        """Serve a static asset, cache first."""
        if self.asset_cache is None:
            raise LookupError("No asset cache configured")
        return self.asset_cache.fetch(request)

    def _forget_old_fired(self) -> None:
        # past its window an alarm can no longer fire, so it needs no record
        cutoff = self.clock.now_ms() - self.settings.tolerance_ms
        for name in [name for name, when in self.fired.items() if when < cutoff]:
            del self.fired[name]
