"""Location and step input streams: Termux sensors, recording/playback, host-fed sources."""

import json
import shutil
import subprocess
import threading
import time
from datetime import datetime
from typing import Callable, Optional

from .config import CONFIG
from .models import Location

LocationCallback = Callable[[Location], None]
StepCallback = Callable[[int], None]


class LocationSource:
    """Push-based stream of location fixes.

    ``subscribe`` starts delivery to the callback (possibly from another
    thread); ``unsubscribe`` stops it. ``available`` is False when the
    underlying capability is missing.
    """

    available = True

    def __init__(self):
        self.callback: Optional[LocationCallback] = None

    def subscribe(self, callback: LocationCallback):
        self.callback = callback

    def unsubscribe(self):
        self.callback = None

    def get_status(self) -> str:
        return "OK" if self.available else "unavailable"


class PushLocationSource(LocationSource):
    """Fixes pushed in by the host application"""

    def push(self, location: Location):
        callback = self.callback
        if callback:
            callback(location)


class TermuxLocationSource(LocationSource):
    """GPS access via Termux API, polled on a background thread"""

    def __init__(self, poll_interval: Optional[float] = None):
        super().__init__()
        self.available = shutil.which("termux-location") is not None
        self.poll_interval = poll_interval or CONFIG["gps_poll_interval"]
        self.last_location: Optional[Location] = None
        self.consecutive_failures = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def get_location(self, timeout: int = 30) -> Optional[Location]:
        """Get current location using termux-location"""
        try:
            result = subprocess.run(
                ["termux-location", "-p", "gps", "-r", "once"],
                capture_output=True,
                text=True,
                timeout=timeout
            )

            if result.returncode != 0 or not result.stdout.strip():
                self.consecutive_failures += 1
                return None

            data = json.loads(result.stdout)
            location = Location(
                lat=data["latitude"],
                lon=data["longitude"],
                accuracy=data.get("accuracy"),
                timestamp=time.time(),
                altitude=data.get("altitude") or 0.0,
                speed=data.get("speed") or 0.0,
                vertical_accuracy=data.get("vertical_accuracy"),
                heading=data.get("bearing"),
            )
            self.last_location = location
            self.consecutive_failures = 0
            return location

        except subprocess.TimeoutExpired:
            self.consecutive_failures += 1
            return None
        except (json.JSONDecodeError, KeyError):
            self.consecutive_failures += 1
            return None
        except FileNotFoundError:
            self.available = False
            return None

    def subscribe(self, callback: LocationCallback):
        super().subscribe(callback)
        if not self.available:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop.is_set():
            location = self.get_location()
            callback = self.callback
            if location and callback and not self._stop.is_set():
                callback(location)
            self._stop.wait(self.poll_interval)

    def unsubscribe(self):
        super().unsubscribe()
        self._stop.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        self._thread = None

    def get_status(self) -> str:
        """Get GPS status string"""
        if not self.available:
            return "GPS unavailable"
        if self.consecutive_failures == 0:
            acc = f", accuracy {self.last_location.accuracy:.0f}m" if self.last_location and self.last_location.accuracy else ""
            return f"GPS OK{acc}"
        return f"GPS: {self.consecutive_failures} consecutive failures"


class LocationRecorder(LocationSource):
    """Records the fixes of another source to a JSON trace file"""

    def __init__(self, source: LocationSource, record_path: str):
        super().__init__()
        self.source = source
        self.available = source.available
        self.record_path = record_path
        self.trace: list[dict] = []
        self.start_time = time.time()

    def subscribe(self, callback: LocationCallback):
        super().subscribe(callback)
        self.source.subscribe(self._record)

    def _record(self, location: Location):
        self.trace.append({
            "elapsed": time.time() - self.start_time,
            "timestamp": time.time(),
            "location": location.to_dict(),
        })
        callback = self.callback
        if callback:
            callback(location)

    def unsubscribe(self):
        self.source.unsubscribe()
        super().unsubscribe()

    def get_status(self) -> str:
        return self.source.get_status()

    def save(self):
        """Save trace to file"""
        with open(self.record_path, "w") as f:
            json.dump({
                "recorded_at": datetime.now().isoformat(),
                "trace": self.trace
            }, f, indent=2)


class PlaybackLocationSource(LocationSource):
    """Plays back a recorded JSON trace, keeping its timing"""

    def __init__(self, playback_path: str, speed: float = 1.0):
        super().__init__()
        self.playback_path = playback_path
        self.speed = speed
        self.index = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        with open(playback_path) as f:
            self.trace: list[dict] = json.load(f)["trace"]

    def subscribe(self, callback: LocationCallback):
        super().subscribe(callback)
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop.is_set() and self.index < len(self.trace):
            entry = self.trace[self.index]
            self.index += 1
            callback = self.callback
            if entry.get("location") and callback:
                callback(Location.from_dict(entry["location"]))
            self._stop.wait(self.get_poll_interval())

    def get_poll_interval(self) -> float:
        """Get the interval to wait between fixes based on trace timing and speed"""
        if self.index <= 0 or self.index >= len(self.trace):
            return CONFIG["gps_poll_interval"] / self.speed

        prev_elapsed = self.trace[self.index - 1].get("elapsed", 0)
        curr_elapsed = self.trace[self.index].get("elapsed", 0)
        interval = (curr_elapsed - prev_elapsed) / self.speed
        return max(0.01, min(interval, 5.0))

    def is_finished(self) -> bool:
        return self.index >= len(self.trace)

    def unsubscribe(self):
        super().unsubscribe()
        self._stop.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        self._thread = None

    def get_status(self) -> str:
        return f"Playback ({self.index}/{len(self.trace)})"


class StepCounter:
    """Normalizes raw step signals to steps since the session started.

    ``counter`` mode takes a cumulative hardware count (the first reading is
    the baseline); ``detector`` mode counts one step per event with value 1.
    """

    COUNTER = "counter"
    DETECTOR = "detector"
    UNAVAILABLE = "unavailable"

    def __init__(self, mode: str = COUNTER):
        self.mode = mode
        self.reset()

    def reset(self):
        self.initial: Optional[float] = None
        self.steps = 0

    def update(self, value: float) -> int:
        if self.mode == self.COUNTER:
            if self.initial is None or value < self.initial:
                # A counter lower than the baseline means the device rebooted
                self.initial = value
            self.steps = int(value - self.initial)
        elif self.mode == self.DETECTOR:
            if value == 1.0:
                self.steps += 1
        return self.steps


class StepSource:
    """Push-based stream of steps since subscription"""

    def __init__(self, mode: str = StepCounter.COUNTER):
        self.counter = StepCounter(mode)
        self.callback: Optional[StepCallback] = None

    @property
    def available(self) -> bool:
        return self.counter.mode != StepCounter.UNAVAILABLE

    def subscribe(self, callback: StepCallback):
        self.counter.reset()
        self.callback = callback

    def unsubscribe(self):
        self.callback = None

    def _deliver(self, value: float):
        steps = self.counter.update(value)
        callback = self.callback
        if callback:
            callback(steps)


class PushStepSource(StepSource):
    """Raw step signals pushed in by the host application"""

    def push(self, value: float):
        if self.available:
            self._deliver(value)


class TermuxStepSource(StepSource):
    """Step counter sensor via termux-sensor, polled on a background thread"""

    SENSOR_NAME = "step counter"

    def __init__(self, poll_interval: Optional[float] = None):
        mode = StepCounter.COUNTER if shutil.which("termux-sensor") else StepCounter.UNAVAILABLE
        super().__init__(mode)
        self.poll_interval = poll_interval or CONFIG["step_poll_interval"]
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def read(self, timeout: int = 10) -> Optional[float]:
        """Read the cumulative step counter once"""
        try:
            result = subprocess.run(
                ["termux-sensor", "-s", self.SENSOR_NAME, "-n", "1"],
                capture_output=True,
                text=True,
                timeout=timeout
            )
            if result.returncode != 0 or not result.stdout.strip():
                return None
            data = json.loads(result.stdout)
            for sensor in data.values():
                values = sensor.get("values") or []
                if values:
                    return float(values[0])
            return None
        except (subprocess.TimeoutExpired, json.JSONDecodeError, AttributeError):
            return None
        except FileNotFoundError:
            self.counter.mode = StepCounter.UNAVAILABLE
            return None

    def subscribe(self, callback: StepCallback):
        super().subscribe(callback)
        if not self.available:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop.is_set():
            value = self.read()
            if value is not None and not self._stop.is_set():
                self._deliver(value)
            self._stop.wait(self.poll_interval)

    def unsubscribe(self):
        super().unsubscribe()
        self._stop.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=15)
        self._thread = None
