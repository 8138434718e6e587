"""Logging module for Walkaround."""

import json
import threading
from datetime import datetime
from typing import Optional, Callable


class Logger:
    """Logs messages with structured data to console and/or file"""

    def __init__(self, log_path: Optional[str] = None, callback: Optional[Callable] = None,
                 echo: bool = True):
        self.log_path = log_path
        self.callback = callback
        self.echo = echo
        self.file = None
        # Stream, step and address threads all log through one instance
        self._lock = threading.Lock()
        if log_path:
            self.file = open(log_path, "a", encoding="utf-8")
            self._write_header()

    def _write_header(self):
        if self.file:
            self.file.write(f"\n{'='*60}\n")
            self.file.write(f"Walkaround Log - {datetime.now().isoformat()}\n")
            self.file.write(f"{'='*60}\n\n")
            self.file.flush()

    def log(self, message: str, data: Optional[dict] = None, level: str = "INFO"):
        """Log a message with optional structured data"""
        timestamp = datetime.now().isoformat()
        line = f"[{timestamp}] {message}" if level == "INFO" else f"[{timestamp}] {level} {message}"
        if data:
            line += f" | {json.dumps(data, ensure_ascii=False, default=str)}"
        with self._lock:
            if self.echo:
                print(line)
            if self.file:
                self.file.write(line + "\n")
                self.file.flush()
        if self.callback:
            self.callback(message, data)

    def warning(self, message: str, data: Optional[dict] = None):
        self.log(message, data, level="WARNING")

    def error(self, message: str, data: Optional[dict] = None,
              exc: Optional[BaseException] = None):
        if exc is not None:
            data = dict(data or {})
            data["error"] = repr(exc)
        self.log(message, data, level="ERROR")

    def close(self):
        with self._lock:
            if self.file:
                self.file.close()
                self.file = None
