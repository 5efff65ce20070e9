"""Client for the bridge service process (line-delimited JSON over stdio)."""

from __future__ import annotations

import json
import os
import queue
import subprocess
import sys
import threading
import uuid
from typing import Any

from loguru import logger

from rfcbridge.bridge.protocol import CommandRequest, Envelope
from rfcbridge.bridge.serialization import decode_envelope, encode_request_line, safe_dict
from rfcbridge.utils.exceptions import classify_remote_error


class BridgeCallError(Exception):
    """Error envelope returned by the bridge service."""

    def __init__(self, code: str, message: str, command: str = "", trace: str | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.command = command
        self.trace = trace
        self.kind = classify_remote_error(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class BridgeClient:
    """Spawns ``python -m rfcbridge serve`` and talks to it request by request."""

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        connector: str | None = None,
        python: str | None = None,
        env: dict[str, str] | None = None,
        timeout: float = 30.0,
    ):
        self.config = dict(config or {})
        self.connector = connector
        self.python = python or sys.executable
        self.env = env
        self.timeout = timeout
        self._proc: subprocess.Popen[str] | None = None
        self._reader_thread: threading.Thread | None = None
        self._pending: dict[str, queue.Queue[dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _command(self) -> list[str]:
        command = [self.python, "-m", "rfcbridge", "serve"]
        if self.connector:
            command += ["--connector", self.connector]
        return command

    def _spawn(self) -> None:
        if self._proc is not None:
            returncode = self._proc.poll()
            if returncode is None:
                return
            # report the crash once; the next request starts a fresh service
            self._proc = None
            raise BridgeCallError("BRIDGE_DIED", f"bridge service process exited with code {returncode}")
        env = os.environ.copy()
        env.update(self.env or {})
        env.setdefault("PYTHONUNBUFFERED", "1")
        self._proc = subprocess.Popen(
            self._command(),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
            bufsize=1,
        )
        if not self._proc.stdout or not self._proc.stdin:
            raise BridgeCallError("BRIDGE_START_FAILED", "bridge service stdio is unavailable")
        self._reader_thread = threading.Thread(target=self._reader_loop, daemon=True)
        self._reader_thread.start()
        stderr_thread = threading.Thread(target=self._stderr_loop, daemon=True)
        stderr_thread.start()

    def _stderr_loop(self) -> None:
        proc = self._proc
        if not proc or not proc.stderr:
            return
        for line in proc.stderr:
            text = line.strip()
            if text:
                logger.debug("[rfcbridge] {}", text)

    def _reader_loop(self) -> None:
        proc = self._proc
        if not proc or not proc.stdout:
            return
        for line in proc.stdout:
            text = line.strip()
            if not text.startswith("{"):
                continue
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("Bridge sent invalid JSON: {}", text[:200])
                continue
            req_id = safe_dict(payload).get("id")
            if not isinstance(req_id, str):
                continue
            with self._lock:
                waiter = self._pending.get(req_id)
            if waiter is not None:
                waiter.put(payload)
        self._fail_pending("bridge service process exited")

    def _fail_pending(self, message: str) -> None:
        with self._lock:
            waiters = list(self._pending.values())
        for waiter in waiters:
            if waiter.empty():
                waiter.put({"success": False, "error": message, "code": "BRIDGE_DIED"})

    def _request(self, command: str, payload: dict[str, Any] | None = None, timeout: float | None = None) -> Envelope:
        with self._lock:
            self._spawn()
            assert self._proc is not None
            assert self._proc.stdin is not None
            req_id = uuid.uuid4().hex
            waiter: queue.Queue[dict[str, Any]] = queue.Queue(maxsize=1)
            self._pending[req_id] = waiter
            frame = CommandRequest(command=command, payload=payload or {}, id=req_id)
            try:
                self._proc.stdin.write(encode_request_line(frame) + "\n")
                self._proc.stdin.flush()
            except OSError as exc:
                self._pending.pop(req_id, None)
                raise BridgeCallError("BRIDGE_DIED", f"bridge service stdin closed: {exc}", command) from exc
        try:
            raw = waiter.get(timeout=timeout or self.timeout)
        except queue.Empty as exc:
            raise BridgeCallError("BRIDGE_TIMEOUT", f"bridge timeout for {command}", command) from exc
        finally:
            with self._lock:
                self._pending.pop(req_id, None)
        return decode_envelope(raw)

    def call(self, command: str, payload: dict[str, Any] | None = None, timeout: float | None = None) -> Any:
        """Send one command; returns ``data`` or raises BridgeCallError."""
        envelope = self._request(command, payload, timeout)
        if not envelope.success:
            raise BridgeCallError(envelope.code or "BRIDGE_ERROR", envelope.error or "command failed", command, envelope.trace)
        return envelope.data

    def connect(self, config: dict[str, Any] | None = None) -> dict[str, Any]:
        """Register the destination; ``config`` uses the wire keys (host, client, sysNr, ...)."""
        payload = {**self.config, **(config or {})}
        if not payload:
            raise ValueError("no destination config given")
        return safe_dict(self.call("connect", payload))

    def ping(self) -> dict[str, Any]:
        return safe_dict(self.call("ping"))

    def sync(self) -> dict[str, Any]:
        return safe_dict(self.call("sync"))

    def check_dlls(self) -> dict[str, Any]:
        return safe_dict(self.call("checkdlls"))

    def invoke(self, function: str, params: dict[str, Any] | None = None) -> dict[str, str]:
        payload: dict[str, Any] = {"function": function}
        if params:
            payload["params"] = params
        return safe_dict(self.call("invoke", payload))

    def invoke_function(
        self,
        function: str,
        *,
        import_params: dict[str, Any] | None = None,
        import_structures: dict[str, dict[str, Any]] | None = None,
        import_tables: dict[str, list[dict[str, Any]]] | None = None,
        export_params: list[str] | None = None,
        structures: list[str] | None = None,
        tables: list[str] | None = None,
        end_context: bool = False,
        diagnostics: bool = False,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"function": function}
        optional = {
            "importParams": import_params,
            "importStructures": import_structures,
            "importTables": import_tables,
            "exportParams": export_params,
            "structures": structures,
            "tables": tables,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        if end_context:
            payload["endContext"] = True
        if diagnostics:
            payload["diagnostics"] = True
        return safe_dict(self.call("invokecomplex", payload))

    def close(self) -> None:
        """Unregister the destination and stop the service process."""
        proc = self._proc
        if not proc:
            return
        try:
            if proc.poll() is None:
                try:
                    self.call("close", timeout=5.0)
                    self._request("shutdown", timeout=2.0)
                except BridgeCallError as exc:
                    logger.debug("Bridge shutdown handshake failed: {}", exc)
                proc.wait(timeout=5.0)
        except subprocess.TimeoutExpired:
            proc.kill()
        finally:
            self._proc = None

    def __enter__(self) -> "BridgeClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
