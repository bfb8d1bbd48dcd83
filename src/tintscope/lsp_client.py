from __future__ import annotations

import contextlib
import json
import logging
import os
import subprocess
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Sequence

from lsprotocol import types

from tintscope.exceptions import TintscopeError
from tintscope.json_types import JSONObject, JSONValue, RpcMessage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
_SHUTDOWN_GRACE_SECONDS = 2.0


class LspClientError(TintscopeError):
    def __init__(self, message: str, *, error: JSONValue = None):
        super().__init__(message)
        self.error = error


class MalformedFrameError(LspClientError):
    """An inbound frame was skipped because its header or body was invalid."""


def _write_rpc(stream, message: RpcMessage) -> None:
    payload = json.dumps(message).encode("utf-8")
    header = f"Content-Length: {len(payload)}\r\n\r\n".encode("utf-8")
    stream.write(header + payload)
    stream.flush()


def _read_exact(stream, length: int) -> bytes | None:
    body = bytearray()
    while len(body) < length:
        chunk = stream.read(length - len(body))
        if not chunk:
            return None
        body.extend(chunk)
    return bytes(body)


def _read_rpc(stream) -> RpcMessage | None:
    """Read one framed message; `None` means the stream ended.

    Raises `MalformedFrameError` after consuming a frame that cannot be used,
    so the caller can keep reading from the next frame.
    """
    header = b""
    while b"\r\n\r\n" not in header:
        chunk = stream.read(1)
        if not chunk:
            return None
        header += chunk
    head = header[: -len(b"\r\n\r\n")]
    length: int | None = None
    for line in head.split(b"\r\n"):
        if line.lower().startswith(b"content-length:"):
            try:
                length = int(line.split(b":", 1)[1].strip())
            except ValueError:
                length = None
            break
    if length is None or length < 0:
        raise MalformedFrameError(f"Invalid LSP header: {head!r}")
    body = _read_exact(stream, length)
    if body is None:
        return None
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedFrameError(f"Failed to parse LSP message: {exc}") from exc
    if not isinstance(message, dict):
        raise MalformedFrameError("Invalid LSP message payload")
    return message


def _legend_from_capabilities(capabilities: JSONObject) -> types.SemanticTokensLegend | None:
    provider = capabilities.get("semanticTokensProvider")
    if not isinstance(provider, dict):
        return None
    legend = provider.get("legend")
    if not isinstance(legend, dict):
        return None
    token_types = legend.get("tokenTypes")
    token_modifiers = legend.get("tokenModifiers")
    return types.SemanticTokensLegend(
        token_types=[str(item) for item in token_types] if isinstance(token_types, list) else [],
        token_modifiers=(
            [str(item) for item in token_modifiers] if isinstance(token_modifiers, list) else []
        ),
    )


class LspClient:
    """JSON-RPC client for a language server running as a subprocess.

    A background thread reads framed messages from the server's stdout and
    resolves the future registered for each response id. Messages the server
    sends on its own (notifications, requests) are dropped.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        token_types: Sequence[str] = (),
        token_modifiers: Sequence[str] = (),
        process_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.command = list(command)
        self.timeout = timeout
        self.token_types = list(token_types)
        self.token_modifiers = list(token_modifiers)
        self._process_factory = process_factory
        self.proc: subprocess.Popen | None = None
        self.legend: types.SemanticTokensLegend | None = None
        self.position_encoding: str = types.PositionEncodingKind.Utf16.value
        self._pending: dict[int, Future] = {}
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._next_id = 1
        self._reader: threading.Thread | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self, root_uri: str) -> JSONObject:
        try:
            self.proc = self._process_factory(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                bufsize=0,
            )
        except OSError as exc:
            raise LspClientError(f"Failed to start LSP {self.command!r}: {exc}") from exc
        if self.proc.stdin is None or self.proc.stdout is None:
            self.kill()
            raise LspClientError(f"LSP {self.command!r} was started without stdio pipes")
        self._reader = threading.Thread(
            target=self._read_loop, args=(self.proc.stdout,), name="lsp-reader", daemon=True
        )
        self._reader.start()

        result = self.request(
            types.INITIALIZE,
            {
                "processId": os.getpid(),
                "rootUri": root_uri,
                "capabilities": {
                    "textDocument": {
                        "semanticTokens": {
                            "dynamicRegistration": False,
                            "tokenTypes": self.token_types,
                            "tokenModifiers": self.token_modifiers,
                            "formats": ["relative"],
                            "requests": {"range": False, "full": {"delta": False}},
                        },
                        "synchronization": {
                            "dynamicRegistration": False,
                            "willSave": False,
                            "willSaveWaitUntil": False,
                            "didSave": False,
                        },
                    },
                    "workspace": {"workspaceFolders": True},
                },
            },
        )
        if not isinstance(result, dict):
            raise LspClientError(f"Unexpected initialize result: {type(result).__name__}")
        capabilities = result.get("capabilities")
        if isinstance(capabilities, dict):
            self.legend = _legend_from_capabilities(capabilities)
            encoding = capabilities.get("positionEncoding")
            if isinstance(encoding, str):
                self.position_encoding = encoding
        self.notify(types.INITIALIZED, {})
        return result

    def _read_loop(self, stream) -> None:
        try:
            while True:
                try:
                    message = _read_rpc(stream)
                except MalformedFrameError as exc:
                    logger.warning("%s", exc)
                    continue
                if message is None:
                    break
                self._dispatch(message)
        except (OSError, ValueError) as exc:
            logger.error("Error reading from LSP stdout: %s", exc)
        finally:
            self._closed = True
            with self._lock:
                pending = list(self._pending.values())
                self._pending.clear()
            for future in pending:
                if not future.done():
                    future.set_exception(LspClientError("LSP stream closed"))

    def _dispatch(self, message: RpcMessage) -> None:
        if "method" in message:
            logger.debug("Ignoring server message %s", message.get("method"))
            return
        request_id = message.get("id")
        if not isinstance(request_id, int):
            return
        with self._lock:
            future = self._pending.pop(request_id, None)
        if future is None:
            return
        error = message.get("error")
        if error:
            future.set_exception(LspClientError(f"LSP error: {error}", error=error))
        else:
            future.set_result(message.get("result"))

    def _write(self, message: RpcMessage) -> None:
        if self.proc is None or self.proc.stdin is None:
            raise LspClientError("LSP process not running")
        with self._write_lock:
            try:
                _write_rpc(self.proc.stdin, message)
            except (OSError, ValueError) as exc:
                raise LspClientError(f"Failed to write to LSP: {exc}") from exc

    def send_request(self, method: str, params: JSONValue) -> tuple[int, Future]:
        with self._lock:
            request_id = self._next_id
            self._next_id += 1
            future: Future = Future()
            self._pending[request_id] = future
        if self._closed:
            self._forget(request_id)
            raise LspClientError("LSP stream closed")
        try:
            self._write({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
        except LspClientError:
            self._forget(request_id)
            raise
        return request_id, future

    def _forget(self, request_id: int) -> None:
        with self._lock:
            self._pending.pop(request_id, None)

    def request(self, method: str, params: JSONValue, *, timeout: float | None = None) -> JSONValue:
        request_id, future = self.send_request(method, params)
        try:
            return future.result(timeout=self.timeout if timeout is None else timeout)
        except FutureTimeoutError as exc:
            self._forget(request_id)
            raise LspClientError(f"LSP request '{method}' timed out") from exc

    def notify(self, method: str, params: JSONValue) -> None:
        self._write({"jsonrpc": "2.0", "method": method, "params": params})

    def get_semantic_tokens(
        self, uri: str, text: str, language_id: str = "plaintext"
    ) -> types.SemanticTokens | None:
        try:
            self.notify(
                types.TEXT_DOCUMENT_DID_OPEN,
                {
                    "textDocument": {
                        "uri": uri,
                        "languageId": language_id,
                        "version": 1,
                        "text": text,
                    }
                },
            )
            result = self.request(
                types.TEXT_DOCUMENT_SEMANTIC_TOKENS_FULL, {"textDocument": {"uri": uri}}
            )
        except LspClientError as exc:
            logger.warning("Semantic tokens request failed for %s: %s", uri, exc)
            return None
        if not isinstance(result, dict):
            return None
        data = result.get("data")
        if not isinstance(data, list):
            return None
        result_id = result.get("resultId")
        return types.SemanticTokens(
            data=[int(item) for item in data],
            result_id=result_id if isinstance(result_id, str) else None,
        )

    def shutdown(self) -> None:
        if self.proc is None:
            return
        if self.closed:
            # The reader already saw end of stream.
            self.kill()
            return
        try:
            self.request(types.SHUTDOWN, None, timeout=min(self.timeout, 5.0))
            self.notify(types.EXIT, None)
        except LspClientError as exc:
            logger.warning("Error during LSP shutdown: %s", exc)
        finally:
            self.kill()

    def kill(self) -> None:
        proc = self.proc
        if proc is None:
            return
        if proc.stdin is not None:
            with contextlib.suppress(OSError):
                proc.stdin.close()
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=_SHUTDOWN_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait(timeout=_SHUTDOWN_GRACE_SECONDS)
