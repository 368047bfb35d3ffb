import logging
import socket
from typing import Iterator, Optional, Tuple

from docker.errors import APIError

from .demux import demux_stream
from .errors import RuntimeFailure

logger = logging.getLogger(__name__)

READ_SIZE = 4096


def _read_output(raw) -> str:
    if raw is None:
        return ""
    if isinstance(raw, tuple):
        out = b"".join([p for p in raw if p])
    else:
        out = raw
    return out.decode("utf-8", errors="replace")


def run_step(container, cmd, workdir: str = "/") -> str:
    """Run a short helper command and return its output, raising on failure."""
    try:
        rc, out = container.exec_run(cmd=cmd, workdir=workdir)
    except APIError as e:
        raise RuntimeFailure(f"Container step failed: {e.explanation or e}")
    text = _read_output(out)
    if rc != 0:
        raise RuntimeFailure(f"Container step exited with {rc}: {text.strip()}")
    return text


class ExecSession:
    """One attached, non-tty process inside a container.

    Output is read from the hijacked socket of exec_start and decoded
    with the stream demultiplexer. close() may be called from another
    thread to abort a pending read.
    """

    def __init__(self, container, command: str, attach_stdin: bool = False):
        self.container = container
        self.command = command
        self.attach_stdin = attach_stdin
        self.exec_id: Optional[str] = None
        self._sock = None
        self._closed = False

    @property
    def api(self):
        return self.container.client.api

    @property
    def _raw(self):
        # SocketIO wrapper on unix sockets, plain socket elsewhere
        return getattr(self._sock, "_sock", self._sock)

    def start(self) -> None:
        try:
            res = self.api.exec_create(
                self.container.id,
                ["sh", "-c", self.command],
                stdin=self.attach_stdin,
                stdout=True,
                stderr=True,
                tty=False,
            )
            self.exec_id = res["Id"]
            self._sock = self.api.exec_start(self.exec_id, tty=False, socket=True)
        except APIError as e:
            raise RuntimeFailure(f"Could not start process: {e.explanation or e}")

    def send_input(self, text: str) -> None:
        raw = self._raw
        raw.sendall(text.encode("utf-8"))
        try:
            raw.shutdown(socket.SHUT_WR)
        except OSError as e:
            logger.debug("Half-close of exec stdin failed: %s", e)

    def chunks(self) -> Iterator[bytes]:
        raw = self._raw
        while True:
            try:
                data = raw.recv(READ_SIZE)
            except OSError:
                if self._closed:
                    return
                raise
            if not data:
                return
            yield data

    def collect(self) -> Tuple[str, str]:
        return demux_stream(self.chunks())

    def exit_code(self) -> Optional[int]:
        if self.exec_id is None:
            return None
        return self.api.exec_inspect(self.exec_id).get("ExitCode")

    def close(self) -> None:
        if self._closed or self._sock is None:
            self._closed = True
            return
        self._closed = True
        raw = self._raw
        try:
            raw.shutdown(socket.SHUT_RDWR)
        except OSError:
            # already disconnected by the peer
            pass
        self._sock.close()
        if raw is not self._sock:
            raw.close()
