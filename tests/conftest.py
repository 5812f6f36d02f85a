import socket
import threading
from typing import Iterator

import pytest


@pytest.fixture
def raw_reply_server() -> Iterator:
    """A local TCP server that answers every request with fixed bytes."""

    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(4)
    reply = {"payload": b""}

    def serve() -> None:
        while True:
            try:
                conn, _ = listener.accept()
            except OSError:
                return
            with conn:
                conn.recv(4096)
                conn.sendall(reply["payload"])

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()

    def url_for(payload: bytes) -> str:
        reply["payload"] = payload
        return f"http://127.0.0.1:{listener.getsockname()[1]}/"

    yield url_for
    listener.close()
    thread.join(timeout=1.0)
