# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

import typing
import socket
import asyncio
import threading
import pytest
import pynmxact.transport
from pynmxact.transport import SessionConfig, MgmtProtocol, InvalidConnectionStringError
from pynmxact.nmp import NmpMessage, NmpOp, Echo, call
from pynmxact.mgmt import ResponseTimeoutError
from pynmxact.transport.loopback import MgmtResponder, echo_handler

# Shouldn't import a transport from inside a coroutine because it triggers debug warnings.
from pynmxact.transport.serial import SerialTransport, SerialSession, SerialTransportConfig
from pynmxact.transport.serial import parse_serial_conn_string, StreamParser, encode_packet


_BANNER = b"*** Booting Zephyr OS build v3.5.0 ***\r\n"


class _Console:
    """
    A device console over TCP, accessed via ``socket://``. Prints a banner on connection, then answers requests.
    """

    def __init__(self, responder: MgmtResponder) -> None:
        self.responder = responder
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self._sock.settimeout(0.1)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    @property
    def url(self) -> str:
        return f"socket://127.0.0.1:{self._sock.getsockname()[1]}"

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            with conn:
                self._serve(conn)

    def _serve(self, conn: socket.socket) -> None:
        conn.settimeout(0.1)
        conn.sendall(_BANNER)

        def on_parsed(_raw: bytes, data: typing.Optional[bytes]) -> None:
            if data is not None:
                for rep in self.responder(data):
                    conn.sendall(b"uart:~$ \r\n" + encode_packet(rep))

        parser = StreamParser(on_parsed, 0xFFFD)
        while not self._stop.is_set():
            try:
                chunk = conn.recv(1024)
            except socket.timeout:
                continue
            except OSError:
                break
            if not chunk:
                break
            parser.process_next_chunk(chunk)

    def close(self) -> None:
        self._stop.set()
        self._thread.join(1.0)
        self._sock.close()


def _unittest_serial_conn_string() -> None:
    default = SerialTransport.DEFAULT_CONFIG
    assert default == SerialTransportConfig("/dev/ttyUSB0", 115200, 512)
    assert parse_serial_conn_string("", default) == default
    assert parse_serial_conn_string("dev=COM9, baud=9600, mtu=256", default) == SerialTransportConfig(
        "COM9", 9600, 256
    )
    assert parse_serial_conn_string("socket://localhost:50905", default).port == "socket://localhost:50905"

    def bad(text: str, key: str) -> None:
        with pytest.raises(InvalidConnectionStringError) as ei:
            parse_serial_conn_string(text, default)
        assert ei.value.key == key

    bad("dev=", "dev")
    bad("baud=fast", "baud")
    bad("baud=0", "baud")
    bad("mtu=-1", "mtu")
    bad("parity=even", "parity")

    with pytest.raises(TypeError):
        SerialTransport("/dev/ttyUSB0")  # type: ignore


def _unittest_serial_transport() -> None:
    tr = SerialTransport(SerialTransportConfig("loop://", mtu=12))
    assert "loop://" in repr(tr)
    with pytest.raises(pynmxact.transport.UnsupportedOperationError):
        tr.tx(b"raw")
    ses = tr.new_session(SessionConfig())
    assert isinstance(ses, SerialSession)
    assert ses.serial_port is None
    assert ses.mtu_out == 12
    assert ses.transceiver.stream
    with pytest.raises(pynmxact.transport.InvalidTransportConfigurationError):
        tr.new_session(SessionConfig(MgmtProtocol.OMP))


async def _unittest_serial_loop() -> None:
    tr = SerialTransport(SerialTransportConfig("loop://", baudrate=9600))
    ses = tr.new_session(SessionConfig(retries=0))
    assert isinstance(ses, SerialSession)
    ses.open()
    try:
        port = ses.serial_port
        assert port is not None and port.is_open

        # Emulate the device replying with console noise around the packet. The first request takes seq 0.
        task = asyncio.ensure_future(call(ses, Echo, Echo.Request("ping"), 2.0))
        while ses.transceiver.pending_count == 0:
            await asyncio.sleep(0.01)
        rsp = NmpMessage(op=NmpOp.WRITE_RSP, group=0, id=0, seq=0, body={"r": "pong"})
        port.write(b"[00:00:01.000] <inf> main: hello\r\n" + encode_packet(rsp.compile()) + b"uart:~$ ")
        assert await task == Echo.Response(payload="pong")

        # Our own requests are looped back to us; they are requests, not responses, so they are not matched.
        with pytest.raises(ResponseTimeoutError):
            await call(ses, Echo, Echo.Request("nobody home"), 0.5)
        stats = ses.transceiver.sample_statistics()
        assert stats.unmatched_messages == 2
        assert stats.responses == 1
        assert stats.decode_failures == 0
    finally:
        ses.close()
    assert ses.serial_port is None


async def _unittest_serial_console() -> None:
    console = _Console(MgmtResponder(echo_handler))
    tr = SerialTransport(parse_serial_conn_string(console.url, SerialTransport.DEFAULT_CONFIG))
    tr.start()
    try:
        ses = tr.new_session(SessionConfig())
        for _ in range(2):
            ses.open()
            # Large enough to span several console lines.
            payload = "0123456789" * 30
            assert await call(ses, Echo, Echo.Request(payload), 5.0) == Echo.Response(payload=payload)
            assert await call(ses, Echo, Echo.Request("short"), 5.0) == Echo.Response(payload="short")
            ses.close()

        # The wrapped protocol uses the stream layout of CoAP on this transport.
        console.responder = MgmtResponder(echo_handler, MgmtProtocol.OMP, stream=True)
        omp = tr.new_session(SessionConfig(MgmtProtocol.OMP))
        omp.open()
        assert await call(omp, Echo, Echo.Request("omp"), 5.0) == Echo.Response(payload="omp")
        assert omp.transceiver.sample_statistics().decode_failures == 0
    finally:
        tr.stop()
        console.close()
    assert not omp.is_open


async def _unittest_serial_open_errors() -> None:
    ses = SerialTransport(SerialTransportConfig("nosuchscheme://whatever")).new_session(SessionConfig())
    with pytest.raises(pynmxact.transport.InvalidMediaConfigurationError):
        ses.open()
    assert not ses.is_open

    # Nobody listens on the port.
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    ses = SerialTransport(SerialTransportConfig(f"socket://127.0.0.1:{port}")).new_session(SessionConfig())
    with pytest.raises(pynmxact.transport.TransportIOError):
        ses.open()
    assert not ses.is_open
