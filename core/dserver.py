import asyncio
import logging
import signal
from typing import Optional, Tuple

from core import codec, policy
from core.blacklist import Blacklist
from core.correlation import CORRELATION_SLOTS, CorrelationTable
from utils.metrics import ProxyMetrics
from utils.requestlog import close_request_log, setup_request_log


BUFFER_SIZE = 1000
DNS_PORT = 53

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, getattr(signal, 'SIGQUIT', None))

logger = logging.getLogger("sentineld.dserver")


def _fmt(addr) -> str:
    return f"{addr[0]}#{addr[1]}"


class DNSProxy:
    """State of one running proxy: blacklist, correlation table and both endpoints.

    Every datagram is handled synchronously inside the transport callback, so a
    query is decided, recorded and sent before the loop looks at the next one.
    """

    def __init__(self,
                 blacklist: Blacklist,
                 upstream_addr: Tuple[str, int],
                 buffer_size: int = BUFFER_SIZE,
                 max_name_length: int = codec.DEFAULT_MAX_NAME_LENGTH,
                 correlation_slots: int = CORRELATION_SLOTS,
                 metrics: Optional[ProxyMetrics] = None,
                 request_logger: Optional[logging.Logger] = None):
        self.blacklist = blacklist
        self.upstream_addr = (upstream_addr[0], int(upstream_addr[1]))
        self.buffer_size = buffer_size
        self.max_name_length = max_name_length
        self.table = CorrelationTable(correlation_slots)
        self.metrics = metrics or ProxyMetrics(enabled=False)
        self.request_logger = request_logger
        self.client_transport = None
        self.upstream_transport = None

    # ---------- lifecycle ----------
    async def start(self, listen_ip: str, listen_port: int) -> Tuple[str, int]:
        """Bind both endpoints. Returns the bound client-facing address."""
        loop = asyncio.get_running_loop()
        self.upstream_transport, _ = await loop.create_datagram_endpoint(
            lambda: UpstreamProtocol(self),
            local_addr=('0.0.0.0', 0)
        )
        try:
            self.client_transport, _ = await loop.create_datagram_endpoint(
                lambda: ClientProtocol(self),
                local_addr=(listen_ip, listen_port)
            )
        except OSError:
            self.upstream_transport.close()
            self.upstream_transport = None
            raise
        bound = self.client_transport.get_extra_info('sockname')
        logger.info(f"DNS UDP listener running on {bound[0]}:{bound[1]}, forwarding to {_fmt(self.upstream_addr)}")
        return bound[0], bound[1]

    def close(self):
        if self.client_transport is not None:
            self.client_transport.close()
            self.client_transport = None
        if self.upstream_transport is not None:
            self.upstream_transport.close()
            self.upstream_transport = None
        logger.debug("sockets closed")

    # ---------- event logging ----------
    def _log_event(self, status: str, qname: Optional[str], src, dst, details: str = '', answer: bool = False):
        arrow = '<--' if answer else '-->'
        left, right = (dst, src) if answer else (src, dst)
        msg = f"{_fmt(left)}\t{arrow}\t{_fmt(right)}\t{status}:\t{qname or 'unknown name'}"
        if details:
            msg += f"\t{details}"
        if status == 'blacklisted':
            logger.info(msg)
        else:
            logger.debug(msg)
        if self.request_logger:
            self.request_logger.info(msg)

    def _send(self, transport, data, addr, endpoint: str) -> bool:
        if transport is None:
            logger.warning(f"{endpoint} endpoint closed, dropping datagram for {_fmt(addr)}")
            return False
        try:
            transport.sendto(bytes(data), addr)
        except OSError as e:
            logger.error(f"Error sending packet to {_fmt(addr)}: {e}")
            self.metrics.io_error(endpoint)
            return False
        return True

    # ---------- client side ----------
    def handle_query(self, data: bytes, addr):
        data = data[:self.buffer_size]
        try:
            decision = policy.evaluate(data, self.blacklist, self.max_name_length)
        except codec.TruncatedHeader as e:
            logger.warning(f"Dropping datagram from {_fmt(addr)}: {e}")
            self.metrics.query('TRUNCATED')
            return
        self.metrics.query(decision.action)

        if decision.action == policy.FORWARD:
            self.table.record(decision.header.id, addr[1], addr[0])
            self._log_event('query', decision.qname, addr, self.upstream_addr)
            self._send(self.upstream_transport, data, self.upstream_addr, 'upstream')
            return

        if decision.action == policy.FORMAT_ERROR:
            self._log_event('format error', decision.qname, addr, addr, decision.reason)
            logger.warning(f"Wrong query received from {_fmt(addr)}, sending RCODE=1 (format error)")
        elif decision.action == policy.NOT_IMPLEMENTED:
            self._log_event('not implemented', decision.qname, addr, addr, decision.reason)
            logger.warning(f"Function not implemented for {_fmt(addr)}, sending RCODE=4 (not implemented)")
        else:
            self._log_event('blacklisted', decision.qname, addr, addr)
        reply = policy.error_response(data, decision)
        self._send(self.client_transport, reply, addr, 'client')

    # ---------- upstream side ----------
    def handle_answer(self, data: bytes, addr):
        data = data[:self.buffer_size]
        if (addr[0], addr[1]) != self.upstream_addr:
            logger.warning(f"Answer from unexpected source {_fmt(addr)}")
            self.metrics.unexpected_source()
        try:
            header = codec.decode_header(data)
        except codec.TruncatedHeader as e:
            logger.debug(f"Dropping short answer from {_fmt(addr)}: {e}")
            self.metrics.answer('dropped')
            return
        try:
            qname = codec.decode_question(data, self.max_name_length)[0]
        except codec.CodecError:
            qname = None
        client = self.table.resolve(header.id)
        if client is None:
            logger.debug(f"No pending query for id {header.id}, answer dropped")
            self.metrics.answer('dropped')
            return
        client_addr = (client[1], client[0])
        self._log_event('answer', qname, addr, client_addr, codec.rcode_text(header.rcode), answer=True)
        if self._send(self.client_transport, data, client_addr, 'client'):
            self.metrics.answer('delivered')


class ClientProtocol(asyncio.DatagramProtocol):
    def __init__(self, proxy: DNSProxy):
        self.proxy = proxy
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport
        logger.debug("client-facing endpoint ready")

    def datagram_received(self, data, addr):
        try:
            self.proxy.handle_query(data, addr)
        except Exception as e:
            logger.exception(f"Error handling query from {addr}: {e}")

    def error_received(self, exc):
        logger.warning(f"Not able to receive packet on client endpoint: {exc}")
        self.proxy.metrics.io_error('client')


class UpstreamProtocol(asyncio.DatagramProtocol):
    def __init__(self, proxy: DNSProxy):
        self.proxy = proxy
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport
        logger.debug("upstream-facing endpoint ready")

    def datagram_received(self, data, addr):
        try:
            self.proxy.handle_answer(data, addr)
        except Exception as e:
            logger.exception(f"Error handling answer from {addr}: {e}")

    def error_received(self, exc):
        logger.warning(f"Not able to receive packet on upstream endpoint: {exc}")
        self.proxy.metrics.io_error('upstream')


def _install_signal_handlers(loop, stop: asyncio.Event):
    installed = []
    for sig in SHUTDOWN_SIGNALS:
        if sig is None:
            continue
        try:
            loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            # not on the main thread, or a platform without loop signal support
            logger.debug(f"Cannot install handler for {sig!r}")
    return installed


async def run_server(listen_ip: str,
                     listen_port: int,
                     upstream_ip: str,
                     blacklist: Blacklist,
                     upstream_port: int = DNS_PORT,
                     buffer_size: int = BUFFER_SIZE,
                     max_name_length: int = codec.DEFAULT_MAX_NAME_LENGTH,
                     correlation_slots: int = CORRELATION_SLOTS,
                     dns_logging_enabled: bool = False,
                     dns_log_dir: str = '/var/log/sentineld',
                     dns_log_retention_days: int = 7,
                     metrics_enabled: bool = False,
                     metrics_port: int = 8000,
                     stop_event: Optional[asyncio.Event] = None,
                     ready=None):
    """Run the proxy until ``stop_event`` is set or a shutdown signal arrives.

    ``ready`` may be a callable; it receives the bound client-facing address once
    both endpoints are up.
    """
    loop = asyncio.get_running_loop()
    stop = stop_event or asyncio.Event()
    installed = _install_signal_handlers(loop, stop) if stop_event is None else []

    metrics = ProxyMetrics(enabled=metrics_enabled, port=metrics_port)
    request_logger = setup_request_log(dns_log_dir, dns_log_retention_days) if dns_logging_enabled else None
    proxy = DNSProxy(
        blacklist,
        (upstream_ip, upstream_port),
        buffer_size=buffer_size,
        max_name_length=max_name_length,
        correlation_slots=correlation_slots,
        metrics=metrics,
        request_logger=request_logger,
    )
    try:
        bound = await proxy.start(listen_ip, listen_port)
        metrics.start()
        if ready is not None:
            ready(bound)
        await stop.wait()
        logger.info("Shutdown requested")
    finally:
        logger.debug("Clearing sockets...")
        proxy.close()
        close_request_log(request_logger)
        for sig in installed:
            loop.remove_signal_handler(sig)
