import asyncio
import logging
import ssl
import urllib.parse

from .constants import Flags, Role
from .constants import MAX_BUFFER_LENGTH
from .exception import BufferExceeded
from .exception import MalformedHeaderError
from .handshake import build_request, derive_accept_token, random_key
from .protocol import Protocol


logger = logging.getLogger(__name__)


class ClientProtocol(Protocol):
    role = Role.CLIENT

    def __init__(self, uri=None):
        """
        We need to setup a couple of async
        instances to wait for connection events
        and data, in order to pass it to our
        coroutine
        """
        super().__init__()
        self.uri = uri
        self.connection_event = asyncio.Event()
        self.recv_queue = asyncio.Queue()

    def connection_made(self, context):
        """
        Send our HTTP upgrade request as soon
        as the socket is up.
        """
        super().connection_made(context)
        self.construct_and_send_header()

    def construct_and_send_header(self):
        self.ws_key = random_key()
        self.context.write(
            build_request(self.uri.path, self.uri.netloc, self.ws_key))

    def check_response(self, header):
        """
        The server has to answer 101 and prove it read our
        key by sending back the matching accept token.
        """
        lines = bytes(header).split(b'\r\n')

        if not lines[0].startswith(b'HTTP/1.1 101'):
            raise MalformedHeaderError(
                'Upgrade refused: {}'.format(lines[0].decode('latin-1')))

        headers = {}
        for line in lines[1:]:
            args = line.split(b':', 1)

            if len(args) == 2:
                headers[args[0].decode('latin-1').strip().lower()] = (
                    args[1].strip().decode('latin-1'))

        if headers.get('sec-websocket-accept') != derive_accept_token(
                self.ws_key):
            raise MalformedHeaderError('Sec-WebSocket-Accept mismatch')

    def shake_hands(self):
        """
        Handshake response from WebSocket server,
        validate and upgrade. Frames that came in the
        same packet as the response are handled right away.
        """
        handshake_fin = self.recv_buffer.find(b'\r\n\r\n')

        if handshake_fin < 0:
            if len(self.recv_buffer) > MAX_BUFFER_LENGTH:
                self.abort(BufferExceeded('Handshake too large'))
                self.connection_event.set()
            return

        header = self.recv_buffer[:handshake_fin + 4]
        del self.recv_buffer[:handshake_fin + 4]

        try:
            self.check_response(header)

        except MalformedHeaderError as exc:
            logger.warning('Handshake with %s failed: %s', self.peer, exc)
            self.connection_event.set()
            self.close()
            return

        self.flags |= Flags.HANDSHAKE_COMPLETE
        self.connection_event.set()

        if self.recv_buffer:
            self.receive_frames()

    def on_message(self, message):
        """
        A Websocket message was received, forward it
        to our queue, which then forwards it to
        our coroutine.
        """
        self.recv_queue.put_nowait(message)

    def connection_lost(self, exc):
        """
        The connection to our websocket has been lost,
        forward this to our data queue AND event
        """
        logger.info('Disconnected from %s', self.uri.netloc)
        self.connection_event.set()
        self.recv_queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        """
        This is our actual iterator,
        self.recv_queue contains None when the
        client is disconnected.
        """
        queue_item = await self.recv_queue.get()

        if queue_item is None:
            raise StopAsyncIteration

        return queue_item


class Connect:

    def __init__(self, uri):
        self.uri = urllib.parse.urlparse(uri, allow_fragments=False)

        if self.uri.scheme not in ('ws', 'wss'):
            raise ValueError('Unsupported protocol [ws/wss]://domain')

        if not self.uri.netloc:
            raise ValueError('Bad network address')

        if not self.uri.port:
            raise ValueError('No port provided in WS uri')

    def connect_websocket(self):
        def factory():
            return ClientProtocol(uri=self.uri)

        context = None
        if self.uri.scheme == 'wss':
            context = ssl.create_default_context()

        return asyncio.get_running_loop().create_connection(
            factory,
            self.uri.hostname,
            self.uri.port,
            ssl=context
        )

    async def __aenter__(self):
        transport, context = await self.connect_websocket()
        await context.connection_event.wait()

        if not context.flags & Flags.HANDSHAKE_COMPLETE:
            transport.close()
            raise ConnectionRefusedError()

        self.transport = transport
        return context

    async def __aexit__(self, exc_type, exc, tb):
        self.transport.close()
