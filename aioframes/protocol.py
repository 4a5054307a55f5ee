import asyncio
import inspect
import logging
import socket

from .constants import Flags, Opcode, Role
from .constants import MAX_BUFFER_LENGTH
from .constants import DEFAULT_PATH, DEFAULT_INTERVAL_MESSAGE
from .exception import BufferExceeded
from .exception import MalformedHeaderError
from .exception import UnsupportedFrameError
from .exception import WebSocketError
from .framing import FrameDecoder
from .framing import encode_frame
from .handshake import Handshake
from .handshake import BAD_REQUEST_RESPONSE, NOT_FOUND_RESPONSE


logger = logging.getLogger(__name__)


class Protocol(asyncio.Protocol):
    role = Role.SERVER

    def set_nodelay(self):
        """
        Disable Nagle's Algorithm in order to avoid and latency
        when sending data through a websocket or raw connection.
        """
        sock = self.context.get_extra_info('socket')

        if sock is not None:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, True)

    def create_buffers(self):
        self.recv_buffer = bytearray()
        self.flags = Flags.AWAITING_HANDSHAKE
        self.frame_decoder = FrameDecoder(self.recv_buffer)
        self.message_tasks = set()

    @property
    def peer(self):
        return self.context.get_extra_info('peername')

    def connection_made(self, context):
        """
        Connection established called by asyncio's create_server
        class. We'll use this as an __init__ function and setup
        our various buffers. First up, let's handle our sockets.
        """
        self.context = context
        self.set_nodelay()
        self.create_buffers()

    def data_received(self, data):
        """
        Respond to WebSocket handshake requests and then iterate
        over websocket frames.
        """
        if self.flags & Flags.HANDSHAKE_COMPLETE:
            if len(data) + len(self.recv_buffer) > MAX_BUFFER_LENGTH:
                self.abort(BufferExceeded('Buffer Exceeded'))
                return

            self.recv_buffer.extend(data)
            self.receive_frames()

        else:
            self.recv_buffer.extend(data)
            self.shake_hands()

    def receive_frames(self):
        """
        Frames are handled in the order they arrived; a partial
        frame stays buffered for the next data_received call.
        """
        try:
            for frame in self.frame_decoder:
                logger.debug('%s frame from %s (%d bytes)',
                             frame.opcode.name, self.peer, frame.payload_len)

                if any(frame.rsv):
                    raise UnsupportedFrameError(
                        'RSV bits set without a negotiated extension')

                if frame.opcode == Opcode.TEXT and frame.fin:
                    self.dispatch_message(frame.text)

                elif frame.opcode == Opcode.CLOSE:
                    logger.info('Close frame from %s', self.peer)
                    self.close()
                    return

                else:
                    raise UnsupportedFrameError(
                        'Only unfragmented text frames are supported, '
                        'got {} (fin={})'.format(frame.opcode.name, frame.fin))

        except WebSocketError as exc:
            self.abort(exc)

    def dispatch_message(self, message):
        if inspect.iscoroutinefunction(self.on_message):
            task = asyncio.ensure_future(self.on_message(message))
            self.message_tasks.add(task)
            task.add_done_callback(self.message_done)

        else:
            self.on_message(message)

    def message_done(self, task):
        self.message_tasks.discard(task)

        if not task.cancelled() and task.exception() is not None:
            logger.error('on_message failed for %s', self.peer,
                         exc_info=task.exception())

    def cancel_message_tasks(self):
        for task in list(self.message_tasks):
            task.cancel()

    def on_message(self, message):
        raise NotImplementedError('on_message not implemented')

    def shake_hands(self):
        raise NotImplementedError('shake_hands not implemented')

    def send(self, message):
        """
        Send a text frame, masked when we're the client
        """
        self.context.write(encode_frame(message, self.role))

    def abort(self, exc):
        """
        A protocol error only ever takes down its own connection
        """
        logger.warning('Closing %s: %s: %s',
                       self.peer, type(exc).__name__, exc)
        self.close()

    def close(self):
        self.context.close()
        self.recv_buffer.clear()


class WebSocketProtocol(Protocol):
    """
    Server side of a connection. Subclasses configure the
    upgrade path and an optional message sent every
    `interval` seconds for as long as the connection lives.
    """
    path = DEFAULT_PATH
    interval = None
    interval_message = DEFAULT_INTERVAL_MESSAGE

    def connection_made(self, context):
        super().connection_made(context)
        self.interval_task = None
        logger.debug('Connection from %s', self.peer)

    def websocket_open(self):
        pass

    def on_message(self, message):
        """
        Server acts as an echo server by default
        """
        logger.info('Message from %s: %r', self.peer, message)
        self.send(message)

    def shake_hands(self):
        """
        Perform our WebSocket handshake and disconnect anything
        that doesn't look like one :')
        """
        header_end = self.recv_buffer.find(b'\r\n\r\n')

        if header_end < 0:
            if len(self.recv_buffer) > MAX_BUFFER_LENGTH:
                self.abort(BufferExceeded('Handshake too large'))
            return

        header = self.recv_buffer[:header_end + 4]
        del self.recv_buffer[:header_end + 4]

        try:
            self.header = Handshake(header, check=False)

            # Plain HTTP and other paths get a 404, like any unrouted request
            if self.header.path != self.path or not self.header.is_upgrade:
                logger.info('No websocket at %s, requested by %s',
                            self.header.path, self.peer)
                self.context.write(NOT_FOUND_RESPONSE)
                self.close()
                return

            self.header.check_header()

        except MalformedHeaderError as exc:
            logger.warning('Bad upgrade request from %s: %s', self.peer, exc)
            self.context.write(BAD_REQUEST_RESPONSE)
            self.close()
            return

        self.context.write(self.header.response_header)
        self.flags |= Flags.HANDSHAKE_COMPLETE
        logger.info('Upgraded %s on %s', self.peer, self.path)

        self.websocket_open()

        if self.interval:
            self.interval_task = asyncio.ensure_future(self.send_repeatedly())

        # Frames sent right behind the request
        if self.recv_buffer:
            self.receive_frames()

    async def send_repeatedly(self):
        while True:
            await asyncio.sleep(self.interval)
            self.send(self.interval_message)

    def connection_lost(self, exc):
        if self.interval_task is not None:
            self.interval_task.cancel()
            self.interval_task = None

        self.cancel_message_tasks()
        logger.info('Connection ended %s', self.peer)
        self.recv_buffer.clear()
