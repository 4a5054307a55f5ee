import base64
import hashlib
import random

from .constants import HANDSHAKE_MAGIC
from .exception import MalformedHeaderError


HANDSHAKE_TEMPLATE = (
    b'HTTP/1.1 101 Switching Protocols',
    b'Upgrade: websocket',
    b'Connection: Upgrade',
    b'Sec-WebSocket-Accept: %s',
    b'\r\n'
)

NOT_FOUND_RESPONSE = b'HTTP/1.1 404 Not Found\r\n\r\n'
BAD_REQUEST_RESPONSE = b'HTTP/1.1 400 Bad Request\r\n\r\n'


def derive_accept_token(key):
    """
    Concatenate the client's Sec-WebSocket-Key with the magic
    GUID, SHA-1 it and base64 the digest. The key is opaque,
    a malformed one just yields a token the client rejects.
    """
    if key is None:
        raise MalformedHeaderError('Sec-WebSocket-Key is missing')

    if isinstance(key, str):
        key = key.encode('utf-8')

    digest = hashlib.sha1(bytes(key) + HANDSHAKE_MAGIC.encode('ascii')).digest()
    return base64.b64encode(digest).decode('ascii')


def random_key():
    return base64.b64encode(
        bytes(random.getrandbits(8) for i in range(16))).decode('ascii')


def build_request(path, host, key):
    """
    Upgrade request sent by a client
    """
    return ''.join([
        'GET {} HTTP/1.1\r\n'.format(path or '/'),
        'Host: {}\r\n'.format(host),
        'Upgrade: websocket\r\n',
        'Connection: Upgrade\r\n',
        'Sec-WebSocket-Key: {}\r\n'.format(key),
        'Sec-WebSocket-Version: 13\r\n\r\n'
    ]).encode('utf-8')


class Handshake:

    def __init__(self, raw_data, check=True):
        self.method = None
        self.path = None
        self.headers = {}

        self.parse_headers(raw_data)

        if check:
            self.check_header()

    def parse_headers(self, raw_data):
        """
        Parse the request line and header lines. Header names
        are stored lowercased since HTTP treats them
        case-insensitively.
        """
        lines = bytes(raw_data).split(b'\r\n')
        request_line = lines[0].decode('latin-1').split(' ')

        if len(request_line) != 3:
            raise MalformedHeaderError('Bad request line')

        self.method, self.path, _ = request_line

        for header in lines[1:]:
            header_args = header.split(b':', 1)

            if len(header_args) == 2:
                name = header_args[0].decode('latin-1').strip().lower()
                self.headers[name] = header_args[1].strip()

    def check_header(self):
        """
        Make sure our client is trying to upgrade their connection,
        otherwise we don't really care about them.
        """
        for name in ('sec-websocket-key', 'connection', 'upgrade'):
            if name not in self.headers:
                raise MalformedHeaderError('{} not in headers'.format(name))

        if not self.headers['sec-websocket-key']:
            raise MalformedHeaderError('Sec-WebSocket-Key is empty')

        if self.method != 'GET':
            raise MalformedHeaderError(
                'Upgrade needs GET, got {}'.format(self.method))

        if self.headers['upgrade'].lower() != b'websocket':
            raise MalformedHeaderError('Upgrade is not websocket')

        tokens = [token.strip().lower()
                  for token in self.headers['connection'].split(b',')]
        if b'upgrade' not in tokens:
            raise MalformedHeaderError('Connection does not list Upgrade')

    @property
    def is_upgrade(self):
        return 'upgrade' in self.headers

    @property
    def key(self):
        return self.headers['sec-websocket-key']

    @property
    def accept_token(self):
        return derive_accept_token(self.key)

    @property
    def response_header(self):
        return b'\r\n'.join(HANDSHAKE_TEMPLATE) % (
            self.accept_token.encode('ascii'))
