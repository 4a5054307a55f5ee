import random
import struct

from .constants import Opcode, Role
from .constants import MAX_SHORT_LENGTH, MAX_MEDIUM_LENGTH
from .exception import EncodingError
from .exception import TruncatedFrameError
from .exception import UnsupportedFrameError
from .utils import mask


class Frame:
    """
    A single frame read from the front of a buffer.

    FIN, RSV and the opcode are recorded but not enforced
    here, callers decide what to do with them. The payload
    is always an unmasked copy, the buffer itself is never
    modified.
    """

    def __init__(self, buffer):
        self.parse_header(buffer)
        self.parse_length(buffer)
        self.parse_payload(buffer)

    def parse_header(self, buffer):
        """
        byte 1 consists of
         - fin (Last Frame)
         - rsv1, rsv2, rsv3 (Reserved bits)
         - Opcode (Operation code)
        """
        if len(buffer) < 2:
            raise TruncatedFrameError('Frame header needs 2 bytes')

        self.fin = True if buffer[0] & 0b10000000 else False
        self.rsv = (
            True if buffer[0] & 0b01000000 else False,
            True if buffer[0] & 0b00100000 else False,
            True if buffer[0] & 0b00010000 else False,
        )
        self.masked = True if buffer[1] & 0b10000000 else False

        try:
            self.opcode = Opcode(buffer[0] & 0b00001111)

        except ValueError:
            raise UnsupportedFrameError(
                'Reserved opcode 0x{:x}'.format(buffer[0] & 0b00001111))

    def parse_length(self, buffer):
        """
        byte 2 consists of
         - Masked (whether the data is masked)
         - Payload Length, 126 and 127 announce a
           16 or 64 bit big-endian length after it
        """
        self.payload_len = buffer[1] & 0b01111111
        self.mask_start = 2

        if self.payload_len == 126:
            if len(buffer) < 4:
                raise TruncatedFrameError('Missing 16 bit length')

            self.payload_len = struct.unpack('!H', buffer[2:4])[0]
            self.mask_start = 4

        elif self.payload_len == 127:
            if len(buffer) < 10:
                raise TruncatedFrameError('Missing 64 bit length')

            self.payload_len = struct.unpack('!Q', buffer[2:10])[0]
            self.mask_start = 10

        self.payload_start = self.mask_start

    def parse_payload(self, buffer):
        """
        The mask key, when present, sits between the
        length and the payload.
        """
        self.mask_key = None

        if self.masked:
            if len(buffer) < self.mask_start + 4:
                raise TruncatedFrameError('Missing mask key')

            self.payload_start = self.mask_start + 4
            self.mask_key = bytes(buffer[self.mask_start:self.payload_start])

        if self.payload_start + self.payload_len > len(buffer):
            raise TruncatedFrameError(
                'Frame declares {} payload bytes, {} available'.format(
                    self.payload_len, len(buffer) - self.payload_start))

        self.data = bytes(
            buffer[self.payload_start:self.payload_start + self.payload_len])

        if self.masked:
            self.data = mask(self.data, self.mask_key)

    @property
    def text(self):
        try:
            return self.data.decode('utf-8')

        except UnicodeDecodeError as exc:
            raise EncodingError('Invalid UTF-8 payload') from exc

    def __len__(self):
        """
        Returns the frame length so that it can be stripped
        from the receive buffer
        """
        return self.payload_start + self.payload_len


class FrameDecoder:
    """
    Yields every complete frame at the front of a shared
    receive buffer and strips it. Iteration ends as soon as
    the remaining bytes don't hold a whole frame, they stay
    in the buffer until more data is extended onto it.
    """

    def __init__(self, buffer):
        self.buffer = buffer

    def __iter__(self):
        return self

    def __next__(self):
        try:
            frame = Frame(self.buffer)

        except TruncatedFrameError:
            raise StopIteration

        del self.buffer[:len(frame)]
        return frame


def decode_frame(buffer):
    """
    Text payload of the frame at the start of buffer.

    Opcode and FIN are not acted on, close/ping/binary
    frames are decoded as text just the same.
    """
    return Frame(buffer).text


def encode_frame(message, role=Role.SERVER, mask_key=None):
    """
    Encode a single FIN text frame. Frames sent by a client
    carry the mask flag and a 4 byte mask key, frames sent
    by a server are never masked.
    """
    if not isinstance(message, str):
        raise TypeError('Invalid data type, expecting str')

    data = message.encode('utf-8')
    length = len(data)
    is_client = role is Role.CLIENT

    header = bytearray()
    header.append(0x80 | Opcode.TEXT)

    b1 = 0x80 if is_client else 0
    if length <= MAX_SHORT_LENGTH:
        header.append(b1 | length)

    elif length <= MAX_MEDIUM_LENGTH:
        header.append(b1 | 126)
        header.extend(struct.pack('!H', length))

    else:
        header.append(b1 | 127)
        header.extend(struct.pack('!Q', length))

    if is_client:
        if mask_key is None:
            mask_key = struct.pack('!I', random.getrandbits(32))

        elif len(mask_key) != 4:
            raise ValueError('Mask key must be 4 bytes')

        header.extend(mask_key)
        data = mask(data, mask_key)

    header.extend(data)
    return bytes(header)
