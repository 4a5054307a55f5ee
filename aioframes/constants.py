import enum


class Flags:
    AWAITING_HANDSHAKE = 0b00000000
    HANDSHAKE_COMPLETE = 0b00000001


class Opcode(enum.IntEnum):
    CONTINUATION = 0x00
    TEXT = 0x01
    BINARY = 0x02
    CLOSE = 0x08
    PING = 0x09
    PONG = 0x0a


class Role(enum.Enum):
    CLIENT = 'client'
    SERVER = 'server'


HANDSHAKE_MAGIC = '258EAFA5-E914-47DA-95CA-C5AB0DC85B11'

# Largest payload lengths for the 7-bit and 16-bit length classes
MAX_SHORT_LENGTH = 125
MAX_MEDIUM_LENGTH = 65535

# 1MB Max Buffer Size
MAX_BUFFER_LENGTH = 1024 * 1024

DEFAULT_HOST = '0.0.0.0'
DEFAULT_PORT = 8080
DEFAULT_PATH = '/ws'
DEFAULT_INTERVAL = 5.0
DEFAULT_INTERVAL_MESSAGE = 'repeat after me'
