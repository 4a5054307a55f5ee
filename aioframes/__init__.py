from .constants import Opcode, Role
from .exception import WebSocketError
from .exception import MalformedHeaderError
from .exception import TruncatedFrameError
from .exception import UnsupportedFrameError
from .exception import EncodingError
from .exception import BufferExceeded
from .framing import Frame, FrameDecoder, decode_frame, encode_frame
from .handshake import Handshake, derive_accept_token
from .protocol import WebSocketProtocol
from .client_protocol import ClientProtocol, Connect
