class WebSocketError(Exception):
    pass


class MalformedHeaderError(WebSocketError):
    """
    The upgrade request is missing its key or
    one of the headers an upgrade requires.
    """


class TruncatedFrameError(WebSocketError):
    """
    The buffer holds fewer bytes than the frame
    header declares. Not fatal for a stream, more
    data may still arrive.
    """


class UnsupportedFrameError(WebSocketError):
    pass


class EncodingError(WebSocketError, ValueError):
    pass


class BufferExceeded(WebSocketError):
    pass
