import asyncio
import unittest
from unittest.mock import Mock

from aioframes.constants import MAX_BUFFER_LENGTH, Role
from aioframes.framing import Frame, encode_frame
from aioframes.handshake import BAD_REQUEST_RESPONSE, NOT_FOUND_RESPONSE
from aioframes.protocol import WebSocketProtocol


REQUEST = (
    b'GET /ws HTTP/1.1\r\n'
    b'Host: localhost:8080\r\n'
    b'Upgrade: websocket\r\n'
    b'Connection: Upgrade\r\n'
    b'Sec-WebSocket-Key: dGhlIHNhbXBsZSBub25jZQ==\r\n'
    b'Sec-WebSocket-Version: 13\r\n\r\n'
)


def make_transport():
    transport = Mock()
    transport.get_extra_info.side_effect = {
        'socket': None,
        'peername': ('127.0.0.1', 50000),
    }.get
    return transport


def written(transport):
    return [call.args[0] for call in transport.write.call_args_list]


class Recorder(WebSocketProtocol):
    def websocket_open(self):
        self.messages = []

    def on_message(self, message):
        self.messages.append(message)


class TestHandshake(unittest.TestCase):
    def setUp(self):
        self.transport = make_transport()
        self.protocol = Recorder()
        self.protocol.connection_made(self.transport)

    def test_upgrade(self):
        self.protocol.data_received(REQUEST)
        response = written(self.transport)[0]
        self.assertTrue(response.startswith(b'HTTP/1.1 101 Switching Protocols'))
        self.assertIn(b'Sec-WebSocket-Accept: s3pPLMBiTxaQ9kYGzzhZRbK+xOo=',
                      response)
        self.transport.close.assert_not_called()

    def test_request_split_across_packets(self):
        self.protocol.data_received(REQUEST[:20])
        self.transport.write.assert_not_called()
        self.protocol.data_received(REQUEST[20:])
        self.assertTrue(written(self.transport)[0].startswith(b'HTTP/1.1 101'))

    def test_wrong_path(self):
        self.protocol.data_received(REQUEST.replace(b'/ws', b'/other'))
        self.assertEqual(written(self.transport), [NOT_FOUND_RESPONSE])
        self.transport.close.assert_called_once_with()

    def test_missing_key(self):
        self.protocol.data_received(REQUEST.replace(
            b'Sec-WebSocket-Key: dGhlIHNhbXBsZSBub25jZQ==\r\n', b''))
        self.assertEqual(written(self.transport), [BAD_REQUEST_RESPONSE])
        self.transport.close.assert_called_once_with()

    def test_plain_http_request(self):
        self.protocol.data_received(b'GET / HTTP/1.1\r\nHost: localhost\r\n\r\n')
        self.assertEqual(written(self.transport), [NOT_FOUND_RESPONSE])
        self.transport.close.assert_called_once_with()

    def test_plain_get_on_websocket_path(self):
        self.protocol.data_received(b'GET /ws HTTP/1.1\r\nHost: localhost\r\n\r\n')
        self.assertEqual(written(self.transport), [NOT_FOUND_RESPONSE])

    def test_post_upgrade(self):
        self.protocol.data_received(REQUEST.replace(b'GET', b'POST'))
        self.assertEqual(written(self.transport), [BAD_REQUEST_RESPONSE])
        self.transport.close.assert_called_once_with()

    def test_frame_behind_request(self):
        self.protocol.data_received(
            REQUEST + encode_frame('early', Role.CLIENT))
        self.assertEqual(self.protocol.messages, ['early'])


class TestFrames(unittest.TestCase):
    def setUp(self):
        self.transport = make_transport()
        self.protocol = Recorder()
        self.protocol.connection_made(self.transport)
        self.protocol.data_received(REQUEST)
        self.transport.write.reset_mock()

    def test_messages_in_order(self):
        data = (encode_frame('one', Role.CLIENT) +
                encode_frame('two', Role.CLIENT))
        self.protocol.data_received(data)
        self.assertEqual(self.protocol.messages, ['one', 'two'])

    def test_partial_frame_buffered(self):
        frame = encode_frame('x' * 1000, Role.CLIENT)
        self.protocol.data_received(frame[:3])
        self.protocol.data_received(frame[3:500])
        self.assertEqual(self.protocol.messages, [])
        self.protocol.data_received(frame[500:])
        self.assertEqual(self.protocol.messages, ['x' * 1000])
        self.transport.close.assert_not_called()

    def test_send_is_unmasked(self):
        self.protocol.send('reply')
        self.assertEqual(written(self.transport), [b'\x81\x05reply'])

    def test_invalid_utf8_closes(self):
        self.protocol.data_received(b'\x81\x02\xc3\x28')
        self.transport.close.assert_called_once_with()
        self.assertEqual(self.protocol.messages, [])

    def test_unsupported_frame_closes(self):
        # binary frame
        self.protocol.data_received(b'\x82\x01\x00')
        self.transport.close.assert_called_once_with()

    def test_fragment_closes(self):
        self.protocol.data_received(b'\x01\x03abc')
        self.transport.close.assert_called_once_with()

    def test_rsv_bits_close(self):
        self.protocol.data_received(b'\xc1\x02hi')
        self.transport.close.assert_called_once_with()
        self.assertEqual(self.protocol.messages, [])

    def test_close_frame(self):
        self.protocol.data_received(b'\x88\x00' + encode_frame('late'))
        self.transport.close.assert_called_once_with()
        self.assertEqual(self.protocol.messages, [])

    def test_buffer_exceeded(self):
        self.protocol.data_received(b'\x81\x7f' + b'\x00' * MAX_BUFFER_LENGTH)
        self.transport.close.assert_called_once_with()


class TestEcho(unittest.TestCase):
    def test_default_echo(self):
        transport = make_transport()
        protocol = WebSocketProtocol()
        protocol.connection_made(transport)
        protocol.data_received(REQUEST)
        protocol.data_received(encode_frame('echo me', Role.CLIENT))

        frame = Frame(written(transport)[-1])
        self.assertFalse(frame.masked)
        self.assertEqual(frame.text, 'echo me')
        protocol.connection_lost(None)


class Failing(WebSocketProtocol):
    async def on_message(self, message):
        if message == 'boom':
            raise RuntimeError(message)

        await asyncio.sleep(10)


class TestMessageTasks(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.transport = make_transport()
        self.protocol = Failing()
        self.protocol.connection_made(self.transport)
        self.protocol.data_received(REQUEST)

    async def test_failure_logged(self):
        with self.assertLogs('aioframes.protocol', 'ERROR') as logs:
            self.protocol.data_received(encode_frame('boom', Role.CLIENT))
            self.assertEqual(len(self.protocol.message_tasks), 1)
            await asyncio.sleep(0)
            await asyncio.sleep(0)

        self.assertIn('on_message failed', logs.output[0])
        self.assertEqual(self.protocol.message_tasks, set())

    async def test_pending_cancelled_on_connection_lost(self):
        self.protocol.data_received(encode_frame('wait', Role.CLIENT))
        task, = self.protocol.message_tasks

        await asyncio.sleep(0)
        self.protocol.connection_lost(None)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        self.assertTrue(task.cancelled())
        self.assertEqual(self.protocol.message_tasks, set())


class Repeater(WebSocketProtocol):
    interval = 0.01
    interval_message = 'tick'


class TestRepeatingSend(unittest.IsolatedAsyncioTestCase):
    async def test_sends_until_connection_lost(self):
        transport = make_transport()
        protocol = Repeater()
        protocol.connection_made(transport)
        protocol.data_received(REQUEST)
        task = protocol.interval_task

        await asyncio.sleep(0.05)
        ticks = [data for data in written(transport) if data == b'\x81\x04tick']
        self.assertGreaterEqual(len(ticks), 1)

        protocol.connection_lost(None)
        self.assertIsNone(protocol.interval_task)
        await asyncio.sleep(0)
        self.assertTrue(task.cancelled())

        count = transport.write.call_count
        await asyncio.sleep(0.03)
        self.assertEqual(transport.write.call_count, count)

    async def test_no_task_without_interval(self):
        protocol = Recorder()
        protocol.connection_made(make_transport())
        protocol.data_received(REQUEST)
        self.assertIsNone(protocol.interval_task)


if __name__ == '__main__':
    unittest.main()
