import asyncio
import logging

import uvloop

import aioframes
from aioframes.constants import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_PATH
from aioframes.constants import DEFAULT_INTERVAL


class Server(aioframes.WebSocketProtocol):
    path = DEFAULT_PATH
    interval = DEFAULT_INTERVAL

    def on_message(self, message):
        logging.info('message: %s', message)
        self.send('test')


async def main():
    loop = asyncio.get_running_loop()
    server = await loop.create_server(Server, DEFAULT_HOST, DEFAULT_PORT)
    logging.info('Server listening on ws://localhost:%d%s',
                 DEFAULT_PORT, DEFAULT_PATH)

    async with server:
        await server.serve_forever()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    uvloop.run(main())
