import logging

import uvloop

import aioframes


async def connect_client():
    async with aioframes.Connect('ws://localhost:8080/ws') as context:
        context.send('One arbitrary message')
        context.send('Another arbitrary message')

        async for message in context:
            logging.info('received: %s', message)

        logging.info('Disconnected')


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    uvloop.run(connect_client())
