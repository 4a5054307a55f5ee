from setuptools import setup


setup(
    name='aioframes',
    version='0.1',
    description='WebSocket handshake and framing for AsyncIO',
    packages=['aioframes'],
    python_requires='>=3.10',
    install_requires=[
        'uvloop>=0.18'
    ],
    extras_require={
        'test': ['pytest'],
    },
)
