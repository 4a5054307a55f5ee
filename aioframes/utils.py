import itertools


def mask(data, key):
    """
    XOR data with a cyclic 4 byte key, returns a new
    bytes object. Applying it twice with the same key
    gives back the original data.
    """
    return bytes(b ^ m for b, m in zip(data, itertools.cycle(key)))
