"""
Utility functions for connection ids and timestamps
"""
import random
import string
import time


def generate_connection_id(length: int = 16) -> str:
    """Generate a random connection ID"""
    alphabet = string.ascii_lowercase + string.digits
    return "conn_" + "".join(random.choice(alphabet) for _ in range(length))


def now_ms() -> int:
    """Wall-clock time in milliseconds since the epoch"""
    return int(time.time() * 1000)
