import ipaddress
from typing import Tuple

MIN_PORT = 1
MAX_PORT = 65534


def parse_hosts(host_input: str) -> Tuple[int, int]:
    """
    Parses "a.b.c.d" or "a.b.c.d/bits" into inclusive numeric bounds.
    The range starts at the address as typed and runs to the end of its
    block: "10.0.0.5/30" -> 10.0.0.5 .. 10.0.0.7.
    """
    address, sep, bits = host_input.strip().partition("/")
    try:
        start = int(ipaddress.IPv4Address(address))
    except ValueError:
        raise ValueError("Invalid IP address given.") from None

    if not sep:
        return start, start

    if not bits.isdigit() or not 0 <= int(bits) <= 32:
        raise ValueError(f"Invalid netmask '/{bits}', must be within 0-32.")
    hostmask = (1 << (32 - int(bits))) - 1
    return start, start | hostmask


def parse_port_range(port_input: str) -> Tuple[int, int]:
    """
    Parses "80" or "1-1024" into inclusive bounds.
    Example: "20-25" -> (20, 25)
    """
    start_s, sep, end_s = port_input.strip().partition("-")
    try:
        start = int(start_s)
        end = int(end_s) if sep else start
    except ValueError:
        raise ValueError("Invalid port range.") from None

    if start > end:
        raise ValueError("Invalid port range.")
    if start < MIN_PORT or end > MAX_PORT:
        raise ValueError(f"Port must be a number within {MIN_PORT}-{MAX_PORT}")
    return start, end


def format_address(address: int) -> str:
    return str(ipaddress.IPv4Address(address))


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    mins, secs = divmod(rest, 60)
    return f"{hours} hours, {mins} mins, {secs} secs"


def estimate_duration(total_targets: int, pool_size: int, timeout: float) -> float:
    # Worst case: every batch of pool_size attempts runs into the timeout.
    return (total_targets // pool_size) * timeout + timeout
