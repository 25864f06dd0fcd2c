"""Time-stepped one-time codes (RFC 6238 / RFC 4226 truncation)."""
import hmac, hashlib, struct, time

DEFAULT_PERIOD = 30
DEFAULT_DIGITS = 8


def interval_index(ts: float, period: int = DEFAULT_PERIOD) -> int:
    return int(ts // period)


def code_for_interval(key: bytes, counter: int, digits: int = DEFAULT_DIGITS) -> str:
    mac = hmac.new(key, struct.pack('>Q', counter), hashlib.sha1).digest()
    offset = mac[-1] & 0x0F
    binary = struct.unpack('>I', mac[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(binary % (10 ** digits)).zfill(digits)


def current_code(key: bytes, ts: float|None=None, period: int = DEFAULT_PERIOD,
                 digits: int = DEFAULT_DIGITS) -> str:
    if ts is None:
        ts = time.time()
    return code_for_interval(key, interval_index(ts, period), digits)


def match_interval(key: bytes, code: str, ts: float, period: int = DEFAULT_PERIOD,
                   digits: int = DEFAULT_DIGITS, window: int = 1) -> int|None:
    """Return the step offset (-window..+window) at which `code` matches, or None."""
    if len(code) != digits:
        return None
    now = interval_index(ts, period)
    for delta in range(-window, window + 1):
        counter = now + delta
        if counter < 0:
            continue
        expected = code_for_interval(key, counter, digits)
        if hmac.compare_digest(expected.encode(), code.encode()):
            return delta
    return None
