import logging, time, threading
import redis
from flask import current_app

from ..errors import RateLimited

log = logging.getLogger(__name__)

_r = None
_lock = threading.Lock()


class _MemStore:
    def __init__(self):
        self._data = {}
        self._exp = {}
        self._lock = threading.Lock()

    def _cleanup(self):
        now = time.time()
        expired = [k for k, ts in self._exp.items() if ts <= now]
        for k in expired:
            self._data.pop(k, None)
            self._exp.pop(k, None)

    def incr(self, key):
        with self._lock:
            self._cleanup()
            v = int(self._data.get(key, '0')) + 1
            self._data[key] = str(v)
            return v

    def expire(self, key, ttl):
        with self._lock:
            self._cleanup()
            self._exp[key] = time.time() + ttl


def r():
    global _r
    if _r is not None:
        return _r
    with _lock:
        if _r is not None:
            return _r
        url = current_app.config.get('REDIS_URL')
        if current_app.config.get('USE_REDIS', True) and url:
            try:
                client = redis.from_url(url, decode_responses=True)
                # Test connection once; fallback to memory on failure
                client.ping()
                _set(client)
                return _r
            except redis.RedisError as e:
                log.warning('redis unavailable (%s); using in-process rate limits', e)
        _set(_MemStore())
        return _r


def _set(store):
    global _r
    _r = store


def check_rate_scanner(scanner_id: str, limit: int|None=None, window: int|None=None):
    cfg = current_app.config
    if limit is None:
        limit = int(cfg.get('SCAN_RATE_LIMIT', 60))
    if window is None:
        window = int(cfg.get('SCAN_RATE_WINDOW_S', 60))
    k = f"rl:scan:{scanner_id}:{int(time.time()//window)}"
    v = r().incr(k)
    r().expire(k, window)
    if v > limit:
        raise RateLimited(f'scanner {scanner_id} exceeded {limit} scans per {window}s')
