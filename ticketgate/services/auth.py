"""
Caller identity for the HTTP layer.

Which provider is active is decided once from config. When neither an API
key nor a JWT verification key is configured the app runs with DisabledAuth,
which authenticates nobody, instead of a missing/None provider.
"""
import hmac
import logging
from dataclasses import dataclass

import jwt

log = logging.getLogger(__name__)

ROLE_ADMIN = 'admin'
ROLE_SCANNER = 'scanner'
ROLE_CUSTOMER = 'customer'


@dataclass(frozen=True)
class Principal:
    id: str
    role: str

    def can_scan(self) -> bool:
        return self.role in (ROLE_ADMIN, ROLE_SCANNER)

    def can_view(self, owner_id: str) -> bool:
        return self.role == ROLE_ADMIN or self.id == owner_id


class AuthProvider:
    enabled = True

    def authenticate(self, request) -> Principal|None:
        raise NotImplementedError


class DisabledAuth(AuthProvider):
    enabled = False

    def authenticate(self, request):
        return None


class ApiKeyAuth(AuthProvider):
    def __init__(self, api_key: str):
        self._key = api_key

    def authenticate(self, request):
        key = request.headers.get('X-Admin-Key') or ''
        if not key or not hmac.compare_digest(key.encode(), self._key.encode()):
            return None
        return Principal(request.headers.get('X-Scanner-Id') or 'admin', ROLE_ADMIN)


class JwtAuth(AuthProvider):
    def __init__(self, public_key: str, algorithm: str = 'RS256'):
        self._key = public_key
        self._alg = algorithm

    def authenticate(self, request):
        auth = request.headers.get('Authorization', '')
        if not auth.startswith('Bearer '):
            return None
        token = auth.split(' ', 1)[1]
        try:
            payload = jwt.decode(token, self._key, algorithms=[self._alg])
        except jwt.ExpiredSignatureError:
            log.info('rejected expired bearer token')
            return None
        except jwt.InvalidTokenError as e:
            log.info('rejected bearer token: %s', e)
            return None
        sub = payload.get('sub')
        if not sub:
            return None
        return Principal(str(sub), str(payload.get('role') or ROLE_CUSTOMER))


class ChainAuth(AuthProvider):
    def __init__(self, providers):
        self.providers = list(providers)

    def authenticate(self, request):
        for p in self.providers:
            principal = p.authenticate(request)
            if principal is not None:
                return principal
        return None


def build_auth_provider(config) -> AuthProvider:
    providers = []
    if config.get('JWT_PUBLIC_KEY'):
        providers.append(JwtAuth(config['JWT_PUBLIC_KEY'], config.get('JWT_ALG', 'RS256')))
    if config.get('ADMIN_API_KEY'):
        providers.append(ApiKeyAuth(config['ADMIN_API_KEY']))
    if not providers:
        log.warning('no ADMIN_API_KEY or JWT_PUBLIC_KEY configured; authentication disabled')
        return DisabledAuth()
    if len(providers) == 1:
        return providers[0]
    return ChainAuth(providers)
