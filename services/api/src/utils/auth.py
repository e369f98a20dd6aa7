from typing import Any, Dict, Optional

import jwt
from pydantic import BaseModel

from utils import log

logger = log.get_logger(__name__)


class AuthClientConfig(BaseModel):
    jwk_url: str
    audience: str
    issuer: str


class AuthClient:
    """Verifies OIDC bearer tokens against the identity provider's JWK set.

    Token issuance belongs to the identity provider; this service only
    checks signatures and reads the claims it needs (``sub`` and ``roles``).
    """

    def __init__(self, config: AuthClientConfig):
        self.config = config
        self._jwks = jwt.PyJWKClient(config.jwk_url, cache_keys=True)

    def decode_jwt(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            signing_key = self._jwks.get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
                audience=self.config.audience,
                issuer=self.config.issuer,
            )
        except jwt.PyJWTError as e:
            logger.warning(f"Rejected bearer token: {e}")
            return None
