"""Upstream credential minting: turns a split `accessKey|secretKey` bearer into a short-lived JWT."""
import time
import logging
import jwt
from typing import Optional

from errors import TokenMintingError
from models import SplitCredential, TokenClaims

logger = logging.getLogger("sensechat-proxy.auth")

TOKEN_ALGORITHM = "HS256"
TOKEN_TTL_SECONDS = 120
TOKEN_NOT_BEFORE_SKEW = 5

class AuthManager:
    """Builds the upstream Authorization header from the inbound one."""

    @staticmethod
    def parse_split_credential(authorization: Optional[str]) -> Optional[SplitCredential]:
        """
        Extract the key pair from `<scheme> accessKey|secretKey`.

        Returns None for anything that does not parse; the caller forwards
        the original header in that case.
        """
        if not authorization:
            return None

        parts = authorization.split(" ")
        if len(parts) < 2:
            return None

        pair = parts[1]
        if "|" not in pair:
            return None

        keys = pair.split("|")
        if len(keys) != 2:
            return None

        access_key, secret_key = keys
        if not access_key or not secret_key:
            return None

        return SplitCredential(access_key=access_key, secret_key=secret_key)

    @staticmethod
    def mint_token(access_key: str, secret_key: str, now: Optional[int] = None) -> str:
        """
        Mint an HS256 token for the upstream.

        Args:
            access_key: Issuer claim
            secret_key: HMAC key
            now: Unix seconds; defaults to the current time

        Returns:
            Compact `header.payload.signature` token, base64url without padding

        Raises:
            jwt.InvalidKeyError: secret_key looks like a PEM or SSH public key
            TokenMintingError: any other encoding failure
        """
        if now is None:
            now = int(time.time())

        claims = TokenClaims(
            iss=access_key,
            exp=now + TOKEN_TTL_SECONDS,
            nbf=now - TOKEN_NOT_BEFORE_SKEW,
        )

        try:
            token = jwt.encode(claims.model_dump(), secret_key, algorithm=TOKEN_ALGORITHM)
        except jwt.InvalidKeyError:
            raise
        except (TypeError, ValueError, jwt.PyJWTError) as e:
            raise TokenMintingError(f"Token generation failed: {str(e)}")

        # PyJWT 1.x returned bytes
        if isinstance(token, bytes):
            token = token.decode("utf-8")

        return token

    @staticmethod
    def resolve_authorization(authorization: Optional[str], now: Optional[int] = None) -> Optional[str]:
        """Return a replacement `Bearer <token>` header, or None to keep the original."""
        credential = AuthManager.parse_split_credential(authorization)
        if credential is None:
            if authorization:
                logger.debug("Authorization header is not a split credential, forwarding as-is")
            return None

        try:
            token = AuthManager.mint_token(credential.access_key, credential.secret_key, now=now)
        except jwt.InvalidKeyError as e:
            logger.warning(f"Secret key for issuer {credential.access_key} rejected as HMAC key, forwarding as-is: {e}")
            return None

        logger.debug(f"Minted upstream token for issuer {credential.access_key}")
        return f"Bearer {token}"
