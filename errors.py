"""Error types raised while proxying a request."""
from fastapi import HTTPException
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR, HTTP_502_BAD_GATEWAY

class ProxyError(HTTPException):
    """Base class for failures that abort a proxied call before any response is sent."""
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Proxy request failed"

    def __init__(self, detail: str = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)

class BadRequestBodyError(ProxyError):
    """The inbound body claimed to be JSON but could not be decoded as an object."""
    default_detail = "Failed to modify request body"

class InvalidTargetError(ProxyError):
    default_detail = "Failed to parse target URL"

class TokenMintingError(ProxyError):
    default_detail = "Failed to mint upstream token"

class UpstreamUnavailableError(ProxyError):
    """The upstream could not be reached or failed before sending a response."""
    status_code = HTTP_502_BAD_GATEWAY
    default_detail = "Failed to forward request"
