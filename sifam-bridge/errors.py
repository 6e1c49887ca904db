"""Error taxonomy shared by the proxy and the sync jobs."""


class BridgeError(Exception):
    """Base for every failure the sync loop isolates per entity."""


class TransportError(BridgeError):
    """Network failure, timeout, 5xx or 429. Safe to retry."""


class UpstreamRejection(BridgeError):
    """Well-formed error answer from Shopify or SIFAM. Never retried."""

    def __init__(self, message: str, status: int | None = None, body=None):
        super().__init__(message)
        self.status = status
        self.body = body


class UnsupportedMutation(UpstreamRejection):
    """GraphQL says the mutation does not exist on this API version."""


class ConfigurationError(Exception):
    """Missing or invalid run configuration. Fatal at startup."""
