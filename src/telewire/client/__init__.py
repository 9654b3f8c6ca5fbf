from .mtproto import (
    PROD_DCS,
    TEST_DCS,
    ClientInit,
    MtprotoClient,
    MtprotoClientError,
    NotAuthenticatedError,
    default_transport_factory,
    wrap_with_layer_init,
)

__all__ = [
    "PROD_DCS",
    "TEST_DCS",
    "ClientInit",
    "MtprotoClient",
    "MtprotoClientError",
    "NotAuthenticatedError",
    "default_transport_factory",
    "wrap_with_layer_init",
]
