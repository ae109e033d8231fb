"""Exception hierarchy shared by the node and the download client."""


class PeerShareError(Exception):
    """
    Base exception class for all PeerShare errors.
    """
    pass


class ConnectionFailureError(PeerShareError):
    """
    Raised when dialing, reading from or writing to a peer fails,
    including the peer closing the stream before a reply arrived.
    """
    pass


class MalformedMessageError(PeerShareError):
    """
    Raised when a line received from the wire cannot be decoded into a message.
    """
    pass


class UnencodablePayloadError(PeerShareError):
    """
    Raised when a message cannot be serialized for the wire.
    """
    pass


class UnexpectedMessageError(PeerShareError):
    """
    Raised when a peer replies with a message type other than the one expected.
    """
    pass


class FileNotFoundInCatalogError(PeerShareError):
    """
    Raised when a requested content hash is absent from a node's catalog.
    """
    pass


class IntegrityFailureError(PeerShareError):
    """
    Raised when received data does not match its SHA-256 checksum.
    """
    pass


class CatalogError(PeerShareError):
    """
    Raised when the catalog of a shared directory cannot be built.
    """
    pass
