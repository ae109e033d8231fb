"""Wire protocol: message definitions and the newline-delimited JSON codec.

Every message is an envelope ``{"type": <tag>, "payload": <object>}`` sent as
one line. The payload shape is fixed by the tag, so decoding is a single
type-directed validation against the union of all message models.
"""

import base64
import binascii
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_serializer,
    field_validator,
)
from pydantic_core import PydanticSerializationError

from common.constants import MESSAGE_TERMINATOR
from common.exceptions import MalformedMessageError, UnencodablePayloadError


class MessageType(str, Enum):
    """Type tags carried in the ``type`` field of every envelope."""
    CATALOG_REQUEST = "CatalogRequest"
    CATALOG_RESPONSE = "CatalogResponse"
    FILE_METADATA_REQUEST = "FileMetadataRequest"
    FILE_METADATA_RESPONSE = "FileMetadataResponse"
    CHUNK_REQUEST = "ChunkRequest"
    CHUNK_RESPONSE = "ChunkResponse"


class FileEntry(BaseModel):
    """One locally hosted file as advertised in a catalog."""
    model_config = ConfigDict(frozen=True)

    name: str
    size: int = Field(ge=0)
    hash: str
    chunks: List[str] = Field(default_factory=list)


class Catalog(BaseModel):
    """A node's inventory of hosted files."""
    files: List[FileEntry] = Field(default_factory=list)


class FileMetadataRequestPayload(BaseModel):
    file_name: str


class FileMetadataPayload(BaseModel):
    """Chunk list of a named file; empty when the node does not host it."""
    file_name: str
    chunks: List[str] = Field(default_factory=list)


class ChunkRequestPayload(BaseModel):
    file_hash: str
    chunk_id: str


class ChunkResponsePayload(BaseModel):
    """
    Chunk bytes plus the SHA-256 the sender computed over them.

    ``data`` is carried as standard base64 on the wire.
    """
    file_hash: str
    chunk_id: str
    data: bytes
    hash: str

    @field_validator('data', mode='before')
    @classmethod
    def _decode_data(cls, value):
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except binascii.Error as e:
                raise ValueError(f"data is not valid base64: {e}")
        return value

    @field_serializer('data', when_used='json')
    def _encode_data(self, value: bytes) -> str:
        return base64.b64encode(value).decode('ascii')


class CatalogRequest(BaseModel):
    type: Literal["CatalogRequest"] = "CatalogRequest"
    payload: None = None


class CatalogResponse(BaseModel):
    type: Literal["CatalogResponse"] = "CatalogResponse"
    payload: Catalog


class FileMetadataRequest(BaseModel):
    type: Literal["FileMetadataRequest"] = "FileMetadataRequest"
    payload: FileMetadataRequestPayload


class FileMetadataResponse(BaseModel):
    type: Literal["FileMetadataResponse"] = "FileMetadataResponse"
    payload: FileMetadataPayload


class ChunkRequest(BaseModel):
    type: Literal["ChunkRequest"] = "ChunkRequest"
    payload: ChunkRequestPayload


class ChunkResponse(BaseModel):
    type: Literal["ChunkResponse"] = "ChunkResponse"
    payload: ChunkResponsePayload


MESSAGE_CLASSES = (
    CatalogRequest,
    CatalogResponse,
    FileMetadataRequest,
    FileMetadataResponse,
    ChunkRequest,
    ChunkResponse,
)

Message = Annotated[
    Union[
        CatalogRequest,
        CatalogResponse,
        FileMetadataRequest,
        FileMetadataResponse,
        ChunkRequest,
        ChunkResponse,
    ],
    Field(discriminator='type'),
]

_message_adapter: TypeAdapter = TypeAdapter(Message)


def encode_message(message: Message) -> bytes:
    """
    Serialize a message to its JSON wire form, without the terminator.

    Args:
        message: One of the message models

    Returns:
        UTF-8 encoded JSON bytes

    Raises:
        UnencodablePayloadError: If the object is not a message or cannot be serialized
    """
    if not isinstance(message, MESSAGE_CLASSES):
        raise UnencodablePayloadError(f"Not a protocol message: {type(message).__name__}")

    try:
        data = message.model_dump_json().encode('utf-8')
    except (PydanticSerializationError, ValueError, TypeError) as e:
        raise UnencodablePayloadError(f"Failed to encode {message.type}: {e}") from e

    if MESSAGE_TERMINATOR in data:
        raise UnencodablePayloadError(f"Encoded {message.type} contains the line terminator")

    return data


def decode_message(data: bytes) -> Message:
    """
    Parse one line from the wire into a typed message.

    Args:
        data: JSON bytes, with or without the trailing terminator

    Returns:
        The message model selected by the ``type`` tag

    Raises:
        MalformedMessageError: If the bytes are not a valid message
    """
    line = data.rstrip(b"\r\n")
    if not line.strip():
        raise MalformedMessageError("Empty message")

    try:
        return _message_adapter.validate_json(line)
    except ValidationError as e:
        raise MalformedMessageError(f"Failed to decode message: {e.error_count()} error(s): {e}") from e


def frame(message: Message) -> bytes:
    """Encode a message and append the line terminator."""
    return encode_message(message) + MESSAGE_TERMINATOR


def catalog_request() -> CatalogRequest:
    return CatalogRequest()


def catalog_response(catalog: Catalog) -> CatalogResponse:
    return CatalogResponse(payload=catalog)


def file_metadata_request(file_name: str) -> FileMetadataRequest:
    return FileMetadataRequest(payload=FileMetadataRequestPayload(file_name=file_name))


def file_metadata_response(file_name: str, chunks: Optional[List[str]] = None) -> FileMetadataResponse:
    return FileMetadataResponse(payload=FileMetadataPayload(file_name=file_name, chunks=list(chunks or [])))


def chunk_request(file_hash: str, chunk_id: str) -> ChunkRequest:
    return ChunkRequest(payload=ChunkRequestPayload(file_hash=file_hash, chunk_id=chunk_id))


def chunk_response(file_hash: str, chunk_id: str, data: bytes, checksum: str) -> ChunkResponse:
    return ChunkResponse(
        payload=ChunkResponsePayload(file_hash=file_hash, chunk_id=chunk_id, data=data, hash=checksum)
    )
