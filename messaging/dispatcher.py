"""
Command dispatcher for inbound store messages.

Decodes one raw message body into a CommandEnvelope and routes it to
exactly one StoreService operation. The dispatcher never raises for a bad
message: decode failures, unknown actions and service errors are logged
and returned as a DispatchResult so the consumer can decide what to do with
the delivery.

Envelope:
    {
        "action": "create_store_version",
        "data": {"storeOwnerName": "Jo", "openingTime": "09:00", "closingTime": "21:00"},
        "storeId": "6f1c...",
        "userLogin": "jo",
        "versionId": ""
    }
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar, assert_never
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config import Settings
from errors import DecodeError, StoreServiceError
from models.store import StoreCreate, StoreResponse
from models.store_version import StoreVersionCreate, StoreVersionResponse
from services.stores_service import StoreService

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class StoreAction(str, Enum):
    """Every command the service understands."""

    CREATE_STORE = "create_store"
    CREATE_STORE_VERSION = "create_store_version"
    DELETE_STORE = "delete_store"
    DELETE_STORE_VERSION = "delete_store_version"
    GET_STORE = "get_store"
    GET_STORE_HISTORY = "get_store_history"
    GET_STORE_VERSION = "get_store_version"


class DispatchStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    IGNORED = "ignored"


class CommandEnvelope(BaseModel):
    """Decoded inbound command message."""

    model_config = ConfigDict(populate_by_name=True)

    action: str
    # Opaque; only the create actions decode it
    data: Any = None
    store_id: str | None = Field(default=None, alias="storeId")
    user_login: str = Field(default="", alias="userLogin")
    version_id: str | None = Field(default=None, alias="versionId")

    @classmethod
    def from_bytes(cls, body: bytes) -> "CommandEnvelope":
        """
        Parse a raw message body.

        Raises:
            DecodeError: Body is not a JSON object matching the envelope
        """
        try:
            return cls.model_validate_json(body)
        except ValidationError as e:
            raise DecodeError(
                "Malformed command envelope",
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e


@dataclass
class DispatchResult:
    """Outcome of dispatching one message.

    Attributes:
        action: Resolved action, the raw action string if unknown, or None
            if the envelope could not be decoded
        status: Whether the operation succeeded, failed or was ignored
        error: Service error when status is FAILED
        payload: Created id or read result on success
    """

    action: StoreAction | str | None
    status: DispatchStatus
    error: StoreServiceError | None = None
    payload: Any = None

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable


def _parse_id(value: str | None, field_name: str) -> UUID:
    if not value:
        raise DecodeError(f"Missing {field_name}")
    try:
        return UUID(value)
    except ValueError as e:
        raise DecodeError(f"Invalid {field_name}", details={field_name: value}) from e


def _decode_data(schema: type[PayloadT], data: Any) -> PayloadT:
    if data is None:
        raise DecodeError(f"Missing data for {schema.__name__}")
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise DecodeError(
            f"Invalid data for {schema.__name__}",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e


class CommandDispatcher:
    """Routes decoded envelopes to StoreService operations.

    Stateless; safe to share between concurrent consumer workers.

    Example:
        >>> dispatcher = CommandDispatcher(service, settings)
        >>> result = await dispatcher.dispatch(b'{"action": "get_store", "storeId": "..."}')
        >>> result.status
        <DispatchStatus.SUCCEEDED: 'succeeded'>
    """

    def __init__(self, service: StoreService, settings: Settings) -> None:
        self.service = service
        self.log_read_results = settings.LOG_READ_RESULTS

    async def dispatch(self, body: bytes) -> DispatchResult:
        """
        Decode one message and run its operation to completion.

        Args:
            body: Raw message body

        Returns:
            DispatchResult describing the outcome
        """
        try:
            envelope = CommandEnvelope.from_bytes(body)
        except DecodeError as e:
            logger.error("Failed to decode message", extra={"error": str(e)})
            return DispatchResult(action=None, status=DispatchStatus.FAILED, error=e)

        try:
            action = StoreAction(envelope.action)
        except ValueError:
            logger.warning("Unknown action", extra={"action": envelope.action})
            return DispatchResult(action=envelope.action, status=DispatchStatus.IGNORED)

        context = {
            "action": action.value,
            "store_id": envelope.store_id,
            "version_id": envelope.version_id,
            "requester_login": envelope.user_login,
        }

        try:
            payload = await self._route(action, envelope)
        except StoreServiceError as e:
            logger.error(
                "Command failed",
                extra={**context, "error": str(e), "error_code": e.code},
            )
            return DispatchResult(action=action, status=DispatchStatus.FAILED, error=e)

        logger.info("Command handled", extra=context)
        return DispatchResult(action=action, status=DispatchStatus.SUCCEEDED, payload=payload)

    async def _route(self, action: StoreAction, envelope: CommandEnvelope) -> Any:
        login = envelope.user_login

        match action:
            case StoreAction.CREATE_STORE:
                fields = _decode_data(StoreCreate, envelope.data)
                return await self.service.create_store(fields, login)

            case StoreAction.CREATE_STORE_VERSION:
                store_id = _parse_id(envelope.store_id, "storeId")
                fields = _decode_data(StoreVersionCreate, envelope.data)
                version = await self.service.create_store_version(fields, store_id, login)
                return StoreVersionResponse.model_validate(version)

            case StoreAction.DELETE_STORE:
                store_id = _parse_id(envelope.store_id, "storeId")
                await self.service.delete_store(store_id, login)
                return None

            case StoreAction.DELETE_STORE_VERSION:
                store_id = _parse_id(envelope.store_id, "storeId")
                version_id = _parse_id(envelope.version_id, "versionId")
                await self.service.delete_store_version(store_id, version_id, login)
                return None

            case StoreAction.GET_STORE:
                store_id = _parse_id(envelope.store_id, "storeId")
                store = await self.service.get_store(store_id, login)
                result = StoreResponse.model_validate(store) if store is not None else None
                self._log_read(action, result)
                return result

            case StoreAction.GET_STORE_HISTORY:
                store_id = _parse_id(envelope.store_id, "storeId")
                versions = await self.service.get_store_history(store_id, login)
                result = [StoreVersionResponse.model_validate(v) for v in versions]
                self._log_read(action, result)
                return result

            case StoreAction.GET_STORE_VERSION:
                store_id = _parse_id(envelope.store_id, "storeId")
                version_id = _parse_id(envelope.version_id, "versionId")
                version = await self.service.get_store_version(store_id, version_id, login)
                result = StoreVersionResponse.model_validate(version) if version is not None else None
                self._log_read(action, result)
                return result

            case _:
                assert_never(action)

    def _log_read(self, action: StoreAction, result: BaseModel | list[BaseModel] | None) -> None:
        if not self.log_read_results:
            return
        if result is None:
            logger.info("Nothing found", extra={"action": action.value})
        elif isinstance(result, list):
            logger.info(
                "Read result",
                extra={"action": action.value, "result": [r.model_dump(mode="json") for r in result]},
            )
        else:
            logger.info(
                "Read result",
                extra={"action": action.value, "result": result.model_dump(mode="json")},
            )
