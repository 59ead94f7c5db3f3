"""Exception hierarchy for the mesh bridge.

Message-level errors (entity not found, unsupported entity, invalid payload) abort the
whole message. Attribute-level errors (endpoint not found, missing converter, converter
failure) only skip the attribute they belong to.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigError(BridgeError):
    """Settings file missing, unreadable or failing validation.

    Attributes:
        path: Settings file the error refers to

    """

    def __init__(self, reason: str, path: str | None = None) -> None:
        self.reason: str = reason
        self.path: str | None = path
        where = f" ({path})" if path else ""
        super().__init__(f"Configuration error{where}: {reason}")


class MessageError(BridgeError):
    """An error that stops processing of the whole message."""


class EntityNotFoundError(MessageError):
    def __init__(self, entity_key: str) -> None:
        self.entity_key: str = entity_key
        super().__init__(f"Entity '{entity_key}' is unknown")


class UnsupportedEntityError(MessageError):
    """The device resolved but has no known definition, so no converters exist for it."""

    def __init__(self, entity_name: str, model_id: str | None) -> None:
        self.entity_name: str = entity_name
        self.model_id: str | None = model_id
        super().__init__(f"Device '{entity_name}' with model '{model_id}' is not supported")


class InvalidPayloadError(MessageError):
    def __init__(self, payload: str) -> None:
        self.payload: str = payload
        super().__init__(f"Invalid JSON '{payload}', skipping...")


class AttributeDispatchError(BridgeError):
    """An error contained to a single attribute of a message.

    Attributes:
        key: Attribute name as it appeared in the decoded message

    """

    def __init__(self, key: str, message: str) -> None:
        self.key: str = key
        super().__init__(message)


class EndpointNotFoundError(AttributeDispatchError):
    def __init__(self, key: str, entity_name: str, endpoint_name: str) -> None:
        self.entity_name: str = entity_name
        self.endpoint_name: str = endpoint_name
        super().__init__(key, f"Device '{entity_name}' has no endpoint '{endpoint_name}'")


class MissingConverterError(AttributeDispatchError):
    def __init__(self, key: str, value: object, action: str | None = None) -> None:
        self.value: object = value
        self.action: str | None = action
        if action is None:
            message = f"No converter available for '{key}' ({value})"
        else:
            message = f"No converter available for '{action}' '{key}' ({value})"
        super().__init__(key, message)


class ConverterOperationError(AttributeDispatchError):
    """A converter raised while writing or reading.

    Attributes:
        entity_name: Friendly name of the target entity
        action: "set" or "get"
        cause: The exception raised by the converter

    """

    def __init__(self, key: str, entity_name: str, action: str, cause: BaseException) -> None:
        self.entity_name: str = entity_name
        self.action: str = action
        self.cause: BaseException = cause
        super().__init__(key, f"Publish '{action}' '{key}' to '{entity_name}' failed: '{cause}'")
