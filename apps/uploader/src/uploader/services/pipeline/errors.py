from __future__ import annotations

from collections.abc import Sequence


class UploaderError(RuntimeError):
    pass


class ParseError(UploaderError):
    pass


class UnknownDocumentTypeError(ParseError):
    pass


class UnknownEntityTypeError(ParseError):
    pass


class MalformedNameError(ParseError):
    def __init__(self, message: str, *, expected: int | None = None, actual: int | None = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class EmptyCollectionError(UploaderError):
    pass


class EntityFailure(UploaderError):
    def __init__(self, *, entity_type: str, path: str, details: str) -> None:
        super().__init__(f"{entity_type}: {path} ({details})")
        self.entity_type = entity_type
        self.path = path
        self.details = details


class ParentNotResolvedError(EntityFailure):
    pass


class EntityLookupError(EntityFailure):
    pass


class EntityResolutionError(UploaderError):
    def __init__(self, failures: Sequence[EntityFailure]) -> None:
        self.failures = list(failures)
        lines = ["The following entities were not found:"]
        for failure in self.failures:
            lines.append(f"- {failure.entity_type}: {failure.path}")
            lines.append(f"  Details: {failure.details}")
        super().__init__("\n".join(lines))


class RemoteCallError(UploaderError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResponseDecodeError(RemoteCallError):
    pass


class PartialBatchFailure(RemoteCallError):
    def __init__(
        self,
        message: str,
        *,
        reference_id: str,
        status_code: int,
        error_code: str | None = None,
        remote_message: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.reference_id = reference_id
        self.error_code = error_code
        self.remote_message = remote_message


class ContentDocumentMissingError(UploaderError):
    pass


class DistributionLinkError(UploaderError):
    pass


class NothingToCreateError(UploaderError):
    pass


class AuthenticationError(UploaderError):
    pass
