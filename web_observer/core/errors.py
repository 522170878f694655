from typing import Iterable, Optional


class WebObserverError(Exception):
    """Base class for every error raised by web_observer."""


class ConfigurationError(WebObserverError):
    pass


class UnsupportedModelError(WebObserverError):
    def __init__(self, supported: Iterable[str], model_name: Optional[str] = None):
        self.supported = sorted(supported)
        prefix = f"Model '{model_name}' is not supported. " if model_name else ""
        super().__init__(
            f"{prefix}Supported models: {', '.join(self.supported)}")


class UnsupportedProviderError(WebObserverError):
    def __init__(self, provider: str, supported: Iterable[str]):
        self.provider = provider
        self.supported = sorted(supported)
        super().__init__(
            f"Provider '{provider}' is not supported. "
            f"Supported providers: {', '.join(self.supported)}")


class UnsupportedIntegrationError(WebObserverError):
    pass


class DomSettleTimeoutError(WebObserverError):
    pass


class WaitTimeoutError(WebObserverError):
    pass


class RemoteAPIError(WebObserverError):
    """Errors raised while talking to the remote execution service."""


class UnauthorizedError(RemoteAPIError):
    pass


class HttpError(RemoteAPIError):
    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"HTTP error! status: {status}, body: {body}")


class ResponseBodyError(RemoteAPIError):
    def __init__(self, message: str = "Response body is missing"):
        super().__init__(message)


class ResponseParseError(RemoteAPIError):
    pass


class ServerReportedError(RemoteAPIError):
    pass


class SessionStateError(RemoteAPIError):
    pass


class ModelResponseError(WebObserverError):
    """The model answered, but not in the expected shape."""
