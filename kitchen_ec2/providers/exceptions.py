"""Provider-agnostic exceptions for cloud API failures."""


class ProviderError(Exception):
    """Base class for cloud provider errors."""


class ProviderCredentialsError(ProviderError):
    """Cloud credentials are missing or invalid."""


class ProviderConnectionError(ProviderError):
    """The cloud API endpoint could not be reached."""


class ProviderAPIError(ProviderError):
    """The cloud API rejected a request.

    Parameters
    ----------
    message : str
        Error message returned by the provider
    error_code : str | None
        Provider error code (e.g. "UnauthorizedOperation")
    operation : str | None
        Name of the API operation that failed
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.operation = operation
