class ProviderError(Exception):
    """Upstream generation failure (HTTP error, error event in the stream, misconfiguration)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
