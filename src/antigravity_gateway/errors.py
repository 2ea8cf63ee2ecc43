class UpstreamError(Exception):
    def __init__(
        self,
        status_code: int,
        message: str,
        code: str,
        retryable: bool,
        err_type: str,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.retryable = retryable
        self.err_type = err_type


class TokenError(Exception):
    pass


def retryable_for_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500
