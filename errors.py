class TokoError(Exception):
    """Base error for rejected user actions."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TokoError):
    status_code = 400


class NotFoundError(TokoError):
    status_code = 404


class BackupError(TokoError):
    status_code = 400
