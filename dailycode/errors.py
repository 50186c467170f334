"""Error outcomes raised by the game core and mapped to HTTP responses in main."""


class DailyCodeError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotFound(DailyCodeError):
    status_code = 404


class Conflict(DailyCodeError):
    # duplicate submissions and registrations were always answered with 400
    status_code = 400


class Unauthorized(DailyCodeError):
    status_code = 401


class ValidationFailure(DailyCodeError):
    status_code = 400


class InternalFailure(DailyCodeError):
    status_code = 500
