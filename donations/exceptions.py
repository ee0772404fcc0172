# donations/exceptions.py
"""Application exceptions, translated to responses in main.py."""


class DonationsError(Exception):
    """Base class for application errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DonationsError):
    """Bad input reaching the data-access layer (amount, cursor...)."""

    status_code = 400


class FormError(ValidationError):
    """A submitted form failed validation; the form is shown again."""


class RecordNotFound(DonationsError):
    status_code = 404


class LoginRequired(DonationsError):
    status_code = 401

    def __init__(self, message: str = "Login required"):
        super().__init__(message)


class AdminRequired(DonationsError):
    status_code = 403

    def __init__(self, message: str = "Only administrators can edit records"):
        super().__init__(message)
