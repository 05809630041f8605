"""Driver-level exceptions surfaced to the host application."""


class KitchenError(Exception):
    """Base class for errors raised by the driver."""


class UserError(KitchenError):
    """Invalid or missing configuration supplied by the user."""


class ActionFailed(KitchenError):
    """A lifecycle action could not be completed."""


class TransportFailed(ActionFailed):
    """The transport could not reach the instance or a remote command failed.

    Parameters
    ----------
    message : str
        Human readable description
    exit_code : int | None
        Exit code of the remote command, if one ran
    """

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code
