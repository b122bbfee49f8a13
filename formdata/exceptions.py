class FormDataError(ValueError):
    """Base error class for our form encoder."""


class FileError(FormDataError, OSError):
    """Exception class for problems opening or reading a part's data source.

    The original error is always available as ``__cause__``.
    """


class HeaderError(FormDataError):
    """This exception is raised when the ``Content-Type`` header could not be
    set on the target request.
    """
