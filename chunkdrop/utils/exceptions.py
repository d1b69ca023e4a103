class SessionError(Exception):
    """Base exception class for session and chunk delivery errors.

    Args:
        session_id (str): Identifier of the session that caused the error
        message (str): Detailed error message

    Attributes:
        status_code (int): HTTP status the API layer reports for this error
    """
    status_code = 400

    def __init__(self, session_id: str, message: str):
        self.session_id = session_id
        self.message = message
        super().__init__(self.message)

class SessionNotFoundError(SessionError):
    """Exception raised when a session id is unknown or the session has expired."""
    status_code = 404

    def __init__(self, session_id: str, message: str = "Session not found or expired"):
        super().__init__(session_id, message)

class InvalidSessionStateError(SessionError):
    """Exception raised when an operation is not valid for the session's current status."""
    pass

class EmptyFileError(SessionError):
    """Exception raised when an upload carries no bytes."""
    pass

class FileTypeError(SessionError):
    """Exception raised when the uploaded file's extension is not allowed by the session."""
    pass

class FileSizeError(SessionError):
    """Exception raised when an uploaded file exceeds the session's maximum size."""
    pass

class NoFileYetError(SessionError):
    """Exception raised when chunks are requested before anything was uploaded."""

    def __init__(self, session_id: str, message: str = "No file uploaded yet"):
        super().__init__(session_id, message)

class InvalidChunkIndexError(SessionError):
    """Exception raised when a chunk index is outside the session's chunk range."""

    def __init__(self, session_id: str, message: str = "Invalid chunk index"):
        super().__init__(session_id, message)
