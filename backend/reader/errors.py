class ReaderError(Exception):
    """Base class for chapter reader errors."""


class ContentUnavailable(ReaderError):
    """A chapter or supplementary document could not be loaded."""

    message = "Failed to load content"


class ContentNotFound(ContentUnavailable):
    message = "Content not found"


class ContentLoadFailed(ContentUnavailable):
    message = "Failed to load content"


class PersistenceError(ReaderError):
    """The data store rejected a write or could not be reached."""


class CommentError(ReaderError):
    """A direct comment action failed; shown inline to the reader."""


class CommentSubmitError(CommentError):
    pass


class ResolveToggleError(CommentError):
    pass


class InvalidReplyTarget(CommentError):
    pass
