"""Named failures raised by the library core.

Each error carries a machine readable ``code`` and the identifiers involved.
None of them carry user facing text; the HTTP layer owns the wording.
"""


class LibraryError(Exception):
    code = "library_error"


class NotFound(LibraryError):
    code = "not_found"

    def __init__(self, kind, ident):
        super().__init__(kind, ident)
        self.kind = kind
        self.ident = ident


class Unavailable(LibraryError):
    code = "unavailable"

    def __init__(self, book_id):
        super().__init__(book_id)
        self.book_id = book_id


class AlreadyReturned(LibraryError):
    code = "already_returned"

    def __init__(self, borrowing_id):
        super().__init__(borrowing_id)
        self.borrowing_id = borrowing_id


class InvalidRating(LibraryError):
    code = "invalid_rating"

    def __init__(self, rating):
        super().__init__(rating)
        self.rating = rating


class ValidationError(LibraryError):
    code = "invalid"

    def __init__(self, code, field=None):
        super().__init__(code, field)
        self.code = code
        self.field = field


class Forbidden(LibraryError):
    code = "forbidden"


class ImportFailed(LibraryError):
    code = "import_failed"


class ConsistencyError(LibraryError):
    """Stored state broke an invariant. Never mapped to a client error."""

    code = "consistency_error"
