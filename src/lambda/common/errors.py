"""Error kinds surfaced by the TrustNet API and the status codes they map to."""


class TrustNetError(Exception):
    """Base for errors that the handler turns into a JSON error response."""

    statusCode = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class Unauthenticated(TrustNetError):
    statusCode = 401


class Forbidden(TrustNetError):
    statusCode = 403


class NotFound(TrustNetError):
    statusCode = 404


class Conflict(TrustNetError):
    statusCode = 409


class ValidationError(TrustNetError):
    statusCode = 400


class CancellationReason:
    """Why one item of a cancelled transaction did not commit."""

    def __init__(self, code, item=None):
        self.code = code or "None"
        self.item = item

    @property
    def conditionFailed(self):
        return self.code == "ConditionalCheckFailed"

    def __repr__(self):
        return f"CancellationReason(code={self.code!r}, item={self.item!r})"


class TransientStoreConflict(Exception):
    """A transaction was cancelled; nothing in it was written.

    reasons holds one CancellationReason per transaction item, in order.
    """

    def __init__(self, reasons, message="Transaction cancelled"):
        super().__init__(message)
        self.reasons = list(reasons)

    def failedAt(self, index):
        """True when the item at index failed its condition check."""
        if index >= len(self.reasons):
            return False
        return self.reasons[index].conditionFailed

    def reason(self, index):
        if index >= len(self.reasons):
            return None
        return self.reasons[index]
