class TrackerError(Exception):
    """Expected failure that maps onto an HTTP status."""

    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingPageCode(TrackerError):
    status = 400

    def __init__(self, message: str = "pageCode is required"):
        super().__init__(message)


class NoData(TrackerError):
    """The page exists only as a code: nothing has been recorded for it yet."""

    status = 404

    def __init__(self, page_code: str):
        super().__init__("No data available for this page code")
        self.page_code = page_code


class InvalidPayload(TrackerError):
    status = 400

    def __init__(self, field: str):
        super().__init__(f"{field} must be a string")
        self.field = field
