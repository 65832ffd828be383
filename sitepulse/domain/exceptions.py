class AnalyticsError(Exception):
    """Base class for errors the tracking and metrics endpoints report to callers."""


class MissingParameterError(AnalyticsError):
    def __init__(self, *params: str):
        self.params = params
        if len(params) == 1:
            message = f'Missing required parameter: {params[0]}'
        else:
            message = f'Missing required parameters: {" and ".join(params)}'
        super().__init__(message)


class InvalidSessionError(AnalyticsError):
    def __init__(self, session_id: str | None):
        self.session_id = session_id
        super().__init__('Invalid session')


class InvalidTimeWindowError(AnalyticsError):
    pass
