class HoldermapError(Exception):
    pass


class MalformedInputError(HoldermapError):
    pass


class DanglingReferenceError(HoldermapError):
    pass


class UnknownNodeError(HoldermapError):
    pass


class DataSourceError(HoldermapError):
    pass


class RateLimitError(DataSourceError):
    pass


class AnalysisFailedError(DataSourceError):
    pass


class AnalysisTimeoutError(DataSourceError):
    pass
