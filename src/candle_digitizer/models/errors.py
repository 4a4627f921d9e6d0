class ChartDigitizerError(Exception):
    """Base class for failures the digitization stages raise on bad input."""


class InsufficientDataError(ChartDigitizerError):
    pass


class InvalidTimeframeError(ChartDigitizerError):
    def __init__(self, timeframe: str) -> None:
        super().__init__(f"Invalid timeframe: {timeframe}")
        self.timeframe = timeframe


class CalibrationError(ChartDigitizerError):
    pass


class ImageAccessError(ChartDigitizerError):
    pass
