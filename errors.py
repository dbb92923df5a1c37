# errors.py
'''
Error kinds raised by the aggregation pipeline.

All of them subclass ValueError so callers that already catch ValueError
around bad input keep working.
'''


class PortfolioError(ValueError):
    '''Base class for portfolio pipeline errors.'''


class AlignmentError(PortfolioError):
    '''Historical tables share no common trading dates (or one is empty).'''


class RangeError(PortfolioError):
    '''Invalid or empty date sub-range.'''


class InsufficientDataError(PortfolioError):
    '''Fewer than two price points for a return calculation.'''


class DimensionMismatchError(PortfolioError):
    '''Value/weight sequences have different lengths.'''


class OptimizationError(PortfolioError):
    '''The mean-variance solver did not converge.'''
