# optimizer.py
'''
Default mean-variance ("Markowitz") weight solver.

Any callable with the signature
    optimizer(tables, target) -> 1D array of weights (one per table)
can be passed to Portfolio.markowitz_optimize; this is the one used when
none is given.
'''

import numpy as np
from scipy.optimize import minimize
from loguru import logger

from errors import InsufficientDataError, OptimizationError
from portfolio import price_matrix


def log_returns_from_prices(prices) -> np.ndarray:
    '''(T, N) prices -> (T-1, N) period log returns.'''
    P = np.asarray(prices, dtype=float)
    if P.shape[0] < 2:
        raise InsufficientDataError("Need at least two rows to compute log returns.")
    if np.any(P <= 0.0):
        raise ValueError("Prices must be > 0.")
    return np.diff(np.log(P), axis=0)


def mean_variance_weights(tables, target: float) -> np.ndarray:
    '''
    Long-only minimum-variance weights reaching a target total log return.

        minimize    w' S w
        subject to  sum(w) = 1,  0 <= w <= 1,  w . mu >= target

    S is the covariance of period log returns and mu each asset's total
    log return over the window (so mu and target are in the same units).
    '''
    P = price_matrix(tables)
    R = log_returns_from_prices(P)
    n = P.shape[1]

    mu = np.log(P[-1, :] / P[0, :])
    if n == 1:
        return np.ones(1, dtype=float)
    Sigma = np.atleast_2d(np.cov(R, rowvar=False, ddof=1))

    constraints = [
        {"type": "eq", "fun": lambda w: np.sum(w) - 1.0},
        {"type": "ineq", "fun": lambda w: w @ mu - target},
    ]
    bounds = tuple((0.0, 1.0) for _ in range(n))
    w0 = np.ones(n, dtype=float) / n

    result = minimize(lambda w: w @ Sigma @ w, w0, method="SLSQP",
                      bounds=bounds, constraints=constraints,
                      options={"ftol": 1e-12, "maxiter": 500})
    if not result.success:
        raise OptimizationError(
            f"Optimization failed for target {target:.6f} "
            f"(best asset log return {mu.max():.6f}): {result.message}"
        )

    w = np.clip(result.x, 0.0, None)
    w = w / np.sum(w)
    logger.info(
        f"Mean-variance weights: target={target:.6f} "
        f"achieved={float(w @ mu):.6f} var={float(w @ Sigma @ w):.6e}"
    )
    return w
