"""Peer selection and regression weights from a covariance matrix.

The counterfactual return of a traded asset is its conditional expectation
given peer returns under a joint Gaussian model:

    w = Sigma[a, P] @ inv(Sigma[P, P])

Peers are ranked by absolute correlation with the traded asset. Weights are
regression coefficients and need not sum to one.

Key Classes:
    CovarianceMatrix: Precomputed covariance with asset labels

Key Functions:
    select_peers: Top-N peers by absolute correlation
    calculate_peer_weights: Conditional-mean weights for a peer set
    resolve_peer_weights: Peer table for every execution
    volatilities_from_covariance: Volatility table from the diagonal
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Hashable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from slipgauge.core.exceptions import ReferentialIntegrityError, SingularCovarianceError

logger = logging.getLogger(__name__)

Horizon = Union[timedelta, float]


@dataclass
class CovarianceMatrix:
    """Covariance of asset returns over a given horizon.

    Estimation happens elsewhere; this only carries the result.

    Attributes:
        matrix: Square symmetric covariance matrix
        labels: One asset label per row/column
        horizon: Horizon the matrix is quoted for (None if unspecified)
    """

    matrix: np.ndarray
    labels: List[Hashable]
    horizon: Optional[Horizon] = None

    def __post_init__(self):
        self.matrix = np.asarray(self.matrix, dtype=float)
        self.labels = list(self.labels)

        if self.matrix.ndim != 2 or self.matrix.shape[0] != self.matrix.shape[1]:
            raise ValueError(f"covariance matrix must be square, got shape {self.matrix.shape}")
        if self.matrix.shape[0] != len(self.labels):
            raise ValueError(
                f"labels length ({len(self.labels)}) must match "
                f"matrix dimension ({self.matrix.shape[0]})"
            )
        if len(set(self.labels)) != len(self.labels):
            raise ValueError("covariance labels must be unique")
        if not np.allclose(self.matrix, self.matrix.T, rtol=1e-8, atol=1e-12):
            raise ValueError("covariance matrix must be symmetric")

    @classmethod
    def from_frame(cls, df: pd.DataFrame, horizon: Optional[Horizon] = None) -> "CovarianceMatrix":
        """Build from a labelled square DataFrame (index == columns)."""
        if list(df.index) != list(df.columns):
            raise ValueError("covariance DataFrame index and columns must match")
        return cls(matrix=df.to_numpy(dtype=float), labels=list(df.columns), horizon=horizon)

    def covariance(self, horizon: Optional[Horizon] = None) -> np.ndarray:
        """
        Covariance rescaled to `horizon`.

        Variance is taken to grow linearly in time. With no requested
        horizon, or no quoted horizon to scale from, the matrix is returned
        as quoted.
        """
        if horizon is None or self.horizon is None:
            return self.matrix.copy()
        return self.matrix * (_horizon_seconds(horizon) / _horizon_seconds(self.horizon))


def _horizon_seconds(horizon: Horizon) -> float:
    if isinstance(horizon, timedelta):
        return horizon.total_seconds()
    return float(horizon)


def correlation_matrix(cov: np.ndarray) -> np.ndarray:
    """Correlation from covariance. Zero-variance assets get zero correlation."""
    vols = np.sqrt(np.diag(cov))
    with np.errstate(divide="ignore", invalid="ignore"):
        corr = cov / np.outer(vols, vols)
    return np.nan_to_num(corr, nan=0.0, posinf=0.0, neginf=0.0)


def _index_of(labels: Sequence[Hashable], asset: Hashable) -> int:
    try:
        return list(labels).index(asset)
    except ValueError:
        raise ReferentialIntegrityError(
            f"asset '{asset}' is not among the covariance matrix labels"
        ) from None


def select_peers(
    cov: np.ndarray,
    labels: Sequence[Hashable],
    asset: Hashable,
    num_peers: Optional[int] = None,
) -> List[Hashable]:
    """
    Choose the peers used to explain moves in `asset`.

    Args:
        cov: Covariance matrix
        labels: Labels of cov rows/columns
        asset: Traded asset
        num_peers: Number of peers to keep. None, or at least the number of
            other assets, keeps all of them in label order.

    Returns:
        Peer labels, highest absolute correlation first. Ties keep label order.

    Example:
        >>> select_peers(cov, ["A", "B", "C"], "A", num_peers=1)
        ['C']
    """
    asset_index = _index_of(labels, asset)
    other_indices = [i for i in range(len(labels)) if i != asset_index]

    if num_peers is None or num_peers >= len(other_indices):
        return [labels[i] for i in other_indices]

    corr = correlation_matrix(cov)
    abs_corr = np.abs(corr[asset_index, other_indices])
    order = np.argsort(-abs_corr, kind="stable")[:num_peers]

    return [labels[other_indices[i]] for i in order]


def calculate_peer_weights(
    cov: np.ndarray,
    labels: Sequence[Hashable],
    asset: Hashable,
    peers: Sequence[Hashable],
) -> np.ndarray:
    """
    Regression weights of `asset` on `peers`: Sigma[a, P] @ inv(Sigma[P, P]).

    Raises:
        SingularCovarianceError: If Sigma[P, P] is numerically singular.
            No regularization is attempted.
    """
    asset_index = _index_of(labels, asset)
    peer_indices = [_index_of(labels, p) for p in peers]

    sigma_ap = cov[asset_index, peer_indices]
    sigma_pp = cov[np.ix_(peer_indices, peer_indices)]

    cond = np.linalg.cond(sigma_pp)
    if not np.isfinite(cond) or cond > 1 / np.finfo(float).eps:
        raise SingularCovarianceError(
            f"peer covariance submatrix for asset '{asset}' is singular "
            f"(peers: {list(peers)})"
        )

    try:
        # Sigma[P, P] is symmetric, so solving against it gives the row vector
        weights = np.linalg.solve(sigma_pp, sigma_ap)
    except np.linalg.LinAlgError as e:
        raise SingularCovarianceError(
            f"peer covariance submatrix for asset '{asset}' is singular: {e}"
        ) from e

    return weights


def resolve_peer_weights(
    covariance,
    executions: pd.DataFrame,
    num_peers: Optional[int] = None,
    horizon: Optional[Horizon] = None,
) -> pd.DataFrame:
    """
    Derive the peer table for every execution from a covariance matrix.

    Executions trading the same asset share one weight derivation.

    Args:
        covariance: Object with `labels` and `covariance(horizon)`, e.g.
            CovarianceMatrix
        executions: DataFrame with 'execution_name' and 'asset' columns
            (one row per fill is fine; duplicates are collapsed)
        num_peers: Peers per execution, None for all
        horizon: Horizon passed to covariance.covariance()

    Returns:
        DataFrame with columns 'execution_name', 'peer', 'weight'

    Raises:
        ReferentialIntegrityError: If a traded asset is not in the labels
        SingularCovarianceError: If any peer submatrix is singular
    """
    cov = np.asarray(covariance.covariance(horizon), dtype=float)
    labels = list(covariance.labels)

    pairs = executions[["execution_name", "asset"]].drop_duplicates()

    by_asset = {}
    rows = []
    for execution_name, asset in zip(pairs["execution_name"], pairs["asset"]):
        if asset not in by_asset:
            try:
                peers = select_peers(cov, labels, asset, num_peers)
                weights = calculate_peer_weights(cov, labels, asset, peers) if peers else None
            except (ReferentialIntegrityError, SingularCovarianceError) as e:
                logger.error(f"Execution {execution_name}: cannot derive peer weights for {asset}: {e}")
                raise
            if weights is None:
                logger.warning(f"Asset '{asset}' has no peers in the covariance matrix")
                weights = np.array([])
            by_asset[asset] = (peers, weights)
            logger.debug(
                f"Peers for {asset}: "
                + ", ".join(f"{p}={w:.4f}" for p, w in zip(peers, weights))
            )

        peers, weights = by_asset[asset]
        for peer, weight in zip(peers, weights):
            rows.append({"execution_name": execution_name, "peer": peer, "weight": float(weight)})

    return pd.DataFrame(rows, columns=["execution_name", "peer", "weight"])


def volatilities_from_covariance(covariance, horizon: Optional[Horizon] = None) -> pd.DataFrame:
    """Volatility table (columns 'asset', 'volatility') from sqrt(diag(Sigma))."""
    cov = np.asarray(covariance.covariance(horizon), dtype=float)
    return pd.DataFrame(
        {"asset": list(covariance.labels), "volatility": np.sqrt(np.diag(cov))}
    )
