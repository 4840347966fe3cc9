"""
Learned Scorer Factory

Purpose:
Wrap the supervised-learning primitive behind four functions so the
components never touch a library API directly:
- build/fit an estimator from labeled feature vectors
- predict a single [0, 1] score
- serialize/deserialize weights into a JSON-safe string

Two kinds are supported:
- "mlp":     sklearn MLPRegressor with sigmoid hidden units (Tier 1-3)
- "xgboost": xgboost Booster with a logistic regression objective (fusion)

Both regress the fraud label directly; outputs are clipped into [0, 1].
"""

import base64
import copy
import pickle
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd
import xgboost as xgb
from sklearn.metrics import mean_squared_error
from sklearn.neural_network import MLPRegressor


ESTIMATOR_KINDS = ("mlp", "xgboost")


# ============================================================================
# HYPERPARAMETERS
# ============================================================================

def default_hyperparameters(kind: str, hidden_layers: Sequence[int]) -> Dict[str, Any]:
    """
    Default hyperparameters for an estimator kind.

    Args:
        kind: "mlp" or "xgboost"
        hidden_layers: Hidden layer sizes (used by "mlp" only)

    Returns:
        JSON-serializable hyperparameter dict
    """
    _check_kind(kind)
    if kind == "mlp":
        return {
            "hidden_layer_sizes": list(hidden_layers),
            "activation": "logistic",
            "learning_rate_init": 0.01,
            "max_iter": 2000,
            "tol": 1e-4,
            "random_state": 42,
        }
    return {
        "objective": "reg:logistic",
        "max_depth": 4,
        "eta": 0.1,
        "subsample": 1.0,
        "seed": 42,
        "num_boost_round": 200,
    }


def _check_kind(kind: str) -> None:
    if kind not in ESTIMATOR_KINDS:
        raise ValueError(f"Unknown estimator kind '{kind}'. Expected one of {ESTIMATOR_KINDS}")


# ============================================================================
# TRAINING
# ============================================================================

@dataclass(frozen=True)
class FitOutcome:
    estimator: Any
    iterations: int
    final_error: float


def fit_estimator(
    kind: str,
    hyperparameters: Dict[str, Any],
    X: pd.DataFrame,
    y: np.ndarray,
    previous: Optional[Any] = None
) -> FitOutcome:
    """
    Fit a fresh estimator, or continue training a copy of `previous`.

    The previous estimator is never modified: it may still be serving
    requests while training runs.

    Args:
        kind: Estimator kind
        hyperparameters: Hyperparameters from default_hyperparameters()
        X: Feature matrix (columns = feature names)
        y: Labels in [0, 1]
        previous: Estimator from an earlier batch (optional)

    Returns:
        FitOutcome with estimator, iterations and training MSE
    """
    _check_kind(kind)
    if len(X) == 0:
        raise ValueError("Cannot fit an estimator on an empty feature matrix")

    y = np.asarray(y, dtype=float)

    if kind == "mlp":
        params = dict(hyperparameters)
        params["hidden_layer_sizes"] = tuple(params["hidden_layer_sizes"])
        if previous is not None:
            model = copy.deepcopy(previous)
            model.set_params(warm_start=True, max_iter=params["max_iter"])
        else:
            model = MLPRegressor(**params)
        model.fit(X.to_numpy(dtype=float), y)
        predictions = np.clip(model.predict(X.to_numpy(dtype=float)), 0.0, 1.0)
        iterations = int(model.n_iter_)
    else:
        params = {k: v for k, v in hyperparameters.items() if k != "num_boost_round"}
        rounds = int(hyperparameters.get("num_boost_round", 200))
        dtrain = xgb.DMatrix(X, label=y)
        model = xgb.train(
            params=params,
            dtrain=dtrain,
            num_boost_round=rounds,
            xgb_model=copy.deepcopy(previous) if previous is not None else None,
            verbose_eval=False
        )
        predictions = np.clip(model.predict(dtrain), 0.0, 1.0)
        iterations = int(model.num_boosted_rounds())

    final_error = float(mean_squared_error(y, predictions))
    return FitOutcome(estimator=model, iterations=iterations, final_error=final_error)


# ============================================================================
# PREDICTION
# ============================================================================

def predict_one(kind: str, estimator: Any, features: Dict[str, float], feature_names: Sequence[str]) -> float:
    """
    Score one feature vector.

    Raises:
        ValueError: If the feature vector does not match the trained columns
    """
    _check_kind(kind)
    missing = set(feature_names) - set(features)
    if missing:
        raise ValueError(f"Feature vector missing trained columns: {sorted(missing)}")

    frame = pd.DataFrame([features], columns=list(feature_names), dtype=float)
    if kind == "mlp":
        raw = estimator.predict(frame.to_numpy(dtype=float))[0]
    else:
        raw = estimator.predict(xgb.DMatrix(frame))[0]
    return float(np.clip(raw, 0.0, 1.0))


# ============================================================================
# SERIALIZATION
# ============================================================================

def serialize_estimator(kind: str, estimator: Any) -> str:
    """Encode estimator weights as a base64 string."""
    _check_kind(kind)
    if kind == "mlp":
        payload = pickle.dumps(estimator)
    else:
        payload = bytes(estimator.save_raw(raw_format="json"))
    return base64.b64encode(payload).decode("ascii")


def deserialize_estimator(kind: str, encoded: str) -> Any:
    """Decode weights produced by serialize_estimator()."""
    _check_kind(kind)
    payload = base64.b64decode(encoded.encode("ascii"), validate=True)
    if kind == "mlp":
        return pickle.loads(payload)
    booster = xgb.Booster()
    booster.load_model(bytearray(payload))
    return booster
