"""
Component Registry

Owns the 23 component instances for one process. Built once (usually via
ComponentRegistry.default()) and passed to the orchestrator, training
pipeline and model store, so every consumer sees the same instances.
"""

import logging
from typing import Dict, Iterator, List, Optional

from fraud_ensemble.analyzers import CountryAnalyzer, TIER1_ANALYZERS
from fraud_ensemble.combiners import TIER2_COMBINERS
from fraud_ensemble.components.base import EnsembleComponent
from fraud_ensemble.components.catalog import ALL_IDS, FUSION_ID, TIER1_IDS, TIER2_IDS, TIER3_IDS
from fraud_ensemble.config import Settings, settings as default_settings
from fraud_ensemble.decision import DecisionFusion
from fraud_ensemble.validators import TIER3_VALIDATORS


logger = logging.getLogger(__name__)


def estimator_hyperparameters(kind: str, config: Settings) -> Dict:
    """Settings overrides applied on top of each component's defaults."""
    if kind == "mlp":
        return {
            "max_iter": config.MLP_MAX_ITER,
            "learning_rate_init": config.MLP_LEARNING_RATE,
            "tol": config.MLP_TOL,
        }
    return {
        "num_boost_round": config.XGB_NUM_BOOST_ROUND,
        "max_depth": config.XGB_MAX_DEPTH,
        "eta": config.XGB_LEARNING_RATE,
    }


class ComponentRegistry:
    """Ordered collection of components keyed by component_id."""

    def __init__(self, components: List[EnsembleComponent]):
        self._components: Dict[str, EnsembleComponent] = {}
        for component in components:
            if component.component_id in self._components:
                raise ValueError(f"Duplicate component id: {component.component_id}")
            self._components[component.component_id] = component

    @classmethod
    def default(cls, config: Optional[Settings] = None) -> "ComponentRegistry":
        """
        Build all 23 components with settings-driven estimators.

        Args:
            config: Settings instance (uses global settings if None)

        Returns:
            ComponentRegistry in catalog order
        """
        config = config or default_settings
        kind = config.COMPONENT_ESTIMATOR
        params = estimator_hyperparameters(kind, config)

        components = []
        for component_cls in TIER1_ANALYZERS:
            if component_cls is CountryAnalyzer:
                components.append(component_cls(home_country=config.HOME_COUNTRY,
                                                estimator_kind=kind, hyperparameters=params))
            else:
                components.append(component_cls(estimator_kind=kind, hyperparameters=params))
        for component_cls in TIER2_COMBINERS + TIER3_VALIDATORS:
            components.append(component_cls(estimator_kind=kind, hyperparameters=params))

        fusion_kind = config.FUSION_ESTIMATOR
        fusion = DecisionFusion(
            estimator_kind=fusion_kind,
            hyperparameters=estimator_hyperparameters(fusion_kind, config)
        )
        fusion.decision_thresholds["fraud"] = config.FRAUD_THRESHOLD
        components.append(fusion)

        registry = cls(components)
        logger.info(f"✅ Component registry built: {len(registry)} components "
                    f"({kind} components, {fusion_kind} fusion)")
        return registry

    def __len__(self) -> int:
        return len(self._components)

    def __contains__(self, component_id: str) -> bool:
        return component_id in self._components

    def get(self, component_id: str) -> EnsembleComponent:
        """
        Raises:
            KeyError: Unknown component id
        """
        try:
            return self._components[component_id]
        except KeyError:
            raise KeyError(f"Unknown component '{component_id}'. Known: {list(self._components)}") from None

    def iter_components(self) -> Iterator[EnsembleComponent]:
        """Components in tier order (catalog order within a tier)."""
        order = {cid: i for i, cid in enumerate(ALL_IDS)}
        yield from sorted(
            self._components.values(),
            key=lambda c: (c.tier, order.get(c.component_id, len(order)))
        )

    def tier(self, tier: int) -> List[EnsembleComponent]:
        return [c for c in self.iter_components() if c.tier == tier]

    @property
    def tier1(self) -> List[EnsembleComponent]:
        return self.tier(1)

    @property
    def tier2(self) -> List[EnsembleComponent]:
        return self.tier(2)

    @property
    def tier3(self) -> List[EnsembleComponent]:
        return self.tier(3)

    @property
    def fusion(self):
        return self.get(FUSION_ID)

    def missing_components(self) -> List[str]:
        return [cid for cid in TIER1_IDS + TIER2_IDS + TIER3_IDS + (FUSION_ID,) if cid not in self._components]
