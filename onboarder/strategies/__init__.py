"""
ONBOARDER Strategy Roster

One strategy per --mode:
  - yaml:     GenerateManifestStrategy, proposes catalog-info.yaml via PR
  - api:      CreateEntityStrategy, creates the Component directly
  - register: RegisterManifestStrategy, imports an existing manifest
"""

from __future__ import annotations

from onboarder.config_loader import DefaultsConfig
from onboarder.interfaces import CatalogRemote, ManifestRemote
from onboarder.strategies.base import BaseStrategy
from onboarder.strategies.create_entity import CreateEntityStrategy
from onboarder.strategies.generate_manifest import GenerateManifestStrategy
from onboarder.strategies.register_manifest import RegisterManifestStrategy

STRATEGIES: dict[str, type[BaseStrategy]] = {
    GenerateManifestStrategy.mode: GenerateManifestStrategy,
    CreateEntityStrategy.mode: CreateEntityStrategy,
    RegisterManifestStrategy.mode: RegisterManifestStrategy,
}


def build_strategy(
    mode: str,
    manifests: ManifestRemote,
    catalog: CatalogRemote,
    defaults: DefaultsConfig,
    org_id: str = "",
    project_id: str = "",
) -> BaseStrategy:
    try:
        strategy_cls = STRATEGIES[mode]
    except KeyError:
        raise ValueError(f"Unknown mode: {mode}. Known: {list(STRATEGIES)}") from None
    return strategy_cls(manifests, catalog, defaults, org_id=org_id, project_id=project_id)


__all__ = [
    "BaseStrategy",
    "CreateEntityStrategy",
    "GenerateManifestStrategy",
    "RegisterManifestStrategy",
    "STRATEGIES",
    "build_strategy",
]
