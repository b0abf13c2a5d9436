# File: resolvergen/context.py
"""
NexaFlow ResolverGen - Compilation Context
===========================================
The immutable snapshot every generator works from: the full model set,
the resolved index plan, the shared relational cluster and the config.

A fresh context is built per run, so compilation is re-entrant and
nothing leaks from one run into the next.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Tuple

from resolvergen.bindings import resolve_cluster
from resolvergen.errors import GenerationError
from resolvergen.models import (
    CompilationConfig,
    ModelDefinition,
    RelationalCluster,
    SecondaryIndexSpec,
)
from resolvergen.relationships import RelationshipPlanner

logger: logging.Logger = logging.getLogger("resolvergen.context")


@dataclass(frozen=True, slots=True)
class CompilationContext:
    models: Tuple[ModelDefinition, ...]
    model_map: Mapping[str, ModelDefinition]
    index_plan: Mapping[str, Tuple[SecondaryIndexSpec, ...]]
    cluster: Optional[RelationalCluster]
    config: CompilationConfig

    @classmethod
    def build(
        cls,
        models: Sequence[ModelDefinition],
        config: Optional[CompilationConfig] = None,
    ) -> "CompilationContext":
        config = config or CompilationConfig()
        frozen_models: Tuple[ModelDefinition, ...] = tuple(models)
        planner = RelationshipPlanner(frozen_models, config)
        index_plan = {
            name: tuple(specs) for name, specs in planner.plan_index_map().items()
        }
        context = cls(
            models=frozen_models,
            model_map=MappingProxyType({m.name: m for m in frozen_models}),
            index_plan=MappingProxyType(index_plan),
            cluster=resolve_cluster(frozen_models, config),
            config=config,
        )
        logger.debug(
            "Built compilation context: %d model(s), %d planned index(es), cluster=%s.",
            len(frozen_models),
            sum(len(v) for v in index_plan.values()),
            context.cluster.name if context.cluster else None,
        )
        return context

    def model(self, name: str) -> ModelDefinition:
        try:
            return self.model_map[name]
        except KeyError:
            raise GenerationError(f"Model '{name}' is not part of this compilation.") from None

    def indexes_for(self, name: str) -> Tuple[SecondaryIndexSpec, ...]:
        return self.index_plan.get(name, ())

    def require_cluster(self) -> RelationalCluster:
        if self.cluster is None:
            raise GenerationError("No relational cluster is declared for this model set.")
        return self.cluster

    @property
    def has_rate_limited_source(self) -> bool:
        return any(m.is_rate_limited for m in self.models)


__all__: List[str] = ["CompilationContext"]

logger.debug("resolvergen.context loaded — %d public symbols.", len(__all__))
