# File: resolvergen/bindings.py
"""
NexaFlow ResolverGen - Data Source Bindings
============================================
Names the store or function each template pair runs against, so the
provisioning layer can attach it to the right managed data source.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from resolvergen.errors import GenerationError
from resolvergen.models import (
    BindingKind,
    CompilationConfig,
    DatabaseSource,
    DataSourceBinding,
    EngineKind,
    ModelDefinition,
    RelationalCluster,
    ThirdPartyApiSource,
)
from resolvergen.utils import table_name_for

logger: logging.Logger = logging.getLogger("resolvergen.bindings")

NONE_BINDING: DataSourceBinding = DataSourceBinding(kind=BindingKind.NONE, name="None")


def resolve_cluster(
    models: Sequence[ModelDefinition], config: CompilationConfig
) -> Optional[RelationalCluster]:
    """First cluster declared by a relational source, else the configured one."""
    for model in models:
        source = model.data_source
        if isinstance(source, DatabaseSource) and source.cluster is not None:
            return source.cluster
    return config.relational_cluster


def binding_for(
    model: ModelDefinition,
    cluster: Optional[RelationalCluster],
    config: Optional[CompilationConfig] = None,
) -> DataSourceBinding:
    """Binding for the main data operations of ``model``."""
    config = config or CompilationConfig()
    engine: EngineKind = model.engine
    match engine:
        case EngineKind.DOCUMENT:
            return DataSourceBinding(
                kind=BindingKind.DOCUMENT_TABLE,
                name=f"{model.name}Table",
                details={"tableName": model.name},
            )
        case EngineKind.RELATIONAL:
            if cluster is None:
                raise GenerationError(
                    f"Model '{model.name}' uses the relational engine but no "
                    "relational cluster is declared."
                )
            return DataSourceBinding(
                kind=BindingKind.RELATIONAL_CLUSTER,
                name=cluster.name,
                details={
                    "database": cluster.database,
                    "secretRef": cluster.secret_ref,
                    "table": table_name_for(model.name),
                },
            )
        case EngineKind.HTTP_API:
            assert isinstance(model.data_source, ThirdPartyApiSource)
            return DataSourceBinding(
                kind=BindingKind.HTTP_ENDPOINT,
                name=f"{model.name}Api",
                details={"endpoint": model.data_source.endpoint},
            )
        case EngineKind.QUEUED_API:
            source = model.data_source
            assert isinstance(source, ThirdPartyApiSource) and source.limits is not None
            return DataSourceBinding(
                kind=BindingKind.REQUEST_QUEUE,
                name=f"{model.name}Queue",
                details={
                    "endpoint": source.endpoint,
                    "limit": str(source.limits.limit),
                    "frequencyInSeconds": str(source.limits.frequency_in_seconds),
                    "queueUrlStashKey": config.queue_url_stash_key,
                },
            )
    raise GenerationError(f"No data source binding for engine '{engine}'.")


def function_binding(function_name: str) -> DataSourceBinding:
    """Binding for an externally executed hook function."""
    return DataSourceBinding(kind=BindingKind.FUNCTION, name=function_name)


def job_results_binding(config: CompilationConfig) -> DataSourceBinding:
    """Table the external worker writes async job results to."""
    return DataSourceBinding(
        kind=BindingKind.DOCUMENT_TABLE,
        name="JobResultsTable",
        details={"tableName": config.job_results_table},
    )


__all__: List[str] = [
    "NONE_BINDING",
    "resolve_cluster",
    "binding_for",
    "function_binding",
    "job_results_binding",
]

logger.debug("resolvergen.bindings loaded — %d public symbols.", len(__all__))
