# File: resolvergen/repository.py
"""
NexaFlow ResolverGen - Model Repository
========================================
Loads model definitions and seed records from a directory of JSON/YAML
files.  Read-only: no cross-model validation happens here, that is the
validators' job once the whole set is loaded.

Layout::

    models/
        Post.yaml            one model, or {"models": [...]}
        User.json
        Post.seed.yaml       seed records for Post (a list, or {"records": [...]})

Files are read in sorted name order so the resulting model list is
deterministic.  A malformed source raises ``ModelLoadError``; the
repository logs it, records it in ``load_errors`` and skips it, unless
constructed with ``strict=True``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

import yaml
from pydantic import ValidationError

from resolvergen.errors import ModelLoadError
from resolvergen.models import CompilationConfig, ModelDefinition, SeedData

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("resolvergen.repository")

MODEL_SUFFIXES = (".json", ".yaml", ".yml")
SEED_MARKER: str = ".seed"


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def _read_structured(path: Path) -> Any:
    """Parse a JSON or YAML file.  Raises ``ModelLoadError`` on any failure."""
    try:
        text: str = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ModelLoadError(path, f"not valid UTF-8: {exc}") from exc
    except OSError as exc:
        raise ModelLoadError(path, f"cannot read file: {exc}") from exc

    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except json.JSONDecodeError as exc:
        raise ModelLoadError(path, f"invalid JSON: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ModelLoadError(path, f"invalid YAML: {exc}") from exc


def _is_seed_file(path: Path) -> bool:
    return path.stem.endswith(SEED_MARKER)


def parse_model(raw: Mapping[str, Any], source: Union[str, Path] = "<memory>") -> ModelDefinition:
    """Validate one raw model mapping.  Raises ``ModelLoadError``."""
    if not isinstance(raw, Mapping):
        raise ModelLoadError(source, f"expected a mapping, got {type(raw).__name__}")
    try:
        return ModelDefinition.model_validate({**raw, "source": str(source)})
    except ValidationError as exc:
        raise ModelLoadError(source, str(exc)) from exc


def load_config_file(path: Path) -> CompilationConfig:
    """
    Load a ``CompilationConfig`` from JSON/YAML.  An empty file yields the
    defaults.  Raises ``ModelLoadError``.
    """
    if not path.is_file():
        raise ModelLoadError(path, "config file not found")
    data: Any = _read_structured(path)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ModelLoadError(path, f"expected a mapping, got {type(data).__name__}")
    try:
        config = CompilationConfig.model_validate(data)
    except ValidationError as exc:
        raise ModelLoadError(path, str(exc)) from exc
    logger.info("Loaded config from %s (stage=%s).", path, config.stage)
    return config


# ---------------------------------------------------------------------------
# ModelRepository
# ---------------------------------------------------------------------------


class ModelRepository:
    """
    Directory-backed source of models and seed records.

    Usage::

        repo = ModelRepository(Path("models"))
        models = repo.load_models()
        seeds = repo.load_seed_data()
        for err in repo.load_errors:
            print(err)
    """

    def __init__(self, models_dir: Path, *, strict: bool = False) -> None:
        self._models_dir: Path = Path(models_dir)
        self._strict: bool = strict
        self.load_errors: List[ModelLoadError] = []

    @property
    def models_dir(self) -> Path:
        return self._models_dir

    def _source_files(self, seeds: bool) -> List[Path]:
        if not self._models_dir.is_dir():
            return []
        return sorted(
            path
            for path in self._models_dir.iterdir()
            if path.is_file()
            and path.suffix.lower() in MODEL_SUFFIXES
            and _is_seed_file(path) == seeds
        )

    def _record_failure(self, error: ModelLoadError) -> None:
        if self._strict:
            raise error
        logger.warning("Skipping source: %s", error)
        self.load_errors.append(error)

    # -----------------------------------------------------------------
    # Models
    # -----------------------------------------------------------------

    def load_models(self) -> List[ModelDefinition]:
        """All models in the directory, in file-name order.  Zero models is valid."""
        self.load_errors = []
        if not self._models_dir.is_dir():
            logger.warning("Models directory %s does not exist; no models loaded.", self._models_dir)
            return []

        models: List[ModelDefinition] = []
        for path in self._source_files(seeds=False):
            try:
                models.extend(self._load_file(path))
            except ModelLoadError as exc:
                self._record_failure(exc)

        if not models:
            logger.info("No models found in %s.", self._models_dir)
        else:
            logger.info(
                "Loaded %d model(s) from %s (%d source(s) skipped).",
                len(models),
                self._models_dir,
                len(self.load_errors),
            )
        return models

    def _load_file(self, path: Path) -> List[ModelDefinition]:
        data: Any = _read_structured(path)
        if data is None:
            logger.info("Empty model file %s ignored.", path)
            return []
        if isinstance(data, dict) and "models" in data:
            entries = data["models"]
            if not isinstance(entries, list):
                raise ModelLoadError(path, "'models' must be a list")
            return [parse_model(entry, f"{path}#{index}") for index, entry in enumerate(entries)]
        return [parse_model(data, path)]

    # -----------------------------------------------------------------
    # Seed data
    # -----------------------------------------------------------------

    def load_seed_data(self) -> SeedData:
        """
        ``<Model>.seed.(json|yaml|yml)`` → records.  Malformed seed files are
        logged and skipped even in strict mode; seeds never block compilation.
        """
        seeds: SeedData = {}
        for path in self._source_files(seeds=True):
            model_name: str = path.stem[: -len(SEED_MARKER)]
            try:
                records = self._load_seed_file(path)
            except ModelLoadError as exc:
                logger.warning("Skipping seed file: %s", exc)
                continue
            seeds.setdefault(model_name, []).extend(records)
        logger.debug("Loaded seed data for %d model(s).", len(seeds))
        return seeds

    @staticmethod
    def _load_seed_file(path: Path) -> List[Dict[str, Any]]:
        data: Any = _read_structured(path)
        if isinstance(data, dict) and "records" in data:
            data = data["records"]
        if data is None:
            return []
        if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
            raise ModelLoadError(path, "seed data must be a list of records")
        return data

    def __repr__(self) -> str:
        return f"<ModelRepository {self._models_dir} strict={self._strict}>"


__all__: List[str] = [
    "MODEL_SUFFIXES",
    "ModelRepository",
    "parse_model",
    "load_config_file",
]

logger.debug("resolvergen.repository loaded — %d public symbols.", len(__all__))
