"""
tests/test_compiler.py
Integration tests for resolvergen.compiler: the pure compile_models core
and the ResolverCompiler pipeline behind the CLI.
"""

from __future__ import annotations

import pathlib
from typing import Any, Dict, List

import pytest

from conftest import build_models, write_json, write_yaml
from resolvergen.compiler import ResolverCompiler, compile_models, count_templates
from resolvergen.errors import CompilationError
from resolvergen.models import CompilationConfig, ModelDefinition, ResolverField


class TestCompileModels:
    def test_blog_compiles(self, blog_models: List[ModelDefinition]) -> None:
        result = compile_models(blog_models)
        assert [m.name for m in result.models] == ["Post", "User"]
        assert "type Post {" in result.schema_sdl
        assert result.index_plan["Post"][0].index_name == "userIdIndex"
        assert result.shared_resolvers == []
        assert result.model("Post").resolver(ResolverField.UPDATE).is_pipeline

    def test_invalid_set_raises_with_every_error(
        self, comment_raw: Dict[str, Any], invoice_raw: Dict[str, Any]
    ) -> None:
        del invoice_raw["dataSource"]["cluster"]
        with pytest.raises(CompilationError) as exc_info:
            compile_models(build_models(comment_raw, invoice_raw))
        messages = exc_info.value.messages
        assert len(messages) == exc_info.value.result.error_count >= 2
        assert any("RELATIONAL_CLUSTER_MISSING" in m for m in messages)

    def test_rate_limited_set_gets_shared_resolvers(
        self, geocode_raw: Dict[str, Any], blog_models: List[ModelDefinition]
    ) -> None:
        models = [*blog_models, *build_models(geocode_raw)]
        result = compile_models(models)
        assert [s.field_name for s in result.shared_resolvers] == [
            "publishJobResult",
            "onJobCompleted",
        ]
        assert "type JobResult {" in result.schema_sdl

    def test_unknown_model_lookup(self, blog_models: List[ModelDefinition]) -> None:
        result = compile_models(blog_models)
        with pytest.raises(KeyError):
            result.model("Ghost")

    def test_count_templates(self, blog_models: List[ModelDefinition]) -> None:
        result = compile_models(blog_models)
        # 10 root resolvers + 2 stages of updatePost + 2 relationship resolvers
        assert count_templates(result) == (10 + 2 + 2) * 2

    def test_repeatable(self, blog_models: List[ModelDefinition]) -> None:
        assert compile_models(blog_models) == compile_models(blog_models)


class TestResolverCompilerRun:
    def test_full_run(self, models_dir: pathlib.Path, output_dir: pathlib.Path) -> None:
        report = ResolverCompiler().run(models_dir, output_dir)
        assert report.success, report.summary()
        assert report.total_models == 2
        assert report.total_resolvers == 12
        assert report.total_files > 0
        assert report.manifest is not None
        assert (output_dir / "schema.graphql").is_file()
        assert [s.step_name for s in report.step_metrics] == [
            "Load Models",
            "Validate Models",
            "Compile Templates",
            "Export Artifacts",
        ]

    def test_run_without_output_writes_nothing(
        self, models_dir: pathlib.Path, output_dir: pathlib.Path
    ) -> None:
        report = ResolverCompiler().run(models_dir)
        assert report.success
        assert report.result is not None
        assert report.manifest is None
        assert not output_dir.exists()

    def test_validation_failure_stops_before_compile(
        self, models_dir: pathlib.Path, output_dir: pathlib.Path, comment_raw: Dict[str, Any]
    ) -> None:
        write_yaml(models_dir / "Comment.yaml", comment_raw)
        report = ResolverCompiler().run(models_dir, output_dir)
        assert not report.success
        assert any("RELATIONSHIP_INVALID" in e for e in report.validation_errors)
        assert report.result is None
        assert not output_dir.exists()

    def test_malformed_file_skipped_unless_strict(
        self, models_dir: pathlib.Path, output_dir: pathlib.Path
    ) -> None:
        (models_dir / "Broken.json").write_text("{oops", encoding="utf-8")

        lenient = ResolverCompiler().run(models_dir, output_dir)
        assert lenient.success
        assert len(lenient.load_errors) == 1

        strict = ResolverCompiler(strict=True).run(models_dir, output_dir)
        assert not strict.success
        assert strict.load_errors
        assert [s.step_name for s in strict.step_metrics] == ["Load Models"]

    def test_fail_on_warnings(
        self, tmp_path: pathlib.Path, post_raw: Dict[str, Any], user_raw: Dict[str, Any]
    ) -> None:
        directory = tmp_path / "warned"
        directory.mkdir()
        del post_raw["accessControl"]
        write_json(directory / "Post.json", post_raw)
        write_json(directory / "User.json", user_raw)

        assert ResolverCompiler().run(directory).success
        report = ResolverCompiler(fail_on_warnings=True).run(directory)
        assert not report.success
        assert report.validation_warnings
        assert "treated as errors" in report.validation_errors[-1]

    def test_seed_warnings_reported(
        self, models_dir: pathlib.Path, output_dir: pathlib.Path
    ) -> None:
        write_yaml(models_dir / "Post.seed.yaml", [{"id": "p1"}])
        report = ResolverCompiler().run(models_dir, output_dir)
        assert report.success
        assert any("SEED_MISSING_REQUIRED" in w for w in report.validation_warnings)

    def test_summary_mentions_status(
        self, models_dir: pathlib.Path, output_dir: pathlib.Path
    ) -> None:
        summary = ResolverCompiler().run(models_dir, output_dir).summary()
        assert "SUCCESS" in summary
        assert "Export Artifacts" in summary
        assert "Aggregate hash" in summary


class TestResolverCompilerValidate:
    def test_validate_only(self, models_dir: pathlib.Path) -> None:
        report = ResolverCompiler().validate(models_dir, CompilationConfig())
        assert report.success
        assert report.result is None
        assert [s.step_name for s in report.step_metrics] == ["Load Models", "Validate Models"]
