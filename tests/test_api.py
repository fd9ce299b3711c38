"""Tests for the public API."""

import json
from pathlib import Path

import pytest
from conftest import RecordingExecutor

from repbuild.api import build, list_targets, load_project, status
from repbuild.codes import NodeStatus
from repbuild.kernel.errors import (
    CycleError,
    DeclarationError,
    DuplicateOutputError,
    UnknownTargetError,
)

FIXTURE = Path(__file__).resolve().parent.parent / "fixtures" / "analysis_pipeline" / "repbuild.json"

PIPELINE_FILES = {
    "data/raw/sample_data.csv": "id,y,x\n1,2,3\n",
    "scripts/do/functions.do": "program define helpers\nend\n",
    "scripts/do/01_data_cleaning.do": "clean",
    "scripts/do/02_data_preparation.do": "prepare",
    "scripts/do/03_descriptive_analysis.do": "describe",
    "scripts/do/04_main_analysis.do": "regress",
    "scripts/do/05_robustness_checks.do": "robust",
    "scripts/do/06_generate_figures.do": "graph",
}


@pytest.fixture
def pipeline(tmp_path):
    for rel, content in PIPELINE_FILES.items():
        target = tmp_path / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return load_project(FIXTURE, root=tmp_path, environ={})


def test_load_fixture_project(pipeline, tmp_path):
    assert pipeline.root == tmp_path.resolve()
    assert pipeline.config.jobs == 2
    assert pipeline.config.state_dir == tmp_path.resolve() / ".repbuild"
    # Configured and output directories exist after loading
    for rel in ("ado", "data/clean", "outputs/tables", "outputs/figures", "analysis/logs"):
        assert (tmp_path / rel).is_dir()


def test_resolve_aliases_in_fixture(pipeline):
    assert pipeline.resolve(["tables"]) == ["descriptive_analysis", "main_analysis", "robustness_analysis"]
    assert pipeline.resolve() == pipeline.graph.node_ids()


def test_full_pipeline_build_and_rebuild(pipeline):
    executor = RecordingExecutor()
    report = build(pipeline, executor=executor)
    assert report.ok
    assert executor.calls[:2] == ["data_clean", "data_final"]
    assert set(executor.calls[2:]) == {"descriptive_analysis", "main_analysis", "robustness_analysis", "figures"}

    # Editing the shared helper script invalidates every stage
    (pipeline.root / "scripts/do/functions.do").write_text("program define helpers2\nend\n", encoding="utf-8")
    again = RecordingExecutor()
    build(pipeline, executor=again)
    assert len(again.calls) == 6


def test_building_alias_builds_upstream_only(pipeline):
    executor = RecordingExecutor()
    build(pipeline, ["figures_only"], executor=executor)
    assert executor.calls == ["data_clean", "data_final", "figures"]


def test_new_package_in_ado_directory_rebuilds(pipeline):
    build(pipeline, executor=RecordingExecutor())
    pkg = pipeline.root / "ado" / "plus" / "e"
    pkg.mkdir(parents=True)
    (pkg / "estout.ado").write_text("program estout\n", encoding="utf-8")
    again = RecordingExecutor()
    build(pipeline, ["data"], executor=again)
    assert again.calls == ["data_clean", "data_final"]


def test_status_reports_stale_nodes(pipeline):
    states = status(pipeline, ["data"])
    assert [s.node_id for s in states] == ["data_clean", "data_final"]
    assert all(s.stale for s in states)

    build(pipeline, ["data"], executor=RecordingExecutor())
    states = status(pipeline, ["data"])
    assert [s.describe() for s in states] == ["fresh", "fresh"]


def test_list_targets(pipeline):
    listing = list_targets(pipeline)
    assert listing["nodes"]["figures"] == ["outputs/figures/figure1.pdf", "outputs/figures/figure2.pdf"]
    assert list(listing["aliases"]) == ["all", "data", "analysis", "tables", "figures_only"]
    assert listing["aliases"]["tables"] == listing["aliases"]["analysis"]


def test_dry_run_report(pipeline):
    report = build(pipeline, ["data"], dry_run=True)
    assert report.dry_run
    assert report.ids_with(NodeStatus.PLANNED) == ["data_clean", "data_final"]
    assert report.format_text().startswith("Build plan: planned=2")


def test_unknown_target_raises_before_running(pipeline):
    executor = RecordingExecutor()
    with pytest.raises(UnknownTargetError):
        build(pipeline, ["data", "no_such_thing"], executor=executor)
    assert executor.calls == []


def test_load_from_dict(tmp_path):
    project = load_project(
        {"nodes": [{"outputs": ["a.txt"], "source": "a.py"}]},
        root=tmp_path,
        environ={},
    )
    assert project.graph.node_ids() == ["a.txt"]


def _write(tmp_path, declaration):
    (tmp_path / "repbuild.json").write_text(json.dumps(declaration), encoding="utf-8")


@pytest.mark.parametrize(
    "nodes, aliases, error",
    [
        (
            [
                {"id": "X", "outputs": ["x.txt"], "source": "x.py", "dependencies": ["y.txt"]},
                {"id": "Y", "outputs": ["gen/y.txt"], "source": "y.py", "dependencies": ["x.txt"]},
                {"id": "Z", "outputs": ["y.txt"], "source": "z.py", "dependencies": ["X"]},
            ],
            [],
            CycleError,
        ),
        (
            [
                {"id": "a", "outputs": ["gen/shared.txt"], "source": "a.py"},
                {"id": "b", "outputs": ["gen/shared.txt"], "source": "b.py"},
            ],
            [],
            DuplicateOutputError,
        ),
        (
            [{"id": "a", "outputs": ["gen/a.txt"], "source": "a.py"}],
            [{"name": "broken", "members": ["ghost"]}],
            UnknownTargetError,
        ),
    ],
)
def test_structural_errors_have_no_side_effects(tmp_path, nodes, aliases, error):
    _write(tmp_path, {
        "config": {"directories": ["made/by/load"]},
        "nodes": nodes,
        "aliases": aliases,
    })
    with pytest.raises(error):
        load_project(tmp_path, environ={})
    assert not (tmp_path / "made").exists()
    assert not (tmp_path / "gen").exists()
    assert not (tmp_path / ".repbuild").exists()


def test_unknown_default_target_is_structural(tmp_path):
    _write(tmp_path, {
        "config": {"default_targets": ["nope"], "directories": ["made"]},
        "nodes": [{"outputs": ["a.txt"], "source": "a.py"}],
    })
    with pytest.raises(UnknownTargetError):
        load_project(tmp_path, environ={})
    assert not (tmp_path / "made").exists()


def test_environment_overrides(tmp_path):
    _write(tmp_path, {"nodes": [{"outputs": ["a.txt"], "source": "a.py"}]})
    project = load_project(tmp_path, environ={"REPBUILD_JOBS": "4", "REPBUILD_STATE_DIR": "cache/state"})
    assert project.config.jobs == 4
    assert project.config.state_dir == tmp_path.resolve() / "cache" / "state"

    project = load_project(tmp_path, environ={"REPBUILD_JOBS": "4"}, jobs=2)
    assert project.config.jobs == 2


def test_invalid_environment_override(tmp_path):
    _write(tmp_path, {"nodes": [{"outputs": ["a.txt"], "source": "a.py"}]})
    with pytest.raises(DeclarationError, match="REPBUILD_JOBS"):
        load_project(tmp_path, environ={"REPBUILD_JOBS": "many"})
