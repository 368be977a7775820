"""
Tests for ChainInterpreter: loading, structural validation, analysis and planning
"""

import textwrap
from itertools import count

import pytest

from chain_sdk.chains import (
    ChainInterpreter,
    ChainStepDefinition,
    ChainValidationError,
    DataMappingEdge,
    ExecutionOrder,
    StepType,
    create_execution_plan,
    discover_chains,
    get_execution_summary,
    load_chain,
    load_chain_from_dict,
    validate_chain,
)


@pytest.fixture
def interpreter():
    return ChainInterpreter()


@pytest.fixture
def etl_chain(make_step, make_edge, make_chain):
    return make_chain(
        [make_step("fetch", 0), make_step("transform", 1), make_step("store", 2)],
        [make_edge("fetch", "transform", body="raw"), make_edge("transform", "store", clean="record")],
    )


# --- loading --------------------------------------------------------------


def test_load_from_dict(interpreter, step_def):
    request = interpreter.load_from_dict({
        "name": "summarize",
        "execution_order": "parallel",
        "steps": [step_def("fetch"), step_def("render", step_type="template")],
        "tags": ["nlp", "nlp", "demo"],
    })

    assert request.name == "summarize"
    assert request.execution_order == ExecutionOrder.PARALLEL
    assert [s.type for s in request.steps] == [StepType.PROMPT, StepType.TEMPLATE]
    assert request.tags == ["nlp", "demo"]


@pytest.mark.parametrize("payload", [
    {"name": "has spaces", "execution_order": "sequential"},
    {"name": "ok", "execution_order": "sometimes"},
    {"name": "ok", "execution_order": "sequential", "tags": ["x" * 31]},
    {"name": "ok", "execution_order": "sequential", "tags": [str(i) for i in range(11)]},
    {"name": "ok"},
])
def test_load_from_dict_rejects_bad_payloads(interpreter, payload):
    with pytest.raises(ChainValidationError) as exc_info:
        interpreter.load_from_dict(payload)

    assert exc_info.value.errors


def test_load_from_dict_rejects_bad_resource_version(interpreter):
    with pytest.raises(ChainValidationError) as exc_info:
        interpreter.load_from_dict({
            "name": "ok",
            "execution_order": "sequential",
            "steps": [{
                "name": "a",
                "type": "prompt",
                "resource_ref": {"resource_id": "p", "resource_version": "v1"},
            }],
        })

    assert "steps.0.resource_ref.resource_version" in exc_info.value.errors[0]


def test_load_from_yaml(tmp_path):
    path = tmp_path / "etl.yaml"
    path.write_text(textwrap.dedent("""
        name: etl
        description: Fetch, clean and store
        execution_order: sequential
        steps:
          - name: fetch
            type: prompt
            resource_ref:
              resource_id: fetch-prompt
          - name: store
            type: template
            resource_ref:
              resource_id: store-template
              resource_version: 2.1.0
        data_mapping:
          - from_step: fetch
            to_step: store
            field_mapping:
              body: text
    """))

    request = load_chain(path)

    assert request.name == "etl"
    assert request.steps[1].resource_ref.resource_version == "2.1.0"
    assert request.data_mapping == [DataMappingEdge(from_step="fetch", to_step="store", field_mapping={"body": "text"})]


def test_load_from_yaml_errors(tmp_path):
    broken = tmp_path / "broken.yaml"
    broken.write_text("name: [unclosed")
    listing = tmp_path / "list.yaml"
    listing.write_text("- just\n- a list\n")

    with pytest.raises(ChainValidationError, match="Invalid YAML"):
        load_chain(broken)
    with pytest.raises(ChainValidationError, match="must contain a mapping"):
        load_chain(listing)
    with pytest.raises(ChainValidationError, match="not found"):
        load_chain(tmp_path / "missing.yaml")


def test_discover_chains_skips_invalid_files(tmp_path):
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "good.yml").write_text(textwrap.dedent("""
        name: good
        execution_order: parallel
        tags: [demo]
        steps:
          - name: only
            type: prompt
            resource_ref: {resource_id: p1}
    """))
    (tmp_path / "bad.yaml").write_text("name: bad chain\nexecution_order: sequential\n")

    chains = discover_chains(tmp_path)

    assert len(chains) == 1
    assert chains[0]["name"] == "good"
    assert chains[0]["steps"] == 1
    assert chains[0]["execution_order"] == "parallel"
    assert chains[0]["tags"] == ["demo"]


def test_discover_chains_missing_directory(tmp_path):
    assert discover_chains(tmp_path / "nope") == []


# --- structural validation ------------------------------------------------


def test_materialize_steps_defaults_order_to_position(interpreter, step_def):
    ids = count()
    definitions = [ChainStepDefinition(**step_def("a")), ChainStepDefinition(**step_def("b", order=7))]

    steps = interpreter.materialize_steps(definitions, lambda: f"step-{next(ids)}")

    assert [(s.id, s.order) for s in steps] == [("step-0", 0), ("step-1", 7)]


def test_empty_chain_fails_validation(interpreter, make_chain):
    report = interpreter.analyze(make_chain([]))

    assert not report.valid
    assert any("must have at least one step" in error for error in report.errors)


def test_duplicate_step_names(interpreter, step_def):
    steps = [ChainStepDefinition(**step_def("a")), ChainStepDefinition(**step_def("a"))]

    assert interpreter.validate_steps(steps) == ["Duplicate step name: a"]


def test_self_loop_mapping_is_rejected(interpreter, step_def):
    steps = [ChainStepDefinition(**step_def("a"))]
    mappings = [DataMappingEdge(from_step="a", to_step="a")]

    assert interpreter.validate_data_mapping(mappings, steps) == [
        "Data mapping cannot map step to itself: a"
    ]


def test_mapping_to_unknown_steps(interpreter, step_def):
    steps = [ChainStepDefinition(**step_def("a"))]
    mappings = [DataMappingEdge(from_step="ghost", to_step="a"), DataMappingEdge(from_step="a", to_step="phantom")]

    assert interpreter.validate_data_mapping(mappings, steps) == [
        "Data mapping references non-existent step: ghost",
        "Data mapping references non-existent step: phantom",
    ]


# --- analysis -------------------------------------------------------------


def test_analyze_valid_chain(interpreter, etl_chain):
    report = interpreter.analyze(etl_chain)

    assert report.valid
    assert report.warnings == []
    assert report.skipped_checks == []


def test_analyze_reports_cycle(interpreter, make_step, make_edge, make_chain):
    chain = make_chain(
        [make_step("a", 0), make_step("b", 1), make_step("c", 2)],
        [make_edge("a", "b"), make_edge("b", "c"), make_edge("c", "b")],
    )

    report = interpreter.analyze(chain)

    assert report.errors == ["Circular dependencies detected: c -> b"]


def test_analyze_order_gap_is_only_a_warning(interpreter, make_step, make_edge, make_chain):
    chain = make_chain(
        [make_step("first", 0), make_step("second", 2), make_step("third", 3)],
        [make_edge("first", "second"), make_edge("second", "third")],
    )

    report = interpreter.analyze(chain)

    assert report.valid
    assert len(report.warnings) == 1
    assert "'first'" in report.warnings[0] and "'second'" in report.warnings[0]


def test_analyze_unreachable_is_a_warning(interpreter, make_step, make_edge, make_chain):
    chain = make_chain(
        [make_step("start", 0), make_step("mid", 1), make_step("orphan", 2)],
        [make_edge("start", "mid")],
    )

    report = interpreter.analyze(chain)

    assert report.valid
    assert report.warnings == ["Potentially unreachable steps: orphan"]


def test_analyze_parallel_chain_skips_reachability(interpreter, make_step, make_chain):
    chain = make_chain(
        [make_step("a", 0), make_step("b", 5)],
        execution_order=ExecutionOrder.PARALLEL,
    )

    report = interpreter.analyze(chain)

    assert report.valid
    assert report.warnings == []
    assert len(report.skipped_checks) == 1
    assert "parallel" in report.skipped_checks[0]


def test_analyze_rejects_malformed_chain_version(interpreter, make_step, make_chain):
    report = interpreter.analyze(make_chain([make_step("a", 0)], version="v1"))

    assert report.errors == ["Invalid version format: v1"]


def test_service_validate_chain_matches_interpreter(interpreter, etl_chain):
    assert validate_chain(etl_chain).to_dict() == interpreter.analyze(etl_chain).to_dict()


# --- planning -------------------------------------------------------------


def test_execution_plan_for_linear_chain(interpreter, etl_chain):
    plan = interpreter.create_execution_plan(etl_chain)

    assert plan.chain_id == "chain-1"
    assert [e.step_name for e in plan.steps] == ["fetch", "transform", "store"]
    assert plan.get_entry("id-fetch").dependencies == []
    assert plan.get_entry("id-fetch").dependents == ["id-transform"]
    assert plan.get_entry("id-transform").dependencies == ["id-fetch"]
    assert plan.get_entry("id-transform").dependents == ["id-store"]
    assert plan.get_entry("id-store").dependencies == ["id-transform"]
    assert plan.get_parallel_groups() == [["id-fetch"], ["id-transform"], ["id-store"]]
    assert plan.estimated_execution_time_ms is None


def test_execution_plan_ignores_unknown_mapping_endpoints(interpreter, make_step, make_edge, make_chain):
    chain = make_chain([make_step("a", 0), make_step("b", 1)], [make_edge("a", "ghost"), make_edge("a", "b")])

    plan = interpreter.create_execution_plan(chain)

    assert plan.get_entry("id-a").dependents == ["id-b"]


def test_parallel_groups_leave_out_cycles(interpreter, make_step, make_edge, make_chain):
    chain = make_chain(
        [make_step("a", 0), make_step("b", 1), make_step("c", 2)],
        [make_edge("a", "b"), make_edge("b", "a")],
        execution_order=ExecutionOrder.PARALLEL,
    )

    plan = interpreter.create_execution_plan(chain)

    assert plan.get_parallel_groups() == [["id-c"]]


def test_execution_summary(etl_chain):
    summary = get_execution_summary(create_execution_plan(etl_chain))

    assert summary == {
        "chain_name": "test-chain",
        "execution_order": "sequential",
        "total_steps": 3,
        "total_levels": 3,
        "parallel_groups": [["fetch"], ["transform"], ["store"]],
        "sequence": ["fetch", "transform", "store"],
    }


def test_plan_to_dict(etl_chain):
    data = create_execution_plan(etl_chain).to_dict()

    assert data["execution_order"] == "sequential"
    assert data["steps"][1] == {
        "step_id": "id-transform",
        "step_name": "transform",
        "order": 1,
        "dependencies": ["id-fetch"],
        "dependents": ["id-store"],
    }


# --- input assembly -------------------------------------------------------


def test_build_step_input_skips_unfinished_dependencies(interpreter, etl_chain):
    transform = etl_chain.get_step("transform")

    data = interpreter.build_step_input(transform, etl_chain, {}, {"seed": 1})

    assert data == {"seed": 1}


def test_build_step_input_ignores_missing_fields(interpreter, etl_chain):
    transform = etl_chain.get_step("transform")

    data = interpreter.build_step_input(transform, etl_chain, {"fetch": {"other": 1}})

    assert data == {}


def test_build_step_input_non_dict_output(interpreter, make_step, make_edge, make_chain):
    chain = make_chain([make_step("a", 0), make_step("b", 1)], [make_edge("a", "b")])

    data = interpreter.build_step_input(chain.get_step("b"), chain, {"a": "plain text"})

    assert data == {"a": "plain text"}


def test_load_chain_from_dict_service(step_def):
    request = load_chain_from_dict({
        "name": "one-step",
        "execution_order": "sequential",
        "steps": [step_def("only")],
    })

    assert request.author == "system"
    assert request.steps[0].order is None
