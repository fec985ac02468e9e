import asyncio

from apps.worker.lib.measurement import MeasurementUnavailable
from apps.worker.lib.visit_chain import resolve_chain
from apps.worker.project.content import StaticContentProvider, build_blocks
from apps.worker.project.models import PageMeasurements, PrintContext
from apps.worker.project.page_plan import compute_page_plan, header_opd_no, prepare_print_bundle
from apps.worker.steps.export_render.rx_measure import HeightMeasurementAdapter
from packages.shared.models import Prescription, RxLine, Visit


def mk_visits(n):
    visits = [Visit(visit_id="A", patient_id="p", created_at=100, opd_no="OPD-1")]
    for i in range(1, n):
        visits.append(
            Visit(visit_id=f"F{i}", patient_id="p", created_at=100 + i * 100, anchor_visit_id="A", opd_no=f"OPD-{i + 1}")
        )
    return visits


def mk_lines(n, prefix="Med"):
    return [RxLine(medicine=f"{prefix} {i}", dose="500mg", duration=5) for i in range(n)]


def mk_content(visits, lines_per_visit=2):
    history = {v.visit_id: Prescription(visit_id=v.visit_id, lines=mk_lines(lines_per_visit)) for v in visits}
    current = visits[-1].visit_id
    return StaticContentProvider(current_lines=history[current].lines, history=history)


class FailingAdapter(HeightMeasurementAdapter):
    def measure(self, blocks, context, history_enabled=True):
        raise MeasurementUnavailable("surface not ready")


def test_history_disabled_single_page_without_measuring():
    visits = mk_visits(3)
    plan = compute_page_plan(visits, "F2", mk_content(visits), history_enabled=False, adapter=FailingAdapter())
    assert plan.chain_ids == ["F2"]
    assert plan.pages == [["F2"]]
    assert not plan.degraded
    assert plan.measurements is None


def test_measurement_unavailable_degrades_to_single_page():
    visits = mk_visits(3)
    plan = compute_page_plan(visits, "F2", mk_content(visits), adapter=FailingAdapter())
    assert plan.degraded
    assert plan.pages == [["A", "F1", "F2"]]
    assert "surface not ready" in plan.degraded_reason


def test_stale_measurements_degrade():
    visits = mk_visits(3)
    measurements = PageMeasurements(
        first_page_capacity=500, next_page_capacity=700, block_heights=[100, 100, 100], key="not-these-inputs"
    )
    plan = compute_page_plan(visits, "F2", mk_content(visits), measurements)
    assert plan.degraded
    assert plan.pages == [["A", "F1", "F2"]]


def test_height_count_mismatch_degrades():
    visits = mk_visits(3)
    measurements = PageMeasurements(first_page_capacity=500, next_page_capacity=700, block_heights=[100, 100])
    plan = compute_page_plan(visits, "F2", mk_content(visits), measurements)
    assert plan.degraded
    assert plan.pages == [["A", "F1", "F2"]]


def test_supplied_measurements_paginate():
    visits = mk_visits(3)
    measurements = PageMeasurements(first_page_capacity=500, next_page_capacity=700, block_heights=[300, 300, 300])
    plan = compute_page_plan(visits, "F2", mk_content(visits), measurements, safety_margin=0)
    assert not plan.degraded
    assert plan.pages == [["A"], ["F1", "F2"]]
    assert plan.page_of("F2") == 1


def test_notes_flag_carried_into_plan():
    visits = mk_visits(2)
    measurements = PageMeasurements(
        first_page_capacity=500, next_page_capacity=700, notes_height=150, block_heights=[200, 200]
    )
    context = PrintContext(reception_notes="Collect X-ray report")
    plan = compute_page_plan(visits, "F1", mk_content(visits), measurements, context=context, safety_margin=0)
    assert plan.has_notes
    assert plan.pages == [["A"], ["F1"]]


def test_real_measurement_splits_long_history():
    visits = mk_visits(6)
    plan = compute_page_plan(visits, "F5", mk_content(visits, lines_per_visit=14))
    assert not plan.degraded
    assert plan.page_count >= 2
    assert [v for page in plan.pages for v in page] == ["A", "F1", "F2", "F3", "F4", "F5"]
    m = plan.measurements
    assert m.next_page_capacity > m.first_page_capacity
    assert len(m.block_heights) == 6
    assert m.key == plan.input_key


def test_real_measurement_short_history_fits_one_page():
    visits = mk_visits(2)
    plan = compute_page_plan(visits, "F1", mk_content(visits, lines_per_visit=1))
    assert plan.pages == [["A", "F1"]]


def test_measurement_is_repeatable():
    visits = mk_visits(3)
    content = mk_content(visits, lines_per_visit=4)
    first = compute_page_plan(visits, "F2", content)
    second = compute_page_plan(visits, "F2", content)
    assert first.measurements == second.measurements
    assert first.pages == second.pages


def test_override_applied_before_chain():
    visits = mk_visits(2) + [Visit(visit_id="X", patient_id="p", created_at=900)]
    override = Visit(visit_id="X", patient_id="p", created_at=900, anchor_visit_id="A")
    bundle = prepare_print_bundle(visits, "X", mk_content(visits), visit_meta_override=override)
    assert bundle.plan.chain_ids == ["A", "F1", "X"]
    assert bundle.block("A").is_anchor
    assert bundle.block("X").is_current


def test_blocks_carry_inline_opd_except_anchor():
    visits = mk_visits(3)
    chain = resolve_chain(visits, None, "F2")
    blocks = build_blocks(chain, "F2", mk_content(visits))
    assert [b.opd_inline for b in blocks] == [None, "OPD-2", "OPD-3"]
    assert header_opd_no(chain, "F2", history_enabled=True) == "OPD-1"
    assert header_opd_no(chain, "F2", history_enabled=False) == "OPD-3"


def test_current_lines_come_from_current_prescription():
    visits = mk_visits(2)
    content = StaticContentProvider(
        current_lines=mk_lines(1, prefix="Fresh"),
        history={"A": Prescription(visit_id="A", lines=mk_lines(2, prefix="Old"))},
    )
    blocks = build_blocks(resolve_chain(visits, None, "F1"), "F1", content)
    assert [line.medicine for line in blocks[0].lines] == ["Old 0", "Old 1"]
    assert [line.medicine for line in blocks[1].lines] == ["Fresh 0"]


def test_measure_async_result_cached():
    visits = mk_visits(2)
    chain = resolve_chain(visits, None, "F1")
    blocks = build_blocks(chain, "F1", mk_content(visits))
    adapter = HeightMeasurementAdapter()
    context = PrintContext()

    result = asyncio.run(adapter.measure_async(blocks, context))
    assert result is not None
    assert adapter.cached(blocks, context) == result
    assert adapter.cached(blocks[:1], context) is None


def test_measure_async_drops_result_when_inputs_change_mid_flight():
    visits = mk_visits(2)
    blocks = build_blocks(resolve_chain(visits, None, "F1"), "F1", mk_content(visits))
    adapter = HeightMeasurementAdapter()
    context = PrintContext()

    async def run():
        task = asyncio.create_task(adapter.measure_async(blocks, context))
        # Let the task start its layout pass in the worker thread
        await asyncio.sleep(0)
        assert adapter.tracker.generation == 1
        adapter.tracker.begin("edited-inputs")
        return await task

    assert asyncio.run(run()) is None
    assert adapter.cached(blocks, context) is None
    assert adapter.tracker.result_for("edited-inputs") is None
