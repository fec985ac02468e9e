import random

from apps.worker.lib.visit_chain import resolve_chain
from packages.shared.models import Visit, VisitTag


def mk_visit(vid, created=None, anchor=None, tag=None, updated=None, opd=None):
    return Visit(
        visit_id=vid,
        patient_id="p1",
        anchor_visit_id=anchor,
        tag=tag,
        created_at=created,
        updated_at=updated,
        opd_no=opd,
    )


def abc_visits():
    return [
        mk_visit("A", created=100),
        mk_visit("B", created=200, anchor="A"),
        mk_visit("C", created=300, anchor="A"),
    ]


def test_chain_excludes_future_followup():
    chain = resolve_chain(abc_visits(), None, "B")
    assert chain.chain_ids == ["A", "B"]
    assert chain.anchor_id == "A"


def test_chain_latest_followup_includes_all():
    chain = resolve_chain(abc_visits(), None, "C")
    assert chain.chain_ids == ["A", "B", "C"]


def test_standalone_visit_prints_alone():
    chain = resolve_chain([mk_visit("X", created=50)], None, "X")
    assert chain.chain_ids == ["X"]


def test_printing_anchor_shows_only_anchor():
    chain = resolve_chain(abc_visits(), None, "A")
    assert chain.chain_ids == ["A"]
    assert chain.anchor_id == "A"


def test_explicit_followup_tag():
    visits = [
        mk_visit("A", created=100, tag=VisitTag.NEW),
        mk_visit("B", created=200, anchor="A", tag=VisitTag.FOLLOWUP),
    ]
    assert resolve_chain(visits, None, "B").chain_ids == ["A", "B"]


def test_new_tag_with_anchor_is_not_followup():
    # A "new" visit is its own anchor even if a stale anchor id lingers on the record
    visits = [mk_visit("A", created=100), mk_visit("B", created=200, anchor="A", tag=VisitTag.NEW)]
    assert resolve_chain(visits, None, "B").chain_ids == ["B"]


def test_followup_without_anchor_prints_alone():
    chain = resolve_chain([mk_visit("B", created=200, tag=VisitTag.FOLLOWUP)], None, "B")
    assert chain.chain_ids == ["B"]
    assert chain.anchor_id is None


def test_missing_anchor_metadata_still_resolves():
    visits = [mk_visit("B", created=200, anchor="A"), mk_visit("C", created=300, anchor="A")]
    chain = resolve_chain(visits, None, "C")
    assert chain.chain_ids == ["B", "C"]
    assert chain.anchor_id == "A"


def test_missing_current_visit_synthesized():
    chain = resolve_chain(abc_visits(), None, "Z")
    assert chain.chain_ids == ["Z"]
    assert chain.visit("Z").visit_id == "Z"


def test_override_replaces_stored_metadata():
    # The current visit was just re-anchored in the UI but the store still has the old record
    stored = abc_visits() + [mk_visit("D", created=400)]
    override = mk_visit("D", created=400, anchor="A", tag=VisitTag.FOLLOWUP)
    chain = resolve_chain(stored, override, "D")
    assert chain.chain_ids == ["A", "B", "C", "D"]


def test_override_for_visit_not_yet_listed():
    override = mk_visit("D", created=400, anchor="A")
    chain = resolve_chain(abc_visits(), override, "D")
    assert chain.chain_ids == ["A", "B", "C", "D"]


def test_created_at_falls_back_to_updated_at():
    visits = [
        mk_visit("A", created=100),
        mk_visit("B", anchor="A", updated=250),
        mk_visit("C", created=200, anchor="A"),
    ]
    assert resolve_chain(visits, None, "B").chain_ids == ["A", "C", "B"]


def test_ties_keep_source_order():
    visits = [
        mk_visit("A", created=100),
        mk_visit("C", created=200, anchor="A"),
        mk_visit("B", created=200, anchor="A"),
        mk_visit("D", created=300, anchor="A"),
    ]
    assert resolve_chain(visits, None, "D").chain_ids == ["A", "C", "B", "D"]


def test_ties_deterministic_by_visit_id():
    visits = [
        mk_visit("A", created=100),
        mk_visit("C", created=200, anchor="A"),
        mk_visit("B", created=200, anchor="A"),
        mk_visit("D", created=300, anchor="A"),
    ]
    assert resolve_chain(visits, None, "D", deterministic=True).chain_ids == ["A", "B", "C", "D"]


def test_other_anchor_chains_ignored():
    visits = abc_visits() + [mk_visit("Q", created=10), mk_visit("R", created=250, anchor="Q")]
    assert resolve_chain(visits, None, "C").chain_ids == ["A", "B", "C"]


def test_self_anchor_is_dropped():
    v = mk_visit("A", created=100, anchor="A")
    assert v.anchor_visit_id is None
    assert resolve_chain([v], None, "A").chain_ids == ["A"]


def test_chain_properties_on_shuffled_input():
    rng = random.Random(7)
    visits = [mk_visit("A", created=0)]
    for i in range(1, 15):
        visits.append(mk_visit(f"V{i}", created=rng.randint(1, 50) * 10, anchor="A"))
    by_id = {v.visit_id: v for v in visits}

    for current in by_id:
        shuffled = list(visits)
        rng.shuffle(shuffled)
        chain = resolve_chain(shuffled, None, current)
        ids = chain.chain_ids

        assert ids[-1] == current
        assert len(ids) == len(set(ids))
        limit = by_id[current].created_at
        assert all(by_id[v].created_at <= limit for v in ids)
        keys = [by_id[v].chronology_key() for v in ids]
        assert keys == sorted(keys)
