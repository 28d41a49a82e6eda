from datetime import date

from schedule_engine.schemas.timetable import Assignment, AssignmentKey, AssignmentKind
from schedule_engine.services.assignment_store import AssignmentStore


def _regular(slot, section, teacher, subject="math"):
    return Assignment(
        schedule_id="s1",
        time_slot_id=slot,
        section_id=section,
        subject_id=subject,
        teacher_id=teacher,
    )


def _overlay(slot, section, teacher, on, kind=AssignmentKind.substitute, subject="math"):
    return Assignment(
        schedule_id="s1",
        time_slot_id=slot,
        section_id=section,
        subject_id=subject,
        teacher_id=teacher,
        kind=kind,
        effective_date=on,
    )


def test_put_and_read_back_through_slot_section_index():
    store = AssignmentStore()
    record = _regular("P1", "10-A", "T1")
    assert store.put(record) is None

    assert store.get(AssignmentKey("P1", "10-A", AssignmentKind.regular)) == record
    assert store.by_slot_section[("P1", "10-A")] == {(AssignmentKind.regular, None): record}
    assert store.teacher_regulars("T1", "P1") == [record]
    assert len(store) == 1


def test_replacing_moves_the_teacher_index():
    store = AssignmentStore([_regular("P1", "10-A", "T1")])
    replacement = _regular("P1", "10-A", "T2", subject="eng")

    previous = store.put(replacement)

    assert previous.teacher_id == "T1"
    assert store.teacher_regulars("T1", "P1") == []
    assert store.teacher_regulars("T2", "P1") == [replacement]
    assert ("T1", "P1", None) not in store.by_teacher_slot
    assert len(store) == 1


def test_discard_cleans_both_indexes():
    on = date(2025, 1, 10)
    store = AssignmentStore([_regular("P1", "10-A", "T1"), _overlay("P1", "10-A", "T3", on)])

    removed = store.discard(AssignmentKey("P1", "10-A", AssignmentKind.substitute, on))

    assert removed.teacher_id == "T3"
    assert store.teacher_overlays("T3", "P1", on) == []
    assert ("T3", "P1", on) not in store.by_teacher_slot
    assert store.overlay_at("P1", "10-A", on) is None
    assert store.discard(AssignmentKey("P1", "10-A", AssignmentKind.substitute, on)) is None


def test_occupant_prefers_the_overlay_for_its_date_only():
    on = date(2025, 1, 10)
    store = AssignmentStore([_regular("P1", "10-A", "T1"), _overlay("P1", "10-A", "T3", on)])

    assert store.occupant("P1", "10-A", on).teacher_id == "T3"
    assert store.occupant("P1", "10-A", date(2025, 1, 11)).teacher_id == "T1"
    assert store.occupant("P1", "10-A", date(2025, 1, 11), recurs=False) is None
    assert store.occupant("P2", "10-A", on) is None


def test_copy_is_independent():
    store = AssignmentStore([_regular("P1", "10-A", "T1")])
    clone = store.copy()
    clone.put(_regular("P2", "10-A", "T1"))

    assert len(store) == 1
    assert len(clone) == 2
    assert not store.references_slot("P2")
    assert clone.references_slot("P2")
    assert clone.references_section("10-A")


def test_overlay_bindings_and_dates():
    first = date(2025, 1, 10)
    second = date(2025, 1, 17)
    store = AssignmentStore(
        [
            _overlay("P1", "10-B", "T2", second),
            _overlay("P1", "10-A", "T2", first, kind=AssignmentKind.exam),
            _regular("P1", "10-C", "T2"),
        ]
    )

    bindings = store.teacher_overlay_bindings("T2", "P1")
    assert {item.effective_date for item in bindings} == {first, second}
    assert store.overlay_dates() == [first, second]
    assert [item.section_id for item in store.overlay_assignments(first)] == ["10-A"]
    assert [item.section_id for item in store.regular_assignments()] == ["10-C"]
