"""
Defect registry: creation, resolution, deletion and bulk logging.
"""
import io
import uuid

import pytest
from fastapi import BackgroundTasks, HTTPException, UploadFile
from sqlmodel import select

from app.db.schema import Activity, ActivityAction, Defect, DefectSeverity, DefectStatus
from app.models.defect import (
    DefectCreate, DefectUpdate, BulkDefectCreate
)


def defect_payload(inspection, product, **overrides) -> DefectCreate:
    data = {
        "inspection_id": inspection.id,
        "product_id": product.id,
        "type": "scratch",
        "severity": "minor",
        "description": "Surface scratch near the hinge",
    }
    data.update(overrides)
    return DefectCreate(**data)


def upload(filename="photo.png", content=b"\x89PNG fake"):
    return UploadFile(file=io.BytesIO(content), filename=filename)


class TestCreateDefect:

    def test_create_recounts_parent_inspection(
        self, session, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()

        defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)
        defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)

        session.refresh(inspection)
        assert inspection.defects_found == 2

    def test_create_returns_resolved_references(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection(batch_number="B-777")

        result = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)

        assert result.inspection.batch_number == "B-777"
        assert result.product.name == product.name
        assert result.reporter.id == inspector.id
        assert result.status == DefectStatus.OPEN
        assert result.root_cause == "unknown"
        assert result.detected_by.value == "manual"

    def test_missing_inspection_is_not_found(
        self, session, defect_service, product, inspector, background_tasks
    ):
        payload = DefectCreate(
            inspection_id=uuid.uuid4(), product_id=product.id,
            type="dent", severity="major")

        with pytest.raises(HTTPException) as exc:
            defect_service.create_defect(inspector, payload, background_tasks)

        assert exc.value.status_code == 404
        assert session.exec(select(Defect)).all() == []
        assert background_tasks.tasks == []

    def test_missing_product_is_not_found(
        self, session, defect_service, make_inspection, inspector, background_tasks
    ):
        inspection = make_inspection()
        payload = DefectCreate(
            inspection_id=inspection.id, product_id=uuid.uuid4(),
            type="dent", severity="major")

        with pytest.raises(HTTPException) as exc:
            defect_service.create_defect(inspector, payload, background_tasks)

        assert exc.value.status_code == 404
        session.refresh(inspection)
        assert inspection.defects_found == 0

    def test_critical_defect_alerts_exactly_once(
        self, defect_service, make_inspection, product, inspector,
        background_tasks, alert_sink, run_tasks
    ):
        inspection = make_inspection()

        created = defect_service.create_defect(
            inspector,
            defect_payload(inspection, product, severity="critical",
                           detected_by="automated", ai_confidence=0.92),
            background_tasks)
        run_tasks(background_tasks)

        assert len(alert_sink.critical) == 1
        alerted_defect, alerted_inspection = alert_sink.critical[0]
        assert alerted_defect.id == created.id
        assert alerted_inspection.id == inspection.id

    def test_non_critical_defect_does_not_alert(
        self, defect_service, make_inspection, product, inspector,
        background_tasks, alert_sink, run_tasks
    ):
        inspection = make_inspection()

        for severity in ("minor", "major"):
            defect_service.create_defect(
                inspector, defect_payload(inspection, product, severity=severity),
                background_tasks)
        run_tasks(background_tasks)

        assert alert_sink.critical == []

    def test_measurements_string_is_decoded(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()

        result = defect_service.create_defect(
            inspector,
            defect_payload(inspection, product, measurements='{"depth_mm": 0.4}'),
            background_tasks)

        assert result.measurements == {"depth_mm": 0.4}

    def test_malformed_measurements_are_dropped(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()

        result = defect_service.create_defect(
            inspector,
            defect_payload(inspection, product, measurements="{depth: oops"),
            background_tasks)

        assert result.measurements is None
        assert result.type == "scratch"


class TestUpdateDefect:

    def test_first_resolution_stamps_resolver(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)

        result = defect_service.update_defect(
            inspector, created.id, DefectUpdate(status="resolved"), background_tasks)

        assert result.status == DefectStatus.RESOLVED
        assert result.resolved_at is not None
        assert result.resolved_by_id == inspector.id

    def test_resubmitting_resolved_keeps_original_stamp(
        self, defect_service, make_inspection, product, inspector, manager, background_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)
        first = defect_service.update_defect(
            inspector, created.id, DefectUpdate(status="resolved"), background_tasks)

        second = defect_service.update_defect(
            manager, created.id, DefectUpdate(status="resolved"), background_tasks)

        assert second.resolved_at == first.resolved_at
        assert second.resolved_by_id == inspector.id

    def test_malformed_measurements_do_not_fail_update(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector,
            defect_payload(inspection, product, measurements={"depth_mm": 0.4}),
            background_tasks)

        result = defect_service.update_defect(
            inspector, created.id,
            DefectUpdate(measurements="not json", description="Deeper than first thought"),
            background_tasks)

        assert result.description == "Deeper than first thought"
        assert result.measurements == {"depth_mm": 0.4}

    def test_escalating_to_critical_does_not_alert(
        self, defect_service, make_inspection, product, inspector,
        background_tasks, alert_sink, run_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)

        result = defect_service.update_defect(
            inspector, created.id, DefectUpdate(severity="critical"), background_tasks)
        run_tasks(background_tasks)

        assert result.severity == DefectSeverity.CRITICAL
        assert alert_sink.critical == []

    def test_resolved_defect_cannot_be_reopened(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)
        defect_service.resolve_defect(inspector, created.id, None, background_tasks)

        with pytest.raises(HTTPException) as exc:
            defect_service.update_defect(
                inspector, created.id, DefectUpdate(status="open"), background_tasks)

        assert exc.value.status_code == 400

    def test_unknown_defect_is_not_found(self, defect_service, inspector, background_tasks):
        with pytest.raises(HTTPException) as exc:
            defect_service.update_defect(
                inspector, uuid.uuid4(), DefectUpdate(type="dent"), background_tasks)

        assert exc.value.status_code == 404

    def test_trail_lists_only_applied_changes(
        self, session, defect_service, make_inspection, product, inspector,
        background_tasks, run_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product, location="hinge"),
            background_tasks)
        update_tasks = BackgroundTasks()

        defect_service.update_defect(
            inspector, created.id,
            DefectUpdate(description="Wider than logged", location=None),
            update_tasks)
        run_tasks(update_tasks)

        entry = session.exec(select(Activity)).one()
        assert entry.action == ActivityAction.DEFECT_UPDATED
        assert list(entry.details["changes"]) == ["description"]
        assert entry.details["changes"]["description"]["new"] == "Wider than logged"


class TestResolveDefect:

    def test_resolve_sets_notes_and_resolver(
        self, defect_service, make_inspection, product, inspector, manager, background_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)

        result = defect_service.resolve_defect(
            manager, created.id, "Reworked and re-checked", background_tasks)

        assert result.status == DefectStatus.RESOLVED
        assert result.resolver.id == manager.id
        assert result.resolution_notes == "Reworked and re-checked"

    def test_resolve_is_idempotent_on_timestamp_and_resolver(
        self, defect_service, make_inspection, product, inspector, manager, background_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)

        first = defect_service.resolve_defect(
            inspector, created.id, None, background_tasks)
        second = defect_service.resolve_defect(
            manager, created.id, "Second look", background_tasks)

        assert second.resolved_at == first.resolved_at
        assert second.resolved_by_id == inspector.id
        assert second.resolution_notes == "Second look"

    def test_resolve_unknown_defect_is_not_found(self, defect_service, inspector, background_tasks):
        with pytest.raises(HTTPException) as exc:
            defect_service.resolve_defect(
                inspector, uuid.uuid4(), None, background_tasks)

        assert exc.value.status_code == 404

    def test_new_notes_on_resolved_defect_are_recorded(
        self, session, defect_service, make_inspection, product, inspector, manager,
        background_tasks, run_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)
        defect_service.resolve_defect(inspector, created.id, "Polished", background_tasks)
        notes_tasks = BackgroundTasks()

        defect_service.resolve_defect(manager, created.id, "Polished and re-coated", notes_tasks)
        run_tasks(notes_tasks)

        entry = session.exec(select(Activity)).one()
        assert entry.action == ActivityAction.DEFECT_UPDATED
        assert entry.user_id == manager.id
        assert entry.details["changes"]["resolution_notes"] == {
            "old": "Polished", "new": "Polished and re-coated"}

    def test_repeat_resolve_without_new_notes_records_nothing(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)
        defect_service.resolve_defect(inspector, created.id, "Polished", background_tasks)
        repeat_tasks = BackgroundTasks()

        defect_service.resolve_defect(inspector, created.id, None, repeat_tasks)
        defect_service.resolve_defect(inspector, created.id, "Polished", repeat_tasks)

        assert repeat_tasks.tasks == []


class TestDeleteDefect:

    def test_other_inspector_is_forbidden(
        self, session, defect_service, make_inspection, product,
        inspector, other_inspector, background_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)

        with pytest.raises(HTTPException) as exc:
            defect_service.delete_defect(
                other_inspector, created.id, background_tasks)

        assert exc.value.status_code == 403
        assert session.get(Defect, created.id) is not None
        session.refresh(inspection)
        assert inspection.defects_found == 1

    @pytest.mark.parametrize("actor_fixture", ["inspector", "manager", "admin"])
    def test_reporter_or_privileged_user_can_delete(
        self, request, session, defect_service, make_inspection, product,
        inspector, background_tasks, actor_fixture
    ):
        actor = request.getfixturevalue(actor_fixture)
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)

        defect_service.delete_defect(actor, created.id, background_tasks)

        assert session.get(Defect, created.id) is None
        session.refresh(inspection)
        assert inspection.defects_found == 0

    def test_delete_removes_stored_image(
        self, defect_service, make_inspection, product, inspector,
        background_tasks, image_store
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)
        with_image = defect_service.attach_image(
            inspector, created.id, upload(), background_tasks)

        defect_service.delete_defect(inspector, created.id, background_tasks)

        assert with_image.image_url is not None
        assert len(image_store.deleted) == 1

    def test_image_delete_failure_does_not_block(
        self, session, defect_service, make_inspection, product, inspector,
        background_tasks, image_store
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)
        defect_service.attach_image(
            inspector, created.id, upload(), background_tasks)
        image_store.fail_deletes = True

        result = defect_service.delete_defect(
            inspector, created.id, background_tasks)

        assert result == {"message": "Defect deleted successfully."}
        assert session.get(Defect, created.id) is None


class TestBulkCreateDefects:

    def test_non_object_item_is_reported_by_index(
        self, session, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()
        item = {"inspection_id": str(inspection.id), "product_id": str(product.id),
                "type": "scratch", "severity": "minor"}

        result = defect_service.bulk_create_defects(
            inspector, BulkDefectCreate(defects=[item, "oops", None, item]), background_tasks)

        assert result.created_count == 2
        assert [e.index for e in result.errors] == [1, 2]
        assert result.errors[0].error.startswith("Invalid defect at index 1")
        session.refresh(inspection)
        assert inspection.defects_found == 2

    def test_missing_inspection_is_reported_by_index(
        self, session, defect_service, make_inspection, product, inspector,
        background_tasks, alert_sink, run_tasks
    ):
        inspection = make_inspection()
        items = [
            {"inspection_id": str(inspection.id), "product_id": str(product.id),
             "type": "scratch", "severity": "minor"},
            {"inspection_id": str(uuid.uuid4()), "product_id": str(product.id),
             "type": "dent", "severity": "major"},
            {"inspection_id": str(inspection.id), "product_id": str(product.id),
             "type": "crack", "severity": "critical"},
        ]

        result = defect_service.bulk_create_defects(
            inspector, BulkDefectCreate(defects=items), background_tasks)
        run_tasks(background_tasks)

        assert result.created_count == 2
        assert result.error_count == 1
        assert [e.index for e in result.errors] == [1]
        assert "index 1" in result.errors[0].error
        assert len(result.data) == 2
        session.refresh(inspection)
        assert inspection.defects_found == 2
        assert len(alert_sink.critical) == 1

    def test_invalid_item_does_not_discard_valid_ones(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()
        items = [
            {"inspection_id": str(inspection.id), "product_id": str(product.id),
             "type": "scratch", "severity": "catastrophic"},
            {"inspection_id": str(inspection.id), "product_id": str(product.id),
             "type": "scratch", "severity": "minor"},
        ]

        result = defect_service.bulk_create_defects(
            inspector, BulkDefectCreate(defects=items), background_tasks)

        assert result.created_count == 1
        assert result.errors[0].index == 0

    def test_every_item_is_reported_by_the_reporter(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()
        items = [
            {"inspection_id": str(inspection.id), "product_id": str(product.id),
             "type": t, "severity": "minor"}
            for t in ("scratch", "dent", "burr")
        ]

        result = defect_service.bulk_create_defects(
            inspector, BulkDefectCreate(defects=items), background_tasks)

        assert result.error_count == 0
        assert {d.reported_by_id for d in result.data} == {inspector.id}


class TestListDefects:

    def test_filters_and_paginates(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()
        for severity in ("minor", "minor", "major", "critical"):
            defect_service.create_defect(
                inspector, defect_payload(inspection, product, severity=severity),
                background_tasks)

        minors = defect_service.list_defects(severity=DefectSeverity.MINOR)
        page_one = defect_service.list_defects(page=1, limit=3)
        page_two = defect_service.list_defects(page=2, limit=3)

        assert minors.total == 2
        assert page_one.count == 3
        assert page_one.pagination.next.page == 2
        assert page_one.pagination.prev is None
        assert page_two.count == 1
        assert page_two.pagination.prev.page == 1

    def test_unknown_sort_field_is_rejected(self, defect_service):
        with pytest.raises(HTTPException) as exc:
            defect_service.list_defects(sort="-password")

        assert exc.value.status_code == 400

    def test_end_before_start_is_rejected(self, defect_service):
        with pytest.raises(HTTPException) as exc:
            defect_service.list_defects(
                start_date="2024-05-10", end_date="2024-05-01")

        assert exc.value.status_code == 400


class TestAttachImage:

    def test_store_failure_leaves_defect_unchanged(
        self, defect_service, make_inspection, product, inspector, background_tasks
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)

        result = defect_service.attach_image(
            inspector, created.id, upload("broken.png"), background_tasks)

        assert result.image_url is None

    def test_replacing_image_deletes_previous(
        self, defect_service, make_inspection, product, inspector,
        background_tasks, image_store
    ):
        inspection = make_inspection()
        created = defect_service.create_defect(
            inspector, defect_payload(inspection, product), background_tasks)

        first = defect_service.attach_image(
            inspector, created.id, upload("one.png"), background_tasks)
        second = defect_service.attach_image(
            inspector, created.id, upload("two.png"), background_tasks)

        assert first.image_url != second.image_url
        assert image_store.deleted == [first.image_url.split("https://cdn.test/")[1]]
