"""Unit tests for ArtworkEditor — the session facade over store, images and save."""

from __future__ import annotations

import pytest

from easel.bridge.persistence import PersistenceError, RecordNotFoundError
from easel.config import config
from easel.core.image_collection import PrimaryImageProtectedError
from easel.core.membership import SystemCollectionNotEditableError
from easel.core.save_orchestrator import CancellationToken
from easel.editor.session import (
    ArtworkEditor,
    EditorServices,
    RecordNotPersistedError,
    touched_keys,
)
from easel.models.notifications import NotificationLevel
from easel.models.record import ArtworkStatus, EditionInfo, PricingMode
from easel.models.results import SaveErrorKind


def _fill(editor: ArtworkEditor, title: str = "Blue Hour") -> ArtworkEditor:
    editor.set_path("title", title)
    editor.set_path("medium", "Oil on canvas")
    editor.set_path("dimensions", {"width": 40, "height": 50})
    editor.upload_image("front.jpg", b"front")
    return editor


@pytest.fixture
def editor(services, owner_id) -> ArtworkEditor:
    return ArtworkEditor.new(owner_id, services)


@pytest.fixture
def saved_editor(editor, services) -> ArtworkEditor:
    """An editor on a stored record with two images."""
    _fill(editor)
    editor.upload_image("back.jpg", b"back")
    assert editor.save().ok
    return ArtworkEditor.load(editor.record.id, services)


# ---------------------------------------------------------------------------
# Test: new records and touched tracking
# ---------------------------------------------------------------------------


class TestNewRecord:
    def test_defaults(self, editor, owner_id):
        record = editor.record
        assert record.owner_id == owner_id
        assert record.status == ArtworkStatus.PENDING
        assert record.pricing_mode == PricingMode.ON_REQUEST
        assert record.currency == config.default_currency
        assert record.provenance == config.default_provenance
        assert record.id is None

    def test_errors_hidden_until_touched(self, editor):
        assert not editor.is_valid
        assert editor.visible_errors == {}
        editor.set_path("title", "")
        assert set(editor.visible_errors) == {"title"}

    def test_pricing_mode_edit_reveals_price(self, editor):
        editor.set_pricing_mode(PricingMode.FIXED)
        assert "price" in editor.visible_errors

    def test_touched_keys_aliases(self):
        assert touched_keys("dimensions.width") == {"dimensions.width", "dimensions"}
        assert "certificate_details" in touched_keys("has_certificate_of_authenticity")

    def test_filled_record_is_valid(self, editor):
        assert _fill(editor).is_valid

    def test_failed_validation_touches_everything(self, editor, persistence):
        result = editor.save()
        assert result.error.kind == SaveErrorKind.VALIDATION_FAILED
        assert {"title", "medium", "images", "dimensions"} <= set(editor.visible_errors)
        assert persistence.calls == []


class TestSaveNewRecord:
    def test_staged_images_attached_on_insert(self, editor, persistence, trigger):
        _fill(editor)
        staged = editor.images[0]
        assert staged.id.startswith("staged-")
        assert editor.record.primary_image_url == staged.url

        result = editor.save()

        assert result.ok
        record_id = editor.record.id
        stored_images = persistence.list_images(record_id)
        assert [i.url for i in stored_images] == [staged.url]
        assert editor.images[0].id == stored_images[0].id
        assert editor.images[0].record_id == record_id
        assert persistence.read_record(record_id).primary_image_url == staged.url
        assert trigger.requests[-1]["record_id"] == record_id

    def test_adopts_saved_record(self, editor):
        _fill(editor, "Blue Hour")
        editor.save()
        assert editor.record.slug == "blue-hour"
        assert editor.original_title == "Blue Hour"

    def test_tags_become_keywords(self, editor, persistence, owner_id):
        _fill(editor)
        editor.select_tag("coast")
        editor.select_tag("night")
        editor.deselect_tag("coast")
        result = editor.save()
        assert result.record.keywords == ("night",)
        assert {t.name for t in persistence.list_tags(owner_id)} == {"coast", "night"}

    def test_blank_tag_rejected(self, editor):
        with pytest.raises(ValueError):
            editor.select_tag("  ")

    def test_cancelled_save_is_not_adopted(self, editor, persistence):
        _fill(editor)
        token = CancellationToken()
        token.cancel()
        created = []
        result = editor.save(token, on_created=created.append)
        assert result.ok
        assert persistence.read_record(result.record.id) is not None
        assert editor.record.id is None
        assert created == []

    def test_membership_failure_adopts_partial_id(self, editor, persistence, memory_sink):
        _fill(editor)
        persistence.failing.add("replace_memberships")
        result = editor.save()
        assert result.partial_record_id is not None
        assert editor.record.id == result.partial_record_id
        assert memory_sink.codes()[-1] == SaveErrorKind.PERSISTENCE_WRITE_FAILED.value

        persistence.failing.clear()
        retry = editor.save()
        assert retry.ok
        assert not retry.created
        assert retry.record.id == result.partial_record_id

    def test_trigger_failure_becomes_warning(
        self, persistence, storage, failing_trigger, notifier, memory_sink, owner_id
    ):
        services = EditorServices(
            persistence,
            storage=storage,
            job_trigger=failing_trigger,
            notifier=notifier,
        )
        editor = _fill(ArtworkEditor.new(owner_id, services))
        assert editor.save().ok
        warnings = memory_sink.by_level(NotificationLevel.WARNING)
        assert [n.code for n in warnings] == ["async_trigger_failed"]


# ---------------------------------------------------------------------------
# Test: stored records
# ---------------------------------------------------------------------------


class TestLoad:
    def test_load_missing_raises(self, services):
        with pytest.raises(RecordNotFoundError):
            ArtworkEditor.load("ghost", services)

    def test_load_restores_images_and_title(self, saved_editor):
        assert len(saved_editor.images) == 2
        assert saved_editor.images[0].is_primary
        assert saved_editor.original_title == "Blue Hour"
        assert saved_editor.is_valid


class TestStoredImages:
    def test_set_primary_writes_through(self, saved_editor, persistence, trigger):
        second = saved_editor.images[1]
        trigger.requests.clear()

        saved_editor.set_primary_image(second.id)

        record_id = saved_editor.record.id
        assert persistence.list_images(record_id)[0].id == second.id
        assert persistence.read_record(record_id).primary_image_url == second.url
        assert saved_editor.record.primary_image_url == second.url
        assert trigger.requests == [
            {"record_id": record_id, "force_watermark": False, "force_visualization": False}
        ]

    def test_primary_delete_guard(self, saved_editor, persistence):
        primary = saved_editor.images[0]
        with pytest.raises(PrimaryImageProtectedError):
            saved_editor.delete_image(primary.id)
        assert len(persistence.list_images(saved_editor.record.id)) == 2

    def test_deleting_last_image_empties_collection(self, saved_editor, persistence, memory_sink):
        record_id = saved_editor.record.id
        saved_editor.delete_image(saved_editor.images[1].id)
        saved_editor.delete_image(saved_editor.images[0].id)

        assert saved_editor.images == ()
        assert persistence.list_images(record_id) == []
        assert persistence.read_record(record_id).primary_image_url is None
        assert saved_editor.record.primary_image_url is None
        assert "collection_emptied" in memory_sink.codes()
        assert "images" in saved_editor.visible_errors

    def test_replace_keeps_slot(self, saved_editor, persistence):
        target = saved_editor.images[1]
        persistence.calls.clear()
        saved_editor.replace_image(target.id, "new.jpg", b"new")
        assert saved_editor.images[1].id == target.id
        assert saved_editor.images[1].url != target.url
        assert persistence.list_images(saved_editor.record.id)[1].url == saved_editor.images[1].url
        assert "set_image_order" not in persistence.calls

    def test_upload_to_stored_record(self, saved_editor, persistence):
        image = saved_editor.upload_image("detail.jpg", b"detail")
        assert image.position == 2
        assert not image.id.startswith("staged-")
        assert len(persistence.list_images(saved_editor.record.id)) == 3

    def test_deleting_middle_image_renumbers_store(self, saved_editor, persistence):
        saved_editor.upload_image("detail.jpg", b"detail")
        saved_editor.delete_image(saved_editor.images[1].id)
        stored = persistence.list_images(saved_editor.record.id)
        assert [(i.id, i.position) for i in stored] == [
            (i.id, i.position) for i in saved_editor.images
        ]


class TestStoredImageWriteFailures:
    """A failed write leaves the editor matching the store, with no side effects."""

    def _assert_matches_store(self, editor, persistence):
        record_id = editor.record.id
        stored = persistence.list_images(record_id)
        assert [i.id for i in editor.images] == [i.id for i in stored]
        stored_record = persistence.read_record(record_id)
        assert stored_record.primary_image_url == stored[0].url
        assert editor.record.primary_image_url == stored_record.primary_image_url

    def test_set_primary_order_failure(self, saved_editor, persistence, trigger):
        before = [i.id for i in saved_editor.images]
        trigger.requests.clear()
        persistence.failing.add("set_image_order")

        with pytest.raises(PersistenceError):
            saved_editor.set_primary_image(saved_editor.images[1].id)

        assert [i.id for i in saved_editor.images] == before
        self._assert_matches_store(saved_editor, persistence)
        assert trigger.requests == []

    def test_reorder_failure(self, saved_editor, persistence, trigger):
        trigger.requests.clear()
        persistence.failing.add("set_image_order")

        with pytest.raises(PersistenceError):
            saved_editor.reorder_images(1, 0)

        self._assert_matches_store(saved_editor, persistence)
        assert trigger.requests == []

    def test_delete_failure(self, saved_editor, persistence):
        persistence.failing.add("delete_image")

        with pytest.raises(PersistenceError):
            saved_editor.delete_image(saved_editor.images[1].id)

        assert len(saved_editor.images) == 2
        self._assert_matches_store(saved_editor, persistence)

    def test_delete_last_image_failure(self, saved_editor, persistence, memory_sink):
        saved_editor.delete_image(saved_editor.images[1].id)
        persistence.failing.add("delete_image")

        with pytest.raises(PersistenceError):
            saved_editor.delete_image(saved_editor.images[0].id)

        assert len(saved_editor.images) == 1
        self._assert_matches_store(saved_editor, persistence)
        assert "collection_emptied" not in memory_sink.codes()

    def test_replace_primary_failure(self, saved_editor, persistence, trigger):
        primary = saved_editor.images[0]
        trigger.requests.clear()
        persistence.failing.add("update_image_url")

        with pytest.raises(PersistenceError):
            saved_editor.replace_image(primary.id, "new.jpg", b"new")

        assert saved_editor.images[0].url == primary.url
        self._assert_matches_store(saved_editor, persistence)
        assert trigger.requests == []

    def test_editing_continues_after_failure(self, saved_editor, persistence, trigger):
        second = saved_editor.images[1]
        persistence.failing.add("set_image_order")
        with pytest.raises(PersistenceError):
            saved_editor.set_primary_image(second.id)

        persistence.failing.clear()
        trigger.requests.clear()
        saved_editor.set_primary_image(second.id)

        self._assert_matches_store(saved_editor, persistence)
        assert saved_editor.images[0].id == second.id
        assert len(trigger.requests) == 1

    def test_add_image_from_other_record_rejected(self, saved_editor, make_image):
        with pytest.raises(ValueError):
            saved_editor.add_image(make_image(record_id="someone-else"))


class TestEditions:
    def _edition_editor(self, saved_editor) -> ArtworkEditor:
        saved_editor.set_path("edition.is_edition", True)
        saved_editor.set_path("edition.numeric_size", 3)
        saved_editor.set_path("edition.ap_size", 1)
        assert saved_editor.save().ok
        return saved_editor

    def test_units(self, saved_editor):
        editor = self._edition_editor(saved_editor)
        assert editor.edition_units() == ["1/3", "2/3", "3/3", "AP 1/1"]

    def test_toggle_sold_persists(self, saved_editor, persistence):
        editor = self._edition_editor(saved_editor)
        assert editor.toggle_edition_sold("2/3", True)
        assert editor.available_units() == ["1/3", "3/3", "AP 1/1"]
        assert persistence.read_record(editor.record.id).edition.sold_editions == {"2/3"}

    def test_toggle_failure_rolls_back(self, saved_editor, persistence, memory_sink):
        editor = self._edition_editor(saved_editor)
        before = editor.record.edition
        persistence.failing.add("update_edition_sale")
        assert not editor.toggle_edition_sold("2/3", True)
        assert editor.record.edition == before
        assert memory_sink.codes()[-1] == "edition_sale_failed"

    def test_toggle_on_new_record_raises(self, editor):
        editor.set_path("edition.is_edition", True)
        with pytest.raises(RecordNotPersistedError):
            editor.toggle_edition_sold("1/1", True)

    def test_clear_stale_sold(self, editor):
        editor.set_path(
            "edition",
            {"is_edition": True, "numeric_size": 2, "ap_size": 0, "sold_editions": ["1/2", "5/10"]},
        )
        assert editor.clear_stale_sold() == {"5/10"}
        assert editor.record.edition.sold_editions == {"1/2"}
        assert editor.record.edition != EditionInfo()


# ---------------------------------------------------------------------------
# Test: collections
# ---------------------------------------------------------------------------


class TestCollections:
    def test_system_collection_hidden_and_locked(
        self, services, owner_id, system_collection, user_collection
    ):
        editor = ArtworkEditor.new(owner_id, services)
        assert [c.id for c in editor.selectable_collections] == [user_collection.id]
        with pytest.raises(SystemCollectionNotEditableError):
            editor.select_collection(system_collection.id)
        with pytest.raises(LookupError):
            editor.select_collection("unknown")

    def test_status_drives_system_membership(
        self, services, persistence, owner_id, system_collection, user_collection
    ):
        editor = _fill(ArtworkEditor.new(owner_id, services))
        editor.select_collection(user_collection.id)
        editor.set_status(ArtworkStatus.AVAILABLE)
        editor.save()
        record_id = editor.record.id
        assert persistence.list_memberships(record_id) == {
            system_collection.id,
            user_collection.id,
        }
        assert editor.selected_collection_ids == {system_collection.id, user_collection.id}

        editor.set_status(ArtworkStatus.SOLD)
        editor.save()
        assert persistence.list_memberships(record_id) == {user_collection.id}
