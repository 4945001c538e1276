import random
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.core.errors import AuthorizationError, NotFoundError, TransientStoreError, ValidationError
from app.models.slideshow import Slideshow, SlideshowPhoto
from app.models.tag import PhotoTag, Tag
from app.services import slideshows as slideshow_service

from conftest import create_photo, member_positions


def by_number(photos, positions):
    """Translate {photo_uuid: position} back to {photo_number: position}."""
    numbers = {photo_id: number for number, photo_id in photos.items()}
    return {numbers[photo_id]: position for photo_id, position in positions.items()}


def assert_dense(positions):
    assert sorted(positions.values()) == list(range(len(positions)))


async def create(db, owner_id, photos, numbers, **kwargs):
    return await slideshow_service.create_slideshow(
        db, owner_id, kwargs.pop("title", "Council picnic"), [photos[n] for n in numbers], **kwargs
    )


class TestScenarios:
    async def test_create_assigns_positions_in_input_order(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [7, 3, 9])

        assert by_number(photos, await member_positions(db, slideshow_id)) == {7: 0, 3: 1, 9: 2}

    async def test_append_skips_existing_members(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [7, 3, 9])

        inserted = await slideshow_service.append_photos(db, slideshow_id, owner_id, [photos[3], photos[5]])

        assert inserted == 1
        assert by_number(photos, await member_positions(db, slideshow_id)) == {7: 0, 3: 1, 9: 2, 5: 3}

    async def test_remove_shifts_later_photos_down(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [7, 3, 9, 5])

        await slideshow_service.remove_photo(db, slideshow_id, owner_id, photos[3])

        assert by_number(photos, await member_positions(db, slideshow_id)) == {7: 0, 9: 1, 5: 2}

    async def test_reorder_sets_positions_to_list_index(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [7, 9, 5])

        await slideshow_service.reorder_photos(db, slideshow_id, owner_id, [photos[5], photos[7], photos[9]])

        assert by_number(photos, await member_positions(db, slideshow_id)) == {5: 0, 7: 1, 9: 2}

    async def test_non_owner_cannot_remove(self, db, owner_id, other_id, photos):
        slideshow_id = await create(db, owner_id, photos, [5, 7, 9])

        with pytest.raises(AuthorizationError):
            await slideshow_service.remove_photo(db, slideshow_id, other_id, photos[9])

        assert by_number(photos, await member_positions(db, slideshow_id)) == {5: 0, 7: 1, 9: 2}

    async def test_create_with_no_photos_persists_nothing(self, db, owner_id):
        with pytest.raises(ValidationError):
            await slideshow_service.create_slideshow(db, owner_id, "Empty", [])

        count = await db.execute(select(func.count()).select_from(Slideshow))
        assert count.scalar_one() == 0


class TestCreate:
    async def test_blank_title_is_rejected(self, db, owner_id, photos):
        with pytest.raises(ValidationError, match="Title is required"):
            await create(db, owner_id, photos, [1], title="   ")

    async def test_duplicate_photo_ids_are_rejected(self, db, owner_id, photos):
        with pytest.raises(ValidationError, match="Duplicate"):
            await create(db, owner_id, photos, [1, 2, 1])

        count = await db.execute(select(func.count()).select_from(SlideshowPhoto))
        assert count.scalar_one() == 0

    async def test_unknown_photo_is_not_found(self, db, owner_id, photos):
        missing = uuid.uuid4()

        with pytest.raises(NotFoundError, match=str(missing)):
            await slideshow_service.create_slideshow(db, owner_id, "Trip", [photos[1], missing])

        count = await db.execute(select(func.count()).select_from(Slideshow))
        assert count.scalar_one() == 0

    async def test_any_members_photos_can_be_used(self, db, owner_id, other_id, photos):
        others_photo = await create_photo(db, other_id, "theirs.jpg")

        slideshow_id = await slideshow_service.create_slideshow(db, owner_id, "Mixed", [photos[1], others_photo])

        assert await member_positions(db, slideshow_id) == {photos[1]: 0, others_photo: 1}

    async def test_metadata_is_stored(self, db, owner_id, photos):
        slideshow_id = await create(
            db, owner_id, photos, [1], title="  Fish fry  ", description="Lent 2026", is_public=True
        )

        slideshow = (await db.execute(select(Slideshow).where(Slideshow.id == slideshow_id))).scalar_one()
        assert slideshow.title == "Fish fry"
        assert slideshow.description == "Lent 2026"
        assert slideshow.is_public is True
        assert slideshow.user_id == owner_id


class TestAppend:
    async def test_repeated_ids_in_one_request_are_added_once(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1])

        inserted = await slideshow_service.append_photos(db, slideshow_id, owner_id, [photos[2], photos[2], photos[3]])

        assert inserted == 2
        assert by_number(photos, await member_positions(db, slideshow_id)) == {1: 0, 2: 1, 3: 2}

    async def test_appending_only_existing_members_changes_nothing(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1, 2])

        inserted = await slideshow_service.append_photos(db, slideshow_id, owner_id, [photos[2], photos[1]])

        assert inserted == 0
        assert by_number(photos, await member_positions(db, slideshow_id)) == {1: 0, 2: 1}

    async def test_empty_list_is_rejected(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1])

        with pytest.raises(ValidationError):
            await slideshow_service.append_photos(db, slideshow_id, owner_id, [])

    async def test_unknown_photo_inserts_nothing(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1])

        with pytest.raises(NotFoundError):
            await slideshow_service.append_photos(db, slideshow_id, owner_id, [photos[2], uuid.uuid4()])

        assert by_number(photos, await member_positions(db, slideshow_id)) == {1: 0}

    async def test_missing_slideshow(self, db, owner_id, photos):
        with pytest.raises(NotFoundError):
            await slideshow_service.append_photos(db, uuid.uuid4(), owner_id, [photos[1]])

    async def test_ownership_is_checked_before_input(self, db, owner_id, other_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1], is_public=True)

        with pytest.raises(AuthorizationError):
            await slideshow_service.append_photos(db, slideshow_id, other_id, [])

    async def test_append_after_emptying_starts_at_zero(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1])
        await slideshow_service.remove_photo(db, slideshow_id, owner_id, photos[1])

        await slideshow_service.append_photos(db, slideshow_id, owner_id, [photos[4], photos[1]])

        assert by_number(photos, await member_positions(db, slideshow_id)) == {4: 0, 1: 1}


class TestRemove:
    async def test_removing_first_and_last(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1, 2, 3, 4])

        await slideshow_service.remove_photo(db, slideshow_id, owner_id, photos[1])
        await slideshow_service.remove_photo(db, slideshow_id, owner_id, photos[4])

        assert by_number(photos, await member_positions(db, slideshow_id)) == {2: 0, 3: 1}

    async def test_photo_not_in_slideshow(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1, 2])

        with pytest.raises(NotFoundError, match="not found in slideshow"):
            await slideshow_service.remove_photo(db, slideshow_id, owner_id, photos[3])

    async def test_other_slideshows_are_untouched(self, db, owner_id, photos):
        first = await create(db, owner_id, photos, [1, 2, 3])
        second = await create(db, owner_id, photos, [2, 3, 1])

        await slideshow_service.remove_photo(db, first, owner_id, photos[1])

        assert by_number(photos, await member_positions(db, second)) == {2: 0, 3: 1, 1: 2}


class TestReorder:
    @pytest.mark.parametrize(
        "order",
        [
            pytest.param([1, 2], id="partial"),
            pytest.param([1, 2, 3, 4], id="superset"),
            pytest.param([1, 2, 2], id="duplicate"),
            pytest.param([1, 2, 4], id="foreign photo"),
            pytest.param([], id="empty"),
        ],
    )
    async def test_mismatched_lists_are_rejected(self, db, owner_id, photos, order):
        slideshow_id = await create(db, owner_id, photos, [1, 2, 3])

        with pytest.raises(ValidationError):
            await slideshow_service.reorder_photos(db, slideshow_id, owner_id, [photos[n] for n in order])

        assert by_number(photos, await member_positions(db, slideshow_id)) == {1: 0, 2: 1, 3: 2}

    async def test_non_owner_of_public_slideshow(self, db, owner_id, other_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1, 2], is_public=True)

        with pytest.raises(AuthorizationError):
            await slideshow_service.reorder_photos(db, slideshow_id, other_id, [photos[2], photos[1]])

    async def test_reorder_bumps_updated_at(self, db, owner_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1, 2])
        before = (await db.execute(select(Slideshow.updated_at).where(Slideshow.id == slideshow_id))).scalar_one()

        await slideshow_service.reorder_photos(db, slideshow_id, owner_id, [photos[2], photos[1]])

        after = (await db.execute(select(Slideshow.updated_at).where(Slideshow.id == slideshow_id))).scalar_one()
        assert after >= before


class TestAtomicity:
    async def test_failure_midway_through_reorder_leaves_order_unchanged(self, db, owner_id, photos, monkeypatch):
        slideshow_id = await create(db, owner_id, photos, [0, 1, 2, 3, 4])
        original_set_position = slideshow_service._set_position
        calls = []

        async def failing_set_position(session, *args):
            if len(calls) == 2:
                raise OperationalError("UPDATE slideshow_photos", {}, Exception("deadlock detected"))
            calls.append(args)
            await original_set_position(session, *args)

        monkeypatch.setattr(slideshow_service, "_set_position", failing_set_position)

        with pytest.raises(TransientStoreError) as exc_info:
            await slideshow_service.reorder_photos(db, slideshow_id, owner_id, [photos[n] for n in [4, 3, 2, 1, 0]])

        assert exc_info.value.retryable
        assert len(calls) == 2
        assert by_number(photos, await member_positions(db, slideshow_id)) == {0: 0, 1: 1, 2: 2, 3: 3, 4: 4}

    async def test_failure_after_renumbering_restores_removed_photo(self, db, owner_id, photos, monkeypatch):
        slideshow_id = await create(db, owner_id, photos, [0, 1, 2, 3])
        original = slideshow_service._remove_and_close_gap

        async def remove_then_fail(session, *args):
            await original(session, *args)
            raise OperationalError("UPDATE slideshows", {}, Exception("connection lost"))

        monkeypatch.setattr(slideshow_service, "_remove_and_close_gap", remove_then_fail)

        with pytest.raises(TransientStoreError):
            await slideshow_service.remove_photo(db, slideshow_id, owner_id, photos[1])

        assert by_number(photos, await member_positions(db, slideshow_id)) == {0: 0, 1: 1, 2: 2, 3: 3}


async def test_density_holds_across_random_operations(db, owner_id, photos):
    rng = random.Random(20261018)
    slideshow_id = await create(db, owner_id, photos, [0, 1, 2])

    for _ in range(60):
        current = await member_positions(db, slideshow_id)
        action = rng.choice(["append", "remove", "reorder"])
        if action == "append":
            picks = rng.sample(sorted(photos), k=rng.randint(1, 4))
            await slideshow_service.append_photos(db, slideshow_id, owner_id, [photos[n] for n in picks])
        elif action == "remove" and current:
            await slideshow_service.remove_photo(db, slideshow_id, owner_id, rng.choice(sorted(current)))
        elif action == "reorder" and current:
            order = sorted(current)
            rng.shuffle(order)
            await slideshow_service.reorder_photos(db, slideshow_id, owner_id, order)
            assert await member_positions(db, slideshow_id) == {photo_id: i for i, photo_id in enumerate(order)}

        assert_dense(await member_positions(db, slideshow_id))


class TestReadAndMetadata:
    async def test_private_slideshow_is_hidden_from_others(self, db, owner_id, other_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1])

        with pytest.raises(AuthorizationError):
            await slideshow_service.get_slideshow(db, slideshow_id, other_id)

    async def test_public_slideshow_lists_photos_in_order_with_tags(self, db, owner_id, other_id, photos):
        slideshow_id = await create(db, owner_id, photos, [3, 1, 2], is_public=True)
        tag = Tag(name="picnic")
        db.add(tag)
        await db.flush()
        db.add(PhotoTag(photo_id=photos[1], tag_id=tag.id))
        await db.commit()

        detail = await slideshow_service.get_slideshow(db, slideshow_id, other_id)

        assert detail.creator_name == "Owner"
        assert [member.photo.id for member in detail.photos] == [photos[3], photos[1], photos[2]]
        assert [member.position for member in detail.photos] == [0, 1, 2]
        assert detail.photos[1].tags == ["picnic"]

    async def test_get_missing_slideshow(self, db, owner_id):
        with pytest.raises(NotFoundError):
            await slideshow_service.get_slideshow(db, uuid.uuid4(), owner_id)

    async def test_list_includes_public_slideshows_on_request(self, db, owner_id, other_id, photos):
        mine = await create(db, other_id, photos, [1], title="Mine")
        public = await create(db, owner_id, photos, [2, 3], title="Public", is_public=True)
        await create(db, owner_id, photos, [4], title="Private")

        own_only = await slideshow_service.list_slideshows(db, other_id)
        with_public = await slideshow_service.list_slideshows(db, other_id, include_public=True)

        assert [summary.slideshow.id for summary in own_only] == [mine]
        summaries = {summary.slideshow.id: summary for summary in with_public}
        assert set(summaries) == {mine, public}
        assert summaries[public].photo_count == 2
        assert summaries[public].first_photo.id == photos[2]
        assert summaries[public].is_owner is False
        assert summaries[mine].is_owner is True

    async def test_update_requires_title_and_owner(self, db, owner_id, other_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1])

        with pytest.raises(ValidationError):
            await slideshow_service.update_slideshow(db, slideshow_id, owner_id, "", None, True)
        with pytest.raises(AuthorizationError):
            await slideshow_service.update_slideshow(db, slideshow_id, other_id, "Hijacked", None, True)

        await slideshow_service.update_slideshow(db, slideshow_id, owner_id, "Renamed", "notes", True)
        slideshow = (
            await db.execute(
                select(Slideshow).where(Slideshow.id == slideshow_id).execution_options(populate_existing=True)
            )
        ).scalar_one()
        assert (slideshow.title, slideshow.description, slideshow.is_public) == ("Renamed", "notes", True)

    async def test_delete_removes_memberships(self, db, owner_id, other_id, photos):
        slideshow_id = await create(db, owner_id, photos, [1, 2], is_public=True)

        with pytest.raises(AuthorizationError):
            await slideshow_service.delete_slideshow(db, slideshow_id, other_id)
        await slideshow_service.delete_slideshow(db, slideshow_id, owner_id)

        assert await member_positions(db, slideshow_id) == {}
        with pytest.raises(NotFoundError):
            await slideshow_service.delete_slideshow(db, slideshow_id, owner_id)


async def test_detach_photo_closes_gaps_everywhere(db, owner_id, photos):
    first = await create(db, owner_id, photos, [1, 2, 3])
    second = await create(db, owner_id, photos, [3, 1])
    untouched = await create(db, owner_id, photos, [4, 5])

    affected = await slideshow_service.detach_photo(db, photos[1])
    await db.commit()

    assert set(affected) == {first, second}
    assert by_number(photos, await member_positions(db, first)) == {2: 0, 3: 1}
    assert by_number(photos, await member_positions(db, second)) == {3: 0}
    assert by_number(photos, await member_positions(db, untouched)) == {4: 0, 5: 1}
