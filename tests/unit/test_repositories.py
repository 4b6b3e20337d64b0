# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for repository queries."""

import hashlib
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select

from tripfluence.models.audit_log import AuditLog
from tripfluence.models.business import ApiKey
from tripfluence.models.event_sync import (
    SYNC_PAUSED,
    SYNC_PENDING,
    SYNC_SUCCESS,
    EventSync,
)
from tripfluence.models.order import (
    ORDER_CANCELLED,
    ORDER_PAID,
    ORDER_PARTIALLY_REFUNDED,
    ORDER_PENDING,
    Order,
)
from tripfluence.models.review import REVIEW_APPROVED, REVIEW_PENDING, Review
from tripfluence.models.space import SPACE_DRAFT, SpaceAvailability
from tripfluence.models.space_request import SpaceMessage, SpaceRequest
from tripfluence.repositories.audit_repository import AuditRepository
from tripfluence.repositories.business_repository import BusinessRepository
from tripfluence.repositories.event_sync_repository import EventSyncRepository
from tripfluence.repositories.listing_repository import ListingRepository
from tripfluence.repositories.order_repository import OrderRepository
from tripfluence.repositories.review_repository import ReviewRepository
from tripfluence.repositories.space_repository import SpaceRepository

DAY = datetime(2030, 6, 3, tzinfo=UTC)


class TestSpaceRepository:
    """Tests for SpaceRepository."""

    @pytest.fixture
    async def spaces(self, make_space):
        """Published spaces in two cities plus a draft."""
        return [
            await make_space(),
            await make_space(
                title="Harbour Hall",
                slug="harbour-hall",
                description="Event hall by the water",
                city="New York",
                capacity=200,
            ),
            await make_space(slug="draft-room", status=SPACE_DRAFT, city="Paris"),
        ]

    @pytest.mark.asyncio
    async def test_list_published_filters(self, async_session, spaces) -> None:
        """Test public listing applies city, capacity and text filters."""
        repo = SpaceRepository(async_session)

        assert {s.slug for s in await repo.list_published()} == {
            "loft-studio",
            "harbour-hall",
        }
        by_city = await repo.list_published(city="new york")
        assert [s.slug for s in by_city] == ["harbour-hall"]
        big = await repo.list_published(min_capacity=50)
        assert [s.slug for s in big] == ["harbour-hall"]
        matched = await repo.list_published(q="berlin")
        assert [s.slug for s in matched] == ["loft-studio"]

    @pytest.mark.asyncio
    async def test_published_cities(self, async_session, spaces) -> None:
        """Test only cities with published spaces are returned."""
        cities = await SpaceRepository(async_session).published_cities()

        assert cities == ["Berlin", "New York"]

    @pytest.mark.asyncio
    async def test_get_by_city_slug(self, async_session, spaces) -> None:
        """Test URL-form cities match case-insensitively."""
        repo = SpaceRepository(async_session)

        found = await repo.get_published_by_city_slug("new-york", "harbour-hall")

        assert found is not None
        assert found.id == spaces[1].id
        assert await repo.get_published_by_city_slug("paris", "draft-room") is None

    @pytest.mark.asyncio
    async def test_business_scoping(
        self, async_session, space, other_business
    ) -> None:
        """Test other tenants cannot load a space by ID."""
        repo = SpaceRepository(async_session)

        assert await repo.get_by_id(space.id, space.business_id) is not None
        assert await repo.get_by_id(space.id, other_business.id) is None

    @pytest.mark.asyncio
    async def test_slug_exists(self, async_session, space) -> None:
        """Test slug checks can exclude the space being edited."""
        repo = SpaceRepository(async_session)

        assert await repo.slug_exists(space.business_id, "loft-studio")
        assert not await repo.slug_exists(
            space.business_id, "loft-studio", exclude_id=space.id
        )
        assert not await repo.slug_exists(space.business_id, "other")

    @pytest.mark.asyncio
    async def test_blocks_in_range(self, async_session, space) -> None:
        """Test only blocks overlapping the window are returned."""
        repo = SpaceRepository(async_session)
        for offset in (0, 2, 5):
            await repo.add_block(
                SpaceAvailability(
                    space_id=space.id,
                    start=DAY + timedelta(days=offset),
                    end=DAY + timedelta(days=offset, hours=4),
                    is_blocked=True,
                )
            )

        blocks = await repo.get_blocks_in_range(
            space.id, DAY + timedelta(hours=2), DAY + timedelta(days=3)
        )

        assert len(blocks) == 2
        assert len(await repo.get_blocks_in_range(space.id)) == 3

    @pytest.mark.asyncio
    async def test_delete_removes_requests(self, async_session, space) -> None:
        """Test deleting a space removes its requests and messages."""
        request = SpaceRequest(
            business_id=space.business_id,
            space_id=space.id,
            organizer_name="Ada",
            organizer_email="ada@example.com",
            title="Offsite",
            attendees=5,
            start=DAY,
            end=DAY + timedelta(hours=2),
        )
        async_session.add(request)
        await async_session.flush()
        async_session.add(
            SpaceMessage(space_request_id=request.id, author_id="ada", body="Hi")
        )
        await async_session.commit()

        await SpaceRepository(async_session).delete(space)
        await async_session.commit()

        for model in (SpaceRequest, SpaceMessage):
            count = await async_session.execute(select(func.count()).select_from(model))
            assert count.scalar_one() == 0


class TestListingRepository:
    """Tests for ListingRepository."""

    @pytest.mark.asyncio
    async def test_unique_slug(self, async_session, business, listing) -> None:
        """Test colliding slugs get a random suffix."""
        repo = ListingRepository(async_session)

        assert await repo.generate_unique_slug(business.id, "Night Run") == (
            "night-run"
        )
        slug = await repo.generate_unique_slug(business.id, "Sunset Yoga!")
        assert slug.startswith("sunset-yoga-")
        assert len(slug) == len("sunset-yoga-") + 6

    @pytest.mark.asyncio
    async def test_has_orders(self, async_session, business, listing) -> None:
        """Test order detection for delete protection."""
        repo = ListingRepository(async_session)
        assert not await repo.has_orders(listing.id)

        async_session.add(
            Order(
                business_id=business.id,
                listing_id=listing.id,
                order_number="ORD-TEST0001",
                customer_email="a@example.com",
                customer_name="A",
                unit_amount=2500,
                total_amount=2500,
            )
        )
        await async_session.commit()

        assert await repo.has_orders(listing.id)


class TestOrderRepository:
    """Tests for OrderRepository.totals."""

    @pytest.mark.asyncio
    async def test_totals(self, async_session, business, listing) -> None:
        """Test unpaid orders count as orders but not revenue."""
        rows = [
            (ORDER_PAID, 5000, 0),
            (ORDER_PARTIALLY_REFUNDED, 3000, 1000),
            (ORDER_PENDING, 9000, 0),
            (ORDER_CANCELLED, 7000, 0),
        ]
        for index, (status, total, refunded) in enumerate(rows):
            async_session.add(
                Order(
                    business_id=business.id,
                    listing_id=listing.id,
                    order_number=f"ORD-T000000{index}",
                    customer_email="a@example.com",
                    customer_name="A",
                    unit_amount=total,
                    total_amount=total,
                    refunded_amount=refunded,
                    status=status,
                )
            )
        await async_session.commit()

        totals = await OrderRepository(async_session).totals(business.id)

        assert totals == {"orders": 4, "revenue": 8000, "refunds": 1000}

    @pytest.mark.asyncio
    async def test_totals_window(self, async_session, business) -> None:
        """Test the reporting window excludes older orders."""
        totals = await OrderRepository(async_session).totals(
            business.id, since=datetime.now(UTC) + timedelta(days=1)
        )

        assert totals == {"orders": 0, "revenue": 0, "refunds": 0}


class TestReviewRepository:
    """Tests for ReviewRepository.average_rating."""

    @pytest.mark.asyncio
    async def test_average_of_approved(self, async_session, business, listing) -> None:
        """Test pending reviews do not count toward the rating."""
        for rating, status in ((5, REVIEW_APPROVED), (4, REVIEW_APPROVED), (1, None)):
            async_session.add(
                Review(
                    business_id=business.id,
                    listing_id=listing.id,
                    customer_name="Guest",
                    rating=rating,
                    status=status or REVIEW_PENDING,
                )
            )
        await async_session.commit()

        average, count = await ReviewRepository(async_session).average_rating(
            business.id
        )

        assert average == 4.5
        assert count == 2

    @pytest.mark.asyncio
    async def test_no_reviews(self, async_session, business) -> None:
        """Test no approved reviews gives no average."""
        assert await ReviewRepository(async_session).average_rating(business.id) == (
            None,
            0,
        )


class TestAuditRepository:
    """Tests for AuditRepository."""

    @pytest.fixture
    async def entries(self, async_session, business):
        """Audit entries across two namespaces, one of them old."""
        now = datetime.now(UTC)
        rows = [
            ("social.account.connected", now - timedelta(minutes=2)),
            ("social.account.refreshed", now - timedelta(minutes=1)),
            ("space.created", now),
            ("space.deleted", now - timedelta(days=120)),
        ]
        for action, created_at in rows:
            async_session.add(
                AuditLog(
                    business_id=business.id,
                    actor_id="admin-user",
                    action=action,
                    entity_type=action.rsplit(".", 1)[0],
                    created_at=created_at,
                )
            )
        await async_session.commit()

    @pytest.mark.asyncio
    async def test_prefix_filter(self, async_session, business, entries) -> None:
        """Test namespace filters match by prefix, newest first."""
        items, total = await AuditRepository(async_session).list_for_business(
            business.id, action_prefix="social.account."
        )

        assert total == 2
        assert [e.action for e in items] == [
            "social.account.refreshed",
            "social.account.connected",
        ]

    @pytest.mark.asyncio
    async def test_pagination(self, async_session, business, entries) -> None:
        """Test pages are cut from the filtered set."""
        items, total = await AuditRepository(async_session).list_for_business(
            business.id, page=2, limit=3
        )

        assert total == 4
        assert [e.action for e in items] == ["space.deleted"]

    @pytest.mark.asyncio
    async def test_purge(self, async_session, business, entries) -> None:
        """Test entries past retention are removed."""
        repo = AuditRepository(async_session)

        assert await repo.purge_old_entries(days=90) == 1

        _, total = await repo.list_for_business(business.id)
        assert total == 3


class TestBusinessRepository:
    """Tests for BusinessRepository."""

    @pytest.mark.asyncio
    async def test_get_role(self, async_session, business) -> None:
        """Test membership lookup is per business."""
        repo = BusinessRepository(async_session)

        assert await repo.get_role("manager-user", business.id) == "MANAGER"
        assert await repo.get_role("outsider-user", business.id) is None

    @pytest.mark.asyncio
    async def test_assign_role_updates(self, async_session, business) -> None:
        """Test assigning a role to a member replaces it."""
        repo = BusinessRepository(async_session)

        await repo.assign_role("staff-user", business.id, "MANAGER")

        assert await repo.get_role("staff-user", business.id) == "MANAGER"

    @pytest.mark.asyncio
    async def test_revoked_key_not_found(self, async_session, business) -> None:
        """Test revoked keys no longer authenticate."""
        key_hash = hashlib.sha256(b"tf_live_secret").hexdigest()
        api_key = ApiKey(
            business_id=business.id,
            name="CI",
            key_prefix="tf_live_sec",
            key_hash=key_hash,
        )
        repo = BusinessRepository(async_session)
        await repo.create_api_key(api_key)

        assert await repo.get_api_key_by_hash(key_hash) is not None

        await repo.revoke_api_key(api_key)

        assert api_key.is_revoked
        assert await repo.get_api_key_by_hash(key_hash) is None


class TestEventSyncRepository:
    """Tests for EventSyncRepository.get_pending."""

    @pytest.mark.asyncio
    async def test_get_pending(self, async_session, business, make_listing) -> None:
        """Test only active pending syncs are returned."""
        for slug, status, last_status in (
            ("a", "ACTIVE", SYNC_PENDING),
            ("b", "ACTIVE", SYNC_SUCCESS),
            ("c", SYNC_PAUSED, SYNC_PENDING),
        ):
            item = await make_listing(slug=slug)
            async_session.add(
                EventSync(
                    business_id=business.id,
                    listing_id=item.id,
                    name=slug,
                    platforms=["EVENTBRITE"],
                    status=status,
                    last_sync_status=last_status,
                )
            )
        await async_session.commit()

        pending = await EventSyncRepository(async_session).get_pending()

        assert [s.name for s in pending] == ["a"]
