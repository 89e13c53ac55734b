"""
Unit tests for services/visibility.py.

Listing and totem queries run against the in-memory SQLite database.
NOW is Monday 12:00 UTC, i.e. Monday 09:00 (morning) in America/Sao_Paulo.
"""

import pytest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from models.event import EventStatus
from services.permissions import Actor
from services.visibility import (
    AFTERNOON,
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MORNING,
    NIGHT,
    SORT_OPTIONS,
    ListingCriteria,
    build_listing_query,
    coerce_status,
    coerce_statuses,
    escape_like,
    paginate,
    period_of_day,
    split_tags,
    totem_events,
    weekday_name,
)
from factories import NOW

SAO_PAULO = ZoneInfo("America/Sao_Paulo")


def listing(db, actor=None, **criteria):
    query = build_listing_query(ListingCriteria(**criteria), actor=actor, now=NOW)
    return paginate(db, query)


def titles(page):
    return sorted(event.title for event in page.items)


class TestPrimitives:

    def test_escape_like(self):
        assert escape_like("100%_a\\b") == "100\\%\\_a\\\\b"

    @pytest.mark.parametrize("value,expected", [
        ("active", EventStatus.ACTIVE),
        ("Ativo", EventStatus.ACTIVE),
        ("1", EventStatus.ACTIVE),
        (True, EventStatus.ACTIVE),
        ("inativo", EventStatus.INACTIVE),
        ("false", EventStatus.INACTIVE),
        (False, EventStatus.INACTIVE),
        ("archived", None),
    ])
    def test_coerce_status(self, value, expected):
        assert coerce_status(value) is expected

    def test_coerce_statuses(self):
        assert coerce_statuses("ativo,inativo,bogus,active") == (EventStatus.ACTIVE, EventStatus.INACTIVE)
        assert coerce_statuses(None) == ()
        assert coerce_statuses(["0"]) == (EventStatus.INACTIVE,)

    def test_split_tags(self):
        assert split_tags("a, b,") == ["a", "b"]
        assert split_tags(" tec ") == "tec"
        assert split_tags(["x", " "]) == ["x"]
        assert split_tags("  ") is None
        assert split_tags(None) is None


class TestBuildListingQuery:
    """Pagination and ordering normalisation."""

    def test_defaults(self):
        query = build_listing_query(ListingCriteria(), now=NOW)
        assert (query.page, query.limit, query.offset) == (1, DEFAULT_LIMIT, 0)

    def test_limit_is_capped(self):
        assert build_listing_query(ListingCriteria(limit=500), now=NOW).limit == MAX_LIMIT

    def test_non_positive_values_fall_back(self):
        query = build_listing_query(ListingCriteria(page=0, limit=-5), now=NOW)
        assert (query.page, query.limit) == (1, DEFAULT_LIMIT)

    def test_offset(self):
        assert build_listing_query(ListingCriteria(page=3, limit=20), now=NOW).offset == 40

    def test_unknown_sort_uses_default(self):
        query = build_listing_query(ListingCriteria(sort="drop table"), now=NOW)
        assert query.order_by == SORT_OPTIONS["-created_at"]

    def test_anonymous_gets_active_only_clause(self):
        assert len(build_listing_query(ListingCriteria(), now=NOW).clauses) == 1
        assert build_listing_query(ListingCriteria(ignore_default_status=True), now=NOW).clauses == ()

    def test_criteria_are_not_mutated(self):
        criteria = ListingCriteria(title="x")
        build_listing_query(criteria, now=NOW)
        build_listing_query(criteria, now=NOW)
        assert criteria == ListingCriteria(title="x")


class TestAudience:
    """Who sees which events in listings."""

    @pytest.fixture
    def world(self, organizer, make_user, make_event):
        editor = make_user(name="Editor")
        former = make_user(name="Former")
        admin = make_user(name="Admin", admin=True)
        make_event(organizer, title="Active")
        make_event(organizer, title="Draft", status=EventStatus.INACTIVE)
        make_event(
            organizer,
            title="Shared",
            status=EventStatus.INACTIVE,
            permissions=[(editor.id, NOW + timedelta(days=1)), (former.id, NOW - timedelta(days=1))],
        )
        make_event(admin, title="Admin event", status=EventStatus.INACTIVE)
        return {
            "organizer": Actor.from_user(organizer),
            "editor": Actor.from_user(editor),
            "former": Actor.from_user(former),
            "admin": Actor.from_user(admin),
        }

    def test_anonymous_sees_active_only(self, db, world):
        assert titles(listing(db)) == ["Active"]

    def test_anonymous_status_filter_replaces_default(self, db, world):
        assert titles(listing(db, status="inactive")) == ["Admin event", "Draft", "Shared"]
        assert titles(listing(db, status="active,inactive")) == ["Active", "Admin event", "Draft", "Shared"]

    def test_anonymous_unknown_status_keeps_default(self, db, world):
        assert titles(listing(db, status="archived")) == ["Active"]

    def test_anonymous_opt_out_of_default_status(self, db, world):
        assert titles(listing(db, ignore_default_status=True)) == ["Active", "Admin event", "Draft", "Shared"]

    def test_organizer_sees_own_events(self, db, world):
        assert titles(listing(db, world["organizer"])) == ["Active", "Draft", "Shared"]

    def test_editor_sees_shared_event(self, db, world):
        assert titles(listing(db, world["editor"])) == ["Shared"]

    def test_expired_grant_hides_event(self, db, world):
        assert titles(listing(db, world["former"])) == []

    def test_admin_scope_all(self, db, world):
        assert listing(db, world["admin"], scope_all=True).total == 4
        assert titles(listing(db, world["admin"])) == ["Admin event"]

    def test_status_filter_combines_with_audience(self, db, world):
        assert titles(listing(db, world["organizer"], status="inativo")) == ["Draft", "Shared"]


class TestFilters:

    @pytest.fixture(autouse=True)
    def events(self, organizer, make_user, make_event):
        other = make_user(name="Maria Lima")
        make_event(organizer, title="100% Python", category="workshop", tags=["python", "backend"],
                   start_at=NOW + timedelta(days=1), end_at=NOW + timedelta(days=1, hours=2))
        make_event(organizer, title="1000 ideias", location="Bloco B", tags=["empreendedorismo"],
                   start_at=NOW + timedelta(days=5), end_at=NOW + timedelta(days=6))
        make_event(other, title="Feira de Ciencias", description="Projetos de alunos", category="feira",
                   tags=["ciencia", "python-kids"],
                   start_at=NOW + timedelta(days=20), end_at=NOW + timedelta(days=21))

    def test_title_wildcards_are_literal(self, db):
        assert titles(listing(db, title="100%")) == ["100% Python"]

    def test_title_case_insensitive(self, db):
        assert titles(listing(db, title="feira")) == ["Feira de Ciencias"]

    def test_description_and_location(self, db):
        assert titles(listing(db, description="ALUNOS")) == ["Feira de Ciencias"]
        assert titles(listing(db, location="bloco")) == ["1000 ideias"]

    def test_category(self, db):
        assert titles(listing(db, category="work")) == ["100% Python"]

    def test_organizer_name(self, db):
        assert titles(listing(db, organizer_name="maria")) == ["Feira de Ciencias"]

    def test_single_tag_is_substring(self, db):
        assert titles(listing(db, tags="python")) == ["100% Python", "Feira de Ciencias"]

    def test_tag_list_is_membership(self, db):
        assert titles(listing(db, tags=["python", "empreendedorismo"])) == ["100% Python", "1000 ideias"]

    def test_comma_tags_are_membership(self, db):
        assert titles(listing(db, tags="python,ciencia")) == ["100% Python", "Feira de Ciencias"]

    def test_date_range_overlap(self, db):
        page = listing(db, start=NOW + timedelta(days=5, hours=12), end=NOW + timedelta(days=10))
        assert titles(page) == ["1000 ideias"]

    def test_open_ended_range(self, db):
        assert titles(listing(db, start=NOW + timedelta(days=15))) == ["Feira de Ciencias"]
        assert titles(listing(db, end=NOW + timedelta(days=2))) == ["100% Python"]

    def test_naive_range_bounds_are_utc(self, db):
        start = (NOW + timedelta(days=15)).replace(tzinfo=None)
        assert titles(listing(db, start=start)) == ["Feira de Ciencias"]

    def test_pagination_and_sort(self, db):
        first = listing(db, sort="start_at", limit=2)
        second = listing(db, sort="start_at", limit=2, page=2)

        assert [e.title for e in first.items] == ["100% Python", "1000 ideias"]
        assert [e.title for e in second.items] == ["Feira de Ciencias"]
        assert (first.total, first.pages) == (3, 2)

    def test_title_sort_and_descending_start(self, db):
        assert [e.title for e in listing(db, sort="-start_at").items][0] == "Feira de Ciencias"
        assert [e.title for e in listing(db, sort="title").items][0] == "100% Python"

    def test_page_past_end_is_empty(self, db):
        page = listing(db, page=5)
        assert page.items == []
        assert page.total == 3


class TestTemporalHelpers:

    @pytest.mark.parametrize("hour,period", [
        (0, NIGHT), (5, NIGHT), (6, MORNING), (11, MORNING),
        (12, AFTERNOON), (17, AFTERNOON), (18, NIGHT), (23, NIGHT),
    ])
    def test_period_of_day(self, hour, period):
        assert period_of_day(hour) == period

    def test_weekday_name(self):
        assert weekday_name(datetime(2026, 3, 2)) == "segunda"
        assert weekday_name(datetime(2026, 3, 8)) == "domingo"


class TestTotemEvents:
    """Test suite for the totem temporal match."""

    def test_matching_event_is_shown(self, db, organizer, make_event):
        event = make_event(organizer)
        assert totem_events(db, NOW, SAO_PAULO) == [event]

    def test_match_is_deterministic_in_time(self, db, organizer, make_event):
        event = make_event(organizer, display_days="segunda,quarta", display_morning=True)

        assert totem_events(db, NOW, SAO_PAULO) == [event]  # Monday 09:00
        assert totem_events(db, NOW + timedelta(days=1), SAO_PAULO) == []  # Tuesday 09:00
        assert totem_events(db, NOW + timedelta(hours=6), SAO_PAULO) == []  # Monday 15:00

    def test_weekday_and_period_use_display_timezone(self, db, organizer, make_event):
        make_event(organizer)
        # 12:00 UTC is afternoon in UTC, morning in Sao Paulo
        assert totem_events(db, NOW, timezone.utc) == []

    def test_other_weekday_hidden(self, db, organizer, make_event):
        make_event(organizer, display_days="terca,quinta")
        assert totem_events(db, NOW, SAO_PAULO) == []

    def test_period_flag(self, db, organizer, make_event):
        night_only = make_event(organizer, display_morning=False, display_night=True)
        late = NOW + timedelta(hours=10)  # Monday 19:00 local

        assert totem_events(db, NOW, SAO_PAULO) == []
        assert totem_events(db, late, SAO_PAULO) == [night_only]

    def test_exhibit_window(self, db, organizer, make_event):
        make_event(organizer, exhibit_start_at=NOW + timedelta(hours=1), exhibit_end_at=NOW + timedelta(days=2))
        make_event(organizer, exhibit_start_at=NOW - timedelta(days=2), exhibit_end_at=NOW - timedelta(hours=1))
        assert totem_events(db, NOW, SAO_PAULO) == []

    def test_inactive_hidden(self, db, organizer, make_event):
        make_event(organizer, status=EventStatus.INACTIVE, media=[])
        assert totem_events(db, NOW, SAO_PAULO) == []

    def test_ordered_by_start(self, db, organizer, make_event):
        later = make_event(organizer, title="Later", start_at=NOW + timedelta(days=5), end_at=NOW + timedelta(days=6))
        sooner = make_event(organizer, title="Sooner", start_at=NOW + timedelta(days=1), end_at=NOW + timedelta(days=2))

        assert totem_events(db, NOW, SAO_PAULO) == [sooner, later]
