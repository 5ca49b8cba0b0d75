"""Tests for events and event sections."""

from __future__ import annotations

import datetime

from eventreg.errors import (
    ConflictError,
    NotFoundError,
    UniquenessConflict,
    ValidationError,
)
from eventreg.events.services import EventService, SectionService
from eventreg.registrations.services import RegistrationService

from .mock_utils import FirestoreTestCase

UTC = datetime.timezone.utc


class EventServiceTestCase(FirestoreTestCase):
    """Test case for the event service."""

    def test_create_event_sets_defaults(self) -> None:
        event = self.make_event()

        self.assertEqual(event["titleSlug"], "spring-games")
        self.assertEqual(event["sections"], [])
        self.assertEqual(event["registeredCount"], 0)
        self.assertFalse(event["isPublished"])
        self.assertEqual(event["createdAt"], event["updatedAt"])

    def test_duplicate_registration_id_is_rejected(self) -> None:
        """Two events may not share a registrationId."""
        self.make_event()

        with self.assertRaises(UniquenessConflict) as cm:
            self.make_event(title="Autumn Games")

        self.assertEqual(cm.exception.field, "registrationId")
        events = [doc for doc in self.db.collection("events").stream() if doc.exists]
        self.assertEqual(len(events), 1)

    def test_same_title_gets_suffixed_slug(self) -> None:
        self.make_event()
        second = self.make_event("SPRING-2030-B")
        self.assertEqual(second["titleSlug"], "spring-games-1")

    def test_slugs_are_claimed(self) -> None:
        event = self.make_event()
        claim = self.db.collection("eventSlugs").document("spring-games").get()
        self.assertTrue(claim.exists)
        self.assertEqual(claim.to_dict()["ownerId"], event["id"])

    def test_aborted_create_reruns_cleanly(self) -> None:
        self.abort_transactions()
        event = self.make_event()
        self.assertEqual(event["titleSlug"], "spring-games")
        self.assertEqual(EventService.get_event(self.db, "spring-games")["id"], event["id"])

    def test_get_event_by_id_or_slug(self) -> None:
        event = self.make_event()

        by_id = EventService.get_event(self.db, event["id"])
        by_slug = EventService.get_event(self.db, "spring-games")

        self.assertEqual(by_id["id"], event["id"])
        self.assertEqual(by_slug["id"], event["id"])
        self.assertEqual(by_slug["sectionDetails"], [])

    def test_get_missing_event(self) -> None:
        with self.assertRaises(NotFoundError):
            EventService.get_event(self.db, "nope")

    def test_end_before_start_names_field(self) -> None:
        with self.assertRaises(ValidationError) as cm:
            self.make_event(endDate=datetime.datetime(2030, 3, 1, tzinfo=UTC))
        self.assertEqual(cm.exception.field, "endDate")

    def test_invalid_event_type_names_field(self) -> None:
        with self.assertRaises(ValidationError) as cm:
            self.make_event(eventType="relay")
        self.assertEqual(cm.exception.field, "eventType")

    def test_update_registration_id_moves_claim(self) -> None:
        event = self.make_event()

        updated = EventService.update_event(
            self.db, event["id"], {"registrationId": "SPRING-2030-X"}
        )

        self.assertEqual(updated["registrationId"], "SPRING-2030-X")
        claims = self.db.collection("eventRegistrationIds")
        self.assertTrue(claims.document("SPRING-2030-X").get().exists)
        self.assertFalse(claims.document("SPRING-2030").get().exists)

    def test_update_to_taken_registration_id_is_rejected(self) -> None:
        event = self.make_event()
        self.make_event("AUTUMN-2030", title="Autumn Games")

        with self.assertRaises(UniquenessConflict):
            EventService.update_event(
                self.db, event["id"], {"registrationId": "AUTUMN-2030"}
            )

    def test_update_title_reslugs(self) -> None:
        event = self.make_event()
        updated = EventService.update_event(self.db, "spring-games", {"title": "Summer Games"})
        self.assertEqual(updated["id"], event["id"])
        self.assertEqual(updated["titleSlug"], "summer-games")
        self.assertFalse(self.db.collection("eventSlugs").document("spring-games").get().exists)

        other = self.make_event("AUTUMN-2030", title="Spring Games")
        self.assertEqual(other["titleSlug"], "spring-games")

    def test_update_to_same_slug_keeps_claim(self) -> None:
        self.make_event()
        second = self.make_event("SPRING-2030-B")

        updated = EventService.update_event(self.db, second["id"], {"title": "Spring  Games"})

        self.assertEqual(updated["titleSlug"], "spring-games-1")

    def test_update_checks_dates_against_stored_values(self) -> None:
        """A partial update is validated together with the stored fields."""
        event = self.make_event()
        with self.assertRaises(ValidationError) as cm:
            EventService.update_event(
                self.db,
                event["id"],
                {"endDate": datetime.datetime(2029, 1, 1, tzinfo=UTC)},
            )
        self.assertEqual(cm.exception.field, "endDate")

    def test_list_events_orders_by_start_and_filters_published(self) -> None:
        self.make_event(
            "LATE",
            title="Late",
            startDate=datetime.datetime(2030, 9, 1, tzinfo=UTC),
            endDate=datetime.datetime(2030, 9, 2, tzinfo=UTC),
            isPublished=True,
        )
        self.make_event("EARLY", title="Early")

        titles = [e["title"] for e in EventService.list_events(self.db)]
        published = [e["title"] for e in EventService.list_events(self.db, published=True)]

        self.assertEqual(titles, ["Early", "Late"])
        self.assertEqual(published, ["Late"])

    def test_delete_event_cascades_sections_and_claim(self) -> None:
        event = self.make_event()
        section = self.make_section(event["id"])

        EventService.delete_event(self.db, event["id"])

        with self.assertRaises(NotFoundError):
            EventService.get_event(self.db, event["id"])
        with self.assertRaises(NotFoundError):
            SectionService.get_section(self.db, section["id"])
        self.assertEqual(self.make_event()["titleSlug"], "spring-games")

    def test_delete_event_removes_cancelled_registrations(self) -> None:
        event = self.make_event()
        section = self.make_section(event["id"])
        registration = RegistrationService.register(
            self.db, section["id"], {"registrationType": "individual"}
        )
        RegistrationService.update_registration(
            self.db, registration["id"], {"status": "cancelled"}
        )

        EventService.delete_event(self.db, event["id"])

        with self.assertRaises(NotFoundError):
            RegistrationService.get_registration(self.db, registration["id"])

    def test_delete_event_checks_seats_inside_its_transaction(self) -> None:
        """Seats reserved by a commit that lands before the delete's reads block it."""
        event = self.make_event()
        section = self.make_section(event["id"])
        real_transaction = self.db.transaction

        def register_first(**kwargs):
            self.db.transaction = real_transaction
            RegistrationService.register(
                self.db, section["id"], {"registrationType": "individual"}
            )
            return real_transaction(**kwargs)

        self.db.transaction = register_first

        with self.assertRaises(ConflictError):
            EventService.delete_event(self.db, event["id"])

        self.assertEqual(SectionService.get_section(self.db, section["id"])["registeredCount"], 1)

    def test_delete_event_with_active_registrations_is_refused(self) -> None:
        event = self.make_event()
        section = self.make_section(event["id"])
        RegistrationService.register(
            self.db, section["id"], {"registrationType": "individual"}
        )

        with self.assertRaises(ConflictError):
            EventService.delete_event(self.db, event["id"])

        self.assertEqual(EventService.get_event(self.db, event["id"])["id"], event["id"])


class SectionServiceTestCase(FirestoreTestCase):
    """Test case for the section service."""

    def setUp(self) -> None:
        super().setUp()
        self.event = self.make_event()

    def test_create_section_links_to_event(self) -> None:
        section = self.make_section(self.event["id"], maxParticipants=20, price=12.5)

        self.assertEqual(section["eventId"], self.event["id"])
        self.assertEqual(section["slug"], "morning-heat")
        self.assertEqual(section["registeredCount"], 0)
        self.assertEqual(section["date"], "2030-04-01")

        event = EventService.get_event(self.db, self.event["id"])
        self.assertEqual(event["sections"], [section["id"]])
        self.assertEqual(event["sectionDetails"][0]["title"], "Morning Heat")

    def test_create_section_for_missing_event(self) -> None:
        with self.assertRaises(NotFoundError):
            self.make_section("missing")

    def test_age_range_must_not_be_empty(self) -> None:
        with self.assertRaises(ValidationError) as cm:
            self.make_section(
                self.event["id"], ageRestrictions={"minAge": 18, "maxAge": 10}
            )
        self.assertEqual(cm.exception.field, "ageRestrictions")

    def test_negative_price_names_field(self) -> None:
        with self.assertRaises(ValidationError) as cm:
            self.make_section(self.event["id"], price=-1)
        self.assertEqual(cm.exception.field, "price")

    def test_list_sections_orders_by_date_and_time(self) -> None:
        self.make_section(self.event["id"], title="Afternoon", time="14:00")
        self.make_section(self.event["id"], title="Day Two", date="2030-04-02")
        self.make_section(self.event["id"], title="Morning", time="09:00")

        titles = [s["title"] for s in SectionService.list_sections(self.db, self.event["id"])]

        self.assertEqual(titles, ["Morning", "Afternoon", "Day Two"])

    def test_capacity_cannot_drop_below_held_seats(self) -> None:
        section = self.make_section(self.event["id"], maxParticipants=5)
        for _ in range(2):
            RegistrationService.register(
                self.db, section["id"], {"registrationType": "individual"}
            )

        with self.assertRaises(ConflictError):
            SectionService.update_section(self.db, section["id"], {"maxParticipants": 1})

        updated = SectionService.update_section(
            self.db, section["id"], {"maxParticipants": 2}
        )
        self.assertEqual(updated["maxParticipants"], 2)

    def test_delete_section_detaches_from_event(self) -> None:
        section = self.make_section(self.event["id"])

        SectionService.delete_section(self.db, section["id"])

        self.assertEqual(EventService.get_event(self.db, self.event["id"])["sections"], [])

    def test_delete_section_with_active_registrations_is_refused(self) -> None:
        section = self.make_section(self.event["id"])
        RegistrationService.register(
            self.db, section["id"], {"registrationType": "individual"}
        )

        with self.assertRaises(ConflictError):
            SectionService.delete_section(self.db, section["id"])
