"""Global constants for the eventreg application."""

# Collection names
EVENTS = "events"
EVENT_SECTIONS = "eventSections"
REGISTRATIONS = "registrations"
PAYMENTS = "payments"
USERS = "users"
FAMILIES = "families"
FAMILY_MEMBERS = "familyMembers"

# Uniqueness claim collections. Document id is the unique value.
EVENT_REGISTRATION_IDS = "eventRegistrationIds"
USER_EMAILS = "userEmails"
EVENT_SLUGS = "eventSlugs"
FAMILY_SLUGS = "familySlugs"

CANCELLED = "cancelled"
COMPLETED = "completed"

MIN_PASSWORD_LENGTH = 6

UNKNOWN_NAME = "Unknown"
