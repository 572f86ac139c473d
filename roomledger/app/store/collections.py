"""Collection names shared by the ledger services."""

USERS = "users"
ORGANIZATIONS = "organizations"
SUBSCRIPTIONS = "subscriptions"
SUBSCRIPTION_INDEX = "subscription_index"
ENTITLEMENTS = "entitlements"
USAGE_PERIODS = "usage_periods"
ROOMS = "rooms"
ROOM_USERS = "room_users"
AWARD_EVENTS = "award_events"
CHECKOUT_EVENTS = "checkout_events"
