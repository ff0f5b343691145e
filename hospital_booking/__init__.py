"""
Hospital booking backend.

Layout:
- schedule.py     : working calendars (weekdays, weekend overrides, dated exceptions)
- availability.py : slot validation and free-slot listing
- store.py        : appointment persistence, no-double-booking guarantee
- booking.py      : create / update / cancel use cases
- notifier.py     : live notifications for hospital staff
- catalogue.py    : hospitals, categories and services
- api_main.py     : FastAPI app (REST + WebSocket)
- cli.py          : operator CLI
"""
