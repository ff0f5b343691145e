from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timedelta

from . import catalogue, config
from .booking import BookingService
from .db import init_db
from .errors import BookingError
from .logging_config import setup_structured_logging
from .notifier import Notifier, SubscriptionRegistry
from .seed import seed_base
from .store import AppointmentStore, PatientInfo


def _booking_service() -> BookingService:
    # no live sessions in a CLI process: events are published to nobody
    notifier = Notifier(SubscriptionRegistry(), send_timeout=config.WS_SEND_TIMEOUT)
    return BookingService(
        AppointmentStore(),
        notifier,
        slot_minutes=config.SLOT_MINUTES,
        max_range_days=config.AVAILABILITY_MAX_DAYS,
    )


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    if args.seed:
        hospital_id = seed_base()
        print(f"DB initialized, demo hospital: {hospital_id}")
    else:
        print("DB initialized.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "services":
        for svc in catalogue.search_services():
            print(f"{svc['id']} | {svc['name']} | {svc['category']} | {svc['price']} | {svc['hospital']['name']}")
    elif args.entity == "appointments":
        if not args.hospital_id:
            raise SystemExit("--hospital-id is required to list appointments")
        for a in AppointmentStore().list_by_hospital(args.hospital_id):
            print(f"{a.id} | {a.date:%Y-%m-%d %H:%M} | {a.status.value} | {a.patient.name} | {a.service_id}")


def cmd_book(args: argparse.Namespace) -> None:
    start = datetime.fromisoformat(args.date)  # e.g. 2030-01-08T10:30
    patient = PatientInfo(args.name, args.phone, args.email)
    outcome = asyncio.run(_booking_service().create(args.service_id, start, patient))
    print(outcome.message)
    print(f"Appointment ID: {outcome.appointment.id}")


def cmd_cancel(args: argparse.Namespace) -> None:
    outcome = asyncio.run(_booking_service().cancel(args.appointment_id, args.hospital_id))
    print(outcome.message)


def cmd_available(args: argparse.Namespace) -> None:
    start = datetime.fromisoformat(args.start) if args.start else datetime.now()
    end = start + timedelta(days=args.days)
    dates = asyncio.run(_booking_service().available_dates(args.service_id, start, end))
    if not dates:
        print("No free slots in range.")
    for d in dates:
        print(d.strftime("%a %Y-%m-%d %H:%M"))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="hospital-booking", description="Hospital booking operator CLI")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Create the DB tables")
    p_init.add_argument("--seed", action="store_true", help="Also load the demo hospital")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="List entities")
    p_list.add_argument("entity", choices=["services", "appointments"])
    p_list.add_argument("--hospital-id", default=None)
    p_list.set_defaults(func=cmd_list)

    p_book = sub.add_parser("book", help="Book an appointment")
    p_book.add_argument("--service-id", required=True)
    p_book.add_argument("--date", required=True, help="ISO datetime e.g. 2030-01-08T10:30")
    p_book.add_argument("--name", required=True)
    p_book.add_argument("--phone", required=True)
    p_book.add_argument("--email", default=None)
    p_book.set_defaults(func=cmd_book)

    p_cancel = sub.add_parser("cancel", help="Cancel an appointment")
    p_cancel.add_argument("--appointment-id", required=True)
    p_cancel.add_argument("--hospital-id", required=True)
    p_cancel.set_defaults(func=cmd_cancel)

    p_av = sub.add_parser("available", help="Free slots of a service")
    p_av.add_argument("--service-id", required=True)
    p_av.add_argument("--start", default=None, help="ISO datetime, default now")
    p_av.add_argument("--days", type=int, default=7)
    p_av.set_defaults(func=cmd_available)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    setup_structured_logging("WARNING")
    init_db()  # make sure the tables exist
    try:
        args.func(args)
    except BookingError as e:
        raise SystemExit(f"Error: {e.message}")


if __name__ == "__main__":
    main()
