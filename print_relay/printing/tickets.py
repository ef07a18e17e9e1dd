"""
ESC/POS encoders for Print Relay jobs.

Every encoder renders into a python-escpos Dummy printer and returns the raw
bytes, so the same output can go to any transport (socket, spooler, serial).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from escpos.printer import Dummy

from print_relay.core.config import DispatcherSettings
from print_relay.core.jobs import CorrectionSlip, DrawerPulse, JobPayload, KitchenTicket, PrintJob, TicketHeader

logger = logging.getLogger(__name__)

# ESC p m t1 t2: pulse drawer pin m for t1*2ms on, t2*2ms off
DRAWER_PIN0 = [0x1B, 0x70, 0x00, 0x19, 0xFA]
DRAWER_PIN1 = [0x1B, 0x70, 0x01, 0x19, 0xFA]
DRAWER_ALT = [0x1B, 0x70, 0x00, 0x1E, 0xFF]

CORRECTION_BANNERS = {
    "add": "*** ITEMS ADDED ***",
    "remove": "*** ITEMS REMOVED ***",
    "quantity": "*** QUANTITY CHANGE ***",
    "modify": "*** MODIFICATION ***",
}
CORRECTION_PREFIXES = {"add": "+ ", "remove": "- ", "quantity": "~ ", "modify": ""}


@dataclass
class TicketOptions:
    printer_profile: Optional[str] = None
    line_width: int = 48
    cut_feed_lines: int = 2
    drawer_pin: str = "0"
    drawer_double_pulse: bool = False

    @classmethod
    def from_settings(cls, settings: DispatcherSettings) -> "TicketOptions":
        return cls(
            printer_profile=settings.printer_profile,
            line_width=settings.line_width,
            cut_feed_lines=settings.cut_feed_lines,
            drawer_pin=settings.drawer_pin,
            drawer_double_pulse=settings.drawer_double_pulse,
        )


def _new_printer(options: TicketOptions) -> Dummy:
    if options.printer_profile:
        return Dummy(profile=options.printer_profile)
    return Dummy()


def _rule(options: TicketOptions, char: str = "-") -> str:
    return char * max(8, options.line_width)


def _header_lines(p: Dummy, ticket: TicketHeader, options: TicketOptions) -> None:
    p.set(align="left", bold=False, normal_textsize=True)
    p.textln(f"Waiter: {ticket.waiter or 'N/A'}")
    p.textln(f"Table: {ticket.table or 'N/A'}")
    p.textln(f"Area: {ticket.area or 'N/A'}")
    p.textln(f"Time: {ticket.time or datetime.now().strftime('%H:%M')}")
    p.textln(_rule(options))


def _finish(p: Dummy, options: TicketOptions) -> bytes:
    if options.cut_feed_lines > 0:
        p.text("\n" * options.cut_feed_lines)
    p.cut()
    return p.output


def encode_kitchen_ticket(ticket: KitchenTicket, options: TicketOptions) -> bytes:
    p = _new_printer(options)
    p.set(align="center", bold=True, normal_textsize=True)
    p.textln("--- KITCHEN ORDER ---")
    p.set(align="center", bold=False)
    p.textln(_rule(options))
    _header_lines(p, ticket, options)

    for item in ticket.items:
        p.set(align="left", bold=True)
        p.textln(f"{item.quantity}x {item.name}")
        p.set(bold=False)
        if item.notes:
            p.textln(f"  > {item.notes}")

    p.textln(_rule(options))
    p.set(align="center")
    p.textln(f"{len(ticket.items)} items")
    return _finish(p, options)


def encode_correction_slip(slip: CorrectionSlip, options: TicketOptions) -> bytes:
    p = _new_printer(options)
    # Inverted double-size header so the cook cannot mistake it for a new order
    p.set(align="center", bold=True, invert=True, double_width=True, double_height=True)
    p.textln("")
    p.textln(" CORRECTION ")
    p.textln("")
    p.set(align="center", bold=False, invert=False, normal_textsize=True)
    p.textln(_rule(options, "="))

    p.set(align="center", bold=True)
    p.textln(CORRECTION_BANNERS[slip.kind])
    p.set(bold=False)
    p.textln(_rule(options))
    _header_lines(p, slip, options)

    prefix = CORRECTION_PREFIXES[slip.kind]
    for item in slip.items:
        p.set(align="left", bold=True)
        p.textln(f"{prefix}{item.quantity}x {item.name}")
        p.set(bold=False)
        if item.notes:
            p.textln(f"  > {item.notes}")
        if item.previous_quantity is not None:
            p.textln(f"  (was {item.previous_quantity} -> now {item.quantity})")

    p.textln(_rule(options))
    p.set(align="center", bold=True)
    p.textln("CHECK WITH WAITER")
    p.set(bold=False)
    return _finish(p, options)


def drawer_sequences(options: TicketOptions) -> List[List[int]]:
    if options.drawer_pin == "1":
        return [DRAWER_PIN1]
    if options.drawer_pin == "both":
        return [DRAWER_PIN0, DRAWER_PIN1, DRAWER_ALT]
    return [DRAWER_PIN0]


def encode_drawer_pulse(options: TicketOptions) -> bytes:
    """
    Drawer kick command(s). There is no feedback from the drawer; a completed
    write is all the dispatcher can observe.
    """
    p = _new_printer(options)
    repeats = 2 if options.drawer_double_pulse else 1
    for _ in range(repeats):
        for seq in drawer_sequences(options):
            p.cashdraw(seq)
    return p.output


def encode_test_ticket(options: TicketOptions, target: str = "") -> bytes:
    p = _new_printer(options)
    p.set(align="center", bold=True, normal_textsize=True)
    p.textln("=== TEST TICKET ===")
    p.set(bold=False)
    p.textln("")
    p.textln("The printer is working.")
    p.textln(f"Date: {datetime.now().strftime('%Y-%m-%d %H:%M')}")
    if target:
        p.textln(f"Target: {target}")
    p.textln(_rule(options))
    return _finish(p, options)


def _encode_kitchen(payload: JobPayload, options: TicketOptions) -> bytes:
    assert isinstance(payload, KitchenTicket)
    return encode_kitchen_ticket(payload, options)


def _encode_correction(payload: JobPayload, options: TicketOptions) -> bytes:
    assert isinstance(payload, CorrectionSlip)
    return encode_correction_slip(payload, options)


def _encode_drawer(payload: JobPayload, options: TicketOptions) -> bytes:
    assert isinstance(payload, DrawerPulse)
    return encode_drawer_pulse(options)


ENCODERS: Dict[str, Callable[[JobPayload, TicketOptions], bytes]] = {
    "kitchen": _encode_kitchen,
    "correction": _encode_correction,
    "cash_drawer": _encode_drawer,
}


def encode_job(job: PrintJob, options: TicketOptions) -> bytes:
    """
    Encode a job into printer bytes according to its type.

    Raises InvalidRequest if the type is unknown or the payload does not parse.
    """
    payload = job.typed_payload()
    data = ENCODERS[job.type](payload, options)
    logger.debug("Encoded %s job %s into %d bytes", job.type, job.id, len(data))
    return data


__all__ = [
    "DRAWER_ALT",
    "DRAWER_PIN0",
    "DRAWER_PIN1",
    "ENCODERS",
    "TicketOptions",
    "drawer_sequences",
    "encode_correction_slip",
    "encode_drawer_pulse",
    "encode_job",
    "encode_kitchen_ticket",
    "encode_test_ticket",
]
