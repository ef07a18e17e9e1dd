import pytest

from print_relay.core.errors import InvalidRequest
from print_relay.core.jobs import CorrectionSlip, KitchenTicket, PrintJob
from print_relay.printing.tickets import (
    DRAWER_PIN0,
    DRAWER_PIN1,
    TicketOptions,
    drawer_sequences,
    encode_correction_slip,
    encode_drawer_pulse,
    encode_job,
    encode_kitchen_ticket,
    encode_test_ticket,
)

CUT = b"\x1dV"


def _kitchen() -> KitchenTicket:
    return KitchenTicket.model_validate(
        {
            "waiter": "Ana",
            "table": "12",
            "area": "Terrace",
            "time": "20:15",
            "items": [
                {"name": "Burger", "quantity": 2, "notes": "no onion"},
                {"name": "Fries"},
            ],
        }
    )


def test_drawer_pulse_bytes_are_exact():
    assert encode_drawer_pulse(TicketOptions()) == b"\x1b\x70\x00\x19\xfa"


def test_drawer_pin_variants():
    assert drawer_sequences(TicketOptions(drawer_pin="1")) == [DRAWER_PIN1]
    both = encode_drawer_pulse(TicketOptions(drawer_pin="both"))
    assert both.startswith(bytes(DRAWER_PIN0) + bytes(DRAWER_PIN1))
    assert len(both) == 15


def test_drawer_double_pulse_repeats():
    data = encode_drawer_pulse(TicketOptions(drawer_double_pulse=True))
    assert data == bytes(DRAWER_PIN0) * 2


def test_kitchen_ticket_content():
    data = encode_kitchen_ticket(_kitchen(), TicketOptions())
    assert b"KITCHEN ORDER" in data
    assert b"Waiter: Ana" in data
    assert b"Table: 12" in data
    assert b"Time: 20:15" in data
    assert b"2x Burger" in data
    assert b"> no onion" in data
    assert b"1x Fries" in data
    assert b"2 items" in data
    assert CUT in data
    assert data.index(b"2x Burger") < data.index(b"1x Fries") < data.rindex(CUT)


def test_kitchen_ticket_defaults_for_missing_header():
    data = encode_kitchen_ticket(KitchenTicket.model_validate({"items": [{"name": "Soup"}]}), TicketOptions())
    assert b"Waiter: N/A" in data
    assert b"Time: " in data


def test_correction_slip_marks_kind_and_previous_quantity():
    slip = CorrectionSlip.model_validate(
        {
            "kind": "QUANTITY",
            "table": "4",
            "items": [{"name": "Wine", "quantity": 3, "previous_quantity": 1}],
        }
    )
    data = encode_correction_slip(slip, TicketOptions())
    assert b"CORRECTION" in data
    assert b"QUANTITY CHANGE" in data
    assert b"~ 3x Wine" in data
    assert b"(was 1 -> now 3)" in data
    assert b"CHECK WITH WAITER" in data
    assert CUT in data


def test_correction_add_prefix():
    slip = CorrectionSlip.model_validate({"kind": "add", "items": [{"name": "Salad"}]})
    data = encode_correction_slip(slip, TicketOptions())
    assert b"ITEMS ADDED" in data
    assert b"+ 1x Salad" in data


def test_test_ticket_names_target():
    data = encode_test_ticket(TicketOptions(), "tcp://10.0.0.5:9100")
    assert b"TEST TICKET" in data
    assert b"tcp://10.0.0.5:9100" in data


def test_encode_job_dispatches_by_type():
    job = PrintJob(id="a", type="cash_drawer", payload={}, created_at="t")
    assert encode_job(job, TicketOptions()) == bytes(DRAWER_PIN0)

    job = PrintJob(id="b", type="kitchen", payload=_kitchen().model_dump(), created_at="t")
    assert b"2x Burger" in encode_job(job, TicketOptions())


def test_encode_job_rejects_unknown_type_and_bad_payload():
    with pytest.raises(InvalidRequest):
        encode_job(PrintJob(id="a", type="receipt", payload={}, created_at="t"), TicketOptions())
    with pytest.raises(InvalidRequest):
        encode_job(
            PrintJob(id="b", type="kitchen", payload={"items": [{"quantity": 2}]}, created_at="t"),
            TicketOptions(),
        )
