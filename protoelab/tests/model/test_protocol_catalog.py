"""
Tests for the protocol catalog: variants, signal shapes, intrinsic arcs and
the OutOfOrder ticket discipline.
"""

import pytest

from protoelab.errors import InvalidParameter, InvalidTicket, UnknownProtocol
from protoelab.model.port import PortDirection
from protoelab.model.protocol import (
    Decoupled,
    OutOfOrder,
    ProtocolKind,
    TicketTracker,
    TightlyCoupled,
    Valid,
    catalog_info,
    combinational_arcs,
    make_protocol,
    protocol_from_dict,
    signal_shape,
    signal_spec,
    ticket_width,
)


class TestProtocolKind:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("tightly_coupled", ProtocolKind.TIGHTLY_COUPLED),
            ("TightlyCoupled", ProtocolKind.TIGHTLY_COUPLED),
            ("tc", ProtocolKind.TIGHTLY_COUPLED),
            ("Valid", ProtocolKind.VALID),
            ("decoupled", ProtocolKind.DECOUPLED),
            ("out-of-order", ProtocolKind.OUT_OF_ORDER),
            ("OOO", ProtocolKind.OUT_OF_ORDER),
        ],
    )
    def test_from_string(self, text, expected):
        assert ProtocolKind.from_string(text) == expected

    def test_unknown_tag(self):
        with pytest.raises(UnknownProtocol, match="axi_stream") as exc_info:
            ProtocolKind.from_string("axi_stream")
        assert exc_info.value.kind == "UnknownProtocol"
        assert exc_info.value.entities == ("axi_stream",)

    def test_handshaked_kinds(self):
        assert ProtocolKind.DECOUPLED.is_handshaked
        assert ProtocolKind.OUT_OF_ORDER.is_handshaked
        assert not ProtocolKind.VALID.is_handshaked
        assert not ProtocolKind.TIGHTLY_COUPLED.is_handshaked


class TestMakeProtocol:
    def test_defaults(self):
        assert make_protocol("decoupled") == Decoupled(pre_buf=0, post_buf=0)
        assert make_protocol("tc") == TightlyCoupled(stages=1)
        assert make_protocol("valid").stages == 1
        assert make_protocol("out_of_order").max_outstanding == 1

    def test_camel_case_parameters(self):
        protocol = make_protocol("decoupled", preBuf=2)
        assert protocol.pre_buf == 2
        assert protocol.is_buffered

    def test_unknown_parameter(self):
        with pytest.raises(InvalidParameter) as exc_info:
            make_protocol("decoupled", depth=4)
        assert exc_info.value.entities == ("decoupled", "depth")

    @pytest.mark.parametrize(
        "tag, params",
        [
            ("tightly_coupled", {"stages": 0}),
            ("valid", {"stages": -1}),
            ("decoupled", {"pre_buf": -1}),
            ("decoupled", {"post_buf": -2}),
            ("out_of_order", {"max_outstanding": 0}),
        ],
    )
    def test_domain_violations(self, tag, params):
        with pytest.raises(InvalidParameter):
            make_protocol(tag, **params)

    def test_unknown_tag(self):
        with pytest.raises(UnknownProtocol):
            make_protocol("wishbone")

    def test_from_dict(self):
        protocol = protocol_from_dict({"type": "out_of_order", "maxOutstanding": 4})
        assert isinstance(protocol, OutOfOrder)
        assert protocol.ticket_width == 2

    def test_from_dict_without_type(self):
        with pytest.raises(UnknownProtocol, match="type"):
            protocol_from_dict({"stages": 2})

    def test_variants_are_hashable_values(self):
        assert len({Valid(stages=2), Valid(stages=2), Valid(stages=3)}) == 2


@pytest.mark.parametrize(
    "max_outstanding, expected",
    [(1, 1), (2, 1), (3, 2), (4, 2), (5, 3), (8, 3), (9, 4)],
)
def test_ticket_width(max_outstanding, expected):
    assert ticket_width(max_outstanding) == expected


class TestSignalShape:
    @staticmethod
    def _names(protocol):
        return [(s.bundle, s.name) for s in signal_shape(protocol)]

    def test_tightly_coupled(self):
        assert self._names(TightlyCoupled()) == [
            ("ctrl", "stall"),
            ("ctrl", "clear"),
            ("ctrl", "stuck"),
        ]
        assert signal_spec(TightlyCoupled(), "ctrl", "clear").is_optional
        assert signal_spec(TightlyCoupled(), "ctrl", "stuck").is_output

    def test_valid(self):
        assert self._names(Valid()) == [
            ("in", "valid"),
            ("out", "valid"),
            ("ctrl", "stall"),
            ("ctrl", "clear"),
        ]

    def test_decoupled_has_empty_ctrl(self):
        shape = signal_shape(Decoupled())
        assert all(s.bundle != "ctrl" for s in shape)
        assert signal_spec(Decoupled(), "in", "ready").direction == PortDirection.OUT
        assert signal_spec(Decoupled(), "out", "ready").direction == PortDirection.IN

    def test_out_of_order_tickets(self):
        protocol = OutOfOrder(max_outstanding=4)
        request = signal_spec(protocol, "in", "request_ticket_number")
        response = signal_spec(protocol, "out", "response_ticket_number")
        for spec in (request, response):
            assert spec.width == 2
            assert spec.direction == PortDirection.OUT
            assert spec.is_required

    def test_clear_is_the_only_optional_signal(self):
        for kind in ProtocolKind:
            for spec in signal_shape(make_protocol(kind)):
                assert spec.is_optional == (spec.name == "clear")


class TestCombinationalArcs:
    def test_tightly_coupled(self):
        assert combinational_arcs(TightlyCoupled()) == [(("ctrl", "stall"), ("ctrl", "stuck"))]

    def test_valid_is_registered(self):
        assert combinational_arcs(Valid(stages=3)) == []

    def test_unbuffered_decoupled(self):
        assert combinational_arcs(Decoupled()) == [
            (("in", "valid"), ("out", "valid")),
            (("out", "ready"), ("in", "ready")),
        ]

    @pytest.mark.parametrize("params", [{"pre_buf": 1}, {"post_buf": 2}])
    def test_buffered_decoupled(self, params):
        assert combinational_arcs(Decoupled(**params)) == []

    def test_out_of_order(self):
        assert len(combinational_arcs(OutOfOrder(max_outstanding=8))) == 2


def test_catalog_info_lists_every_protocol():
    info = catalog_info()
    assert [entry["protocol"] for entry in info] == [k.value for k in ProtocolKind]
    decoupled = next(entry for entry in info if entry["protocol"] == "decoupled")
    assert decoupled["parameters"] == {"preBuf": 0, "postBuf": 0}
    assert {s["name"] for s in decoupled["signals"]} == {"valid", "ready"}


class TestTicketTracker:
    def test_issues_lowest_free_ticket(self):
        tracker = TicketTracker(max_outstanding=3)
        assert [tracker.issue(), tracker.issue()] == [0, 1]
        tracker.retire(0)
        assert tracker.issue() == 0
        assert tracker.outstanding == {0, 1}

    def test_full(self):
        tracker = TicketTracker(max_outstanding=2)
        tracker.issue()
        tracker.issue()
        assert tracker.is_full
        with pytest.raises(InvalidTicket):
            tracker.issue()

    def test_response_must_match_outstanding_ticket(self):
        tracker = TicketTracker(max_outstanding=4)
        tracker.issue()
        with pytest.raises(InvalidTicket, match="not outstanding") as exc_info:
            tracker.retire(3)
        assert exc_info.value.entities == ("3",)

    def test_ticket_cannot_be_retired_twice(self):
        tracker = TicketTracker(max_outstanding=1)
        ticket = tracker.issue()
        tracker.retire(ticket)
        with pytest.raises(InvalidTicket):
            tracker.retire(ticket)

    def test_invalid_capacity(self):
        with pytest.raises(InvalidParameter):
            TicketTracker(max_outstanding=0)
