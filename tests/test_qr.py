import logging
import random
from datetime import datetime

import pytest

import farescan.segmented as segmented
from farescan.model import BillRecord
from farescan.pipeline import extract_from_payload
from farescan.qr import (
    FreeTextPayloadStrategy,
    JsonPayloadStrategy,
    KeyValuePayloadStrategy,
    QRPayloadDecoder,
    parse_payload_date,
)
from farescan.segmented import (
    StationDirectory,
    decode_segmented,
    parse_epoch,
    parse_hex_float,
    parse_metro_datetime,
    split_blocks,
)

STATIONS = StationDirectory({"STN1": "Rajiv Chowk", "STN2": "Kashmere Gate"})
SEGMENTED = "{A|B|C|D|20240115T113000|F|G|STN1|STN2}"


def test_segmented_payload_date_and_stations():
    record = QRPayloadDecoder(STATIONS).decode(SEGMENTED)
    assert record.date == datetime(2024, 1, 15, 11, 30, 0)
    assert record.origin == "Rajiv Chowk"
    assert record.destination == "Kashmere Gate"
    assert record.raw_text == SEGMENTED


def test_unknown_station_codes_pass_through_upper_cased(caplog):
    with caplog.at_level(logging.INFO, logger="farescan.segmented"):
        record = QRPayloadDecoder().decode(SEGMENTED.replace("STN1", "stn9"))
    assert record.origin == "STN9"
    assert record.destination == "STN2"
    assert "Unknown metro station code" in caplog.text


def test_station_directory_is_read_only():
    with pytest.raises(TypeError):
        STATIONS.codes["stn3"] = "Dwarka"
    assert STATIONS.decode("stn1") == "Rajiv Chowk"
    assert STATIONS.decode("") is None


def test_hex_float():
    assert parse_hex_float("0x1.8p+3") == 12.0
    assert parse_hex_float("0x1p-1") == 0.5
    assert parse_hex_float("0xAp0") == 10.0
    assert parse_hex_float("1.5") is None
    assert parse_hex_float("0x1p+99999") is None


def test_hex_float_amount_segment():
    record = decode_segmented("{T1|0x1.8p+3|C|D|20240115T113000|F|G|X|Y}")
    assert record.amount == 12.0


def test_decimal_amount_and_epoch_date():
    record = decode_segmented("{QR|25.50|1705318200|D|E}")
    assert record.amount == 25.5
    assert record.date == datetime(2024, 1, 15, 11, 30, 0)
    assert record.ticket_number is None


def test_ticket_fallbacks():
    record = decode_segmented("{A|B|C|D|20240115T113000|MTR2024ABC9|G}")
    assert record.ticket_number == "MTR2024ABC9"

    record = decode_segmented("{A|B|C|D|20240115T113000|G|88120045}")
    assert record.ticket_number == "88120045"


def test_route_block_two_digit_years():
    assert decode_segmented("{<RAJIV CHOWK><KASHMERE GATE><05|06|23>}").date.year == 2023
    assert decode_segmented("{<RAJIV CHOWK><KASHMERE GATE><05|06|75>}").date.year == 1975


def test_route_block_text_wins_and_codes_are_appended():
    stations = StationDirectory({"STN1": "RC", "STN2": "KG"})
    payload = SEGMENTED + "{<Rajiv Chowk><Kashmere Gate><15|01|24>}"
    record = QRPayloadDecoder(stations).decode(payload)
    assert record.origin == "Rajiv Chowk (RC)"
    assert record.destination == "Kashmere Gate (KG)"
    assert record.date == datetime(2024, 1, 15, 11, 30, 0)


def test_route_block_duplicate_station_name_is_not_appended():
    payload = SEGMENTED + "{<Rajiv Chowk><Kashmere Gate><15|01|24>}"
    record = QRPayloadDecoder(STATIONS).decode(payload)
    assert record.origin == "Rajiv Chowk"
    assert record.destination == "Kashmere Gate"


def test_payload_without_bar_never_splits_blocks(monkeypatch):
    def fail(payload):
        raise AssertionError("block splitting should not run")

    monkeypatch.setattr(segmented, "split_blocks", fail)
    assert decode_segmented("{A B C D}") is None
    assert QRPayloadDecoder().decode("{no bars here}").ticket_number is None


def test_split_blocks():
    data, route = split_blocks("{A|B|C|D}{<X><Y><01|02|24>}")
    assert data.segments == ("A", "B", "C", "D")
    assert route.origin == "X"
    assert route.destination == "Y"


def test_metro_datetime():
    assert parse_metro_datetime("20240115T113000") == datetime(2024, 1, 15, 11, 30)
    assert parse_metro_datetime("19240115T1130") == datetime(2024, 1, 15, 11, 30)
    assert parse_metro_datetime("20240115T113000123") == datetime(2024, 1, 15, 11, 30, 0, 123000)
    assert parse_metro_datetime("2024011T113000") is None
    assert parse_metro_datetime("20241399T113000") is None


def test_epoch_window():
    assert parse_epoch("1705318200000") == datetime(2024, 1, 15, 11, 30)
    assert parse_epoch("0000000001") is None


def test_json_payload():
    payload = '{"billNo": "MT123456", "Fare": "Rs. 30", "date": "2024-03-12", "source": "A", "to": "B"}'
    record = QRPayloadDecoder().decode(payload)
    assert record.ticket_number == "MT123456"
    assert record.amount == 30.0
    assert record.date == datetime(2024, 3, 12)
    assert record.origin == "A"
    assert record.destination == "B"


def test_json_payload_epoch_date():
    record = JsonPayloadStrategy().decode('{"bill_no": "TK123456", "date": 1705318200}')
    assert record.ticket_number == "TK123456"
    assert record.date == datetime(2024, 1, 15, 11, 30)


def test_json_array_is_not_a_record():
    assert JsonPayloadStrategy().decode("[1, 2, 3]") is None
    assert JsonPayloadStrategy().decode("not json") is None


def test_key_value_payload():
    record = QRPayloadDecoder().decode("ticket=AB123456;fare=25.5;from=Rajiv Chowk;to=Kashmere Gate")
    assert record.ticket_number == "AB123456"
    assert record.amount == 25.5
    assert record.origin == "Rajiv Chowk"
    assert record.destination == "Kashmere Gate"


def test_key_value_needs_pairs():
    assert KeyValuePayloadStrategy().decode("plain words") is None


def test_free_text_payload():
    payload = "Fare Rs 20 Ticket #XY998877 Date 05/06/2024 from Rajiv Chowk to Kashmere Gate"
    record = FreeTextPayloadStrategy().decode(payload)
    assert record.amount == 20.0
    assert record.ticket_number == "XY998877"
    assert record.date == datetime(2024, 6, 5)
    assert record.origin == "Rajiv Chowk"
    assert record.destination == "Kashmere Gate"


def test_free_text_origin_stops_at_punctuation():
    record = FreeTextPayloadStrategy().decode("from: Rajiv Chowk, to: Kashmere Gate")
    assert record.origin == "Rajiv Chowk"
    assert record.destination == "Kashmere Gate"


def test_free_text_ticket_is_cleaned():
    assert FreeTextPayloadStrategy().decode("Ticket #XY-998-877").ticket_number == "XY998877"
    assert FreeTextPayloadStrategy().decode("Fare 20 ticket: - x").ticket_number is None


def test_mapping_ticket_must_look_like_an_id():
    record = QRPayloadDecoder().decode('{"billNo": "7", "fare": "Rs. 30"}')
    assert record.ticket_number is None
    assert record.amount == 30.0

    record = QRPayloadDecoder().decode("ticket: - fare 20")
    assert record.ticket_number is None
    assert record.amount == 20.0


def test_out_of_range_years_leave_date_empty():
    payload = "{A|B|C|TK12345678|X|25.5|G|S1|S2}{<Rajiv><Kashmere><01|01|99999999999>}"
    record = QRPayloadDecoder().decode(payload)
    assert record.ticket_number == "TK12345678"
    assert record.amount == 25.5
    assert record.origin == "Rajiv (S1)"
    assert record.date is None

    record = QRPayloadDecoder().decode('{"billNo": "MT123456", "fare": "30", "date": "0001-01-01T00:00:00+05:00"}')
    assert record.ticket_number == "MT123456"
    assert record.amount == 30.0
    assert record.date is None


def test_unreadable_payload_gives_empty_record():
    record = QRPayloadDecoder().decode("hello world")
    assert not record.has_values()
    assert record.raw_text == "hello world"
    assert not QRPayloadDecoder().decode(None).has_values()


def test_payload_dates():
    assert parse_payload_date("2024-01-15T11:30:00Z") == datetime(2024, 1, 15, 11, 30)
    assert parse_payload_date("2024-01-15T17:00:00+05:30") == datetime(2024, 1, 15, 11, 30)
    assert parse_payload_date("garbage") is None
    assert parse_payload_date("0001-01-01T00:00:00+05:00") is None


def test_extract_from_payload_never_raises():
    rng = random.Random(99)
    alphabet = "{}<>|:;=,.\"'[]0123456789abcxyzTXp+- \n"
    pieces = ["0x1.8p+", "20240115T", "{\"billNo\":", "|STN1|", "<05|06|", "1705318200", "\\u00"]
    for _ in range(400):
        payload = "".join(
            rng.choice(pieces) if rng.random() < 0.15 else rng.choice(alphabet)
            for _ in range(rng.randint(0, 80))
        )
        assert isinstance(extract_from_payload(payload), BillRecord)


def test_extract_from_payload_guards_unexpected_errors():
    class Broken(JsonPayloadStrategy):
        def decode(self, payload):
            raise RuntimeError("boom")

    record = extract_from_payload("{}", decoder=QRPayloadDecoder(strategies=[Broken()]))
    assert record == BillRecord(raw_text="{}")
