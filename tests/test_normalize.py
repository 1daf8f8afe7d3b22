import random
from datetime import datetime

from farescan.normalize import (
    AmountRule,
    apply_amount_rules,
    build_date,
    build_route_date,
    clean_ticket_number,
    correct_digits,
    normalize_emissions,
    normalize_text,
    parse_day_first,
    parse_number,
)


def test_normalize_text_canonicalizes_breaks_bars_and_spacing():
    raw = "Ticket No ; AB123456\r\nFrom  |  Rajiv Chowk\r\n    continued Fare \u2013 30"
    assert normalize_text(raw) == "Ticket No : AB123456\nFrom Rajiv Chowk\ncontinued Fare - 30"


def test_normalize_text_empty():
    assert normalize_text("") == ""
    assert normalize_text(None) == ""


def test_normalize_text_is_idempotent():
    rng = random.Random(7)
    alphabet = "ab1 \t\n\r|;:-\u2013\u2014\u00a0\u2028"
    for _ in range(300):
        text = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 40)))
        once = normalize_text(text)
        assert normalize_text(once) == once


def test_correct_digits_only_touches_runs_with_digits():
    assert correct_digits("INR 3O.5O") == "INR 30.50"
    assert correct_digits("BOSS 1l") == "BOSS 11"
    assert correct_digits("SOLD") == "SOLD"


def test_parse_number():
    assert parse_number("Rs. 1,250.00") == 1250.0
    assert parse_number("12 . 5") == 12.5
    assert parse_number("3O,5") == 30.5
    assert parse_number("no digits here") is None
    assert parse_number(None) is None


def test_parse_number_skips_currency_abbreviation():
    assert parse_number("Rs. 30") == 30.0
    assert parse_number("Rs.30.50") == 30.5


def test_clean_ticket_number():
    assert clean_ticket_number("DM-2024 0312") == "DM20240312"
    assert clean_ticket_number("AB#12") is None
    assert clean_ticket_number("AB12", min_length=4) == "AB12"
    assert clean_ticket_number(None) is None


def test_amount_rules():
    assert apply_amount_rules(214.0) == 14.0
    assert apply_amount_rules(150) == 15.0
    assert apply_amount_rules(45) == 45


def test_amount_rules_are_swappable():
    halve = AmountRule(name="halve", applies=lambda v: True, correct=lambda v: v / 2)
    assert apply_amount_rules(214.0, rules=()) == 214.0
    assert apply_amount_rules(30.0, rules=(halve,)) == 15.0


def test_build_date_rejects_impossible_dates():
    assert build_date(31, 2, 24) is None
    assert build_date(29, 2, 24) == datetime(2024, 2, 29)
    assert build_date(1, 1, 99999999999) is None


def test_two_digit_years():
    assert build_date(5, 6, 23).year == 2023
    assert build_route_date(5, 6, 23).year == 2023
    assert build_route_date(5, 6, 75).year == 1975


def test_parse_day_first():
    assert parse_day_first("Date: 15/01/24") == datetime(2024, 1, 15)
    assert parse_day_first("travel 1.2.2024") == datetime(2024, 2, 1)
    assert parse_day_first("no date") is None
    assert parse_day_first("12/03/202") is None
    assert parse_day_first("12/03/20245") is None


def test_normalize_emissions():
    assert normalize_emissions("0 59") == "0.59 g CO2"
    assert normalize_emissions("1.02") == "1.02 g CO2"
    assert normalize_emissions("59") == "0.59 g CO2"
    assert normalize_emissions("O,8") == "0.80 g CO2"
    assert normalize_emissions("0") is None
