import pytest

from errors import BadRequestError, MissingFieldError
from utils.validators import FieldValidator, ISBNValidator


def test_normalize_isbn_strips_separators():
    assert ISBNValidator.normalize_isbn("978-0-441-17271-9") == "9780441172719"
    assert ISBNValidator.normalize_isbn(" 0-8044-2957-x ") == "080442957X"


def test_normalize_isbn_empty_is_none():
    assert ISBNValidator.normalize_isbn(None) is None
    assert ISBNValidator.normalize_isbn("--") is None


def test_require_lists_every_missing_field():
    with pytest.raises(MissingFieldError) as exc:
        FieldValidator.require({"title": "  ", "author": None}, "title", "author")
    assert exc.value.message == "Missing required field(s): title, author"
    assert exc.value.status_code == 400


def test_require_accepts_present_fields():
    FieldValidator.require({"title": "Dune", "year": 0}, "title", "year")


def test_normalize_email():
    assert FieldValidator.normalize_email("  Alice@X.com ") == "alice@x.com"


@pytest.mark.parametrize("raw, expected", [(1965, 1965), ("1965", 1965), (1965.0, 1965), (None, None), ("", None)])
def test_coerce_year(raw, expected):
    assert FieldValidator.coerce_year(raw) == expected


@pytest.mark.parametrize("raw", ["nineteen", 1965.5, True])
def test_coerce_year_rejects_non_integers(raw):
    with pytest.raises(BadRequestError):
        FieldValidator.coerce_year(raw)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (14, 14),
        ("10", 10),
        ("3 days", 3),
        (2.9, 2),
        (None, 7),
        ("abc", 7),
        (0, 7),
        (-3, 7),
        ("-1", 7),
        (float("nan"), 7),
        (True, 7),
    ],
)
def test_coerce_loan_days(raw, expected):
    assert FieldValidator.coerce_loan_days(raw) == expected


def test_coerce_loan_days_uses_given_default():
    assert FieldValidator.coerce_loan_days("x", default=21) == 21


def test_coerce_loan_days_caps_at_maximum():
    assert FieldValidator.coerce_loan_days(365, maximum=365) == 365
    with pytest.raises(BadRequestError) as exc:
        FieldValidator.coerce_loan_days(10**9, maximum=365)
    assert exc.value.message == "days must be at most 365"
    with pytest.raises(BadRequestError):
        FieldValidator.coerce_loan_days("3000000 days", maximum=365)
