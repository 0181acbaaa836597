import pytest

from walstream.operation import Operation, parse_operation


@pytest.mark.parametrize(
    "name, expected",
    [
        ("BEGIN", Operation.BEGIN),
        ("INSERT", Operation.INSERT),
        ("DELETE", Operation.DELETE),
        ("UPDATE", Operation.UPDATE),
        ("COMMIT", Operation.COMMIT),
    ],
)
def test_parse_known_names(name, expected):
    assert parse_operation(name) is expected


@pytest.mark.parametrize("name", ["insert", "", "TRUNCATE", "COMMI", "UNKNOWN"])
def test_parse_unknown_names(name):
    assert parse_operation(name) is Operation.UNKNOWN


@pytest.mark.parametrize("op", list(Operation))
def test_str_round_trip(op):
    assert parse_operation(str(op)) is op


def test_str_of_parsed_members():
    assert str(parse_operation("INSERT")) == "INSERT"
    assert str(parse_operation("bogus")) == "UNKNOWN"


def test_ordering_follows_declaration():
    names = ["bogus", "BEGIN", "INSERT", "DELETE", "UPDATE", "COMMIT"]
    parsed = [parse_operation(name) for name in names]
    assert parsed == sorted(parsed)
    assert parsed == list(Operation)
    assert parsed[0] is Operation.UNKNOWN
    assert parsed[-1] is Operation.COMMIT