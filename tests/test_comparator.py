from kvdk.comparator import ComparatorTable


def _reverse(a, b):
    return (b > a) - (b < a)


def _forward(a, b):
    return (a > b) - (a < b)


def test_register_then_get():
    table = ComparatorTable()
    assert table.register_comparator("reverse", _reverse) is True
    assert table.get_comparator("reverse") is _reverse


def test_duplicate_registration_is_refused():
    table = ComparatorTable()
    table.register_comparator("cmp", _reverse)
    assert table.register_comparator("cmp", _forward) is False
    assert table.get_comparator("cmp") is _reverse


def test_missing_comparator_is_none():
    table = ComparatorTable()
    assert table.get_comparator("absent") is None


def test_bytes_and_str_names_are_same_entry():
    table = ComparatorTable()
    table.register_comparator(b"default", _forward)
    assert table.get_comparator("default") is _forward
    assert table.register_comparator("default", _reverse) is False


def test_contains_and_len():
    table = ComparatorTable()
    table.register_comparator("a", _forward)
    table.register_comparator("b", _reverse)
    assert "a" in table
    assert b"b" in table
    assert "c" not in table
    assert 42 not in table
    assert len(table) == 2


def test_registered_function_is_usable():
    table = ComparatorTable()
    table.register_comparator("reverse", _reverse)
    cmp = table.get_comparator("reverse")
    assert sorted([b"a", b"c", b"b"], key=lambda k: [-c for c in k]) == [
        b"c",
        b"b",
        b"a",
    ]
    assert cmp(b"a", b"b") > 0
    assert cmp(b"b", b"a") < 0
    assert cmp(b"x", b"x") == 0