import itertools

import pytest

from informix_cdc.cdc.changes import (
    MISSING,
    AssembledChange,
    ChangeAssembler,
    Operation,
    RawChange,
)
from informix_cdc.cdc.errors import MalformedChangeError, UnknownTableError
from informix_cdc.cdc.lsn import Lsn
from informix_cdc.cdc.schema import RowColumnOrder

COLUMNS = ("id", "name", "age", "gender", "address")
ROW = {
    "id": "2",
    "name": "cc",
    "age": "18",
    "gender": "male",
    "address": "ff:ff:ff:ff:ff:ff",
}


class FakeColumnOrder:
    def __init__(self, orders):
        self._orders = orders
        self.lookups: list[str] = []

    def canonical_order(self, table):
        self.lookups.append(table)
        try:
            return self._orders[table]
        except KeyError:
            raise UnknownTableError(table) from None


@pytest.fixture()
def assembler() -> ChangeAssembler:
    return ChangeAssembler(FakeColumnOrder({"test_column_order": COLUMNS}))


@pytest.mark.unit
def test_insert_is_reordered_to_declaration_order():
    registry = RowColumnOrder()
    registry.register("t", ["id", "name"])
    raw = RawChange(
        table="t",
        operation=Operation.INSERT,
        lsn=Lsn.of(100),
        after={"name": "cc", "id": "1"},
    )

    change = ChangeAssembler(registry).assemble(raw)

    assert change.before is None
    assert change.after == ("1", "cc")
    assert list(change.after_row().items()) == [("id", "1"), ("name", "cc")]
    assert change.lsn == Lsn.of(100)
    assert change.columns == ("id", "name")


@pytest.mark.unit
def test_any_input_order_yields_declaration_order(assembler):
    for permutation in itertools.permutations(COLUMNS):
        after = {name: ROW[name] for name in permutation}
        change = assembler.assemble(
            RawChange("test_column_order", Operation.INSERT, Lsn.of(1), after=after)
        )
        assert len(change.after) == len(COLUMNS)
        assert change.after == tuple(ROW[name] for name in COLUMNS)


@pytest.mark.unit
def test_update_keeps_unchanged_fields_equal(assembler):
    before = {"id": "2", "address": "ff:ff:ff:ff:ff:ff", "name": "cc", "age": "18", "gender": "male"}
    after = dict(before, address="00:00:00:00:00:00")

    change = assembler.assemble(
        RawChange("test_column_order", "update", Lsn.of(200), before=before, after=after)
    )

    assert change.operation is Operation.UPDATE
    assert change.is_complete()
    before_row, after_row = change.before_row(), change.after_row()
    assert list(before_row) == list(COLUMNS)
    assert list(after_row) == list(COLUMNS)
    for name in COLUMNS:
        if name == "address":
            assert before_row[name] != after_row[name]
        else:
            assert before_row[name] == after_row[name]


@pytest.mark.unit
def test_delete_has_before_only(assembler):
    change = assembler.assemble(
        RawChange("test_column_order", Operation.DELETE, Lsn.of(300), before=dict(ROW))
    )
    assert change.after is None
    assert change.before == tuple(ROW[name] for name in COLUMNS)


@pytest.mark.unit
def test_delete_with_after_image_is_malformed(assembler):
    with pytest.raises(MalformedChangeError):
        assembler.assemble(
            RawChange(
                "test_column_order",
                Operation.DELETE,
                Lsn.of(300),
                before=dict(ROW),
                after=dict(ROW),
            )
        )


@pytest.mark.unit
def test_insert_with_before_image_is_malformed(assembler):
    with pytest.raises(MalformedChangeError):
        assembler.assemble(
            RawChange(
                "test_column_order",
                Operation.INSERT,
                Lsn.of(1),
                before=dict(ROW),
                after=dict(ROW),
            )
        )


@pytest.mark.unit
@pytest.mark.parametrize(
    "operation, before, after",
    [
        (Operation.INSERT, None, None),
        (Operation.DELETE, None, None),
        (Operation.UPDATE, None, dict(ROW)),
        (Operation.UPDATE, dict(ROW), None),
    ],
)
def test_missing_required_image_is_malformed(assembler, operation, before, after):
    with pytest.raises(MalformedChangeError):
        assembler.assemble(
            RawChange("test_column_order", operation, Lsn.of(1), before=before, after=after)
        )


@pytest.mark.unit
def test_omitted_columns_use_missing_marker_not_none(assembler):
    change = assembler.assemble(
        RawChange(
            "test_column_order",
            Operation.UPDATE,
            Lsn.of(5),
            before={"id": "2", "name": None},
            after={"id": "2", "name": "dd"},
        )
    )
    before_row = change.before_row()
    assert before_row["name"] is None
    assert before_row["age"] is MISSING
    assert before_row["age"] is not None
    assert len(change.before) == len(COLUMNS)
    assert not change.is_complete()


@pytest.mark.unit
def test_undeclared_column_is_malformed(assembler):
    with pytest.raises(MalformedChangeError):
        assembler.assemble(
            RawChange(
                "test_column_order",
                Operation.INSERT,
                Lsn.of(1),
                after=dict(ROW, shoe_size="44"),
            )
        )


@pytest.mark.unit
def test_unknown_table_propagates():
    lookup = FakeColumnOrder({})
    with pytest.raises(UnknownTableError):
        ChangeAssembler(lookup).assemble(
            RawChange("nope", Operation.INSERT, Lsn.of(1), after={"id": 1})
        )
    assert lookup.lookups == ["nope"]


@pytest.mark.unit
@pytest.mark.parametrize(
    "value, expected",
    [
        ("c", Operation.INSERT),
        ("u", Operation.UPDATE),
        ("d", Operation.DELETE),
        ("INSERT", Operation.INSERT),
        (Operation.DELETE, Operation.DELETE),
    ],
)
def test_operation_parse(value, expected):
    assert Operation.parse(value) is expected


@pytest.mark.unit
def test_operation_parse_rejects_unknown_values():
    with pytest.raises(MalformedChangeError):
        Operation.parse("truncate")


@pytest.mark.unit
def test_assembled_change_is_immutable(assembler):
    change = assembler.assemble(
        RawChange("test_column_order", Operation.INSERT, Lsn.of(1), after=dict(ROW))
    )
    assert isinstance(change, AssembledChange)
    with pytest.raises(AttributeError):
        change.lsn = Lsn.of(2)  # type: ignore[misc]
