import json

import pytest

from informix_cdc.cdc.changes import JsonChangeDecoder, Operation
from informix_cdc.cdc.errors import InvalidFormatError, MalformedChangeError
from informix_cdc.cdc.lsn import Lsn


@pytest.mark.unit
def test_decodes_single_entry():
    payload = json.dumps(
        {
            "table": "inventory.customers",
            "op": "c",
            "lsn": "30064771072",
            "after": {"name": "cc", "id": 1},
        }
    )

    [change] = JsonChangeDecoder().decode(payload)

    assert change.table == "inventory.customers"
    assert change.operation is Operation.INSERT
    assert change.lsn == Lsn.from_parts(7, 0)
    assert change.before is None
    assert change.after == {"name": "cc", "id": 1}


@pytest.mark.unit
def test_decodes_list_and_schema_name_pairs():
    payload = json.dumps(
        [
            {"schema": "inventory", "name": "t", "kind": "update", "lsn": 10,
             "before": {"id": 1}, "after": {"id": 1}},
            {"table": "t", "op": "delete", "lsn": 11, "before": {"id": 1}},
        ]
    ).encode("utf-8")

    changes = JsonChangeDecoder().decode(payload)

    assert [c.table for c in changes] == ["inventory.t", "t"]
    assert [c.operation for c in changes] == [Operation.UPDATE, Operation.DELETE]
    assert [c.lsn for c in changes] == [Lsn.of(10), Lsn.of(11)]


@pytest.mark.unit
@pytest.mark.parametrize(
    "payload",
    [
        '{"table": "t", "op": "c", "after": {"id": 1}}',
        '{"table": "t", "op": "c", "lsn": null, "after": {"id": 1}}',
    ],
)
def test_entry_without_lsn_is_malformed(payload):
    with pytest.raises(MalformedChangeError):
        JsonChangeDecoder().decode(payload)


@pytest.mark.unit
def test_explicit_null_text_lsn_is_kept():
    [change] = JsonChangeDecoder().decode('{"table": "t", "op": "c", "lsn": "NULL", "after": {}}')
    assert change.lsn == Lsn.NULL


@pytest.mark.unit
@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        "[1, 2]",
        '{"op": "c", "lsn": 1, "after": {}}',
        '{"table": "t", "lsn": 1, "after": {}}',
        '{"table": "t", "op": "c", "lsn": 1, "after": [1, 2]}',
        '{"table": "t", "op": "merge", "lsn": 1, "after": {}}',
    ],
)
def test_malformed_payloads_raise(payload):
    with pytest.raises(MalformedChangeError):
        JsonChangeDecoder().decode(payload)


@pytest.mark.unit
def test_bad_lsn_text_raises_invalid_format():
    with pytest.raises(InvalidFormatError):
        JsonChangeDecoder().decode('{"table": "t", "op": "c", "lsn": "abc", "after": {}}')
