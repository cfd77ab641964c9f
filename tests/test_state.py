import json

import pytest

from tasktree.constants import BACKUP_FILENAME, seed_items
from tasktree.errors import ValidationError
from tasktree.state import (
    AppState,
    decode_app_state,
    encode_app_state,
    export_backup,
    import_backup,
    is_valid_app_state,
    parse_app_state,
    repair_children,
)


def _payload(items=None, **overrides):
    payload = {
        "items": seed_items() if items is None else items,
        "hideDoneItems": False,
        "darkMode": True,
    }
    payload.update(overrides)
    return payload


def test_round_trip_through_json_stays_valid():
    state = AppState(items=seed_items(), hide_done_items=True, dark_mode=False)

    decoded = json.loads(json.dumps(state.to_dict()))

    assert is_valid_app_state(decoded) is True
    assert decode_app_state(encode_app_state(state)) == state


def test_root_order_survives_encoding():
    state = AppState(items=seed_items())

    decoded = decode_app_state(encode_app_state(state))

    assert [node["id"] for node in decoded.items] == [
        "0",
        "4",
        "6",
        "11",
        "13",
        "trash",
    ]


@pytest.mark.parametrize(
    "candidate",
    [
        None,
        [],
        {"items": [], "hideDoneItems": False},
        {"items": [], "hideDoneItems": "no", "darkMode": False},
        {"items": {}, "hideDoneItems": False, "darkMode": False},
        _payload(items=[{"value": "x", "children": []}]),
        _payload(items=[{"id": "1", "value": 3, "children": []}]),
        _payload(items=[{"id": "1", "value": "x", "children": [], "done": "yes"}]),
        _payload(items=["not a node"]),
    ],
)
def test_is_valid_app_state_rejects_bad_shapes(candidate):
    assert is_valid_app_state(candidate) is False


def test_missing_children_fails_deep_validation_without_repair():
    payload = _payload(
        items=[{"id": "1", "value": "a", "children": [{"id": "2", "value": "b"}]}]
    )

    assert is_valid_app_state(payload) is False
    assert is_valid_app_state(payload, deep=False) is True


def test_repair_children_fills_every_depth():
    items = [
        {"id": "1", "value": "a", "children": [{"id": "2", "value": "b"}]},
        {"id": "trash", "value": "Trash", "children": None},
    ]

    repaired = repair_children(items)

    assert repaired[0]["children"][0]["children"] == []
    assert repaired[1]["children"] == []
    assert "children" not in items[0]["children"][0]
    assert is_valid_app_state(_payload(items=repaired)) is True


def test_parse_app_state_repairs_then_validates_and_drops_extras():
    payload = _payload(
        items=[{"id": "1", "value": "a"}],
        lastUpdated="2024-01-01T00:00:00+00:00",
    )

    state = parse_app_state(payload)

    assert state == AppState(
        items=[{"id": "1", "value": "a", "children": []}],
        hide_done_items=False,
        dark_mode=True,
    )
    assert "lastUpdated" not in state.to_dict()


def test_parse_app_state_raises_validation_error():
    with pytest.raises(ValidationError) as excinfo:
        parse_app_state({"items": "nope", "hideDoneItems": False, "darkMode": False})

    assert excinfo.value.error.code == "INVALID_STATE"


def test_decode_rejects_invalid_json():
    with pytest.raises(ValidationError) as excinfo:
        decode_app_state(b"{not json")

    assert excinfo.value.error.code == "INVALID_JSON"


def test_encode_refuses_invalid_state():
    state = AppState(items=[{"id": "1", "children": []}])

    with pytest.raises(ValidationError):
        encode_app_state(state)


def test_export_backup_is_pretty_printed(tmp_path):
    state = AppState(items=seed_items(), hide_done_items=True)

    target = export_backup(state, tmp_path)

    assert target == tmp_path / BACKUP_FILENAME
    text = target.read_text(encoding="utf-8")
    assert text.startswith("{\n  ")
    assert json.loads(text) == state.to_dict()


def test_export_backup_includes_last_updated(tmp_path):
    from datetime import datetime, timezone

    stamp = datetime(2024, 2, 21, tzinfo=timezone.utc)

    target = export_backup(AppState(), tmp_path, last_updated=stamp)

    assert json.loads(target.read_text(encoding="utf-8"))["lastUpdated"] == stamp.isoformat()


def test_import_backup_round_trip(tmp_path):
    state = AppState(items=seed_items(), dark_mode=True)

    imported = import_backup(export_backup(state, tmp_path))

    assert imported == state


def test_import_backup_rejects_invalid_files(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"items": []}), encoding="utf-8")

    with pytest.raises(ValidationError):
        import_backup(bad)
    with pytest.raises(ValidationError) as excinfo:
        import_backup(tmp_path / "missing.json")
    assert excinfo.value.error.code == "FILE_READ_FAILED"
