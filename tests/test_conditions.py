"""Tests for the depends_on expression language and the dependency evaluator."""

import itertools

import pytest

from models.schema import FormSchema
from schemas import asset_interchange
from services import conditions
from utils import expressions
from utils.errors import ConditionError


def _getter(values):
    return values.get


class TestExpressions:
    @pytest.mark.parametrize(
        "source,values,expected",
        [
            ("status=='Open'", {"status": "Open"}, True),
            ("doc.status == 'Open'", {"status": "Closed"}, False),
            ("status==Open", {"status": "Open"}, True),
            ("status!='Open'", {"status": "Closed"}, True),
            ("eval:doc.qty", {"qty": 0}, False),
            ("eval:doc.qty", {"qty": 3}, True),
            ("a=='x' || b=='y'", {"a": "z", "b": "y"}, True),
            ("a=='x' && b=='y'", {"a": "x", "b": "n"}, False),
            ("!(a=='x') && b", {"a": "q", "b": "set"}, True),
            ("qty == 5", {"qty": "5"}, True),
            ("notes == null", {"notes": ""}, True),
            ("active == true", {"active": True}, True),
            ("a == doc.b", {"a": "same", "b": "same"}, True),
        ],
    )
    def test_evaluate(self, source, values, expected):
        assert expressions.evaluate(source, _getter(values)) is expected

    def test_and_binds_tighter_than_or(self):
        # a || (b && c)
        values = {"a": "1", "b": "", "c": ""}
        assert expressions.evaluate("a || b && c", _getter(values)) is True

    @pytest.mark.parametrize(
        "source",
        ["", "a ==", "a && || b", "(a == 'x'", "frappe.session.user == 'x'", "a; import os", "a = 'x'"],
    )
    def test_malformed_raises(self, source):
        with pytest.raises(ConditionError):
            expressions.parse(source)

    def test_referenced_fields(self):
        assert expressions.referenced_fields("doc.a=='x' || (b && !doc.c)") == {"a", "b", "c"}


class TestCheck:
    def test_object_map_truth_table(self):
        condition = {"kind": "Motor", "asset": True, "qty": 2}
        for kind, asset, qty in itertools.product(["Motor", "Pump"], ["AST-1", ""], [2, 3]):
            values = {"kind": kind, "asset": asset, "qty": qty}
            expected = kind == "Motor" and asset == "AST-1" and qty == 2
            assert conditions.check(condition, values) is expected, values

    def test_object_map_matches_exactly(self):
        assert conditions.check({"qty": 2}, {"qty": 2.0}) is True
        assert conditions.check({"qty": 2}, {"qty": "2"}) is False
        assert conditions.check({"kind": ""}, {"kind": None}) is False
        assert conditions.check({"enabled": 1}, {"enabled": True}) is False
        assert conditions.check({"enabled": False}, {"enabled": False}) is True

    def test_empty_map_is_satisfied(self):
        assert conditions.check({}, {}) is True

    def test_no_condition_uses_default(self):
        assert conditions.check(None, {}, default=False) is False
        assert conditions.check(None, {}) is True

    def test_callback_receives_getter(self):
        assert conditions.check(lambda get: get("qty") > 1, {"qty": 2}) is True

    def test_malformed_expression_fails_closed(self, caplog):
        assert conditions.check("a ==", {"a": "x"}, default=True, field_name="f") is False
        assert "malformed" in caplog.text

    def test_raising_callback_fails_closed(self):
        def broken(get):
            raise KeyError("nope")

        assert conditions.check(broken, {}) is False


class TestEvaluate:
    def _schema(self, **field):
        return FormSchema.model_validate({
            "doctype": "Test",
            "tabs": [{"name": "Main", "fields": [
                {"name": "kind", "type": "Select", "options": ["A", "B"]},
                dict({"name": "target", "type": "Data"}, **field),
            ]}],
        })

    def test_hidden_field_is_never_required(self):
        schema = self._schema(required=True, displayDependsOn={"kind": "A"})
        state = conditions.evaluate(schema.field("target"), {"kind": "B"})
        assert state.visible is False
        assert state.required is False

    def test_required_depends_on(self):
        schema = self._schema(requiredDependsOn="kind=='B'")
        assert conditions.evaluate(schema.field("target"), {"kind": "B"}).required is True
        assert conditions.evaluate(schema.field("target"), {"kind": "A"}).required is False

    def test_read_only_depends_on(self):
        schema = self._schema(readOnlyDependsOn={"kind": "A"})
        assert conditions.evaluate(schema.field("target"), {"kind": "A"}).read_only is True

    def test_broken_condition_hides_field(self):
        schema = self._schema(displayDependsOn="kind ==", required=True)
        state = conditions.evaluate(schema.field("target"), {"kind": "A"})
        assert (state.visible, state.required) == (False, False)


class TestAssetInterchangeSections:
    MOTOR_ONLY = ("motor_section", "pump_asset", "pump_no")
    PUMP_ONLY = ("pump_section", "motor_asset", "motor_no")

    def _visible(self, values):
        states = conditions.evaluate_all(asset_interchange.schema, values)
        return {name for name, state in states.items() if state.visible}

    def test_motor_shows_motor_section_only(self):
        visible = self._visible({"which_asset_to_interchange": "Motor"})
        assert set(self.MOTOR_ONLY) <= visible
        assert not set(self.PUMP_ONLY) & visible

    def test_pump_shows_pump_section_only(self):
        visible = self._visible({"which_asset_to_interchange": "Pump"})
        assert set(self.PUMP_ONLY) <= visible
        assert not set(self.MOTOR_ONLY) & visible

    def test_unset_hides_both(self):
        visible = self._visible({"which_asset_to_interchange": None})
        assert not (set(self.MOTOR_ONLY) | set(self.PUMP_ONLY)) & visible

    def test_picked_asset_reveals_interchange_fields(self):
        values = {"which_asset_to_interchange": "Motor", "pump_asset": ""}
        assert "interchange_motor" not in self._visible(values)
        values["pump_asset"] = "AST-001"
        assert "interchange_motor" in self._visible(values)
