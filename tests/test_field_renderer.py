import os
import unittest

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from app.schemas.custom_fields import FieldDefinitionOut
from app.services.custom_fields.field_types import (
    FileConstraints,
    NoConstraints,
    NumberConstraints,
    OptionsConstraints,
    PatternConstraints,
    TextConstraints,
)
from app.services.custom_fields.renderer import (
    ControlKind,
    FieldRenderer,
    bound_value,
    coerce_number,
    toggle_option,
)
from app.services.custom_fields.uploads import UploadPhase, UploadState


def _definition(field_id: int, field_type: str = "text", **extra) -> FieldDefinitionOut:
    payload = {
        "id": field_id,
        "section": "tasks",
        "label": f"Field {field_id}",
        "fieldType": field_type,
        "displayOrder": extra.pop("display_order", 0),
    }
    payload.update(extra)
    return FieldDefinitionOut.model_validate(payload)


class FieldRendererDispatchTests(unittest.TestCase):
    def setUp(self):
        self.renderer = FieldRenderer()

    def test_text_field_carries_constraints(self):
        control = self.renderer.render_field(
            _definition(1, "text", validation='{"minLength": 2, "maxLength": 5}', isRequired=True, placeholder="Name"),
            "abc",
        )
        self.assertEqual(control.control, ControlKind.INPUT)
        self.assertEqual(control.input_type, "text")
        self.assertEqual(control.dom_id, "field-1")
        self.assertEqual(control.constraints, TextConstraints(min_length=2, max_length=5))
        self.assertTrue(control.required)
        self.assertEqual(control.placeholder, "Name")
        self.assertEqual(control.value, "abc")

    def test_malformed_validation_renders_unconstrained_text(self):
        control = self.renderer.render_field(_definition(1, "text", validation="{"), "")
        self.assertEqual(control.control, ControlKind.INPUT)
        self.assertEqual(control.input_type, "text")
        self.assertEqual(control.constraints, TextConstraints())

    def test_input_types_per_field_type(self):
        expected = {
            "number": "number",
            "email": "email",
            "phone": "tel",
            "date": "date",
            "url": "url",
            "file": "file",
        }
        for field_type, input_type in expected.items():
            with self.subTest(field_type=field_type):
                control = self.renderer.render_field(_definition(1, field_type), "")
                self.assertEqual(control.input_type, input_type)

    def test_textarea_control(self):
        control = self.renderer.render_field(_definition(1, "textarea"), "long text")
        self.assertEqual(control.control, ControlKind.TEXTAREA)
        self.assertEqual(control.constraints.rows, 4)

    def test_number_constraints(self):
        control = self.renderer.render_field(_definition(1, "number", validation='{"min": 1, "max": 9, "step": 0.5}'), 3)
        self.assertEqual(control.constraints, NumberConstraints(min=1.0, max=9.0, step=0.5))
        self.assertEqual(control.value, 3)

    def test_phone_pattern_default(self):
        control = self.renderer.render_field(_definition(1, "phone"), "")
        self.assertEqual(control.constraints, PatternConstraints(pattern="[0-9]{10}"))

    def test_select_empty_options_get_positional_keys(self):
        control = self.renderer.render_field(_definition(1, "select", validation='{"options": ["A", "", "B", ""]}'), "B")
        self.assertEqual(control.control, ControlKind.SELECT)
        self.assertEqual([choice.key for choice in control.choices], ["A", "option-1", "B", "option-3"])
        self.assertEqual(len({choice.key for choice in control.choices}), 4)
        self.assertEqual([choice.selected for choice in control.choices], [False, False, True, False])

    def test_multiselect_marks_selected_options(self):
        control = self.renderer.render_field(
            _definition(7, "multiselect", validation='{"options": ["A", "B", "C"]}'),
            ["C", "A"],
        )
        self.assertEqual(control.control, ControlKind.CHECKBOX_GROUP)
        self.assertEqual([choice.key for choice in control.choices], ["7-0", "7-1", "7-2"])
        self.assertEqual([choice.selected for choice in control.choices], [True, False, True])
        self.assertEqual(control.value, ["C", "A"])

    def test_multiselect_non_list_value_becomes_empty_selection(self):
        control = self.renderer.render_field(_definition(7, "multiselect", options=["A"]), "A")
        self.assertEqual(control.value, [])

    def test_radio_uses_definition_options_when_validation_has_none(self):
        control = self.renderer.render_field(_definition(2, "radio", options=["Yes", "No"]), "No")
        self.assertEqual(control.control, ControlKind.RADIO_GROUP)
        self.assertEqual(control.constraints, OptionsConstraints(options=("Yes", "No")))
        self.assertEqual([choice.selected for choice in control.choices], [False, True])

    def test_checkbox_coerces_to_bool(self):
        self.assertIs(self.renderer.render_field(_definition(1, "checkbox"), "").value, False)
        self.assertIs(self.renderer.render_field(_definition(1, "checkbox"), "yes").value, True)

    def test_file_field_exposes_accept_and_upload_state(self):
        state = UploadState(phase=UploadPhase.SUCCEEDED, url="/s3/a.pdf", token=1)
        control = self.renderer.render_field(_definition(1, "file", validation='{"accept": ".pdf"}'), "", state)
        self.assertEqual(control.control, ControlKind.FILE)
        self.assertEqual(control.constraints, FileConstraints(accept=".pdf"))
        self.assertIs(control.upload, state)

    def test_unrecognized_type_falls_back_to_text(self):
        control = self.renderer.render_field(_definition(1, "signature", validation='{"min": 3}'), "x")
        self.assertEqual(control.control, ControlKind.INPUT)
        self.assertEqual(control.input_type, "text")
        self.assertEqual(control.field_type, "text")
        self.assertEqual(control.constraints, NoConstraints())

    def test_as_dict_is_plain_data(self):
        payload = self.renderer.render_field(_definition(1, "select", options=["A"]), "A").as_dict()
        self.assertEqual(payload["control"], "select")
        self.assertEqual(payload["constraints"], {"options": ("A",)})
        self.assertEqual(payload["choices"][0]["selected"], True)
        self.assertIsNone(payload["upload"])


class FieldRendererOrderingTests(unittest.TestCase):
    def setUp(self):
        self.renderer = FieldRenderer()

    def test_duplicate_display_order_breaks_ties_by_id(self):
        definitions = [
            _definition(9, display_order=1),
            _definition(3, display_order=1),
            _definition(5, display_order=0),
            _definition(4, display_order=1),
        ]
        first = [control.field_id for control in self.renderer.render_fields(definitions, {})]
        second = [control.field_id for control in self.renderer.render_fields(list(reversed(definitions)), {})]
        self.assertEqual(first, [5, 3, 4, 9])
        self.assertEqual(first, second)

    def test_inactive_definitions_are_never_rendered(self):
        definitions = [_definition(1), _definition(2, isActive=False)]
        controls = self.renderer.render_fields(definitions, {2: "stored value"})
        self.assertEqual([control.field_id for control in controls], [1])

    def test_select_and_checkbox_scenario(self):
        definitions = [
            _definition(1, "select", validation='{"options": ["A", "B"]}', display_order=2),
            _definition(2, "checkbox", display_order=1),
        ]
        controls = self.renderer.render_fields(definitions, {})
        self.assertEqual([control.field_id for control in controls], [2, 1])
        self.assertIs(controls[0].value, False)

    def test_sibling_fields_survive_broken_validation(self):
        definitions = [
            _definition(1, "number", validation="{", display_order=1),
            _definition(2, "select", validation="not json", options=["A"], display_order=2),
            _definition(3, "text", validation='{"maxLength": 4}', display_order=3),
        ]
        controls = self.renderer.render_fields(definitions, {})
        self.assertEqual(len(controls), 3)
        self.assertEqual(controls[2].constraints.max_length, 4)


class ValueHelpersTests(unittest.TestCase):
    def test_bound_value_prefers_host_value_then_default(self):
        definition = _definition(1, defaultValue="fallback")
        self.assertEqual(bound_value(definition, {1: "typed"}), "typed")
        self.assertEqual(bound_value(definition, {1: ""}), "fallback")
        self.assertEqual(bound_value(definition, {}), "fallback")
        self.assertEqual(bound_value(_definition(2), {}), "")
        self.assertEqual(bound_value(_definition(3, "number"), {3: 0}), 0)
        self.assertIs(bound_value(_definition(4, "checkbox", defaultValue="true"), {4: False}), False)

    def test_non_numeric_input_collapses_to_zero(self):
        for raw in ("abc", "", None, "nan", "inf", "-inf", True):
            with self.subTest(raw=raw):
                self.assertEqual(coerce_number(raw), 0)

    def test_numeric_input(self):
        self.assertEqual(coerce_number("42"), 42)
        self.assertIsInstance(coerce_number("42"), int)
        self.assertEqual(coerce_number(" 2.5 "), 2.5)
        self.assertEqual(coerce_number(-3), -3)

    def test_toggle_twice_restores_selection_and_order(self):
        original = ["B", "A", "D"]
        once = toggle_option(original, "C")
        self.assertEqual(once, ["B", "A", "D", "C"])
        self.assertEqual(toggle_option(once, "C"), original)

        removed = toggle_option(original, "A")
        self.assertEqual(removed, ["B", "D"])
        self.assertEqual(sorted(toggle_option(removed, "A")), sorted(original))

    def test_toggle_does_not_mutate_input(self):
        original = ["A"]
        toggle_option(original, "B")
        self.assertEqual(original, ["A"])

    def test_toggle_on_missing_value_starts_new_selection(self):
        self.assertEqual(toggle_option(None, "A"), ["A"])
        self.assertEqual(toggle_option("A", "A"), ["A"])
