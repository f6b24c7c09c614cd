from datetime import date

import pytest

from esign_desk.integrations.esign.types import TemplateComponent, TemplateInfo
from esign_desk.schemas.form_field import FieldFiller, FieldType, FormFieldConfig
from esign_desk.services.form_field_service import (
    build_contract_form_fields,
    build_form_fields,
    extract_template_fields,
    parse_product_form_fields,
)


def _config(name: str, field_type: str = "text", filler: str = "INITIATOR") -> dict:
    return {"name": name, "label": name.title(), "type": field_type, "filler": filler, "required": False}


class TestParseProductFormFields:
    def test_structured_shape(self):
        parsed = parse_product_form_fields(
            {
                "initiatorFields": [_config("rent", "number"), _config("start", "date")],
                "signerFields": [_config("bank", filler="SIGNER")],
            }
        )

        assert [field.name for field in parsed.initiator_fields] == ["rent", "start"]
        assert [field.name for field in parsed.signer_fields] == ["bank"]
        assert parsed.initiator_fields[0].type is FieldType.NUMBER

    def test_legacy_flat_list_is_split_by_filler(self):
        parsed = parse_product_form_fields([_config("rent"), _config("bank", filler="SIGNER")])

        assert [field.name for field in parsed.initiator_fields] == ["rent"]
        assert [field.name for field in parsed.signer_fields] == ["bank"]

    def test_camel_case_keys(self):
        parsed = parse_product_form_fields(
            {"initiatorFields": [{**_config("rent"), "defaultValue": "1000", "componentId": "c1"}]}
        )

        assert parsed.initiator_fields[0].default_value == "1000"
        assert parsed.initiator_fields[0].component_id == "c1"

    @pytest.mark.parametrize("raw", [None, [], {}, "rent", [{"label": "no name"}]])
    def test_unusable_values(self, raw):
        assert parse_product_form_fields(raw) is None


class TestBuildFormFields:
    def test_only_configured_initiator_fields_are_sent(self):
        configs = [FormFieldConfig(name="rent", label="Rent", type=FieldType.NUMBER)]

        fields = build_form_fields({"rent": 1200, "unrelated": "x"}, configs)

        assert [(field.component_name, field.component_value) for field in fields] == [("rent", "1200")]

    def test_dates_are_formatted(self):
        configs = [FormFieldConfig(name="start", label="Start", type=FieldType.DATE)]

        assert build_form_fields({"start": date(2024, 3, 1)}, configs)[0].component_value == "2024-03-01"
        assert build_form_fields({"start": "2024-03-01"}, configs)[0].component_value == "2024-03-01"

    @pytest.mark.parametrize(
        "stored, expected",
        [
            ("2024-03-01T00:00:00.000Z", "2024-03-01"),
            ("2024-03-01T09:30:00+08:00", "2024-03-01"),
            ("2024-03-01 18:00:00", "2024-03-01"),
            ("next monday", "next monday"),
        ],
    )
    def test_stored_date_strings_are_formatted(self, stored, expected):
        configs = [FormFieldConfig(name="start", label="Start", type=FieldType.DATE)]

        assert build_form_fields({"start": stored}, configs)[0].component_value == expected

    def test_iso_string_in_text_field_is_left_alone(self):
        configs = [FormFieldConfig(name="note", label="Note")]

        assert build_form_fields({"note": "2024-03-01T00:00:00Z"}, configs)[0].component_value == "2024-03-01T00:00:00Z"

    def test_empty_values_are_skipped(self):
        configs = [FormFieldConfig(name=name, label=name) for name in ("a", "b", "c", "d")]

        fields = build_form_fields({"a": "", "b": None, "d": 0}, configs)

        assert [(field.component_name, field.component_value) for field in fields] == [("d", "0")]

    def test_without_config_every_non_empty_value_is_sent(self):
        fields = build_form_fields({"a": "x", "b": "", "c": 3}, None)

        assert [(field.component_name, field.component_value) for field in fields] == [("a", "x"), ("c", "3")]

    def test_no_form_data(self):
        assert build_form_fields(None, [FormFieldConfig(name="a", label="a")]) == []

    def test_signer_fields_are_never_sent(self):
        fields = build_contract_form_fields(
            {"rent": 900, "bank": "6222"},
            {"initiatorFields": [_config("rent", "number")], "signerFields": [_config("bank", filler="SIGNER")]},
        )

        assert [field.component_name for field in fields] == ["rent"]

    def test_signer_only_config_sends_nothing(self):
        fields = build_contract_form_fields(
            {"bank_account": "6222-0000", "note": "x"},
            {"initiatorFields": [], "signerFields": [_config("bank_account", filler="SIGNER")]},
        )

        assert fields == []

    def test_empty_initiator_list_sends_nothing(self):
        assert build_form_fields({"a": "x"}, []) == []

    def test_unconfigured_product_sends_everything(self):
        fields = build_contract_form_fields({"a": "x", "b": 2}, None)

        assert [field.component_name for field in fields] == ["a", "b"]

    @pytest.mark.parametrize(
        "broken_config",
        [
            {"initiatorFields": [{"label": "missing name"}], "signerFields": [{"name": "bank_account"}]},
            [{"label": "missing name"}, {"name": "bank_account", "label": "Bank", "filler": "SIGNER"}],
        ],
    )
    def test_invalid_config_still_withholds_signer_fields(self, broken_config):
        fields = build_contract_form_fields({"bank_account": "6222-0000", "note": "x"}, broken_config)

        assert [field.component_name for field in fields] == ["note"]


class TestExtractTemplateFields:
    def test_fillable_components_become_initiator_fields(self):
        template = TemplateInfo(
            template_id="tpl-001",
            template_name="Lease",
            components=[
                TemplateComponent("c1", "tenant_name", "TEXT", True),
                TemplateComponent("c2", "notes", "MULTI_LINE_TEXT"),
                TemplateComponent("c3", "rent", "NUMBER", True, "1000"),
                TemplateComponent("c4", "start", "DATE"),
                TemplateComponent("c5", "plan", "SELECT", component_extra='{"Options": [{"Content": "Basic"}, "Premium"]}'),
                TemplateComponent("c6", "tenant_sign", "SIGN_SIGNATURE"),
                TemplateComponent("c7", "seal", "SIGN_SEAL"),
            ],
        )

        fields = extract_template_fields(template)

        assert [field.name for field in fields] == ["tenant_name", "notes", "rent", "start", "plan"]
        assert [field.type for field in fields] == [
            FieldType.TEXT,
            FieldType.TEXT,
            FieldType.NUMBER,
            FieldType.DATE,
            FieldType.SELECT,
        ]
        assert all(field.filler is FieldFiller.INITIATOR for field in fields)
        assert fields[0].required is True
        assert fields[2].default_value == "1000"
        assert fields[2].component_id == "c3"
        assert [(option.label, option.value) for option in fields[4].options] == [("Basic", "Basic"), ("Premium", "Premium")]

    def test_malformed_select_extra_yields_no_options(self):
        template = TemplateInfo("tpl-001", "Lease", [TemplateComponent("c1", "plan", "SELECT", component_extra="{oops")])

        assert extract_template_fields(template)[0].options is None
