from models.schema import FormSchema
from services.validation import to_number


def _number(value) -> float:
    try:
        return to_number(value)
    except (TypeError, ValueError):
        return 0


def default_schedule_dates(form, value):
    """Rows without their own Required By date follow the header's."""
    rows = form.get_value("items") or []
    if not value or not rows:
        return
    updated = [dict(row, schedule_date=row.get("schedule_date") or value) for row in rows]
    form.set_value("items", updated, mark_dirty=False)


def compute_amounts(form, rows):
    updated = [dict(row, amount=round(_number(row.get("qty")) * _number(row.get("rate")), 2)) for row in rows or []]
    form.set_value("items", updated, mark_dirty=False)


LIS_FILTER = [{"sourceField": "custom_lis_name", "targetField": "lis_name"}]

schema = FormSchema.model_validate({
    "doctype": "Material Request",
    "autonamePlaceholder": "Will be auto-generated",
    "tabs": [
        {
            "name": "Details",
            "fields": [
                {"name": "naming_series", "label": "Series", "type": "Data",
                 "defaultValue": "Will be auto-generated", "readOnly": True},
                {"name": "material_request_type", "label": "Purpose", "type": "Select", "required": True,
                 "options": ["Purchase", "Material Transfer", "Material Issue", "Manufacture", "Customer Provided"]},
                {"name": "transaction_date", "type": "Date", "required": True},
                {"name": "schedule_date", "label": "Required By", "type": "Date",
                 "onChange": [default_schedule_dates]},
                {"name": "custom_prepared_by", "label": "Prepared By", "type": "Link", "linkTarget": "Employee"},
                {"name": "custom_designation", "label": "Designation", "type": "Data", "readOnly": True,
                 "fetchFrom": {"sourceField": "custom_prepared_by", "targetDoctype": "Employee",
                               "targetField": "designation"}},

                {"name": "lis_section", "label": "LIS Details", "type": "Section Break"},
                {"name": "custom_lis_name", "label": "LIS Name", "type": "Link",
                 "linkTarget": "Lift Irrigation Scheme"},
                {"name": "custom_stage", "label": "Stage", "type": "Link", "linkTarget": "Stage No",
                 "filterMapping": LIS_FILTER},
                {"name": "custom_asset_category", "label": "Asset Category", "type": "Link",
                 "linkTarget": "Asset Category"},
                {
                    "name": "custom_assets",
                    "label": "Assets",
                    "type": "Table MultiSelect",
                    "childDoctype": "Asset Table Multiselect",
                    "columns": [
                        {"name": "asset", "type": "Link", "linkTarget": "Asset", "required": True,
                         "filterMapping": [
                             {"sourceField": "custom_asset_category", "targetField": "asset_category"},
                             {"sourceField": "custom_lis_name", "targetField": "custom_lis_name"},
                             {"sourceField": "custom_stage", "targetField": "custom_stage_no"},
                         ]},
                        {"name": "needs_repair", "type": "Check"},
                    ],
                },
                {
                    "name": "custom_repair_assets",
                    "label": "Assets Sent for Repair",
                    "type": "Table MultiSelect",
                    "childDoctype": "Asset Table Multiselect",
                    "readOnly": True,
                    "columns": [{"name": "asset", "type": "Link", "linkTarget": "Asset"}],
                },

                {"name": "items_section", "label": "Items", "type": "Section Break"},
                {"name": "set_warehouse", "label": "Target Warehouse", "type": "Link", "linkTarget": "Warehouse"},
                {"name": "set_from_warehouse", "label": "Source Warehouse", "type": "Link",
                 "linkTarget": "Warehouse",
                 "displayDependsOn": "material_request_type == 'Material Transfer'"},
                {
                    "name": "items",
                    "type": "Table",
                    "required": True,
                    "childDoctype": "Material Request Item",
                    "onChange": [compute_amounts],
                    "columns": [
                        {"name": "item_code", "type": "Link", "linkTarget": "Item", "required": True},
                        {"name": "item_name", "type": "Data", "readOnly": True},
                        {"name": "schedule_date", "label": "Required By", "type": "Date", "required": True},
                        {"name": "qty", "label": "Quantity Required", "type": "Float", "required": True,
                         "min": 0},
                        {"name": "uom", "label": "UOM", "type": "Link", "linkTarget": "UOM"},
                        {"name": "warehouse", "label": "Target Warehouse", "type": "Link",
                         "linkTarget": "Warehouse"},
                        {"name": "rate", "type": "Currency"},
                        {"name": "amount", "type": "Currency", "readOnly": True},
                        {"name": "custom_purpose_of_use", "label": "Purpose of Use", "type": "Select",
                         "options": ["Repair", "Overhaul", "Consumable"], "defaultValue": "Repair"},
                        {"name": "custom_remarks", "label": "Remarks", "type": "Text"},
                    ],
                },
            ],
        },
        {
            "name": "Terms",
            "fields": [
                {"name": "tc_name", "label": "Terms", "type": "Link", "linkTarget": "Terms and Conditions"},
                {"name": "terms", "label": "Terms and Conditions Content", "type": "Markdown Editor"},
            ],
        },
    ],
    "syncRules": [{
        "source": "custom_assets",
        "target": "custom_repair_assets",
        "predicate": {"needs_repair": True},
        "columns": ["asset"],
        "rowDoctype": "Asset Table Multiselect",
    }],
})
