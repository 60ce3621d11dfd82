from models.schema import FormSchema

TRIGGERS = ["lis_name", "stage", "asset_category", "monitoring_type"]

schema = FormSchema.model_validate({
    "doctype": "Maintenance Checklist",
    "tabs": [{
        "name": "Details",
        "fields": [
            {"name": "posting_datetime", "label": "Posting Datetime", "type": "Datetime"},
            {"name": "lis_name", "label": "LIS Name", "type": "Link", "linkTarget": "Lift Irrigation Scheme",
             "required": True},
            {"name": "stage", "type": "Link", "linkTarget": "Stage No", "required": True,
             "filterMapping": [{"sourceField": "lis_name", "targetField": "lis_name"}]},
            {"name": "asset_category", "type": "Link", "linkTarget": "Asset Category", "required": True},
            {"name": "monitoring_type", "type": "Select", "required": True,
             "options": ["Daily", "Weekly", "Monthly", "Quarterly", "Half-Yearly", "Yearly"]},
            {"name": "checklist_matrix_section", "label": "Checklist", "type": "Section Break"},
            {
                "name": "checklist_data",
                "label": "Checklist",
                "type": "Table",
                "childDoctype": "Maintenance Checklist Item",
                "columns": [
                    {"name": "asset", "type": "Link", "linkTarget": "Asset"},
                    {"name": "parameter", "type": "Link", "linkTarget": "Maintenance Parameter"},
                    {"name": "checked", "type": "Check"},
                    {"name": "description", "type": "Small Text"},
                ],
                "matrix": {
                    "triggerFields": TRIGGERS,
                    "method": "get_matrix_data",
                    "rowDoctype": "Maintenance Checklist Item",
                },
            },
        ],
    }],
})
