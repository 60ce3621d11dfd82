from models.schema import FormSchema
from services.hooks import clear_fields, clear_fields_unless

MOTOR_FIELDS = ("pump_asset", "interchange_motor")
PUMP_FIELDS = ("motor_asset", "interchange_pump")

ASSET_FILTERS = [
    {"sourceField": "lis_name", "targetField": "custom_lis_name"},
    {"sourceField": "stage", "targetField": "custom_stage_no"},
]

MOTOR = {"which_asset_to_interchange": "Motor"}
MOTOR_PICKED = {"which_asset_to_interchange": "Motor", "pump_asset": True}
PUMP = {"which_asset_to_interchange": "Pump"}
PUMP_PICKED = {"which_asset_to_interchange": "Pump", "motor_asset": True}


def _fetch(source: str, target_field: str) -> dict:
    return {"sourceField": source, "targetDoctype": "Asset", "targetField": target_field}


schema = FormSchema.model_validate({
    "doctype": "Asset Interchange",
    "tabs": [{
        "name": "Details",
        "fields": [
            {"name": "lis_name", "label": "LIS Name", "type": "Link", "linkTarget": "Lift Irrigation Scheme",
             "required": True,
             # Stages belong to one scheme
             "onChange": [clear_fields("stage")]},
            {"name": "stage", "label": "Stage", "type": "Link", "linkTarget": "Stage No",
             "filterMapping": [{"sourceField": "lis_name", "targetField": "lis_name"}]},
            {"name": "posting_date", "type": "Date"},
            {
                "name": "which_asset_to_interchange",
                "label": "Which Asset to Interchange",
                "type": "Select",
                "options": ["Motor", "Pump"],
                "required": True,
                # Switching sides drops whatever was picked on the other side
                "onChange": [
                    clear_fields_unless("Motor", *MOTOR_FIELDS),
                    clear_fields_unless("Pump", *PUMP_FIELDS),
                ],
            },

            {"name": "motor_section", "label": "Motor Interchange", "type": "Section Break",
             "displayDependsOn": MOTOR},
            {"name": "pump_asset", "type": "Link", "linkTarget": "Asset", "displayDependsOn": MOTOR,
             "requiredDependsOn": MOTOR, "filterMapping": ASSET_FILTERS},
            {"name": "pump_no", "type": "Read Only", "displayDependsOn": MOTOR,
             "fetchFrom": _fetch("pump_asset", "custom_asset_no")},
            {"name": "current_motor_asset", "type": "Read Only", "displayDependsOn": MOTOR_PICKED,
             "fetchFrom": _fetch("pump_asset", "custom_current_linked_asset")},
            {"name": "current_motor_no", "type": "Data", "displayDependsOn": MOTOR_PICKED, "readOnly": True,
             "fetchFrom": _fetch("pump_asset", "custom_linked_asset_no")},
            {"name": "interchange_motor", "type": "Link", "linkTarget": "Asset",
             "displayDependsOn": MOTOR_PICKED, "requiredDependsOn": MOTOR_PICKED},
            {"name": "interchange_motor_no", "type": "Data", "displayDependsOn": MOTOR_PICKED, "readOnly": True,
             "fetchFrom": _fetch("interchange_motor", "custom_asset_no")},

            {"name": "pump_section", "label": "Pump Interchange", "type": "Section Break",
             "displayDependsOn": PUMP},
            {"name": "motor_asset", "type": "Link", "linkTarget": "Asset", "displayDependsOn": PUMP,
             "requiredDependsOn": PUMP, "filterMapping": ASSET_FILTERS},
            {"name": "motor_no", "type": "Read Only", "displayDependsOn": PUMP,
             "fetchFrom": _fetch("motor_asset", "custom_asset_no")},
            {"name": "current_pump_asset", "type": "Read Only", "displayDependsOn": PUMP_PICKED,
             "fetchFrom": _fetch("motor_asset", "custom_current_linked_asset")},
            {"name": "current_pump_no", "type": "Data", "displayDependsOn": PUMP_PICKED, "readOnly": True,
             "fetchFrom": _fetch("motor_asset", "custom_linked_asset_no")},
            {"name": "interchange_pump", "type": "Link", "linkTarget": "Asset",
             "displayDependsOn": PUMP_PICKED, "requiredDependsOn": PUMP_PICKED},
            {"name": "interchange_pump_no", "type": "Data", "displayDependsOn": PUMP_PICKED, "readOnly": True,
             "fetchFrom": _fetch("interchange_pump", "custom_asset_no")},
        ],
    }],
})
