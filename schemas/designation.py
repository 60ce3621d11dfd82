from models.schema import FormSchema

# The document name is the designation itself, so editing it renames the document
schema = FormSchema.model_validate({
    "doctype": "Designation",
    "nameField": "designation_name",
    "tabs": [{
        "name": "Details",
        "fields": [
            {"name": "name", "label": "ID", "type": "Read Only", "backed": False},
            {"name": "designation_name", "label": "Designation", "type": "Data", "required": True},
            {"name": "description", "type": "Small Text"},
        ],
    }],
})
