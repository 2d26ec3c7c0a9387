"""Default service catalog inserted by `seed_services`."""

ANY_FILE = ["pdf", "png", "jpg"]
IMAGE_ONLY = ["jpg", "png"]


def _option(key, label, is_optional=False, allowed=None):
    return {
        "key": key,
        "label": label,
        "type": "document",
        "is_optional": is_optional,
        "allowed_file_types": allowed or ANY_FILE,
    }


def _group(key, label, *options):
    return {
        "key": key,
        "label": label,
        "is_optional": False,
        "min_required": 1,
        "type": "documents",
        "options": list(options),
    }


def _category(service_id, name):
    return {
        "id": service_id,
        "name": name,
        "customer_rate": 0,
        "agent_rate": 0,
        "government_fee": 0,
        "document_groups": [],
        "parent_id": None,
        "is_variable": False,
    }


PHOTOGRAPH = _group("photograph", "Photograph", _option("photograph", "Photograph", allowed=IMAGE_ONLY))
AADHAAR = _option("aadhaar_card", "Aadhaar Card")

DEFAULT_SERVICES = [
    # Income certificate
    _category("income_certificate", "Income Certificate"),
    {
        "id": "income_new_application",
        "name": "New Application",
        "customer_rate": 150,
        "agent_rate": 100,
        "government_fee": 0,
        "document_groups": [
            _group(
                "identity_proof", "Identity Proof",
                AADHAAR,
                _option("voter_id_card", "Voter Id card", is_optional=True),
                _option("driving_licence", "Driving Licence", is_optional=True),
            ),
            _group(
                "residence_proof", "Residence Proof",
                _option("residence_certificate", "Residence Certificate"),
                _option("passport_copy", "Passport Copy", is_optional=True),
                _option("other_residence_proof", "Any Other Residence Proof", is_optional=True),
            ),
            _group(
                "age_proof", "Age Proof",
                _option("birth_certificate", "Birth Certificate", is_optional=True),
                _option("school_leaving_certificate", "School Leaving Certificate", is_optional=True),
            ),
            PHOTOGRAPH,
            _group(
                "self_declaration", "Self Declaration",
                _option("self_declaration_format", "Self Declaration Format"),
            ),
        ],
        "parent_id": "income_certificate",
        "is_variable": False,
    },

    # Residence certificate
    _category("residence_certificate", "Residence Certificate"),
    {
        "id": "residence_new_application",
        "name": "New Application",
        "customer_rate": 150,
        "agent_rate": 100,
        "government_fee": 0,
        "document_groups": [
            _group(
                "identity_proof", "Identity Proof",
                AADHAAR,
                _option("voter_id_card", "Voter Id card", is_optional=True),
            ),
            _group(
                "age_proof", "Age Proof",
                _option("birth_certificate", "Birth Certificate"),
                _option("school_leaving_certificate", "School Leaving Certificate", is_optional=True),
            ),
            PHOTOGRAPH,
        ],
        "parent_id": "residence_certificate",
        "is_variable": False,
    },

    # PAN card
    _category("pan_card_services", "PAN Card Services"),
    {
        "id": "pan_new_application",
        "name": "New Application (Form 49A)",
        "customer_rate": 200,
        "agent_rate": 150,
        "government_fee": 107,
        "document_groups": [
            _group("identity_proof", "Identity Proof", AADHAAR),
            _group("address_proof", "Address Proof", AADHAAR),
            _group("date_of_birth_proof", "Date of Birth Proof", AADHAAR),
            PHOTOGRAPH,
        ],
        "parent_id": "pan_card_services",
        "is_variable": False,
    },
    {
        "id": "pan_correction",
        "name": "Correction/Reprint",
        "customer_rate": 200,
        "agent_rate": 150,
        "government_fee": 107,
        "document_groups": [],
        "parent_id": "pan_card_services",
        "is_variable": True,
    },

    # Licences
    _category("licenses", "Licenses & Registrations"),
    {
        "id": "driving_license_application",
        "name": "Driving License Application",
        "customer_rate": 1500,
        "agent_rate": 1300,
        "government_fee": 1200,
        "document_groups": [
            _group("identity_proof", "Identity Proof", AADHAAR),
            _group(
                "address_proof", "Address Proof",
                _option("residence_certificate", "Residence Certificate"),
                _option("electricity_bill", "Electricity Bill", is_optional=True),
            ),
            PHOTOGRAPH,
        ],
        "parent_id": "licenses",
        "is_variable": False,
    },

    # Anything else is priced by an admin
    _category("other_services", "Other Services"),
    {
        "id": "other_variable",
        "name": "Custom Service Request",
        "customer_rate": 0,
        "agent_rate": 0,
        "government_fee": 0,
        "document_groups": [],
        "parent_id": "other_services",
        "is_variable": True,
    },
]
