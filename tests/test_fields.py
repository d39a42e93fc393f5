from callsync.fields import UNIVERSAL_FIELDS, split_extracted_fields


def test_split_separates_universal_and_custom():
    split = split_extracted_fields(
        {"first_name": "Sam", "email": "sam@example.com", "pet_name": "Rex", "hair_length": "long"}
    )

    assert split.universal == {"first_name": "Sam", "email": "sam@example.com"}
    assert split.custom == {"pet_name": "Rex", "hair_length": "long"}


def test_split_is_total_and_disjoint():
    extracted = {key: key.upper() for key in UNIVERSAL_FIELDS}
    extracted.update({"favorite_color": "blue", "referral": "friend", "Day": "capitalised is custom"})

    split = split_extracted_fields(extracted)

    assert set(split.universal).isdisjoint(split.custom)
    assert set(split.universal) | set(split.custom) == set(extracted)
    assert split.custom["Day"] == "capitalised is custom"


def test_split_handles_missing_mapping():
    split = split_extracted_fields(None)
    assert split.universal == {}
    assert split.custom == {}


def test_attribution_fields_stay_out_of_custom():
    split = split_extracted_fields({"business_name": "acme", "notes": "x"}, attribution_fields=("business_name",))

    assert split.universal == {"business_name": "acme"}
    assert split.custom == {"notes": "x"}
