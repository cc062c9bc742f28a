import json
from pathlib import Path

import pytest

from cedar_schema import (
    EntityTypeName,
    EntityUID,
    InvalidIdentifier,
    ParseError,
    Schema,
    SchemaFormat,
)

FIXTURES = Path(__file__).resolve().parent / "fixtures" / "schema"
CEDAR_TEXT = (FIXTURES / "photo_app.cedarschema").read_text()
JSON_TEXT = (FIXTURES / "photo_app.cedarschema.json").read_text()

GROUPS_JSON = json.dumps(
    {
        "": {
            "entityTypes": {"User": {}, "Album": {}},
            "actions": {
                "specificActionGroup": {},
                "allActionGroup": {},
                "edit": {
                    "memberOf": [{"id": "allActionGroup"}],
                    "appliesTo": {"principalTypes": ["User"], "resourceTypes": ["Album"]},
                },
                "view": {
                    "memberOf": [{"id": "specificActionGroup"}, {"id": "allActionGroup"}],
                    "appliesTo": {"principalTypes": ["User"], "resourceTypes": ["Album"]},
                },
            },
        }
    }
)


def _photo(name):
    return EntityTypeName.parse(f"PhotoApp::{name}")


def _action(name):
    return EntityUID.action(name, "PhotoApp")


@pytest.fixture(params=[SchemaFormat.CEDAR, SchemaFormat.JSON])
def photo_schema(request):
    text = CEDAR_TEXT if request.param is SchemaFormat.CEDAR else JSON_TEXT
    return Schema.parse(request.param, text)


# ---------------- Scenarios ---------------- #


def test_empty_documents():
    for schema in (Schema.from_json("{}"), Schema.from_cedar("")):
        assert schema.actions() == []
        assert schema.action_groups() == []
        assert schema.entity_types() == []


def test_single_group_in_textual_document():
    schema = Schema.from_cedar(
        "entity User; entity Album;\n"
        "action specificActionGroup;\n"
        "action view in [specificActionGroup] appliesTo { principal: [User], resource: [Album] };\n"
    )

    assert len(schema.actions()) == 2
    assert schema.action_groups() == [EntityUID.action("specificActionGroup")]


def test_two_groups_in_structured_document():
    schema = Schema.parse("json", GROUPS_JSON)

    assert len(schema.actions()) == 4
    assert set(schema.action_groups()) == {
        EntityUID.action("specificActionGroup"),
        EntityUID.action("allActionGroup"),
    }


def test_wrong_format_fails_with_parse_error():
    with pytest.raises(ParseError):
        Schema.from_cedar(GROUPS_JSON)
    with pytest.raises(ParseError):
        Schema.from_json(CEDAR_TEXT)


def test_broken_syntax_fails_with_parse_error():
    with pytest.raises(ParseError):
        Schema.from_cedar("entity User; actoin view;")
    with pytest.raises(ParseError):
        Schema.from_json('{"": {"actions" {}}}')


def test_unknown_format():
    with pytest.raises(ValueError):
        Schema.parse("yaml", "{}")


# ---------------- Classification properties ---------------- #


def test_groups_are_subset_of_actions(photo_schema):
    actions = photo_schema.actions()
    groups = photo_schema.action_groups()

    assert len(actions) >= len(groups)
    assert set(groups) <= set(actions)


def test_group_classification_follows_applies_to(photo_schema):
    groups = set(photo_schema.action_groups())

    for uid in photo_schema.actions():
        action = photo_schema.action(uid)
        assert (uid in groups) == (action.applies_to is None)


def test_formats_are_equivalent():
    from_cedar = Schema.from_cedar(CEDAR_TEXT)
    from_json = Schema.from_json(JSON_TEXT)

    assert set(from_cedar.actions()) == set(from_json.actions())
    assert set(from_cedar.action_groups()) == set(from_json.action_groups())
    assert from_cedar.to_dict() == from_json.to_dict()


def test_parsing_is_idempotent():
    first = Schema.from_cedar(CEDAR_TEXT)
    second = Schema.from_cedar(CEDAR_TEXT)

    assert first.actions() == second.actions()
    assert first.action_groups() == second.action_groups()
    assert first.to_dict() == second.to_dict()


# ---------------- Queries ---------------- #


def test_actions_and_groups(photo_schema):
    assert photo_schema.actions() == [
        _action("viewActions"),
        _action("allActions"),
        _action("view"),
        _action("edit"),
        _action("share photo"),
    ]
    assert photo_schema.action_groups() == [_action("viewActions"), _action("allActions")]


def test_entity_type_lookup(photo_schema):
    user = photo_schema.entity_type("PhotoApp::User")

    assert user is not None
    assert user.name == _photo("User")
    assert list(user.attributes) == ["name", "age", "home", "tags"]
    assert user.attributes["age"].required is False
    assert user.attributes["home"].type.kind == "Record"
    assert user.member_of_types == (_photo("UserGroup"),)

    assert photo_schema.entity_type(_photo("Photo")).attributes["owner"].type.entity_type == _photo("User")
    assert photo_schema.entity_type("User") is None
    assert photo_schema.entity_type("PhotoApp::Missing") is None


def test_entity_type_rejects_malformed_names(photo_schema):
    with pytest.raises(InvalidIdentifier):
        photo_schema.entity_type("PhotoApp::")


def test_namespaces_and_common_types(photo_schema):
    assert photo_schema.namespaces() == ["PhotoApp"]
    assert photo_schema.namespace("PhotoApp").annotations == {"doc": "Photo sharing application"}
    assert photo_schema.namespace("Other") is None

    address = photo_schema.common_type("PhotoApp::Address")
    assert address.kind == "Record"
    assert list(address.attributes) == ["street", "zip"]


def test_action_details(photo_schema):
    share = photo_schema.action(_action("share photo"))
    assert share.annotations == {"doc": "Share a photo with a group"}
    assert share.name == "share photo"

    edit = photo_schema.action(_action("edit"))
    assert edit.applies_to.context.attributes["ip"].type.extension == "ipaddr"

    assert photo_schema.action(_action("delete")) is None


def test_action_ancestors(photo_schema):
    assert photo_schema.action_ancestors(_action("view")) == [
        _action("viewActions"),
        _action("allActions"),
    ]
    assert photo_schema.action_ancestors(_action("allActions")) == []
    assert photo_schema.action_ancestors(_action("unknown")) == []


def test_action_ancestors_tolerate_cycles():
    schema = Schema.from_cedar("action a in [b]; action b in [c]; action c in [a];")

    assert schema.action_ancestors(EntityUID.action("a")) == [
        EntityUID.action("b"),
        EntityUID.action("c"),
    ]
    assert len(schema.action_groups()) == 3


def test_entity_type_ancestors(photo_schema):
    assert photo_schema.entity_type_ancestors("PhotoApp::Photo") == [_photo("Album")]
    # Album is declared as a member of itself
    assert photo_schema.entity_type_ancestors("PhotoApp::Album") == []


def test_actions_for(photo_schema):
    assert photo_schema.actions_for("PhotoApp::User", "PhotoApp::Photo") == [
        _action("view"),
        _action("edit"),
        _action("share photo"),
    ]
    assert photo_schema.actions_for(_photo("User"), _photo("Album")) == [_action("view")]
    assert photo_schema.actions_for(_photo("Album"), _photo("User")) == []


# ---------------- Serialization ---------------- #


def test_to_json_round_trip(photo_schema):
    reparsed = Schema.from_json(photo_schema.to_json())

    assert reparsed.actions() == photo_schema.actions()
    assert reparsed.action_groups() == photo_schema.action_groups()
    assert reparsed.to_dict() == photo_schema.to_dict()


def test_to_dict_shape():
    data = Schema.from_cedar(CEDAR_TEXT).to_dict()

    view = data["PhotoApp"]["actions"]["view"]
    assert view["memberOf"] == [{"id": "viewActions"}, {"id": "allActions"}]
    assert view["appliesTo"]["resourceTypes"] == ["PhotoApp::Photo", "PhotoApp::Album"]
    assert "appliesTo" not in data["PhotoApp"]["actions"]["allActions"]
    assert data["PhotoApp"]["entityTypes"]["Photo"]["shape"]["attributes"]["owner"] == {
        "type": "Entity",
        "name": "PhotoApp::User",
        "required": True,
    }


def test_cross_namespace_parents_keep_their_type():
    schema = Schema.from_cedar(
        "namespace A { action all; }"
        'namespace B { action v in [A::Action::"all"]; }'
    )

    data = schema.to_dict()
    assert data["B"]["actions"]["v"]["memberOf"] == [{"id": "all", "type": "A::Action"}]
    assert Schema.from_json(schema.to_json()).to_dict() == data


def test_query_results_cannot_alter_the_schema():
    schema = Schema.from_cedar(CEDAR_TEXT)
    view = schema.action(_action("view"))
    user = schema.entity_type("PhotoApp::User")
    namespace = schema.namespace("PhotoApp")

    with pytest.raises(TypeError):
        namespace.actions[_action("delete")] = view
    with pytest.raises(AttributeError):
        namespace.actions.clear()
    with pytest.raises(TypeError):
        user.attributes["extra"] = user.attributes["name"]
    with pytest.raises(TypeError):
        namespace.annotations["doc"] = "changed"

    assert schema.to_dict() == Schema.from_cedar(CEDAR_TEXT).to_dict()
    assert len(schema.actions()) == len(schema.to_dict()["PhotoApp"]["actions"])


def test_query_results_are_hashable(photo_schema):
    view = photo_schema.action(_action("view"))

    assert hash(view) == hash(Schema.from_cedar(CEDAR_TEXT).action(_action("view")))
    assert len({view, photo_schema.action(_action("view"))}) == 1
    hash(photo_schema.entity_type("PhotoApp::User"))
    hash(photo_schema.namespace("PhotoApp"))
    hash(photo_schema.common_type("PhotoApp::Address"))
