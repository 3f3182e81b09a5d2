import pytest

from dynaforms.core.exceptions import (
    InvalidDefault,
    InvalidEntityConfig,
    InvalidFieldKind,
    InvalidSchemaDocument,
    ModelNameCollision,
)
from dynaforms.domain.entities import FieldKind
from dynaforms.domain.services import EntityDescriptorCompiler, canonical_model_name


def entity(route="/api/items", fields=None, **extra):
    config = {"route": route, "fields": fields or {"name": {"kind": "text"}}}
    config.update(extra)
    return config


class TestCompileEntity:

    def test_compiles_descriptor(self):
        descriptor = EntityDescriptorCompiler.compile(
            "items",
            entity(fields={"name": {"kind": "text", "required": True}, "qty": {"kind": "number"}}),
        )
        assert descriptor.entity_name == "items"
        assert descriptor.model_name == "Items"
        assert descriptor.route == "/api/items"
        assert descriptor.field_names == ("name", "qty")
        assert descriptor.get_field("qty").kind is FieldKind.NUMBER
        assert [f.name for f in descriptor.required_fields] == ["name"]

    def test_each_compile_returns_a_fresh_descriptor(self):
        first = EntityDescriptorCompiler.compile("items", entity())
        second = EntityDescriptorCompiler.compile("items", entity())
        assert first is not second
        assert first.fingerprint == second.fingerprint

    def test_descriptor_is_immutable(self):
        descriptor = EntityDescriptorCompiler.compile("items", entity())
        with pytest.raises(AttributeError):
            descriptor.route = "/api/other"

    def test_extra_keys_are_ignored(self):
        descriptor = EntityDescriptorCompiler.compile(
            "items",
            entity(
                fields={"name": {"kind": "text", "label": "Name"}},
                frontend={"icon": "box"},
            ),
        )
        assert descriptor.field_names == ("name",)

    @pytest.mark.parametrize("route", [None, "", "api/items", "/api/items/", "/api/{id}", "/a b", 42])
    def test_bad_routes_are_rejected(self, route):
        with pytest.raises(InvalidEntityConfig):
            EntityDescriptorCompiler.compile("items", entity(route=route))

    @pytest.mark.parametrize("route", ["/", "/health", "/api/schema", "/api/schema/update"])
    def test_system_routes_are_reserved(self, route):
        with pytest.raises(InvalidEntityConfig):
            EntityDescriptorCompiler.compile("items", entity(route=route))

    def test_missing_route_is_rejected(self):
        with pytest.raises(InvalidEntityConfig):
            EntityDescriptorCompiler.compile("items", {"fields": {"name": {"kind": "text"}}})

    def test_empty_fields_are_rejected(self):
        with pytest.raises(InvalidEntityConfig):
            EntityDescriptorCompiler.compile("items", {"route": "/api/items", "fields": {}})

    def test_non_mapping_config_is_rejected(self):
        with pytest.raises(InvalidEntityConfig):
            EntityDescriptorCompiler.compile("items", ["route", "/api/items"])

    @pytest.mark.parametrize("name", ["", "1items", "my-items", "items!"])
    def test_bad_entity_names_are_rejected(self, name):
        with pytest.raises(InvalidEntityConfig):
            EntityDescriptorCompiler.compile(name, entity())

    @pytest.mark.parametrize("field_name", ["id", "createdAt", "updatedAt", "CreatedAt", "ID"])
    def test_system_field_names_are_reserved(self, field_name):
        with pytest.raises(InvalidEntityConfig) as exc_info:
            EntityDescriptorCompiler.compile("items", entity(fields={field_name: {"kind": "text"}}))
        assert exc_info.value.field == field_name

    @pytest.mark.parametrize("field_name", ["1st", "first-name", "a b"])
    def test_bad_field_names_are_rejected(self, field_name):
        with pytest.raises(InvalidEntityConfig):
            EntityDescriptorCompiler.compile("items", entity(fields={field_name: {"kind": "text"}}))

    def test_case_insensitive_field_clash_is_rejected(self):
        with pytest.raises(InvalidEntityConfig):
            EntityDescriptorCompiler.compile(
                "items", entity(fields={"name": {"kind": "text"}, "Name": {"kind": "text"}})
            )

    def test_field_errors_propagate(self):
        with pytest.raises(InvalidFieldKind):
            EntityDescriptorCompiler.compile("items", entity(fields={"name": {"kind": "String"}}))
        with pytest.raises(InvalidDefault):
            EntityDescriptorCompiler.compile(
                "items", entity(fields={"name": {"kind": "text", "default": "now"}})
            )


class TestCompileDocument:

    def test_compiles_every_entity_in_order(self):
        descriptors = EntityDescriptorCompiler.compile_document(
            {
                "record": {
                    "items": entity(route="/api/items"),
                    "orders": entity(route="/api/orders"),
                },
                "frontend": {"theme": "dark"},
            }
        )
        assert list(descriptors) == ["items", "orders"]
        assert descriptors["orders"].model_name == "Orders"

    def test_empty_record_block_compiles_to_nothing(self):
        assert EntityDescriptorCompiler.compile_document({"record": {}}) == {}

    @pytest.mark.parametrize("document", [None, [], "schema", {}, {"record": []}, {"entities": {}}])
    def test_bad_document_shape_is_rejected(self, document):
        with pytest.raises(InvalidSchemaDocument):
            EntityDescriptorCompiler.compile_document(document)

    def test_duplicate_routes_are_rejected(self):
        with pytest.raises(InvalidEntityConfig) as exc_info:
            EntityDescriptorCompiler.compile_document(
                {"record": {"items": entity(route="/api/x"), "orders": entity(route="/api/x")}}
            )
        assert exc_info.value.entity == "orders"

    @pytest.mark.parametrize(
        "first, second",
        [
            ("/api/items", "/api/items/archive"),
            ("/api/items/archive", "/api/items"),
            ("/api/items", "/api/items/archive/old"),
        ],
    )
    def test_nested_routes_are_rejected(self, first, second):
        with pytest.raises(InvalidEntityConfig) as exc_info:
            EntityDescriptorCompiler.compile_document(
                {"record": {"items": entity(route=first), "archive": entity(route=second)}}
            )
        assert exc_info.value.entity == "archive"
        assert "overlaps" in exc_info.value.reason

    def test_sibling_routes_sharing_a_prefix_are_accepted(self):
        descriptors = EntityDescriptorCompiler.compile_document(
            {
                "record": {
                    "items": entity(route="/api/items"),
                    "itemsets": entity(route="/api/itemsets"),
                }
            }
        )
        assert [d.route for d in descriptors.values()] == ["/api/items", "/api/itemsets"]

    def test_model_name_collision_is_rejected(self):
        with pytest.raises(ModelNameCollision):
            EntityDescriptorCompiler.compile_document(
                {"record": {"items": entity(route="/api/a"), "Items": entity(route="/api/b")}}
            )

    def test_model_name_collision_is_case_insensitive(self):
        with pytest.raises(ModelNameCollision):
            EntityDescriptorCompiler.compile_document(
                {"record": {"orderItems": entity(route="/api/a"), "Orderitems": entity(route="/api/b")}}
            )

    def test_one_bad_entity_fails_the_document(self):
        with pytest.raises(InvalidFieldKind) as exc_info:
            EntityDescriptorCompiler.compile_document(
                {
                    "record": {
                        "good": entity(route="/api/good"),
                        "bad": entity(route="/api/bad", fields={"x": {"kind": "nope"}}),
                    }
                }
            )
        assert exc_info.value.entity == "bad"


def test_canonical_model_name():
    assert canonical_model_name("items") == "Items"
    assert canonical_model_name("Items") == "Items"
    assert canonical_model_name("orderItems") == "OrderItems"
    assert canonical_model_name("x") == "X"
