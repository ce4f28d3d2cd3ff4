"""Tests for the spec_loader module."""

import hashlib
import json

import httpx
import pytest
import yaml

from apiforge.catalog import OperationCatalog
from apiforge.errors import SpecNotFound, SpecParseError, SpecUnresolvable
from apiforge.schema import ArraySchema, ComposedSchema, ObjectSchema, PrimitiveSchema
from apiforge.spec_loader import SpecLoader


def _with_schemas(document, **schemas):
    document["components"]["schemas"].update(schemas)
    return document


class TestLoadSources:
    """Local files, bundled resources and URLs."""

    def test_yaml_file(self, loader, orders_spec_path):
        spec = loader.load(str(orders_spec_path))
        assert spec.title == "Orders API"
        assert spec.version == "1.2.0"
        assert [op.id for op in spec.operations] == ["createOrder", "getOrder", "cancelOrder"]

    def test_json_file(self, loader, tmp_path, orders_document):
        path = tmp_path / "orders.json"
        path.write_text(json.dumps(orders_document), encoding="utf-8")
        spec = loader.load(str(path))
        assert len(spec.operations) == 3

    def test_hash_and_size(self, loader, orders_spec_path):
        raw = orders_spec_path.read_bytes()
        spec = loader.load(str(orders_spec_path))
        assert spec.size == len(raw)
        assert spec.sha256 == hashlib.sha256(raw).hexdigest()

    def test_bundled_resource(self, target_spec):
        assert target_spec.title == "Payments Gateway API"
        assert {op.primary_tag for op in target_spec.operations} == {"Transactions", "Payment Methods"}

    def test_missing_file(self, loader, tmp_path):
        with pytest.raises(SpecNotFound):
            loader.load(str(tmp_path / "nope.yaml"))

    def test_missing_resource(self, loader):
        with pytest.raises(SpecNotFound):
            loader.load("resource:does-not-exist.yaml")

    def test_url(self, orders_document):
        body = yaml.safe_dump(orders_document).encode()
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=body)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        spec = SpecLoader(client).load("https://specs.example.com/orders.yaml")
        assert seen == ["https://specs.example.com/orders.yaml"]
        assert spec.source == "https://specs.example.com/orders.yaml"
        assert len(spec.operations) == 3

    def test_url_not_found(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
        with pytest.raises(SpecNotFound, match="HTTP 404"):
            SpecLoader(client).load("https://specs.example.com/missing.yaml")

    def test_url_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with pytest.raises(SpecNotFound):
            SpecLoader(client).load("https://specs.example.com/orders.yaml")


class TestParseErrors:
    """Malformed documents fail with diagnostics."""

    def test_invalid_yaml(self, loader, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("openapi: 3.0.0\npaths: [unclosed\n", encoding="utf-8")
        with pytest.raises(SpecParseError):
            loader.load(str(path))

    def test_structural_diagnostics(self, loader, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("openapi: 3.0.0\npaths: []\n", encoding="utf-8")
        with pytest.raises(SpecParseError) as excinfo:
            loader.load(str(path))
        assert len(excinfo.value.diagnostics) == 2
        assert any("info" in d for d in excinfo.value.diagnostics)
        assert any("paths" in d for d in excinfo.value.diagnostics)

    def test_path_must_start_with_slash(self, loader, spec_writer, orders_document):
        orders_document["paths"]["orders"] = orders_document["paths"].pop("/orders")
        with pytest.raises(SpecParseError, match="must start with"):
            loader.load(str(spec_writer(orders_document)))

    def test_scalar_root(self, loader, tmp_path):
        path = tmp_path / "scalar.yaml"
        path.write_text("just a string\n", encoding="utf-8")
        with pytest.raises(SpecParseError, match="mapping"):
            loader.load(str(path))

    def test_unresolvable_ref(self, loader, spec_writer, orders_document):
        body = orders_document["paths"]["/orders"]["post"]["requestBody"]
        body["content"]["application/json"]["schema"] = {"$ref": "#/components/schemas/Missing"}
        with pytest.raises(SpecUnresolvable) as excinfo:
            loader.load(str(spec_writer(orders_document)))
        assert excinfo.value.pointer == "#/components/schemas/Missing"

    def test_remote_ref_rejected(self, loader, spec_writer, orders_document):
        _with_schemas(orders_document, Remote={"$ref": "https://example.com/other.yaml#/Order"})
        with pytest.raises(SpecUnresolvable, match="local"):
            loader.load(str(spec_writer(orders_document)))


class TestResolution:
    """$ref, allOf, oneOf and cycles."""

    def test_ref_shares_component_node(self, loader, orders_spec_path):
        spec = loader.load(str(orders_spec_path))
        create = spec.operations[0]
        assert create.request_schema is spec.schemas["Order"]
        assert create.response_schema is spec.schemas["Order"]

    def test_object_properties(self, loader, orders_spec_path):
        order = loader.load(str(orders_spec_path)).schemas["Order"]
        assert isinstance(order, ObjectSchema)
        assert list(order.properties) == ["id", "quantity", "unitPrice", "status"]
        assert order.properties["id"].required
        assert not order.properties["unitPrice"].required
        assert order.properties["status"].schema.enum == ["OPEN", "CANCELLED"]

    def test_allof_merged(self, loader, spec_writer, orders_document):
        _with_schemas(orders_document, GiftOrder={
            "allOf": [
                {"$ref": "#/components/schemas/Order"},
                {"type": "object", "required": ["message"],
                 "properties": {"message": {"type": "string"}}},
            ],
        })
        gift = loader.load(str(spec_writer(orders_document))).schemas["GiftOrder"]
        assert isinstance(gift, ObjectSchema)
        assert list(gift.properties) == ["id", "quantity", "unitPrice", "status", "message"]
        assert gift.properties["id"].required
        assert gift.properties["message"].required

    def test_single_allof_is_alias(self, loader, spec_writer, orders_document):
        _with_schemas(orders_document, OrderAlias={"allOf": [{"$ref": "#/components/schemas/Order"}]})
        spec = loader.load(str(spec_writer(orders_document)))
        assert spec.schemas["OrderAlias"] is spec.schemas["Order"]

    def test_one_of_with_discriminator(self, target_spec):
        method = target_spec.schemas["PaymentMethod"]
        assert isinstance(method, ComposedSchema)
        assert method.kind == "oneOf"
        assert method.discriminator == "type"
        assert method.members == [target_spec.schemas["CardPaymentMethod"],
                                  target_spec.schemas["WalletPaymentMethod"]]

    def test_typed_object_one_of(self, loader, spec_writer, orders_document):
        _with_schemas(orders_document, Pet={
            "type": "object",
            "oneOf": [{"$ref": "#/components/schemas/Order"}, {"type": "string"}],
            "discriminator": {"propertyName": "kind"},
        })
        spec = loader.load(str(spec_writer(orders_document)))
        pet = spec.schemas["Pet"]
        assert isinstance(pet, ComposedSchema)
        assert pet.kind == "oneOf"
        assert pet.discriminator == "kind"
        assert pet.members[0] is spec.schemas["Order"]
        assert isinstance(pet.members[1], PrimitiveSchema)

    def test_self_reference(self, loader, spec_writer, orders_document):
        _with_schemas(orders_document, Category={
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "parent": {"$ref": "#/components/schemas/Category"},
            },
        })
        category = loader.load(str(spec_writer(orders_document))).schemas["Category"]
        assert category.properties["parent"].schema is category

    def test_array_items(self, loader, spec_writer, orders_document):
        _with_schemas(orders_document, OrderList={
            "type": "array", "items": {"$ref": "#/components/schemas/Order"},
        })
        spec = loader.load(str(spec_writer(orders_document)))
        listing = spec.schemas["OrderList"]
        assert isinstance(listing, ArraySchema)
        assert listing.items is spec.schemas["Order"]

    def test_type_list_nullable(self, loader, spec_writer, orders_document):
        _with_schemas(orders_document, Note={"type": ["string", "null"]})
        note = loader.load(str(spec_writer(orders_document))).schemas["Note"]
        assert isinstance(note, PrimitiveSchema)
        assert note.kind == "string"
        assert note.nullable


class TestOperations:
    """Operation extraction rules."""

    def test_path_level_parameters_inherited(self, loader, orders_spec_path):
        spec = loader.load(str(orders_spec_path))
        get_order = spec.operations[1]
        assert [(p.name, p.location, p.required) for p in get_order.parameters] == \
            [("orderId", "path", True)]

    def test_operation_parameter_overrides_shared(self, loader, spec_writer, orders_document):
        item = orders_document["paths"]["/orders/{orderId}"]
        item["get"]["parameters"] = [
            {"name": "orderId", "in": "path", "required": True,
             "description": "Order number", "schema": {"type": "string"}},
        ]
        get_order = loader.load(str(spec_writer(orders_document))).operations[1]
        assert len(get_order.parameters) == 1
        assert get_order.parameters[0].description == "Order number"

    def test_cookie_parameter_dropped(self, loader, spec_writer, orders_document):
        orders_document["paths"]["/orders"]["post"]["parameters"] = [
            {"name": "session", "in": "cookie", "schema": {"type": "string"}},
        ]
        spec = loader.load(str(spec_writer(orders_document)))
        assert spec.operations[0].parameters == ()
        assert any("session" in w for w in spec.warnings)

    def test_success_status_201(self, loader, orders_spec_path):
        create = loader.load(str(orders_spec_path)).operations[0]
        assert list(create.responses) == ["201"]
        assert create.response_schema is not None
        assert create.request_required

    def test_no_content_response(self, loader, orders_spec_path):
        cancel = loader.load(str(orders_spec_path)).operations[2]
        assert cancel.response_schema is None
        assert cancel.http_method == "POST"

    def test_missing_operation_id_synthesized(self, loader, spec_writer, orders_document):
        del orders_document["paths"]["/orders/{orderId}"]["get"]["operationId"]
        spec = loader.load(str(spec_writer(orders_document)))
        assert spec.operations[1].id == "getOrdersByOrderId"
        assert any("getOrdersByOrderId" in w for w in spec.warnings)

    def test_duplicate_operation_id_renamed(self, loader, spec_writer, orders_document):
        orders_document["paths"]["/orders/{orderId}/cancel"]["post"]["operationId"] = "getOrder"
        spec = loader.load(str(spec_writer(orders_document)))
        assert [op.id for op in spec.operations] == ["createOrder", "getOrder", "getOrder_2"]
        assert any("Duplicate operationId getOrder" in w for w in spec.warnings)

    def test_renamed_id_skips_earlier_declared_id(self, loader, spec_writer, orders_document):
        paths = orders_document["paths"]
        paths["/orders"]["post"]["operationId"] = "getOrder_2"
        paths["/orders/{orderId}/cancel"]["post"]["operationId"] = "getOrder"
        spec = loader.load(str(spec_writer(orders_document)))
        assert [op.id for op in spec.operations] == ["getOrder_2", "getOrder", "getOrder_3"]

    def test_renamed_id_skips_later_declared_id(self, loader, spec_writer, orders_document):
        paths = orders_document["paths"]
        paths["/orders"]["post"]["operationId"] = "getOrder"
        paths["/orders/{orderId}/cancel"]["post"]["operationId"] = "getOrder_2"
        spec = loader.load(str(spec_writer(orders_document)))
        assert [op.id for op in spec.operations] == ["getOrder", "getOrder_3", "getOrder_2"]
        OperationCatalog.from_spec(spec, "target")

    def test_untagged_goes_to_default(self, loader, spec_writer, orders_document):
        del orders_document["paths"]["/orders"]["post"]["tags"]
        create = loader.load(str(spec_writer(orders_document))).operations[0]
        assert create.primary_tag == "default"
        assert create.all_tags == ("default",)

    def test_operations_for_tag(self, target_spec):
        ids = [op.id for op in target_spec.operations_for_tag("Transactions")]
        assert ids == ["processPayment", "getTransaction", "refundTransaction", "listTransactions"]
