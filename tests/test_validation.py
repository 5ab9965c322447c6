import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from lxml import etree

from xml_pipeline import (
    NO_RESOLUTION,
    Document,
    FileResolver,
    MalformedDocument,
    ResourceNotFound,
    Schema,
    SchemaCompileError,
    SchemaLocator,
    SchemaViolation,
    ValidatingDocument,
    Violation,
)

XSI = 'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"'

ORDER_XSD = """<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema">
  <xs:element name="order">
    <xs:complexType>
      <xs:sequence>
        <xs:element name="qty" type="xs:positiveInteger" maxOccurs="unbounded"/>
      </xs:sequence>
    </xs:complexType>
  </xs:element>
</xs:schema>"""

NS_ORDER_XSD = """<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema"
    targetNamespace="urn:order" elementFormDefault="qualified">
  <xs:element name="order">
    <xs:complexType>
      <xs:sequence>
        <xs:element name="qty" type="xs:positiveInteger"/>
      </xs:sequence>
    </xs:complexType>
  </xs:element>
</xs:schema>"""

TYPES_XSD = """<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema">
  <xs:simpleType name="Quantity">
    <xs:restriction base="xs:positiveInteger"/>
  </xs:simpleType>
</xs:schema>"""

INCLUDING_XSD = """<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema">
  <xs:include schemaLocation="types.xsd"/>
  <xs:element name="qty" type="Quantity"/>
</xs:schema>"""

VALID = "<order><qty>1</qty><qty>2</qty></order>"
INVALID = "<order><qty>-1</qty></order>"


def test_valid_document_behaves_like_wrapped():
    doc = Document(VALID)
    checked = ValidatingDocument(doc, Schema(ORDER_XSD))
    assert checked.query("/order/qty/text()") == doc.query("/order/qty/text()")
    assert checked.render() == doc.render()
    assert checked == doc
    assert checked.document is doc
    assert checked.inner() is doc.inner()


def test_invalid_document_is_rejected():
    checked = None
    with pytest.raises(SchemaViolation) as excinfo:
        checked = ValidatingDocument(Document(INVALID), Schema(ORDER_XSD))
    assert checked is None
    violations = excinfo.value.violations
    assert violations
    assert all(isinstance(v, Violation) for v in violations)
    assert violations[0].line == 3
    assert str(excinfo.value).startswith("%d error(s) in XML document" % len(violations))


def test_validate_returns_violations():
    schema = Schema(ORDER_XSD)
    assert Document(VALID).validate(schema) == []
    assert Document(INVALID).validate(schema)


def test_schema_given_as_document():
    checked = ValidatingDocument(Document(VALID), Document(ORDER_XSD))
    assert checked.xpath("count(/order/qty)") == ["2"]


def test_prebuilt_lxml_validators():
    xsd = etree.XMLSchema(etree.fromstring(ORDER_XSD))
    assert ValidatingDocument(Document(VALID), xsd).render() == Document(VALID).render()
    rng = etree.RelaxNG(etree.fromstring(
        '<element name="order" xmlns="http://relaxng.org/ns/structure/1.0">'
        '<zeroOrMore><element name="qty"><text/></element></zeroOrMore>'
        '</element>'
    ))
    ValidatingDocument(Document(VALID), rng)
    with pytest.raises(SchemaViolation):
        ValidatingDocument(Document("<basket/>"), rng)


def test_context_changes_return_plain_documents():
    checked = ValidatingDocument(Document(VALID), Schema(ORDER_XSD))
    other = checked.with_namespace("o", "urn:order")
    assert type(other) is Document
    assert other.context.lookup_uri("o") == "urn:order"


def test_schema_from_path_resolves_includes(tmp_path):
    (tmp_path / "types.xsd").write_text(TYPES_XSD, encoding="utf-8")
    (tmp_path / "qty.xsd").write_text(INCLUDING_XSD, encoding="utf-8")
    schema = Schema.from_path(tmp_path / "qty.xsd")
    assert Document("<qty>3</qty>").validate(schema) == []
    assert Document("<qty>0</qty>").validate(schema)


def test_unresolved_include():
    with pytest.raises(ResourceNotFound):
        Schema(INCLUDING_XSD, NO_RESOLUTION)


def test_invalid_schema():
    bad = (
        '<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema">'
        '<xs:element name="a" type="xs:nope"/></xs:schema>'
    )
    with pytest.raises(SchemaCompileError):
        Schema(bad)


def test_malformed_schema():
    with pytest.raises(MalformedDocument):
        Schema("<xs:schema")


def test_locator_without_namespace(tmp_path):
    (tmp_path / "order.xsd").write_text(ORDER_XSD, encoding="utf-8")
    doc = Document(
        f'<order {XSI} xsi:noNamespaceSchemaLocation="order.xsd"><qty>2</qty></order>'
    )
    checked = ValidatingDocument(doc, FileResolver(tmp_path))
    assert checked.xpath("/order/qty/text()") == ["2"]


def test_locator_with_namespace(tmp_path):
    (tmp_path / "order-ns.xsd").write_text(NS_ORDER_XSD, encoding="utf-8")
    good = Document(
        f'<o:order xmlns:o="urn:order" {XSI} '
        f'xsi:schemaLocation="urn:order order-ns.xsd"><o:qty>2</o:qty></o:order>'
    )
    bad = Document(
        f'<o:order xmlns:o="urn:order" {XSI} '
        f'xsi:schemaLocation="urn:order order-ns.xsd"><o:qty>0</o:qty></o:order>'
    )
    locator = SchemaLocator(FileResolver(tmp_path))
    assert locator.validate(good) == []
    with pytest.raises(SchemaViolation):
        ValidatingDocument(bad, locator)


def test_locator_lists_declared_locations():
    root = etree.fromstring(
        f'<r {XSI} xsi:schemaLocation="urn:a a.xsd urn:b b.xsd"'
        ' xsi:noNamespaceSchemaLocation="plain.xsd"/>'
    )
    assert SchemaLocator.locations(root) == [
        ("urn:a", "a.xsd"),
        ("urn:b", "b.xsd"),
        (None, "plain.xsd"),
    ]


def test_missing_schema_location():
    with pytest.raises(SchemaViolation) as excinfo:
        ValidatingDocument(Document("<order/>"), NO_RESOLUTION)
    assert "No schema location" in excinfo.value.violations[0].message


def test_declared_schema_not_found(tmp_path):
    doc = Document(f'<order {XSI} xsi:noNamespaceSchemaLocation="absent.xsd"/>')
    with pytest.raises(ResourceNotFound):
        ValidatingDocument(doc, FileResolver(tmp_path))


def test_unsupported_validator():
    with pytest.raises(TypeError):
        ValidatingDocument(Document(VALID), 42)


def write_nested_schemas(tmp_path):
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "types.xsd").write_text(TYPES_XSD, encoding="utf-8")
    (sub / "qty.xsd").write_text(INCLUDING_XSD, encoding="utf-8")
    (tmp_path / "main.xsd").write_text(
        '<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema">'
        '<xs:include schemaLocation="sub/qty.xsd"/></xs:schema>',
        encoding="utf-8",
    )


def test_nested_include_in_subdirectory(tmp_path):
    write_nested_schemas(tmp_path)
    schema = Schema.from_path(tmp_path / "main.xsd")
    assert Document("<qty>3</qty>").validate(schema) == []
    assert Document("<qty>0</qty>").validate(schema)


def test_locator_nested_include_in_subdirectory(tmp_path):
    write_nested_schemas(tmp_path)
    doc = Document(f'<qty {XSI} xsi:noNamespaceSchemaLocation="sub/qty.xsd">3</qty>')
    checked = ValidatingDocument(doc, FileResolver(tmp_path))
    assert checked.xpath("/qty/text()") == ["3"]
